"""Terminal outcome accounting for one batch run."""

from __future__ import annotations

import time
from collections.abc import Callable

from image_batch.orchestrator.models import (
    BatchSummary,
    ErrorEntry,
    JobFailure,
    JobSuccess,
    Outcome,
)


class ResultAggregator:
    """Accumulates terminal outcomes in the order they are observed."""

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._started_at: float | None = None
        self._finished_at: float | None = None
        self.results: list[JobSuccess] = []
        self.errors: list[ErrorEntry] = []

    def mark_started(self) -> None:
        self._started_at = self._clock()
        self._finished_at = None

    def mark_finished(self) -> None:
        self._finished_at = self._clock()

    def record(self, outcome: Outcome) -> None:
        """Record one terminal outcome; retried attempts are never passed here."""

        if isinstance(outcome, JobSuccess):
            self.results.append(outcome)
            return
        if isinstance(outcome, JobFailure):
            self.errors.append(
                ErrorEntry(name=outcome.name, reason=outcome.reason, attempts=outcome.attempt),
            )
            return
        raise TypeError(f"Unsupported outcome type: {type(outcome).__name__}")

    def summary(self) -> BatchSummary:
        success_count = len(self.results)
        failure_count = len(self.errors)
        total_elapsed_ms = self._elapsed_ms()
        job_count = success_count + failure_count
        average_per_job_ms = total_elapsed_ms / job_count if job_count else 0.0
        average_successful = (
            sum(result.elapsed_ms for result in self.results) / success_count
            if success_count
            else None
        )
        return BatchSummary(
            success_count=success_count,
            failure_count=failure_count,
            total_elapsed_ms=total_elapsed_ms,
            average_per_job_ms=average_per_job_ms,
            average_successful_processing_ms=average_successful,
        )

    def _elapsed_ms(self) -> int:
        if self._started_at is None:
            return 0
        finished_at = self._finished_at if self._finished_at is not None else self._clock()
        return max(0, round((finished_at - self._started_at) * 1000))
