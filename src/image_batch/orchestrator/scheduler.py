"""Bounded-concurrency scheduler driving one batch of jobs to completion."""

from __future__ import annotations

import logging
import multiprocessing
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from multiprocessing.connection import wait
from multiprocessing.context import BaseContext
from pathlib import Path
from typing import Protocol

from image_batch.config import PoolSettings, TransformSettings
from image_batch.errors import FatalConfigurationError
from image_batch.orchestrator.aggregator import ResultAggregator
from image_batch.orchestrator.handlers.base import JobHandler, UnitRequest
from image_batch.orchestrator.models import (
    BatchResult,
    JobDescriptor,
    JobFailure,
    JobProgress,
    JobSuccess,
    Outcome,
)
from image_batch.orchestrator.retry_policy import RetryPolicy
from image_batch.orchestrator.unit import ExecutionUnit

logger = logging.getLogger(__name__)


class ProgressSink(Protocol):
    """Observer notified once per terminal outcome."""

    def on_job_finished(self, progress: JobProgress) -> None:
        """Receive a completion notification; must not influence scheduling."""


class EventKind(str, Enum):
    """Completion events the scheduler loop reacts to."""

    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    RETRY_DUE = "retry_due"


@dataclass(slots=True)
class PoolEvent:
    """One thing the loop must react to, with the outcome when a unit finished."""

    kind: EventKind
    job: JobDescriptor
    outcome: Outcome | None = None


@dataclass(slots=True)
class _PendingRetry:
    """A failed job holding its slot until the retry delay elapses."""

    due_at: float
    job: JobDescriptor


@dataclass(slots=True)
class _PoolState:
    """Mutable bookkeeping owned by the scheduler for one run."""

    backlog: list[JobDescriptor]
    cursor: int = 0
    running: list[ExecutionUnit] = field(default_factory=list)
    waiting: list[_PendingRetry] = field(default_factory=list)
    draining: list[ExecutionUnit] = field(default_factory=list)
    finished: int = 0
    attempts: int = 0
    peak_active: int = 0

    @property
    def active_count(self) -> int:
        # A job waiting out its retry delay keeps its slot.
        return len(self.running) + len(self.waiting)

    def has_backlog(self) -> bool:
        return self.cursor < len(self.backlog)

    def is_complete(self) -> bool:
        return not self.has_backlog() and self.active_count == 0


class PoolScheduler:
    """Admits backlog jobs into at most ``max_concurrency`` isolated units."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        pool: PoolSettings,
        retry_policy: RetryPolicy,
        handler: JobHandler,
        output_root: Path,
        transform: TransformSettings | None = None,
        progress: ProgressSink | None = None,
        context: BaseContext | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if pool.max_concurrency <= 0:
            raise FatalConfigurationError("max_concurrency must be > 0.")
        if pool.job_timeout_ms <= 0:
            raise FatalConfigurationError("job_timeout_ms must be > 0.")
        self.pool = pool
        self.retry_policy = retry_policy
        self.handler = handler
        self.output_root = output_root
        self.transform = transform or TransformSettings()
        self.progress = progress
        self.context = context or multiprocessing.get_context(pool.start_method)
        self._clock = clock
        self._sleep = sleep

    def run(self, jobs: Sequence[JobDescriptor]) -> BatchResult:
        """Run every job to a terminal outcome and return the batch result."""

        state = _PoolState(backlog=list(jobs))
        aggregator = ResultAggregator(clock=self._clock)
        aggregator.mark_started()
        logger.info(
            "Batch started: jobs=%d max_concurrency=%d timeout_ms=%d",
            len(state.backlog),
            self.pool.max_concurrency,
            self.pool.job_timeout_ms,
        )
        try:
            while not state.is_complete():
                self._admit(state)
                for event in self._next_events(state):
                    self._apply(state, event, aggregator)
            aggregator.mark_finished()
        finally:
            for unit in [*state.running, *state.draining]:
                unit.abort()
        summary = aggregator.summary()
        logger.info(
            "Batch finished: succeeded=%d failed=%d attempts=%d elapsed_ms=%d",
            summary.success_count,
            summary.failure_count,
            state.attempts,
            summary.total_elapsed_ms,
        )
        return BatchResult(
            results=list(aggregator.results),
            errors=list(aggregator.errors),
            summary=summary,
            attempts=state.attempts,
            peak_active=state.peak_active,
        )

    def _admit(self, state: _PoolState) -> None:
        while state.active_count < self.pool.max_concurrency and state.has_backlog():
            job = state.backlog[state.cursor]
            state.cursor += 1
            self._spawn(state, job)

    def _spawn(self, state: _PoolState, job: JobDescriptor) -> None:
        unit = ExecutionUnit(
            request=UnitRequest(job=job, output_root=self.output_root, transform=self.transform),
            handler=self.handler,
            context=self.context,
            timeout_ms=self.pool.job_timeout_ms,
            clock=self._clock,
        )
        unit.start()
        state.running.append(unit)
        state.attempts += 1
        state.peak_active = max(state.peak_active, len(state.running))

    def _next_events(self, state: _PoolState) -> list[PoolEvent]:
        """Block until at least one unit or timer produces an event."""

        failed_to_start = [unit for unit in state.running if unit.start_error is not None]
        if failed_to_start:
            return [
                event
                for unit in failed_to_start
                if (event := self._collect(state, unit)) is not None
            ]

        handle_owner: dict[object, ExecutionUnit] = {}
        for unit in [*state.running, *state.draining]:
            for handle in unit.handles():
                handle_owner[handle] = unit

        timeout = self._wait_timeout(state)
        if handle_owner:
            ready = wait(list(handle_owner), timeout=timeout)
        else:
            self._sleep(timeout if timeout is not None else 0)
            ready = []
        now = self._clock()

        events: list[PoolEvent] = []
        for unit in dict.fromkeys(handle_owner[handle] for handle in ready):
            if unit not in state.running:
                continue
            event = self._collect(state, unit)
            if event is not None:
                events.append(event)

        for unit in list(state.running):
            if not unit.expired(now):
                continue
            # A message already in the pipe wins over the timer.
            event = self._collect(state, unit) if unit.has_pending_input() else None
            if event is None:
                self._retire(state, unit)
                event = PoolEvent(EventKind.TIMED_OUT, unit.job, unit.expire())
            events.append(event)

        for pending in list(state.waiting):
            if now >= pending.due_at:
                state.waiting.remove(pending)
                events.append(PoolEvent(EventKind.RETRY_DUE, pending.job))

        state.draining = [unit for unit in state.draining if not unit.reap()]
        return events

    def _collect(self, state: _PoolState, unit: ExecutionUnit) -> PoolEvent | None:
        outcome = unit.collect()
        if outcome is None:
            return None
        self._retire(state, unit)
        return PoolEvent(EventKind.COMPLETED, unit.job, outcome)

    def _retire(self, state: _PoolState, unit: ExecutionUnit) -> None:
        state.running.remove(unit)
        if unit.process is not None:
            state.draining.append(unit)

    def _wait_timeout(self, state: _PoolState) -> float | None:
        wakeups = [unit.deadline for unit in state.running]
        wakeups.extend(pending.due_at for pending in state.waiting)
        wakeups.extend(
            deadline for unit in state.draining if (deadline := unit.kill_deadline()) is not None
        )
        if not wakeups:
            return None
        return max(0.0, min(wakeups) - self._clock())

    def _apply(self, state: _PoolState, event: PoolEvent, aggregator: ResultAggregator) -> None:
        if event.kind == EventKind.RETRY_DUE:
            logger.debug(
                "Retry delay elapsed for %s (attempt %d)",
                event.job.name,
                event.job.attempt,
            )
            self._spawn(state, event.job)
            return

        outcome = event.outcome
        if isinstance(outcome, JobSuccess):
            self._finish(state, outcome, aggregator)
            return
        if not isinstance(outcome, JobFailure):
            raise RuntimeError(f"Event {event.kind.value} for {event.job.name} has no outcome.")

        decision = self.retry_policy.decide(
            job=event.job,
            reason=outcome.reason,
            attempts_so_far=event.job.attempt,
        )
        if decision.retry:
            retry_job = event.job.next_attempt()
            logger.info(
                "Retrying %s (attempt %d/%d) in %d ms: %s",
                event.job.name,
                retry_job.attempt,
                self.retry_policy.max_attempts,
                decision.delay_ms,
                outcome.reason.describe(),
            )
            state.waiting.append(
                _PendingRetry(due_at=self._clock() + decision.delay_ms / 1000, job=retry_job),
            )
            return
        self._finish(state, outcome, aggregator)

    def _finish(self, state: _PoolState, outcome: Outcome, aggregator: ResultAggregator) -> None:
        aggregator.record(outcome)
        state.finished += 1
        if self.progress is None:
            return
        self.progress.on_job_finished(
            JobProgress(
                index=state.finished,
                total=len(state.backlog),
                name=outcome.name,
                success=outcome.success,
                elapsed_ms=outcome.elapsed_ms,
                reason=outcome.reason if isinstance(outcome, JobFailure) else None,
            ),
        )
