from __future__ import annotations

import allure
import pytest

from image_batch.orchestrator.aggregator import ResultAggregator
from image_batch.orchestrator.models import FailureKind, FailureReason, JobFailure, JobSuccess

pytestmark = [
    allure.epic("Orchestrator"),
    allure.feature("Result Aggregation"),
]


class _FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def test_summary_of_mixed_outcomes() -> None:
    clock = _FakeClock()
    aggregator = ResultAggregator(clock=clock)
    aggregator.mark_started()
    aggregator.record(JobSuccess(name="a.jpg", elapsed_ms=100, attempt=1))
    aggregator.record(
        JobFailure(
            name="b.jpg",
            reason=FailureReason.execution_error("boom"),
            elapsed_ms=5,
            attempt=2,
        ),
    )
    aggregator.record(JobSuccess(name="c.jpg", elapsed_ms=300, attempt=1))
    clock.now += 1.5
    aggregator.mark_finished()

    summary = aggregator.summary()

    assert [result.name for result in aggregator.results] == ["a.jpg", "c.jpg"]
    assert len(aggregator.errors) == 1
    error = aggregator.errors[0]
    assert error.name == "b.jpg"
    assert error.attempts == 2
    assert error.reason.kind == FailureKind.EXECUTION_ERROR
    assert summary.success_count == 2
    assert summary.failure_count == 1
    assert summary.total_elapsed_ms == 1_500
    assert summary.average_per_job_ms == pytest.approx(500.0)
    assert summary.average_successful_processing_ms == pytest.approx(200.0)


def test_summary_without_jobs() -> None:
    clock = _FakeClock()
    aggregator = ResultAggregator(clock=clock)
    aggregator.mark_started()
    aggregator.mark_finished()

    summary = aggregator.summary()

    assert summary.success_count == 0
    assert summary.failure_count == 0
    assert summary.total_elapsed_ms == 0
    assert summary.average_per_job_ms == 0.0
    assert summary.average_successful_processing_ms is None


def test_average_processing_absent_when_everything_failed() -> None:
    aggregator = ResultAggregator(clock=_FakeClock())
    aggregator.mark_started()
    aggregator.record(
        JobFailure(name="a.jpg", reason=FailureReason.timeout(), elapsed_ms=60_000, attempt=1),
    )
    aggregator.mark_finished()

    assert aggregator.summary().average_successful_processing_ms is None


def test_record_rejects_unknown_outcome() -> None:
    aggregator = ResultAggregator()

    with pytest.raises(TypeError):
        aggregator.record("done")  # type: ignore[arg-type]
