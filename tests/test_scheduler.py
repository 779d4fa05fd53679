from __future__ import annotations

from pathlib import Path

import allure
import pytest

from image_batch.config import PoolSettings
from image_batch.errors import FatalConfigurationError
from image_batch.orchestrator.handlers import BenchmarkHandler
from image_batch.orchestrator.models import FailureKind, JobDescriptor, JobProgress
from image_batch.orchestrator.retry_policy import RetryPolicy
from image_batch.orchestrator.scheduler import PoolScheduler

pytestmark = [
    allure.epic("Orchestrator"),
    allure.feature("Bounded Pool Scheduling"),
]


def _jobs(*names: str) -> list[JobDescriptor]:
    return [
        JobDescriptor(source_path=Path("input") / name, name=name, output_key=name.split(".")[0])
        for name in names
    ]


def _max_overlap(traces: list[dict]) -> int:
    intervals = [(trace["started_at"], trace["finished_at"]) for trace in traces]
    peak = 0
    for started_at, _ in intervals:
        overlapping = sum(1 for start, end in intervals if start <= started_at < end)
        peak = max(peak, overlapping)
    return peak


class _RecordingSink:
    def __init__(self) -> None:
        self.events: list[JobProgress] = []

    def on_job_finished(self, progress: JobProgress) -> None:
        self.events.append(progress)


def test_never_exceeds_max_concurrency(make_scheduler, read_traces) -> None:
    scheduler = make_scheduler(max_concurrency=2, sleep_ms=300)

    result = scheduler.run(_jobs("a.jpg", "b.jpg", "c.jpg", "d.jpg", "e.jpg"))

    traces = read_traces()
    assert len(traces) == 5
    assert _max_overlap(traces) <= 2
    assert result.peak_active == 2
    assert result.summary.success_count == 5
    assert result.summary.failure_count == 0
    assert result.errors == []


def test_each_job_recorded_exactly_once(make_scheduler) -> None:
    sink = _RecordingSink()
    scheduler = make_scheduler(
        max_concurrency=3,
        cases={"b.jpg": "fail", "d.jpg": "fail_once"},
        max_attempts=2,
        progress=sink,
    )

    result = scheduler.run(_jobs("a.jpg", "b.jpg", "c.jpg", "d.jpg"))

    recorded = [r.name for r in result.results] + [e.name for e in result.errors]
    assert sorted(recorded) == ["a.jpg", "b.jpg", "c.jpg", "d.jpg"]
    assert [event.index for event in sink.events] == [1, 2, 3, 4]
    assert {event.total for event in sink.events} == {4}
    assert sorted(event.name for event in sink.events) == sorted(recorded)
    assert result.attempts == 6


def test_persistent_failure_exhausts_attempts(make_scheduler, read_traces) -> None:
    scheduler = make_scheduler(
        max_concurrency=1,
        cases={"a.jpg": "fail"},
        max_attempts=3,
        delay_ms=5,
    )

    result = scheduler.run(_jobs("a.jpg"))

    assert result.results == []
    assert len(result.errors) == 1
    error = result.errors[0]
    assert error.name == "a.jpg"
    assert error.attempts == 3
    assert error.reason.kind == FailureKind.EXECUTION_ERROR
    assert error.reason.message == "boom"
    assert sorted(trace["attempt"] for trace in read_traces()) == [1, 2, 3]
    assert result.attempts == 3


def test_transient_failure_recovers_on_retry(make_scheduler) -> None:
    scheduler = make_scheduler(max_concurrency=1, cases={"a.jpg": "fail_once"}, max_attempts=2)

    result = scheduler.run(_jobs("a.jpg"))

    assert result.errors == []
    assert len(result.results) == 1
    assert result.results[0].attempt == 2
    assert result.results[0].metadata == {"benchmark_case": "fail_once", "attempt": 2}


def test_hanging_job_times_out_without_blocking_others(make_scheduler) -> None:
    scheduler = make_scheduler(
        max_concurrency=2,
        cases={"stuck.jpg": "hang"},
        timeout_ms=2_000,
        retry_enabled=False,
    )

    result = scheduler.run(_jobs("stuck.jpg", "a.jpg", "b.jpg"))

    assert sorted(r.name for r in result.results) == ["a.jpg", "b.jpg"]
    assert len(result.errors) == 1
    assert result.errors[0].name == "stuck.jpg"
    assert result.errors[0].reason.kind == FailureKind.TIMEOUT
    assert result.errors[0].reason.describe() == "timed out"


def test_late_completion_after_timeout_is_ignored(make_scheduler) -> None:
    scheduler = make_scheduler(
        max_concurrency=1,
        cases={"slow.jpg": "slow"},
        slow_ms=1_500,
        timeout_ms=300,
        retry_enabled=False,
    )

    result = scheduler.run(_jobs("slow.jpg"))

    assert result.results == []
    assert [error.reason.kind for error in result.errors] == [FailureKind.TIMEOUT]


def test_crash_is_reported_as_abnormal_exit(make_scheduler) -> None:
    scheduler = make_scheduler(max_concurrency=1, cases={"a.jpg": "crash"}, retry_enabled=False)

    result = scheduler.run(_jobs("a.jpg"))

    assert len(result.errors) == 1
    reason = result.errors[0].reason
    assert reason.kind == FailureKind.ABNORMAL_EXIT
    assert reason.exit_code == 3


def test_retry_wait_keeps_slot(make_scheduler, read_traces) -> None:
    scheduler = make_scheduler(
        max_concurrency=1,
        cases={"a.jpg": "fail_once"},
        max_attempts=2,
        delay_ms=300,
    )

    result = scheduler.run(_jobs("a.jpg", "b.jpg"))

    traces = {(t["name"], t["attempt"]): t for t in read_traces()}
    assert result.summary.success_count == 2
    assert traces[("b.jpg", 1)]["started_at"] >= traces[("a.jpg", 2)]["finished_at"]


def test_empty_backlog(make_scheduler) -> None:
    result = make_scheduler().run([])

    assert result.results == []
    assert result.errors == []
    assert result.attempts == 0
    assert result.summary.success_count == 0
    assert result.summary.failure_count == 0
    assert result.summary.average_per_job_ms == 0.0
    assert result.summary.average_successful_processing_ms is None


def test_summary_counts_match_outcomes(make_scheduler) -> None:
    scheduler = make_scheduler(max_concurrency=2, cases={"c.jpg": "fail"}, retry_enabled=False)

    result = scheduler.run(_jobs("a.jpg", "b.jpg", "c.jpg"))
    summary = result.summary

    assert summary.success_count == len(result.results) == 2
    assert summary.failure_count == len(result.errors) == 1
    assert summary.total_elapsed_ms > 0
    assert summary.average_per_job_ms == pytest.approx(summary.total_elapsed_ms / 3)
    assert summary.average_successful_processing_ms is not None


def test_two_slots_five_quick_jobs(make_scheduler, read_traces) -> None:
    scheduler = make_scheduler(max_concurrency=2, sleep_ms=10, retry_enabled=False)

    result = scheduler.run(_jobs("a.jpg", "b.jpg", "c.jpg", "d.jpg", "e.jpg"))

    assert len(result.results) == 5
    assert result.errors == []
    assert result.peak_active <= 2
    assert _max_overlap(read_traces()) <= 2


def test_unresponsive_job_times_out_after_short_deadline(make_scheduler) -> None:
    scheduler = make_scheduler(
        max_concurrency=1,
        cases={"stuck.jpg": "hang"},
        timeout_ms=50,
        retry_enabled=False,
    )

    result = scheduler.run(_jobs("stuck.jpg"))

    assert result.results == []
    assert [(e.name, e.reason.kind) for e in result.errors] == [("stuck.jpg", FailureKind.TIMEOUT)]
    assert result.summary.total_elapsed_ms >= 50


def test_timeouts_and_crashes_are_retried(make_scheduler, read_traces) -> None:
    scheduler = make_scheduler(
        max_concurrency=2,
        cases={"h.jpg": "hang", "c.jpg": "crash"},
        timeout_ms=1_000,
        max_attempts=2,
        delay_ms=5,
    )

    result = scheduler.run(_jobs("h.jpg", "c.jpg"))

    assert result.results == []
    assert result.attempts == 4
    assert sorted((e.name, e.reason.kind, e.attempts) for e in result.errors) == [
        ("c.jpg", FailureKind.ABNORMAL_EXIT, 2),
        ("h.jpg", FailureKind.TIMEOUT, 2),
    ]
    attempts_by_job = sorted((trace["name"], trace["attempt"]) for trace in read_traces())
    assert attempts_by_job == [("c.jpg", 1), ("c.jpg", 2), ("h.jpg", 1), ("h.jpg", 2)]


def test_lingering_process_does_not_delay_other_units(make_scheduler) -> None:
    scheduler = make_scheduler(
        max_concurrency=2,
        cases={"linger.jpg": "linger"},
        sleep_ms=200,
        slow_ms=1_500,
        timeout_ms=1_000,
        retry_enabled=False,
    )

    result = scheduler.run(_jobs("linger.jpg", "fast.jpg"))

    assert sorted(r.name for r in result.results) == ["fast.jpg", "linger.jpg"]
    assert result.errors == []
    assert result.summary.total_elapsed_ms < 1_500


@pytest.mark.parametrize(
    "pool",
    [
        PoolSettings(max_concurrency=0, job_timeout_ms=1_000),
        PoolSettings(max_concurrency=2, job_timeout_ms=0),
    ],
)
def test_rejects_unusable_pool_settings(pool: PoolSettings, tmp_path) -> None:
    with pytest.raises(FatalConfigurationError):
        PoolScheduler(
            pool=pool,
            retry_policy=RetryPolicy(),
            handler=BenchmarkHandler(),
            output_root=tmp_path,
        )
