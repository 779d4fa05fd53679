from __future__ import annotations

import multiprocessing
import time
from multiprocessing.connection import wait
from pathlib import Path

import allure

from image_batch.config import TransformSettings
from image_batch.orchestrator.handlers import BenchmarkHandler, UnitRequest
from image_batch.orchestrator.models import (
    FailureKind,
    JobDescriptor,
    JobFailure,
    JobSuccess,
    Outcome,
)
from image_batch.orchestrator.unit import ExecutionUnit

pytestmark = [
    allure.epic("Orchestrator"),
    allure.feature("Execution Units"),
]


def _unit(tmp_path: Path, *, case: str, timeout_ms: int = 10_000, **handler) -> ExecutionUnit:
    job = JobDescriptor(source_path=tmp_path / "a.jpg", name="a.jpg", output_key="a")
    return ExecutionUnit(
        request=UnitRequest(job=job, output_root=tmp_path / "out", transform=TransformSettings()),
        handler=BenchmarkHandler(cases={"a.jpg": case}, **handler),
        context=multiprocessing.get_context(),
        timeout_ms=timeout_ms,
    )


def _outcome(unit: ExecutionUnit) -> Outcome:
    while True:
        assert wait(unit.handles(), timeout=10)
        outcome = unit.collect()
        if outcome is not None:
            return outcome


def _reap(unit: ExecutionUnit) -> None:
    while not unit.reap():
        wait(unit.handles(), timeout=1)
    assert unit.process is None


def test_successful_unit_reports_metadata(tmp_path) -> None:
    unit = _unit(tmp_path, case="success")
    unit.start()

    outcome = _outcome(unit)

    assert isinstance(outcome, JobSuccess)
    assert outcome.name == "a.jpg"
    assert outcome.attempt == 1
    assert outcome.metadata["benchmark_case"] == "success"
    assert unit.reader is None
    _reap(unit)


def test_raising_handler_reports_execution_error(tmp_path) -> None:
    unit = _unit(tmp_path, case="fail")
    unit.start()

    outcome = _outcome(unit)

    assert isinstance(outcome, JobFailure)
    assert outcome.reason.kind == FailureKind.EXECUTION_ERROR
    assert outcome.reason.message == "boom"
    _reap(unit)


def test_message_decides_outcome_before_process_exits(tmp_path) -> None:
    unit = _unit(tmp_path, case="linger", slow_ms=5_000)
    unit.start()

    assert wait([unit.reader], timeout=10)
    started = time.monotonic()
    outcome = unit.collect()

    assert time.monotonic() - started < 1.0
    assert isinstance(outcome, JobSuccess)
    assert unit.reader is None
    _reap(unit)


def test_crash_reports_exit_code(tmp_path) -> None:
    unit = _unit(tmp_path, case="crash")
    unit.start()

    outcome = _outcome(unit)

    assert isinstance(outcome, JobFailure)
    assert outcome.reason.kind == FailureKind.ABNORMAL_EXIT
    assert outcome.reason.exit_code == 3
    assert unit.process is None


def test_expire_stops_hanging_unit(tmp_path) -> None:
    unit = _unit(tmp_path, case="hang", timeout_ms=100)
    unit.start()

    assert not wait(unit.handles(), timeout=0.3)
    assert unit.expired(unit.deadline)
    assert not unit.has_pending_input()
    outcome = unit.expire()

    assert isinstance(outcome, JobFailure)
    assert outcome.reason.kind == FailureKind.TIMEOUT
    assert unit.reader is None
    assert unit.kill_deadline() is not None
    _reap(unit)


def test_start_failure_becomes_execution_error(tmp_path) -> None:
    class _UnstartableProcess:
        def start(self) -> None:
            raise OSError("no more processes")

    class _BrokenContext:
        def Pipe(self, duplex: bool):  # noqa: N802
            return multiprocessing.Pipe(duplex=duplex)

        def Process(self, **kwargs):  # noqa: N802
            return _UnstartableProcess()

    unit = _unit(tmp_path, case="success")
    unit.context = _BrokenContext()  # type: ignore[assignment]

    unit.start()
    outcome = unit.collect()

    assert unit.start_error is not None
    assert not unit.expired(unit.deadline)
    assert isinstance(outcome, JobFailure)
    assert outcome.reason.kind == FailureKind.EXECUTION_ERROR
    assert "no more processes" in (outcome.reason.message or "")
