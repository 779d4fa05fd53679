"""Domain models for batch jobs and their outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any


class FailureKind(str, Enum):
    """Why a single execution attempt failed."""

    TIMEOUT = "timeout"
    EXECUTION_ERROR = "execution_error"
    ABNORMAL_EXIT = "abnormal_exit"


@dataclass(slots=True, frozen=True)
class FailureReason:
    """Classified failure of one attempt."""

    kind: FailureKind
    message: str | None = None
    exit_code: int | None = None

    @classmethod
    def timeout(cls) -> FailureReason:
        return cls(kind=FailureKind.TIMEOUT)

    @classmethod
    def execution_error(cls, message: str) -> FailureReason:
        return cls(kind=FailureKind.EXECUTION_ERROR, message=message)

    @classmethod
    def abnormal_exit(cls, exit_code: int | None) -> FailureReason:
        return cls(kind=FailureKind.ABNORMAL_EXIT, exit_code=exit_code)

    def describe(self) -> str:
        """Human-readable summary for reports and logs."""

        if self.kind == FailureKind.TIMEOUT:
            return "timed out"
        if self.kind == FailureKind.ABNORMAL_EXIT:
            return f"worker stopped with exit code {self.exit_code}"
        return self.message or "execution error"


@dataclass(slots=True, frozen=True)
class JobDescriptor:
    """One source file and the full set of transformations to apply to it."""

    source_path: Path
    name: str
    output_key: str
    attempt: int = 1

    def next_attempt(self) -> JobDescriptor:
        return replace(self, attempt=self.attempt + 1)


@dataclass(slots=True, frozen=True)
class JobSuccess:
    """Successful attempt reported by an execution unit."""

    name: str
    elapsed_ms: int
    attempt: int
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return True


@dataclass(slots=True, frozen=True)
class JobFailure:
    """Failed attempt, reported by a unit or synthesized by the scheduler."""

    name: str
    reason: FailureReason
    elapsed_ms: int
    attempt: int

    @property
    def success(self) -> bool:
        return False


Outcome = JobSuccess | JobFailure


@dataclass(slots=True, frozen=True)
class ErrorEntry:
    """Terminal failure as listed in the batch report."""

    name: str
    reason: FailureReason
    attempts: int


@dataclass(slots=True, frozen=True)
class BatchSummary:
    """Derived batch statistics."""

    success_count: int
    failure_count: int
    total_elapsed_ms: int
    average_per_job_ms: float
    average_successful_processing_ms: float | None


@dataclass(slots=True)
class BatchResult:
    """Everything a finished run produced, in observation order."""

    results: list[JobSuccess]
    errors: list[ErrorEntry]
    summary: BatchSummary
    attempts: int = 0
    peak_active: int = 0


@dataclass(slots=True, frozen=True)
class JobProgress:
    """Per-job completion notification for progress sinks."""

    index: int
    total: int
    name: str
    success: bool
    elapsed_ms: int
    reason: FailureReason | None = None
