"""Handler interface for execution unit work."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from image_batch.config import TransformSettings
from image_batch.orchestrator.models import JobDescriptor


@dataclass(slots=True, frozen=True)
class UnitRequest:
    """Read-only inputs passed to a unit when it is spawned."""

    job: JobDescriptor
    output_root: Path
    transform: TransformSettings

    @property
    def output_dir(self) -> Path:
        return self.output_root / self.job.output_key


@dataclass(slots=True, frozen=True)
class UnitMessage:
    """The single message a unit sends back before exiting."""

    ok: bool
    name: str
    elapsed_ms: int
    metadata: dict[str, Any] = field(default_factory=dict)
    error: str | None = None


class JobHandler(Protocol):
    """Protocol implemented by picklable job handlers."""

    def run(self, request: UnitRequest) -> dict[str, Any]:
        """Perform the job and return success metadata; raise on failure."""
