"""Job handlers executed inside isolated execution units."""

from image_batch.orchestrator.handlers.base import JobHandler, UnitMessage, UnitRequest
from image_batch.orchestrator.handlers.benchmark import BenchmarkHandler

__all__ = [
    "BenchmarkHandler",
    "JobHandler",
    "UnitMessage",
    "UnitRequest",
]
