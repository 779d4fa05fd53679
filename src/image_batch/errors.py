"""Pre-run errors that abort a batch before any job is admitted."""

from __future__ import annotations


class FatalConfigurationError(ValueError):
    """Settings cannot be used to start a batch run."""


class InputSourceError(RuntimeError):
    """Input directory is missing or unreadable."""

    def __init__(self, message: str, *, path: str) -> None:
        super().__init__(message)
        self.path = path


class TransformationError(RuntimeError):
    """One or more transformations of a single job failed."""

    def __init__(self, message: str, *, failed: tuple[str, ...]) -> None:
        super().__init__(message)
        self.failed = failed
