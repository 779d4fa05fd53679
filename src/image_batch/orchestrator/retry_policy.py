"""Constant-delay retry policy for failed job attempts."""

from __future__ import annotations

from dataclasses import dataclass

from image_batch.config import RetrySettings
from image_batch.orchestrator.models import FailureReason, JobDescriptor


@dataclass(slots=True, frozen=True)
class RetryDecision:
    """Decision returned by the retry policy."""

    retry: bool
    delay_ms: int
    reason: str


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    """Retry every failure kind up to max_attempts with a fixed delay."""

    enabled: bool = True
    max_attempts: int = 2
    delay_ms: int = 1_000

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> RetryPolicy:
        return cls(
            enabled=settings.enabled,
            max_attempts=settings.max_attempts,
            delay_ms=settings.delay_ms,
        )

    def decide(
        self,
        *,
        job: JobDescriptor,
        reason: FailureReason,
        attempts_so_far: int,
    ) -> RetryDecision:
        """Return retry-after-delay or give-up for the failed attempt of ``job``."""

        if not self.enabled:
            return RetryDecision(retry=False, delay_ms=0, reason="Retries are disabled.")
        if attempts_so_far >= self.max_attempts:
            return RetryDecision(
                retry=False,
                delay_ms=0,
                reason=f"{job.name} exhausted {self.max_attempts} attempt(s): {reason.describe()}",
            )
        return RetryDecision(
            retry=True,
            delay_ms=self.delay_ms,
            reason=f"Attempt {attempts_so_far + 1}/{self.max_attempts} allowed.",
        )
