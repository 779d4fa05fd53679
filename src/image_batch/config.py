"""Runtime configuration for batch image processing."""

from __future__ import annotations

import multiprocessing
import os
from dataclasses import dataclass, field
from pathlib import Path

from image_batch.errors import FatalConfigurationError

DEFAULT_SUPPORTED_FORMATS: tuple[str, ...] = ("jpg", "jpeg", "png", "webp", "gif", "bmp", "tiff")
FIT_MODES: tuple[str, ...] = ("cover", "contain", "fill")


def default_max_concurrency() -> int:
    """Number of parallel execution units available on this host."""

    return os.cpu_count() or 1


@dataclass(slots=True)
class DirectorySettings:
    """Input and output locations."""

    input: Path = Path("input-images")
    output: Path = Path("multi-threaded-output")


@dataclass(slots=True)
class PoolSettings:
    """Execution pool limits."""

    max_concurrency: int = field(default_factory=default_max_concurrency)
    job_timeout_ms: int = 60_000
    start_method: str | None = None


@dataclass(slots=True)
class RetrySettings:
    """Constant-delay retry settings applied to every failed job."""

    enabled: bool = True
    max_attempts: int = 2
    delay_ms: int = 1_000


@dataclass(slots=True)
class TransformSettings:
    """Image transformation settings shared read-only with execution units."""

    supported_formats: tuple[str, ...] = DEFAULT_SUPPORTED_FORMATS
    quality: int = 90
    fit_mode: str = "cover"
    enabled: tuple[str, ...] | None = None
    max_threads: int = 4


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    directories: DirectorySettings = field(default_factory=DirectorySettings)
    pool: PoolSettings = field(default_factory=PoolSettings)
    retry: RetrySettings = field(default_factory=RetrySettings)
    transform: TransformSettings = field(default_factory=TransformSettings)

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment with defaults matching the bundled config."""

        max_workers = _env_int("IMAGE_BATCH_MAX_WORKERS", 0)
        return cls(
            directories=DirectorySettings(
                input=Path(os.getenv("IMAGE_BATCH_INPUT_DIR", "input-images")),
                output=Path(os.getenv("IMAGE_BATCH_OUTPUT_DIR", "multi-threaded-output")),
            ),
            pool=PoolSettings(
                # 0 means "use every core", like an unset value.
                max_concurrency=max_workers or default_max_concurrency(),
                job_timeout_ms=_env_int("IMAGE_BATCH_JOB_TIMEOUT_MS", 60_000),
                start_method=os.getenv("IMAGE_BATCH_START_METHOD", "").strip() or None,
            ),
            retry=RetrySettings(
                enabled=_env_bool("IMAGE_BATCH_RETRY_ENABLED", default=True),
                max_attempts=_env_int("IMAGE_BATCH_RETRY_MAX_ATTEMPTS", 2),
                delay_ms=_env_int("IMAGE_BATCH_RETRY_DELAY_MS", 1_000),
            ),
            transform=TransformSettings(
                supported_formats=(
                    _env_csv("IMAGE_BATCH_SUPPORTED_FORMATS") or DEFAULT_SUPPORTED_FORMATS
                ),
                quality=_env_int("IMAGE_BATCH_QUALITY", 90),
                fit_mode=os.getenv("IMAGE_BATCH_FIT_MODE", "cover").strip().lower(),
                enabled=_env_csv("IMAGE_BATCH_TRANSFORMATIONS") or None,
                max_threads=_env_int("IMAGE_BATCH_TRANSFORM_THREADS", 4),
            ),
        )

    def validate(self) -> None:
        """Raise FatalConfigurationError if a batch cannot start with these settings."""

        if self.pool.max_concurrency <= 0:
            raise FatalConfigurationError("max_concurrency must be > 0.")
        if self.pool.job_timeout_ms <= 0:
            raise FatalConfigurationError("job_timeout_ms must be > 0.")
        if (
            self.pool.start_method is not None
            and self.pool.start_method not in multiprocessing.get_all_start_methods()
        ):
            raise FatalConfigurationError(
                f"Unsupported multiprocessing start method: {self.pool.start_method!r}",
            )
        if self.retry.max_attempts < 1:
            raise FatalConfigurationError("retry.max_attempts must be >= 1.")
        if self.retry.delay_ms < 0:
            raise FatalConfigurationError("retry.delay_ms must be >= 0.")
        if not 1 <= self.transform.quality <= 100:
            raise FatalConfigurationError("quality must be between 1 and 100.")
        if self.transform.fit_mode not in FIT_MODES:
            raise FatalConfigurationError(
                f"Invalid fit mode: {self.transform.fit_mode!r}. Expected one of {FIT_MODES}.",
            )
        if self.transform.max_threads <= 0:
            raise FatalConfigurationError("transform.max_threads must be > 0.")
        if not self.transform.supported_formats:
            raise FatalConfigurationError("At least one supported image format is required.")
        if self.transform.enabled is not None:
            from image_batch.transform.catalog import TRANSFORMATIONS

            unknown = sorted(set(self.transform.enabled) - set(TRANSFORMATIONS))
            if unknown:
                raise FatalConfigurationError(
                    f"Unknown transformation(s): {', '.join(unknown)}",
                )


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError as error:
        raise FatalConfigurationError(f"Invalid integer value for {name}: {raw!r}") from error


def _env_csv(name: str) -> tuple[str, ...]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return ()
    return tuple(part.strip().lower() for part in raw.split(",") if part.strip())


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise FatalConfigurationError(f"Invalid boolean value for {name}: {value!r}")
