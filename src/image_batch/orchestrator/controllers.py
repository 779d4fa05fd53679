"""Controllers for batch CLI commands."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from pathlib import Path

from image_batch.config import Settings
from image_batch.orchestrator.handlers import BenchmarkHandler, JobHandler
from image_batch.orchestrator.models import BatchResult
from image_batch.orchestrator.report import (
    LineProgressSink,
    render_header_lines,
    render_report_lines,
)
from image_batch.orchestrator.retry_policy import RetryPolicy
from image_batch.orchestrator.scheduler import PoolScheduler
from image_batch.scanning import build_jobs, scan_input_dir
from image_batch.transform import TRANSFORMATIONS, PillowTransformer, enabled_transformations

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class BatchRunCommand:
    """CLI input for one batch run; ``None`` keeps the environment value."""

    input_dir: Path | None = None
    output_dir: Path | None = None
    workers: int | None = None
    timeout_ms: int | None = None
    retry_enabled: bool | None = None
    max_attempts: int | None = None
    retry_delay_ms: int | None = None
    quality: int | None = None
    fit_mode: str | None = None
    transformations: tuple[str, ...] = ()
    use_benchmark_handler: bool = False


@dataclass(slots=True)
class BatchRunOutcome:
    """What the CLI needs after a run."""

    result: BatchResult | None
    total_jobs: int


class BatchCliController:
    """Wires settings, backlog scan, scheduler and console report."""

    def run_batch(
        self,
        command: BatchRunCommand,
        *,
        emit: Callable[[str], None],
    ) -> BatchRunOutcome:
        settings = resolve_settings(command)
        settings.validate()

        paths = scan_input_dir(settings.directories.input, settings.transform.supported_formats)
        if not paths:
            emit(f"No image files found in {settings.directories.input}")
            emit(f"Supported formats: {', '.join(settings.transform.supported_formats)}")
            return BatchRunOutcome(result=None, total_jobs=0)

        jobs = build_jobs(paths)
        for line in render_header_lines(
            input_dir=settings.directories.input,
            output_dir=settings.directories.output,
            total=len(jobs),
            max_concurrency=settings.pool.max_concurrency,
            transformations=[spec.name for spec in enabled_transformations(settings.transform)],
            quality=settings.transform.quality,
        ):
            emit(line)

        handler: JobHandler = (
            BenchmarkHandler() if command.use_benchmark_handler else PillowTransformer()
        )
        scheduler = PoolScheduler(
            pool=settings.pool,
            retry_policy=RetryPolicy.from_settings(settings.retry),
            handler=handler,
            output_root=settings.directories.output,
            transform=settings.transform,
            progress=LineProgressSink(emit),
        )
        result = scheduler.run(jobs)
        for line in render_report_lines(result=result, output_dir=settings.directories.output):
            emit(line)
        return BatchRunOutcome(result=result, total_jobs=len(jobs))

    def list_transformations(self, command: BatchRunCommand) -> list[str]:
        settings = resolve_settings(command)
        settings.validate()
        enabled = {spec.name for spec in enabled_transformations(settings.transform)}
        lines = []
        for name, spec in TRANSFORMATIONS.items():
            params = " ".join(f"{key}={value}" for key, value in spec.params.items())
            marker = "on " if name in enabled else "off"
            lines.append(f"[{marker}] {name} -> {spec.filename} {params}".rstrip())
        return lines


def resolve_settings(command: BatchRunCommand) -> Settings:
    """Apply CLI overrides on top of environment settings."""

    settings = Settings.from_env()
    directories = replace(
        settings.directories,
        input=command.input_dir or settings.directories.input,
        output=command.output_dir or settings.directories.output,
    )
    pool = replace(
        settings.pool,
        max_concurrency=(
            command.workers if command.workers is not None else settings.pool.max_concurrency
        ),
        job_timeout_ms=(
            command.timeout_ms if command.timeout_ms is not None else settings.pool.job_timeout_ms
        ),
    )
    retry = replace(
        settings.retry,
        enabled=(
            command.retry_enabled if command.retry_enabled is not None else settings.retry.enabled
        ),
        max_attempts=(
            command.max_attempts
            if command.max_attempts is not None
            else settings.retry.max_attempts
        ),
        delay_ms=(
            command.retry_delay_ms
            if command.retry_delay_ms is not None
            else settings.retry.delay_ms
        ),
    )
    transform = replace(
        settings.transform,
        quality=command.quality if command.quality is not None else settings.transform.quality,
        fit_mode=(command.fit_mode or settings.transform.fit_mode).lower(),
        enabled=(
            tuple(name.lower() for name in command.transformations)
            if command.transformations
            else settings.transform.enabled
        ),
    )
    resolved = replace(
        settings,
        directories=directories,
        pool=pool,
        retry=retry,
        transform=transform,
    )
    logger.debug("Resolved settings: %s", resolved)
    return resolved
