"""Console rendering for batch progress and the final report."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

from image_batch.orchestrator.models import BatchResult, JobProgress

_RULE = "=" * 60


class LineProgressSink:
    """Progress sink that renders one line per terminal outcome."""

    def __init__(self, emit: Callable[[str], None]) -> None:
        self._emit = emit

    def on_job_finished(self, progress: JobProgress) -> None:
        self._emit(render_progress_line(progress))


def render_progress_line(progress: JobProgress) -> str:
    counter = f"[{progress.index}/{progress.total}]"
    if progress.success:
        return f"OK   {counter} {progress.name} ({progress.elapsed_ms}ms)"
    reason = progress.reason.describe() if progress.reason is not None else "failed"
    return f"FAIL {counter} {progress.name} - {reason}"


def render_header_lines(  # noqa: PLR0913
    *,
    input_dir: Path,
    output_dir: Path,
    total: int,
    max_concurrency: int,
    transformations: list[str],
    quality: int,
) -> list[str]:
    return [
        _RULE,
        "BATCH IMAGE PROCESSING",
        _RULE,
        f"Input directory: {input_dir}",
        f"Output directory: {output_dir}",
        f"Total images: {total}",
        f"Max workers: {max_concurrency}",
        f"Transformations: {', '.join(transformations) or 'none'}",
        f"Quality: {quality}%",
        _RULE,
    ]


def render_report_lines(*, result: BatchResult, output_dir: Path) -> list[str]:
    """Render the final summary, failed jobs and output location."""

    summary = result.summary
    lines = [
        _RULE,
        "PROCESSING COMPLETE",
        _RULE,
        f"Successful: {summary.success_count}",
        f"Failed: {summary.failure_count}",
        (
            f"Total time: {summary.total_elapsed_ms}ms "
            f"({summary.total_elapsed_ms / 1000:.2f}s)"
        ),
        f"Average time per image: {summary.average_per_job_ms:.0f}ms",
    ]
    if summary.average_successful_processing_ms is not None:
        lines.append(
            f"Average processing time: {summary.average_successful_processing_ms:.0f}ms",
        )
    lines.append(f"Attempts: {result.attempts} (peak concurrent units: {result.peak_active})")
    lines.append(_RULE)

    if result.errors:
        lines.append("ERRORS:")
        for entry in result.errors:
            lines.append(
                f"  - {entry.name}: {entry.reason.describe()} "
                f"(attempts={entry.attempts}, reason={entry.reason.kind.value})",
            )

    lines.append(f"Output saved to: {output_dir}")
    return lines
