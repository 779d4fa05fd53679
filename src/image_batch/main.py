"""CLI entrypoint for image-batch."""

from pathlib import Path

import rich_click as click

from image_batch import __version__
from image_batch.config import FIT_MODES
from image_batch.errors import FatalConfigurationError, InputSourceError
from image_batch.logging_config import configure_logging
from image_batch.orchestrator.controllers import BatchCliController, BatchRunCommand

click.rich_click.USE_MARKDOWN = True
BATCH_CONTROLLER = BatchCliController()


@click.group()
@click.version_option(version=__version__, prog_name="image-batch")
def image_batch() -> None:
    """Batch image processing with isolated worker processes.

    Every image in the input directory becomes one job. Jobs run in separate
    processes, at most `--workers` at a time, and each one writes all enabled
    variants into `<output>/<image name>/`.
    """


@image_batch.command("run")
@click.option(
    "--input",
    "input_dir",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Directory with source images. Default: `input-images`.",
)
@click.option(
    "--output",
    "output_dir",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Directory for generated variants. Default: `multi-threaded-output`.",
)
@click.option(
    "--workers",
    type=int,
    default=None,
    help="Maximum concurrent execution units. Default: number of CPU cores.",
)
@click.option(
    "--timeout-ms",
    type=int,
    default=None,
    help="Per-attempt timeout in milliseconds. Default: 60000.",
)
@click.option(
    "--retry/--no-retry",
    "retry_enabled",
    default=None,
    help="Retry failed jobs. Enabled by default.",
)
@click.option(
    "--max-attempts",
    type=int,
    default=None,
    help="Total attempts per job, including the first one. Default: 2.",
)
@click.option(
    "--retry-delay-ms",
    type=int,
    default=None,
    help="Delay before re-running a failed job. Default: 1000.",
)
@click.option(
    "--quality",
    type=int,
    default=None,
    help="JPEG/WebP output quality, 1-100. Default: 90.",
)
@click.option(
    "--fit-mode",
    type=click.Choice(FIT_MODES, case_sensitive=False),
    default=None,
    help="How resize transformations fit the target box. Default: cover.",
)
@click.option(
    "--transform",
    "transformations",
    multiple=True,
    help="Only apply this transformation. Can be repeated.",
)
@click.option(
    "--benchmark-handler",
    "use_benchmark_handler",
    is_flag=True,
    default=False,
    hidden=True,
    help="Replace image work with a deterministic no-op handler.",
)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")
def run_batch(  # noqa: PLR0913
    input_dir: Path | None,
    output_dir: Path | None,
    workers: int | None,
    timeout_ms: int | None,
    retry_enabled: bool | None,
    max_attempts: int | None,
    retry_delay_ms: int | None,
    quality: int | None,
    fit_mode: str | None,
    transformations: tuple[str, ...],
    use_benchmark_handler: bool,
    verbose: bool,
) -> None:
    """Process every supported image in the input directory."""

    configure_logging(verbose=verbose)
    try:
        BATCH_CONTROLLER.run_batch(
            BatchRunCommand(
                input_dir=input_dir,
                output_dir=output_dir,
                workers=workers,
                timeout_ms=timeout_ms,
                retry_enabled=retry_enabled,
                max_attempts=max_attempts,
                retry_delay_ms=retry_delay_ms,
                quality=quality,
                fit_mode=fit_mode,
                transformations=transformations,
                use_benchmark_handler=use_benchmark_handler,
            ),
            emit=click.echo,
        )
    except (FatalConfigurationError, InputSourceError) as error:
        raise click.ClickException(str(error)) from error


@image_batch.command("transforms")
@click.option(
    "--transform",
    "transformations",
    multiple=True,
    help="Mark only this transformation as enabled. Can be repeated.",
)
def list_transforms(transformations: tuple[str, ...]) -> None:
    """List the transformation catalogue and which entries are enabled."""

    try:
        lines = BATCH_CONTROLLER.list_transformations(
            BatchRunCommand(transformations=transformations),
        )
    except FatalConfigurationError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    image_batch()
