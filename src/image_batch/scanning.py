"""Backlog source: supported image files found in the input directory."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from image_batch.errors import InputSourceError
from image_batch.orchestrator.models import JobDescriptor

logger = logging.getLogger(__name__)


def scan_input_dir(input_dir: Path, supported_formats: Iterable[str]) -> list[Path]:
    """Return files in ``input_dir`` with a supported extension, sorted by name."""

    if not input_dir.is_dir():
        raise InputSourceError(f"Input directory not found: {input_dir}", path=str(input_dir))
    extensions = {f".{value.strip().lower().lstrip('.')}" for value in supported_formats}
    try:
        entries = sorted(input_dir.iterdir(), key=lambda path: path.name)
    except OSError as error:
        raise InputSourceError(
            f"Input directory is not readable: {input_dir} ({error})",
            path=str(input_dir),
        ) from error
    return [path for path in entries if path.is_file() and path.suffix.lower() in extensions]


def build_jobs(paths: Iterable[Path]) -> list[JobDescriptor]:
    """Create one descriptor per file with a unique output subdirectory."""

    jobs: list[JobDescriptor] = []
    used_keys: set[str] = set()
    for path in paths:
        output_key = _output_key(path, used_keys)
        used_keys.add(output_key)
        jobs.append(JobDescriptor(source_path=path, name=path.name, output_key=output_key))
    return jobs


def _output_key(path: Path, used_keys: set[str]) -> str:
    base = path.name.split(".", 1)[0] or path.name
    if base not in used_keys:
        return base
    candidate = f"{base}_{path.suffix.lstrip('.').lower()}" if path.suffix else base
    counter = 2
    while candidate in used_keys:
        candidate = f"{base}_{counter}"
        counter += 1
    logger.warning("Output folder %r already taken; writing %s to %r", base, path.name, candidate)
    return candidate
