"""Shared test fixtures."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
from PIL import Image

from image_batch.config import PoolSettings, TransformSettings
from image_batch.orchestrator.handlers import BenchmarkHandler
from image_batch.orchestrator.retry_policy import RetryPolicy
from image_batch.orchestrator.scheduler import PoolScheduler

_FILL = {"RGB": (200, 60, 30), "RGBA": (200, 60, 30, 255), "L": 128}
_ACCENT = {"RGB": (20, 120, 220), "RGBA": (20, 120, 220, 128), "L": 40}


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep IMAGE_BATCH_* variables from the developer shell out of tests."""

    for name in list(os.environ):
        if name.startswith("IMAGE_BATCH_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def _reset_package_logger():
    yield
    logger = logging.getLogger("image_batch")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)


@pytest.fixture()
def make_image(tmp_path) -> Callable[..., Path]:
    """Write a small generated image and return its path."""

    def _make(
        name: str = "sample.jpg",
        *,
        size: tuple[int, int] = (64, 48),
        mode: str = "RGB",
        directory: Path | None = None,
    ) -> Path:
        target_dir = directory or tmp_path / "input"
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / name
        image = Image.new(mode, size, _FILL[mode])
        image.paste(_ACCENT[mode], (0, 0, size[0] // 2, size[1]))
        image.save(path)
        return path

    return _make


@pytest.fixture()
def make_scheduler(tmp_path) -> Callable[..., PoolScheduler]:
    """Build a scheduler around BenchmarkHandler with fast defaults."""

    def _make(  # noqa: PLR0913
        *,
        cases: dict[str, str] | None = None,
        max_concurrency: int = 2,
        timeout_ms: int = 10_000,
        max_attempts: int = 2,
        retry_enabled: bool = True,
        delay_ms: int = 10,
        sleep_ms: int = 10,
        slow_ms: int = 2_000,
        progress=None,
    ) -> PoolScheduler:
        return PoolScheduler(
            pool=PoolSettings(max_concurrency=max_concurrency, job_timeout_ms=timeout_ms),
            retry_policy=RetryPolicy(
                enabled=retry_enabled,
                max_attempts=max_attempts,
                delay_ms=delay_ms,
            ),
            handler=BenchmarkHandler(
                cases=cases or {},
                sleep_ms=sleep_ms,
                slow_ms=slow_ms,
                state_dir=tmp_path / "traces",
            ),
            output_root=tmp_path / "output",
            transform=TransformSettings(),
            progress=progress,
        )

    return _make


@pytest.fixture()
def read_traces(tmp_path) -> Callable[[], list[dict[str, Any]]]:
    """Load the per-attempt traces BenchmarkHandler wrote for make_scheduler."""

    def _read() -> list[dict[str, Any]]:
        state_dir = tmp_path / "traces"
        if not state_dir.exists():
            return []
        return [json.loads(path.read_text("utf-8")) for path in sorted(state_dir.glob("*.json"))]

    return _read
