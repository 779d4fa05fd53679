"""Deterministic local handler for orchestrator tests and smoke runs."""

from __future__ import annotations

import json
import os
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from image_batch.orchestrator.handlers.base import UnitRequest

BENCHMARK_CASES: tuple[str, ...] = (
    "success",
    "fail",
    "fail_once",
    "crash",
    "hang",
    "slow",
    "linger",
)


@dataclass(slots=True, frozen=True)
class BenchmarkHandler:
    """Behave according to a per-job case instead of touching images.

    Every attempt leaves a JSON trace under ``state_dir`` (when set) with its
    start and end wall-clock timestamps, so tests can count attempts and
    measure overlap between units without sharing memory with them.
    """

    cases: dict[str, str] = field(default_factory=dict)
    default_case: str = "success"
    sleep_ms: int = 10
    slow_ms: int = 2_000
    failure_message: str = "boom"
    crash_exit_code: int = 3
    state_dir: Path | None = None

    def run(self, request: UnitRequest) -> dict[str, Any]:
        job = request.job
        case = self.cases.get(job.name, self.default_case)
        started_at = time.time()
        self._trace(request, started_at=started_at, finished_at=None)

        if case == "hang":
            time.sleep(3_600)
        if case == "crash":
            os._exit(self.crash_exit_code)
        if case == "linger":
            # Reply at once but keep the process alive for slow_ms.
            threading.Thread(target=time.sleep, args=(self.slow_ms / 1000,)).start()
        elif case == "slow":
            time.sleep(self.slow_ms / 1000)
        else:
            time.sleep(self.sleep_ms / 1000)
        if case == "fail" or (case == "fail_once" and job.attempt == 1):
            self._trace(request, started_at=started_at, finished_at=time.time())
            raise RuntimeError(self.failure_message)

        self._trace(request, started_at=started_at, finished_at=time.time())
        return {"benchmark_case": case, "attempt": job.attempt}

    def _trace(
        self,
        request: UnitRequest,
        *,
        started_at: float,
        finished_at: float | None,
    ) -> None:
        if self.state_dir is None:
            return
        self.state_dir.mkdir(parents=True, exist_ok=True)
        path = self.state_dir / f"{request.job.output_key}.attempt{request.job.attempt}.json"
        payload = {
            "name": request.job.name,
            "attempt": request.job.attempt,
            "pid": os.getpid(),
            "started_at": started_at,
            "finished_at": finished_at,
        }
        path.write_text(json.dumps(payload, sort_keys=True), "utf-8")
