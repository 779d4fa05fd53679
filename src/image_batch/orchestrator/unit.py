"""Isolated execution unit: one OS process bound to one job attempt."""

from __future__ import annotations

import logging
import sys
import time
from collections.abc import Callable
from multiprocessing.connection import Connection
from multiprocessing.context import BaseContext
from multiprocessing.process import BaseProcess

from image_batch.orchestrator.handlers.base import JobHandler, UnitMessage, UnitRequest
from image_batch.orchestrator.models import (
    FailureReason,
    JobDescriptor,
    JobFailure,
    JobSuccess,
    Outcome,
)

logger = logging.getLogger(__name__)

_REAP_TIMEOUT_SECONDS = 2.0
_KILL_GRACE_SECONDS = 2.0


def run_unit(connection: Connection, handler: JobHandler, request: UnitRequest) -> None:
    """Child-process entry point: run the handler and send exactly one message."""

    started = time.monotonic()
    try:
        metadata = handler.run(request)
    except Exception as error:  # noqa: BLE001
        connection.send(
            UnitMessage(
                ok=False,
                name=request.job.name,
                elapsed_ms=_elapsed_ms(started),
                error=str(error) or type(error).__name__,
            ),
        )
        connection.close()
        sys.exit(1)

    connection.send(
        UnitMessage(
            ok=True,
            name=request.job.name,
            elapsed_ms=_elapsed_ms(started),
            metadata=dict(metadata or {}),
        ),
    )
    connection.close()

class ExecutionUnit:
    """Spawns, watches and stops the process running one job attempt.

    A message on the pipe decides the outcome even while the process is
    still winding down. EOF without a message waits for the sentinel so the
    exit code can be reported. Nothing here blocks on the child during a
    run: a process that outlives its outcome is signalled by ``stop()`` and
    released later by ``reap()``. A unit is never reused.
    """

    def __init__(
        self,
        *,
        request: UnitRequest,
        handler: JobHandler,
        context: BaseContext,
        timeout_ms: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.request = request
        self.handler = handler
        self.context = context
        self.timeout_ms = timeout_ms
        self._clock = clock
        self.started_at: float = 0.0
        self.deadline: float = 0.0
        self.reader: Connection | None = None
        self.process: BaseProcess | None = None
        self.start_error: str | None = None
        self._stopped_at: float | None = None
        self._killed = False

    @property
    def job(self) -> JobDescriptor:
        return self.request.job

    def handles(self) -> list[object]:
        """Objects to pass to ``multiprocessing.connection.wait``."""

        handles: list[object] = []
        if self.reader is not None:
            handles.append(self.reader)
        if self.process is not None:
            handles.append(self.process.sentinel)
        return handles

    def start(self) -> None:
        """Spawn the process; the timeout clock starts now."""

        self.started_at = self._clock()
        self.deadline = self.started_at + self.timeout_ms / 1000
        reader, writer = self.context.Pipe(duplex=False)
        process = self.context.Process(
            target=run_unit,
            args=(writer, self.handler, self.request),
            name=f"image-batch-unit-{self.job.output_key}-{self.job.attempt}",
            daemon=True,
        )
        try:
            process.start()
        except (OSError, RuntimeError, ValueError) as error:
            reader.close()
            writer.close()
            self.start_error = f"Failed to start execution unit: {error}"
            logger.error("Unit for %s failed to start: %s", self.job.name, error)
            return
        # Only the child keeps the write end, so EOF means the child is gone.
        writer.close()
        self.reader = reader
        self.process = process
        logger.debug(
            "Spawned unit pid=%s for %s (attempt %d)",
            process.pid,
            self.job.name,
            self.job.attempt,
        )

    def expired(self, now: float) -> bool:
        return self.start_error is None and now >= self.deadline

    def has_pending_input(self) -> bool:
        """True if the pipe holds a message or EOF that ``collect`` would consume."""

        if self.reader is None:
            return False
        try:
            return self.reader.poll()
        except (EOFError, OSError):
            return True

    def collect(self) -> Outcome | None:
        """Turn a ready pipe or sentinel into an outcome without waiting.

        Returns ``None`` while the process is still alive and has not sent a
        message; its sentinel becomes ready once it exits.
        """

        if self.start_error is not None:
            return self._failure(FailureReason.execution_error(self.start_error))

        message = self._receive()
        if message is not None:
            self.stop()
            if message.ok:
                return JobSuccess(
                    name=self.job.name,
                    elapsed_ms=message.elapsed_ms,
                    attempt=self.job.attempt,
                    metadata=message.metadata,
                )
            return JobFailure(
                name=self.job.name,
                reason=FailureReason.execution_error(message.error or "execution error"),
                elapsed_ms=message.elapsed_ms,
                attempt=self.job.attempt,
            )

        exit_code = self.process.exitcode if self.process is not None else None
        if exit_code is None:
            return None
        self._close_reader()
        self.reap()
        logger.warning("Unit for %s exited abnormally with code %s", self.job.name, exit_code)
        return self._failure(FailureReason.abnormal_exit(exit_code))

    def expire(self) -> Outcome:
        """Stop a unit whose timer fired; any late message is discarded."""

        logger.warning(
            "Unit for %s timed out after %d ms (attempt %d)",
            self.job.name,
            self.timeout_ms,
            self.job.attempt,
        )
        self.stop()
        return self._failure(FailureReason.timeout())

    def stop(self) -> None:
        """Close the pipe and signal a still-running process; does not wait."""

        self._close_reader()
        if self.process is None or self._stopped_at is not None:
            return
        self._stopped_at = self._clock()
        if self.process.is_alive():
            self.process.terminate()

    def reap(self) -> bool:
        """Release the process once it has exited; True when nothing is left."""

        if self.process is None:
            return True
        if self.process.is_alive():
            deadline = self.kill_deadline()
            if deadline is not None and self._clock() >= deadline:
                logger.warning("Killing unit for %s after terminate", self.job.name)
                self.process.kill()
                self._killed = True
            return False
        self._discard_process()
        return True

    def kill_deadline(self) -> float | None:
        """When a signalled process that is still alive gets SIGKILL."""

        if self.process is None or self._stopped_at is None or self._killed:
            return None
        return self._stopped_at + _KILL_GRACE_SECONDS

    def abort(self) -> None:
        """Stop the process and wait for it; used once the run is over."""

        self._close_reader()
        self._terminate()
        self._discard_process()

    def _receive(self) -> UnitMessage | None:
        if self.reader is None:
            return None
        try:
            if not self.reader.poll():
                return None
            message = self.reader.recv()
        except (EOFError, OSError):
            self._close_reader()
            return None
        if not isinstance(message, UnitMessage):
            return None
        return message

    def _terminate(self) -> None:
        if self.process is None or not self.process.is_alive():
            return
        self.process.terminate()
        self.process.join(timeout=_REAP_TIMEOUT_SECONDS)
        if self.process.is_alive():
            self.process.kill()
            self.process.join(timeout=_REAP_TIMEOUT_SECONDS)

    def _discard_process(self) -> None:
        if self.process is None:
            return
        if not self.process.is_alive():
            self.process.close()
        self.process = None

    def _close_reader(self) -> None:
        if self.reader is None:
            return
        self.reader.close()
        self.reader = None

    def _failure(self, reason: FailureReason) -> JobFailure:
        return JobFailure(
            name=self.job.name,
            reason=reason,
            elapsed_ms=_elapsed_ms(self.started_at, clock=self._clock),
            attempt=self.job.attempt,
        )


def _elapsed_ms(started: float, *, clock: Callable[[], float] = time.monotonic) -> int:
    return max(0, round((clock() - started) * 1000))
