"""Supervisor for the background model server."""

from __future__ import annotations

import asyncio
import os
import signal
import threading
from typing import Any

import structlog

from .errors import ChildStartError, ChildWaitError
from .models import SupervisorConfig, SupervisorState

__all__ = ["ProcessSupervisor"]

logger = structlog.get_logger(__name__)

# SIGKILL cannot be caught, so only these two are relayed.
_STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ProcessSupervisor:
    """
    Runs the model server as a child process until it exits or a stop
    signal arrives.

    The run races two tasks: waiting for the child to exit and waiting for
    SIGINT/SIGTERM. Whichever finishes first decides the outcome and the
    other task is cancelled. A stop signal kills the child and counts as a
    clean shutdown; a child exiting with a non-zero status raises
    ``ChildWaitError``.
    """

    def __init__(self, config: SupervisorConfig | None = None) -> None:
        self.config = config or SupervisorConfig.default()
        self.state = SupervisorState.IDLE
        self.returncode: int | None = None
        # Set once the child is running; lets other threads synchronise.
        self.started = threading.Event()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stop: asyncio.Event | None = None
        self._process: asyncio.subprocess.Process | None = None

    def run(self) -> SupervisorState:
        """Block until the child exits or is stopped; return the final state."""
        return asyncio.run(self._run())

    def request_stop(self) -> None:
        """Ask a running supervisor to kill its child. Safe from any thread."""
        if self._loop is not None and self._stop is not None:
            self._loop.call_soon_threadsafe(self._stop.set)

    async def _run(self) -> SupervisorState:
        loop = asyncio.get_running_loop()
        stop = asyncio.Event()
        self._loop, self._stop = loop, stop
        previous = self._install_signal_handlers(loop, stop)
        try:
            self.state = SupervisorState.STARTING
            process = await self._start()
            self._process = process
            self.state = SupervisorState.RUNNING
            self.started.set()

            exit_task = asyncio.create_task(process.wait())
            stop_task = asyncio.create_task(stop.wait())
            done, pending = await asyncio.wait(
                {exit_task, stop_task}, return_when=asyncio.FIRST_COMPLETED
            )
            for task in pending:
                task.cancel()

            if stop_task in done:
                await self._terminate(process)
                return self.state

            try:
                self.returncode = exit_task.result()
            except OSError as exc:
                raise ChildWaitError(f"failed to wait for server: {exc}") from exc
            self.state = SupervisorState.EXITED
            logger.info("supervisor.child_exited", returncode=self.returncode)
            if self.returncode != 0:
                raise ChildWaitError(
                    f"server exited with status {self.returncode}"
                )
            return self.state
        finally:
            self._remove_signal_handlers(loop, previous)
            self._loop = self._stop = None

    async def _start(self) -> asyncio.subprocess.Process:
        env = {**os.environ, **self.config.env}
        try:
            process = await asyncio.create_subprocess_exec(
                *self.config.command, env=env
            )
        except (OSError, ValueError) as exc:
            raise ChildStartError(
                f"failed to start {self.config.command[0]}: {exc}"
            ) from exc
        logger.info(
            "supervisor.child_started",
            pid=process.pid,
            command=" ".join(self.config.command),
        )
        return process

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        self.state = SupervisorState.TERMINATING
        logger.info("supervisor.stopping", pid=process.pid)
        try:
            process.kill()
        except ProcessLookupError:
            pass
        # Reap the killed child so it does not linger as a zombie.
        self.returncode = await process.wait()
        self.state = SupervisorState.TERMINATED

    @staticmethod
    def _on_signal(stop: asyncio.Event, signum: int) -> None:
        logger.info("supervisor.signal", signal=signal.Signals(signum).name)
        stop.set()

    def _install_signal_handlers(
        self, loop: asyncio.AbstractEventLoop, stop: asyncio.Event
    ) -> dict[int, Any]:
        """Route SIGINT/SIGTERM into *stop*.

        Returns the handlers that were replaced when the loop cannot manage
        signals itself (Windows), so they can be restored afterwards.
        """
        previous: dict[int, Any] = {}
        for signum in _STOP_SIGNALS:
            try:
                loop.add_signal_handler(signum, self._on_signal, stop, signum)
            except NotImplementedError:
                previous[signum] = signal.signal(
                    signum,
                    lambda sig, frame: loop.call_soon_threadsafe(self._on_signal, stop, sig),
                )
        return previous

    @staticmethod
    def _remove_signal_handlers(
        loop: asyncio.AbstractEventLoop, previous: dict[int, Any]
    ) -> None:
        for signum in _STOP_SIGNALS:
            if signum in previous:
                signal.signal(signum, previous[signum])
            else:
                loop.remove_signal_handler(signum)
