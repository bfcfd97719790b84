"""Warm-up supervisor.

Runs the background session until it reports readiness, hands the terminal
to the foreground session, and tears the background session down once the
foreground one has exited.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable
from pathlib import Path
from typing import Any, Optional

from rich.console import Console

from .config import DEFAULT_COLOR, DEFAULT_MARKER
from .errors import LaunchError, WarmupError
from .relay import OutputRelay, parse_color
from .runtime import ProcessRunner, ProcessSpec, describe_exit, exit_code_of
from .signal_manager import SignalManager

__all__ = ["WarmupSupervisor"]

logger = logging.getLogger(__name__)

# Seconds the relay may keep draining after the background process is gone
RELAY_DRAIN_TIMEOUT = 2.0


class WarmupSupervisor:
    """Supervises one background/foreground session pair.

    Example:
        supervisor = WarmupSupervisor(
            background=ProcessSpec(argv=["sbt"], cwd=Path.cwd()),
            foreground=ProcessSpec(argv=["sbt"], cwd=Path.cwd()),
        )
        exit_code = await supervisor.run()

    Attributes:
        background: Launch specification of the hidden warm-up session
        foreground: Launch specification of the interactive session
        runner: Process runner used for both sessions
        marker: Readiness marker searched for in the background output
        color: Color the background output is relayed in
        ready_timeout: Seconds to wait for readiness (None = forever)
    """

    def __init__(
        self,
        background: ProcessSpec,
        foreground: ProcessSpec,
        *,
        runner: Optional[ProcessRunner] = None,
        marker: str = DEFAULT_MARKER,
        color: str = DEFAULT_COLOR,
        ready_timeout: Optional[float] = None,
        console: Optional[Console] = None,
        err_console: Optional[Console] = None,
        install_signals: bool = True,
    ) -> None:
        # Fail before anything is spawned
        parse_color(color)

        self.background = background
        self.foreground = foreground
        self.runner = runner if runner is not None else ProcessRunner()
        self.marker = marker
        self.color = color
        self.ready_timeout = ready_timeout
        self.console = console if console is not None else Console(highlight=False)
        self.err_console = (
            err_console if err_console is not None else Console(stderr=True, highlight=False)
        )
        self.install_signals = install_signals
        self._signals: Optional[SignalManager] = None

    async def run(self) -> int:
        """Run the whole warm-up sequence.

        Returns:
            The foreground session's exit code, 1 if a session could not be
            started, or 128 + signum after a shutdown signal
            (Ctrl+C before the foreground session starts counts as one)
        """
        if self.install_signals:
            self._signals = SignalManager()
            await self._signals.start()

        try:
            return await self._supervise()
        finally:
            if self._signals is not None:
                await self._signals.stop()
                self._signals = None

    async def _supervise(self) -> int:
        name = self.background.name

        try:
            background = await self.runner.start_background(self.background)
        except WarmupError as e:
            self._report_error(f"Failed to start {name}: {e}")
            return 1

        self._say(f"background {name} started with PID: {background.pid}")
        logger.info(f"Background session started pid={background.pid}")

        relay = OutputRelay(
            background.stdout,
            marker=self.marker,
            color=self.color,
            console=self.console,
        )
        relay_task = asyncio.create_task(relay.run(), name="output-relay")

        try:
            return await self._run_session(relay)
        except LaunchError as e:
            self._report_error(f"Failed to start {Path(e.argv[0]).name}: {e}")
            return 1
        except WarmupError as e:
            self._report_error(f"Failed to start {name}: {e}")
            return 1
        finally:
            await self._stop_background(background, relay_task)
            relay.close()

    async def _run_session(self, relay: OutputRelay) -> int:
        """Wait for readiness, then run the foreground session to completion."""
        completed, _ = await self._unless_shutdown(relay.wait_ready(self.ready_timeout))
        if not completed:
            return self._shutdown_exit_code()

        logger.info(f"Background session ready after {relay.lines_relayed} line(s)")

        name = self.foreground.name
        with self._sigint_to_foreground():
            foreground = await self.runner.start_foreground(self.foreground)
            self._say(f"foreground {name} started with PID: {foreground.pid}")

            completed, returncode = await self._unless_shutdown(foreground.wait())
        if not completed:
            returncode = await self.runner.terminate(foreground, group=False)
            self._say(f"foreground {name} exited with {describe_exit(returncode)}")
            return self._shutdown_exit_code()

        self._say(f"foreground {name} exited with {describe_exit(returncode)}")
        return exit_code_of(returncode)

    def _sigint_to_foreground(self) -> contextlib.AbstractContextManager[None]:
        """Leave Ctrl+C to the foreground session while it holds the terminal."""
        if self._signals is None:
            return contextlib.nullcontext()
        return self._signals.foreground_attached()

    async def _unless_shutdown(self, awaitable: Awaitable[Any]) -> tuple[bool, Any]:
        """Await ``awaitable`` unless a shutdown signal arrives first.

        Returns:
            (True, result) if it completed, (False, None) if it was abandoned
        """
        if self._signals is None:
            return True, await awaitable

        work = asyncio.ensure_future(awaitable)
        shutdown = asyncio.ensure_future(self._signals.wait_for_shutdown())
        try:
            await asyncio.wait({work, shutdown}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            shutdown.cancel()
            if not work.done():
                work.cancel()

        if not work.cancelled():
            return True, work.result()

        with contextlib.suppress(asyncio.CancelledError):
            await work
        return False, None

    def _shutdown_exit_code(self) -> int:
        assert self._signals is not None and self._signals.shutdown_signal is not None
        return 128 + self._signals.shutdown_signal

    async def _stop_background(
        self,
        background: asyncio.subprocess.Process,
        relay_task: asyncio.Task[None],
    ) -> None:
        """Terminate the background session and drain what it printed last."""
        name = self.background.name
        pid = background.pid
        already_exited = background.returncode is not None

        try:
            returncode = await self.runner.terminate(background)
        except OSError as e:
            await self._finish_relay(relay_task)
            self._report_error(f"Failed to kill background {name}: {e}")
            return

        await self._finish_relay(relay_task)
        if already_exited:
            self._say(f"background {name} with PID {pid} exited with {describe_exit(returncode)}")
        elif returncode is None:
            self._report_error(f"Failed to kill background {name}: PID {pid} is still running")
        else:
            self._say(f"background {name} with PID {pid} killed")
            logger.info(f"Background session stopped pid={pid} {describe_exit(returncode)}")

    async def _finish_relay(self, relay_task: asyncio.Task[None]) -> None:
        try:
            await asyncio.wait_for(relay_task, timeout=RELAY_DRAIN_TIMEOUT)
        except asyncio.TimeoutError:
            logger.debug("Output relay still open after background exit, cancelled")

    def _say(self, message: str) -> None:
        self.console.print(message, markup=False, highlight=False, soft_wrap=True)

    def _report_error(self, message: str) -> None:
        logger.debug(message)
        self.err_console.print(message, style="red", markup=False, highlight=False, soft_wrap=True)
