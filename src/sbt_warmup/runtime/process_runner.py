"""Process runner for the background and foreground build-tool sessions.

sbt-warmup runtime module

This module provides:
- Background launch isolated in a new session/process group, stdout piped
- Foreground launch attached to the controlling terminal
- Reliable termination with graceful shutdown (SIGTERM -> timeout -> SIGKILL)
- Cancel-safe termination using asyncio.shield

Key design points:
- POSIX: start_new_session=True so terminal Ctrl+C never reaches the
  background process
- Windows: CREATE_NEW_PROCESS_GROUP for signal isolation
- The foreground process stays in our process group so it owns the terminal
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import subprocess
import sys
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..errors import LaunchError

__all__ = [
    "ProcessRunner",
    "ProcessSpec",
    "describe_exit",
    "exit_code_of",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"

# Default timeouts
DEFAULT_TERM_TIMEOUT = 2.0  # seconds to wait after SIGTERM
DEFAULT_KILL_TIMEOUT = 1.0  # seconds to wait after SIGKILL

# sbt can print very long lines (classpaths), asyncio's default is 64 KiB
DEFAULT_STREAM_LIMIT = 1024 * 1024


@dataclass(frozen=True)
class ProcessSpec:
    """Specification for a subprocess to run.

    Attributes:
        argv: Command line arguments (first element is the executable)
        cwd: Working directory for the process
        env: Environment variables (None = inherit parent)
    """

    argv: list[str]
    cwd: Path
    env: Mapping[str, str] | None = None

    @property
    def name(self) -> str:
        """Short display name of the executable."""
        return Path(self.argv[0]).name


def describe_exit(returncode: int | None) -> str:
    """Describe a returncode the way a shell would report it.

    asyncio reports death-by-signal as a negative returncode.
    """
    if returncode is None:
        return "status: running"
    if returncode < 0:
        try:
            return f"signal: {-returncode} ({signal.Signals(-returncode).name})"
        except ValueError:
            return f"signal: {-returncode}"
    return f"exit status: {returncode}"


def exit_code_of(returncode: int | None) -> int:
    """Map a child returncode to a conventional process exit code."""
    if returncode is None:
        return 1
    if returncode < 0:
        return 128 + (-returncode)
    return returncode


@dataclass
class ProcessRunner:
    """Cross-platform launcher with isolation and reliable termination.

    Example:
        runner = ProcessRunner()
        background = await runner.start_background(
            ProcessSpec(argv=["sbt"], cwd=Path.cwd())
        )
        async for line in background.stdout:
            ...
        await runner.terminate(background)
    """

    term_timeout: float = DEFAULT_TERM_TIMEOUT
    kill_timeout: float = DEFAULT_KILL_TIMEOUT
    stream_limit: int = DEFAULT_STREAM_LIMIT

    async def start_background(self, spec: ProcessSpec) -> asyncio.subprocess.Process:
        """Start a hidden background process with stdout piped.

        stdin is /dev/null so the background process never competes with
        the foreground one for terminal input. stderr is inherited.

        Args:
            spec: Process specification

        Returns:
            The running process; read its output from ``process.stdout``

        Raises:
            LaunchError: If the executable could not be started
        """
        kwargs = self._build_subprocess_kwargs(spec, isolate=True)

        try:
            process = await asyncio.create_subprocess_exec(
                *spec.argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                cwd=spec.cwd,
                limit=self.stream_limit,
                **kwargs,
            )
        except OSError as e:
            raise LaunchError(spec.argv, e) from e

        logger.debug(
            f"Started background subprocess pid={process.pid} "
            f"argv={spec.argv[0]} cwd={spec.cwd}"
        )
        return process

    async def start_foreground(self, spec: ProcessSpec) -> asyncio.subprocess.Process:
        """Start a process attached to the controlling terminal.

        stdin, stdout and stderr are inherited and the process stays in our
        process group, so it receives terminal input and Ctrl+C directly.

        Raises:
            LaunchError: If the executable could not be started
        """
        kwargs = self._build_subprocess_kwargs(spec, isolate=False)

        try:
            process = await asyncio.create_subprocess_exec(
                *spec.argv,
                cwd=spec.cwd,
                **kwargs,
            )
        except OSError as e:
            raise LaunchError(spec.argv, e) from e

        logger.debug(
            f"Started foreground subprocess pid={process.pid} "
            f"argv={spec.argv[0]} cwd={spec.cwd}"
        )
        return process

    async def run_foreground(self, spec: ProcessSpec) -> int | None:
        """Start a foreground process and wait for it to exit.

        Returns:
            The raw returncode (negative when killed by a signal)
        """
        process = await self.start_foreground(spec)
        return await process.wait()

    def _build_subprocess_kwargs(self, spec: ProcessSpec, *, isolate: bool) -> dict[str, Any]:
        """Build platform-specific subprocess kwargs.

        Args:
            spec: Process specification
            isolate: Whether to detach into a new session/process group

        Returns:
            Dict of kwargs for asyncio.create_subprocess_exec
        """
        kwargs: dict[str, Any] = {}

        if spec.env is not None:
            kwargs["env"] = dict(spec.env)

        if isolate:
            if IS_WINDOWS:
                kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
            else:
                # POSIX: start_new_session (equivalent to setsid)
                kwargs["start_new_session"] = True

        return kwargs

    async def terminate(
        self,
        process: asyncio.subprocess.Process,
        *,
        group: bool = True,
    ) -> int | None:
        """Terminate a process, shielded from cancellation.

        Args:
            process: The subprocess to terminate
            group: Signal the whole process group (only valid for processes
                started with ``start_background``)

        Returns:
            The final returncode, or None if the process survived SIGKILL
        """
        try:
            await asyncio.shield(self._terminate_process(process, group=group))
        except asyncio.CancelledError:
            # If shield itself is cancelled, still try to finish
            await self._terminate_process(process, group=group)
            raise
        return process.returncode

    async def _terminate_process(
        self,
        process: asyncio.subprocess.Process,
        *,
        group: bool,
    ) -> None:
        """Terminate subprocess gracefully, then forcefully if needed.

        Termination strategy:
        1. Send SIGTERM (or CTRL_BREAK_EVENT on Windows)
        2. Wait up to term_timeout for graceful exit
        3. If still running, send SIGKILL (or kill() on Windows)
        4. Wait up to kill_timeout for forced exit
        """
        pid = process.pid
        if process.returncode is not None:
            logger.debug(f"Subprocess already exited pid={pid}")
            return

        logger.debug(f"Terminating subprocess pid={pid}")

        try:
            if IS_WINDOWS:
                self._windows_terminate(process, group=group)
            elif group:
                self._posix_signal_group(process, signal.SIGTERM)
            else:
                process.terminate()

            try:
                await asyncio.wait_for(process.wait(), timeout=self.term_timeout)
                logger.debug(
                    f"Subprocess terminated gracefully pid={pid} "
                    f"returncode={process.returncode}"
                )
                return
            except asyncio.TimeoutError:
                pass

            logger.debug(f"Force killing subprocess pid={pid}")
            if not IS_WINDOWS and group:
                self._posix_signal_group(process, signal.SIGKILL)
            else:
                process.kill()

            try:
                await asyncio.wait_for(process.wait(), timeout=self.kill_timeout)
                logger.debug(
                    f"Subprocess killed pid={pid} "
                    f"returncode={process.returncode}"
                )
            except asyncio.TimeoutError:
                logger.warning(f"Subprocess did not exit after kill pid={pid}")

        except ProcessLookupError:
            logger.debug(f"Subprocess already exited pid={pid}")

    def _posix_signal_group(
        self,
        process: asyncio.subprocess.Process,
        sig: signal.Signals,
    ) -> None:
        """Send a signal to the process group on POSIX systems."""
        try:
            # pgid equals pid due to start_new_session
            pgid = os.getpgid(process.pid)
            os.killpg(pgid, sig)
            logger.debug(f"Sent {sig.name} to process group pgid={pgid}")
        except ProcessLookupError:
            pass
        except OSError as e:
            logger.debug(f"killpg failed, falling back to send_signal: {e}")
            process.send_signal(sig)

    def _windows_terminate(
        self,
        process: asyncio.subprocess.Process,
        *,
        group: bool,
    ) -> None:
        """Send CTRL_BREAK_EVENT on Windows, falling back to terminate()."""
        if not group:
            process.terminate()
            return
        try:
            # Works because we used CREATE_NEW_PROCESS_GROUP
            os.kill(process.pid, signal.CTRL_BREAK_EVENT)
            logger.debug(f"Sent CTRL_BREAK_EVENT to pid={process.pid}")
        except (ProcessLookupError, OSError) as e:
            logger.debug(f"CTRL_BREAK_EVENT failed, falling back: {e}")
            process.terminate()
