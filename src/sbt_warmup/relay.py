"""Background output relay.

Streams the background build tool's stdout to the console, strips the ANSI
escapes it prints, recolors every line in a single color and fires a
one-shot readiness channel when the server announces itself.
"""

from __future__ import annotations

import asyncio
import logging
import re

import anyio
from rich.color import Color, ColorParseError
from rich.console import Console
from rich.style import Style
from rich.text import Text

from .config import DEFAULT_COLOR, DEFAULT_MARKER
from .errors import ConfigError, ReadinessError

__all__ = [
    "OutputRelay",
    "parse_color",
    "strip_ansi",
]

logger = logging.getLogger(__name__)

# CSI (ESC [ ... final), OSC (ESC ] ... BEL | ESC \), two-character escapes
_ANSI_ESCAPE_RE = re.compile(
    r"\x1B(?:\[[0-?]*[ -/]*[@-~]|\][^\x07\x1B]*(?:\x07|\x1B\\)|[@-Z\\-_])"
)


def strip_ansi(text: str) -> str:
    """Remove ANSI escape sequences from text."""
    return _ANSI_ESCAPE_RE.sub("", text)


def parse_color(name: str) -> Color:
    """Parse a rich color name.

    Raises:
        ConfigError: If the name is not a color rich understands
    """
    try:
        return Color.parse(name)
    except ColorParseError as e:
        raise ConfigError(f"invalid color {name!r}: {e}") from e


class OutputRelay:
    """Relays a process output stream and signals readiness once.

    Example:
        relay = OutputRelay(process.stdout, marker="started sbt server")
        async with anyio.create_task_group() as tg:
            tg.start_soon(relay.run)
            await relay.wait_ready(timeout=120)
            ...

    Attributes:
        marker: Substring that marks the server as ready
        color: Color every relayed line is printed in
    """

    def __init__(
        self,
        stream: asyncio.StreamReader,
        *,
        marker: str = DEFAULT_MARKER,
        color: str = DEFAULT_COLOR,
        console: Console | None = None,
    ) -> None:
        self.marker = marker
        self.color = color
        self._stream = stream
        self._style = Style(color=parse_color(color))
        self._console = console if console is not None else Console(highlight=False)

        # One-shot channel: the relay sends once, closing it means "no more output"
        self._ready_send, self._ready_receive = anyio.create_memory_object_stream(1)
        self._ready = False
        self._ready_seen = False
        self._lines_relayed = 0

    @property
    def ready(self) -> bool:
        """Whether the readiness marker has been seen."""
        return self._ready

    @property
    def lines_relayed(self) -> int:
        return self._lines_relayed

    async def run(self) -> None:
        """Relay the stream until EOF, then close the readiness channel."""
        async with self._ready_send:
            while True:
                raw = await self._read_line()
                if not raw:
                    break
                line = strip_ansi(raw.decode("utf-8", errors="replace")).rstrip("\r\n")
                self._lines_relayed += 1
                self._console.print(Text(line, style=self._style), soft_wrap=True)

                if not self._ready and self.marker in line:
                    self._ready = True
                    logger.debug(f"Readiness marker seen after {self._lines_relayed} line(s)")
                    self._ready_send.send_nowait(None)

        logger.debug(f"Output stream closed after {self._lines_relayed} line(s)")

    async def _read_line(self) -> bytes:
        """Read one line of any length, b"" at EOF.

        Lines longer than the stream limit are taken out of the buffer in
        pieces and joined back together.
        """
        pieces: list[bytes] = []
        while True:
            try:
                pieces.append(await self._stream.readuntil(b"\n"))
                break
            except asyncio.IncompleteReadError as e:
                pieces.append(e.partial)
                break
            except asyncio.LimitOverrunError as e:
                pieces.append(await self._stream.readexactly(e.consumed))
        return b"".join(pieces)

    async def wait_ready(self, timeout: float | None = None) -> None:
        """Wait until the readiness marker has been relayed.

        Args:
            timeout: Seconds to wait, None waits until the stream ends

        Raises:
            ReadinessError: If the stream ended or the timeout expired first
        """
        if self._ready_seen:
            return

        try:
            with anyio.fail_after(timeout):
                await self._ready_receive.receive()
        except anyio.EndOfStream:
            raise ReadinessError(
                f"output ended before {self.marker!r} appeared"
            ) from None
        except TimeoutError:
            raise ReadinessError(
                f"{self.marker!r} did not appear within {timeout:g}s"
            ) from None

        self._ready_seen = True

    def close(self) -> None:
        """Release the receiving end of the readiness channel."""
        self._ready_receive.close()
