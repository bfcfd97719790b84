"""信号管理模块。

实现信号隔离策略：
- SIGINT: 前台交互进程运行期间交给它处理（Ctrl+C 属于交互式 sbt），本进程只记录；
  前台进程启动之前按退出信号处理（清理后台进程 + 退出）
- SIGTERM / SIGHUP: 优雅退出（终止前台进程 + 清理后台进程 + 退出）

后台进程运行在独立的进程组中，终端产生的 SIGINT 不会到达它；
前台进程与本进程同组，会直接收到 Ctrl+C。
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import sys
from collections.abc import Iterator
from typing import Optional

__all__ = ["SignalManager"]

logger = logging.getLogger(__name__)


def _shutdown_signals() -> tuple[signal.Signals, ...]:
    """当前平台上触发优雅退出的信号。"""
    if sys.platform == "win32":
        return (signal.SIGTERM,)
    return (signal.SIGTERM, signal.SIGHUP)


class SignalManager:
    """信号管理器。

    Example:
        ```python
        signal_manager = SignalManager()

        async def main():
            await signal_manager.start()
            try:
                with signal_manager.foreground_attached():
                    await run_foreground()
            finally:
                await signal_manager.stop()
        ```

    Attributes:
        sigint_count: 运行期间收到的 SIGINT 次数
    """

    def __init__(self) -> None:
        self.sigint_count: int = 0
        self._shutdown_signal: Optional[int] = None
        self._shutdown_event: Optional[asyncio.Event] = None
        self._original_handlers: dict[int, object] = {}
        self._running: bool = False
        self._foreground_attached: bool = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def is_shutdown_requested(self) -> bool:
        """是否已请求关闭。"""
        return self._shutdown_signal is not None

    @property
    def shutdown_signal(self) -> Optional[int]:
        """触发关闭的信号编号。"""
        return self._shutdown_signal

    @property
    def is_foreground_attached(self) -> bool:
        """SIGINT 当前是否交给前台进程。"""
        return self._foreground_attached

    @contextlib.contextmanager
    def foreground_attached(self) -> Iterator[None]:
        """在此范围内 SIGINT 只计数，交给前台进程处理。"""
        self._foreground_attached = True
        try:
            yield
        finally:
            self._foreground_attached = False

    async def start(self) -> None:
        """启动信号监听。

        必须在 asyncio 事件循环中调用。
        """
        if self._running:
            logger.warning("SignalManager already running")
            return

        self._loop = asyncio.get_running_loop()
        self._shutdown_event = asyncio.Event()
        self._running = True

        if sys.platform != "win32":
            self._loop.add_signal_handler(signal.SIGINT, self._handle_sigint)
            for sig in _shutdown_signals():
                self._loop.add_signal_handler(sig, self._handle_shutdown, int(sig))
            logger.debug("Signal handlers installed")
        else:
            # Windows: 使用 signal.signal() 设置处理器
            self._original_handlers[signal.SIGINT] = signal.signal(
                signal.SIGINT,
                lambda sig, frame: self._loop.call_soon_threadsafe(self._handle_sigint),
            )
            for sig in _shutdown_signals():
                self._original_handlers[sig] = signal.signal(
                    sig,
                    lambda signum, frame: self._loop.call_soon_threadsafe(
                        self._handle_shutdown, signum
                    ),
                )
            logger.debug("Signal handlers installed on Windows")

    async def stop(self) -> None:
        """停止信号监听，恢复原始信号处理器。"""
        if not self._running:
            return

        self._running = False

        if sys.platform != "win32" and self._loop:
            for sig in (signal.SIGINT, *_shutdown_signals()):
                try:
                    self._loop.remove_signal_handler(sig)
                except (ValueError, RuntimeError) as e:
                    logger.debug(f"Error removing {sig.name} handler: {e}")
        else:
            for sig, handler in self._original_handlers.items():
                try:
                    signal.signal(sig, handler)
                except (ValueError, OSError) as e:
                    logger.debug(f"Error restoring handler for signal {sig}: {e}")
            self._original_handlers.clear()

        logger.debug("Signal handlers removed")

    async def wait_for_shutdown(self) -> int:
        """等待退出信号，返回信号编号。"""
        if self._shutdown_event is None:
            raise RuntimeError("SignalManager is not running")
        await self._shutdown_event.wait()
        assert self._shutdown_signal is not None
        return self._shutdown_signal

    def _handle_sigint(self) -> None:
        """处理 SIGINT 信号。

        前台进程与本进程同组，已经收到同一个 SIGINT，这里不做任何终止操作。
        还没有前台进程时（预热阶段），没有人处理 Ctrl+C，按退出信号处理。
        """
        self.sigint_count += 1
        if not self._foreground_attached:
            self._handle_shutdown(int(signal.SIGINT))
            return
        logger.debug(f"SIGINT received ({self.sigint_count}), left to the foreground session")

    def _handle_shutdown(self, signum: int) -> None:
        """处理 SIGTERM / SIGHUP（以及预热阶段的 SIGINT）。"""
        if self._shutdown_signal is not None:
            logger.debug(f"Shutdown already requested, ignoring signal {signum}")
            return

        logger.info(f"{signal.Signals(signum).name} received, initiating graceful shutdown")
        self._shutdown_signal = signum

        if self._shutdown_event is not None:
            self._shutdown_event.set()

    def request_shutdown(self, signum: int = signal.SIGTERM) -> None:
        """程序化请求优雅退出。"""
        logger.info("Programmatic shutdown requested")
        self._handle_shutdown(int(signum))
