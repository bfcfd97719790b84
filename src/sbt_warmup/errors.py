"""sbt-warmup 异常类。"""

from __future__ import annotations

from collections.abc import Sequence

__all__ = [
    "WarmupError",
    "ConfigError",
    "LaunchError",
    "ReadinessError",
]


class WarmupError(Exception):
    """sbt-warmup 基础异常。"""
    pass


class ConfigError(WarmupError):
    """配置错误（如颜色名无效、工作目录不存在）。"""
    pass


class LaunchError(WarmupError):
    """子进程启动失败。

    Attributes:
        argv: 启动时使用的命令行
        cause: 底层 OSError
    """

    def __init__(self, argv: Sequence[str], cause: OSError) -> None:
        self.argv = list(argv)
        self.cause = cause
        super().__init__(str(cause))


class ReadinessError(WarmupError):
    """后台进程未能发出就绪信号（提前退出或超时）。"""
    pass
