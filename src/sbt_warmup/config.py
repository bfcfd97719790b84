"""SBTW 环境变量配置管理。

环境变量:
    SBTW_COMMAND: 构建工具命令行
        - 默认 "sbt"
        - 按 shell 规则拆分，例: "sbt -mem 4096"

    SBTW_READY_MARKER: 就绪标记
        - 后台输出中出现该子串即视为服务器已就绪
        - 默认 "started sbt server"

    SBTW_COLOR: 后台输出的颜色
        - 任意 rich 颜色名，例: green / cyan / #10A37F
        - 默认 green

    SBTW_READY_TIMEOUT: 等待就绪的超时时间（秒）
        - 空/未设置 = 一直等待 (默认)
        - 限制在 1-3600 秒范围

    SBTW_TERM_TIMEOUT: 终止后台进程时 SIGTERM 之后的等待时间（秒）
        - 默认 5.0 秒
        - 超时后发送 SIGKILL

    SBTW_LOG_DEBUG: 日志调试模式
        - true/1/yes = 开启 (日志输出到临时文件)
        - false/0/no = 关闭 (默认，日志输出到 stderr)
"""

from __future__ import annotations

import os
import shlex
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

__all__ = [
    "Config",
    "load_config",
    "get_config",
    "reload_config",
    "DEFAULT_COMMAND",
    "DEFAULT_MARKER",
    "DEFAULT_COLOR",
    "clamp_ready_timeout",
]

DEFAULT_COMMAND = "sbt"
DEFAULT_MARKER = "started sbt server"
DEFAULT_COLOR = "green"
DEFAULT_TERM_TIMEOUT = 5.0

MIN_READY_TIMEOUT = 1.0
MAX_READY_TIMEOUT = 3600.0


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_command(value: str | None) -> list[str]:
    """解析命令行环境变量。

    Args:
        value: 环境变量值，按 shell 规则拆分

    Returns:
        argv 列表，空值或无法解析时返回默认命令
    """
    if not value or not value.strip():
        return [DEFAULT_COMMAND]
    try:
        argv = shlex.split(value)
    except ValueError:
        return [DEFAULT_COMMAND]
    return argv or [DEFAULT_COMMAND]


def clamp_ready_timeout(timeout: float) -> float:
    """把就绪超时限制在 1-3600 秒范围。"""
    return max(MIN_READY_TIMEOUT, min(timeout, MAX_READY_TIMEOUT))


def _parse_ready_timeout(value: str | None) -> float | None:
    """解析就绪超时环境变量。"""
    if not value or not value.strip():
        return None
    try:
        timeout = float(value)
    except ValueError:
        return None
    if timeout <= 0:
        return None
    return clamp_ready_timeout(timeout)


def _parse_term_timeout(value: str | None) -> float:
    """解析终止等待时间环境变量。"""
    if not value:
        return DEFAULT_TERM_TIMEOUT
    try:
        timeout = float(value)
        return max(0.1, min(timeout, 60.0))
    except ValueError:
        return DEFAULT_TERM_TIMEOUT


def _generate_log_file_path() -> str:
    """生成日志文件路径。

    Returns:
        临时目录下的日志文件绝对路径
    """
    log_dir = Path(tempfile.gettempdir()) / "sbt-warmup"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"sbtw_debug_{timestamp}.log"

    return str(log_file.resolve())


@dataclass
class Config:
    """SBTW 配置。

    Attributes:
        command: 构建工具命令行（argv 列表）
        marker: 就绪标记子串
        color: 后台输出颜色
        ready_timeout: 等待就绪的超时时间，None 表示一直等待
        term_timeout: SIGTERM 之后等待退出的时间
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（当 log_debug=True 时自动设置）
    """

    command: list[str] = field(default_factory=lambda: [DEFAULT_COMMAND])
    marker: str = DEFAULT_MARKER
    color: str = DEFAULT_COLOR
    ready_timeout: float | None = None
    term_timeout: float = DEFAULT_TERM_TIMEOUT
    log_debug: bool = False
    log_file: str | None = None

    def __repr__(self) -> str:
        timeout_str = "none" if self.ready_timeout is None else f"{self.ready_timeout}"
        return (
            f"Config(command={shlex.join(self.command)}, "
            f"marker={self.marker!r}, "
            f"color={self.color}, "
            f"ready_timeout={timeout_str}, "
            f"term_timeout={self.term_timeout}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def load_config() -> Config:
    """从环境变量加载配置。"""
    log_debug = _parse_bool(os.environ.get("SBTW_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        command=_parse_command(os.environ.get("SBTW_COMMAND")),
        marker=os.environ.get("SBTW_READY_MARKER") or DEFAULT_MARKER,
        color=(os.environ.get("SBTW_COLOR") or DEFAULT_COLOR).strip(),
        ready_timeout=_parse_ready_timeout(os.environ.get("SBTW_READY_TIMEOUT")),
        term_timeout=_parse_term_timeout(os.environ.get("SBTW_TERM_TIMEOUT")),
        log_debug=log_debug,
        log_file=log_file,
    )


# 全局配置实例（延迟加载）
_config: Config | None = None


def get_config() -> Config:
    """获取全局配置实例。"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """重新加载配置（用于测试）。"""
    global _config
    _config = load_config()
    return _config
