"""sbt-warmup 应用入口。

包含命令行解析、日志配置和主入口点。
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import shlex
import sys
from collections.abc import Sequence
from pathlib import Path

from . import __version__
from .config import Config, clamp_ready_timeout, get_config
from .errors import ConfigError
from .relay import parse_color
from .runtime import ProcessRunner, ProcessSpec
from .supervisor import WarmupSupervisor

__all__ = ["build_parser", "build_supervisor", "configure_logging", "main"]

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def build_parser(config: Config) -> argparse.ArgumentParser:
    """构建命令行解析器，默认值取自环境变量配置。"""
    parser = argparse.ArgumentParser(
        prog="sbt-warmup",
        description="Warm up a build server in the background, then open an "
        "interactive session and clean the background one up afterwards.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  sbt-warmup
  sbt-warmup --color cyan --ready-timeout 300
  sbt-warmup --command "sbt -mem 4096" -- ~compile
        """,
    )
    parser.add_argument(
        "--command",
        default=shlex.join(config.command),
        help=f"Build tool command line (default: {shlex.join(config.command)})",
    )
    parser.add_argument(
        "--marker",
        default=config.marker,
        help=f"Output text that marks the server as ready (default: {config.marker!r})",
    )
    parser.add_argument(
        "--color",
        default=config.color,
        help=f"Color of the relayed background output (default: {config.color})",
    )
    parser.add_argument(
        "--ready-timeout",
        type=float,
        default=config.ready_timeout,
        metavar="SECONDS",
        help="Give up if the server is not ready in time (default: wait forever)",
    )
    parser.add_argument(
        "--cwd",
        type=Path,
        default=None,
        help="Working directory for both sessions (default: current directory)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "extra",
        nargs=argparse.REMAINDER,
        help="Arguments after -- are passed to the interactive session only",
    )
    return parser


def build_supervisor(args: argparse.Namespace, config: Config) -> WarmupSupervisor:
    """根据命令行参数构建 supervisor。

    Raises:
        ConfigError: 参数无效
    """
    try:
        command = shlex.split(args.command)
    except ValueError as e:
        raise ConfigError(f"invalid command {args.command!r}: {e}") from e
    if not command:
        raise ConfigError("command must not be empty")

    cwd = (args.cwd or Path.cwd()).expanduser()
    if not cwd.is_dir():
        raise ConfigError(f"working directory does not exist: {cwd}")

    ready_timeout = args.ready_timeout
    if ready_timeout is not None:
        if ready_timeout <= 0:
            raise ConfigError("--ready-timeout must be positive")
        ready_timeout = clamp_ready_timeout(ready_timeout)

    parse_color(args.color)

    extra = list(args.extra)
    if extra and extra[0] == "--":
        extra = extra[1:]

    return WarmupSupervisor(
        background=ProcessSpec(argv=command, cwd=cwd),
        foreground=ProcessSpec(argv=command + extra, cwd=cwd),
        runner=ProcessRunner(term_timeout=config.term_timeout),
        marker=args.marker,
        color=args.color,
        ready_timeout=ready_timeout,
    )


def configure_logging(config: Config, verbose: bool = False) -> None:
    """配置日志输出。"""
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        # LOG_DEBUG 模式：输出到临时文件
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        # 默认模式：输出到 stderr
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(stderr_handler)
        log_level = logging.DEBUG if verbose else logging.WARNING

    # root logger（第三方库）为 WARNING，减少噪音
    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
        force=True,
    )
    # 只对 sbt_warmup 命名空间启用详细日志
    logging.getLogger("sbt_warmup").setLevel(log_level)


def main(argv: Sequence[str] | None = None) -> int:
    """主入口点。"""
    config = get_config()
    parser = build_parser(config)
    args = parser.parse_args(argv)

    configure_logging(config, verbose=args.verbose)
    logger.debug(f"Loaded {config!r}")

    try:
        supervisor = build_supervisor(args, config)
    except ConfigError as e:
        parser.error(str(e))

    return asyncio.run(supervisor.run())


if __name__ == "__main__":
    sys.exit(main())
