"""应用入口测试。

测试命令行解析、supervisor 构建、日志配置和端到端运行。
"""

from __future__ import annotations

import logging
import os
import shlex
import sys
from pathlib import Path
from unittest import mock

import pytest

from sbt_warmup import __version__
from sbt_warmup.app import build_parser, build_supervisor, configure_logging, main
from sbt_warmup.config import Config, load_config
from sbt_warmup.errors import ConfigError


def parse(*argv: str, config: Config | None = None):
    config = config or Config()
    return build_parser(config).parse_args(list(argv)), config


class TestParser:
    """命令行解析测试。"""

    def test_defaults_from_config(self):
        args, _ = parse()
        assert args.command == "sbt"
        assert args.marker == "started sbt server"
        assert args.color == "green"
        assert args.ready_timeout is None
        assert args.cwd is None
        assert args.verbose is False
        assert args.extra == []

    def test_defaults_from_environment(self):
        env = {
            "SBTW_COMMAND": "sbtn --client",
            "SBTW_COLOR": "blue",
            "SBTW_READY_TIMEOUT": "120",
        }
        with mock.patch.dict(os.environ, env):
            args, _ = parse(config=load_config())
        assert args.command == "sbtn --client"
        assert args.color == "blue"
        assert args.ready_timeout == 120.0

    def test_flags_override(self):
        args, _ = parse(
            "--command", "sbt -mem 4096",
            "--marker", "ready!",
            "--color", "cyan",
            "--ready-timeout", "30",
            "-v",
        )
        assert args.command == "sbt -mem 4096"
        assert args.marker == "ready!"
        assert args.color == "cyan"
        assert args.ready_timeout == 30.0
        assert args.verbose is True

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            parse("--version")
        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out


class TestBuildSupervisor:
    """supervisor 构建测试。"""

    def test_extra_args_go_to_foreground_only(self, temp_workspace: Path):
        args, config = parse("--cwd", str(temp_workspace), "--", "~compile", "-Dx=1")
        supervisor = build_supervisor(args, config)

        assert supervisor.background.argv == ["sbt"]
        assert supervisor.foreground.argv == ["sbt", "~compile", "-Dx=1"]
        assert supervisor.background.cwd == temp_workspace
        assert supervisor.foreground.cwd == temp_workspace

    def test_command_is_shell_split(self, temp_workspace: Path):
        args, config = parse("--cwd", str(temp_workspace), "--command", "sbt -J-Xmx2g 'project api'")
        supervisor = build_supervisor(args, config)

        assert supervisor.background.argv == ["sbt", "-J-Xmx2g", "project api"]

    def test_term_timeout_from_config(self, temp_workspace: Path):
        args, _ = parse("--cwd", str(temp_workspace))
        supervisor = build_supervisor(args, Config(term_timeout=9.0))

        assert supervisor.runner.term_timeout == 9.0

    @pytest.mark.parametrize("given, expected", [("0.2", 1.0), ("90", 90.0), ("99999", 3600.0)])
    def test_ready_timeout_clamped_like_environment(self, temp_workspace: Path, given, expected):
        args, config = parse("--cwd", str(temp_workspace), "--ready-timeout", given)
        supervisor = build_supervisor(args, config)

        assert supervisor.ready_timeout == expected

    def test_defaults_to_current_directory(self):
        args, config = parse()
        supervisor = build_supervisor(args, config)

        assert supervisor.background.cwd == Path.cwd()

    @pytest.mark.parametrize(
        "argv",
        [
            ("--command", ""),
            ("--command", "sbt 'unterminated"),
            ("--color", "no-such-color"),
            ("--ready-timeout", "0"),
            ("--cwd", "/definitely/not/here"),
        ],
    )
    def test_invalid_arguments(self, argv):
        args, config = parse(*argv)
        with pytest.raises(ConfigError):
            build_supervisor(args, config)


class TestConfigureLogging:
    """日志配置测试。"""

    def test_default_level_is_warning(self):
        configure_logging(Config())
        assert logging.getLogger("sbt_warmup").level == logging.WARNING

    def test_verbose_enables_debug(self):
        configure_logging(Config(), verbose=True)
        assert logging.getLogger("sbt_warmup").level == logging.DEBUG

    def test_log_debug_writes_file(self, tmp_path: Path):
        log_file = tmp_path / "debug.log"
        configure_logging(Config(log_debug=True, log_file=str(log_file)))

        logging.getLogger("sbt_warmup.test").debug("hello from test")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert "hello from test" in log_file.read_text(encoding="utf-8")
        logging.getLogger().handlers.clear()


class TestMain:
    """端到端测试。"""

    def test_invalid_option_exits_with_usage_error(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--color", "no-such-color"])
        assert exc_info.value.code == 2
        assert "invalid color" in capsys.readouterr().err

    @pytest.mark.timeout(60)
    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX-specific test")
    def test_runs_warmup_sequence(self, temp_workspace: Path, fake_sbt: list[str], capsys):
        exit_code = main(
            [
                "--command", shlex.join(fake_sbt),
                "--cwd", str(temp_workspace),
                "--",
                "--foreground",
                "--exit-code", "5",
            ]
        )

        assert exit_code == 5
        out = capsys.readouterr().out
        assert "started with PID" in out
        assert "started sbt server" in out
        assert "exited with exit status: 5" in out
        assert "killed" in out
