"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import io
import os
import sys
from pathlib import Path

import pytest
from rich.console import Console

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

# 模拟 sbt 的脚本
FAKE_SBT = Path(__file__).parent / "fixtures" / "fake_sbt.py"


@pytest.fixture
def temp_workspace(tmp_path: Path) -> Path:
    """临时工作目录。"""
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    return workspace


@pytest.fixture
def fake_sbt() -> list[str]:
    """运行 fake_sbt.py 的命令行前缀。"""
    return [sys.executable, str(FAKE_SBT)]


@pytest.fixture
def console_buffer() -> tuple[Console, io.StringIO]:
    """写入内存的 rich Console（无颜色、不换行）。"""
    buffer = io.StringIO()
    console = Console(file=buffer, force_terminal=False, width=200, highlight=False)
    return console, buffer


@pytest.fixture(autouse=True)
def _clean_sbtw_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """清除 SBTW_* 环境变量和全局配置缓存。"""
    from sbt_warmup import config

    for key in list(os.environ):
        if key.startswith("SBTW_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setattr(config, "_config", None)
