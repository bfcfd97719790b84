"""sbt-warmup - 预热后台构建服务器，再打开交互式会话。

环境变量:
    SBTW_COMMAND: 构建工具命令行（默认 sbt）
    SBTW_READY_MARKER: 就绪标记（默认 "started sbt server"）
    SBTW_COLOR: 后台输出颜色（默认 green）

用法:
    sbt-warmup [-- 交互式会话参数]
"""

__version__ = "0.1.0"

from .app import main

__all__ = ["__version__", "main"]
