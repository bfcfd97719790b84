"""sbt-warmup 入口点。

支持: python -m sbt_warmup
"""

import sys

from .app import main

if __name__ == "__main__":
    sys.exit(main())
