"""Runtime module for subprocess management.

This module provides isolated background execution, terminal-attached
foreground execution and reliable termination of the build-tool sessions.
"""

from __future__ import annotations

from .process_runner import ProcessRunner, ProcessSpec, describe_exit, exit_code_of

__all__ = [
    "ProcessRunner",
    "ProcessSpec",
    "describe_exit",
    "exit_code_of",
]
