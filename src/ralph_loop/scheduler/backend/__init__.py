"""Executor backend implementations."""

from ralph_loop.scheduler.backend.base import (
    ExecutorInvocation,
    ExecutorRequest,
    ExecutorResult,
    StoryExecutor,
)
from ralph_loop.scheduler.backend.cli_backend import SubprocessExecutor
from ralph_loop.scheduler.backend.tools import (
    DEFAULT_MODELS,
    DEFAULT_TOOL,
    SUPPORTED_TOOLS,
    build_invocation,
)

__all__ = [
    "DEFAULT_MODELS",
    "DEFAULT_TOOL",
    "SUPPORTED_TOOLS",
    "ExecutorInvocation",
    "ExecutorRequest",
    "ExecutorResult",
    "StoryExecutor",
    "SubprocessExecutor",
    "build_invocation",
]
