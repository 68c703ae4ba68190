"""Executor interface for story attempts."""

from __future__ import annotations

import shlex
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol


@dataclass(frozen=True, slots=True)
class ExecutorRequest:
    """Story handed to the external agent for one iteration."""

    item_id: str
    item_title: str

    @property
    def task_text(self) -> str:
        return f"Execute story {self.item_id}: {self.item_title}"


@dataclass(frozen=True, slots=True)
class ExecutorInvocation:
    """Typed process invocation; argv is passed to the OS without a shell."""

    binary: str
    args: tuple[str, ...] = ()
    stdin_payload: bytes | None = None
    env: dict[str, str] = field(default_factory=dict)
    cwd: Path | None = None
    stdin_source: Path | None = None

    @property
    def argv(self) -> list[str]:
        return [self.binary, *self.args]

    def render(self) -> str:
        """Shell-like preview for dry runs and logs; never executed."""

        parts = [f"{name}={shlex.quote(value)}" for name, value in sorted(self.env.items())]
        parts.append(shlex.join(self.argv))
        rendered = " ".join(parts)
        if self.stdin_source is not None:
            rendered = f"cat {shlex.quote(str(self.stdin_source))} | {rendered}"
        return rendered


@dataclass(slots=True)
class ExecutorResult:
    """Execution metadata; the scheduler never uses it to judge story success."""

    exit_code: int
    timed_out: bool
    elapsed_seconds: float


class StoryExecutor(Protocol):
    """Protocol implemented by executor runners."""

    def run(
        self,
        invocation: ExecutorInvocation,
        *,
        timeout_seconds: int,
        shutdown_requested: Callable[[], bool] | None = None,
    ) -> ExecutorResult:
        """Run one agent attempt; raise ExecutorInvocationFailure when it fails."""
