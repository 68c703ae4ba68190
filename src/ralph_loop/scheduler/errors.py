"""Error taxonomy for the story scheduler."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ralph_loop.scheduler.resolver import BlockedItem


class SchedulerError(RuntimeError):
    """Base class for scheduler failures."""


class MissingStateError(SchedulerError):
    """Persisted backlog file does not exist."""

    def __init__(self, path: Path) -> None:
        super().__init__(f"{path} not found.")
        self.path = path


class StateParseError(SchedulerError):
    """Persisted backlog exists but is not well-formed."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Invalid backlog in {path}: {reason}")
        self.path = path
        self.reason = reason


class EmptyBacklogError(SchedulerError):
    """Backlog loaded but contains no stories."""

    def __init__(self, path: Path) -> None:
        super().__init__(f"No stories found in {path.name}")
        self.path = path


class BlockedError(SchedulerError):
    """Incomplete stories remain but none has its dependencies satisfied."""

    def __init__(self, blocked: Sequence[BlockedItem]) -> None:
        super().__init__(
            "No eligible stories found. Possible dependency cycle or unmet dependencies.",
        )
        self.blocked = tuple(blocked)


class MaxIterationsExceeded(SchedulerError):
    """Iteration budget exhausted before every story passed."""

    def __init__(self, max_iterations: int) -> None:
        super().__init__(
            f"Reached max iterations ({max_iterations}) without completing all tasks.",
        )
        self.max_iterations = max_iterations


class RunCancelled(SchedulerError):
    """Loop stopped on request before completion."""

    def __init__(self, signal_name: str | None) -> None:
        super().__init__(f"Run cancelled ({signal_name or 'stop requested'}).")
        self.signal_name = signal_name


class ExecutorInvocationFailure(SchedulerError):
    """External agent attempt failed; the loop recovers by moving on."""

    def __init__(
        self,
        message: str,
        *,
        exit_code: int | None = None,
        timed_out: bool = False,
    ) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.timed_out = timed_out


class ArchiveIOFailure(SchedulerError):
    """One file could not be copied into the archive folder."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Failed to archive {path}: {reason}")
        self.path = path
        self.reason = reason
