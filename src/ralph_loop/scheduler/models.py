"""Domain models for the story backlog and scheduler runs."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class SchedulerState(str, Enum):
    """Control-loop states."""

    IDLE = "idle"
    ITERATION_START = "iteration_start"
    SELECTING = "selecting"
    DISPATCHING = "dispatching"
    RECONCILING = "reconciling"
    COMPLETED = "completed"
    BLOCKED = "blocked"
    EMPTY_BACKLOG = "empty_backlog"
    MAX_ITERATIONS_EXCEEDED = "max_iterations_exceeded"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class WorkItem:
    """One user story as read from the backlog file."""

    id: str
    title: str
    priority: float | None
    depends_on: tuple[str, ...] = ()
    done: bool = False
    description: str = ""
    acceptance_criteria: tuple[str, ...] = ()
    notes: str = ""
    position: int = 0
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def sort_key(self) -> tuple[int, float, int]:
        """Priority ascending, unprioritized last, file order breaks ties."""

        if self.priority is None:
            return (1, 0, self.position)
        return (0, self.priority, self.position)


@dataclass(frozen=True, slots=True)
class WorkItemSet:
    """Stories keyed by id, in file order, plus run metadata."""

    items: tuple[WorkItem, ...] = ()
    run_identity: str | None = None
    project: str | None = None
    description: str | None = None

    def __iter__(self) -> Iterator[WorkItem]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def get(self, item_id: str) -> WorkItem | None:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def field_of(self, item_id: str, name: str) -> Any:
        """Return a persisted field of a story, or None when absent."""

        item = self.get(item_id)
        if item is None:
            return None
        return item.raw.get(name)

    def dependencies_of(self, item_id: str) -> tuple[str, ...]:
        item = self.get(item_id)
        return item.depends_on if item is not None else ()

    def counts(self) -> tuple[int, int]:
        """Return (total, complete) story counts."""

        return len(self.items), sum(1 for item in self.items if item.done)


@dataclass(slots=True)
class RunSummary:
    """Outcome of a scheduler run for CLI reporting."""

    state: SchedulerState
    iterations: int = 0
    dispatched: int = 0
    executor_failures: int = 0
    total: int = 0
    complete: int = 0
    dispatched_ids: list[str] = field(default_factory=list)
