"""Dependency resolution over a loaded backlog.

Scheduling is greedy: stories are ranked by priority and the first one whose
dependencies all pass is picked. Cycles and references to unknown stories are
not analysed as a graph; they surface as "no eligible story" and are reported
through :func:`blocked_report`.
"""

from __future__ import annotations

from dataclasses import dataclass

from ralph_loop.scheduler.models import WorkItem, WorkItemSet


@dataclass(frozen=True, slots=True)
class BlockedItem:
    """Incomplete story with the dependency ids it still waits on."""

    item_id: str
    title: str
    pending: tuple[str, ...]


def is_satisfied(item: WorkItem, items: WorkItemSet) -> bool:
    return not pending_dependencies_of(item, items)


def pending_dependencies_of(item: WorkItem, items: WorkItemSet) -> tuple[str, ...]:
    """Dependency ids not yet passing, in declared order. Unknown ids count as pending."""

    pending: list[str] = []
    for dep_id in item.depends_on:
        dependency = items.get(dep_id)
        if dependency is None or not dependency.done:
            pending.append(dep_id)
    return tuple(pending)


def next_eligible(items: WorkItemSet) -> str | None:
    """Return the id of the highest-ranked incomplete story with satisfied deps."""

    candidates = sorted((item for item in items if not item.done), key=lambda item: item.sort_key)
    for item in candidates:
        if is_satisfied(item, items):
            return item.id
    return None


def blocked_report(items: WorkItemSet) -> list[BlockedItem]:
    return [
        BlockedItem(
            item_id=item.id,
            title=item.title,
            pending=pending_dependencies_of(item, items),
        )
        for item in items
        if not item.done
    ]


def render_blocked_lines(blocked: list[BlockedItem] | tuple[BlockedItem, ...]) -> list[str]:
    lines = ["Remaining stories and their pending dependencies:"]
    for entry in blocked:
        pending = ", ".join(entry.pending)
        lines.append(f"  - {entry.item_id} ({entry.title}): waiting on [{pending}]")
    return lines
