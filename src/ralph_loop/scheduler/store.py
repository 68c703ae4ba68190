"""File-backed store for the user-story backlog (``prd.json``)."""

from __future__ import annotations

import json
import logging
import math
from pathlib import Path
from typing import Any

from ralph_loop.scheduler.errors import MissingStateError, StateParseError
from ralph_loop.scheduler.models import WorkItem, WorkItemSet

logger = logging.getLogger(__name__)

_ITEM_KEYS = ("userStories", "items")
_IDENTITY_KEYS = ("branchName", "runIdentity")
_DONE_KEYS = ("passes", "done")


class WorkItemStore:
    """Reads the backlog fresh on every call; nothing is cached."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> WorkItemSet:
        if not self.path.exists():
            raise MissingStateError(self.path)
        try:
            raw = json.loads(self.path.read_text("utf-8"))
        except json.JSONDecodeError as error:
            raise StateParseError(self.path, f"not valid JSON ({error})") from error
        except (OSError, UnicodeDecodeError) as error:
            raise StateParseError(self.path, f"unreadable ({error})") from error
        if not isinstance(raw, dict):
            raise StateParseError(self.path, "top-level value must be an object")
        return parse_backlog(raw, path=self.path)

    def read_run_identity(self) -> str | None:
        """Best-effort identity read used by the archiver; never raises."""

        try:
            raw = json.loads(self.path.read_text("utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError):
            return None
        if not isinstance(raw, dict):
            return None
        return _identity_of(raw)


def parse_backlog(raw: dict[str, Any], *, path: Path) -> WorkItemSet:
    """Build a WorkItemSet from a decoded backlog document."""

    raw_items: Any = []
    for key in _ITEM_KEYS:
        if key in raw:
            raw_items = raw[key]
            break
    if raw_items is None:
        raw_items = []
    if not isinstance(raw_items, list):
        raise StateParseError(path, "story list must be an array")

    items: list[WorkItem] = []
    seen: set[str] = set()
    for position, entry in enumerate(raw_items):
        item = _parse_item(entry, position=position, path=path)
        if item.id in seen:
            raise StateParseError(path, f"duplicate story id {item.id!r}")
        seen.add(item.id)
        items.append(item)

    return WorkItemSet(
        items=tuple(items),
        run_identity=_identity_of(raw),
        project=_optional_str(raw.get("project")),
        description=_optional_str(raw.get("description")),
    )


def _parse_item(entry: Any, *, position: int, path: Path) -> WorkItem:
    if not isinstance(entry, dict):
        raise StateParseError(path, f"story at index {position} must be an object")
    item_id = entry.get("id")
    if isinstance(item_id, int) and not isinstance(item_id, bool):
        item_id = str(item_id)
    if not isinstance(item_id, str) or not item_id.strip():
        raise StateParseError(path, f"story at index {position} has no id")
    item_id = item_id.strip()

    depends_on = _dependency_ids(entry.get("dependsOn"))
    if item_id in depends_on:
        raise StateParseError(path, f"story {item_id!r} depends on itself")

    priority = entry.get("priority")
    if (
        isinstance(priority, bool)
        or not isinstance(priority, int | float)
        or (isinstance(priority, float) and not math.isfinite(priority))
    ):
        if priority is not None:
            logger.warning(
                "Story %s has non-numeric priority %r; sorting it last",
                item_id,
                priority,
            )
        priority = None

    return WorkItem(
        id=item_id,
        title=_optional_str(entry.get("title")) or "",
        priority=priority,
        depends_on=depends_on,
        done=any(entry.get(key) is True for key in _DONE_KEYS),
        description=_optional_str(entry.get("description")) or "",
        acceptance_criteria=_string_list(entry.get("acceptanceCriteria")),
        notes=_optional_str(entry.get("notes")) or "",
        position=position,
        raw=dict(entry),
    )


def _identity_of(raw: dict[str, Any]) -> str | None:
    for key in _IDENTITY_KEYS:
        value = raw.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def _dependency_ids(value: Any) -> tuple[str, ...]:
    """Normalize dependency references; malformed entries stay as ids that never resolve."""

    if not isinstance(value, list):
        return ()
    ids: list[str] = []
    for entry in value:
        if isinstance(entry, str):
            if entry.strip():
                ids.append(entry.strip())
        elif isinstance(entry, int) and not isinstance(entry, bool):
            ids.append(str(entry))
        else:
            ids.append(json.dumps(entry, sort_keys=True))
    return tuple(ids)


def _string_list(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(entry.strip() for entry in value if isinstance(entry, str) and entry.strip())


def _optional_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None
