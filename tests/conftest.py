"""Shared test fixtures."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest


def story(
    story_id: str,
    *,
    priority: int | None = 1,
    depends_on: list[str] | None = None,
    passes: bool = False,
    title: str | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": story_id,
        "title": title if title is not None else f"Story {story_id}",
        "passes": passes,
    }
    if priority is not None:
        payload["priority"] = priority
    if depends_on is not None:
        payload["dependsOn"] = depends_on
    return payload


@pytest.fixture()
def tasks_dir(tmp_path: Path) -> Path:
    path = tmp_path / "tasks"
    path.mkdir()
    return path


@pytest.fixture()
def write_prd(tasks_dir: Path) -> Callable[..., Path]:
    """Write a prd.json into the tasks dir and return its path."""

    def _write(stories: list[dict[str, Any]], *, branch: str | None = "ralph/feature-x") -> Path:
        payload: dict[str, Any] = {"project": "Demo", "userStories": stories}
        if branch is not None:
            payload["branchName"] = branch
        path = tasks_dir / "prd.json"
        path.write_text(json.dumps(payload, indent=2), "utf-8")
        return path

    return _write
