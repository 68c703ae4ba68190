"""Progress computation and banner rendering."""

from __future__ import annotations

HEAVY_RULE = "═" * 55
LIGHT_RULE = "─" * 55


def percent(complete: int, total: int) -> int:
    """Completion percentage, floored; zero for an empty backlog."""

    if total <= 0:
        return 0
    return (complete * 100) // total


def render_banner(*, iteration: int, max_iterations: int, complete: int, total: int) -> list[str]:
    return [
        "",
        HEAVY_RULE,
        f"  Ralph Iteration {iteration} of {max_iterations}",
        f"  Progress: {complete}/{total} stories complete ({percent(complete, total)}%)",
        HEAVY_RULE,
    ]


def render_next_story(item_id: str, title: str) -> list[str]:
    return [f"  Next story: {item_id} - {title}", LIGHT_RULE]
