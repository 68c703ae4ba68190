"""Local demo agent for executor integration tests."""

from __future__ import annotations

import argparse
import json
import re
import sys
from datetime import datetime
from pathlib import Path

_TASK_PATTERN = re.compile(r"^Execute story (\S+?):")


def main(argv: list[str] | None = None) -> int:
    """Mark one story as passing and append a progress entry.

    Unknown arguments are ignored so the agent can stand in for a real agent
    CLI; the story id is then taken from the ``Execute story <id>: ...`` task.
    """

    parser = argparse.ArgumentParser(allow_abbrev=False)
    parser.add_argument("--prd", required=True)
    parser.add_argument("--story-id", default=None)
    parser.add_argument("--progress", default=None)
    parser.add_argument("--exit-code", type=int, default=0)
    parser.add_argument("--no-mark", action="store_true")
    args, extras = parser.parse_known_args(argv)
    story_id = args.story_id or _story_id_from_task(extras)
    if story_id is None:
        parser.error("--story-id is required when no task text is given")

    prompt = sys.stdin.read() if not sys.stdin.isatty() else ""

    prd_path = Path(args.prd)
    if not args.no_mark:
        payload = json.loads(prd_path.read_text("utf-8"))
        stories = payload.get("userStories", payload.get("items", []))
        for story in stories:
            if story.get("id") == story_id:
                story["passes"] = True
        prd_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), "utf-8")

    if args.progress:
        with Path(args.progress).open("a", encoding="utf-8") as handle:
            handle.write(
                f"\n## {datetime.now().astimezone().isoformat()} - {story_id}\n"
                f"- echo_agent (prompt chars: {len(prompt)})\n---\n",
            )
    return args.exit_code


def _story_id_from_task(tokens: list[str]) -> str | None:
    for token in tokens:
        match = _TASK_PATTERN.match(token)
        if match is not None:
            return match.group(1)
    return None


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
