"""Invocation builders for the supported agent CLIs."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from ralph_loop.scheduler.backend.base import ExecutorInvocation, ExecutorRequest

logger = logging.getLogger(__name__)

SUPPORTED_TOOLS = ("amp", "opencode", "claude", "copilot")
DEFAULT_TOOL = "opencode"
DEFAULT_MODELS = {
    "opencode": "litellm/github-copilot/claude-opus-4.5",
    "claude": "claude-opus-4-5",
    "amp": "github-copilot/claude-opus-4.5",
    "copilot": "github-copilot/claude-opus-4.5",
}

OPENCODE_PERMISSION = json.dumps({"*": "allow"})


def build_invocation(
    *,
    tool: str,
    model: str,
    request: ExecutorRequest,
    prompt_file: Path,
    workdir: Path,
) -> ExecutorInvocation:
    """Build the argv for one story attempt with the selected tool.

    The instruction prompt is passed by path for opencode and piped on stdin
    for the other tools, so it is only read here for stdin-based tools.
    """

    task = request.task_text
    if tool == "opencode":
        return ExecutorInvocation(
            binary="opencode",
            args=("run", "--model", model, "--agent", "build", task, "--file", str(prompt_file)),
            env={"OPENCODE_PERMISSION": OPENCODE_PERMISSION},
            cwd=workdir,
        )
    if tool == "amp":
        return ExecutorInvocation(
            binary="amp",
            args=("--model", model, "--dangerously-allow-all", task),
            stdin_payload=_read_prompt(prompt_file),
            stdin_source=prompt_file,
            cwd=workdir,
        )
    if tool == "claude":
        return ExecutorInvocation(
            binary="claude",
            args=("-p", "--model", model, "--dangerously-skip-permissions", task),
            stdin_payload=_read_prompt(prompt_file),
            stdin_source=prompt_file,
            cwd=workdir,
        )
    if tool == "copilot":
        return ExecutorInvocation(
            binary="copilot",
            args=("-p", "--model", model, "--add-dir", str(workdir), "--allow-all", task),
            stdin_payload=_read_prompt(prompt_file),
            stdin_source=prompt_file,
            cwd=workdir,
        )
    raise ValueError(f"Unknown tool: {tool!r}. Valid options: {', '.join(SUPPORTED_TOOLS)}.")


def _read_prompt(prompt_file: Path) -> bytes | None:
    try:
        return prompt_file.read_bytes()
    except FileNotFoundError:
        return None
    except OSError as error:
        logger.warning("Could not read prompt file %s: %s", prompt_file, error)
        return None
