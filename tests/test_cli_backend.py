from __future__ import annotations

import json
import sys
from pathlib import Path

import allure
import pytest

from ralph_loop.scheduler.backend import (
    ExecutorInvocation,
    ExecutorRequest,
    SubprocessExecutor,
    build_invocation,
)
from ralph_loop.scheduler.errors import ExecutorInvocationFailure

pytestmark = [
    allure.epic("Story Scheduler"),
    allure.feature("Agent Invocation"),
]

_REQUEST = ExecutorRequest(item_id="US-1", item_title='Quote "me" && $(echo pwned)')


def _build(tool: str, tmp_path: Path, *, prompt: bool = True) -> ExecutorInvocation:
    prompt_file = tmp_path / "prompt.md"
    if prompt:
        prompt_file.write_text("Follow the instructions.", "utf-8")
    return build_invocation(
        tool=tool,
        model="model-x",
        request=_REQUEST,
        prompt_file=prompt_file,
        workdir=tmp_path,
    )


def test_opencode_passes_prompt_by_file_and_sets_permission_env(tmp_path: Path) -> None:
    invocation = _build("opencode", tmp_path)

    assert invocation.argv == [
        "opencode",
        "run",
        "--model",
        "model-x",
        "--agent",
        "build",
        'Execute story US-1: Quote "me" && $(echo pwned)',
        "--file",
        str(tmp_path / "prompt.md"),
    ]
    assert json.loads(invocation.env["OPENCODE_PERMISSION"]) == {"*": "allow"}
    assert invocation.stdin_payload is None


@pytest.mark.parametrize(
    ("tool", "expected_flags"),
    [
        ("amp", ["--model", "model-x", "--dangerously-allow-all"]),
        ("claude", ["-p", "--model", "model-x", "--dangerously-skip-permissions"]),
    ],
)
def test_stdin_tools_pipe_prompt(tool: str, expected_flags: list[str], tmp_path: Path) -> None:
    invocation = _build(tool, tmp_path)

    assert invocation.binary == tool
    assert list(invocation.args[:-1]) == expected_flags
    assert invocation.args[-1] == _REQUEST.task_text
    assert invocation.stdin_payload == b"Follow the instructions."


def test_copilot_adds_workdir(tmp_path: Path) -> None:
    invocation = _build("copilot", tmp_path)

    assert invocation.args == (
        "-p",
        "--model",
        "model-x",
        "--add-dir",
        str(tmp_path),
        "--allow-all",
        _REQUEST.task_text,
    )


def test_missing_prompt_file_yields_empty_stdin(tmp_path: Path) -> None:
    invocation = _build("claude", tmp_path, prompt=False)

    assert invocation.stdin_payload is None


def test_unreadable_prompt_path_yields_empty_stdin(tmp_path: Path, caplog) -> None:
    prompt_dir = tmp_path / "prompt.md"
    prompt_dir.mkdir()

    with caplog.at_level("WARNING"):
        invocation = _build("amp", tmp_path, prompt=False)

    assert invocation.stdin_payload is None
    assert "Could not read prompt file" in caplog.text


def test_unknown_tool_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="Unknown tool"):
        _build("cursor", tmp_path)


def test_render_is_display_only_quoting(tmp_path: Path) -> None:
    rendered = _build("claude", tmp_path).render()

    assert rendered.startswith(f"cat {tmp_path / 'prompt.md'} | claude -p --model model-x")
    assert "'Execute story US-1: Quote \"me\" && $(echo pwned)'" in rendered


def test_executor_feeds_stdin_and_succeeds(tmp_path: Path) -> None:
    out_path = tmp_path / "stdin.txt"
    invocation = ExecutorInvocation(
        binary=sys.executable,
        args=(
            "-c",
            "import sys, pathlib; pathlib.Path(sys.argv[1]).write_text(sys.stdin.read())",
            str(out_path),
        ),
        stdin_payload=b"prompt body",
    )

    result = SubprocessExecutor().run(invocation, timeout_seconds=30)

    assert result.exit_code == 0
    assert result.timed_out is False
    assert out_path.read_text() == "prompt body"


def test_executor_passes_extra_env(tmp_path: Path) -> None:
    out_path = tmp_path / "env.txt"
    invocation = ExecutorInvocation(
        binary=sys.executable,
        args=(
            "-c",
            "import os, sys, pathlib; "
            "pathlib.Path(sys.argv[1]).write_text(os.environ['RALPH_TEST_VALUE'])",
            str(out_path),
        ),
        env={"RALPH_TEST_VALUE": "ok"},
    )

    SubprocessExecutor().run(invocation, timeout_seconds=30)

    assert out_path.read_text() == "ok"


def test_executor_raises_on_nonzero_exit() -> None:
    invocation = ExecutorInvocation(binary=sys.executable, args=("-c", "raise SystemExit(3)"))

    with pytest.raises(ExecutorInvocationFailure) as excinfo:
        SubprocessExecutor().run(invocation, timeout_seconds=30)

    assert excinfo.value.exit_code == 3
    assert excinfo.value.timed_out is False


def test_executor_raises_on_missing_binary(tmp_path: Path) -> None:
    invocation = ExecutorInvocation(binary=str(tmp_path / "no-such-agent"))

    with pytest.raises(ExecutorInvocationFailure, match="not found"):
        SubprocessExecutor().run(invocation, timeout_seconds=30)


def test_executor_terminates_on_timeout() -> None:
    invocation = ExecutorInvocation(
        binary=sys.executable,
        args=("-c", "import time; time.sleep(30)"),
    )

    with pytest.raises(ExecutorInvocationFailure) as excinfo:
        SubprocessExecutor(poll_interval_seconds=0.05).run(invocation, timeout_seconds=1)

    assert excinfo.value.timed_out is True


def test_executor_stops_on_shutdown_request() -> None:
    invocation = ExecutorInvocation(
        binary=sys.executable,
        args=("-c", "import time; time.sleep(30)"),
    )
    executor = SubprocessExecutor(graceful_shutdown_seconds=0, poll_interval_seconds=0.05)

    with pytest.raises(ExecutorInvocationFailure) as excinfo:
        executor.run(invocation, timeout_seconds=0, shutdown_requested=lambda: True)

    assert excinfo.value.timed_out is True
