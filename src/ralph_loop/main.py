"""CLI entrypoint for the ralph agent loop."""

import logging
from pathlib import Path

import rich_click as click

from ralph_loop import __version__
from ralph_loop.scheduler.backend import SUPPORTED_TOOLS
from ralph_loop.scheduler.controllers import (
    ArchiveCommand,
    CommandResult,
    LoopCliController,
    RunCommand,
    StatusCommand,
)

click.rich_click.USE_MARKDOWN = True
LOOP_CONTROLLER = LoopCliController()


@click.group()
@click.version_option(version=__version__, prog_name="ralph")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default="warning",
    show_default=True,
    help="Logging level for diagnostics written to stderr.",
)
def ralph(log_level: str) -> None:
    """Long-running AI agent loop over a `tasks/prd.json` user-story backlog.

    Environment variables: `RALPH_TOOL`, `RALPH_MODEL`, `RALPH_TASKS_DIR`,
    `RALPH_PROMPT_FILE`, `RALPH_COOLDOWN_SECONDS`, `RALPH_TIMEOUT_SECONDS`.
    """

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@ralph.command("run")
@click.argument("max_iterations", type=click.IntRange(min=1), required=False, default=None)
@click.argument(
    "tool",
    type=click.Choice(SUPPORTED_TOOLS, case_sensitive=False),
    required=False,
    default=None,
)
@click.option(
    "--model",
    default=None,
    help="Model to use (overrides RALPH_MODEL and tool defaults).",
)
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="Show what would be executed without running.",
)
@click.option(
    "--tasks-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding prd.json, progress.txt and archives. Defaults to ./tasks.",
)
@click.option(
    "--prompt-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Instruction prompt handed to the agent. Defaults to ./prompt.md.",
)
@click.option(
    "--cooldown-seconds",
    type=click.FloatRange(min=0),
    default=None,
    help="Pause between iterations. Defaults to 2.",
)
@click.option(
    "--timeout-seconds",
    type=click.IntRange(min=0),
    default=None,
    help="Wall-clock limit for one agent attempt; 0 disables. Defaults to 3600.",
)
def run(  # noqa: PLR0913
    max_iterations: int | None,
    tool: str | None,
    model: str | None,
    dry_run: bool,
    tasks_dir: Path | None,
    prompt_file: Path | None,
    cooldown_seconds: float | None,
    timeout_seconds: int | None,
) -> None:
    """Run the agent loop until every story passes (default 10 iterations, tool opencode).

    Exits 0 when all stories pass and 1 when the backlog is missing, empty,
    blocked, or the iteration budget runs out. The agent is expected to be the
    only writer of `prd.json` while the loop runs.
    """

    result = LOOP_CONTROLLER.run(
        RunCommand(
            max_iterations=max_iterations,
            tool=tool.lower() if tool else None,
            model=model,
            dry_run=dry_run,
            tasks_dir=tasks_dir,
            prompt_file=prompt_file,
            cooldown_seconds=cooldown_seconds,
            timeout_seconds=timeout_seconds,
        ),
        emit=click.echo,
    )
    _finish(result, failure_message="Ralph run failed.")


@ralph.command("status")
@click.option(
    "--tasks-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding prd.json. Defaults to ./tasks.",
)
def status(tasks_dir: Path | None) -> None:
    """Show backlog progress and the next eligible story without running anything."""

    _finish(
        LOOP_CONTROLLER.status(StatusCommand(tasks_dir=tasks_dir)),
        failure_message="Could not read backlog.",
    )


@ralph.command("archive")
@click.option(
    "--tasks-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding prd.json and progress.txt. Defaults to ./tasks.",
)
def archive(tasks_dir: Path | None) -> None:
    """Archive the previous run if the backlog branch changed."""

    _finish(
        LOOP_CONTROLLER.archive(ArchiveCommand(tasks_dir=tasks_dir)),
        failure_message="Archive failed.",
    )


def _finish(result: CommandResult, *, failure_message: str) -> None:
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException(failure_message)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    ralph()
