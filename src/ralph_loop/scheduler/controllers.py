"""Controllers for loop CLI commands."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from functools import partial
from pathlib import Path

from ralph_loop.config import Settings
from ralph_loop.scheduler.archive import ArchiveRecord, RunArchiver
from ralph_loop.scheduler.backend import (
    ExecutorInvocation,
    ExecutorRequest,
    SubprocessExecutor,
    build_invocation,
)
from ralph_loop.scheduler.errors import (
    BlockedError,
    MaxIterationsExceeded,
    MissingStateError,
    SchedulerError,
)
from ralph_loop.scheduler.loop import StoryScheduler
from ralph_loop.scheduler.models import RunSummary
from ralph_loop.scheduler.progress import percent, render_next_story
from ralph_loop.scheduler.resolver import blocked_report, next_eligible, render_blocked_lines
from ralph_loop.scheduler.store import WorkItemStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RunCommand:
    """CLI input for the agent loop."""

    max_iterations: int | None
    tool: str | None
    model: str | None
    dry_run: bool
    tasks_dir: Path | None = None
    prompt_file: Path | None = None
    cooldown_seconds: float | None = None
    timeout_seconds: int | None = None


@dataclass(slots=True)
class StatusCommand:
    """CLI input for backlog status."""

    tasks_dir: Path | None


@dataclass(slots=True)
class ArchiveCommand:
    """CLI input for the standalone archive check."""

    tasks_dir: Path | None


@dataclass(slots=True)
class CommandResult:
    """Lines to render in CLI plus overall outcome."""

    lines: list[str]
    success: bool
    error: str | None = None
    summary: RunSummary | None = None
    archive: ArchiveRecord | None = None


class LoopCliController:
    """Coordinates archiving, validation, and the scheduler loop."""

    def run(self, command: RunCommand, *, emit: Callable[[str], None]) -> CommandResult:
        try:
            settings = Settings.from_env(
                tool=command.tool,
                model=command.model,
                max_iterations=command.max_iterations,
                tasks_dir=command.tasks_dir,
                prompt_file=command.prompt_file,
                cooldown_seconds=command.cooldown_seconds,
                timeout_seconds=command.timeout_seconds,
                dry_run=command.dry_run or None,
            )
            settings.validate()
        except ValueError as error:
            return CommandResult(lines=[f"Error: {error}"], success=False, error=str(error))

        store = WorkItemStore(settings.prd_path)
        archiver = _archiver(settings)
        try:
            record = archiver.prepare(store)
        except OSError as error:
            return _state_io_failure(error)
        if record is not None:
            for line in _archive_lines(record):
                emit(line)

        if not store.exists():
            message = f"{settings.prd_path} not found."
            return CommandResult(
                lines=[
                    f"Error: {message}",
                    "Create a prd.json file in the tasks/ directory before running Ralph.",
                ],
                success=False,
                error=message,
                archive=record,
            )
        try:
            archiver.ensure_progress_log()
        except OSError as error:
            return _state_io_failure(error, archive=record)

        emit(
            f"Starting Ralph - Max iterations: {settings.max_iterations}, "
            f"Tool: {settings.tool}, Model: {settings.model}",
        )
        if settings.dry_run:
            emit("  Dry run: ENABLED (no commands will be executed)")
        if not settings.prompt_file.is_file():
            logger.warning("Prompt file not found: %s", settings.prompt_file)

        scheduler = StoryScheduler(
            store=store,
            executor=SubprocessExecutor(
                graceful_shutdown_seconds=settings.graceful_shutdown_seconds,
            ),
            invocation_builder=partial(
                _build_request_invocation,
                settings=settings,
            ),
            max_iterations=settings.max_iterations,
            cooldown_seconds=settings.cooldown_seconds,
            timeout_seconds=settings.timeout_seconds,
            dry_run=settings.dry_run,
            emit=emit,
        )
        try:
            summary = scheduler.run()
        except SchedulerError as error:
            return CommandResult(
                lines=_failure_lines(error, settings=settings),
                success=False,
                error=str(error),
                archive=record,
            )
        return CommandResult(lines=[], success=True, summary=summary, archive=record)

    def status(self, command: StatusCommand) -> CommandResult:
        """Read-only view of progress and the next eligible story."""

        try:
            settings = Settings.from_env(tasks_dir=command.tasks_dir)
            items = WorkItemStore(settings.prd_path).load()
        except (SchedulerError, ValueError) as error:
            return CommandResult(lines=[f"Error: {error}"], success=False, error=str(error))

        total, complete = items.counts()
        lines: list[str] = []
        if items.project:
            lines.append(f"Project: {items.project}")
        lines.append(f"Branch: {items.run_identity or '-'}")
        lines.append(
            f"Progress: {complete}/{total} stories complete ({percent(complete, total)}%)",
        )
        if total == 0:
            lines.append("No stories found.")
            return CommandResult(lines=lines, success=True)
        if complete == total:
            lines.append("All stories complete.")
            return CommandResult(lines=lines, success=True)

        item_id = next_eligible(items)
        item = items.get(item_id) if item_id is not None else None
        if item is None:
            lines.append("No eligible stories found.")
            lines.extend(render_blocked_lines(blocked_report(items)))
            return CommandResult(lines=lines, success=True)
        lines.extend(render_next_story(item.id, item.title))
        waiting = [entry for entry in blocked_report(items) if entry.pending]
        for entry in waiting:
            lines.append(f"  waiting {entry.item_id}: [{', '.join(entry.pending)}]")
        return CommandResult(lines=lines, success=True)

    def archive(self, command: ArchiveCommand) -> CommandResult:
        try:
            settings = Settings.from_env(tasks_dir=command.tasks_dir)
        except ValueError as error:
            return CommandResult(lines=[f"Error: {error}"], success=False, error=str(error))
        try:
            record = _archiver(settings).prepare(WorkItemStore(settings.prd_path))
        except OSError as error:
            return _state_io_failure(error)
        if record is None:
            return CommandResult(lines=["Nothing to archive."], success=True)
        return CommandResult(lines=_archive_lines(record), success=True, archive=record)


def _build_request_invocation(
    request: ExecutorRequest,
    *,
    settings: Settings,
) -> ExecutorInvocation:
    return build_invocation(
        tool=settings.tool,
        model=settings.model,
        request=request,
        prompt_file=settings.prompt_file,
        workdir=settings.workdir,
    )


def _archiver(settings: Settings) -> RunArchiver:
    return RunArchiver(
        prd_path=settings.prd_path,
        progress_path=settings.progress_path,
        archive_dir=settings.archive_dir,
        last_branch_path=settings.last_branch_path,
    )


def _state_io_failure(error: OSError, *, archive: ArchiveRecord | None = None) -> CommandResult:
    message = f"Could not update run state files: {error}"
    return CommandResult(lines=[f"Error: {message}"], success=False, error=message, archive=archive)


def _archive_lines(record: ArchiveRecord) -> list[str]:
    lines = [
        f"Archiving previous run: {record.previous_identity}",
        f"   Archived to: {record.folder}",
    ]
    for path in record.failed:
        lines.append(f"   Could not archive: {path}")
    return lines


def _failure_lines(error: SchedulerError, *, settings: Settings) -> list[str]:
    if isinstance(error, BlockedError):
        return ["", f"Error: {error}", "", *render_blocked_lines(error.blocked)]
    if isinstance(error, MaxIterationsExceeded):
        return [
            "",
            f"Ralph reached max iterations ({error.max_iterations}) "
            "without completing all tasks.",
            f"Check {settings.progress_path} for status.",
        ]
    if isinstance(error, MissingStateError):
        return [
            f"Error: {error}",
            "Create a prd.json file in the tasks/ directory before running Ralph.",
        ]
    return ["", f"Error: {error}"]
