from __future__ import annotations

import shutil
from datetime import UTC, datetime
from pathlib import Path

import allure
from conftest import story

from ralph_loop.scheduler.archive import RunArchiver, archive_folder_name
from ralph_loop.scheduler.store import WorkItemStore

pytestmark = [
    allure.epic("Story Scheduler"),
    allure.feature("Run Archiving"),
]

_NOW = datetime(2026, 10, 18, 9, 30, tzinfo=UTC)


def _archiver(tasks_dir: Path) -> RunArchiver:
    return RunArchiver(
        prd_path=tasks_dir / "prd.json",
        progress_path=tasks_dir / "progress.txt",
        archive_dir=tasks_dir / "archive",
        last_branch_path=tasks_dir / ".last-branch",
        now=lambda: _NOW,
    )


def test_identity_change_archives_state_and_resets_log(tasks_dir: Path, write_prd) -> None:
    write_prd([story("US-1")], branch="ralph/feature-y")
    (tasks_dir / "progress.txt").write_text("# Ralph Progress Log\nold entry\n", "utf-8")
    archiver = _archiver(tasks_dir)

    record = archiver.maybe_archive("ralph/feature-y", "ralph/feature-x")

    assert record is not None
    assert record.folder == tasks_dir / "archive" / "2026-10-18-feature-x"
    assert (record.folder / "prd.json").is_file()
    assert (record.folder / "progress.txt").read_text("utf-8").endswith("old entry\n")
    assert record.failed == ()
    log = (tasks_dir / "progress.txt").read_text("utf-8")
    assert log.startswith("# Ralph Progress Log\nStarted: ")
    assert "2026" in log
    assert "old entry" not in log


def test_same_identity_is_a_noop(tasks_dir: Path) -> None:
    archiver = _archiver(tasks_dir)

    assert archiver.maybe_archive("ralph/a", "ralph/a") is None
    assert not (tasks_dir / "archive").exists()


def test_missing_identity_is_a_noop(tasks_dir: Path) -> None:
    archiver = _archiver(tasks_dir)

    assert archiver.maybe_archive(None, "ralph/a") is None
    assert archiver.maybe_archive("ralph/a", None) is None
    assert archiver.maybe_archive("", "ralph/a") is None
    assert not (tasks_dir / "archive").exists()


def test_only_existing_files_are_copied(tasks_dir: Path, write_prd) -> None:
    write_prd([story("US-1")])

    record = _archiver(tasks_dir).maybe_archive("ralph/new", "ralph/old")

    assert record is not None
    assert [path.name for path in record.copied] == ["prd.json"]


def test_copy_failure_is_recorded_not_raised(tasks_dir: Path, write_prd, monkeypatch) -> None:
    write_prd([story("US-1")])
    (tasks_dir / "progress.txt").write_text("log\n", "utf-8")
    real_copy = shutil.copy2

    def _flaky_copy(source, target):
        if Path(source).name == "prd.json":
            raise PermissionError("denied")
        return real_copy(source, target)

    monkeypatch.setattr(shutil, "copy2", _flaky_copy)

    record = _archiver(tasks_dir).maybe_archive("ralph/new", "ralph/old")

    assert record is not None
    assert record.failed == (tasks_dir / "prd.json",)
    assert [path.name for path in record.copied] == ["progress.txt"]


def test_prepare_records_current_identity(tasks_dir: Path, write_prd) -> None:
    write_prd([story("US-1")], branch="ralph/feature-x")
    archiver = _archiver(tasks_dir)

    assert archiver.prepare(WorkItemStore(tasks_dir / "prd.json")) is None
    assert (tasks_dir / ".last-branch").read_text("utf-8").strip() == "ralph/feature-x"

    write_prd([story("US-1")], branch="ralph/feature-y")
    record = archiver.prepare(WorkItemStore(tasks_dir / "prd.json"))

    assert record is not None
    assert record.previous_identity == "ralph/feature-x"
    assert record.folder.name == "2026-10-18-feature-x"
    assert (tasks_dir / ".last-branch").read_text("utf-8").strip() == "ralph/feature-y"


def test_prepare_without_backlog_does_nothing(tasks_dir: Path) -> None:
    (tasks_dir / ".last-branch").write_text("ralph/old\n", "utf-8")

    assert _archiver(tasks_dir).prepare(WorkItemStore(tasks_dir / "prd.json")) is None
    assert (tasks_dir / ".last-branch").read_text("utf-8").strip() == "ralph/old"


def test_archive_folder_name_strips_namespace_prefix() -> None:
    assert archive_folder_name("ralph/feature-x", day="2026-01-02") == "2026-01-02-feature-x"
    assert archive_folder_name("feature/x", day="2026-01-02") == "2026-01-02-feature-x"
    assert archive_folder_name("main", day="2026-01-02") == "2026-01-02-main"


def test_ensure_progress_log_keeps_existing_log(tasks_dir: Path) -> None:
    archiver = _archiver(tasks_dir)
    archiver.ensure_progress_log()
    first = (tasks_dir / "progress.txt").read_text("utf-8")
    (tasks_dir / "progress.txt").write_text(first + "entry\n", "utf-8")

    archiver.ensure_progress_log()

    assert (tasks_dir / "progress.txt").read_text("utf-8").endswith("entry\n")
