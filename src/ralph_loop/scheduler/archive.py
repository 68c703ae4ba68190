"""Archive the previous run when the backlog switches to a new branch."""

from __future__ import annotations

import logging
import shutil
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from ralph_loop.scheduler.errors import ArchiveIOFailure
from ralph_loop.scheduler.store import WorkItemStore

logger = logging.getLogger(__name__)

IDENTITY_PREFIX = "ralph/"
PROGRESS_HEADER = "# Ralph Progress Log"


@dataclass(frozen=True, slots=True)
class ArchiveRecord:
    """Snapshot of a retired run."""

    folder: Path
    previous_identity: str
    copied: tuple[Path, ...]
    failed: tuple[Path, ...]


def archive_folder_name(previous_identity: str, *, day: str) -> str:
    stripped = previous_identity.removeprefix(IDENTITY_PREFIX).strip("/") or previous_identity
    return f"{day}-{stripped.replace('/', '-')}"


class RunArchiver:
    """One-shot startup check that retires state left by a different branch."""

    def __init__(
        self,
        *,
        prd_path: Path,
        progress_path: Path,
        archive_dir: Path,
        last_branch_path: Path,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.prd_path = prd_path
        self.progress_path = progress_path
        self.archive_dir = archive_dir
        self.last_branch_path = last_branch_path
        self._now = now or (lambda: datetime.now().astimezone())

    def prepare(self, store: WorkItemStore) -> ArchiveRecord | None:
        """Archive if the branch changed, then remember the current branch."""

        current_identity = store.read_run_identity()
        record = self.maybe_archive(current_identity, self.read_last_identity())
        if current_identity:
            self.last_branch_path.parent.mkdir(parents=True, exist_ok=True)
            self.last_branch_path.write_text(current_identity + "\n", "utf-8")
        return record

    def read_last_identity(self) -> str | None:
        try:
            value = self.last_branch_path.read_text("utf-8").strip()
        except (OSError, UnicodeDecodeError):
            return None
        return value or None

    def maybe_archive(
        self,
        current_identity: str | None,
        last_identity: str | None,
    ) -> ArchiveRecord | None:
        if not current_identity or not last_identity or current_identity == last_identity:
            return None

        folder = self.archive_dir / archive_folder_name(
            last_identity,
            day=self._now().strftime("%Y-%m-%d"),
        )
        logger.info("Archiving previous run: %s", last_identity)
        folder.mkdir(parents=True, exist_ok=True)

        copied: list[Path] = []
        failed: list[Path] = []
        for source in (self.prd_path, self.progress_path):
            if not source.is_file():
                continue
            try:
                copied.append(_copy_into(source, folder))
            except ArchiveIOFailure as error:
                logger.warning("%s", error)
                failed.append(source)

        self.init_progress_log()
        logger.info("Archived to: %s", folder)
        return ArchiveRecord(
            folder=folder,
            previous_identity=last_identity,
            copied=tuple(copied),
            failed=tuple(failed),
        )

    def init_progress_log(self) -> None:
        self.progress_path.parent.mkdir(parents=True, exist_ok=True)
        self.progress_path.write_text(
            f"{PROGRESS_HEADER}\nStarted: {self._now().strftime('%a %b %d %H:%M:%S %Z %Y')}\n---\n",
            "utf-8",
        )

    def ensure_progress_log(self) -> None:
        if not self.progress_path.exists():
            self.init_progress_log()


def _copy_into(source: Path, folder: Path) -> Path:
    target = folder / source.name
    try:
        shutil.copy2(source, target)
    except OSError as error:
        raise ArchiveIOFailure(source, str(error)) from error
    return target
