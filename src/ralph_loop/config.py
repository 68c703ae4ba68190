"""Runtime configuration for the story loop."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from ralph_loop.scheduler.backend.tools import DEFAULT_MODELS, DEFAULT_TOOL, SUPPORTED_TOOLS

PRD_FILENAME = "prd.json"
PROGRESS_FILENAME = "progress.txt"
ARCHIVE_DIRNAME = "archive"
LAST_BRANCH_FILENAME = ".last-branch"


@dataclass(frozen=True, slots=True)
class Settings:
    """Immutable loop settings resolved once at startup."""

    tool: str = DEFAULT_TOOL
    model: str = DEFAULT_MODELS[DEFAULT_TOOL]
    max_iterations: int = 10
    tasks_dir: Path = Path("tasks")
    prompt_file: Path = Path("prompt.md")
    cooldown_seconds: float = 2.0
    timeout_seconds: int = 3600
    graceful_shutdown_seconds: int = 10
    dry_run: bool = False
    workdir: Path = field(default_factory=Path.cwd)

    @classmethod
    def from_env(  # noqa: PLR0913
        cls,
        *,
        tool: str | None = None,
        model: str | None = None,
        max_iterations: int | None = None,
        tasks_dir: Path | None = None,
        prompt_file: Path | None = None,
        cooldown_seconds: float | None = None,
        timeout_seconds: int | None = None,
        dry_run: bool | None = None,
    ) -> Settings:
        """Resolve settings: explicit argument, then environment, then default."""

        workdir = Path.cwd()
        resolved_tool = (tool or os.getenv("RALPH_TOOL", "") or DEFAULT_TOOL).strip().lower()
        resolved_model = (model or os.getenv("RALPH_MODEL", "")).strip()
        if not resolved_model:
            resolved_model = DEFAULT_MODELS.get(resolved_tool, "")

        return cls(
            tool=resolved_tool,
            model=resolved_model,
            max_iterations=(
                max_iterations
                if max_iterations is not None
                else _env_int("RALPH_MAX_ITERATIONS", 10)
            ),
            tasks_dir=tasks_dir or Path(os.getenv("RALPH_TASKS_DIR", str(workdir / "tasks"))),
            prompt_file=prompt_file
            or Path(os.getenv("RALPH_PROMPT_FILE", str(workdir / "prompt.md"))),
            cooldown_seconds=(
                cooldown_seconds
                if cooldown_seconds is not None
                else _env_float("RALPH_COOLDOWN_SECONDS", 2.0)
            ),
            timeout_seconds=(
                timeout_seconds
                if timeout_seconds is not None
                else _env_int("RALPH_TIMEOUT_SECONDS", 3600)
            ),
            graceful_shutdown_seconds=_env_int("RALPH_GRACEFUL_SHUTDOWN_SECONDS", 10),
            dry_run=dry_run if dry_run is not None else _env_bool("RALPH_DRY_RUN", default=False),
            workdir=workdir,
        )

    @property
    def prd_path(self) -> Path:
        return self.tasks_dir / PRD_FILENAME

    @property
    def progress_path(self) -> Path:
        return self.tasks_dir / PROGRESS_FILENAME

    @property
    def archive_dir(self) -> Path:
        return self.tasks_dir / ARCHIVE_DIRNAME

    @property
    def last_branch_path(self) -> Path:
        return self.tasks_dir / LAST_BRANCH_FILENAME

    def validate(self) -> None:
        """Raise configuration error if loop settings are unusable."""

        if self.tool not in SUPPORTED_TOOLS:
            raise ValueError(
                f"Unknown tool: {self.tool!r}. Valid options: {', '.join(SUPPORTED_TOOLS)}.",
            )
        if not self.model:
            raise ValueError(f"Resolved model is empty for tool={self.tool!r}.")
        if self.max_iterations <= 0:
            raise ValueError("RALPH_MAX_ITERATIONS must be a positive integer.")
        if self.cooldown_seconds < 0:
            raise ValueError("RALPH_COOLDOWN_SECONDS must be >= 0.")
        if self.timeout_seconds < 0:
            raise ValueError("RALPH_TIMEOUT_SECONDS must be >= 0 (0 disables the timeout).")
        if self.graceful_shutdown_seconds < 0:
            raise ValueError("RALPH_GRACEFUL_SHUTDOWN_SECONDS must be >= 0.")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {raw!r}") from error


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as error:
        raise ValueError(f"Invalid numeric value for {name}: {raw!r}") from error


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
