"""Control loop that dispatches one eligible story per iteration."""

from __future__ import annotations

import logging
import signal
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from ralph_loop.scheduler.backend.base import ExecutorInvocation, ExecutorRequest, StoryExecutor
from ralph_loop.scheduler.errors import (
    BlockedError,
    EmptyBacklogError,
    ExecutorInvocationFailure,
    MaxIterationsExceeded,
    RunCancelled,
)
from ralph_loop.scheduler.models import RunSummary, SchedulerState, WorkItemSet
from ralph_loop.scheduler.progress import render_banner, render_next_story
from ralph_loop.scheduler.resolver import blocked_report, next_eligible
from ralph_loop.scheduler.store import WorkItemStore

logger = logging.getLogger(__name__)


class StoryScheduler:
    """Observes the backlog file and dispatches stories to an external agent.

    The scheduler never marks stories as done. The agent does that by editing
    the backlog, and success is only inferred by reloading it at the start of
    the next iteration. The backlog is read without locking, so the agent is
    assumed to be the only writer while the loop runs.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        store: WorkItemStore,
        executor: StoryExecutor,
        invocation_builder: Callable[[ExecutorRequest], ExecutorInvocation],
        max_iterations: int,
        cooldown_seconds: float = 2.0,
        timeout_seconds: int = 3600,
        dry_run: bool = False,
        emit: Callable[[str], None] | None = None,
    ) -> None:
        self.store = store
        self.executor = executor
        self.invocation_builder = invocation_builder
        self.max_iterations = max_iterations
        self.cooldown_seconds = cooldown_seconds
        self.timeout_seconds = timeout_seconds
        self.dry_run = dry_run
        self._emit = emit or (lambda _line: None)
        self.state = SchedulerState.IDLE
        self._stop_requested = False
        self._stop_signal_name: str | None = None

    def run(self) -> RunSummary:
        """Loop until every story passes; raise on any fatal condition."""

        summary = RunSummary(state=self.state)
        with self._signal_handlers():
            for iteration in range(1, self.max_iterations + 1):
                self._raise_if_stopped(summary)
                summary.iterations = iteration
                if self._run_iteration(iteration=iteration, summary=summary):
                    return summary

            self._transition(SchedulerState.MAX_ITERATIONS_EXCEEDED, summary)
            raise MaxIterationsExceeded(self.max_iterations)

    def request_stop(self, *, signal_name: str | None = None) -> None:
        if not self._stop_requested:
            logger.info("Stop requested (%s)", signal_name or "api")
        self._stop_requested = True
        self._stop_signal_name = signal_name

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    def _run_iteration(self, *, iteration: int, summary: RunSummary) -> bool:
        self._transition(SchedulerState.ITERATION_START, summary)
        items = self.store.load()
        total, complete = items.counts()
        summary.total, summary.complete = total, complete
        self._emit_lines(
            render_banner(
                iteration=iteration,
                max_iterations=self.max_iterations,
                complete=complete,
                total=total,
            ),
        )

        if total == 0:
            self._transition(SchedulerState.EMPTY_BACKLOG, summary)
            raise EmptyBacklogError(self.store.path)
        if complete == total:
            self._transition(SchedulerState.COMPLETED, summary)
            self._emit_lines(["", "Ralph completed all tasks!"])
            return True

        self._transition(SchedulerState.SELECTING, summary)
        request = self._select(items, summary)
        invocation = self.invocation_builder(request)

        if self.dry_run:
            self._emit_lines(
                [
                    "[DRY RUN] Would execute:",
                    f"  {invocation.render()}",
                    "",
                    "[DRY RUN] After execution, would check if story "
                    f"{request.item_id} was marked as complete",
                ],
            )
            return False

        self._transition(SchedulerState.DISPATCHING, summary)
        self._dispatch(request, invocation, summary)
        self._raise_if_stopped(summary)

        self._transition(SchedulerState.RECONCILING, summary)
        self._sleep_with_stop(self.cooldown_seconds)
        return False

    def _select(self, items: WorkItemSet, summary: RunSummary) -> ExecutorRequest:
        item_id = next_eligible(items)
        item = items.get(item_id) if item_id is not None else None
        if item is None:
            self._transition(SchedulerState.BLOCKED, summary)
            raise BlockedError(blocked_report(items))
        self._emit_lines(render_next_story(item.id, item.title))
        return ExecutorRequest(item_id=item.id, item_title=item.title)

    def _dispatch(
        self,
        request: ExecutorRequest,
        invocation: ExecutorInvocation,
        summary: RunSummary,
    ) -> None:
        summary.dispatched += 1
        summary.dispatched_ids.append(request.item_id)
        logger.info("Dispatching story %s to %s", request.item_id, invocation.binary)
        try:
            result = self.executor.run(
                invocation,
                timeout_seconds=self.timeout_seconds,
                shutdown_requested=lambda: self._stop_requested,
            )
        except ExecutorInvocationFailure as error:
            summary.executor_failures += 1
            logger.warning("Agent attempt for story %s failed: %s", request.item_id, error)
            return
        logger.info(
            "Agent attempt for story %s finished in %.1fs",
            request.item_id,
            result.elapsed_seconds,
        )

    def _transition(self, state: SchedulerState, summary: RunSummary) -> None:
        logger.debug("Scheduler state %s -> %s", self.state.value, state.value)
        self.state = state
        summary.state = state

    def _raise_if_stopped(self, summary: RunSummary) -> None:
        if not self._stop_requested:
            return
        self._transition(SchedulerState.CANCELLED, summary)
        raise RunCancelled(self._stop_signal_name)

    def _emit_lines(self, lines: list[str]) -> None:
        for line in lines:
            self._emit(line)

    def _sleep_with_stop(self, seconds: float) -> None:
        deadline = time.monotonic() + seconds
        while not self._stop_requested and time.monotonic() < deadline:
            time.sleep(min(0.1, max(0.0, deadline - time.monotonic())))

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        if not hasattr(signal, "SIGINT"):
            yield
            return

        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)

        def _handler(signum: int, _: object | None) -> None:
            try:
                name = signal.Signals(signum).name
            except ValueError:
                name = str(signum)
            self.request_stop(signal_name=name)

        installed = False
        try:
            signal.signal(signal.SIGINT, _handler)
            signal.signal(signal.SIGTERM, _handler)
            installed = True
        except ValueError:
            # Signal handlers can only be installed in main thread.
            pass
        try:
            yield
        finally:
            if installed:
                signal.signal(signal.SIGINT, original_sigint)
                signal.signal(signal.SIGTERM, original_sigterm)
