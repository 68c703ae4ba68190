"""Subprocess-based executor for agent CLIs."""

from __future__ import annotations

import logging
import os
import subprocess
import tempfile
import time
from collections.abc import Callable

from ralph_loop.scheduler.backend.base import ExecutorInvocation, ExecutorResult
from ralph_loop.scheduler.errors import ExecutorInvocationFailure

logger = logging.getLogger(__name__)

TIMEOUT_EXIT_CODE = 124


class SubprocessExecutor:
    """Spawn the agent from a typed argv and wait for it with a wall-clock bound."""

    def __init__(
        self,
        *,
        graceful_shutdown_seconds: int = 10,
        poll_interval_seconds: float = 0.1,
    ) -> None:
        self.graceful_shutdown_seconds = graceful_shutdown_seconds
        self.poll_interval_seconds = poll_interval_seconds

    def run(
        self,
        invocation: ExecutorInvocation,
        *,
        timeout_seconds: int,
        shutdown_requested: Callable[[], bool] | None = None,
    ) -> ExecutorResult:
        env = os.environ.copy()
        env.update(invocation.env)

        with tempfile.TemporaryFile() as stdin_handle:
            if invocation.stdin_payload is not None:
                stdin_handle.write(invocation.stdin_payload)
                stdin_handle.seek(0)
            stdin = stdin_handle if invocation.stdin_payload is not None else subprocess.DEVNULL
            try:
                process = subprocess.Popen(  # noqa: S603
                    invocation.argv,
                    env=env,
                    cwd=invocation.cwd,
                    stdin=stdin,
                )
            except FileNotFoundError as error:
                raise ExecutorInvocationFailure(
                    f"Agent command not found: {invocation.binary}",
                ) from error
            except OSError as error:
                raise ExecutorInvocationFailure(f"Agent failed to start: {error}") from error

            result = self._wait(
                process,
                timeout_seconds=timeout_seconds,
                shutdown_requested=shutdown_requested,
            )

        if result.timed_out:
            raise ExecutorInvocationFailure(
                f"Agent {invocation.binary} stopped after {result.elapsed_seconds:.1f}s",
                exit_code=result.exit_code,
                timed_out=True,
            )
        if result.exit_code != 0:
            raise ExecutorInvocationFailure(
                f"Agent {invocation.binary} exited with code {result.exit_code}",
                exit_code=result.exit_code,
            )
        return result

    def _wait(
        self,
        process: subprocess.Popen[bytes],
        *,
        timeout_seconds: int,
        shutdown_requested: Callable[[], bool] | None,
    ) -> ExecutorResult:
        start_monotonic = time.monotonic()
        shutdown_deadline: float | None = None

        while True:
            returncode = process.poll()
            now = time.monotonic()
            if returncode is not None:
                return ExecutorResult(
                    exit_code=returncode,
                    timed_out=False,
                    elapsed_seconds=now - start_monotonic,
                )

            if timeout_seconds > 0 and now - start_monotonic >= timeout_seconds:
                logger.warning("Agent exceeded timeout of %ss; terminating", timeout_seconds)
                _terminate_process(process)
                return ExecutorResult(
                    exit_code=TIMEOUT_EXIT_CODE,
                    timed_out=True,
                    elapsed_seconds=now - start_monotonic,
                )

            if shutdown_requested is not None and shutdown_requested():
                if shutdown_deadline is None:
                    shutdown_deadline = now + max(0, self.graceful_shutdown_seconds)
                if now >= shutdown_deadline:
                    _terminate_process(process)
                    return ExecutorResult(
                        exit_code=TIMEOUT_EXIT_CODE,
                        timed_out=True,
                        elapsed_seconds=now - start_monotonic,
                    )

            time.sleep(self.poll_interval_seconds)


def _terminate_process(process: subprocess.Popen[bytes] | subprocess.Popen[str]) -> None:
    try:
        process.terminate()
    except OSError:
        return
    try:
        process.wait(timeout=2)
    except subprocess.TimeoutExpired:
        try:
            process.kill()
        except OSError:
            return
        process.wait(timeout=2)
