"""
Timeout Engine

Hard wall-clock deadlines for external operations, with a cleanup hook
that runs at most once when the deadline is hit.
"""

import threading
import time
from typing import Any, Callable, Dict, Optional

from cpc.constants import DEFAULT_TIMEOUTS, TIMEOUT_EXIT_CODE
from cpc.core.error_handler import ErrorHandler
from cpc.core.runner import CommandRunner, Operation, as_result
from cpc.logger import CpcLogger
from cpc.models.command import Command
from cpc.models.errors import ErrorAction, ErrorKind, Severity
from cpc.models.results import ExecutionResult

CleanupFn = Callable[[], Any]


class OnceCleanup:
    """Wraps a cleanup callable so concurrent or repeated calls run it once."""

    def __init__(self, fn: CleanupFn, description: str, logger: CpcLogger):
        self.fn = fn
        self.description = description
        self.logger = logger
        self._lock = threading.Lock()
        self.done = False

    def __call__(self) -> bool:
        with self._lock:
            if self.done:
                return False
            self.done = True
        self.logger.info(f"Running cleanup for {self.description}")
        try:
            self.fn()
        except Exception as e:
            self.logger.warning(f"Cleanup for {self.description} failed: {e}")
        return True


class TimeoutEngine:
    """
    Runs operations under a deadline.

    Commands are terminated (SIGTERM, then SIGKILL) when the deadline
    passes. Python callables run in a daemon thread that is abandoned on
    timeout. Either way the result has returncode 124 and timed_out=True.
    """

    def __init__(
        self,
        runner: CommandRunner,
        errors: ErrorHandler,
        logger: CpcLogger,
        timeouts: Optional[Dict[str, int]] = None,
    ):
        self.runner = runner
        self.errors = errors
        self.logger = logger
        self.timeouts = dict(DEFAULT_TIMEOUTS)
        if timeouts:
            self.timeouts.update(timeouts)
        self._active: Dict[int, OnceCleanup] = {}
        self._active_lock = threading.Lock()

    def execute(
        self,
        command: Operation,
        timeout: Optional[float] = None,
        description: str = "Command execution",
        cleanup_fn: Optional[CleanupFn] = None,
        capture: bool = True,
    ) -> ExecutionResult:
        """
        Run `command` with a deadline.

        Args:
            command: Command or callable
            timeout: Seconds (defaults to the configured command timeout)
            description: Label for log lines
            cleanup_fn: Called once if the deadline passes
            capture: Capture output of Commands (False streams it)

        Returns:
            The command's own result, or a timeout result (returncode 124)
        """
        timeout = self.timeouts["command"] if timeout is None else timeout
        cleanup = OnceCleanup(cleanup_fn, description, self.logger) if cleanup_fn else None
        token = id(cleanup) if cleanup else None

        if cleanup:
            with self._active_lock:
                self._active[token] = cleanup

        self.logger.debug(f"Starting {description} (timeout: {timeout}s)")
        try:
            if isinstance(command, Command):
                result = self.runner.run(command, timeout=timeout, capture=capture)
            else:
                result = self._call_with_deadline(command, timeout, description)

            if not result.timed_out:
                return result

            self.logger.warning(f"{description} timed out after {timeout}s")
            if cleanup:
                cleanup()
            self.errors.handle(
                ErrorKind.TIMEOUT,
                f"{description} timed out after {timeout}s",
                Severity.HIGH,
                ErrorAction.CONTINUE,
            )
            return result
        finally:
            if cleanup:
                with self._active_lock:
                    self._active.pop(token, None)

    def _call_with_deadline(self, fn: Callable[[], Any], timeout: float, description: str) -> ExecutionResult:
        outcome: Dict[str, Any] = {}

        def target():
            try:
                outcome["value"] = fn()
            except BaseException as e:
                outcome["error"] = e

        start = time.monotonic()
        worker = threading.Thread(target=target, name=f"cpc-timeout-{description}", daemon=True)
        worker.start()
        worker.join(timeout)

        if worker.is_alive():
            return ExecutionResult(
                returncode=TIMEOUT_EXIT_CODE,
                stderr=f"{description} timed out",
                command=description,
                duration_seconds=time.monotonic() - start,
                timed_out=True,
            )
        if "error" in outcome:
            raise outcome["error"]

        result = as_result(outcome.get("value"), description)
        result.duration_seconds = time.monotonic() - start
        return result

    def network(self, command: Operation, description: str = "Network operation", cleanup_fn: Optional[CleanupFn] = None) -> ExecutionResult:
        return self.execute(command, self.timeouts["network"], description, cleanup_fn)

    def ansible(
        self,
        command: Operation,
        description: str = "Ansible operation",
        cleanup_fn: Optional[CleanupFn] = None,
        capture: bool = False,
    ) -> ExecutionResult:
        return self.execute(command, self.timeouts["ansible"], description, cleanup_fn, capture=capture)

    def kubectl(self, command: Operation, description: str = "kubectl operation", cleanup_fn: Optional[CleanupFn] = None) -> ExecutionResult:
        return self.execute(command, self.timeouts["kubectl"], description, cleanup_fn)

    def terraform(
        self,
        command: Operation,
        description: str = "OpenTofu operation",
        cleanup_fn: Optional[CleanupFn] = None,
        capture: bool = True,
    ) -> ExecutionResult:
        return self.execute(command, self.timeouts["terraform"], description, cleanup_fn, capture=capture)

    def check_budget(self, start_time: float, budget_seconds: float, operation_name: str = "operation") -> bool:
        """
        Check elapsed time (time.monotonic based) against a budget.

        Returns:
            True while within budget; False (and a recorded timeout error) once exceeded
        """
        elapsed = time.monotonic() - start_time
        if elapsed >= budget_seconds:
            self.errors.handle(
                ErrorKind.TIMEOUT,
                f"{operation_name} exceeded time budget ({elapsed:.0f}s >= {budget_seconds}s)",
                Severity.HIGH,
                ErrorAction.CONTINUE,
            )
            return False
        self.logger.debug(f"{operation_name} time budget: {elapsed:.0f}s used, {budget_seconds - elapsed:.0f}s remaining")
        return True

    def active_count(self) -> int:
        with self._active_lock:
            return len(self._active)

    def cancel_all(self) -> int:
        """Run pending cleanups (e.g. on Ctrl-C). Each cleanup still runs at most once."""
        with self._active_lock:
            pending = list(self._active.values())
            self._active.clear()
        if pending:
            self.logger.warning(f"Cancelling {len(pending)} active timeout operation(s)")
        return sum(1 for cleanup in pending if cleanup())
