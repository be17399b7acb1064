"""
Command Runner

Spawns external processes from typed Command values (argument list, no
shell) and normalizes every outcome into an ExecutionResult.
"""

import os
import subprocess
import time
from typing import Any, Callable, Optional, Union

from cpc.constants import (
    COMMAND_NOT_FOUND_EXIT_CODE,
    TERMINATE_GRACE_PERIOD,
    TIMEOUT_EXIT_CODE,
)
from cpc.logger import CpcLogger
from cpc.models.command import Command
from cpc.models.results import ExecutionResult

# Anything the retry/timeout/recovery engines can run
Operation = Union[Command, Callable[[], Any]]


def as_result(value: Any, description: str = "") -> ExecutionResult:
    """
    Normalize the return value of a Python callable into an ExecutionResult.

    ExecutionResult passes through, bool maps to 0/1, int is an exit code,
    None counts as success.
    """
    if isinstance(value, ExecutionResult):
        return value
    if isinstance(value, bool):
        return ExecutionResult(returncode=0 if value else 1, command=description)
    if isinstance(value, int):
        return ExecutionResult(returncode=value, command=description)
    if value is None:
        return ExecutionResult(returncode=0, command=description)
    raise TypeError(f"Unsupported operation result type: {type(value).__name__}")


class CommandRunner:
    """Runs Command values via subprocess."""

    def __init__(self, logger: Optional[CpcLogger] = None, grace_period: float = TERMINATE_GRACE_PERIOD):
        """
        Initialize runner.

        Args:
            logger: Logger for command/debug lines
            grace_period: Seconds between SIGTERM and SIGKILL on timeout
        """
        self.logger = logger
        self.grace_period = grace_period

    def run(
        self,
        command: Command,
        timeout: Optional[float] = None,
        capture: bool = True,
        input_text: Optional[str] = None,
    ) -> ExecutionResult:
        """
        Run command and wait for it.

        Args:
            command: Command to run
            timeout: Wall-clock deadline in seconds (None = no deadline)
            capture: Capture stdout/stderr (False streams to the terminal)
            input_text: Text written to the process stdin

        Returns:
            ExecutionResult; returncode 124 and timed_out=True on timeout,
            127 when the program does not exist
        """
        display = command.display()
        if self.logger:
            self.logger.debug(f"Executing: {display}")

        env = {**os.environ, **command.env} if command.env else None
        pipe = subprocess.PIPE if capture else None
        start = time.monotonic()

        try:
            process = subprocess.Popen(
                command.argv,
                cwd=command.cwd,
                env=env,
                stdin=subprocess.PIPE if input_text is not None else None,
                stdout=pipe,
                stderr=pipe,
                text=True,
            )
        except FileNotFoundError:
            return ExecutionResult(
                returncode=COMMAND_NOT_FOUND_EXIT_CODE,
                stderr=f"{command.program}: command not found",
                command=display,
            )
        except PermissionError as e:
            return ExecutionResult(returncode=126, stderr=str(e), command=display)

        try:
            stdout, stderr = process.communicate(input=input_text, timeout=timeout)
        except subprocess.TimeoutExpired:
            stdout, stderr = self._terminate(process)
            result = ExecutionResult(
                returncode=TIMEOUT_EXIT_CODE,
                stdout=stdout or "",
                stderr=stderr or "",
                command=display,
                duration_seconds=time.monotonic() - start,
                timed_out=True,
            )
            self._log_result(result)
            return result
        except BaseException:
            # Ctrl-C and friends: do not leave the child running
            self._terminate(process)
            raise

        result = ExecutionResult(
            returncode=process.returncode,
            stdout=stdout or "",
            stderr=stderr or "",
            command=display,
            duration_seconds=time.monotonic() - start,
        )
        self._log_result(result)
        return result

    def invoke(self, operation: Operation, description: str = "") -> ExecutionResult:
        """Run a Command, or call a Python callable and normalize its result."""
        if isinstance(operation, Command):
            return self.run(operation)
        return as_result(operation(), description)

    def _terminate(self, process: subprocess.Popen) -> tuple[str, str]:
        process.terminate()
        try:
            return process.communicate(timeout=self.grace_period)
        except subprocess.TimeoutExpired:
            process.kill()
            return process.communicate()

    def _log_result(self, result: ExecutionResult) -> None:
        if not self.logger:
            return
        self.logger.log_output(result.stdout, "stdout")
        self.logger.log_output(result.stderr, "stderr")
        self.logger.debug(
            f"Exit code {result.returncode} after {result.duration_seconds:.2f}s: {result.command}"
        )
