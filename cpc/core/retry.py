"""
Retry Engine

Bounded retries with capped exponential backoff and jitter around any
Operation (a Command or a Python callable).
"""

import random
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from cpc.constants import (
    ANSIBLE_MAX_ATTEMPTS,
    ANSIBLE_RETRY_EXIT_CODES,
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_INITIAL_DELAY,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_DELAY,
    NETWORK_MAX_ATTEMPTS,
    NETWORK_RETRY_DELAY,
    NETWORK_RETRY_EXIT_CODES,
    RETRY_JITTER_RATIO,
)
from cpc.core.error_handler import ErrorHandler
from cpc.core.runner import CommandRunner, Operation
from cpc.logger import CpcLogger
from cpc.models.errors import ErrorAction, ErrorKind, Severity
from cpc.models.results import ExecutionResult

RetryCondition = Callable[[ExecutionResult], bool]


@dataclass
class RetryAttempt:
    """State of one attempt inside a retry loop."""

    attempt: int
    result: ExecutionResult
    delay: float = 0.0


@dataclass
class RetryStats:
    """Process-wide counters, one increment per attempt / per final outcome."""

    total_attempts: int = 0
    successful: int = 0
    failed: int = 0

    @property
    def success_rate(self) -> float:
        if self.total_attempts == 0:
            return 0.0
        return self.successful * 100.0 / self.total_attempts


def exit_code_condition(codes: tuple[int, ...]) -> RetryCondition:
    """Retry only when the exit code is one of `codes`."""

    def condition(result: ExecutionResult) -> bool:
        return result.returncode in codes

    return condition


@dataclass
class RetryEngine:
    """
    Retry wrapper for external invocations.

    The engine never aborts by itself: on exhaustion it records an
    execution error with the CONTINUE action and returns the last result.
    """

    runner: CommandRunner
    errors: ErrorHandler
    logger: CpcLogger
    sleep: Callable[[float], None] = time.sleep
    rng: random.Random = field(default_factory=random.Random)
    stats: RetryStats = field(default_factory=RetryStats)
    last_attempts: list[RetryAttempt] = field(default_factory=list)

    def calculate_delay(
        self,
        attempt: int,
        initial_delay: float = DEFAULT_INITIAL_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
        multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
    ) -> float:
        """
        Delay before the retry that follows `attempt`.

        initial_delay * multiplier^(attempt-1), capped at max_delay,
        +/-25% jitter, then clamped into [0, max_delay].
        """
        delay = min(initial_delay * (multiplier ** (attempt - 1)), max_delay)
        jitter = delay * RETRY_JITTER_RATIO
        delay += self.rng.uniform(-jitter, jitter)
        return max(0.0, min(delay, max_delay))

    def execute(
        self,
        command: Operation,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        initial_delay: float = DEFAULT_INITIAL_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
        condition: Optional[RetryCondition] = None,
        description: str = "Command execution",
    ) -> ExecutionResult:
        """
        Run `command` up to `max_attempts` times.

        Args:
            command: Command or callable to run
            max_attempts: Total attempts (>= 1)
            initial_delay: Delay before the first retry
            max_delay: Upper bound for any delay
            condition: Predicate deciding whether a failure is retryable
                (None = every failure is retryable)
            description: Label for log lines

        Returns:
            The successful result, or the last failed one
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.last_attempts = []
        result = ExecutionResult(returncode=1, command=description)

        for attempt in range(1, max_attempts + 1):
            self.stats.total_attempts += 1
            self.logger.debug(f"{description} (attempt {attempt}/{max_attempts})")

            result = self.runner.invoke(command, description)
            record = RetryAttempt(attempt=attempt, result=result)
            self.last_attempts.append(record)

            if result.is_success:
                self.stats.successful += 1
                if attempt > 1:
                    self.logger.success(f"{description} succeeded on attempt {attempt}")
                return result

            self.logger.warning(
                f"{description} failed on attempt {attempt}/{max_attempts} (exit code: {result.returncode})"
            )

            if condition is not None and not condition(result):
                self.logger.debug(f"Exit code {result.returncode} is not retryable for {description}")
                break
            if attempt == max_attempts:
                break

            record.delay = self.calculate_delay(attempt, initial_delay, max_delay)
            self.logger.info(f"Retrying in {record.delay:.1f} seconds...")
            self.sleep(record.delay)

        self.stats.failed += 1
        attempts = len(self.last_attempts)
        self.errors.handle(
            ErrorKind.EXECUTION,
            f"{description} failed after {attempts} attempt(s)",
            Severity.HIGH,
            ErrorAction.CONTINUE,
            context=result.output[-500:],
        )
        return result

    def network_operation(
        self,
        command: Operation,
        description: str = "Network operation",
        max_attempts: int = NETWORK_MAX_ATTEMPTS,
        delay: float = NETWORK_RETRY_DELAY,
    ) -> ExecutionResult:
        """SSH/SCP/remote calls: fixed short delay, retry on connection-type exit codes."""
        return self.execute(
            command,
            max_attempts=max_attempts,
            initial_delay=delay,
            max_delay=delay,
            condition=exit_code_condition(NETWORK_RETRY_EXIT_CODES),
            description=description,
        )

    def ansible_operation(
        self,
        command: Operation,
        description: str = "Ansible operation",
        max_attempts: int = ANSIBLE_MAX_ATTEMPTS,
    ) -> ExecutionResult:
        """Playbook runs: few attempts, only on host/unreachable/parse exit codes."""
        return self.execute(
            command,
            max_attempts=max_attempts,
            condition=exit_code_condition(ANSIBLE_RETRY_EXIT_CODES),
            description=description,
        )

    def with_validation(
        self,
        command: Operation,
        validator: Callable[[], bool],
        description: str = "Operation with validation",
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> ExecutionResult:
        """Retry until the command succeeds AND `validator()` confirms the result."""

        def validated() -> ExecutionResult:
            result = self.runner.invoke(command, description)
            if result.is_success and not validator():
                self.logger.warning(f"Validation failed for {description}")
                return ExecutionResult(
                    returncode=1,
                    stdout=result.stdout,
                    stderr="validation failed",
                    command=result.command,
                )
            return result

        return self.execute(validated, max_attempts=max_attempts, description=description)

    def reset_stats(self) -> None:
        self.stats = RetryStats()

    def summary(self) -> str:
        return (
            f"Retry statistics: {self.stats.total_attempts} attempts, "
            f"{self.stats.successful} successful, {self.stats.failed} failed"
        )
