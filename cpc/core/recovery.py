"""
Recovery / Checkpoint Engine

Append-only breadcrumb trail for multi-step operations plus a best-effort
rollback hook. Nothing here is transactional: a rollback is reported as
successful only when the rollback action itself says so.
"""

import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from cpc.constants import LOG_DATETIME_FORMAT
from cpc.core.runner import CommandRunner, Operation, as_result
from cpc.exceptions import CpcError
from cpc.logger import CpcLogger
from cpc.models.results import ExecutionResult

RollbackFn = Callable[[], Any]
ValidateFn = Callable[[], bool]


class RecoveryState(Enum):
    CLEAN = "CLEAN"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"
    RECOVERED = "RECOVERED"


@dataclass
class Checkpoint:
    """Named marker recorded mid-operation."""

    name: str
    description: str = ""
    data: Optional[Dict[str, Any]] = None
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class RollbackRecord:
    """Outcome of a compensating action, as reported by the action itself."""

    operation: str
    succeeded: bool
    detail: str = ""
    timestamp: datetime = field(default_factory=datetime.now)


class RecoveryEngine:
    """Process-scoped checkpoint log with recoverable execution."""

    def __init__(self, runner: CommandRunner, logger: CpcLogger, reports_dir: Path):
        self.runner = runner
        self.logger = logger
        self.reports_dir = reports_dir
        self.state = RecoveryState.CLEAN
        self.checkpoints: list[Checkpoint] = []
        self.rollbacks: list[RollbackRecord] = []
        self.last_report: Optional[Path] = None

    def checkpoint(self, name: str, description: str = "", data: Optional[Dict[str, Any]] = None) -> Checkpoint:
        """
        Append a checkpoint.

        Args:
            name: Checkpoint name (e.g. 'drain_node_start')
            description: Human-readable note
            data: Opaque state payload (e.g. {'node': '10.0.0.5'})

        Returns:
            The recorded Checkpoint
        """
        checkpoint = Checkpoint(name=name, description=description, data=data)
        self.checkpoints.append(checkpoint)
        self.logger.debug(f"Recovery checkpoint: {name}")
        self.logger.log(f"CHECKPOINT {name}: {description} {data or ''}".rstrip(), "DEBUG")
        return checkpoint

    def checkpoint_names(self) -> list[str]:
        return [checkpoint.name for checkpoint in self.checkpoints]

    def execute(
        self,
        command: Operation,
        operation_name: str,
        rollback_fn: Optional[RollbackFn] = None,
        validate_fn: Optional[ValidateFn] = None,
    ) -> ExecutionResult:
        """
        Run `command` with pre/post checkpoints.

        On failure `rollback_fn` is called (its truthy return value is the
        only thing that marks the operation RECOVERED). On success
        `validate_fn` may confirm the external state; a failed validation
        is logged as a warning, not turned into a failure.

        Args:
            command: Command or callable
            operation_name: Name used for checkpoints and logs
            rollback_fn: Best-effort compensating action
            validate_fn: Post-condition check

        Returns:
            The command's ExecutionResult

        Raises:
            CpcError: Whatever the operation raised, after the failure was
                recorded and `rollback_fn` was given its chance
        """
        self.checkpoint(f"pre_{operation_name}", f"state_before_{operation_name}")
        self.state = RecoveryState.PARTIAL
        self.logger.debug(f"Starting recoverable operation: {operation_name}")

        try:
            result = self.runner.invoke(command, operation_name)
        except CpcError as e:
            self.state = RecoveryState.FAILED
            self.checkpoint(f"failed_{operation_name}", e.message, {"error": e.kind.value})
            self.logger.error(f"Operation {operation_name} failed: {e.message}")
            self._rollback(operation_name, rollback_fn)
            raise

        if result.is_success:
            if validate_fn is not None and not self._validate(validate_fn, operation_name):
                self.logger.warning(
                    f"Operation {operation_name} completed but its result could not be validated"
                )
                self.checkpoint(f"unvalidated_{operation_name}", "validation did not pass")
            self.checkpoint(f"post_{operation_name}", f"state_after_{operation_name}")
            self.state = RecoveryState.CLEAN
            return result

        self.state = RecoveryState.FAILED
        self.checkpoint(
            f"failed_{operation_name}",
            f"exit code {result.returncode}",
            {"exit_code": result.returncode},
        )
        self.logger.error(f"Operation {operation_name} failed (exit code: {result.returncode})")
        self._rollback(operation_name, rollback_fn)
        return result

    def _validate(self, validate_fn: ValidateFn, operation_name: str) -> bool:
        try:
            return bool(validate_fn())
        except CpcError as e:
            self.logger.warning(f"Validation of {operation_name} raised: {e.message}")
            return False

    def _rollback(self, operation_name: str, rollback_fn: Optional[RollbackFn]) -> None:
        if rollback_fn is None:
            self.logger.warning(
                f"No rollback action for {operation_name}; manual cleanup may be needed"
            )
            self.rollbacks.append(RollbackRecord(operation_name, False, "no rollback action"))
            return

        self.logger.info(f"Running rollback action for {operation_name}")
        try:
            succeeded = as_result(rollback_fn(), f"rollback {operation_name}").is_success
            detail = "rollback action reported success" if succeeded else "rollback action did not report success"
        except CpcError as e:
            succeeded = False
            detail = f"rollback action raised: {e.message}"

        self.rollbacks.append(RollbackRecord(operation_name, succeeded, detail))
        if succeeded:
            self.state = RecoveryState.RECOVERED
            self.checkpoint(f"rollback_{operation_name}", f"rolled_back_{operation_name}")
            self.logger.success(f"Rollback action for {operation_name} reported success")
        else:
            self.logger.warning(f"Rollback for {operation_name}: {detail}; manual cleanup may be needed")

    def rollback_to(self, checkpoint_name: str) -> bool:
        """Mark a rollback to an earlier checkpoint (bookkeeping only)."""
        if checkpoint_name not in self.checkpoint_names():
            self.logger.error(f"Checkpoint '{checkpoint_name}' not found")
            return False
        self.logger.info(f"Rolling back to checkpoint: {checkpoint_name}")
        self.checkpoint(f"rollback_to_{checkpoint_name}", f"rolled_back_to_{checkpoint_name}")
        return True

    def network_operation(self, command: Operation, operation_name: str) -> ExecutionResult:
        """Network calls have nothing to compensate; failure is only logged."""

        def rollback() -> bool:
            self.logger.info(f"Network operation {operation_name} failed, nothing to roll back")
            return False

        return self.execute(command, operation_name, rollback)

    def ansible_operation(self, command: Operation, playbook_name: str) -> ExecutionResult:
        """Playbook runs cannot be undone automatically."""

        def rollback() -> bool:
            self.logger.warning(f"Ansible playbook {playbook_name} failed, manual cleanup may be needed")
            return False

        return self.execute(command, f"ansible_{playbook_name}", rollback)

    def is_needed(self) -> bool:
        return self.state is not RecoveryState.CLEAN

    def generate_report(self, path: Optional[Path] = None) -> Path:
        """
        Write checkpoints and rollback outcomes for post-mortem review.

        Args:
            path: Output file (default: <reports_dir>/recovery_<time>_<pid>.txt)

        Returns:
            Path to the report
        """
        if path is None:
            stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
            path = self.reports_dir / f"recovery_{stamp}_{os.getpid()}.txt"

        lines = [
            "=== CPC Recovery Report ===",
            f"Generated: {datetime.now().isoformat()}",
            f"Current State: {self.state.value}",
            f"Total Checkpoints: {len(self.checkpoints)}",
            "",
        ]
        if self.checkpoints:
            lines.append("=== Recovery Checkpoints ===")
            lines.append(f"{'TIMESTAMP':<20} {'CHECKPOINT':<35} DESCRIPTION")
            lines.append("-" * 80)
            for checkpoint in self.checkpoints:
                detail = checkpoint.description
                if checkpoint.data:
                    detail = f"{detail} {checkpoint.data}".strip()
                lines.append(
                    f"{checkpoint.timestamp.strftime(LOG_DATETIME_FORMAT):<20} {checkpoint.name:<35} {detail}"
                )
            lines.append("")

        lines.append("=== Rollback Actions ===")
        if self.rollbacks:
            for record in self.rollbacks:
                status = "reported success" if record.succeeded else "NOT confirmed"
                lines.append(f"{record.operation}: {status} ({record.detail})")
        else:
            lines.append("No rollback actions were attempted.")
        lines.extend(
            [
                "",
                "Rollback actions are best effort. Infrastructure changes made before",
                "the failure may still exist and may need manual cleanup.",
            ]
        )

        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("\n".join(lines) + "\n")
        self.last_report = path
        return path
