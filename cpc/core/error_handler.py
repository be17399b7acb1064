"""
Error Handler

In-process error stack. Failures are classified at the point of detection
and the caller chooses what happens next through an explicit ErrorAction.
"""

import os
import platform
import shutil
import time
from datetime import datetime
from pathlib import Path
from typing import Optional

from cpc.exceptions import CommandAborted
from cpc.logger import CpcLogger
from cpc.models.errors import ErrorAction, ErrorKind, ErrorRecord, Severity


class ErrorHandler:
    """
    Records ErrorRecords and applies the requested action.

    - abort: raise CommandAborted (exit status = kind code)
    - retry: return True so the caller may try again
    - warn / continue: log and return False, caller decides
    """

    def __init__(self, logger: CpcLogger, correlation_id: Optional[str] = None):
        self.logger = logger
        self.records: list[ErrorRecord] = []
        self.correlation_id = correlation_id or f"{int(time.time())}-{os.getpid()}"

    def push(
        self,
        kind: ErrorKind,
        message: str,
        severity: Severity = Severity.MEDIUM,
        context: str = "",
    ) -> ErrorRecord:
        """
        Record an error without deciding what to do about it.

        Args:
            kind: Error class
            message: Human-readable message
            severity: Severity (reporting only)
            context: Free-form context (file, host, command...)

        Returns:
            The stored ErrorRecord
        """
        record = ErrorRecord(kind=kind, message=message, severity=severity, context=context)
        self.records.append(record)
        self.logger.error(f"[{kind.code}] {message}")
        if context:
            self.logger.debug(f"Context: {context}")
        return record

    def handle(
        self,
        kind: ErrorKind,
        message: str,
        severity: Severity = Severity.MEDIUM,
        action: ErrorAction = ErrorAction.CONTINUE,
        context: str = "",
    ) -> bool:
        """
        Record an error, then perform the action chosen by the caller.

        Returns:
            True when the caller may retry the operation, False otherwise

        Raises:
            CommandAborted: For ErrorAction.ABORT
        """
        record = self.push(kind, message, severity, context)

        if action is ErrorAction.ABORT:
            self.logger.fatal("Aborting operation.")
            raise CommandAborted(record)
        if action is ErrorAction.RETRY:
            self.logger.warning("Error encountered. Will retry operation.")
            return True
        if action is ErrorAction.WARN:
            self.logger.warning(f"Non-critical error: {message}")
            return False
        if action is ErrorAction.CONTINUE:
            self.logger.warning("Error recorded, continuing.")
            return False
        raise ValueError(f"Unsupported error action: {action!r}")

    def require_tool(self, tool: str, hint: str = "") -> str:
        """
        Ensure an external executable is on PATH.

        Returns:
            Absolute path of the tool

        Raises:
            CommandAborted: With ErrorKind.DEPENDENCY when the tool is missing
        """
        path = shutil.which(tool)
        if path is None:
            self.handle(
                ErrorKind.DEPENDENCY,
                f"Required tool '{tool}' not found in PATH",
                Severity.CRITICAL,
                ErrorAction.ABORT,
                context=hint,
            )
        return path

    def get_count(self) -> int:
        return len(self.records)

    def get_last(self) -> Optional[ErrorRecord]:
        return self.records[-1] if self.records else None

    def has_critical(self) -> bool:
        return any(record.severity is Severity.CRITICAL for record in self.records)

    def clear(self) -> None:
        self.records.clear()

    def generate_report(self, path: Path) -> Path:
        """
        Write a plain text report of every recorded error.

        Args:
            path: Output file (parent directories are created)

        Returns:
            Path to the report
        """
        lines = [
            "=== CPC Error Report ===",
            f"Correlation ID: {self.correlation_id}",
            f"Timestamp: {datetime.now().isoformat()}",
            f"Total Errors: {self.get_count()}",
            "",
        ]
        if self.records:
            lines.append("=== Error Details ===")
            lines.append(f"{'TIMESTAMP':<20} {'CODE':<5} {'SEVERITY':<9} {'MESSAGE':<50} CONTEXT")
            lines.append("-" * 100)
            for timestamp, code, severity, message, context in (r.as_row() for r in self.records):
                lines.append(f"{timestamp:<20} {code:<5} {severity:<9} {message:<50} {context}")
        else:
            lines.append("No errors recorded.")

        lines.extend(
            [
                "",
                "=== System Information ===",
                f"OS: {platform.system()} {platform.release()}",
                f"Python: {platform.python_version()}",
                f"Working Directory: {os.getcwd()}",
            ]
        )

        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("\n".join(lines) + "\n")
        self.logger.info(f"Error report generated: {path}")
        return path
