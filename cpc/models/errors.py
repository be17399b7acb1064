"""
Error Models

Closed enums for the error taxonomy and the record kept on the error stack.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum

from cpc.constants import LOG_DATETIME_FORMAT


class ErrorKind(Enum):
    """Failure class. The value is the exit status used when a command aborts."""

    NETWORK = 100
    AUTH = 101
    CONFIGURATION = 102
    DEPENDENCY = 103
    TIMEOUT = 104
    VALIDATION = 105
    EXECUTION = 106
    INPUT = 107
    UNKNOWN = 199

    @property
    def code(self) -> int:
        return self.value

    @property
    def label(self) -> str:
        return self.name.lower()


class Severity(IntEnum):
    """How bad a failure is. Ordered low -> critical, used for reporting only."""

    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4

    @property
    def label(self) -> str:
        return self.name.lower()


class ErrorAction(Enum):
    """What the caller wants done after an error is recorded."""

    ABORT = "abort"
    RETRY = "retry"
    CONTINUE = "continue"
    WARN = "warn"


@dataclass
class ErrorRecord:
    """One entry on the in-process error stack."""

    kind: ErrorKind
    message: str
    severity: Severity = Severity.MEDIUM
    context: str = ""
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def code(self) -> int:
        return self.kind.code

    def as_row(self) -> tuple[str, str, str, str, str]:
        """Row used by the text report and the rich table."""
        return (
            self.timestamp.strftime(LOG_DATETIME_FORMAT),
            str(self.code),
            self.severity.label,
            self.message,
            self.context,
        )

    def __repr__(self) -> str:
        return f"ErrorRecord(kind={self.kind.label}, severity={self.severity.label}, message='{self.message[:50]}')"
