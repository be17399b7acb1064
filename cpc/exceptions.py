"""
CPC CLI Exception Hierarchy

Clean exception hierarchy for consistent error handling across the CLI.
Every exception carries an ErrorKind whose code becomes the exit status.
"""

from typing import Optional

from cpc.models.errors import ErrorKind, ErrorRecord


class CpcError(Exception):
    """Base exception for all CPC errors."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str, context: Optional[str] = None):
        self.message = message
        self.context = context
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format error message with optional context."""
        if self.context:
            return f"{self.message}\nContext: {self.context}"
        return self.message

    @property
    def exit_code(self) -> int:
        return self.kind.code


class ConfigurationError(CpcError):
    """Raised when configuration is invalid or missing."""

    kind = ErrorKind.CONFIGURATION


class ValidationError(CpcError):
    """Raised when validation fails."""

    kind = ErrorKind.VALIDATION


class InputError(CpcError):
    """Raised when user input cannot be interpreted."""

    kind = ErrorKind.INPUT


class NetworkError(CpcError):
    """Raised when a remote host cannot be reached."""

    kind = ErrorKind.NETWORK


class AuthError(CpcError):
    """Raised when credentials are rejected."""

    kind = ErrorKind.AUTH


class DependencyError(CpcError):
    """Raised when a required external tool is missing."""

    kind = ErrorKind.DEPENDENCY


class ExecutionError(CpcError):
    """Raised when an external command fails."""

    kind = ErrorKind.EXECUTION


class OperationTimeoutError(CpcError):
    """Raised when an operation exceeds its deadline."""

    kind = ErrorKind.TIMEOUT


class CommandAborted(CpcError):
    """Raised by the error handler when an error is handled with the abort action."""

    def __init__(self, record: ErrorRecord):
        self.record = record
        self.kind = record.kind
        super().__init__(record.message, record.context or None)


class WorkspaceNotFoundError(ConfigurationError):
    """Raised when a workspace name does not match any known workspace."""

    def __init__(self, workspace: str, available: list[str]):
        self.workspace = workspace
        self.available = available
        message = f"Workspace '{workspace}' not found"
        context = f"Available workspaces: {', '.join(available) or 'none'}"
        super().__init__(message, context)


class RepoNotConfiguredError(ConfigurationError):
    """Raised when the repository root has never been recorded."""

    def __init__(self, repo_path_file: str):
        self.repo_path_file = repo_path_file
        message = "Repository path is not configured"
        context = f"Run: cpc setup-cpc (expected file: {repo_path_file})"
        super().__init__(message, context)
