"""
Base Command Class

Abstract base for all CPC CLI commands.
Provides common functionality and structure.
"""

from abc import ABC, abstractmethod
from typing import Optional

from rich.markup import escape

from cpc.core.runtime import Runtime
from cpc.exceptions import CommandAborted, CpcError
from cpc.models.errors import ErrorKind, Severity
from cpc.ui_components import show_header

INTERRUPTED_EXIT_CODE = 130


class BaseCommand(ABC):
    """
    Abstract base command class.

    Provides:
    - Runtime access (logger, error handler, engines, stores)
    - Header display
    - Error handling (CpcError -> exit status of its kind)
    - Recovery report for multi-step commands
    """

    # Multi-step commands write a recovery report when they fail
    multi_step: bool = False

    def __init__(self, runtime: Runtime):
        self.runtime = runtime
        self.settings = runtime.settings
        self.logger = runtime.logger
        self.console = runtime.console
        self.errors = runtime.errors
        self.store = runtime.store
        self.cache = runtime.cache

    def show_header(
        self,
        title: str,
        subtitle: Optional[str] = None,
        workspace: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> None:
        """Show command header (skipped in debug mode)."""
        if not self.settings.debug:
            show_header(
                title=title,
                subtitle=subtitle,
                workspace=workspace,
                details=details,
                console=self.console,
            )

    def confirm(self, question: str, default: bool = False) -> bool:
        """
        Ask for user confirmation.

        Args:
            question: Question to ask
            default: Default answer (also used when stdin is closed)

        Returns:
            True if confirmed
        """
        default_str = "y" if default else "n"
        self.console.print(
            f"{question} [bold bright_white]\\[y/n][/bold bright_white] [dim]({default_str})[/dim]: ",
            end="",
        )
        try:
            answer = input().strip().lower()
        except EOFError:
            return default

        if not answer:
            return default

        return answer in ["y", "yes"]

    def open_log(self, operation: str, context: Optional[str] = None) -> None:
        """Mirror this command's output to an operation log file."""
        context = context or self.store.get_current_context()
        self.logger.open_operation_log(self.settings.logs_dir, context, operation)

    @abstractmethod
    def execute(self, **kwargs) -> None:
        """
        Execute command logic.

        Args:
            **kwargs: Command arguments
        """

    def run(self, **kwargs) -> None:
        """
        Run command with error handling.

        Args:
            **kwargs: Command arguments
        """
        try:
            self.execute(**kwargs)
        except CommandAborted as e:
            # Already on the error stack and printed by the handler
            self._exit_with(e)
        except CpcError as e:
            self.errors.push(e.kind, e.message, Severity.HIGH, e.context or "")
            self._exit_with(e)
        except KeyboardInterrupt:
            self.runtime.timeouts.cancel_all()
            self.console.print("\n[yellow]⚠ Operation cancelled by user[/yellow]")
            self._show_log_path()
            raise SystemExit(INTERRUPTED_EXIT_CODE)
        except SystemExit:
            raise
        except Exception as e:
            error_type = type(e).__name__
            self.errors.push(ErrorKind.UNKNOWN, f"{error_type}: {e}", Severity.HIGH)
            if self.settings.debug:
                self.console.print_exception()
            self._show_log_path()
            raise SystemExit(ErrorKind.UNKNOWN.code)
        finally:
            self.logger.close()

    def _exit_with(self, error: CpcError) -> None:
        if error.context:
            self.console.print(f"  [dim]{escape(error.context)}[/dim]", soft_wrap=True, highlight=False)
        if self.multi_step:
            report = self.runtime.recovery.generate_report()
            self.console.print(f"[dim]Recovery report:[/dim] {report}", soft_wrap=True, highlight=False)
        self._show_log_path()
        raise SystemExit(error.exit_code)

    def _show_log_path(self) -> None:
        if self.logger.log_path and self.logger.log_file:
            self.console.print(f"[dim]Logs saved to:[/dim] {self.logger.log_path}", soft_wrap=True, highlight=False)
