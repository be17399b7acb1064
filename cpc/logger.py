"""
Logging system for CPC CLI
Provides leveled console output with optional per-operation log files
"""

import re
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional, TextIO

from rich.console import Console
from rich.live import Live
from rich.markup import escape
from rich.padding import Padding
from rich.spinner import Spinner
from rich.text import Text

from cpc.constants import LOG_DATE_FORMAT

ANSI_ESCAPE = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")


class CpcLogger:
    """
    Leveled output for every CPC command
    - info / step / success / warning / error / debug / fatal on the console
    - debug lines only when debug mode is on
    - optional operation log file mirroring every message (debug included)
    """

    def __init__(self, debug: bool = False, console: Optional[Console] = None):
        """
        Initialize logger

        Args:
            debug: Show debug messages in the console
            console: Rich console to print to (a new one by default)
        """
        self.debug_enabled = debug
        self.console = console or Console()
        self.log_file: Optional[TextIO] = None
        self.log_path: Optional[Path] = None
        self.operation: Optional[str] = None
        self.has_errors = False

    def set_debug(self, enabled: bool) -> None:
        self.debug_enabled = enabled

    def open_operation_log(self, logs_dir: Path, context: str, operation: str) -> Path:
        """
        Start mirroring output to a log file

        Structure: {logs_dir}/{context}/{date}/{time}_{operation}.log

        Args:
            logs_dir: Root logs directory
            context: Workspace name (use "global" for non-workspace commands)
            operation: Operation name (e.g., 'bootstrap', 'add-nodes')

        Returns:
            Path to the log file
        """
        if self.log_file:
            self.close()

        now = datetime.now()
        log_dir = logs_dir / context / now.strftime(LOG_DATE_FORMAT)
        log_dir.mkdir(parents=True, exist_ok=True)

        self.operation = operation
        self.log_path = log_dir / f"{now.strftime('%H-%M-%S')}_{operation}.log"
        self.log_file = open(self.log_path, "w", buffering=1)
        self.has_errors = False

        header = f"""{"=" * 80}
CPC Operation Log
{"=" * 80}
Context: {context}
Operation: {operation}
Started: {now.isoformat()}
{"=" * 80}

"""
        self.log_file.write(header)
        return self.log_path

    def log(self, message: str, level: str = "INFO") -> None:
        """
        Write a message to the operation log (no console output)

        Args:
            message: Message to log
            level: Log level (INFO, WARNING, ERROR, DEBUG)
        """
        if not self.log_file:
            return
        timestamp = datetime.now().strftime("%H:%M:%S")
        clean = ANSI_ESCAPE.sub("", message)
        for line in clean.splitlines() or [""]:
            self.log_file.write(f"[{timestamp}] [{level}] {line}\n")

    def log_output(self, output: str, stream: str = "stdout") -> None:
        """Record captured command output in the operation log only."""
        if not output or not self.log_file:
            return
        for line in ANSI_ESCAPE.sub("", output).splitlines():
            self.log_file.write(f"  [{stream}] {line}\n")

    def _print(self, markup: str) -> None:
        self.console.print(markup, soft_wrap=True, highlight=False)

    def info(self, message: str) -> None:
        self.log(message, "INFO")
        self._print(escape(message))

    def step(self, message: str) -> None:
        self.log(f"Step: {message}", "INFO")
        self._print(f"[color(214)]▶[/color(214)] [white]{escape(message)}[/white]")

    def success(self, message: str) -> None:
        self.log(message, "INFO")
        self._print(f"[green]✓ {escape(message)}[/green]")

    def warning(self, message: str) -> None:
        self.log(message, "WARNING")
        self._print(f"[yellow]⚠ {escape(message)}[/yellow]")

    def error(self, message: str, context: Optional[str] = None) -> None:
        """
        Log an error with context

        Args:
            message: Error message
            context: Additional context (e.g., the file or host involved)
        """
        self.has_errors = True
        self.log(message, "ERROR")
        if context:
            self.log(f"Context: {context}", "ERROR")
        self._print(f"[bold red]✗ {escape(message)}[/bold red]")
        if context:
            self._print(f"  [color(208)]{escape(context)}[/color(208)]")

    def fatal(self, message: str) -> None:
        self.has_errors = True
        self.log(message, "FATAL")
        self._print(f"[bold white on red] FATAL [/bold white on red] [bold red]{escape(message)}[/bold red]")

    def debug(self, message: str) -> None:
        self.log(message, "DEBUG")
        if self.debug_enabled:
            self._print(f"[dim]· {escape(message)}[/dim]")

    @contextmanager
    def progress(self, description: str) -> Iterator[None]:
        """
        Show a spinner while a blocking call runs

        Falls back to a plain step line in debug mode or when the console
        is not a terminal (CI, tests, pipes).
        """
        self.log(f"Started: {description}", "INFO")
        if self.debug_enabled or not self.console.is_terminal:
            self.step(description)
            yield
            return

        spinner = Spinner("dots", text=f"[cyan]{escape(description)}...[/cyan]")
        with Live(Padding(spinner, (0, 0, 0, 2)), console=self.console, refresh_per_second=10) as live:
            try:
                yield
            except BaseException:
                mark = Text("  ✗ ", style="red")
                mark.append(description, style="dim")
                live.update(mark)
                raise
            mark = Text("  ✓ ", style="dim")
            mark.append(description, style="dim")
            live.update(mark)

    def close(self) -> None:
        """Close log file"""
        if self.log_file:
            footer = f"""
{"=" * 80}
Completed: {datetime.now().isoformat()}
Status: {"FAILED" if self.has_errors else "SUCCESS"}
{"=" * 80}
"""
            self.log_file.write(footer)
            self.log_file.close()
            self.log_file = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, _exc_tb):
        if exc_type is not None and exc_type is not SystemExit:
            self.has_errors = True
        self.close()
        return False
