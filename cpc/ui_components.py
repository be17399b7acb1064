"""
CPC CLI - UI Components
Standardized headers and tables
"""

from typing import Dict, Iterable, Optional, Sequence

from rich.console import Console
from rich.markup import escape
from rich.table import Table

BRAND = "[bold color(214)]cpc[/bold color(214)] [dim]›[/dim]"


def show_header(
    title: str,
    subtitle: Optional[str] = None,
    workspace: Optional[str] = None,
    details: Optional[Dict[str, str]] = None,
    console: Optional[Console] = None,
) -> None:
    """
    Display a standardized command header.

    Args:
        title: Main title (e.g., "Add Nodes", "Cluster Info")
        subtitle: Optional subtitle line
        workspace: Active workspace (if applicable)
        details: Additional key-value pairs to display
        console: Rich Console instance (creates new if None)

    Example:
        show_header(
            title="Drain Node",
            workspace="ubuntu",
            details={"Hosts": "10.0.0.5"}
        )
    """
    if console is None:
        console = Console()

    console.print(f" {BRAND} [bold white]{escape(title)}[/bold white]", highlight=False)
    if subtitle:
        console.print(f" {BRAND} [dim]{escape(subtitle)}[/dim]", highlight=False)
    if workspace:
        console.print(f" {BRAND} Workspace: [cyan]{escape(workspace)}[/cyan]", highlight=False)
    if details:
        for key, value in details.items():
            console.print(f" {BRAND} {escape(key)}: [cyan]{escape(str(value))}[/cyan]", highlight=False)

    console.print()


def build_table(title: Optional[str], columns: Sequence[str], rows: Iterable[Sequence[str]]) -> Table:
    """Plain table with the standard styling."""
    table = Table(title=title, title_justify="left", header_style="bold", padding=(0, 1), box=None)
    for column in columns:
        table.add_column(column)
    for row in rows:
        table.add_row(*(escape(str(cell)) for cell in row))
    return table
