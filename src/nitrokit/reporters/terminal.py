"""Terminal reporter with rich output formatting."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from rich.status import Status

console = Console()

_MILLIS_PER_SECOND = 1000.0
_SECONDS_PER_MINUTE = 60.0


def format_duration(duration_ms: float) -> str:
    """Format a duration in milliseconds to a human-readable string."""
    seconds = duration_ms / _MILLIS_PER_SECOND
    if seconds >= _SECONDS_PER_MINUTE:
        return f"{seconds / _SECONDS_PER_MINUTE:.1f}m"
    return f"{seconds:.1f}s"


class CLIReporter:
    """Rich terminal output for every nitrokit command."""

    def __init__(self) -> None:
        """Initialize the CLI reporter."""
        self.console = console

    def print_header(self, title: str) -> None:
        """Print a bold header."""
        self.console.print(f"\n[bold cyan]{title}[/bold cyan]\n")

    def print_success(self, message: str) -> None:
        """Print a success message."""
        self.console.print(f"[green]✓[/green] {message}")

    def print_error(self, message: str) -> None:
        """Print an error message."""
        self.console.print(f"[red]✗[/red] {message}")

    def print_warning(self, message: str) -> None:
        """Print a warning message."""
        self.console.print(f"[yellow]⚠[/yellow] {message}")

    def print_info(self, message: str) -> None:
        """Print an info message."""
        self.console.print(f"[dim]{message}[/dim]")

    def print_step(self, message: str) -> None:
        """Print an in-progress step."""
        self.console.print(f"[bold cyan]▸[/bold cyan] {message}")

    def print_banner(self, title: str, subtitle: str = "") -> None:
        """Print a styled banner panel."""
        body = f"[bold white]{title}[/bold white]"
        if subtitle:
            body += f"\n[dim]{subtitle}[/dim]"
        self.console.print()
        self.console.print(Panel(body, border_style="cyan", padding=(0, 2)))

    def print_key_value_table(self, title: str, rows: Mapping[str, str]) -> None:
        """Print a two-column settings table."""
        table = Table(title=title, show_header=False, title_style="bold cyan")
        table.add_column("Key", style="dim")
        table.add_column("Value")
        for key, value in rows.items():
            table.add_row(key, value)
        self.console.print(table)

    def print_bullets(self, items: Iterable[str], *, style: str = "") -> None:
        """Print an indented bullet list."""
        for item in items:
            line = f"  • {item}"
            self.console.print(f"[{style}]{line}[/{style}]" if style else line)

    def create_status(self, message: str) -> Status:
        """Create a Rich Status spinner for long-running operations."""
        return self.console.status(message)


# Singleton instance for easy import
reporter = CLIReporter()
