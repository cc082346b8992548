"""CLI helper functions for interactive prompts and error reporting."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import click
from rich.logging import RichHandler
from rich.table import Table

from nitrokit.commands.version_management import BUMP_TYPES, bump_version
from nitrokit.reporters.terminal import console, reporter

logger = logging.getLogger(__name__)

_BUMP_CHOICES = {"1": "patch", "2": "minor", "3": "major"}

MENU_OPTIONS: tuple[tuple[str, str], ...] = (
    ("1", "Create release"),
    ("2", "Generate release notes"),
    ("3", "Update dependencies"),
    ("4", "Sync translations"),
    ("5", "Configuration"),
    ("6", "Code quality checks"),
    ("7", "GitHub labels"),
    ("h", "Help"),
    ("v", "Version"),
    ("u", "Check for updates"),
    ("q", "Quit"),
)
EXIT_CHOICES = frozenset({"q", "exit", "quit"})


@dataclass
class ReleasePlan:
    """What the user chose in the interactive release flow."""

    bump_type: str
    new_version: str
    message: str | None = None


def setup_logging(*, verbose: bool) -> None:
    """Route log records through rich; DEBUG with ``--verbose``, else WARNING."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=verbose, show_path=verbose)],
        force=True,
    )


def print_menu() -> None:
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="bold cyan")
    table.add_column("Action")
    for key, label in MENU_OPTIONS:
        table.add_row(key, label)
    console.print(table)


def normalize_menu_choice(choice: str) -> str:
    """Lower-case and trim a menu answer."""
    return choice.strip().lower()


def prompt_release_plan(current_version: str) -> ReleasePlan | None:
    """Ask for the bump type, an optional message and a confirmation.

    An unrecognized bump choice falls back to patch. Returns None when the
    user declines.
    """
    reporter.print_info(f"Current version: {current_version}")
    for key, bump in _BUMP_CHOICES.items():
        preview = bump_version(current_version, bump)
        console.print(f"  [bold cyan]{key}[/bold cyan]. {bump} [dim]→ {preview}[/dim]")

    choice = click.prompt("Select version type", default="1", show_default=True).strip()
    bump_type = _BUMP_CHOICES.get(choice) or (choice if choice in BUMP_TYPES else None)
    if bump_type is None:
        reporter.print_warning("Invalid choice, using patch")
        bump_type = "patch"

    message = click.prompt("Release message (optional)", default="", show_default=False).strip()
    new_version = bump_version(current_version, bump_type)

    if not click.confirm(f"Create release v{new_version}?", default=False):
        reporter.print_info("Release cancelled")
        return None
    return ReleasePlan(bump_type=bump_type, new_version=new_version, message=message or None)


def abort_with(message: str, exc: BaseException | None = None) -> click.Abort:
    """Print *message* as an error and return an Abort to raise."""
    reporter.print_error(message)
    if exc is not None:
        logger.debug("Aborting", exc_info=exc)
    return click.Abort()
