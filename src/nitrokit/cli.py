"""nitrokit CLI: top-level command group and interactive menu."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.table import Table

from nitrokit import __version__
from nitrokit.cli_helpers import (
    EXIT_CHOICES,
    abort_with,
    normalize_menu_choice,
    print_menu,
    prompt_release_plan,
    setup_logging,
)
from nitrokit.commands.code_quality import CodeQualityRunner
from nitrokit.commands.create_release import ReleaseError, ReleaseManager
from nitrokit.commands.dependency_update import DependencyUpdater
from nitrokit.commands.github_labels import GitHubLabelsConfig, GitHubLabelsManager, LabelError
from nitrokit.commands.release_notes import ReleaseNotesGenerator
from nitrokit.commands.translation_sync import TranslationError, TranslationSync
from nitrokit.commands.version_management import get_current_version, get_version_history
from nitrokit.config import load_config, validate_config
from nitrokit.reporters.terminal import console, reporter
from nitrokit.store import KEY_API_KEY, KNOWN_KEYS, ConfigStore, ConfigStoreError, mask_secret
from nitrokit.utils.git import GitOperationError, is_git_repository
from nitrokit.utils.version_check import check_for_updates, should_check_for_updates

logger = logging.getLogger(__name__)

_PATH_OPTION = click.option(
    "--path",
    default=".",
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
    help="Project root directory.",
)


def _open_store() -> ConfigStore:
    try:
        return ConfigStore()
    except ConfigStoreError as e:
        raise abort_with(f"Could not open configuration store: {e}", e) from e


def _require_git_repo(path: Path) -> None:
    if not is_git_repository(path):
        raise abort_with(f"Not a git repository: {path}")


@click.group(invoke_without_command=True)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
@click.version_option(version=__version__, prog_name="nitrokit")
@click.pass_context
def cli(ctx: click.Context, *, verbose: bool) -> None:
    """nitrokit: releases, release notes, dependency updates, quality checks and i18n sync.

    Run without a command for the interactive menu.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    setup_logging(verbose=verbose)
    load_dotenv()

    if ctx.invoked_subcommand is None:
        interactive_menu(ctx)


# ── Release notes & versions ──────────────────────────────────────


@cli.command("release-notes")
@_PATH_OPTION
@click.option("--tag", default=None, help="Treat this tag as the current release.")
@click.option(
    "--output",
    "-o",
    default=None,
    type=click.Path(dir_okay=False, resolve_path=True),
    help="Write to this file instead of ReleaseNotes_<tag>_<date>.md.",
)
def release_notes(path: str, tag: str | None, output: str | None) -> None:
    """Generate markdown release notes from git history.

    Example:
      nitrokit release-notes --tag v1.2.0
    """
    root = Path(path)
    _require_git_repo(root)
    try:
        with reporter.create_status("Collecting commits..."):
            written = ReleaseNotesGenerator(root, load_config(root).release.remote).generate(
                tag=tag, output=Path(output) if output else None
            )
    except GitOperationError as e:
        raise abort_with(f"Failed to generate release notes: {e}", e) from e
    reporter.print_success(f"Release notes written to {written}")


@cli.command("create-release")
@click.argument("version", required=False)
@click.argument("message", required=False)
@_PATH_OPTION
def create_release(version: str | None, message: str | None, path: str) -> None:
    """Bump, tag, push and publish a release.

    VERSION is major, minor, patch or an explicit X.Y.Z. Without it an
    interactive prompt asks for the bump type.

    Example:
      nitrokit create-release minor "New dashboard"
    """
    root = Path(path)
    try:
        manager = ReleaseManager(root, load_config(root).release)
        if version is None:
            plan = prompt_release_plan(get_current_version(manager.repo_path))
            if plan is None:
                return
            result = asyncio.run(manager.bump_and_release(plan.bump_type, plan.message))
        else:
            result = asyncio.run(manager.release_from_argument(version, message))
    except (ReleaseError, GitOperationError) as e:
        raise abort_with(f"Release failed: {e}", e) from e
    reporter.print_success(f"Release {result.tag} created")


@cli.command()
@click.argument("bump_type", type=click.Choice(["major", "minor", "patch"]))
@click.option("--message", "-m", default=None, help="Tag annotation message.")
@_PATH_OPTION
def bump(bump_type: str, message: str | None, path: str) -> None:
    """Bump the version and create a release."""
    root = Path(path)
    try:
        manager = ReleaseManager(root, load_config(root).release)
        result = asyncio.run(manager.bump_and_release(bump_type, message))
    except (ReleaseError, GitOperationError) as e:
        raise abort_with(f"Release failed: {e}", e) from e
    reporter.print_success(f"Release {result.tag} created")


@cli.command("version-history")
@_PATH_OPTION
@click.option("--limit", default=10, show_default=True, help="Number of tags to show.")
def version_history(path: str, limit: int) -> None:
    """Show the current version and the most recent version tags."""
    root = Path(path)
    reporter.print_info(f"Current version: {get_current_version(root)}")
    tags = get_version_history(root, limit)
    if not tags:
        reporter.print_warning("No version tags found")
        return
    table = Table(title="Version History", title_style="bold cyan")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Tag")
    for index, tag in enumerate(tags, start=1):
        table.add_row(str(index), tag)
    console.print(table)


# ── Project maintenance ───────────────────────────────────────────


@cli.command("update-dependencies")
@_PATH_OPTION
def update_dependencies(path: str) -> None:
    """Back up manifests and update Node, Cargo, pip and Composer dependencies."""
    outcomes = asyncio.run(DependencyUpdater(Path(path)).run())
    if outcomes and not any(o.success for o in outcomes):
        raise SystemExit(1)


@cli.command("code-quality")
@_PATH_OPTION
def code_quality(path: str) -> None:
    """Run lint, format, type-check, test and audit tools for the project."""
    config = load_config(path)
    report = asyncio.run(CodeQualityRunner(Path(path), config.code_quality).run())
    if not report.success:
        raise SystemExit(1)


@cli.command("github-labels")
@click.option("--skip-auth", is_flag=True, help="Skip the gh authentication check.")
@click.option("--skip-install", is_flag=True, help="Do not offer to install gh.")
@click.option("--dry-run", is_flag=True, help="Print gh commands without running them.")
@click.option("--list", "list_only", is_flag=True, help="List current labels and exit.")
@click.option("--delete-all", is_flag=True, help="Delete every label first.")
@click.option("--update-only", is_flag=True, help="Only rename existing default labels.")
def github_labels(
    *,
    skip_auth: bool,
    skip_install: bool,
    dry_run: bool,
    list_only: bool,
    delete_all: bool,
    update_only: bool,
) -> None:
    """Apply a standard set of emoji issue labels with the GitHub CLI."""
    if (
        delete_all
        and not dry_run
        and not click.confirm("Delete ALL labels in this repository?", default=False)
    ):
        raise click.Abort
    config = GitHubLabelsConfig(
        skip_auth=skip_auth,
        skip_install=skip_install,
        dry_run=dry_run,
        list_only=list_only,
        delete_all=delete_all,
        update_only=update_only,
    )
    try:
        summary = GitHubLabelsManager(config).run()
    except LabelError as e:
        raise abort_with(str(e), e) from e
    if summary.failed:
        raise SystemExit(1)


@cli.command("sync-translations")
@_PATH_OPTION
@click.option("--messages-dir", default=None, help="Override the messages directory.")
@click.option("--source-file", default=None, help="Override the source file name.")
@click.option("--no-prompt", is_flag=True, help="Do not ask to add new languages.")
def sync_translations(
    path: str, messages_dir: str | None, source_file: str | None, *, no_prompt: bool
) -> None:
    """Fill missing keys in <code>.json files using Gemini."""
    store = _open_store()
    config = store.load_translation_config()
    if not config.api_key:
        if no_prompt:
            raise abort_with(
                "Gemini API key not configured. Run 'nitrokit config setup' "
                "or set GEMINI_API_KEY."
            )
        reporter.print_warning("Gemini API key not configured, starting setup")
        configured = store.interactive_setup()
        if configured is None:
            raise click.Abort
        config = configured

    if messages_dir:
        config.messages_dir = messages_dir
    if source_file:
        config.source_file = source_file

    try:
        sync = TranslationSync(Path(path), config, interactive=not no_prompt)
        summary = asyncio.run(sync.run())
    except TranslationError as e:
        raise abort_with(f"Translation sync failed: {e}", e) from e
    if summary.failed:
        raise SystemExit(1)


# ── Configuration ─────────────────────────────────────────────────


@cli.group("config")
def config_group() -> None:
    """Manage stored settings and `.nitrokit.yml`."""


@config_group.command("show")
def config_show() -> None:
    """Display stored settings with the API key masked."""
    _open_store().show()


@config_group.command("setup")
def config_setup() -> None:
    """Interactively configure translation sync."""
    if _open_store().interactive_setup() is None:
        raise click.Abort


@config_group.command("reset")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
def config_reset(*, yes: bool) -> None:
    """Delete every stored setting."""
    if not yes and not click.confirm("Reset all nitrokit settings?", default=False):
        raise click.Abort
    _open_store().reset()
    reporter.print_success("Configuration reset")


@config_group.command("set")
@click.argument("key")
@click.argument("value")
def config_set(key: str, value: str) -> None:
    """Store a setting.

    Example:
      nitrokit config set gemini_model gemini-1.5-pro
    """
    if key not in KNOWN_KEYS:
        raise abort_with(f"Unknown key: {key} (known: {', '.join(KNOWN_KEYS)})")
    _open_store().set(key, value)
    reporter.print_success(f"Updated {key}")


@config_group.command("get")
@click.argument("key")
@click.option("--no-mask", is_flag=True, help="Show the API key unmasked.")
def config_get(key: str, *, no_mask: bool) -> None:
    """Print one stored setting."""
    value = _open_store().get(key)
    if value is None:
        raise abort_with(f"{key} is not set")
    click.echo(value if no_mask or key != KEY_API_KEY else mask_secret(value))


@config_group.command("validate")
@_PATH_OPTION
def config_validate(path: str) -> None:
    """Validate `.nitrokit.yml` in the project root."""
    errors = validate_config(load_config(path))
    if not errors:
        reporter.print_success("Configuration is valid!")
        return

    reporter.print_error(f"Found {len(errors)} configuration error(s):")
    console.print()
    for idx, error in enumerate(errors, start=1):
        console.print(f"  {idx}. [red]{error}[/red]")
    console.print()
    raise click.Abort


@cli.command("check-updates")
@click.option("--force", is_flag=True, help="Ignore the 24h cache.")
def check_updates(*, force: bool) -> None:
    """Check GitHub for a newer nitrokit release."""
    cache_dir = _open_store().config_dir
    if not force and not should_check_for_updates(cache_dir):
        reporter.print_info("Checked within the last 24 hours. Use --force to check again.")
        return
    check_for_updates(__version__, cache_dir, force=True)


# ── Interactive menu ──────────────────────────────────────────────


def _auto_update_check() -> None:
    try:
        store = ConfigStore()
    except ConfigStoreError:
        return
    check_for_updates(__version__, store.config_dir)


def _menu_config(ctx: click.Context) -> None:
    action = click.prompt(
        "Config action",
        type=click.Choice(["show", "setup", "reset"]),
        default="show",
    )
    command = {"show": config_show, "setup": config_setup, "reset": config_reset}[action]
    ctx.invoke(command)


def interactive_menu(ctx: click.Context) -> None:
    """Loop over the numbered menu until the user quits."""
    reporter.print_banner(f"nitrokit v{__version__}", "Developer automation toolkit")
    _auto_update_check()

    actions = {
        "1": lambda: ctx.invoke(create_release),
        "2": lambda: ctx.invoke(release_notes),
        "3": lambda: ctx.invoke(update_dependencies),
        "4": lambda: ctx.invoke(sync_translations),
        "5": lambda: _menu_config(ctx),
        "6": lambda: ctx.invoke(code_quality),
        "7": lambda: ctx.invoke(github_labels),
        "h": lambda: click.echo(ctx.get_help()),
        "v": lambda: console.print(f"nitrokit {__version__}"),
        "u": lambda: ctx.invoke(check_updates, force=True),
    }

    while True:
        console.print()
        print_menu()
        choice = normalize_menu_choice(click.prompt("Select an option", default="q"))
        if choice in EXIT_CHOICES:
            reporter.print_info("Goodbye!")
            return
        action = actions.get(choice)
        if action is None:
            reporter.print_warning(f"Unknown option: {choice}")
            continue
        try:
            action()
        except click.Abort:
            reporter.print_warning("Cancelled")
        except SystemExit as e:
            logger.debug("Command exited with %s", e.code)


def main() -> None:
    """Console script entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
