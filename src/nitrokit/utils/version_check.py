"""Check GitHub for a newer nitrokit release, at most once a day."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

import requests
from rich.panel import Panel

from nitrokit.commands.version_management import compare_versions
from nitrokit.reporters.terminal import reporter

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

GITHUB_REPO = "mustafagenc/nitrokit"
LATEST_RELEASE_URL = f"https://api.github.com/repos/{GITHUB_REPO}/releases/latest"
CACHE_FILENAME = "version_cache.json"
CHECK_INTERVAL_HOURS = 24

_REQUEST_TIMEOUT = 10
_SECONDS_PER_HOUR = 3600


class VersionCheckError(Exception):
    """Raised when the latest release cannot be fetched."""


@dataclass
class ReleaseInfo:
    """The latest published release."""

    tag_name: str
    name: str = ""
    html_url: str = ""


@dataclass
class VersionCache:
    """Contents of the on-disk cache."""

    last_check: int
    """Unix time of the last successful check."""

    latest_version: str
    check_interval_hours: int = CHECK_INTERVAL_HOURS

    def is_due(self, now: float | None = None) -> bool:
        now = time.time() if now is None else now
        hours = (now - self.last_check) // _SECONDS_PER_HOUR
        return hours >= self.check_interval_hours


def clean_version_string(version: str) -> str:
    """Strip a leading ``v``."""
    return version.strip().lstrip("v")


def load_version_cache(cache_dir: Path) -> VersionCache | None:
    path = cache_dir / CACHE_FILENAME
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return VersionCache(
            last_check=int(data["last_check"]),
            latest_version=str(data["latest_version"]),
            check_interval_hours=int(data.get("check_interval_hours", CHECK_INTERVAL_HOURS)),
        )
    except (OSError, ValueError, KeyError, TypeError):
        return None


def save_version_cache(cache_dir: Path, latest_version: str) -> None:
    cache = {
        "last_check": int(time.time()),
        "latest_version": latest_version,
        "check_interval_hours": CHECK_INTERVAL_HOURS,
    }
    try:
        (cache_dir / CACHE_FILENAME).write_text(json.dumps(cache, indent=2), encoding="utf-8")
    except OSError as exc:
        logger.debug("Could not write version cache: %s", exc)


def should_check_for_updates(cache_dir: Path) -> bool:
    cache = load_version_cache(cache_dir)
    return cache is None or cache.is_due()


def fetch_latest_release() -> ReleaseInfo:
    """Query the GitHub releases API.

    Raises:
        VersionCheckError: On network errors or a non-2xx response.
    """
    try:
        response = requests.get(
            LATEST_RELEASE_URL,
            headers={"Accept": "application/vnd.github+json", "User-Agent": "nitrokit"},
            timeout=_REQUEST_TIMEOUT,
        )
        response.raise_for_status()
        data = response.json()
    except (requests.RequestException, ValueError) as exc:
        raise VersionCheckError(str(exc)) from exc
    return ReleaseInfo(
        tag_name=str(data.get("tag_name", "")),
        name=str(data.get("name") or ""),
        html_url=str(data.get("html_url") or ""),
    )


def show_update_available(release: ReleaseInfo, current_version: str) -> None:
    body = (
        f"[dim]Current version:[/dim] [yellow]{current_version}[/yellow] → "
        f"[bold green]{release.tag_name}[/bold green]\n"
        f"[dim]Release:[/dim] {release.name or release.tag_name}\n"
        f"[dim]Download:[/dim] [blue underline]{release.html_url}[/blue underline]\n\n"
        "[bold yellow]Update options:[/bold yellow]\n"
        "  • Download from GitHub releases\n"
        "  • pip install --upgrade nitrokit\n\n"
        "[dim]Run 'nitrokit check-updates' to check again[/dim]"
    )
    reporter.console.print()
    reporter.console.print(
        Panel(body, title="New version available", border_style="green", padding=(0, 2))
    )


def check_for_updates(
    current_version: str, cache_dir: Path, *, force: bool = False
) -> ReleaseInfo | None:
    """Report a newer release if one exists.

    Automatic checks (``force=False``) respect the cache and stay silent on
    errors; forced checks always query and report every outcome.

    Returns:
        The newer release, or None.
    """
    if not force and not should_check_for_updates(cache_dir):
        logger.debug("Skipping update check, cache is fresh")
        return None

    try:
        release = fetch_latest_release()
    except VersionCheckError as exc:
        if force:
            reporter.print_warning(f"Could not check for updates: {exc}")
        return None

    save_version_cache(cache_dir, release.tag_name)
    try:
        comparison = compare_versions(
            clean_version_string(current_version), clean_version_string(release.tag_name)
        )
    except ValueError:
        logger.debug("Unparseable versions: %r vs %r", current_version, release.tag_name)
        return None

    if comparison < 0:
        show_update_available(release, current_version)
        return release
    if force:
        if comparison == 0:
            reporter.print_success("You're using the latest version!")
        else:
            reporter.print_warning("You're using a development version!")
    return None
