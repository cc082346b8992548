"""GitHub issue label management through the ``gh`` CLI."""

from __future__ import annotations

import logging
import platform
import shlex
import subprocess
from dataclasses import dataclass

import click
from rich.markup import escape
from rich.table import Table

from nitrokit.reporters.terminal import reporter
from nitrokit.utils.git import _gh_executable
from nitrokit.utils.subprocess_runner import command_exists

logger = logging.getLogger(__name__)

GH_INSTALL_URL = "https://cli.github.com"
_LIST_LIMIT = "100"
_GH_TIMEOUT = 60


class LabelError(Exception):
    """Raised when ``gh`` is unavailable or unauthenticated."""


@dataclass(frozen=True)
class GitHubLabel:
    """A label to create."""

    name: str
    description: str
    color: str
    """Hex colour without the leading ``#``."""


@dataclass(frozen=True)
class LabelUpdate:
    """A GitHub default label to rename and restyle."""

    old_name: str
    new_name: str
    description: str
    color: str


@dataclass
class GitHubLabelsConfig:
    """Options for a label run."""

    skip_auth: bool = False
    """Do not check or perform ``gh auth login``."""

    skip_install: bool = False
    """Only warn when ``gh`` is missing instead of offering to install it."""

    dry_run: bool = False
    """Print the ``gh`` commands that would change labels without running them."""

    list_only: bool = False
    """List the repository's labels and stop."""

    delete_all: bool = False
    """Delete every existing label before applying the set."""

    update_only: bool = False
    """Rename and restyle defaults, but create nothing."""


@dataclass
class LabelSummary:
    """Counts for one run."""

    updated: int = 0
    created: int = 0
    deleted: int = 0
    skipped: int = 0
    failed: int = 0


DEFAULT_LABEL_UPDATES: tuple[LabelUpdate, ...] = (
    LabelUpdate("bug", "🐛 bug", "Software bugs and defects", "D73A49"),
    LabelUpdate(
        "dependencies", "📦 dependencies", "Dependency updates and package management", "0366D6"
    ),
    LabelUpdate(
        "documentation", "📚 documentation", "Documentation improvements and updates", "0075CA"
    ),
    LabelUpdate("duplicate", "🔄 duplicate", "Duplicate issues already reported", "CFD3D7"),
    LabelUpdate("enhancement", "✨ enhancement", "New features and improvements", "A2EEEF"),
    LabelUpdate(
        "github_actions", "⚙️ github_actions", "CI/CD and GitHub Actions workflow", "000000"
    ),
    LabelUpdate(
        "good first issue",
        "🌟 good first issue",
        "Beginner-friendly issues for new contributors",
        "7057FF",
    ),
    LabelUpdate(
        "help wanted", "🙏 help wanted", "Issues where community help is needed", "008672"
    ),
    LabelUpdate("invalid", "❌ invalid", "Invalid or incorrectly reported issues", "E4E669"),
    LabelUpdate("question", "❓ question", "Questions about usage or implementation", "CC317C"),
    LabelUpdate("wontfix", "🚫 wontfix", "Issues that won't be addressed", "FFFFFF"),
)

DEFAULT_NEW_LABELS: tuple[GitHubLabel, ...] = (
    # Priority
    GitHubLabel(
        "🔴 priority: critical", "Critical issues that need immediate attention", "B60205"
    ),
    GitHubLabel("🟠 priority: high", "High priority issues", "D93F0B"),
    GitHubLabel("🟡 priority: medium", "Medium priority issues", "FBCA04"),
    GitHubLabel("🟢 priority: low", "Low priority issues", "0E8A16"),
    # Status
    GitHubLabel("🔄 status: in progress", "Currently being worked on", "0052CC"),
    GitHubLabel("👀 status: needs review", "Waiting for code review", "006B75"),
    GitHubLabel("🚧 status: blocked", "Blocked by external dependencies", "D4C5F9"),
    GitHubLabel("✅ status: ready", "Ready to be implemented", "0E8A16"),
    # Component
    GitHubLabel("🎨 ui/ux", "User interface and experience", "F9D0C4"),
    GitHubLabel("🌍 translation", "Translation and internationalization", "1D76DB"),
    GitHubLabel("🔧 cli", "Command line interface", "5319E7"),
    GitHubLabel("📦 release", "Release management and versioning", "0366D6"),
    GitHubLabel("🔍 code-quality", "Code quality checks and linting", "D93F0B"),
    # Difficulty
    GitHubLabel("🌱 easy", "Easy to implement, good for beginners", "C2E0C6"),
    GitHubLabel("🌿 medium", "Moderate complexity", "FEF2C0"),
    GitHubLabel("🌳 hard", "Complex implementation required", "F9D0C4"),
    # Type
    GitHubLabel("🔒 security", "Security related issues", "D73A49"),
    GitHubLabel("⚡ performance", "Performance optimization", "FBCA04"),
    GitHubLabel("♿ accessibility", "Accessibility improvements", "0052CC"),
    GitHubLabel("🧪 testing", "Testing related issues", "BFD4F2"),
    GitHubLabel("🐞 fix", "Bug fixes", "D73A49"),
    GitHubLabel("✨ feature", "New feature implementation", "A2EEEF"),
)


def gh_install_command(system: str | None = None) -> list[str] | None:
    """Package-manager command that installs ``gh`` on this OS, if one is known."""
    system = (system or platform.system()).lower()
    if system == "darwin":
        return ["brew", "install", "gh"] if command_exists("brew") else None
    if system == "windows":
        if command_exists("winget"):
            return ["winget", "install", "--id", "GitHub.cli"]
        if command_exists("choco"):
            return ["choco", "install", "gh", "-y"]
        return None
    if system == "linux":
        for tool, command in (
            ("apt-get", ["sudo", "apt-get", "install", "-y", "gh"]),
            ("dnf", ["sudo", "dnf", "install", "-y", "gh"]),
            ("pacman", ["sudo", "pacman", "-S", "--noconfirm", "github-cli"]),
            ("brew", ["brew", "install", "gh"]),
        ):
            if command_exists(tool):
                return command
    return None


def parse_label_list(output: str) -> list[str]:
    """Label names from tab-separated ``gh label list`` output."""
    names = []
    for line in output.splitlines():
        name = line.split("\t", 1)[0].strip()
        if name:
            names.append(name)
    return names


class GitHubLabelsManager:
    """Applies the default label set to the current repository."""

    def __init__(
        self,
        config: GitHubLabelsConfig | None = None,
        updates: tuple[LabelUpdate, ...] = DEFAULT_LABEL_UPDATES,
        labels: tuple[GitHubLabel, ...] = DEFAULT_NEW_LABELS,
    ) -> None:
        self.config = config or GitHubLabelsConfig()
        self.updates = updates
        self.labels = labels
        self.summary = LabelSummary()

    def _gh(self, *args: str) -> subprocess.CompletedProcess[str]:
        command = [_gh_executable(), *args]
        logger.debug("Running: %s", shlex.join(command))
        try:
            return subprocess.run(  # noqa: S603
                command, capture_output=True, text=True, check=False, timeout=_GH_TIMEOUT
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise LabelError(f"gh {args[0]} failed: {exc}") from exc

    def _mutate(self, *args: str) -> bool:
        """Run a label-changing ``gh`` command, or print it in dry-run mode."""
        if self.config.dry_run:
            reporter.print_info(f"dry run: {escape(shlex.join(['gh', *args]))}")
            return True
        result = self._gh(*args)
        if result.returncode != 0:
            logger.debug("gh %s: %s", args[:2], result.stderr.strip())
            return False
        return True

    # ── Setup ────────────────────────────────────────────────────

    def is_gh_installed(self) -> bool:
        return command_exists("gh")

    def ensure_gh_installed(self) -> bool:
        """Make sure ``gh`` is on PATH, offering to install it."""
        if self.is_gh_installed():
            return True
        if self.config.skip_install:
            reporter.print_warning(f"GitHub CLI (gh) is not installed. See {GH_INSTALL_URL}")
            return False

        command = gh_install_command()
        if command is None:
            reporter.print_error(
                f"GitHub CLI (gh) is not installed and no installer was found. "
                f"Install it from {GH_INSTALL_URL}"
            )
            return False
        if not click.confirm(f"GitHub CLI is not installed. Run '{shlex.join(command)}'?"):
            return False

        reporter.print_step(f"Installing GitHub CLI: {shlex.join(command)}")
        try:
            subprocess.run(command, check=True)  # noqa: S603
        except (OSError, subprocess.CalledProcessError) as exc:
            reporter.print_error(f"Installation failed: {exc}")
            return False
        return self.is_gh_installed()

    def is_authenticated(self) -> bool:
        return self._gh("auth", "status").returncode == 0

    def ensure_authenticated(self) -> None:
        """Run ``gh auth login`` when not logged in.

        Raises:
            LabelError: If authentication still fails.
        """
        if self.config.skip_auth or self.is_authenticated():
            return
        if self.config.dry_run:
            reporter.print_warning("Not authenticated with GitHub (dry run, continuing)")
            return
        reporter.print_step("Authenticating with GitHub CLI...")
        try:
            subprocess.run([_gh_executable(), "auth", "login"], check=False)  # noqa: S603
        except OSError as exc:
            raise LabelError(f"gh auth login failed: {exc}") from exc
        if not self.is_authenticated():
            raise LabelError("GitHub CLI authentication failed. Run 'gh auth login' manually.")

    # ── Label operations ─────────────────────────────────────────

    def list_labels(self) -> list[str]:
        """Names of the repository's labels.

        Raises:
            LabelError: If ``gh label list`` fails.
        """
        result = self._gh("label", "list", "--limit", _LIST_LIMIT)
        if result.returncode != 0:
            raise LabelError(f"Could not list labels: {result.stderr.strip()}")
        return parse_label_list(result.stdout)

    def print_labels(self) -> list[str]:
        result = self._gh("label", "list", "--limit", _LIST_LIMIT)
        if result.returncode != 0:
            raise LabelError(f"Could not list labels: {result.stderr.strip()}")

        table = Table(title="Repository Labels", title_style="bold cyan")
        table.add_column("Name")
        table.add_column("Description", style="dim")
        table.add_column("Color")
        names = []
        for line in result.stdout.splitlines():
            parts = [*line.split("\t"), "", ""][:3]
            if not parts[0].strip():
                continue
            names.append(parts[0].strip())
            table.add_row(parts[0].strip(), parts[1].strip(), parts[2].strip())
        reporter.console.print(table)
        reporter.print_info(f"{len(names)} labels")
        return names

    def delete_all_labels(self, existing: list[str]) -> None:
        for name in existing:
            if self._mutate("label", "delete", name, "--yes"):
                self.summary.deleted += 1
                reporter.print_success(f"Deleted {name}")
            else:
                self.summary.failed += 1
                reporter.print_error(f"Could not delete {name}")

    def update_labels(self, existing: set[str]) -> None:
        """Rename GitHub's defaults; restyle ones already renamed."""
        for update in self.updates:
            if update.old_name in existing:
                target = update.old_name
                args = ["label", "edit", target, "--name", update.new_name]
            elif update.new_name in existing:
                target = update.new_name
                args = ["label", "edit", target]
            else:
                self.summary.skipped += 1
                logger.debug("Label %r not present, skipping", update.old_name)
                continue

            args += ["--description", update.description, "--color", update.color]
            if self._mutate(*args):
                self.summary.updated += 1
                existing.discard(target)
                existing.add(update.new_name)
                reporter.print_success(f"Updated {target} → {update.new_name}")
            else:
                self.summary.failed += 1
                reporter.print_error(f"Could not update {target}")

    def create_labels(self, existing: set[str]) -> None:
        for label in self.labels:
            if label.name in existing:
                self.summary.skipped += 1
                continue
            if self._mutate(
                "label",
                "create",
                label.name,
                "--description",
                label.description,
                "--color",
                label.color,
            ):
                self.summary.created += 1
                existing.add(label.name)
                reporter.print_success(f"Created {label.name}")
            else:
                self.summary.failed += 1
                reporter.print_error(f"Could not create {label.name}")

    def run(self) -> LabelSummary:
        """Install/auth check, then list, delete, update and create labels.

        Raises:
            LabelError: If ``gh`` is unusable.
        """
        reporter.print_banner("GitHub Labels", "Standard issue labels via the GitHub CLI")

        installed = self.ensure_gh_installed()
        if not installed and not self.config.dry_run:
            raise LabelError(f"GitHub CLI (gh) is required. Install it from {GH_INSTALL_URL}")

        if installed:
            self.ensure_authenticated()

        if self.config.list_only:
            if installed:
                self.print_labels()
            return self.summary

        existing = self.list_labels() if installed else []
        if self.config.delete_all:
            self.delete_all_labels(existing)
            existing = []

        current = set(existing)
        self.update_labels(current)
        if not self.config.update_only:
            self.create_labels(current)

        print_label_summary(self.summary, dry_run=self.config.dry_run)
        return self.summary


def print_label_summary(summary: LabelSummary, *, dry_run: bool = False) -> None:
    title = "Label Summary (dry run)" if dry_run else "Label Summary"
    reporter.console.print()
    reporter.print_key_value_table(
        title,
        {
            "Updated": str(summary.updated),
            "Created": str(summary.created),
            "Deleted": str(summary.deleted),
            "Skipped": str(summary.skipped),
            "Failed": str(summary.failed),
        },
    )
