"""Release notes generation from git history.

Finds the latest and previous version tags, sorts the commits between them
into categories and renders a markdown document.
"""

from __future__ import annotations

import functools
import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from nitrokit.detectors.project import ProjectType, detect_project
from nitrokit.utils.git import (
    CommitInfo,
    GitOperationError,
    get_commits_between,
    get_current_branch,
    get_head_commit,
    get_remote_url,
    get_tags,
    has_commits,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

FALLBACK_TAG = "v0.1.0"
FALLBACK_DEV_TAG = "v0.1.0-dev"

_MAX_OTHER_ENTRIES = 10
_MAX_TIMELINE_COMMITS = 20
_TIMELINE_MESSAGE_LENGTH = 50

_NON_VERSION_MARKERS = ("backup", "temp", "test", "old")
_VERSION_IN_TEXT_RE = re.compile(r"v?(\d+\.\d+\.\d+(?:-[a-zA-Z0-9]+)?)")
_LEADING_VERSION_RE = re.compile(r"^(v?\d+\.\d+\.\d+)(.*)$", re.IGNORECASE)
_UNSAFE_TAG_CHARS_RE = re.compile(r"[/: ]")
_PRERELEASE_MARKERS = ("-alpha", "-beta", "-rc", "-pre", "-snapshot")
_CONVENTIONAL_RE = re.compile(r"^(\w+)(?:\(([^)]*)\))?(!)?\s*:\s*(.+)$")
_NOREPLY_SUFFIX = "@users.noreply.github.com"


# ── Tags ──────────────────────────────────────────────────────────


def is_version_tag(tag: str) -> bool:
    """Heuristically decide whether *tag* names a release.

    A version tag contains a digit, is not a backup/temp/test/old tag, and
    either starts with ``v`` or a digit, mentions release/version/rel-, or
    contains a dot.
    """
    if not any(ch.isdigit() for ch in tag):
        return False
    lowered = tag.lower()
    if any(marker in lowered for marker in _NON_VERSION_MARKERS):
        return False
    return (
        lowered.startswith("v")
        or tag[0].isdigit()
        or "release" in lowered
        or "version" in lowered
        or "rel-" in lowered
        or "." in tag
    )


def _version_numbers(tag: str) -> list[int]:
    digits = "".join(ch for ch in tag if ch.isdigit() or ch == ".")
    return [int(part) for part in digits.split(".") if part.isdigit()]


def compare_version_tags(a: str, b: str) -> int:
    """Compare two tags numerically; returns -1, 0 or 1.

    Components are compared as integers, so ``v1.10.0`` sorts above
    ``v1.9.0``. With an equal prefix the tag with more components wins.
    """
    va, vb = _version_numbers(a), _version_numbers(b)
    for x, y in zip(va, vb, strict=False):
        if x != y:
            return -1 if x < y else 1
    if len(va) != len(vb):
        return -1 if len(va) < len(vb) else 1
    return 0


def sort_version_tags(tags: Iterable[str]) -> list[str]:
    """Return the version tags among *tags*, newest first."""
    version_tags = [t for t in tags if is_version_tag(t)]
    return sorted(version_tags, key=functools.cmp_to_key(compare_version_tags), reverse=True)


def find_latest_tags(
    tags: Iterable[str], current: str | None = None
) -> tuple[str | None, str | None]:
    """Pick (latest, previous) version tags.

    When *current* is given it becomes the latest and the previous is the
    next lower version tag.
    """
    ordered = sort_version_tags(tags)
    if current is not None:
        lower = [t for t in ordered if t != current and compare_version_tags(t, current) < 0]
        return current, (lower[0] if lower else None)
    if not ordered:
        return None, None
    return ordered[0], (ordered[1] if len(ordered) > 1 else None)


def extract_version_from_branch(text: str) -> str | None:
    """Pull ``1.2.3`` (optionally ``-suffix``) out of a branch name."""
    match = _VERSION_IN_TEXT_RE.search(text)
    return match.group(1) if match else None


def generate_smart_tag(branch: str, date: str, short_hash: str, message: str) -> str:
    """Synthesize a tag name for a repository without version tags.

    Release branches carrying a version use it directly; otherwise the
    commit message hints at the bump, then the branch name picks the channel.
    """
    branch_lower = branch.lower()
    message_lower = message.lower()

    if "release" in branch_lower or "rel" in branch_lower:
        version = extract_version_from_branch(branch)
        if version:
            return f"v{version}"

    suffix = f"{date}.{short_hash}"
    if "major" in message_lower or "breaking" in message_lower:
        return f"v1.0.0-dev.{suffix}"
    if "minor" in message_lower or "feature" in message_lower or "feat" in message_lower:
        return f"v0.2.0-dev.{suffix}"
    if "patch" in message_lower or "fix" in message_lower or "hotfix" in message_lower:
        return f"v0.1.1-dev.{suffix}"

    if branch_lower in {"main", "master"}:
        return f"v0.1.0-main.{suffix}"
    if branch_lower in {"develop", "dev"}:
        return f"v0.1.0-dev.{suffix}"
    if branch_lower.startswith("feature/"):
        return f"v0.1.0-feature.{suffix}"
    if branch_lower.startswith("hotfix/"):
        return f"v0.1.0-hotfix.{suffix}"
    return f"v0.1.0-{branch_lower.replace('/', '-')}.{suffix}"


def clean_tag_name(tag: str) -> str:
    """Reduce a tag to a filename-safe release name.

    Build metadata (``.abc1234``, ``-main.2025.05.26``) and pre-release
    suffixes are dropped; ``/``, ``:`` and spaces become ``_``. Applying it
    twice gives the same result.
    """
    stripped = tag.strip()
    match = _LEADING_VERSION_RE.match(stripped)
    if match:
        base, rest = match.groups()
        if not rest or rest[0] in ".-":
            return base
        return base + _UNSAFE_TAG_CHARS_RE.sub("_", rest)

    cleaned = _UNSAFE_TAG_CHARS_RE.sub("_", stripped)
    if not any(ch.isalnum() for ch in cleaned):
        return FALLBACK_TAG
    return cleaned


def is_prerelease(tag: str) -> bool:
    """True for alpha, beta, rc, pre and snapshot tags."""
    lowered = tag.lower()
    return any(marker in lowered for marker in _PRERELEASE_MARKERS)


# ── Repository ────────────────────────────────────────────────────


@dataclass
class RepositoryInfo:
    """Where the repository is hosted."""

    url: str = ""
    """Browsable https URL without ``.git``."""

    name: str = ""
    owner: str = ""
    is_github: bool = False
    is_gitlab: bool = False
    is_bitbucket: bool = False

    @classmethod
    def from_remote_url(cls, remote_url: str) -> RepositoryInfo:
        """Parse an https or ssh remote URL."""
        url = remote_url.strip()
        if url.endswith(".git"):
            url = url[: -len(".git")]
        url = url.rstrip("/")
        ssh = re.match(r"^(?:ssh://)?git@([^:/]+)[:/](.+)$", url)
        if ssh:
            url = f"https://{ssh.group(1)}/{ssh.group(2)}"

        info = cls(url=url)
        info.is_github = "github.com" in url
        info.is_gitlab = "gitlab.com" in url
        info.is_bitbucket = "bitbucket.org" in url

        parts = [p for p in re.sub(r"^https?://[^/]+/?", "", url).split("/") if p]
        if parts:
            info.name = parts[-1]
        if len(parts) > 1:
            info.owner = parts[-2]
        return info

    def compare_url(self, from_tag: str, to_tag: str) -> str:
        """Link comparing two refs."""
        separator = ".." if self.is_bitbucket else "..."
        return f"{self.url}/compare/{from_tag}{separator}{to_tag}"

    def commits_url(self, tag: str) -> str:
        """Link to the history at *tag*."""
        return f"{self.url}/commits/{tag}"

    @property
    def issues_url(self) -> str:
        """Issue tracker link."""
        return f"{self.url}/issues"

    @property
    def new_issue_url(self) -> str:
        """New issue link."""
        return f"{self.url}/issues/new"


# ── Categorization ────────────────────────────────────────────────


class CommitCategory(Enum):
    """Release-note sections, in display order."""

    BREAKING = ("breaking", "## ⚠️ Breaking Changes")
    SECURITY = ("security", "## 🔒 Security Updates")
    FEATURES = ("features", "## ✨ New Features")
    FIXES = ("fixes", "## 🐛 Bug Fixes")
    IMPROVEMENTS = ("improvements", "## 🔧 Improvements")
    TRANSLATIONS = ("translations", "## 🌍 Translation Updates")
    DOCS = ("docs", "## 📚 Documentation")
    DEPS = ("deps", "## 📦 Dependencies")
    OTHER = ("other", "## 🔄 Other Changes")

    def __init__(self, key: str, heading: str) -> None:
        self.key = key
        self.heading = heading


_CONVENTIONAL_TYPES: dict[str, CommitCategory] = {
    "feat": CommitCategory.FEATURES,
    "feature": CommitCategory.FEATURES,
    "fix": CommitCategory.FIXES,
    "bugfix": CommitCategory.FIXES,
    "hotfix": CommitCategory.FIXES,
    "docs": CommitCategory.DOCS,
    "doc": CommitCategory.DOCS,
    "refactor": CommitCategory.IMPROVEMENTS,
    "perf": CommitCategory.IMPROVEMENTS,
    "style": CommitCategory.IMPROVEMENTS,
    "security": CommitCategory.SECURITY,
    "deps": CommitCategory.DEPS,
    "i18n": CommitCategory.TRANSLATIONS,
    "l10n": CommitCategory.TRANSLATIONS,
}

# Checked in order against the lowercased subject.
_KEYWORD_RULES: tuple[tuple[CommitCategory, tuple[str, ...]], ...] = (
    (CommitCategory.BREAKING, ("breaking",)),
    (CommitCategory.SECURITY, ("security", "vulnerability", "cve")),
    (CommitCategory.FEATURES, ("feat", "feature", "add")),
    (CommitCategory.FIXES, ("fix", "bug", "hotfix")),
    (CommitCategory.IMPROVEMENTS, ("improve", "enhance", "update", "refactor")),
    (CommitCategory.DOCS, ("doc", "readme")),
    (CommitCategory.DEPS, ("dep", "bump", "upgrade", "yarn", "npm", "cargo")),
    (CommitCategory.TRANSLATIONS, ("translation", "i18n", "locale")),
)


def categorize_commit(subject: str, body: str = "") -> CommitCategory:
    """Assign a commit to exactly one category.

    Breaking markers win, then a recognised conventional-commit type, then
    keyword matching on the subject.
    """
    first_line = subject.strip().splitlines()[0] if subject.strip() else ""
    lowered = first_line.lower()

    match = _CONVENTIONAL_RE.match(first_line)
    if match and match.group(3):
        return CommitCategory.BREAKING
    if "breaking" in lowered or "BREAKING CHANGE" in body:
        return CommitCategory.BREAKING

    if match:
        ctype = match.group(1).lower()
        scope = (match.group(2) or "").lower()
        if scope == "deps":
            return CommitCategory.DEPS
        if ctype in _CONVENTIONAL_TYPES:
            return _CONVENTIONAL_TYPES[ctype]

    for category, keywords in _KEYWORD_RULES:
        if any(keyword in lowered for keyword in keywords):
            return category
    return CommitCategory.OTHER


def categorize_commits(commits: Iterable[CommitInfo]) -> dict[CommitCategory, list[str]]:
    """Group commits as ``title (shorthash)`` lines, every category present."""
    grouped: dict[CommitCategory, list[str]] = {category: [] for category in CommitCategory}
    for commit in commits:
        category = categorize_commit(commit.subject, commit.body)
        grouped[category].append(f"{commit.subject.strip()} ({commit.short_sha})")
    return grouped


# ── Contributors ──────────────────────────────────────────────────


@dataclass
class Contributor:
    """A commit author with their commit count."""

    email: str
    name: str
    commits: int


def get_contributors(commits: Iterable[CommitInfo]) -> list[Contributor]:
    """Count commits per author email, most active first."""
    counts: Counter[str] = Counter()
    names: dict[str, str] = {}
    for commit in commits:
        counts[commit.author_email] += 1
        names.setdefault(commit.author_email, commit.author_name)
    contributors = [Contributor(email, names[email], n) for email, n in counts.items()]
    contributors.sort(key=lambda c: (-c.commits, c.name.lower()))
    return contributors


def format_contributor(contributor: Contributor, repo: RepositoryInfo) -> str:
    """Render one contributor line; GitHub noreply emails become profile links."""
    count = contributor.commits
    commits_text = "1 commit" if count == 1 else f"{count} commits"
    if repo.is_github and contributor.email.endswith(_NOREPLY_SUFFIX):
        user = contributor.email.removesuffix(_NOREPLY_SUFFIX).split("+")[-1]
        return f"- [@{user}](https://github.com/{user}) ({contributor.name}) - {commits_text}"
    return f"- {contributor.name} ({contributor.email}) - {commits_text}"


# ── Rendering ─────────────────────────────────────────────────────


@dataclass
class ReleaseNotesData:
    """Everything needed to render a release notes document."""

    repo: RepositoryInfo
    current_tag: str
    previous_tag: str | None
    commits: list[CommitInfo]
    project_type: ProjectType = ProjectType.UNKNOWN
    release_date: datetime = field(default_factory=lambda: datetime.now(tz=UTC))


_BUILD_STEPS: dict[str, tuple[list[str], list[str]]] = {
    "rust": (["cargo build --release"], ["cargo update", "cargo build --release"]),
    "node": (["npm install", "npm run build"], ["npm update", "npm run build"]),
    "python": (["pip install -r requirements.txt"], ["pip install --upgrade -r requirements.txt"]),
}


def _build_family(project_type: ProjectType) -> str | None:
    if project_type is ProjectType.RUST:
        return "rust"
    if project_type is ProjectType.PYTHON:
        return "python"
    if project_type.is_frontend or project_type is ProjectType.NODEJS:
        return "node"
    return None


def _render_installation(data: ReleaseNotesData) -> list[str]:
    family = _build_family(data.project_type)
    fresh, upgrade = _BUILD_STEPS.get(
        family or "",
        (
            ["# Follow project-specific build instructions"],
            ["# Follow project-specific update instructions"],
        ),
    )
    clone_url = f"{data.repo.url}.git" if data.repo.url else "<repository-url>"
    lines = [
        "## 🚀 Installation & Upgrade",
        "",
        "### For new projects:",
        "```bash",
        f"git clone {clone_url}",
        f"cd {data.repo.name or 'project'}",
        f"git checkout {data.current_tag}",
        *fresh,
        "```",
        "",
        "### For existing projects:",
        "```bash",
        "git pull origin main",
        f"git checkout {data.current_tag}",
        *upgrade,
        "```",
        "",
    ]
    return lines


def _render_timeline(commits: list[CommitInfo]) -> list[str]:
    lines = [
        "## 📊 Detailed Timeline",
        "",
        "| Date | Time | Commit | Author | Message |",
        "|------|------|--------|--------|---------|",
    ]
    for commit in commits:
        subject = commit.subject.strip().replace("|", "\\|")
        if len(subject) > _TIMELINE_MESSAGE_LENGTH:
            subject = subject[:_TIMELINE_MESSAGE_LENGTH] + "..."
        lines.append(
            f"| {commit.format_date()} | {commit.format_time()} | `{commit.short_sha}` "
            f"| {commit.author_name} | {subject} |"
        )
    lines.append("")
    return lines


def render_release_notes(data: ReleaseNotesData) -> str:
    """Render the markdown document."""
    repo = data.repo
    commits = data.commits
    comparison = (
        f"Changes since {data.previous_tag}" if data.previous_tag else "Initial release"
    )

    lines = [
        f"# Release {data.current_tag}",
        "",
        f"## 📋 {comparison}",
        "",
        f"- **Release Date:** {data.release_date.strftime('%Y-%m-%d')}",
    ]
    if repo.url:
        lines.append(f"- **Repository:** {repo.url}")
    lines.append(f"- **Total Commits:** {len(commits)}")
    if commits:
        # newest first
        lines.append(
            f"- **Commit Range:** {commits[-1].format_date()} to {commits[0].format_date()}"
        )
    lines.append("")

    if is_prerelease(data.current_tag):
        lines += [
            "🚨 **This is a pre-release version** - "
            "Use with caution in production environments.",
            "",
        ]

    grouped = categorize_commits(commits)
    for category in CommitCategory:
        entries = grouped[category]
        if not entries:
            continue
        if category is CommitCategory.OTHER and len(entries) > _MAX_OTHER_ENTRIES:
            continue
        lines += [category.heading, ""]
        if category is CommitCategory.BREAKING:
            lines += [
                "🚨 **Important:** This release contains breaking changes. "
                "Please review the migration guide before upgrading.",
                "",
            ]
        elif category is CommitCategory.SECURITY:
            lines += ["🛡️ **Security patches included in this release:**", ""]
        lines += [f"- {entry}" for entry in entries]
        lines.append("")

    contributors = get_contributors(commits)
    if contributors:
        lines += [
            "## 👥 Contributors",
            "",
            "Thanks to all the contributors who made this release possible:",
            "",
        ]
        lines += [format_contributor(c, repo) for c in contributors]
        lines.append("")

    lines += _render_installation(data)

    if commits and len(commits) <= _MAX_TIMELINE_COMMITS:
        lines += _render_timeline(commits)

    lines += ["## 📝 Full Changelog", ""]
    if repo.url and data.previous_tag:
        lines.append(
            f"**Full Changelog**: {repo.compare_url(data.previous_tag, data.current_tag)}"
        )
    elif repo.url:
        lines.append(f"**Full Changelog**: {repo.commits_url(data.current_tag)}")
    elif data.previous_tag:
        lines.append(f"**Full Changelog**: {data.previous_tag}...{data.current_tag}")
    else:
        lines.append(f"**Full Changelog**: {data.current_tag}")
    lines.append("")

    if repo.url:
        lines += ["---", "", "### 🔗 Useful Links", ""]
        lines.append(f"- 📖 **Documentation**: [README.md]({repo.url}#readme)")
        if repo.is_github:
            lines.append(f"- 💬 **Discussions**: [GitHub Discussions]({repo.url}/discussions)")
        lines += [f"- 🐛 **Report Issues**: [Issues]({repo.issues_url})", ""]
        lines += [
            "### 🆘 Getting Help",
            "",
            "If you encounter any issues with this release:",
            "",
            "1. Check the project documentation and README",
            f"2. Search [existing issues]({repo.issues_url})",
            f"3. Create a [new issue]({repo.new_issue_url}) with detailed information",
            "",
        ]

    lines += ["---", "", f"**Enjoy building with {repo.name or 'this project'}! 🚀**", ""]
    return "\n".join(lines)


def release_notes_filename(tag: str, date: datetime) -> str:
    """``ReleaseNotes_<clean tag>_<YYYYmmdd>.md``."""
    return f"ReleaseNotes_{clean_tag_name(tag)}_{date.strftime('%Y%m%d')}.md"


# ── Generator ─────────────────────────────────────────────────────


@dataclass
class ReleaseNotesGenerator:
    """Collects git data for a repository and writes release notes."""

    repo_path: Path
    remote: str = "origin"

    def repository_info(self) -> RepositoryInfo:
        """Host details from the remote, or just the directory name."""
        try:
            return RepositoryInfo.from_remote_url(get_remote_url(self.repo_path, self.remote))
        except GitOperationError:
            logger.debug("No %s remote; using directory name", self.remote)
            return RepositoryInfo(name=self.repo_path.resolve().name)

    def resolve_tags(
        self, tag: str | None = None, tags: list[str] | None = None
    ) -> tuple[str, str | None]:
        """Return (current, previous) tags, synthesizing one if necessary."""
        if tags is None:
            tags = get_tags(self.repo_path)
        latest, previous = find_latest_tags(tags, current=tag)
        if latest is not None:
            logger.debug("Using tag %s (previous: %s)", latest, previous)
            return latest, previous

        if not has_commits(self.repo_path):
            return FALLBACK_DEV_TAG, None

        head = get_head_commit(self.repo_path)
        date = (head.timestamp or datetime.now(tz=UTC)).strftime("%Y.%m.%d")
        try:
            branch = get_current_branch(self.repo_path)
        except GitOperationError:
            branch = "main"
        smart = generate_smart_tag(branch, date, head.short_sha, head.subject)
        logger.debug("No version tags; generated %s from branch %s", smart, branch)
        return smart, None

    def collect(self, tag: str | None = None) -> ReleaseNotesData:
        """Gather tags, commits and repository details."""
        tags = get_tags(self.repo_path)
        current, previous = self.resolve_tags(tag, tags)
        commits: list[CommitInfo] = []
        if has_commits(self.repo_path):
            to_ref = current if current in tags else "HEAD"
            commits = get_commits_between(self.repo_path, previous, to_ref)
        return ReleaseNotesData(
            repo=self.repository_info(),
            current_tag=current,
            previous_tag=previous,
            commits=commits,
            project_type=detect_project(self.repo_path).project_type,
        )

    def render(self, tag: str | None = None) -> tuple[ReleaseNotesData, str]:
        """Collect and render without writing."""
        data = self.collect(tag)
        return data, render_release_notes(data)

    def generate(self, tag: str | None = None, output: Path | None = None) -> Path:
        """Write the release notes file and return its path."""
        data, markdown = self.render(tag)
        path = output or self.repo_path / release_notes_filename(
            data.current_tag, data.release_date
        )
        path.write_text(markdown, encoding="utf-8")
        logger.info("Release notes written to %s", path)
        return path
