"""Git and GitHub API utilities for nitrokit.

Git is driven through the ``git`` executable; GitHub releases go through the
REST API with a ``GITHUB_TOKEN``.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import subprocess
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import requests

logger = logging.getLogger(__name__)

# GitHub API constants
GITHUB_API_BASE = "https://api.github.com"
_GITHUB_AUTH_ENV_KEY = "GITHUB_" + "TOKEN"
_REQUEST_TIMEOUT = 30

_COMMIT_SEPARATOR = "---COMMIT_END---"
_LOG_FORMAT = f"--format=%H%n%an%n%ae%n%at%n%s%n%b%n{_COMMIT_SEPARATOR}"
_HEADER_LINES = 5


def _git_executable() -> str:
    """Resolve the full path to the ``git`` executable."""
    return shutil.which("git") or "git"


def _gh_executable() -> str:
    """Resolve the full path to the ``gh`` CLI executable."""
    return shutil.which("gh") or "gh"


class GitHubAPIError(Exception):
    """Exception raised when GitHub API operations fail."""


class GitOperationError(Exception):
    """Exception raised when git operations fail."""


@dataclass
class ReleaseParams:
    """Parameters for creating a GitHub release."""

    owner: str
    """Repository owner."""

    repo: str
    """Repository name."""

    tag: str
    """Tag the release points at."""

    body: str
    """Release notes (markdown)."""

    name: str = ""
    """Release title; defaults to the tag."""

    prerelease: bool = False
    """Mark the release as a pre-release."""

    draft: bool = False
    """Create the release as a draft."""


class GitHubAPI:
    """Client for the GitHub REST API."""

    def __init__(self, token: str | None = None) -> None:
        """Initialize the GitHub API client.

        Args:
            token: GitHub personal access token. If not provided, will try to read
                from GITHUB_TOKEN environment variable.

        Raises:
            GitHubAPIError: If no token is available.
        """
        self._token = token or os.environ.get(_GITHUB_AUTH_ENV_KEY)
        if not self._token:
            raise GitHubAPIError(
                f"GitHub token required. Set {_GITHUB_AUTH_ENV_KEY} environment variable "
                "or pass token to constructor."
            )

        self._session_headers = {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    def create_release(self, params: ReleaseParams) -> dict[str, Any]:
        """Create a release for an existing tag.

        Returns:
            GitHub API response as a dictionary.

        Raises:
            GitHubAPIError: If the API request fails.
        """
        url = f"{GITHUB_API_BASE}/repos/{params.owner}/{params.repo}/releases"
        data: dict[str, Any] = {
            "tag_name": params.tag,
            "name": params.name or params.tag,
            "body": params.body,
            "draft": params.draft,
            "prerelease": params.prerelease,
        }

        logger.info("Creating GitHub release %s for %s/%s", params.tag, params.owner, params.repo)
        result: dict[str, Any] = self._post(url, data)
        return result

    def get_latest_release(self, owner: str, repo: str) -> dict[str, Any]:
        """Fetch the latest published release of a repository."""
        url = f"{GITHUB_API_BASE}/repos/{owner}/{repo}/releases/latest"
        result: dict[str, Any] = self._get(url)
        return result

    def _get(self, url: str) -> Any:
        """Make a GET request to the GitHub API.

        Raises:
            GitHubAPIError: If the request fails.
        """
        try:
            response = requests.get(url, headers=self._session_headers, timeout=_REQUEST_TIMEOUT)
            response.raise_for_status()
            return response.json()
        except requests.RequestException as exc:
            raise GitHubAPIError(f"GET request failed: {exc}") from exc

    def _post(self, url: str, data: dict[str, Any]) -> Any:
        """Make a POST request to the GitHub API.

        Raises:
            GitHubAPIError: If the request fails.
        """
        try:
            response = requests.post(
                url, json=data, headers=self._session_headers, timeout=_REQUEST_TIMEOUT
            )
            response.raise_for_status()
            return response.json()
        except requests.RequestException as exc:
            raise GitHubAPIError(f"POST request failed: {exc}") from exc


def parse_github_url(url: str) -> tuple[str | None, str | None]:
    """Parse owner and repo from a GitHub URL.

    Args:
        url: GitHub URL (HTTPS or SSH format).

    Returns:
        Tuple of (owner, repo) or (None, None) if parsing fails.
    """
    # HTTPS: https://github.com/owner/repo.git
    https_pattern = r"https://github\.com/([^/]+)/([^/]+?)(?:\.git)?/?$"
    # SSH: git@github.com:owner/repo.git
    ssh_pattern = r"git@github\.com:([^/]+)/([^/]+?)(?:\.git)?$"

    for pattern in [https_pattern, ssh_pattern]:
        match = re.match(pattern, url.strip())
        if match:
            owner, repo = match.groups()
            return owner, repo

    return None, None


_GIT_REF_MAX_LENGTH = 255
_GIT_REF_UNSAFE = re.compile(r"[\x00-\x1f\x7f \~\^:\?\*\[\]\\;|&$`()<>{}!#'\"]")


def _validate_git_ref(ref: str) -> None:
    """Validate a git ref to prevent injection and malformed inputs.

    Raises:
        GitOperationError: If the ref is invalid.
    """
    if not ref:
        raise GitOperationError("Git ref must not be empty")
    if len(ref) > _GIT_REF_MAX_LENGTH:
        raise GitOperationError(f"Git ref exceeds {_GIT_REF_MAX_LENGTH} characters")
    if _GIT_REF_UNSAFE.search(ref):
        raise GitOperationError(f"Git ref contains unsafe characters: {ref!r}")
    if ref.startswith("-"):
        raise GitOperationError("Git ref must not start with a dash")
    if ".." in ref:
        raise GitOperationError("Git ref must not contain '..'")


def _run_git(repo_path: Path | str, *args: str) -> str:
    """Run a git command and return its stripped stdout.

    Raises:
        GitOperationError: If git exits non-zero or is not installed.
    """
    try:
        result = subprocess.run(
            [_git_executable(), *args],
            cwd=repo_path,
            capture_output=True,
            text=True,
            check=True,
        )
    except subprocess.CalledProcessError as exc:
        detail = (exc.stderr or "").strip() or str(exc)
        raise GitOperationError(f"git {args[0]} failed: {detail}") from exc
    except FileNotFoundError as exc:
        raise GitOperationError("git executable not found") from exc
    return result.stdout.strip()


@dataclass
class CommitInfo:
    """A single commit from git history."""

    sha: str
    """Full commit SHA."""

    subject: str
    """First line of the commit message."""

    body: str = ""
    """Rest of the commit message (may be empty)."""

    author_name: str = ""
    """Author display name."""

    author_email: str = ""
    """Author email address."""

    timestamp: datetime | None = None
    """Author date (UTC)."""

    @property
    def short_sha(self) -> str:
        """Seven-character abbreviated SHA."""
        return self.sha[:7]

    @property
    def message(self) -> str:
        """Full commit message."""
        return f"{self.subject}\n\n{self.body}" if self.body else self.subject

    def format_date(self) -> str:
        """Author date as ``YYYY-MM-DD``."""
        return self.timestamp.strftime("%Y-%m-%d") if self.timestamp else ""

    def format_time(self) -> str:
        """Author time as ``HH:MM``."""
        return self.timestamp.strftime("%H:%M") if self.timestamp else ""


def _parse_log(output: str) -> list[CommitInfo]:
    commits: list[CommitInfo] = []
    for raw in output.split(_COMMIT_SEPARATOR):
        part = raw.strip()
        if not part:
            continue
        lines = part.split("\n")
        if len(lines) < _HEADER_LINES:
            continue
        sha, name, email, stamp, subject = (line.strip() for line in lines[:_HEADER_LINES])
        body = "\n".join(lines[_HEADER_LINES:]).strip()
        timestamp = datetime.fromtimestamp(int(stamp), tz=UTC) if stamp.isdigit() else None
        commits.append(
            CommitInfo(
                sha=sha,
                subject=subject,
                body=body,
                author_name=name,
                author_email=email,
                timestamp=timestamp,
            )
        )
    return commits


def is_git_repository(path: Path | str) -> bool:
    """Return True when *path* is inside a git work tree."""
    try:
        return _run_git(path, "rev-parse", "--is-inside-work-tree") == "true"
    except GitOperationError:
        return False


def get_repo_root(path: Path | str) -> Path:
    """Return the top-level directory of the repository containing *path*."""
    return Path(_run_git(path, "rev-parse", "--show-toplevel"))


def has_commits(repo_path: Path | str) -> bool:
    """Return True when the repository has at least one commit."""
    try:
        _run_git(repo_path, "rev-parse", "--verify", "HEAD")
    except GitOperationError:
        return False
    return True


def get_tags(repo_path: Path | str) -> list[str]:
    """List all tag names in the repository."""
    output = _run_git(repo_path, "tag", "--list")
    return [line.strip() for line in output.splitlines() if line.strip()]


def get_version_tags_sorted(repo_path: Path | str, pattern: str = "v*") -> list[str]:
    """List tags matching *pattern*, highest version first (git's own sort)."""
    output = _run_git(repo_path, "tag", "--sort=-version:refname", "-l", pattern)
    return [line.strip() for line in output.splitlines() if line.strip()]


def tag_exists(repo_path: Path | str, tag: str) -> bool:
    """Return True if *tag* exists locally."""
    _validate_git_ref(tag)
    try:
        _run_git(repo_path, "rev-parse", "--verify", "--quiet", f"refs/tags/{tag}")
    except GitOperationError:
        return False
    return True


def get_commits_between(
    repo_path: Path | str,
    from_ref: str | None,
    to_ref: str = "HEAD",
) -> list[CommitInfo]:
    """List commits between two refs (exclusive of from_ref, inclusive of to_ref).

    With ``from_ref=None`` the whole history reachable from *to_ref* is
    returned. Newest commits come first.

    Raises:
        GitOperationError: If the operation fails.
    """
    _validate_git_ref(to_ref)
    if from_ref is not None:
        _validate_git_ref(from_ref)
        rev_range = f"{from_ref}..{to_ref}"
    else:
        rev_range = to_ref
    output = _run_git(repo_path, "log", _LOG_FORMAT, rev_range)
    return _parse_log(output)


def get_head_commit(repo_path: Path | str) -> CommitInfo:
    """Return the commit HEAD points at."""
    commits = _parse_log(_run_git(repo_path, "log", "-1", _LOG_FORMAT))
    if not commits:
        raise GitOperationError("Repository has no commits")
    return commits[0]


def get_current_branch(repo_path: Path | str) -> str:
    """Get the current git branch name.

    Raises:
        GitOperationError: If the operation fails.
    """
    return _run_git(repo_path, "rev-parse", "--abbrev-ref", "HEAD")


def get_remote_url(repo_path: Path | str, remote: str = "origin") -> str:
    """Get a remote URL.

    Raises:
        GitOperationError: If the remote is not configured.
    """
    return _run_git(repo_path, "config", "--get", f"remote.{remote}.url")


def is_working_tree_clean(repo_path: Path | str) -> bool:
    """Return True when ``git status --porcelain`` reports nothing."""
    return _run_git(repo_path, "status", "--porcelain") == ""


def add_files(repo_path: Path | str, files: list[str]) -> None:
    """Add files to git staging area.

    Raises:
        GitOperationError: If the operation fails.
    """
    _run_git(repo_path, "add", *files)
    logger.info("Added %d files to staging", len(files))


def commit(repo_path: Path | str, message: str) -> str:
    """Commit staged changes and return the new commit SHA.

    Raises:
        GitOperationError: If the operation fails.
    """
    _run_git(repo_path, "commit", "-m", message)
    commit_sha = _run_git(repo_path, "rev-parse", "HEAD")
    logger.info("Created commit %s", commit_sha[:8])
    return commit_sha


def create_annotated_tag(repo_path: Path | str, tag: str, message: str) -> None:
    """Create an annotated tag on HEAD.

    Raises:
        GitOperationError: If the tag is invalid or git fails.
    """
    _validate_git_ref(tag)
    _run_git(repo_path, "tag", "-a", tag, "-m", message)
    logger.info("Created tag %s", tag)


def push(repo_path: Path | str, remote: str = "origin") -> None:
    """Push the current branch.

    Raises:
        GitOperationError: If the push fails.
    """
    _run_git(repo_path, "push", remote)
    logger.info("Pushed current branch to %s", remote)


def push_tag(repo_path: Path | str, tag: str, remote: str = "origin") -> None:
    """Push a single tag.

    Raises:
        GitOperationError: If the push fails.
    """
    _validate_git_ref(tag)
    _run_git(repo_path, "push", remote, tag)
    logger.info("Pushed tag %s to %s", tag, remote)
