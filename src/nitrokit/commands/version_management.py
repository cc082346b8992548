"""Semantic version parsing, comparison and bumping."""

from __future__ import annotations

import logging
import re
from pathlib import Path

from nitrokit.detectors.project import read_json_safe
from nitrokit.utils.git import GitOperationError, get_version_tags_sorted

logger = logging.getLogger(__name__)

BUMP_TYPES = ("major", "minor", "patch")
DEFAULT_VERSION = "0.0.0"

_VERSION_RE = re.compile(r"^v?(\d+)\.(\d+)\.(\d+)(?:-([0-9A-Za-z][0-9A-Za-z.-]*))?$")
_TOML_VERSION_RE = re.compile(r'^version\s*=\s*"([^"]+)"', re.MULTILINE)
_HISTORY_LIMIT = 10


def parse_version(text: str) -> tuple[int, int, int, str]:
    """Split ``[v]X.Y.Z[-pre]`` into its parts.

    Raises:
        ValueError: If *text* is not a semantic version.
    """
    match = _VERSION_RE.match(text.strip())
    if not match:
        raise ValueError(f"Invalid version: {text!r} (expected X.Y.Z)")
    major, minor, patch, pre = match.groups()
    return int(major), int(minor), int(patch), pre or ""


def is_valid_version(text: str) -> bool:
    """True when *text* parses as ``[v]X.Y.Z[-pre]``."""
    return _VERSION_RE.match(text.strip()) is not None


def format_version(major: int, minor: int, patch: int, pre: str = "") -> str:
    """Join version parts, without a ``v`` prefix."""
    core = f"{major}.{minor}.{patch}"
    return f"{core}-{pre}" if pre else core


def _prerelease_key(pre: str) -> tuple[tuple[int, int | str], ...]:
    """Sort key for dot-separated pre-release identifiers.

    Numeric identifiers compare as integers and rank below alphanumeric ones;
    a shorter identifier list ranks below a longer one it prefixes.
    """
    return tuple((0, int(part)) if part.isdigit() else (1, part) for part in pre.split("."))


def compare_versions(a: str, b: str) -> int:
    """Compare two versions; returns -1, 0 or 1.

    Numeric components decide first; with equal cores a pre-release is lower
    than the release, and ``rc.10`` is above ``rc.2``.
    """
    a_parts, b_parts = parse_version(a), parse_version(b)
    a_core, b_core = a_parts[:3], b_parts[:3]
    if a_core != b_core:
        return -1 if a_core < b_core else 1
    a_pre, b_pre = a_parts[3], b_parts[3]
    if a_pre == b_pre:
        return 0
    if not a_pre:
        return 1
    if not b_pre:
        return -1
    return -1 if _prerelease_key(a_pre) < _prerelease_key(b_pre) else 1


def bump_version(current: str, bump_type: str) -> str:
    """Return *current* bumped by *bump_type*, dropping any pre-release.

    Raises:
        ValueError: For an unknown bump type or unparseable version.
    """
    major, minor, patch, _ = parse_version(current)
    if bump_type == "major":
        return format_version(major + 1, 0, 0)
    if bump_type == "minor":
        return format_version(major, minor + 1, 0)
    if bump_type == "patch":
        return format_version(major, minor, patch + 1)
    raise ValueError(f"Invalid bump type: {bump_type!r} (use major, minor or patch)")


def determine_bump_type(target: str, current: str) -> str:
    """Work out which bump takes *current* to *target*.

    *target* is either a bump keyword or an explicit ``X.Y.Z`` that must be
    higher than *current*.

    Raises:
        ValueError: If *target* is neither, or is not an increase.
    """
    keyword = target.strip().lower()
    if keyword in BUMP_TYPES:
        return keyword

    try:
        new = parse_version(target)
    except ValueError:
        raise ValueError(
            "Invalid version format. Use 'major', 'minor', 'patch' or "
            "semantic version like '1.2.3'"
        ) from None
    old = parse_version(current)

    if new[0] > old[0]:
        return "major"
    if new[0] == old[0] and new[1] > old[1]:
        return "minor"
    if new[:2] == old[:2] and new[2] > old[2]:
        return "patch"
    raise ValueError(
        f"New version {format_version(*new[:3])} must be higher than current version "
        f"{format_version(*old[:3])}"
    )


def _toml_package_version(path: Path) -> str | None:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None
    match = _TOML_VERSION_RE.search(text)
    return match.group(1) if match else None


def get_current_version(root: Path) -> str:
    """Read the project version from its manifest, else the latest ``v*`` tag.

    Falls back to ``0.0.0``.
    """
    for name in ("package.json", "composer.json"):
        version = read_json_safe(root / name).get("version")
        if isinstance(version, str) and is_valid_version(version):
            return version.removeprefix("v")

    for name in ("Cargo.toml", "pyproject.toml"):
        version = _toml_package_version(root / name)
        if version and is_valid_version(version):
            return version

    try:
        tags = get_version_tags_sorted(root)
    except GitOperationError:
        tags = []
    for tag in tags:
        if is_valid_version(tag):
            return tag.removeprefix("v")

    return DEFAULT_VERSION


def get_version_history(root: Path, limit: int = _HISTORY_LIMIT) -> list[str]:
    """The newest ``v*`` tags, highest version first."""
    try:
        return get_version_tags_sorted(root)[:limit]
    except GitOperationError as exc:
        logger.debug("Could not read tags: %s", exc)
        return []
