"""Project configuration parsing from ``.nitrokit.yml``."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".nitrokit.yml"

_ENV_VAR_RE = re.compile(r"\$\{(\w+)\}")

VALID_CHECKS = ("lint", "format", "typecheck", "security", "test", "validate")
_DEFAULT_CHECKS = ("lint", "format", "security", "test")
_DEFAULT_TIMEOUT_SECONDS = 300


def _resolve_env_vars(value: str) -> str:
    """Replace ``${VAR_NAME}`` placeholders with environment variable values."""

    def _replace(match: re.Match[str]) -> str:
        var = match.group(1)
        resolved = os.environ.get(var)
        if resolved is None:
            logger.warning("Environment variable %s is not set (referenced in config)", var)
            return ""
        return resolved

    return _ENV_VAR_RE.sub(_replace, value)


def _resolve_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Recursively resolve environment variables in a dictionary."""
    result: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, str):
            result[key] = _resolve_env_vars(value)
        elif isinstance(value, dict):
            result[key] = _resolve_dict(value)
        elif isinstance(value, list):
            result[key] = [
                _resolve_env_vars(item) if isinstance(item, str) else item for item in value
            ]
        else:
            result[key] = value
    return result


@dataclass
class CodeQualityConfig:
    """Which quality checks run and how long each may take."""

    enabled_checks: list[str] = field(default_factory=lambda: list(_DEFAULT_CHECKS))
    """Check kinds to run (lint, format, typecheck, security, test, validate)."""

    skip_dependencies: bool = False
    """Skip dependency-audit style checks (``security``)."""

    timeout_seconds: int = _DEFAULT_TIMEOUT_SECONDS
    """Per-check timeout."""

    def is_enabled(self, kind: str) -> bool:
        """Return True when checks of *kind* should run.

        Type checking rides along with linting, and ``validate`` always runs.
        """
        if kind == "validate":
            return True
        if kind == "security" and self.skip_dependencies:
            return False
        if kind == "typecheck":
            return "typecheck" in self.enabled_checks or "lint" in self.enabled_checks
        return kind in self.enabled_checks


@dataclass
class ReleaseConfig:
    """Release creation settings."""

    remote: str = "origin"
    """Git remote that commits and tags are pushed to."""

    create_github_release: bool = True
    """Publish a GitHub release when a token is available."""

    run_framework_tasks: bool = True
    """Run lint/test/build before tagging."""


@dataclass
class NitrokitConfig:
    """Complete project configuration."""

    root: str
    """Project root directory."""

    code_quality: CodeQualityConfig = field(default_factory=CodeQualityConfig)
    release: ReleaseConfig = field(default_factory=ReleaseConfig)

    problems: list[str] = field(default_factory=list)
    """Values that could not be parsed and were replaced by defaults."""


_TRUE_STRINGS = frozenset({"true", "yes", "on", "1"})
_FALSE_STRINGS = frozenset({"false", "no", "off", "0"})


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name, {})
    return value if isinstance(value, dict) else {}


def _parse_bool(value: Any, default: bool, key: str, problems: list[str]) -> bool:
    """Coerce *value* to bool; ``${VAR}`` placeholders arrive as strings."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    problems.append(f"{key} must be true or false (got: {value!r})")
    logger.warning("Invalid %s=%r, using %s", key, value, default)
    return default


def _parse_int(value: Any, default: int, key: str, problems: list[str]) -> int:
    if isinstance(value, bool):
        value = str(value)
    try:
        return int(value)
    except (TypeError, ValueError):
        problems.append(f"{key} must be an integer (got: {value!r})")
        logger.warning("Invalid %s=%r, using %s", key, value, default)
        return default


def _parse_code_quality(raw: dict[str, Any], problems: list[str]) -> CodeQualityConfig:
    default = CodeQualityConfig()
    checks_raw = raw.get("enabled_checks", default.enabled_checks)
    checks = (
        [str(check) for check in checks_raw]
        if isinstance(checks_raw, list)
        else default.enabled_checks
    )
    return CodeQualityConfig(
        enabled_checks=checks,
        skip_dependencies=_parse_bool(
            raw.get("skip_dependencies", default.skip_dependencies),
            default.skip_dependencies,
            "code_quality.skip_dependencies",
            problems,
        ),
        timeout_seconds=_parse_int(
            raw.get("timeout_seconds", default.timeout_seconds),
            default.timeout_seconds,
            "code_quality.timeout_seconds",
            problems,
        ),
    )


def _parse_release(raw: dict[str, Any], problems: list[str]) -> ReleaseConfig:
    default = ReleaseConfig()
    return ReleaseConfig(
        remote=str(raw.get("remote", default.remote)),
        create_github_release=_parse_bool(
            raw.get("create_github_release", default.create_github_release),
            default.create_github_release,
            "release.create_github_release",
            problems,
        ),
        run_framework_tasks=_parse_bool(
            raw.get("run_framework_tasks", default.run_framework_tasks),
            default.run_framework_tasks,
            "release.run_framework_tasks",
            problems,
        ),
    )


def load_config(root: str | Path) -> NitrokitConfig:
    """Load ``.nitrokit.yml`` from *root*.

    A missing file yields defaults. Unreadable or unparseable YAML is logged
    and ignored; a value of the wrong type keeps its default and is listed in
    ``problems``.
    """
    root_path = Path(root).resolve()
    config_file = root_path / CONFIG_FILENAME

    raw: dict[str, Any] = {}
    if config_file.is_file():
        try:
            parsed = yaml.safe_load(config_file.read_text(encoding="utf-8"))
        except (OSError, ValueError, yaml.YAMLError) as exc:
            logger.warning("Ignoring invalid %s: %s", config_file, exc)
            parsed = None
        if isinstance(parsed, dict):
            raw = _resolve_dict(parsed)

    problems: list[str] = []
    return NitrokitConfig(
        root=str(root_path),
        code_quality=_parse_code_quality(_section(raw, "code_quality"), problems),
        release=_parse_release(_section(raw, "release"), problems),
        problems=problems,
    )


def validate_config(config: NitrokitConfig) -> list[str]:
    """Validate the configuration and return a list of error messages.

    Returns an empty list if the configuration is valid.
    """
    errors: list[str] = list(config.problems)

    unknown = [c for c in config.code_quality.enabled_checks if c not in VALID_CHECKS]
    if unknown:
        errors.append(
            f"code_quality.enabled_checks has unknown entries: {', '.join(unknown)} "
            f"(valid: {', '.join(VALID_CHECKS)})"
        )

    if config.code_quality.timeout_seconds < 1:
        errors.append(
            f"code_quality.timeout_seconds must be positive "
            f"(got: {config.code_quality.timeout_seconds})"
        )

    if not config.release.remote:
        errors.append("release.remote must not be empty")

    return errors
