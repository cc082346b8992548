"""Project detector: classify a directory's toolchain from its marker files."""

from __future__ import annotations

import contextlib
import json
import logging
import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class ProjectType(Enum):
    """Toolchain families nitrokit knows how to drive."""

    NEXTJS = "nextjs"
    ANGULAR = "angular"
    REACT = "react"
    VUE = "vue"
    NODEJS = "nodejs"
    TYPESCRIPT = "typescript"
    JAVASCRIPT = "javascript"
    RUST = "rust"
    PYTHON = "python"
    UNKNOWN = "unknown"

    @property
    def is_frontend(self) -> bool:
        """True for browser-framework and plain JS/TS projects."""
        return self in _FRONTEND_TYPES

    @property
    def display_name(self) -> str:
        """Human-readable name."""
        return _DISPLAY_NAMES[self]


_FRONTEND_TYPES = frozenset(
    {
        ProjectType.NEXTJS,
        ProjectType.ANGULAR,
        ProjectType.REACT,
        ProjectType.VUE,
        ProjectType.TYPESCRIPT,
        ProjectType.JAVASCRIPT,
    }
)

_DISPLAY_NAMES = {
    ProjectType.NEXTJS: "Next.js",
    ProjectType.ANGULAR: "Angular",
    ProjectType.REACT: "React",
    ProjectType.VUE: "Vue.js",
    ProjectType.NODEJS: "Node.js",
    ProjectType.TYPESCRIPT: "TypeScript",
    ProjectType.JAVASCRIPT: "JavaScript",
    ProjectType.RUST: "Rust",
    ProjectType.PYTHON: "Python",
    ProjectType.UNKNOWN: "Unknown",
}


class PackageManager(Enum):
    """Package managers identified by their lock or manifest files."""

    NPM = "npm"
    YARN = "yarn"
    PNPM = "pnpm"
    BUN = "bun"
    CARGO = "cargo"
    PIP = "pip"
    UNKNOWN = "unknown"


class FrameworkType(Enum):
    """Frameworks with distinct release tasks."""

    NEXTJS = "nextjs"
    ANGULAR = "angular"
    NODEJS = "nodejs"
    REACT = "react"
    VUE = "vue"
    RUST = "rust"
    LARAVEL = "laravel"
    UNKNOWN = "unknown"


# Checked in order; first hit wins.
_PACKAGE_MANAGER_MARKERS: tuple[tuple[str, PackageManager], ...] = (
    ("package-lock.json", PackageManager.NPM),
    ("yarn.lock", PackageManager.YARN),
    ("pnpm-lock.yaml", PackageManager.PNPM),
    ("bun.lockb", PackageManager.BUN),
    ("Cargo.toml", PackageManager.CARGO),
    ("requirements.txt", PackageManager.PIP),
    ("pyproject.toml", PackageManager.PIP),
    ("poetry.lock", PackageManager.PIP),
)

_PYTHON_MARKERS = ("requirements.txt", "pyproject.toml", "setup.py", "poetry.lock")
_NEXT_CONFIGS = ("next.config.js", "next.config.ts", "next.config.mjs")

_CONFIG_FILES = (
    ".eslintrc",
    ".eslintrc.js",
    ".eslintrc.json",
    ".eslintrc.yml",
    "eslint.config.js",
    "eslint.config.mjs",
    ".prettierrc",
    ".prettierrc.json",
    "prettier.config.js",
    "tsconfig.json",
    "jest.config.js",
    "jest.config.ts",
    "vitest.config.ts",
    "vitest.config.js",
    "next.config.js",
    "next.config.ts",
    "next.config.mjs",
    "angular.json",
    "Cargo.toml",
    "rustfmt.toml",
    ".rustfmt.toml",
    "clippy.toml",
    "pyproject.toml",
    "setup.cfg",
    ".flake8",
    "tox.ini",
    "mypy.ini",
)


@dataclass
class ProjectInfo:
    """Result of project detection."""

    root: Path
    """Directory that was inspected."""

    project_type: ProjectType = ProjectType.UNKNOWN
    """Detected toolchain family."""

    package_manager: PackageManager = PackageManager.UNKNOWN
    """Detected package manager."""

    has_typescript: bool = False
    """True when tsconfig.json or a typescript dependency is present."""

    config_files: list[str] = field(default_factory=list)
    """Tool configuration files found in the root."""

    @property
    def package_manager_command(self) -> str:
        """Executable used for ``run``/``test``/``audit`` (npm when unknown)."""
        if self.package_manager in {
            PackageManager.UNKNOWN,
            PackageManager.CARGO,
            PackageManager.PIP,
        }:
            return "npm"
        return self.package_manager.value


def load_json_object(path: Path) -> dict[str, Any]:
    """Parse *path* as a JSON object.

    Raises:
        OSError: If the file cannot be read.
        ValueError: If it is not UTF-8, not JSON, or not an object.
    """
    raw = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError(f"{path.name} does not contain a JSON object")
    return raw


def read_json_safe(path: Path) -> dict[str, Any]:
    """Read and parse a JSON object file, returning ``{}`` on any error."""
    with contextlib.suppress(OSError, ValueError):
        return load_json_object(path)
    return {}


def _package_dependencies(package_json: dict[str, Any]) -> set[str]:
    names: set[str] = set()
    for section in ("dependencies", "devDependencies"):
        data = package_json.get(section)
        if isinstance(data, dict):
            names.update(str(name) for name in data)
    return names


def detect_package_manager(root: Path) -> PackageManager:
    """Return the package manager implied by the first marker file present."""
    for marker, manager in _PACKAGE_MANAGER_MARKERS:
        if (root / marker).exists():
            return manager
    return PackageManager.UNKNOWN


def find_config_files(root: Path) -> list[str]:
    """List known tool configuration files present in *root*."""
    return [name for name in _CONFIG_FILES if (root / name).exists()]


def detect_project(root: Path | str) -> ProjectInfo:
    """Classify the project rooted at *root*.

    Rust wins outright; Python markers come next; otherwise ``package.json``
    and framework config files decide between the JavaScript families.
    """
    root = Path(root)
    info = ProjectInfo(
        root=root,
        package_manager=detect_package_manager(root),
        config_files=find_config_files(root),
    )

    if (root / "Cargo.toml").exists():
        info.project_type = ProjectType.RUST
        return info

    if any((root / marker).exists() for marker in _PYTHON_MARKERS):
        info.project_type = ProjectType.PYTHON

    if (root / "tsconfig.json").exists():
        info.has_typescript = True
        if info.project_type is ProjectType.UNKNOWN:
            info.project_type = ProjectType.TYPESCRIPT

    package_json_path = root / "package.json"
    if package_json_path.exists():
        try:
            package_json = load_json_object(package_json_path)
        except (OSError, ValueError) as exc:
            logger.warning("Could not parse %s: %s", package_json_path, exc)
            package_json = {}
        deps = _package_dependencies(package_json)

        if "next" in deps:
            info.project_type = ProjectType.NEXTJS
        elif "@angular/core" in deps:
            info.project_type = ProjectType.ANGULAR
        elif "react" in deps and info.project_type is ProjectType.UNKNOWN:
            info.project_type = ProjectType.REACT
        elif "vue" in deps:
            info.project_type = ProjectType.VUE

        if "typescript" in deps:
            info.has_typescript = True

        if (
            info.project_type is ProjectType.UNKNOWN
            and ("scripts" in package_json or "main" in package_json)
        ):
            info.project_type = ProjectType.NODEJS

    if (root / "angular.json").exists():
        info.project_type = ProjectType.ANGULAR

    if any((root / name).exists() for name in _NEXT_CONFIGS):
        info.project_type = ProjectType.NEXTJS

    if info.project_type is ProjectType.UNKNOWN and package_json_path.exists():
        info.project_type = (
            ProjectType.TYPESCRIPT if info.has_typescript else ProjectType.JAVASCRIPT
        )

    logger.debug(
        "Detected %s project (package manager: %s)",
        info.project_type.value,
        info.package_manager.value,
    )
    return info


def detect_framework(root: Path | str) -> FrameworkType:
    """Classify the project for release tasks.

    Next.js beats React, and ``artisan`` next to ``composer.json`` means Laravel.
    """
    root = Path(root)
    if (root / "Cargo.toml").exists():
        return FrameworkType.RUST
    if (root / "artisan").exists() and (root / "composer.json").exists():
        return FrameworkType.LARAVEL

    package_json_path = root / "package.json"
    deps = _package_dependencies(read_json_safe(package_json_path))

    if any((root / name).exists() for name in _NEXT_CONFIGS) or "next" in deps:
        return FrameworkType.NEXTJS
    if (root / "angular.json").exists() or "@angular/core" in deps:
        return FrameworkType.ANGULAR
    if "vue" in deps:
        return FrameworkType.VUE
    if "react" in deps:
        return FrameworkType.REACT
    if package_json_path.exists():
        return FrameworkType.NODEJS
    return FrameworkType.UNKNOWN


def detect_node_package_manager(root: Path) -> str | None:
    """Pick the Node package manager from lock files, then from ``PATH``.

    Returns ``None`` when no Node package manager is usable.
    """
    for lock_file, name in (
        ("pnpm-lock.yaml", "pnpm"),
        ("yarn.lock", "yarn"),
        ("package-lock.json", "npm"),
    ):
        if (root / lock_file).exists():
            return name
    for name in ("pnpm", "yarn", "npm"):
        if shutil.which(name):
            return name
    return None
