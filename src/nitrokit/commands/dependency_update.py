"""Dependency updater: analyze manifests and run each ecosystem's update tool."""

from __future__ import annotations

import contextlib
import logging
import re
import shutil
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from nitrokit.detectors.project import detect_node_package_manager, read_json_safe
from nitrokit.reporters.terminal import reporter
from nitrokit.utils.subprocess_runner import (
    SubprocessError,
    SubprocessResult,
    command_exists,
    run_subprocess,
)

logger = logging.getLogger(__name__)

MANIFEST_FILES = ("package.json", "Cargo.toml", "requirements.txt", "composer.json")
BACKUP_DIR = "backup"

_UPDATE_TIMEOUT = 600.0
_QUERY_TIMEOUT = 120.0

_NODE_LOCK_FILES = {
    "npm": "package-lock.json",
    "yarn": "yarn.lock",
    "pnpm": "pnpm-lock.yaml",
}

_ECOSYSTEMS = {
    "package.json": "node",
    "Cargo.toml": "cargo",
    "requirements.txt": "pip",
    "composer.json": "composer",
}


@dataclass
class DeclaredDependency:
    """A single dependency declared in a manifest file."""

    name: str
    version_spec: str = ""
    """Version specifier (e.g. ``"^1.0.0"``, ``">=3.8"``)."""
    is_dev: bool = False
    """``True`` for dev/test dependencies."""


@dataclass
class DependencyReport:
    """Dependencies declared in one manifest."""

    file: Path
    ecosystem: str
    dependencies: list[DeclaredDependency] = field(default_factory=list)

    @property
    def dev_count(self) -> int:
        """Number of dev dependencies."""
        return sum(1 for d in self.dependencies if d.is_dev)


@dataclass
class UpdateOutcome:
    """Result of updating one ecosystem."""

    ecosystem: str
    success: bool
    message: str = ""
    backup_path: Path | None = None
    outdated: str = ""


# ── Manifest parsers ──────────────────────────────────────────────


def _read_text_safe(path: Path) -> str | None:
    """Read a text file, returning ``None`` on any error."""
    with contextlib.suppress(OSError, UnicodeDecodeError):
        return path.read_text(encoding="utf-8")
    return None


def _parse_json_sections(
    path: Path, sections: tuple[tuple[str, bool], ...]
) -> list[DeclaredDependency]:
    data = read_json_safe(path)
    deps: list[DeclaredDependency] = []
    for section, is_dev in sections:
        section_data = data.get(section)
        if isinstance(section_data, dict):
            deps.extend(
                DeclaredDependency(name=str(name), version_spec=str(ver), is_dev=is_dev)
                for name, ver in section_data.items()
            )
    return deps


def _parse_package_json(path: Path) -> list[DeclaredDependency]:
    return _parse_json_sections(path, (("dependencies", False), ("devDependencies", True)))


def _parse_composer_json(path: Path) -> list[DeclaredDependency]:
    return _parse_json_sections(path, (("require", False), ("require-dev", True)))


def _parse_requirements_txt(path: Path) -> list[DeclaredDependency]:
    text = _read_text_safe(path)
    if text is None:
        return []
    deps: list[DeclaredDependency] = []
    for line in text.splitlines():
        stripped = line.split("#", 1)[0].strip()
        # Skip blank lines, options, and -r includes
        if not stripped or stripped.startswith("-"):
            continue
        m = re.match(r"([A-Za-z0-9_][A-Za-z0-9._-]*)", stripped)
        if m:
            name = m.group(1)
            deps.append(DeclaredDependency(name=name, version_spec=stripped[len(name) :].strip()))
    return deps


def _parse_cargo_toml(path: Path) -> list[DeclaredDependency]:
    text = _read_text_safe(path)
    if text is None:
        return []
    deps: list[DeclaredDependency] = []
    section: str | None = None
    for line in text.splitlines():
        stripped = line.strip()
        if stripped.startswith("["):
            section = stripped.strip("[]").strip()
            continue
        if section not in {"dependencies", "dev-dependencies"}:
            continue
        is_dev = section == "dev-dependencies"
        m = re.match(r'(\w[\w-]*)\s*=\s*"([^"]*)"', stripped)
        if m:
            deps.append(DeclaredDependency(name=m.group(1), version_spec=m.group(2), is_dev=is_dev))
            continue
        # Table-style: serde = { version = "1.0", features = [...] }
        m_table = re.match(r"(\w[\w-]*)\s*=\s*\{(.*)", stripped)
        if m_table:
            version = re.search(r'version\s*=\s*"([^"]*)"', m_table.group(2))
            deps.append(
                DeclaredDependency(
                    name=m_table.group(1),
                    version_spec=version.group(1) if version else "",
                    is_dev=is_dev,
                )
            )
    return deps


_PARSERS = {
    "package.json": _parse_package_json,
    "Cargo.toml": _parse_cargo_toml,
    "requirements.txt": _parse_requirements_txt,
    "composer.json": _parse_composer_json,
}


def find_dependency_files(root: Path) -> list[Path]:
    """Return the supported manifests that exist in *root*."""
    return [root / name for name in MANIFEST_FILES if (root / name).is_file()]


def analyze_dependency_file(path: Path) -> DependencyReport:
    """Parse one manifest into a DependencyReport.

    Raises:
        ValueError: If the file type is not supported.
    """
    parser = _PARSERS.get(path.name)
    if parser is None:
        raise ValueError(f"Unsupported dependency file: {path.name}")
    return DependencyReport(file=path, ecosystem=_ECOSYSTEMS[path.name], dependencies=parser(path))


def backup_files(root: Path, names: list[str], *, now: datetime | None = None) -> Path | None:
    """Copy the existing files among *names* into ``backup/<timestamp>/``.

    Returns the backup directory, or ``None`` when nothing was copied.
    """
    existing = [root / name for name in names if (root / name).is_file()]
    if not existing:
        return None
    stamp = (now or datetime.now()).strftime("%Y%m%d%H%M%S")
    target = root / BACKUP_DIR / stamp
    target.mkdir(parents=True, exist_ok=True)
    for path in existing:
        shutil.copy2(path, target / path.name)
        logger.debug("Backed up %s to %s", path.name, target)
    return target


# ── Updater ───────────────────────────────────────────────────────


class DependencyUpdater:
    """Runs the update workflow for every manifest found in a project."""

    def __init__(self, root: Path) -> None:
        self.root = root

    async def _run(
        self, command: list[str], *, timeout: float = _UPDATE_TIMEOUT
    ) -> SubprocessResult | None:
        """Run *command*, returning ``None`` (after a warning) when the tool is missing."""
        try:
            return await run_subprocess(command, cwd=self.root, timeout=timeout)
        except SubprocessError as exc:
            reporter.print_warning(str(exc))
            return None

    async def _report_outdated(self, command: list[str]) -> str:
        reporter.print_step("Checking for outdated packages...")
        result = await self._run(command, timeout=_QUERY_TIMEOUT)
        if result is None:
            return ""
        # `outdated` exits non-zero when something is outdated
        listing = result.stdout.strip()
        if listing:
            reporter.print_warning("Outdated packages:")
            reporter.console.print(listing, markup=False, highlight=False)
        else:
            reporter.print_success("All packages are up to date")
        return listing

    async def _report_audit(self, command: list[str]) -> None:
        reporter.print_step("Running security audit...")
        result = await self._run(command, timeout=_QUERY_TIMEOUT)
        if result is None:
            return
        if "vulnerabilities" in result.stdout:
            reporter.print_warning("Security audit:")
            reporter.console.print(result.stdout.strip(), markup=False, highlight=False)
        else:
            reporter.print_success("No known vulnerabilities reported")

    async def update_node(self) -> UpdateOutcome:
        """Update Node dependencies with the project's package manager."""
        manager = detect_node_package_manager(self.root)
        if manager is None:
            return UpdateOutcome("node", success=False, message="No Node package manager found")

        command_prefix = [manager]
        if not command_exists(manager):
            if manager == "yarn" and command_exists("npx"):
                reporter.print_info("yarn not on PATH, using npx yarn")
                command_prefix = ["npx", "yarn"]
            else:
                return UpdateOutcome("node", success=False, message=f"{manager} is not installed")

        reporter.print_info(f"Using package manager: {manager}")
        backup = backup_files(self.root, ["package.json", _NODE_LOCK_FILES[manager]])
        if backup:
            reporter.print_info(f"Backup created in {backup}")

        update_verb = "upgrade" if manager == "yarn" else "update"
        reporter.print_step(f"Running {manager} {update_verb}...")
        result = await self._run([*command_prefix, update_verb])
        if result is None or not result.success:
            detail = result.output if result else "command unavailable"
            return UpdateOutcome(
                "node",
                success=False,
                message=f"{manager} {update_verb} failed: {detail}",
                backup_path=backup,
            )
        reporter.print_success(f"{manager} dependencies updated")

        outdated = await self._report_outdated([*command_prefix, "outdated"])
        if manager in {"yarn", "pnpm"}:
            await self._report_audit([*command_prefix, "audit"])
        return UpdateOutcome("node", success=True, backup_path=backup, outdated=outdated)

    async def update_cargo(self) -> UpdateOutcome:
        """Run ``cargo update``."""
        if not command_exists("cargo"):
            return UpdateOutcome("cargo", success=False, message="cargo is not installed")
        backup = backup_files(self.root, ["Cargo.toml", "Cargo.lock"])
        reporter.print_step("Running cargo update...")
        result = await self._run(["cargo", "update"])
        if result is None or not result.success:
            detail = result.output if result else "command unavailable"
            return UpdateOutcome(
                "cargo", success=False, message=f"cargo update failed: {detail}", backup_path=backup
            )
        reporter.print_success("Cargo dependencies updated")
        return UpdateOutcome("cargo", success=True, backup_path=backup)

    async def update_pip(self) -> UpdateOutcome:
        """Upgrade everything in ``requirements.txt``."""
        pip = next((name for name in ("pip", "pip3") if command_exists(name)), None)
        if pip is None:
            return UpdateOutcome("pip", success=False, message="pip is not installed")
        reporter.print_step("Running pip install --upgrade -r requirements.txt...")
        result = await self._run([pip, "install", "--upgrade", "-r", "requirements.txt"])
        if result is None or not result.success:
            detail = result.output if result else "command unavailable"
            return UpdateOutcome("pip", success=False, message=f"pip upgrade failed: {detail}")
        reporter.print_success("Python dependencies updated")
        outdated = await self._report_outdated([pip, "list", "--outdated"])
        return UpdateOutcome("pip", success=True, outdated=outdated)

    async def update_composer(self) -> UpdateOutcome:
        """Run ``composer update``."""
        if not command_exists("composer"):
            return UpdateOutcome("composer", success=False, message="composer is not installed")
        reporter.print_step("Running composer update...")
        result = await self._run(["composer", "update"])
        if result is None or not result.success:
            detail = result.output if result else "command unavailable"
            return UpdateOutcome(
                "composer", success=False, message=f"composer update failed: {detail}"
            )
        reporter.print_success("Composer dependencies updated")
        outdated = await self._report_outdated(["composer", "outdated"])
        return UpdateOutcome("composer", success=True, outdated=outdated)

    async def run(self) -> list[UpdateOutcome]:
        """Analyze and update every manifest; failures warn and move on."""
        files = find_dependency_files(self.root)
        if not files:
            reporter.print_warning("No supported dependency files found")
            reporter.print_info(f"Looked for: {', '.join(MANIFEST_FILES)}")
            return []

        updaters = {
            "node": self.update_node,
            "cargo": self.update_cargo,
            "pip": self.update_pip,
            "composer": self.update_composer,
        }

        outcomes: list[UpdateOutcome] = []
        for path in files:
            analysis = analyze_dependency_file(path)
            reporter.print_header(f"📦 {path.name}")
            reporter.print_info(
                f"{len(analysis.dependencies)} dependencies "
                f"({analysis.dev_count} dev) declared"
            )
            outcome = await updaters[analysis.ecosystem]()
            if not outcome.success:
                reporter.print_warning(outcome.message)
            outcomes.append(outcome)

        print_update_summary(outcomes)
        return outcomes


def print_update_summary(outcomes: list[UpdateOutcome]) -> None:
    """Print one line per ecosystem."""
    reporter.print_header("Dependency update summary")
    for outcome in outcomes:
        if outcome.success:
            reporter.print_success(f"{outcome.ecosystem}: updated")
        else:
            reporter.print_warning(f"{outcome.ecosystem}: {outcome.message}")
