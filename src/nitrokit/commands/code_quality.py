"""Code quality runner: lint, format, type-check, test and audit a project."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from rich.table import Table

from nitrokit.config import CodeQualityConfig
from nitrokit.detectors.project import ProjectInfo, ProjectType, detect_project
from nitrokit.reporters.terminal import format_duration, reporter
from nitrokit.utils.subprocess_runner import SubprocessError, run_subprocess

logger = logging.getLogger(__name__)

_MAX_OUTPUT_LINES = 20


@dataclass
class QualityCheck:
    """A single external command to run."""

    name: str
    """Display name."""

    kind: str
    """Check kind (lint, format, typecheck, test, security, validate)."""

    command: list[str]
    """Command and arguments."""


@dataclass
class CheckResult:
    """Outcome of running one QualityCheck."""

    name: str
    kind: str
    success: bool
    output: str = ""
    duration_ms: float = 0.0


@dataclass
class QualityReport:
    """All results from one run."""

    project: ProjectInfo
    results: list[CheckResult] = field(default_factory=list)

    @property
    def passed(self) -> int:
        """Number of successful checks."""
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        """Number of failed checks."""
        return sum(1 for r in self.results if not r.success)

    @property
    def success(self) -> bool:
        """True when no check failed."""
        return self.failed == 0


def _frontend_checks(info: ProjectInfo) -> list[QualityCheck]:
    pm = info.package_manager_command
    checks = [QualityCheck("ESLint", "lint", [pm, "run", "lint"])]
    if info.has_typescript:
        checks.append(QualityCheck("TypeScript", "typecheck", [pm, "run", "type-check"]))
    checks.append(QualityCheck("Tests", "test", [pm, "test"]))
    checks.append(QualityCheck("Security Audit", "security", [pm, "audit"]))
    return checks


def _node_checks(info: ProjectInfo) -> list[QualityCheck]:
    pm = info.package_manager_command
    return [
        QualityCheck("ESLint", "lint", [pm, "run", "lint"]),
        QualityCheck("Tests", "test", [pm, "test"]),
        QualityCheck("Security Audit", "security", [pm, "audit"]),
    ]


def _rust_checks() -> list[QualityCheck]:
    return [
        QualityCheck("Rustfmt", "format", ["cargo", "fmt", "--check"]),
        QualityCheck("Clippy", "lint", ["cargo", "clippy", "--", "-D", "warnings"]),
        QualityCheck("Cargo Test", "test", ["cargo", "test"]),
    ]


def _python_checks() -> list[QualityCheck]:
    return [
        QualityCheck("Flake8", "lint", ["flake8", "."]),
        QualityCheck("Black", "format", ["black", "--check", "."]),
        QualityCheck("Pytest", "test", ["pytest"]),
        QualityCheck("Bandit", "security", ["bandit", "-r", "."]),
    ]


def build_checks(info: ProjectInfo) -> list[QualityCheck]:
    """Return every check applicable to the detected project type."""
    if info.project_type.is_frontend:
        return _frontend_checks(info)
    if info.project_type is ProjectType.NODEJS:
        return _node_checks(info)
    if info.project_type is ProjectType.RUST:
        return _rust_checks()
    if info.project_type is ProjectType.PYTHON:
        return _python_checks()
    return [QualityCheck("Project Structure", "validate", ["echo", "Basic validation passed"])]


class CodeQualityRunner:
    """Detects the project and runs the enabled checks one after another."""

    def __init__(self, root: Path, config: CodeQualityConfig | None = None) -> None:
        self.root = root
        self.config = config or CodeQualityConfig()

    def selected_checks(self, info: ProjectInfo) -> list[QualityCheck]:
        """Filter the applicable checks down to the enabled kinds."""
        return [c for c in build_checks(info) if self.config.is_enabled(c.kind)]

    async def run_check(self, check: QualityCheck) -> CheckResult:
        """Run one check; a missing executable counts as a failure."""
        try:
            result = await run_subprocess(
                check.command,
                cwd=self.root,
                timeout=float(self.config.timeout_seconds),
            )
        except SubprocessError as exc:
            return CheckResult(check.name, check.kind, success=False, output=str(exc))

        output = result.output
        if result.timed_out:
            output = f"Timed out after {self.config.timeout_seconds}s"
        return CheckResult(
            check.name,
            check.kind,
            success=result.success,
            output=output,
            duration_ms=result.duration_ms,
        )

    async def run(self) -> QualityReport:
        """Detect, run and report."""
        info = detect_project(self.root)
        reporter.print_info(f"Detected project type: {info.project_type.display_name}")
        if info.config_files:
            reporter.print_info(f"Config files: {', '.join(info.config_files)}")

        report = QualityReport(project=info)
        for check in self.selected_checks(info):
            with reporter.create_status(f"Running {check.name}..."):
                result = await self.run_check(check)
            report.results.append(result)
            if result.success:
                reporter.print_success(f"{check.name} passed")
            else:
                reporter.print_error(f"{check.name} failed")
                _print_output_tail(result.output)

        print_quality_summary(report)
        return report


def _print_output_tail(output: str) -> None:
    lines = [line for line in output.splitlines() if line.strip()]
    for line in lines[-_MAX_OUTPUT_LINES:]:
        reporter.console.print(f"    {line}", style="dim", markup=False, highlight=False)


def print_quality_summary(report: QualityReport) -> None:
    """Print a results table and the pass/fail totals."""
    if not report.results:
        reporter.print_warning("No checks were enabled for this project")
        return

    table = Table(title="Code Quality Summary", title_style="bold cyan")
    table.add_column("Check")
    table.add_column("Type", style="dim")
    table.add_column("Status")
    table.add_column("Duration", justify="right")
    for result in report.results:
        status = "[green]✓ passed[/green]" if result.success else "[red]✗ failed[/red]"
        table.add_row(result.name, result.kind, status, format_duration(result.duration_ms))

    reporter.console.print()
    reporter.console.print(table)

    if report.success:
        reporter.print_success(f"All {report.passed} checks passed")
    else:
        reporter.print_error(f"{report.failed} of {len(report.results)} checks failed")
