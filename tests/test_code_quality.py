"""Tests for the code quality runner."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING
from unittest import mock

from nitrokit.commands.code_quality import (
    CheckResult,
    CodeQualityRunner,
    QualityCheck,
    QualityReport,
    build_checks,
    print_quality_summary,
)
from nitrokit.config import CodeQualityConfig
from nitrokit.detectors.project import ProjectInfo, ProjectType, detect_project
from nitrokit.utils.subprocess_runner import SubprocessError, SubprocessResult

if TYPE_CHECKING:
    from pathlib import Path

_RUNNER = "nitrokit.commands.code_quality.run_subprocess"


def _ok(stdout: str = "") -> SubprocessResult:
    return SubprocessResult(returncode=0, stdout=stdout, stderr="", success=True, duration_ms=5.0)


def _fail(stderr: str = "boom") -> SubprocessResult:
    return SubprocessResult(returncode=1, stdout="", stderr=stderr, success=False)


def _info(tmp_path: Path, project_type: ProjectType, **kwargs: bool) -> ProjectInfo:
    return ProjectInfo(root=tmp_path, project_type=project_type, **kwargs)


# ── build_checks ─────────────────────────────────────────────────────


def test_rust_checks(tmp_path: Path) -> None:
    checks = build_checks(_info(tmp_path, ProjectType.RUST))

    assert [c.name for c in checks] == ["Rustfmt", "Clippy", "Cargo Test"]
    assert checks[1].command == ["cargo", "clippy", "--", "-D", "warnings"]


def test_python_checks(tmp_path: Path) -> None:
    kinds = [c.kind for c in build_checks(_info(tmp_path, ProjectType.PYTHON))]
    assert kinds == ["lint", "format", "test", "security"]


def test_frontend_typescript_adds_type_check(tmp_path: Path) -> None:
    (tmp_path / "pnpm-lock.yaml").write_text("")
    (tmp_path / "tsconfig.json").write_text("{}")
    (tmp_path / "package.json").write_text(json.dumps({"dependencies": {"next": "14"}}))

    checks = build_checks(detect_project(tmp_path))

    assert [c.kind for c in checks] == ["lint", "typecheck", "test", "security"]
    assert checks[0].command == ["pnpm", "run", "lint"]


def test_node_checks(tmp_path: Path) -> None:
    checks = build_checks(_info(tmp_path, ProjectType.NODEJS))
    assert [c.name for c in checks] == ["ESLint", "Tests", "Security Audit"]


def test_unknown_project_gets_validation(tmp_path: Path) -> None:
    checks = build_checks(_info(tmp_path, ProjectType.UNKNOWN))

    assert len(checks) == 1
    assert checks[0].kind == "validate"


def test_selected_checks_respects_config(tmp_path: Path) -> None:
    runner = CodeQualityRunner(
        tmp_path, CodeQualityConfig(enabled_checks=["test"], skip_dependencies=True)
    )

    selected = runner.selected_checks(_info(tmp_path, ProjectType.PYTHON))

    assert [c.name for c in selected] == ["Pytest"]


# ── run_check / run ──────────────────────────────────────────────────


async def test_run_check_success(tmp_path: Path) -> None:
    runner = CodeQualityRunner(tmp_path)
    with mock.patch(_RUNNER, new=mock.AsyncMock(return_value=_ok("fine"))) as run:
        result = await runner.run_check(QualityCheck("Pytest", "test", ["pytest"]))

    assert result == CheckResult("Pytest", "test", success=True, output="fine", duration_ms=5.0)
    assert run.call_args.kwargs["cwd"] == tmp_path
    assert run.call_args.kwargs["timeout"] == 300.0


async def test_run_check_missing_tool_is_failure(tmp_path: Path) -> None:
    error = SubprocessError("Command not found: flake8", _fail())
    with mock.patch(_RUNNER, new=mock.AsyncMock(side_effect=error)):
        result = await CodeQualityRunner(tmp_path).run_check(
            QualityCheck("Flake8", "lint", ["flake8", "."])
        )

    assert not result.success
    assert "Command not found" in result.output


async def test_run_check_timeout_message(tmp_path: Path) -> None:
    timed_out = SubprocessResult(
        returncode=-1, stdout="", stderr="", success=False, timed_out=True
    )
    runner = CodeQualityRunner(tmp_path, CodeQualityConfig(timeout_seconds=7))
    with mock.patch(_RUNNER, new=mock.AsyncMock(return_value=timed_out)):
        result = await runner.run_check(QualityCheck("Tests", "test", ["npm", "test"]))

    assert result.output == "Timed out after 7s"


async def test_run_rust_project_mixed_results(tmp_path: Path) -> None:
    (tmp_path / "Cargo.toml").write_text('[package]\nname = "x"\n')
    results = [_ok(), _fail("warning: unused"), _ok()]

    with mock.patch(_RUNNER, new=mock.AsyncMock(side_effect=results)):
        report = await CodeQualityRunner(tmp_path).run()

    assert report.project.project_type is ProjectType.RUST
    assert [r.success for r in report.results] == [True, False, True]
    assert report.passed == 2
    assert report.failed == 1
    assert not report.success


async def test_run_unknown_project_passes(tmp_path: Path) -> None:
    with mock.patch(_RUNNER, new=mock.AsyncMock(return_value=_ok("Basic validation passed"))):
        report = await CodeQualityRunner(tmp_path).run()

    assert report.success
    assert [r.name for r in report.results] == ["Project Structure"]


def test_summary_with_no_results(tmp_path: Path) -> None:
    report = QualityReport(project=_info(tmp_path, ProjectType.UNKNOWN))
    with mock.patch("nitrokit.commands.code_quality.reporter") as rep:
        print_quality_summary(report)

    rep.print_warning.assert_called_once()
