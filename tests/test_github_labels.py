"""Tests for GitHub label management via the gh CLI."""

from __future__ import annotations

import subprocess
from typing import Any
from unittest import mock

import pytest

from nitrokit.commands.github_labels import (
    DEFAULT_LABEL_UPDATES,
    DEFAULT_NEW_LABELS,
    GitHubLabel,
    GitHubLabelsConfig,
    GitHubLabelsManager,
    LabelError,
    LabelUpdate,
    gh_install_command,
    parse_label_list,
)

_MODULE = "nitrokit.commands.github_labels"

_UPDATES = (
    LabelUpdate("bug", "🐛 bug", "Bugs", "D73A49"),
    LabelUpdate("question", "❓ question", "Questions", "CC317C"),
    LabelUpdate("wontfix", "🚫 wontfix", "Won't fix", "FFFFFF"),
)
_LABELS = (
    GitHubLabel("🔒 security", "Security", "D73A49"),
    GitHubLabel("🧪 testing", "Testing", "BFD4F2"),
)


class FakeGh:
    """Stands in for subprocess.run and records gh invocations."""

    def __init__(self, labels: str = "", *, authenticated: bool = True) -> None:
        self.labels = labels
        self.authenticated = authenticated
        self.calls: list[list[str]] = []
        self.failing: set[str] = set()

    def __call__(self, command: list[str], **_: Any) -> subprocess.CompletedProcess[str]:
        args = command[1:]
        self.calls.append(args)
        if args[:2] == ["auth", "status"]:
            return subprocess.CompletedProcess(command, 0 if self.authenticated else 1, "", "")
        if args[:2] == ["label", "list"]:
            return subprocess.CompletedProcess(command, 0, self.labels, "")
        if len(args) > 2 and args[2] in self.failing:
            return subprocess.CompletedProcess(command, 1, "", "HTTP 422")
        return subprocess.CompletedProcess(command, 0, "", "")

    def mutations(self) -> list[list[str]]:
        return [c for c in self.calls if c[:2] != ["auth", "status"] and c[1] != "list"]


def _manager(**options: bool) -> GitHubLabelsManager:
    return GitHubLabelsManager(GitHubLabelsConfig(**options), updates=_UPDATES, labels=_LABELS)


# ── Helpers ────────────────────────────────────────────────────────


def test_default_label_sets() -> None:
    assert len(DEFAULT_LABEL_UPDATES) == 11
    assert len(DEFAULT_NEW_LABELS) == 22
    assert all(len(label.color) == 6 for label in DEFAULT_NEW_LABELS)
    assert len({label.name for label in DEFAULT_NEW_LABELS}) == len(DEFAULT_NEW_LABELS)


def test_parse_label_list() -> None:
    output = "bug\tSomething isn't working\t#d73a4a\n\nquestion\tFurther info\t#d876e3\n"
    assert parse_label_list(output) == ["bug", "question"]


@pytest.mark.parametrize(
    ("system", "available", "expected"),
    [
        ("Darwin", {"brew"}, ["brew", "install", "gh"]),
        ("Darwin", set(), None),
        ("Windows", {"choco"}, ["choco", "install", "gh", "-y"]),
        ("Linux", {"dnf", "brew"}, ["sudo", "dnf", "install", "-y", "gh"]),
        ("Linux", set(), None),
        ("SunOS", {"brew"}, None),
    ],
)
def test_gh_install_command(system: str, available: set[str], expected: list[str] | None) -> None:
    with mock.patch(f"{_MODULE}.command_exists", side_effect=lambda name: name in available):
        assert gh_install_command(system) == expected


# ── Label operations ───────────────────────────────────────────────


def test_run_renames_restyles_and_creates() -> None:
    fake = FakeGh("bug\t\t\n❓ question\t\t\n🔒 security\t\t\n")

    with (
        mock.patch(f"{_MODULE}.command_exists", return_value=True),
        mock.patch(f"{_MODULE}.subprocess.run", side_effect=fake),
    ):
        summary = _manager().run()

    mutations = fake.mutations()
    assert mutations[0] == [
        "label", "edit", "bug", "--name", "🐛 bug", "--description", "Bugs", "--color", "D73A49",
    ]
    assert mutations[1][:3] == ["label", "edit", "❓ question"]
    assert "--name" not in mutations[1]
    assert mutations[2][:3] == ["label", "create", "🧪 testing"]
    assert len(mutations) == 3
    assert (summary.updated, summary.created, summary.skipped, summary.failed) == (2, 1, 2, 0)


def test_update_only_skips_creation() -> None:
    fake = FakeGh("bug\t\t\n")

    with (
        mock.patch(f"{_MODULE}.command_exists", return_value=True),
        mock.patch(f"{_MODULE}.subprocess.run", side_effect=fake),
    ):
        summary = _manager(update_only=True).run()

    assert summary.updated == 1
    assert summary.created == 0
    assert not any(c[1] == "create" for c in fake.mutations())


def test_delete_all_then_create() -> None:
    fake = FakeGh("bug\t\t\nold\t\t\n")
    fake.failing.add("old")

    with (
        mock.patch(f"{_MODULE}.command_exists", return_value=True),
        mock.patch(f"{_MODULE}.subprocess.run", side_effect=fake),
    ):
        summary = _manager(delete_all=True).run()

    assert fake.mutations()[0] == ["label", "delete", "bug", "--yes"]
    assert summary.deleted == 1
    assert summary.failed == 1
    assert summary.updated == 0
    assert summary.created == 2


def test_failed_mutation_counts() -> None:
    fake = FakeGh("")
    fake.failing.add("🔒 security")

    with (
        mock.patch(f"{_MODULE}.command_exists", return_value=True),
        mock.patch(f"{_MODULE}.subprocess.run", side_effect=fake),
    ):
        summary = _manager().run()

    assert summary.created == 1
    assert summary.failed == 1
    assert summary.skipped == 3


def test_dry_run_does_not_mutate() -> None:
    fake = FakeGh("bug\t\t\n")

    with (
        mock.patch(f"{_MODULE}.command_exists", return_value=True),
        mock.patch(f"{_MODULE}.subprocess.run", side_effect=fake),
    ):
        summary = _manager(dry_run=True).run()

    assert fake.mutations() == []
    assert summary.updated == 1
    assert summary.created == 2


def test_dry_run_without_gh() -> None:
    with (
        mock.patch(f"{_MODULE}.command_exists", return_value=False),
        mock.patch(f"{_MODULE}.subprocess.run") as run,
    ):
        summary = _manager(dry_run=True, skip_install=True).run()

    run.assert_not_called()
    assert summary.skipped == 3
    assert summary.created == 2


def test_list_only_prints_labels() -> None:
    fake = FakeGh("bug\tBroken\td73a4a\nquestion\t\t\n")

    with (
        mock.patch(f"{_MODULE}.command_exists", return_value=True),
        mock.patch(f"{_MODULE}.subprocess.run", side_effect=fake),
    ):
        summary = _manager(list_only=True, skip_auth=True).run()

    assert fake.mutations() == []
    assert summary.updated == summary.created == 0


def test_list_labels_failure_raises() -> None:
    failed = subprocess.CompletedProcess(["gh"], 1, "", "no repo")

    with (
        mock.patch(f"{_MODULE}.subprocess.run", return_value=failed),
        pytest.raises(LabelError, match="Could not list labels: no repo"),
    ):
        _manager().list_labels()


# ── Install and auth ───────────────────────────────────────────────


def test_missing_gh_raises_when_install_skipped() -> None:
    with (
        mock.patch(f"{_MODULE}.command_exists", return_value=False),
        pytest.raises(LabelError, match="GitHub CLI \\(gh\\) is required"),
    ):
        _manager(skip_install=True).run()


def test_install_declined() -> None:
    with (
        mock.patch(f"{_MODULE}.command_exists", side_effect=lambda name: name == "brew"),
        mock.patch(f"{_MODULE}.platform.system", return_value="Darwin"),
        mock.patch(f"{_MODULE}.click.confirm", return_value=False),
        mock.patch(f"{_MODULE}.subprocess.run") as run,
    ):
        assert _manager().ensure_gh_installed() is False

    run.assert_not_called()


def test_authentication_login_flow() -> None:
    fake = FakeGh(authenticated=False)

    def run(command: list[str], **kwargs: Any) -> subprocess.CompletedProcess[str]:
        if command[1:] == ["auth", "login"]:
            fake.authenticated = True
        return fake(command, **kwargs)

    with mock.patch(f"{_MODULE}.subprocess.run", side_effect=run):
        _manager().ensure_authenticated()

    assert ["auth", "login"] in fake.calls


def test_authentication_failure_raises() -> None:
    fake = FakeGh(authenticated=False)

    with (
        mock.patch(f"{_MODULE}.subprocess.run", side_effect=fake),
        pytest.raises(LabelError, match="authentication failed"),
    ):
        _manager().ensure_authenticated()


def test_gh_timeout_becomes_label_error() -> None:
    with (
        mock.patch(
            f"{_MODULE}.subprocess.run",
            side_effect=subprocess.TimeoutExpired(["gh"], 60),
        ),
        pytest.raises(LabelError, match="gh auth failed"),
    ):
        _manager().is_authenticated()
