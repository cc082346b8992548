"""Tests for CLI helper functions (menu, release prompt and logging setup)."""

from __future__ import annotations

import logging
from unittest.mock import patch

import click
import pytest
from rich.logging import RichHandler

from nitrokit.cli_helpers import (
    EXIT_CHOICES,
    MENU_OPTIONS,
    ReleasePlan,
    abort_with,
    normalize_menu_choice,
    prompt_release_plan,
    setup_logging,
)


class TestMenu:
    def test_menu_keys(self) -> None:
        keys = [key for key, _ in MENU_OPTIONS]
        assert keys == ["1", "2", "3", "4", "5", "6", "7", "h", "v", "u", "q"]

    @pytest.mark.parametrize("choice", ["q", " Q ", "exit", "QUIT"])
    def test_exit_choices(self, choice: str) -> None:
        assert normalize_menu_choice(choice) in EXIT_CHOICES

    def test_normalize_keeps_other_choices(self) -> None:
        assert normalize_menu_choice(" 3\n") == "3"


class TestPromptReleasePlan:
    def test_minor_with_message(self) -> None:
        with (
            patch("nitrokit.cli_helpers.click.prompt", side_effect=["2", "Dashboard"]),
            patch("nitrokit.cli_helpers.click.confirm", return_value=True) as confirm,
        ):
            plan = prompt_release_plan("1.4.2")

        assert plan == ReleasePlan(bump_type="minor", new_version="1.5.0", message="Dashboard")
        assert confirm.call_args[0][0] == "Create release v1.5.0?"

    def test_bump_keyword_accepted(self) -> None:
        with (
            patch("nitrokit.cli_helpers.click.prompt", side_effect=["major", ""]),
            patch("nitrokit.cli_helpers.click.confirm", return_value=True),
        ):
            plan = prompt_release_plan("1.4.2")

        assert plan is not None
        assert plan.new_version == "2.0.0"
        assert plan.message is None

    def test_invalid_choice_falls_back_to_patch(self) -> None:
        with (
            patch("nitrokit.cli_helpers.click.prompt", side_effect=["9", ""]),
            patch("nitrokit.cli_helpers.click.confirm", return_value=True),
        ):
            plan = prompt_release_plan("0.1.0")

        assert plan is not None
        assert plan.bump_type == "patch"
        assert plan.new_version == "0.1.1"

    def test_declined(self) -> None:
        with (
            patch("nitrokit.cli_helpers.click.prompt", side_effect=["1", ""]),
            patch("nitrokit.cli_helpers.click.confirm", return_value=False),
        ):
            assert prompt_release_plan("0.1.0") is None


def test_abort_with_returns_abort() -> None:
    with patch("nitrokit.cli_helpers.reporter") as rep:
        exc = abort_with("boom", ValueError("cause"))

    assert isinstance(exc, click.Abort)
    rep.print_error.assert_called_once_with("boom")


@pytest.mark.parametrize(("verbose", "level"), [(True, logging.DEBUG), (False, logging.WARNING)])
def test_setup_logging(verbose: bool, level: int) -> None:
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        setup_logging(verbose=verbose)

        assert root.level == level
        assert any(isinstance(h, RichHandler) for h in root.handlers)
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
