"""Tests for git and GitHub API utilities."""

from __future__ import annotations

import os
import subprocess
from pathlib import Path
from unittest import mock

import pytest
import requests

from nitrokit.utils.git import (
    CommitInfo,
    GitHubAPI,
    GitHubAPIError,
    GitOperationError,
    ReleaseParams,
    _parse_log,
    _validate_git_ref,
    add_files,
    commit,
    create_annotated_tag,
    get_commits_between,
    get_current_branch,
    get_head_commit,
    get_remote_url,
    get_tags,
    get_version_tags_sorted,
    has_commits,
    is_git_repository,
    is_working_tree_clean,
    parse_github_url,
    tag_exists,
)

# ── Helpers ────────────────────────────────────────────────────────


def _git(path: Path, *args: str) -> None:
    subprocess.run(["git", *args], cwd=path, capture_output=True, check=True)


def _git_init(path: Path) -> None:
    _git(path, "init")
    _git(path, "config", "user.email", "test@test.com")
    _git(path, "config", "user.name", "Test")


def _git_commit(path: Path, message: str) -> None:
    f = path / "f"
    f.write_text((f.read_text() if f.exists() else "") + "x\n")
    _git(path, "add", "f")
    _git(path, "commit", "-m", message)


# ── GitHubAPI ──────────────────────────────────────────────────────


class TestGitHubAPI:
    """Tests for GitHubAPI class."""

    def test_init_with_token(self) -> None:
        api = GitHubAPI(token="test-token")  # noqa: S106
        assert api._token == "test-token"  # noqa: S105

    def test_init_from_env(self) -> None:
        with mock.patch.dict(os.environ, {"GITHUB_TOKEN": "env-token"}):
            api = GitHubAPI()
            assert api._token == "env-token"  # noqa: S105

    def test_init_no_token_raises(self) -> None:
        with (
            mock.patch.dict(os.environ, {}, clear=True),
            pytest.raises(GitHubAPIError, match="GitHub token required"),
        ):
            GitHubAPI()

    @mock.patch("nitrokit.utils.git.requests.post")
    def test_create_release_success(self, mock_post: mock.Mock) -> None:
        mock_response = mock.Mock()
        mock_response.json.return_value = {"id": 7, "html_url": "https://github.com/o/r/releases/7"}
        mock_post.return_value = mock_response

        api = GitHubAPI(token="test-token")  # noqa: S106
        result = api.create_release(
            ReleaseParams(owner="o", repo="r", tag="v1.2.0", body="notes", prerelease=True)
        )

        assert result["id"] == 7
        url = mock_post.call_args[0][0]
        payload = mock_post.call_args[1]["json"]
        assert url.endswith("/repos/o/r/releases")
        assert payload == {
            "tag_name": "v1.2.0",
            "name": "v1.2.0",
            "body": "notes",
            "draft": False,
            "prerelease": True,
        }
        headers = mock_post.call_args[1]["headers"]
        assert headers["Authorization"] == "Bearer test-token"

    @mock.patch("nitrokit.utils.git.requests.post")
    def test_create_release_http_error(self, mock_post: mock.Mock) -> None:
        mock_response = mock.Mock()
        mock_response.raise_for_status.side_effect = requests.HTTPError("422 Unprocessable")
        mock_post.return_value = mock_response

        api = GitHubAPI(token="test-token")  # noqa: S106
        with pytest.raises(GitHubAPIError, match="POST request failed"):
            api.create_release(ReleaseParams(owner="o", repo="r", tag="v1.0.0", body=""))

    @mock.patch("nitrokit.utils.git.requests.get")
    def test_get_latest_release(self, mock_get: mock.Mock) -> None:
        mock_get.return_value.json.return_value = {"tag_name": "v3.0.0"}

        api = GitHubAPI(token="test-token")  # noqa: S106
        assert api.get_latest_release("o", "r")["tag_name"] == "v3.0.0"
        assert mock_get.call_args[0][0].endswith("/repos/o/r/releases/latest")

    @mock.patch("nitrokit.utils.git.requests.get")
    def test_get_connection_error(self, mock_get: mock.Mock) -> None:
        mock_get.side_effect = requests.ConnectionError("offline")

        api = GitHubAPI(token="test-token")  # noqa: S106
        with pytest.raises(GitHubAPIError, match="GET request failed"):
            api.get_latest_release("o", "r")


# ── URL / ref parsing ──────────────────────────────────────────────


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("https://github.com/user/repo.git", ("user", "repo")),
        ("https://github.com/user/repo", ("user", "repo")),
        ("git@github.com:user/repo.git", ("user", "repo")),
        ("https://gitlab.com/user/repo.git", (None, None)),
        ("not a url", (None, None)),
    ],
)
def test_parse_github_url(url: str, expected: tuple[str | None, str | None]) -> None:
    assert parse_github_url(url) == expected


@pytest.mark.parametrize("ref", ["", "-rf", "a..b", "v1; rm", "tag with space", "x" * 300])
def test_validate_git_ref_rejects(ref: str) -> None:
    with pytest.raises(GitOperationError):
        _validate_git_ref(ref)


def test_validate_git_ref_accepts_version_tags() -> None:
    _validate_git_ref("v1.0.0-beta.1")
    _validate_git_ref("release/2024")


def test_parse_log() -> None:
    output = (
        "abc1234567\nAda\nada@example.com\n1700000000\nfeat: add x\nbody line\n---COMMIT_END---\n"
        "def7654321\nBob\nbob@example.com\n1700000100\nfix: y\n\n---COMMIT_END---\n"
    )
    commits = _parse_log(output)

    assert [c.subject for c in commits] == ["feat: add x", "fix: y"]
    assert commits[0].body == "body line"
    assert commits[0].short_sha == "abc1234"
    assert commits[0].author_email == "ada@example.com"
    assert commits[1].body == ""
    assert commits[0].format_date() == "2023-11-14"


def test_commit_info_message_and_blank_dates() -> None:
    info = CommitInfo(sha="a" * 40, subject="subject", body="body")
    assert info.message == "subject\n\nbody"
    assert info.format_date() == ""
    assert info.format_time() == ""


# ── Real repositories ──────────────────────────────────────────────


class TestRepository:
    def test_not_a_repository(self, tmp_path: Path) -> None:
        assert not is_git_repository(tmp_path)

    def test_empty_repository(self, tmp_path: Path) -> None:
        _git_init(tmp_path)

        assert is_git_repository(tmp_path)
        assert not has_commits(tmp_path)
        assert get_tags(tmp_path) == []

    def test_commits_and_tags(self, tmp_path: Path) -> None:
        _git_init(tmp_path)
        _git_commit(tmp_path, "first")
        _git(tmp_path, "tag", "v1.0.0")
        _git_commit(tmp_path, "second")
        _git_commit(tmp_path, "third")
        _git(tmp_path, "tag", "v1.10.0")
        _git(tmp_path, "tag", "v1.2.0", "HEAD~1")

        assert has_commits(tmp_path)
        assert tag_exists(tmp_path, "v1.0.0")
        assert not tag_exists(tmp_path, "v9.9.9")
        assert get_version_tags_sorted(tmp_path) == ["v1.10.0", "v1.2.0", "v1.0.0"]

        between = get_commits_between(tmp_path, "v1.0.0", "v1.10.0")
        assert [c.subject for c in between] == ["third", "second"]
        assert len(get_commits_between(tmp_path, None)) == 3
        assert get_head_commit(tmp_path).subject == "third"

    def test_branch_and_remote(self, tmp_path: Path) -> None:
        _git_init(tmp_path)
        _git_commit(tmp_path, "first")
        _git(tmp_path, "checkout", "-b", "feature/x")
        _git(tmp_path, "remote", "add", "origin", "https://github.com/user/repo.git")

        assert get_current_branch(tmp_path) == "feature/x"
        assert get_remote_url(tmp_path) == "https://github.com/user/repo.git"
        with pytest.raises(GitOperationError):
            get_remote_url(tmp_path, "upstream")

    def test_add_commit_and_tag(self, tmp_path: Path) -> None:
        _git_init(tmp_path)
        _git_commit(tmp_path, "first")
        (tmp_path / "new.txt").write_text("hello")

        assert not is_working_tree_clean(tmp_path)
        add_files(tmp_path, ["new.txt"])
        sha = commit(tmp_path, "add new file")
        create_annotated_tag(tmp_path, "v0.2.0", "Release v0.2.0")

        assert len(sha) == 40
        assert is_working_tree_clean(tmp_path)
        assert tag_exists(tmp_path, "v0.2.0")

    def test_git_failure_raises(self, tmp_path: Path) -> None:
        _git_init(tmp_path)
        with pytest.raises(GitOperationError, match="git commit failed"):
            commit(tmp_path, "nothing staged")
