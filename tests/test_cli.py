"""Tests for the CLI module."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from pathlib import Path

    from pytest_mock import MockerFixture

from prreview.cli import comments_cmd, config_cmd, doctor, snapshot_cmd
from prreview.config import CONFIG_FILENAME
from prreview.gh import GhError, GhNotAuthenticatedError
from prreview.models import PRComments, PRSnapshot


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    (tmp_path / ".git").mkdir()
    monkeypatch.chdir(tmp_path)
    return tmp_path


class TestSnapshotCommand:
    def test_prints_json(self, mocker: MockerFixture, workspace: Path, capsys: pytest.CaptureFixture[str]):  # noqa: ARG002
        fetch = mocker.patch("prreview.tools.snapshot.fetch_pr_snapshot", return_value=PRSnapshot(diff="+x"))
        snapshot_cmd("https://github.com/octo/widgets/pull/7")
        data = json.loads(capsys.readouterr().out)
        assert data["diff"] == "+x"
        ref = fetch.call_args.args[0]
        assert (ref.owner, ref.repo, ref.number) == ("octo", "widgets", 7)

    def test_invalid_reference_exits(self, workspace: Path, capsys: pytest.CaptureFixture[str]):  # noqa: ARG002
        with pytest.raises(SystemExit) as exc_info:
            snapshot_cmd("not-a-pr")
        assert exc_info.value.code == 1
        data = json.loads(capsys.readouterr().out)
        assert data["error_kind"] == "invalid_reference"


class TestCommentsCommand:
    def test_repo_option(self, mocker: MockerFixture, workspace: Path, capsys: pytest.CaptureFixture[str]):  # noqa: ARG002
        fetch = mocker.patch("prreview.tools.comments.list_pr_comments", return_value=PRComments())
        comments_cmd("12", repo="octo/widgets")
        ref = fetch.call_args.args[0]
        assert (ref.owner, ref.repo, ref.number) == ("octo", "widgets", 12)
        assert json.loads(capsys.readouterr().out)["stats"]["total_threads"] == 0

    def test_auth_failure_reported(self, mocker: MockerFixture, workspace: Path, capsys: pytest.CaptureFixture[str]):  # noqa: ARG002
        mocker.patch("prreview.tools.comments.list_pr_comments", side_effect=GhNotAuthenticatedError())
        with pytest.raises(SystemExit):
            comments_cmd("12", repo="octo/widgets")
        data = json.loads(capsys.readouterr().out)
        assert data["error_kind"] == "auth_required"
        assert "gh auth login" in data["error"]


class TestConfigCommand:
    def test_init(self, workspace: Path):
        config_cmd(init=True)
        assert (workspace / CONFIG_FILENAME).exists()

    def test_init_refuses_existing(self, workspace: Path):
        (workspace / CONFIG_FILENAME).write_text("[review]\n", encoding="utf-8")
        with pytest.raises(SystemExit):
            config_cmd(init=True)

    def test_shows_active_config(self, workspace: Path, capsys: pytest.CaptureFixture[str]):
        (workspace / CONFIG_FILENAME).write_text("[snapshot]\nmax_diff_chars = 5000\n", encoding="utf-8")
        config_cmd()
        out = capsys.readouterr().out
        assert CONFIG_FILENAME in out
        assert "Diff limit: 5000" in out

    def test_invalid_config_exits(self, workspace: Path):
        (workspace / CONFIG_FILENAME).write_text('[review]\ndefault_event = "MERGE"\n', encoding="utf-8")
        with pytest.raises(SystemExit):
            config_cmd()


class TestDoctor:
    def test_healthy(self, mocker: MockerFixture, workspace: Path, capsys: pytest.CaptureFixture[str]):  # noqa: ARG002
        mocker.patch("prreview.gh.check_auth", return_value="testuser")
        mocker.patch("prreview.gh.get_repo_info", return_value=("octo", "widgets"))
        doctor()
        out = capsys.readouterr().out
        assert "prreview doctor" in out
        assert "testuser" in out
        assert "octo/widgets" in out
        assert "defaults" in out

    def test_gh_error_exits(self, mocker: MockerFixture, workspace: Path, capsys: pytest.CaptureFixture[str]):  # noqa: ARG002
        mocker.patch("prreview.gh.check_auth", side_effect=GhNotAuthenticatedError())
        mocker.patch("prreview.gh.get_repo_info", side_effect=GhError("not a git repository"))
        with pytest.raises(SystemExit):
            doctor()
        out = capsys.readouterr().out
        assert "gh CLI error" in out
        assert "Current repository: none" in out

    def test_invalid_config_exits(self, workspace: Path):
        (workspace / CONFIG_FILENAME).write_text("{{broken", encoding="utf-8")
        with pytest.raises(SystemExit):
            doctor()

    def test_shows_config(self, mocker: MockerFixture, workspace: Path, capsys: pytest.CaptureFixture[str]):
        (workspace / CONFIG_FILENAME).write_text('[bots]\nextra_logins = ["ci-runner"]\n', encoding="utf-8")
        mocker.patch("prreview.gh.check_auth", return_value="testuser")
        mocker.patch("prreview.gh.get_repo_info", return_value=("octo", "widgets"))
        doctor()
        assert "ci-runner" in capsys.readouterr().out
