"""Tests for automation account detection."""

from __future__ import annotations

import pytest

from prreview.bots import is_likely_bot


class TestIsLikelyBot:
    @pytest.mark.parametrize(
        "login",
        [
            "dependabot[bot]",
            "DEPENDABOT",
            "renovate",
            "github-actions",
            "codecov",
            "SonarCloud",
            "netlify",
            "vercel",
            "coderabbitai[bot]",
            "my-deploy-bot",
            "Mergebot",
        ],
    )
    def test_bots(self, login: str):
        assert is_likely_bot(login) is True

    @pytest.mark.parametrize("login", ["octocat", "robotics-fan", "bottomline", "renovate-fan", "ghost", ""])
    def test_humans(self, login: str):
        assert is_likely_bot(login) is False

    def test_extra_logins(self):
        assert is_likely_bot("release-train", extra_logins=["Release-Train"]) is True

    def test_extra_logins_exact_only(self):
        assert is_likely_bot("release-train-2", extra_logins=["release-train"]) is False
