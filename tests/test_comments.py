"""Tests for the comment listing tool."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock

import pytest

if TYPE_CHECKING:
    from pytest_mock import MockerFixture

from prreview.config import BotsConfig, Config, set_config
from prreview.gh import GhResourceNotFoundError
from prreview.models import ReviewComment
from prreview.refs import AmbiguousContextError, PRReference
from prreview.tools.comments import (
    _fetch_comment_data,
    _parse_issue_comments,
    _parse_review_comments,
    _parse_reviews,
    assemble_threads,
    list_pr_comments,
)

# ---------------------------------------------------------------------------
# Fixture data
# ---------------------------------------------------------------------------


def _raw_review_comment(cid: int, path: str = "src/app.py", reply_to: int | None = None, login: str = "alice") -> dict:
    raw = {
        "id": cid,
        "path": path,
        "line": 10 + cid,
        "original_line": 10 + cid,
        "side": "RIGHT",
        "body": f"comment {cid}",
        "user": {"login": login},
        "created_at": f"2026-03-01T10:0{cid}:00Z",
        "updated_at": f"2026-03-01T10:0{cid}:00Z",
        "diff_hunk": "@@ -1,3 +1,4 @@",
        "html_url": f"https://github.com/octo/widgets/pull/7#discussion_r{cid}",
    }
    if reply_to is not None:
        raw["in_reply_to_id"] = reply_to
    return raw


SAMPLE_REVIEW_COMMENTS = [
    _raw_review_comment(1),
    _raw_review_comment(2, reply_to=1, login="bob"),
    _raw_review_comment(3, path="README.md", login="renovate[bot]"),
    _raw_review_comment(4, reply_to=1),
]

SAMPLE_ISSUE_COMMENTS = [
    {
        "id": 100,
        "body": "Coverage report",
        "user": {"login": "codecov"},
        "created_at": "2026-03-01T09:00:00Z",
        "html_url": "https://github.com/octo/widgets/pull/7#issuecomment-100",
    },
    {"id": 101, "body": "LGTM overall", "user": {"login": "carol"}, "created_at": "2026-03-01T09:30:00Z"},
]

SAMPLE_REVIEWS = [
    {"id": 500, "state": "CHANGES_REQUESTED", "body": "Needs work", "user": {"login": "bob"}, "submitted_at": "2026-03-01T11:00:00Z"},
    {"id": 501, "state": "PENDING", "body": "", "user": {"login": "me"}},
]


def _comment(cid: int, reply_to: int | None = None, path: str = "a.py") -> ReviewComment:
    return ReviewComment(id=cid, path=path, author="alice", in_reply_to_id=reply_to)


# ---------------------------------------------------------------------------
# Threading
# ---------------------------------------------------------------------------


class TestAssembleThreads:
    def test_replies_attach_to_root_and_orphans_are_dropped(self):
        a, b, c, d = _comment(1), _comment(2, 1), _comment(3, 1), _comment(4, 99)
        _, threads = assemble_threads([a, b, c, d])
        assert len(threads) == 1
        assert threads[0].parent.id == 1
        assert [r.id for r in threads[0].replies] == [2, 3]

    def test_reply_before_parent_still_attached(self):
        _, threads = assemble_threads([_comment(2, 1), _comment(1)])
        assert [r.id for r in threads[0].replies] == [2]

    def test_multiple_roots_keep_input_order(self):
        _, threads = assemble_threads([_comment(5), _comment(3), _comment(6, 3)])
        assert [t.parent.id for t in threads] == [5, 3]
        assert threads[0].replies == []
        assert [r.id for r in threads[1].replies] == [6]

    def test_by_file_first_seen_order(self):
        by_file, _ = assemble_threads([_comment(1, path="b.py"), _comment(2, path="a.py"), _comment(3, path="b.py")])
        assert list(by_file) == ["b.py", "a.py"]
        assert [c.id for c in by_file["b.py"]] == [1, 3]

    def test_orphans_still_grouped_by_file(self):
        by_file, threads = assemble_threads([_comment(4, 99, path="x.py")])
        assert threads == []
        assert [c.id for c in by_file["x.py"]] == [4]

    def test_empty(self):
        assert assemble_threads([]) == ({}, [])


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class TestParsing:
    def test_review_comment_fields(self):
        comment = _parse_review_comments([_raw_review_comment(2, reply_to=1)])[0]
        assert comment.in_reply_to_id == 1
        assert comment.line == 12
        assert comment.side == "RIGHT"
        assert comment.author == "alice"
        assert comment.is_bot is False
        assert comment.created_at is not None

    def test_deleted_user_is_ghost(self):
        raw = _raw_review_comment(1)
        raw["user"] = None
        assert _parse_review_comments([raw])[0].author == "ghost"

    def test_null_line_kept(self):
        raw = _raw_review_comment(1)
        raw["line"] = None
        assert _parse_review_comments([raw])[0].line is None

    def test_issue_comment_bot_flag(self):
        comments = _parse_issue_comments(SAMPLE_ISSUE_COMMENTS)
        assert [c.is_bot for c in comments] == [True, False]

    def test_extra_bot_logins(self):
        comments = _parse_issue_comments(SAMPLE_ISSUE_COMMENTS, ["carol"])
        assert comments[1].is_bot is True

    def test_pending_reviews_skipped(self):
        reviews = _parse_reviews(SAMPLE_REVIEWS)
        assert [r.id for r in reviews] == [500]
        assert reviews[0].state == "CHANGES_REQUESTED"


class TestFetchCommentData:
    async def test_three_paginated_calls(self, mocker: MockerFixture):
        mock_rest = mocker.patch("prreview.tools.comments.gh.rest_async", side_effect=[[{"id": 1}], None, []])
        review_comments, issue_comments, reviews = await _fetch_comment_data("octo", "widgets", 7, hostname="ghe.local")
        assert review_comments == [{"id": 1}]
        assert issue_comments == []
        assert reviews == []
        endpoints = [c.args[0] for c in mock_rest.call_args_list]
        assert endpoints == [
            "/repos/octo/widgets/pulls/7/comments?per_page=100",
            "/repos/octo/widgets/issues/7/comments?per_page=100",
            "/repos/octo/widgets/pulls/7/reviews?per_page=100",
        ]
        for call in mock_rest.call_args_list:
            assert call.kwargs["paginate"] is True
            assert call.kwargs["hostname"] == "ghe.local"

    async def test_reads_through_async_gh(self, mocker: MockerFixture):
        run = mocker.patch("prreview.gh.run_gh_async", return_value='[[{"id": 1}], [{"id": 2}]]')
        review_comments, _, _ = await _fetch_comment_data("octo", "widgets", 7, cwd="/work")
        assert review_comments == [{"id": 1}, {"id": 2}]
        assert run.call_count == 3
        assert all(c.kwargs["cwd"] == "/work" for c in run.call_args_list)

    async def test_one_failure_cancels_other_reads(self, mocker: MockerFixture):
        cancelled: list[str] = []

        async def fake(*args: str, cwd: str | None = None) -> str:  # noqa: ARG001
            if "/issues/" in args[1]:
                raise GhResourceNotFoundError("Not Found (HTTP 404)", status=404)
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.append(args[1])
                raise
            return "[]"

        mocker.patch("prreview.gh.run_gh_async", side_effect=fake)
        with pytest.raises(GhResourceNotFoundError):
            await _fetch_comment_data("octo", "widgets", 7)
        assert len(cancelled) == 2

    async def test_cancel_stops_in_flight_reads(self, mocker: MockerFixture):
        started: list[str] = []
        cancelled: list[str] = []
        all_started = asyncio.Event()

        async def fake(*args: str, cwd: str | None = None) -> str:  # noqa: ARG001
            started.append(args[1])
            if len(started) == 3:  # noqa: PLR2004
                all_started.set()
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.append(args[1])
                raise
            return "[]"

        mocker.patch("prreview.gh.run_gh_async", side_effect=fake)
        task = asyncio.create_task(list_pr_comments(PRReference(owner="octo", repo="widgets", number=7)))
        await asyncio.wait_for(all_started.wait(), timeout=1)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert sorted(cancelled) == sorted(started)
        assert len(started) == 3


# ---------------------------------------------------------------------------
# list_pr_comments
# ---------------------------------------------------------------------------


class TestListPrComments:
    @pytest.fixture
    def _mock_fetch(self, mocker: MockerFixture):
        return mocker.patch(
            "prreview.tools.comments._fetch_comment_data",
            return_value=(SAMPLE_REVIEW_COMMENTS, SAMPLE_ISSUE_COMMENTS, SAMPLE_REVIEWS),
        )

    @pytest.mark.usefixtures("_mock_fetch")
    async def test_full_result(self):
        result = await list_pr_comments(PRReference(owner="octo", repo="widgets", number=7))
        assert result.error is None
        assert [t.parent.id for t in result.threads] == [1, 3]
        assert [r.id for r in result.threads[0].replies] == [2, 4]
        assert list(result.comments_by_file) == ["src/app.py", "README.md"]
        assert len(result.reviews) == 1

    @pytest.mark.usefixtures("_mock_fetch")
    async def test_stats(self):
        result = await list_pr_comments(PRReference(owner="octo", repo="widgets", number=7))
        stats = result.stats
        assert stats.total_review_comments == 4
        assert stats.total_issue_comments == 2
        assert stats.total_reviews == 1
        assert stats.files_with_comments == 2
        assert stats.bot_comments == 2  # renovate[bot] inline + codecov conversation
        assert stats.total_threads == 2
        assert stats.orphaned_replies == 0

    @pytest.mark.usefixtures("_mock_fetch")
    async def test_configured_bots_counted(self):
        set_config(Config(bots=BotsConfig(extra_logins=["bob"])))
        result = await list_pr_comments(PRReference(owner="octo", repo="widgets", number=7))
        assert result.stats.bot_comments == 3

    async def test_orphan_counted(self, mocker: MockerFixture):
        mocker.patch(
            "prreview.tools.comments._fetch_comment_data",
            return_value=([_raw_review_comment(1), _raw_review_comment(2, reply_to=99)], [], []),
        )
        result = await list_pr_comments(PRReference(owner="o", repo="r", number=1))
        assert result.stats.orphaned_replies == 1
        assert len(result.threads) == 1
        assert result.threads[0].replies == []

    async def test_uses_provider_for_bare_number(self, mocker: MockerFixture):
        fetch = mocker.patch("prreview.tools.comments._fetch_comment_data", return_value=([], [], []))
        provider = mocker.Mock()
        provider.current_repo.return_value = ("cwd-owner", "cwd-repo")
        await list_pr_comments(PRReference(number=3), provider=provider, cwd="/work")
        assert fetch.call_args.args == ("cwd-owner", "cwd-repo", 3)
        assert fetch.call_args.kwargs["cwd"] == "/work"

    async def test_no_repository(self):
        with pytest.raises(AmbiguousContextError):
            await list_pr_comments(PRReference(number=3))

    async def test_missing_pr_propagates(self, mocker: MockerFixture):
        mocker.patch("prreview.tools.comments._fetch_comment_data", side_effect=GhResourceNotFoundError("Not Found"))
        with pytest.raises(GhResourceNotFoundError):
            await list_pr_comments(PRReference(owner="o", repo="r", number=404))

    @pytest.mark.usefixtures("_mock_fetch")
    async def test_reports_summary_to_context(self):
        ctx = AsyncMock()
        await list_pr_comments(PRReference(owner="octo", repo="widgets", number=7), ctx=ctx)
        ctx.info.assert_awaited_once()
        assert "2 thread(s)" in ctx.info.call_args[0][0]
