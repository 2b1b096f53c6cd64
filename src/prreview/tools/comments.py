"""MCP tool for reading existing PR feedback: reviews, conversation comments and inline threads."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastmcp.utilities.async_utils import call_sync_fn_in_threadpool

from prreview import gh
from prreview.bots import is_likely_bot
from prreview.config import get_config
from prreview.models import CommentStats, CommentThread, IssueComment, PRComments, Review, ReviewComment
from prreview.refs import resolve_repository

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from typing import Any

    from fastmcp.server.context import Context

    from prreview.refs import CurrentRepoProvider, PRReference

logger = logging.getLogger(__name__)


def _login(raw: dict[str, Any]) -> str:
    # user is null for deleted accounts
    return (raw.get("user") or {}).get("login", "ghost")


def _parse_review_comments(raw_comments: list[dict[str, Any]], bot_logins: Iterable[str] = ()) -> list[ReviewComment]:
    """Convert REST pull request review comments into ReviewComment models."""
    comments = []
    for c in raw_comments:
        author = _login(c)
        comments.append(
            ReviewComment(
                id=c["id"],
                path=c.get("path", ""),
                line=c.get("line"),
                original_line=c.get("original_line"),
                side=c.get("side"),
                body=c.get("body") or "",
                author=author,
                is_bot=is_likely_bot(author, bot_logins),
                created_at=c.get("created_at"),
                updated_at=c.get("updated_at"),
                in_reply_to_id=c.get("in_reply_to_id"),
                diff_hunk=c.get("diff_hunk") or "",
                url=c.get("html_url", ""),
            )
        )
    return comments


def _parse_issue_comments(raw_comments: list[dict[str, Any]], bot_logins: Iterable[str] = ()) -> list[IssueComment]:
    """Convert REST issue comments into IssueComment models."""
    comments = []
    for c in raw_comments:
        author = _login(c)
        comments.append(
            IssueComment(
                id=c["id"],
                body=c.get("body") or "",
                author=author,
                is_bot=is_likely_bot(author, bot_logins),
                created_at=c.get("created_at"),
                updated_at=c.get("updated_at"),
                url=c.get("html_url", ""),
            )
        )
    return comments


def _parse_reviews(raw_reviews: list[dict[str, Any]], bot_logins: Iterable[str] = ()) -> list[Review]:
    """Convert REST reviews into Review models, skipping pending (unsubmitted) ones."""
    reviews = []
    for r in raw_reviews:
        if r.get("state") == "PENDING":
            continue
        author = _login(r)
        reviews.append(
            Review(
                id=r["id"],
                state=r.get("state", ""),
                body=r.get("body") or "",
                author=author,
                is_bot=is_likely_bot(author, bot_logins),
                submitted_at=r.get("submitted_at"),
                url=r.get("html_url", ""),
            )
        )
    return reviews


def assemble_threads(
    comments: Sequence[ReviewComment],
) -> tuple[dict[str, list[ReviewComment]], list[CommentThread]]:
    """Group inline comments by file and into root + replies threads.

    Input order is taken as chronological. A root is any comment without
    ``in_reply_to_id``; its replies keep input order. Replies to a comment
    that is not in *comments* belong to no thread and are not promoted to
    roots. Replies are assumed to be one level deep: GitHub anchors every
    reply to the thread's first comment.

    Returns:
        (comments_by_file, threads)
    """
    by_file: dict[str, list[ReviewComment]] = {}
    replies_by_parent: dict[int, list[ReviewComment]] = {}
    roots: list[ReviewComment] = []

    for comment in comments:
        by_file.setdefault(comment.path, []).append(comment)
        if comment.in_reply_to_id is None:
            roots.append(comment)
        else:
            replies_by_parent.setdefault(comment.in_reply_to_id, []).append(comment)

    threads = [CommentThread(parent=root, replies=replies_by_parent.get(root.id, [])) for root in roots]
    return by_file, threads


def _count_orphans(comments: Sequence[ReviewComment]) -> int:
    ids = {c.id for c in comments}
    return sum(1 for c in comments if c.in_reply_to_id is not None and c.in_reply_to_id not in ids)


async def _fetch_comment_data(
    owner: str,
    repo: str,
    pr_number: int,
    *,
    hostname: str = gh.DEFAULT_HOST,
    cwd: str | None = None,
) -> tuple[list[dict[str, Any]], list[dict[str, Any]], list[dict[str, Any]]]:
    """Fetch raw inline comments, issue comments and reviews for a PR concurrently."""
    base = f"/repos/{owner}/{repo}"
    endpoints = (
        f"{base}/pulls/{pr_number}/comments?per_page=100",
        f"{base}/issues/{pr_number}/comments?per_page=100",
        f"{base}/pulls/{pr_number}/reviews?per_page=100",
    )
    review_comments, issue_comments, reviews = await gh.gather_or_cancel(
        *(gh.rest_async(endpoint, cwd, paginate=True, hostname=hostname) for endpoint in endpoints)
    )
    return review_comments or [], issue_comments or [], reviews or []


async def list_pr_comments(
    ref: PRReference,
    *,
    provider: CurrentRepoProvider | None = None,
    cwd: str | None = None,
    ctx: Context | None = None,
) -> PRComments:
    """Fetch all reviews, conversation comments and inline comments on a PR.

    Args:
        ref: Parsed PR reference.
        provider: Supplies owner/repo when *ref* has none.
        cwd: Working directory for gh.
        ctx: FastMCP context for logging.

    Returns:
        PRComments with threads, per-file grouping and summary stats.
    """
    owner, repo = await call_sync_fn_in_threadpool(resolve_repository, ref, provider)
    raw_review_comments, raw_issue_comments, raw_reviews = await _fetch_comment_data(
        owner, repo, ref.number, hostname=ref.host, cwd=cwd
    )

    bot_logins = get_config().bots.extra_logins
    review_comments = _parse_review_comments(raw_review_comments, bot_logins)
    issue_comments = _parse_issue_comments(raw_issue_comments, bot_logins)
    reviews = _parse_reviews(raw_reviews, bot_logins)
    by_file, threads = assemble_threads(review_comments)

    stats = CommentStats(
        total_review_comments=len(review_comments),
        total_issue_comments=len(issue_comments),
        total_reviews=len(reviews),
        files_with_comments=len(by_file),
        bot_comments=sum(c.is_bot for c in review_comments) + sum(c.is_bot for c in issue_comments),
        total_threads=len(threads),
        orphaned_replies=_count_orphans(review_comments),
    )

    if ctx:
        await ctx.info(
            f"PR #{ref.number}: {stats.total_review_comments} inline comment(s) in {stats.total_threads} thread(s), "
            f"{stats.total_issue_comments} conversation comment(s), {stats.total_reviews} review(s)"
        )

    return PRComments(
        stats=stats,
        reviews=reviews,
        issue_comments=issue_comments,
        review_comments=review_comments,
        comments_by_file=by_file,
        threads=threads,
    )
