"""MCP tool for submitting (or previewing) a pull request review with inline comments."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastmcp.utilities.async_utils import call_sync_fn_in_threadpool

from prreview import gh
from prreview.models import ReviewEvent, ReviewSubmitResult
from prreview.refs import pr_url, resolve_repository

if TYPE_CHECKING:
    from collections.abc import Sequence
    from typing import Any

    from fastmcp.server.context import Context

    from prreview.models import InlineCommentDraft
    from prreview.refs import CurrentRepoProvider, PRReference

logger = logging.getLogger(__name__)


class HeadCommitError(gh.GhError):
    """The PR's head commit could not be read (PR missing or not accessible)."""


class SubmissionRejectedError(gh.GhError):
    """GitHub refused the review, usually because a comment targets a line outside the diff."""

    def __init__(self, message: str, api_errors: list[Any] | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.api_errors = api_errors or []


def _comment_payload(draft: InlineCommentDraft) -> dict[str, Any]:
    """Shape one inline comment for the reviews API.

    Optional keys are left out entirely rather than sent as null: GitHub
    treats a present ``start_line: null`` differently from an absent one.
    """
    comment: dict[str, Any] = {"path": draft.path, "line": draft.line}
    if draft.side is not None:
        comment["side"] = draft.side.value
    if draft.start_line is not None:
        comment["start_line"] = draft.start_line
        if draft.start_side is not None:
            comment["start_side"] = draft.start_side.value
    comment["body"] = draft.body
    return comment


def build_review_payload(
    commit_id: str,
    body: str,
    event: ReviewEvent,
    comments: Sequence[InlineCommentDraft] = (),
) -> dict[str, Any]:
    """Build the JSON body for ``POST /repos/{owner}/{repo}/pulls/{n}/reviews``.

    ``comments`` is omitted (not sent as ``[]``) when there are no drafts.
    Range ordering (``start_line <= line``) is left for GitHub to validate.
    """
    payload: dict[str, Any] = {"commit_id": commit_id, "body": body, "event": event.value}
    if comments:
        payload["comments"] = [_comment_payload(c) for c in comments]
    return payload


def _get_head_sha(owner: str, repo: str, pr_number: int, *, hostname: str, cwd: str | None) -> str:
    """Read the PR's current head SHA so the review targets the latest push."""
    try:
        data = gh.rest(f"/repos/{owner}/{repo}/pulls/{pr_number}", cwd=cwd, hostname=hostname)
    except (gh.GhNotFoundError, gh.GhNotAuthenticatedError, gh.GhRateLimitError):
        raise
    except gh.GhError as exc:
        msg = f"Could not fetch PR details for {owner}/{repo}#{pr_number}: {exc}"
        raise HeadCommitError(msg, stderr=exc.stderr, returncode=exc.returncode, status=exc.status) from exc

    sha = ((data or {}).get("head") or {}).get("sha")
    if not sha:
        msg = f"Could not fetch PR details for {owner}/{repo}#{pr_number}: response has no head SHA"
        raise HeadCommitError(msg)
    return sha


def _post_review(owner: str, repo: str, pr_number: int, payload: dict[str, Any], *, hostname: str, cwd: str | None) -> dict[str, Any]:
    try:
        return gh.rest(
            f"/repos/{owner}/{repo}/pulls/{pr_number}/reviews",
            method="POST",
            cwd=cwd,
            body=payload,
            hostname=hostname,
        )
    except gh.GhValidationError as exc:
        api_body = exc.response_json() or {}
        msg = (
            "Invalid review submission. This often means a comment references a line that "
            f"doesn't exist in the diff. Check that all line numbers are correct. ({api_body.get('message', exc)})"
        )
        raise SubmissionRejectedError(
            msg,
            api_errors=api_body.get("errors"),
            stderr=exc.stderr,
            stdout=exc.stdout,
            returncode=exc.returncode,
            status=exc.status,
        ) from exc


async def submit_review(
    ref: PRReference,
    body: str,
    event: ReviewEvent = ReviewEvent.COMMENT,
    comments: Sequence[InlineCommentDraft] = (),
    *,
    dry_run: bool = False,
    provider: CurrentRepoProvider | None = None,
    cwd: str | None = None,
    ctx: Context | None = None,
) -> ReviewSubmitResult:
    """Submit a review on a PR, or return exactly what would be submitted.

    Both modes resolve the repository, read the head SHA and build the
    payload the same way; a dry run just stops before the POST.

    Raises:
        AmbiguousContextError: No repository could be determined.
        HeadCommitError: The PR's head commit could not be read.
        SubmissionRejectedError: GitHub rejected the review (HTTP 422).
        GhError: Any other gh failure (auth, rate limit, ...).
    """
    owner, repo = await call_sync_fn_in_threadpool(resolve_repository, ref, provider)
    repository = f"{owner}/{repo}"
    commit_id = await call_sync_fn_in_threadpool(_get_head_sha, owner, repo, ref.number, hostname=ref.host, cwd=cwd)
    payload = build_review_payload(commit_id, body, event, comments)

    shared: dict[str, Any] = {
        "repository": repository,
        "pull_request": ref.number,
        "pr_url": pr_url(ref, owner, repo),
        "event": event,
        "review_body": body,
        "inline_comments": list(comments),
        "total_inline_comments": len(comments),
        "payload": payload,
    }

    if dry_run:
        if ctx:
            await ctx.info(f"Dry run: {event.value} review with {len(comments)} inline comment(s) on {repository}#{ref.number}")
        return ReviewSubmitResult(
            **shared,
            dry_run=True,
            message="Dry run complete. No review was submitted. Call again with dry_run=false to submit the review.",
        )

    response = await call_sync_fn_in_threadpool(_post_review, owner, repo, ref.number, payload, hostname=ref.host, cwd=cwd)
    response = response or {}
    logger.info("Posted %s review %s on %s#%d", event.value, response.get("id"), repository, ref.number)
    if ctx:
        await ctx.info(f"Submitted {event.value} review on {repository}#{ref.number}")

    return ReviewSubmitResult(
        **shared,
        success=True,
        review_id=response.get("id"),
        review_url=response.get("html_url"),
        state=response.get("state"),
        submitted_at=response.get("submitted_at"),
        message=f"Review submitted successfully. View it at: {response.get('html_url')}",
    )
