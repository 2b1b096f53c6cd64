"""FastMCP server for prreview.

Exposes tools for reading pull requests and posting reviews on GitHub.
Authentication is handled by the `gh` CLI - no tokens needed.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import TYPE_CHECKING

from fastmcp import FastMCP
from fastmcp.server.dependencies import get_context
from fastmcp.server.lifespan import lifespan
from fastmcp.server.middleware.error_handling import ErrorHandlingMiddleware
from fastmcp.server.middleware.logging import LoggingMiddleware
from fastmcp.server.middleware.ping import PingMiddleware
from fastmcp.server.middleware.timing import TimingMiddleware

from prreview import gh
from prreview.config import WORKSPACE_ENV, get_config, get_config_path, load_config, set_config
from prreview.errors import error_kind, recovery_error
from prreview.models import (
    ConfigInfo,
    InlineCommentDraft,
    PRComments,
    PRSnapshot,
    ReviewEvent,
    ReviewSubmitResult,
)
from prreview.refs import GhRepoProvider, parse_pr_reference
from prreview.tools import comments, review, snapshot

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from fastmcp.server.context import Context

logger = logging.getLogger(__name__)


async def _get_workspace_cwd(ctx: Context | None = None) -> str | None:
    """Resolve the user's workspace directory for ``gh`` CLI commands.

    Priority:
    1. MCP roots - per-window, protocol-correct.
    2. ``PRREVIEW_WORKSPACE`` env var - fallback for clients that don't send roots.
    3. ``None`` - falls back to the server's process cwd.
    """
    if ctx is not None:
        try:
            roots = await ctx.list_roots()
            if roots:
                from urllib.parse import unquote, urlparse  # noqa: PLC0415

                parsed = urlparse(str(roots[0].uri))
                if parsed.scheme == "file" and parsed.path:
                    path = unquote(parsed.path)
                    logger.info("Workspace from MCP roots: %s", path)
                    return path
                logger.warning("MCP root URI has unsupported scheme %r (expected 'file')", parsed.scheme)
            else:
                logger.debug("MCP client returned empty roots list")
        except Exception as exc:  # noqa: BLE001 - clients without roots support raise arbitrary errors
            logger.warning("MCP roots request failed: %s: %s", type(exc).__name__, exc)

    env_ws = os.environ.get(WORKSPACE_ENV)
    if env_ws:
        logger.debug("Workspace from %s: %s", WORKSPACE_ENV, env_ws)
        return env_ws

    return None


@lifespan
async def load_server_config(server: FastMCP) -> AsyncIterator[dict[str, object] | None]:  # noqa: ARG001, RUF029
    """Verify gh CLI is installed and authenticated, and load .prreview.toml on startup."""
    check_prerequisites()
    config, config_path = load_config(os.environ.get(WORKSPACE_ENV))
    set_config(config, config_path=config_path)
    yield {}


mcp = FastMCP(
    "prreview",
    lifespan=load_server_config,
    instructions="""\
Pull request review tools backed by the GitHub CLI.

## Review workflow

1. `get_pull_request(pr)` - metadata, size category, changed files, commit messages and the full diff.
2. `list_pr_comments(pr)` - existing reviews, conversation comments and inline threads,
   so you don't repeat feedback that was already given. `is_bot` marks likely automation.
3. `submit_review(pr, body, event, comments, dry_run=true)` - preview first.
   Show the preview to the user, then call again with `dry_run=false` to post.

## PR references

`pr` accepts a PR number (`123`) or a PR URL (`https://github.com/owner/repo/pull/123`).
With a bare number, pass `repo="owner/repo"` unless the workspace is the PR's repository.

## Inline comments

`line` is a line number in the new version of the file and must be inside the diff.
Use `side="LEFT"` for deleted lines. For a range, set `start_line` (first line) and
`line` (last line). If a submission fails with `error_kind: submission_rejected`,
correct the line numbers using the diff and resubmit - nothing was posted.

## Errors

Tools never raise: on failure they return `error` (with a next step) and `error_kind`.
Do not retry `rate_limited` immediately, and never retry `invalid_reference` or
`ambiguous_context` without changing the arguments.
""",
)

mcp.add_middleware(ErrorHandlingMiddleware(include_traceback=True, transform_errors=True))
mcp.add_middleware(TimingMiddleware())
mcp.add_middleware(LoggingMiddleware(include_payloads=True, max_payload_length=500))
mcp.add_middleware(PingMiddleware(interval_ms=30_000))


@mcp.tool(tags={"query"})
async def get_pull_request(pr: str, repo: str | None = None) -> PRSnapshot:
    """Fetch a pull request: metadata, size stats, changed files, commit messages and the full diff.

    Args:
        pr: PR number or full GitHub PR URL (e.g. https://github.com/owner/repo/pull/123).
        repo: Repository in "owner/repo" format. Optional if a PR URL is given or the
            workspace is the PR's repository.

    Returns:
        PR snapshot with size_category (small, medium, large, very large).
    """
    try:
        ref = parse_pr_reference(pr, repo)
        ctx = get_context()
        cwd = await _get_workspace_cwd(ctx)
        return await snapshot.fetch_pr_snapshot(ref, provider=GhRepoProvider(cwd), cwd=cwd, ctx=ctx)
    except Exception as exc:
        logger.exception("get_pull_request failed for %s", pr)
        return PRSnapshot(error=recovery_error(exc, tool_name="get_pull_request", pr=pr, repo=repo), error_kind=error_kind(exc))
    except asyncio.CancelledError:
        logger.warning("get_pull_request cancelled for %s", pr)
        return PRSnapshot(error="Cancelled")


@mcp.tool(tags={"query"})
async def list_pr_comments(pr: str, repo: str | None = None) -> PRComments:
    """Fetch all existing feedback on a PR: reviews, conversation comments and inline comment threads.

    Inline comments are returned flat, grouped by file, and as threads (root comment + replies).

    Args:
        pr: PR number or full GitHub PR URL.
        repo: Repository in "owner/repo" format. Optional if a PR URL is given.

    Returns:
        Stats, reviews, issue_comments, review_comments, comments_by_file and threads.
    """
    try:
        ref = parse_pr_reference(pr, repo)
        ctx = get_context()
        cwd = await _get_workspace_cwd(ctx)
        return await comments.list_pr_comments(ref, provider=GhRepoProvider(cwd), cwd=cwd, ctx=ctx)
    except Exception as exc:
        logger.exception("list_pr_comments failed for %s", pr)
        return PRComments(error=recovery_error(exc, tool_name="list_pr_comments", pr=pr, repo=repo), error_kind=error_kind(exc))
    except asyncio.CancelledError:
        logger.warning("list_pr_comments cancelled for %s", pr)
        return PRComments(error="Cancelled")


@mcp.tool(tags={"command"})
async def submit_review(  # noqa: PLR0913, PLR0917
    pr: str,
    body: str,
    event: ReviewEvent | None = None,
    comments: list[InlineCommentDraft] | None = None,
    repo: str | None = None,
    dry_run: bool | None = None,
) -> ReviewSubmitResult:
    """Submit a code review on a pull request with optional inline comments and suggestions.

    Always preview with dry_run=true first; the preview contains the exact payload
    that a real submission posts.

    Args:
        pr: PR number or full GitHub PR URL.
        body: The overall review summary comment.
        event: COMMENT, APPROVE or REQUEST_CHANGES. Defaults to the configured default (COMMENT).
        comments: Inline comments on specific lines of the diff.
        repo: Repository in "owner/repo" format. Optional if a PR URL is given.
        dry_run: If true, return what would be submitted without posting. Defaults to the configured value.
    """
    config = get_config()
    drafts = comments or []
    try:
        ref = parse_pr_reference(pr, repo)
        ctx = get_context()
        cwd = await _get_workspace_cwd(ctx)
        return await review.submit_review(
            ref,
            body,
            event or config.review.default_event,
            drafts,
            dry_run=config.review.dry_run if dry_run is None else dry_run,
            provider=GhRepoProvider(cwd),
            cwd=cwd,
            ctx=ctx,
        )
    except Exception as exc:
        logger.exception("submit_review failed for %s", pr)
        return ReviewSubmitResult(
            error=recovery_error(exc, tool_name="submit_review", pr=pr, repo=repo),
            error_kind=error_kind(exc),
            api_errors=getattr(exc, "api_errors", None) or [],
        )
    except asyncio.CancelledError:
        logger.warning("submit_review cancelled for %s", pr)
        return ReviewSubmitResult(error="Cancelled")


@mcp.tool(tags={"discovery"})
def show_config() -> ConfigInfo:
    """Show the active prreview configuration loaded from .prreview.toml."""
    config = get_config()
    path = get_config_path()

    parts = [
        f"Default review event: {config.review.default_event.value}.",
        "Reviews are previewed unless dry_run=false is passed." if config.review.dry_run else "Reviews are posted unless dry_run=true is passed.",
    ]
    if config.bots.extra_logins:
        parts.append(f"Extra bot logins: {', '.join(config.bots.extra_logins)}.")
    if config.snapshot.max_diff_chars:
        parts.append(f"Diffs truncated after {config.snapshot.max_diff_chars} characters.")

    return ConfigInfo(
        config=config.model_dump(mode="json"),
        source=str(path) if path else "defaults",
        explanation=" ".join(parts),
    )


@mcp.prompt
def review_pull_request(pr: str) -> str:
    """Full review pass on a pull request, ending in a previewed then posted review."""
    return f"""\
You are reviewing pull request {pr}. Follow these steps in order:

1. **Read the PR** - call `get_pull_request(pr="{pr}")`.
   Note the size_category: for large or very large PRs, focus on the riskiest files
   and say so in the summary instead of skimming everything.

2. **Read existing feedback** - call `list_pr_comments(pr="{pr}")`.
   Do not repeat points already raised in `threads` or `reviews`. Bot comments
   (`is_bot: true`) are often noise but may flag real failures.

3. **Review the diff** - look for bugs, missing error handling, security issues,
   missing tests and unclear naming. Prefer a few high-signal comments over many nits.

4. **Draft inline comments** - anchor each one to a line inside the diff
   (`side="LEFT"` for deleted lines). Use GitHub suggestion blocks for concrete fixes.

5. **Preview** - call `submit_review(..., dry_run=true)` and show the user the summary,
   event and inline comments.

6. **Submit** - after the user agrees, call `submit_review(..., dry_run=false)`.
   Use REQUEST_CHANGES only for real blockers; APPROVE only if there are none.
   If it fails with `submission_rejected`, fix the line numbers and resubmit.
"""


def check_prerequisites() -> None:
    """Verify that gh CLI is installed and authenticated."""
    try:
        username = gh.check_auth()
        logger.info("Authenticated as %s", username)
    except gh.GhNotFoundError:
        logger.exception("gh CLI not found. Install: https://cli.github.com/")
        raise
    except gh.GhNotAuthenticatedError:
        logger.exception("gh CLI not authenticated. Run: gh auth login")
        raise
