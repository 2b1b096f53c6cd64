"""MCP tool for reading a pull request: metadata, diff, changed files and commit messages."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from fastmcp.utilities.async_utils import call_sync_fn_in_threadpool

from prreview import gh
from prreview.config import get_config
from prreview.models import CommitMessage, PRFile, PRMetadata, PRSnapshot, PRStats, SizeCategory
from prreview.refs import resolve_repository

if TYPE_CHECKING:
    from typing import Any

    from fastmcp.server.context import Context

    from prreview.refs import CurrentRepoProvider, PRReference

logger = logging.getLogger(__name__)

_METADATA_FIELDS = "number,title,body,author,baseRefName,headRefName,state,isDraft,additions,deletions,changedFiles,createdAt,updatedAt,url"

_SMALL_MAX = 100
_MEDIUM_MAX = 500
_LARGE_MAX = 1000


def classify_size(total_lines_changed: int) -> SizeCategory:
    """Bucket a PR by additions + deletions. Upper bounds are inclusive."""
    if total_lines_changed <= _SMALL_MAX:
        return SizeCategory.SMALL
    if total_lines_changed <= _MEDIUM_MAX:
        return SizeCategory.MEDIUM
    if total_lines_changed <= _LARGE_MAX:
        return SizeCategory.LARGE
    return SizeCategory.VERY_LARGE


def _repo_args(ref: PRReference, owner: str, repo: str) -> list[str]:
    name = f"{owner}/{repo}" if ref.host == gh.DEFAULT_HOST else f"{ref.host}/{owner}/{repo}"
    return ["--repo", name]


def _parse_metadata(data: dict[str, Any]) -> PRMetadata:
    return PRMetadata(
        number=data["number"],
        title=data.get("title", ""),
        description=data.get("body") or "(no description)",
        author=(data.get("author") or {}).get("login", "ghost"),
        base_ref=data.get("baseRefName", ""),
        head_ref=data.get("headRefName", ""),
        state=data.get("state", ""),
        is_draft=data.get("isDraft", False),
        url=data.get("url", ""),
        created_at=data.get("createdAt"),
        updated_at=data.get("updatedAt"),
    )


def _parse_files(data: dict[str, Any]) -> list[PRFile]:
    return [
        PRFile(path=f["path"], additions=f.get("additions", 0), deletions=f.get("deletions", 0))
        for f in data.get("files") or []
    ]


def _parse_commits(data: dict[str, Any]) -> list[CommitMessage]:
    return [
        CommitMessage(headline=c.get("messageHeadline", ""), body=c.get("messageBody") or None)
        for c in data.get("commits") or []
    ]


def _truncate_diff(diff: str, max_chars: int) -> tuple[str, bool]:
    if max_chars <= 0 or len(diff) <= max_chars:
        return diff, False
    return diff[:max_chars] + "\n… [diff truncated]", True


async def fetch_pr_snapshot(
    ref: PRReference,
    *,
    provider: CurrentRepoProvider | None = None,
    cwd: str | None = None,
    ctx: Context | None = None,
) -> PRSnapshot:
    """Fetch metadata, diff, files and commits for a PR concurrently.

    Args:
        ref: Parsed PR reference.
        provider: Supplies owner/repo when *ref* has none.
        cwd: Working directory for gh.
        ctx: FastMCP context for progress reporting.

    Returns:
        A complete PRSnapshot. Any failed read aborts the whole fetch.
    """
    owner, repo = await call_sync_fn_in_threadpool(resolve_repository, ref, provider)
    number = str(ref.number)
    repo_args = _repo_args(ref, owner, repo)

    if ctx:
        await ctx.report_progress(0, 4)

    raw_metadata, raw_diff, raw_files, raw_commits = await gh.gather_or_cancel(
        gh.run_gh_async("pr", "view", number, *repo_args, "--json", _METADATA_FIELDS, cwd=cwd),
        gh.run_gh_async("pr", "diff", number, *repo_args, cwd=cwd),
        gh.run_gh_async("pr", "view", number, *repo_args, "--json", "files", cwd=cwd),
        gh.run_gh_async("pr", "view", number, *repo_args, "--json", "commits", cwd=cwd),
    )

    if ctx:
        await ctx.report_progress(4, 4)

    metadata_data = json.loads(raw_metadata)
    files = _parse_files(json.loads(raw_files))
    commits = _parse_commits(json.loads(raw_commits))

    additions = metadata_data.get("additions", 0)
    deletions = metadata_data.get("deletions", 0)
    total = additions + deletions
    stats = PRStats(
        additions=additions,
        deletions=deletions,
        total_lines_changed=total,
        changed_files=metadata_data.get("changedFiles", len(files)),
        size_category=classify_size(total),
        commits=len(commits),
    )

    diff, truncated = _truncate_diff(raw_diff.strip(), get_config().snapshot.max_diff_chars)
    if truncated:
        logger.info("Diff for %s/%s#%d truncated to %d chars", owner, repo, ref.number, len(diff))

    return PRSnapshot(
        metadata=_parse_metadata(metadata_data),
        stats=stats,
        files=files,
        commit_messages=commits,
        diff=diff,
        diff_truncated=truncated,
    )
