"""Pydantic models for prreview."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - Pydantic needs this at runtime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class ErrorKind(StrEnum):
    """Machine-readable failure category returned alongside ``error``."""

    INVALID_REFERENCE = "invalid_reference"
    AMBIGUOUS_CONTEXT = "ambiguous_context"
    NOT_FOUND = "not_found"
    AUTH_REQUIRED = "auth_required"
    RATE_LIMITED = "rate_limited"
    HEAD_COMMIT_UNAVAILABLE = "head_commit_unavailable"
    SUBMISSION_REJECTED = "submission_rejected"
    GH_MISSING = "gh_missing"
    UNKNOWN = "unknown"


class ReviewEvent(StrEnum):
    """Overall disposition of a submitted review."""

    COMMENT = "COMMENT"
    APPROVE = "APPROVE"
    REQUEST_CHANGES = "REQUEST_CHANGES"


class DiffSide(StrEnum):
    """Side of a diff: LEFT is the old version (deletions), RIGHT the new (additions)."""

    LEFT = "LEFT"
    RIGHT = "RIGHT"


class SizeCategory(StrEnum):
    """PR size bucket derived from additions + deletions."""

    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    VERY_LARGE = "very large"


# -- Comments ------------------------------------------------------------------


class ReviewComment(BaseModel):
    """An inline comment anchored to a file/line in the diff."""

    id: int = Field(description="Comment database ID")
    path: str = Field(description="File path the comment is on")
    line: int | None = Field(default=None, description="Line in the current diff; null if the line no longer exists")
    original_line: int | None = Field(default=None, description="Line the comment was originally placed on")
    side: DiffSide | None = Field(default=None, description="LEFT (deletions) or RIGHT (additions)")
    body: str = Field(default="", description="Comment body text")
    author: str = Field(description="GitHub username of the comment author")
    is_bot: bool = Field(default=False, description="Heuristic: author looks like an automation account")
    created_at: datetime | None = Field(default=None, description="When the comment was posted")
    updated_at: datetime | None = Field(default=None, description="When the comment was last edited")
    in_reply_to_id: int | None = Field(default=None, description="ID of the comment this one replies to")
    diff_hunk: str = Field(default="", description="Diff context around the commented line")
    url: str = Field(default="", description="Permalink to the comment")


class IssueComment(BaseModel):
    """A general PR conversation comment, not attached to a line."""

    id: int = Field(description="Comment database ID")
    body: str = Field(default="", description="Comment body text")
    author: str = Field(description="GitHub username of the comment author")
    is_bot: bool = Field(default=False, description="Heuristic: author looks like an automation account")
    created_at: datetime | None = Field(default=None, description="When the comment was posted")
    updated_at: datetime | None = Field(default=None, description="When the comment was last edited")
    url: str = Field(default="", description="Permalink to the comment")


class Review(BaseModel):
    """A submitted review summary (APPROVED, CHANGES_REQUESTED, COMMENTED, DISMISSED)."""

    id: int = Field(description="Review database ID")
    state: str = Field(description="Review state")
    body: str = Field(default="", description="Review summary text")
    author: str = Field(description="GitHub username of the reviewer")
    is_bot: bool = Field(default=False, description="Heuristic: author looks like an automation account")
    submitted_at: datetime | None = Field(default=None, description="When the review was submitted")
    url: str = Field(default="", description="Permalink to the review")


class CommentThread(BaseModel):
    """A root review comment plus its direct replies, oldest first."""

    parent: ReviewComment = Field(description="The thread root (no in_reply_to_id)")
    replies: list[ReviewComment] = Field(default_factory=list, description="Replies to the root, in posting order")


class CommentStats(BaseModel):
    """Counts over the fetched comments."""

    total_review_comments: int = Field(default=0, description="Inline review comments")
    total_issue_comments: int = Field(default=0, description="Conversation comments")
    total_reviews: int = Field(default=0, description="Submitted reviews (pending excluded)")
    files_with_comments: int = Field(default=0, description="Distinct files with inline comments")
    bot_comments: int = Field(default=0, description="Inline + conversation comments from likely bots")
    total_threads: int = Field(default=0, description="Thread roots (resolution status is not available over REST)")
    orphaned_replies: int = Field(default=0, description="Replies whose parent comment is missing (e.g. deleted)")


class PRComments(BaseModel):
    """All existing feedback on a PR."""

    stats: CommentStats = Field(default_factory=CommentStats, description="Summary counts")
    reviews: list[Review] = Field(default_factory=list, description="Submitted reviews")
    issue_comments: list[IssueComment] = Field(default_factory=list, description="Conversation comments")
    review_comments: list[ReviewComment] = Field(default_factory=list, description="Inline comments, oldest first")
    comments_by_file: dict[str, list[ReviewComment]] = Field(
        default_factory=dict, description="Inline comments grouped by file, in first-seen order"
    )
    threads: list[CommentThread] = Field(default_factory=list, description="Root comments with their replies")
    error: str | None = Field(default=None, description="Error message if the request failed")
    error_kind: ErrorKind | None = Field(default=None, description="Failure category if the request failed")


# -- Snapshot ------------------------------------------------------------------


class PRMetadata(BaseModel):
    """Descriptive fields of a pull request."""

    number: int = Field(description="PR number")
    title: str = Field(default="", description="PR title")
    description: str = Field(default="", description="PR body, or '(no description)'")
    author: str = Field(default="", description="GitHub username of the PR author")
    base_ref: str = Field(default="", description="Branch the PR merges into")
    head_ref: str = Field(default="", description="Branch with the proposed changes")
    state: str = Field(default="", description="OPEN, CLOSED or MERGED")
    is_draft: bool = Field(default=False, description="Whether the PR is a draft")
    url: str = Field(default="", description="PR URL")
    created_at: datetime | None = Field(default=None, description="When the PR was opened")
    updated_at: datetime | None = Field(default=None, description="When the PR was last updated")


class PRStats(BaseModel):
    """Size statistics for a pull request."""

    additions: int = Field(default=0, description="Lines added")
    deletions: int = Field(default=0, description="Lines removed")
    total_lines_changed: int = Field(default=0, description="additions + deletions")
    changed_files: int = Field(default=0, description="Number of files changed")
    size_category: SizeCategory = Field(default=SizeCategory.SMALL, description="small, medium, large or very large")
    commits: int = Field(default=0, description="Number of commits")


class PRFile(BaseModel):
    """Per-file change counts."""

    path: str = Field(description="File path")
    additions: int = Field(default=0, description="Lines added in this file")
    deletions: int = Field(default=0, description="Lines removed in this file")


class CommitMessage(BaseModel):
    """A commit message split into headline and body."""

    headline: str = Field(description="First line of the commit message")
    body: str | None = Field(default=None, description="Remainder of the message, omitted when empty")


class PRSnapshot(BaseModel):
    """Everything a reviewer needs to read a PR, fetched in one call."""

    metadata: PRMetadata | None = Field(default=None, description="PR metadata")
    stats: PRStats = Field(default_factory=PRStats, description="Size statistics")
    files: list[PRFile] = Field(default_factory=list, description="Changed files")
    commit_messages: list[CommitMessage] = Field(default_factory=list, description="Commit messages, oldest first")
    diff: str = Field(default="", description="Unified diff of the whole PR")
    diff_truncated: bool = Field(default=False, description="Whether the diff was cut at snapshot.max_diff_chars")
    error: str | None = Field(default=None, description="Error message if the request failed")
    error_kind: ErrorKind | None = Field(default=None, description="Failure category if the request failed")


# -- Review submission ---------------------------------------------------------


class InlineCommentDraft(BaseModel):
    """An inline comment to attach to a review."""

    path: str = Field(description="The relative path to the file being commented on")
    line: int = Field(ge=1, description="Line in the new version of the file (last line of a range)")
    side: DiffSide | None = Field(
        default=None,
        description="Which side of the diff to comment on. RIGHT (default) for additions/unchanged, LEFT for deletions",
    )
    start_line: int | None = Field(default=None, ge=1, description="For multi-line comments, the first line of the range")
    start_side: DiffSide | None = Field(default=None, description="The side for the start of a multi-line comment")
    body: str = Field(description="The comment text. Can include GitHub suggestion blocks for proposed changes")


class ReviewSubmitResult(BaseModel):
    """Outcome of ``submit_review``: a dry-run preview or a posted review.

    Preview and submission carry the same fields; ``dry_run``/``success``
    tell them apart, and only a real submission fills the ``review_*`` fields.
    """

    dry_run: bool = Field(default=False, description="True when nothing was posted")
    success: bool = Field(default=False, description="True when the review was posted")
    repository: str = Field(default="", description="owner/repo")
    pull_request: int = Field(default=0, description="PR number")
    pr_url: str = Field(default="", description="PR URL")
    event: ReviewEvent | None = Field(default=None, description="Review disposition")
    review_body: str = Field(default="", description="Review summary text")
    inline_comments: list[InlineCommentDraft] = Field(default_factory=list, description="Inline comments in the review")
    total_inline_comments: int = Field(default=0, description="Number of inline comments")
    payload: dict[str, Any] | None = Field(default=None, description="Exact JSON body sent (or that would be sent) to GitHub")
    review_id: int | None = Field(default=None, description="ID of the posted review")
    review_url: str | None = Field(default=None, description="URL of the posted review")
    state: str | None = Field(default=None, description="State GitHub assigned to the posted review")
    submitted_at: datetime | None = Field(default=None, description="When the review was posted")
    message: str = Field(default="", description="Human-readable outcome")
    error: str | None = Field(default=None, description="Error message if the request failed")
    error_kind: ErrorKind | None = Field(default=None, description="Failure category if the request failed")
    api_errors: list[Any] = Field(default_factory=list, description="Validation errors reported by GitHub, if any")


# -- Misc ----------------------------------------------------------------------


class ConfigInfo(BaseModel):
    """Active prreview configuration with metadata."""

    config: dict = Field(description="Full configuration as a dictionary")
    source: str = Field(default="defaults", description="Path of the loaded .prreview.toml, or 'defaults'")
    explanation: str = Field(default="", description="Human-readable summary of the active settings")
