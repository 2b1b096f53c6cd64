"""Map failures to ``error_kind`` values and actionable ``error`` messages.

Shared by the MCP tools and the CLI so both report failures identically.
"""

from __future__ import annotations

from prreview import gh
from prreview.config import WORKSPACE_ENV
from prreview.models import ErrorKind
from prreview.refs import AmbiguousContextError, InvalidReferenceError
from prreview.tools.review import HeadCommitError, SubmissionRejectedError

# Checked in order; GhNotFoundError and friends subclass GhError, so specific types come first
_KINDS: list[tuple[type[BaseException], ErrorKind]] = [
    (InvalidReferenceError, ErrorKind.INVALID_REFERENCE),
    (AmbiguousContextError, ErrorKind.AMBIGUOUS_CONTEXT),
    (gh.GhNotFoundError, ErrorKind.GH_MISSING),
    (gh.GhNotAuthenticatedError, ErrorKind.AUTH_REQUIRED),
    (gh.GhRateLimitError, ErrorKind.RATE_LIMITED),
    (HeadCommitError, ErrorKind.HEAD_COMMIT_UNAVAILABLE),
    (SubmissionRejectedError, ErrorKind.SUBMISSION_REJECTED),
    (gh.GhResourceNotFoundError, ErrorKind.NOT_FOUND),
]


def error_kind(exc: BaseException) -> ErrorKind:
    """Map an exception to the category reported in ``error_kind``."""
    for exc_type, kind in _KINDS:
        if isinstance(exc, exc_type):
            return kind
    return ErrorKind.UNKNOWN


def recovery_error(  # noqa: PLR0911
    exc: BaseException,
    *,
    tool_name: str,
    pr: str | None = None,
    repo: str | None = None,
) -> str:
    """Build an actionable error message with recovery hints.

    Suggests specific next steps so agents can self-correct instead of
    retrying blindly.
    """
    msg = str(exc)
    kind = error_kind(exc)

    if kind is ErrorKind.INVALID_REFERENCE:
        return f"{tool_name} failed: {msg} Example: 123 or https://github.com/owner/repo/pull/123."
    if kind is ErrorKind.AMBIGUOUS_CONTEXT:
        return (
            f"{tool_name} failed: {msg} "
            f"Pass the full PR URL or repo='owner/repo', or set {WORKSPACE_ENV} in your MCP client config."
        )
    if kind is ErrorKind.GH_MISSING:
        return f"{tool_name} failed: GitHub CLI (gh) is not installed. Install it from https://cli.github.com/ then run: gh auth login"
    if kind is ErrorKind.AUTH_REQUIRED:
        return f"{tool_name} failed: not authenticated with GitHub. Run: gh auth login"
    if kind is ErrorKind.RATE_LIMITED:
        return f"{tool_name} failed: GitHub API rate limit hit. Wait 60 seconds and retry."
    if kind is ErrorKind.HEAD_COMMIT_UNAVAILABLE:
        return f"{tool_name} failed: {msg}. Verify the PR exists and you have access to it."
    if kind is ErrorKind.SUBMISSION_REJECTED:
        return f"{tool_name} failed: {msg} Fix the line numbers and submit again."
    if kind is ErrorKind.NOT_FOUND:
        hints = [f"{tool_name} failed: resource not found - {msg}."]
        if pr:
            hints.append(f"Verify PR {pr} exists.")
        hints.append(f"Verify repo '{repo}' is correct." if repo else "Try passing the full PR URL or repo='owner/repo'.")
        return " ".join(hints)

    # Unknown failures pass the original message through unchanged
    return f"{tool_name} failed: {msg}"
