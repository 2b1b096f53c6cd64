"""GitHub CLI (gh) wrapper for prreview.

All GitHub API calls go through the `gh` CLI, which handles authentication
transparently. No PAT tokens or .env files needed.

Failed invocations are turned into typed ``GhError`` subclasses here, and
only here, so callers never sniff stderr themselves.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import re
import subprocess  # noqa: S404
import time
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Coroutine

logger = logging.getLogger(__name__)

DEFAULT_HOST = "github.com"

# gh appends e.g. "(HTTP 404)" to API failures
_HTTP_STATUS_RE = re.compile(r"\(HTTP (\d{3})\)")


class GhError(Exception):
    """Raised when a gh CLI command fails."""

    def __init__(
        self,
        message: str,
        stderr: str = "",
        returncode: int = 1,
        *,
        stdout: str = "",
        status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.stderr = stderr
        self.stdout = stdout
        self.returncode = returncode
        self.status = status

    def response_json(self) -> dict[str, Any] | None:
        """Return the API error body gh printed to stdout, if it is JSON."""
        try:
            data = json.loads(self.stdout)
        except ValueError:
            return None
        return data if isinstance(data, dict) else None


class GhNotFoundError(GhError):
    """Raised when gh CLI is not installed."""

    def __init__(self) -> None:
        super().__init__("gh CLI not found. Install it: https://cli.github.com/ then run: gh auth login")


class GhNotAuthenticatedError(GhError):
    """Raised when gh CLI is not authenticated."""

    def __init__(self, stderr: str = "", **kwargs: Any) -> None:
        super().__init__("gh CLI is not authenticated. Run: gh auth login", stderr=stderr, **kwargs)


class GhResourceNotFoundError(GhError):
    """The repository or pull request does not exist, or is not visible to the user."""


class GhRateLimitError(GhError):
    """GitHub API rate limit exhausted."""


class GhValidationError(GhError):
    """GitHub rejected the request payload (HTTP 422)."""


def _summarize_cmd(args: tuple[str, ...]) -> str:
    """Build a short summary of the gh command for logging."""
    # e.g. ("api", "/repos/o/r/pulls/1", "--method", "GET") -> "api /repos/o/r/pulls/1"
    # e.g. ("pr", "view", "42", "--json", ...) -> "pr view 42"
    summary_parts: list[str] = []
    for arg in args:
        if arg.startswith("-") or "=" in arg:
            break
        summary_parts.append(arg)
    return " ".join(summary_parts) or "unknown"


def _error_from_output(stderr: str, stdout: str, returncode: int) -> GhError:  # noqa: PLR0911
    """Classify a failed gh invocation.

    The HTTP status gh prints is authoritative; text matching is only
    used for failures that never reached the API (e.g. ``gh pr view``
    against an unknown repo, or a missing login).
    """
    message = stderr.strip() or stdout.strip() or f"gh exited with status {returncode}"
    match = _HTTP_STATUS_RE.search(stderr)
    status = int(match.group(1)) if match else None
    low = stderr.lower()
    details: dict[str, Any] = {"stdout": stdout, "status": status}

    if status == 401 or "not logged in" in low or "gh auth login" in low:  # noqa: PLR2004
        return GhNotAuthenticatedError(stderr=stderr, returncode=returncode, **details)
    if status == 429 or "rate limit" in low:  # noqa: PLR2004
        return GhRateLimitError(message, stderr, returncode, **details)
    if status == 404 or "could not resolve to a" in low:  # noqa: PLR2004
        return GhResourceNotFoundError(message, stderr, returncode, **details)
    if status == 422:  # noqa: PLR2004
        return GhValidationError(message, stderr, returncode, **details)
    return GhError(message, stderr, returncode, **details)


def run_gh(*args: str, cwd: str | None = None, stdin: str | None = None) -> str:
    """Run a gh CLI command and return stdout.

    Args:
        *args: Arguments to pass to gh (e.g. "pr", "view", "42").
        cwd: Working directory for the command.
        stdin: Text fed to the process (used with ``--input -``).

    Returns:
        stdout as a string.

    Raises:
        GhNotFoundError: If gh is not installed.
        GhError: If the command fails (a subclass when the cause is known).
    """
    cmd = ["gh", *args]
    logger.debug("Running: %s", " ".join(cmd))
    start = time.perf_counter()
    try:
        result = subprocess.run(  # noqa: S603
            cmd,
            capture_output=True,
            text=True,
            check=False,
            cwd=cwd,
            input=stdin,
        )
    except FileNotFoundError:
        raise GhNotFoundError from None

    duration_ms = round((time.perf_counter() - start) * 1000)
    logger.debug("gh %s exited %d in %dms", _summarize_cmd(args), result.returncode, duration_ms)

    if result.returncode != 0:
        logger.debug("gh stderr: %s", result.stderr)
        raise _error_from_output(result.stderr, result.stdout, result.returncode)
    return result.stdout


async def run_gh_async(*args: str, cwd: str | None = None) -> str:
    """Async variant of :func:`run_gh` for reads issued concurrently.

    If the awaiting task is cancelled, the gh process is killed before
    the cancellation propagates, so no orphaned processes are left behind.
    """
    cmd = ["gh", *args]
    logger.debug("Running (async): %s", " ".join(cmd))
    start = time.perf_counter()
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
        )
    except FileNotFoundError:
        raise GhNotFoundError from None

    try:
        stdout_b, stderr_b = await proc.communicate()
    except asyncio.CancelledError:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        await proc.wait()
        logger.debug("gh %s killed after cancellation", _summarize_cmd(args))
        raise

    stdout = stdout_b.decode("utf-8", errors="replace")
    stderr = stderr_b.decode("utf-8", errors="replace")
    duration_ms = round((time.perf_counter() - start) * 1000)
    logger.debug("gh %s exited %d in %dms", _summarize_cmd(args), proc.returncode, duration_ms)

    if proc.returncode != 0:
        logger.debug("gh stderr: %s", stderr)
        raise _error_from_output(stderr, stdout, proc.returncode or 1)
    return stdout


def _rest_args(endpoint: str, method: str, *, paginate: bool, hostname: str) -> list[str]:
    args = ["api", endpoint, "--method", method]
    if hostname != DEFAULT_HOST:
        args.extend(["--hostname", hostname])
    if paginate:
        args.extend(["--paginate", "--slurp"])
    return args


def _decode_rest(raw: str, *, paginate: bool) -> Any:
    result = None if not raw.strip() else json.loads(raw)

    # --slurp wraps pages in an outer array: [[...page1...], [...page2...]].
    # Flatten to a single list so callers see one contiguous array.
    if paginate and isinstance(result, list) and result and isinstance(result[0], list):
        result = [item for page in result for item in page]

    return result


def rest(
    endpoint: str,
    method: str = "GET",
    cwd: str | None = None,
    *,
    paginate: bool = False,
    body: dict[str, Any] | None = None,
    hostname: str = DEFAULT_HOST,
) -> Any:
    """Execute a GitHub REST API call via gh api.

    Args:
        endpoint: REST API endpoint (e.g. "/repos/{owner}/{repo}/pulls").
        method: HTTP method.
        cwd: Working directory.
        paginate: If True, pass ``--paginate --slurp`` to gh api to follow
            Link headers. ``--slurp`` wraps pages in an outer JSON array;
            the result is then flattened to a single contiguous list.
        body: JSON request body, sent on stdin via ``--input -``.
        hostname: GitHub host, for Enterprise Server instances.

    Returns:
        Parsed JSON response.
    """
    args = _rest_args(endpoint, method, paginate=paginate, hostname=hostname)
    stdin = None
    if body is not None:
        args.extend(["--input", "-"])
        stdin = json.dumps(body)

    raw = run_gh(*args, cwd=cwd, stdin=stdin)
    return _decode_rest(raw, paginate=paginate)


async def rest_async(
    endpoint: str,
    cwd: str | None = None,
    *,
    paginate: bool = False,
    hostname: str = DEFAULT_HOST,
) -> Any:
    """Read-only :func:`rest` on top of :func:`run_gh_async`, so cancelling it kills gh."""
    args = _rest_args(endpoint, "GET", paginate=paginate, hostname=hostname)
    raw = await run_gh_async(*args, cwd=cwd)
    return _decode_rest(raw, paginate=paginate)


async def gather_or_cancel(*coros: Coroutine[Any, Any, Any]) -> list[Any]:
    """Run *coros* concurrently and return their results in order.

    The first failure cancels everything still running and is re-raised,
    so callers never see partial results. Cancelling the caller cancels
    all children.
    """
    tasks = [asyncio.ensure_future(c) for c in coros]
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except asyncio.CancelledError:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    for task in pending:
        task.cancel()
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)

    # Retrieve every failure so none is reported as "never retrieved"
    failures = [exc for task in tasks if task in done and not task.cancelled() and (exc := task.exception()) is not None]
    if failures:
        if len(failures) > 1:
            logger.debug("%d concurrent gh reads failed; raising the first", len(failures))
        raise failures[0]
    return [task.result() for task in tasks]


def check_auth(cwd: str | None = None) -> str:
    """Verify gh CLI is installed and authenticated.

    Returns:
        The authenticated GitHub username.

    Raises:
        GhNotFoundError: If gh is not installed.
        GhNotAuthenticatedError: If not authenticated.
    """
    try:
        result = run_gh("auth", "status", cwd=cwd)
    except GhNotFoundError:
        raise
    except GhError as e:
        raise GhNotAuthenticatedError(stderr=e.stderr) from e

    # Extract username from output like "Logged in to github.com account username"
    for line in result.splitlines():
        if "account" in line.lower():
            parts = line.split()
            for i, part in enumerate(parts):
                if part.lower() == "account" and i + 1 < len(parts):
                    return parts[i + 1].strip("()")
    return "authenticated"


def get_repo_info(cwd: str | None = None) -> tuple[str, str]:
    """Get the owner and repo name for the repository checked out in *cwd*.

    Returns:
        Tuple of (owner, repo).
    """
    raw = run_gh("repo", "view", "--json", "nameWithOwner", "-q", ".nameWithOwner", cwd=cwd)
    owner_repo = raw.strip()
    owner, sep, repo = owner_repo.partition("/")
    if not sep or not owner or not repo:
        msg = f"Unexpected repository name from gh: {owner_repo!r}"
        raise GhError(msg)
    return owner, repo
