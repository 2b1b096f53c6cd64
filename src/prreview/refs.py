"""Pull request references: parsing and repository resolution.

A reference is either a PR URL (``https://github.com/owner/repo/pull/123``,
any host) or a bare PR number. A bare number leaves owner/repo empty
unless a ``owner/repo`` hint is given; the gap is filled later by a
:class:`CurrentRepoProvider`, never by implicit global state.
"""

from __future__ import annotations

import logging
import re
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field

from prreview import gh

logger = logging.getLogger(__name__)

# Whole-string match; anything after the number must start a new path segment, query or fragment
_PR_URL_RE = re.compile(
    r"(?:[a-z][a-z0-9+.-]*://)?([^/\s?#]+)/([^/\s?#]+)/([^/\s?#]+)/pull/(\d+)(?:[/?#]\S*)?",
    re.IGNORECASE,
)
_PR_NUMBER_RE = re.compile(r"[0-9]+")


class InvalidReferenceError(ValueError):
    """The PR identifier is neither a PR URL nor a PR number."""

    def __init__(self, ref: str) -> None:
        super().__init__(f"Invalid PR reference: {ref!r}. Provide a PR URL or number.")
        self.ref = ref


class AmbiguousContextError(Exception):
    """No owner/repo could be determined for a bare PR number."""


class PRReference(BaseModel):
    """A parsed PR identifier. Empty owner/repo means "use the current repository"."""

    model_config = ConfigDict(frozen=True)

    host: str = Field(default=gh.DEFAULT_HOST, description="GitHub host")
    owner: str = Field(default="", description="Repository owner, empty if not known yet")
    repo: str = Field(default="", description="Repository name, empty if not known yet")
    number: int = Field(gt=0, description="PR number")

    @property
    def has_repo(self) -> bool:
        return bool(self.owner and self.repo)


def parse_pr_reference(ref: str, repo: str | None = None) -> PRReference:
    """Parse a PR URL or number into a :class:`PRReference`.

    The URL form always wins over the bare-number form. A ``repo`` hint
    only applies to bare numbers and is ignored unless it has the shape
    ``owner/repo``.

    Raises:
        InvalidReferenceError: If *ref* is neither form, or the number is 0.
    """
    text = ref.strip()

    match = _PR_URL_RE.fullmatch(text)
    if match:
        host, owner, repo_name, number = match.groups()
        if int(number) == 0:
            raise InvalidReferenceError(ref)
        return PRReference(host=host.lower(), owner=owner, repo=repo_name, number=int(number))

    if _PR_NUMBER_RE.fullmatch(text) and int(text) > 0:
        number = int(text)
        owner, repo_name = _split_repo_hint(repo)
        return PRReference(owner=owner, repo=repo_name, number=number)

    raise InvalidReferenceError(ref)


def _split_repo_hint(repo: str | None) -> tuple[str, str]:
    if not repo:
        return "", ""
    owner, _, name = repo.strip().partition("/")
    if not owner or not name or "/" in name:
        logger.debug("Ignoring malformed repo hint %r", repo)
        return "", ""
    return owner, name


class CurrentRepoProvider(Protocol):
    """Supplies the ambient repository when a reference omits owner/repo."""

    def current_repo(self) -> tuple[str, str]:
        """Return ``(owner, repo)`` or raise if there is no current repository."""
        ...


class GhRepoProvider:
    """Resolve the current repository with ``gh repo view`` in a workspace directory."""

    def __init__(self, cwd: str | None = None) -> None:
        self.cwd = cwd

    def current_repo(self) -> tuple[str, str]:
        return gh.get_repo_info(cwd=self.cwd)


def resolve_repository(ref: PRReference, provider: CurrentRepoProvider | None) -> tuple[str, str]:
    """Return ``(owner, repo)`` for *ref*, consulting *provider* only when needed.

    Raises:
        AmbiguousContextError: If owner/repo are missing and the provider is
            absent or cannot name a repository.
        GhNotFoundError, GhNotAuthenticatedError: Propagated from the provider.
    """
    if ref.has_repo:
        return ref.owner, ref.repo
    if provider is None:
        msg = f"Could not determine the repository for PR #{ref.number}: no repo given and no current repository."
        raise AmbiguousContextError(msg)
    try:
        owner, repo = provider.current_repo()
    except (gh.GhNotFoundError, gh.GhNotAuthenticatedError):
        raise
    except gh.GhError as exc:
        msg = (
            f"Could not determine the repository for PR #{ref.number}. "
            "Provide the full PR URL or run from within a git repository."
        )
        raise AmbiguousContextError(msg) from exc
    logger.debug("Resolved PR #%d to %s/%s from the current repository", ref.number, owner, repo)
    return owner, repo


def pr_url(ref: PRReference, owner: str, repo: str) -> str:
    """Build the web URL of a PR."""
    return f"https://{ref.host}/{owner}/{repo}/pull/{ref.number}"
