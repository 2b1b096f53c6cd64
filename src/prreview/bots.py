"""Best-effort detection of automation accounts by login.

This is a heuristic for display and filtering only. Custom bots that do
not follow the usual naming conventions are reported as humans.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

# Checked in order; first match wins.
_BOT_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"\[bot\]$", re.IGNORECASE),
    re.compile(r"bot$", re.IGNORECASE),
    re.compile(r"^github-actions$", re.IGNORECASE),
    re.compile(r"^dependabot$", re.IGNORECASE),
    re.compile(r"^renovate$", re.IGNORECASE),
    re.compile(r"^codecov$", re.IGNORECASE),
    re.compile(r"^sonarcloud$", re.IGNORECASE),
    re.compile(r"^netlify$", re.IGNORECASE),
    re.compile(r"^vercel$", re.IGNORECASE),
]


def is_likely_bot(login: str, extra_logins: Iterable[str] = ()) -> bool:
    """Return True if *login* looks like an automation account.

    Args:
        login: GitHub username.
        extra_logins: Additional exact logins (case-insensitive) to treat as bots,
            checked after the built-in patterns.
    """
    if any(p.search(login) for p in _BOT_PATTERNS):
        return True
    folded = login.casefold()
    return any(folded == extra.casefold() for extra in extra_logins)
