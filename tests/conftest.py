"""Global test fixtures for prreview."""

from __future__ import annotations

import pytest

from prreview.config import Config, set_config


@pytest.fixture(autouse=True)
def _default_config():
    """Reset config to defaults before every test.

    Tools read the active config (default review event, extra bot logins,
    diff limit), so a test that sets one must not leak it into the next.
    """
    set_config(Config())
    yield
    set_config(Config())
