"""Configuration for prreview.

Loads ``.prreview.toml`` from the project root (walking up to ``.git``),
validates with Pydantic, and provides sensible defaults so zero-config still works.
"""

from __future__ import annotations

import contextlib
import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from prreview.models import ReviewEvent

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".prreview.toml"

# Workspace directory for clients that do not send MCP roots; also where the config is looked up
WORKSPACE_ENV = "PRREVIEW_WORKSPACE"


class ReviewConfig(BaseModel):
    """Defaults for ``submit_review``."""

    model_config = ConfigDict(extra="ignore")

    default_event: ReviewEvent = Field(
        default=ReviewEvent.COMMENT,
        description="Review event used when the caller does not pass one",
    )
    dry_run: bool = Field(
        default=False,
        description="Preview reviews instead of posting them when the caller does not pass dry_run",
    )


class BotsConfig(BaseModel):
    """Extra automation accounts for the bot classifier."""

    model_config = ConfigDict(extra="ignore")

    extra_logins: list[str] = Field(
        default_factory=list,
        description="Exact logins (case-insensitive) also treated as bots",
    )


class SnapshotConfig(BaseModel):
    """Settings for ``get_pull_request``."""

    model_config = ConfigDict(extra="ignore")

    max_diff_chars: int = Field(
        default=0,
        ge=0,
        description="Truncate the diff after this many characters (0 = never truncate)",
    )


class Config(BaseModel):
    """Top-level prreview configuration."""

    model_config = ConfigDict(extra="ignore")

    review: ReviewConfig = Field(default_factory=ReviewConfig, description="Review submission defaults")
    bots: BotsConfig = Field(default_factory=BotsConfig, description="Bot classifier settings")
    snapshot: SnapshotConfig = Field(default_factory=SnapshotConfig, description="PR snapshot settings")


def _unknown_keys(data: dict[str, Any], model_cls: type[BaseModel], prefix: str = "") -> Iterator[str]:
    """Yield dotted paths (``snapshot.include_diff``) of keys *model_cls* does not define."""
    fields = model_cls.model_fields
    for key in sorted(data.keys() - fields.keys()):
        yield f"{prefix}{key}"
    for name, info in fields.items():
        section = data.get(name)
        nested = info.annotation
        if isinstance(section, dict) and isinstance(nested, type) and issubclass(nested, BaseModel):
            yield from _unknown_keys(section, nested, f"{prefix}{name}.")


def find_config_file(start: Path) -> Path | None:
    """Return the nearest ``.prreview.toml`` at or above *start*, not looking past the git root."""
    start = start.resolve()
    for directory in (start, *start.parents):
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        if (directory / ".git").exists():
            break
    return None


def _read_config(path: Path) -> tuple[Config, dict[str, Any]]:
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        msg = f"Invalid TOML in {path}: {exc}"
        raise ValueError(msg) from exc

    try:
        return Config.model_validate(data), data
    except ValidationError as exc:
        msg = f"Invalid config in {path}: {exc}"
        raise ValueError(msg) from exc


def load_config(cwd: str | Path | None = None) -> tuple[Config, Path | None]:
    """Find and parse ``.prreview.toml`` for the workspace at *cwd* (default: the process cwd).

    Returns:
        ``(config, path)``; ``path`` is None and the config all defaults when
        no file exists.

    Raises:
        ValueError: If the file is not valid TOML or fails validation, so the
            server refuses to start with a broken config.
    """
    path = find_config_file(Path(cwd) if cwd else Path.cwd())
    if path is None:
        logger.info("No %s found, using defaults", CONFIG_FILENAME)
        return Config(), None

    logger.info("Loading config from %s", path)
    config, data = _read_config(path)
    for key in _unknown_keys(data, Config):
        logger.warning("Ignoring unknown config key '%s' in %s (typo, or removed setting?)", key, path)
    return config, path


@dataclass
class _ActiveConfig:
    """The config in effect, re-read whenever its file's mtime changes."""

    config: Config = field(default_factory=Config)
    path: Path | None = None
    mtime_ns: int | None = None

    def refresh(self) -> Config:
        if self.path is None:
            return self.config
        try:
            mtime_ns = self.path.stat().st_mtime_ns
        except FileNotFoundError:
            if self.mtime_ns is not None:
                logger.warning("%s was removed, using defaults", self.path)
                self.config, self.mtime_ns = Config(), None
            return self.config

        if mtime_ns != self.mtime_ns:
            self.mtime_ns = mtime_ns
            try:
                self.config, _ = _read_config(self.path)
                logger.info("Reloaded %s", self.path)
            except ValueError as exc:
                logger.warning("Keeping previous config, edited file is invalid: %s", exc)
        return self.config


_active = _ActiveConfig()


def get_config() -> Config:
    """Return the active configuration, picking up edits to the config file."""
    return _active.refresh()


def set_config(config: Config, *, config_path: Path | None = None) -> None:
    """Install *config* as the active configuration.

    With *config_path*, later :func:`get_config` calls reload the file when
    it changes and fall back to defaults if it is deleted.
    """
    global _active  # noqa: PLW0603
    _active = _ActiveConfig(config=config, path=config_path)
    if config_path is not None:
        with contextlib.suppress(OSError):
            _active.mtime_ns = config_path.stat().st_mtime_ns


def get_config_path() -> Path | None:
    """Return the path of the active config file, or None when running on defaults."""
    return _active.path


DEFAULT_CONFIG_TEMPLATE = """\
# .prreview.toml - configuration for the prreview MCP server
# Every setting is optional; omitted values use the defaults shown here.
# Place this file in your project root (next to .git/).

[review]
default_event = "COMMENT"         # COMMENT, APPROVE or REQUEST_CHANGES when the agent omits it
dry_run = false                   # Preview reviews unless the agent explicitly asks to post

[bots]
extra_logins = []                 # Logins to treat as bots, e.g. ["ci-runner", "release-train"]

[snapshot]
max_diff_chars = 0                # Truncate huge diffs after N characters (0 = never)
"""


def init_config(cwd: Path | None = None) -> Path:
    """Write :data:`DEFAULT_CONFIG_TEMPLATE` to ``.prreview.toml`` in *cwd*.

    Raises ``SystemExit(1)`` rather than overwrite an existing file.
    """
    target = (cwd or Path.cwd()) / CONFIG_FILENAME
    if target.exists():
        print(f"Error: {target} already exists")  # noqa: T201
        raise SystemExit(1)
    target.write_text(DEFAULT_CONFIG_TEMPLATE, encoding="utf-8")
    print(f"Created {target}")  # noqa: T201
    return target
