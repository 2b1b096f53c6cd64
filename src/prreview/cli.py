"""CLI for prreview — built on cyclopts (same framework as FastMCP's CLI)."""

from __future__ import annotations

import asyncio
import sys
from typing import TYPE_CHECKING, Annotated

import cyclopts
from rich import print as rprint

if TYPE_CHECKING:
    from pydantic import BaseModel

    from prreview.config import Config

app = cyclopts.App(
    name="prreview",
    help="prreview — pull request review MCP server backed by the GitHub CLI.",
)

RepoOption = Annotated[
    str | None,
    cyclopts.Parameter(name=["--repo", "-R"], help='Repository in "owner/repo" format'),
]


@app.default
def serve() -> None:
    """Run the prreview MCP server (default command)."""
    from prreview.server import mcp  # noqa: PLC0415

    mcp.run()


def _run_tool(tool_name: str, pr: str, repo: str | None, model: type[BaseModel]) -> None:
    """Run a read tool outside MCP and print its result as JSON.

    Failures are reported the same way the MCP tools report them, in the
    ``error`` / ``error_kind`` fields, and exit non-zero.
    """
    from prreview.config import load_config, set_config  # noqa: PLC0415
    from prreview.refs import GhRepoProvider, parse_pr_reference  # noqa: PLC0415
    from prreview.errors import error_kind, recovery_error  # noqa: PLC0415
    from prreview.tools import comments, snapshot  # noqa: PLC0415

    fetchers = {
        "get_pull_request": snapshot.fetch_pr_snapshot,
        "list_pr_comments": comments.list_pr_comments,
    }
    try:
        config, config_path = load_config()
        set_config(config, config_path=config_path)
        ref = parse_pr_reference(pr, repo)
        result = asyncio.run(fetchers[tool_name](ref, provider=GhRepoProvider()))
    except Exception as exc:  # noqa: BLE001 - reported as a structured error below
        result = model(error=recovery_error(exc, tool_name=tool_name, pr=pr, repo=repo), error_kind=error_kind(exc))

    print(result.model_dump_json(indent=2, exclude_none=True))  # noqa: T201
    if getattr(result, "error", None):
        sys.exit(1)


@app.command(name="snapshot")
def snapshot_cmd(pr: str, *, repo: RepoOption = None) -> None:
    """Print a PR snapshot (metadata, stats, files, commits, diff) as JSON.

    Args:
        pr: PR number or full GitHub PR URL.
        repo: Repository in "owner/repo" format.
    """
    from prreview.models import PRSnapshot  # noqa: PLC0415

    _run_tool("get_pull_request", pr, repo, PRSnapshot)


@app.command(name="comments")
def comments_cmd(pr: str, *, repo: RepoOption = None) -> None:
    """Print all reviews, conversation comments and inline threads on a PR as JSON.

    Args:
        pr: PR number or full GitHub PR URL.
        repo: Repository in "owner/repo" format.
    """
    from prreview.models import PRComments  # noqa: PLC0415

    _run_tool("list_pr_comments", pr, repo, PRComments)


@app.command(name="config")
def config_cmd(
    *,
    init: Annotated[bool, cyclopts.Parameter(name="--init", help="Create .prreview.toml in the current directory")] = False,
) -> None:
    """Show the configuration prreview would use here, or create a config file with --init."""
    from prreview.config import init_config, load_config  # noqa: PLC0415

    if init:
        init_config()
        return

    try:
        config, config_path = load_config()
    except ValueError as exc:
        rprint(f"[red]❌ Configuration error: {exc}[/red]")
        sys.exit(1)
    print(f"Source: {config_path or 'defaults (no .prreview.toml found)'}")  # noqa: T201
    _print_config_summary(config)


@app.command(name="doctor")
def doctor() -> None:
    """Validate the config file and the gh CLI setup, printing a diagnostic summary."""
    from prreview import gh  # noqa: PLC0415
    from prreview.config import load_config  # noqa: PLC0415

    print("prreview doctor")  # noqa: T201
    print("=" * 40)  # noqa: T201

    print("Validating configuration...\n")  # noqa: T201
    try:
        config, config_path = load_config()
    except ValueError as exc:
        rprint(f"[red]❌ Configuration error: {exc}[/red]")
        sys.exit(1)

    print(f"  Source: {config_path or 'defaults (no .prreview.toml found)'}")  # noqa: T201
    _print_config_summary(config)

    print("-" * 40)  # noqa: T201
    print("Checking gh CLI...\n")  # noqa: T201
    ok = True
    try:
        username = gh.check_auth()
        print(f"  ✅ gh CLI authenticated as: {username}")  # noqa: T201
    except gh.GhError as exc:
        print(f"  ❌ gh CLI error: {exc}")  # noqa: T201
        ok = False

    try:
        owner, repo = gh.get_repo_info()
        print(f"  Current repository: {owner}/{repo}")  # noqa: T201
    except gh.GhError:
        print("  Current repository: none (pass a PR URL or --repo)")  # noqa: T201

    print()  # noqa: T201
    if not ok:
        sys.exit(1)


def _print_config_summary(config: Config) -> None:
    """Print a human-readable config summary."""
    print(f"  Default review event: {config.review.default_event.value}")  # noqa: T201
    print(f"  Dry run by default: {'yes' if config.review.dry_run else 'no'}")  # noqa: T201
    extra = ", ".join(config.bots.extra_logins) or "none"
    print(f"  Extra bot logins: {extra}")  # noqa: T201
    limit = config.snapshot.max_diff_chars
    print(f"  Diff limit: {limit if limit else 'unlimited'}")  # noqa: T201
    print()  # noqa: T201
