"""CLI command: leakwatch state - stored checkpoints and recent scan runs."""

from __future__ import annotations

import asyncio
import time

import click
from rich.console import Console
from rich.table import Table

from leakwatch.cli.common import load_config
from leakwatch.storage.db import get_db
from leakwatch.storage.repos import RefsRepo, ScanRunRepo

console = Console(stderr=True)


@click.command()
@click.option("--limit", "-n", default=20, show_default=True, help="Runs to show.")
@click.pass_context
def state(ctx: click.Context, limit: int) -> None:
    """Show stored checkpoints and the most recent scan runs."""
    config = load_config(ctx)
    repos, runs = asyncio.run(_load_state(str(config.common.state_db), limit))

    if not repos:
        console.print("[dim]No checkpoints stored yet.[/dim]")
    else:
        table = Table(title="Checkpoints")
        table.add_column("Repository", style="cyan")
        table.add_column("Refs", justify="right")
        for row in repos:
            table.add_row(row["repo_path"], str(row["refs"]))
        console.print(table)

    if runs:
        table = Table(title="Recent scans")
        table.add_column("Started", style="dim")
        table.add_column("Repository", style="cyan")
        table.add_column("Status")
        table.add_column("Commits", justify="right")
        table.add_column("Error", max_width=50)
        for row in runs:
            color = {"done": "green", "error": "red"}.get(row["status"], "yellow")
            table.add_row(
                time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(row["started_at"])),
                row["repo_url"] or row["repo_path"],
                f"[{color}]{row['status']}[/{color}]",
                f"{row['commits_scanned']}/{row['commits_total']}",
                row["error"],
            )
        console.print(table)


async def _load_state(db_path: str, limit: int) -> tuple[list[dict], list[dict]]:
    db = await get_db(db_path)
    try:
        repos = await RefsRepo(db).list_repos()
        runs = await ScanRunRepo(db).list_recent(limit=limit)
    finally:
        await db.close()
    return repos, runs
