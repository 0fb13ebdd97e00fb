"""CLI command: leakwatch scan [PATH] - one scan cycle with a findings table."""

from __future__ import annotations

import asyncio
import queue
import sys
from dataclasses import replace
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from leakwatch.cli.common import load_config, shorten_hash
from leakwatch.config import LeakWatchConfig, RepoTarget
from leakwatch.detector.analyzer import LeakAnalyzer
from leakwatch.detector.models import Leak
from leakwatch.errors import LeakWatchError
from leakwatch.repo.models import Diff, RunStatus, ScanRun
from leakwatch.router.router import LeaksRouter, build_senders
from leakwatch.router.senders import LeakSender
from leakwatch.scheduler import ScanScheduler
from leakwatch.storage.db import get_db

console = Console(stderr=True)


class CollectingSender:
    """In-memory sender backing the findings table."""

    def __init__(self) -> None:
        self.leaks: list[Leak] = []

    def start(self) -> None:
        self.leaks.clear()

    def send(self, leak: Leak) -> None:
        self.leaks.append(leak)

    def stop(self) -> None:
        pass


@click.command()
@click.argument(
    "path",
    required=False,
    type=click.Path(exists=True, file_okay=False),
)
@click.option("--url", default="", help="Repository URL used in leak reports.")
@click.option(
    "--history-days",
    type=click.IntRange(min=0),
    default=None,
    help="Take a full snapshot instead of per-commit diffs past this many days.",
)
@click.pass_context
def scan(
    ctx: click.Context,
    path: str | None,
    url: str,
    history_days: int | None,
) -> None:
    """Scan new commits of PATH (or every configured repository) once."""
    config = load_config(ctx)
    if history_days is not None:
        config = replace(
            config, common=replace(config.common, history_limit_days=history_days)
        )

    if path is not None:
        targets = [RepoTarget(path=Path(path).resolve(), url=url)]
    else:
        targets = list(config.inspect)
    if not targets:
        raise click.UsageError("No repository given and none configured in 'inspect'")

    console.print(
        f"[bold]LeakWatch[/bold] scanning [cyan]{len(targets)}[/cyan] "
        f"repositor{'y' if len(targets) == 1 else 'ies'}\n"
    )

    try:
        runs, leaks = asyncio.run(scan_once(config, targets))
    except LeakWatchError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    _print_runs(runs)
    if not leaks:
        console.print("\n[green]No leaks found.[/green]")
        return

    _print_leaks(leaks)
    console.print(f"\n[red]{len(leaks)} leak(s) found[/red]")
    sys.exit(1)


async def scan_once(
    config: LeakWatchConfig, targets: list[RepoTarget]
) -> tuple[list[ScanRun], list[Leak]]:
    """Run scanner, analyzer and router once over ``targets``."""
    diff_queue: queue.Queue[Diff] = queue.Queue(maxsize=config.common.queue_size)
    leak_queue: queue.Queue[Leak] = queue.Queue(maxsize=config.common.queue_size)
    collector = CollectingSender()

    def senders(cfg: LeakWatchConfig) -> dict[str, LeakSender]:
        return {**build_senders(cfg), "console": collector}

    router = LeaksRouter(leak_queue, config, sender_factory=senders)
    analyzer = LeakAnalyzer.from_config(config, diff_queue, leak_queue)

    router.start()
    try:
        analyzer.start()
        db = await get_db(config.common.state_db)
        try:
            scheduler = ScanScheduler(config, diff_queue, db, targets=targets)
            runs = await scheduler.run_cycle()
            # Every diff analyzed, then every leak delivered
            await asyncio.to_thread(diff_queue.join)
            await asyncio.to_thread(leak_queue.join)
        finally:
            await db.close()
    finally:
        analyzer.stop()
        router.stop()
    return runs, list(collector.leaks)


def _print_runs(runs: list[ScanRun]) -> None:
    table = Table(title="Repositories", show_lines=False)
    table.add_column("Repository", style="cyan")
    table.add_column("Status")
    table.add_column("Commits", justify="right")
    table.add_column("Error", max_width=60)

    for run in runs:
        color = "green" if run.status == RunStatus.DONE else "red"
        table.add_row(
            run.repo_url or run.repo_path,
            f"[{color}]{run.status.value}[/{color}]",
            f"{run.commits_scanned}/{run.commits_total}",
            run.error,
        )
    console.print(table)


def _print_leaks(leaks: list[Leak]) -> None:
    leaks = sorted(leaks, key=lambda lk: (lk.repo_path, lk.file_path, lk.line))

    table = Table(title="Leaks", show_lines=False)
    table.add_column("Pattern", style="bold")
    table.add_column("File", style="cyan")
    table.add_column("Line", justify="right")
    table.add_column("Commit")
    table.add_column("Author")
    table.add_column("Match", max_width=50)

    for leak in leaks:
        table.add_row(
            f"[red]{leak.pattern_name}[/red]",
            leak.file_path,
            str(leak.line) if leak.line else "-",
            shorten_hash(leak.commit_hash),
            leak.commit_email,
            leak.leak_string[:50],
        )
    console.print(table)
