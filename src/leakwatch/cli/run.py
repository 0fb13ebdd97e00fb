"""CLI command: leakwatch run - scan configured repositories continuously."""

from __future__ import annotations

import asyncio
import queue
import signal
import sys

import click
from rich.console import Console

from leakwatch.cli.common import load_config
from leakwatch.config import LeakWatchConfig
from leakwatch.detector.analyzer import LeakAnalyzer
from leakwatch.detector.models import Leak
from leakwatch.errors import LeakWatchError
from leakwatch.repo.models import Diff
from leakwatch.router.router import LeaksRouter
from leakwatch.scheduler import ScanScheduler
from leakwatch.storage.db import get_db

console = Console(stderr=True)

_SIGNALS = (signal.SIGINT, signal.SIGTERM)


@click.command()
@click.pass_context
def run(ctx: click.Context) -> None:
    """Scan every configured repository each scan interval until interrupted."""
    config = load_config(ctx)
    if not config.inspect:
        raise click.UsageError("No repositories configured in 'inspect'")

    console.print(
        f"[bold]LeakWatch[/bold] watching [cyan]{len(config.inspect)}[/cyan] "
        f"repositories every [cyan]{config.common.scan_interval:g}s[/cyan]"
    )
    console.print(f"  State: {config.common.state_db}\n")

    try:
        asyncio.run(serve(config))
    except LeakWatchError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    console.print("[dim]Stopped.[/dim]")


async def serve(
    config: LeakWatchConfig, stop_event: asyncio.Event | None = None
) -> None:
    """Wire scheduler, analyzer and router together until ``stop_event`` fires.

    A router that cannot start aborts before any repository is scanned.
    """
    diff_queue: queue.Queue[Diff] = queue.Queue(maxsize=config.common.queue_size)
    leak_queue: queue.Queue[Leak] = queue.Queue(maxsize=config.common.queue_size)

    router = LeaksRouter(leak_queue, config)
    analyzer = LeakAnalyzer.from_config(config, diff_queue, leak_queue)
    stop = stop_event if stop_event is not None else asyncio.Event()
    loop = asyncio.get_running_loop()

    router.start()
    try:
        analyzer.start()
        db = await get_db(config.common.state_db)
        for sig in _SIGNALS:
            loop.add_signal_handler(sig, stop.set)
        try:
            scheduler = ScanScheduler(config, diff_queue, db)
            await scheduler.run_forever(stop)
            await asyncio.to_thread(diff_queue.join)
        finally:
            for sig in _SIGNALS:
                loop.remove_signal_handler(sig)
            await db.close()
    finally:
        analyzer.stop()
        router.stop()
