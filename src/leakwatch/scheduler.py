"""Scan scheduler - repeated scan cycles over the configured repositories."""

from __future__ import annotations

import asyncio
import logging
import queue
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import aiosqlite

from leakwatch.config import LeakWatchConfig, RepoTarget
from leakwatch.errors import LeakWatchError
from leakwatch.repo.models import Diff, RunStatus, ScanRun
from leakwatch.repo.scanner import RepoScan
from leakwatch.storage.repos import RefsRepo, ScanRunRepo

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScanScheduler:
    """Loads checkpoints, scans each repository, saves the new checkpoints.

    A repository whose scan fails keeps its previous checkpoint, so the
    next cycle retries the same history.
    """

    def __init__(
        self,
        config: LeakWatchConfig,
        diff_queue: queue.Queue[Diff],
        db: aiosqlite.Connection,
        targets: list[RepoTarget] | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._config = config
        self._diff_queue = diff_queue
        self._refs = RefsRepo(db)
        self._runs = ScanRunRepo(db)
        self._targets = list(config.inspect) if targets is None else targets
        self._clock = clock

    @property
    def targets(self) -> list[RepoTarget]:
        return list(self._targets)

    def history_past_limit(self) -> datetime:
        return self._clock() - timedelta(days=self._config.common.history_limit_days)

    async def scan_repo(self, target: RepoTarget) -> ScanRun:
        """Scan one repository and persist its checkpoint on success."""
        run = ScanRun(repo_path=str(target.path), repo_url=target.url)
        await self._runs.create(run)
        known = await self._refs.get_refs(run.repo_path)

        scan = RepoScan(
            target.path, target.url, self.history_past_limit(), self._diff_queue
        )
        try:
            new_refs = await asyncio.to_thread(_scan_sync, scan, known)
        except LeakWatchError as e:
            run.status = RunStatus.ERROR
            run.error = str(e)
            logger.error("Scan of %s failed: %s", target.path, e)
        except Exception as e:
            run.status = RunStatus.ERROR
            run.error = str(e) or type(e).__name__
            logger.exception("Unexpected error scanning %s", target.path)
        else:
            await self._refs.replace_refs(run.repo_path, new_refs)
            run.status = RunStatus.DONE
        finally:
            progress = scan.scan_progress
            run.commits_total = progress.commits_total or 0
            run.commits_scanned = progress.commits_scanned

        await self._runs.finish(run)
        logger.info(
            "Scan of %s %s: %d/%d commit(s)",
            target.path,
            run.status.value,
            run.commits_scanned,
            run.commits_total,
        )
        return run

    async def run_cycle(
        self, stop_event: asyncio.Event | None = None
    ) -> list[ScanRun]:
        runs: list[ScanRun] = []
        for target in self._targets:
            if stop_event is not None and stop_event.is_set():
                break
            runs.append(await self.scan_repo(target))
        return runs

    async def run_forever(self, stop_event: asyncio.Event) -> None:
        """Repeat scan cycles every ``scan_interval`` seconds until stopped."""
        interval = self._config.common.scan_interval
        while not stop_event.is_set():
            runs = await self.run_cycle(stop_event)
            failed = sum(1 for r in runs if r.status == RunStatus.ERROR)
            if failed:
                logger.warning(
                    "%d of %d repositories failed to scan", failed, len(runs)
                )
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue


def _scan_sync(scan: RepoScan, known_refs: list[str]) -> list[str]:
    """Run one scan on a worker thread; return the refs to checkpoint."""
    with scan:
        scan.set_refs(known_refs)
        new_refs = scan.get_refs()
        scan.scan()
    return new_refs
