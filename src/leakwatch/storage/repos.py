"""Repository classes for async CRUD operations on SQLite."""

from __future__ import annotations

import time
from collections.abc import Iterable

import aiosqlite

from leakwatch.repo.models import ScanRun


class RefsRepo:
    """Checkpoint store: hashes already scanned, per repository."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def get_refs(self, repo_path: str) -> list[str]:
        cursor = await self._db.execute(
            "SELECT hash FROM repo_refs WHERE repo_path = ? ORDER BY hash",
            (repo_path,),
        )
        return [row["hash"] async for row in cursor]

    async def replace_refs(self, repo_path: str, refs: Iterable[str]) -> None:
        """Atomically swap the stored checkpoint for ``repo_path``."""
        unique = sorted(set(refs))
        await self._db.execute(
            "DELETE FROM repo_refs WHERE repo_path = ?", (repo_path,)
        )
        await self._db.executemany(
            "INSERT INTO repo_refs (repo_path, hash) VALUES (?, ?)",
            [(repo_path, h) for h in unique],
        )
        await self._db.commit()

    async def list_repos(self) -> list[dict]:
        cursor = await self._db.execute(
            "SELECT repo_path, COUNT(*) AS refs FROM repo_refs "
            "GROUP BY repo_path ORDER BY repo_path"
        )
        return [dict(row) async for row in cursor]


class ScanRunRepo:
    """CRUD for scan run history."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def create(self, run: ScanRun) -> None:
        await self._db.execute(
            "INSERT INTO scan_runs "
            "(id, repo_path, repo_url, status, commits_total, "
            "commits_scanned, error, started_at, finished_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                run.id,
                run.repo_path,
                run.repo_url,
                run.status.value,
                run.commits_total,
                run.commits_scanned,
                run.error,
                run.started_at,
                run.finished_at,
            ),
        )
        await self._db.commit()

    async def finish(self, run: ScanRun) -> None:
        if run.finished_at is None:
            run.finished_at = time.time()
        await self._db.execute(
            "UPDATE scan_runs SET status = ?, commits_total = ?, "
            "commits_scanned = ?, error = ?, finished_at = ? WHERE id = ?",
            (
                run.status.value,
                run.commits_total,
                run.commits_scanned,
                run.error,
                run.finished_at,
                run.id,
            ),
        )
        await self._db.commit()

    async def get(self, run_id: str) -> dict | None:
        cursor = await self._db.execute(
            "SELECT * FROM scan_runs WHERE id = ?", (run_id,)
        )
        row = await cursor.fetchone()
        return dict(row) if row else None

    async def list_recent(
        self, repo_path: str | None = None, limit: int = 50
    ) -> list[dict]:
        if repo_path is None:
            cursor = await self._db.execute(
                "SELECT * FROM scan_runs ORDER BY started_at DESC LIMIT ?",
                (limit,),
            )
        else:
            cursor = await self._db.execute(
                "SELECT * FROM scan_runs WHERE repo_path = ? "
                "ORDER BY started_at DESC LIMIT ?",
                (repo_path, limit),
            )
        return [dict(row) async for row in cursor]
