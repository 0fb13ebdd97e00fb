"""Shared test fixtures."""

from __future__ import annotations

import os
import queue
import subprocess
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from leakwatch.config import CommonConfig, LeakWatchConfig, RepoTarget
from leakwatch.repo.models import Diff


class GitRepoBuilder:
    """Builds a throwaway git repository with controlled commit dates."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.path.mkdir(parents=True, exist_ok=True)
        # Each commit gets its own minute so --date-order is deterministic
        self._clock = datetime.now(timezone.utc) - timedelta(days=1)
        self.git("init", "-q")
        self.git("symbolic-ref", "HEAD", "refs/heads/main")

    def git(self, *args: str, when: datetime | None = None) -> str:
        env = dict(
            os.environ,
            GIT_CONFIG_NOSYSTEM="1",
            GIT_CONFIG_GLOBAL=os.devnull,
            GIT_AUTHOR_NAME="Alice",
            GIT_AUTHOR_EMAIL="alice@example.com",
            GIT_COMMITTER_NAME="Alice",
            GIT_COMMITTER_EMAIL="alice@example.com",
        )
        if when is not None:
            stamp = when.strftime("%Y-%m-%dT%H:%M:%S+0000")
            env["GIT_AUTHOR_DATE"] = stamp
            env["GIT_COMMITTER_DATE"] = stamp
        result = subprocess.run(
            ["git", "-c", "commit.gpgsign=false", *args],
            cwd=self.path,
            env=env,
            capture_output=True,
            text=True,
            check=True,
        )
        return result.stdout.strip()

    def commit(
        self,
        files: dict[str, str | bytes | None],
        message: str = "change",
        when: datetime | None = None,
    ) -> str:
        """Write (or delete, for None) files and commit them; return the hash."""
        for name, content in files.items():
            target = self.path / name
            if content is None:
                self.git("rm", "-q", name)
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                target.write_bytes(content)
            else:
                target.write_text(content, encoding="utf-8")
            self.git("add", name)
        self.git("commit", "-q", "-m", message, when=when or self._tick())
        return self.git("rev-parse", "HEAD")

    def merge(self, branch: str, when: datetime | None = None) -> str:
        self.git(
            "merge", "-q", "--no-ff", "-m", f"merge {branch}", branch,
            when=when or self._tick(),
        )
        return self.git("rev-parse", "HEAD")

    def _tick(self) -> datetime:
        self._clock += timedelta(minutes=1)
        return self._clock


@pytest.fixture
def git_repo(tmp_path: Path) -> GitRepoBuilder:
    return GitRepoBuilder(tmp_path / "repo")


@pytest.fixture
def diff_queue() -> queue.Queue[Diff]:
    return queue.Queue()


@pytest.fixture
def long_ago() -> datetime:
    return datetime(1990, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def config(tmp_path: Path, git_repo: GitRepoBuilder) -> LeakWatchConfig:
    return LeakWatchConfig(
        common=CommonConfig(
            state_db=tmp_path / "state.db",
            leaks_file=tmp_path / "leaks.jsonl",
            history_limit_days=3650,
            drain_timeout=1.0,
        ),
        inspect=(RepoTarget(path=git_repo.path, url="https://git.example.org/repo"),),
    )
