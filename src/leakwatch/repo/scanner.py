"""Repository scanner - incremental history walk that feeds the diff stream."""

from __future__ import annotations

import logging
import queue
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path

from leakwatch.errors import GitCommandError, RepoError
from leakwatch.repo.git import CommitInfo, GitRepository, is_zero_hash
from leakwatch.repo.models import Diff, ScanProgress

logger = logging.getLogger(__name__)

# Housekeeping refs that are not real history entry points
_IGNORED_REF_PREFIXES = ("refs/keep-around/",)

UNKNOWN_AUTHOR = "unknown"


class RepoScan:
    """Scans one repository's unscanned history and emits added-line diffs.

    One instance is used per repository per scan invocation. The caller
    supplies the checkpoint with ``set_refs`` and persists the result of
    ``get_refs`` once the scan succeeds::

        with RepoScan(path, url, horizon, diff_queue) as scan:
            scan.set_refs(known_refs)
            new_refs = scan.get_refs()
            scan.scan()
    """

    def __init__(
        self,
        repo_path: str | Path,
        url: str,
        history_past_limit: datetime,
        diff_queue: queue.Queue[Diff],
    ) -> None:
        self.repo_path = Path(repo_path)
        self.url = url
        if history_past_limit.tzinfo is None:
            history_past_limit = history_past_limit.replace(tzinfo=timezone.utc)
        self.history_past_limit = history_past_limit
        self._diff_queue = diff_queue
        self._repository: GitRepository | None = None
        self._scanned_hashes: frozenset[str] = frozenset()
        self._progress = ScanProgress()

    def __enter__(self) -> RepoScan:
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def progress(self) -> int:
        """Walk position in permille, or -1 while the total is unknown."""
        return self._progress.permille

    @property
    def scan_progress(self) -> ScanProgress:
        return self._progress

    def open(self) -> None:
        self._repository = GitRepository.open(self.repo_path)

    def close(self) -> None:
        """Drop the repository handle."""
        self._repository = None

    def set_refs(self, refs: Iterable[str]) -> None:
        """Set the checkpoint: hashes of commits and refs already scanned."""
        self._scanned_hashes = frozenset(refs)

    def is_checked(self, commit_hash: str) -> bool:
        return commit_hash in self._scanned_hashes

    def get_refs(self) -> list[str]:
        """Current reference tips plus the newest commit across all refs.

        Raises RepoError when the repository cannot be opened or its
        references cannot be listed. A missing newest-commit anchor is
        only logged.
        """
        repo = self._ensure_open()
        try:
            references = repo.references()
        except GitCommandError as e:
            raise RepoError(f"Cannot list refs of {self.repo_path}: {e}") from e

        refs: list[str] = []
        for ref_hash, name in references:
            if is_zero_hash(ref_hash):
                continue
            if name.startswith(_IGNORED_REF_PREFIXES):
                continue
            refs.append(ref_hash)

        last_commit = self._last_commit(repo)
        if last_commit:
            refs.append(last_commit)
        return refs

    def scan(self) -> None:
        """Walk unscanned history newest-first and emit diffs onto the queue.

        Raises RepoError when the repository cannot be opened or its
        revisions cannot be listed. Unresolvable commits are skipped.
        """
        repo = self._ensure_open()
        self._progress = ScanProgress()
        candidates = self._rev_list(repo)
        self._progress.commits_total = len(candidates)
        logger.info(
            "Scanning %s: %d new commit(s)", self.repo_path, len(candidates)
        )

        for commit_hash in candidates:
            self._progress.commits_scanned += 1
            try:
                commit = repo.commit(commit_hash)
            except GitCommandError as e:
                logger.warning("Skipping unresolvable commit %s: %s", commit_hash, e)
                continue

            if len(commit.parents) != 1:
                continue

            if commit.committed_at < self.history_past_limit:
                logger.debug(
                    "Commit %s is past the history limit, taking a full snapshot",
                    commit.hash,
                )
                self._emit_snapshot(repo, commit)
                break

            self._emit_commit_changes(repo, commit)

    def _ensure_open(self) -> GitRepository:
        if self._repository is None:
            self.open()
        if self._repository is None:
            raise RepoError(f"Repository {self.repo_path} is not open")
        return self._repository

    def _rev_list(self, repo: GitRepository) -> list[str]:
        """Date-ordered candidates, truncated at the first checkpointed commit."""
        try:
            hashes = repo.rev_list()
        except GitCommandError as e:
            raise RepoError(f"Cannot list revisions of {self.repo_path}: {e}") from e

        candidates: list[str] = []
        for commit_hash in hashes:
            if self.is_checked(commit_hash):
                break
            candidates.append(commit_hash)
        return candidates

    def _last_commit(self, repo: GitRepository) -> str:
        try:
            newest = repo.rev_list(max_count=1)
        except GitCommandError as e:
            logger.debug("No newest commit for %s: %s", self.repo_path, e)
            return ""
        return newest[0] if newest else ""

    def _emit_commit_changes(self, repo: GitRepository, commit: CommitInfo) -> None:
        try:
            chunks = list(repo.added_chunks(commit.parents[0], commit.hash))
        except GitCommandError as e:
            logger.warning("Skipping commit %s: %s", commit.hash, e)
            return

        for chunk in chunks:
            self._diff_queue.put(
                Diff(
                    commit_hash=commit.hash,
                    repo_url=self.url,
                    repo_path=str(self.repo_path),
                    file_path=chunk.file_path,
                    line_begin=chunk.line_begin,
                    content=chunk.content,
                    author=commit.author,
                    author_email=commit.author_email,
                    timestamp=commit.authored_at,
                )
            )

    def _emit_snapshot(self, repo: GitRepository, commit: CommitInfo) -> None:
        """Every line of every text file in the commit's tree, as added."""
        try:
            chunks = list(repo.added_chunks(repo.empty_tree(), commit.hash))
        except GitCommandError as e:
            logger.warning("Skipping snapshot of %s: %s", commit.hash, e)
            return

        for chunk in chunks:
            self._diff_queue.put(
                Diff(
                    commit_hash=commit.hash,
                    repo_url=self.url,
                    repo_path=str(self.repo_path),
                    file_path=chunk.file_path,
                    line_begin=chunk.line_begin,
                    content=chunk.content,
                    author=UNKNOWN_AUTHOR,
                    author_email=UNKNOWN_AUTHOR,
                    timestamp=commit.authored_at,
                )
            )
