"""Leak analyzer - turns diffs from the diff stream into leaks on the leak stream."""

from __future__ import annotations

import logging
import queue
import threading

from leakwatch.config import LeakWatchConfig
from leakwatch.detector.models import Leak
from leakwatch.detector.patterns import (
    DEFAULT_FILTERS,
    DEFAULT_PATTERNS,
    Pattern,
    compile_patterns,
)
from leakwatch.repo.models import Diff

logger = logging.getLogger(__name__)

# Longest leak string carried in a Leak record
MAX_LEAK_LENGTH = 512


class LeakAnalyzer:
    """Matches added lines against detection patterns, minus filters.

    ``analyze`` is usable on its own; ``start``/``stop`` run it as the
    consumer of a diff queue in a background thread.
    """

    def __init__(
        self,
        diff_queue: queue.Queue[Diff] | None = None,
        leak_queue: queue.Queue[Leak] | None = None,
        patterns: list[Pattern] | None = None,
        filters: list[Pattern] | None = None,
        poll_interval: float = 0.5,
    ) -> None:
        self._diff_queue = diff_queue
        self._leak_queue = leak_queue
        self._patterns = patterns if patterns else list(DEFAULT_PATTERNS)
        self._filters = filters if filters is not None else list(DEFAULT_FILTERS)
        self._poll_interval = poll_interval
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self.diffs_analyzed = 0
        self.leaks_found = 0

    @classmethod
    def from_config(
        cls,
        config: LeakWatchConfig,
        diff_queue: queue.Queue[Diff] | None = None,
        leak_queue: queue.Queue[Leak] | None = None,
    ) -> LeakAnalyzer:
        """Config patterns replace the defaults; config filters extend them."""
        return cls(
            diff_queue=diff_queue,
            leak_queue=leak_queue,
            patterns=compile_patterns(config.patterns) or None,
            filters=DEFAULT_FILTERS + compile_patterns(config.filters),
        )

    def analyze(self, diff: Diff) -> list[Leak]:
        """Return every leak in the added content of one diff."""
        leaks: list[Leak] = []
        patterns = [p for p in self._patterns if p.matches_file(diff.file_path)]
        if not patterns:
            return leaks

        lines = diff.content.splitlines()
        for pattern in patterns:
            if pattern.content is None:
                # File-name-only rule: the whole chunk is the leak
                first = lines[0] if lines else ""
                if not self._is_filtered(diff.file_path, first):
                    leaks.append(self._make_leak(diff, pattern, first, 0))
                continue

            for offset, line in enumerate(lines):
                match = pattern.matches_line(line)
                if match is None:
                    continue
                if self._is_filtered(diff.file_path, line):
                    continue
                leaks.append(self._make_leak(diff, pattern, match.group(0), offset))

        return leaks

    def start(self) -> None:
        if self._diff_queue is None or self._leak_queue is None:
            raise RuntimeError("LeakAnalyzer needs a diff queue and a leak queue")
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name="leak-analyzer", daemon=True
        )
        self._thread.start()
        logger.debug(
            "Analyzer started with %d pattern(s), %d filter(s)",
            len(self._patterns),
            len(self._filters),
        )

    def stop(self) -> None:
        """Signal the worker to stop and wait for it."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def _run(self) -> None:
        diff_queue, leak_queue = self._diff_queue, self._leak_queue
        if diff_queue is None or leak_queue is None:
            raise RuntimeError("LeakAnalyzer needs a diff queue and a leak queue")
        while not self._stop_event.is_set():
            try:
                diff = diff_queue.get(timeout=self._poll_interval)
            except queue.Empty:
                continue
            try:
                leaks = self.analyze(diff)
                self.diffs_analyzed += 1
                for leak in leaks:
                    self.leaks_found += 1
                    leak_queue.put(leak)
            except Exception:
                logger.exception(
                    "Analyzer failed on %s in commit %s",
                    diff.file_path,
                    diff.commit_hash,
                )
            finally:
                # Leaks are queued before the diff counts as done
                diff_queue.task_done()

    def _is_filtered(self, file_path: str, line: str) -> bool:
        for f in self._filters:
            if not f.matches_file(file_path):
                continue
            if f.content is None or f.content.search(line):
                return True
        return False

    def _make_leak(
        self, diff: Diff, pattern: Pattern, text: str, offset: int
    ) -> Leak:
        line = diff.line_begin + offset if diff.line_begin else 0
        return Leak(
            pattern_name=pattern.name,
            regexp=pattern.regexp,
            file_path=diff.file_path,
            repo_path=diff.repo_path,
            repo_url=diff.repo_url,
            leak_string=text[:MAX_LEAK_LENGTH],
            commit_hash=diff.commit_hash,
            commit_author=diff.author,
            commit_email=diff.author_email,
            timestamp=diff.timestamp,
            line=line,
        )
