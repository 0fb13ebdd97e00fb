"""Repository scan data models - diff records, progress and scan runs."""

from __future__ import annotations

import enum
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class Diff:
    """One added content chunk discovered in one commit."""

    commit_hash: str
    repo_url: str
    repo_path: str
    file_path: str
    line_begin: int
    content: str
    author: str
    author_email: str
    timestamp: datetime


@dataclass
class ScanProgress:
    """Walk position for the current scan cycle.

    ``commits_total`` stays None until the unscanned commit list is known.
    """

    commits_total: int | None = None
    commits_scanned: int = 0

    @property
    def permille(self) -> int:
        if self.commits_total is None:
            return -1
        if self.commits_total == 0:
            return 1000
        scanned = min(self.commits_scanned, self.commits_total)
        return scanned * 1000 // self.commits_total


class RunStatus(enum.Enum):
    """Outcome of one repository scan."""

    RUNNING = "running"
    DONE = "done"
    ERROR = "error"


@dataclass
class ScanRun:
    """One scan of one repository, as recorded in the state database."""

    repo_path: str
    repo_url: str = ""
    status: RunStatus = RunStatus.RUNNING
    commits_total: int = 0
    commits_scanned: int = 0
    error: str = ""
    started_at: float = field(default_factory=time.time)
    finished_at: float | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
