"""Detection data models - leak records produced from diffs."""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class Leak:
    """A secret-looking string found in a commit's added lines."""

    pattern_name: str
    regexp: str
    file_path: str
    repo_path: str
    repo_url: str
    leak_string: str
    commit_hash: str
    commit_author: str
    commit_email: str
    timestamp: datetime
    line: int = 0
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data
