"""File sender - appends each leak as one JSON line."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TextIO

from leakwatch.detector.models import Leak
from leakwatch.errors import SenderError

logger = logging.getLogger(__name__)


class FileSender:
    """Append-only JSON-lines log of leaks."""

    def __init__(self, leaks_file: str | Path) -> None:
        self._path = Path(leaks_file)
        self._fh: TextIO | None = None

    @property
    def path(self) -> Path:
        return self._path

    def start(self) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = self._path.open("a", encoding="utf-8")
        except OSError as e:
            raise SenderError(f"Cannot open leaks file {self._path}: {e}") from e
        logger.info("Writing leaks to %s", self._path)

    def send(self, leak: Leak) -> None:
        if self._fh is None:
            logger.warning("File sender not started, dropping leak %s", leak.id)
            return
        try:
            self._fh.write(json.dumps(leak.to_dict(), ensure_ascii=False) + "\n")
            self._fh.flush()
        except OSError as e:
            logger.error("Cannot write leak %s to %s: %s", leak.id, self._path, e)

    def stop(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None
