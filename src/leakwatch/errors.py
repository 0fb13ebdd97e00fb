"""Exception hierarchy shared across LeakWatch."""

from __future__ import annotations


class LeakWatchError(Exception):
    """Base class for all LeakWatch errors."""


class ConfigError(LeakWatchError):
    """Configuration file is missing, malformed, or inconsistent."""


class RepoError(LeakWatchError):
    """A repository cannot be opened, or its refs or revisions cannot be listed."""


class GitCommandError(LeakWatchError):
    """A git subprocess exited with a non-zero status."""

    def __init__(self, args: list[str], returncode: int, stderr: str = "") -> None:
        self.command = args
        self.returncode = returncode
        self.stderr = stderr.strip()
        super().__init__(
            f"git {' '.join(args)} failed with exit code {returncode}"
            + (f": {self.stderr}" if self.stderr else "")
        )


class SenderError(LeakWatchError):
    """A delivery backend could not be started or stopped."""
