"""LeakWatch - incremental secret-leak scanning for git repositories."""

__version__ = "0.1.0"
