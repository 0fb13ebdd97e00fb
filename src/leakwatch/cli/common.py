"""Helpers shared by CLI commands."""

from __future__ import annotations

import click

from leakwatch.config import LeakWatchConfig
from leakwatch.errors import ConfigError


def load_config(ctx: click.Context) -> LeakWatchConfig:
    """Load the config named on the command line, or the default one."""
    try:
        return LeakWatchConfig.load(ctx.obj.get("config_path"))
    except ConfigError as e:
        raise click.ClickException(str(e)) from e


def shorten_hash(commit_hash: str) -> str:
    return commit_hash[:10]
