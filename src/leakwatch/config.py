"""Global configuration - YAML file, env vars, XDG defaults."""

from __future__ import annotations

import glob
import os
from dataclasses import dataclass, field, replace
from pathlib import Path

import yaml

from leakwatch.errors import ConfigError


def _default_data_dir() -> Path:
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return Path(xdg) / "leakwatch"
    return Path.home() / ".local" / "share" / "leakwatch"


def _default_config_dir() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "leakwatch"
    return Path.home() / ".config" / "leakwatch"


def default_config_path() -> Path:
    return _default_config_dir() / "config.yaml"


@dataclass(frozen=True)
class CommonConfig:
    """Settings shared by the scanner, the scheduler and the router."""

    state_db: Path = field(default_factory=lambda: _default_data_dir() / "state.db")
    leaks_file: Path | None = None
    history_limit_days: int = 365
    scan_interval: float = 600.0
    queue_size: int = 1000
    drain_timeout: float = 5.0


@dataclass(frozen=True)
class SMTPConfig:
    """Mail transport used by the email sender."""

    enabled: bool = False
    host: str = "localhost"
    port: int = 25
    username: str = ""
    password: str = ""
    tls: bool = False
    from_addr: str = "leakwatch@localhost"
    recipient: str = ""


@dataclass(frozen=True)
class RepoTarget:
    """A local clone to inspect, and the URL used when reporting leaks from it."""

    path: Path
    url: str = ""


@dataclass(frozen=True)
class PatternConfig:
    """A named pair of regexes; either side may be empty (matches anything)."""

    name: str
    file: str = ""
    content: str = ""


@dataclass(frozen=True)
class LeakWatchConfig:
    """Application-wide configuration."""

    common: CommonConfig = field(default_factory=CommonConfig)
    smtp: SMTPConfig = field(default_factory=SMTPConfig)
    inspect: tuple[RepoTarget, ...] = ()
    patterns: tuple[PatternConfig, ...] = ()
    filters: tuple[PatternConfig, ...] = ()

    @classmethod
    def load(cls, path: str | Path | None = None) -> LeakWatchConfig:
        """Load config from a YAML file, then apply environment overrides.

        A missing file at the default location yields the defaults; a missing
        file that was asked for explicitly is an error.
        """
        if path is None:
            path = default_config_path()
            if not path.is_file():
                return _apply_env(cls())
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e
        return _apply_env(load_config_from_string(text))


def load_config_from_string(text: str) -> LeakWatchConfig:
    """Parse a YAML string into a LeakWatchConfig."""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid config YAML: {e}") from e
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError("Config YAML must be a mapping")

    return LeakWatchConfig(
        common=_parse_common(_section(data, "common")),
        smtp=_parse_smtp(_section(data, "smtp")),
        inspect=tuple(_parse_inspect(data.get("inspect") or [])),
        patterns=tuple(_parse_patterns(data.get("patterns") or [], "patterns")),
        filters=tuple(_parse_patterns(data.get("filters") or [], "filters")),
    )


def _section(data: dict, name: str) -> dict:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"'{name}' must be a mapping")
    return section


def _parse_common(data: dict) -> CommonConfig:
    defaults = CommonConfig()
    state_db = data.get("state_db")
    leaks_file = data.get("leaks_file")
    try:
        common = CommonConfig(
            state_db=_expand(state_db) if state_db else defaults.state_db,
            leaks_file=_expand(leaks_file) if leaks_file else None,
            history_limit_days=int(
                data.get("history_limit_days", defaults.history_limit_days)
            ),
            scan_interval=float(data.get("scan_interval", defaults.scan_interval)),
            queue_size=int(data.get("queue_size", defaults.queue_size)),
            drain_timeout=float(data.get("drain_timeout", defaults.drain_timeout)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value in 'common': {e}") from e

    if common.history_limit_days < 0:
        raise ConfigError("common.history_limit_days must not be negative")
    if common.queue_size < 1:
        raise ConfigError("common.queue_size must be at least 1")
    return common


def _parse_smtp(data: dict) -> SMTPConfig:
    try:
        return SMTPConfig(
            enabled=bool(data.get("enabled", False)),
            host=str(data.get("host", "localhost")),
            port=int(data.get("port", 25)),
            username=str(data.get("username", "")),
            password=str(data.get("password", "")),
            tls=bool(data.get("tls", False)),
            from_addr=str(data.get("from", "leakwatch@localhost")),
            recipient=str(data.get("recipient", "")),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value in 'smtp': {e}") from e


def _parse_inspect(items: list) -> list[RepoTarget]:
    if not isinstance(items, list):
        raise ConfigError("'inspect' must be a list")

    targets: list[RepoTarget] = []
    for item in items:
        if not isinstance(item, dict):
            raise ConfigError(f"Invalid inspect entry: {item!r}")
        if "path" in item:
            targets.append(
                RepoTarget(path=_expand(item["path"]), url=str(item.get("url", "")))
            )
        elif "glob" in item:
            # Every matching directory becomes a target; URL = prefix + dir name
            prefix = str(item.get("url_prefix", ""))
            for match in sorted(glob.glob(os.path.expanduser(str(item["glob"])))):
                path = Path(match)
                if path.is_dir():
                    url = f"{prefix}{path.name}" if prefix else ""
                    targets.append(RepoTarget(path=path, url=url))
        else:
            raise ConfigError(f"Inspect entry needs 'path' or 'glob': {item!r}")
    return targets


def _parse_patterns(items: list, section: str) -> list[PatternConfig]:
    if not isinstance(items, list):
        raise ConfigError(f"'{section}' must be a list")

    patterns: list[PatternConfig] = []
    for item in items:
        if not isinstance(item, dict) or "name" not in item:
            raise ConfigError(f"Every entry in '{section}' needs a name: {item!r}")
        file_re = str(item.get("file") or "")
        content_re = str(item.get("content") or "")
        if not file_re and not content_re:
            raise ConfigError(
                f"{section} entry '{item['name']}' needs 'file' or 'content'"
            )
        patterns.append(
            PatternConfig(name=str(item["name"]), file=file_re, content=content_re)
        )
    return patterns


def _expand(value: str | Path) -> Path:
    return Path(os.path.expanduser(str(value)))


def _apply_env(config: LeakWatchConfig) -> LeakWatchConfig:
    common = config.common
    smtp = config.smtp

    env_interval = os.environ.get("LEAKWATCH_SCAN_INTERVAL")
    if env_interval:
        try:
            common = replace(common, scan_interval=float(env_interval))
        except ValueError as e:
            raise ConfigError(f"Invalid LEAKWATCH_SCAN_INTERVAL: {e}") from e

    env_db = os.environ.get("LEAKWATCH_STATE_DB")
    if env_db:
        common = replace(common, state_db=_expand(env_db))

    env_password = os.environ.get("LEAKWATCH_SMTP_PASSWORD")
    if env_password:
        smtp = replace(smtp, password=env_password)

    return replace(config, common=common, smtp=smtp)
