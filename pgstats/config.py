"""Configuration loading and management for pgstats."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from pgstats.errors import ConfigError

CONFIG_FILENAME = "pgstats.yaml"
DEFAULT_DBNAME = "postgres"


@dataclass
class ConnectionConfig:
    host: str | None = None
    port: int | None = None
    user: str | None = None
    dbname: str | None = None


@dataclass
class CsvStatConfig:
    directory: str = "./"
    quiet: bool = False


@dataclass
class StatConfig:
    stat: str = "bgwriter"
    interval: int = 1
    count: int | None = None
    human_readable: bool = False
    no_redisplay_header: bool = False


@dataclass
class WaitEventConfig:
    interval: float = 1.0
    include_leader_workers: bool = False


@dataclass
class FsmConfig:
    groups: int = 20


@dataclass
class ReportConfig:
    """Section titles listed in ``exclude`` are left out of the report."""

    exclude: list[str] = field(default_factory=list)


@dataclass
class Config:
    """Complete configuration for pgstats."""

    connection: ConnectionConfig = field(default_factory=ConnectionConfig)
    csvstat: CsvStatConfig = field(default_factory=CsvStatConfig)
    stat: StatConfig = field(default_factory=StatConfig)
    waitevent: WaitEventConfig = field(default_factory=WaitEventConfig)
    fsm: FsmConfig = field(default_factory=FsmConfig)
    report: ReportConfig = field(default_factory=ReportConfig)


def find_config_file() -> str | None:
    """Search for pgstats.yaml in cwd, then home dir.

    Returns:
        Path to config file if found, None otherwise.
    """
    cwd_config = Path.cwd() / CONFIG_FILENAME
    if cwd_config.is_file():
        return str(cwd_config)

    home_config = Path.home() / CONFIG_FILENAME
    if home_config.is_file():
        return str(home_config)

    return None


def load_config(config_path: str | None = None, auto_discover: bool = True) -> Config:
    """Load configuration from YAML file.

    Args:
        config_path: Explicit path to config file. If None and auto_discover is True,
                     searches default locations.
        auto_discover: If True and config_path is None, search for config file.

    Returns:
        Config object. Returns default config if no file found.
    """
    if config_path is None and auto_discover:
        config_path = find_config_file()

    if config_path is None:
        return Config()

    if not os.path.isfile(config_path):
        raise ConfigError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid config file {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Invalid config file {config_path}: expected a mapping")
    return _parse_config(data)


def _section(data: dict, name: str) -> dict:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping")
    return section


def _parse_config(data: dict) -> Config:
    """Parse YAML data into Config object."""
    config = Config()

    conn = _section(data, "connection")
    config.connection = ConnectionConfig(
        host=conn.get("host"),
        port=conn.get("port"),
        user=conn.get("user"),
        dbname=conn.get("dbname"),
    )

    csvstat = _section(data, "csvstat")
    config.csvstat = CsvStatConfig(
        directory=csvstat.get("directory", "./"),
        quiet=bool(csvstat.get("quiet", False)),
    )

    stat = _section(data, "stat")
    config.stat = StatConfig(
        stat=stat.get("stat", "bgwriter"),
        interval=stat.get("interval", 1),
        count=stat.get("count"),
        human_readable=bool(stat.get("human_readable", False)),
        no_redisplay_header=bool(stat.get("no_redisplay_header", False)),
    )

    waitevent = _section(data, "waitevent")
    config.waitevent = WaitEventConfig(
        interval=float(waitevent.get("interval", 1.0)),
        include_leader_workers=bool(waitevent.get("include_leader_workers", False)),
    )

    fsm = _section(data, "fsm")
    config.fsm = FsmConfig(groups=fsm.get("groups", 20))

    report = _section(data, "report")
    exclude = report.get("exclude") or []
    if isinstance(exclude, str):
        exclude = [exclude]
    config.report = ReportConfig(exclude=list(exclude))

    return config


def pick(cli_value, config_value):
    """Command line wins over the config file when it was given."""
    return config_value if cli_value is None else cli_value


def merge_connection(
    config: Config,
    host: str | None = None,
    port: int | None = None,
    user: str | None = None,
    dbname: str | None = None,
) -> ConnectionConfig:
    """Resolve connection settings: CLI > config file > PGDATABASE > default.

    Host, port and user left unset fall through to libpq, which reads the
    standard PG* variables itself.
    """
    resolved_dbname = pick(dbname, config.connection.dbname)
    if resolved_dbname is None:
        resolved_dbname = os.environ.get("PGDATABASE") or DEFAULT_DBNAME
    return ConnectionConfig(
        host=pick(host, config.connection.host),
        port=pick(port, config.connection.port),
        user=pick(user, config.connection.user),
        dbname=resolved_dbname,
    )
