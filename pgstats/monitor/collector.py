"""Sample one statistics domain and print per-interval deltas."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from pgstats.catalog.base import STATEMENTS_AVAILABLE_QUERY
from pgstats.catalog.monitor import CONSOLE_COMMANDS, MONITOR_TEMPLATES
from pgstats.connection import fetch, run_query
from pgstats.errors import ConfigError
from pgstats.models import Domain
from pgstats.monitor.delta import DeltaEngine
from pgstats.monitor.display import format_row, header_lines, pretty_sizes
from pgstats.monitor.records import CounterRecord, record_for
from pgstats.monitor.sampler import Sampler, SamplerOptions
from pgstats.signals import SignalFlags
from pgstats.version import ServerVersion, fetch_version

logger = logging.getLogger(__name__)


@dataclass
class StatOptions:
    domain: Domain = Domain.BGWRITER
    filter: str | None = None
    human_readable: bool = False


class StatCollector:
    """Context of one monitor run: connection, version, query and deltas."""

    def __init__(self, conn, options: StatOptions, version: ServerVersion | None = None):
        self.conn = conn
        self.options = options
        self.version = version
        self.record_cls: type[CounterRecord] = record_for(options.domain)
        self.engine = DeltaEngine(self.record_cls)
        self.console = CONSOLE_COMMANDS.get(options.domain)
        self.template = MONITOR_TEMPLATES.get(options.domain)

        if self.console is not None:
            self.sql, self.params = self.console.render()
        else:
            if version is None:
                raise ConfigError(f"a server version is needed for {options.domain.value}")
            self.sql, self.params = self.template.render(version, options.filter)
        logger.debug("monitor query: %s", self.sql)

    def header(self) -> list[str]:
        return header_lines(self.record_cls)

    def read(self) -> list[CounterRecord]:
        columns, rows = fetch(self.conn, self.sql, self.params)
        if self.console is not None:
            return [self.record_cls.from_named_rows(columns, rows)]
        if self.record_cls.multirow:
            return [self.record_cls.from_row(row) for row in rows]
        # an aggregate over no rows still yields one row of NULLs
        return [self.record_cls.from_row(rows[0] if rows else ())]

    def sample(self) -> list[str]:
        lines: list[str] = []

        def emit(row: dict) -> None:
            pretty = None
            if self.options.human_readable:
                pretty = pretty_sizes(self.conn, self.record_cls, row)
            lines.append(format_row(self.record_cls, row, pretty))

        for record in self.read():
            self.engine.advance(record, emit)
        return lines


def check_available(conn, domain: Domain, version: ServerVersion) -> None:
    """Refuse domains the server cannot provide before the loop starts."""
    template = MONITOR_TEMPLATES[domain]
    template.require(version)
    if domain is Domain.STATEMENT and not run_query(conn, STATEMENTS_AVAILABLE_QUERY):
        raise ConfigError("pg_stat_statements is not installed in this database.")


def run_monitor(
    conn,
    options: StatOptions,
    sampler_options: SamplerOptions,
    flags: SignalFlags,
) -> None:
    """Run the monitor until ``count`` lines were printed or SIGINT arrives."""
    version = None
    if options.domain not in CONSOLE_COMMANDS:
        version = fetch_version(conn)
        check_available(conn, options.domain, version)

    collector = StatCollector(conn, options, version)
    Sampler(collector, sampler_options, flags).run()
