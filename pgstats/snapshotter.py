"""Dump every statistics view into its CSV file, one run per invocation."""

from __future__ import annotations

import logging
import os
import sys

from pgstats.catalog.base import STATEMENTS_AVAILABLE_QUERY, Template
from pgstats.catalog.snapshot import (
    NEEDS_STATEMENTS_EXTENSION,
    NEEDS_SUPERUSER,
    SNAPSHOT_TEMPLATES,
    SUPERUSER_QUERY,
)
from pgstats.connection import fetch, run_query
from pgstats.errors import ConfigError, SinkError
from pgstats.sink import CsvSink
from pgstats.version import ServerVersion, fetch_version

logger = logging.getLogger(__name__)


def is_superuser(conn) -> bool:
    rows = run_query(conn, SUPERUSER_QUERY)
    return bool(rows and rows[0][0])


def has_pg_stat_statements(conn) -> bool:
    return bool(run_query(conn, STATEMENTS_AVAILABLE_QUERY))


def plan(
    version: ServerVersion,
    superuser: bool,
    statements: bool,
    templates: tuple[Template, ...] = SNAPSHOT_TEMPLATES,
) -> list[Template]:
    """Templates to dump for this server, in order."""
    selected = []
    for template in templates:
        if not template.supported(version):
            logger.info("Skipping %s: needs at least %d.%d", template.name, *template.since)
            continue
        if template.domain in NEEDS_SUPERUSER and not superuser:
            logger.info("Skipping %s: needs a superuser", template.name)
            continue
        if template.domain in NEEDS_STATEMENTS_EXTENSION and not statements:
            logger.info("Skipping %s: pg_stat_statements is not installed", template.name)
            continue
        selected.append(template)
    return selected


def dump(conn, template: Template, version: ServerVersion, sink: CsvSink) -> int:
    """Append the current content of one view to its file."""
    try:
        handle, write_header = sink.open(template.name)
    except OSError as e:
        raise SinkError(f"could not open file {sink.path_for(template.name)}: {e.strerror}") from e

    with handle:
        sql, params = template.render(version)
        columns, rows = fetch(conn, sql, params)
        try:
            count = sink.write(handle, write_header, columns, rows)
        except OSError as e:
            raise SinkError(f"could not write file {handle.name}: {e.strerror}") from e
    logger.debug("%s: %d row(s)", template.name, count)
    return count


def run_snapshot(conn, directory: str = "./", quiet: bool = False) -> list[str]:
    """Take one snapshot of the cluster. Returns the names of the files written."""
    if not os.path.isdir(directory):
        raise ConfigError(f"directory {directory} does not exist")

    version = fetch_version(conn)
    if not quiet:
        print(f"Detected release: {version}", file=sys.stdout)

    superuser = is_superuser(conn)
    statements = has_pg_stat_statements(conn)
    sink = CsvSink(directory, quiet=quiet)

    written = []
    for template in plan(version, superuser, statements):
        dump(conn, template, version, sink)
        written.append(template.name)
    return written
