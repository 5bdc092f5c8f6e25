"""Render the cluster report, either live or as a psql script."""

from __future__ import annotations

import logging
import sys
from typing import TextIO

from tabulate import tabulate

from pgstats.catalog.report import (
    CREATE_SCHEMA,
    EXTENSION_STATE_QUERY,
    EXTENSIONS,
    HELPER_OBJECTS,
    LOCAL_OBJECTS_HEADING,
    SCHEMA,
    SET_SEARCHPATH,
    TEARDOWN,
    Kind,
    Section,
    create_extension,
    plan_sections,
)
from pgstats.connection import execute, fetch, run_query
from pgstats.errors import ConfigError, Interrupted, PgStatsError, QueryFailed
from pgstats.signals import SignalFlags
from pgstats.version import ServerVersion, fetch_version

logger = logging.getLogger(__name__)

BANNER_WIDTH = 81
DUPLICATE_SCHEMA = "42P06"


def _heading_text(section: Section, dbname: str) -> str:
    if section.title == LOCAL_OBJECTS_HEADING:
        return section.title.format(dbname=dbname)
    return section.title


def render_script(
    version: ServerVersion,
    dbname: str = "",
    exclude: tuple[str, ...] | list[str] = (),
) -> str:
    """Return a psql script producing the report on a ``version`` server."""
    title = f"== pgreport SQL script for a {version} release "
    lines = [
        "\\echo " + "=" * BANNER_WIDTH,
        "\\echo " + title.ljust(BANNER_WIDTH, "="),
        "\\echo " + "=" * BANNER_WIDTH,
        "SET application_name to 'pgreport';",
        f"{CREATE_SCHEMA};",
        f"{SET_SEARCHPATH};",
    ]
    lines.extend(f"{create_extension(name, if_not_exists=True)};" for name in EXTENSIONS)
    lines.extend(f"{statement};" for statement in HELPER_OBJECTS)

    for section in plan_sections(version, exclude):
        if section.kind is Kind.HEADING:
            lines.append(f"\\echo # {_heading_text(section, dbname)}")
            lines.append("")
            continue
        lines.append(f"\\echo {section.title}")
        lines.append(f"{section.sql(version)};")

    lines.append(f"{TEARDOWN};")
    return "\n".join(lines) + "\n"


def render_table(title: str, columns: list[str], rows: list[tuple]) -> str:
    """A psql-like table with its title centered above it."""
    body = tabulate(rows, headers=columns, tablefmt="psql", missingval="")
    width = max((len(line) for line in body.splitlines()), default=len(title))
    return f"{title.center(width).rstrip()}\n{body}\n"


class LiveReport:
    """Builds the helper objects, prints every section, drops the schema.

    The connection must not be read-only.
    """

    def __init__(
        self,
        conn,
        dbname: str = "",
        exclude: tuple[str, ...] | list[str] = (),
        flags: SignalFlags | None = None,
        out: TextIO | None = None,
    ):
        self.conn = conn
        self.dbname = dbname
        self.exclude = exclude
        self.flags = flags
        self.out = out or sys.stdout
        self.available: set[str] = set()
        # set once CREATE SCHEMA succeeded; a pre-existing schema is never dropped
        self.owns_schema = False

    def _print(self, text: str = "") -> None:
        print(text, file=self.out)

    def install_extension(self, name: str) -> bool:
        """Make sure ``name`` is installed. False when the server lacks it."""
        rows = run_query(self.conn, EXTENSION_STATE_QUERY, {"name": name})
        if not rows:
            logger.info("extension %s is not available on this server", name)
            return False
        if not rows[0][0]:
            execute(self.conn, create_extension(name))
            logger.info("extension %s installed", name)
        return True

    def setup(self) -> None:
        try:
            execute(self.conn, CREATE_SCHEMA)
        except QueryFailed as e:
            if e.pgcode == DUPLICATE_SCHEMA:
                raise ConfigError(
                    f"schema {SCHEMA} already exists; drop it or run pgreport in another database"
                ) from e
            raise
        self.owns_schema = True
        execute(self.conn, SET_SEARCHPATH)
        for name in EXTENSIONS:
            if self.install_extension(name):
                self.available.add(name)
        for statement in HELPER_OBJECTS:
            execute(self.conn, statement)

    def teardown(self) -> None:
        if not self.owns_schema:
            return
        execute(self.conn, TEARDOWN)
        self.owns_schema = False

    def print_section(self, section: Section, version: ServerVersion) -> None:
        if section.kind is Kind.HEADING:
            self._print(f"# {_heading_text(section, self.dbname)}")
            self._print()
            return
        if section.extension and section.extension not in self.available:
            self._print(f"{section.title}: skipped, extension {section.extension} is not available")
            self._print()
            return
        columns, rows = fetch(self.conn, section.sql(version))
        if section.kind is Kind.VALUE:
            value = rows[0][0] if rows else ""
            self._print(f"{section.title}: {value}")
            self._print()
            return
        self._print(render_table(section.title, columns, rows))

    def run(self) -> None:
        version = fetch_version(self.conn)
        try:
            self.setup()
            for section in plan_sections(version, self.exclude):
                if self.flags is not None and self.flags.shutdown:
                    raise Interrupted("interrupted")
                self.print_section(section, version)
        except BaseException:
            self._drop_after_failure()
            raise
        self.teardown()

    def _drop_after_failure(self) -> None:
        if self.conn.closed:
            return
        try:
            self.teardown()
        except PgStatsError as e:
            logger.warning("could not drop schema after failure: %s", e)


def run_report(
    conn,
    dbname: str = "",
    exclude: tuple[str, ...] | list[str] = (),
    flags: SignalFlags | None = None,
) -> None:
    """Run the report against the connected server."""
    LiveReport(conn, dbname, exclude, flags).run()
