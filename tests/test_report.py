"""Tests for the report catalog, the script renderer and the live report."""

from __future__ import annotations

import io

import pytest

from conftest import FakeDbError, Result
from pgstats.catalog.report import (
    REPORT_SECTIONS,
    TEARDOWN,
    Kind,
    plan_sections,
)
from pgstats.errors import ConfigError, Interrupted, QueryFailed
from pgstats.reporters.report_renderer import LiveReport, render_script, render_table
from pgstats.version import ServerVersion

EXTENSION_STATES = "pg_available_extensions"


def _titles(version, exclude=()):
    return [section.title for section in plan_sections(version, exclude)]


class TestPlanSections:
    def test_titles_are_unique(self):
        titles = [section.title for section in REPORT_SECTIONS]
        assert len(titles) == len(set(titles))

    def test_starts_with_version(self):
        first = REPORT_SECTIONS[0]
        assert first.kind is Kind.HEADING
        assert first.title == "PostgreSQL Version"

    def test_new_views_gated(self):
        old = _titles(ServerVersion(9, 4))
        assert "pg_file_settings" not in old
        assert "Publications" not in old
        new = _titles(ServerVersion(10, 0))
        assert "pg_file_settings" in new
        assert "pg_hba_file_rules" in new
        assert "Subscriptions" in new

    def test_variants_follow_release(self):
        roles = next(s for s in REPORT_SECTIONS if s.title == "Roles")
        assert "rolbypassrls" in roles.sql(ServerVersion(9, 5))
        assert "rolbypassrls" not in roles.sql(ServerVersion(9, 4))
        routines = next(s for s in REPORT_SECTIONS if s.title == "Routines per schema")
        assert "prokind" in routines.sql(ServerVersion(11, 0))
        assert "prokind" not in routines.sql(ServerVersion(10, 0))

    def test_exclude(self):
        titles = _titles(ServerVersion(16), exclude=["User passwords", "Hit ratio"])
        assert "User passwords" not in titles
        assert "Hit ratio" not in titles
        assert "Roles" in titles


class TestRenderScript:
    def test_banner(self):
        lines = render_script(ServerVersion(9, 6)).splitlines()
        assert lines[0] == "\\echo " + "=" * 81
        assert lines[1].startswith("\\echo == pgreport SQL script for a 9.6 release ==")
        assert len(lines[1]) == len(lines[0])

    def test_setup_before_sections(self):
        lines = render_script(ServerVersion(16)).splitlines()
        schema = lines.index("CREATE SCHEMA pgreport;")
        path = lines.index("SET search_path TO pgreport, public;")
        extension = lines.index("CREATE EXTENSION IF NOT EXISTS pg_buffercache SCHEMA pgreport;")
        first_section = lines.index("\\echo # PostgreSQL Version")
        assert schema < path < extension < first_section

    def test_teardown_last(self):
        assert render_script(ServerVersion(16)).splitlines()[-1] == f"{TEARDOWN};"

    def test_sections_in_order(self):
        script = render_script(ServerVersion(16))
        positions = [script.index(f"\\echo {title}\n") for title in
                     ("Databases", "Tablespaces", "Roles", "Schemas", "Replication slots")]
        assert positions == sorted(positions)

    def test_each_query_follows_its_title(self):
        lines = render_script(ServerVersion(16)).splitlines()
        i = lines.index("\\echo PostgreSQL version")
        assert lines[i + 1] == "SELECT version();"

    def test_version_specific_content(self):
        assert "pg_hba_file_rules" not in render_script(ServerVersion(9, 6))
        assert "\\echo pg_hba_file_rules" in render_script(ServerVersion(10, 0))

    def test_database_name_in_heading(self):
        script = render_script(ServerVersion(16), dbname="appdb")
        assert "\\echo # Local objects in database appdb" in script

    def test_exclude(self):
        script = render_script(ServerVersion(16), exclude=["User passwords"])
        assert "pg_shadow" not in script

    def test_percent_signs_untouched(self):
        assert "NOT LIKE 'pg_%'" in render_script(ServerVersion(16))


class TestRenderTable:
    def test_title_above_table(self):
        text = render_table("Schemas", ["Name", "Owner"], [("public", "postgres")])
        lines = text.splitlines()
        assert lines[0].strip() == "Schemas"
        assert "public" in text
        assert lines[1].startswith("+")

    def test_nulls_are_blank(self):
        text = render_table("t", ["a"], [(None,)])
        assert "None" not in text

    def test_empty_result(self):
        assert render_table("Empty", [], []).splitlines()[0].strip() == "Empty"


class TestLiveReport:
    def _report(self, conn, **kwargs):
        out = io.StringIO()
        return LiveReport(conn, out=out, **kwargs), out

    def test_prints_values_and_tables(self, pg16_conn):
        pg16_conn.on(EXTENSION_STATES, Result(["?column?"], [(True,)]))
        pg16_conn.on("pg_postmaster_start_time", Result(["t"], [("2024-05-01 08:00:00+00",)]))
        report, out = self._report(pg16_conn, dbname="appdb")
        report.run()
        text = out.getvalue()
        assert "# PostgreSQL Version" in text
        assert "PostgreSQL version: PostgreSQL 16.2" in text
        assert "PostgreSQL start time: 2024-05-01 08:00:00+00" in text
        assert "# Local objects in database appdb" in text
        assert pg16_conn.statements[-1] == TEARDOWN

    def test_setup_order(self, pg16_conn):
        pg16_conn.on(EXTENSION_STATES, Result(["?column?"], [(True,)]))
        report, _ = self._report(pg16_conn)
        report.run()
        statements = pg16_conn.statements
        assert statements[1] == "CREATE SCHEMA pgreport"
        assert statements[2] == "SET search_path TO pgreport, public"
        assert any(s.startswith("CREATE FUNCTION get_value") for s in statements)

    def test_installs_missing_extension(self, pg16_conn):
        pg16_conn.on(EXTENSION_STATES, Result(["?column?"], [(False,)]))
        report, _ = self._report(pg16_conn)
        report.run()
        assert pg16_conn.ran("CREATE EXTENSION pg_buffercache SCHEMA pgreport")
        assert report.available == {"pg_buffercache", "pg_visibility"}

    def test_skips_sections_of_unavailable_extension(self, pg16_conn):
        pg16_conn.on(
            EXTENSION_STATES,
            Result(["?column?"], [(True,)]),
            Result(["?column?"], []),
        )
        report, out = self._report(pg16_conn)
        report.run()
        text = out.getvalue()
        assert "Tables needing autoVACUUMs: skipped, extension pg_visibility is not available" in text
        assert not pg16_conn.ran("pg_visibility_map")
        assert pg16_conn.ran("FROM pg_buffercache")

    def test_teardown_after_failure(self, pg16_conn):
        pg16_conn.on(EXTENSION_STATES, Result(["?column?"], [(True,)]))
        pg16_conn.on("FROM pg_settings GROUP BY", FakeDbError("permission denied", "42501"))
        report, _ = self._report(pg16_conn)
        with pytest.raises(QueryFailed):
            report.run()
        assert pg16_conn.statements[-1] == TEARDOWN

    def test_teardown_on_interrupt(self, pg16_conn, flags):
        pg16_conn.on(EXTENSION_STATES, Result(["?column?"], [(True,)]))
        flags.shutdown = True
        report, out = self._report(pg16_conn, flags=flags)
        with pytest.raises(Interrupted):
            report.run()
        assert out.getvalue() == ""
        assert pg16_conn.statements[-1] == TEARDOWN

    def test_existing_schema_is_left_alone(self, pg16_conn):
        pg16_conn.on("CREATE SCHEMA pgreport", FakeDbError('schema "pgreport" already exists', "42P06"))
        report, _ = self._report(pg16_conn)
        with pytest.raises(ConfigError, match="already exists"):
            report.run()
        assert not pg16_conn.ran("DROP SCHEMA")
        assert pg16_conn.statements == ["SELECT version()", "CREATE SCHEMA pgreport"]

    def test_failed_schema_creation_drops_nothing(self, pg16_conn):
        pg16_conn.on("CREATE SCHEMA pgreport", FakeDbError("permission denied for database", "42501"))
        report, _ = self._report(pg16_conn)
        with pytest.raises(QueryFailed):
            report.run()
        assert not pg16_conn.ran("DROP SCHEMA")
