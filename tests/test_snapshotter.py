"""Tests for the CSV sink and the snapshotter."""

from __future__ import annotations

from datetime import datetime

import pytest

from conftest import FakeDbError, Result
from pgstats.catalog import snapshot
from pgstats.errors import ConfigError, QueryFailed, SinkError
from pgstats.sink import CsvSink, format_value
from pgstats.snapshotter import dump, plan, run_snapshot
from pgstats.version import ServerVersion

ROW = Result(["date_trunc", "value"], [(datetime(2024, 5, 1, 12, 0, 0), 7)])


def _script_cluster(conn, superuser=True, statements=True):
    conn.on("rolsuper", Result(["rolsuper"], [(superuser,)]))
    conn.on("proname = 'pg_stat_statements'", Result(["?column?"], [(1,)] if statements else []))
    conn.on("date_trunc", ROW)
    return conn


class TestFormatValue:
    def test_null_is_empty(self):
        assert format_value(None) == ""

    def test_booleans(self):
        assert format_value(True) == "t"
        assert format_value(False) == "f"

    def test_timestamp(self):
        assert format_value(datetime(2024, 5, 1, 12, 0, 0)) == "2024-05-01 12:00:00"

    def test_numbers(self):
        assert format_value(3) == "3"
        assert format_value(1.5) == "1.5"


class TestCsvSink:
    def test_header_on_empty_file(self, tmp_path):
        sink = CsvSink(str(tmp_path))
        handle, write_header = sink.open("pg_stat_archiver")
        with handle:
            sink.write(handle, write_header, ["a", "b"], [(1, None)])
        assert (tmp_path / "pg_stat_archiver.csv").read_text() == "a;b\n1;\n"

    def test_no_header_on_existing_file(self, tmp_path):
        (tmp_path / "x.csv").write_text("a;b\n1;2\n")
        sink = CsvSink(str(tmp_path))
        handle, write_header = sink.open("x")
        handle.close()
        assert not write_header

    def test_quiet_never_writes_header(self, tmp_path):
        sink = CsvSink(str(tmp_path), quiet=True)
        handle, write_header = sink.open("x")
        handle.close()
        assert not write_header

    def test_values_are_not_quoted(self, tmp_path):
        sink = CsvSink(str(tmp_path))
        handle, _ = sink.open("x")
        with handle:
            sink.write(handle, False, ["q"], [("select 1",)])
        assert (tmp_path / "x.csv").read_text() == "select 1\n"


class TestPlan:
    def test_everything_for_superuser(self):
        names = [t.name for t in plan(ServerVersion(16), True, True)]
        assert "pg_xlog_stat" in names
        assert "pg_stat_statements" in names

    def test_xlog_needs_superuser(self):
        names = [t.name for t in plan(ServerVersion(16), False, True)]
        assert "pg_xlog_stat" not in names

    def test_statements_need_extension(self):
        names = [t.name for t in plan(ServerVersion(16), True, False)]
        assert "pg_stat_statements" not in names

    def test_old_release_skips_new_views(self):
        names = [t.name for t in plan(ServerVersion(9, 0), True, True)]
        assert "pg_stat_archiver" not in names
        assert "pg_stat_activity" in names

    def test_order_is_kept(self):
        selected = plan(ServerVersion(16), True, True)
        order = [t.name for t in snapshot.SNAPSHOT_TEMPLATES]
        positions = [order.index(t.name) for t in selected]
        assert positions == sorted(positions)


class TestDump:
    def test_file_opened_before_query(self, fake_conn, tmp_path):
        sink = CsvSink(str(tmp_path / "missing"))
        with pytest.raises(SinkError, match="could not open file"):
            dump(fake_conn, snapshot.ARCHIVER, ServerVersion(16), sink)
        assert fake_conn.executed == []

    def test_query_failure_keeps_sql(self, fake_conn, tmp_path):
        fake_conn.on("pg_stat_archiver", FakeDbError("permission denied", "42501"))
        sink = CsvSink(str(tmp_path))
        with pytest.raises(QueryFailed) as excinfo:
            dump(fake_conn, snapshot.ARCHIVER, ServerVersion(16), sink)
        assert "pg_stat_archiver" in excinfo.value.sql
        assert excinfo.value.pgcode == "42501"

    def test_appends_rows(self, fake_conn, tmp_path):
        fake_conn.on("pg_stat_archiver", ROW)
        sink = CsvSink(str(tmp_path))
        dump(fake_conn, snapshot.ARCHIVER, ServerVersion(16), sink)
        dump(fake_conn, snapshot.ARCHIVER, ServerVersion(16), sink)
        lines = (tmp_path / "pg_stat_archiver.csv").read_text().splitlines()
        assert lines == ["date_trunc;value", "2024-05-01 12:00:00;7", "2024-05-01 12:00:00;7"]


class TestRunSnapshot:
    def test_missing_directory(self, pg16_conn, tmp_path):
        with pytest.raises(ConfigError, match="does not exist"):
            run_snapshot(pg16_conn, str(tmp_path / "nope"))
        assert pg16_conn.executed == []

    def test_writes_one_file_per_view(self, pg16_conn, tmp_path, capsys):
        _script_cluster(pg16_conn)
        written = run_snapshot(pg16_conn, str(tmp_path))
        assert capsys.readouterr().out == "Detected release: 16.2\n"
        assert sorted(p.name for p in tmp_path.iterdir()) == sorted(f"{n}.csv" for n in written)
        assert written[0] == "pg_stat_activity"

    def test_quiet(self, pg16_conn, tmp_path, capsys):
        _script_cluster(pg16_conn)
        run_snapshot(pg16_conn, str(tmp_path), quiet=True)
        assert capsys.readouterr().out == ""
        assert (tmp_path / "pg_stat_activity.csv").read_text() == "2024-05-01 12:00:00;7\n"

    def test_non_superuser_skips_xlog(self, pg16_conn, tmp_path):
        _script_cluster(pg16_conn, superuser=False)
        written = run_snapshot(pg16_conn, str(tmp_path), quiet=True)
        assert "pg_xlog_stat" not in written
        assert not (tmp_path / "pg_xlog_stat.csv").exists()
