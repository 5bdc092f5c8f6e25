"""Tests for configuration loading and merging."""

from __future__ import annotations

import pytest

from pgstats.config import (
    Config,
    ConnectionConfig,
    find_config_file,
    load_config,
    merge_connection,
    pick,
)
from pgstats.errors import ConfigError


class TestConfig:
    """Tests for the Config dataclasses."""

    def test_defaults(self):
        cfg = Config()
        assert cfg.csvstat.directory == "./"
        assert cfg.stat.stat == "bgwriter"
        assert cfg.stat.interval == 1
        assert cfg.stat.count is None
        assert cfg.waitevent.interval == 1.0
        assert cfg.fsm.groups == 20
        assert cfg.report.exclude == []


class TestLoadConfig:
    """Tests for load_config()."""

    def test_no_file_gives_defaults(self, monkeypatch):
        monkeypatch.setattr("pgstats.config.find_config_file", lambda: None)
        assert load_config() == Config()

    def test_no_auto_discover(self):
        assert load_config(auto_discover=False) == Config()

    def test_full_file(self, tmp_path):
        path = tmp_path / "pgstats.yaml"
        path.write_text(
            "connection:\n"
            "  host: db.local\n"
            "  port: 5433\n"
            "  dbname: appdb\n"
            "csvstat:\n"
            "  directory: /var/tmp/stats\n"
            "  quiet: true\n"
            "stat:\n"
            "  stat: database\n"
            "  interval: 5\n"
            "  count: 12\n"
            "waitevent:\n"
            "  interval: 0.25\n"
            "fsm:\n"
            "  groups: 40\n"
            "report:\n"
            "  exclude:\n"
            "    - User passwords\n"
        )
        cfg = load_config(str(path))
        assert cfg.connection == ConnectionConfig(host="db.local", port=5433, dbname="appdb")
        assert cfg.csvstat.directory == "/var/tmp/stats"
        assert cfg.csvstat.quiet is True
        assert cfg.stat.stat == "database"
        assert cfg.stat.count == 12
        assert cfg.waitevent.interval == 0.25
        assert cfg.fsm.groups == 40
        assert cfg.report.exclude == ["User passwords"]

    def test_single_exclude_string(self, tmp_path):
        path = tmp_path / "pgstats.yaml"
        path.write_text("report:\n  exclude: Hit ratio\n")
        assert load_config(str(path)).report.exclude == ["Hit ratio"]

    def test_empty_file(self, tmp_path):
        path = tmp_path / "pgstats.yaml"
        path.write_text("")
        assert load_config(str(path)) == Config()

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigError, match="Config file not found"):
            load_config(str(tmp_path / "nope.yaml"))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "pgstats.yaml"
        path.write_text("stat: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid config file"):
            load_config(str(path))

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "pgstats.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError):
            load_config(str(path))

    def test_section_must_be_mapping(self, tmp_path):
        path = tmp_path / "pgstats.yaml"
        path.write_text("stat: database\n")
        with pytest.raises(ConfigError, match="'stat'"):
            load_config(str(path))


class TestFindConfigFile:
    def test_cwd_first(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "pgstats.yaml").write_text("{}\n")
        assert find_config_file() == str(tmp_path / "pgstats.yaml")

    def test_home(self, tmp_path, monkeypatch):
        home = tmp_path / "home"
        work = tmp_path / "work"
        home.mkdir()
        work.mkdir()
        (home / "pgstats.yaml").write_text("{}\n")
        monkeypatch.chdir(work)
        monkeypatch.setenv("HOME", str(home))
        assert find_config_file() == str(home / "pgstats.yaml")


class TestMerge:
    def test_pick(self):
        assert pick(None, 5) == 5
        assert pick(0, 5) == 0
        assert pick(False, True) is False

    def test_cli_over_file(self, monkeypatch):
        monkeypatch.delenv("PGDATABASE", raising=False)
        cfg = Config(connection=ConnectionConfig(host="file-host", port=5433, dbname="filedb"))
        merged = merge_connection(cfg, host="cli-host", dbname=None)
        assert merged.host == "cli-host"
        assert merged.port == 5433
        assert merged.dbname == "filedb"

    def test_pgdatabase_after_file(self, monkeypatch):
        monkeypatch.setenv("PGDATABASE", "envdb")
        assert merge_connection(Config()).dbname == "envdb"
        cfg = Config(connection=ConnectionConfig(dbname="filedb"))
        assert merge_connection(cfg).dbname == "filedb"

    def test_default_dbname(self, monkeypatch):
        monkeypatch.delenv("PGDATABASE", raising=False)
        assert merge_connection(Config()).dbname == "postgres"

    def test_unset_left_to_libpq(self, monkeypatch):
        monkeypatch.delenv("PGDATABASE", raising=False)
        merged = merge_connection(Config())
        assert merged.host is None
        assert merged.user is None
