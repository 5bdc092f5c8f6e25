"""Tests for the free-space map display."""

from __future__ import annotations

import io

import pytest

from conftest import Result
from pgstats.errors import ConfigError
from pgstats.fsm import (
    COLOR_BOUND,
    cell,
    display_fsm,
    group_shades,
    group_size,
    shade,
)


def _fsm_conn(conn, avail):
    conn.on("pg_freespacemap", Result(["?column?"], [(1,)]))
    conn.on("block_size", Result(["current_setting"], [("8192",)]))
    conn.on("pg_freespace(", Result(["avail"], [(a,) for a in avail]))
    return conn


class TestGrouping:
    @pytest.mark.parametrize(
        "nblocks, groups, expected",
        [(0, 20, 1), (5, 20, 1), (20, 20, 1), (100, 20, 5), (105, 20, 5), (7, 3, 2)],
    )
    def test_group_size(self, nblocks, groups, expected):
        assert group_size(nblocks, groups) == expected

    def test_partial_last_group(self):
        shades = group_shades([8192, 0, 8192, 8192, 0], 8192, 2)
        assert shades == [90, COLOR_BOUND, 0]

    def test_empty_relation(self):
        assert group_shades([], 8192, 1) == []


class TestShade:
    def test_free_block(self):
        assert shade(8192, 8192, 1) == COLOR_BOUND

    def test_full_block(self):
        assert shade(0, 8192, 1) == 0

    def test_never_negative(self):
        assert shade(-10, 8192, 1) == 0

    def test_cell(self):
        assert cell(90) == "\033[48;2;255;90;90m \033[0m"


class TestDisplayFsm:
    def test_output(self, fake_conn):
        _fsm_conn(fake_conn, [8192, 0, 4096])
        out = io.StringIO()
        shades = display_fsm(fake_conn, "public.t", groups=20, out=out)
        lines = out.getvalue().splitlines()
        assert lines[:3] == ["Number of blocks: 3", "Relation size: 24576", "... group of 1"]
        assert shades == [COLOR_BOUND, 0, 90]
        assert cell(COLOR_BOUND) + cell(0) + cell(90) in out.getvalue()

    def test_relation_is_bound(self, fake_conn):
        _fsm_conn(fake_conn, [])
        display_fsm(fake_conn, "public.t'; --", out=io.StringIO())
        sql, params = fake_conn.executed[-1]
        assert params == {"relation": "public.t'; --"}
        assert "public.t" not in sql

    def test_groups_blocks(self, fake_conn):
        _fsm_conn(fake_conn, [0] * 100)
        shades = display_fsm(fake_conn, "t", groups=10, out=io.StringIO())
        assert len(shades) == 10

    def test_missing_extension(self, fake_conn):
        with pytest.raises(ConfigError, match="pg_freespacemap"):
            display_fsm(fake_conn, "t", out=io.StringIO())
        assert not fake_conn.ran("block_size")

    def test_invalid_groups(self, fake_conn):
        with pytest.raises(ConfigError):
            display_fsm(fake_conn, "t", groups=0, out=io.StringIO())
        assert fake_conn.executed == []
