"""Templates sampled by the vmstat-style monitor.

Column lists mirror the counter records field for field. A column the
connected release does not have is selected as a literal ``0`` so the
shape of a sample never depends on the server. Without a filter every
row is folded into one with ``sum()``; with a filter the same aggregate
runs over the matching rows only.
"""

from __future__ import annotations

from dataclasses import dataclass

from pgstats.catalog.base import Column, Fragment, Template, col, variants
from pgstats.models import Domain

NOT_INFORMATION_SCHEMA = Fragment("schemaname <> 'information_schema'")


def _sum(name: str, since=(0, 0), expr: str | None = None) -> Column:
    return col(name, f"sum({expr or name})", since)


def _count_where(name: str, predicate: str, since=(0, 0)) -> Column:
    return col(name, f"sum(CASE WHEN {predicate} THEN 1 ELSE 0 END)", since)


def _count_type(name: str, wait_event_type: str, since=(10, 0)) -> Column:
    return col(name, f"count(*) FILTER (WHERE wait_event_type = '{wait_event_type}')", since)


def _monitor(domain: Domain, source: str | tuple[Fragment, ...], columns, **kwargs) -> Template:
    sources = (Fragment(source),) if isinstance(source, str) else source
    return Template(domain=domain, name=domain.value, columns=tuple(columns),
                    sources=sources, missing="0", **kwargs)


ARCHIVER = _monitor(
    Domain.ARCHIVER,
    "pg_stat_archiver",
    [col("archived_count"), col("failed_count")],
    since=(9, 4),
)

BGWRITER = _monitor(
    Domain.BGWRITER,
    (
        Fragment("pg_stat_bgwriter b, pg_stat_checkpointer c", (17, 0)),
        Fragment("pg_stat_bgwriter b"),
    ),
    [
        variants("checkpoints_timed", ((17, 0), "c.num_timed"), ((0, 0), "b.checkpoints_timed")),
        variants("checkpoints_req", ((17, 0), "c.num_requested"), ((0, 0), "b.checkpoints_req")),
        variants(
            "checkpoint_write_time",
            ((17, 0), "c.write_time"),
            ((9, 2), "b.checkpoint_write_time"),
        ),
        variants(
            "checkpoint_sync_time",
            ((17, 0), "c.sync_time"),
            ((9, 2), "b.checkpoint_sync_time"),
        ),
        variants("buffers_checkpoint", ((17, 0), "c.buffers_written"), ((0, 0), "b.buffers_checkpoint")),
        col("buffers_clean", "b.buffers_clean"),
        Column("buffers_backend", (Fragment("b.buffers_backend", (0, 0), (17, 0)),)),
        col("buffers_alloc", "b.buffers_alloc"),
        col("maxwritten_clean", "b.maxwritten_clean"),
        Column("buffers_backend_fsync", (Fragment("b.buffers_backend_fsync", (9, 1), (17, 0)),)),
    ],
)

CONNECTION = _monitor(
    Domain.CONNECTION,
    "pg_stat_activity",
    [
        col("total", "count(*)"),
        Column("active", (
            Fragment("sum(CASE WHEN state = 'active' AND wait_event_type IS DISTINCT FROM 'Lock' "
                     "THEN 1 ELSE 0 END)", (9, 6)),
            Fragment("sum(CASE WHEN state = 'active' AND NOT waiting THEN 1 ELSE 0 END)"),
        )),
        Column("lockwaiting", (
            Fragment("sum(CASE WHEN wait_event_type = 'Lock' THEN 1 ELSE 0 END)", (9, 6)),
            Fragment("sum(CASE WHEN waiting THEN 1 ELSE 0 END)"),
        )),
        _count_where("idleintransaction", "state = 'idle in transaction'"),
        _count_where("idle", "state = 'idle'"),
    ],
    since=(9, 2),
    conditions=(Fragment("backend_type = 'client backend'", (10, 0)),),
    filter_column="datname",
)

DATABASE = _monitor(
    Domain.DATABASE,
    "pg_stat_database",
    [
        _sum("numbackends"),
        _sum("xact_commit"),
        _sum("xact_rollback"),
        _sum("blks_read"),
        _sum("blks_hit"),
        _sum("blk_read_time", (9, 2)),
        _sum("blk_write_time", (9, 2)),
        _sum("tup_returned", (8, 3)),
        _sum("tup_fetched", (8, 3)),
        _sum("tup_inserted", (8, 3)),
        _sum("tup_updated", (8, 3)),
        _sum("tup_deleted", (8, 3)),
        _sum("temp_files", (9, 2)),
        _sum("temp_bytes", (9, 2)),
        _sum("conflicts", (9, 1)),
        _sum("deadlocks", (9, 2)),
    ],
    filter_column="datname",
)

ALL_TABLES = _monitor(
    Domain.ALLTABLES,
    "pg_stat_all_tables",
    [
        _sum("seq_scan"),
        _sum("seq_tup_read"),
        _sum("idx_scan"),
        _sum("idx_tup_fetch"),
        _sum("n_tup_ins"),
        _sum("n_tup_upd"),
        _sum("n_tup_del"),
        _sum("n_tup_hot_upd", (8, 3)),
        _sum("n_live_tup", (8, 3)),
        _sum("n_dead_tup", (8, 3)),
        _sum("n_mod_since_analyze", (9, 4)),
        _sum("vacuum_count", (9, 1)),
        _sum("autovacuum_count", (9, 1)),
        _sum("analyze_count", (9, 1)),
        _sum("autoanalyze_count", (9, 1)),
    ],
    conditions=(NOT_INFORMATION_SCHEMA,),
    filter_column="relname",
)

TABLES_IO = _monitor(
    Domain.TABLESIO,
    "pg_statio_all_tables",
    [
        _sum("heap_blks_read"),
        _sum("heap_blks_hit"),
        _sum("toast_blks_read"),
        _sum("toast_blks_hit"),
        _sum("idx_blks_read"),
        _sum("idx_blks_hit"),
        _sum("tidx_blks_read"),
        _sum("tidx_blks_hit"),
    ],
    conditions=(NOT_INFORMATION_SCHEMA,),
    filter_column="relname",
)

INDEX = _monitor(
    Domain.INDEX,
    "pg_stat_all_indexes",
    [_sum("idx_scan"), _sum("idx_tup_read"), _sum("idx_tup_fetch")],
    conditions=(NOT_INFORMATION_SCHEMA,),
    filter_column="indexrelname",
)

FUNCTION = _monitor(
    Domain.FUNCTION,
    "pg_stat_user_functions",
    [_sum("calls"), _sum("total_time"), _sum("self_time")],
    since=(8, 4),
    conditions=(NOT_INFORMATION_SCHEMA,),
    filter_column="funcname",
)

STATEMENT = _monitor(
    Domain.STATEMENT,
    "pg_stat_statements s JOIN pg_database d ON d.oid = s.dbid",
    [
        _sum("calls"),
        _sum("rows"),
        _sum("total_plan_time", (13, 0)),
        variants(
            "total_exec_time",
            ((13, 0), "sum(total_exec_time)"),
            ((0, 0), "sum(total_time)"),
        ),
        _sum("shared_blks_hit"),
        _sum("shared_blks_read"),
        _sum("shared_blks_written"),
        _sum("temp_blks_read"),
        _sum("temp_blks_written"),
        variants(
            "blk_read_time",
            ((17, 0), "sum(shared_blk_read_time)"),
            ((9, 2), "sum(blk_read_time)"),
        ),
        variants(
            "blk_write_time",
            ((17, 0), "sum(shared_blk_write_time)"),
            ((9, 2), "sum(blk_write_time)"),
        ),
        _sum("wal_bytes", (13, 0)),
    ],
    filter_column="d.datname",
)

SLRU = _monitor(
    Domain.SLRU,
    "pg_stat_slru",
    [
        _sum("blks_zeroed"),
        _sum("blks_hit"),
        _sum("blks_read"),
        _sum("blks_written"),
        _sum("blks_exists"),
        _sum("flushes"),
        _sum("truncates"),
    ],
    since=(13, 0),
    filter_column="name",
)

WAL = _monitor(
    Domain.WAL,
    "pg_stat_wal",
    [
        col("wal_records"),
        col("wal_fpi"),
        col("wal_bytes"),
        col("wal_buffers_full"),
        Column("wal_write", (Fragment("wal_write", (14, 0), (18, 0)),)),
        Column("wal_sync", (Fragment("wal_sync", (14, 0), (18, 0)),)),
        Column("wal_write_time", (Fragment("wal_write_time", (14, 0), (18, 0)),)),
        Column("wal_sync_time", (Fragment("wal_sync_time", (14, 0), (18, 0)),)),
    ],
    since=(14, 0),
)

XLOG = _monitor(
    Domain.XLOG,
    "",
    [
        variants(
            "written",
            ((10, 0), "pg_wal_lsn_diff(pg_current_wal_lsn(), '0/0')"),
            ((9, 2), "pg_xlog_location_diff(pg_current_xlog_location(), '0/0')"),
        ),
    ],
    since=(9, 2),
)

TEMPFILE = _monitor(
    Domain.TEMPFILE,
    "pg_ls_tmpdir()",
    [col("files", "count(*)"), col("size", "coalesce(sum(size), 0)")],
    since=(12, 0),
)

PROGRESS_ANALYZE = _monitor(
    Domain.PROGRESSANALYZE,
    "pg_stat_progress_analyze",
    [
        col("pid"),
        col("relation", "relid::regclass::text"),
        col("phase"),
        col("sample_blks_total"),
        col("sample_blks_scanned"),
        col("ext_stats_total"),
        col("ext_stats_computed"),
        col("child_tables_total"),
        col("child_tables_done"),
    ],
    since=(13, 0),
    filter_column="datname",
    order_by="pid",
)

WAITEVENT = _monitor(
    Domain.WAITEVENT,
    "pg_stat_activity",
    [
        col("running", "count(*) FILTER (WHERE state = 'active' AND wait_event_type IS NULL)"),
        _count_type("activity", "Activity"),
        _count_type("bufferpin", "BufferPin", since=(9, 6)),
        _count_type("client", "Client"),
        _count_type("extension", "Extension"),
        _count_type("io", "IO"),
        _count_type("ipc", "IPC"),
        _count_type("lock", "Lock", since=(9, 6)),
        variants(
            "lwlock",
            ((10, 0), "count(*) FILTER (WHERE wait_event_type = 'LWLock')"),
            ((9, 6), "count(*) FILTER (WHERE wait_event_type IN ('LWLockNamed', 'LWLockTranche'))"),
        ),
        _count_type("timeout", "Timeout"),
    ],
    since=(9, 6),
    conditions=(Fragment("pid <> pg_backend_pid()"),),
    filter_column="datname",
)

MONITOR_TEMPLATES: dict[Domain, Template] = {
    t.domain: t
    for t in (
        ARCHIVER,
        BGWRITER,
        CONNECTION,
        DATABASE,
        ALL_TABLES,
        TABLES_IO,
        INDEX,
        FUNCTION,
        STATEMENT,
        SLRU,
        WAL,
        XLOG,
        TEMPFILE,
        PROGRESS_ANALYZE,
        WAITEVENT,
    )
}


@dataclass(frozen=True)
class ConsoleCommand:
    """A pgBouncer admin console command; values are read by column name."""

    domain: Domain
    command: str

    def render(self) -> tuple[str, None]:
        return self.command, None


CONSOLE_COMMANDS: dict[Domain, ConsoleCommand] = {
    Domain.PBPOOLS: ConsoleCommand(Domain.PBPOOLS, "SHOW pools"),
    Domain.PBSTATS: ConsoleCommand(Domain.PBSTATS, "SHOW stats"),
}

MONITORED_DOMAINS = tuple(MONITOR_TEMPLATES) + tuple(CONSOLE_COMMANDS)
