"""Templates dumped by the CSV snapshotter, in emission order.

Every row starts with the capture timestamp. Columns unknown to the
connected release are simply left out, so each file's header follows the
server it was first written from.
"""

from __future__ import annotations

from pgstats.catalog.base import Column, Fragment, Template, col, star, variants
from pgstats.models import Domain


def _trunc(name: str, since=(0, 0)) -> Column:
    return col(name, f"date_trunc('seconds', {name})", since)


# checkpoint and backend counters left pg_stat_bgwriter in 17
def _upto17(name: str, since=(0, 0)) -> Column:
    return Column(name, (Fragment(name, since, (17, 0)),))


ACTIVITY = Template(
    domain=Domain.CONNECTION,
    name="pg_stat_activity",
    columns=(
        col("datid"),
        col("datname"),
        variants("pid", ((9, 2), "pid"), ((0, 0), "procpid")),
        col("leader_pid", since=(13, 0)),
        col("usesysid"),
        col("usename"),
        col("application_name", since=(9, 0)),
        col("client_addr", since=(8, 1)),
        col("client_hostname", since=(9, 1)),
        col("client_port", since=(8, 1)),
        _trunc("backend_start", (8, 1)),
        _trunc("xact_start", (8, 3)),
        _trunc("query_start"),
        col("state_change", since=(9, 2)),
        col("wait_event_type", since=(9, 6)),
        col("wait_event", since=(9, 6)),
        Column("waiting", (Fragment("waiting", (8, 2), (9, 6)),)),
        col("backend_xid", since=(9, 4)),
        col("backend_xmin", since=(9, 4)),
        col("query_id", since=(14, 0)),
        variants("query", ((9, 2), "query"), ((0, 0), "current_query")),
        col("backend_type", since=(10, 0)),
        col("state", since=(9, 2)),
    ),
    sources=(Fragment("pg_stat_activity"),),
    order_by="pid",
    timestamp=True,
)

ARCHIVER = Template(
    domain=Domain.ARCHIVER,
    name="pg_stat_archiver",
    columns=(
        col("archived_count"),
        col("last_archived_wal"),
        _trunc("last_archived_time"),
        col("failed_count"),
        col("last_failed_wal"),
        _trunc("last_failed_time"),
        _trunc("stats_reset"),
    ),
    sources=(Fragment("pg_stat_archiver"),),
    since=(9, 4),
    timestamp=True,
)

BGWRITER = Template(
    domain=Domain.BGWRITER,
    name="pg_stat_bgwriter",
    columns=(
        _upto17("checkpoints_timed"),
        _upto17("checkpoints_req"),
        _upto17("checkpoint_write_time", (9, 2)),
        _upto17("checkpoint_sync_time", (9, 2)),
        _upto17("buffers_checkpoint"),
        col("buffers_clean"),
        col("maxwritten_clean"),
        _upto17("buffers_backend"),
        _upto17("buffers_backend_fsync", (9, 1)),
        col("buffers_alloc"),
        _trunc("stats_reset", (9, 1)),
    ),
    sources=(Fragment("pg_stat_bgwriter"),),
    since=(8, 3),
    timestamp=True,
)

DATABASE = Template(
    domain=Domain.DATABASE,
    name="pg_stat_database",
    columns=(
        col("datid"),
        col("datname"),
        col("numbackends"),
        col("xact_commit"),
        col("xact_rollback"),
        col("blks_read"),
        col("blks_hit"),
        col("tup_returned", since=(8, 3)),
        col("tup_fetched", since=(8, 3)),
        col("tup_inserted", since=(8, 3)),
        col("tup_updated", since=(8, 3)),
        col("tup_deleted", since=(8, 3)),
        col("conflicts", since=(9, 1)),
        _trunc("stats_reset", (9, 1)),
        col("temp_files", since=(9, 2)),
        col("temp_bytes", since=(9, 2)),
        col("deadlocks", since=(9, 2)),
        col("blk_read_time", since=(9, 2)),
        col("blk_write_time", since=(9, 2)),
        col("checksum_failures", since=(12, 0)),
        col("checksum_last_failure", since=(12, 0)),
        col("session_time", since=(14, 0)),
        col("active_time", since=(14, 0)),
        col("idle_in_transaction_time", since=(14, 0)),
        col("sessions", since=(14, 0)),
        col("sessions_abandoned", since=(14, 0)),
        col("sessions_fatal", since=(14, 0)),
        col("sessions_killed", since=(14, 0)),
    ),
    sources=(Fragment("pg_stat_database"),),
    order_by="datname",
    timestamp=True,
)

DATABASE_CONFLICTS = Template(
    domain=Domain.DATABASECONFLICTS,
    name="pg_stat_database_conflicts",
    columns=(star(),),
    sources=(Fragment("pg_stat_database_conflicts"),),
    since=(9, 1),
    order_by="datname",
    timestamp=True,
)

REPLICATION = Template(
    domain=Domain.REPLICATION,
    name="pg_stat_replication",
    columns=(
        variants("pid", ((9, 2), "pid"), ((0, 0), "procpid")),
        col("usesysid"),
        col("usename"),
        col("application_name"),
        col("client_addr"),
        col("client_hostname"),
        col("client_port"),
        _trunc("backend_start"),
        col("backend_xmin", since=(9, 4)),
        col("state"),
        variants(
            "master_location",
            ((10, 0), "pg_current_wal_lsn()"),
            ((0, 0), "pg_current_xlog_location()"),
        ),
        variants("sent_lsn", ((10, 0), "sent_lsn"), ((0, 0), "sent_location")),
        variants("write_lsn", ((10, 0), "write_lsn"), ((0, 0), "write_location")),
        variants("flush_lsn", ((10, 0), "flush_lsn"), ((0, 0), "flush_location")),
        variants("replay_lsn", ((10, 0), "replay_lsn"), ((0, 0), "replay_location")),
        col("write_lag", since=(10, 0)),
        col("flush_lag", since=(10, 0)),
        col("replay_lag", since=(10, 0)),
        col("sync_priority"),
        col("sync_state"),
        col("reply_time", since=(12, 0)),
    ),
    sources=(Fragment("pg_stat_replication"),),
    since=(9, 1),
    order_by="application_name",
    timestamp=True,
)

REPLICATION_SLOTS = Template(
    domain=Domain.REPLICATIONSLOTS,
    name="pg_stat_replication_slots",
    columns=(
        col("slot_name"),
        col("spill_txns"),
        col("spill_count"),
        col("spill_bytes"),
        col("stream_txns"),
        col("stream_count"),
        col("stream_bytes"),
        col("total_txns"),
        col("total_bytes"),
        _trunc("stats_reset"),
    ),
    sources=(Fragment("pg_stat_replication_slots"),),
    since=(14, 0),
    order_by="slot_name",
    timestamp=True,
)

SLRU = Template(
    domain=Domain.SLRU,
    name="pg_stat_slru",
    columns=(
        col("name"),
        col("blks_zeroed"),
        col("blks_hit"),
        col("blks_read"),
        col("blks_written"),
        col("blks_exists"),
        col("flushes"),
        col("truncates"),
        _trunc("stats_reset"),
    ),
    sources=(Fragment("pg_stat_slru"),),
    since=(13, 0),
    order_by="name",
    timestamp=True,
)

SUBSCRIPTION = Template(
    domain=Domain.SUBSCRIPTION,
    name="pg_stat_subscription",
    columns=(
        col("subid"),
        col("subname"),
        col("pid"),
        col("relid"),
        col("received_lsn"),
        _trunc("last_msg_send_time"),
        _trunc("last_msg_receipt_time"),
        col("latest_end_lsn"),
        _trunc("latest_end_time"),
    ),
    sources=(Fragment("pg_stat_subscription"),),
    since=(10, 0),
    order_by="subid",
    timestamp=True,
)

WAL = Template(
    domain=Domain.WAL,
    name="pg_stat_wal",
    columns=(
        col("wal_records"),
        col("wal_fpi"),
        col("wal_bytes"),
        col("wal_buffers_full"),
        Column("wal_write", (Fragment("wal_write", (14, 0), (18, 0)),)),
        Column("wal_sync", (Fragment("wal_sync", (14, 0), (18, 0)),)),
        Column("wal_write_time", (Fragment("wal_write_time", (14, 0), (18, 0)),)),
        Column("wal_sync_time", (Fragment("wal_sync_time", (14, 0), (18, 0)),)),
        _trunc("stats_reset"),
    ),
    sources=(Fragment("pg_stat_wal"),),
    since=(14, 0),
    timestamp=True,
)

WAL_RECEIVER = Template(
    domain=Domain.WALRECEIVER,
    name="pg_stat_wal_receiver",
    columns=(star(),),
    sources=(Fragment("pg_stat_wal_receiver"),),
    since=(9, 6),
    timestamp=True,
)

ALL_TABLES = Template(
    domain=Domain.ALLTABLES,
    name="pg_stat_all_tables",
    columns=(
        col("relid"),
        col("schemaname"),
        col("relname"),
        col("seq_scan"),
        col("seq_tup_read"),
        col("idx_scan"),
        col("idx_tup_fetch"),
        col("n_tup_ins"),
        col("n_tup_upd"),
        col("n_tup_del"),
        col("n_tup_hot_upd", since=(8, 3)),
        col("n_live_tup", since=(8, 3)),
        col("n_dead_tup", since=(8, 3)),
        col("n_mod_since_analyze", since=(9, 4)),
        col("n_ins_since_vacuum", since=(13, 0)),
        _trunc("last_vacuum", (8, 2)),
        _trunc("last_autovacuum", (8, 2)),
        _trunc("last_analyze", (8, 2)),
        _trunc("last_autoanalyze", (8, 2)),
        col("vacuum_count", since=(9, 1)),
        col("autovacuum_count", since=(9, 1)),
        col("analyze_count", since=(9, 1)),
        col("autoanalyze_count", since=(9, 1)),
    ),
    sources=(Fragment("pg_stat_all_tables"),),
    conditions=(Fragment("schemaname <> 'information_schema'"),),
    order_by="schemaname, relname",
    timestamp=True,
)


def _dump_all(domain: Domain, view: str, order_by: str, since=(0, 0)) -> Template:
    return Template(
        domain=domain,
        name=view,
        columns=(star(),),
        sources=(Fragment(view),),
        since=since,
        conditions=(Fragment("schemaname <> 'information_schema'"),),
        order_by=order_by,
        timestamp=True,
    )


ALL_INDEXES = _dump_all(Domain.ALLINDEXES, "pg_stat_all_indexes", "schemaname, relname")
IO_TABLES = _dump_all(Domain.IOTABLES, "pg_statio_all_tables", "schemaname, relname")
IO_INDEXES = _dump_all(Domain.IOINDEXES, "pg_statio_all_indexes", "schemaname, relname")
IO_SEQUENCES = _dump_all(Domain.IOSEQUENCES, "pg_statio_all_sequences", "schemaname, relname")
USER_FUNCTIONS = _dump_all(
    Domain.USERFUNCTIONS, "pg_stat_user_functions", "schemaname, funcname", since=(8, 4)
)

CLASS_SIZE = Template(
    domain=Domain.CLASSSIZE,
    name="pg_class_size",
    columns=(
        col("nspname", "n.nspname"),
        col("relname", "c.relname"),
        col("relkind", "c.relkind"),
        col("reltuples", "c.reltuples"),
        col("relpages", "c.relpages"),
        col("pg_relation_size", "pg_relation_size(c.oid)", since=(8, 1)),
    ),
    sources=(Fragment("pg_class c, pg_namespace n"),),
    conditions=(
        Fragment("n.oid = c.relnamespace"),
        Fragment("n.nspname <> 'information_schema'"),
    ),
    order_by="n.nspname, c.relname",
    timestamp=True,
)

STATEMENTS = Template(
    domain=Domain.STATEMENTS,
    name="pg_stat_statements",
    columns=(
        col("rolname", "r.rolname"),
        col("datname", "d.datname"),
        col("toplevel", since=(14, 0)),
        col("queryid", since=(14, 0)),
        # line feeds would break the one-row-per-line CSV layout
        col("query", "regexp_replace(query, E'\\n', ' ', 'g')"),
        col("plans", since=(13, 0)),
        col("total_plan_time", since=(13, 0)),
        col("min_plan_time", since=(13, 0)),
        col("max_plan_time", since=(13, 0)),
        col("mean_plan_time", since=(13, 0)),
        col("stddev_plan_time", since=(13, 0)),
        col("calls"),
        variants("total_exec_time", ((13, 0), "total_exec_time"), ((0, 0), "total_time")),
        col("min_exec_time", since=(13, 0)),
        col("max_exec_time", since=(13, 0)),
        col("mean_exec_time", since=(13, 0)),
        col("stddev_exec_time", since=(13, 0)),
        col("rows"),
        col("shared_blks_hit"),
        col("shared_blks_read"),
        col("shared_blks_written"),
        col("local_blks_hit"),
        col("local_blks_read"),
        col("local_blks_written"),
        col("temp_blks_read"),
        col("temp_blks_written"),
        col("wal_records", since=(14, 0)),
        col("wal_fpi", since=(14, 0)),
        col("wal_bytes", since=(14, 0)),
    ),
    sources=(Fragment("pg_stat_statements q, pg_database d, pg_roles r"),),
    conditions=(Fragment("q.userid = r.oid"), Fragment("q.dbid = d.oid")),
    order_by="r.rolname, d.datname",
    timestamp=True,
)

XLOG = Template(
    domain=Domain.XLOG,
    name="pg_xlog_stat",
    columns=(
        variants(
            "current",
            ((10, 0), "pg_walfile_name(pg_current_wal_lsn()) = pg_ls_dir"),
            ((0, 0), "pg_xlogfile_name(pg_current_xlog_location()) = pg_ls_dir"),
        ),
        col("filename", "pg_ls_dir"),
        variants(
            "modification_timestamp",
            ((10, 0), "(SELECT modification FROM pg_stat_file('pg_wal/' || pg_ls_dir))"),
            ((0, 0), "(SELECT modification FROM pg_stat_file('pg_xlog/' || pg_ls_dir))"),
        ),
    ),
    sources=(
        Fragment("pg_ls_dir('pg_wal')", (10, 0)),
        Fragment("pg_ls_dir('pg_xlog')", (8, 2)),
    ),
    since=(8, 2),
    conditions=(Fragment("pg_ls_dir ~ E'^[0-9A-F]{24}'"),),
    order_by="pg_ls_dir",
    timestamp=True,
)

SNAPSHOT_TEMPLATES: tuple[Template, ...] = (
    ACTIVITY,
    ARCHIVER,
    BGWRITER,
    DATABASE,
    DATABASE_CONFLICTS,
    REPLICATION,
    REPLICATION_SLOTS,
    SLRU,
    SUBSCRIPTION,
    WAL,
    WAL_RECEIVER,
    ALL_TABLES,
    ALL_INDEXES,
    IO_TABLES,
    IO_INDEXES,
    IO_SEQUENCES,
    USER_FUNCTIONS,
    CLASS_SIZE,
    STATEMENTS,
    XLOG,
)

# Domains dumped only when the server state allows it, beyond the release.
NEEDS_STATEMENTS_EXTENSION = frozenset({Domain.STATEMENTS})
NEEDS_SUPERUSER = frozenset({Domain.XLOG})

SUPERUSER_QUERY = "SELECT rolsuper FROM pg_roles WHERE rolname = current_user"
