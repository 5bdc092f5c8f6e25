"""Typed counter records, one per monitored domain.

Each record is a dataclass whose fields are, in order, the columns the
matching monitor template returns. Field metadata says how a value is
treated between two samples (``counter`` fields are diffed, ``gauge`` and
``text`` fields are shown as read) and how it is displayed.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import ClassVar

from pgstats.models import Domain

COUNTER = "counter"
GAUGE = "gauge"
TEXT = "text"


@dataclass(frozen=True)
class FieldSpec:
    name: str
    label: str
    group: str
    kind: str
    width: int
    unit: str | None
    is_float: bool

    @property
    def is_bytes(self) -> bool:
        return self.unit == "bytes"


def counter(label: str, group: str = "", width: int = 7, unit: str | None = None):
    return field(default=0, metadata={"label": label, "group": group, "kind": COUNTER,
                                      "width": width, "unit": unit})


def fcounter(label: str, group: str = "", width: int = 10):
    """Counter measured in fractional milliseconds."""
    return field(default=0.0, metadata={"label": label, "group": group, "kind": COUNTER,
                                        "width": width, "unit": None})


def gauge(label: str, group: str = "", width: int = 7, unit: str | None = None):
    return field(default=0, metadata={"label": label, "group": group, "kind": GAUGE,
                                      "width": width, "unit": unit})


def text(label: str, group: str = "", width: int = 12):
    return field(default="", metadata={"label": label, "group": group, "kind": TEXT,
                                       "width": width, "unit": None})


def _to_number(value, is_float: bool):
    if value is None:
        return 0.0 if is_float else 0
    if is_float:
        return float(value)
    return int(value)


class CounterRecord:
    """Base class of every counter record.

    Subclasses register themselves for a domain with the ``domain`` class
    keyword, e.g. ``class Bgwriter(CounterRecord, domain=Domain.BGWRITER)``.
    """

    domain: ClassVar[Domain]
    multirow: ClassVar[bool] = False
    registry: ClassVar[dict[Domain, type[CounterRecord]]] = {}

    def __init_subclass__(cls, domain: Domain | None = None, **kwargs):
        super().__init_subclass__(**kwargs)
        if domain is not None:
            cls.domain = domain
            CounterRecord.registry[domain] = cls

    @classmethod
    def specs(cls) -> list[FieldSpec]:
        specs = []
        for f in dataclasses.fields(cls):
            meta = f.metadata
            specs.append(FieldSpec(
                name=f.name,
                label=meta["label"],
                group=meta["group"],
                kind=meta["kind"],
                width=max(meta["width"], len(meta["label"])),
                unit=meta["unit"],
                is_float=isinstance(f.default, float),
            ))
        return specs

    @classmethod
    def field_names(cls) -> list[str]:
        return [f.name for f in dataclasses.fields(cls)]

    @classmethod
    def from_row(cls, row: Sequence):
        """Build a record from one result row, in column order."""
        values = {}
        for spec, value in zip(cls.specs(), row):
            if spec.kind == TEXT:
                values[spec.name] = "" if value is None else str(value)
            else:
                values[spec.name] = _to_number(value, spec.is_float)
        return cls(**values)

    @classmethod
    def from_named_rows(cls, columns: Sequence[str], rows: Sequence[Sequence]):
        """Sum every row of a result set, picking values by column name."""
        index = {name: i for i, name in enumerate(columns)}
        totals = {}
        for spec in cls.specs():
            position = index.get(spec.name)
            total = 0.0 if spec.is_float else 0
            if position is not None:
                for row in rows:
                    total += _to_number(row[position], spec.is_float)
            totals[spec.name] = total
        return cls(**totals)

    def values(self) -> dict:
        return {f.name: getattr(self, f.name) for f in dataclasses.fields(self)}


def record_for(domain: Domain) -> type[CounterRecord]:
    return CounterRecord.registry[domain]


@dataclass
class ArchiverCounters(CounterRecord, domain=Domain.ARCHIVER):
    archived_count: int = counter("archived", "WAL counts")
    failed_count: int = counter("failed", "WAL counts")


@dataclass
class BgwriterCounters(CounterRecord, domain=Domain.BGWRITER):
    checkpoints_timed: int = counter("timed", "checkpoints")
    checkpoints_req: int = counter("requested", "checkpoints")
    checkpoint_write_time: float = fcounter("write_time", "checkpoints")
    checkpoint_sync_time: float = fcounter("sync_time", "checkpoints")
    buffers_checkpoint: int = counter("checkpoint", "buffers")
    buffers_clean: int = counter("clean", "buffers")
    buffers_backend: int = counter("backend", "buffers")
    buffers_alloc: int = counter("alloc", "buffers")
    maxwritten_clean: int = counter("maxwritten", "misc")
    buffers_backend_fsync: int = counter("backend_fsync", "misc")


@dataclass
class ConnectionCounts(CounterRecord, domain=Domain.CONNECTION):
    total: int = gauge("total", "connections")
    active: int = gauge("active", "connections")
    lockwaiting: int = gauge("lockwaiting", "connections")
    idleintransaction: int = gauge("idle in transaction", "connections")
    idle: int = gauge("idle", "connections")


@dataclass
class DatabaseCounters(CounterRecord, domain=Domain.DATABASE):
    numbackends: int = gauge("backends", "", width=8)
    xact_commit: int = counter("commit", "xacts")
    xact_rollback: int = counter("rollback", "xacts")
    blks_read: int = counter("read", "blocks")
    blks_hit: int = counter("hit", "blocks")
    blk_read_time: float = fcounter("read_time", "blocks")
    blk_write_time: float = fcounter("write_time", "blocks")
    tup_returned: int = counter("ret", "tuples")
    tup_fetched: int = counter("fet", "tuples")
    tup_inserted: int = counter("ins", "tuples")
    tup_updated: int = counter("upd", "tuples")
    tup_deleted: int = counter("del", "tuples")
    temp_files: int = counter("files", "temp")
    temp_bytes: int = counter("bytes", "temp", width=9, unit="bytes")
    conflicts: int = counter("conflicts", "misc")
    deadlocks: int = counter("deadlocks", "misc")


@dataclass
class TableCounters(CounterRecord, domain=Domain.ALLTABLES):
    seq_scan: int = counter("scan", "sequential")
    seq_tup_read: int = counter("tuples", "sequential")
    idx_scan: int = counter("scan", "index")
    idx_tup_fetch: int = counter("tuples", "index")
    n_tup_ins: int = counter("ins", "tuples")
    n_tup_upd: int = counter("upd", "tuples")
    n_tup_del: int = counter("del", "tuples")
    n_tup_hot_upd: int = counter("hotupd", "tuples")
    n_live_tup: int = gauge("live", "tuples")
    n_dead_tup: int = gauge("dead", "tuples")
    n_mod_since_analyze: int = gauge("analyze", "tuples")
    vacuum_count: int = counter("vacuum", "maintenance")
    autovacuum_count: int = counter("autovacuum", "maintenance")
    analyze_count: int = counter("analyze", "maintenance")
    autoanalyze_count: int = counter("autoanalyze", "maintenance")


@dataclass
class TableIoCounters(CounterRecord, domain=Domain.TABLESIO):
    heap_blks_read: int = counter("read", "heap table")
    heap_blks_hit: int = counter("hit", "heap table")
    toast_blks_read: int = counter("read", "toast table")
    toast_blks_hit: int = counter("hit", "toast table")
    idx_blks_read: int = counter("read", "heap indexes")
    idx_blks_hit: int = counter("hit", "heap indexes")
    tidx_blks_read: int = counter("read", "toast indexes")
    tidx_blks_hit: int = counter("hit", "toast indexes")


@dataclass
class IndexCounters(CounterRecord, domain=Domain.INDEX):
    idx_scan: int = counter("scan", "scan", width=8)
    idx_tup_read: int = counter("read", "tuples")
    idx_tup_fetch: int = counter("fetch", "tuples")


@dataclass
class FunctionCounters(CounterRecord, domain=Domain.FUNCTION):
    calls: int = counter("calls", "count", width=9)
    total_time: float = fcounter("total", "time")
    self_time: float = fcounter("self", "time")


@dataclass
class StatementCounters(CounterRecord, domain=Domain.STATEMENT):
    calls: int = counter("calls", "statements", width=8)
    rows: int = counter("rows", "statements", width=8)
    total_plan_time: float = fcounter("plan", "time")
    total_exec_time: float = fcounter("exec", "time")
    shared_blks_hit: int = counter("hit", "shared blocks")
    shared_blks_read: int = counter("read", "shared blocks")
    shared_blks_written: int = counter("written", "shared blocks")
    temp_blks_read: int = counter("read", "temp blocks")
    temp_blks_written: int = counter("written", "temp blocks")
    blk_read_time: float = fcounter("read_time", "I/O")
    blk_write_time: float = fcounter("write_time", "I/O")
    wal_bytes: int = counter("bytes", "WAL", width=9, unit="bytes")


@dataclass
class SlruCounters(CounterRecord, domain=Domain.SLRU):
    blks_zeroed: int = counter("zeroed", "blocks")
    blks_hit: int = counter("hit", "blocks")
    blks_read: int = counter("read", "blocks")
    blks_written: int = counter("written", "blocks")
    blks_exists: int = counter("exists", "blocks")
    flushes: int = counter("flushes", "misc")
    truncates: int = counter("truncates", "misc")


@dataclass
class WalCounters(CounterRecord, domain=Domain.WAL):
    wal_records: int = counter("records", "WAL", width=8)
    wal_fpi: int = counter("fpi", "WAL")
    wal_bytes: int = counter("bytes", "WAL", width=9, unit="bytes")
    wal_buffers_full: int = counter("buffers_full", "misc")
    wal_write: int = counter("write", "operations")
    wal_sync: int = counter("sync", "operations")
    wal_write_time: float = fcounter("write_time", "time")
    wal_sync_time: float = fcounter("sync_time", "time")


@dataclass
class XlogCounters(CounterRecord, domain=Domain.XLOG):
    written: int = counter("written", "WAL", width=12, unit="bytes")


@dataclass
class TempFileCounts(CounterRecord, domain=Domain.TEMPFILE):
    files: int = gauge("files", "temp files")
    size: int = gauge("size", "temp files", width=10, unit="bytes")


@dataclass
class AnalyzeProgress(CounterRecord, domain=Domain.PROGRESSANALYZE):
    multirow: ClassVar[bool] = True

    pid: int = gauge("pid", "", width=7)
    relation: str = text("relation", "", width=24)
    phase: str = text("phase", "", width=28)
    sample_blks_total: int = gauge("total", "sample blocks", width=9)
    sample_blks_scanned: int = gauge("scanned", "sample blocks", width=9)
    ext_stats_total: int = gauge("total", "ext stats")
    ext_stats_computed: int = gauge("computed", "ext stats")
    child_tables_total: int = gauge("total", "child tables")
    child_tables_done: int = gauge("done", "child tables")


@dataclass
class WaitEventCounts(CounterRecord, domain=Domain.WAITEVENT):
    running: int = gauge("running", "", width=7)
    activity: int = gauge("Activity", "wait event types")
    bufferpin: int = gauge("BufferPin", "wait event types")
    client: int = gauge("Client", "wait event types")
    extension: int = gauge("Extension", "wait event types")
    io: int = gauge("IO", "wait event types")
    ipc: int = gauge("IPC", "wait event types")
    lock: int = gauge("Lock", "wait event types")
    lwlock: int = gauge("LWLock", "wait event types")
    timeout: int = gauge("Timeout", "wait event types")


@dataclass
class PgBouncerPools(CounterRecord, domain=Domain.PBPOOLS):
    cl_active: int = gauge("active", "client")
    cl_waiting: int = gauge("waiting", "client")
    sv_active: int = gauge("active", "server")
    sv_idle: int = gauge("idle", "server")
    sv_used: int = gauge("used", "server")
    sv_tested: int = gauge("tested", "server")
    sv_login: int = gauge("login", "server")
    maxwait: int = gauge("maxwait", "misc")


@dataclass
class PgBouncerStats(CounterRecord, domain=Domain.PBSTATS):
    total_xact_count: int = counter("xacts", "count", width=8)
    total_query_count: int = counter("queries", "count", width=8)
    total_received: int = counter("received", "bytes", width=9, unit="bytes")
    total_sent: int = counter("sent", "bytes", width=9, unit="bytes")
    total_xact_time: int = counter("xact", "time (us)", width=10)
    total_query_time: int = counter("query", "time (us)", width=10)
    total_wait_time: int = counter("wait", "time (us)", width=10)
