"""Statistics domains shared by the catalog, the monitor and the snapshotter."""

from __future__ import annotations

import enum


class Domain(enum.Enum):
    """Statistics subjects known to the suite."""

    ARCHIVER = "archiver"
    BGWRITER = "bgwriter"
    CONNECTION = "connection"
    DATABASE = "database"
    DATABASECONFLICTS = "databaseconflicts"
    REPLICATION = "replication"
    REPLICATIONSLOTS = "replicationslots"
    SLRU = "slru"
    SUBSCRIPTION = "subscription"
    WAL = "wal"
    WALRECEIVER = "walreceiver"
    ALLTABLES = "alltables"
    ALLINDEXES = "allindexes"
    IOTABLES = "iotables"
    IOINDEXES = "ioindexes"
    IOSEQUENCES = "iosequences"
    USERFUNCTIONS = "userfunctions"
    CLASSSIZE = "classsize"
    STATEMENTS = "statements"
    XLOG = "xlog"
    PROGRESSANALYZE = "progressanalyze"
    TABLESIO = "tablesio"
    INDEX = "index"
    FUNCTION = "function"
    STATEMENT = "statement"
    TEMPFILE = "tempfile"
    PBPOOLS = "pbpools"
    PBSTATS = "pbstats"
    WAITEVENT = "waitevent"
    FSM = "fsm"

    @classmethod
    def from_name(cls, name: str) -> Domain:
        """Look a domain up by its command-line spelling, aliases included."""
        name = name.strip().lower()
        name = _ALIASES.get(name, name)
        return cls(name)


_ALIASES = {
    "table": "alltables",
    "tableio": "tablesio",
}
