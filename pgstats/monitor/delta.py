"""Delta engine: previous-sample bookkeeping for one counter record type."""

from __future__ import annotations

from typing import Callable

from pgstats.monitor.records import COUNTER, CounterRecord


class DeltaEngine:
    """Turns successive samples into printable rows.

    The previous record starts zeroed, so the first row shows raw values.
    Counters are reported as ``current - previous`` (negative after a stats
    reset, surfaced as is); gauges and text fields pass through.
    """

    def __init__(self, record_cls: type[CounterRecord]):
        self.record_cls = record_cls
        self.previous = record_cls()
        self._counters = [s.name for s in record_cls.specs() if s.kind == COUNTER]

    def diff(self, current: CounterRecord) -> dict:
        row = current.values()
        for name in self._counters:
            row[name] = row[name] - getattr(self.previous, name)
        return row

    def advance(self, current: CounterRecord, emit: Callable[[dict], None]) -> dict:
        """Emit the delta row, then remember ``current`` as the previous sample.

        If ``emit`` raises, the previous sample is left untouched.
        """
        row = self.diff(current)
        emit(row)
        self.previous = current
        return row

    def reset(self) -> None:
        self.previous = self.record_cls()
