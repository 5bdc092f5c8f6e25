"""Poll a backend and trace the wait events of every query it runs."""

from __future__ import annotations

import logging
import sys
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, TextIO

from tabulate import tabulate

from pgstats.connection import run_query
from pgstats.errors import Interrupted, QueryFailed, TargetGone, VersionTooLow
from pgstats.signals import SignalFlags
from pgstats.tracer.bootstrap import FUNCTION, HELPER_REFUSED, TracerSession
from pgstats.version import fetch_version

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.1

ACTIVITY_QUERY = (
    "SELECT state, query, query_start, now() FROM pg_stat_activity "
    "WHERE backend_type = 'client backend' AND pid = %(pid)s"
)
WORKERS_QUERY = "SELECT count(*) FROM pg_stat_activity WHERE pid = %(pid)s OR leader_pid = %(pid)s"
TRACE_QUERY = f"SELECT * FROM {FUNCTION}(%(pid)s, %(interval)s::numeric)"
DURATION_QUERY = (
    "SELECT (now() - %(query_start)s::timestamptz)::text, "
    "(now() - %(trace_start)s::timestamptz)::text"
)

HISTOGRAM_HEADERS = ["Wait event", "WE type", "Occurrences", "Percent"]


@dataclass
class TracedQuery:
    text: str
    query_start: datetime
    trace_start: datetime


@dataclass
class WaitEventHistogram:
    """Occurrences per ``(wait_event, wait_event_type)`` for one traced query."""

    counts: dict[tuple[str, str], int] = field(default_factory=dict)
    percents: dict[tuple[str, str], float] = field(default_factory=dict)

    @classmethod
    def from_rows(cls, rows) -> WaitEventHistogram:
        histogram = cls()
        for event, event_type, occurrences, percent in rows:
            key = (event, event_type)
            histogram.counts[key] = int(occurrences)
            histogram.percents[key] = float(percent or 0)
        return histogram

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    def ordered(self) -> list[tuple[str, str, int, float]]:
        keys = sorted(self.counts, key=lambda k: (-self.counts[k], k))
        return [(k[0], k[1], self.counts[k], self.percents[k]) for k in keys]

    def render(self) -> str:
        return tabulate(
            self.ordered(),
            headers=HISTOGRAM_HEADERS,
            tablefmt="simple_outline",
            floatfmt=".2f",
        )


class WaitEventTracer:
    def __init__(
        self,
        conn,
        pid: int,
        flags: SignalFlags,
        interval: float = 1.0,
        include_workers: bool = False,
        out: TextIO | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.conn = conn
        self.pid = pid
        self.flags = flags
        self.interval = interval
        self.include_workers = include_workers
        self.out = out or sys.stdout
        self._sleep = sleep

    def _print(self, text: str = "") -> None:
        print(text, file=self.out)
        self.out.flush()

    def poll(self) -> TracedQuery | None:
        """Return the running query of the target, if it is active.

        Raises TargetGone once the pid left pg_stat_activity.
        """
        rows = run_query(self.conn, ACTIVITY_QUERY, {"pid": self.pid})
        if not rows:
            self._print(f"\nNo more session with PID {self.pid}, exiting...")
            raise TargetGone(f"no more session with PID {self.pid}")
        if len(rows) != 1:
            return None
        state, text, query_start, now = rows[0]
        if state != "active":
            return None
        self._print(f"\nNew query: {text}")
        return TracedQuery(text=text, query_start=query_start, trace_start=now)

    def trace(self, query: TracedQuery) -> WaitEventHistogram | None:
        """Run the helper until the query ends and print its histogram."""
        workers = None
        if self.include_workers:
            workers = run_query(self.conn, WORKERS_QUERY, {"pid": self.pid})[0][0]

        try:
            rows = run_query(self.conn, TRACE_QUERY, {"pid": self.pid, "interval": self.interval})
        except QueryFailed as e:
            if e.pgcode == HELPER_REFUSED:
                logger.debug("helper refused PID %d: %s", self.pid, e.message)
                return None
            raise

        query_duration, trace_duration = run_query(
            self.conn,
            DURATION_QUERY,
            {"query_start": query.query_start, "trace_start": query.trace_start},
        )[0]
        self._print(f"Query duration: {query_duration}")
        self._print(f"Trace duration: {trace_duration}")
        if workers is not None:
            self._print(f"Number of processes: {workers}")

        histogram = WaitEventHistogram.from_rows(rows)
        self._print(histogram.render())
        return histogram

    def run(self) -> None:
        mode = "including leader and workers" if self.include_workers else "PID only"
        self._print(
            f"Tracing wait events for PID {self.pid}, sampling at {self.interval:.3f}s, {mode}"
        )
        while True:
            if self.flags.shutdown:
                raise Interrupted("interrupted")
            query = self.poll()
            if query is not None:
                self.trace(query)
            self._sleep(POLL_INTERVAL)


def run_tracer(
    conn,
    pid: int,
    flags: SignalFlags,
    interval: float = 1.0,
    include_workers: bool = False,
) -> None:
    """Check the server, install the helper, trace until stopped."""
    version = fetch_version(conn)
    if not version.at_least(10, 0):
        raise VersionTooLow("the wait-event tracer", (10, 0))
    if include_workers and not version.at_least(13, 0):
        raise VersionTooLow("including leader and workers' wait events", (13, 0))

    with TracerSession(conn, include_workers):
        WaitEventTracer(conn, pid, flags, interval, include_workers).run()
