"""Server-side helper objects installed for the duration of a trace.

The helper lives in its own schema so that a single ``DROP SCHEMA ...
CASCADE`` removes it; the sampling table is a temporary table and would
vanish with the session anyway, but it is dropped explicitly too.
"""

from __future__ import annotations

import logging

from pgstats.connection import execute
from pgstats.errors import PgStatsError

logger = logging.getLogger(__name__)

SCHEMA = "pgwaitevent"
FUNCTION = f"{SCHEMA}.trace_wait_events_for_pid"

CREATE_SCHEMA = f"CREATE SCHEMA IF NOT EXISTS {SCHEMA}"

CREATE_TABLE = (
    "CREATE TEMPORARY TABLE IF NOT EXISTS waitevents "
    "(we text, wet text, o integer, UNIQUE (we, wet))"
)

PID_ONLY = "psa.pid = p"
LEADER_AND_WORKERS = "psa.pid = p OR psa.leader_pid = p"

# RAISE EXCEPTION without an explicit SQLSTATE
HELPER_REFUSED = "P0001"

FUNCTION_TEMPLATE = """\
CREATE OR REPLACE FUNCTION {function}(p integer, s numeric DEFAULT 1)
RETURNS TABLE (wait_event text, wait_event_type text, occurrences integer, percent numeric(5,2))
LANGUAGE plpgsql
AS $$
DECLARE
    q text;
    current_event text;
BEGIN
    SELECT psa.query INTO q FROM pg_stat_activity psa
    WHERE psa.pid = p AND psa.backend_type = 'client backend' AND psa.state = 'active';

    IF NOT FOUND THEN
        RAISE EXCEPTION 'PID % doesn''t appear to be an active backend', p
            USING HINT = 'Check the PID and its state';
    END IF;

    RAISE LOG 'Tracing PID %, sampling at %s', p, s;
    RAISE LOG 'Query is <%>', q;

    TRUNCATE pg_temp.waitevents;

    LOOP
        SELECT psa.wait_event INTO current_event FROM pg_stat_activity psa
        WHERE psa.pid = p AND psa.state = 'active';

        EXIT WHEN NOT FOUND OR current_event IS NOT DISTINCT FROM 'ClientRead';

        INSERT INTO pg_temp.waitevents (we, wet, o)
            SELECT coalesce(psa.wait_event, '[Running]'), coalesce(psa.wait_event_type, ''), count(*)
            FROM pg_stat_activity psa
            WHERE {predicate}
            GROUP BY 1, 2
        ON CONFLICT (we, wet) DO UPDATE SET o = waitevents.o + excluded.o;

        PERFORM pg_sleep(s);
    END LOOP;

    RETURN QUERY
        SELECT w.we, w.wet, w.o, (w.o * 100. / sum(w.o) OVER ())::numeric(5,2)
        FROM pg_temp.waitevents w
        ORDER BY w.o DESC, w.we;
END
$$"""

TEARDOWN = (
    f"DROP SCHEMA IF EXISTS {SCHEMA} CASCADE",
    "DROP TABLE IF EXISTS pg_temp.waitevents",
)


def function_ddl(include_workers: bool) -> str:
    predicate = LEADER_AND_WORKERS if include_workers else PID_ONLY
    return FUNCTION_TEMPLATE.format(function=FUNCTION, predicate=predicate)


class TracerSession:
    """Context manager owning the helper objects.

    ``__exit__`` drops them whatever happened inside the block: normal end,
    SIGINT, a vanished target or a failed query.
    """

    def __init__(self, conn, include_workers: bool = False):
        self.conn = conn
        self.include_workers = include_workers
        self.installed = False

    def build(self) -> None:
        self.installed = True
        execute(self.conn, CREATE_TABLE)
        logger.info("Temporary table created")
        execute(self.conn, CREATE_SCHEMA)
        execute(self.conn, function_ddl(self.include_workers))
        logger.info("Function created")

    def drop(self) -> None:
        for statement in TEARDOWN:
            execute(self.conn, statement)
        self.installed = False
        logger.info("Function dropped")

    def __enter__(self) -> TracerSession:
        try:
            self.build()
        except BaseException:
            self._drop_after_failure()
            raise
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None:
            self.drop()
        else:
            self._drop_after_failure()
        return False

    def _drop_after_failure(self) -> None:
        """Drop while another exception propagates; never mask it."""
        if not self.installed:
            return
        if self.conn.closed:
            logger.warning("connection lost, schema %s could not be dropped", SCHEMA)
            return
        try:
            self.drop()
        except PgStatsError as e:
            logger.warning("could not drop schema %s: %s", SCHEMA, e)
