"""Database connection management."""

from __future__ import annotations

import logging
import os
import select

import psycopg2
import psycopg2.extensions

from pgstats.errors import ConnectionFailed, Interrupted, QueryFailed

logger = logging.getLogger(__name__)

# Granularity of the wait loop: how quickly a pending SIGINT cancels a query.
_POLL_TIMEOUT = 0.1


def connect(
    host: str | None = None,
    port: int | None = None,
    dbname: str | None = None,
    user: str | None = None,
    password: str | None = None,
    application_name: str | None = None,
    readonly: bool = True,
) -> psycopg2.extensions.connection:
    """Open the single connection a utility works with.

    Unset arguments are left to libpq, which falls back to the standard
    PG* environment variables. The session runs in autocommit; it is
    read-only unless the caller needs to create helper objects.
    """
    params = {}
    if host:
        params["host"] = host
    if port:
        params["port"] = port
    if dbname:
        params["dbname"] = dbname
    if user:
        params["user"] = user
    if password:
        params["password"] = password
    elif os.environ.get("PGPASSWORD"):
        params["password"] = os.environ["PGPASSWORD"]
    if application_name:
        params["application_name"] = application_name

    try:
        conn = psycopg2.connect(**params)
    except psycopg2.OperationalError as e:
        raise ConnectionFailed(str(e).strip()) from e

    try:
        if readonly:
            conn.set_session(readonly=True, autocommit=True)
        else:
            conn.autocommit = True
    except psycopg2.Error as e:
        conn.close()
        raise ConnectionFailed(f"could not configure the session: {str(e).strip()}") from e
    return conn


def connection_hint(message: str, host: str | None, port: int | None) -> str | None:
    """Suggest a fix for the usual connection failures."""
    if "no password supplied" in message:
        return "Set the PGPASSWORD environment variable or use a password file."
    if "does not exist" in message:
        return "Check that the database name is correct."
    if "Connection refused" in message or "could not connect" in message.lower():
        return f"Check that PostgreSQL is running on {host or 'localhost'}:{port or 5432}."
    return None


def wait_callback(flags):
    """Build a psycopg2 wait callback that cancels the running statement on SIGINT.

    The signal handler only sets ``flags.shutdown``; this loop notices it
    between two polls and asks the server to cancel, so a blocking query
    never keeps the process hostage.
    """

    def _wait(conn):
        # statements started after SIGINT (teardown) must be left alone
        already_down = flags.shutdown
        cancelled = False
        while True:
            state = conn.poll()
            if state == psycopg2.extensions.POLL_OK:
                return
            if flags.shutdown and not already_down and not cancelled:
                conn.cancel()
                cancelled = True
            if state == psycopg2.extensions.POLL_READ:
                select.select([conn.fileno()], [], [], _POLL_TIMEOUT)
            elif state == psycopg2.extensions.POLL_WRITE:
                select.select([], [conn.fileno()], [], _POLL_TIMEOUT)
            else:
                raise psycopg2.OperationalError(f"bad state from poll: {state}")

    return _wait


def cancel_on_shutdown(flags) -> None:
    """Install :func:`wait_callback` for every connection of the process."""
    psycopg2.extensions.set_wait_callback(wait_callback(flags))


def fetch(conn, sql: str, params=None) -> tuple[list[str], list[tuple]]:
    """Execute ``sql`` and return ``(column names, rows)``.

    Every statement of the suite goes through here so that driver errors
    surface as :class:`QueryFailed` carrying the offending SQL.
    """
    try:
        with conn.cursor() as cur:
            cur.execute(sql, params)
            if cur.description is None:
                return [], []
            columns = [desc[0] for desc in cur.description]
            return columns, cur.fetchall()
    except psycopg2.extensions.QueryCanceledError as e:
        raise Interrupted("query cancelled") from e
    except psycopg2.Error as e:
        if conn.closed:
            raise ConnectionFailed(f"connection lost: {str(e).strip()}") from e
        message = (e.pgerror or str(e)).strip()
        logger.debug("query failed: %s", message)
        raise QueryFailed(message, sql, e.pgcode) from e


def run_query(conn, sql: str, params=None) -> list[tuple]:
    """Execute ``sql`` and return its rows."""
    return fetch(conn, sql, params)[1]


def execute(conn, sql: str, params=None) -> None:
    """Execute a statement whose result is not needed (DDL, SET)."""
    fetch(conn, sql, params)


def close_quietly(conn) -> None:
    """Close ``conn`` if it is still open."""
    if conn is not None and not conn.closed:
        conn.close()
