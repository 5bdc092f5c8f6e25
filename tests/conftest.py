"""Shared fixtures for pgstats tests."""

from __future__ import annotations

from dataclasses import dataclass, field

import psycopg2
import pytest

from pgstats.signals import SignalFlags
from pgstats.version import ServerVersion


@dataclass
class Result:
    """Canned answer to a statement: column names and rows."""

    columns: list[str] = field(default_factory=list)
    rows: list[tuple] = field(default_factory=list)


class FakeDbError(psycopg2.Error):
    """Driver error carrying a SQLSTATE, as raised by a real server."""

    def __init__(self, message: str, pgcode: str | None = None):
        super().__init__(message)
        self._message = message
        self._pgcode = pgcode

    @property
    def pgcode(self):
        return self._pgcode

    @property
    def pgerror(self):
        return self._message


class FakeCursor:
    def __init__(self, conn: FakeConnection):
        self.conn = conn
        self.description = None
        self._rows: list[tuple] = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, sql, params=None):
        self.conn.executed.append((sql, params))
        answer = self.conn.answer(sql)
        if isinstance(answer, BaseException):
            raise answer
        if answer is None:
            self.description = None
            self._rows = []
            return
        self.description = [(name,) for name in answer.columns]
        self._rows = list(answer.rows)

    def fetchall(self):
        return self._rows


class FakeConnection:
    """Scripted stand-in for a psycopg2 connection.

    ``on(fragment, *answers)`` registers answers for every statement
    containing ``fragment``. Answers are consumed in order and the last one
    keeps being returned. An answer is a :class:`Result`, an exception to
    raise, or None for a statement without a result set. Statements nobody
    scripted return no rows.
    """

    def __init__(self):
        self.executed: list[tuple[str, object]] = []
        self.closed = 0
        self._script: list[tuple[str, list]] = []

    def on(self, fragment: str, *answers) -> FakeConnection:
        self._script.insert(0, (fragment, list(answers)))
        return self

    def answer(self, sql: str):
        for fragment, answers in self._script:
            if fragment in sql:
                if len(answers) > 1:
                    return answers.pop(0)
                return answers[0] if answers else None
        return Result()

    def cursor(self):
        if self.closed:
            raise psycopg2.InterfaceError("connection already closed")
        return FakeCursor(self)

    def close(self):
        self.closed = 1

    @property
    def statements(self) -> list[str]:
        return [sql for sql, _ in self.executed]

    def ran(self, fragment: str) -> bool:
        return any(fragment in sql for sql in self.statements)


def version_result(text: str) -> Result:
    return Result(["version"], [(text,)])


@pytest.fixture
def fake_conn() -> FakeConnection:
    return FakeConnection()


@pytest.fixture
def pg16_conn() -> FakeConnection:
    """Fake connection answering SELECT version() like a 16.2 server."""
    conn = FakeConnection()
    conn.on("SELECT version()", version_result("PostgreSQL 16.2 on x86_64-pc-linux-gnu, 64-bit"))
    return conn


@pytest.fixture
def flags() -> SignalFlags:
    return SignalFlags()


# Releases every catalog template is checked against
VERSION_GRID = [
    ServerVersion(major, minor)
    for major, minor in (
        (8, 2), (8, 3), (8, 4), (9, 0), (9, 1), (9, 2), (9, 4), (9, 5), (9, 6),
        (10, 0), (11, 0), (12, 0), (13, 0), (14, 0), (15, 0), (16, 0), (17, 0), (18, 0),
    )
]
