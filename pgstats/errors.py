"""Error taxonomy shared by every pgstats utility.

Each exception carries the process exit status the CLI should use, so the
command layer is the only place that turns failures into ``sys.exit``.
"""

from __future__ import annotations


class PgStatsError(Exception):
    """Base class for every fatal condition a utility can report."""

    exit_code: int = 1


class ConfigError(PgStatsError):
    """Missing required option, invalid numeric argument, unknown stat."""


class ConnectionFailed(PgStatsError):
    """The connection could not be established or was lost mid-run."""


class QueryFailed(PgStatsError):
    """The server rejected a statement; keeps the SQL for diagnosis."""

    def __init__(self, message: str, sql: str, pgcode: str | None = None):
        super().__init__(message)
        self.message = message
        self.sql = sql
        self.pgcode = pgcode


class VersionUnavailable(PgStatsError):
    """The server identification string could not be parsed."""


class VersionTooLow(PgStatsError):
    """The requested feature needs a newer server than the one detected."""

    def __init__(self, feature: str, required: tuple[int, int]):
        major, minor = required
        required_label = f"{major}" if major >= 10 and minor == 0 else f"{major}.{minor}"
        super().__init__(f"You need at least v{required_label} for {feature}.")
        self.feature = feature
        self.required = required


class SinkError(PgStatsError):
    """A CSV file could not be opened or written."""


class TargetGone(PgStatsError):
    """The traced backend is no longer present in pg_stat_activity."""

    exit_code = 2


class Interrupted(PgStatsError):
    """SIGINT arrived; the run stops after closing the connection."""
