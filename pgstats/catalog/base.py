"""Fragment table used to compose version-dependent SQL.

A template is a list of columns; each column owns one or more fragments,
each valid from a given server release (and optionally until a later one).
Rendering picks the first applicable fragment of every column, so the
shape of a query is pure data and can be inspected without a server.
"""

from __future__ import annotations

from dataclasses import dataclass

from pgstats.errors import VersionTooLow
from pgstats.models import Domain
from pgstats.version import ServerVersion

Release = tuple[int, int]

ALWAYS: Release = (0, 0)
TIMESTAMP = "date_trunc('seconds', now())"

STATEMENTS_AVAILABLE_QUERY = (
    "SELECT 1 FROM pg_proc p, pg_namespace n "
    "WHERE p.proname = 'pg_stat_statements' AND p.pronamespace = n.oid"
)


@dataclass(frozen=True)
class Fragment:
    """One SQL snippet valid for ``since <= version < before``."""

    sql: str
    since: Release = ALWAYS
    before: Release | None = None

    def applies(self, version: ServerVersion) -> bool:
        if not version.at_least(*self.since):
            return False
        return self.before is None or not version.at_least(*self.before)


@dataclass(frozen=True)
class Column:
    """An output column and the expressions producing it across releases.

    Fragments are tried in order, so list the newest first. When no
    fragment applies the column is either dropped (``missing`` is None)
    or replaced by the ``missing`` literal, depending on the template.
    """

    name: str
    fragments: tuple[Fragment, ...]

    def render(self, version: ServerVersion, missing: str | None) -> str | None:
        for fragment in self.fragments:
            if fragment.applies(version):
                if fragment.sql == self.name:
                    return self.name
                return f"{fragment.sql} AS {self.name}"
        if missing is None:
            return None
        return f"{missing} AS {self.name}"


def col(name: str, sql: str | None = None, since: Release = ALWAYS) -> Column:
    """Column present from ``since`` onwards, defaulting to the bare name."""
    return Column(name, (Fragment(sql or name, since),))


def variants(name: str, *fragments: tuple[Release, str]) -> Column:
    """Column with one expression per release range, newest first."""
    return Column(name, tuple(Fragment(sql, since) for since, sql in fragments))


def star() -> Column:
    return Column("*", (Fragment("*"),))


@dataclass(frozen=True)
class Template:
    """A composed SELECT for one domain.

    ``filter_column`` names the column compared to the user supplied
    filter; the value always travels as the bound ``filter`` parameter.
    """

    domain: Domain
    name: str
    columns: tuple[Column, ...]
    sources: tuple[Fragment, ...]
    since: Release = ALWAYS
    conditions: tuple[Fragment, ...] = ()
    filter_column: str | None = None
    order_by: str = ""
    missing: str | None = None
    timestamp: bool = False

    def supported(self, version: ServerVersion) -> bool:
        return version.at_least(*self.since)

    def require(self, version: ServerVersion) -> None:
        if not self.supported(version):
            raise VersionTooLow(f"the {self.domain.value} statistic", self.since)

    def select_list(self, version: ServerVersion) -> list[str]:
        rendered = [column.render(version, self.missing) for column in self.columns]
        items = [item for item in rendered if item is not None]
        if self.timestamp:
            items.insert(0, TIMESTAMP)
        return items

    def column_names(self, version: ServerVersion) -> list[str]:
        """Names of the columns the rendered query returns, in order."""
        names = [
            column.name
            for column in self.columns
            if column.render(version, self.missing) is not None
        ]
        if self.timestamp:
            names.insert(0, "date_trunc")
        return names

    def source(self, version: ServerVersion) -> str:
        for fragment in self.sources:
            if fragment.applies(version):
                return fragment.sql
        raise VersionTooLow(f"the {self.domain.value} statistic", self.sources[-1].since)

    def render(self, version: ServerVersion, filter: str | None = None) -> tuple[str, dict | None]:
        """Compose the final SQL and its parameters."""
        self.require(version)
        sql = f"SELECT {', '.join(self.select_list(version))}"
        source = self.source(version)
        if source:
            sql += f" FROM {source}"
        conditions = [c.sql for c in self.conditions if c.applies(version)]
        params = None
        if filter is not None and self.filter_column:
            # literal percent signs must be doubled once parameters are bound
            sql = sql.replace("%", "%%")
            conditions = [c.replace("%", "%%") for c in conditions]
            conditions.append(f"{self.filter_column} = %(filter)s")
            params = {"filter": filter}
        if conditions:
            sql += " WHERE " + " AND ".join(conditions)
        if self.order_by:
            sql += f" ORDER BY {self.order_by}"
        return sql, params
