"""Fixed-width rendering of monitor headers and rows."""

from __future__ import annotations

from pgstats.connection import run_query
from pgstats.monitor.records import TEXT, CounterRecord, FieldSpec

PRETTY_SIZE_SQL = "SELECT {}"


def header_lines(record_cls: type[CounterRecord]) -> list[str]:
    """Two header lines: dashed group titles above right-aligned labels."""
    specs = record_cls.specs()
    groups: list[tuple[str, int]] = []
    for spec in specs:
        if groups and groups[-1][0] == spec.group:
            title, span = groups[-1]
            groups[-1] = (title, span + 1 + spec.width)
        else:
            groups.append((spec.group, spec.width))

    titles = []
    for title, span in groups:
        if title:
            titles.append(f" {title} ".center(span, "-"))
        else:
            titles.append(" " * span)
    labels = [_align(spec, spec.label) for spec in specs]
    return [(" " + " ".join(titles)).rstrip(), " " + " ".join(labels)]


def _align(spec: FieldSpec, value: str) -> str:
    if spec.kind == TEXT:
        return value.ljust(spec.width)
    return value.rjust(spec.width)


def format_value(spec: FieldSpec, value) -> str:
    if isinstance(value, str):
        return value
    if spec.is_float:
        return f"{value:.2f}"
    return str(value)


def format_row(record_cls: type[CounterRecord], row: dict, pretty: dict | None = None) -> str:
    """One output line; ``pretty`` maps byte fields to server-formatted sizes."""
    cells = []
    for spec in record_cls.specs():
        if pretty and spec.name in pretty:
            rendered = pretty[spec.name]
        else:
            rendered = format_value(spec, row[spec.name])
        cells.append(_align(spec, rendered))
    return (" " + " ".join(cells)).rstrip()


def pretty_sizes(conn, record_cls: type[CounterRecord], row: dict) -> dict:
    """Format every byte field of ``row`` with the server's pg_size_pretty.

    One round trip per row; the values travel as bound parameters.
    """
    names = [spec.name for spec in record_cls.specs() if spec.is_bytes]
    if not names:
        return {}
    select = ", ".join("pg_size_pretty(%s::numeric)" for _ in names)
    result = run_query(conn, PRETTY_SIZE_SQL.format(select), [row[name] for name in names])
    return dict(zip(names, result[0]))
