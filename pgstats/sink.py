"""Append-only CSV files, one per snapshot domain."""

from __future__ import annotations

import logging
import os
from datetime import datetime

logger = logging.getLogger(__name__)

SEPARATOR = ";"
TERMINATOR = "\n"


def format_value(value) -> str:
    """Render a value the way psql prints it in unaligned mode."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "t" if value else "f"
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    return str(value)


class CsvSink:
    """Writes samples below ``directory``.

    The header goes out only when the file was empty when opened, and
    never when ``quiet`` is set. Values are not escaped; text columns are
    expected to come out of their query without separators or line feeds.
    """

    def __init__(self, directory: str, quiet: bool = False):
        self.directory = directory
        self.quiet = quiet

    def path_for(self, name: str) -> str:
        return os.path.join(self.directory, f"{name}.csv")

    def open(self, name: str):
        """Open ``name`` for append and report whether it needs a header.

        Returns ``(file, write_header)``. This runs before the query so
        that an unwritable directory fails without touching the server.
        """
        path = self.path_for(name)
        handle = open(path, "a", encoding="utf-8", newline="")
        size = os.fstat(handle.fileno()).st_size
        return handle, (not self.quiet and size == 0)

    def write(self, handle, write_header: bool, columns: list[str], rows: list[tuple]) -> int:
        if write_header:
            handle.write(SEPARATOR.join(columns) + TERMINATOR)
        for row in rows:
            handle.write(SEPARATOR.join(format_value(v) for v in row) + TERMINATOR)
        return len(rows)
