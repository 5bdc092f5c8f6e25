"""Colored block map of a relation's free space, read from pg_freespacemap."""

from __future__ import annotations

import logging
import sys
from typing import TextIO

from pgstats.connection import run_query
from pgstats.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_GROUPS = 20

# shade of a completely free group; full groups are pure red
COLOR_BOUND = 180

EXTENSION_QUERY = "SELECT 1 FROM pg_extension WHERE extname = 'pg_freespacemap'"
BLOCK_SIZE_QUERY = "SELECT current_setting('block_size')"
FREESPACE_QUERY = "SELECT avail FROM pg_freespace(%(relation)s::regclass) ORDER BY blkno"


def group_size(nblocks: int, groups: int) -> int:
    if nblocks <= groups:
        return 1
    return nblocks // groups


def shade(free: int, blocksize: int, nblocks: int) -> int:
    """Green/blue component for a group of ``nblocks`` with ``free`` bytes free."""
    return max(COLOR_BOUND * free // (blocksize * nblocks), 0)


def cell(color: int) -> str:
    return f"\033[48;2;255;{color};{color}m \033[0m"


def group_shades(avail: list[int], blocksize: int, groupby: int) -> list[int]:
    """One shade per group of ``groupby`` blocks; the last group may be shorter."""
    shades = []
    for start in range(0, len(avail), groupby):
        chunk = avail[start:start + groupby]
        shades.append(shade(sum(chunk), blocksize, len(chunk)))
    return shades


def fetch_block_size(conn) -> int:
    rows = run_query(conn, BLOCK_SIZE_QUERY)
    blocksize = int(rows[0][0])
    logger.info("Detected block size: %d", blocksize)
    return blocksize


def display_fsm(
    conn,
    relation: str,
    groups: int = DEFAULT_GROUPS,
    out: TextIO | None = None,
) -> list[int]:
    """Print the free-space map of ``relation``. Returns the shades drawn."""
    out = out or sys.stdout
    if groups <= 0:
        raise ConfigError("number of groups must be a positive integer")
    if not run_query(conn, EXTENSION_QUERY):
        raise ConfigError("pg_freespacemap is not installed in this database.")

    blocksize = fetch_block_size(conn)
    rows = run_query(conn, FREESPACE_QUERY, {"relation": relation})
    avail = [int(row[0]) for row in rows]
    nblocks = len(avail)
    groupby = group_size(nblocks, groups)

    print(f"Number of blocks: {nblocks}", file=out)
    print(f"Relation size: {nblocks * blocksize}", file=out)
    print(f"... group of {groupby}", file=out)
    print("\n", file=out)

    shades = group_shades(avail, blocksize, groupby)
    print("".join(cell(color) for color in shades), file=out)
    print("\n", file=out)
    return shades
