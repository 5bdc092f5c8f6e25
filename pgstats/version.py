"""Server version detection and the version gate used by every query."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from pgstats.connection import run_query
from pgstats.errors import QueryFailed, VersionUnavailable

logger = logging.getLogger(__name__)

# "PostgreSQL 14.5 on x86_64...", "PostgreSQL 17devel", "PostgreSQL 16beta2 ..."
_VERSION_PATTERN = re.compile(r"^\s*\S+\s+(\d+)(?:\.(\d+))?(?:devel|beta\d*|rc\d*)?\b")
_SCRIPT_VERSION_PATTERN = re.compile(r"^\s*(\d+)(?:\.(\d+))?\s*$")


@dataclass(frozen=True, order=True)
class ServerVersion:
    major: int
    minor: int = 0

    def at_least(self, major: int, minor: int = 0) -> bool:
        """True when the server is ``major.minor`` or newer."""
        return self.major > major or (self.major == major and self.minor >= minor)

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}"


def parse_version(identification: str | None) -> ServerVersion:
    """Parse the output of ``SELECT version()``.

    Only the first two numbers after the product name matter; the
    ``M.m`` pair is what every template is gated on.
    """
    if not identification:
        raise VersionUnavailable("empty server version string")
    match = _VERSION_PATTERN.match(identification)
    if not match:
        raise VersionUnavailable(f"cannot parse server version from {identification!r}")
    return ServerVersion(int(match.group(1)), int(match.group(2) or 0))


def parse_script_version(text: str) -> ServerVersion:
    """Parse a bare ``M.m`` string, as given to the reporter's script mode."""
    match = _SCRIPT_VERSION_PATTERN.match(text or "")
    if not match:
        raise VersionUnavailable(f"invalid version {text!r}, expected MAJOR.MINOR")
    return ServerVersion(int(match.group(1)), int(match.group(2) or 0))


def fetch_version(conn) -> ServerVersion:
    """Ask the server for its version once per session."""
    try:
        rows = run_query(conn, "SELECT version()")
    except QueryFailed as exc:
        raise VersionUnavailable(f"cannot fetch server version: {exc.message}") from exc
    if not rows:
        raise VersionUnavailable("SELECT version() returned no row")
    version = parse_version(rows[0][0])
    logger.info("Detected release: %s", version)
    return version
