"""pgstats: statistics, reporting and tracing utilities for PostgreSQL."""

__version__ = "1.3.0"
