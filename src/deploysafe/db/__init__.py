"""Database access helpers for the protected SQLite file."""

from .counts import RowCounter, RowCounts, SqlRowCounter, count_rows
from .session import get_engine, raw_sqlite_connection

__all__ = [
    "RowCounter",
    "RowCounts",
    "SqlRowCounter",
    "count_rows",
    "get_engine",
    "raw_sqlite_connection",
]
