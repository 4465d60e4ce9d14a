"""Database engine helpers.

This module centralises how deploysafe opens the product's SQLite
database file through SQLAlchemy.  Engines use :class:`NullPool` so no
connection outlives the operation that opened it; that matters because
backup files are verified and sometimes deleted right after use.

Read-only engines open the file through a SQLite URI with ``mode=ro``.
Such a connection never creates a missing file, which keeps checks of
a misconfigured path from leaving an empty database behind.
"""

from __future__ import annotations

import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Union
from urllib.parse import quote

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool

PathLike = Union[str, Path]


def _readonly_uri(path: PathLike) -> str:
    absolute = os.path.abspath(os.fspath(path))
    return f"file:{quote(absolute)}?mode=ro"


def get_engine(path: PathLike, *, read_only: bool = False, **kwargs) -> Engine:
    """Create a SQLAlchemy engine for a SQLite database file.

    Args:
        path: Filesystem path of the database file.
        read_only: Open through ``mode=ro`` so the file is neither
            created nor modified.
        **kwargs: Additional keyword arguments passed to
            ``sqlalchemy.create_engine``.

    Returns:
        A SQLAlchemy :class:`Engine`.
    """
    kwargs.setdefault("poolclass", NullPool)
    if read_only:
        uri = _readonly_uri(path)
        return create_engine(
            "sqlite://",
            creator=lambda: sqlite3.connect(uri, uri=True, check_same_thread=False),
            **kwargs,
        )
    return create_engine(f"sqlite:///{os.path.abspath(os.fspath(path))}", **kwargs)


@contextmanager
def raw_sqlite_connection(engine: Engine) -> Iterator[sqlite3.Connection]:
    """Yield the underlying :class:`sqlite3.Connection` of an engine.

    The online backup API lives on the DBAPI connection, not on
    SQLAlchemy's wrapper.  The connection is closed on exit.
    """
    proxied = engine.raw_connection()
    try:
        yield proxied.driver_connection
    finally:
        proxied.close()


__all__ = ["get_engine", "raw_sqlite_connection"]
