"""Row counts for the tracked product tables.

The product is an external collaborator; all deploysafe needs from it is
an aggregate ``COUNT(*)`` per logical table.  Counting is cheap and
bounded, so the health endpoint can afford it on every request.
"""

from __future__ import annotations

from pathlib import Path
from typing import Mapping, Protocol, Union

import sqlalchemy as sa
from pydantic import BaseModel, ConfigDict
from sqlalchemy.engine import Engine

from ..config import TRACKED_TABLES
from .session import get_engine


class RowCounts(BaseModel):
    """Row counts of the tracked tables."""

    model_config = ConfigDict(frozen=True)

    users: int = 0
    scans: int = 0
    scores: int = 0

    @property
    def total(self) -> int:
        return self.users + self.scans + self.scores

    def summary(self) -> str:
        return f"{self.users} users, {self.scans} scans, {self.scores} scores"


def count_rows(engine: Engine, tables: Mapping[str, str] = TRACKED_TABLES) -> RowCounts:
    """Count rows of every tracked table through ``engine``.

    SQLAlchemy errors (missing table, unreadable file) propagate to the
    caller, which decides how to report them.
    """
    counts = {}
    with engine.connect() as conn:
        for logical, physical in tables.items():
            quoted = '"' + physical.replace('"', '""') + '"'
            counts[logical] = int(conn.execute(sa.text(f"SELECT COUNT(*) FROM {quoted}")).scalar() or 0)
    return RowCounts(**counts)


class RowCounter(Protocol):
    """Anything that can report the current row counts."""

    def count_rows(self) -> RowCounts:  # pragma: no cover - protocol
        ...


class SqlRowCounter:
    """Row counter reading the product database file read-only."""

    def __init__(self, database_path: Union[str, Path]) -> None:
        self.database_path = database_path

    def count_rows(self) -> RowCounts:
        engine = get_engine(self.database_path, read_only=True)
        try:
            return count_rows(engine)
        finally:
            engine.dispose()


__all__ = ["RowCounts", "RowCounter", "SqlRowCounter", "count_rows"]
