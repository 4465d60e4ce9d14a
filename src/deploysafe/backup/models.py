"""Pydantic models produced by the backup engine."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ..db.counts import RowCounts


class VerificationResult(BaseModel):
    """Outcome of a read-only integrity check of a database file.

    A valid result carries the row counts of the tracked tables; an
    invalid one carries an ``error`` message instead.
    """

    model_config = ConfigDict(frozen=True)

    valid: bool
    users: Optional[int] = None
    scans: Optional[int] = None
    scores: Optional[int] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, counts: RowCounts) -> "VerificationResult":
        return cls(valid=True, users=counts.users, scans=counts.scans, scores=counts.scores)

    @classmethod
    def failed(cls, error: str) -> "VerificationResult":
        return cls(valid=False, error=error)

    def row_counts(self) -> Optional[RowCounts]:
        if not self.valid:
            return None
        return RowCounts(users=self.users or 0, scans=self.scans or 0, scores=self.scores or 0)

    def to_payload(self) -> Dict[str, Any]:
        if self.valid:
            return {"valid": True, "users": self.users, "scans": self.scans, "scores": self.scores}
        return {"valid": False, "error": self.error}


class BackupRecord(BaseModel):
    """A timestamped backup file and what is known about it.

    ``created_at`` is taken from the timestamp embedded in the filename,
    which is written when the backup is created and does not change when
    the file is touched or copied between volumes.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    filename: str
    path: str
    created_at: datetime
    size_bytes: int
    verified: bool
    row_counts: Optional[RowCounts] = None
    error: Optional[str] = None

    @property
    def size_kb(self) -> int:
        return round(self.size_bytes / 1024)

    def age_hours(self, now: datetime) -> float:
        return (now - self.created_at).total_seconds() / 3600.0


class VerificationStamp(BaseModel):
    """Marker written next to a backup once it has passed verification.

    The stamp records the file's size and modification time at
    verification.  A backup whose current size or mtime differs is no
    longer covered by its stamp and has to be verified again.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    verified_at: datetime
    size_bytes: int
    mtime_ns: int
    row_counts: RowCounts

    def matches(self, size_bytes: int, mtime_ns: int) -> bool:
        return self.size_bytes == size_bytes and self.mtime_ns == mtime_ns


class RestoreResult(BaseModel):
    """Outcome of restoring a backup over the live database."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    database_path: str
    backup_path: str
    pre_restore_path: Optional[str] = None
    row_counts: RowCounts


__all__ = ["VerificationResult", "BackupRecord", "VerificationStamp", "RestoreResult"]
