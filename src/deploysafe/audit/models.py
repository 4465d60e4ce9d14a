"""Pydantic models for the product's audit trail.

The audit log is written by the product, one JSON object per line.
deploysafe only reads it.  Keys the product adds beyond the documented
ones (``userAgent``, ``ipAddress``, ``sessionId``) are preserved on the
model but otherwise ignored.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class Operation(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    BULK_DELETE = "BULK_DELETE"
    RESTORE = "RESTORE"
    BACKUP = "BACKUP"


# Operations that destroy or overwrite data
CRITICAL_OPERATIONS = frozenset({Operation.DELETE, Operation.BULK_DELETE, Operation.RESTORE})
DELETE_OPERATIONS = frozenset({Operation.DELETE, Operation.BULK_DELETE})


class AuditEntry(BaseModel):
    """One line of the audit log."""

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    timestamp: datetime
    operation: Operation
    table: str
    record_id: Optional[str] = None
    user_id: Optional[str] = None
    username: Optional[str] = None
    affected_rows: Optional[int] = None
    details: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_validator("record_id", "user_id", mode="before")
    @classmethod
    def _id_to_str(cls, value: Any) -> Any:
        # The product writes numeric and string identifiers interchangeably
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("details", mode="before")
    @classmethod
    def _null_details(cls, value: Any) -> Any:
        return {} if value is None else value

    def describe(self) -> str:
        """One-line summary: ``<timestamp> - <OPERATION> on <table>``."""
        return f"{self.timestamp.isoformat()} - {self.operation.value} on {self.table}"


__all__ = ["Operation", "CRITICAL_OPERATIONS", "DELETE_OPERATIONS", "AuditEntry"]
