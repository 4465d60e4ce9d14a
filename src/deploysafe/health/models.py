"""Pydantic models for the deploysafe health report.

A :class:`HealthReport` is a point-in-time snapshot assembled by
:func:`deploysafe.health.checks.build_health_report`.  It is served as
JSON by the health endpoint and parsed back by the deployment gate, so
the JSON field names (camelCase) are part of the external contract.
Python attributes use snake_case; the alias generator maps between the
two and ``populate_by_name`` lets code build reports with either.
"""

from __future__ import annotations

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ..db.counts import RowCounts
from ..persistence.classifier import PersistenceStatus

HealthStatus = Literal["healthy", "error"]

_CAMEL = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class DatabaseFacts(BaseModel):
    """Filesystem facts about the database file."""

    model_config = _CAMEL

    path: str
    exists: bool
    size_bytes: int = 0
    readable: bool = False
    writable: bool = False


class BackupStatus(BaseModel):
    """Freshness of the verified backup inventory.

    Attributes:
        has_recent_backup: The newest verified backup is younger than
            the freshness threshold (24 hours by default).
        backup_count: Number of verified backups on disk.
        most_recent_backup: Filename of the newest verified backup.
        most_recent_age_hours: Age of that backup, rounded to 0.1 h.
        warning: Human-readable freshness warning, if any.
    """

    model_config = _CAMEL

    has_recent_backup: bool = False
    backup_count: int = 0
    most_recent_backup: Optional[str] = None
    most_recent_age_hours: Optional[float] = None
    warning: Optional[str] = None


class EnvironmentFacts(BaseModel):
    model_config = _CAMEL

    node_env: str
    is_hosted_platform: bool
    deployment_timestamp: Optional[str] = None


class HealthReport(BaseModel):
    """Aggregated health report.

    ``persistence``, ``environment`` and ``timestamp`` are always
    present.  ``database``, ``data`` and ``backup`` are ``None`` when
    they could not be determined; in that case ``status`` is ``error``
    and ``error`` explains why.
    """

    model_config = _CAMEL

    status: HealthStatus
    database: Optional[DatabaseFacts] = None
    persistence: PersistenceStatus
    data: Optional[RowCounts] = None
    backup: Optional[BackupStatus] = None
    environment: EnvironmentFacts
    timestamp: str
    error: Optional[str] = None

    @property
    def is_healthy(self) -> bool:
        return self.status == "healthy"

    def to_payload(self) -> Dict[str, Any]:
        """Return the JSON-ready wire form.

        Top-level sections that could not be computed are omitted
        instead of being sent as ``null``; nested nullable fields such
        as ``backup.mostRecentBackup`` keep their explicit ``null``.
        """
        payload = self.model_dump(mode="json", by_alias=True)
        return {key: value for key, value in payload.items() if value is not None}


__all__ = [
    "HealthStatus",
    "DatabaseFacts",
    "BackupStatus",
    "EnvironmentFacts",
    "HealthReport",
]
