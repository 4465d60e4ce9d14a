"""Health aggregation for deploysafe.

:func:`build_health_report` assembles one :class:`HealthReport` from
four sources: the persistence classification of the current settings,
filesystem facts about the database file, row counts of the tracked
tables and the verified backup inventory.

The builder never raises.  Each section is computed independently; a
section that fails is left out of the report, ``status`` becomes
``error`` and the failure messages are joined into ``error``.  The
persistence and environment sections are derived from configuration
alone and are always present.

Everything here only reads, so concurrent calls need no locking.
"""

from __future__ import annotations

import logging
import os
import sqlite3
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..backup.engine import BackupEngine
from ..config import Settings
from ..db.counts import RowCounter, RowCounts, SqlRowCounter
from ..errors import DeploySafeError, FilesystemError
from ..persistence.classifier import PersistenceInputs, classify_persistence
from .models import BackupStatus, DatabaseFacts, EnvironmentFacts, HealthReport

logger = logging.getLogger(__name__)

NO_BACKUPS_WARNING = "No backup directory found"
STALE_BACKUP_WARNING = "No backup created in last 24 hours"


def stale_backup_warning(recent_hours: float) -> str:
    """Freshness warning for the configured threshold."""
    if recent_hours == 24:
        return STALE_BACKUP_WARNING
    return f"No backup created in last {recent_hours:g} hours"


def _database_facts(path: str) -> DatabaseFacts:
    """Stat the database file.

    A missing file is reported as ``exists=False``; any other stat
    failure (permission denied, unreachable mount) raises
    FilesystemError.
    """
    try:
        st = os.stat(path)
    except FileNotFoundError:
        return DatabaseFacts(path=path, exists=False)
    except (OSError, ValueError) as exc:
        raise FilesystemError(
            f"Cannot access database file {path}: {getattr(exc, 'strerror', None) or exc}",
            details={"path": path},
        ) from exc
    return DatabaseFacts(
        path=path,
        exists=True,
        size_bytes=st.st_size,
        readable=os.access(path, os.R_OK),
        writable=os.access(path, os.W_OK),
    )


def _row_counts(counter: RowCounter) -> RowCounts:
    try:
        return counter.count_rows()
    except (SQLAlchemyError, sqlite3.Error) as exc:
        orig = getattr(exc, "orig", None)
        raise FilesystemError(f"Database query failed: {orig or exc}") from exc


def _backup_status(engine: BackupEngine, now: datetime, recent_hours: float) -> BackupStatus:
    # Stamps written by create() stand in for re-verifying every file
    verified = [record for record in engine.inventory() if record.verified]
    if not verified:
        return BackupStatus(warning=NO_BACKUPS_WARNING)
    newest = verified[0]
    age = newest.age_hours(now)
    recent = age <= recent_hours
    return BackupStatus(
        has_recent_backup=recent,
        backup_count=len(verified),
        most_recent_backup=newest.filename,
        most_recent_age_hours=round(age, 1),
        warning=None if recent else stale_backup_warning(recent_hours),
    )


def build_health_report(
    settings: Settings,
    *,
    row_counter: Optional[RowCounter] = None,
    backup_engine: Optional[BackupEngine] = None,
    now: Optional[datetime] = None,
    is_hosted_platform: Optional[bool] = None,
) -> HealthReport:
    """Assemble a health report for the configured database.

    Parameters
    ----------
    settings : Settings
        Validated settings describing the database, asset directory,
        environment and backup location.
    row_counter : RowCounter, optional
        Source of row counts.  Defaults to a read-only
        :class:`~deploysafe.db.counts.SqlRowCounter` on the database.
    backup_engine : BackupEngine, optional
        Source of the backup inventory.  Defaults to an engine built
        from ``settings``.
    now : datetime, optional
        Reference time for the report timestamp and backup age.
    is_hosted_platform : bool, optional
        Override for the platform marker check (useful in tests).

    Returns
    -------
    HealthReport
        Always a report; failures set ``status="error"``.
    """
    now = now or datetime.now(timezone.utc)
    errors: List[str] = []

    hosted = settings.is_hosted_platform() if is_hosted_platform is None else is_hosted_platform
    persistence = classify_persistence(
        PersistenceInputs.from_settings(settings, is_hosted_platform=hosted)
    )
    environment = EnvironmentFacts(
        node_env=settings.app_env,
        is_hosted_platform=hosted,
        deployment_timestamp=settings.deployment_timestamp,
    )

    database: Optional[DatabaseFacts] = None
    data: Optional[RowCounts] = None
    backup: Optional[BackupStatus] = None

    try:
        db_path = settings.require_database_path()
    except DeploySafeError as exc:
        db_path = None
        errors.append(exc.message)

    if db_path is not None:
        try:
            database = _database_facts(db_path)
        except FilesystemError as exc:
            errors.append(exc.message)
        else:
            if not database.exists:
                errors.append(f"Database file not found: {db_path}")

    if database is not None and database.exists:
        try:
            data = _row_counts(row_counter or SqlRowCounter(db_path))
        except DeploySafeError as exc:
            errors.append(exc.message)
        except Exception as exc:  # the report must always be produced
            logger.exception("Unexpected failure while counting rows")
            errors.append(f"Database query failed: {exc}")

    if db_path is not None or backup_engine is not None:
        try:
            engine = backup_engine or BackupEngine.from_settings(settings)
            backup = _backup_status(engine, now, settings.recent_backup_hours)
        except DeploySafeError as exc:
            errors.append(f"Backup inventory failed: {exc.message}")
        except Exception as exc:  # the report must always be produced
            logger.exception("Unexpected failure while reading backup inventory")
            errors.append(f"Backup inventory failed: {exc}")

    if errors:
        logger.warning("Health check failed: %s", "; ".join(errors))

    return HealthReport(
        status="error" if errors else "healthy",
        database=database,
        persistence=persistence,
        data=data,
        backup=backup,
        environment=environment,
        timestamp=now.astimezone(timezone.utc).isoformat(),
        error="; ".join(errors) if errors else None,
    )


__all__ = ["build_health_report", "stale_backup_warning", "NO_BACKUPS_WARNING", "STALE_BACKUP_WARNING"]
