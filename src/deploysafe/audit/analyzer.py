"""Forensic analysis of the audit log.

The analyzer answers one question after a data-loss report: what does
the audit trail say happened?  It correlates three views of the log

* every entry that names the affected user,
* every ``DELETE`` and ``BULK_DELETE``,
* all activity inside a window around the suspected incident date,

and condenses them into an :class:`IncidentReport` with a narrative
conclusion and a machine-checkable count summary.

Bad input is tolerated line by line: a malformed line is skipped and
logged, and a missing log file is a finding in itself (no audit
coverage, so the event predates audit instrumentation).  A log path
that exists but cannot be read is a :class:`FilesystemError`.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import FilesystemError
from .models import CRITICAL_OPERATIONS, DELETE_OPERATIONS, AuditEntry, Operation

logger = logging.getLogger(__name__)


class AuditLog(BaseModel):
    """Parsed contents of an audit log file."""

    model_config = ConfigDict(frozen=True)

    path: str
    exists: bool
    entries: List[AuditEntry] = Field(default_factory=list)
    skipped_lines: int = 0


def load_audit_log(path: Union[str, Path]) -> AuditLog:
    """Parse an NDJSON audit log.

    Raises:
        FilesystemError: ``path`` exists but is a directory or cannot be read.
    """
    log_path = Path(path)
    if not log_path.exists():
        logger.warning("No audit log found at %s", log_path)
        return AuditLog(path=str(log_path), exists=False)
    if log_path.is_dir():
        raise FilesystemError(
            f"Audit log path is a directory: {log_path}", details={"path": str(log_path)}
        )

    entries: List[AuditEntry] = []
    skipped = 0
    try:
        with log_path.open("r", encoding="utf-8", errors="replace") as fh:
            for lineno, raw in enumerate(fh, start=1):
                line = raw.strip()
                if not line:
                    continue
                try:
                    entries.append(AuditEntry.model_validate(json.loads(line)))
                except (ValueError, ValidationError) as exc:
                    skipped += 1
                    logger.warning("Skipping malformed audit line %d: %s", lineno, _first_line(exc))
    except OSError as exc:
        raise FilesystemError(
            f"Cannot read audit log {log_path}: {exc.strerror or exc}", details={"path": str(log_path)}
        ) from exc

    logger.info("Loaded %d audit entries from %s (%d skipped)", len(entries), log_path, skipped)
    return AuditLog(path=str(log_path), exists=True, entries=entries, skipped_lines=skipped)


def _first_line(exc: Exception) -> str:
    text = str(exc)
    return text.splitlines()[0] if text else type(exc).__name__


@dataclass(frozen=True)
class AuditFilter:
    """Criteria for :func:`search`; ``None`` fields match everything.

    ``user`` matches ``userId`` exactly or ``username`` as a
    case-insensitive substring.  ``date_from`` and ``date_to`` are
    inclusive; naive datetimes are taken as UTC.
    """

    operation: Optional[Operation] = None
    table: Optional[str] = None
    user: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _matches_user(entry: AuditEntry, user: str) -> bool:
    if entry.user_id is not None and entry.user_id == user:
        return True
    return entry.username is not None and user.lower() in entry.username.lower()


def search(entries: Iterable[AuditEntry], criteria: AuditFilter) -> List[AuditEntry]:
    """Return entries matching every set field of ``criteria``, in log order."""
    date_from = _as_utc(criteria.date_from)
    date_to = _as_utc(criteria.date_to)
    result: List[AuditEntry] = []
    for entry in entries:
        if criteria.operation is not None and entry.operation != criteria.operation:
            continue
        if criteria.table is not None and entry.table != criteria.table:
            continue
        if criteria.user is not None and not _matches_user(entry, criteria.user):
            continue
        if date_from is not None and entry.timestamp < date_from:
            continue
        if date_to is not None and entry.timestamp > date_to:
            continue
        result.append(entry)
    return result


def critical_operations(entries: Iterable[AuditEntry]) -> List[AuditEntry]:
    """Entries that destroy or overwrite data (DELETE, BULK_DELETE, RESTORE)."""
    return [entry for entry in entries if entry.operation in CRITICAL_OPERATIONS]


def incident_window(incident_date: date, window_days: int = 1) -> Tuple[datetime, datetime]:
    """Return the inclusive UTC window covering ``window_days`` whole days either side.

    For 2025-09-08 and one day this is 2025-09-07T00:00 to
    2025-09-09T23:59:59.999999.
    """
    start = datetime.combine(incident_date - timedelta(days=window_days), time.min, tzinfo=timezone.utc)
    end = datetime.combine(incident_date + timedelta(days=window_days), time.max, tzinfo=timezone.utc)
    return start, end


class IncidentReport(BaseModel):
    """Correlated view of the audit log around an incident."""

    model_config = ConfigDict(frozen=True)

    log_path: str
    log_exists: bool
    total_entries: int
    skipped_lines: int
    user: Optional[str] = None
    incident_date: Optional[date] = None
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None
    user_entries: List[AuditEntry] = Field(default_factory=list)
    delete_entries: List[AuditEntry] = Field(default_factory=list)
    bulk_delete_entries: List[AuditEntry] = Field(default_factory=list)
    window_entries: List[AuditEntry] = Field(default_factory=list)
    critical_entries: List[AuditEntry] = Field(default_factory=list)
    conclusion: str

    @property
    def summary(self) -> Dict[str, int]:
        return {
            "total_entries": self.total_entries,
            "skipped_lines": self.skipped_lines,
            "user_entries": len(self.user_entries),
            "bulk_deletes": len(self.bulk_delete_entries),
            "deletes": len(self.delete_entries),
            "window_entries": len(self.window_entries),
            "critical_operations": len(self.critical_entries),
        }


def _conclude(
    log: AuditLog,
    user: Optional[str],
    user_entries: List[AuditEntry],
    window_entries: Optional[List[AuditEntry]],
) -> str:
    if not log.exists:
        return (
            f"No audit log exists at {log.path}. There is no audit coverage for this period, "
            "so the event predates audit instrumentation."
        )
    if not log.entries:
        return (
            "The audit log contains no entries. The event predates audit instrumentation "
            "or bypassed the audited code paths."
        )
    if window_entries is not None:
        window_deletes = [e for e in window_entries if e.operation in DELETE_OPERATIONS]
        if not window_entries:
            return (
                "No audit entries fall inside the incident window. The incident occurred before "
                "audit logging covered this period or bypassed the audited code paths."
            )
        if window_deletes:
            rows = sum(e.affected_rows or 1 for e in window_deletes)
            return (
                f"{len(window_deletes)} delete operation(s) affecting about {rows} row(s) were "
                "recorded inside the incident window; they are the most likely cause."
            )
        return (
            "Activity was recorded inside the incident window but no delete operations. "
            "The data loss did not go through an audited delete."
        )
    if user is not None and not user_entries:
        return f'No audit entries mention user "{user}".'
    deletes = [e for e in log.entries if e.operation in DELETE_OPERATIONS]
    if deletes:
        return f"{len(deletes)} delete operation(s) are recorded; review them against the reported loss."
    return "No delete operations are recorded in the audit log."


def analyze_incident(
    log: AuditLog,
    *,
    user: Optional[str] = None,
    incident_date: Optional[date] = None,
    window_days: int = 1,
) -> IncidentReport:
    """Correlate the audit log against a suspected incident.

    Args:
        log: Parsed audit log from :func:`load_audit_log`.
        user: User id or (partial, case-insensitive) username of the
            affected user.
        incident_date: Suspected incident date.  When omitted no
            window analysis is done.
        window_days: Whole days either side of ``incident_date``.
    """
    if window_days < 0:
        raise ValueError("window_days must not be negative")
    entries = log.entries
    user_entries = search(entries, AuditFilter(user=user)) if user else []
    bulk = search(entries, AuditFilter(operation=Operation.BULK_DELETE))
    deletes = search(entries, AuditFilter(operation=Operation.DELETE))

    window_start = window_end = None
    window_entries: Optional[List[AuditEntry]] = None
    if incident_date is not None:
        window_start, window_end = incident_window(incident_date, window_days)
        window_entries = search(entries, AuditFilter(date_from=window_start, date_to=window_end))

    return IncidentReport(
        log_path=log.path,
        log_exists=log.exists,
        total_entries=len(entries),
        skipped_lines=log.skipped_lines,
        user=user,
        incident_date=incident_date,
        window_start=window_start,
        window_end=window_end,
        user_entries=user_entries,
        delete_entries=deletes,
        bulk_delete_entries=bulk,
        window_entries=window_entries or [],
        critical_entries=critical_operations(entries),
        conclusion=_conclude(log, user, user_entries, window_entries),
    )


def render_entries(entries: Iterable[AuditEntry]) -> List[str]:
    """Render entries as indented report lines."""
    lines: List[str] = []
    for entry in entries:
        lines.append(f"  {entry.describe()}")
        if entry.record_id is not None:
            lines.append(f"    Record: {entry.record_id}")
        if entry.username:
            lines.append(f"    User: {entry.username}")
        if entry.affected_rows:
            lines.append(f"    Affected rows: {entry.affected_rows}")
        warning = entry.details.get("warning")
        if warning:
            lines.append(f"    Warning: {warning}")
    return lines


def render_incident_report(report: IncidentReport) -> str:
    """Render an incident report for the terminal."""
    lines: List[str] = ["=== INCIDENT REPORT ===", ""]
    if not report.log_exists:
        lines.append(f"No audit log file found at {report.log_path}.")
        lines.append("")

    if report.user:
        lines.append(f'ENTRIES FOR USER "{report.user}": {len(report.user_entries)}')
        lines.extend(render_entries(report.user_entries))
        lines.append("")
    lines.append(f"BULK DELETES: {len(report.bulk_delete_entries)}")
    lines.extend(render_entries(report.bulk_delete_entries))
    lines.append("")
    lines.append(f"INDIVIDUAL DELETES: {len(report.delete_entries)}")
    lines.extend(render_entries(report.delete_entries))
    lines.append("")
    if report.incident_date is not None:
        lines.append(
            f"INCIDENT WINDOW {report.window_start.date().isoformat()} to "
            f"{report.window_end.date().isoformat()}: {len(report.window_entries)}"
        )
        lines.extend(render_entries(report.window_entries))
        lines.append("")
    lines.append(f"CRITICAL OPERATIONS: {len(report.critical_entries)}")
    lines.append("")

    lines.append("SUMMARY:")
    for key, value in report.summary.items():
        lines.append(f"  {key}: {value}")
    lines.append("")
    lines.append("CONCLUSION:")
    lines.append(f"  {report.conclusion}")
    return "\n".join(lines)


__all__ = [
    "AuditLog",
    "AuditFilter",
    "IncidentReport",
    "load_audit_log",
    "search",
    "critical_operations",
    "incident_window",
    "analyze_incident",
    "render_entries",
    "render_incident_report",
]
