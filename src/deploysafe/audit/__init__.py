"""Audit log analysis.

Reads the product's append-only NDJSON audit log and correlates it
against a suspected data-loss incident.
"""

from .analyzer import (
    AuditFilter,
    AuditLog,
    IncidentReport,
    analyze_incident,
    critical_operations,
    load_audit_log,
    render_incident_report,
    search,
)
from .models import AuditEntry, Operation

__all__ = [
    "AuditEntry",
    "AuditFilter",
    "AuditLog",
    "IncidentReport",
    "Operation",
    "analyze_incident",
    "critical_operations",
    "load_audit_log",
    "render_incident_report",
    "search",
]
