"""Health reporting for deploysafe.

This package defines the Pydantic models of the health report served
at ``/api/health`` and the builder that assembles it from the
persistence classification, database file facts, row counts and the
backup inventory.
"""

from .models import BackupStatus, DatabaseFacts, EnvironmentFacts, HealthReport
from .checks import build_health_report

__all__ = [
    "BackupStatus",
    "DatabaseFacts",
    "EnvironmentFacts",
    "HealthReport",
    "build_health_report",
]
