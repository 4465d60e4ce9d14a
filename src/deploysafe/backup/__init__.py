"""Backup engine for the protected database.

Creates verified online-backup snapshots, lists them with a fresh
validity flag, verifies arbitrary database files, restores a backup
over the live database and enforces the retention policy.
"""

from .engine import BackupEngine, verify_database
from .models import BackupRecord, RestoreResult, VerificationResult, VerificationStamp

__all__ = [
    "BackupEngine",
    "BackupRecord",
    "RestoreResult",
    "VerificationResult",
    "VerificationStamp",
    "verify_database",
]
