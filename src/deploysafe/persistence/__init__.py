"""Persistence classification for deploysafe.

Decides from configuration alone whether the protected database must
live on durable storage and whether it does.
"""

from .classifier import (
    PersistenceInputs,
    PersistenceStatus,
    classify_persistence,
    is_under_prefix,
)

__all__ = [
    "PersistenceInputs",
    "PersistenceStatus",
    "classify_persistence",
    "is_under_prefix",
]
