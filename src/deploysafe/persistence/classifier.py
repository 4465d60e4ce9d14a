"""Classify whether the database will survive a redeploy.

The hosting platform wipes the compute filesystem on every deploy.  Only
paths under its durable mount prefix survive.  This module decides, as a
pure function of configuration, whether durable storage is required and
whether the database and asset directory are actually placed on it.

No filesystem access happens here: paths are compared lexically so the
result is deterministic and can be computed for a configuration that
describes another machine.
"""

from __future__ import annotations

import posixpath
from dataclasses import dataclass
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..config import CRITICAL_PERSISTENCE_WARNING, Settings

PRODUCTION_ENV = "production"


@dataclass(frozen=True)
class PersistenceInputs:
    """Configuration facts the classifier needs, resolved by the caller."""

    database_path: Optional[str]
    assets_dir: Optional[str]
    environment: Optional[str]
    is_hosted_platform: bool
    durable_prefix: Optional[str]

    @classmethod
    def from_settings(cls, settings: Settings, *, is_hosted_platform: Optional[bool] = None) -> "PersistenceInputs":
        hosted = settings.is_hosted_platform() if is_hosted_platform is None else is_hosted_platform
        return cls(
            database_path=settings.database_path,
            assets_dir=settings.uploads_dir,
            environment=settings.app_env,
            is_hosted_platform=hosted,
            durable_prefix=settings.durable_mount_prefix,
        )


class PersistenceStatus(BaseModel):
    """Outcome of the persistence classification."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    is_persistence_required: bool
    is_configured_for_persistence: bool
    warnings: List[str] = Field(default_factory=list)


def is_under_prefix(path: Optional[str], prefix: Optional[str]) -> bool:
    """Return True if ``path`` lexically resolves inside ``prefix``.

    Relative paths are never durable: they resolve against the working
    directory, which lives on the ephemeral compute layer.  ``..``
    segments are collapsed before comparing, and the comparison is done
    on whole path components so ``/durable-x`` is not inside ``/durable``.
    """
    if not path or not prefix:
        return False
    if not posixpath.isabs(path) or not posixpath.isabs(prefix):
        return False
    norm_path = posixpath.normpath(path)
    norm_prefix = posixpath.normpath(prefix)
    if norm_prefix == "/":
        return True
    return norm_path == norm_prefix or norm_path.startswith(norm_prefix + "/")


def classify_persistence(inputs: PersistenceInputs) -> PersistenceStatus:
    """Classify a configuration.

    Persistence is required only in the production environment on a
    managed host.  It counts as configured only when *both* the database
    path and the asset directory sit under the durable prefix; a missing
    path never counts as configured.  When persistence is required but
    not configured, exactly one critical warning is emitted.
    """
    environment = (inputs.environment or "").strip().lower()
    required = environment == PRODUCTION_ENV and bool(inputs.is_hosted_platform)
    configured = is_under_prefix(inputs.database_path, inputs.durable_prefix) and is_under_prefix(
        inputs.assets_dir, inputs.durable_prefix
    )
    warnings: List[str] = []
    if required and not configured:
        warnings.append(CRITICAL_PERSISTENCE_WARNING)
    return PersistenceStatus(
        is_persistence_required=required,
        is_configured_for_persistence=configured,
        warnings=warnings,
    )


__all__ = [
    "PRODUCTION_ENV",
    "PersistenceInputs",
    "PersistenceStatus",
    "is_under_prefix",
    "classify_persistence",
]
