"""
Configuration for deploysafe.

Constants that describe the protected product live at module level.
Runtime settings are read from the environment (and an optional
``.env`` file) into a typed :class:`Settings` object which is validated
once.  Required values are never silently substituted: asking for the
database path when none is configured raises
:class:`~deploysafe.errors.ConfigurationError`.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Dict, Final, List, Literal, Mapping, Optional

from pydantic import AliasChoices, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError

PROJECT_NAME: Final[str] = "deploysafe"

# Logical table name -> physical table in the product database.  The
# product owns the schema; only these three tables are counted.
TRACKED_TABLES: Final[Dict[str, str]] = {
    "users": "users",
    "scans": "dexa_scans",
    "scores": "scoring_data",
}

CRITICAL_PERSISTENCE_WARNING: Final[str] = (
    "CRITICAL: Database not in persistent storage - data will be lost on deployment"
)

HEALTH_ENDPOINT: Final[str] = "/api/health"


class Settings(BaseSettings):
    """Environment-backed settings shared by the CLI, the web app and the tools."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Protected database and asset directory
    database_path: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("DATABASE_PATH", "DATABASE_URL")
    )
    uploads_dir: Optional[str] = Field(default=None, validation_alias=AliasChoices("UPLOADS_DIR"))

    # Deployment environment
    app_env: str = Field(default="development", validation_alias=AliasChoices("APP_ENV", "NODE_ENV"))
    host_platform_markers: str = Field(
        default="RENDER", validation_alias=AliasChoices("HOST_PLATFORM_MARKERS")
    )
    durable_mount_prefix: str = Field(
        default="/opt/render/persistent", validation_alias=AliasChoices("DURABLE_MOUNT_PREFIX")
    )
    deployment_timestamp: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("DEPLOYMENT_TIMESTAMP")
    )

    # Backups
    backup_dir: Optional[str] = Field(default=None, validation_alias=AliasChoices("BACKUP_DIR"))
    backup_max_count: int = Field(default=10, ge=1, validation_alias=AliasChoices("BACKUP_MAX_COUNT"))
    backup_prefix: str = Field(default="app_backup", validation_alias=AliasChoices("BACKUP_PREFIX"))
    recent_backup_hours: float = Field(
        default=24.0, gt=0, validation_alias=AliasChoices("RECENT_BACKUP_HOURS")
    )

    # Deployment gate
    production_url: Optional[str] = Field(default=None, validation_alias=AliasChoices("PRODUCTION_URL"))
    gate_timeout_seconds: float = Field(
        default=30.0, gt=0, validation_alias=AliasChoices("GATE_TIMEOUT_SECONDS")
    )

    # Audit log
    audit_log_path: str = Field(
        default="./logs/audit.log", validation_alias=AliasChoices("AUDIT_LOG_PATH")
    )

    # Logging
    log_level: str = Field(default="INFO", validation_alias=AliasChoices("LOG_LEVEL"))
    log_format: Literal["simple", "json"] = Field(
        default="simple", validation_alias=AliasChoices("LOG_FORMAT")
    )
    log_file: Optional[str] = Field(default=None, validation_alias=AliasChoices("LOG_FILE"))

    @field_validator("database_path", "uploads_dir", "backup_dir", "production_url", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        # An exported-but-empty variable is the same as an absent one
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("database_path")
    @classmethod
    def _strip_url_scheme(cls, value: Optional[str]) -> Optional[str]:
        """Accept ``sqlite:///path`` and ``file:path`` forms of a database location."""
        if value is None:
            return None
        for scheme in ("sqlite:///", "file:"):
            if value.startswith(scheme):
                value = value[len(scheme):]
                break
        if not value:
            raise ValueError("database path is empty after removing the URL scheme")
        return value

    @field_validator("app_env")
    @classmethod
    def _normalise_env(cls, value: str) -> str:
        return value.strip().lower()

    @property
    def platform_markers(self) -> List[str]:
        """Environment variable names whose presence marks a managed host."""
        return [m.strip() for m in self.host_platform_markers.split(",") if m.strip()]

    def is_hosted_platform(self, environ: Optional[Mapping[str, str]] = None) -> bool:
        """Return True when any configured platform marker is set to a non-empty value."""
        env = os.environ if environ is None else environ
        return any(env.get(marker) for marker in self.platform_markers)

    def require_database_path(self) -> str:
        """Return the configured database path or raise ConfigurationError."""
        if not self.database_path:
            raise ConfigurationError(
                "DATABASE_PATH is not set; refusing to guess a database location",
                details={"setting": "DATABASE_PATH"},
            )
        return self.database_path

    def resolved_backup_dir(self) -> str:
        """Return the backup directory.

        ``BACKUP_DIR`` wins when set.  Otherwise backups live in a
        ``backups`` directory next to the database file, which keeps
        them on the same volume as the data they protect.
        """
        if self.backup_dir:
            return self.backup_dir
        return os.path.join(os.path.dirname(self.require_database_path()) or ".", "backups")

    def require_production_url(self) -> str:
        if not self.production_url:
            raise ConfigurationError(
                "PRODUCTION_URL is not set; cannot locate the health endpoint",
                details={"setting": "PRODUCTION_URL"},
            )
        return self.production_url


def load_settings(**overrides) -> Settings:
    """Build a validated :class:`Settings`, wrapping validation failures.

    Keyword overrides take precedence over the environment and are
    mostly useful in tests.
    """
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        problems = [
            f"{'.'.join(str(p) for p in err['loc']) or 'settings'}: {err['msg']}" for err in exc.errors()
        ]
        raise ConfigurationError(
            "Invalid configuration: " + "; ".join(problems), details={"problems": problems}
        ) from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached settings instance."""
    return load_settings()


__all__ = [
    "PROJECT_NAME",
    "TRACKED_TABLES",
    "CRITICAL_PERSISTENCE_WARNING",
    "HEALTH_ENDPOINT",
    "Settings",
    "load_settings",
    "get_settings",
]
