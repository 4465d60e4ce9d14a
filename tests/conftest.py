"""Shared fixtures for the deploysafe test suite."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Iterator

import pytest
import sqlalchemy as sa

from deploysafe.config import get_settings

# Every variable Settings reads, plus the default platform marker.
_SETTINGS_VARS = [
    "DATABASE_PATH",
    "DATABASE_URL",
    "UPLOADS_DIR",
    "APP_ENV",
    "NODE_ENV",
    "HOST_PLATFORM_MARKERS",
    "DURABLE_MOUNT_PREFIX",
    "DEPLOYMENT_TIMESTAMP",
    "BACKUP_DIR",
    "BACKUP_MAX_COUNT",
    "BACKUP_PREFIX",
    "RECENT_BACKUP_HOURS",
    "PRODUCTION_URL",
    "GATE_TIMEOUT_SECONDS",
    "AUDIT_LOG_PATH",
    "LOG_LEVEL",
    "LOG_FORMAT",
    "LOG_FILE",
    "RENDER",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[None]:
    """Isolate each test from the caller's environment and any ``.env`` file."""
    for var in _SETTINGS_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
    # CLI invocations attach handlers to CliRunner's temporary streams
    package_logger = logging.getLogger("deploysafe")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()


def create_product_db(path: Path, users: int = 0, scans: int = 0, scores: int = 0) -> Path:
    """Create a SQLite database with the three tracked product tables."""
    path.parent.mkdir(parents=True, exist_ok=True)
    engine = sa.create_engine(f"sqlite:///{path}")
    with engine.begin() as conn:
        conn.execute(sa.text("CREATE TABLE users (id INTEGER PRIMARY KEY, username TEXT NOT NULL)"))
        conn.execute(
            sa.text("CREATE TABLE dexa_scans (id INTEGER PRIMARY KEY, user_id INTEGER, body_fat REAL)")
        )
        conn.execute(
            sa.text("CREATE TABLE scoring_data (id INTEGER PRIMARY KEY, user_id INTEGER, score REAL)")
        )
        if users:
            conn.execute(
                sa.text("INSERT INTO users (username) VALUES (:name)"),
                [{"name": f"user{i}"} for i in range(users)],
            )
        if scans:
            conn.execute(
                sa.text("INSERT INTO dexa_scans (user_id, body_fat) VALUES (:uid, :bf)"),
                [{"uid": i % max(users, 1), "bf": 20.0 + i % 10} for i in range(scans)],
            )
        if scores:
            conn.execute(
                sa.text("INSERT INTO scoring_data (user_id, score) VALUES (:uid, :score)"),
                [{"uid": i % max(users, 1), "score": float(i)} for i in range(scores)],
            )
    engine.dispose()
    return path


@pytest.fixture
def make_db(tmp_path: Path) -> Callable[..., Path]:
    """Factory creating product databases under ``tmp_path/data``."""

    def _make(name: str = "app.db", users: int = 0, scans: int = 0, scores: int = 0) -> Path:
        return create_product_db(tmp_path / "data" / name, users=users, scans=scans, scores=scores)

    return _make
