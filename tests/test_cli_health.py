"""Tests for the ``healthcheck`` and ``config-check`` CLI commands."""

from __future__ import annotations

import json

from click.testing import CliRunner

from deploysafe.cli import cli
from deploysafe.config import CRITICAL_PERSISTENCE_WARNING


def test_healthcheck_json_and_out(monkeypatch, make_db, tmp_path) -> None:
    """Invoke healthcheck and verify the JSON report printed and written to disk."""
    db = make_db(users=2, scans=3)
    monkeypatch.setenv("DATABASE_PATH", str(db))
    out_path = tmp_path / "reports" / "health.json"
    result = CliRunner().invoke(cli, ["healthcheck", "--json", "--out", str(out_path)])

    assert result.exit_code == 0, result.output
    assert "healthcheck: status=healthy 2 users, 3 scans, 0 scores" in result.output
    assert out_path.exists()
    on_disk = json.loads(out_path.read_text(encoding="utf-8"))
    assert on_disk["status"] == "healthy"
    assert on_disk["data"] == {"users": 2, "scans": 3, "scores": 0}
    for key in ["database", "persistence", "backup", "environment", "timestamp"]:
        assert key in on_disk


def test_healthcheck_error_is_nonfatal_without_strict(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "missing.db"))
    result = CliRunner().invoke(cli, ["healthcheck"])
    assert result.exit_code == 0
    assert "status=error" in result.output
    assert "Database file not found" in result.output


def test_healthcheck_strict_exits_2_on_error(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "missing.db"))
    result = CliRunner().invoke(cli, ["healthcheck", "--strict"])
    assert result.exit_code == 2


def test_healthcheck_prints_critical_warning(monkeypatch, make_db) -> None:
    monkeypatch.setenv("DATABASE_PATH", str(make_db(users=1)))
    monkeypatch.setenv("NODE_ENV", "production")
    monkeypatch.setenv("RENDER", "true")
    result = CliRunner().invoke(cli, ["healthcheck"])
    assert result.exit_code == 0, result.output
    assert CRITICAL_PERSISTENCE_WARNING in result.output


def test_config_check_ok(monkeypatch) -> None:
    monkeypatch.setenv("DATABASE_PATH", "/opt/render/persistent/data/app.db")
    monkeypatch.setenv("UPLOADS_DIR", "/opt/render/persistent/uploads")
    monkeypatch.setenv("NODE_ENV", "production")
    monkeypatch.setenv("RENDER", "1")
    result = CliRunner().invoke(cli, ["config-check"])

    assert result.exit_code == 0, result.output
    assert "Persistence required: yes" in result.output
    assert "Persistence configured: yes" in result.output
    assert "Backups: /opt/render/persistent/data/backups" in result.output
    assert "OK" in result.output


def test_config_check_accepts_sqlite_url(monkeypatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "sqlite:////opt/render/persistent/app.db")
    result = CliRunner().invoke(cli, ["config-check"])
    assert result.exit_code == 0, result.output
    assert "Database: /opt/render/persistent/app.db" in result.output


def test_config_check_missing_database_path() -> None:
    result = CliRunner().invoke(cli, ["config-check"])
    assert result.exit_code == 2
    assert "DATABASE_PATH" in result.output


def test_config_check_invalid_value(monkeypatch) -> None:
    monkeypatch.setenv("DATABASE_PATH", "/data/app.db")
    monkeypatch.setenv("BACKUP_MAX_COUNT", "zero")
    result = CliRunner().invoke(cli, ["config-check"])
    assert result.exit_code == 2
    assert "Invalid configuration" in result.output
