"""Tests for the /api/health endpoint."""

from __future__ import annotations

from fastapi.testclient import TestClient

from deploysafe.config import CRITICAL_PERSISTENCE_WARNING, load_settings
from deploysafe.errors import ConfigurationError
from deploysafe.gate import Verdict, render_decision, run_gate
from deploysafe.web import create_app
from deploysafe.web.routes import provide_settings


def _client(settings) -> TestClient:
    app = create_app()
    app.dependency_overrides[provide_settings] = lambda: settings
    return TestClient(app)


def test_health_endpoint_healthy(make_db) -> None:
    db = make_db(users=2, scans=3, scores=4)
    response = _client(load_settings(database_path=str(db))).get("/api/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["data"] == {"users": 2, "scans": 3, "scores": 4}
    assert set(body["persistence"]) == {"isPersistenceRequired", "isConfiguredForPersistence", "warnings"}
    assert set(body["backup"]) == {
        "hasRecentBackup",
        "backupCount",
        "mostRecentBackup",
        "mostRecentAgeHours",
        "warning",
    }
    assert set(body["environment"]) == {"nodeEnv", "isHostedPlatform", "deploymentTimestamp"}
    assert "error" not in body


def test_health_endpoint_returns_503_on_error(tmp_path) -> None:
    settings = load_settings(database_path=str(tmp_path / "missing.db"))
    response = _client(settings).get("/api/health")

    assert response.status_code == 503
    body = response.json()
    assert body["status"] == "error"
    assert "Database file not found" in body["error"]
    assert "timestamp" in body


def test_health_endpoint_reports_configuration_error() -> None:
    response = _client(ConfigurationError("Invalid configuration: backup_max_count")).get("/api/health")

    assert response.status_code == 503
    body = response.json()
    assert body["status"] == "error"
    assert body["error"] == "Invalid configuration: backup_max_count"
    assert body["persistence"]["warnings"] == []


def test_health_endpoint_reads_environment(make_db, monkeypatch) -> None:
    db = make_db(users=1)
    monkeypatch.setenv("DATABASE_PATH", str(db))
    monkeypatch.setenv("NODE_ENV", "staging")
    client = TestClient(create_app())

    body = client.get("/api/health").json()
    assert body["status"] == "healthy"
    assert body["environment"]["nodeEnv"] == "staging"


def test_gate_reads_persistence_warning_from_failing_endpoint(monkeypatch) -> None:
    monkeypatch.setenv("RENDER", "true")
    monkeypatch.setenv("NODE_ENV", "production")
    monkeypatch.setenv("DATABASE_PATH", "./data/app.db")
    client = TestClient(create_app())

    decision = run_gate("http://testserver", session=client)
    output = render_decision(decision)

    assert decision.verdict is Verdict.UNSAFE
    assert decision.report is not None
    assert decision.report.status == "error"
    assert CRITICAL_PERSISTENCE_WARNING in output
    assert "Could not reach" not in output
