"""Tests for the deployment gate client and decision policy."""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

import pytest
import requests

from deploysafe.config import CRITICAL_PERSISTENCE_WARNING
from deploysafe.errors import ConfigurationError, ConnectivityError, ParseError
from deploysafe.gate import Verdict, evaluate, fetch_health_report, render_decision, run_gate
from deploysafe.gate.policy import MANUAL_BACKUP_REASON
from deploysafe.health import HealthReport


def health_payload(
    *,
    status: str = "healthy",
    warnings=(),
    data: Optional[Dict[str, int]] = None,
    has_recent_backup: bool = True,
    age_hours: Optional[float] = 2.0,
    error: Optional[str] = None,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "status": status,
        "database": {
            "path": "/durable/data/app.db",
            "exists": True,
            "sizeBytes": 40960,
            "readable": True,
            "writable": True,
        },
        "persistence": {
            "isPersistenceRequired": True,
            "isConfiguredForPersistence": not warnings,
            "warnings": list(warnings),
        },
        "data": data if data is not None else {"users": 12, "scans": 40, "scores": 12},
        "backup": {
            "hasRecentBackup": has_recent_backup,
            "backupCount": 3,
            "mostRecentBackup": "app_backup_2025-09-08_02-00-00-000000.db",
            "mostRecentAgeHours": age_hours,
            "warning": None if has_recent_backup else "No backup created in last 24 hours",
        },
        "environment": {
            "nodeEnv": "production",
            "isHostedPlatform": True,
            "deploymentTimestamp": None,
        },
        "timestamp": "2025-09-08T04:00:00+00:00",
    }
    if error is not None:
        payload["error"] = error
    return payload


class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None, text: Optional[str] = None) -> None:
        self.status_code = status_code
        self.text = text if text is not None else json.dumps(body)


class FakeSession:
    """Stands in for ``requests.Session`` and records the calls made."""

    def __init__(self, response: Optional[FakeResponse] = None, exc: Optional[Exception] = None) -> None:
        self.response = response
        self.exc = exc
        self.calls = []

    def get(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.exc is not None:
            raise self.exc
        return self.response


def _report(**kwargs) -> HealthReport:
    return HealthReport.model_validate(health_payload(**kwargs))


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------


def test_recent_backup_is_safe() -> None:
    decision = evaluate(_report())
    assert decision.verdict is Verdict.SAFE
    assert decision.exit_code == 0


def test_empty_database_is_safe_without_backup() -> None:
    decision = evaluate(_report(data={"users": 0, "scans": 0, "scores": 0}, has_recent_backup=False))
    assert decision.verdict is Verdict.SAFE


def test_stale_backup_is_mostly_safe() -> None:
    decision = evaluate(_report(has_recent_backup=False, age_hours=25.5))
    assert decision.verdict is Verdict.MOSTLY_SAFE
    assert decision.exit_code == 0
    assert MANUAL_BACKUP_REASON in decision.reasons
    assert "manual backup" in decision.reasons[-1]


def test_persistence_warning_dominates_empty_data() -> None:
    decision = evaluate(
        _report(warnings=[CRITICAL_PERSISTENCE_WARNING], data={"users": 0, "scans": 0, "scores": 0})
    )
    assert decision.verdict is Verdict.UNSAFE
    assert decision.exit_code == 1
    assert decision.reasons[0] == CRITICAL_PERSISTENCE_WARNING


def test_error_report_fails_closed() -> None:
    payload = health_payload(status="error", error="Database file not found: /durable/data/app.db")
    del payload["data"]
    decision = evaluate(HealthReport.model_validate(payload))
    assert decision.verdict is Verdict.UNSAFE
    assert "Database file not found" in decision.reasons[0]


def test_error_status_with_data_still_fails_closed() -> None:
    decision = evaluate(_report(status="error", error="Backup inventory failed: permission denied"))
    assert decision.verdict is Verdict.UNSAFE


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


def test_fetch_uses_health_endpoint_and_timeout() -> None:
    session = FakeSession(FakeResponse(body=health_payload()))
    report = fetch_health_report("https://app.example.com/", timeout=30, session=session)
    assert report.status == "healthy"
    url, kwargs = session.calls[0]
    assert url == "https://app.example.com/api/health"
    assert kwargs["timeout"] == 30
    assert len(session.calls) == 1


def test_fetch_timeout_is_connectivity_error() -> None:
    session = FakeSession(exc=requests.Timeout("read timed out"))
    with pytest.raises(ConnectivityError) as excinfo:
        fetch_health_report("https://app.example.com", session=session)
    assert "timed out" in excinfo.value.message


def test_fetch_error_status_returns_the_report() -> None:
    body = health_payload(status="error", error="Database file not found: /x.db")
    del body["data"]
    session = FakeSession(FakeResponse(status_code=503, body=body))
    report = fetch_health_report("https://app.example.com", session=session)
    assert report.status == "error"
    assert report.error == "Database file not found: /x.db"


def test_fetch_non_2xx_without_report_is_connectivity_error() -> None:
    body = {"status": "error", "error": "upstream database unavailable"}
    session = FakeSession(FakeResponse(status_code=503, body=body))
    with pytest.raises(ConnectivityError) as excinfo:
        fetch_health_report("https://app.example.com", session=session)
    assert "HTTP 503" in excinfo.value.message
    assert "upstream database unavailable" in excinfo.value.message


def test_error_status_with_persistence_warning_reports_the_warning() -> None:
    body = health_payload(
        status="error",
        warnings=[CRITICAL_PERSISTENCE_WARNING],
        error="Database file not found: ./data/app.db",
    )
    del body["data"]
    session = FakeSession(FakeResponse(status_code=503, body=body))
    decision = run_gate("https://app.example.com", session=session)
    assert decision.verdict is Verdict.UNSAFE
    assert decision.reasons[0] == CRITICAL_PERSISTENCE_WARNING
    assert CRITICAL_PERSISTENCE_WARNING in render_decision(decision)


def test_fetch_malformed_json_is_parse_error() -> None:
    session = FakeSession(FakeResponse(text="<html>Bad Gateway</html>"))
    with pytest.raises(ParseError):
        fetch_health_report("https://app.example.com", session=session)


def test_fetch_wrong_shape_is_parse_error() -> None:
    session = FakeSession(FakeResponse(body={"status": "ok"}))
    with pytest.raises(ParseError) as excinfo:
        fetch_health_report("https://app.example.com", session=session)
    assert "validation error" in excinfo.value.message


# ---------------------------------------------------------------------------
# Gate
# ---------------------------------------------------------------------------


def test_unreachable_host_is_unsafe() -> None:
    session = FakeSession(exc=requests.ConnectionError("Name or service not known"))
    decision = run_gate("https://unreachable.invalid", session=session)
    assert decision.verdict is Verdict.UNSAFE
    assert decision.exit_code == 1
    assert decision.reasons[0].startswith("Could not reach health endpoint")
    text = render_decision(decision)
    assert "DEPLOYMENT IS UNSAFE - DATA LOSS RISK" in text
    assert "DEPLOYMENT IS SAFE" not in text


def test_missing_url_is_unsafe() -> None:
    decision = run_gate(None)
    assert decision.verdict is Verdict.UNSAFE
    assert "PRODUCTION_URL" in decision.reasons[0]


def test_missing_url_reports_configuration_error() -> None:
    error = ConfigurationError("Invalid configuration: backup_max_count: Input should be a valid integer")
    decision = run_gate(None, configuration_error=error)
    assert decision.verdict is Verdict.UNSAFE
    assert decision.reasons == [
        "Could not determine health endpoint: Invalid configuration: backup_max_count: "
        "Input should be a valid integer"
    ]


def test_parse_failure_is_unsafe() -> None:
    decision = run_gate("https://app.example.com", session=FakeSession(FakeResponse(text="{")))
    assert decision.verdict is Verdict.UNSAFE
    assert decision.reasons[0].startswith("Could not parse health report")


def test_unexpected_exception_is_unsafe() -> None:
    decision = run_gate("https://app.example.com", session=FakeSession(exc=RuntimeError("boom")))
    assert decision.verdict is Verdict.UNSAFE


@pytest.mark.parametrize(
    "kwargs, marker",
    [
        ({}, "DEPLOYMENT IS SAFE"),
        ({"has_recent_backup": False, "age_hours": 25.5}, "DEPLOYMENT IS MOSTLY SAFE"),
        ({"warnings": [CRITICAL_PERSISTENCE_WARNING]}, "DEPLOYMENT IS UNSAFE - DATA LOSS RISK"),
    ],
)
def test_render_contains_canonical_marker(kwargs, marker) -> None:
    session = FakeSession(FakeResponse(body=health_payload(**kwargs)))
    text = render_decision(run_gate("https://app.example.com", session=session))
    assert marker in text
    assert "Users: 12" in text
