"""HTTP client for the production health endpoint.

The deployment gate makes exactly one request with a hard timeout.
There is no retry: a CI pipeline that wants retries wraps the whole
gate, so a real outage is never hidden behind a lucky second attempt.
"""

from __future__ import annotations

import json
import logging
from typing import Optional

import requests
from pydantic import ValidationError

from ..config import HEALTH_ENDPOINT
from ..errors import ConnectivityError, ParseError
from ..health.models import HealthReport

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


def health_url(base_url: str) -> str:
    """Join ``base_url`` and the health endpoint path."""
    return base_url.rstrip("/") + HEALTH_ENDPOINT


def _reported_error(text: str) -> Optional[str]:
    """Return the ``error`` field of an error-status health body, if any."""
    try:
        body = json.loads(text)
    except ValueError:
        return None
    if isinstance(body, dict) and isinstance(body.get("error"), str):
        return body["error"]
    return None


def _error_status_report(text: str) -> Optional[HealthReport]:
    """Parse the body of a non-2xx response as a health report, if it is one."""
    try:
        return HealthReport.model_validate_json(text)
    except ValidationError:
        return None


def fetch_health_report(
    base_url: str,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    session: Optional[requests.Session] = None,
) -> HealthReport:
    """Fetch and validate the health report of a running deployment.

    Args:
        base_url: Root URL of the deployment, e.g. ``https://app.example.com``.
        timeout: Seconds to wait for connect and read.
        session: Optional ``requests.Session`` (tests pass a fake).

    Returns:
        The parsed :class:`HealthReport`.

    Raises:
        ConnectivityError: timeout, connection failure, or a non-2xx status
            whose body is not a health report.
        ParseError: the body is not JSON or does not match the report shape.
    """
    url = health_url(base_url)
    http = session or requests
    logger.info("Fetching health report from %s", url)
    try:
        resp = http.get(url, timeout=timeout, headers={"Accept": "application/json"})
    except requests.Timeout as exc:
        raise ConnectivityError(
            f"Health endpoint timed out after {timeout:g}s: {url}", details={"url": url}
        ) from exc
    except requests.RequestException as exc:
        raise ConnectivityError(
            f"Could not reach health endpoint {url}: {exc}", details={"url": url}
        ) from exc

    if not 200 <= resp.status_code < 300:
        # The endpoint answers 503 with a full report when it is in error
        report = _error_status_report(resp.text)
        if report is not None:
            logger.warning("Health endpoint returned HTTP %s with status=%s", resp.status_code, report.status)
            return report
        message = f"Health endpoint returned HTTP {resp.status_code}: {url}"
        reported = _reported_error(resp.text)
        if reported:
            message += f" ({reported})"
        raise ConnectivityError(message, details={"url": url, "status_code": resp.status_code})

    try:
        body = json.loads(resp.text)
    except ValueError as exc:
        raise ParseError(
            f"Health endpoint returned malformed JSON: {exc}", details={"url": url}
        ) from exc
    try:
        return HealthReport.model_validate(body)
    except ValidationError as exc:
        raise ParseError(
            f"Health endpoint response does not match the health report shape: "
            f"{exc.error_count()} validation error(s)",
            details={"url": url, "errors": [e["msg"] for e in exc.errors()][:10]},
        ) from exc


__all__ = ["DEFAULT_TIMEOUT", "health_url", "fetch_health_report"]
