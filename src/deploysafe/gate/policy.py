"""Deployment gate decision policy.

:func:`evaluate` is a pure function from a :class:`HealthReport` to a
:class:`DeploymentDecision`.  The rules are applied in a fixed order
and the first one that matches wins:

1. Persistence warnings present: UNSAFE.
2. The report is in error or carries no row counts: UNSAFE, because
   safety cannot be proven.
3. No rows in any tracked table: SAFE, there is nothing to lose.
4. A recent verified backup exists: SAFE.
5. Otherwise MOSTLY_SAFE: storage persists but no fresh backup exists.

:func:`run_gate` adds the network fetch and turns every failure into
UNSAFE.  :func:`render_decision` is the only place where the decision
becomes text.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import List, Optional

import requests
from pydantic import BaseModel, ConfigDict, Field

from ..errors import ConfigurationError, ConnectivityError, DeploySafeError, ParseError
from ..health.models import HealthReport
from .client import DEFAULT_TIMEOUT, fetch_health_report

logger = logging.getLogger(__name__)


class Verdict(str, Enum):
    SAFE = "SAFE"
    MOSTLY_SAFE = "MOSTLY_SAFE"
    UNSAFE = "UNSAFE"


VERDICT_MARKERS = {
    Verdict.SAFE: "DEPLOYMENT IS SAFE",
    Verdict.MOSTLY_SAFE: "DEPLOYMENT IS MOSTLY SAFE",
    Verdict.UNSAFE: "DEPLOYMENT IS UNSAFE - DATA LOSS RISK",
}

MANUAL_BACKUP_REASON = "No recent backup; consider creating a manual backup before deploying"


class DeploymentDecision(BaseModel):
    """Go/no-go verdict with its ordered reasons.

    ``report`` is the health report the verdict was derived from, or
    ``None`` when no report could be obtained.
    """

    model_config = ConfigDict(frozen=True)

    verdict: Verdict
    reasons: List[str] = Field(default_factory=list)
    report: Optional[HealthReport] = None

    @property
    def exit_code(self) -> int:
        return 1 if self.verdict is Verdict.UNSAFE else 0

    @property
    def marker(self) -> str:
        return VERDICT_MARKERS[self.verdict]


def evaluate(report: HealthReport) -> DeploymentDecision:
    """Apply the decision rules to one health report."""
    warnings = list(report.persistence.warnings)
    if warnings:
        return DeploymentDecision(
            verdict=Verdict.UNSAFE,
            reasons=warnings + ["User data will be lost on deployment; fix persistence before deploying"],
            report=report,
        )

    if report.status == "error" or report.data is None:
        detail = report.error or "health report carries no row counts"
        return DeploymentDecision(
            verdict=Verdict.UNSAFE,
            reasons=[f"Could not validate data state: {detail}"],
            report=report,
        )

    if report.data.total == 0:
        return DeploymentDecision(
            verdict=Verdict.SAFE,
            reasons=["No user data found; nothing can be lost"],
            report=report,
        )

    if report.backup is not None and report.backup.has_recent_backup:
        return DeploymentDecision(
            verdict=Verdict.SAFE,
            reasons=[
                "Persistence is correctly configured",
                f"Recent backup exists: {report.backup.most_recent_backup}",
            ],
            report=report,
        )

    reasons = ["Persistence is correctly configured", "No recent backup but data will persist"]
    if report.backup is not None and report.backup.warning:
        reasons.append(report.backup.warning)
    reasons.append(MANUAL_BACKUP_REASON)
    return DeploymentDecision(verdict=Verdict.MOSTLY_SAFE, reasons=reasons, report=report)


def _failure_reason(exc: DeploySafeError) -> str:
    if isinstance(exc, ConnectivityError):
        return f"Could not reach health endpoint: {exc.message}"
    if isinstance(exc, ParseError):
        return f"Could not parse health report: {exc.message}"
    if isinstance(exc, ConfigurationError):
        return f"Could not determine health endpoint: {exc.message}"
    return f"Could not confirm deployment safety: {exc.message}"


def run_gate(
    base_url: Optional[str],
    *,
    timeout: float = DEFAULT_TIMEOUT,
    session: Optional[requests.Session] = None,
    configuration_error: Optional[ConfigurationError] = None,
) -> DeploymentDecision:
    """Fetch the health report and evaluate it, failing closed.

    Never raises for operational failures: any error while locating,
    fetching or validating the report yields an UNSAFE decision whose
    reason names the precondition that could not be confirmed.
    Without ``base_url``, ``configuration_error`` (the reason settings
    could not be loaded) is reported in place of a missing URL.
    """
    try:
        if not base_url:
            raise configuration_error or ConfigurationError(
                "PRODUCTION_URL is not set; cannot locate the health endpoint"
            )
        report = fetch_health_report(base_url, timeout=timeout, session=session)
    except DeploySafeError as exc:
        logger.error("Deployment gate failed closed: %s", exc.message)
        return DeploymentDecision(verdict=Verdict.UNSAFE, reasons=[_failure_reason(exc)])
    except Exception as exc:  # fail closed on anything unforeseen
        logger.exception("Unexpected deployment gate failure")
        return DeploymentDecision(
            verdict=Verdict.UNSAFE, reasons=[f"Could not confirm deployment safety: {exc}"]
        )
    decision = evaluate(report)
    logger.info("Deployment gate verdict: %s", decision.verdict.value)
    return decision


def render_decision(decision: DeploymentDecision) -> str:
    """Render a decision as the human-readable safety report."""
    lines: List[str] = ["=== PRE-DEPLOYMENT SAFETY REPORT ===", ""]
    report = decision.report
    if report is not None:
        lines.append("DATABASE PERSISTENCE:")
        if report.persistence.warnings:
            for warning in report.persistence.warnings:
                lines.append(f"  - {warning}")
        else:
            lines.append("  Persistence configuration OK")
        if report.database is not None:
            lines.append(f"  Path: {report.database.path}")
        lines.append("")
        lines.append("CURRENT DATA STATE:")
        if report.data is not None:
            lines.append(f"  Users: {report.data.users}")
            lines.append(f"  Scans: {report.data.scans}")
            lines.append(f"  Scores: {report.data.scores}")
        else:
            lines.append("  Unknown")
        if report.error:
            lines.append(f"  Error: {report.error}")
        lines.append("")
        lines.append("BACKUP STATUS:")
        if report.backup is not None:
            lines.append(f"  Total backups: {report.backup.backup_count}")
            lines.append(f"  Recent backup: {'Yes' if report.backup.has_recent_backup else 'No'}")
            if report.backup.most_recent_age_hours is not None:
                lines.append(f"  Most recent: {report.backup.most_recent_age_hours} hours ago")
            if report.backup.warning:
                lines.append(f"  Warning: {report.backup.warning}")
        else:
            lines.append("  Unknown")
        lines.append("")
    lines.append("DEPLOYMENT SAFETY ASSESSMENT:")
    lines.append(decision.marker)
    for reason in decision.reasons:
        lines.append(f"  -> {reason}")
    return "\n".join(lines)


__all__ = [
    "Verdict",
    "VERDICT_MARKERS",
    "DeploymentDecision",
    "evaluate",
    "run_gate",
    "render_decision",
]
