"""Deployment gate.

Fetches the production health report once and turns it into a
go/no-go decision with a process exit code, failing closed whenever
safety cannot be proven.
"""

from .client import fetch_health_report, health_url
from .policy import DeploymentDecision, Verdict, evaluate, render_decision, run_gate

__all__ = [
    "DeploymentDecision",
    "Verdict",
    "evaluate",
    "fetch_health_report",
    "health_url",
    "render_decision",
    "run_gate",
]
