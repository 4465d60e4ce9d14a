"""Command-line interface for deploysafe.

This module uses the :mod:`click` library to expose the deployment
safety tools:

* ``healthcheck`` builds the health report locally,
* ``gate`` asks a running deployment for its health report and decides
  whether deploying over it is safe,
* ``config-check`` validates the configuration and shows the
  persistence classification,
* ``serve`` runs the health endpoint,
* ``backup`` and ``audit`` are command groups defined in
  :mod:`deploysafe.backup.cli` and :mod:`deploysafe.audit.cli`.

Settings are loaded once per invocation by the root group.  Logging
goes to stderr; stdout carries only the rendered reports.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import click

from .audit.cli import audit
from .backup.cli import backup
from .errors import ConfigurationError
from .gate.client import DEFAULT_TIMEOUT
from .gate.policy import render_decision, run_gate
from .health.checks import build_health_report
from .logging_config import configure_logging
from .persistence.classifier import PersistenceInputs, classify_persistence
from .runtime import CliState, get_state


@click.group()
@click.option("--log-level", default=None, help="Override LOG_LEVEL for this invocation.")
@click.pass_context
def cli(ctx: click.Context, log_level: Optional[str]) -> None:
    """deploysafe command-line interface."""
    state = CliState.load()
    ctx.obj = state
    if state.settings is not None:
        configure_logging(
            log_level or state.settings.log_level,
            state.settings.log_format,
            state.settings.log_file,
        )
    else:
        configure_logging(log_level or "INFO")


@cli.command()
@click.option("--json", "json_output", is_flag=True, default=False, help="Print the report as JSON.")
@click.option("--out", type=click.Path(dir_okay=False), default=None, help="Also write the JSON report to this file.")
@click.option("--strict", is_flag=True, default=False, help="Exit with status 2 when the report is in error.")
@click.pass_context
def healthcheck(ctx: click.Context, json_output: bool, out: Optional[str], strict: bool) -> None:
    """Build the health report for the local configuration.

    Prints a one-line summary and, with ``--json``, the full report in
    the same shape the ``/api/health`` endpoint serves.  With
    ``--strict`` the command exits 2 when the report status is
    ``error``; otherwise it always exits 0.
    """
    state = get_state(ctx)
    try:
        settings = state.require_settings()
    except ConfigurationError as exc:
        click.echo(f"[error] {exc.message}", err=True)
        ctx.exit(2)
    report = build_health_report(settings)
    payload = report.to_payload()
    if out:
        report_path = Path(out)
        try:
            report_path.parent.mkdir(parents=True, exist_ok=True)
            with report_path.open("w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, sort_keys=True)
        except OSError:
            click.echo(f"[error] Failed to write report to {report_path}", err=True)
            ctx.exit(2)
    data = report.data
    counts = data.summary() if data is not None else "counts unavailable"
    click.echo(f"healthcheck: status={report.status} {counts}")
    for warning in report.persistence.warnings:
        click.echo(warning)
    if report.error:
        click.echo(f"error: {report.error}")
    if json_output:
        click.echo(json.dumps(payload, indent=2, sort_keys=True))
    ctx.exit(2 if strict and not report.is_healthy else 0)


@cli.command()
@click.option("--url", default=None, help="Deployment base URL (defaults to PRODUCTION_URL).")
@click.option("--timeout", type=float, default=None, help="Request timeout in seconds (default 30).")
@click.option("--json", "json_output", is_flag=True, default=False, help="Print the decision as JSON.")
@click.pass_context
def gate(ctx: click.Context, url: Optional[str], timeout: Optional[float], json_output: bool) -> None:
    """Decide whether deploying over the running service is safe.

    Exits 0 for SAFE and MOSTLY SAFE and 1 for UNSAFE.  Any failure to
    reach or understand the health endpoint is reported as UNSAFE.
    With ``--json`` stdout carries only the JSON decision.
    """
    state = get_state(ctx)
    settings = state.settings
    base_url = url or (settings.production_url if settings is not None else None)
    if timeout is None:
        timeout = settings.gate_timeout_seconds if settings is not None else DEFAULT_TIMEOUT
    decision = run_gate(base_url, timeout=timeout, configuration_error=state.settings_error)
    if json_output:
        payload = {
            "verdict": decision.verdict.value,
            "marker": decision.marker,
            "reasons": decision.reasons,
            "exitCode": decision.exit_code,
            "report": decision.report.to_payload() if decision.report is not None else None,
        }
        click.echo(json.dumps(payload, indent=2))
    else:
        click.echo(render_decision(decision))
    ctx.exit(decision.exit_code)


@cli.command(name="config-check")
@click.pass_context
def config_check(ctx: click.Context) -> None:
    """Validate configuration and print the persistence classification.

    Exits 2 when the configuration is invalid or the database path is
    missing.  A persistence warning is printed but does not change the
    exit status; the deployment gate is the place that blocks on it.
    """
    state = get_state(ctx)
    try:
        settings = state.require_settings()
        db_path = settings.require_database_path()
    except ConfigurationError as exc:
        click.echo(f"Configuration error: {exc.message}", err=True)
        ctx.exit(2)
    status = classify_persistence(PersistenceInputs.from_settings(settings))
    click.echo(f"Environment: {settings.app_env}")
    click.echo(f"Hosted platform: {'yes' if settings.is_hosted_platform() else 'no'}")
    click.echo(f"Database: {db_path}")
    click.echo(f"Uploads: {settings.uploads_dir or '(not set)'}")
    click.echo(f"Backups: {settings.resolved_backup_dir()}")
    click.echo(f"Persistence required: {'yes' if status.is_persistence_required else 'no'}")
    click.echo(f"Persistence configured: {'yes' if status.is_configured_for_persistence else 'no'}")
    for warning in status.warnings:
        click.echo(warning)
    click.echo("OK")


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", type=int, default=8000, show_default=True)
def serve(host: str, port: int) -> None:
    """Serve the /api/health endpoint with uvicorn."""
    import uvicorn

    uvicorn.run("deploysafe.web.app:create_app", factory=True, host=host, port=port)


cli.add_command(backup, name="backup")
cli.add_command(audit, name="audit")
