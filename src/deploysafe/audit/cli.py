"""Command-line tools for audit log analysis.

The ``audit`` command group reads the product's NDJSON audit log
(``AUDIT_LOG_PATH``, default ``./logs/audit.log``, or ``--log``) and
offers three views: an incident ``report``, a filtered ``search`` and
the list of ``critical`` operations.  A log path that cannot be read
exits with status 1.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Optional

import click

from ..errors import DeploySafeError
from ..runtime import get_state
from .analyzer import (
    AuditFilter,
    AuditLog,
    analyze_incident,
    critical_operations,
    load_audit_log,
    render_entries,
    render_incident_report,
    search,
)
from .models import Operation

_log_option = click.option(
    "--log",
    "log_path",
    type=click.Path(dir_okay=True, file_okay=True),
    default=None,
    help="Audit log file (defaults to AUDIT_LOG_PATH or ./logs/audit.log).",
)


def _load(ctx: click.Context, log_path: Optional[str]) -> AuditLog:
    try:
        if log_path is None:
            log_path = get_state(ctx).require_settings().audit_log_path
        return load_audit_log(log_path)
    except DeploySafeError as exc:
        click.echo(f"[ERROR] {exc.message}", err=True)
        ctx.exit(1)


def _no_log_notice(log: AuditLog) -> None:
    click.echo(f"No audit log file found at {log.path}.")
    click.echo("There is no audit coverage for this period; the event predates audit instrumentation.")


@click.group()
def audit() -> None:
    """Investigate data-loss incidents from the audit log."""
    pass


@audit.command("report")
@click.option("--user", default=None, help="User id or (partial) username of the affected user.")
@click.option(
    "--incident-date",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
    help="Suspected incident date (YYYY-MM-DD).",
)
@click.option("--window-days", type=click.IntRange(min=0), default=1, show_default=True)
@click.option("--json", "json_output", is_flag=True, default=False, help="Print the count summary as JSON.")
@_log_option
@click.pass_context
def report_command(
    ctx: click.Context,
    user: Optional[str],
    incident_date: Optional[datetime],
    window_days: int,
    json_output: bool,
    log_path: Optional[str],
) -> None:
    """Correlate the audit log against a suspected incident."""
    log = _load(ctx, log_path)
    report = analyze_incident(
        log,
        user=user,
        incident_date=incident_date.date() if incident_date else None,
        window_days=window_days,
    )
    click.echo(render_incident_report(report))
    if json_output:
        click.echo(json.dumps({"summary": report.summary, "conclusion": report.conclusion}, indent=2))


@audit.command("search")
@click.option(
    "--operation",
    type=click.Choice([op.value for op in Operation], case_sensitive=False),
    default=None,
)
@click.option("--table", default=None)
@click.option("--user", default=None, help="User id or (partial) username.")
@click.option("--from", "date_from", type=click.DateTime(), default=None, help="Earliest timestamp (UTC).")
@click.option("--to", "date_to", type=click.DateTime(), default=None, help="Latest timestamp (UTC).")
@_log_option
@click.pass_context
def search_command(
    ctx: click.Context,
    operation: Optional[str],
    table: Optional[str],
    user: Optional[str],
    date_from: Optional[datetime],
    date_to: Optional[datetime],
    log_path: Optional[str],
) -> None:
    """Print audit entries matching every given filter."""
    log = _load(ctx, log_path)
    if not log.exists:
        _no_log_notice(log)
        return
    criteria = AuditFilter(
        operation=Operation(operation.upper()) if operation else None,
        table=table,
        user=user,
        date_from=date_from,
        date_to=date_to,
    )
    matches = search(log.entries, criteria)
    click.echo(f"Found {len(matches)} matching audit entries")
    for line in render_entries(matches):
        click.echo(line)


@audit.command("critical")
@_log_option
@click.pass_context
def critical_command(ctx: click.Context, log_path: Optional[str]) -> None:
    """Print DELETE, BULK_DELETE and RESTORE operations."""
    log = _load(ctx, log_path)
    if not log.exists:
        _no_log_notice(log)
        return
    entries = critical_operations(log.entries)
    if not entries:
        click.echo("No critical operations found in audit log")
        return
    click.echo(f"Found {len(entries)} critical operations:")
    for line in render_entries(entries):
        click.echo(line)
