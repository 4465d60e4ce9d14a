"""Command-line tools for database backups.

This module defines the ``backup`` command group with ``create``,
``list``, ``verify`` and ``restore`` subcommands.  All of them operate on the
database and backup directory from the loaded settings; ``verify``
also accepts an explicit path so any database file can be checked.
"""

from __future__ import annotations

import json
from typing import Optional

import click

from ..errors import ConfirmationRequiredError, DeploySafeError
from ..runtime import get_state
from .engine import BackupEngine, verify_database


def _engine(ctx: click.Context) -> BackupEngine:
    return BackupEngine.from_settings(get_state(ctx).require_settings())


@click.group()
def backup() -> None:
    """Create, list and verify database backups."""
    pass


@backup.command("create")
@click.option("--json", "json_output", is_flag=True, default=False, help="Print the result as JSON.")
@click.pass_context
def create_command(ctx: click.Context, json_output: bool) -> None:
    """Create a verified backup and apply the retention policy.

    Exits 0 on success and 1 when the backup could not be created; no
    partial backup file is left behind on failure.
    """
    try:
        record = _engine(ctx).create()
    except DeploySafeError as exc:
        if json_output:
            click.echo(json.dumps({"success": False, **exc.to_dict()}, indent=2, default=str))
        else:
            click.echo(f"[ERROR] Backup failed: {exc.message}", err=True)
        ctx.exit(1)
    counts = record.row_counts
    if json_output:
        payload = {"success": True, **record.model_dump(mode="json", by_alias=True)}
        click.echo(json.dumps(payload, indent=2, sort_keys=True))
    else:
        click.echo(
            f"[SUCCESS] Backup created: {record.filename} ({record.size_kb} KB) - {counts.summary()}"
        )


@backup.command("list")
@click.pass_context
def list_command(ctx: click.Context) -> None:
    """List backups newest first with a fresh validity check."""
    try:
        engine = _engine(ctx)
        records = engine.list()
    except DeploySafeError as exc:
        click.echo(f"[ERROR] Failed to list backups: {exc.message}", err=True)
        ctx.exit(1)
    if not records:
        if engine.backup_dir.exists():
            click.echo("No backups found.")
        else:
            click.echo("No backup directory found.")
        return
    click.echo("=== Available Database Backups ===")
    click.echo("")
    for record in records:
        click.echo(record.filename)
        click.echo(f"   Created: {record.created_at.isoformat()}")
        click.echo(f"   Size: {record.size_kb} KB")
        if record.row_counts is not None:
            click.echo(f"   Data: {record.row_counts.summary()}")
        else:
            click.echo("   Data: N/A")
        click.echo(f"   Valid: {'Yes' if record.verified else 'No'}")
        if record.error:
            click.echo(f"   Error: {record.error}")
        click.echo("")


@backup.command("verify")
@click.argument("path", required=False)
@click.pass_context
def verify_command(ctx: click.Context, path: Optional[str]) -> None:
    """Verify a database file (defaults to the configured database)."""
    if path is None:
        try:
            path = get_state(ctx).require_settings().require_database_path()
        except DeploySafeError as exc:
            click.echo(f"[ERROR] {exc.message}", err=True)
            ctx.exit(1)
    result = verify_database(path)
    click.echo(f"Database verification for {path}:")
    click.echo(f"Valid: {'true' if result.valid else 'false'}")
    if result.valid:
        click.echo(f"Users: {result.users}, Scans: {result.scans}, Scores: {result.scores}")
    else:
        click.echo(f"Error: {result.error}")
        ctx.exit(1)


@backup.command("restore")
@click.argument("backup_file")
@click.option("--force", is_flag=True, default=False, help="Overwrite the live database without asking.")
@click.option("--json", "json_output", is_flag=True, default=False, help="Print the result as JSON.")
@click.pass_context
def restore_command(ctx: click.Context, backup_file: str, force: bool, json_output: bool) -> None:
    """Restore BACKUP_FILE (a path or a filename in the backup directory).

    The current database is first copied to a ``.pre-restore-<timestamp>``
    file next to it.  Without ``--force`` nothing is changed and the
    command exits 1.
    """
    try:
        result = _engine(ctx).restore(backup_file, force=force)
    except ConfirmationRequiredError as exc:
        click.echo(f"[ERROR] Restore cancelled: {exc.message}", err=True)
        click.echo("Use --force to overwrite the current database.", err=True)
        ctx.exit(1)
    except DeploySafeError as exc:
        if json_output:
            click.echo(json.dumps({"success": False, **exc.to_dict()}, indent=2, default=str))
        else:
            click.echo(f"[ERROR] Restore failed: {exc.message}", err=True)
        ctx.exit(1)
    if json_output:
        payload = {"success": True, **result.model_dump(mode="json", by_alias=True)}
        click.echo(json.dumps(payload, indent=2, sort_keys=True))
        return
    if result.pre_restore_path:
        click.echo(f"Pre-restore backup: {result.pre_restore_path}")
    click.echo(
        f"[SUCCESS] Database restored from {result.backup_path} - {result.row_counts.summary()}"
    )
