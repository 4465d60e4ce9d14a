"""Verified, timestamped snapshots of the product database.

The engine creates backups with SQLite's online backup API, which copies
a consistent point-in-time image even while the application is writing.
Every backup is verified before it is allowed to stay on disk: the copy
must pass ``PRAGMA integrity_check`` and its row counts must match the
counts captured from the source just before copying.  Any failure
removes the artifact (and its ``-wal``/``-shm``/``-journal`` companions)
before the error propagates, so an unverified backup never survives.

A verified backup gets a ``.verified`` stamp next to it.  The stamp lets
:meth:`BackupEngine.inventory` answer "which verified backups exist"
from filenames and ``stat`` alone; :meth:`BackupEngine.list` still
re-verifies every file.

After a successful backup the retention policy keeps the newest
``max_backups`` verified backups and deletes older verified ones.
Files that fail verification are left alone by retention; they are
reported by :meth:`BackupEngine.list` so an operator can inspect them.

:meth:`BackupEngine.restore` copies a verified backup over the live
database with the same online backup API, after taking a pre-restore
copy of the current file.

Creating backups concurrently against the same directory is not
supported.  The retention step can race with another ``create``; run
backups from a single scheduler.
"""

from __future__ import annotations

import logging
import os
import re
import sqlite3
from contextlib import closing
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

import sqlalchemy as sa
from pydantic import ValidationError
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ..config import Settings
from ..db.counts import RowCounts, count_rows
from ..db.session import get_engine, raw_sqlite_connection
from ..errors import ConfirmationRequiredError, FilesystemError, IntegrityError
from .models import BackupRecord, RestoreResult, VerificationResult, VerificationStamp

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S-%f"
STAMP_SUFFIX = ".verified"
COMPANION_SUFFIXES = ("-wal", "-shm", "-journal", STAMP_SUFFIX)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _integrity_problems(engine: Engine) -> List[str]:
    """Run ``PRAGMA integrity_check`` and return the reported problems.

    An empty list means the database is consistent.
    """
    with engine.connect() as conn:
        rows = [str(r) for r in conn.execute(sa.text("PRAGMA integrity_check")).scalars().all()]
    return [] if rows == ["ok"] else rows


def verify_database(path: PathLike) -> VerificationResult:
    """Probe a database file read-only.

    Never raises and never creates ``path``.  Returns a valid result
    with row counts when the file passes ``PRAGMA integrity_check``
    and every tracked table can be counted.
    """
    target = Path(path)
    if not target.is_file():
        return VerificationResult.failed(f"Database file not found: {target}")
    engine = get_engine(target, read_only=True)
    try:
        problems = _integrity_problems(engine)
        if problems:
            return VerificationResult.failed("Integrity check failed: " + "; ".join(problems[:5]))
        counts = count_rows(engine)
    except (SQLAlchemyError, sqlite3.Error) as exc:
        orig = getattr(exc, "orig", None)
        return VerificationResult.failed(str(orig or exc))
    finally:
        engine.dispose()
    return VerificationResult.ok(counts)


def _stamp_path(path: Path) -> Path:
    return Path(str(path) + STAMP_SUFFIX)


def _read_stamp(path: Path) -> Optional[VerificationStamp]:
    try:
        return VerificationStamp.model_validate_json(_stamp_path(path).read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, ValueError, ValidationError) as exc:
        logger.warning("Ignoring unreadable verification stamp for %s: %s", path.name, exc)
        return None


class BackupEngine:
    """Create, list, verify, restore and retire backups of one database file."""

    def __init__(
        self,
        database_path: PathLike,
        backup_dir: PathLike,
        *,
        max_backups: int = 10,
        prefix: str = "app_backup",
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if max_backups < 1:
            raise ValueError("max_backups must be at least 1")
        self.database_path = Path(database_path)
        self.backup_dir = Path(backup_dir)
        self.max_backups = max_backups
        self.prefix = prefix
        self._clock = clock or _utcnow
        self._name_re = re.compile(
            rf"^{re.escape(prefix)}_(\d{{4}}-\d{{2}}-\d{{2}}_\d{{2}}-\d{{2}}-\d{{2}}(?:-\d{{6}})?)(?:_(\d+))?\.db$"
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "BackupEngine":
        """Build an engine from settings; raises ConfigurationError without a database path."""
        return cls(
            settings.require_database_path(),
            settings.resolved_backup_dir(),
            max_backups=settings.backup_max_count,
            prefix=settings.backup_prefix,
        )

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------
    def verify(self, path: PathLike) -> VerificationResult:
        """Probe a backup (or any database file); see :func:`verify_database`."""
        return verify_database(path)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------
    def create(self) -> BackupRecord:
        """Create a verified backup and apply the retention policy.

        Raises:
            FilesystemError: the source is missing or the backup
                directory cannot be written.
            IntegrityError: the source fails its consistency check, the
                copy fails verification, or row counts do not match.
        """
        source = self.database_path
        if not source.is_file():
            raise FilesystemError(
                f"Source database not found: {source}", details={"path": str(source)}
            )
        logger.info("Starting database backup of %s", source)

        src_engine = get_engine(source)
        try:
            source_counts = self._verify_source(src_engine)
            logger.info("Source database verified: %s", source_counts.summary())

            try:
                self.backup_dir.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise FilesystemError(
                    f"Cannot create backup directory {self.backup_dir}: {exc}",
                    details={"path": str(self.backup_dir)},
                ) from exc

            created_at = self._now()
            target = self._claim_path(
                self.backup_dir, f"{self.prefix}_{created_at.strftime(TIMESTAMP_FORMAT)}", ".db"
            )
            logger.info("Creating backup: %s", target.name)
            try:
                self._copy(src_engine, target)
                backup_counts = self._check_copy(target, source_counts)
                st = self._write_stamp(target, backup_counts)
            except BaseException:
                self._discard(target)
                raise
        finally:
            src_engine.dispose()

        record = BackupRecord(
            filename=target.name,
            path=str(target),
            created_at=created_at,
            size_bytes=st.st_size,
            verified=True,
            row_counts=backup_counts,
        )
        logger.info(
            "Backup completed successfully: %s (%d KB), %s",
            record.filename,
            record.size_kb,
            backup_counts.summary(),
        )
        try:
            self.apply_retention()
        except (OSError, FilesystemError) as exc:
            # The new backup is valid; a failed cleanup only means extra files remain.
            logger.warning("Backup cleanup failed: %s", exc)
        return record

    def _now(self) -> datetime:
        # Filenames carry UTC wall-clock time so list() can parse it back
        now = self._clock()
        if now.tzinfo is None:
            return now.replace(tzinfo=timezone.utc)
        return now.astimezone(timezone.utc)

    def _verify_source(self, engine: Engine) -> RowCounts:
        try:
            problems = _integrity_problems(engine)
            if problems:
                raise IntegrityError(
                    "Source database is corrupted: " + "; ".join(problems[:5]),
                    details={"path": str(self.database_path), "problems": problems[:20]},
                )
            return count_rows(engine)
        except (SQLAlchemyError, sqlite3.Error) as exc:
            orig = getattr(exc, "orig", None)
            raise IntegrityError(
                f"Source database cannot be read: {orig or exc}",
                details={"path": str(self.database_path)},
            ) from exc

    def _claim_path(self, directory: Path, stem: str, suffix: str) -> Path:
        """Reserve a unique filename ``<stem>[_N]<suffix>`` in ``directory``.

        The file is created with ``O_EXCL`` so two writers can never end
        up with the same name.  SQLite treats the empty file as an empty
        database and the backup API fills it.
        """
        seq = 0
        while True:
            name = f"{stem}{suffix}" if seq == 0 else f"{stem}_{seq}{suffix}"
            candidate = directory / name
            try:
                fd = os.open(candidate, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o600)
            except FileExistsError:
                seq += 1
                continue
            except OSError as exc:
                raise FilesystemError(
                    f"Cannot create backup file {candidate}: {exc}", details={"path": str(candidate)}
                ) from exc
            os.close(fd)
            return candidate

    def _copy(self, src_engine: Engine, target: Path) -> None:
        try:
            with raw_sqlite_connection(src_engine) as source_conn:
                with closing(sqlite3.connect(str(target))) as target_conn:
                    source_conn.backup(target_conn)
        except (SQLAlchemyError, sqlite3.Error) as exc:
            raise IntegrityError(
                f"Online backup failed: {exc}", details={"path": str(target)}
            ) from exc
        except OSError as exc:
            raise FilesystemError(
                f"Cannot write backup file {target}: {exc}", details={"path": str(target)}
            ) from exc

    def _check_copy(self, target: Path, source_counts: RowCounts) -> RowCounts:
        result = self.verify(target)
        if not result.valid:
            raise IntegrityError(
                f"Backup verification failed: {result.error}", details={"path": str(target)}
            )
        backup_counts = result.row_counts()
        if backup_counts != source_counts:
            raise IntegrityError(
                "Backup data mismatch - "
                f"Source: {source_counts.users}/{source_counts.scans}/{source_counts.scores}, "
                f"Backup: {backup_counts.users}/{backup_counts.scans}/{backup_counts.scores}",
                details={
                    "source": source_counts.model_dump(),
                    "backup": backup_counts.model_dump(),
                },
            )
        return backup_counts

    def _write_stamp(self, target: Path, counts: RowCounts) -> os.stat_result:
        st = target.stat()
        stamp = VerificationStamp(
            verified_at=self._now(),
            size_bytes=st.st_size,
            mtime_ns=st.st_mtime_ns,
            row_counts=counts,
        )
        try:
            _stamp_path(target).write_text(stamp.model_dump_json(by_alias=True), encoding="utf-8")
        except OSError as exc:
            raise FilesystemError(
                f"Cannot write verification stamp for {target.name}: {exc}",
                details={"path": str(target)},
            ) from exc
        return st

    def _discard(self, path: Path) -> None:
        """Delete a backup file and its companions; missing files are fine."""
        for candidate in [path] + [Path(str(path) + suffix) for suffix in COMPANION_SUFFIXES]:
            try:
                candidate.unlink(missing_ok=True)
            except OSError as exc:
                logger.error("Could not delete %s: %s", candidate, exc)

    # ------------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------------
    def _parse_name(self, filename: str) -> Optional[Tuple[datetime, int]]:
        match = self._name_re.match(filename)
        if not match:
            return None
        stamp, seq = match.group(1), match.group(2)
        fmt = TIMESTAMP_FORMAT if len(stamp) > 19 else "%Y-%m-%d_%H-%M-%S"
        try:
            created = datetime.strptime(stamp, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            return None
        return created, int(seq or 0)

    def _backup_files(self) -> List[Tuple[datetime, Path]]:
        """Backup files in the directory, newest first, as ``(created_at, path)``."""
        if not self.backup_dir.exists():
            return []
        try:
            names = [entry.name for entry in os.scandir(self.backup_dir) if entry.is_file()]
        except OSError as exc:
            raise FilesystemError(
                f"Cannot list backup directory {self.backup_dir}: {exc}",
                details={"path": str(self.backup_dir)},
            ) from exc

        keyed = []
        for name in names:
            parsed = self._parse_name(name)
            if parsed is not None:
                keyed.append((parsed[0], parsed[1], name))
        keyed.sort(reverse=True)
        return [(created_at, self.backup_dir / name) for created_at, _seq, name in keyed]

    def list(self) -> List[BackupRecord]:
        """Return backups newest first, each freshly verified.

        A missing backup directory yields an empty list.

        Raises:
            FilesystemError: the backup path exists but cannot be listed.
        """
        records: List[BackupRecord] = []
        for created_at, path in self._backup_files():
            try:
                size = path.stat().st_size
            except FileNotFoundError:
                # Removed between listing and stat
                continue
            result = self.verify(path)
            records.append(
                BackupRecord(
                    filename=path.name,
                    path=str(path),
                    created_at=created_at,
                    size_bytes=size,
                    verified=result.valid,
                    row_counts=result.row_counts(),
                    error=result.error,
                )
            )
        return records

    def inventory(self) -> List[BackupRecord]:
        """Return backups newest first without opening any of them.

        A backup counts as verified when its stamp matches the file's
        current size and mtime.  Use :meth:`list` for a fresh check.

        Raises:
            FilesystemError: the backup path exists but cannot be listed.
        """
        records: List[BackupRecord] = []
        for created_at, path in self._backup_files():
            try:
                st = path.stat()
            except FileNotFoundError:
                continue
            stamp = _read_stamp(path)
            verified = stamp is not None and stamp.matches(st.st_size, st.st_mtime_ns)
            records.append(
                BackupRecord(
                    filename=path.name,
                    path=str(path),
                    created_at=created_at,
                    size_bytes=st.st_size,
                    verified=verified,
                    row_counts=stamp.row_counts if verified else None,
                    error=None if verified else "No current verification stamp",
                )
            )
        return records

    def apply_retention(self) -> List[str]:
        """Delete the oldest verified backups beyond ``max_backups``.

        Returns the filenames that were removed, oldest first.
        """
        verified = [r for r in self.list() if r.verified]
        excess = verified[self.max_backups:]
        removed: List[str] = []
        for record in reversed(excess):
            self._discard(Path(record.path))
            removed.append(record.filename)
            logger.info("Deleted old backup: %s", record.filename)
        if removed:
            logger.info("Cleaned up %d old backup(s)", len(removed))
        return removed

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------
    def resolve_backup(self, backup: PathLike) -> Path:
        """Find a backup given a path or a bare filename in the backup directory."""
        candidate = Path(backup)
        if candidate.is_absolute() or candidate.exists():
            return candidate
        in_dir = self.backup_dir / candidate
        return in_dir if in_dir.exists() else candidate

    def restore(self, backup: PathLike, *, force: bool = False) -> RestoreResult:
        """Replace the live database with the contents of a verified backup.

        The backup is verified first.  The current database, when it
        exists, is copied to ``<database>.pre-restore-<timestamp>`` in
        the same directory before it is overwritten.  The copy into
        the live file uses the online backup API so open connections
        see the restored pages, and the restored row counts must match
        the backup's.

        Raises:
            FilesystemError: the backup is missing or a file cannot be written.
            IntegrityError: the backup fails verification, or the restored
                database does not match it.
            ConfirmationRequiredError: ``force`` was not given.
        """
        backup_path = self.resolve_backup(backup)
        if not backup_path.is_file():
            raise FilesystemError(
                f"Backup file not found: {backup_path}", details={"path": str(backup_path)}
            )
        checked = self.verify(backup_path)
        if not checked.valid:
            raise IntegrityError(
                f"Backup verification failed: {checked.error}", details={"path": str(backup_path)}
            )
        target = self.database_path
        if not force:
            raise ConfirmationRequiredError(
                f"Restoring overwrites the database at {target}; pass force to proceed",
                details={"path": str(target), "backup": str(backup_path)},
            )
        expected = checked.row_counts()
        logger.info("Restoring %s from %s", target, backup_path)

        pre_restore: Optional[Path] = None
        if target.is_file():
            pre_restore = self._claim_path(
                target.parent, f"{target.name}.pre-restore-{self._now().strftime(TIMESTAMP_FORMAT)}", ""
            )
            live_engine = get_engine(target)
            try:
                self._copy(live_engine, pre_restore)
            except BaseException:
                self._discard(pre_restore)
                raise
            finally:
                live_engine.dispose()
            logger.info("Created pre-restore backup: %s", pre_restore)
        else:
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise FilesystemError(
                    f"Cannot create database directory {target.parent}: {exc}",
                    details={"path": str(target.parent)},
                ) from exc

        backup_engine = get_engine(backup_path, read_only=True)
        try:
            self._copy(backup_engine, target)
        finally:
            backup_engine.dispose()

        restored = self.verify(target)
        if not restored.valid or restored.row_counts() != expected:
            raise IntegrityError(
                "Restored database does not match the backup: "
                f"{restored.error or restored.row_counts().summary()}",
                details={
                    "path": str(target),
                    "pre_restore": str(pre_restore) if pre_restore else None,
                },
            )
        logger.info("Database restored from %s: %s", backup_path.name, expected.summary())
        return RestoreResult(
            database_path=str(target),
            backup_path=str(backup_path),
            pre_restore_path=str(pre_restore) if pre_restore else None,
            row_counts=expected,
        )


__all__ = ["BackupEngine", "TIMESTAMP_FORMAT", "verify_database"]
