"""Logging setup for the deploysafe command-line tools and web app.

Two output formats are supported:

* ``simple``: ``[timestamp] LEVEL: message`` lines for humans.
* ``json``: one JSON object per line with ``timestamp``, ``level``,
  ``logger`` and ``message`` plus any ``extra`` fields, for log
  aggregators on the hosting platform.

Log records go to stderr so that stdout carries only the rendered
reports that operators and CI pipelines read.  An optional log file
receives the same records (the backup tool historically kept its own
``backup.log``; pointing ``LOG_FILE`` there preserves that trail).
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

_HANDLER_MARK = "_deploysafe_handler"

# Attributes present on every LogRecord; anything else came from ``extra=``.
_RESERVED = {
    "name", "msg", "args", "created", "filename", "funcName", "levelname",
    "levelno", "lineno", "module", "msecs", "pathname", "process",
    "processName", "relativeCreated", "stack_info", "exc_info", "exc_text",
    "thread", "threadName", "message", "taskName",
}


class JSONFormatter(logging.Formatter):
    """Render log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key in _RESERVED or key.startswith("_"):
                continue
            entry[key] = value
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class SimpleFormatter(logging.Formatter):
    """``[2025-09-08T10:00:00+00:00] INFO: message``"""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="seconds")
        line = f"[{ts}] {record.levelname}: {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(
    level: str = "INFO",
    fmt: str = "simple",
    log_file: Optional[str] = None,
) -> logging.Logger:
    """Install deploysafe handlers on the package logger.

    Calling this more than once replaces the handlers installed by the
    previous call instead of stacking duplicates.

    Args:
        level: Log level name (``DEBUG``, ``INFO``, ``WARNING``, ...).
        fmt: ``simple`` or ``json``.
        log_file: Optional path of a file that also receives records.
            Parent directories are created.

    Returns:
        The configured ``deploysafe`` logger.
    """
    logger = logging.getLogger("deploysafe")
    resolved = logging.getLevelName(level.upper()) if isinstance(level, str) else level
    if not isinstance(resolved, int):
        resolved = logging.INFO
    logger.setLevel(resolved)

    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_MARK, False):
            logger.removeHandler(handler)
            handler.close()

    formatter: logging.Formatter = JSONFormatter() if fmt == "json" else SimpleFormatter()
    handlers = [logging.StreamHandler(sys.stderr)]
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))
    for handler in handlers:
        handler.setFormatter(formatter)
        setattr(handler, _HANDLER_MARK, True)
        logger.addHandler(handler)
    return logger


__all__ = ["JSONFormatter", "SimpleFormatter", "configure_logging"]
