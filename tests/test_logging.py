"""Tests for logging configuration."""

from __future__ import annotations

import json
import logging

from deploysafe.logging_config import JSONFormatter, SimpleFormatter, configure_logging


def _record(msg: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("deploysafe.test", logging.WARNING, __file__, 1, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_extra_fields() -> None:
    line = JSONFormatter().format(_record("backup done", backup_file="a.db"))
    entry = json.loads(line)
    assert entry["level"] == "WARNING"
    assert entry["logger"] == "deploysafe.test"
    assert entry["message"] == "backup done"
    assert entry["backup_file"] == "a.db"
    assert "msg" not in entry


def test_simple_formatter() -> None:
    line = SimpleFormatter().format(_record("hello"))
    assert line.startswith("[")
    assert line.endswith("] WARNING: hello")


def test_configure_logging_replaces_own_handlers(tmp_path) -> None:
    log_file = tmp_path / "logs" / "deploysafe.log"
    logger = configure_logging("DEBUG", "json", str(log_file))
    assert logger.level == logging.DEBUG
    assert len(logger.handlers) == 2

    logger = configure_logging("warning")
    assert logger.level == logging.WARNING
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0].formatter, SimpleFormatter)


def test_configure_logging_writes_file(tmp_path) -> None:
    log_file = tmp_path / "logs" / "deploysafe.log"
    configure_logging("INFO", "json", str(log_file))
    logging.getLogger("deploysafe.backup").info("Backup completed")
    for handler in logging.getLogger("deploysafe").handlers:
        handler.flush()
    entry = json.loads(log_file.read_text(encoding="utf-8").strip().splitlines()[-1])
    assert entry["message"] == "Backup completed"
    assert entry["logger"] == "deploysafe.backup"


def test_unknown_level_falls_back_to_info() -> None:
    assert configure_logging("LOUD").level == logging.INFO
