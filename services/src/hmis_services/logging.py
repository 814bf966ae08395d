"""Structured logging for HMIS services.

HMIS_LOG_FORMAT picks "json" (default, one object per line) or "text".
Both formats carry the hmis_* extras the loaders attach (hmis_loader,
hmis_rows, hmis_duration_ms, hmis_user_uid, ...).
"""

import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from typing import Any

EXTRA_PREFIX = "hmis_"

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# psycopg logs every connection notice at INFO
_QUIET_LOGGERS = ("psycopg", "psycopg.pool")


def _extras(record: logging.LogRecord) -> dict[str, Any]:
    return {k: v for k, v in record.__dict__.items() if k.startswith(EXTRA_PREFIX)}


class JSONFormatter(logging.Formatter):
    """Emit log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
        }
        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = "".join(traceback.format_exception(*record.exc_info))
        log_entry.update(_extras(record))
        return json.dumps(log_entry, default=str)


class TextFormatter(logging.Formatter):
    """Plain log line followed by the hmis_* extras as key=value pairs."""

    def __init__(self) -> None:
        super().__init__(TEXT_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = _extras(record)
        if not extras:
            return line
        pairs = " ".join(f"{k[len(EXTRA_PREFIX):]}={v}" for k, v in sorted(extras.items()))
        head, sep, tail = line.partition("\n")
        return f"{head} [{pairs}]{sep}{tail}"


def parse_level(name: str) -> int:
    level = logging.getLevelName(name.strip().upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {name!r}")
    return level


def setup_logging(log_format: str, level: int = logging.INFO) -> None:
    """Route the root logger to stderr in the requested format."""
    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter() if log_format == "json" else TextFormatter())
    root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
