"""
Logging setup for the engine.

Hosts call ``setup_logging()`` once. Development gets one readable line per
record; production (``ENV=production``) gets one JSON object per record.

Every entry written while the engine works on a session carries that
session's id. Assembly and scoring open ``session_context`` around their
work, and the event bus reopens it on its worker thread for each delivery,
because a ``ContextVar`` does not follow work handed to another thread.
"""
import json
import logging
import logging.config
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Generator, Optional

from assessment_engine.core.config import settings

session_id_context: ContextVar[Optional[str]] = ContextVar("session_id", default=None)

# Structured fields copied from ``extra={...}`` into the JSON entry
_EXTRA_FIELDS = (
    "competency_id",
    "phase",
    "goal",
    "duration_ms",
    "error_category",
)


@contextmanager
def session_context(session_id: Optional[str]) -> Generator[None, None, None]:
    """Tag log entries in this block with ``session_id``."""
    token = session_id_context.set(session_id)
    try:
        yield
    finally:
        session_id_context.reset(token)


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with session id and engine fields."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        log_entry: Dict[str, Any] = {
            "timestamp": timestamp.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        session_id = session_id_context.get()
        if session_id:
            log_entry["session_id"] = session_id

        # Event subscribers log from the bus worker
        if record.threadName and record.threadName != "MainThread":
            log_entry["thread"] = record.threadName

        for field in _EXTRA_FIELDS:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)

        if record.levelno >= logging.ERROR:
            log_entry["source"] = f"{record.pathname}:{record.lineno}"

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging() -> None:
    """Install the console handler for the engine's loggers from settings."""
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    formatter = "json" if settings.ENV == "production" else "default"

    logging_config: Dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "json": {
                "()": JSONFormatter,
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": formatter,
                "stream": sys.stdout,
            },
        },
        "root": {
            "level": log_level,
            "handlers": ["console"],
        },
        "loggers": {
            "assessment_engine": {
                "level": log_level,
                "handlers": ["console"],
                "propagate": False,
            },
            # SQL echo only in debug mode
            "sqlalchemy.engine": {
                "level": logging.INFO if settings.DEBUG else logging.WARNING,
                "handlers": ["console"],
                "propagate": False,
            },
        },
    }

    logging.config.dictConfig(logging_config)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
