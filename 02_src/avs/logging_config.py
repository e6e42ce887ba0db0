"""Structured logging configuration for the AVS task pipeline."""

import json
import logging
import logging.config
import logging.handlers
import os
from datetime import datetime, timezone
from pathlib import Path

from .config import DEFAULT_LOG_PATH

# Record attributes promoted to top-level JSON fields when passed via `extra`.
PIPELINE_FIELDS = ("task_id", "agent", "status", "tx_hash")

# Third-party loggers that are too chatty at INFO.
NOISY_LOGGERS = ("httpx", "httpcore", "web3", "urllib3", "aiosqlite")


class JSONFormatter(logging.Formatter):
    """One JSON object per line; pipeline ids from `extra` become fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        entry.update(
            (name, getattr(record, name))
            for name in PIPELINE_FIELDS
            if getattr(record, name, None) is not None
        )
        context = getattr(record, "context", None)
        if context is not None:
            entry["context"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(
    log_level: str | None = None,
    log_file: str | None = None,
    console: bool = True,
) -> None:
    """Route the root logger to a rotating JSON file and, optionally, stdout.

    The level falls back to LOG_LEVEL, then INFO. Chatty client libraries
    are held at WARNING.
    """
    level = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_path = Path(log_file) if log_file else DEFAULT_LOG_PATH
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handlers = {
        "file": {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": str(log_path),
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 5,
            "formatter": "json",
            "encoding": "utf-8",
        },
    }
    if console:
        handlers["console"] = {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "stream": "ext://sys.stdout",
        }

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"json": {"()": JSONFormatter}},
        "handlers": handlers,
        "loggers": {name: {"level": "WARNING"} for name in NOISY_LOGGERS},
        "root": {"level": level, "handlers": list(handlers)},
    })


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
