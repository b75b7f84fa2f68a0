"""
Central logging configuration.

Goals:
- One shared logging setup for workers and services embedding the library.
- JSON logs to stdout for easy aggregation.
- Correlate logs with trace_id / document_id / account_id.

Prototype-friendly (no external deps).
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from logging.config import dictConfig

from pagerescue.core.request_context import get_context

# Attributes every LogRecord carries; anything else came from `extra={...}`.
_RESERVED_ATTRS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
}


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        base = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        # Include contextvars (trace/document/account)
        base.update(get_context())

        for k, v in record.__dict__.items():
            if k in _RESERVED_ATTRS or k.startswith("_") or k in base:
                continue
            try:
                json.dumps(v)
                base[k] = v
            except (TypeError, ValueError):
                base[k] = str(v)

        if record.exc_info:
            base["exc"] = self.formatException(record.exc_info)

        return json.dumps(base, ensure_ascii=False)


def configure_logging() -> None:
    """
    Call once at process startup.
    """
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    http_level = os.getenv("HTTP_LOG_LEVEL", "WARNING").upper()

    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {"()": "pagerescue.core.logging_config.JsonFormatter"},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "json",
                "stream": sys.stdout,
            }
        },
        "root": {"level": level, "handlers": ["console"]},
        "loggers": {
            "pagerescue": {"level": level, "handlers": ["console"], "propagate": False},
            # Vendor SDK / transport chatter
            "httpx": {"level": http_level, "handlers": ["console"], "propagate": False},
            "google_genai": {"level": http_level, "handlers": ["console"], "propagate": False},
            "sqlalchemy.engine": {"level": "WARNING", "handlers": ["console"], "propagate": False},
        },
    }

    dictConfig(logging_config)
