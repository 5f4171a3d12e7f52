"""
Structured logging configuration.

Formats:
    json      one JSON object per line (production default)
    readable  colored single line with the entity ids in brackets (dev default)

LOG_LEVEL / LOG_FORMAT come from the app config.  Any ``extra={...}`` field
a module passes (process_id, department_id, step_count, ...) is kept, and
the id of the current request is attached to every record logged while a
request is being served.
"""

import json
import logging
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

# Attributes every LogRecord has; everything else came from ``extra=``
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}

# Ids shown inline by the readable formatter, in this order
CONTEXT_KEYS = ("request_id", "process_id", "department_id", "role_id", "action_id", "step_id")


def _extra_fields(record: logging.LogRecord) -> dict:
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RECORD_ATTRS and value is not None
    }


class RequestContextFilter(logging.Filter):
    """Copy ``g.request_id`` (set by the timing middleware) onto records."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None and has_request_context():
            record.request_id = getattr(g, "request_id", None)
        return True


class JSONFormatter(logging.Formatter):
    """JSON log formatter for production / log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(_extra_fields(record))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Colored one-line formatter for development."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, "")
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        context = " ".join(
            f"{key.removesuffix('_id')}={getattr(record, key)}"
            for key in CONTEXT_KEYS
            if getattr(record, key, None)
        )
        line = f"{color}{ts} {record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}"
        if context:
            line += f" [{context}]"
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" ({duration:.0f}ms)"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


FORMATTERS = {"json": JSONFormatter, "readable": ReadableFormatter}


def configure_logging(app):
    """Install a single stderr handler on the root logger.

    Handlers are replaced, not added, so building several apps in one
    process (the test suite does) does not duplicate log lines.
    """
    level_name = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)
    format_name = app.config.get("LOG_FORMAT", "readable")
    formatter_class = FORMATTERS.get(format_name, ReadableFormatter)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter_class())
    handler.addFilter(RequestContextFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("werkzeug", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not app.config.get("TESTING"):
        app.logger.info("Logging configured: level=%s format=%s", level_name, format_name)
