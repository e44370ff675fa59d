"""
Structured logging configuration.

- Development: human-readable colored format
- Production: JSON format (log aggregator compatible)
- Log level: controlled via LOG_LEVEL env variable
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context, request

# Attributes callers attach with ``extra=`` that are worth keeping in JSON lines
_EXTRA_FIELDS = (
    "method",
    "path",
    "endpoint",
    "status",
    "duration_ms",
    "remote_addr",
    "request_id",
    "actor_id",
    "enquiry_id",
    "event_type",
    "step",
    "record_ref",
    "topic",
)

# Route parameters that identify the workflow record a request acts on
_RECORD_VIEW_ARGS = ("enquiry_id", "design_work_id", "workflow_id", "task_id", "dispatch_id")


def request_log_context() -> dict:
    """
    Identifiers of the current request: request_id, actor_id and the
    enquiry (or stage record) named in the URL.  Empty outside a request.
    """
    if not has_request_context():
        return {}
    ctx = {"request_id": g.get("request_id")}
    actor = g.get("actor")
    if actor is not None:
        ctx["actor_id"] = actor.id
    view_args = request.view_args or {}
    if "enquiry_id" in view_args:
        ctx["enquiry_id"] = view_args["enquiry_id"]
    else:
        for key in _RECORD_VIEW_ARGS[1:]:
            if key in view_args:
                ctx["record_ref"] = f"{key}={view_args[key]}"
                break
    return {k: v for k, v in ctx.items() if v is not None}


class RequestContextFilter(logging.Filter):
    """Stamp request identifiers onto records that did not set them via ``extra=``."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in request_log_context().items():
            if getattr(record, key, None) is None:
                setattr(record, key, value)
        return True


class JSONFormatter(logging.Formatter):
    """JSON log formatter for production / log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        for key in _EXTRA_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                log_entry[key] = val
        return json.dumps(log_entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Human-readable colored formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",      # cyan
        "INFO": "\033[32m",       # green
        "WARNING": "\033[33m",    # yellow
        "ERROR": "\033[31m",      # red
        "CRITICAL": "\033[35m",   # magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.now().strftime("%H:%M:%S")
        duration = getattr(record, "duration_ms", None)
        dur_str = f" [{duration:.0f}ms]" if duration is not None else ""
        event = getattr(record, "event_type", None)
        event_str = f" <{event}>" if event else ""
        tags = " ".join(
            f"{label}={getattr(record, attr)}"
            for label, attr in (("enq", "enquiry_id"), ("actor", "actor_id"))
            if getattr(record, attr, None) is not None
        )
        tag_str = f" [{tags}]" if tags else ""
        msg = record.getMessage()
        base = f"{color}{ts} {record.levelname:<8}{self.RESET} {record.name}:{event_str}{tag_str} {msg}{dur_str}"
        if record.exc_info and record.exc_info[0] is not None:
            base += "\n" + self.formatException(record.exc_info)
        return base


def configure_logging(app):
    """
    Set up structured logging for the Flask app.

    Reads LOG_LEVEL from env (default: DEBUG in dev, INFO in prod).
    Development  → ReadableFormatter on stderr
    Production   → JSONFormatter on stderr
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG")
    level = getattr(logging, level_name.upper(), logging.INFO)

    formatter = JSONFormatter() if is_prod else ReadableFormatter()

    root = logging.getLogger()
    # Replace only our own handler so repeated app creation (tests) does not stack them
    for existing in list(root.handlers):
        if getattr(existing, "_workflow_crm", False):
            root.removeHandler(existing)
    handler = logging.StreamHandler(sys.stderr)
    handler._workflow_crm = True
    handler.setFormatter(formatter)
    handler.addFilter(RequestContextFilter())
    handler.setLevel(level)
    root.addHandler(handler)
    root.setLevel(level)

    # Quieten noisy libraries
    for noisy in ("urllib3", "werkzeug", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, "JSON" if is_prod else "readable")
