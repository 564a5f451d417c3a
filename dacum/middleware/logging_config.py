"""
Structured logging configuration.

Production writes one JSON object per line; development and tests get a
short coloured line. Inside a request every record is stamped with the
request id and, when the route has them, the panel session and CU code, so
engine logs (lock rejections, generation fallbacks, catalog page failures)
can be traced back to the call that caused them.

LOG_LEVEL overrides the default level (DEBUG outside production, INFO in it).
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context, request

# record attributes copied into JSON lines when set
CONTEXT_FIELDS = (
    "request_id",
    "session_id",
    "cu_code",
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
    "component",
    "code",
)

NOISY_LOGGERS = ("urllib3", "werkzeug", "sqlalchemy.engine", "httpx", "google_genai", "openai", "anthropic")


class RequestContextFilter(logging.Filter):
    """Stamp request id, session id and CU code onto records logged in a request."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not has_request_context():
            return True
        if getattr(record, "request_id", None) is None:
            record.request_id = g.get("request_id")
        view_args = request.view_args or {}
        if getattr(record, "session_id", None) is None and view_args.get("sid"):
            record.session_id = view_args["sid"]
        if getattr(record, "cu_code", None) is None and view_args.get("cu"):
            record.cu_code = view_args["cu"]
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        entry.update({k: getattr(record, k) for k in CONTEXT_FIELDS if getattr(record, k, None) is not None})
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``HH:MM:SS LEVEL [request session/cu] logger: message``, coloured by level."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        scope = "/".join(str(v) for v in (getattr(record, "session_id", None), getattr(record, "cu_code", None)) if v)
        request_id = getattr(record, "request_id", None)
        tag = " ".join(p for p in (request_id, scope) if p)
        line = f"{color}{ts} {record.levelname:<8}{self.RESET} "
        if tag:
            line += f"[{tag}] "
        line += f"{record.name}: {record.getMessage()}"
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" [{duration:.0f}ms]"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install a single stderr handler on the root logger for *app*."""
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter())
    handler.addFilter(RequestContextFilter())
    handler.setLevel(level)

    root = logging.getLogger()
    # create_app runs once per test session and again in scripts; never stack handlers
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s", level_name, "json" if is_prod else "readable")
