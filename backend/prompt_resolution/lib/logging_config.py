"""Centralized logging configuration for the prompt resolution engine.

Provides structured JSON logging output for log shippers, while remaining
human-readable in local development (LOG_FORMAT=simple).

Usage:
    # Once, at process start:
    from prompt_resolution.lib.logging_config import configure_logging
    configure_logging()

    # In any module:
    import logging
    logger = logging.getLogger(__name__)
    logger.info("Something happened", extra={"version": 3})

Context variables (request_id, project_id, prompt_name) are automatically
injected into every log record via a logging Filter that reads from contextvars.
"""

import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Dict

from prompt_resolution.config import get_log_format, get_log_level
from prompt_resolution.lib.context import (
    get_current_project_id,
    get_current_prompt_name,
    get_current_request_id,
)

CONTEXT_FIELDS = ("request_id", "project_id", "prompt_name")


class ContextFilter(logging.Filter):
    """Inject request-scoped context into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = get_current_request_id()  # type: ignore[attr-defined]
        if getattr(record, "project_id", None) is None:
            record.project_id = get_current_project_id()  # type: ignore[attr-defined]
        if getattr(record, "prompt_name", None) is None:
            record.prompt_name = get_current_prompt_name()  # type: ignore[attr-defined]

        return True


class JsonFormatter(logging.Formatter):
    """Format log records as single-line JSON objects."""

    _SKIP_FIELDS = {
        "args",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "thread",
        "threadName",
        "taskName",
        *CONTEXT_FIELDS,
    }

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            log_entry[field] = getattr(record, field, None)

        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exc_info"] = "".join(traceback.format_exception(*record.exc_info))

        for key, value in record.__dict__.items():
            if key in self._SKIP_FIELDS or key in log_entry:
                continue
            try:
                json.dumps(value)
                log_entry[key] = value
            except (TypeError, ValueError):
                log_entry[key] = str(value)

        return json.dumps(log_entry, default=str)


class SimpleFormatter(logging.Formatter):
    """Human-readable format for local development."""

    def format(self, record: logging.LogRecord) -> str:
        ctx_parts = []
        for field in CONTEXT_FIELDS:
            val = getattr(record, field, None)
            if val:
                display = val[:12] if len(str(val)) > 12 else val
                ctx_parts.append(f"{field}={display}")
        ctx_suffix = f" [{', '.join(ctx_parts)}]" if ctx_parts else ""

        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        base = f"{timestamp} {record.levelname:<8} {record.name} - {record.getMessage()}{ctx_suffix}"

        if record.exc_info and record.exc_info[1] is not None:
            base += "\n" + "".join(traceback.format_exception(*record.exc_info))

        return base


def configure_logging() -> None:
    """Configure root logging for the process."""
    level = getattr(logging, get_log_level(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    if get_log_format() == "simple":
        handler.setFormatter(SimpleFormatter())
    else:
        handler.setFormatter(JsonFormatter())
    handler.addFilter(ContextFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("redis").setLevel(logging.WARNING)
