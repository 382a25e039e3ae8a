"""Structured JSON Logging with Correlation ID Support"""
import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional, Tuple

from ..config.settings import settings


correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Attributes copied from `extra=` into the JSON line
EXTRA_FIELDS: Tuple[str, ...] = (
    "incident_id", "incident_number", "transition_id", "workflow_id", "state_id",
    "action_type", "action_id", "user_id", "revision_number", "error_code",
    "path", "status_code", "duration_ms", "marked",
)

QUIET_LOGGERS: Dict[str, int] = {
    "uvicorn.access": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "pymongo": logging.WARNING,
    "apscheduler": logging.WARNING,
}

_MAX_BYTES = 10 * 1024 * 1024  # 10MB


class JsonFormatter(logging.Formatter):
    """One JSON object per line; timestamps are the record's own, in UTC"""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = getattr(record, "correlation_id", None) or correlation_id_var.get()
        if correlation_id:
            entry["correlation_id"] = correlation_id

        for name in EXTRA_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def _rotating_handler(path: str, formatter: logging.Formatter, level: int = logging.NOTSET) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=_MAX_BYTES, backupCount=5, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(log_level: Optional[str] = None, logs_path: Optional[str] = None) -> None:
    """
    Configure the root logger

    Writes JSON lines to stdout, `app.log` and (errors only) `error.log`
    under the logs directory. Calling it again replaces the handlers.
    """
    logs_path = logs_path or settings.logs_path
    os.makedirs(logs_path, exist_ok=True)
    formatter = JsonFormatter()

    root = logging.getLogger()
    root.setLevel(getattr(logging, (log_level or settings.log_level).upper(), logging.INFO))
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    root.addHandler(console)
    root.addHandler(_rotating_handler(os.path.join(logs_path, "app.log"), formatter))
    root.addHandler(_rotating_handler(os.path.join(logs_path, "error.log"), formatter, logging.ERROR))

    for name, level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the given name"""
    return logging.getLogger(name)


class ContextLogger(logging.LoggerAdapter):
    """Adds fixed context (e.g. incident_id) to every record; call-site extras win"""

    def process(self, msg: str, kwargs: Dict[str, Any]) -> Tuple[str, Dict[str, Any]]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_context_logger(name: str, **context: Any) -> ContextLogger:
    """Logger that stamps every record with the given context fields"""
    return ContextLogger(logging.getLogger(name), context)


def set_correlation_id(correlation_id: Optional[str]) -> None:
    correlation_id_var.set(correlation_id)


def get_correlation_id() -> Optional[str]:
    return correlation_id_var.get()
