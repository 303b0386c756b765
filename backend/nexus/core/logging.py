"""Logging utilities for nexus.

Records may carry structured context (the source archive, the collection,
a record URL) passed through ``extra=log_context(...)``. The JSON formatter
emits those fields alongside the message; the plain formatter appends them.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import orjson

_DEFAULT_LEVEL = os.environ.get("NEXUS_LOG_LEVEL", "INFO")
_CONTEXT_PREFIX = "ctx_"
# third-party loggers that are chatty at INFO while archives are watched
_QUIET_LOGGERS = ("watchdog", "watchdog.observers.inotify_buffer")


def log_context(**fields: Any) -> dict[str, Any]:
    """Build an ``extra=`` mapping whose fields reach the formatters."""
    return {f"{_CONTEXT_PREFIX}{key}": value for key, value in fields.items() if value is not None}


def _context_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key[len(_CONTEXT_PREFIX) :]: value
        for key, value in record.__dict__.items()
        if key.startswith(_CONTEXT_PREFIX)
    }


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        payload.update(_context_fields(record))
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return orjson.dumps(payload, default=str).decode("utf-8")


class PlainFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = _context_fields(record)
        if context:
            line += " " + " ".join(f"{key}={value}" for key, value in context.items())
        return line


def configure_logging(level: str | int = _DEFAULT_LEVEL, use_json: bool = True) -> None:
    """Configure root logger with optional JSON formatting."""
    logging.captureWarnings(True)
    root = logging.getLogger()
    root.setLevel(level)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter() if use_json else PlainFormatter())
    root.handlers = [handler]
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = "nexus") -> logging.Logger:
    """Return configured logger, configuring root on first call."""
    if not logging.getLogger().handlers:
        configure_logging()
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger", "log_context", "JsonFormatter", "PlainFormatter"]
