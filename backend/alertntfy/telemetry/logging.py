"""Structured JSON logging with request context."""

import json
import logging
import sys
from logging import Logger, LoggerAdapter

_CONTEXT_DEFAULTS = {
    "request_id": "-",
}
_CONTEXT_KEYS = ("request_id", "alert_fingerprint")


class _JsonFormatter(logging.Formatter):
    """One JSON object per line; context fields get safe defaults."""

    def format(self, record: logging.LogRecord) -> str:
        for key, default in _CONTEXT_DEFAULTS.items():
            if not hasattr(record, key):
                setattr(record, key, default)
        entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _CONTEXT_KEYS:
            if hasattr(record, key):
                entry[key] = getattr(record, key)
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def setup_logging(level: str | int = logging.INFO) -> logging.Logger:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JsonFormatter())

    logger = logging.getLogger("alertntfy")
    logger.setLevel(level)
    logger.handlers = [handler]
    logger.propagate = False

    logging.getLogger("uvicorn.access").handlers = [handler]
    logging.getLogger("uvicorn.error").handlers = [handler]

    return logger


def bind(log: Logger | LoggerAdapter, **fields: str) -> LoggerAdapter:
    """Return an adapter carrying `fields` on top of any context `log` already has."""

    if isinstance(log, LoggerAdapter):
        return LoggerAdapter(log.logger, {**(log.extra or {}), **fields})
    return LoggerAdapter(log, fields)
