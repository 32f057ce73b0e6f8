"""
Structured logging with per-request correlation ids.

Records are written to stdout as one JSON object per line (or a compact text
line when LOG_JSON=false). Booking services log state changes through
log_booking_event so every entry carries the same booking_id field.
"""
import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union
from uuid import UUID

from rozgaar.lib.settings import settings


# Correlation id of the request being handled, set by middleware
correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

_QUIET_LOGGERS = ("sqlalchemy.engine", "httpx", "httpcore", "uvicorn.access")


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Fields: timestamp, level, service, logger, message, correlation_id (when
    set), source location for warnings and errors, exception, plus anything
    passed as extra_fields.
    """

    def __init__(self, service: str):
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "service": self.service,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = correlation_id_var.get()
        if correlation_id:
            log_data["correlation_id"] = correlation_id

        if record.levelno >= logging.WARNING:
            log_data["source"] = f"{record.module}:{record.lineno}"

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra_fields = getattr(record, "extra_fields", None)
        if extra_fields:
            log_data.update(extra_fields)

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Single-line format for reading logs in a terminal."""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)-7s %(name)s [%(correlation)s] %(message)s%(fields)s")

    def format(self, record: logging.LogRecord) -> str:
        record.correlation = correlation_id_var.get() or "-"
        extra_fields = getattr(record, "extra_fields", None) or {}
        record.fields = "".join(f" {key}={value}" for key, value in extra_fields.items())
        return super().format(record)


def setup_logging(level: str = "INFO", json_format: bool = True) -> None:
    """
    Configure the root logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: JSON lines when True, TextFormatter otherwise
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(JSONFormatter(settings.app_name) if json_format else TextFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def set_correlation_id(correlation_id: Optional[str]) -> None:
    """Bind a correlation id to the current context; None clears it."""
    correlation_id_var.set(correlation_id)


def get_correlation_id() -> Optional[str]:
    return correlation_id_var.get()


def log_with_context(logger: logging.Logger, level: str, message: str, **extra_fields: Any) -> None:
    """
    Log a message with additional structured fields.

    Args:
        logger: Logger instance
        level: Log level name (debug, info, warning, error, critical)
        message: Log message
        **extra_fields: Fields merged into the JSON record
    """
    log_func = getattr(logger, level.lower())
    log_func(message, extra={"extra_fields": extra_fields})


def log_booking_event(
    logger: logging.Logger,
    message: str,
    booking_id: Union[UUID, str],
    level: str = "info",
    **fields: Any,
) -> None:
    """Log an event on one booking; enum values are written as their string value."""
    normalized = {
        key: value.value if isinstance(value, Enum) else value
        for key, value in fields.items()
    }
    log_with_context(logger, level, message, booking_id=str(booking_id), **normalized)


# Initialize logging on module import
setup_logging(
    level="DEBUG" if settings.debug else settings.log_level,
    json_format=settings.log_json,
)
