"""
Structured Logging Setup

Consistent logging configuration across the client.
Uses JSON format for structured logs by default.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

_RESERVED_ATTRS = frozenset((
    "name", "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "exc_info", "exc_text", "stack_info",
    "lineno", "funcName", "created", "msecs", "relativeCreated",
    "thread", "threadName", "processName", "process", "service",
    "message", "taskName",
))


class JsonFormatter(logging.Formatter):
    """JSON log formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "service": getattr(record, "service", "unknown"),
            "message": record.getMessage(),
            "logger": record.name,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Extra fields passed via `extra=` or LogContext
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, default=str)


class ServiceLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that adds service name to all logs"""

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        kwargs.setdefault("extra", {})
        kwargs["extra"]["service"] = self.extra.get("service", "unknown")
        return msg, kwargs


def setup_logging(
    service_name: str,
    log_level: str = "INFO",
    json_format: bool = True,
) -> logging.Logger:
    """
    Set up structured logging for a component.

    Args:
        service_name: Name of the component (e.g., "sync.worker", "session")
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON format (True for production, False for dev)

    Returns:
        Configured logger instance
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger(f"aura.{service_name}")
    logger.setLevel(numeric_level)
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(numeric_level)

    if json_format:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler.setFormatter(formatter)
    logger.addHandler(handler)

    # Don't propagate to root logger
    logger.propagate = False

    return logger


def get_service_logger(service_name: str) -> ServiceLoggerAdapter:
    """
    Get a logger adapter with service context.

    Level and format come from AURA_LOG_LEVEL and AURA_LOG_FORMAT.
    """
    log_level = os.environ.get("AURA_LOG_LEVEL", "INFO")
    json_format = os.environ.get("AURA_LOG_FORMAT", "json").lower() == "json"

    logger = setup_logging(service_name, log_level, json_format)
    return ServiceLoggerAdapter(logger, {"service": service_name})


class LogContext:
    """
    Context manager for adding temporary context to logs.

    Usage:
        with LogContext(experiment_id="fitts", user_id="7"):
            logger.info("Session configured")
    """

    def __init__(self, **context: Any):
        self.context = context
        self._original_factory = None

    def __enter__(self):
        self._original_factory = logging.getLogRecordFactory()
        original = self._original_factory

        def record_factory(*args, **kwargs):
            record = original(*args, **kwargs)
            for key, value in self.context.items():
                setattr(record, key, value)
            return record

        logging.setLogRecordFactory(record_factory)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        logging.setLogRecordFactory(self._original_factory)
        return False


def log_sync_pass(
    logger: logging.Logger | logging.LoggerAdapter,
    files_uploaded: int,
    entries_uploaded: int,
    retry_needed: bool,
    execution_time_ms: float,
) -> None:
    """Log the outcome of one queue drain pass"""
    extra = {
        "files_uploaded": files_uploaded,
        "entries_uploaded": entries_uploaded,
        "retry_needed": retry_needed,
        "execution_time_ms": execution_time_ms,
    }
    if retry_needed:
        logger.warning(
            f"Sync pass incomplete: {entries_uploaded} entries in {files_uploaded} files "
            f"uploaded before failure, exec={execution_time_ms:.0f}ms",
            extra=extra,
        )
    elif files_uploaded:
        logger.info(
            f"Sync pass: {entries_uploaded} entries in {files_uploaded} files, "
            f"exec={execution_time_ms:.0f}ms",
            extra=extra,
        )
    else:
        logger.debug("Sync pass: queue empty", extra=extra)
