import logging
import logging.config
import os
import sys
import time
import uuid
from typing import Any, Dict, Optional

import structlog

LOGGER_NAME = "gps_dashboard"


def _handlers(log_level: str, log_file: Optional[str]) -> Dict[str, Dict[str, Any]]:
    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "level": log_level,
            "formatter": "detailed",
            "stream": sys.stdout,
        }
    }
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": log_level,
            "formatter": "json",
            "filename": log_file,
            "maxBytes": 10485760,  # 10MB
            "backupCount": 5,
        }
    return handlers


def configure_logging(log_level: str = "INFO", log_file: Optional[str] = None):
    """
    Configure structured logging for the dashboard.

    structlog renders each event as JSON and hands it to stdlib logging, which
    writes to stdout and, when log_file is set, to a rotating file.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional log file path. If None, logs to stdout only.
    """
    log_level = (log_level or "INFO").upper()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handlers = _handlers(log_level, log_file)
    handler_names = list(handlers)

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "detailed": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            },
            "json": {
                "()": "structlog.stdlib.ProcessorFormatter",
                "processor": structlog.processors.JSONRenderer()
            }
        },
        "handlers": handlers,
        "loggers": {
            "": {"level": log_level, "handlers": handler_names, "propagate": False},
            LOGGER_NAME: {"level": log_level, "handlers": handler_names, "propagate": False},
            # requests/urllib3 retry chatter is only useful when debugging the store
            "urllib3": {"level": "WARNING" if log_level != "DEBUG" else "DEBUG"},
        },
    })

    logger = structlog.get_logger(LOGGER_NAME)
    logger.info("Logging configured", level=log_level, file=log_file)
    return logger


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


class OperationContext:
    """
    Context manager for a bulk schedule operation (recalculation, propagation, reset).

    Binds operation_type and operation_id into the logging context so every
    record written inside the block carries them. Fields passed to record()
    are added to the completion log line.
    """

    def __init__(self, operation_type: str, operation_id: Optional[str] = None):
        self.operation_type = operation_type
        self.operation_id = operation_id or str(uuid.uuid4())[:8]
        self.logger = get_logger(f"{LOGGER_NAME}.operations")
        self.summary: Dict[str, Any] = {}
        self._started = None
        self._bound = None

    def record(self, **fields):
        self.summary.update(fields)

    def __enter__(self):
        self._started = time.monotonic()
        self._bound = structlog.contextvars.bind_contextvars(
            operation_type=self.operation_type,
            operation_id=self.operation_id,
        )
        self.logger.info("Operation started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = round(time.monotonic() - self._started, 3)
        try:
            if exc_type is None:
                self.logger.info("Operation completed", duration_seconds=duration, status="success", **self.summary)
            else:
                self.logger.error(
                    "Operation failed",
                    duration_seconds=duration,
                    status="error",
                    error_type=exc_type.__name__,
                    error_message=str(exc_val),
                    **self.summary,
                )
        finally:
            structlog.contextvars.reset_contextvars(**self._bound)
        return False  # Don't suppress exceptions
