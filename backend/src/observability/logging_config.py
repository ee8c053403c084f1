"""Structured JSON logging configuration.

Provides centralized logging setup with run ID correlation and JSON formatting.
"""

import logging
import json
import sys
from datetime import datetime, timezone

from .run_id import get_run_id

# Contextual fields copied from `extra=` into the JSON document when present
EXTRA_FIELDS = (
    "task",
    "tenant_id",
    "integration_id",
    "provider",
    "external_id",
    "shipment_id",
    "listing_id",
)


class RunIDFilter(logging.Filter):
    """Add run_id to all log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Add run_id attribute to log record.

        Args:
            record: Log record to enhance

        Returns:
            bool: Always True (don't filter out records)
        """
        record.run_id = get_run_id()
        return True


class JSONFormatter(logging.Formatter):
    """Format log records as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON string.

        Args:
            record: Log record to format

        Returns:
            str: JSON-formatted log message
        """
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "run_id": getattr(record, "run_id", "no-run-id"),
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "message": record.getMessage(),
        }

        # Add exception info if present
        if record.exc_info:
            log_data["error"] = str(record.exc_info[1])
            log_data["traceback"] = self.formatException(record.exc_info)

        for field_name in EXTRA_FIELDS:
            if hasattr(record, field_name):
                log_data[field_name] = str(getattr(record, field_name))

        return json.dumps(log_data)


def configure_logging(level: str = "INFO", json_format: bool = True) -> None:
    """Configure application-wide logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: If True, use JSON formatter; otherwise use simple format
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    # Remove existing handlers
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))

    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(levelname)s - %(run_id)s - %(name)s - %(message)s'
        )

    handler.setFormatter(formatter)
    handler.addFilter(RunIDFilter())
    root_logger.addHandler(handler)

    # Suppress noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("celery.worker.strategy").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        logging.Logger: Logger instance
    """
    return logging.getLogger(name)
