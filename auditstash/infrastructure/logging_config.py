"""Structured logging configuration for the audit pipeline.

This module provides structured logging with JSON formatting for production
environments and human-readable formatting for development.

Security Impact:
    - Rejected audit rows are reported with their error map, not their values
    - Structured format enables alerting on audit write failures
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

# Third-party loggers that are too chatty at INFO
NOISY_LOGGERS = ("elasticsearch", "elastic_transport", "urllib3", "duckdb")


class StructuredFormatter(logging.Formatter):
    """Structured JSON formatter for logs.

    Fields passed as ``extra={"extra_fields": {...}}`` are merged into the
    top level of the JSON line.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON.

        Parameters:
            record: Log record to format

        Returns:
            JSON string representation of log record
        """
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        if hasattr(record, "transaction_id"):
            log_data["transaction_id"] = record.transaction_id

        return json.dumps(log_data, default=str)


def setup_logging(use_json: bool = False, log_level: str = "INFO") -> None:
    """Setup application logging.

    Parameters:
        use_json: Use JSON formatting (for production)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)

    if use_json:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
