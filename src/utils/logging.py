"""
Logging utilities for Lambda functions.

Every line printed is one JSON object that CloudWatch Logs Insights can query
by field. Loggers carry a correlation ID (the API Gateway request id when
there is one) plus any fields bound with ``bind``.
"""

import json
import logging
import os
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

LEVELS = {"DEBUG": logging.DEBUG, "INFO": logging.INFO, "WARNING": logging.WARNING, "ERROR": logging.ERROR}


class StructuredLogger:
    """
    JSON logger for Lambda functions with correlation ID support.

    Example:
        logger = get_logger(__name__, get_correlation_id(event))
        request_logger = logger.bind(path="/events/7")
        request_logger.info("Order created", order_id=42, event_id=7)
    """

    def __init__(
        self, name: str, correlation_id: Optional[str] = None, context: Optional[Dict[str, Any]] = None
    ) -> None:
        self.name = name
        self.logger = logging.getLogger(name)
        self.level = LEVELS.get(os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)
        self.logger.setLevel(self.level)
        self.correlation_id = correlation_id or str(uuid.uuid4())
        self.context: Dict[str, Any] = dict(context or {})

    def bind(self, **fields: Any) -> "StructuredLogger":
        """Child logger that adds ``fields`` to every entry."""
        return StructuredLogger(self.name, self.correlation_id, {**self.context, **fields})

    def _log(self, level: str, message: str, **kwargs: Any) -> None:
        if LEVELS[level] < self.level:
            return

        log_entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "logger": self.name,
            "message": message,
            "correlationId": self.correlation_id,
            **self.context,
            **kwargs,
        }
        log_entry = {k: v for k, v in log_entry.items() if v is not None}

        # Decimal prices and datetimes from MariaDB rows are logged as strings
        print(json.dumps(log_entry, default=str))

    def info(self, message: str, **kwargs: Any) -> None:
        self._log("INFO", message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log("WARNING", message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._log("ERROR", message, **kwargs)

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log("DEBUG", message, **kwargs)


def get_logger(name: str, correlation_id: Optional[str] = None) -> StructuredLogger:
    """Return a structured logger for a module."""
    return StructuredLogger(name, correlation_id)


def get_correlation_id(event: Dict[str, Any]) -> str:
    """
    Correlation ID for an API Gateway proxy event.

    Order of preference: ``requestContext.requestId``, then an
    ``X-Correlation-Id`` header (any case), else a fresh UUID4.
    """
    request_id = (event.get("requestContext") or {}).get("requestId")
    if request_id:
        return str(request_id)

    for name, value in (event.get("headers") or {}).items():
        if name.lower() == "x-correlation-id" and value:
            return str(value)

    return str(uuid.uuid4())
