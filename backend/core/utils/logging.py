"""
Structured logging utility for the application
"""
import logging
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class StructuredLogger:
    """
    Structured logger that outputs JSON formatted logs
    """

    def __init__(self, name: str = "aquaticpose"):
        self.logger = logging.getLogger(name)

    def _create_log_entry(
        self,
        level: str,
        message: str,
        correlation_id: Optional[str] = None,
        endpoint: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        exception: Optional[Exception] = None
    ) -> Dict[str, Any]:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level.upper(),
            "message": message,
            "service": "aquaticpose-catalog",
        }

        if correlation_id:
            log_entry["correlation_id"] = correlation_id

        if endpoint:
            log_entry["endpoint"] = endpoint

        if metadata:
            log_entry["metadata"] = metadata

        if exception:
            log_entry["exception"] = {
                "type": type(exception).__name__,
                "message": str(exception),
            }

        return log_entry

    def info(
        self,
        message: str,
        correlation_id: Optional[str] = None,
        endpoint: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ):
        log_entry = self._create_log_entry(
            "info", message, correlation_id, endpoint, metadata
        )
        self.logger.info(json.dumps(log_entry, default=str))

    def warning(
        self,
        message: str,
        correlation_id: Optional[str] = None,
        endpoint: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        exception: Optional[Exception] = None
    ):
        log_entry = self._create_log_entry(
            "warning", message, correlation_id, endpoint, metadata, exception
        )
        self.logger.warning(json.dumps(log_entry, default=str))

    def error(
        self,
        message: str,
        correlation_id: Optional[str] = None,
        endpoint: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        exception: Optional[Exception] = None
    ):
        """Log error message"""
        log_entry = self._create_log_entry(
            "error", message, correlation_id, endpoint, metadata, exception
        )
        self.logger.error(json.dumps(log_entry, default=str))


# Create global logger instance
structured_logger = StructuredLogger()
