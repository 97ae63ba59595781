"""
Structured logging.

JSON-formatted log records for events operators search for: dispatch cycle
summaries and notifications that exhausted their retries.
"""

import json
import logging
from typing import Any

from calnotify.utils.timeutils import utcnow


class StructuredLogger:
    """Logs a message plus keyword fields as a single JSON line."""

    def __init__(self, name: str, level: int = logging.NOTSET):
        """
        Initialize structured logger.

        Args:
            name: Logger name
            level: Logging level; NOTSET defers to the configured root level
        """
        self.logger = logging.getLogger(name)
        if level != logging.NOTSET:
            self.logger.setLevel(level)

    def _log_structured(self, level: int, message: str, **kwargs: Any):
        if self.logger.isEnabledFor(level):
            log_data = {
                "timestamp": utcnow().isoformat(),
                "level": logging.getLevelName(level),
                "message": message,
                "service": self.logger.name,
            }
            log_data.update(kwargs)
            self.logger.log(level, json.dumps(log_data, default=str))

    def debug(self, message: str, **kwargs: Any):
        self._log_structured(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs: Any):
        self._log_structured(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs: Any):
        self._log_structured(logging.WARNING, message, **kwargs)

    def exception(self, message: str, **kwargs: Any):
        """Log exception with traceback."""
        if self.logger.isEnabledFor(logging.ERROR):
            log_data = {
                "timestamp": utcnow().isoformat(),
                "level": "ERROR",
                "message": message,
                "service": self.logger.name,
                "exception": True,
            }
            log_data.update(kwargs)
            self.logger.exception(json.dumps(log_data, default=str))
