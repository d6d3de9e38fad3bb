"""
Per-dataset logger.
Provides structured logging with dataset context.
"""

import logging
from typing import Any, Dict, Optional


class DatasetLogger:
    """Logger for a specific dataset that tags every line with its id."""

    def __init__(self, dataset_id: int):
        """
        Initialize a dataset logger.

        Args:
            dataset_id: The ID of the dataset to log for
        """
        self.dataset_id = dataset_id
        self._logger = logging.getLogger(f"dataset.{dataset_id}")

    def _log(
        self,
        level: int,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        details_str = f" | {details}" if details else ""
        self._logger.log(level, f"[dataset {self.dataset_id}] {message}{details_str}")

    def info(self, message: str, details: Optional[Dict[str, Any]] = None):
        self._log(logging.INFO, message, details)

    def warning(self, message: str, details: Optional[Dict[str, Any]] = None):
        self._log(logging.WARNING, message, details)

    def error(self, message: str, details: Optional[Dict[str, Any]] = None):
        self._log(logging.ERROR, message, details)

    def debug(self, message: str, details: Optional[Dict[str, Any]] = None):
        self._log(logging.DEBUG, message, details)

    def start(self, message: str = "Generation started"):
        self.info(message)

    def complete(self, message: str = "Generation completed", result: Optional[Dict] = None):
        self.info(message, result)

    def fail(self, message: str, error: Optional[Exception] = None):
        """Log a failure together with the error type and message."""
        details = {}
        if error:
            details["error_type"] = type(error).__name__
            details["error_message"] = str(error)
        self.error(message, details if details else None)
