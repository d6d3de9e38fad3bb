"""
Dataset status lifecycle.

Status transitions: pending/completed/failed -> generating -> completed/failed.
A failure can be recorded from any state. Each dataset is expected to have a
single writer at a time; the status field is the only signal other processes
see, so entering ``generating`` twice is rejected.
"""

import time
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

from ..exceptions import InvalidStatusTransitionError
from ..models import DatasetStatus
from ..repositories.base import DatasetRepository
from .dataset_logger import DatasetLogger

ALLOWED_TRANSITIONS: Dict[DatasetStatus, frozenset] = {
    DatasetStatus.PENDING: frozenset({DatasetStatus.GENERATING, DatasetStatus.FAILED}),
    DatasetStatus.GENERATING: frozenset({DatasetStatus.COMPLETED, DatasetStatus.FAILED}),
    DatasetStatus.COMPLETED: frozenset({DatasetStatus.GENERATING, DatasetStatus.FAILED}),
    DatasetStatus.FAILED: frozenset({DatasetStatus.GENERATING, DatasetStatus.FAILED}),
}


def can_transition(current: DatasetStatus, target: DatasetStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


class DatasetLifecycle:
    """Manages a single dataset's status with repository persistence and logging."""

    def __init__(self, dataset_id: int, repository: DatasetRepository):
        self.dataset_id = dataset_id
        self.repository = repository
        self.logger = DatasetLogger(dataset_id)
        self._start_time: Optional[float] = None

    def start(self, message: str = "Generation started"):
        """Mark dataset as generating."""
        self._transition(DatasetStatus.GENERATING)
        self._start_time = time.time()
        self.logger.start(message)

    def complete(self, result_summary: Optional[Dict] = None, message: str = "Generation completed"):
        """Mark dataset as successfully generated."""
        self._transition(DatasetStatus.COMPLETED)
        summary = dict(result_summary or {})
        summary["processing_time_ms"] = round(self._elapsed_ms(), 1)
        self.logger.complete(message, summary)

    def fail(self, error: Exception, message: str = "Generation failed"):
        """
        Mark dataset as failed.

        Never raises: the caller is already propagating ``error`` and a second
        failure while recording the status must not mask it.
        """
        try:
            self.repository.update_status(self.dataset_id, DatasetStatus.FAILED)
        except Exception as status_error:
            self.logger.error(
                "Could not record failed status",
                {"error_type": type(status_error).__name__, "error_message": str(status_error)}
            )
        self.logger.fail(message, error)

    @contextmanager
    def generating(self, message: str = "Generation started") -> Iterator["DatasetLifecycle"]:
        """
        Run the enclosed block with the dataset in ``generating`` status.

        On success the status becomes ``completed``; on any exception it becomes
        ``failed`` and the exception is re-raised unchanged.
        """
        self.start(message)
        try:
            yield self
            self.complete()
        except Exception as e:
            self.fail(e)
            raise

    def _transition(self, target: DatasetStatus):
        current = self.repository.find_by_id(self.dataset_id).status
        if not can_transition(current, target):
            raise InvalidStatusTransitionError(
                f"Dataset {self.dataset_id} cannot move from '{current.value}' to '{target.value}'"
            )
        self.repository.update_status(self.dataset_id, target)

    def _elapsed_ms(self) -> float:
        if self._start_time is not None:
            return (time.time() - self._start_time) * 1000
        return 0.0
