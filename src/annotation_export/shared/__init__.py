"""Status lifecycle and logging shared by the split planner and the exporter."""
from .dataset_lifecycle import ALLOWED_TRANSITIONS, DatasetLifecycle, can_transition
from .dataset_logger import DatasetLogger

__all__ = ['ALLOWED_TRANSITIONS', 'DatasetLifecycle', 'DatasetLogger', 'can_transition']
