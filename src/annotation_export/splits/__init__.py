"""
Dataset splitting module for train/valid/test assignments.

Supports:
- Random splits by ratio (seedable), filtered by annotation status and batch
- Manual per-image assignments
"""

from .dataset_splitter import DatasetSplitter
from .split_strategies import (
    BaseSplitStrategy,
    ManualSplitStrategy,
    RandomSplitStrategy,
    SplitResult,
    filter_candidates,
)

__all__ = [
    'DatasetSplitter',
    'BaseSplitStrategy',
    'ManualSplitStrategy',
    'RandomSplitStrategy',
    'SplitResult',
    'filter_candidates',
]
