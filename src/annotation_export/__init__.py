"""
Annotation dataset split and multi-format export.

Splits a project's images into train/valid/test and exports the result as
COCO, YOLO, Pascal VOC, CreateML or TensorFlow-intermediate archives.
"""

from .config import setup_logging
from .exceptions import (
    DatasetExportError,
    ForbiddenError,
    InvalidRequestError,
    InvalidStatusTransitionError,
    NotFoundError,
)
from .export import ExportManager
from .splits import DatasetSplitter

__version__ = "0.1.0"

__all__ = [
    'DatasetExportError',
    'DatasetSplitter',
    'ExportManager',
    'ForbiddenError',
    'InvalidRequestError',
    'InvalidStatusTransitionError',
    'NotFoundError',
    'setup_logging',
]
