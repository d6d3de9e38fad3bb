"""
Repository contracts and the bundled in-memory and SQLite implementations.
"""

from .base import (
    AnnotationRepository,
    ClassRepository,
    DatasetRepository,
    ImageRepository,
    ProjectRepository,
)
from .memory import (
    InMemoryAnnotationRepository,
    InMemoryClassRepository,
    InMemoryDatasetRepository,
    InMemoryImageRepository,
    InMemoryProjectRepository,
)
from .sqlite_repository import SQLiteDatasetRepository

__all__ = [
    'AnnotationRepository',
    'ClassRepository',
    'DatasetRepository',
    'ImageRepository',
    'ProjectRepository',
    'InMemoryAnnotationRepository',
    'InMemoryClassRepository',
    'InMemoryDatasetRepository',
    'InMemoryImageRepository',
    'InMemoryProjectRepository',
    'SQLiteDatasetRepository',
]
