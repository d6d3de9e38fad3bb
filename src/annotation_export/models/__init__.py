"""
Domain models shared by the split planner, the codecs and the repositories.
"""

from .schemas import (
    Annotation,
    AnnotationData,
    BboxData,
    BoundingBox,
    ClassLabel,
    Dataset,
    DatasetCreateRequest,
    DatasetImage,
    DatasetSplit,
    DatasetStatus,
    DatasetSummary,
    ExportOptions,
    ExportResult,
    Image,
    ImageCounts,
    ImageStatus,
    Keypoint,
    KeypointsData,
    ManualAssignment,
    Point,
    PolygonData,
    Project,
    ProjectType,
    SplitRatio,
    SplitRequest,
    SplitStrategyType,
    UnsupportedData,
    UploadResult,
    coerce_model,
)

__all__ = [
    'Annotation',
    'AnnotationData',
    'BboxData',
    'BoundingBox',
    'ClassLabel',
    'Dataset',
    'DatasetCreateRequest',
    'DatasetImage',
    'DatasetSplit',
    'DatasetStatus',
    'DatasetSummary',
    'ExportOptions',
    'ExportResult',
    'Image',
    'ImageCounts',
    'ImageStatus',
    'Keypoint',
    'KeypointsData',
    'ManualAssignment',
    'Point',
    'PolygonData',
    'Project',
    'ProjectType',
    'SplitRatio',
    'SplitRequest',
    'SplitStrategyType',
    'UnsupportedData',
    'UploadResult',
    'coerce_model',
]
