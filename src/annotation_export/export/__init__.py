"""
Export module for converting datasets to multiple annotation formats.

Supported formats:
- COCO: JSON with bounding boxes, polygon segmentations and keypoints
- YOLO: Per-image .txt files with normalized coordinates
- Pascal VOC: XML format per image
- CreateML: Apple CreateML detection/classification JSON
- TensorFlow: Label map plus TFRecord-ready JSON records
"""

from .base_exporter import (
    AnnotationIdCounter,
    BaseExporter,
    ExportContext,
    ExportTree,
    StagedFile,
    safe_filename,
)
from .coco_exporter import COCOExporter
from .createml_exporter import CreateMLExporter
from .export_manager import ExportManager
from .packager import Packager
from .pascal_voc_exporter import PascalVOCExporter
from .tensorflow_exporter import TensorFlowExporter
from .yolo_exporter import YOLOExporter, format_yolo_line, parse_yolo_line

__all__ = [
    'AnnotationIdCounter',
    'BaseExporter',
    'ExportContext',
    'ExportTree',
    'StagedFile',
    'safe_filename',
    'COCOExporter',
    'CreateMLExporter',
    'ExportManager',
    'Packager',
    'PascalVOCExporter',
    'TensorFlowExporter',
    'YOLOExporter',
    'format_yolo_line',
    'parse_yolo_line',
]
