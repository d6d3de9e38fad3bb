"""
YOLO format exporter - creates per-image .txt label files.
"""

import logging
from pathlib import Path
from typing import Dict, List, Tuple

import yaml

from ..models import Annotation, BoundingBox, ClassLabel, DatasetSplit, Image, Project
from .base_exporter import BaseExporter, ExportContext, ExportTree

logger = logging.getLogger(__name__)

# dataset.yaml key for each split
YAML_SPLIT_KEYS = {
    DatasetSplit.TRAIN: 'train',
    DatasetSplit.VALID: 'val',
    DatasetSplit.TEST: 'test',
}


def format_yolo_line(class_index: int, bbox: BoundingBox, img_w: int, img_h: int) -> str:
    """
    Convert a pixel bounding box to a YOLO label line.

    Args:
        class_index: 0-based position of the class in classes.txt
        bbox: Box in pixels (top-left corner + size)
        img_w: Image width
        img_h: Image height

    Returns:
        YOLO format string: "class_id x_center y_center width height"
    """
    x_center = (bbox.x + bbox.width / 2) / img_w
    y_center = (bbox.y + bbox.height / 2) / img_h
    w_norm = bbox.width / img_w
    h_norm = bbox.height / img_h
    return f"{class_index} {x_center:.6f} {y_center:.6f} {w_norm:.6f} {h_norm:.6f}"


def parse_yolo_line(line: str, img_w: int, img_h: int) -> Tuple[int, BoundingBox]:
    """Inverse of :func:`format_yolo_line`."""
    parts = line.split()
    if len(parts) != 5:
        raise ValueError(f"Expected 5 fields in YOLO line, got {len(parts)}: {line!r}")
    class_index = int(parts[0])
    x_center, y_center, w_norm, h_norm = (float(p) for p in parts[1:])
    width = w_norm * img_w
    height = h_norm * img_h
    return class_index, BoundingBox(
        x=x_center * img_w - width / 2,
        y=y_center * img_h - height / 2,
        width=width,
        height=height,
    )


class YOLOExporter(BaseExporter):
    """
    Exporter for YOLO format (per-image .txt label files).

    Output structure:
        ├── images/<split>/img001.jpg   (when images are included)
        ├── labels/<split>/img001.txt
        ├── classes.txt
        └── dataset.yaml
    """

    def get_format_name(self) -> str:
        """Return format name."""
        return "yolo"

    def build(self, context: ExportContext) -> ExportTree:
        tree = ExportTree()

        # Class id -> YOLO 0-based index
        sorted_classes = self._sorted_classes(context.classes)
        class_index = {cls.id: idx for idx, cls in enumerate(sorted_classes)}
        file_names = self._export_file_names(context.images)

        for split in context.export_splits:
            tree.ensure_directory(f"labels/{split.value}")
            if context.include_images:
                tree.ensure_directory(f"images/{split.value}")

        total_annotations = 0
        for image in self._iter_images(context):
            split = context.split_of(image.id)
            file_name = file_names[image.id]

            lines = self._label_lines(image, context.annotations_for(image.id), class_index)
            label_name = Path(file_name).stem + ".txt"
            tree.add_text(f"labels/{split.value}/{label_name}", "".join(line + "\n" for line in lines))
            total_annotations += len(lines)

            if context.include_images:
                self._stage_image(tree, f"images/{split.value}/{file_name}", image, context)

        tree.add_text("classes.txt", "".join(cls.name + "\n" for cls in sorted_classes))
        tree.add_text("dataset.yaml", self._dataset_yaml(sorted_classes, context.export_splits))

        tree.image_count = len(context.images)
        tree.annotation_count = total_annotations
        logger.info(f"YOLO export complete: {tree.image_count} images, {total_annotations} annotations")
        return tree

    def preview(self,
                image: Image,
                annotations: List[Annotation],
                classes: List[ClassLabel],
                project: Project) -> str:
        class_index = {cls.id: idx for idx, cls in enumerate(self._sorted_classes(classes))}
        lines = self._label_lines(image, annotations, class_index)
        header = (
            "# YOLO format: <class_index> <x_center> <y_center> <width> <height>\n"
            f"# Image: {image.original_filename} ({image.width}x{image.height})\n"
        )
        return header + "\n".join(lines)

    def _label_lines(self, image: Image, annotations: List[Annotation],
                     class_index: Dict[int, int]) -> List[str]:
        lines = []
        for ann, bbox in self._bbox_annotations(annotations, class_index):
            lines.append(format_yolo_line(class_index[ann.class_id], bbox, image.width, image.height))
        return lines

    def _dataset_yaml(self, classes: List[ClassLabel], export_splits: List[DatasetSplit]) -> str:
        """
        Build dataset.yaml for YOLOv5/v8 training.

        Only the requested splits are listed; paths are relative to the
        archive root.
        """
        config = {'path': '.'}
        for split in export_splits:
            config[YAML_SPLIT_KEYS[split]] = f"images/{split.value}"
        config['nc'] = len(classes)
        config['names'] = [cls.name for cls in classes]

        header = "# Dataset configuration for YOLO training\n"
        return header + yaml.safe_dump(config, sort_keys=False, allow_unicode=True)
