"""
TensorFlow Object Detection intermediate format exporter.

Produces a ``label_map.pbtxt`` and per-split ``examples.json`` files holding
the fields of a ``tf.train.Example``; converting them to TFRecord is left to
the training pipeline.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..models import Annotation, ClassLabel, DatasetSplit, Image, Project
from .base_exporter import BaseExporter, ExportContext, ExportTree

logger = logging.getLogger(__name__)

README_TEXT = """This directory contains the TensorFlow Object Detection API compatible format.

- label_map.pbtxt: Class definition file (ids start at 1)
- <split>/examples.json: Intermediate records that can be converted to TFRecord
- <split>/images/: Original images, when they were included in the export

Box coordinates are normalized to [0, 1]. Use these records to generate TFRecord
files for training.
"""


def _escape_pbtxt(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


def build_label_map(classes: List[ClassLabel]) -> str:
    """Render a label map; ``classes`` must already be in id order."""
    return "".join(
        f"item {{\n  id: {index}\n  name: '{_escape_pbtxt(cls.name)}'\n}}\n"
        for index, cls in enumerate(classes, start=1)
    )


class TensorFlowExporter(BaseExporter):
    """Exporter for the TFRecord-ready intermediate JSON format."""

    def get_format_name(self) -> str:
        return "tensorflow"

    def build(self, context: ExportContext) -> ExportTree:
        tree = ExportTree()
        sorted_classes = self._sorted_classes(context.classes)
        class_lookup = self._build_class_lookup(sorted_classes)
        # 1-based; 0 is reserved for background
        class_index = {cls.id: index for index, cls in enumerate(sorted_classes, start=1)}
        file_names = self._export_file_names(context.images)

        tree.add_text("label_map.pbtxt", build_label_map(sorted_classes))
        tree.add_text("README.txt", README_TEXT)

        examples_by_split: Dict[DatasetSplit, List[Dict[str, Any]]] = {}
        for split in context.export_splits:
            tree.ensure_directory(split.value)
            examples_by_split[split] = []

        total_boxes = 0
        for image in self._iter_images(context):
            split = context.split_of(image.id)
            file_name = file_names[image.id]
            image_ref = self._image_reference(image, file_name, context.include_images)

            example = self._build_example(
                image, file_name, image_ref, context.annotations_for(image.id), class_lookup, class_index
            )
            if example is None:
                continue

            examples_by_split[split].append(example)
            total_boxes += len(example['classes'])

            if context.include_images:
                self._stage_image(tree, f"{split.value}/images/{file_name}", image, context)

        for split, examples in examples_by_split.items():
            if examples:
                tree.add_json(f"{split.value}/examples.json", examples)

        tree.image_count = len(context.images)
        tree.annotation_count = total_boxes
        logger.info(f"TensorFlow export: {sum(len(e) for e in examples_by_split.values())} examples, "
                    f"{total_boxes} boxes")
        return tree

    def preview(self,
                image: Image,
                annotations: List[Annotation],
                classes: List[ClassLabel],
                project: Project) -> str:
        sorted_classes = self._sorted_classes(classes)
        class_index = {cls.id: index for index, cls in enumerate(sorted_classes, start=1)}
        example = self._build_example(
            image, image.original_filename, image.file_path, annotations,
            self._build_class_lookup(sorted_classes), class_index
        )
        return json.dumps(example or {}, indent=2, ensure_ascii=False)

    def _build_example(self,
                       image: Image,
                       file_name: str,
                       image_ref: str,
                       annotations: List[Annotation],
                       class_lookup: Dict[int, ClassLabel],
                       class_index: Dict[int, int]) -> Optional[Dict[str, Any]]:
        """
        Build one TF Example record.

        Returns:
            None when the image has no bounding boxes
        """
        boxes = self._bbox_annotations(annotations, class_lookup)
        if not boxes:
            return None

        example = {
            'filename': file_name,
            'image_path': image_ref,
            'width': image.width,
            'height': image.height,
            'image_format': Path(file_name).suffix[1:].lower(),
            'xmins': [],
            'xmaxs': [],
            'ymins': [],
            'ymaxs': [],
            'classes_text': [],
            'classes': [],
        }
        for ann, bbox in boxes:
            example['xmins'].append(bbox.x / image.width)
            example['xmaxs'].append((bbox.x + bbox.width) / image.width)
            example['ymins'].append(bbox.y / image.height)
            example['ymaxs'].append((bbox.y + bbox.height) / image.height)
            example['classes_text'].append(class_lookup[ann.class_id].name)
            example['classes'].append(class_index[ann.class_id])
        return example
