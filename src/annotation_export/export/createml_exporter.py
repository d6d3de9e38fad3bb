"""
Apple CreateML JSON exporter.

Detection projects produce one entry per image with at least one box, using
center-based coordinates. Classification projects produce ``{image, label}``
entries taken from the image's first annotation.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from ..models import Annotation, ClassLabel, DatasetSplit, Image, Project, ProjectType
from .base_exporter import BaseExporter, ExportContext, ExportTree

logger = logging.getLogger(__name__)


class CreateMLExporter(BaseExporter):
    """Exporter for CreateML object detection and image classification JSON."""

    def get_format_name(self) -> str:
        return "createml"

    def build(self, context: ExportContext) -> ExportTree:
        tree = ExportTree()
        class_lookup = self._build_class_lookup(context.classes)
        file_names = self._export_file_names(context.images)
        detection = self._is_detection(context.project)

        entries: List[Tuple[DatasetSplit, Dict[str, Any]]] = []
        total_annotations = 0

        for image in self._iter_images(context):
            file_name = file_names[image.id]
            image_ref = self._image_reference(image, file_name, context.include_images)
            annotations = context.annotations_for(image.id)

            if detection:
                entry = self._detection_entry(image_ref, annotations, class_lookup)
            else:
                entry = self._classification_entry(image_ref, annotations, class_lookup)
            if entry is None:
                continue

            entries.append((context.split_of(image.id), entry))
            total_annotations += len(entry['annotations']) if detection else 1

            if context.include_images:
                self._stage_image(tree, f"images/{file_name}", image, context)

        tree.add_json("annotations.json", [entry for _, entry in entries])

        if len(context.export_splits) > 1:
            for split in context.export_splits:
                split_entries = [entry for entry_split, entry in entries if entry_split == split]
                if split_entries:
                    tree.add_json(f"{split.value}.json", split_entries)

        tree.image_count = len(context.images)
        tree.annotation_count = total_annotations
        logger.info(f"CreateML export: {len(entries)} entries, {total_annotations} annotations")
        return tree

    def preview(self,
                image: Image,
                annotations: List[Annotation],
                classes: List[ClassLabel],
                project: Project) -> str:
        class_lookup = self._build_class_lookup(classes)
        if self._is_detection(project):
            entry = self._detection_entry(image.original_filename, annotations, class_lookup)
        else:
            entry = self._classification_entry(image.original_filename, annotations, class_lookup)
        return json.dumps([entry] if entry else [], indent=2, ensure_ascii=False)

    def _is_detection(self, project: Project) -> bool:
        return project.type != ProjectType.CLASSIFICATION

    def _detection_entry(self,
                         image_ref: str,
                         annotations: List[Annotation],
                         class_lookup: Dict[int, ClassLabel]) -> Optional[Dict[str, Any]]:
        objects = []
        for ann, bbox in self._bbox_annotations(annotations, class_lookup):
            objects.append({
                'label': class_lookup[ann.class_id].name,
                'coordinates': {
                    'x': bbox.x + bbox.width / 2,
                    'y': bbox.y + bbox.height / 2,
                    'width': bbox.width,
                    'height': bbox.height,
                },
            })
        if not objects:
            return None
        return {'image': image_ref, 'annotations': objects}

    def _classification_entry(self,
                              image_ref: str,
                              annotations: List[Annotation],
                              class_lookup: Dict[int, ClassLabel]) -> Optional[Dict[str, Any]]:
        for ann in annotations:
            if self._has_known_class(ann, class_lookup):
                return {'image': image_ref, 'label': class_lookup[ann.class_id].name}
        return None
