"""
COCO format exporter.

Writes one combined ``annotations.json`` plus ``annotations_<split>.json``
for every requested split that has images. Bounding boxes, polygons and
keypoints are all encoded; polygon and keypoint boxes are derived from
their points.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..models import (
    Annotation,
    BboxData,
    ClassLabel,
    DatasetSplit,
    Image,
    KeypointsData,
    PolygonData,
    Project,
)
from ..utils import bbox_from_keypoints, bbox_from_polygon, polygon_area
from .base_exporter import AnnotationIdCounter, BaseExporter, ExportContext, ExportTree

logger = logging.getLogger(__name__)

LICENSES = [{'id': 1, 'name': 'Unknown', 'url': ''}]


class COCOExporter(BaseExporter):
    """Exporter for COCO JSON format."""

    def get_format_name(self) -> str:
        """Return format name."""
        return "coco"

    def build(self, context: ExportContext) -> ExportTree:
        tree = ExportTree()
        counter = AnnotationIdCounter()
        class_lookup = self._build_class_lookup(context.classes)
        categories = self._build_categories(context.classes)
        file_names = self._export_file_names(context.images)

        coco_images: List[Dict[str, Any]] = []
        coco_annotations: List[Dict[str, Any]] = []

        for image in self._iter_images(context):
            split = context.split_of(image.id)
            coco_images.append(self._image_entry(image, file_names[image.id], split))
            coco_annotations.extend(
                self._encode_annotations(image, context.annotations_for(image.id), class_lookup, counter)
            )
            if context.include_images:
                self._stage_image(tree, f"images/{split.value}/{file_names[image.id]}", image, context)

        info = self._get_info(context.dataset_name)
        tree.add_json("annotations.json", {
            'info': info,
            'licenses': LICENSES,
            'images': coco_images,
            'annotations': coco_annotations,
            'categories': categories,
        })

        for split in context.export_splits:
            split_images = [img for img in coco_images if img['split'] == split.value]
            if not split_images:
                continue
            image_ids = {img['id'] for img in split_images}
            tree.add_json(f"annotations_{split.value}.json", {
                'info': info,
                'licenses': LICENSES,
                'images': split_images,
                'annotations': [a for a in coco_annotations if a['image_id'] in image_ids],
                'categories': categories,
            })

        tree.image_count = len(coco_images)
        tree.annotation_count = len(coco_annotations)
        logger.info(f"COCO export: {tree.image_count} images, {tree.annotation_count} annotations")
        return tree

    def preview(self,
                image: Image,
                annotations: List[Annotation],
                classes: List[ClassLabel],
                project: Project) -> str:
        class_lookup = self._build_class_lookup(classes)
        sample = {
            'image': self._image_entry(image, image.original_filename, None),
            'annotations': self._encode_annotations(image, annotations, class_lookup, AnnotationIdCounter()),
            'categories': self._build_categories(classes),
        }
        return json.dumps(sample, indent=2, ensure_ascii=False)

    def _build_categories(self, classes: List[ClassLabel]) -> List[Dict[str, Any]]:
        return [
            {'id': cls.id, 'name': cls.name, 'supercategory': 'object'}
            for cls in self._sorted_classes(classes)
        ]

    def _image_entry(self, image: Image, file_name: str, split: Optional[DatasetSplit]) -> Dict[str, Any]:
        entry = {
            'id': image.id,
            'width': image.width,
            'height': image.height,
            'file_name': file_name,
            'license': 1,
            'flickr_url': '',
            'coco_url': '',
            'date_captured': image.upload_date.date().isoformat(),
        }
        if split is not None:
            entry['split'] = split.value
        return entry

    def _encode_annotations(self,
                            image: Image,
                            annotations: List[Annotation],
                            class_lookup: Dict[int, ClassLabel],
                            counter: AnnotationIdCounter) -> List[Dict[str, Any]]:
        encoded = []
        for ann in annotations:
            if not self._has_known_class(ann, class_lookup):
                continue
            entry = self._annotation_entry(ann)
            if entry is None:
                logger.debug(f"Skipping annotation {ann.id} with unsupported type '{ann.data.type}'")
                continue
            # Ids are assigned only to annotations that are actually written
            entry = {'id': counter.next_id(), 'image_id': image.id, 'category_id': ann.class_id, **entry}
            encoded.append(entry)
        return encoded

    def _annotation_entry(self, ann: Annotation) -> Optional[Dict[str, Any]]:
        data = ann.data

        if isinstance(data, BboxData):
            box = data.coordinates
            return {
                'bbox': [box.x, box.y, box.width, box.height],
                'area': box.width * box.height,
                'segmentation': [],
                'iscrowd': 0,
            }

        if isinstance(data, PolygonData):
            box = bbox_from_polygon(data.coordinates)
            segmentation = [coord for point in data.coordinates for coord in (point.x, point.y)]
            return {
                'bbox': [box.x, box.y, box.width, box.height],
                'area': polygon_area(data.coordinates),
                'segmentation': [segmentation],
                'iscrowd': 0,
            }

        if isinstance(data, KeypointsData):
            box = bbox_from_keypoints(data.coordinates)
            keypoints = []
            for kp in data.coordinates:
                # 2 = labeled and visible, 1 = labeled but not visible
                keypoints.extend([kp.x, kp.y, 2 if kp.visible else 1])
            return {
                'bbox': [box.x, box.y, box.width, box.height],
                'area': box.width * box.height,
                'segmentation': [],
                'keypoints': keypoints,
                'num_keypoints': len(data.coordinates),
                'iscrowd': 0,
            }

        return None

    def _get_info(self, dataset_name: str) -> Dict[str, Any]:
        """Create info section."""
        now = datetime.now()
        return {
            'description': dataset_name,
            'url': '',
            'version': '1.0',
            'year': now.year,
            'contributor': 'Annotation Export',
            'date_created': now.strftime('%Y-%m-%d %H:%M:%S')
        }
