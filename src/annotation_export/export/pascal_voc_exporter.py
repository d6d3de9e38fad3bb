"""
Pascal VOC format exporter.

Exports bounding-box annotations in Pascal VOC XML format.
"""

import logging
import math
from pathlib import Path
from typing import Dict, List
from xml.dom import minidom
from xml.etree import ElementTree as ET

from ..models import Annotation, BoundingBox, ClassLabel, DatasetSplit, Image, Project
from .base_exporter import BaseExporter, ExportContext, ExportTree, safe_filename

logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, .5 going up (Python's round() goes to even)."""
    return int(math.floor(value + 0.5))


class PascalVOCExporter(BaseExporter):
    """
    Exports annotations in Pascal VOC XML format.

    Output structure:
    ├── Annotations/
    │   ├── image_001.xml
    │   └── ...
    ├── JPEGImages/
    │   ├── image_001.jpg   (when images are included)
    │   └── ...
    └── ImageSets/
        └── Main/
            ├── all.txt
            ├── train.txt
            ├── <class>_pos.txt
            └── <class>_neg.txt
    """

    def get_format_name(self) -> str:
        return "pascal_voc"

    def build(self, context: ExportContext) -> ExportTree:
        tree = ExportTree()
        tree.ensure_directory("Annotations")
        tree.ensure_directory("JPEGImages")
        tree.ensure_directory("ImageSets/Main")

        class_lookup = self._build_class_lookup(context.classes)
        file_names = self._export_file_names(context.images)

        all_members: List[str] = []
        split_members: Dict[DatasetSplit, List[str]] = {split: [] for split in context.export_splits}
        # stem -> class ids with at least one box on that image
        classes_per_image: Dict[str, set] = {}
        total_objects = 0

        for image in self._iter_images(context):
            file_name = file_names[image.id]
            base_name = Path(file_name).stem

            boxes = self._bbox_annotations(context.annotations_for(image.id), class_lookup)
            objects = [(class_lookup[ann.class_id].name, bbox) for ann, bbox in boxes]
            tree.add_text(f"Annotations/{base_name}.xml", self._create_xml_annotation(image, file_name, objects))
            total_objects += len(objects)

            all_members.append(base_name)
            split_members[context.split_of(image.id)].append(base_name)
            classes_per_image[base_name] = {ann.class_id for ann, _ in boxes}

            if context.include_images:
                self._stage_image(tree, f"JPEGImages/{file_name}", image, context)

        tree.add_text("ImageSets/Main/all.txt", self._lines(all_members))
        for split, members in split_members.items():
            tree.add_text(f"ImageSets/Main/{split.value}.txt", self._lines(members))

        used_class_files = set()
        for cls in self._sorted_classes(context.classes):
            positives = []
            negatives = []
            for base_name, present in classes_per_image.items():
                if cls.id in present:
                    positives.append(f"{base_name} 1")
                    negatives.append(f"{base_name} -1")
                else:
                    positives.append(f"{base_name} -1")
                    negatives.append(f"{base_name} 1")
            class_file = safe_filename(cls.name)
            while class_file.lower() in used_class_files:
                class_file = f"{class_file}_{cls.id}"
            used_class_files.add(class_file.lower())
            tree.add_text(f"ImageSets/Main/{class_file}_pos.txt", self._lines(positives))
            tree.add_text(f"ImageSets/Main/{class_file}_neg.txt", self._lines(negatives))

        tree.image_count = len(context.images)
        tree.annotation_count = total_objects
        logger.info(f"Exported {tree.image_count} images to Pascal VOC format")
        return tree

    def preview(self,
                image: Image,
                annotations: List[Annotation],
                classes: List[ClassLabel],
                project: Project) -> str:
        class_lookup = self._build_class_lookup(classes)
        boxes = self._bbox_annotations(annotations, class_lookup)
        objects = [(class_lookup[ann.class_id].name, bbox) for ann, bbox in boxes]
        return self._create_xml_annotation(image, image.original_filename, objects)

    @staticmethod
    def _lines(items: List[str]) -> str:
        return "".join(item + "\n" for item in items)

    def _create_xml_annotation(self, image: Image, file_name: str, objects: List[tuple]) -> str:
        """
        Create Pascal VOC XML annotation for an image.

        Args:
            image: Image record
            file_name: Name of the image inside JPEGImages/
            objects: (class name, bounding box) pairs

        Returns:
            XML string
        """
        annotation = ET.Element('annotation')

        ET.SubElement(annotation, 'folder').text = 'JPEGImages'
        ET.SubElement(annotation, 'filename').text = file_name
        ET.SubElement(annotation, 'path').text = f"JPEGImages/{file_name}"

        source = ET.SubElement(annotation, 'source')
        ET.SubElement(source, 'database').text = 'Annotation Export'

        size = ET.SubElement(annotation, 'size')
        ET.SubElement(size, 'width').text = str(image.width)
        ET.SubElement(size, 'height').text = str(image.height)
        # Assumes 3-channel RGB; images are never decoded here
        ET.SubElement(size, 'depth').text = '3'

        ET.SubElement(annotation, 'segmented').text = '0'

        for class_name, bbox in objects:
            self._add_object_element(annotation, class_name, bbox)

        # Pretty print
        xml_str = ET.tostring(annotation, encoding='unicode')
        dom = minidom.parseString(xml_str)
        return dom.toprettyxml(indent='    ')

    def _add_object_element(self, parent: ET.Element, class_name: str, bbox: BoundingBox) -> None:
        obj = ET.SubElement(parent, 'object')
        ET.SubElement(obj, 'name').text = class_name
        ET.SubElement(obj, 'pose').text = 'Unspecified'
        ET.SubElement(obj, 'truncated').text = '0'
        ET.SubElement(obj, 'difficult').text = '0'

        bndbox = ET.SubElement(obj, 'bndbox')
        ET.SubElement(bndbox, 'xmin').text = str(round_half_up(bbox.x))
        ET.SubElement(bndbox, 'ymin').text = str(round_half_up(bbox.y))
        ET.SubElement(bndbox, 'xmax').text = str(round_half_up(bbox.x + bbox.width))
        ET.SubElement(bndbox, 'ymax').text = str(round_half_up(bbox.y + bbox.height))
