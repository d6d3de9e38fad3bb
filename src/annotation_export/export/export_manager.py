"""
Export Manager - orchestrates a dataset export from stored records to a
published archive.
"""

import logging
import shutil
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Type, Union

from ..config import EXPORT_LINK_TTL_DAYS, EXPORT_SHOW_PROGRESS, EXPORT_TEMP_DIR, IMAGE_ROOT
from ..exceptions import InvalidRequestError
from ..models import (
    Dataset,
    DatasetSplit,
    ExportOptions,
    ExportResult,
    Project,
    ProjectType,
    coerce_model,
)
from ..repositories import (
    AnnotationRepository,
    ClassRepository,
    DatasetRepository,
    ImageRepository,
    ProjectRepository,
)
from ..shared import DatasetLifecycle
from ..storage import StorageGateway
from .base_exporter import BaseExporter, ExportContext, safe_filename
from .coco_exporter import COCOExporter
from .createml_exporter import CreateMLExporter
from .packager import Packager
from .pascal_voc_exporter import PascalVOCExporter
from .tensorflow_exporter import TensorFlowExporter
from .yolo_exporter import YOLOExporter

logger = logging.getLogger(__name__)


class ExportManager:
    """
    Orchestrator for exporting datasets to annotation formats.

    Usage:
        manager = ExportManager(datasets, projects, images, annotations, classes, storage)
        result = manager.export_dataset(dataset_id, {'format': 'yolo', 'export_splits': ['train']})
    """

    AVAILABLE_FORMATS: Dict[str, Type[BaseExporter]] = {
        'coco': COCOExporter,
        'yolo': YOLOExporter,
        'pascal_voc': PascalVOCExporter,
        'createml': CreateMLExporter,
        'tensorflow': TensorFlowExporter,
    }

    FORMATS_BY_PROJECT_TYPE: Dict[ProjectType, List[str]] = {
        ProjectType.OBJECT_DETECTION: ['coco', 'yolo', 'pascal_voc', 'createml', 'tensorflow'],
        ProjectType.CLASSIFICATION: ['createml', 'tensorflow'],
        ProjectType.INSTANCE_SEGMENTATION: ['coco'],
        ProjectType.KEYPOINT_DETECTION: ['coco'],
    }

    def __init__(self,
                 dataset_repository: DatasetRepository,
                 project_repository: ProjectRepository,
                 image_repository: ImageRepository,
                 annotation_repository: AnnotationRepository,
                 class_repository: ClassRepository,
                 storage: StorageGateway,
                 temp_dir: str = EXPORT_TEMP_DIR,
                 image_root: str = IMAGE_ROOT,
                 link_ttl_days: int = EXPORT_LINK_TTL_DAYS,
                 show_progress: bool = EXPORT_SHOW_PROGRESS):
        """
        Initialize export manager.

        Args:
            dataset_repository: Datasets and split assignments
            project_repository: Project lookup
            image_repository: Image records
            annotation_repository: Annotations per image
            class_repository: Project classes
            storage: Gateway the final archive is uploaded to
            temp_dir: Working area for export trees and archives
            image_root: Directory relative image paths are resolved against
            link_ttl_days: Lifetime reported in ``expires_at``
            show_progress: Show per-image progress bars
        """
        self.dataset_repository = dataset_repository
        self.project_repository = project_repository
        self.image_repository = image_repository
        self.annotation_repository = annotation_repository
        self.class_repository = class_repository
        self.packager = Packager(storage)
        self.temp_dir = Path(temp_dir)
        self.image_root = image_root
        self.link_ttl_days = link_ttl_days
        self.show_progress = show_progress

    def get_exporter(self, format_name: str) -> BaseExporter:
        """
        Create the exporter for a format.

        Raises:
            InvalidRequestError: If the format is not supported
        """
        exporter_cls = self.AVAILABLE_FORMATS.get(format_name)
        if exporter_cls is None:
            raise InvalidRequestError(
                f"Unsupported export format: {format_name}. Available: {self.get_available_formats()}"
            )
        return exporter_cls(show_progress=self.show_progress)

    def export_dataset(self, dataset_id: int,
                       options: Union[ExportOptions, Dict[str, Any]]) -> ExportResult:
        """
        Export a dataset's requested splits and publish the archive.

        Any failure after the dataset has been loaded marks it ``failed`` and
        re-raises the original error. A successful export leaves the status
        unchanged.

        Args:
            dataset_id: Dataset to export
            options: Format, splits and image inclusion

        Returns:
            ExportResult with the download URL and counts
        """
        options = coerce_model(ExportOptions, options)
        exporter = self.get_exporter(options.format)
        export_splits = self._validate_splits(options.export_splits)
        if options.include_augmented:
            logger.warning("Augmented variants are not generated by this exporter; exporting originals only")

        dataset = self.dataset_repository.find_by_id(dataset_id)
        lifecycle = DatasetLifecycle(dataset_id, self.dataset_repository)

        export_id = uuid.uuid4().hex
        work_dir = self.temp_dir / export_id
        logger.info(f"Exporting dataset {dataset_id} to {options.format} (export {export_id})")

        try:
            project = self.project_repository.find_by_id(dataset.project_id)
            context = self._load_context(dataset, project, export_splits, options.include_images)

            tree = exporter.build(context)
            tree_dir = tree.write(work_dir / options.format)

            archive_name = self._archive_name(project, dataset, options.format)
            upload = self.packager.package(tree_dir, work_dir / archive_name, export_id)
        except Exception as e:
            logger.error(f"Export of dataset {dataset_id} to {options.format} failed: {e}")
            lifecycle.fail(e, f"Export to {options.format} failed")
            raise
        finally:
            self._cleanup(work_dir)

        exported_at = datetime.now(timezone.utc)
        result = ExportResult(
            download_url=upload.url,
            format=options.format,
            image_count=tree.image_count,
            annotation_count=tree.annotation_count,
            exported_at=exported_at,
            expires_at=exported_at + timedelta(days=self.link_ttl_days),
        )
        logger.info(
            f"Export {export_id} complete: {result.image_count} images, "
            f"{result.annotation_count} annotations"
        )
        return result

    def generate_export_preview(self, dataset_id: int, format_name: str) -> Dict[str, str]:
        """
        Render the first assigned image of a dataset in the target format.

        No files are written and the dataset status is not touched.

        Returns:
            {"sample": <rendered text>}
        """
        exporter = self.get_exporter(format_name)
        dataset = self.dataset_repository.find_by_id(dataset_id)
        project = self.project_repository.find_by_id(dataset.project_id)

        assignments = self.dataset_repository.get_images(dataset_id)
        if not assignments:
            raise InvalidRequestError(f"Dataset {dataset_id} has no images to preview")

        image = self.image_repository.find_by_id(assignments[0].image_id)
        annotations = self.annotation_repository.find_by_image_id(image.id)
        classes = self.class_repository.find_by_project(dataset.project_id)

        return {'sample': exporter.preview(image, annotations, classes, project)}

    @classmethod
    def get_export_formats(cls, project_type: Union[ProjectType, str]) -> List[str]:
        """Formats offered for a project type; unknown types get none."""
        try:
            project_type = ProjectType(project_type)
        except ValueError:
            return []
        return list(cls.FORMATS_BY_PROJECT_TYPE.get(project_type, []))

    @classmethod
    def get_available_formats(cls) -> List[str]:
        """
        Get list of available export formats.

        Returns:
            List of format names
        """
        return list(cls.AVAILABLE_FORMATS.keys())

    @classmethod
    def get_format_description(cls, format_name: str) -> str:
        descriptions = {
            'coco': 'COCO JSON with bounding boxes, polygon segmentations and keypoints',
            'yolo': 'YOLO per-image .txt files with normalized center coordinates',
            'pascal_voc': 'Pascal VOC XML annotations with ImageSets split lists',
            'createml': 'Apple CreateML JSON for object detection or image classification',
            'tensorflow': 'TensorFlow Object Detection label map and TFRecord-ready JSON records',
        }
        return descriptions.get(format_name, 'Unknown format')

    def _validate_splits(self, splits: List[DatasetSplit]) -> List[DatasetSplit]:
        if not splits:
            raise InvalidRequestError("At least one split must be selected for export")
        # Duplicates collapse, first occurrence keeps its position
        return list(dict.fromkeys(DatasetSplit(s) for s in splits))

    def _load_context(self,
                      dataset: Dataset,
                      project: Project,
                      export_splits: List[DatasetSplit],
                      include_images: bool) -> ExportContext:
        split_by_image: Dict[int, DatasetSplit] = {}
        for split in export_splits:
            for assignment in self.dataset_repository.get_images(dataset.id, split):
                split_by_image[assignment.image_id] = split

        if not split_by_image:
            raise InvalidRequestError(
                f"No images found in splits {[s.value for s in export_splits]} of dataset {dataset.id}"
            )

        images = [self.image_repository.find_by_id(image_id) for image_id in split_by_image]
        annotations_by_image = {
            image.id: self.annotation_repository.find_by_image_id(image.id) for image in images
        }
        classes = self.class_repository.find_by_project(dataset.project_id)

        logger.info(
            f"Loaded {len(images)} images, {sum(len(a) for a in annotations_by_image.values())} "
            f"annotations and {len(classes)} classes for dataset {dataset.id}"
        )
        return ExportContext(
            project=project,
            dataset_name=dataset.name,
            images=images,
            annotations_by_image=annotations_by_image,
            classes=classes,
            split_by_image=split_by_image,
            export_splits=export_splits,
            include_images=include_images,
            image_root=self.image_root,
        )

    def _archive_name(self, project: Project, dataset: Dataset, format_name: str) -> str:
        return f"{safe_filename(project.name)}-{safe_filename(dataset.name)}-{format_name}-export.zip"

    def _cleanup(self, work_dir: Path) -> None:
        """Remove temporary export files; failures are logged, never raised."""
        try:
            if work_dir.exists():
                shutil.rmtree(work_dir)
        except OSError as e:
            logger.warning(f"Could not remove temporary export directory {work_dir}: {e}")
