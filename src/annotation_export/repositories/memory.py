"""
In-memory implementations of the repository contracts.

Used by tests and by hosts that keep their records elsewhere and only need to
hand a snapshot to the exporter.
"""

import itertools
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..exceptions import NotFoundError
from ..models import (
    Annotation,
    ClassLabel,
    Dataset,
    DatasetImage,
    DatasetSplit,
    DatasetStatus,
    Image,
    Project,
)
from .base import (
    AnnotationRepository,
    ClassRepository,
    DatasetRepository,
    ImageRepository,
    ProjectRepository,
)


class InMemoryDatasetRepository(DatasetRepository):
    """Thread-safe dict-backed dataset store."""

    def __init__(self):
        self._datasets: Dict[int, Dataset] = {}
        # dataset_id -> {image_id: split}; dict order is assignment order
        self._assignments: Dict[int, Dict[int, DatasetSplit]] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def create(self,
               project_id: int,
               name: str,
               preprocessing: Optional[Dict[str, Any]] = None,
               augmentation: Optional[Dict[str, Any]] = None) -> Dataset:
        with self._lock:
            dataset = Dataset(
                id=next(self._ids),
                project_id=project_id,
                name=name,
                preprocessing=preprocessing or {},
                augmentation=augmentation or {},
                created_at=datetime.now(),
            )
            self._datasets[dataset.id] = dataset
            self._assignments[dataset.id] = {}
            return dataset.model_copy()

    def find_by_id(self, dataset_id: int) -> Dataset:
        with self._lock:
            return self._get(dataset_id).model_copy()

    def find_by_project(self, project_id: int) -> List[Dataset]:
        with self._lock:
            return [d.model_copy() for d in self._datasets.values() if d.project_id == project_id]

    def update_status(self, dataset_id: int, status: DatasetStatus) -> Dataset:
        with self._lock:
            dataset = self._get(dataset_id)
            dataset.status = status
            return dataset.model_copy()

    def delete(self, dataset_id: int) -> None:
        with self._lock:
            self._get(dataset_id)
            del self._datasets[dataset_id]
            del self._assignments[dataset_id]

    def add_image(self, dataset_id: int, image_id: int, split: DatasetSplit) -> None:
        with self._lock:
            self._get(dataset_id)
            self._assignments[dataset_id][image_id] = DatasetSplit(split)

    def remove_image(self, dataset_id: int, image_id: int) -> None:
        with self._lock:
            self._get(dataset_id)
            self._assignments[dataset_id].pop(image_id, None)

    def clear_images(self, dataset_id: int) -> None:
        with self._lock:
            self._get(dataset_id)
            self._assignments[dataset_id] = {}

    def get_images(self, dataset_id: int, split: Optional[DatasetSplit] = None) -> List[DatasetImage]:
        with self._lock:
            self._get(dataset_id)
            return [
                DatasetImage(dataset_id=dataset_id, image_id=image_id, split=assigned)
                for image_id, assigned in self._assignments[dataset_id].items()
                if split is None or assigned == split
            ]

    def _get(self, dataset_id: int) -> Dataset:
        dataset = self._datasets.get(dataset_id)
        if dataset is None:
            raise NotFoundError(f"Dataset {dataset_id} not found")
        return dataset


class InMemoryImageRepository(ImageRepository):

    def __init__(self, images: Optional[List[Image]] = None):
        self._images: Dict[int, Image] = {img.id: img for img in images or []}

    def add(self, image: Image) -> None:
        self._images[image.id] = image

    def find_by_id(self, image_id: int) -> Image:
        image = self._images.get(image_id)
        if image is None:
            raise NotFoundError(f"Image {image_id} not found")
        return image

    def find_by_project(self, project_id: int) -> List[Image]:
        return [img for img in self._images.values() if img.project_id == project_id]


class InMemoryAnnotationRepository(AnnotationRepository):

    def __init__(self, annotations: Optional[List[Annotation]] = None):
        self._by_image: Dict[int, List[Annotation]] = {}
        for ann in annotations or []:
            self.add(ann)

    def add(self, annotation: Annotation) -> None:
        self._by_image.setdefault(annotation.image_id, []).append(annotation)

    def find_by_image_id(self, image_id: int) -> List[Annotation]:
        return list(self._by_image.get(image_id, []))


class InMemoryClassRepository(ClassRepository):

    def __init__(self, classes: Optional[List[ClassLabel]] = None):
        self._classes: List[ClassLabel] = list(classes or [])

    def add(self, class_label: ClassLabel) -> None:
        self._classes.append(class_label)

    def find_by_project(self, project_id: int) -> List[ClassLabel]:
        return [c for c in self._classes if c.project_id == project_id]


class InMemoryProjectRepository(ProjectRepository):

    def __init__(self, projects: Optional[List[Project]] = None):
        self._projects: Dict[int, Project] = {p.id: p for p in projects or []}

    def add(self, project: Project) -> None:
        self._projects[project.id] = project

    def find_by_id(self, project_id: int) -> Project:
        project = self._projects.get(project_id)
        if project is None:
            raise NotFoundError(f"Project {project_id} not found")
        return project
