"""
Repository contracts consumed by the split planner and the export orchestrator.

Persistence of projects, images, classes and annotations belongs to the host
application; this subsystem only needs the read and write operations below.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..models import (
    Annotation,
    ClassLabel,
    Dataset,
    DatasetImage,
    DatasetSplit,
    DatasetStatus,
    Image,
    ImageCounts,
    Project,
)


class DatasetRepository(ABC):
    """Datasets and their split assignments."""

    @abstractmethod
    def create(self,
               project_id: int,
               name: str,
               preprocessing: Optional[Dict[str, Any]] = None,
               augmentation: Optional[Dict[str, Any]] = None) -> Dataset:
        """Create a dataset in ``pending`` status."""
        pass

    @abstractmethod
    def find_by_id(self, dataset_id: int) -> Dataset:
        """
        Raises:
            NotFoundError: If the dataset does not exist
        """
        pass

    @abstractmethod
    def find_by_project(self, project_id: int) -> List[Dataset]:
        pass

    @abstractmethod
    def update_status(self, dataset_id: int, status: DatasetStatus) -> Dataset:
        pass

    @abstractmethod
    def delete(self, dataset_id: int) -> None:
        """Delete the dataset and, by cascade, all of its split assignments."""
        pass

    @abstractmethod
    def add_image(self, dataset_id: int, image_id: int, split: DatasetSplit) -> None:
        """Assign an image to a split, replacing any previous assignment."""
        pass

    @abstractmethod
    def remove_image(self, dataset_id: int, image_id: int) -> None:
        """Remove an image's assignment; a missing assignment is not an error."""
        pass

    @abstractmethod
    def clear_images(self, dataset_id: int) -> None:
        pass

    @abstractmethod
    def get_images(self, dataset_id: int, split: Optional[DatasetSplit] = None) -> List[DatasetImage]:
        pass

    def get_counts(self, dataset_id: int) -> ImageCounts:
        """Number of assigned images per split."""
        counts = ImageCounts()
        for assignment in self.get_images(dataset_id):
            setattr(counts, assignment.split.value, getattr(counts, assignment.split.value) + 1)
            counts.total += 1
        return counts


class ImageRepository(ABC):

    @abstractmethod
    def find_by_id(self, image_id: int) -> Image:
        """
        Raises:
            NotFoundError: If the image does not exist
        """
        pass

    @abstractmethod
    def find_by_project(self, project_id: int) -> List[Image]:
        pass


class AnnotationRepository(ABC):

    @abstractmethod
    def find_by_image_id(self, image_id: int) -> List[Annotation]:
        pass


class ClassRepository(ABC):

    @abstractmethod
    def find_by_project(self, project_id: int) -> List[ClassLabel]:
        pass


class ProjectRepository(ABC):

    @abstractmethod
    def find_by_id(self, project_id: int) -> Project:
        """
        Raises:
            NotFoundError: If the project does not exist
        """
        pass
