"""
Dataset splitter: creates datasets and maintains their train/valid/test
assignments.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Union

from ..exceptions import InvalidRequestError, NotFoundError
from ..models import (
    Dataset,
    DatasetCreateRequest,
    DatasetImage,
    DatasetSplit,
    DatasetSummary,
    Image,
    SplitRequest,
    SplitStrategyType,
    coerce_model,
)
from ..repositories import DatasetRepository, ImageRepository
from ..shared import DatasetLifecycle
from .split_strategies import (
    BaseSplitStrategy,
    ManualSplitStrategy,
    RandomSplitStrategy,
    SplitResult,
    filter_candidates,
)

logger = logging.getLogger(__name__)


class DatasetSplitter:
    """
    Main class for splitting datasets into train/valid/test sets.

    Supports:
    - Random splits by ratio, with status and batch filters
    - Manual per-image assignments
    - Incremental reassignment of individual images
    """

    # One advisory lock per dataset id, shared by every splitter in the process
    _dataset_locks: Dict[int, threading.Lock] = {}
    _registry_lock = threading.Lock()

    def __init__(self, dataset_repository: DatasetRepository, image_repository: ImageRepository):
        """
        Initialize dataset splitter.

        Args:
            dataset_repository: Datasets and split assignments
            image_repository: Project images
        """
        self.dataset_repository = dataset_repository
        self.image_repository = image_repository

    @contextmanager
    def dataset_lock(self, dataset_id: int) -> Iterator[None]:
        """Serialize split changes of one dataset within this process."""
        with self._registry_lock:
            lock = self._dataset_locks.setdefault(dataset_id, threading.Lock())
        with lock:
            yield

    # ==================== Dataset records ====================

    def create_dataset(self, request: Union[DatasetCreateRequest, Dict[str, Any]]) -> DatasetSummary:
        """
        Create a dataset and, when a split ratio is given, split it right away.

        An error during the initial split marks the new dataset ``failed`` and
        is re-raised.
        """
        request = coerce_model(DatasetCreateRequest, request)
        dataset = self.dataset_repository.create(
            project_id=request.project_id,
            name=request.name,
            preprocessing=request.preprocessing,
            augmentation=request.augmentation,
        )
        logger.info(f"Created dataset {dataset.id} '{dataset.name}' for project {dataset.project_id}")

        if request.split_ratio is not None:
            self.generate_split(dataset.id, SplitRequest(
                strategy=SplitStrategyType.RANDOM,
                ratio=request.split_ratio,
                include_annotated=request.include_annotated,
                include_unlabeled=request.include_unlabeled,
                filter_by_batch=request.filter_by_batch,
                seed=request.seed,
            ))

        return self.get_dataset(dataset.id)

    def get_dataset(self, dataset_id: int) -> DatasetSummary:
        dataset = self.dataset_repository.find_by_id(dataset_id)
        return DatasetSummary.from_dataset(dataset, self.dataset_repository.get_counts(dataset_id))

    def get_project_datasets(self, project_id: int) -> List[DatasetSummary]:
        return [
            DatasetSummary.from_dataset(dataset, self.dataset_repository.get_counts(dataset.id))
            for dataset in self.dataset_repository.find_by_project(project_id)
        ]

    def get_dataset_images(self, dataset_id: int,
                           split: Optional[Union[DatasetSplit, str]] = None) -> List[DatasetImage]:
        if split is not None:
            split = self._parse_split(split)
        return self.dataset_repository.get_images(dataset_id, split)

    def delete_dataset(self, dataset_id: int) -> None:
        """Delete a dataset together with its split assignments."""
        with self.dataset_lock(dataset_id):
            self.dataset_repository.delete(dataset_id)
        with self._registry_lock:
            self._dataset_locks.pop(dataset_id, None)
        logger.info(f"Deleted dataset {dataset_id}")

    # ==================== Split generation ====================

    def generate_split(self, dataset_id: int,
                       request: Union[SplitRequest, Dict[str, Any]]) -> DatasetSummary:
        """
        Regenerate all split assignments of a dataset.

        The request is validated after the dataset enters ``generating`` and
        before existing assignments are cleared, so a rejected request marks
        the dataset ``failed`` but keeps its previous assignments.

        Args:
            dataset_id: Dataset to split
            request: Strategy and its parameters

        Returns:
            DatasetSummary with per-split counts
        """
        request = coerce_model(SplitRequest, request)
        dataset = self.dataset_repository.find_by_id(dataset_id)

        with self.dataset_lock(dataset_id):
            lifecycle = DatasetLifecycle(dataset_id, self.dataset_repository)
            with lifecycle.generating(f"Generating {request.strategy.value} split"):
                strategy = self._build_strategy(request)
                result = strategy.plan(self._candidates(dataset, request))

                self.dataset_repository.clear_images(dataset_id)
                self._write_assignments(dataset_id, result)
                lifecycle.logger.info("Split assignments written", result.get_summary())

        return self.get_dataset(dataset_id)

    def assign_images_to_split(self, dataset_id: int, image_ids: List[int],
                               split: Union[DatasetSplit, str]) -> DatasetSummary:
        """
        Move images into ``split`` without touching other assignments.

        Each image ends up with exactly one assignment, however many times
        this is called.
        """
        dataset = self.dataset_repository.find_by_id(dataset_id)

        with self.dataset_lock(dataset_id):
            lifecycle = DatasetLifecycle(dataset_id, self.dataset_repository)
            with lifecycle.generating("Reassigning images"):
                if not image_ids:
                    raise InvalidRequestError("No images given to assign")
                target = self._parse_split(split)
                for image_id in image_ids:
                    self._require_project_image(dataset, image_id)

                for image_id in dict.fromkeys(image_ids):
                    self.dataset_repository.remove_image(dataset_id, image_id)
                    self.dataset_repository.add_image(dataset_id, image_id, target)
                lifecycle.logger.info(f"Assigned {len(set(image_ids))} images to {target.value}")

        return self.get_dataset(dataset_id)

    def generate_dataset(self, dataset_id: int) -> DatasetSummary:
        """
        Run the dataset generation pass over the current assignments.

        Images are not re-encoded; the pass checks that every assigned image
        still exists in the project and records the configured preprocessing
        and augmentation settings.
        """
        dataset = self.dataset_repository.find_by_id(dataset_id)
        counts = self.dataset_repository.get_counts(dataset_id)
        if counts.total == 0:
            raise InvalidRequestError(f"Dataset {dataset_id} has no images; generate a split first")

        with self.dataset_lock(dataset_id):
            lifecycle = DatasetLifecycle(dataset_id, self.dataset_repository)
            with lifecycle.generating("Generating dataset"):
                for assignment in self.dataset_repository.get_images(dataset_id):
                    self._require_project_image(dataset, assignment.image_id)
                lifecycle.logger.info("Dataset settings applied", {
                    'preprocessing': sorted(dataset.preprocessing),
                    'augmentation': sorted(dataset.augmentation),
                    'images': counts.total,
                })

        return self.get_dataset(dataset_id)

    # ==================== Helpers ====================

    def _build_strategy(self, request: SplitRequest) -> BaseSplitStrategy:
        if request.strategy == SplitStrategyType.RANDOM:
            return RandomSplitStrategy(request.ratio, seed=request.seed)
        if request.strategy == SplitStrategyType.MANUAL:
            return ManualSplitStrategy(request.manual_assignments)
        raise InvalidRequestError(f"Unknown split strategy: {request.strategy}")

    def _candidates(self, dataset: Dataset, request: SplitRequest) -> List[Image]:
        images = self.image_repository.find_by_project(dataset.project_id)
        if request.strategy == SplitStrategyType.MANUAL:
            return images
        return filter_candidates(
            images,
            include_annotated=request.include_annotated,
            include_unlabeled=request.include_unlabeled,
            batch_names=request.filter_by_batch,
        )

    def _write_assignments(self, dataset_id: int, result: SplitResult) -> None:
        for image_id, split in result.assignments.items():
            self.dataset_repository.add_image(dataset_id, image_id, split)

    def _require_project_image(self, dataset: Dataset, image_id: int) -> Image:
        image = self.image_repository.find_by_id(image_id)
        if image.project_id != dataset.project_id:
            raise NotFoundError(f"Image {image_id} not found in project {dataset.project_id}")
        return image

    @staticmethod
    def _parse_split(split: Union[DatasetSplit, str]) -> DatasetSplit:
        try:
            return DatasetSplit(split)
        except ValueError:
            raise InvalidRequestError(
                f"Invalid split '{split}'. Expected one of {[s.value for s in DatasetSplit]}"
            ) from None
