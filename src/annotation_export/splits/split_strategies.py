"""
Split strategies for train/valid/test dataset splitting.
"""

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np

from ..exceptions import InvalidRequestError, NotFoundError
from ..models import DatasetSplit, Image, ImageStatus, ManualAssignment, SplitRatio

logger = logging.getLogger(__name__)


def filter_candidates(images: Sequence[Image],
                      include_annotated: Optional[bool] = None,
                      include_unlabeled: Optional[bool] = None,
                      batch_names: Optional[Sequence[str]] = None) -> List[Image]:
    """
    Select the images a random split is drawn from.

    With both status flags unset every image is a candidate. Otherwise an
    image is kept when it is annotated and ``include_annotated`` is set, or
    still only uploaded and ``include_unlabeled`` is set. A non-empty
    ``batch_names`` list further restricts candidates to those batches.
    """
    candidates = list(images)

    if include_annotated is not None or include_unlabeled is not None:
        candidates = [
            img for img in candidates
            if (include_annotated and img.status == ImageStatus.ANNOTATED)
            or (include_unlabeled and img.status == ImageStatus.UPLOADED)
        ]

    if batch_names:
        allowed = set(batch_names)
        candidates = [img for img in candidates if img.batch_name in allowed]

    return candidates


@dataclass
class SplitResult:
    """Planned split assignments, in the order they are written."""
    assignments: Dict[int, DatasetSplit]
    strategy_name: str = ""
    statistics: Dict = field(default_factory=dict)

    def image_ids(self, split: DatasetSplit) -> List[int]:
        return [image_id for image_id, assigned in self.assignments.items() if assigned == split]

    @property
    def total_count(self) -> int:
        """Total number of images."""
        return len(self.assignments)

    def get_summary(self) -> Dict[str, int]:
        return {split.value: len(self.image_ids(split)) for split in DatasetSplit}


class BaseSplitStrategy(ABC):
    """Abstract base class for split strategies."""

    @abstractmethod
    def plan(self, images: List[Image]) -> SplitResult:
        """
        Decide the split of each image.

        Args:
            images: Candidate images (random) or all project images (manual)

        Returns:
            SplitResult mapping image ids to splits
        """
        pass

    @abstractmethod
    def get_strategy_name(self) -> str:
        """Return name of this strategy."""
        pass

    def _compute_basic_stats(self, n: int, assignments: Dict[int, DatasetSplit]) -> Dict:
        counts = {split: 0 for split in DatasetSplit}
        for split in assignments.values():
            counts[split] += 1
        return {
            'total': n,
            'train_count': counts[DatasetSplit.TRAIN],
            'valid_count': counts[DatasetSplit.VALID],
            'test_count': counts[DatasetSplit.TEST],
        }


class RandomSplitStrategy(BaseSplitStrategy):
    """Uniform random split by ratio."""

    def __init__(self, ratio: Optional[SplitRatio] = None, seed: Optional[int] = None):
        """
        Initialize random split strategy.

        Args:
            ratio: Train/valid/test fractions (defaults to 0.7/0.2/0.1)
            seed: Seed for a reproducible shuffle

        Raises:
            InvalidRequestError: If the ratios do not sum to 1.0
        """
        self.ratio = ratio or SplitRatio()
        if not self.ratio.is_valid():
            raise InvalidRequestError(f"Split ratios must sum to 1.0, got {self.ratio.total:.3f}")
        self.seed = seed

    def get_strategy_name(self) -> str:
        """Return strategy name."""
        return "random"

    def plan(self, images: List[Image]) -> SplitResult:
        n = len(images)
        rng = np.random.default_rng(self.seed)
        order = rng.permutation(n)

        train_count = min(math.floor(n * self.ratio.train), n)
        valid_count = min(math.floor(n * self.ratio.valid), n - train_count)

        assignments: Dict[int, DatasetSplit] = {}
        for position, index in enumerate(order):
            if position < train_count:
                split = DatasetSplit.TRAIN
            elif position < train_count + valid_count:
                split = DatasetSplit.VALID
            else:
                split = DatasetSplit.TEST
            assignments[images[int(index)].id] = split

        stats = self._compute_basic_stats(n, assignments)
        logger.info(
            f"Random split: train={stats['train_count']}, valid={stats['valid_count']}, "
            f"test={stats['test_count']}"
        )
        return SplitResult(assignments=assignments, strategy_name=self.get_strategy_name(), statistics=stats)


class ManualSplitStrategy(BaseSplitStrategy):
    """Explicit per-image split assignments."""

    def __init__(self, assignments: List[ManualAssignment]):
        if not assignments:
            raise InvalidRequestError("Manual split requires at least one image assignment")
        self.manual_assignments = assignments

    def get_strategy_name(self) -> str:
        return "manual"

    def plan(self, images: List[Image]) -> SplitResult:
        project_image_ids = {img.id for img in images}

        assignments: Dict[int, DatasetSplit] = {}
        for entry in self.manual_assignments:
            if entry.image_id not in project_image_ids:
                raise NotFoundError(f"Image {entry.image_id} not found in project")
            # Repeated image ids: the last entry wins
            assignments.pop(entry.image_id, None)
            assignments[entry.image_id] = entry.split

        stats = self._compute_basic_stats(len(assignments), assignments)
        logger.info(f"Manual split: {len(assignments)} assignments")
        return SplitResult(assignments=assignments, strategy_name=self.get_strategy_name(), statistics=stats)
