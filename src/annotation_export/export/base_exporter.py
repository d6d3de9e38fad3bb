"""
Base exporter class and common dataclasses for annotation export.

Exporters are pure: they turn an :class:`ExportContext` into an
:class:`ExportTree` (relative path -> content) without touching the disk.
Writing the tree, zipping it and uploading it are separate steps.
"""

import json
import logging
import re
import shutil
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple, Union

from tqdm import tqdm

from ..config import EXPORT_SHOW_PROGRESS, IMAGE_ROOT
from ..models import (
    Annotation,
    BboxData,
    BoundingBox,
    ClassLabel,
    DatasetSplit,
    Image,
    Project,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StagedFile:
    """File on disk that is copied into the tree when it is written."""
    source_path: Path


TreeContent = Union[str, bytes, StagedFile]


@dataclass
class ExportTree:
    """In-memory directory tree produced by an exporter."""
    files: Dict[str, TreeContent] = field(default_factory=dict)
    directories: Set[str] = field(default_factory=set)
    image_count: int = 0
    annotation_count: int = 0

    def add_text(self, path: str, text: str) -> None:
        self.files[path] = text

    def add_json(self, path: str, data: Any) -> None:
        self.files[path] = json.dumps(data, indent=2, ensure_ascii=False)

    def add_file(self, path: str, source_path: Path) -> None:
        self.files[path] = StagedFile(Path(source_path))

    def ensure_directory(self, path: str) -> None:
        """Keep ``path`` in the output even if no file ends up inside it."""
        self.directories.add(path.rstrip("/"))

    def read_text(self, path: str) -> str:
        content = self.files[path]
        if isinstance(content, StagedFile):
            raise TypeError(f"{path} is a staged file, not generated text")
        return content.decode("utf-8") if isinstance(content, bytes) else content

    def read_json(self, path: str) -> Any:
        return json.loads(self.read_text(path))

    def paths(self) -> List[str]:
        return sorted(self.files)

    def write(self, output_dir: Union[str, Path]) -> Path:
        """
        Materialize the tree under ``output_dir``.

        Args:
            output_dir: Target directory (created if missing)

        Returns:
            The output directory
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        for directory in sorted(self.directories):
            (output_dir / directory).mkdir(parents=True, exist_ok=True)

        for rel_path, content in self.files.items():
            target = output_dir / rel_path
            target.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, StagedFile):
                shutil.copy2(content.source_path, target)
            elif isinstance(content, bytes):
                target.write_bytes(content)
            else:
                target.write_text(content, encoding="utf-8")

        logger.info(f"Wrote {len(self.files)} files to {output_dir}")
        return output_dir


class AnnotationIdCounter:
    """
    Sequential annotation ids for a single export, starting at 1.

    One instance per export call; the lock keeps ids unique if images are
    ever encoded from several threads.
    """

    def __init__(self, start: int = 1):
        self._next = start
        self._lock = threading.Lock()

    def next_id(self) -> int:
        with self._lock:
            value = self._next
            self._next += 1
            return value


@dataclass
class ExportContext:
    """Everything an exporter needs to render one dataset export."""
    project: Project
    dataset_name: str
    images: List[Image]
    annotations_by_image: Dict[int, List[Annotation]]
    classes: List[ClassLabel]
    split_by_image: Dict[int, DatasetSplit]
    export_splits: List[DatasetSplit]
    include_images: bool = False
    image_root: str = IMAGE_ROOT

    def annotations_for(self, image_id: int) -> List[Annotation]:
        return self.annotations_by_image.get(image_id, [])

    def split_of(self, image_id: int) -> DatasetSplit:
        return self.split_by_image[image_id]


_UNSAFE_CHARS = re.compile(r"[^\w.\-]+")


def safe_filename(name: str) -> str:
    """Replace path separators, whitespace and other unsafe characters with '_'."""
    cleaned = _UNSAFE_CHARS.sub("_", name.strip()).strip("._")
    return cleaned or "unnamed"


class BaseExporter(ABC):
    """Abstract base class for all annotation format exporters."""

    def __init__(self, show_progress: bool = EXPORT_SHOW_PROGRESS):
        """
        Initialize the exporter.

        Args:
            show_progress: Display a tqdm progress bar while encoding images
        """
        self.show_progress = show_progress

    @abstractmethod
    def build(self, context: ExportContext) -> ExportTree:
        """
        Render the dataset in this format.

        Args:
            context: Images, annotations, classes and split assignments

        Returns:
            ExportTree with the format's directory layout
        """
        pass

    @abstractmethod
    def preview(self,
                image: Image,
                annotations: List[Annotation],
                classes: List[ClassLabel],
                project: Project) -> str:
        """
        Render a single image's annotations in this format's record shape.

        Returns:
            Text sample suitable for display
        """
        pass

    @abstractmethod
    def get_format_name(self) -> str:
        """
        Return the name of the export format.

        Returns:
            Format name string (e.g., 'coco', 'yolo')
        """
        pass

    # ------------------------------------------------------------------
    # Helpers shared by the codecs
    # ------------------------------------------------------------------

    def _iter_images(self, context: ExportContext) -> Iterable[Image]:
        return tqdm(
            context.images,
            desc=f"Exporting {self.get_format_name()}",
            unit="img",
            disable=not self.show_progress,
        )

    def _build_class_lookup(self, classes: List[ClassLabel]) -> Dict[int, ClassLabel]:
        """
        Build a lookup dictionary for classes by ID.

        Args:
            classes: List of project classes

        Returns:
            Dictionary mapping class_id to class
        """
        return {cls.id: cls for cls in classes}

    def _sorted_classes(self, classes: List[ClassLabel]) -> List[ClassLabel]:
        return sorted(classes, key=lambda c: c.id)

    def _has_known_class(self, annotation: Annotation, class_lookup: Dict[int, ClassLabel]) -> bool:
        if annotation.class_id in class_lookup:
            return True
        logger.warning(
            f"Skipping annotation {annotation.id}: class {annotation.class_id} is not defined on the project"
        )
        return False

    def _bbox_annotations(self,
                          annotations: List[Annotation],
                          class_lookup: Dict[int, ClassLabel]) -> List[Tuple[Annotation, BoundingBox]]:
        """Bounding-box annotations with a known class, in their original order."""
        boxes = []
        for ann in annotations:
            if not isinstance(ann.data, BboxData):
                continue
            if not self._has_known_class(ann, class_lookup):
                continue
            boxes.append((ann, ann.data.coordinates))
        return boxes

    def _export_file_names(self, images: List[Image]) -> Dict[int, str]:
        """
        File name used for each image inside the export.

        Original filenames are kept; when two images share a stem the later
        one is prefixed with its image id (repeatedly, until the stem is free)
        so that label files stay distinct.
        """
        names: Dict[int, str] = {}
        used_stems: Set[str] = set()
        for img in images:
            name = Path(img.original_filename).name
            while Path(name).stem.lower() in used_stems:
                name = f"{img.id}-{name}"
            used_stems.add(Path(name).stem.lower())
            names[img.id] = name
        return names

    def _resolve_image_path(self, image: Image, image_root: str) -> Path:
        path = Path(image.file_path)
        if path.is_absolute():
            return path
        return Path(image_root) / image.file_path.lstrip("/")

    def _stage_image(self, tree: ExportTree, rel_path: str, image: Image, context: ExportContext) -> bool:
        """
        Add the original image file to the tree.

        Returns:
            False if the source file does not exist (the image is skipped)
        """
        source = self._resolve_image_path(image, context.image_root)
        if not source.is_file():
            logger.warning(f"Source image not found for image {image.id}: {source}")
            return False
        tree.add_file(rel_path, source)
        return True

    def _image_reference(self, image: Image, file_name: str, include_images: bool,
                         images_prefix: Optional[str] = None) -> str:
        """How a record points at its image: the staged name or the stored path."""
        if not include_images:
            return image.file_path
        return f"{images_prefix}/{file_name}" if images_prefix else file_name
