"""
Pydantic schemas for projects, datasets, images, classes and annotations.

Annotation payloads are a tagged union on ``data.type``. Tags that no codec
understands are parsed into :class:`UnsupportedData` so that exporters can
skip them instead of failing the whole request.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, ValidationError

from ..config import RATIO_TOLERANCE
from ..exceptions import InvalidRequestError

ModelT = TypeVar("ModelT", bound=BaseModel)


class ProjectType(str, Enum):
    """Kind of labelling project"""
    OBJECT_DETECTION = "object_detection"
    CLASSIFICATION = "classification"
    INSTANCE_SEGMENTATION = "instance_segmentation"
    KEYPOINT_DETECTION = "keypoint_detection"
    MULTIMODAL = "multimodal"


class DatasetStatus(str, Enum):
    """Dataset generation status"""
    PENDING = "pending"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


class DatasetSplit(str, Enum):
    """Partition an image is assigned to"""
    TRAIN = "train"
    VALID = "valid"
    TEST = "test"


class ImageStatus(str, Enum):
    """Annotation progress of an uploaded image"""
    UPLOADED = "uploaded"
    ANNOTATED = "annotated"
    PROCESSED = "processed"


class SplitStrategyType(str, Enum):
    """How images are distributed across splits"""
    RANDOM = "random"
    MANUAL = "manual"


# =============================================================================
# Annotation payloads
# =============================================================================

class Point(BaseModel):
    """Vertex in pixel coordinates"""
    x: float
    y: float


class Keypoint(Point):
    """Named keypoint with a visibility flag"""
    visible: bool = True
    name: Optional[str] = None


class BoundingBox(BaseModel):
    """Axis-aligned box in pixel coordinates (top-left corner + size)"""
    x: float
    y: float
    width: float
    height: float


class BboxData(BaseModel):
    type: Literal["bbox"] = "bbox"
    coordinates: BoundingBox


class PolygonData(BaseModel):
    type: Literal["polygon"] = "polygon"
    coordinates: List[Point]


class KeypointsData(BaseModel):
    type: Literal["keypoints"] = "keypoints"
    coordinates: List[Keypoint]


class UnsupportedData(BaseModel):
    """Payload whose type tag is not bbox, polygon or keypoints."""
    model_config = ConfigDict(extra="allow")

    type: str = ""


SUPPORTED_ANNOTATION_TYPES = ("bbox", "polygon", "keypoints")


def _annotation_data_tag(value: Any) -> str:
    if isinstance(value, dict):
        tag = value.get("type")
    else:
        tag = getattr(value, "type", None)
    return tag if tag in SUPPORTED_ANNOTATION_TYPES else "unsupported"


AnnotationData = Annotated[
    Union[
        Annotated[BboxData, Tag("bbox")],
        Annotated[PolygonData, Tag("polygon")],
        Annotated[KeypointsData, Tag("keypoints")],
        Annotated[UnsupportedData, Tag("unsupported")],
    ],
    Discriminator(_annotation_data_tag),
]


# =============================================================================
# Records
# =============================================================================

class Project(BaseModel):
    id: int
    name: str
    type: ProjectType = ProjectType.OBJECT_DETECTION


class ClassLabel(BaseModel):
    """Annotation class defined on a project"""
    id: int
    project_id: int
    name: str
    color: str = "#000000"


class Image(BaseModel):
    id: int
    project_id: int
    file_path: str
    original_filename: str
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)
    upload_date: datetime = Field(default_factory=datetime.now)
    status: ImageStatus = ImageStatus.UPLOADED
    batch_name: Optional[str] = None


class Annotation(BaseModel):
    id: int
    image_id: int
    class_id: int
    data: AnnotationData
    created_at: datetime = Field(default_factory=datetime.now)
    is_valid: bool = True


class Dataset(BaseModel):
    id: int
    project_id: int
    name: str
    status: DatasetStatus = DatasetStatus.PENDING
    preprocessing: Dict[str, Any] = Field(default_factory=dict)
    augmentation: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.now)


class DatasetImage(BaseModel):
    """Split assignment of one image within one dataset"""
    dataset_id: int
    image_id: int
    split: DatasetSplit


class ImageCounts(BaseModel):
    train: int = 0
    valid: int = 0
    test: int = 0
    total: int = 0


class DatasetSummary(BaseModel):
    """Dataset record together with its per-split image counts"""
    id: int
    project_id: int
    name: str
    status: DatasetStatus
    created_at: datetime
    preprocessing: Dict[str, Any] = Field(default_factory=dict)
    augmentation: Dict[str, Any] = Field(default_factory=dict)
    image_count: ImageCounts = Field(default_factory=ImageCounts)

    @classmethod
    def from_dataset(cls, dataset: Dataset, counts: ImageCounts) -> "DatasetSummary":
        return cls(
            id=dataset.id,
            project_id=dataset.project_id,
            name=dataset.name,
            status=dataset.status,
            created_at=dataset.created_at,
            preprocessing=dataset.preprocessing,
            augmentation=dataset.augmentation,
            image_count=counts,
        )


# =============================================================================
# Requests and results
# =============================================================================

class SplitRatio(BaseModel):
    """Fractions of candidate images sent to each split"""
    train: float = Field(0.7, ge=0.0, le=1.0)
    valid: float = Field(0.2, ge=0.0, le=1.0)
    test: float = Field(0.1, ge=0.0, le=1.0)

    @property
    def total(self) -> float:
        return self.train + self.valid + self.test

    def is_valid(self, tolerance: float = RATIO_TOLERANCE) -> bool:
        return abs(self.total - 1.0) <= tolerance


class ManualAssignment(BaseModel):
    image_id: int
    split: DatasetSplit


class SplitRequest(BaseModel):
    """Parameters of a split (re)generation"""
    strategy: SplitStrategyType
    ratio: Optional[SplitRatio] = None
    manual_assignments: List[ManualAssignment] = Field(default_factory=list)
    include_annotated: Optional[bool] = None
    include_unlabeled: Optional[bool] = None
    filter_by_batch: List[str] = Field(default_factory=list)
    seed: Optional[int] = Field(None, description="Seed for a reproducible shuffle")


class DatasetCreateRequest(BaseModel):
    project_id: int
    name: str = Field(..., min_length=1)
    split_ratio: Optional[SplitRatio] = None
    preprocessing: Dict[str, Any] = Field(default_factory=dict)
    augmentation: Dict[str, Any] = Field(default_factory=dict)
    include_annotated: Optional[bool] = None
    include_unlabeled: Optional[bool] = None
    filter_by_batch: List[str] = Field(default_factory=list)
    seed: Optional[int] = None


class ExportOptions(BaseModel):
    """Options of a dataset export request"""
    format: str = Field(..., description="coco, yolo, pascal_voc, createml or tensorflow")
    include_images: bool = False
    export_splits: List[DatasetSplit] = Field(default_factory=lambda: list(DatasetSplit))
    include_originals: bool = True
    include_augmented: bool = False


class ExportResult(BaseModel):
    """Metadata of a published export archive"""
    download_url: str
    format: str
    image_count: int
    annotation_count: int
    exported_at: datetime
    expires_at: datetime


class UploadResult(BaseModel):
    url: str
    width: int = 0
    height: int = 0


def coerce_model(model_cls: Type[ModelT], value: Union[ModelT, Dict[str, Any]]) -> ModelT:
    """
    Accept either a model instance or a plain mapping.

    Validation failures surface as InvalidRequestError so callers see one
    error kind for malformed requests.
    """
    if isinstance(value, model_cls):
        return value
    try:
        return model_cls.model_validate(value)
    except ValidationError as e:
        raise InvalidRequestError(f"Invalid {model_cls.__name__}: {e}") from e
