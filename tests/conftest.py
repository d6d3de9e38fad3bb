"""
Shared fixtures for all tests.

Provides in-memory repositories seeded with one object-detection project,
two classes, ten images (real files under tmp_path) and a mix of bbox,
polygon, keypoint and unsupported annotations.
"""
import sys
from datetime import datetime
from pathlib import Path

import pytest

# Add src to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from annotation_export.export import ExportContext, ExportManager  # noqa: E402
from annotation_export.models import (  # noqa: E402
    Annotation,
    ClassLabel,
    DatasetSplit,
    Image,
    ImageStatus,
    Project,
    ProjectType,
)
from annotation_export.repositories import (  # noqa: E402
    InMemoryAnnotationRepository,
    InMemoryClassRepository,
    InMemoryDatasetRepository,
    InMemoryImageRepository,
    InMemoryProjectRepository,
)
from annotation_export.splits import DatasetSplitter  # noqa: E402
from annotation_export.storage import LocalStorageGateway  # noqa: E402


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without external services")


# =============================================================================
# Domain records
# =============================================================================

@pytest.fixture
def project():
    return Project(id=1, name="Demo Project", type=ProjectType.OBJECT_DETECTION)


@pytest.fixture
def classes():
    """Two classes, deliberately not in id order."""
    return [
        ClassLabel(id=2, project_id=1, name="dog", color="#00ff00"),
        ClassLabel(id=1, project_id=1, name="cat", color="#ff0000"),
    ]


@pytest.fixture
def image_dir(tmp_path):
    path = tmp_path / "source_images"
    path.mkdir()
    return path


@pytest.fixture
def project_images(image_dir):
    """
    Ten 100x200 images with files on disk.

    Images 1-6 are annotated, 7-10 only uploaded. Odd ids belong to
    batch_a, even ids to batch_b.
    """
    images = []
    for i in range(1, 11):
        file_name = f"img_{i:03d}.jpg"
        (image_dir / file_name).write_bytes(b"\xff\xd8\xff\xe0" + bytes([i]) * 16)
        images.append(Image(
            id=i,
            project_id=1,
            file_path=str(image_dir / file_name),
            original_filename=file_name,
            width=100,
            height=200,
            upload_date=datetime(2024, 3, 1, 12, 0, 0),
            status=ImageStatus.ANNOTATED if i <= 6 else ImageStatus.UPLOADED,
            batch_name="batch_a" if i % 2 else "batch_b",
        ))
    return images


@pytest.fixture
def foreign_image(image_dir):
    """Image that belongs to another project."""
    (image_dir / "other.jpg").write_bytes(b"\xff\xd8other")
    return Image(
        id=100,
        project_id=2,
        file_path=str(image_dir / "other.jpg"),
        original_filename="other.jpg",
        width=50,
        height=50,
    )


@pytest.fixture
def annotations():
    """
    Image 1: bbox, polygon, keypoints, an unsupported 'mask' and a bbox with
    an unknown class. Images 2 and 3: one bbox each.
    """
    return [
        Annotation(id=11, image_id=1, class_id=1,
                   data={"type": "bbox", "coordinates": {"x": 10, "y": 20, "width": 30, "height": 40}}),
        Annotation(id=12, image_id=1, class_id=2,
                   data={"type": "polygon", "coordinates": [
                       {"x": 0, "y": 0}, {"x": 10, "y": 0}, {"x": 10, "y": 10}, {"x": 0, "y": 10}]}),
        Annotation(id=13, image_id=1, class_id=1,
                   data={"type": "keypoints", "coordinates": [
                       {"x": 5, "y": 5, "visible": True, "name": "nose"},
                       {"x": 15, "y": 25, "visible": True, "name": "tail"},
                       {"x": 90, "y": 190, "visible": False}]}),
        Annotation(id=14, image_id=1, class_id=1,
                   data={"type": "mask", "rle": "abc"}),
        Annotation(id=15, image_id=1, class_id=99,
                   data={"type": "bbox", "coordinates": {"x": 1, "y": 1, "width": 2, "height": 2}}),
        Annotation(id=21, image_id=2, class_id=2,
                   data={"type": "bbox", "coordinates": {"x": 0, "y": 0, "width": 50, "height": 100}}),
        Annotation(id=31, image_id=3, class_id=1,
                   data={"type": "bbox", "coordinates": {"x": 12.5, "y": 7.5, "width": 20, "height": 10}}),
    ]


# =============================================================================
# Repositories and services
# =============================================================================

@pytest.fixture
def dataset_repository():
    return InMemoryDatasetRepository()


@pytest.fixture
def image_repository(project_images, foreign_image):
    return InMemoryImageRepository(project_images + [foreign_image])


@pytest.fixture
def annotation_repository(annotations):
    return InMemoryAnnotationRepository(annotations)


@pytest.fixture
def class_repository(classes):
    return InMemoryClassRepository(classes)


@pytest.fixture
def project_repository(project):
    return InMemoryProjectRepository([project, Project(id=2, name="Other", type=ProjectType.CLASSIFICATION)])


@pytest.fixture
def storage(tmp_path):
    return LocalStorageGateway(base_dir=str(tmp_path / "uploads"), base_url="http://files.test/uploads")


@pytest.fixture
def splitter(dataset_repository, image_repository):
    return DatasetSplitter(dataset_repository, image_repository)


@pytest.fixture
def export_temp_dir(tmp_path):
    return tmp_path / "export_work"


@pytest.fixture
def export_manager(dataset_repository, project_repository, image_repository,
                   annotation_repository, class_repository, storage, export_temp_dir):
    return ExportManager(
        dataset_repository,
        project_repository,
        image_repository,
        annotation_repository,
        class_repository,
        storage,
        temp_dir=str(export_temp_dir),
    )


@pytest.fixture
def dataset(dataset_repository):
    return dataset_repository.create(project_id=1, name="v1")


@pytest.fixture
def split_dataset(dataset_repository, dataset):
    """Dataset with images 1-7 in train, 8-9 in valid and 10 in test."""
    for image_id in range(1, 11):
        if image_id <= 7:
            split = DatasetSplit.TRAIN
        elif image_id <= 9:
            split = DatasetSplit.VALID
        else:
            split = DatasetSplit.TEST
        dataset_repository.add_image(dataset.id, image_id, split)
    return dataset


# =============================================================================
# Codec input
# =============================================================================

@pytest.fixture
def make_context(project, classes, project_images, annotations):
    """
    Factory for ExportContext.

    Images 1 and 2 go to train, 3 to valid; extra keyword arguments override
    ExportContext fields.
    """
    def _make(image_ids=(1, 2, 3), **overrides):
        images = [img for img in project_images if img.id in image_ids]
        split_by_image = {}
        for img in images:
            split_by_image[img.id] = DatasetSplit.VALID if img.id == 3 else DatasetSplit.TRAIN
        annotations_by_image = {}
        for ann in annotations:
            annotations_by_image.setdefault(ann.image_id, []).append(ann)

        fields = dict(
            project=project,
            dataset_name="v1",
            images=images,
            annotations_by_image=annotations_by_image,
            classes=classes,
            split_by_image=split_by_image,
            export_splits=[DatasetSplit.TRAIN, DatasetSplit.VALID],
            include_images=False,
        )
        fields.update(overrides)
        return ExportContext(**fields)

    return _make
