"""
Unit tests for the SQLite dataset repository.
"""
import threading

import pytest

from annotation_export.exceptions import NotFoundError
from annotation_export.models import DatasetSplit, DatasetStatus
from annotation_export.repositories import SQLiteDatasetRepository
from annotation_export.splits import DatasetSplitter


@pytest.fixture
def sqlite_repository(tmp_path):
    repo = SQLiteDatasetRepository(str(tmp_path / "db" / "datasets.db"))
    yield repo
    repo.close()


@pytest.mark.unit
class TestSQLiteDatasetRepository:
    """Tests for SQLiteDatasetRepository."""

    def test_create_and_find(self, sqlite_repository):
        created = sqlite_repository.create(1, "v1", preprocessing={'resize': 640})
        found = sqlite_repository.find_by_id(created.id)

        assert found.name == "v1"
        assert found.status == DatasetStatus.PENDING
        assert found.preprocessing == {'resize': 640}
        assert found.augmentation == {}

    def test_find_missing(self, sqlite_repository):
        with pytest.raises(NotFoundError):
            sqlite_repository.find_by_id(1)

    def test_find_by_project(self, sqlite_repository):
        sqlite_repository.create(1, "a")
        sqlite_repository.create(1, "b")
        sqlite_repository.create(2, "c")
        assert {d.name for d in sqlite_repository.find_by_project(1)} == {"a", "b"}

    def test_update_status(self, sqlite_repository):
        dataset = sqlite_repository.create(1, "v1")
        updated = sqlite_repository.update_status(dataset.id, DatasetStatus.GENERATING)
        assert updated.status == DatasetStatus.GENERATING

    def test_update_status_missing(self, sqlite_repository):
        with pytest.raises(NotFoundError):
            sqlite_repository.update_status(5, DatasetStatus.FAILED)

    def test_add_image_is_upsert(self, sqlite_repository):
        dataset = sqlite_repository.create(1, "v1")
        sqlite_repository.add_image(dataset.id, 3, DatasetSplit.TRAIN)
        sqlite_repository.add_image(dataset.id, 3, DatasetSplit.TEST)

        rows = sqlite_repository.get_images(dataset.id)
        assert len(rows) == 1
        assert rows[0].split == DatasetSplit.TEST

    def test_get_images_by_split_and_counts(self, sqlite_repository):
        dataset = sqlite_repository.create(1, "v1")
        for image_id, split in [(1, 'train'), (2, 'train'), (3, 'valid'), (4, 'test')]:
            sqlite_repository.add_image(dataset.id, image_id, DatasetSplit(split))

        assert [r.image_id for r in sqlite_repository.get_images(dataset.id, DatasetSplit.TRAIN)] == [1, 2]
        counts = sqlite_repository.get_counts(dataset.id)
        assert (counts.train, counts.valid, counts.test, counts.total) == (2, 1, 1, 4)

    def test_remove_and_clear(self, sqlite_repository):
        dataset = sqlite_repository.create(1, "v1")
        for image_id in (1, 2, 3):
            sqlite_repository.add_image(dataset.id, image_id, DatasetSplit.TRAIN)

        sqlite_repository.remove_image(dataset.id, 2)
        sqlite_repository.remove_image(dataset.id, 99)
        assert [r.image_id for r in sqlite_repository.get_images(dataset.id)] == [1, 3]

        sqlite_repository.clear_images(dataset.id)
        assert sqlite_repository.get_counts(dataset.id).total == 0

    def test_delete_cascades_assignments(self, sqlite_repository):
        dataset = sqlite_repository.create(1, "v1")
        sqlite_repository.add_image(dataset.id, 1, DatasetSplit.TRAIN)
        sqlite_repository.delete(dataset.id)

        with pytest.raises(NotFoundError):
            sqlite_repository.get_images(dataset.id)
        with sqlite_repository._cursor() as cursor:
            cursor.execute("SELECT COUNT(*) FROM dataset_images")
            assert cursor.fetchone()[0] == 0

    def test_assignment_on_missing_dataset(self, sqlite_repository):
        with pytest.raises(NotFoundError):
            sqlite_repository.add_image(1, 1, DatasetSplit.TRAIN)

    def test_connections_are_per_thread(self, sqlite_repository):
        dataset = sqlite_repository.create(1, "v1")

        def worker(image_id):
            sqlite_repository.add_image(dataset.id, image_id, DatasetSplit.VALID)
            sqlite_repository.close()

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(1, 5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sqlite_repository.get_counts(dataset.id).valid == 4

    def test_works_with_splitter(self, sqlite_repository, image_repository):
        splitter = DatasetSplitter(sqlite_repository, image_repository)
        summary = splitter.create_dataset({
            'project_id': 1,
            'name': 'persisted',
            'split_ratio': {'train': 0.7, 'valid': 0.2, 'test': 0.1},
            'seed': 5,
        })
        assert summary.status == DatasetStatus.COMPLETED
        assert (summary.image_count.train, summary.image_count.valid, summary.image_count.test) == (7, 2, 1)
