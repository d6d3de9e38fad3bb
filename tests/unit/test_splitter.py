"""
Unit tests for the dataset splitter and split strategies.
"""
import threading

import pytest

from annotation_export.exceptions import (
    InvalidRequestError,
    InvalidStatusTransitionError,
    NotFoundError,
)
from annotation_export.models import (
    DatasetSplit,
    DatasetStatus,
    ManualAssignment,
    SplitRatio,
)
from annotation_export.splits import (
    DatasetSplitter,
    ManualSplitStrategy,
    RandomSplitStrategy,
    filter_candidates,
)


@pytest.mark.unit
class TestRandomSplitStrategy:
    """Tests for the random split."""

    def test_seven_two_one(self, project_images):
        result = RandomSplitStrategy(SplitRatio(train=0.7, valid=0.2, test=0.1), seed=42).plan(project_images)
        assert result.get_summary() == {'train': 7, 'valid': 2, 'test': 1}

    @pytest.mark.parametrize("n,ratio", [
        (0, (0.7, 0.2, 0.1)),
        (1, (0.7, 0.2, 0.1)),
        (9, (0.5, 0.25, 0.25)),
        (10, (1.0, 0.0, 0.0)),
        (10, (0.0, 0.0, 1.0)),
    ])
    def test_counts_follow_floor_rule(self, project_images, n, ratio):
        images = project_images[:n]
        train, valid, test = ratio
        result = RandomSplitStrategy(SplitRatio(train=train, valid=valid, test=test), seed=1).plan(images)

        expected_train = int(n * train)
        expected_valid = int(n * valid)
        summary = result.get_summary()
        assert summary['train'] == expected_train
        assert summary['valid'] == expected_valid
        assert summary['test'] == n - expected_train - expected_valid
        # every image exactly once
        assert sorted(result.assignments) == sorted(img.id for img in images)

    def test_same_seed_same_assignments(self, project_images):
        first = RandomSplitStrategy(seed=7).plan(project_images)
        second = RandomSplitStrategy(seed=7).plan(project_images)
        assert first.assignments == second.assignments

    def test_invalid_ratio_rejected(self):
        with pytest.raises(InvalidRequestError):
            RandomSplitStrategy(SplitRatio(train=0.5, valid=0.3, test=0.3))

    def test_default_ratio(self):
        strategy = RandomSplitStrategy()
        assert (strategy.ratio.train, strategy.ratio.valid, strategy.ratio.test) == (0.7, 0.2, 0.1)


@pytest.mark.unit
class TestManualSplitStrategy:
    """Tests for manual assignments."""

    def test_last_assignment_wins(self, project_images):
        strategy = ManualSplitStrategy([
            ManualAssignment(image_id=1, split=DatasetSplit.TRAIN),
            ManualAssignment(image_id=2, split=DatasetSplit.VALID),
            ManualAssignment(image_id=1, split=DatasetSplit.TEST),
        ])
        result = strategy.plan(project_images)
        assert result.assignments == {2: DatasetSplit.VALID, 1: DatasetSplit.TEST}

    def test_empty_assignments_rejected(self):
        with pytest.raises(InvalidRequestError):
            ManualSplitStrategy([])

    def test_unknown_image_rejected(self, project_images):
        strategy = ManualSplitStrategy([ManualAssignment(image_id=999, split=DatasetSplit.TRAIN)])
        with pytest.raises(NotFoundError):
            strategy.plan(project_images)


@pytest.mark.unit
class TestFilterCandidates:
    """Tests for candidate selection."""

    def test_no_flags_include_everything(self, project_images):
        assert len(filter_candidates(project_images)) == 10

    def test_annotated_only(self, project_images):
        ids = [img.id for img in filter_candidates(project_images, include_annotated=True)]
        assert ids == [1, 2, 3, 4, 5, 6]

    def test_unlabeled_only(self, project_images):
        ids = [img.id for img in filter_candidates(project_images, include_unlabeled=True)]
        assert ids == [7, 8, 9, 10]

    def test_both_flags_false_excludes_everything(self, project_images):
        assert filter_candidates(project_images, include_annotated=False, include_unlabeled=False) == []

    def test_batch_allow_list(self, project_images):
        ids = [img.id for img in filter_candidates(project_images, include_annotated=True,
                                                    batch_names=["batch_a"])]
        assert ids == [1, 3, 5]


@pytest.mark.unit
class TestGenerateSplit:
    """Tests for DatasetSplitter.generate_split."""

    def test_random_split_seven_two_one(self, splitter, dataset, dataset_repository):
        summary = splitter.generate_split(dataset.id, {
            'strategy': 'random',
            'ratio': {'train': 0.7, 'valid': 0.2, 'test': 0.1},
            'seed': 3,
        })

        assert summary.status == DatasetStatus.COMPLETED
        assert (summary.image_count.train, summary.image_count.valid, summary.image_count.test) == (7, 2, 1)
        assert summary.image_count.total == 10
        # foreign project's image is never a candidate
        assigned = {a.image_id for a in dataset_repository.get_images(dataset.id)}
        assert assigned == set(range(1, 11))

    def test_regeneration_replaces_previous_assignments(self, splitter, split_dataset, dataset_repository):
        splitter.generate_split(split_dataset.id, {
            'strategy': 'random',
            'ratio': {'train': 0.5, 'valid': 0.5, 'test': 0.0},
            'include_annotated': True,
        })
        assignments = dataset_repository.get_images(split_dataset.id)
        assert sorted(a.image_id for a in assignments) == [1, 2, 3, 4, 5, 6]

    def test_invalid_ratio_marks_failed_and_keeps_assignments(self, splitter, split_dataset,
                                                               dataset_repository):
        with pytest.raises(InvalidRequestError):
            splitter.generate_split(split_dataset.id, {
                'strategy': 'random',
                'ratio': {'train': 0.5, 'valid': 0.3, 'test': 0.3},
            })

        assert dataset_repository.find_by_id(split_dataset.id).status == DatasetStatus.FAILED
        assert dataset_repository.get_counts(split_dataset.id).total == 10

    def test_zero_candidates_completes_empty(self, splitter, dataset):
        summary = splitter.generate_split(dataset.id, {
            'strategy': 'random',
            'filter_by_batch': ['no-such-batch'],
        })
        assert summary.status == DatasetStatus.COMPLETED
        assert summary.image_count.total == 0

    def test_manual_split(self, splitter, dataset):
        summary = splitter.generate_split(dataset.id, {
            'strategy': 'manual',
            'manual_assignments': [
                {'image_id': 1, 'split': 'train'},
                {'image_id': 2, 'split': 'test'},
                {'image_id': 2, 'split': 'valid'},
            ],
        })
        assert (summary.image_count.train, summary.image_count.valid, summary.image_count.test) == (1, 1, 0)

    def test_manual_split_rejects_foreign_image(self, splitter, dataset, dataset_repository):
        with pytest.raises(NotFoundError):
            splitter.generate_split(dataset.id, {
                'strategy': 'manual',
                'manual_assignments': [{'image_id': 100, 'split': 'train'}],
            })
        assert dataset_repository.find_by_id(dataset.id).status == DatasetStatus.FAILED

    def test_manual_split_requires_assignments(self, splitter, dataset, dataset_repository):
        with pytest.raises(InvalidRequestError):
            splitter.generate_split(dataset.id, {'strategy': 'manual'})
        assert dataset_repository.find_by_id(dataset.id).status == DatasetStatus.FAILED

    def test_unknown_strategy(self, splitter, dataset):
        with pytest.raises(InvalidRequestError):
            splitter.generate_split(dataset.id, {'strategy': 'stratified'})

    def test_unknown_dataset(self, splitter):
        with pytest.raises(NotFoundError):
            splitter.generate_split(404, {'strategy': 'random'})

    def test_generating_dataset_cannot_be_split_again(self, splitter, dataset, dataset_repository):
        dataset_repository.update_status(dataset.id, DatasetStatus.GENERATING)
        with pytest.raises(InvalidStatusTransitionError):
            splitter.generate_split(dataset.id, {'strategy': 'random'})

    def test_failed_dataset_can_be_regenerated(self, splitter, dataset, dataset_repository):
        dataset_repository.update_status(dataset.id, DatasetStatus.FAILED)
        summary = splitter.generate_split(dataset.id, {'strategy': 'random', 'seed': 1})
        assert summary.status == DatasetStatus.COMPLETED

    def test_concurrent_regenerations_are_serialized(self, splitter, dataset, dataset_repository):
        errors = []

        def run():
            try:
                splitter.generate_split(dataset.id, {'strategy': 'random'})
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=run) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        counts = dataset_repository.get_counts(dataset.id)
        assert counts.total == 10


@pytest.mark.unit
class TestAssignImagesToSplit:
    """Tests for incremental reassignment."""

    def test_reassign_train_to_test(self, splitter, split_dataset, dataset_repository):
        splitter.assign_images_to_split(split_dataset.id, [3], 'test')

        rows = [a for a in dataset_repository.get_images(split_dataset.id) if a.image_id == 3]
        assert len(rows) == 1
        assert rows[0].split == DatasetSplit.TEST

    def test_repeated_reassignment_keeps_one_row(self, splitter, split_dataset, dataset_repository):
        for split in ('valid', 'valid', 'test', 'train'):
            splitter.assign_images_to_split(split_dataset.id, [5, 5], split)

        rows = [a for a in dataset_repository.get_images(split_dataset.id) if a.image_id == 5]
        assert len(rows) == 1
        assert rows[0].split == DatasetSplit.TRAIN
        assert dataset_repository.get_counts(split_dataset.id).total == 10

    def test_other_assignments_untouched(self, splitter, split_dataset):
        summary = splitter.assign_images_to_split(split_dataset.id, [1, 2], DatasetSplit.VALID)
        assert (summary.image_count.train, summary.image_count.valid, summary.image_count.test) == (5, 4, 1)
        assert summary.status == DatasetStatus.COMPLETED

    def test_unassigned_image_is_added(self, splitter, dataset):
        summary = splitter.assign_images_to_split(dataset.id, [4], 'train')
        assert summary.image_count.train == 1

    def test_empty_image_list(self, splitter, dataset, dataset_repository):
        with pytest.raises(InvalidRequestError):
            splitter.assign_images_to_split(dataset.id, [], 'train')
        assert dataset_repository.find_by_id(dataset.id).status == DatasetStatus.FAILED

    def test_invalid_split_name(self, splitter, dataset):
        with pytest.raises(InvalidRequestError):
            splitter.assign_images_to_split(dataset.id, [1], 'val')

    def test_foreign_image(self, splitter, split_dataset, dataset_repository):
        with pytest.raises(NotFoundError):
            splitter.assign_images_to_split(split_dataset.id, [1, 100], 'test')
        # validation happens before any write
        rows = {a.image_id: a.split for a in dataset_repository.get_images(split_dataset.id)}
        assert rows[1] == DatasetSplit.TRAIN


@pytest.mark.unit
class TestDatasetRecords:
    """Tests for dataset creation, lookup and deletion."""

    def test_create_without_ratio_stays_pending(self, splitter):
        summary = splitter.create_dataset({'project_id': 1, 'name': 'empty'})
        assert summary.status == DatasetStatus.PENDING
        assert summary.image_count.total == 0

    def test_create_with_ratio_splits_immediately(self, splitter):
        summary = splitter.create_dataset({
            'project_id': 1,
            'name': 'annotated',
            'split_ratio': {'train': 0.5, 'valid': 0.5, 'test': 0.0},
            'include_annotated': True,
            'preprocessing': {'resize': 640},
            'seed': 11,
        })
        assert summary.status == DatasetStatus.COMPLETED
        assert (summary.image_count.train, summary.image_count.valid) == (3, 3)
        assert summary.preprocessing == {'resize': 640}

    def test_create_with_invalid_ratio_marks_failed(self, splitter, dataset_repository):
        with pytest.raises(InvalidRequestError):
            splitter.create_dataset({
                'project_id': 1,
                'name': 'bad',
                'split_ratio': {'train': 0.9, 'valid': 0.9, 'test': 0.0},
            })
        datasets = dataset_repository.find_by_project(1)
        assert [d.status for d in datasets] == [DatasetStatus.FAILED]

    def test_create_requires_name(self, splitter):
        with pytest.raises(InvalidRequestError):
            splitter.create_dataset({'project_id': 1, 'name': ''})

    def test_project_datasets(self, splitter, split_dataset):
        splitter.create_dataset({'project_id': 1, 'name': 'second'})
        summaries = splitter.get_project_datasets(1)
        assert {s.name for s in summaries} == {'v1', 'second'}
        assert splitter.get_project_datasets(2) == []

    def test_dataset_images_by_split(self, splitter, split_dataset):
        assert len(splitter.get_dataset_images(split_dataset.id)) == 10
        assert [a.image_id for a in splitter.get_dataset_images(split_dataset.id, 'valid')] == [8, 9]

    def test_delete_removes_assignments(self, splitter, split_dataset, dataset_repository):
        splitter.delete_dataset(split_dataset.id)
        with pytest.raises(NotFoundError):
            splitter.get_dataset(split_dataset.id)
        with pytest.raises(NotFoundError):
            dataset_repository.get_images(split_dataset.id)

    def test_delete_releases_dataset_lock(self, splitter, split_dataset):
        with splitter.dataset_lock(split_dataset.id):
            pass
        assert split_dataset.id in DatasetSplitter._dataset_locks
        splitter.delete_dataset(split_dataset.id)
        assert split_dataset.id not in DatasetSplitter._dataset_locks

    def test_generate_dataset_cycles_status(self, splitter, split_dataset):
        summary = splitter.generate_dataset(split_dataset.id)
        assert summary.status == DatasetStatus.COMPLETED
        assert summary.image_count.total == 10

    def test_generate_dataset_requires_images(self, splitter, dataset, dataset_repository):
        with pytest.raises(InvalidRequestError):
            splitter.generate_dataset(dataset.id)
        assert dataset_repository.find_by_id(dataset.id).status == DatasetStatus.PENDING
