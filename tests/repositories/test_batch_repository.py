# tests/repositories/test_batch_repository.py
from datetime import datetime, timezone

import pytest

from conftest import make_batch, make_instance
from migration_manager.domain import BatchStatus
from migration_manager.services.exceptions import ConstraintViolationError, NotFoundError


class TestBatchRepository:
    def test_round_trip_with_window(self, batch_repo, target):
        batch = make_batch(
            target.id,
            storage_pool="fast",
            default_network="prod-net",
            migration_window_start=datetime(2024, 6, 1, 22, 0, tzinfo=timezone.utc),
            migration_window_end=datetime(2024, 6, 2, 6, 0, tzinfo=timezone.utc),
        )

        created = batch_repo.create(batch)

        assert batch_repo.get_by_name("batch-01") == created
        assert created.migration_window_start == batch.migration_window_start

    def test_get_all_is_ordered_by_id(self, batch_repo, target):
        first = batch_repo.create(make_batch(target.id, name="zzz"))
        second = batch_repo.create(make_batch(target.id, name="aaa"))

        assert [b.id for b in batch_repo.get_all()] == [first.id, second.id]
        assert batch_repo.get_all_names() == ["aaa", "zzz"]

    def test_update_status(self, batch_repo, target):
        batch = batch_repo.create(make_batch(target.id))

        batch_repo.update_status_by_id(batch.id, BatchStatus.RUNNING, "Running")

        loaded = batch_repo.get_by_id(batch.id)
        assert loaded.status == BatchStatus.RUNNING
        assert loaded.status_string == "Running"

    def test_update_status_of_missing_batch_raises_not_found(self, batch_repo):
        with pytest.raises(NotFoundError):
            batch_repo.update_status_by_id(999, BatchStatus.READY, "Ready")

    def test_delete_with_members_is_refused(self, batch_repo, instance_repo, source, target):
        """소속 인스턴스가 남아 있는 배치는 저장소 수준에서 삭제가 거부되는지 테스트합니다."""
        batch = batch_repo.create(make_batch(target.id))
        instance = instance_repo.create(make_instance(source.id))
        instance_repo.assign_batch(instance.uuid, batch.id, target.id, "Assigned")

        with pytest.raises(ConstraintViolationError):
            batch_repo.delete_by_name(batch.name)
