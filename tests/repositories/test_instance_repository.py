# tests/repositories/test_instance_repository.py
import threading
import uuid

import pytest

from conftest import make_batch, make_instance
from migration_manager.domain import MigrationStatus, Overrides
from migration_manager.services.exceptions import (
    ConstraintViolationError,
    NotFoundError,
    OperationNotPermittedError,
)

# ===================================================================
#  생성 / 조회
# ===================================================================
class TestCreateAndRead:
    def test_round_trip_is_deep_equal(self, instance_repo, source):
        """저장 후 다시 읽은 인스턴스가 디스크/NIC/CPU/타임스탬프까지 원본과 같은지 테스트합니다."""
        # === Arrange ===
        instance = make_instance(source.id, devices=[{"type": "cdrom", "label": "CD/DVD drive 1"}],
                                 snapshots=[{"name": "before-upgrade"}], tpm_present=True)

        # === Act ===
        instance_repo.create(instance)
        loaded = instance_repo.get_by_id(instance.uuid)

        # === Assert ===
        assert loaded == instance
        assert loaded.last_update_from_source.microsecond == 123456
        assert loaded.last_update_from_source.tzinfo is not None
        assert loaded.name == "web-01"
        assert loaded.overrides is None

    def test_create_with_unknown_source_fails(self, instance_repo, source):
        """존재하지 않는 소스를 참조하면 ConstraintViolationError가 발생하는지 테스트합니다."""
        with pytest.raises(ConstraintViolationError):
            instance_repo.create(make_instance(source.id + 100))

    def test_create_duplicate_uuid_fails(self, instance_repo, source):
        instance = make_instance(source.id)
        instance_repo.create(instance)

        with pytest.raises(ConstraintViolationError):
            instance_repo.create(make_instance(source.id, path="/dc/vm/other", uuid=instance.uuid))

    def test_get_missing_instance_raises_not_found(self, instance_repo):
        with pytest.raises(NotFoundError):
            instance_repo.get_by_id(uuid.uuid4())

    def test_reads_merge_overrides(self, instance_repo, overrides_repo, source):
        """조회 시 보정값이 함께 채워지고 유효 CPU/메모리에 반영되는지 테스트합니다."""
        # === Arrange ===
        instance = instance_repo.create(make_instance(source.id))
        overrides_repo.create(Overrides(uuid=instance.uuid, number_cpus=8, comment="needs more cpu"))

        # === Act ===
        loaded = instance_repo.get_by_id(instance.uuid)
        listed = instance_repo.get_all()

        # === Assert ===
        assert loaded.overrides.number_cpus == 8
        assert loaded.effective_number_cpus == 8
        assert loaded.effective_memory_in_bytes == instance.memory.memory_in_bytes
        assert listed[0].overrides.comment == "needs more cpu"

    def test_unassigned_query_excludes_assigned_instances(self, instance_repo, batch_repo, source, target):
        batch = batch_repo.create(make_batch(target.id))
        free = instance_repo.create(make_instance(source.id, path="/dc/vm/a"))
        taken = instance_repo.create(make_instance(source.id, path="/dc/vm/b"))
        instance_repo.assign_batch(taken.uuid, batch.id, target.id, "Assigned")

        unassigned = instance_repo.get_all_unassigned()

        assert [i.uuid for i in unassigned] == [free.uuid]
        assert [i.uuid for i in instance_repo.get_all_by_batch(batch.id)] == [taken.uuid]
        assert len(instance_repo.get_all_by_source(source.id)) == 2
        assert set(instance_repo.get_all_uuids()) == {free.uuid, taken.uuid}


# ===================================================================
#  전체 갱신 / 상태 갱신
# ===================================================================
class TestUpdate:
    def test_update_refused_while_assigned_and_allowed_after_unassign(self, instance_repo, batch_repo, source, target):
        """배치에 할당된 동안에는 전체 갱신이 거부되고, 할당 해제 후에는 성공하는지 테스트합니다."""
        # === Arrange ===
        batch = batch_repo.create(make_batch(target.id))
        instance = instance_repo.create(make_instance(source.id))
        assert instance_repo.assign_batch(instance.uuid, batch.id, target.id, "Assigned")

        # === Act & Assert ===
        instance.annotation = "edited"
        with pytest.raises(OperationNotPermittedError):
            instance_repo.update_by_id(instance)
        assert instance_repo.get_by_id(instance.uuid).annotation == ""

        instance_repo.unassign_batch(instance.uuid, MigrationStatus.NOT_ASSIGNED_BATCH, "Not assigned")
        refreshed = instance_repo.get_by_id(instance.uuid)
        refreshed.annotation = "edited"
        instance_repo.update_by_id(refreshed)

        assert instance_repo.get_by_id(instance.uuid).annotation == "edited"

    def test_update_refused_while_migrating_without_batch(self, instance_repo, source):
        """배치가 없어도 활성 마이그레이션 단계에 있는 인스턴스는 전체 갱신이 거부되는지 테스트합니다."""
        # === Arrange ===
        instance = instance_repo.create(make_instance(source.id))
        instance_repo.update_status_by_id(instance.uuid, MigrationStatus.BACKGROUND_IMPORT, "Importing", True)

        # === Act & Assert ===
        instance.annotation = "edited"
        with pytest.raises(OperationNotPermittedError):
            instance_repo.update_by_id(instance)

        stored = instance_repo.get_by_id(instance.uuid)
        assert stored.annotation == ""
        assert stored.migration_status == MigrationStatus.BACKGROUND_IMPORT

    def test_update_missing_instance_raises_not_found(self, instance_repo, source):
        with pytest.raises(NotFoundError):
            instance_repo.update_by_id(make_instance(source.id))

    def test_update_status_only_touches_status_columns(self, instance_repo, batch_repo, source, target):
        """update_status_by_id가 배치 할당 중에도 허용되고, 상태 컬럼 외에는 바꾸지 않는지 테스트합니다."""
        # === Arrange ===
        batch = batch_repo.create(make_batch(target.id))
        instance = instance_repo.create(make_instance(source.id))
        instance_repo.assign_batch(instance.uuid, batch.id, target.id, "Assigned")
        before = instance_repo.get_by_id(instance.uuid)

        # === Act ===
        updated = instance_repo.update_status_by_id(
            instance.uuid, MigrationStatus.BACKGROUND_IMPORT, "Importing", True
        )

        # === Assert ===
        after = instance_repo.get_by_id(instance.uuid)
        assert updated is True
        assert after.migration_status == MigrationStatus.BACKGROUND_IMPORT
        assert after.migration_status_string == "Importing"
        assert after.needs_disk_import is True
        assert after.batch_id == before.batch_id
        assert after.target_id == before.target_id
        assert after.disks == before.disks
        assert after.secret_token == before.secret_token

    def test_update_status_with_stale_expectation_returns_false(self, instance_repo, source):
        instance = instance_repo.create(make_instance(source.id))

        updated = instance_repo.update_status_by_id(
            instance.uuid, MigrationStatus.FINAL_IMPORT, "Final", False,
            expected_status=MigrationStatus.BACKGROUND_IMPORT,
        )

        assert updated is False
        assert instance_repo.get_by_id(instance.uuid).migration_status == MigrationStatus.NOT_ASSIGNED_BATCH

    def test_update_status_of_missing_instance_raises_not_found(self, instance_repo):
        with pytest.raises(NotFoundError):
            instance_repo.update_status_by_id(uuid.uuid4(), MigrationStatus.ERROR, "Error", False)

    def test_concurrent_compare_and_set_has_single_winner(self, instance_repo, batch_repo, source, target):
        """여러 스레드가 같은 기대 상태로 동시에 전이를 시도하면 정확히 하나만 성공하는지 테스트합니다."""
        # === Arrange ===
        batch = batch_repo.create(make_batch(target.id))
        instance = instance_repo.create(make_instance(source.id))
        instance_repo.assign_batch(instance.uuid, batch.id, target.id, "Assigned")

        results = []
        lock = threading.Lock()
        barrier = threading.Barrier(8)

        def attempt():
            barrier.wait()
            ok = instance_repo.update_status_by_id(
                instance.uuid, MigrationStatus.BACKGROUND_IMPORT, "Importing", True,
                expected_status=MigrationStatus.ASSIGNED_BATCH,
            )
            with lock:
                results.append(ok)

        # === Act ===
        threads = [threading.Thread(target=attempt) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        # === Assert ===
        assert results.count(True) == 1
        assert results.count(False) == 7
        assert instance_repo.get_by_id(instance.uuid).migration_status == MigrationStatus.BACKGROUND_IMPORT


# ===================================================================
#  배치 할당
# ===================================================================
class TestAssignment:
    def test_assign_is_conditional(self, instance_repo, batch_repo, source, target):
        """이미 할당된 인스턴스는 다시 할당되지 않는지 테스트합니다."""
        first = batch_repo.create(make_batch(target.id, name="first"))
        second = batch_repo.create(make_batch(target.id, name="second"))
        instance = instance_repo.create(make_instance(source.id))

        assert instance_repo.assign_batch(instance.uuid, first.id, target.id, "Assigned") is True
        assert instance_repo.assign_batch(instance.uuid, second.id, target.id, "Assigned") is False

        loaded = instance_repo.get_by_id(instance.uuid)
        assert loaded.batch_id == first.id
        assert loaded.target_id == target.id
        assert loaded.migration_status == MigrationStatus.ASSIGNED_BATCH

    def test_unassign_refused_while_migrating(self, instance_repo, batch_repo, source, target):
        batch = batch_repo.create(make_batch(target.id))
        instance = instance_repo.create(make_instance(source.id))
        instance_repo.assign_batch(instance.uuid, batch.id, target.id, "Assigned")
        instance_repo.update_status_by_id(instance.uuid, MigrationStatus.FINAL_IMPORT, "Final", False)

        with pytest.raises(OperationNotPermittedError):
            instance_repo.unassign_batch(instance.uuid, MigrationStatus.NOT_ASSIGNED_BATCH, "Not assigned")


# ===================================================================
#  삭제
# ===================================================================
class TestDelete:
    def test_delete_refused_while_assigned(self, instance_repo, batch_repo, source, target):
        batch = batch_repo.create(make_batch(target.id))
        instance = instance_repo.create(make_instance(source.id))
        instance_repo.assign_batch(instance.uuid, batch.id, target.id, "Assigned")

        with pytest.raises(OperationNotPermittedError):
            instance_repo.delete_by_id(instance.uuid)

    def test_delete_refused_while_overrides_exist(self, instance_repo, overrides_repo, source):
        """보정값이 남아 있으면 저장소가 인스턴스 삭제를 거부하고, 보정값을 먼저 지우면 성공하는지 테스트합니다."""
        # === Arrange ===
        instance = instance_repo.create(make_instance(source.id))
        overrides_repo.create(Overrides(uuid=instance.uuid, disable_migration=True))

        # === Act & Assert ===
        with pytest.raises(ConstraintViolationError):
            instance_repo.delete_by_id(instance.uuid)

        overrides_repo.delete_by_id(instance.uuid)
        instance_repo.delete_by_id(instance.uuid)

        with pytest.raises(NotFoundError):
            instance_repo.get_by_id(instance.uuid)

    def test_delete_missing_instance_raises_not_found(self, instance_repo):
        with pytest.raises(NotFoundError):
            instance_repo.delete_by_id(uuid.uuid4())

    def test_delete_with_overrides_removes_both(self, instance_repo, overrides_repo, source):
        instance = instance_repo.create(make_instance(source.id))
        overrides_repo.create(Overrides(uuid=instance.uuid, comment="keep cpus"))

        instance_repo.delete_with_overrides_by_id(instance.uuid)

        with pytest.raises(NotFoundError):
            instance_repo.get_by_id(instance.uuid)
        with pytest.raises(NotFoundError):
            overrides_repo.get_by_id(instance.uuid)

    def test_refused_delete_keeps_overrides(self, instance_repo, overrides_repo, batch_repo, source, target):
        """삭제 직전에 스케줄러가 인스턴스를 할당하면, 삭제가 거부되고 보정값도 그대로 남는지 테스트합니다."""
        # === Arrange ===
        batch = batch_repo.create(make_batch(target.id))
        instance = instance_repo.create(make_instance(source.id))
        overrides_repo.create(Overrides(uuid=instance.uuid, disable_migration=True))
        assert instance_repo.assign_batch(instance.uuid, batch.id, target.id, "Assigned")

        # === Act ===
        with pytest.raises(OperationNotPermittedError):
            instance_repo.delete_with_overrides_by_id(instance.uuid)

        # === Assert ===
        stored = instance_repo.get_by_id(instance.uuid)
        assert stored.overrides is not None
        assert stored.overrides.disable_migration is True
