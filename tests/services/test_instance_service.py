# tests/services/test_instance_service.py
from unittest.mock import MagicMock

import pytest

from conftest import make_instance, make_source
from migration_manager.domain import MigrationStatus, Overrides
from migration_manager.repositories.interfaces import IInstanceRepository, IOverridesRepository, ISourceRepository
from migration_manager.services.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    OperationNotPermittedError,
    ValidationError,
)
from migration_manager.services.instance_service import InstanceService
from migration_manager.services.state_machine import MigrationStateMachine

# ===================================================================
#  Fixture 설정
# ===================================================================

@pytest.fixture
def mock_instance_repo() -> MagicMock:
    return MagicMock(spec=IInstanceRepository)


@pytest.fixture
def mock_overrides_repo() -> MagicMock:
    return MagicMock(spec=IOverridesRepository)


@pytest.fixture
def mock_source_repo() -> MagicMock:
    return MagicMock(spec=ISourceRepository)


@pytest.fixture
def mock_state_machine() -> MagicMock:
    return MagicMock(spec=MigrationStateMachine)


@pytest.fixture
def instance_service(mock_instance_repo, mock_overrides_repo, mock_source_repo, mock_state_machine) -> InstanceService:
    """테스트에 사용될 InstanceService 인스턴스를 생성하고, 의존성을 주입합니다."""
    return InstanceService(mock_instance_repo, mock_overrides_repo, mock_source_repo, mock_state_machine)


# ===================================================================
#  생성 / 갱신
# ===================================================================
class TestCreateAndUpdate:
    def test_create_success(self, instance_service, mock_instance_repo, mock_source_repo):
        # === Arrange ===
        instance = make_instance(1)
        mock_source_repo.get_by_id.return_value = make_source(id=1)
        mock_instance_repo.create.return_value = instance

        # === Act ===
        created = instance_service.create(instance)

        # === Assert ===
        assert created is instance
        mock_source_repo.get_by_id.assert_called_once_with(1)
        mock_instance_repo.create.assert_called_once_with(instance)

    def test_create_with_missing_source_is_validation_error(self, instance_service, mock_instance_repo, mock_source_repo):
        """참조한 소스가 없으면 ValidationError가 발생하고 저장하지 않는지 테스트합니다."""
        mock_source_repo.get_by_id.side_effect = NotFoundError("no source")

        with pytest.raises(ValidationError):
            instance_service.create(make_instance(99))
        mock_instance_repo.create.assert_not_called()

    def test_create_invalid_instance_never_reaches_repository(self, instance_service, mock_instance_repo):
        with pytest.raises(ValidationError):
            instance_service.create(make_instance(1, path=""))
        mock_instance_repo.create.assert_not_called()

    def test_update_delegates_after_validation(self, instance_service, mock_instance_repo):
        instance = make_instance(1)

        instance_service.update(instance)

        mock_instance_repo.update_by_id.assert_called_once_with(instance)

    def test_update_status_goes_through_state_machine(self, instance_service, mock_instance_repo, mock_state_machine):
        """상태 갱신이 상태 머신의 전이 검사를 거치고, 전체 레코드 갱신은 하지 않는지 테스트합니다."""
        instance = make_instance(1)
        mock_state_machine.transition.return_value = True

        assert instance_service.update_status(instance.uuid, "background_import", "Importing", True) is True

        mock_state_machine.transition.assert_called_once_with(
            instance.uuid, MigrationStatus.BACKGROUND_IMPORT, status_string="Importing", needs_disk_import=True
        )
        mock_instance_repo.update_by_id.assert_not_called()

    def test_update_status_rejects_skipping_transition(self, mock_instance_repo, mock_overrides_repo, mock_source_repo):
        """전이 표를 건너뛰는 상태 갱신(NOT_ASSIGNED_BATCH → MIGRATED)이 거부되는지 테스트합니다."""
        # === Arrange ===
        service = InstanceService(mock_instance_repo, mock_overrides_repo, mock_source_repo)
        instance = make_instance(1)
        mock_instance_repo.get_by_id.return_value = instance

        # === Act & Assert ===
        with pytest.raises(InvalidTransitionError):
            service.update_status(instance.uuid, MigrationStatus.MIGRATED, "Done", False)
        mock_instance_repo.update_status_by_id.assert_not_called()

    def test_update_status_refused_for_disabled_instance(self, mock_instance_repo, mock_overrides_repo, mock_source_repo):
        service = InstanceService(mock_instance_repo, mock_overrides_repo, mock_source_repo)
        instance = make_instance(1)
        instance.overrides = Overrides(uuid=instance.uuid, disable_migration=True)
        mock_instance_repo.get_by_id.return_value = instance

        with pytest.raises(OperationNotPermittedError):
            service.update_status(instance.uuid, MigrationStatus.ASSIGNED_BATCH, "Assigned", False)
        mock_instance_repo.update_status_by_id.assert_not_called()

    def test_update_status_rejects_unknown_status(self, instance_service, mock_instance_repo):
        with pytest.raises(ValidationError):
            instance_service.update_status(make_instance(1).uuid, "paused", "", False)


# ===================================================================
#  삭제 (보정값 연쇄 삭제)
# ===================================================================
class TestDelete:
    def test_delete_removes_overrides_in_same_transaction(self, instance_service, mock_instance_repo, mock_overrides_repo):
        """보정값이 있으면 보정값과 인스턴스를 한 번에 지우는 리포지토리 메서드를 쓰는지 테스트합니다."""
        # === Arrange ===
        instance = make_instance(1)
        instance.overrides = Overrides(uuid=instance.uuid, comment="x")
        mock_instance_repo.get_by_id.return_value = instance

        # === Act ===
        instance_service.delete(instance.uuid)

        # === Assert ===
        mock_instance_repo.delete_with_overrides_by_id.assert_called_once_with(instance.uuid)
        mock_instance_repo.delete_by_id.assert_not_called()
        mock_overrides_repo.delete_by_id.assert_not_called()

    def test_delete_without_overrides(self, instance_service, mock_instance_repo, mock_overrides_repo):
        instance = make_instance(1)
        mock_instance_repo.get_by_id.return_value = instance

        instance_service.delete(instance.uuid)

        mock_overrides_repo.delete_by_id.assert_not_called()
        mock_instance_repo.delete_by_id.assert_called_once_with(instance.uuid)

    @pytest.mark.parametrize("changes", [
        {"batch_id": 3, "migration_status": MigrationStatus.ASSIGNED_BATCH},
        {"migration_status": MigrationStatus.CUTOVER_PENDING},
    ])
    def test_delete_refused_for_assigned_or_migrating(self, instance_service, mock_instance_repo, mock_overrides_repo, changes):
        instance = make_instance(1, **changes)
        instance.overrides = Overrides(uuid=instance.uuid)
        mock_instance_repo.get_by_id.return_value = instance

        with pytest.raises(OperationNotPermittedError):
            instance_service.delete(instance.uuid)

        mock_overrides_repo.delete_by_id.assert_not_called()
        mock_instance_repo.delete_by_id.assert_not_called()
        mock_instance_repo.delete_with_overrides_by_id.assert_not_called()


# ===================================================================
#  보정값(Overrides)
# ===================================================================
class TestOverrides:
    def test_disabling_unassigned_instance_records_disabled(self, instance_service, mock_instance_repo, mock_state_machine):
        # === Arrange ===
        instance = make_instance(1)
        overrides = Overrides(uuid=instance.uuid, disable_migration=True)
        instance.overrides = overrides
        mock_instance_repo.get_by_id.return_value = instance

        # === Act ===
        instance_service.create_overrides(overrides)

        # === Assert ===
        mock_state_machine.transition.assert_called_once_with(instance.uuid, MigrationStatus.DISABLED, operator=True)

    def test_re_enabling_returns_to_not_assigned(self, instance_service, mock_instance_repo, mock_state_machine):
        instance = make_instance(1, migration_status=MigrationStatus.DISABLED)
        overrides = Overrides(uuid=instance.uuid, disable_migration=False)
        instance.overrides = overrides
        mock_instance_repo.get_by_id.return_value = instance

        instance_service.update_overrides(overrides)

        mock_state_machine.transition.assert_called_once_with(
            instance.uuid, MigrationStatus.NOT_ASSIGNED_BATCH, operator=True
        )

    def test_editing_overrides_resets_error(self, instance_service, mock_instance_repo, mock_state_machine):
        """ERROR 상태 인스턴스의 보정값 수정이 운영자 조치로 처리되는지 테스트합니다."""
        instance = make_instance(1, migration_status=MigrationStatus.ERROR, batch_id=2)
        overrides = Overrides(uuid=instance.uuid, memory_in_bytes=2 * 1024 ** 3)
        instance.overrides = overrides
        mock_instance_repo.get_by_id.return_value = instance

        instance_service.update_overrides(overrides)

        mock_state_machine.reset_after_operator_action.assert_called_once_with(instance.uuid)

    def test_disabling_in_flight_instance_keeps_status(self, instance_service, mock_instance_repo, mock_state_machine):
        instance = make_instance(1, migration_status=MigrationStatus.BACKGROUND_IMPORT, batch_id=2)
        overrides = Overrides(uuid=instance.uuid, disable_migration=True)
        instance.overrides = overrides
        mock_instance_repo.get_by_id.return_value = instance

        instance_service.create_overrides(overrides)

        mock_state_machine.transition.assert_not_called()
        mock_state_machine.reset_after_operator_action.assert_not_called()

    def test_invalid_overrides_are_rejected(self, instance_service, mock_overrides_repo):
        with pytest.raises(ValidationError):
            instance_service.create_overrides(Overrides(uuid=make_instance(1).uuid, memory_in_bytes=-1))
        mock_overrides_repo.create.assert_not_called()

    def test_create_overrides_for_missing_instance(self, instance_service, mock_overrides_repo):
        mock_overrides_repo.create.side_effect = NotFoundError("no instance")

        with pytest.raises(NotFoundError):
            instance_service.create_overrides(Overrides(uuid=make_instance(1).uuid))
