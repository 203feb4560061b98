import logging
from typing import List, Optional
from uuid import UUID

from migration_manager.domain import Instance, MigrationStatus, Overrides, utcnow
from migration_manager.repositories.interfaces import IInstanceRepository, IOverridesRepository, ISourceRepository
from migration_manager.services.exceptions import (
    NotFoundError,
    OperationNotPermittedError,
    ValidationError,
)
from migration_manager.services.state_machine import MigrationStateMachine

logger = logging.getLogger(__name__)


class InstanceService:
    """
    인스턴스와 인스턴스별 보정값(overrides)을 관리합니다.

    인스턴스 삭제 시 보정값을 먼저 지우는 연쇄 삭제는 DB가 아니라 이 서비스가 수행합니다.
    """

    def __init__(
        self,
        instance_repo: IInstanceRepository,
        overrides_repo: IOverridesRepository,
        source_repo: ISourceRepository,
        state_machine: Optional[MigrationStateMachine] = None,
    ):
        """
        Args:
            instance_repo: 인스턴스 리포지토리.
            overrides_repo: 보정값 리포지토리.
            source_repo: 소스 리포지토리 (생성 시 소스 존재 여부 확인용).
            state_machine: 운영자 조치 후 ERROR 해제에 사용할 상태 머신. 생략하면 instance_repo로 만듭니다.
        """
        self.instance_repo = instance_repo
        self.overrides_repo = overrides_repo
        self.source_repo = source_repo
        self.state_machine = state_machine or MigrationStateMachine(instance_repo)

    def create(self, instance: Instance) -> Instance:
        """
        새 인스턴스를 등록합니다.

        Raises:
            ValidationError: 필드 불변식을 위반했거나, 참조한 소스가 없을 때.
            ConstraintViolationError: 같은 UUID의 인스턴스가 이미 있을 때.
        """
        instance.validate()
        try:
            self.source_repo.get_by_id(instance.source_id)
        except NotFoundError as e:
            raise ValidationError(f"Invalid instance, source with id '{instance.source_id}' does not exist") from e

        created = self.instance_repo.create(instance)
        logger.info("Created instance %s (%s)", created.uuid, created.inventory_path, extra={"instance": created.uuid})
        return created

    def get_all(self) -> List[Instance]:
        return self.instance_repo.get_all()

    def get_all_uuids(self) -> List[UUID]:
        return self.instance_repo.get_all_uuids()

    def get_all_by_state(self, status: MigrationStatus) -> List[Instance]:
        return self.instance_repo.get_all_by_state(status)

    def get_all_by_batch(self, batch_id: int) -> List[Instance]:
        return self.instance_repo.get_all_by_batch(batch_id)

    def get_all_by_source(self, source_id: int) -> List[Instance]:
        return self.instance_repo.get_all_by_source(source_id)

    def get_all_unassigned(self) -> List[Instance]:
        return self.instance_repo.get_all_unassigned()

    def get_by_id(self, uuid: UUID) -> Instance:
        return self.instance_repo.get_by_id(uuid)

    def update(self, instance: Instance) -> Instance:
        """
        인스턴스 레코드 전체를 갱신합니다. 배치에 할당되지 않은 인스턴스만 가능합니다.

        Raises:
            ValidationError: 갱신할 값이 불변식을 위반할 때.
            NotFoundError: 인스턴스가 없을 때.
            OperationNotPermittedError: 저장된 인스턴스가 배치에 할당되어 있을 때.
        """
        instance.validate()
        return self.instance_repo.update_by_id(instance)

    def update_status(self, uuid: UUID, status: MigrationStatus, status_string: str, needs_disk_import: bool) -> bool:
        """
        상태 컬럼(migration_status, migration_status_string, needs_disk_import)만 갱신합니다.
        배치 할당 여부와 관계없이 허용되며, 다른 필드는 절대 건드리지 않습니다.

        갱신은 상태 머신을 거치므로 전이 표와 비활성화 보정값 확인을 모두 통과해야 합니다.

        Returns:
            저장되었으면 True, 그 사이 상태가 바뀌었으면 False.

        Raises:
            ValidationError: 알 수 없는 상태 값일 때.
            NotFoundError: 인스턴스가 없을 때.
            InvalidTransitionError: 전이 표가 허용하지 않는 전이일 때.
            OperationNotPermittedError: 마이그레이션이 비활성화된 인스턴스일 때.
        """
        try:
            status = MigrationStatus(status)
        except ValueError:
            raise ValidationError(f"Invalid instance, {status!r} is not a valid migration status")
        return self.state_machine.transition(uuid, status, status_string=status_string, needs_disk_import=needs_disk_import)

    def delete(self, uuid: UUID):
        """
        인스턴스를 삭제합니다. 보정값이 있으면 같은 트랜잭션에서 먼저 삭제하므로,
        인스턴스 삭제가 거부되면 보정값도 그대로 남습니다.

        Raises:
            NotFoundError: 인스턴스가 없을 때.
            OperationNotPermittedError: 배치에 할당되어 있거나 마이그레이션 중일 때.
        """
        instance = self.instance_repo.get_by_id(uuid)
        if instance.batch_id is not None:
            raise OperationNotPermittedError(f"Instance '{uuid}' is assigned to a batch, can't delete.")
        if instance.is_migrating():
            raise OperationNotPermittedError(f"Instance '{uuid}' is being migrated, can't delete.")

        if instance.overrides is not None:
            self.instance_repo.delete_with_overrides_by_id(uuid)
        else:
            self.instance_repo.delete_by_id(uuid)
        logger.info("Deleted instance %s", uuid, extra={"instance": uuid})

    # --- Overrides ---

    def create_overrides(self, overrides: Overrides) -> Overrides:
        """
        인스턴스 보정값을 생성합니다.

        Raises:
            ValidationError: 보정값이 음수 등 불변식을 위반할 때.
            NotFoundError: 인스턴스가 없을 때.
            ConstraintViolationError: 이미 보정값이 있을 때.
        """
        overrides.validate()
        overrides.last_update = utcnow()
        created = self.overrides_repo.create(overrides)
        self._apply_operator_action(overrides.uuid)
        return created

    def get_overrides(self, uuid: UUID) -> Overrides:
        return self.overrides_repo.get_by_id(uuid)

    def update_overrides(self, overrides: Overrides) -> Overrides:
        """보정값을 갱신합니다. 운영자 조치로 간주되어 ERROR 상태가 해제될 수 있습니다."""
        overrides.validate()
        overrides.last_update = utcnow()
        updated = self.overrides_repo.update_by_id(overrides)
        self._apply_operator_action(overrides.uuid)
        return updated

    def delete_overrides(self, uuid: UUID):
        self.overrides_repo.delete_by_id(uuid)
        self._apply_operator_action(uuid)

    def _apply_operator_action(self, uuid: UUID):
        """
        보정값 변경을 인스턴스 상태에 반영합니다.

        - 배치가 없는 인스턴스는 disable_migration에 따라 DISABLED ⇄ NOT_ASSIGNED_BATCH로 바뀝니다.
        - ERROR 상태의 인스턴스는 운영자 조치가 있었으므로 다시 진행할 수 있게 됩니다.
          (단, 마이그레이션이 비활성화되어 있으면 ERROR에 머뭅니다.)
        """
        instance = self.instance_repo.get_by_id(uuid)
        status = MigrationStatus(instance.migration_status)
        disabled = instance.is_migration_disabled()

        if status == MigrationStatus.NOT_ASSIGNED_BATCH and instance.batch_id is None and disabled:
            self.state_machine.transition(uuid, MigrationStatus.DISABLED, operator=True)
        elif status == MigrationStatus.DISABLED and not disabled:
            self.state_machine.transition(uuid, MigrationStatus.NOT_ASSIGNED_BATCH, operator=True)
        elif status == MigrationStatus.ERROR and not disabled:
            self.state_machine.reset_after_operator_action(uuid)
