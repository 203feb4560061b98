import logging
from typing import List

from migration_manager.domain import Batch, BatchStatus, Instance, MigrationStatus
from migration_manager.repositories.interfaces import IBatchRepository, IInstanceRepository, ITargetRepository
from migration_manager.services.exceptions import NotFoundError, OperationNotPermittedError, ValidationError

logger = logging.getLogger(__name__)


class BatchService:
    """배치 정의, 시작/중지, 삭제(소속 인스턴스 할당 해제 포함)를 담당합니다."""

    def __init__(self, batch_repo: IBatchRepository, instance_repo: IInstanceRepository, target_repo: ITargetRepository):
        self.batch_repo = batch_repo
        self.instance_repo = instance_repo
        self.target_repo = target_repo

    def create(self, batch: Batch) -> Batch:
        """
        새 배치를 정의합니다. 배치는 항상 DEFINED 상태로 만들어집니다.

        Raises:
            ValidationError: 이름, 표현식, 시간대가 올바르지 않거나 타겟이 없을 때.
            ConstraintViolationError: 같은 이름의 배치가 이미 있을 때.
        """
        batch.status = BatchStatus.DEFINED
        batch.status_string = BatchStatus.DEFINED.description
        batch.validate()
        self._require_target(batch.target_id)

        created = self.batch_repo.create(batch)
        logger.info("Created batch '%s'", created.name, extra={"batch": created.name})
        return created

    def get_all(self) -> List[Batch]:
        return self.batch_repo.get_all()

    def get_all_names(self) -> List[str]:
        return self.batch_repo.get_all_names()

    def get_by_id(self, batch_id: int) -> Batch:
        return self.batch_repo.get_by_id(batch_id)

    def get_by_name(self, name: str) -> Batch:
        return self.batch_repo.get_by_name(name)

    def get_instances(self, name: str) -> List[Instance]:
        batch = self.batch_repo.get_by_name(name)
        return self.instance_repo.get_all_by_batch(batch.id)

    def update(self, batch: Batch) -> Batch:
        """
        배치 정의를 갱신합니다. 상태는 start/stop과 스케줄러만 바꿀 수 있으므로 저장된 값을 유지합니다.

        Raises:
            ValidationError: 갱신할 값이 불변식을 위반할 때.
            NotFoundError: 배치가 없을 때.
            OperationNotPermittedError: 배치가 실행 중(QUEUED/RUNNING)이거나,
                                        인스턴스가 할당된 상태에서 타겟을 바꾸려 할 때.
        """
        existing = self.batch_repo.get_by_id(batch.id)
        if existing.status in (BatchStatus.QUEUED, BatchStatus.RUNNING):
            raise OperationNotPermittedError(f"Batch '{existing.name}' is {existing.status.value}, can't update.")

        batch.status = existing.status
        batch.status_string = existing.status_string
        batch.validate()

        if batch.target_id != existing.target_id:
            self._require_target(batch.target_id)
            if self.instance_repo.get_all_by_batch(batch.id):
                raise OperationNotPermittedError(
                    f"Batch '{existing.name}' has assigned instances, can't change its target."
                )

        return self.batch_repo.update_by_id(batch)

    def delete_by_name(self, name: str):
        """
        배치를 삭제합니다. 소속 인스턴스는 먼저 할당 해제됩니다.

        Raises:
            NotFoundError: 배치가 없을 때.
            OperationNotPermittedError: 소속 인스턴스 중 하나라도 마이그레이션 중일 때.
        """
        batch = self.batch_repo.get_by_name(name)
        members = self.instance_repo.get_all_by_batch(batch.id)

        migrating = [m for m in members if m.is_migrating()]
        if migrating:
            raise OperationNotPermittedError(
                f"Batch '{name}' has {len(migrating)} instance(s) being migrated, can't delete."
            )

        for member in members:
            # 완료된 인스턴스는 다시 마이그레이션되지 않도록 상태를 유지합니다.
            status = MigrationStatus.MIGRATED if member.migration_status == MigrationStatus.MIGRATED \
                else MigrationStatus.NOT_ASSIGNED_BATCH
            self.instance_repo.unassign_batch(member.uuid, status, status.description)

        self.batch_repo.delete_by_name(name)
        logger.info("Deleted batch '%s', unassigned %d instance(s)", name, len(members), extra={"batch": name})

    def start(self, name: str):
        """DEFINED/STOPPED 배치를 READY로 바꿉니다. 이후 스케줄러가 시간대에 맞춰 실행합니다."""
        batch = self.batch_repo.get_by_name(name)
        if batch.status not in (BatchStatus.DEFINED, BatchStatus.STOPPED):
            raise OperationNotPermittedError(f"Batch '{name}' is {batch.status.value}, can't start.")
        self.batch_repo.update_status_by_id(batch.id, BatchStatus.READY, BatchStatus.READY.description)
        logger.info("Started batch '%s'", name, extra={"batch": name})

    def stop(self, name: str):
        """READY/QUEUED/RUNNING 배치를 STOPPED로 바꿉니다. 진행 중인 단계는 끝까지 수행됩니다."""
        batch = self.batch_repo.get_by_name(name)
        if batch.status not in (BatchStatus.READY, BatchStatus.QUEUED, BatchStatus.RUNNING):
            raise OperationNotPermittedError(f"Batch '{name}' is {batch.status.value}, can't stop.")
        self.batch_repo.update_status_by_id(batch.id, BatchStatus.STOPPED, BatchStatus.STOPPED.description)
        logger.info("Stopped batch '%s'", name, extra={"batch": name})

    def _require_target(self, target_id: int):
        try:
            self.target_repo.get_by_id(target_id)
        except NotFoundError as e:
            raise ValidationError(f"Invalid batch, target with id '{target_id}' does not exist") from e
