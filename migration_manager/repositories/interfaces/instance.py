from abc import ABC, abstractmethod
from typing import List, Optional
from uuid import UUID

from migration_manager.domain import Instance, MigrationStatus


class IInstanceRepository(ABC):
    @abstractmethod
    def create(self, instance: Instance) -> Instance:
        """
        새 인스턴스를 저장합니다.

        Raises:
            ConstraintViolationError: UUID가 중복되거나, 참조한 소스/타겟/배치가 없을 때.
        """
        pass

    @abstractmethod
    def get_all(self) -> List[Instance]:
        """모든 인스턴스를 인벤토리 경로순으로 조회합니다. 보정값이 있으면 함께 채워집니다."""
        pass

    @abstractmethod
    def get_all_uuids(self) -> List[UUID]:
        """모든 인스턴스의 UUID 목록을 조회합니다."""
        pass

    @abstractmethod
    def get_all_by_state(self, status: MigrationStatus) -> List[Instance]:
        """특정 마이그레이션 상태의 인스턴스 목록을 조회합니다."""
        pass

    @abstractmethod
    def get_all_by_batch(self, batch_id: int) -> List[Instance]:
        """특정 배치에 할당된 인스턴스 목록을 조회합니다."""
        pass

    @abstractmethod
    def get_all_by_source(self, source_id: int) -> List[Instance]:
        """특정 소스에서 온 인스턴스 목록을 조회합니다."""
        pass

    @abstractmethod
    def get_all_unassigned(self) -> List[Instance]:
        """배치가 없고 NOT_ASSIGNED_BATCH 상태인 인스턴스를 조회합니다."""
        pass

    @abstractmethod
    def get_by_id(self, uuid: UUID) -> Instance:
        """UUID로 인스턴스를 조회합니다. 없으면 NotFoundError."""
        pass

    @abstractmethod
    def update_by_id(self, instance: Instance) -> Instance:
        """
        인스턴스 레코드 전체를 갱신합니다. (uuid, secret_token 제외)

        Raises:
            NotFoundError: 인스턴스가 없을 때.
            OperationNotPermittedError: 저장된 인스턴스가 배치에 할당되어 있거나 마이그레이션 중일 때.
        """
        pass

    @abstractmethod
    def update_status_by_id(
        self,
        uuid: UUID,
        status: MigrationStatus,
        status_string: str,
        needs_disk_import: bool,
        expected_status: Optional[MigrationStatus] = None,
    ) -> bool:
        """
        상태 컬럼 세 개(migration_status, migration_status_string, needs_disk_import)만 갱신합니다.

        expected_status가 주어지면 저장된 상태가 그 값일 때만 갱신하는 compare-and-set으로 동작합니다.

        Returns:
            갱신되었으면 True, expected_status 조건이 더 이상 맞지 않으면(경쟁에서 진 경우) False.

        Raises:
            NotFoundError: 인스턴스가 없을 때.
        """
        pass

    @abstractmethod
    def assign_batch(self, uuid: UUID, batch_id: int, target_id: int, status_string: str) -> bool:
        """
        배치가 없고 NOT_ASSIGNED_BATCH 상태인 인스턴스를 배치에 할당하고 ASSIGNED_BATCH로 바꿉니다.

        Returns:
            할당되었으면 True, 이미 다른 워커가 할당했거나 상태가 바뀌었으면 False.
        """
        pass

    @abstractmethod
    def unassign_batch(self, uuid: UUID, status: MigrationStatus, status_string: str):
        """
        인스턴스의 배치 할당을 해제합니다. 활성 마이그레이션 중이면 OperationNotPermittedError.
        """
        pass

    @abstractmethod
    def delete_by_id(self, uuid: UUID):
        """
        인스턴스를 삭제합니다.

        Raises:
            NotFoundError: 인스턴스가 없을 때.
            OperationNotPermittedError: 배치에 할당되어 있거나 마이그레이션 중일 때.
            ConstraintViolationError: 보정값(overrides)이 아직 남아 있을 때.
        """
        pass

    @abstractmethod
    def delete_with_overrides_by_id(self, uuid: UUID):
        """
        보정값과 인스턴스를 한 트랜잭션에서 함께 삭제합니다.
        인스턴스 삭제가 거부되면 보정값 삭제도 롤백됩니다.

        Raises:
            NotFoundError: 인스턴스가 없을 때.
            OperationNotPermittedError: 배치에 할당되어 있거나 마이그레이션 중일 때.
        """
        pass
