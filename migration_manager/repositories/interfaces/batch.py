from abc import ABC, abstractmethod
from typing import List

from migration_manager.domain import Batch, BatchStatus


class IBatchRepository(ABC):
    @abstractmethod
    def create(self, batch: Batch) -> Batch:
        """새 배치를 저장합니다. 이름 중복이나 존재하지 않는 타겟 참조 시 ConstraintViolationError."""
        pass

    @abstractmethod
    def get_all(self) -> List[Batch]:
        """모든 배치를 ID 오름차순으로 조회합니다. 스케줄러의 매칭 순서가 이 순서에 의존합니다."""
        pass

    @abstractmethod
    def get_all_names(self) -> List[str]:
        """모든 배치의 이름 목록을 조회합니다."""
        pass

    @abstractmethod
    def get_by_id(self, batch_id: int) -> Batch:
        """ID로 배치를 조회합니다. 없으면 NotFoundError."""
        pass

    @abstractmethod
    def get_by_name(self, name: str) -> Batch:
        """이름으로 배치를 조회합니다. 없으면 NotFoundError."""
        pass

    @abstractmethod
    def update_by_id(self, batch: Batch) -> Batch:
        """배치 전체를 갱신합니다. 없으면 NotFoundError."""
        pass

    @abstractmethod
    def update_status_by_id(self, batch_id: int, status: BatchStatus, status_string: str):
        """배치의 상태 컬럼만 갱신합니다. 없으면 NotFoundError."""
        pass

    @abstractmethod
    def delete_by_name(self, name: str):
        """
        이름으로 배치를 삭제합니다.

        Raises:
            NotFoundError: 해당 이름의 배치가 없을 때.
            ConstraintViolationError: 아직 이 배치에 할당된 인스턴스가 있을 때.
        """
        pass
