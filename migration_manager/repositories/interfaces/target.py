from abc import ABC, abstractmethod
from typing import List

from migration_manager.domain import Target


class ITargetRepository(ABC):
    @abstractmethod
    def create(self, target: Target) -> Target:
        """새 타겟을 저장하고, ID가 채워진 타겟을 반환합니다. 이름 중복 시 ConstraintViolationError."""
        pass

    @abstractmethod
    def get_all(self) -> List[Target]:
        """모든 타겟을 이름순으로 조회합니다."""
        pass

    @abstractmethod
    def get_all_names(self) -> List[str]:
        """모든 타겟의 이름 목록을 조회합니다."""
        pass

    @abstractmethod
    def get_by_id(self, target_id: int) -> Target:
        """ID로 타겟을 조회합니다. 없으면 NotFoundError."""
        pass

    @abstractmethod
    def get_by_name(self, name: str) -> Target:
        """이름으로 타겟을 조회합니다. 없으면 NotFoundError."""
        pass

    @abstractmethod
    def update_by_id(self, target: Target) -> Target:
        """타겟을 갱신합니다. 없으면 NotFoundError."""
        pass

    @abstractmethod
    def delete_by_name(self, name: str):
        """
        이름으로 타겟을 삭제합니다.

        Raises:
            NotFoundError: 해당 이름의 타겟이 없을 때.
            ConstraintViolationError: 이 타겟을 참조하는 인스턴스나 배치가 있을 때.
        """
        pass
