from abc import ABC, abstractmethod
from uuid import UUID

from migration_manager.domain import Overrides


class IOverridesRepository(ABC):
    @abstractmethod
    def create(self, overrides: Overrides) -> Overrides:
        """
        인스턴스 보정값을 저장합니다.

        Raises:
            NotFoundError: 같은 UUID의 인스턴스가 없을 때.
            ConstraintViolationError: 이미 보정값이 존재할 때.
        """
        pass

    @abstractmethod
    def get_by_id(self, uuid: UUID) -> Overrides:
        """인스턴스 UUID로 보정값을 조회합니다. 없으면 NotFoundError."""
        pass

    @abstractmethod
    def update_by_id(self, overrides: Overrides) -> Overrides:
        """보정값을 갱신합니다. 없으면 NotFoundError."""
        pass

    @abstractmethod
    def delete_by_id(self, uuid: UUID):
        """보정값을 삭제합니다. 없으면 NotFoundError."""
        pass
