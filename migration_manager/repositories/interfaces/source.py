from abc import ABC, abstractmethod
from typing import List

from migration_manager.domain import Source


class ISourceRepository(ABC):
    @abstractmethod
    def create(self, source: Source) -> Source:
        """새 소스를 저장하고, ID가 채워진 소스를 반환합니다. 이름 중복 시 ConstraintViolationError."""
        pass

    @abstractmethod
    def get_all(self) -> List[Source]:
        """모든 소스를 이름순으로 조회합니다."""
        pass

    @abstractmethod
    def get_all_names(self) -> List[str]:
        """모든 소스의 이름 목록을 조회합니다."""
        pass

    @abstractmethod
    def get_by_id(self, source_id: int) -> Source:
        """ID로 소스를 조회합니다. 없으면 NotFoundError."""
        pass

    @abstractmethod
    def get_by_name(self, name: str) -> Source:
        """이름으로 소스를 조회합니다. 없으면 NotFoundError."""
        pass

    @abstractmethod
    def update_by_id(self, source: Source) -> Source:
        """소스를 갱신합니다. 없으면 NotFoundError."""
        pass

    @abstractmethod
    def delete_by_name(self, name: str):
        """
        이름으로 소스를 삭제합니다.

        Raises:
            NotFoundError: 해당 이름의 소스가 없을 때.
            ConstraintViolationError: 이 소스를 참조하는 인스턴스가 하나 이상 있을 때.
        """
        pass
