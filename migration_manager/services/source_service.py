import logging
from typing import List

from migration_manager.domain import Source
from migration_manager.repositories.interfaces import ISourceRepository

logger = logging.getLogger(__name__)


class SourceService:
    """인벤토리 소스(vCenter 등)의 등록과 관리를 담당합니다."""

    def __init__(self, source_repo: ISourceRepository):
        self.source_repo = source_repo

    def create(self, source: Source) -> Source:
        """
        새 소스를 등록합니다.

        Args:
            source: 등록할 소스. properties는 source_type에 맞는 스키마로 검증됩니다.

        Returns:
            ID가 채워진 소스.

        Raises:
            ValidationError: 이름이 비었거나, 타입을 알 수 없거나, properties가 스키마에 맞지 않을 때.
            ConstraintViolationError: 같은 이름의 소스가 이미 있을 때.
        """
        source.validate()
        created = self.source_repo.create(source)
        logger.info("Created source '%s' (%s)", created.name, created.source_type.value, extra={"source": created.name})
        return created

    def get_all(self) -> List[Source]:
        return self.source_repo.get_all()

    def get_all_names(self) -> List[str]:
        return self.source_repo.get_all_names()

    def get_by_id(self, source_id: int) -> Source:
        return self.source_repo.get_by_id(source_id)

    def get_by_name(self, name: str) -> Source:
        return self.source_repo.get_by_name(name)

    def update_by_id(self, source: Source) -> Source:
        """
        소스의 이름, 타입, properties를 갱신합니다.

        Raises:
            ValidationError: 갱신할 값이 불변식을 위반할 때.
            NotFoundError: 소스가 없을 때.
        """
        source.validate()
        return self.source_repo.update_by_id(source)

    def delete_by_name(self, name: str):
        """
        소스를 삭제합니다.

        Raises:
            NotFoundError: 소스가 없을 때.
            ConstraintViolationError: 이 소스에서 온 인스턴스가 남아 있을 때.
        """
        self.source_repo.delete_by_name(name)
        logger.info("Deleted source '%s'", name, extra={"source": name})
