import logging
from typing import List

from migration_manager.domain import Target
from migration_manager.repositories.interfaces import ITargetRepository

logger = logging.getLogger(__name__)


class TargetService:
    """마이그레이션 타겟 플랫폼의 등록과 관리를 담당합니다."""

    def __init__(self, target_repo: ITargetRepository):
        self.target_repo = target_repo

    def create(self, target: Target) -> Target:
        """
        새 타겟을 등록합니다.

        Raises:
            ValidationError: 이름, 타입, properties(엔드포인트 URL 등)가 올바르지 않을 때.
            ConstraintViolationError: 같은 이름의 타겟이 이미 있을 때.
        """
        target.validate()
        created = self.target_repo.create(target)
        logger.info("Created target '%s' (%s)", created.name, created.target_type.value, extra={"target": created.name})
        return created

    def get_all(self) -> List[Target]:
        return self.target_repo.get_all()

    def get_all_names(self) -> List[str]:
        return self.target_repo.get_all_names()

    def get_by_id(self, target_id: int) -> Target:
        return self.target_repo.get_by_id(target_id)

    def get_by_name(self, name: str) -> Target:
        return self.target_repo.get_by_name(name)

    def update_by_id(self, target: Target) -> Target:
        target.validate()
        return self.target_repo.update_by_id(target)

    def delete_by_name(self, name: str):
        """
        타겟을 삭제합니다. 인스턴스나 배치가 참조하는 동안에는 삭제할 수 없습니다.

        Raises:
            NotFoundError: 타겟이 없을 때.
            ConstraintViolationError: 인스턴스 또는 배치가 이 타겟을 참조할 때.
        """
        self.target_repo.delete_by_name(name)
        logger.info("Deleted target '%s'", name, extra={"target": name})
