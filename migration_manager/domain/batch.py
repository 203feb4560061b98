from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from migration_manager.domain.expression import IncludeExpression
from migration_manager.domain.types import BatchStatus
from migration_manager.domain.validation import require_non_empty, require_non_negative_id
from migration_manager.services.exceptions import ValidationError


@dataclass
class Batch:
    """
    함께 마이그레이션할 인스턴스들의 이름 있는 묶음입니다.

    소속 인스턴스 목록은 배치가 들고 있지 않습니다. instances.batch_id로 조회합니다.
    migration_window_start/end가 None이면 해당 방향으로 제한이 없습니다.
    """
    name: str
    target_id: int
    include_expression: str
    storage_pool: str = ""
    migration_window_start: Optional[datetime] = None
    migration_window_end: Optional[datetime] = None
    default_network: str = ""
    status: BatchStatus = BatchStatus.DEFINED
    status_string: str = BatchStatus.DEFINED.description
    id: int = 0

    def validate(self):
        require_non_negative_id("batch", self.id)
        require_non_empty("batch", self.name)
        require_non_negative_id("batch", self.target_id, field="target id")

        try:
            self.status = BatchStatus(self.status)
        except ValueError:
            raise ValidationError(f"Invalid batch, {self.status!r} is not a valid batch status")

        # 구문 오류는 ExpressionError(ValidationError)로 올라옵니다.
        self.compile_expression()

        # 타임존이 없는 시간대 경계는 UTC로 간주합니다.
        self.migration_window_start = _as_utc(self.migration_window_start)
        self.migration_window_end = _as_utc(self.migration_window_end)

        start, end = self.migration_window_start, self.migration_window_end
        if start is not None and end is not None and end < start:
            raise ValidationError("Invalid batch, migration window end can not be before its start")

    def compile_expression(self) -> IncludeExpression:
        return IncludeExpression(self.include_expression)

    def is_window_open(self, now: datetime) -> bool:
        now = _as_utc(now)
        start, end = _as_utc(self.migration_window_start), _as_utc(self.migration_window_end)
        if start is not None and now < start:
            return False
        if end is not None and now > end:
            return False
        return True


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
