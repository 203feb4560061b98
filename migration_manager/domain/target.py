from dataclasses import dataclass, field
from typing import Any, Dict

from migration_manager.domain.properties import decode_target_properties
from migration_manager.domain.types import TargetType
from migration_manager.domain.validation import require_non_empty, require_non_negative_id
from migration_manager.services.exceptions import ValidationError


@dataclass
class Target:
    """
    인스턴스가 옮겨 갈 타겟 가상화 플랫폼입니다.
    properties에는 엔드포인트 URL, 인증 정보, insecure 플래그가 들어갑니다.
    """
    name: str
    target_type: TargetType
    properties: Dict[str, Any] = field(default_factory=dict)
    id: int = 0

    def validate(self):
        require_non_negative_id("target", self.id)
        require_non_empty("target", self.name)

        try:
            self.target_type = TargetType(self.target_type)
        except ValueError:
            raise ValidationError(f"Invalid target, {self.target_type!r} is not a valid target type")

        decode_target_properties(self.target_type, self.properties)

    def decoded_properties(self):
        return decode_target_properties(self.target_type, self.properties)
