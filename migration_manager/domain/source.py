from dataclasses import dataclass, field
from typing import Any, Dict

from migration_manager.domain.properties import decode_source_properties
from migration_manager.domain.types import SourceType
from migration_manager.domain.validation import require_non_empty, require_non_negative_id
from migration_manager.services.exceptions import ValidationError


@dataclass
class Source:
    """
    마이그레이션할 VM 인벤토리를 제공하는 원본 플랫폼입니다.
    (예: vCenter 하나)
    """
    name: str
    source_type: SourceType
    properties: Dict[str, Any] = field(default_factory=dict)
    id: int = 0

    def validate(self):
        require_non_negative_id("source", self.id)
        require_non_empty("source", self.name)

        try:
            self.source_type = SourceType(self.source_type)
        except ValueError:
            raise ValidationError(f"Invalid source, {self.source_type!r} is not a valid source type")

        decode_source_properties(self.source_type, self.properties)
