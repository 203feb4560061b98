import re
from typing import Optional
from urllib.parse import urlparse

from migration_manager.services.exceptions import ValidationError

# RFC 3986에서 URL에 그대로 쓸 수 있는 문자 집합
_URL_CHARS = re.compile(r"^[A-Za-z0-9._~:/?#\[\]@!$&'()*+,;=%-]+$")
_URL_SCHEME = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*$")


def is_valid_url(value: str) -> bool:
    """스킴이 없는 호스트명("endpoint.url")도 허용하지만, URL에 올 수 없는 문자가 있으면 거부합니다."""
    if not value or not _URL_CHARS.match(value):
        return False

    if "://" in value:
        scheme = value.split("://", 1)[0]
        if not _URL_SCHEME.match(scheme):
            return False

    try:
        parsed = urlparse(value)
        # 포트가 숫자가 아니면 여기서 ValueError가 발생합니다.
        parsed.port
    except ValueError:
        return False

    return bool(parsed.netloc or parsed.path)


def require_non_negative_id(entity: str, value: Optional[int], field: str = "id"):
    if value is not None and value < 0:
        raise ValidationError(f"Invalid {entity}, {field} can not be negative")


def require_non_empty(entity: str, value: str, field: str = "name"):
    if not value:
        raise ValidationError(f"Invalid {entity}, {field} can not be empty")
