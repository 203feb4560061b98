from datetime import datetime

from sqlalchemy import String
from sqlalchemy.types import TypeDecorator


class ISODateTime(TypeDecorator):
    """
    datetime을 ISO-8601 문자열로 저장합니다.
    SQLite의 DateTime 컬럼은 타임존 정보를 버리므로, 쓰고 읽은 값이 정확히 같도록 텍스트로 보관합니다.
    """
    impl = String(40)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return value.isoformat()

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return datetime.fromisoformat(value)
