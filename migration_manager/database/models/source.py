from sqlalchemy import JSON, Column, Integer, String
from ..database import Base


class SourceRow(Base):
    """
    인벤토리 원본(예: vCenter)을 저장합니다.
    properties는 source_type별 스키마를 가진 JSON이며, 검증은 도메인 계층에서 끝난 상태로 들어옵니다.
    """
    __tablename__ = "sources"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False, index=True)
    source_type = Column(String, nullable=False)
    properties = Column(JSON, nullable=False)
