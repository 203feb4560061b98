from sqlalchemy import JSON, Column, Integer, String
from ..database import Base


class TargetRow(Base):
    """
    마이그레이션 타겟 플랫폼을 저장합니다.
    properties에는 엔드포인트 URL과 인증 정보가 들어갑니다.
    """
    __tablename__ = "targets"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False, index=True)
    target_type = Column(String, nullable=False)
    properties = Column(JSON, nullable=False)
