from sqlalchemy import BigInteger, Boolean, Column, ForeignKey, Integer, String
from ..database import Base
from ..types import ISODateTime


class OverridesRow(Base):
    """
    인스턴스별 운영자 보정값(1:1)을 저장합니다.
    인스턴스 삭제 시 DB가 연쇄 삭제하지 않습니다. 서비스 계층이 먼저 이 행을 지워야 합니다.
    """
    __tablename__ = "instance_overrides"
    uuid = Column(String(36), ForeignKey("instances.uuid"), primary_key=True)
    last_update = Column(ISODateTime, nullable=False)
    comment = Column(String, nullable=False, default="")
    number_cpus = Column(Integer, nullable=False, default=0)
    memory_in_bytes = Column(BigInteger, nullable=False, default=0)
    disable_migration = Column(Boolean, nullable=False, default=False)
