from sqlalchemy import Column, ForeignKey, Integer, String
from ..database import Base
from ..types import ISODateTime


class BatchRow(Base):
    """
    함께 마이그레이션할 인스턴스 묶음과 실행 가능 시간대(window)를 저장합니다.
    소속 인스턴스는 instances.batch_id로만 연결되며 여기에는 저장하지 않습니다.
    """
    __tablename__ = "batches"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False, index=True)
    target_id = Column(Integer, ForeignKey("targets.id"), nullable=False)
    storage_pool = Column(String, nullable=False, default="")
    include_expression = Column(String, nullable=False)
    migration_window_start = Column(ISODateTime, nullable=True)
    migration_window_end = Column(ISODateTime, nullable=True)
    default_network = Column(String, nullable=False, default="")
    status = Column(String, nullable=False)
    status_string = Column(String, nullable=False, default="")
