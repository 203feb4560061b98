import logging

from sqlalchemy.engine import Engine

from .database import Base
from . import models  # noqa: F401  모든 테이블을 Base.metadata에 등록합니다.

logger = logging.getLogger(__name__)


def initialize_db(engine: Engine):
    """
    DB 스키마를 생성합니다.

    create_all은 없는 테이블만 만들고 기존 테이블과 행은 건드리지 않으므로,
    스키마 변경은 항상 테이블/nullable 컬럼을 추가하는 방식으로만 이루어져야 합니다.
    """
    logger.info("Ensuring database schema on %s", engine.url.render_as_string(hide_password=True))
    Base.metadata.create_all(bind=engine)
