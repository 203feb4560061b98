from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

# SQLite 잠금 대기 시간(초). 트랜잭션 제한 시간과 동일하게 맞춥니다.
SQLITE_BUSY_TIMEOUT = 30

# 모든 모델 클래스가 상속받을 Base 클래스
Base = declarative_base()


def create_db_engine(database_url: str) -> Engine:
    """
    SQLAlchemy 엔진을 생성합니다.

    SQLite인 경우 여러 워커 스레드가 같은 엔진을 공유하므로 check_same_thread를 끄고,
    연결마다 외래 키 제약을 켭니다. (SQLite는 기본값이 OFF)
    """
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT},
        )
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_engine(database_url, pool_pre_ping=True)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_session_factory(engine: Engine) -> sessionmaker:
    # autoflush=False: commit은 transaction()에서만 명시적으로 호출합니다.
    # expire_on_commit=False: 세션이 닫힌 뒤에도 로드된 값을 엔티티로 변환할 수 있어야 합니다.
    return sessionmaker(autoflush=False, expire_on_commit=False, bind=engine)
