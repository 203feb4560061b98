import logging
import time
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import exc as sa_exc
from sqlalchemy.orm import Session, sessionmaker

from migration_manager.services.exceptions import (
    ConstraintViolationError,
    TransactionError,
    TransactionTimeoutError,
)

logger = logging.getLogger(__name__)

TRANSACTION_TIMEOUT = 30.0

ROLLBACK_ATTEMPTS = 3
ROLLBACK_RETRY_DELAY = 0.1


@contextmanager
def transaction(session_factory: sessionmaker, timeout: float = TRANSACTION_TIMEOUT) -> Iterator[Session]:
    """
    세션 하나를 열어 블록 전체를 하나의 트랜잭션으로 실행합니다.

    블록이 정상 종료되면 커밋하고, 예외가 발생하면 롤백한 뒤 원래 예외를 다시 던집니다.
    제한 시간(timeout)을 넘긴 트랜잭션은 커밋하지 않고 TransactionTimeoutError로 실패합니다.
    세션은 어떤 경로로 빠져나가든 반드시 닫힙니다.

    Raises:
        ConstraintViolationError: 유일성/외래 키 제약을 위반했을 때 (IntegrityError).
        TransactionError: 드라이버가 트랜잭션 충돌을 보고했을 때.
        TransactionTimeoutError: 제한 시간을 넘겼을 때.
    """
    session = session_factory()
    deadline = time.monotonic() + timeout
    try:
        yield session
        if time.monotonic() > deadline:
            raise TransactionTimeoutError(f"Transaction exceeded its {timeout:.0f}s time limit")
        session.commit()
    except sa_exc.IntegrityError as e:
        _rollback(session, e)
        raise ConstraintViolationError(f"Constraint violation: {e.orig}") from e
    except sa_exc.OperationalError as e:
        _rollback(session, e)
        if "within a transaction" in str(e.orig):
            raise TransactionError(f"Failed to begin transaction: {e.orig}") from e
        if time.monotonic() > deadline:
            raise TransactionTimeoutError(f"Transaction exceeded its {timeout:.0f}s time limit: {e.orig}") from e
        raise TransactionError(f"Database operation failed: {e.orig}") from e
    except BaseException as e:
        _rollback(session, e)
        raise
    finally:
        session.close()


def _rollback(session: Session, reason: BaseException):
    """롤백을 몇 차례 재시도합니다. 롤백 실패는 로그만 남기고, 호출자는 원래 오류를 받습니다."""
    for attempt in range(1, ROLLBACK_ATTEMPTS + 1):
        try:
            session.rollback()
            return
        except sa_exc.SQLAlchemyError as e:
            if attempt == ROLLBACK_ATTEMPTS:
                logger.warning("Failed to rollback transaction after error: reason=%s, error=%s", reason, e)
                return
            time.sleep(ROLLBACK_RETRY_DELAY)
