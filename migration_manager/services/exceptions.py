# migration_manager/services/exceptions.py
#
# 모든 예외는 `kind` 속성으로 자신의 분류를 노출합니다.
# 표현 계층(CLI/HTTP)은 메시지를 파싱하지 않고 kind로 종료 코드나 상태 코드를 결정합니다.


class MigrationManagerError(Exception):
    """마이그레이션 매니저 예외의 최상위 클래스"""
    kind = "internal"


# --- Input / Reference Exceptions ---
class ValidationError(MigrationManagerError):
    """엔티티 불변식(이름, ID, URL, enum 범위 등)을 위반한 입력일 때"""
    kind = "validation"


class NotFoundError(MigrationManagerError):
    """참조한 집합체(aggregate)가 존재하지 않거나, 영향받은 행이 0개일 때"""
    kind = "not_found"


class ConstraintViolationError(MigrationManagerError):
    """유일성 또는 참조 제약을 위반했을 때"""
    kind = "constraint_violation"


# --- Business Rule Exceptions ---
class OperationNotPermittedError(MigrationManagerError):
    """요청 자체는 올바르지만 비즈니스 규칙상 허용되지 않을 때 (배치 할당 중 수정 등)"""
    kind = "not_permitted"


class InvalidTransitionError(OperationNotPermittedError):
    """마이그레이션 상태 머신이 허용하지 않는 전이일 때"""

    def __init__(self, current, requested):
        self.current = current
        self.requested = requested
        super().__init__(f"Invalid migration status transition from '{current.value}' to '{requested.value}'.")


class PermissionDeniedError(OperationNotPermittedError):
    """인증된 주체가 요청한 권한을 가지고 있지 않을 때"""
    kind = "permission_denied"


# --- Execution Exceptions ---
class TransientExecutionError(MigrationManagerError):
    """하이퍼바이저/타겟 호출이 실패했지만 같은 단계에서 재시도 가능한 경우"""
    kind = "transient"


class FatalExecutionError(MigrationManagerError):
    """재시도할 수 없는 실패. 운영자 조치 전까지 인스턴스는 ERROR 상태에 머뭅니다."""
    kind = "fatal"


class DeadlineExceededError(MigrationManagerError):
    """호출자가 지정한 마감 시간(deadline)을 초과했을 때"""
    kind = "deadline_exceeded"


# --- Persistence Exceptions ---
class TransactionError(MigrationManagerError):
    """트랜잭션 시작/커밋 과정에서 드라이버가 충돌을 보고했을 때"""
    kind = "transaction"


class TransactionTimeoutError(TransactionError):
    """트랜잭션이 제한 시간을 넘겼을 때"""
    pass
