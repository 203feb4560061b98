"""
인스턴스 마이그레이션 상태 머신.

모든 전이는 "시작 시점에 읽은 상태"를 기대값으로 하는 compare-and-set으로 저장됩니다.
같은 인스턴스를 두 워커가 동시에 진행시키면 한쪽만 성공하고, 진 쪽은 False를 받습니다.
"""
import logging
from typing import Dict, FrozenSet, Optional
from uuid import UUID

from migration_manager.domain import Instance, MigrationStatus
from migration_manager.repositories.interfaces import IInstanceRepository
from migration_manager.services.exceptions import InvalidTransitionError, OperationNotPermittedError

logger = logging.getLogger(__name__)

S = MigrationStatus

TRANSITIONS: Dict[MigrationStatus, FrozenSet[MigrationStatus]] = {
    S.NOT_ASSIGNED_BATCH: frozenset({S.ASSIGNED_BATCH, S.DISABLED}),
    S.DISABLED: frozenset({S.NOT_ASSIGNED_BATCH}),
    S.ASSIGNED_BATCH: frozenset({S.BACKGROUND_IMPORT, S.NOT_ASSIGNED_BATCH, S.ERROR}),
    S.BACKGROUND_IMPORT: frozenset({S.FINAL_IMPORT, S.BACKGROUND_IMPORT_ERROR, S.ERROR}),
    S.BACKGROUND_IMPORT_ERROR: frozenset({S.BACKGROUND_IMPORT, S.ERROR}),
    S.FINAL_IMPORT: frozenset({S.CUTOVER_PENDING, S.FINAL_IMPORT_ERROR, S.ERROR}),
    S.FINAL_IMPORT_ERROR: frozenset({S.FINAL_IMPORT, S.ERROR}),
    S.CUTOVER_PENDING: frozenset({S.MIGRATED, S.CUTOVER_ERROR, S.ERROR}),
    S.CUTOVER_ERROR: frozenset({S.CUTOVER_PENDING, S.ERROR}),
    S.ERROR: frozenset({S.ASSIGNED_BATCH, S.NOT_ASSIGNED_BATCH}),
    S.MIGRATED: frozenset(),
}

# 단계 → 그 단계의 일시적 실패 상태
PHASE_ERRORS: Dict[MigrationStatus, MigrationStatus] = {
    S.BACKGROUND_IMPORT: S.BACKGROUND_IMPORT_ERROR,
    S.FINAL_IMPORT: S.FINAL_IMPORT_ERROR,
    S.CUTOVER_PENDING: S.CUTOVER_ERROR,
}

# 일시적 실패 상태 → 재시도할 단계
RETRY_PHASES: Dict[MigrationStatus, MigrationStatus] = {error: phase for phase, error in PHASE_ERRORS.items()}

# ERROR에서 벗어나는 전이는 운영자 조치로만 일어납니다.
OPERATOR_ONLY = frozenset({(S.ERROR, S.ASSIGNED_BATCH), (S.ERROR, S.NOT_ASSIGNED_BATCH)})

FAILURE_STATUSES = frozenset(PHASE_ERRORS.values()) | {S.ERROR}


def can_transition(current: MigrationStatus, requested: MigrationStatus) -> bool:
    return MigrationStatus(requested) in TRANSITIONS[MigrationStatus(current)]


class MigrationStateMachine:
    def __init__(self, instance_repo: IInstanceRepository):
        self.instance_repo = instance_repo

    def transition(
        self,
        uuid: UUID,
        new_status: MigrationStatus,
        status_string: Optional[str] = None,
        needs_disk_import: Optional[bool] = None,
        operator: bool = False,
    ) -> bool:
        """
        인스턴스를 new_status로 전이시킵니다.

        현재 상태를 읽고, 전이 표와 비활성화 보정값을 확인한 다음,
        읽은 상태를 기대값으로 하는 조건부 갱신을 수행합니다.

        Args:
            uuid: 대상 인스턴스 UUID.
            new_status: 요청 상태.
            status_string: 사람이 읽을 상태 설명. 생략하면 상태의 기본 설명을 씁니다.
            needs_disk_import: 생략하면 저장된 값을 유지합니다.
            operator: 운영자 조치에 의한 전이인지 여부. ERROR에서 벗어나는 전이는 이 값이 True여야 하고,
                      True이면 비활성화 보정값 확인을 건너뜁니다.

        Returns:
            저장되었으면 True. 그 사이 다른 워커가 상태를 바꿨다면 False(stale).

        Raises:
            NotFoundError: 인스턴스가 없을 때.
            InvalidTransitionError: 전이 표가 허용하지 않는 전이일 때.
            OperationNotPermittedError: 마이그레이션이 비활성화된 인스턴스를 자동으로 진행시키려 할 때.
        """
        new_status = MigrationStatus(new_status)
        instance = self.instance_repo.get_by_id(uuid)
        current = MigrationStatus(instance.migration_status)

        self._check(instance, current, new_status, operator)

        if status_string is None:
            status_string = new_status.description
        if needs_disk_import is None:
            needs_disk_import = instance.needs_disk_import

        updated = self.instance_repo.update_status_by_id(
            uuid, new_status, status_string, needs_disk_import, expected_status=current
        )
        if not updated:
            logger.warning(
                "Stale transition of instance %s from '%s' to '%s', status changed concurrently",
                uuid, current.value, new_status.value, extra={"instance": uuid},
            )
            return False

        logger.info(
            "Instance %s: %s -> %s", uuid, current.value, new_status.value,
            extra={"instance": uuid, "status": new_status.value},
        )
        return True

    def _check(self, instance: Instance, current: MigrationStatus, new_status: MigrationStatus, operator: bool):
        if not can_transition(current, new_status):
            raise InvalidTransitionError(current, new_status)
        if (current, new_status) in OPERATOR_ONLY and not operator:
            raise InvalidTransitionError(current, new_status)
        # 실패 기록은 비활성화와 무관하게 허용합니다.
        if not operator and new_status not in FAILURE_STATUSES and instance.is_migration_disabled():
            raise OperationNotPermittedError(f"Migration of instance '{instance.uuid}' is disabled.")

    def record_transient_error(self, uuid: UUID, message: str) -> bool:
        """현재 단계의 *_ERROR 상태로 전이시키고 오류 메시지를 상태 설명에 남깁니다."""
        instance = self.instance_repo.get_by_id(uuid)
        current = MigrationStatus(instance.migration_status)
        error_status = PHASE_ERRORS.get(current)
        if error_status is None:
            raise InvalidTransitionError(current, S.BACKGROUND_IMPORT_ERROR)
        return self.transition(uuid, error_status, status_string=f"{error_status.description}: {message}")

    def record_fatal_error(self, uuid: UUID, message: str) -> bool:
        """ERROR로 전이시킵니다. 운영자가 조치하기 전까지 자동 진행은 멈춥니다."""
        return self.transition(uuid, S.ERROR, status_string=f"{S.ERROR.description}: {message}")

    def retry(self, uuid: UUID) -> bool:
        """*_ERROR 상태의 인스턴스를 같은 단계로 되돌립니다."""
        instance = self.instance_repo.get_by_id(uuid)
        current = MigrationStatus(instance.migration_status)
        phase = RETRY_PHASES.get(current)
        if phase is None:
            raise OperationNotPermittedError(f"Instance '{uuid}' is not in a retryable error state ('{current.value}').")
        return self.transition(uuid, phase)

    def reset_after_operator_action(self, uuid: UUID) -> bool:
        """
        운영자 조치(보정값 수정, 배치 재할당) 이후 ERROR 상태를 해제합니다.

        배치에 할당된 인스턴스는 ASSIGNED_BATCH로 돌아가 처음 단계부터 다시 진행하고,
        배치가 없는 인스턴스는 NOT_ASSIGNED_BATCH로 돌아갑니다.
        ERROR가 아닌 인스턴스에는 아무것도 하지 않고 False를 반환합니다.
        """
        instance = self.instance_repo.get_by_id(uuid)
        if MigrationStatus(instance.migration_status) != S.ERROR:
            return False

        new_status = S.ASSIGNED_BATCH if instance.batch_id is not None else S.NOT_ASSIGNED_BATCH
        return self.transition(uuid, new_status, needs_disk_import=False, operator=True)
