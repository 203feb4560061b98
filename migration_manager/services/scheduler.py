import logging
from datetime import datetime
from typing import List, Optional, Tuple

from migration_manager.domain import Batch, BatchStatus, MigrationStatus, utcnow
from migration_manager.domain.expression import ExpressionError, IncludeExpression, instance_attributes
from migration_manager.repositories.interfaces import IBatchRepository, IInstanceRepository, ISourceRepository

logger = logging.getLogger(__name__)

# 새 인스턴스를 받을 수 있는 배치 상태
ASSIGNABLE_BATCH_STATUSES = frozenset({
    BatchStatus.DEFINED,
    BatchStatus.READY,
    BatchStatus.QUEUED,
    BatchStatus.RUNNING,
})

# 스케줄러가 시간대(window)에 따라 상태를 움직이는 배치 상태
STARTED_BATCH_STATUSES = frozenset({
    BatchStatus.READY,
    BatchStatus.QUEUED,
    BatchStatus.RUNNING,
})

# FINISHED 배치도 다시 확인합니다. 운영자 조치로 소속 인스턴스가 ERROR에서 벗어나면 배치를 다시 엽니다.
SWEPT_BATCH_STATUSES = STARTED_BATCH_STATUSES | {BatchStatus.FINISHED}


class BatchScheduler:
    """
    배치 스케줄러.

    배치가 없는 인스턴스를 include_expression에 따라 배치에 할당하고,
    시작된 배치의 상태를 마이그레이션 시간대에 맞춰 QUEUED/RUNNING/FINISHED로 옮깁니다.
    여러 배치의 표현식에 동시에 맞는 인스턴스는 ID가 가장 작은 배치에 들어갑니다.
    """

    def __init__(self, batch_repo: IBatchRepository, instance_repo: IInstanceRepository, source_repo: ISourceRepository):
        self.batch_repo = batch_repo
        self.instance_repo = instance_repo
        self.source_repo = source_repo

    def sweep(self, now: Optional[datetime] = None) -> int:
        """할당과 배치 상태 갱신을 한 번 수행합니다. 새로 할당된 인스턴스 수를 반환합니다."""
        now = now or utcnow()
        assigned = self.assign_instances()
        self.update_batch_states(now)
        return assigned

    def assign_instances(self) -> int:
        """
        배치가 없는 인스턴스를 첫 번째로 일치하는 배치에 할당합니다.

        할당은 "batch_id IS NULL AND status = NOT_ASSIGNED_BATCH" 조건부 갱신이므로,
        같은 인스턴스를 두 번 할당하는 일은 없고 두 번째 실행은 아무것도 바꾸지 않습니다.

        Returns:
            이번 실행에서 할당된 인스턴스 수.
        """
        batches = self._compile_candidates()
        if not batches:
            return 0

        sources = {source.id: source for source in self.source_repo.get_all()}
        assigned = 0

        for instance in self.instance_repo.get_all_unassigned():
            if instance.is_migration_disabled():
                continue

            source = sources.get(instance.source_id)
            attributes = instance_attributes(
                instance,
                source_name=source.name if source else "",
                source_type=source.source_type.value if source else "",
            )

            batch = self._first_match(batches, instance.uuid, attributes)
            if batch is None:
                continue

            if self.instance_repo.assign_batch(
                instance.uuid, batch.id, batch.target_id, MigrationStatus.ASSIGNED_BATCH.description
            ):
                assigned += 1
                logger.info(
                    "Assigned instance %s to batch '%s'", instance.uuid, batch.name,
                    extra={"instance": instance.uuid, "batch": batch.name},
                )

        return assigned

    def _compile_candidates(self) -> List[Tuple[Batch, IncludeExpression]]:
        # get_all()은 ID 오름차순이므로 이 순서가 곧 우선순위입니다.
        compiled = []
        for batch in self.batch_repo.get_all():
            if batch.status not in ASSIGNABLE_BATCH_STATUSES:
                continue
            try:
                compiled.append((batch, batch.compile_expression()))
            except ExpressionError as e:
                logger.warning("Skipping batch '%s': %s", batch.name, e, extra={"batch": batch.name})
        return compiled

    @staticmethod
    def _first_match(batches: List[Tuple[Batch, IncludeExpression]], uuid, attributes) -> Optional[Batch]:
        for batch, expression in batches:
            try:
                if expression.evaluate(attributes):
                    return batch
            except ExpressionError as e:
                # 평가 실패는 "일치하지 않음"으로 취급합니다.
                logger.warning(
                    "Failed to evaluate batch '%s' for instance %s: %s", batch.name, uuid, e,
                    extra={"batch": batch.name, "instance": uuid},
                )
        return None

    def update_batch_states(self, now: datetime):
        """
        시작된 배치(READY/QUEUED/RUNNING)와 FINISHED 배치의 상태를 갱신합니다.

        - 소속 인스턴스가 하나 이상 있고 모두 MIGRATED/ERROR이면 FINISHED.
        - 그 외에는 시간대 안이면 RUNNING, 밖이면 QUEUED.

        배치 하나의 갱신이 실패해도 로그만 남기고 나머지 배치는 계속 처리합니다.
        """
        for batch in self.batch_repo.get_all():
            if batch.status not in SWEPT_BATCH_STATUSES:
                continue
            try:
                self._update_batch_state(batch, now)
            except Exception:
                logger.exception("Failed to update state of batch '%s'", batch.name, extra={"batch": batch.name})

    def _update_batch_state(self, batch: Batch, now: datetime):
        members = self.instance_repo.get_all_by_batch(batch.id)
        if members and all(MigrationStatus(m.migration_status).is_terminal() for m in members):
            new_status = BatchStatus.FINISHED
        elif batch.is_window_open(now):
            new_status = BatchStatus.RUNNING
        else:
            new_status = BatchStatus.QUEUED

        if new_status != batch.status:
            self.batch_repo.update_status_by_id(batch.id, new_status, new_status.description)
            logger.info(
                "Batch '%s': %s -> %s", batch.name, batch.status.value, new_status.value,
                extra={"batch": batch.name, "status": new_status.value},
            )
