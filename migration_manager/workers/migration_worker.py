"""
마이그레이션 실행 워커.

실행 중(RUNNING)이고 시간대가 열린 배치의 인스턴스를 스레드 풀에서 병렬로 진행시킵니다.
인스턴스 하나의 진행은 다음 순서를 따르며, 각 단계가 끝날 때마다 상태 머신으로 전이를 저장합니다.

    ASSIGNED_BATCH --provision--> BACKGROUND_IMPORT --import(final=False)--> FINAL_IMPORT
        --import(final=True)--> CUTOVER_PENDING --cutover--> MIGRATED

*_ERROR 상태의 인스턴스는 같은 단계로 되돌린 뒤 다시 시도합니다.
"""
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from migration_manager.domain import Batch, BatchStatus, Instance, MigrationStatus, Target, utcnow
from migration_manager.repositories.interfaces import IBatchRepository, IInstanceRepository, ITargetRepository
from migration_manager.services.exceptions import (
    DeadlineExceededError,
    FatalExecutionError,
    OperationNotPermittedError,
    TransientExecutionError,
)
from migration_manager.services.state_machine import PHASE_ERRORS, RETRY_PHASES, MigrationStateMachine
from migration_manager.targets import ITargetExecution, create_target_driver
from migration_manager.utils.deadline import Deadline

logger = logging.getLogger(__name__)

S = MigrationStatus

# 워커가 진행시킬 수 있는 상태
ACTIONABLE_STATUSES = frozenset({S.ASSIGNED_BATCH}) | frozenset(PHASE_ERRORS) | frozenset(RETRY_PHASES)


class MigrationWorker:
    def __init__(
        self,
        batch_repo: IBatchRepository,
        instance_repo: IInstanceRepository,
        target_repo: ITargetRepository,
        state_machine: MigrationStateMachine,
        driver_factory: Callable[[Target], ITargetExecution] = create_target_driver,
        call_timeout: float = 3600.0,
        max_workers: int = 4,
    ):
        self.batch_repo = batch_repo
        self.instance_repo = instance_repo
        self.target_repo = target_repo
        self.state_machine = state_machine
        self.driver_factory = driver_factory
        self.call_timeout = call_timeout
        self.max_workers = max_workers

    def run_once(self, now: Optional[datetime] = None) -> int:
        """
        진행할 인스턴스를 모아 스레드 풀에서 처리합니다.

        Returns:
            이번 실행에서 처리를 시도한 인스턴스 수.
        """
        now = now or utcnow()
        jobs = self.collect_jobs(now)
        if not jobs:
            return 0

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="migration") as pool:
            futures = {pool.submit(self.process_instance, instance, batch, target): instance for instance, batch, target in jobs}
            for future in as_completed(futures):
                instance = futures[future]
                try:
                    future.result()
                except Exception:
                    logger.exception("Unexpected failure while migrating instance %s", instance.uuid,
                                     extra={"instance": instance.uuid})

        return len(jobs)

    def collect_jobs(self, now: datetime) -> List[Tuple[Instance, Batch, Target]]:
        jobs = []
        for batch in self.batch_repo.get_all():
            if batch.status != BatchStatus.RUNNING or not batch.is_window_open(now):
                continue

            target = self.target_repo.get_by_id(batch.target_id)
            for instance in self.instance_repo.get_all_by_batch(batch.id):
                if MigrationStatus(instance.migration_status) not in ACTIONABLE_STATUSES:
                    continue
                if instance.is_migration_disabled():
                    logger.debug("Migration of instance %s is disabled, skipping", instance.uuid,
                                 extra={"instance": instance.uuid})
                    continue
                jobs.append((instance, batch, target))
        return jobs

    def process_instance(self, instance: Instance, batch: Batch, target: Target) -> MigrationStatus:
        """
        인스턴스 하나를 가능한 데까지 진행시키고 마지막으로 저장된 상태를 반환합니다.

        - 일시적 실패: 현재 단계의 *_ERROR로 기록하고 다음 주기에 재시도합니다.
          (provision 실패는 ASSIGNED_BATCH에 그대로 남아 재시도됩니다.)
        - 치명적 실패: ERROR로 기록합니다.
        - 마감 초과: 상태를 바꾸지 않습니다. 마지막으로 저장된 단계부터 다시 시작됩니다.
        - 다른 워커가 먼저 상태를 바꿨다면(stale) 즉시 멈춥니다.
        """
        uuid = instance.uuid
        status = MigrationStatus(instance.migration_status)

        try:
            if instance.secure_boot_enabled and instance.use_legacy_bios:
                raise FatalExecutionError("Secure boot can not be combined with legacy BIOS firmware")

            driver = self.driver_factory(target)

            if status in RETRY_PHASES:
                if not self.state_machine.retry(uuid):
                    return status
                status = RETRY_PHASES[status]

            if status == S.ASSIGNED_BATCH:
                driver.provision(instance, batch, self._deadline())
                if not self.state_machine.transition(uuid, S.BACKGROUND_IMPORT, needs_disk_import=True):
                    return status
                status = S.BACKGROUND_IMPORT

            if status == S.BACKGROUND_IMPORT:
                driver.import_disks(instance, False, self._deadline())
                if not self.state_machine.transition(uuid, S.FINAL_IMPORT, needs_disk_import=False):
                    return status
                status = S.FINAL_IMPORT

            if status == S.FINAL_IMPORT:
                driver.import_disks(instance, True, self._deadline())
                if not self.state_machine.transition(uuid, S.CUTOVER_PENDING):
                    return status
                status = S.CUTOVER_PENDING

            if status == S.CUTOVER_PENDING:
                driver.cutover(instance, self._deadline())
                if not self.state_machine.transition(uuid, S.MIGRATED):
                    return status
                status = S.MIGRATED

        except DeadlineExceededError as e:
            logger.warning("Instance %s: deadline exceeded in '%s', will resume later: %s", uuid, status.value, e,
                           extra={"instance": uuid, "status": status.value})
        except TransientExecutionError as e:
            if status in PHASE_ERRORS:
                logger.warning("Instance %s: transient failure in '%s': %s", uuid, status.value, e,
                               extra={"instance": uuid, "status": status.value})
                if self.state_machine.record_transient_error(uuid, str(e)):
                    status = PHASE_ERRORS[status]
            else:
                logger.warning("Instance %s: transient failure before import, will retry: %s", uuid, e,
                               extra={"instance": uuid, "status": status.value})
        except FatalExecutionError as e:
            logger.error("Instance %s: fatal failure in '%s': %s", uuid, status.value, e,
                         extra={"instance": uuid, "status": status.value})
            if self.state_machine.record_fatal_error(uuid, str(e)):
                status = S.ERROR
        except OperationNotPermittedError as e:
            logger.info("Instance %s: not advanced: %s", uuid, e, extra={"instance": uuid})

        return status

    def _deadline(self) -> Deadline:
        return Deadline(self.call_timeout)
