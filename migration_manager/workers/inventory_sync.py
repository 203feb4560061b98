"""
인벤토리 동기화 워커.

등록된 소스마다 세션을 열고(keep-alive 유지), 마감 시간 안에 VM 목록을 받아
인스턴스 레코드를 만들거나 갱신합니다. 한 소스의 실패는 다른 소스 동기화를 막지 않습니다.
"""
import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional

from migration_manager.domain import InstanceSnapshot, MigrationStatus, Source, utcnow
from migration_manager.repositories.interfaces import IInstanceRepository, ISourceRepository
from migration_manager.services.exceptions import MigrationManagerError, NotFoundError, OperationNotPermittedError
from migration_manager.services.state_machine import PHASE_ERRORS, MigrationStateMachine
from migration_manager.utils.deadline import Deadline

logger = logging.getLogger(__name__)

KEEP_ALIVE_INTERVAL = 300.0


class IInventorySource(ABC):
    """원본 플랫폼(vCenter 등)의 인벤토리 세션"""

    @abstractmethod
    def open_session(self):
        pass

    @abstractmethod
    def keep_alive(self):
        """세션이 만료되지 않도록 가벼운 요청을 보냅니다."""
        pass

    @abstractmethod
    def close(self):
        pass

    @abstractmethod
    def fetch_inventory(self, deadline: Deadline) -> List[InstanceSnapshot]:
        pass


class SessionKeepAlive(threading.Thread):
    """동기화가 진행되는 동안 일정 간격으로 세션 keep-alive를 보냅니다."""

    def __init__(self, session: IInventorySource, interval: float = KEEP_ALIVE_INTERVAL, name: str = "keep-alive"):
        super().__init__(name=name, daemon=True)
        self.session = session
        self.interval = interval
        self._stop_event = threading.Event()

    def run(self):
        while not self._stop_event.wait(self.interval):
            try:
                self.session.keep_alive()
            except Exception as e:
                logger.warning("Session keep-alive for '%s' failed: %s", self.name, e)

    def stop(self):
        self._stop_event.set()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        self.join(timeout=self.interval)


SourceFactory = Callable[[Source], IInventorySource]


class InventorySyncWorker:
    def __init__(
        self,
        source_repo: ISourceRepository,
        instance_repo: IInstanceRepository,
        source_factory: SourceFactory,
        call_timeout: float = 3600.0,
        keep_alive_interval: float = KEEP_ALIVE_INTERVAL,
        state_machine: Optional[MigrationStateMachine] = None,
    ):
        """
        Args:
            source_repo: 소스 리포지토리.
            instance_repo: 인스턴스 리포지토리.
            source_factory: Source 설정으로 인벤토리 세션 객체를 만드는 함수.
                            지원하지 않는 소스 타입이면 NotImplementedError를 던집니다.
            call_timeout: 인벤토리 조회 한 번의 마감 시간(초).
            keep_alive_interval: keep-alive 간격(초).
            state_machine: 소스 동기화 실패를 진행 중인 인스턴스의 *_ERROR 상태로 기록할 상태 머신.
                           생략하면 instance_repo로 만듭니다.
        """
        self.source_repo = source_repo
        self.instance_repo = instance_repo
        self.source_factory = source_factory
        self.call_timeout = call_timeout
        self.keep_alive_interval = keep_alive_interval
        self.state_machine = state_machine or MigrationStateMachine(instance_repo)

    def sync_all(self) -> Dict[str, int]:
        """
        모든 소스를 동기화합니다.

        세션/조회 실패는 해당 소스에서 진행 중인 인스턴스의 *_ERROR 상태로 기록되고,
        다음 마이그레이션 주기에 같은 단계부터 재시도됩니다.
        인벤토리 드라이버가 없는 소스(NotImplementedError)는 로그만 남깁니다.

        Returns:
            소스 이름 → 새로 만들어졌거나 갱신된 인스턴스 수. 실패한 소스는 포함되지 않습니다.
        """
        results = {}
        for source in self.source_repo.get_all():
            try:
                results[source.name] = self.sync_source(source)
            except NotImplementedError as e:
                logger.warning("Skipping inventory sync of source '%s': %s", source.name, e,
                               extra={"source": source.name})
            except Exception as e:
                logger.exception("Inventory sync of source '%s' failed", source.name, extra={"source": source.name})
                self.record_source_failure(source, e)
        return results

    def record_source_failure(self, source: Source, error: Exception) -> int:
        """
        소스 조회 실패를 그 소스에서 마이그레이션 단계에 있는 인스턴스에 기록합니다.

        Returns:
            *_ERROR 상태로 기록된 인스턴스 수.
        """
        message = f"Inventory sync of source '{source.name}' failed: {error}"
        recorded = 0
        for instance in self.instance_repo.get_all_by_source(source.id):
            if MigrationStatus(instance.migration_status) not in PHASE_ERRORS:
                continue
            try:
                if self.state_machine.record_transient_error(instance.uuid, message):
                    recorded += 1
            except MigrationManagerError as e:
                logger.warning("Could not record sync failure on instance %s: %s", instance.uuid, e,
                               extra={"instance": instance.uuid, "source": source.name})
        return recorded

    def sync_source(self, source: Source) -> int:
        session = self.source_factory(source)
        session.open_session()
        try:
            with SessionKeepAlive(session, self.keep_alive_interval, name=f"keep-alive-{source.name}"):
                snapshots = session.fetch_inventory(Deadline(self.call_timeout))
        finally:
            session.close()

        return self.apply_snapshots(source, snapshots)

    def apply_snapshots(self, source: Source, snapshots: List[InstanceSnapshot]) -> int:
        """
        조회한 스냅샷을 인스턴스 레코드에 반영합니다.

        - 처음 보는 UUID는 NOT_ASSIGNED_BATCH 인스턴스로 새로 만듭니다.
        - 배치가 없고 마이그레이션 중이 아닌 인스턴스는 인벤토리 필드를 갱신합니다.
        - 배치에 할당된 인스턴스는 건드리지 않습니다.
        """
        observed_at = utcnow()
        known = set(self.instance_repo.get_all_uuids())
        changed = 0

        for snapshot in snapshots:
            try:
                if snapshot.uuid not in known:
                    instance = snapshot.to_instance(source.id, observed_at)
                    instance.validate()
                    self.instance_repo.create(instance)
                    logger.info("Discovered instance %s (%s)", instance.uuid, instance.inventory_path,
                                extra={"instance": instance.uuid, "source": source.name})
                    changed += 1
                    continue

                if self._refresh(source, snapshot, observed_at):
                    changed += 1
            except MigrationManagerError as e:
                logger.warning("Skipping instance %s from source '%s': %s", snapshot.uuid, source.name, e,
                               extra={"instance": snapshot.uuid, "source": source.name})

        return changed

    def _refresh(self, source: Source, snapshot: InstanceSnapshot, observed_at) -> bool:
        instance = self.instance_repo.get_by_id(snapshot.uuid)
        if instance.batch_id is not None or instance.is_migrating():
            return False
        if instance.source_id != source.id:
            logger.warning("Instance %s is already tracked from another source, skipping", snapshot.uuid,
                           extra={"instance": snapshot.uuid, "source": source.name})
            return False

        snapshot.apply_to(instance, observed_at)
        instance.validate()
        try:
            self.instance_repo.update_by_id(instance)
        except (NotFoundError, OperationNotPermittedError) as e:
            # 조회와 갱신 사이에 삭제/할당된 경우입니다.
            logger.info("Instance %s changed during sync, skipping: %s", snapshot.uuid, e,
                        extra={"instance": snapshot.uuid})
            return False
        return True


def unsupported_source_factory(source: Source) -> IInventorySource:
    raise NotImplementedError(
        f"No inventory driver available for source '{source.name}' of type '{source.source_type.value}'"
    )
