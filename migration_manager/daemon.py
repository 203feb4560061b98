# migration_manager/daemon.py
import logging
import signal
import threading
from typing import List, Optional

from migration_manager.auth import TLSAuthorizer
from migration_manager.config import Settings
from migration_manager.database.database import create_db_engine, create_session_factory
from migration_manager.database.db_init import initialize_db
from migration_manager.logging_config import setup_logging
from migration_manager.repositories.sqlalchemy import (
    SqlalchemyBatchRepository,
    SqlalchemyInstanceRepository,
    SqlalchemyOverridesRepository,
    SqlalchemySourceRepository,
    SqlalchemyTargetRepository,
)
from migration_manager.services.batch_service import BatchService
from migration_manager.services.instance_service import InstanceService
from migration_manager.services.scheduler import BatchScheduler
from migration_manager.services.source_service import SourceService
from migration_manager.services.state_machine import MigrationStateMachine
from migration_manager.services.target_service import TargetService
from migration_manager.workers.inventory_sync import InventorySyncWorker, SourceFactory, unsupported_source_factory
from migration_manager.workers.loop import PeriodicWorker
from migration_manager.workers.migration_worker import MigrationWorker

logger = logging.getLogger(__name__)


class Daemon:
    """
    리포지토리, 서비스, 워커를 조립합니다. (의존성 주입)

    세 개의 주기 워커(스케줄러, 마이그레이션 실행, 인벤토리 동기화)는 서로 상태를 공유하지 않고
    DB를 통해서만 협력합니다.
    """

    def __init__(self, settings: Settings, source_factory: SourceFactory = unsupported_source_factory):
        self.settings = settings

        self.engine = create_db_engine(settings.database_url)
        initialize_db(self.engine)
        session_factory = create_session_factory(self.engine)

        # --- Repositories ---
        self.source_repo = SqlalchemySourceRepository(session_factory)
        self.target_repo = SqlalchemyTargetRepository(session_factory)
        self.instance_repo = SqlalchemyInstanceRepository(session_factory)
        self.overrides_repo = SqlalchemyOverridesRepository(session_factory)
        self.batch_repo = SqlalchemyBatchRepository(session_factory)

        # --- Services ---
        self.state_machine = MigrationStateMachine(self.instance_repo)
        self.source_service = SourceService(self.source_repo)
        self.target_service = TargetService(self.target_repo)
        self.instance_service = InstanceService(self.instance_repo, self.overrides_repo, self.source_repo, self.state_machine)
        self.batch_service = BatchService(self.batch_repo, self.instance_repo, self.target_repo)
        self.scheduler = BatchScheduler(self.batch_repo, self.instance_repo, self.source_repo)
        self.authorizer = TLSAuthorizer(settings.trusted_cert_fingerprints)

        # --- Workers ---
        self.migration_worker = MigrationWorker(
            self.batch_repo,
            self.instance_repo,
            self.target_repo,
            self.state_machine,
            call_timeout=settings.call_timeout,
            max_workers=settings.max_parallel_migrations,
        )
        self.inventory_sync = InventorySyncWorker(
            self.source_repo, self.instance_repo, source_factory,
            call_timeout=settings.call_timeout, state_machine=self.state_machine,
        )

        self.workers: List[PeriodicWorker] = [
            PeriodicWorker("scheduler", self.scheduler.sweep, settings.scheduler_interval),
            PeriodicWorker("migration", self.migration_worker.run_once, settings.migration_interval),
            PeriodicWorker("inventory-sync", self.inventory_sync.sync_all, settings.sync_interval),
        ]
        self._shutdown = threading.Event()

    def start(self):
        for worker in self.workers:
            worker.start()

    def stop(self):
        logger.info("Stopping workers")
        self._shutdown.set()
        for worker in self.workers:
            worker.stop()
        for worker in self.workers:
            worker.join(timeout=self.settings.call_timeout)
        self.engine.dispose()

    def run(self):
        """시그널(SIGINT/SIGTERM)을 받을 때까지 워커를 실행합니다."""
        def _handle_signal(signum, _frame):
            logger.info("Received signal %s, shutting down gracefully", signum)
            self._shutdown.set()

        signal.signal(signal.SIGINT, _handle_signal)
        signal.signal(signal.SIGTERM, _handle_signal)

        self.start()
        while not self._shutdown.wait(1.0):
            pass
        self.stop()


def main(settings: Optional[Settings] = None):
    settings = settings or Settings.from_env()
    setup_logging(settings.log_level, settings.json_logs, settings.log_file or None)
    logger.info("Migration manager starting (database: %s)", settings.database_url.split("@")[-1])
    Daemon(settings).run()
