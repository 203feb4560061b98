from enum import Enum


class SourceType(str, Enum):
    """인벤토리를 제공하는 원본 플랫폼의 종류"""
    COMMON = "common"
    VMWARE = "vmware"


class TargetType(str, Enum):
    """인스턴스를 옮겨 갈 타겟 가상화 플랫폼의 종류"""
    INCUS = "incus"
    LIBVIRT = "libvirt"


class MigrationStatus(str, Enum):
    """
    인스턴스 하나의 마이그레이션 생명주기 상태입니다.

    정상 경로는 NOT_ASSIGNED_BATCH → ASSIGNED_BATCH → BACKGROUND_IMPORT →
    FINAL_IMPORT → CUTOVER_PENDING → MIGRATED 이며, 각 단계의 *_ERROR 상태는
    같은 단계에서 재시도할 수 있는 일시적 실패를 뜻합니다.
    """
    NOT_ASSIGNED_BATCH = "not_assigned_batch"
    ASSIGNED_BATCH = "assigned_batch"
    BACKGROUND_IMPORT = "background_import"
    BACKGROUND_IMPORT_ERROR = "background_import_error"
    FINAL_IMPORT = "final_import"
    FINAL_IMPORT_ERROR = "final_import_error"
    CUTOVER_PENDING = "cutover_pending"
    CUTOVER_ERROR = "cutover_error"
    MIGRATED = "migrated"
    ERROR = "error"
    DISABLED = "disabled"

    @property
    def description(self) -> str:
        return _MIGRATION_STATUS_DESCRIPTIONS[self]

    def is_migrating(self) -> bool:
        return self in MIGRATING_STATUSES

    def is_terminal(self) -> bool:
        return self in (MigrationStatus.MIGRATED, MigrationStatus.ERROR)


_MIGRATION_STATUS_DESCRIPTIONS = {
    MigrationStatus.NOT_ASSIGNED_BATCH: "Not assigned to a batch",
    MigrationStatus.ASSIGNED_BATCH: "Assigned to a batch",
    MigrationStatus.BACKGROUND_IMPORT: "Performing background import tasks",
    MigrationStatus.BACKGROUND_IMPORT_ERROR: "Background import failed",
    MigrationStatus.FINAL_IMPORT: "Performing final import tasks",
    MigrationStatus.FINAL_IMPORT_ERROR: "Final import failed",
    MigrationStatus.CUTOVER_PENDING: "Waiting for cutover",
    MigrationStatus.CUTOVER_ERROR: "Cutover failed",
    MigrationStatus.MIGRATED: "Migration finished",
    MigrationStatus.ERROR: "Error",
    MigrationStatus.DISABLED: "Migration disabled by user",
}

# 디스크 데이터가 이동 중이거나 컷오버를 기다리는 "활성 마이그레이션" 상태
MIGRATING_STATUSES = frozenset({
    MigrationStatus.BACKGROUND_IMPORT,
    MigrationStatus.BACKGROUND_IMPORT_ERROR,
    MigrationStatus.FINAL_IMPORT,
    MigrationStatus.FINAL_IMPORT_ERROR,
    MigrationStatus.CUTOVER_PENDING,
    MigrationStatus.CUTOVER_ERROR,
})


class BatchStatus(str, Enum):
    DEFINED = "defined"
    READY = "ready"
    QUEUED = "queued"
    RUNNING = "running"
    STOPPED = "stopped"
    FINISHED = "finished"
    ERROR = "error"

    @property
    def description(self) -> str:
        return _BATCH_STATUS_DESCRIPTIONS[self]


_BATCH_STATUS_DESCRIPTIONS = {
    BatchStatus.DEFINED: "Defined",
    BatchStatus.READY: "Ready",
    BatchStatus.QUEUED: "Queued, waiting for migration window",
    BatchStatus.RUNNING: "Running",
    BatchStatus.STOPPED: "Stopped",
    BatchStatus.FINISHED: "Finished",
    BatchStatus.ERROR: "Error",
}
