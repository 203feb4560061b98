from dataclasses import asdict
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from migration_manager.database import models
from migration_manager.database.transaction import transaction
from migration_manager.domain import (
    MIGRATING_STATUSES,
    CPUInfo,
    DiskInfo,
    Instance,
    MemoryInfo,
    MigrationStatus,
    NICInfo,
)
from migration_manager.repositories.interfaces import IInstanceRepository
from migration_manager.repositories.sqlalchemy.sqlalchemy_overrides_repository import to_overrides_entity
from migration_manager.services.exceptions import NotFoundError, OperationNotPermittedError

_MIGRATING_VALUES = [status.value for status in MIGRATING_STATUSES]


class SqlalchemyInstanceRepository(IInstanceRepository):
    """
    인스턴스 저장소.

    동시에 여러 워커가 같은 행을 건드리므로, 불변식이 걸린 갱신은 모두
    "조건부 UPDATE 후 영향 받은 행 수 확인" 방식으로 원자적으로 처리합니다.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def create(self, instance: Instance) -> Instance:
        row = models.InstanceRow(uuid=str(instance.uuid), secret_token=str(instance.secret_token), **_to_columns(instance))
        with transaction(self.session_factory) as db:
            db.add(row)
            db.flush()
            return _to_entity(row)

    def get_all(self) -> List[Instance]:
        with transaction(self.session_factory) as db:
            query = db.query(models.InstanceRow).order_by(models.InstanceRow.inventory_path.asc())
            return _load(db, query.all())

    def get_all_uuids(self) -> List[UUID]:
        with transaction(self.session_factory) as db:
            return [UUID(row[0]) for row in db.query(models.InstanceRow.uuid).all()]

    def get_all_by_state(self, status: MigrationStatus) -> List[Instance]:
        with transaction(self.session_factory) as db:
            query = (
                db.query(models.InstanceRow)
                .filter(models.InstanceRow.migration_status == MigrationStatus(status).value)
                .order_by(models.InstanceRow.inventory_path.asc())
            )
            return _load(db, query.all())

    def get_all_by_batch(self, batch_id: int) -> List[Instance]:
        with transaction(self.session_factory) as db:
            query = (
                db.query(models.InstanceRow)
                .filter(models.InstanceRow.batch_id == batch_id)
                .order_by(models.InstanceRow.inventory_path.asc())
            )
            return _load(db, query.all())

    def get_all_by_source(self, source_id: int) -> List[Instance]:
        with transaction(self.session_factory) as db:
            query = (
                db.query(models.InstanceRow)
                .filter(models.InstanceRow.source_id == source_id)
                .order_by(models.InstanceRow.inventory_path.asc())
            )
            return _load(db, query.all())

    def get_all_unassigned(self) -> List[Instance]:
        with transaction(self.session_factory) as db:
            query = (
                db.query(models.InstanceRow)
                .filter(models.InstanceRow.batch_id.is_(None))
                .filter(models.InstanceRow.migration_status == MigrationStatus.NOT_ASSIGNED_BATCH.value)
                .order_by(models.InstanceRow.inventory_path.asc())
            )
            return _load(db, query.all())

    def get_by_id(self, uuid: UUID) -> Instance:
        with transaction(self.session_factory) as db:
            row = db.query(models.InstanceRow).filter(models.InstanceRow.uuid == str(uuid)).first()
            if not row:
                raise NotFoundError(f"Instance '{uuid}' not found.")
            return _load(db, [row])[0]

    def update_by_id(self, instance: Instance) -> Instance:
        with transaction(self.session_factory) as db:
            # 배치에 할당되었거나 마이그레이션 중인 인스턴스는 전체 갱신 대상에서 제외됩니다.
            updated = (
                db.query(models.InstanceRow)
                .filter(models.InstanceRow.uuid == str(instance.uuid))
                .filter(models.InstanceRow.batch_id.is_(None))
                .filter(models.InstanceRow.migration_status.notin_(_MIGRATING_VALUES))
                .update(_to_columns(instance), synchronize_session=False)
            )
            if updated == 0:
                _raise_missing_or_refused(db, instance.uuid, "is assigned to a batch or being migrated, can't update")
            return instance

    def update_status_by_id(
        self,
        uuid: UUID,
        status: MigrationStatus,
        status_string: str,
        needs_disk_import: bool,
        expected_status: Optional[MigrationStatus] = None,
    ) -> bool:
        with transaction(self.session_factory) as db:
            query = db.query(models.InstanceRow).filter(models.InstanceRow.uuid == str(uuid))
            if expected_status is not None:
                query = query.filter(models.InstanceRow.migration_status == MigrationStatus(expected_status).value)

            updated = query.update(
                {
                    "migration_status": MigrationStatus(status).value,
                    "migration_status_string": status_string,
                    "needs_disk_import": needs_disk_import,
                },
                synchronize_session=False,
            )
            if updated == 0:
                if not _exists(db, uuid):
                    raise NotFoundError(f"Instance '{uuid}' not found, can't update status.")
                return False
            return True

    def assign_batch(self, uuid: UUID, batch_id: int, target_id: int, status_string: str) -> bool:
        with transaction(self.session_factory) as db:
            updated = (
                db.query(models.InstanceRow)
                .filter(models.InstanceRow.uuid == str(uuid))
                .filter(models.InstanceRow.batch_id.is_(None))
                .filter(models.InstanceRow.migration_status == MigrationStatus.NOT_ASSIGNED_BATCH.value)
                .update(
                    {
                        "batch_id": batch_id,
                        "target_id": target_id,
                        "migration_status": MigrationStatus.ASSIGNED_BATCH.value,
                        "migration_status_string": status_string,
                    },
                    synchronize_session=False,
                )
            )
            return updated == 1

    def unassign_batch(self, uuid: UUID, status: MigrationStatus, status_string: str):
        with transaction(self.session_factory) as db:
            updated = (
                db.query(models.InstanceRow)
                .filter(models.InstanceRow.uuid == str(uuid))
                .filter(models.InstanceRow.migration_status.notin_(_MIGRATING_VALUES))
                .update(
                    {
                        "batch_id": None,
                        "target_id": None,
                        "migration_status": MigrationStatus(status).value,
                        "migration_status_string": status_string,
                        "needs_disk_import": False,
                    },
                    synchronize_session=False,
                )
            )
            if updated == 0:
                _raise_missing_or_refused(db, uuid, "is being migrated, can't unassign")

    def delete_by_id(self, uuid: UUID):
        with transaction(self.session_factory) as db:
            _delete_instance(db, uuid)

    def delete_with_overrides_by_id(self, uuid: UUID):
        with transaction(self.session_factory) as db:
            db.query(models.OverridesRow).filter(models.OverridesRow.uuid == str(uuid)).delete(synchronize_session=False)
            # 인스턴스 삭제가 거부되면 예외로 트랜잭션 전체가 롤백되어 보정값도 남습니다.
            _delete_instance(db, uuid)


def _delete_instance(db: Session, uuid: UUID):
    deleted = (
        db.query(models.InstanceRow)
        .filter(models.InstanceRow.uuid == str(uuid))
        .filter(models.InstanceRow.batch_id.is_(None))
        .filter(models.InstanceRow.migration_status.notin_(_MIGRATING_VALUES))
        .delete(synchronize_session=False)
    )
    if deleted == 0:
        _raise_missing_or_refused(db, uuid, "is assigned to a batch or being migrated, can't delete")


def _exists(db: Session, uuid: UUID) -> bool:
    return db.query(models.InstanceRow.uuid).filter(models.InstanceRow.uuid == str(uuid)).first() is not None


def _raise_missing_or_refused(db: Session, uuid: UUID, reason: str):
    # UPDATE가 먼저 쓰기 잠금을 잡은 뒤에 존재 여부를 확인합니다.
    if not _exists(db, uuid):
        raise NotFoundError(f"Instance '{uuid}' not found.")
    raise OperationNotPermittedError(f"Instance '{uuid}' {reason}.")


def _load(db: Session, rows: List[models.InstanceRow]) -> List[Instance]:
    """인스턴스 행 목록을 엔티티로 바꾸면서, 보정값을 한 번의 쿼리로 함께 채웁니다."""
    if not rows:
        return []

    uuids = [row.uuid for row in rows]
    overrides = {
        row.uuid: to_overrides_entity(row)
        for row in db.query(models.OverridesRow).filter(models.OverridesRow.uuid.in_(uuids)).all()
    }

    instances = []
    for row in rows:
        instance = _to_entity(row)
        instance.overrides = overrides.get(row.uuid)
        instances.append(instance)
    return instances


def _to_columns(instance: Instance) -> dict:
    return {
        "inventory_path": instance.inventory_path,
        "annotation": instance.annotation,
        "migration_status": MigrationStatus(instance.migration_status).value,
        "migration_status_string": instance.migration_status_string,
        "last_update_from_source": instance.last_update_from_source,
        "source_id": instance.source_id,
        "target_id": instance.target_id,
        "batch_id": instance.batch_id,
        "guest_tools_version": instance.guest_tools_version,
        "architecture": instance.architecture,
        "hardware_version": instance.hardware_version,
        "os": instance.os,
        "os_version": instance.os_version,
        "devices": list(instance.devices),
        "disks": [asdict(disk) for disk in instance.disks],
        "nics": [asdict(nic) for nic in instance.nics],
        "snapshots": list(instance.snapshots),
        "cpu": asdict(instance.cpu),
        "memory": asdict(instance.memory),
        "use_legacy_bios": instance.use_legacy_bios,
        "secure_boot_enabled": instance.secure_boot_enabled,
        "tpm_present": instance.tpm_present,
        "needs_disk_import": instance.needs_disk_import,
    }


def _to_entity(row: models.InstanceRow) -> Instance:
    return Instance(
        uuid=UUID(row.uuid),
        inventory_path=row.inventory_path,
        annotation=row.annotation,
        migration_status=MigrationStatus(row.migration_status),
        migration_status_string=row.migration_status_string,
        last_update_from_source=row.last_update_from_source,
        source_id=row.source_id,
        target_id=row.target_id,
        batch_id=row.batch_id,
        guest_tools_version=row.guest_tools_version,
        architecture=row.architecture,
        hardware_version=row.hardware_version,
        os=row.os,
        os_version=row.os_version,
        devices=list(row.devices),
        disks=[DiskInfo.from_dict(disk) for disk in row.disks],
        nics=[NICInfo.from_dict(nic) for nic in row.nics],
        snapshots=list(row.snapshots),
        cpu=CPUInfo.from_dict(row.cpu),
        memory=MemoryInfo.from_dict(row.memory),
        use_legacy_bios=row.use_legacy_bios,
        secure_boot_enabled=row.secure_boot_enabled,
        tpm_present=row.tpm_present,
        needs_disk_import=row.needs_disk_import,
        secret_token=UUID(row.secret_token),
    )
