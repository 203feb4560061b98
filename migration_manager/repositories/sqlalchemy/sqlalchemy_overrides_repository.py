from uuid import UUID

from sqlalchemy.orm import sessionmaker

from migration_manager.database import models
from migration_manager.database.transaction import transaction
from migration_manager.domain import Overrides
from migration_manager.repositories.interfaces import IOverridesRepository
from migration_manager.services.exceptions import ConstraintViolationError, NotFoundError


class SqlalchemyOverridesRepository(IOverridesRepository):
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def create(self, overrides: Overrides) -> Overrides:
        with transaction(self.session_factory) as db:
            instance = db.query(models.InstanceRow.uuid).filter(models.InstanceRow.uuid == str(overrides.uuid)).first()
            if instance is None:
                raise NotFoundError(f"Instance '{overrides.uuid}' not found, can't create overrides.")

            existing = db.query(models.OverridesRow.uuid).filter(models.OverridesRow.uuid == str(overrides.uuid)).first()
            if existing is not None:
                raise ConstraintViolationError(f"Overrides for instance '{overrides.uuid}' already exist.")

            row = models.OverridesRow(uuid=str(overrides.uuid), **_to_columns(overrides))
            db.add(row)
            db.flush()
            return to_overrides_entity(row)

    def get_by_id(self, uuid: UUID) -> Overrides:
        with transaction(self.session_factory) as db:
            row = db.query(models.OverridesRow).filter(models.OverridesRow.uuid == str(uuid)).first()
            if not row:
                raise NotFoundError(f"Overrides for instance '{uuid}' not found.")
            return to_overrides_entity(row)

    def update_by_id(self, overrides: Overrides) -> Overrides:
        with transaction(self.session_factory) as db:
            updated = (
                db.query(models.OverridesRow)
                .filter(models.OverridesRow.uuid == str(overrides.uuid))
                .update(_to_columns(overrides), synchronize_session=False)
            )
            if updated == 0:
                raise NotFoundError(f"Overrides for instance '{overrides.uuid}' not found, can't update.")
            return overrides

    def delete_by_id(self, uuid: UUID):
        with transaction(self.session_factory) as db:
            deleted = (
                db.query(models.OverridesRow)
                .filter(models.OverridesRow.uuid == str(uuid))
                .delete(synchronize_session=False)
            )
            if deleted == 0:
                raise NotFoundError(f"Overrides for instance '{uuid}' not found, can't delete.")


def _to_columns(overrides: Overrides) -> dict:
    return {
        "last_update": overrides.last_update,
        "comment": overrides.comment,
        "number_cpus": overrides.number_cpus,
        "memory_in_bytes": overrides.memory_in_bytes,
        "disable_migration": overrides.disable_migration,
    }


def to_overrides_entity(row: models.OverridesRow) -> Overrides:
    return Overrides(
        uuid=UUID(row.uuid),
        last_update=row.last_update,
        comment=row.comment,
        number_cpus=row.number_cpus,
        memory_in_bytes=row.memory_in_bytes,
        disable_migration=row.disable_migration,
    )
