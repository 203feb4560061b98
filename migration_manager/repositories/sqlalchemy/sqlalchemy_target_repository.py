from typing import List

from sqlalchemy.orm import sessionmaker

from migration_manager.database import models
from migration_manager.database.transaction import transaction
from migration_manager.domain import Target, TargetType
from migration_manager.repositories.interfaces import ITargetRepository
from migration_manager.services.exceptions import ConstraintViolationError, NotFoundError


class SqlalchemyTargetRepository(ITargetRepository):
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def create(self, target: Target) -> Target:
        row = models.TargetRow(name=target.name, target_type=TargetType(target.target_type).value, properties=target.properties)
        with transaction(self.session_factory) as db:
            db.add(row)
            db.flush()
            return _to_entity(row)

    def get_all(self) -> List[Target]:
        with transaction(self.session_factory) as db:
            rows = db.query(models.TargetRow).order_by(models.TargetRow.name.asc()).all()
            return [_to_entity(row) for row in rows]

    def get_all_names(self) -> List[str]:
        with transaction(self.session_factory) as db:
            return [row[0] for row in db.query(models.TargetRow.name).order_by(models.TargetRow.name.asc()).all()]

    def get_by_id(self, target_id: int) -> Target:
        with transaction(self.session_factory) as db:
            row = db.query(models.TargetRow).filter(models.TargetRow.id == target_id).first()
            if not row:
                raise NotFoundError(f"Target with id '{target_id}' not found.")
            return _to_entity(row)

    def get_by_name(self, name: str) -> Target:
        with transaction(self.session_factory) as db:
            row = db.query(models.TargetRow).filter(models.TargetRow.name == name).first()
            if not row:
                raise NotFoundError(f"Target '{name}' not found.")
            return _to_entity(row)

    def update_by_id(self, target: Target) -> Target:
        with transaction(self.session_factory) as db:
            updated = db.query(models.TargetRow).filter(models.TargetRow.id == target.id).update(
                {
                    "name": target.name,
                    "target_type": TargetType(target.target_type).value,
                    "properties": target.properties,
                },
                synchronize_session=False,
            )
            if updated == 0:
                raise NotFoundError(f"Target with id '{target.id}' not found, can't update.")
            return target

    def delete_by_name(self, name: str):
        with transaction(self.session_factory) as db:
            row = db.query(models.TargetRow).filter(models.TargetRow.name == name).first()
            if not row:
                raise NotFoundError(f"Target '{name}' not found, can't delete.")

            instances = db.query(models.InstanceRow).filter(models.InstanceRow.target_id == row.id).count()
            batches = db.query(models.BatchRow).filter(models.BatchRow.target_id == row.id).count()
            if instances > 0 or batches > 0:
                raise ConstraintViolationError(
                    f"Target '{name}' is referenced by {instances} instance(s) and {batches} batch(es)."
                )

            db.query(models.TargetRow).filter(models.TargetRow.id == row.id).delete(synchronize_session=False)


def _to_entity(row: models.TargetRow) -> Target:
    return Target(id=row.id, name=row.name, target_type=TargetType(row.target_type), properties=row.properties)
