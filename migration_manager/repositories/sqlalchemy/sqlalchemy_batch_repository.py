from typing import List

from sqlalchemy.orm import sessionmaker

from migration_manager.database import models
from migration_manager.database.transaction import transaction
from migration_manager.domain import Batch, BatchStatus
from migration_manager.repositories.interfaces import IBatchRepository
from migration_manager.services.exceptions import ConstraintViolationError, NotFoundError


class SqlalchemyBatchRepository(IBatchRepository):
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def create(self, batch: Batch) -> Batch:
        row = models.BatchRow(**_to_columns(batch))
        with transaction(self.session_factory) as db:
            db.add(row)
            db.flush()
            return _to_entity(row)

    def get_all(self) -> List[Batch]:
        with transaction(self.session_factory) as db:
            rows = db.query(models.BatchRow).order_by(models.BatchRow.id.asc()).all()
            return [_to_entity(row) for row in rows]

    def get_all_names(self) -> List[str]:
        with transaction(self.session_factory) as db:
            return [row[0] for row in db.query(models.BatchRow.name).order_by(models.BatchRow.name.asc()).all()]

    def get_by_id(self, batch_id: int) -> Batch:
        with transaction(self.session_factory) as db:
            row = db.query(models.BatchRow).filter(models.BatchRow.id == batch_id).first()
            if not row:
                raise NotFoundError(f"Batch with id '{batch_id}' not found.")
            return _to_entity(row)

    def get_by_name(self, name: str) -> Batch:
        with transaction(self.session_factory) as db:
            row = db.query(models.BatchRow).filter(models.BatchRow.name == name).first()
            if not row:
                raise NotFoundError(f"Batch '{name}' not found.")
            return _to_entity(row)

    def update_by_id(self, batch: Batch) -> Batch:
        with transaction(self.session_factory) as db:
            updated = db.query(models.BatchRow).filter(models.BatchRow.id == batch.id).update(
                _to_columns(batch), synchronize_session=False
            )
            if updated == 0:
                raise NotFoundError(f"Batch with id '{batch.id}' not found, can't update.")
            return batch

    def update_status_by_id(self, batch_id: int, status: BatchStatus, status_string: str):
        with transaction(self.session_factory) as db:
            updated = db.query(models.BatchRow).filter(models.BatchRow.id == batch_id).update(
                {"status": BatchStatus(status).value, "status_string": status_string},
                synchronize_session=False,
            )
            if updated == 0:
                raise NotFoundError(f"Batch with id '{batch_id}' not found, can't update status.")

    def delete_by_name(self, name: str):
        with transaction(self.session_factory) as db:
            row = db.query(models.BatchRow).filter(models.BatchRow.name == name).first()
            if not row:
                raise NotFoundError(f"Batch '{name}' not found, can't delete.")

            members = db.query(models.InstanceRow).filter(models.InstanceRow.batch_id == row.id).count()
            if members > 0:
                raise ConstraintViolationError(f"Batch '{name}' still has {members} assigned instance(s).")

            db.query(models.BatchRow).filter(models.BatchRow.id == row.id).delete(synchronize_session=False)


def _to_columns(batch: Batch) -> dict:
    return {
        "name": batch.name,
        "target_id": batch.target_id,
        "storage_pool": batch.storage_pool,
        "include_expression": batch.include_expression,
        "migration_window_start": batch.migration_window_start,
        "migration_window_end": batch.migration_window_end,
        "default_network": batch.default_network,
        "status": BatchStatus(batch.status).value,
        "status_string": batch.status_string,
    }


def _to_entity(row: models.BatchRow) -> Batch:
    return Batch(
        id=row.id,
        name=row.name,
        target_id=row.target_id,
        storage_pool=row.storage_pool,
        include_expression=row.include_expression,
        migration_window_start=row.migration_window_start,
        migration_window_end=row.migration_window_end,
        default_network=row.default_network,
        status=BatchStatus(row.status),
        status_string=row.status_string,
    )
