from typing import List

from sqlalchemy.orm import sessionmaker

from migration_manager.database import models
from migration_manager.database.transaction import transaction
from migration_manager.domain import Source, SourceType
from migration_manager.repositories.interfaces import ISourceRepository
from migration_manager.services.exceptions import ConstraintViolationError, NotFoundError


class SqlalchemySourceRepository(ISourceRepository):
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def create(self, source: Source) -> Source:
        row = models.SourceRow(name=source.name, source_type=SourceType(source.source_type).value, properties=source.properties)
        with transaction(self.session_factory) as db:
            db.add(row)
            db.flush()
            return _to_entity(row)

    def get_all(self) -> List[Source]:
        with transaction(self.session_factory) as db:
            rows = db.query(models.SourceRow).order_by(models.SourceRow.name.asc()).all()
            return [_to_entity(row) for row in rows]

    def get_all_names(self) -> List[str]:
        with transaction(self.session_factory) as db:
            return [row[0] for row in db.query(models.SourceRow.name).order_by(models.SourceRow.name.asc()).all()]

    def get_by_id(self, source_id: int) -> Source:
        with transaction(self.session_factory) as db:
            row = db.query(models.SourceRow).filter(models.SourceRow.id == source_id).first()
            if not row:
                raise NotFoundError(f"Source with id '{source_id}' not found.")
            return _to_entity(row)

    def get_by_name(self, name: str) -> Source:
        with transaction(self.session_factory) as db:
            row = db.query(models.SourceRow).filter(models.SourceRow.name == name).first()
            if not row:
                raise NotFoundError(f"Source '{name}' not found.")
            return _to_entity(row)

    def update_by_id(self, source: Source) -> Source:
        with transaction(self.session_factory) as db:
            updated = db.query(models.SourceRow).filter(models.SourceRow.id == source.id).update(
                {
                    "name": source.name,
                    "source_type": SourceType(source.source_type).value,
                    "properties": source.properties,
                },
                synchronize_session=False,
            )
            if updated == 0:
                raise NotFoundError(f"Source with id '{source.id}' not found, can't update.")
            return source

    def delete_by_name(self, name: str):
        with transaction(self.session_factory) as db:
            row = db.query(models.SourceRow).filter(models.SourceRow.name == name).first()
            if not row:
                raise NotFoundError(f"Source '{name}' not found, can't delete.")

            references = db.query(models.InstanceRow).filter(models.InstanceRow.source_id == row.id).count()
            if references > 0:
                raise ConstraintViolationError(f"Source '{name}' is referenced by {references} instance(s).")

            db.query(models.SourceRow).filter(models.SourceRow.id == row.id).delete(synchronize_session=False)


def _to_entity(row: models.SourceRow) -> Source:
    return Source(id=row.id, name=row.name, source_type=SourceType(row.source_type), properties=row.properties)
