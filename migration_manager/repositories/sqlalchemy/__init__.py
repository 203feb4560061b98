from .sqlalchemy_batch_repository import SqlalchemyBatchRepository
from .sqlalchemy_instance_repository import SqlalchemyInstanceRepository
from .sqlalchemy_overrides_repository import SqlalchemyOverridesRepository
from .sqlalchemy_source_repository import SqlalchemySourceRepository
from .sqlalchemy_target_repository import SqlalchemyTargetRepository

__all__ = [
    "SqlalchemyBatchRepository",
    "SqlalchemyInstanceRepository",
    "SqlalchemyOverridesRepository",
    "SqlalchemySourceRepository",
    "SqlalchemyTargetRepository",
]
