from .types import MIGRATING_STATUSES, BatchStatus, MigrationStatus, SourceType, TargetType
from .source import Source
from .target import Target
from .instance import CPUInfo, DiskInfo, Instance, InstanceSnapshot, MemoryInfo, NICInfo, Overrides, utcnow
from .batch import Batch
