import posixpath
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from migration_manager.domain.types import MigrationStatus
from migration_manager.domain.validation import require_non_empty, require_non_negative_id
from migration_manager.services.exceptions import ValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DiskInfo:
    name: str
    differential_sync_supported: bool = False
    size_in_bytes: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DiskInfo":
        return cls(**data)


@dataclass
class NICInfo:
    network: str
    hwaddr: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NICInfo":
        return cls(**data)


@dataclass
class CPUInfo:
    number_cpus: int = 0
    cpu_affinity: List[int] = field(default_factory=list)
    number_of_cores_per_socket: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CPUInfo":
        return cls(
            number_cpus=data.get("number_cpus", 0),
            cpu_affinity=list(data.get("cpu_affinity") or []),
            number_of_cores_per_socket=data.get("number_of_cores_per_socket", 0),
        )


@dataclass
class MemoryInfo:
    memory_in_bytes: int = 0
    memory_reservation_in_bytes: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MemoryInfo":
        return cls(**data)


@dataclass
class Overrides:
    """
    운영자가 인스턴스의 유효 설정을 보정하기 위해 남기는 값입니다.
    number_cpus, memory_in_bytes가 0이면 "보정 없음"을 뜻합니다.
    """
    uuid: UUID
    last_update: datetime = field(default_factory=utcnow)
    comment: str = ""
    number_cpus: int = 0
    memory_in_bytes: int = 0
    disable_migration: bool = False

    def validate(self):
        if not isinstance(self.uuid, UUID) or self.uuid.int == 0:
            raise ValidationError("Invalid overrides, uuid must be a valid instance UUID")
        if self.number_cpus < 0:
            raise ValidationError("Invalid overrides, number of CPUs can not be negative")
        if self.memory_in_bytes < 0:
            raise ValidationError("Invalid overrides, memory can not be negative")


@dataclass
class Instance:
    """
    마이그레이션 대상 가상 머신 하나를 나타냅니다.

    인벤토리 동기화가 생성/갱신하고, 상태 머신이 migration_status를 진행시킵니다.
    overrides는 별도 집합체이며 조회 시점에만 합쳐지므로 동등성 비교에서 제외됩니다.
    """
    uuid: UUID
    inventory_path: str
    source_id: int
    annotation: str = ""
    migration_status: MigrationStatus = MigrationStatus.NOT_ASSIGNED_BATCH
    migration_status_string: str = MigrationStatus.NOT_ASSIGNED_BATCH.description
    last_update_from_source: datetime = field(default_factory=utcnow)
    target_id: Optional[int] = None
    batch_id: Optional[int] = None
    guest_tools_version: int = 0
    architecture: str = ""
    hardware_version: str = ""
    os: str = ""
    os_version: str = ""
    devices: List[Dict[str, Any]] = field(default_factory=list)
    disks: List[DiskInfo] = field(default_factory=list)
    nics: List[NICInfo] = field(default_factory=list)
    snapshots: List[Dict[str, Any]] = field(default_factory=list)
    cpu: CPUInfo = field(default_factory=CPUInfo)
    memory: MemoryInfo = field(default_factory=MemoryInfo)
    use_legacy_bios: bool = False
    secure_boot_enabled: bool = False
    tpm_present: bool = False
    needs_disk_import: bool = False
    secret_token: UUID = field(default_factory=uuid4)
    overrides: Optional[Overrides] = field(default=None, compare=False, repr=False)

    @property
    def name(self) -> str:
        return posixpath.basename(self.inventory_path.rstrip("/"))

    def is_migrating(self) -> bool:
        return MigrationStatus(self.migration_status).is_migrating()

    def is_migration_disabled(self) -> bool:
        return self.overrides is not None and self.overrides.disable_migration

    @property
    def effective_number_cpus(self) -> int:
        if self.overrides is not None and self.overrides.number_cpus > 0:
            return self.overrides.number_cpus
        return self.cpu.number_cpus

    @property
    def effective_memory_in_bytes(self) -> int:
        if self.overrides is not None and self.overrides.memory_in_bytes > 0:
            return self.overrides.memory_in_bytes
        return self.memory.memory_in_bytes

    def validate(self):
        if not isinstance(self.uuid, UUID) or self.uuid.int == 0:
            raise ValidationError("Invalid instance, uuid must be a valid UUID")

        require_non_empty("instance", self.inventory_path, field="inventory path")
        require_non_negative_id("instance", self.source_id, field="source id")
        require_non_negative_id("instance", self.target_id, field="target id")
        require_non_negative_id("instance", self.batch_id, field="batch id")

        try:
            self.migration_status = MigrationStatus(self.migration_status)
        except ValueError:
            raise ValidationError(f"Invalid instance, {self.migration_status!r} is not a valid migration status")

        if self.cpu.number_cpus < 0 or self.cpu.number_of_cores_per_socket < 0:
            raise ValidationError("Invalid instance, CPU counts can not be negative")
        if any(core < 0 for core in self.cpu.cpu_affinity):
            raise ValidationError("Invalid instance, CPU affinity can not contain negative cores")
        if self.memory.memory_in_bytes < 0 or self.memory.memory_reservation_in_bytes < 0:
            raise ValidationError("Invalid instance, memory can not be negative")

        for disk in self.disks:
            require_non_empty("instance", disk.name, field="disk name")
            if disk.size_in_bytes < 0:
                raise ValidationError(f"Invalid instance, disk '{disk.name}' size can not be negative")

        if not isinstance(self.secret_token, UUID):
            raise ValidationError("Invalid instance, secret token must be a UUID")


@dataclass
class InstanceSnapshot:
    """인벤토리 소스가 보고한 VM 한 대의 현재 모습. 인스턴스의 인벤토리 필드만 담습니다."""
    uuid: UUID
    inventory_path: str
    annotation: str = ""
    guest_tools_version: int = 0
    architecture: str = ""
    hardware_version: str = ""
    os: str = ""
    os_version: str = ""
    devices: List[Dict[str, Any]] = field(default_factory=list)
    disks: List[DiskInfo] = field(default_factory=list)
    nics: List[NICInfo] = field(default_factory=list)
    snapshots: List[Dict[str, Any]] = field(default_factory=list)
    cpu: CPUInfo = field(default_factory=CPUInfo)
    memory: MemoryInfo = field(default_factory=MemoryInfo)
    use_legacy_bios: bool = False
    secure_boot_enabled: bool = False
    tpm_present: bool = False

    def to_instance(self, source_id: int, observed_at: datetime) -> Instance:
        instance = Instance(uuid=self.uuid, inventory_path=self.inventory_path, source_id=source_id)
        self.apply_to(instance, observed_at)
        return instance

    def apply_to(self, instance: Instance, observed_at: datetime):
        for f in fields(self):
            if f.name != "uuid":
                setattr(instance, f.name, getattr(self, f.name))
        instance.last_update_from_source = observed_at
