from sqlalchemy import JSON, Boolean, Column, ForeignKey, Integer, String
from ..database import Base
from ..types import ISODateTime


class InstanceRow(Base):
    """
    마이그레이션 대상 VM 한 대를 저장합니다.
    디스크, NIC, 스냅샷, CPU/메모리 구조체는 JSON 컬럼에 그대로 직렬화합니다.
    """
    __tablename__ = "instances"
    uuid = Column(String(36), primary_key=True)
    inventory_path = Column(String, nullable=False, index=True)
    annotation = Column(String, nullable=False, default="")
    migration_status = Column(String, nullable=False, index=True)
    migration_status_string = Column(String, nullable=False, default="")
    last_update_from_source = Column(ISODateTime, nullable=False)

    source_id = Column(Integer, ForeignKey("sources.id"), nullable=False, index=True)
    target_id = Column(Integer, ForeignKey("targets.id"), nullable=True, index=True)
    batch_id = Column(Integer, ForeignKey("batches.id"), nullable=True, index=True)

    guest_tools_version = Column(Integer, nullable=False, default=0)
    architecture = Column(String, nullable=False, default="")
    hardware_version = Column(String, nullable=False, default="")
    os = Column(String, nullable=False, default="")
    os_version = Column(String, nullable=False, default="")
    devices = Column(JSON, nullable=False)
    disks = Column(JSON, nullable=False)
    nics = Column(JSON, nullable=False)
    snapshots = Column(JSON, nullable=False)
    cpu = Column(JSON, nullable=False)
    memory = Column(JSON, nullable=False)

    use_legacy_bios = Column(Boolean, nullable=False, default=False)
    secure_boot_enabled = Column(Boolean, nullable=False, default=False)
    tpm_present = Column(Boolean, nullable=False, default=False)
    needs_disk_import = Column(Boolean, nullable=False, default=False)
    secret_token = Column(String(36), nullable=False)
