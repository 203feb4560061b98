# tests/conftest.py
import uuid
from datetime import datetime, timezone

import pytest

from migration_manager.database.database import create_db_engine, create_session_factory
from migration_manager.database.db_init import initialize_db
from migration_manager.domain import (
    Batch,
    CPUInfo,
    DiskInfo,
    Instance,
    MemoryInfo,
    NICInfo,
    Source,
    SourceType,
    Target,
    TargetType,
)
from migration_manager.repositories.sqlalchemy import (
    SqlalchemyBatchRepository,
    SqlalchemyInstanceRepository,
    SqlalchemyOverridesRepository,
    SqlalchemySourceRepository,
    SqlalchemyTargetRepository,
)

# ===================================================================
#  엔티티 생성 헬퍼
# ===================================================================

VMWARE_PROPERTIES = {"endpoint": "https://vcenter.example.com", "username": "admin", "password": "secret"}
LIBVIRT_PROPERTIES = {"endpoint": "qemu+tls://kvm01.example.com/system"}


def make_source(name="vcenter-01", **kwargs) -> Source:
    kwargs.setdefault("source_type", SourceType.VMWARE)
    kwargs.setdefault("properties", dict(VMWARE_PROPERTIES))
    return Source(name=name, **kwargs)


def make_target(name="kvm-01", **kwargs) -> Target:
    kwargs.setdefault("target_type", TargetType.LIBVIRT)
    kwargs.setdefault("properties", dict(LIBVIRT_PROPERTIES))
    return Target(name=name, **kwargs)


def make_instance(source_id: int, path="/dc/vm/web-01", **kwargs) -> Instance:
    """디스크, NIC, CPU, 메모리까지 채운 인스턴스를 만듭니다."""
    kwargs.setdefault("uuid", uuid.uuid4())
    kwargs.setdefault("os", "Ubuntu")
    kwargs.setdefault("os_version", "24.04")
    kwargs.setdefault("architecture", "x86_64")
    kwargs.setdefault("disks", [DiskInfo(name="web-01.vmdk", differential_sync_supported=True, size_in_bytes=10 * 1024 ** 3)])
    kwargs.setdefault("nics", [NICInfo(network="VM Network", hwaddr="00:50:56:aa:bb:cc")])
    kwargs.setdefault("cpu", CPUInfo(number_cpus=2, cpu_affinity=[0, 1], number_of_cores_per_socket=2))
    kwargs.setdefault("memory", MemoryInfo(memory_in_bytes=4 * 1024 ** 3, memory_reservation_in_bytes=0))
    kwargs.setdefault("last_update_from_source", datetime(2024, 5, 1, 12, 30, 15, 123456, tzinfo=timezone.utc))
    return Instance(inventory_path=path, source_id=source_id, **kwargs)


def make_batch(target_id: int, name="batch-01", expression='os == "Ubuntu"', **kwargs) -> Batch:
    return Batch(name=name, target_id=target_id, include_expression=expression, **kwargs)


# ===================================================================
#  SQLite 기반 Fixture
# ===================================================================

@pytest.fixture
def engine(tmp_path):
    """테스트마다 새 SQLite 파일로 스키마를 만든 엔진을 생성합니다."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'test.db'}")
    initialize_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def source_repo(session_factory) -> SqlalchemySourceRepository:
    return SqlalchemySourceRepository(session_factory)


@pytest.fixture
def target_repo(session_factory) -> SqlalchemyTargetRepository:
    return SqlalchemyTargetRepository(session_factory)


@pytest.fixture
def instance_repo(session_factory) -> SqlalchemyInstanceRepository:
    return SqlalchemyInstanceRepository(session_factory)


@pytest.fixture
def overrides_repo(session_factory) -> SqlalchemyOverridesRepository:
    return SqlalchemyOverridesRepository(session_factory)


@pytest.fixture
def batch_repo(session_factory) -> SqlalchemyBatchRepository:
    return SqlalchemyBatchRepository(session_factory)


@pytest.fixture
def source(source_repo) -> Source:
    return source_repo.create(make_source())


@pytest.fixture
def target(target_repo) -> Target:
    return target_repo.create(make_target())
