import libvirt
import logging
import os
import posixpath
import subprocess
from typing import List

from migration_manager.domain import Batch, Instance, Target
from migration_manager.services.exceptions import (
    DeadlineExceededError,
    FatalExecutionError,
    TransientExecutionError,
)
from migration_manager.targets.interface import ITargetExecution
from migration_manager.utils.deadline import Deadline
from migration_manager.utils.vm_xml_generator import generate_vm_xml

logger = logging.getLogger(__name__)


class LibvirtTarget(ITargetExecution):
    """
    libvirt/KVM 호스트를 타겟으로 하는 실행 드라이버.

    원본 플랫폼이 source_export_dir/<uuid>/ 아래에 내보낸 디스크 이미지를
    qemu-img로 storage_dir/<uuid>/ 아래 qcow2 이미지로 변환하고,
    생성한 도메인 XML로 libvirt에 인스턴스를 정의합니다.
    """

    def __init__(self, target: Target, connect=libvirt.open, run=subprocess.run):
        properties = target.decoded_properties()
        self.target_name = target.name
        self.uri = properties.endpoint
        self.storage_dir = properties.storage_dir
        self.source_export_dir = properties.source_export_dir
        self._connect = connect
        self._run = run

    def _open(self):
        try:
            conn = self._connect(self.uri)
        except libvirt.libvirtError as e:
            raise TransientExecutionError(f"Failed to open connection to the hypervisor at {self.uri}: {e}") from e
        if conn is None:
            raise TransientExecutionError(f"Failed to open connection to the hypervisor at {self.uri}.")
        return conn

    def disk_paths(self, instance: Instance) -> List[str]:
        base = posixpath.join(self.storage_dir, str(instance.uuid))
        return [posixpath.join(base, f"disk{index}.qcow2") for index in range(len(instance.disks))]

    def source_paths(self, instance: Instance) -> List[str]:
        base = posixpath.join(self.source_export_dir, str(instance.uuid))
        return [posixpath.join(base, posixpath.basename(disk.name)) for disk in instance.disks]

    def provision(self, instance: Instance, batch: Batch, deadline: Deadline):
        deadline.check("provision")
        conn = self._open()
        try:
            if self._lookup(conn, instance) is not None:
                logger.info("Domain for instance %s already defined on '%s'", instance.uuid, self.target_name,
                            extra={"instance": instance.uuid, "target": self.target_name})
                return

            if batch.storage_pool:
                try:
                    conn.storagePoolLookupByName(batch.storage_pool)
                except libvirt.libvirtError as e:
                    if e.get_error_code() == libvirt.VIR_ERR_NO_STORAGE_POOL:
                        raise FatalExecutionError(
                            f"Storage pool '{batch.storage_pool}' does not exist on target '{self.target_name}'"
                        ) from e
                    raise

            os.makedirs(posixpath.join(self.storage_dir, str(instance.uuid)), exist_ok=True)
            xml_config = generate_vm_xml(instance, self.disk_paths(instance), batch.default_network)
            conn.defineXML(xml_config)
            logger.info("Defined domain for instance %s on '%s'", instance.uuid, self.target_name,
                        extra={"instance": instance.uuid, "target": self.target_name})
        except libvirt.libvirtError as e:
            raise TransientExecutionError(f"Failed to define domain for instance '{instance.uuid}': {e}") from e
        finally:
            conn.close()

    def import_disks(self, instance: Instance, final: bool, deadline: Deadline):
        for disk, source_path, target_path in zip(instance.disks, self.source_paths(instance), self.disk_paths(instance)):
            deadline.check("disk import")

            command = ["qemu-img", "convert", "-O", "qcow2"]
            # 마지막 동기화는 백그라운드 단계에서 만든 이미지 위에 덮어씁니다.
            if final and disk.differential_sync_supported and os.path.exists(target_path):
                command.append("-n")
            command += [source_path, target_path]

            try:
                self._run(command, check=True, capture_output=True, timeout=deadline.remaining())
            except FileNotFoundError as e:
                raise FatalExecutionError("qemu-img is not installed on this host") from e
            except subprocess.TimeoutExpired as e:
                raise DeadlineExceededError(f"Import of disk '{disk.name}' did not finish in time") from e
            except subprocess.CalledProcessError as e:
                raise TransientExecutionError(
                    f"Import of disk '{disk.name}' failed: {(e.stderr or b'').decode(errors='replace').strip()}"
                ) from e

            logger.info("Imported disk '%s' of instance %s (final=%s)", disk.name, instance.uuid, final,
                        extra={"instance": instance.uuid})

    def cutover(self, instance: Instance, deadline: Deadline):
        deadline.check("cutover")
        conn = self._open()
        try:
            domain = self._lookup(conn, instance)
            if domain is None:
                raise FatalExecutionError(f"Domain for instance '{instance.uuid}' is not defined on '{self.target_name}'")
            if not domain.isActive():
                if domain.create() < 0:
                    raise TransientExecutionError(f"Failed to start domain for instance '{instance.uuid}'.")
        except libvirt.libvirtError as e:
            raise TransientExecutionError(f"Failed to start domain for instance '{instance.uuid}': {e}") from e
        finally:
            conn.close()

    @staticmethod
    def _lookup(conn, instance: Instance):
        try:
            return conn.lookupByUUIDString(str(instance.uuid))
        except libvirt.libvirtError as e:
            if e.get_error_code() == libvirt.VIR_ERR_NO_DOMAIN:
                return None
            raise
