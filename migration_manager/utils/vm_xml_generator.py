# migration_manager/utils/vm_xml_generator.py
from typing import List, Optional
from xml.sax.saxutils import escape, quoteattr

from migration_manager.domain import Instance

DOMAIN_TEMPLATE = """<domain type='kvm'>
  <name>{vm_name}</name>
  <uuid>{vm_uuid}</uuid>
  <description>{description}</description>
  <memory unit='KiB'>{ram_kib}</memory>
  <currentMemory unit='KiB'>{ram_kib}</currentMemory>
  <vcpu>{cpu_count}</vcpu>
{os_block}
  <features>
    <acpi/>
    <apic/>
{smm}  </features>
{cpu_block}
  <clock offset='utc'/>
  <on_poweroff>destroy</on_poweroff>
  <on_reboot>restart</on_reboot>
  <on_crash>destroy</on_crash>
  <devices>
{disks}{interfaces}{tpm}    <console type='pty'/>
    <graphics type='vnc' autoport='yes' listen='127.0.0.1'/>
  </devices>
</domain>
"""

BIOS_OS_TEMPLATE = """  <os>
    <type arch='{arch}' machine='pc'>hvm</type>
    <boot dev='hd'/>
  </os>"""

EFI_OS_TEMPLATE = """  <os firmware='efi'>
    <type arch='{arch}' machine='q35'>hvm</type>
    <firmware>
      <feature enabled='{secure_boot}' name='secure-boot'/>
    </firmware>
    <boot dev='hd'/>
  </os>"""

CPU_TEMPLATE = """  <cpu mode='host-passthrough'>
    <topology sockets='{sockets}' cores='{cores}' threads='1'/>
  </cpu>"""

DISK_TEMPLATE = """    <disk type='file' device='disk'>
      <driver name='qemu' type='qcow2'/>
      <source file={path}/>
      <target dev='{dev}' bus='virtio'/>
    </disk>
"""

INTERFACE_TEMPLATE = """    <interface type='network'>
{mac}      <source network={network}/>
      <model type='virtio'/>
    </interface>
"""

TPM_BLOCK = """    <tpm model='tpm-crb'>
      <backend type='emulator' version='2.0'/>
    </tpm>
"""

# 원본 아키텍처 이름 → libvirt 아키텍처 이름
ARCHITECTURES = {
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "aarch64": "aarch64",
    "arm64": "aarch64",
}


def disk_device_name(index: int) -> str:
    """0 → vda, 1 → vdb, ..., 26 → vdaa"""
    name = ""
    index += 1
    while index > 0:
        index, remainder = divmod(index - 1, 26)
        name = chr(ord("a") + remainder) + name
    return "vd" + name


def generate_vm_xml(instance: Instance, disk_paths: List[str], default_network: Optional[str] = None) -> str:
    """
    인스턴스 정보를 타겟 libvirt 도메인 XML로 변환합니다.

    CPU/메모리는 보정값이 반영된 유효 값을 쓰고, 메모리는 KiB 단위로 변환합니다.
    레거시 BIOS가 아니면 EFI 펌웨어를 쓰며, 보안 부팅 여부를 펌웨어 기능으로 표시합니다.

    Args:
        instance: 변환할 인스턴스.
        disk_paths: 인스턴스 디스크 순서대로 정렬된 타겟 디스크 이미지 경로.
        default_network: NIC의 네트워크 이름이 비어 있을 때 쓸 배치 기본 네트워크.
    """
    cpu_count = max(instance.effective_number_cpus, 1)
    ram_kib = instance.effective_memory_in_bytes // 1024
    arch = ARCHITECTURES.get(instance.architecture.lower(), "x86_64")

    if instance.use_legacy_bios:
        os_block = BIOS_OS_TEMPLATE.format(arch=arch)
    else:
        os_block = EFI_OS_TEMPLATE.format(arch=arch, secure_boot="yes" if instance.secure_boot_enabled else "no")

    cores = instance.cpu.number_of_cores_per_socket
    if cores <= 0 or cpu_count % cores != 0:
        cores = 1
    cpu_block = CPU_TEMPLATE.format(sockets=cpu_count // cores, cores=cores)

    disks = "".join(
        DISK_TEMPLATE.format(path=quoteattr(path), dev=disk_device_name(index))
        for index, path in enumerate(disk_paths)
    )

    interfaces = ""
    for nic in instance.nics:
        network = nic.network or default_network or "default"
        mac = f"      <mac address={quoteattr(nic.hwaddr)}/>\n" if nic.hwaddr else ""
        interfaces += INTERFACE_TEMPLATE.format(mac=mac, network=quoteattr(network))

    return DOMAIN_TEMPLATE.format(
        vm_name=escape(instance.name),
        vm_uuid=instance.uuid,
        description=escape(instance.annotation),
        ram_kib=ram_kib,
        cpu_count=cpu_count,
        os_block=os_block,
        smm="    <smm state='on'/>\n" if instance.secure_boot_enabled else "",
        cpu_block=cpu_block,
        disks=disks,
        interfaces=interfaces,
        tpm=TPM_BLOCK if instance.tpm_present else "",
    )
