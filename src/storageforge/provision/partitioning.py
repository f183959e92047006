"""
StorageForge partition table builder.

Plans the partition layout for each disk of an install plan and writes it
with a single sfdisk script per disk.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from storageforge.core.exceptions import PreconditionError
from storageforge.core.logging import OperationLogger, get_logger
from storageforge.core.models import (
    BlockDeviceNode,
    BootMode,
    DeviceKind,
    PartitionRole,
    PartitionSpec,
    PartitionStyle,
    VolumePurpose,
)
from storageforge.core.plan import SimpleLuksStrategy
from storageforge.platform.base import Command
from storageforge.platform.linux.tools import LinuxTools
from storageforge.provision.paths import normalize_disk, partition_path

if TYPE_CHECKING:
    from storageforge.core.plan import InstallPlan
    from storageforge.platform.base import CommandRunner

logger = get_logger(__name__)

# GPT partition type GUIDs
GPT_TYPES = {
    PartitionRole.ESP: "C12A7328-F81F-11D2-BA4B-00A0C93EC93B",
    PartitionRole.BOOT: "BC13C2FF-59E6-4262-A352-B275FD6F7172",  # XBOOTLDR
    PartitionRole.SWAP: "0657FD6D-A4AB-43C4-84E5-0933C84B4F4F",
    PartitionRole.RAID_MEMBER: "A19D880F-05FC-4D3B-A006-743F0F84911E",
    PartitionRole.LUKS_MEMBER: "CA7D7CCB-63ED-4C53-861C-1742536059CC",
    PartitionRole.DATA: "0FC63DAF-8483-4772-8E79-3D69D8477DE4",
}

# MBR partition type bytes
MBR_TYPES = {
    PartitionRole.BOOT: "83",
    PartitionRole.SWAP: "82",
    PartitionRole.RAID_MEMBER: "fd",
    PartitionRole.LUKS_MEMBER: "83",
    PartitionRole.DATA: "83",
}


def _type_code(role: PartitionRole, style: PartitionStyle) -> str:
    table = GPT_TYPES if style is PartitionStyle.GPT else MBR_TYPES
    if role not in table:
        raise PreconditionError(f"{role.name} partitions cannot go on a {style.name} table")
    return table[role]


def build_partition_specs(disk: str, plan: InstallPlan) -> list[PartitionSpec]:
    """
    Plan the partitions for one disk.

    Fixed-size system partitions come first, starting at the alignment
    offset; the last data partition takes whatever is left of the disk.
    """
    disk = normalize_disk(disk)
    style = PartitionStyle.for_boot_mode(plan.boot_mode)
    sizing = plan.sizing
    strategy = plan.strategy
    raid = strategy.uses_raid

    specs: list[PartitionSpec] = []
    cursor = sizing.alignment_mib

    def add(
        size_mib: int | None,
        role: PartitionRole,
        purpose: VolumePurpose | None,
        name: str,
    ) -> None:
        nonlocal cursor
        specs.append(
            PartitionSpec(
                disk=disk,
                index=len(specs) + 1,
                start_mib=cursor,
                size_mib=size_mib,
                type_code=_type_code(role, style),
                role=role,
                purpose=purpose,
                name=name,
            )
        )
        if size_mib is not None:
            cursor += size_mib

    boot_role = PartitionRole.RAID_MEMBER if raid else PartitionRole.BOOT
    if plan.boot_mode is BootMode.FIRMWARE:
        add(sizing.esp_size_mib, PartitionRole.ESP, VolumePurpose.ESP, "ESP")
        add(sizing.xbootldr_size_mib, boot_role, VolumePurpose.BOOT, "XBOOTLDR")
    else:
        add(sizing.boot_size_mib, boot_role, VolumePurpose.BOOT, "BOOT")

    if plan.wants_swap and strategy.swap_on_partition:
        add(plan.swap.size_mib, PartitionRole.SWAP, VolumePurpose.SWAP, "SWAP")

    if raid:
        # Root, swap and home all live on the data array
        add(None, PartitionRole.RAID_MEMBER, None, "DATA")
        return specs

    data_role = (
        PartitionRole.LUKS_MEMBER if isinstance(strategy, SimpleLuksStrategy) else PartitionRole.DATA
    )
    if plan.wants_home:
        add(sizing.simple_root_size_mib, data_role, VolumePurpose.ROOT, "ROOT")
        add(None, data_role, VolumePurpose.HOME, "HOME")
    else:
        add(None, data_role, VolumePurpose.ROOT, "ROOT")

    return specs


def build_disk_layouts(plan: InstallPlan) -> dict[str, list[PartitionSpec]]:
    """Plan every disk. All disks in a plan get the same layout."""
    return {normalize_disk(disk): build_partition_specs(disk, plan) for disk in plan.disks}


def layout_signature(specs: list[PartitionSpec]) -> tuple[tuple[int, int, int | None, str], ...]:
    """The parts of a layout that must match across RAID member disks."""
    return tuple((s.index, s.start_mib, s.size_mib, s.role.name) for s in specs)


def check_symmetric(layouts: dict[str, list[PartitionSpec]]) -> None:
    """Raise if any disk's layout differs from the first disk's."""
    signatures = {disk: layout_signature(specs) for disk, specs in layouts.items()}
    reference_disk, reference = next(iter(signatures.items()))
    for disk, signature in signatures.items():
        if signature != reference:
            raise PreconditionError(
                f"Partition layout of {disk} differs from {reference_disk}",
                step="partitioning",
                device=disk,
            )


def render_sfdisk_script(specs: list[PartitionSpec], style: PartitionStyle) -> str:
    lines = [f"label: {style.sfdisk_label}"]
    lines.extend(spec.to_sfdisk_line(style) for spec in specs)
    return "\n".join(lines) + "\n"


def apply_partition_table(
    disk: str,
    specs: list[PartitionSpec],
    plan: InstallPlan,
    runner: CommandRunner,
    settle: bool = True,
) -> list[BlockDeviceNode]:
    """Wipe a disk, write its partition table and return the new partitions."""
    disk = normalize_disk(disk)
    style = PartitionStyle.for_boot_mode(plan.boot_mode)
    step = "partitioning"

    with OperationLogger(step, logger, disk=disk, partitions=len(specs), label=style.name):
        runner.check(
            Command(
                LinuxTools.WIPEFS,
                ("--all", "--force", disk),
                description=f"Erase signatures on {disk}",
                destructive=True,
            ),
            step,
            disk,
        )
        runner.check(
            Command(
                LinuxTools.SFDISK,
                ("--wipe", "always", "--wipe-partitions", "always", disk),
                stdin=render_sfdisk_script(specs, style),
                description=f"Write {style.name} partition table to {disk}",
                destructive=True,
            ),
            step,
            disk,
        )
        runner.check(
            Command(LinuxTools.PARTPROBE, (disk,), description=f"Re-read partitions of {disk}"),
            step,
            disk,
        )
        if settle:
            runner.check(
                Command(LinuxTools.UDEVADM, ("settle",), description="Wait for device nodes"),
                step,
                disk,
            )

        nodes = []
        for spec in specs:
            path = runner.require_device(partition_path(disk, spec.index), step)
            nodes.append(
                BlockDeviceNode(
                    kind=DeviceKind.RAW_PARTITION,
                    path=path,
                    purpose=spec.purpose,
                    name=spec.name,
                )
            )

    return nodes
