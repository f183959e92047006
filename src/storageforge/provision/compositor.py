"""
StorageForge block device compositor.

Builds the device stack a strategy calls for on top of freshly written
partitions: mdadm arrays, LUKS2 containers and LVM volumes. Every layer is
checked to exist before the next one is built on it. Nothing here is
retried; re-running mdadm --create or luksFormat on a half-built stack
destroys it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, assert_never

from storageforge.core.exceptions import PreconditionError, StrategyNotImplementedError
from storageforge.core.logging import OperationLogger, get_logger
from storageforge.core.models import (
    BlockDeviceNode,
    BootMode,
    DeviceKind,
    DeviceStack,
    VolumePurpose,
)
from storageforge.core.plan import (
    RaidLuksStrategy,
    RaidLvmLuksStrategy,
    RaidLvmStrategy,
    SimpleLuksStrategy,
    SimpleStrategy,
)
from storageforge.platform.base import Command
from storageforge.platform.linux.tools import LinuxTools
from storageforge.provision.identity import read_uuid
from storageforge.provision.paths import logical_volume_path, mapper_path, raid_array_path

if TYPE_CHECKING:
    from storageforge.core.plan import InstallPlan
    from storageforge.platform.base import CommandRunner

logger = get_logger(__name__)

DATA_ARRAY = "DATA"
# Superblock at the end of each member so the bootloader sees a plain filesystem
BOOT_ARRAY_METADATA = "1.0"


def boot_array_name(boot_mode: BootMode) -> str:
    return "XBOOTLDR" if boot_mode is BootMode.FIRMWARE else "BOOT"


def data_raid_level(disk_count: int) -> int:
    """Mirror two disks, use parity from three disks up."""
    if disk_count < 2:
        raise PreconditionError(f"A RAID array needs at least 2 disks, got {disk_count}")
    return 1 if disk_count == 2 else 5


def create_raid_array(
    name: str,
    level: int,
    members: list[BlockDeviceNode],
    runner: CommandRunner,
    purpose: VolumePurpose | None = None,
    metadata: str | None = None,
) -> BlockDeviceNode:
    """Assemble an mdadm array from member partitions."""
    path = raid_array_path(name)
    args = ["--create", path, "--run", f"--level={level}", f"--raid-devices={len(members)}"]
    if metadata:
        args.append(f"--metadata={metadata}")
    args.extend(m.path for m in members)

    with OperationLogger("raid assembly", logger, array=path, level=level, members=len(members)):
        runner.check(
            Command(
                LinuxTools.MDADM,
                tuple(args),
                description=f"Create RAID{level} array {path}",
                destructive=True,
            ),
            "raid assembly",
            path,
        )
        runner.require_device(path, "raid assembly")

    return BlockDeviceNode(
        kind=DeviceKind.RAID_ARRAY,
        path=path,
        purpose=purpose,
        parents=tuple(members),
        name=name,
    )


def open_encrypted_container(
    parent: BlockDeviceNode,
    mapper_name: str,
    passphrase: str,
    runner: CommandRunner,
    purpose: VolumePurpose | None = None,
) -> BlockDeviceNode:
    """Format a LUKS2 header on a device and open its clear-text mapping."""
    step = "encryption"
    path = mapper_path(mapper_name)

    with OperationLogger(step, logger, device=parent.path, mapper=mapper_name):
        runner.check(
            Command(
                LinuxTools.CRYPTSETUP,
                ("luksFormat", "--type", "luks2", "--batch-mode", "--key-file", "-", parent.path),
                stdin=passphrase,
                description=f"Create LUKS2 container on {parent.path}",
                destructive=True,
            ),
            step,
            parent.path,
        )
        runner.check(
            Command(
                LinuxTools.CRYPTSETUP,
                ("open", "--key-file", "-", parent.path, mapper_name),
                stdin=passphrase,
                description=f"Open {parent.path} as {mapper_name}",
            ),
            step,
            parent.path,
        )
        runner.require_device(path, step)
        container_uuid = read_uuid(parent.path, runner, step)

    return BlockDeviceNode(
        kind=DeviceKind.ENCRYPTED_CONTAINER,
        path=path,
        purpose=purpose,
        parents=(parent,),
        name=mapper_name,
        container_uuid=container_uuid,
    )


def create_volume_group(physical: BlockDeviceNode, volume_group: str, runner: CommandRunner) -> None:
    step = "volume group"
    with OperationLogger(step, logger, volume_group=volume_group, physical_volume=physical.path):
        runner.check(
            Command(
                LinuxTools.PVCREATE,
                ("--yes", physical.path),
                description=f"Initialise {physical.path} as a physical volume",
                destructive=True,
            ),
            step,
            physical.path,
        )
        runner.check(
            Command(
                LinuxTools.VGCREATE,
                (volume_group, physical.path),
                description=f"Create volume group {volume_group}",
                destructive=True,
            ),
            step,
            physical.path,
        )


def create_logical_volume(
    physical: BlockDeviceNode,
    volume_group: str,
    name: str,
    size_args: tuple[str, str],
    runner: CommandRunner,
    purpose: VolumePurpose,
) -> BlockDeviceNode:
    """Carve one logical volume; size_args is ("-l", "90%FREE") or ("-L", "4096M")."""
    path = logical_volume_path(volume_group, name)
    runner.check(
        Command(
            LinuxTools.LVCREATE,
            ("--yes", *size_args, "-n", name, volume_group),
            description=f"Create logical volume {path}",
            destructive=True,
        ),
        "logical volume",
        path,
    )
    runner.require_device(path, "logical volume")
    logger.info("Created logical volume", path=path, size=" ".join(size_args))

    return BlockDeviceNode(
        kind=DeviceKind.LOGICAL_VOLUME,
        path=path,
        purpose=purpose,
        parents=(physical,),
        name=name,
        volume_group=volume_group,
    )


def compose(
    partitions: dict[str, list[BlockDeviceNode]],
    plan: InstallPlan,
    runner: CommandRunner,
) -> DeviceStack:
    """Build the device stack for the plan's strategy over per-disk partitions."""
    stack = DeviceStack()
    for disk in partitions:
        for node in partitions[disk]:
            stack.add(node)

    strategy = plan.strategy
    if isinstance(strategy, SimpleStrategy):
        pass
    elif isinstance(strategy, SimpleLuksStrategy):
        _compose_simple_luks(stack, strategy, runner)
    elif isinstance(strategy, RaidLvmStrategy):
        _compose_raid_lvm(stack, partitions, plan, strategy, runner)
    elif isinstance(strategy, (RaidLuksStrategy, RaidLvmLuksStrategy)):
        raise StrategyNotImplementedError(
            f"Strategy {strategy.kind} is not implemented", step="compose"
        )
    else:
        assert_never(strategy)

    logger.info("Device stack composed", nodes=len(stack.nodes), strategy=strategy.kind)
    return stack


def _compose_simple_luks(
    stack: DeviceStack, strategy: SimpleLuksStrategy, runner: CommandRunner
) -> None:
    passphrase = strategy.passphrase.get_secret_value()
    mappers = {VolumePurpose.ROOT: strategy.root_mapper, VolumePurpose.HOME: strategy.home_mapper}

    for purpose, mapper in mappers.items():
        member = stack.final(purpose)
        if member is None:
            continue
        stack.add(open_encrypted_container(member, mapper, passphrase, runner, purpose))


def _compose_raid_lvm(
    stack: DeviceStack,
    partitions: dict[str, list[BlockDeviceNode]],
    plan: InstallPlan,
    strategy: RaidLvmStrategy,
    runner: CommandRunner,
) -> None:
    boot_members = [n for nodes in partitions.values() for n in nodes if n.purpose is VolumePurpose.BOOT]
    data_members = [n for nodes in partitions.values() for n in nodes if n.name == DATA_ARRAY]

    # Boot is mirrored on every disk whatever the disk count
    stack.add(
        create_raid_array(
            boot_array_name(plan.boot_mode),
            1,
            boot_members,
            runner,
            purpose=VolumePurpose.BOOT,
            metadata=BOOT_ARRAY_METADATA,
        )
    )
    data_array = stack.add(
        create_raid_array(DATA_ARRAY, data_raid_level(len(data_members)), data_members, runner)
    )

    vg = strategy.volume_group
    create_volume_group(data_array, vg, runner)

    with OperationLogger("logical volumes", logger, volume_group=vg):
        stack.add(
            create_logical_volume(
                data_array,
                vg,
                strategy.root_lv,
                ("-l", f"{plan.sizing.root_free_percent}%FREE"),
                runner,
                VolumePurpose.ROOT,
            )
        )
        if plan.wants_swap:
            stack.add(
                create_logical_volume(
                    data_array,
                    vg,
                    strategy.swap_lv,
                    ("-L", f"{plan.swap.size_mib}M"),
                    runner,
                    VolumePurpose.SWAP,
                )
            )
        if plan.wants_home:
            stack.add(
                create_logical_volume(
                    data_array, vg, strategy.home_lv, ("-l", "100%FREE"), runner, VolumePurpose.HOME
                )
            )
