"""
StorageForge filesystem formatter.

Creates filesystems on finished block devices and, for btrfs, the fixed
subvolume layout the mount sequence expects.
"""

from __future__ import annotations

import os
import tempfile
from typing import TYPE_CHECKING

from storageforge.core.exceptions import ToolInvocationError
from storageforge.core.logging import OperationLogger, get_logger
from storageforge.core.models import FileSystem, FormattedVolume, VolumePurpose
from storageforge.platform.base import Command
from storageforge.platform.linux.tools import LinuxTools

if TYPE_CHECKING:
    from storageforge.core.models import BlockDeviceNode
    from storageforge.platform.base import CommandRunner

logger = get_logger(__name__)

ROOT_SUBVOLUMES = ("@", "@home", "@var", "@tmp")
HOME_SUBVOLUMES = ("@",)

# Where each root subvolume other than "@" is mounted
SUBVOLUME_MOUNTS = {"@home": "/home", "@var": "/var", "@tmp": "/tmp"}


def subvolumes_for(purpose: VolumePurpose, filesystem: FileSystem) -> tuple[str, ...]:
    if not filesystem.supports_subvolumes:
        return ()
    if purpose is VolumePurpose.ROOT:
        return ROOT_SUBVOLUMES
    if purpose is VolumePurpose.HOME:
        return HOME_SUBVOLUMES
    return ()


def mkfs_command(device: str, filesystem: FileSystem, label: str | None = None) -> Command:
    tool, force_args = LinuxTools.MKFS[filesystem]
    args = list(force_args)
    if label:
        args.extend(["-n" if filesystem is FileSystem.FAT32 else "-L", label])
    args.append(device)
    return Command(
        tool,
        tuple(args),
        description=f"Create {filesystem.value} on {device}",
        destructive=True,
    )


def scratch_directory(device: str, runner: CommandRunner) -> str:
    """Directory the top-level btrfs volume is mounted on while subvolumes are added."""
    if runner.dry_run:
        return os.path.join(tempfile.gettempdir(), f"storageforge-{os.path.basename(device)}")
    return tempfile.mkdtemp(prefix="storageforge-")


def create_subvolumes(device: str, names: tuple[str, ...], runner: CommandRunner) -> None:
    """Create btrfs subvolumes through a scratch mount of the top-level volume."""
    step = "subvolumes"
    scratch = scratch_directory(device, runner)

    try:
        runner.check(
            Command(
                LinuxTools.MOUNT, (device, scratch), description=f"Mount {device} to add subvolumes"
            ),
            step,
            device,
        )
    except ToolInvocationError:
        if not runner.dry_run:
            os.rmdir(scratch)
        raise

    try:
        for name in names:
            runner.check(
                Command(
                    LinuxTools.BTRFS,
                    ("subvolume", "create", os.path.join(scratch, name)),
                    description=f"Create subvolume {name}",
                ),
                step,
                device,
            )
    except ToolInvocationError:
        # The scratch mount lives outside the target root, so teardown cannot reach it
        unmounted = runner.run(
            Command(LinuxTools.UMOUNT, (scratch,), description=f"Unmount {device}")
        )
        if not unmounted.success:
            logger.warning("Scratch mount left active", device=device, mount_point=scratch)
        elif not runner.dry_run:
            os.rmdir(scratch)
        raise

    runner.check(
        Command(LinuxTools.UMOUNT, (scratch,), description=f"Unmount {device}"),
        step,
        device,
    )
    if not runner.dry_run:
        os.rmdir(scratch)


def format_volume(
    node: BlockDeviceNode,
    filesystem: FileSystem,
    runner: CommandRunner,
    purpose: VolumePurpose,
    label: str | None = None,
) -> FormattedVolume:
    """Create a filesystem on a device and return the resulting volume."""
    subvolumes = subvolumes_for(purpose, filesystem)

    with OperationLogger(
        "format",
        logger,
        device=node.path,
        filesystem=filesystem.value,
        purpose=purpose.name,
    ):
        runner.check(mkfs_command(node.path, filesystem, label), "format", node.path)
        if subvolumes:
            create_subvolumes(node.path, subvolumes, runner)

    return FormattedVolume(
        node=node,
        filesystem=filesystem,
        purpose=purpose,
        label=label,
        subvolumes=subvolumes,
    )
