"""
StorageForge mount sequencer.

Mounts formatted volumes under the target root, parents before children:
root, then root's btrfs subvolumes, then /boot, then the ESP nested inside
/boot, and home last.
"""

from __future__ import annotations

import os
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from storageforge.core.exceptions import StorageForgeError
from storageforge.core.logging import OperationLogger, get_logger
from storageforge.core.models import BootMode, FileSystem, MountEntry, VolumePurpose
from storageforge.platform.base import Command
from storageforge.platform.linux.tools import LinuxTools
from storageforge.provision.formatter import SUBVOLUME_MOUNTS

if TYPE_CHECKING:
    from storageforge.core.models import FormattedVolume
    from storageforge.core.plan import InstallPlan
    from storageforge.platform.base import CommandRunner

logger = get_logger(__name__)

BOOT_MOUNT = "/boot"
ESP_MOUNT = "/boot/efi"
HOME_MOUNT = "/home"

BTRFS_OPTIONS = ("compress=zstd", "noatime")
ESP_OPTIONS = ("umask=0077",)

RANK_ROOT = 0
RANK_ROOT_SUBVOLUMES = 1
RANK_BOOT = 2
RANK_ESP = 3
RANK_HOME = 4


def _btrfs_options(subvolume: str) -> tuple[str, ...]:
    return (f"subvol={subvolume}", *BTRFS_OPTIONS)


def plan_mounts(
    volumes: list[FormattedVolume],
) -> list[tuple[int, FormattedVolume, str, tuple[str, ...]]]:
    """
    Work out (rank, volume, mount point, options) for every mountable volume.

    Only the first ESP is mounted; the others stay as spares on their disks.
    """
    by_purpose: dict[VolumePurpose, FormattedVolume] = {}
    for volume in volumes:
        by_purpose.setdefault(volume.purpose, volume)

    root = by_purpose.get(VolumePurpose.ROOT)
    if root is None:
        raise StorageForgeError("No root volume to mount", step="mount")

    planned: list[tuple[int, FormattedVolume, str, tuple[str, ...]]] = []
    home = by_purpose.get(VolumePurpose.HOME)

    if root.filesystem is FileSystem.BTRFS:
        planned.append((RANK_ROOT, root, "/", _btrfs_options("@")))
        for subvolume, mount_point in SUBVOLUME_MOUNTS.items():
            if subvolume not in root.subvolumes:
                continue
            if mount_point == HOME_MOUNT:
                # A separate home volume takes precedence over the @home subvolume
                if home is None:
                    planned.append((RANK_HOME, root, mount_point, _btrfs_options(subvolume)))
                continue
            planned.append((RANK_ROOT_SUBVOLUMES, root, mount_point, _btrfs_options(subvolume)))
    else:
        planned.append((RANK_ROOT, root, "/", ()))

    boot = by_purpose.get(VolumePurpose.BOOT)
    if boot is not None:
        planned.append((RANK_BOOT, boot, BOOT_MOUNT, ()))

    esp = by_purpose.get(VolumePurpose.ESP)
    if esp is not None:
        planned.append((RANK_ESP, esp, ESP_MOUNT, ESP_OPTIONS))

    if home is not None:
        options = _btrfs_options("@") if home.filesystem is FileSystem.BTRFS else ()
        planned.append((RANK_HOME, home, HOME_MOUNT, options))

    return sorted(planned, key=lambda item: item[0])


def planned_mount_points(plan: InstallPlan) -> list[str]:
    """Mount points a run of this plan mounts, in order, before any volume exists."""
    btrfs_root = plan.root_filesystem is FileSystem.BTRFS
    points = ["/"]
    if btrfs_root:
        points.extend(p for p in SUBVOLUME_MOUNTS.values() if p != HOME_MOUNT)
    points.append(BOOT_MOUNT)
    if plan.boot_mode is BootMode.FIRMWARE:
        points.append(ESP_MOUNT)
    if plan.wants_home or btrfs_root:
        points.append(HOME_MOUNT)
    return points


def mount_volumes(
    volumes: list[FormattedVolume],
    target_root: str,
    runner: CommandRunner,
) -> list[MountEntry]:
    """Mount volumes under target_root in dependency order."""
    entries: list[MountEntry] = []

    with OperationLogger("mount", logger, target_root=target_root):
        for rank, volume, mount_point, options in plan_mounts(volumes):
            target = os.path.join(target_root, mount_point.lstrip("/")).rstrip("/") or "/"

            # Created now rather than up front so a missing parent mount shows up
            if runner.dry_run:
                logger.info("Would create directory", path=target)
            else:
                try:
                    Path(target).mkdir(parents=True, exist_ok=True)
                except OSError as e:
                    raise StorageForgeError(
                        f"Cannot create mount point {target}: {e}", step="mount", device=target
                    ) from e

            args: list[str] = []
            if options:
                args.extend(["-o", ",".join(options)])
            args.extend([volume.device_path, target])
            runner.check(
                Command(LinuxTools.MOUNT, tuple(args), description=f"Mount {mount_point}"),
                "mount",
                volume.device_path,
            )

            if volume.mount_point is None:
                volume.mount_point = mount_point
            entries.append(
                MountEntry(
                    source=volume.device_path,
                    target=target,
                    rank=rank,
                    sequence=len(entries),
                    options=options,
                    mounted_at=datetime.now(),
                )
            )
            logger.info("Mounted volume", device=volume.device_path, target=target, rank=rank)

    return entries


def activate_swap(volumes: list[FormattedVolume], runner: CommandRunner) -> list[str]:
    """Enable every swap volume; returns the devices switched on."""
    activated = []
    for volume in volumes:
        if volume.purpose is not VolumePurpose.SWAP:
            continue
        runner.check(
            Command(LinuxTools.SWAPON, (volume.device_path,), description="Enable swap"),
            "swap",
            volume.device_path,
        )
        activated.append(volume.device_path)
    return activated
