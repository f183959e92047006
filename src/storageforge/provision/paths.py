"""
StorageForge device path resolution.

Maps a disk and a partition index to the partition's device node, and names
the nodes that RAID, LUKS and LVM create.
"""

from __future__ import annotations

import re

_P_SEPARATOR_RE = re.compile(r"(nvme|mmcblk|loop|nbd|md)")


def normalize_disk(disk: str) -> str:
    """Accept "sda" as well as "/dev/sda"."""
    disk = disk.strip()
    if not disk.startswith("/"):
        disk = f"/dev/{disk}"
    return disk.rstrip("/")


def partition_path(disk: str, index: int) -> str:
    """
    Device path of partition `index` on `disk`.

    /dev/sda, 2          -> /dev/sda2
    /dev/nvme0n1, 2      -> /dev/nvme0n1p2
    /dev/disk/by-id/x, 2 -> /dev/disk/by-id/x-part2
    """
    if index < 1:
        raise ValueError(f"Partition index must be 1 or greater, got {index}")

    disk = normalize_disk(disk)
    if disk.startswith("/dev/disk/"):
        return f"{disk}-part{index}"

    name = disk.rsplit("/", 1)[-1]
    # The kernel inserts "p" whenever the disk name already ends in a digit
    if _P_SEPARATOR_RE.match(name) or name[-1:].isdigit():
        return f"{disk}p{index}"
    return f"{disk}{index}"


def raid_array_path(name: str) -> str:
    return f"/dev/md/{name}"


def mapper_path(name: str) -> str:
    return f"/dev/mapper/{name}"


def logical_volume_path(volume_group: str, logical_volume: str) -> str:
    return f"/dev/{volume_group}/{logical_volume}"
