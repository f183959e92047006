"""
Names of the Linux tools StorageForge drives.
"""

from __future__ import annotations

from storageforge.core.models import FileSystem


class LinuxTools:
    """Tool names (can be overridden for testing)."""

    BLKID = "blkid"
    WIPEFS = "wipefs"
    SFDISK = "sfdisk"
    PARTPROBE = "partprobe"
    UDEVADM = "udevadm"
    MOUNT = "mount"
    UMOUNT = "umount"
    SWAPON = "swapon"
    SWAPOFF = "swapoff"

    MDADM = "mdadm"
    CRYPTSETUP = "cryptsetup"
    PVCREATE = "pvcreate"
    VGCREATE = "vgcreate"
    VGCHANGE = "vgchange"
    LVCREATE = "lvcreate"

    MKFS_EXT4 = "mkfs.ext4"
    MKFS_XFS = "mkfs.xfs"
    MKFS_BTRFS = "mkfs.btrfs"
    MKFS_VFAT = "mkfs.vfat"
    MKSWAP = "mkswap"
    BTRFS = "btrfs"

    # mkfs tool and its non-interactive "force" arguments
    MKFS: dict[FileSystem, tuple[str, tuple[str, ...]]] = {
        FileSystem.EXT4: (MKFS_EXT4, ("-F",)),
        FileSystem.XFS: (MKFS_XFS, ("-f",)),
        FileSystem.BTRFS: (MKFS_BTRFS, ("-f",)),
        FileSystem.FAT32: (MKFS_VFAT, ("-F", "32")),
        FileSystem.SWAP: (MKSWAP, ("-f",)),
    }


def mkfs_tool(filesystem: FileSystem) -> str:
    return LinuxTools.MKFS[filesystem][0]
