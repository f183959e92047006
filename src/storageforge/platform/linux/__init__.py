"""
StorageForge Linux Platform Backend.

Drives standard Linux storage tools:
- wipefs, sfdisk, partprobe for partition tables
- mdadm for software RAID
- cryptsetup for LUKS2 containers
- pvcreate, vgcreate, lvcreate for LVM
- mkfs.*, mkswap, btrfs for filesystems
- blkid for device identity
"""

from storageforge.platform.linux.parsers import (
    parse_mdadm_scan,
    parse_size_mib,
    parse_uuid_value,
)
from storageforge.platform.linux.runner import SystemCommandRunner
from storageforge.platform.linux.tools import LinuxTools

__all__ = [
    "LinuxTools",
    "SystemCommandRunner",
    "parse_mdadm_scan",
    "parse_size_mib",
    "parse_uuid_value",
]
