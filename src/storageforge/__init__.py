"""
StorageForge - Partitioning strategy orchestrator for fresh OS installs.

Turns a declarative install plan into partition tables, RAID arrays, LUKS
containers, LVM volumes, filesystems and mounts, and reports the device
identities the boot configuration needs.
"""

__version__ = "1.0.0"
__author__ = "StorageForge Team"

from storageforge.core.config import StorageForgeConfig
from storageforge.core.plan import InstallPlan
from storageforge.core.session import ProvisionSession

__all__ = ["StorageForgeConfig", "InstallPlan", "ProvisionSession", "__version__"]
