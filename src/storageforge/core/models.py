"""
StorageForge data models.

Defines the structures passed between provisioning stages: planned
partitions, the layered block-device graph, formatted volumes, mounts and
device identity records.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Any


class BootMode(str, Enum):
    """How the target machine firmware boots."""

    LEGACY = "legacy"
    FIRMWARE = "firmware"


class PartitionStyle(Enum):
    """Partition table style."""

    GPT = auto()
    MBR = auto()

    @property
    def sfdisk_label(self) -> str:
        return "gpt" if self is PartitionStyle.GPT else "dos"

    @classmethod
    def for_boot_mode(cls, boot_mode: BootMode) -> PartitionStyle:
        return cls.GPT if boot_mode is BootMode.FIRMWARE else cls.MBR


class FileSystem(str, Enum):
    """File system types StorageForge can create."""

    EXT4 = "ext4"
    XFS = "xfs"
    BTRFS = "btrfs"
    FAT32 = "vfat"
    SWAP = "swap"

    @classmethod
    def from_string(cls, value: str) -> FileSystem:
        """Create FileSystem from string value."""
        value_lower = value.lower().strip()
        for fs in cls:
            if fs.value == value_lower or fs.name.lower() == value_lower:
                return fs
        aliases = {"fat": cls.FAT32, "fat32": cls.FAT32}
        if value_lower in aliases:
            return aliases[value_lower]
        raise ValueError(f"Unsupported filesystem: {value}")

    @property
    def supports_subvolumes(self) -> bool:
        return self is FileSystem.BTRFS


class PartitionRole(Enum):
    """What a raw partition is used for."""

    ESP = auto()
    BOOT = auto()
    SWAP = auto()
    RAID_MEMBER = auto()
    LUKS_MEMBER = auto()
    DATA = auto()


class VolumePurpose(Enum):
    """What a finished volume ends up holding in the installed system."""

    ESP = auto()
    BOOT = auto()
    SWAP = auto()
    ROOT = auto()
    HOME = auto()


class DeviceKind(Enum):
    """Layer of a block device in the composed stack."""

    RAW_PARTITION = "raw-partition"
    RAID_ARRAY = "raid-array"
    ENCRYPTED_CONTAINER = "encrypted-container"
    LOGICAL_VOLUME = "logical-volume"


@dataclass(frozen=True)
class PartitionSpec:
    """One planned partition on one disk."""

    disk: str
    index: int
    start_mib: int
    size_mib: int | None  # None takes the rest of the disk
    type_code: str
    role: PartitionRole
    purpose: VolumePurpose | None
    name: str = ""

    @property
    def fills_remaining(self) -> bool:
        return self.size_mib is None

    def to_sfdisk_line(self, style: PartitionStyle) -> str:
        """Render this partition as one line of an sfdisk script."""
        parts = [f"start={self.start_mib}MiB"]
        if self.size_mib is not None:
            parts.append(f"size={self.size_mib}MiB")
        parts.append(f"type={self.type_code}")
        if style is PartitionStyle.GPT and self.name:
            parts.append(f'name="{self.name}"')
        if style is PartitionStyle.MBR and self.purpose is VolumePurpose.BOOT:
            parts.append("bootable")
        return ", ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "disk": self.disk,
            "index": self.index,
            "start_mib": self.start_mib,
            "size_mib": self.size_mib,
            "type_code": self.type_code,
            "role": self.role.name,
            "purpose": self.purpose.name if self.purpose else None,
        }


@dataclass(frozen=True)
class BlockDeviceNode:
    """A device in the composed stack, with links to the devices beneath it."""

    kind: DeviceKind
    path: str
    purpose: VolumePurpose | None = None
    parents: tuple[BlockDeviceNode, ...] = ()
    name: str | None = None
    volume_group: str | None = None
    container_uuid: str | None = None

    def __post_init__(self) -> None:
        if self.kind is DeviceKind.RAW_PARTITION and self.parents:
            raise ValueError("Raw partitions have no parent nodes")
        if self.kind is DeviceKind.RAID_ARRAY and not self.parents:
            raise ValueError("A RAID array needs member partitions")
        if self.kind is DeviceKind.ENCRYPTED_CONTAINER and len(self.parents) != 1:
            raise ValueError("An encrypted container has exactly one parent")
        if self.kind is DeviceKind.LOGICAL_VOLUME and (
            len(self.parents) != 1 or not self.volume_group
        ):
            raise ValueError("A logical volume belongs to one volume group over one parent")

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "path": self.path,
            "purpose": self.purpose.name if self.purpose else None,
            "parents": [p.path for p in self.parents],
            "name": self.name,
            "volume_group": self.volume_group,
        }


@dataclass
class DeviceStack:
    """Every node the compositor created for one run."""

    nodes: list[BlockDeviceNode] = field(default_factory=list)

    def add(self, node: BlockDeviceNode) -> BlockDeviceNode:
        self.nodes.append(node)
        return node

    def final(self, purpose: VolumePurpose) -> BlockDeviceNode | None:
        """Top-most node carrying a purpose (the last one added wins)."""
        for node in reversed(self.nodes):
            if node.purpose is purpose:
                return node
        return None

    def all_for(self, purpose: VolumePurpose) -> list[BlockDeviceNode]:
        return [n for n in self.nodes if n.purpose is purpose]

    def of_kind(self, kind: DeviceKind) -> list[BlockDeviceNode]:
        return [n for n in self.nodes if n.kind is kind]


@dataclass
class FormattedVolume:
    """A block device with a filesystem on it."""

    node: BlockDeviceNode
    filesystem: FileSystem
    purpose: VolumePurpose
    label: str | None = None
    subvolumes: tuple[str, ...] = ()
    mount_point: str | None = None

    @property
    def device_path(self) -> str:
        return self.node.path

    def to_dict(self) -> dict[str, Any]:
        return {
            "device": self.device_path,
            "filesystem": self.filesystem.value,
            "purpose": self.purpose.name,
            "label": self.label,
            "subvolumes": list(self.subvolumes),
            "mount_point": self.mount_point,
        }


@dataclass(frozen=True)
class MountEntry:
    """One mount performed under the target root."""

    source: str
    target: str
    rank: int
    sequence: int
    options: tuple[str, ...] = ()
    mounted_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "target": self.target,
            "rank": self.rank,
            "sequence": self.sequence,
            "options": ",".join(self.options),
            "mounted_at": self.mounted_at.isoformat(),
        }


@dataclass(frozen=True)
class DeviceIdentityRecord:
    """Stable identity of a formatted volume for the boot configuration."""

    role: str
    device_path: str
    uuid: str
    container_uuid: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "role": self.role,
            "device": self.device_path,
            "uuid": self.uuid,
        }
        if self.container_uuid:
            data["container_uuid"] = self.container_uuid
        return data
