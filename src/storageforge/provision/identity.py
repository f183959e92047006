"""
StorageForge device identity registry.

Collects the UUID of every volume the boot configuration has to reference.
A registry lives for exactly one provisioning run: it starts empty, accepts
each role once, and is frozen when the run succeeds.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any

from storageforge.core.exceptions import IdentityCaptureError, RegistryError
from storageforge.core.logging import get_logger
from storageforge.core.models import BootMode, DeviceIdentityRecord, DeviceKind, VolumePurpose
from storageforge.platform.base import Command
from storageforge.platform.linux.parsers import parse_uuid_value
from storageforge.platform.linux.tools import LinuxTools

if TYPE_CHECKING:
    from storageforge.core.models import FormattedVolume
    from storageforge.platform.base import CommandRunner

logger = get_logger(__name__)

ROLE_ROOT = "ROOT"
ROLE_BOOT = "BOOT"
ROLE_XBOOTLDR = "XBOOTLDR"
ROLE_HOME = "HOME"


def read_uuid(device: str, runner: CommandRunner, step: str = "identity") -> str:
    """Read a device's filesystem or container UUID with blkid."""
    result = runner.check(
        Command(
            LinuxTools.BLKID,
            ("-s", "UUID", "-o", "value", device),
            description=f"Read UUID of {device}",
        ),
        step,
        device,
    )
    uuid = parse_uuid_value(result.stdout)
    if uuid is None:
        raise IdentityCaptureError(f"No UUID reported for {device}", step=step, device=device)
    return uuid


def role_label(purpose: VolumePurpose, boot_mode: BootMode) -> str | None:
    """Registry label for a volume, or None for volumes the registry skips."""
    if purpose is VolumePurpose.ROOT:
        return ROLE_ROOT
    if purpose is VolumePurpose.BOOT:
        return ROLE_XBOOTLDR if boot_mode is BootMode.FIRMWARE else ROLE_BOOT
    if purpose is VolumePurpose.HOME:
        return ROLE_HOME
    return None


class DeviceIdentityRegistry:
    """Write-once record of device identities for one run."""

    def __init__(self) -> None:
        self._records: dict[str, DeviceIdentityRecord] = {}
        self._frozen = False

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, role: str) -> bool:
        return role in self._records

    def capture(
        self,
        role: str,
        device: str,
        runner: CommandRunner,
        container_uuid: str | None = None,
    ) -> DeviceIdentityRecord:
        """Read back a device's UUID and store it under a role."""
        if self._frozen:
            raise RegistryError(f"Registry is frozen; cannot capture {role}", device=device)
        if role in self._records:
            raise RegistryError(f"Role {role} already captured", device=device)
        if any(r.device_path == device for r in self._records.values()):
            raise RegistryError(f"Device {device} already captured", device=device)

        record = DeviceIdentityRecord(
            role=role,
            device_path=device,
            uuid=read_uuid(device, runner),
            container_uuid=container_uuid,
        )
        self._records[role] = record
        logger.info("Captured device identity", role=role, device=device, uuid=record.uuid)
        return record

    def capture_volume(
        self,
        volume: FormattedVolume,
        boot_mode: BootMode,
        runner: CommandRunner,
    ) -> DeviceIdentityRecord | None:
        """Capture a formatted volume if its purpose is one the registry tracks."""
        role = role_label(volume.purpose, boot_mode)
        if role is None:
            return None
        return self.capture(role, volume.device_path, runner, _container_uuid(volume))

    def freeze(self) -> None:
        self._frozen = True

    def get(self, role: str) -> DeviceIdentityRecord:
        if not self._frozen:
            raise RegistryError("Registry is not available until the run completes")
        return self._records[role]

    def records(self) -> list[DeviceIdentityRecord]:
        if not self._frozen:
            raise RegistryError("Registry is not available until the run completes")
        return list(self._records.values())

    def to_dict(self) -> dict[str, Any]:
        return {"records": [r.to_dict() for r in self.records()]}

    def export(self, path: Path) -> None:
        export_records(self.records(), path)


def export_records(records: list[DeviceIdentityRecord], path: Path) -> None:
    """Write records as JSON for the boot configuration generator."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump({"records": [r.to_dict() for r in records]}, f, indent=2)


def _container_uuid(volume: FormattedVolume) -> str | None:
    # The LUKS header UUID sits on the container, one level below an LV
    node = volume.node
    while node is not None:
        if node.kind is DeviceKind.ENCRYPTED_CONTAINER:
            return node.container_uuid
        node = node.parents[0] if len(node.parents) == 1 else None
    return None
