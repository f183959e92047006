"""
StorageForge provisioning result.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from storageforge.core.exceptions import StorageForgeError
    from storageforge.core.models import DeviceIdentityRecord, FormattedVolume, MountEntry
    from storageforge.core.safety import PreflightReport
    from storageforge.platform.base import CommandResult


@dataclass
class ProvisionResult:
    """Outcome of one provisioning run, successful or not."""

    success: bool
    strategy: str
    records: list[DeviceIdentityRecord] = field(default_factory=list)
    volumes: list[FormattedVolume] = field(default_factory=list)
    mounts: list[MountEntry] = field(default_factory=list)
    commands: list[CommandResult] = field(default_factory=list)
    preflight_report: PreflightReport | None = None
    error: str | None = None
    error_kind: str | None = None
    failed_step: str | None = None
    failed_device: str | None = None
    warnings: list[str] = field(default_factory=list)
    artifacts: dict[str, str] = field(default_factory=dict)
    start_time: datetime | None = None
    end_time: datetime | None = None

    @property
    def duration_seconds(self) -> float | None:
        if self.start_time and self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return None

    @property
    def destructive_command_count(self) -> int:
        return sum(1 for c in self.commands if c.command.destructive)

    def record_error(self, error: StorageForgeError) -> None:
        self.success = False
        self.error = error.message
        self.error_kind = error.kind
        self.failed_step = error.step
        self.failed_device = error.device

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "strategy": self.strategy,
            "records": [r.to_dict() for r in self.records],
            "volumes": [v.to_dict() for v in self.volumes],
            "mounts": [m.to_dict() for m in self.mounts],
            "commands": [c.to_dict() for c in self.commands],
            "error": self.error,
            "error_kind": self.error_kind,
            "failed_step": self.failed_step,
            "failed_device": self.failed_device,
            "warnings": self.warnings,
            "artifacts": self.artifacts,
            "duration_seconds": self.duration_seconds,
        }
