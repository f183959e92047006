"""
StorageForge exceptions.

Error hierarchy for provisioning runs. Precondition errors are raised before
any command touches a disk; everything else aborts a run that has already
started modifying block devices.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from storageforge.platform.base import CommandResult


class StorageForgeError(Exception):
    """Base exception for StorageForge errors."""

    kind = "error"

    def __init__(self, message: str, step: str | None = None, device: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.step = step
        self.device = device


class PreconditionError(StorageForgeError):
    """The install plan cannot be executed as given."""

    kind = "precondition"


class StrategyNotImplementedError(PreconditionError):
    """The requested strategy has no implementation."""

    kind = "not_implemented"


class ToolInvocationError(StorageForgeError):
    """An external tool returned a failure."""

    kind = "tool_invocation"

    def __init__(
        self,
        message: str,
        result: CommandResult,
        step: str | None = None,
        device: str | None = None,
    ) -> None:
        super().__init__(message, step=step, device=device)
        self.result = result


class DeviceValidationError(StorageForgeError):
    """A device path that should exist does not."""

    kind = "validation"


class IdentityCaptureError(DeviceValidationError):
    """No UUID could be read back from a device."""


class RegistryError(StorageForgeError):
    """Device identity registry was used out of order."""

    kind = "registry"
