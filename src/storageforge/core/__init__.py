"""
StorageForge Core - Backend service layer.

Contains the install plan model, configuration, safety checks and session
management shared by the provisioning pipeline and the CLI.
"""

from storageforge.core.config import StorageForgeConfig
from storageforge.core.exceptions import (
    DeviceValidationError,
    PreconditionError,
    StorageForgeError,
    StrategyNotImplementedError,
    ToolInvocationError,
)
from storageforge.core.logging import get_logger, setup_logging
from storageforge.core.plan import InstallPlan
from storageforge.core.result import ProvisionResult
from storageforge.core.safety import SafetyManager
from storageforge.core.session import ProvisionSession

__all__ = [
    "StorageForgeConfig",
    "InstallPlan",
    "ProvisionResult",
    "ProvisionSession",
    "get_logger",
    "setup_logging",
    "SafetyManager",
    "StorageForgeError",
    "PreconditionError",
    "StrategyNotImplementedError",
    "ToolInvocationError",
    "DeviceValidationError",
]
