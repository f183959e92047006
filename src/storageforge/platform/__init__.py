"""
StorageForge Platform Layer.

Provides the command runners provisioning stages use to touch the host.
"""

from __future__ import annotations

import platform

from storageforge.platform.base import Command, CommandResult, CommandRunner
from storageforge.platform.dryrun import DryRunCommandRunner


def get_command_runner(dry_run: bool = False) -> CommandRunner:
    """Get the runner for the current OS."""
    if dry_run:
        return DryRunCommandRunner()

    system = platform.system().lower()
    if system == "linux":
        from storageforge.platform.linux import SystemCommandRunner

        return SystemCommandRunner()

    raise RuntimeError(f"Unsupported platform: {system}")


__all__ = [
    "Command",
    "CommandResult",
    "CommandRunner",
    "DryRunCommandRunner",
    "get_command_runner",
]
