"""
StorageForge dry-run runner.

Records every command instead of executing it, and fakes the few answers
later stages read back (UUIDs and the RAID scan) so a whole plan can be
walked through without touching a disk.
"""

from __future__ import annotations

import uuid

from storageforge.core.logging import get_logger
from storageforge.platform.base import Command, CommandResult, CommandRunner
from storageforge.platform.linux.tools import LinuxTools

logger = get_logger(__name__)

_DRY_RUN_NAMESPACE = uuid.UUID("6c1f0a8e-52d4-4b7e-9d0e-2f4a3c9b7a11")


class DryRunCommandRunner(CommandRunner):
    """Runner that prints what it would do."""

    def __init__(self) -> None:
        super().__init__()
        self.created_arrays: dict[str, str] = {}

    @property
    def dry_run(self) -> bool:
        return True

    def execute(self, command: Command) -> CommandResult:
        logger.info("Would run", command=command.display(), description=command.description)

        stdout = ""
        if command.tool == LinuxTools.BLKID and "UUID" in command.args:
            stdout = self.fake_uuid(command.args[-1]) + "\n"
        elif command.tool == LinuxTools.MDADM:
            if "--create" in command.args:
                array = command.args[command.args.index("--create") + 1]
                metadata = next(
                    (a.split("=", 1)[1] for a in command.args if a.startswith("--metadata=")),
                    "1.2",
                )
                self.created_arrays[array] = metadata
            elif "--scan" in command.args:
                stdout = "".join(
                    f"ARRAY {array} metadata={metadata} UUID={self.fake_uuid(array)}\n"
                    for array, metadata in self.created_arrays.items()
                )

        return CommandResult(returncode=0, stdout=stdout, stderr="", command=command)

    def device_exists(self, path: str) -> bool:
        return True

    def has_tool(self, tool: str) -> bool:
        return True

    @staticmethod
    def fake_uuid(device: str) -> str:
        """Stable made-up UUID for a device path."""
        return str(uuid.uuid5(_DRY_RUN_NAMESPACE, device))
