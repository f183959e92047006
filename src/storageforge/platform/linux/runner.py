"""
Linux command runner.

Executes provisioning commands with subprocess and answers device questions
from the live system.
"""

from __future__ import annotations

import os
import shutil
import stat
import subprocess
import time

from storageforge.core.logging import get_logger
from storageforge.platform.base import Command, CommandResult, CommandRunner

logger = get_logger(__name__)


class SystemCommandRunner(CommandRunner):
    """Runs commands for real. Needs root for nearly everything it does."""

    @property
    def dry_run(self) -> bool:
        return False

    def execute(self, command: Command) -> CommandResult:
        logger.debug(
            "Running command",
            command=command.argv,
            description=command.description,
            stdin=command.stdin,
        )
        start_time = time.time()

        # No timeout: a half-finished mkfs or mdadm --create must not be killed
        try:
            completed = subprocess.run(
                command.argv,
                input=command.stdin,
                capture_output=True,
                text=True,
            )
        except FileNotFoundError as e:
            return CommandResult(
                returncode=127,
                stdout="",
                stderr=str(e),
                command=command,
                duration_seconds=time.time() - start_time,
            )

        result = CommandResult(
            returncode=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
            command=command,
            duration_seconds=time.time() - start_time,
        )

        if not result.success:
            logger.warning(
                "Command failed",
                command=command.argv,
                returncode=result.returncode,
                stderr=result.stderr[:500] if result.stderr else "",
            )

        return result

    def device_exists(self, path: str) -> bool:
        if not path.startswith("/dev/"):
            return False
        try:
            return stat.S_ISBLK(os.stat(path).st_mode)
        except OSError:
            return False

    def has_tool(self, tool: str) -> bool:
        return shutil.which(tool) is not None

    def is_admin(self) -> bool:
        return os.geteuid() == 0
