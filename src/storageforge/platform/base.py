"""
StorageForge Platform Base.

Typed commands, their structured results, and the runner interface every
provisioning stage goes through to touch the host.
"""

from __future__ import annotations

import shlex
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from storageforge.core.exceptions import DeviceValidationError, ToolInvocationError


@dataclass(frozen=True)
class Command:
    """One invocation of an external tool."""

    tool: str
    args: tuple[str, ...] = ()
    stdin: str | None = field(default=None, repr=False)
    description: str = ""
    destructive: bool = False

    @property
    def argv(self) -> list[str]:
        return [self.tool, *self.args]

    def display(self) -> str:
        return shlex.join(self.argv)


class CommandResult:
    """Result of a command execution."""

    def __init__(
        self,
        returncode: int,
        stdout: str,
        stderr: str,
        command: Command,
        duration_seconds: float = 0.0,
    ) -> None:
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.command = command
        self.duration_seconds = duration_seconds

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def diagnostic(self) -> str:
        return (self.stderr or self.stdout).strip()[:500]

    def to_dict(self) -> dict[str, Any]:
        return {
            "command": self.command.display(),
            "returncode": self.returncode,
            "destructive": self.command.destructive,
            "duration_seconds": round(self.duration_seconds, 3),
            "diagnostic": self.diagnostic if not self.success else "",
        }

    def __repr__(self) -> str:
        return f"CommandResult(rc={self.returncode}, cmd='{self.command.display()[:50]}...')"


class CommandRunner(ABC):
    """Executes commands against the host and answers device questions."""

    def __init__(self) -> None:
        self.history: list[CommandResult] = []

    @property
    @abstractmethod
    def dry_run(self) -> bool:
        """Whether commands only get recorded instead of executed."""

    @abstractmethod
    def execute(self, command: Command) -> CommandResult:
        """Run a command and return its result without raising."""

    @abstractmethod
    def device_exists(self, path: str) -> bool:
        """Check that a path is a block device."""

    @abstractmethod
    def has_tool(self, tool: str) -> bool:
        """Check that a tool is installed."""

    def is_admin(self) -> bool:
        """Whether commands run with root privileges."""
        return True

    def run(self, command: Command) -> CommandResult:
        """Run a command and keep its result in the history."""
        result = self.execute(command)
        self.history.append(result)
        return result

    def check(self, command: Command, step: str, device: str | None = None) -> CommandResult:
        """Run a command and raise ToolInvocationError if it fails."""
        result = self.run(command)
        if not result.success:
            raise ToolInvocationError(
                f"{command.tool} failed during {step}"
                + (f" on {device}" if device else "")
                + (f": {result.diagnostic}" if result.diagnostic else ""),
                result=result,
                step=step,
                device=device,
            )
        return result

    def require_device(self, path: str, step: str) -> str:
        """Return the path if it is a block device, raise DeviceValidationError otherwise."""
        if not self.device_exists(path):
            raise DeviceValidationError(
                f"Expected block device {path} does not exist", step=step, device=path
            )
        return path

    @property
    def destructive_commands(self) -> list[Command]:
        return [r.command for r in self.history if r.command.destructive]
