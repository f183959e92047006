"""
StorageForge teardown.

Releases the live kernel state a provisioning run leaves behind: mounts,
active swap, volume groups, opened LUKS mappings and assembled arrays. It
runs the composition in reverse and never touches partition tables or
filesystems, so the disks keep whatever was written to them.

Teardown is never run automatically after a failed run. A half-built stack
is left exactly as it failed so it can be inspected; call this explicitly
before retrying a plan.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, assert_never

from storageforge.core.logging import OperationLogger, get_logger
from storageforge.core.models import VolumePurpose
from storageforge.core.plan import (
    RaidLuksStrategy,
    RaidLvmLuksStrategy,
    RaidLvmStrategy,
    SimpleLuksStrategy,
    SimpleStrategy,
)
from storageforge.platform.base import Command
from storageforge.platform.linux.tools import LinuxTools
from storageforge.provision.compositor import DATA_ARRAY, boot_array_name
from storageforge.provision.partitioning import build_partition_specs
from storageforge.provision.paths import logical_volume_path, partition_path, raid_array_path

if TYPE_CHECKING:
    from storageforge.core.plan import InstallPlan
    from storageforge.platform.base import CommandResult, CommandRunner

logger = get_logger(__name__)


@dataclass
class TeardownReport:
    """What teardown released and what it could not."""

    released: list[str] = field(default_factory=list)
    failed: list[CommandResult] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.failed


def teardown_commands(plan: InstallPlan) -> list[Command]:
    """Commands that undo a run of this plan, outermost layer first."""
    strategy = plan.strategy
    commands: list[Command] = []

    swap_device = None
    if plan.wants_swap:
        if isinstance(strategy, RaidLvmStrategy):
            swap_device = logical_volume_path(strategy.volume_group, strategy.swap_lv)
        elif strategy.swap_on_partition:
            for spec in build_partition_specs(plan.primary_disk, plan):
                if spec.purpose is VolumePurpose.SWAP:
                    swap_device = partition_path(spec.disk, spec.index)
    if swap_device:
        commands.append(Command(LinuxTools.SWAPOFF, (swap_device,), description="Disable swap"))

    commands.append(
        Command(LinuxTools.UMOUNT, ("-R", plan.target_root), description="Unmount target tree")
    )

    if isinstance(strategy, SimpleStrategy):
        pass
    elif isinstance(strategy, SimpleLuksStrategy):
        mappers = [strategy.root_mapper]
        if plan.wants_home:
            mappers.append(strategy.home_mapper)
        for mapper in mappers:
            commands.append(
                Command(LinuxTools.CRYPTSETUP, ("close", mapper), description=f"Close {mapper}")
            )
    elif isinstance(strategy, RaidLvmStrategy):
        commands.append(
            Command(
                LinuxTools.VGCHANGE,
                ("-an", strategy.volume_group),
                description=f"Deactivate {strategy.volume_group}",
            )
        )
        for name in (DATA_ARRAY, boot_array_name(plan.boot_mode)):
            commands.append(
                Command(
                    LinuxTools.MDADM,
                    ("--stop", raid_array_path(name)),
                    description=f"Stop array {name}",
                )
            )
    elif isinstance(strategy, (RaidLuksStrategy, RaidLvmLuksStrategy)):
        # Never built, nothing beyond the mounts to release
        pass
    else:
        assert_never(strategy)

    return commands


def teardown(plan: InstallPlan, runner: CommandRunner) -> TeardownReport:
    """
    Release everything a run of this plan may have left active.

    Each step is attempted even if an earlier one failed, since a partial
    run leaves only some layers in place. Failures are reported, not raised.
    """
    report = TeardownReport()

    with OperationLogger("teardown", logger, strategy=plan.strategy.kind):
        for command in teardown_commands(plan):
            result = runner.run(command)
            if result.success:
                report.released.append(command.display())
            else:
                report.failed.append(result)
                logger.warning(
                    "Teardown step failed",
                    command=command.display(),
                    diagnostic=result.diagnostic,
                )

    return report
