"""
StorageForge strategy selector.

Validates an install plan, then drives the provisioning stages in their
fixed order:

    partition table -> device stack -> filesystems -> mounts -> identities

Nothing is attempted until every precondition holds. Once the first disk is
wiped the run either finishes or stops at the first failure, leaving the
disks as they are for manual recovery.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, assert_never

from storageforge.core.config import ExecutionConfig
from storageforge.core.exceptions import StorageForgeError, StrategyNotImplementedError
from storageforge.core.logging import OperationLogger, get_logger
from storageforge.core.models import (
    DeviceKind,
    FileSystem,
    FormattedVolume,
    PartitionSpec,
    PartitionStyle,
    VolumePurpose,
)
from storageforge.core.plan import (
    RaidLuksStrategy,
    RaidLvmLuksStrategy,
    RaidLvmStrategy,
    SimpleLuksStrategy,
    SimpleStrategy,
)
from storageforge.core.result import ProvisionResult
from storageforge.core.safety import (
    ExecutionPlan,
    PreflightContext,
    PreflightReport,
    create_plan_checker,
    create_standard_preflight_checker,
)
from storageforge.provision.compositor import boot_array_name, compose, data_raid_level
from storageforge.provision.formatter import format_volume
from storageforge.provision.identity import DeviceIdentityRegistry, role_label
from storageforge.provision.mounts import activate_swap, mount_volumes, planned_mount_points
from storageforge.provision.partitioning import (
    apply_partition_table,
    build_disk_layouts,
    check_symmetric,
)
from storageforge.provision.persist import write_crypttab, write_raid_config

if TYPE_CHECKING:
    from storageforge.core.models import DeviceStack
    from storageforge.core.plan import InstallPlan
    from storageforge.platform.base import CommandRunner

logger = get_logger(__name__)


def ensure_supported(plan: InstallPlan) -> None:
    """Raise StrategyNotImplementedError for strategies with no implementation."""
    strategy = plan.strategy
    if isinstance(strategy, (SimpleStrategy, SimpleLuksStrategy, RaidLvmStrategy)):
        return
    if isinstance(strategy, (RaidLuksStrategy, RaidLvmLuksStrategy)):
        raise StrategyNotImplementedError(
            f"Strategy {strategy.kind} is not implemented", step="strategy"
        )
    assert_never(strategy)


def run_preflight(
    plan: InstallPlan,
    runner: CommandRunner,
    config: ExecutionConfig,
) -> PreflightReport:
    """Check the plan against the host; raises PreconditionError on any failure."""
    if config.host_checks_enabled:
        checker = create_standard_preflight_checker(config.check_required_tools)
    else:
        checker = create_plan_checker(config.check_required_tools)

    report = checker.run_checks(
        PreflightContext(plan=plan, runner=runner, settle=config.settle_after_partitioning)
    )
    report.raise_for_errors()
    return report


def prepare(
    plan: InstallPlan,
    runner: CommandRunner,
    config: ExecutionConfig,
) -> tuple[PreflightReport, dict[str, list[PartitionSpec]]]:
    """Every check that must pass before the first destructive command."""
    ensure_supported(plan)
    report = run_preflight(plan, runner, config)
    layouts = build_disk_layouts(plan)
    if plan.uses_raid:
        check_symmetric(layouts)
    return report, layouts


def format_stack(
    stack: DeviceStack, plan: InstallPlan, runner: CommandRunner
) -> list[FormattedVolume]:
    """Create a filesystem on the top-most device of each purpose."""
    volumes: list[FormattedVolume] = []

    root = stack.final(VolumePurpose.ROOT)
    if root is None:
        raise StorageForgeError("Device stack has no root device", step="format")
    volumes.append(format_volume(root, plan.root_filesystem, runner, VolumePurpose.ROOT, "ROOT"))

    boot = stack.final(VolumePurpose.BOOT)
    if boot is not None:
        label = role_label(VolumePurpose.BOOT, plan.boot_mode)
        volumes.append(format_volume(boot, plan.boot_filesystem, runner, VolumePurpose.BOOT, label))

    # Every disk gets a formatted ESP; only the first is mounted
    for esp in stack.all_for(VolumePurpose.ESP):
        volumes.append(format_volume(esp, FileSystem.FAT32, runner, VolumePurpose.ESP, "EFI"))

    home = stack.final(VolumePurpose.HOME)
    if home is not None and plan.home_filesystem is not None:
        volumes.append(format_volume(home, plan.home_filesystem, runner, VolumePurpose.HOME, "HOME"))

    swap = stack.final(VolumePurpose.SWAP)
    if swap is not None:
        volumes.append(format_volume(swap, FileSystem.SWAP, runner, VolumePurpose.SWAP, "SWAP"))

    return volumes


def execute_strategy(
    plan: InstallPlan,
    runner: CommandRunner,
    config: ExecutionConfig | None = None,
) -> ProvisionResult:
    """
    Provision the disks of a plan and return the captured device identities.

    Errors never escape as exceptions; they are reported on the result with
    the step and device that failed.
    """
    config = config or ExecutionConfig()
    result = ProvisionResult(success=False, strategy=plan.strategy.kind, start_time=datetime.now())
    first_command = len(runner.history)
    registry = DeviceIdentityRegistry()

    try:
        with OperationLogger(
            "provisioning",
            logger,
            strategy=plan.strategy.kind,
            boot_mode=plan.boot_mode.value,
            disks=list(plan.disks),
            dry_run=runner.dry_run,
        ):
            result.preflight_report, layouts = prepare(plan, runner, config)
            if result.preflight_report.has_warnings:
                result.warnings.extend(
                    c.message for c in result.preflight_report.checks if c.severity == "warning"
                )

            partitions = {
                disk: apply_partition_table(
                    disk, specs, plan, runner, settle=config.settle_after_partitioning
                )
                for disk, specs in layouts.items()
            }
            stack = compose(partitions, plan, runner)
            result.volumes = format_stack(stack, plan, runner)
            result.mounts = mount_volumes(result.volumes, plan.target_root, runner)
            activate_swap(result.volumes, runner)

            if stack.of_kind(DeviceKind.RAID_ARRAY):
                path = write_raid_config(stack, plan.target_root, config.raid_config_path, runner)
                result.artifacts["raid_config"] = str(path)
            if config.write_crypttab and stack.of_kind(DeviceKind.ENCRYPTED_CONTAINER):
                crypttab = write_crypttab(stack, plan.target_root, config.crypttab_path, runner)
                if crypttab is not None:
                    result.artifacts["crypttab"] = str(crypttab)

            for volume in result.volumes:
                registry.capture_volume(volume, plan.boot_mode, runner)
            registry.freeze()

        result.records = registry.records()
        result.success = True
    except StorageForgeError as e:
        result.record_error(e)
        logger.error(
            "Provisioning aborted",
            error_kind=e.kind,
            step=e.step,
            device=e.device,
            error=e.message,
            destructive_commands_issued=sum(
                1 for r in runner.history[first_command:] if r.command.destructive
            ),
        )
    finally:
        result.commands = runner.history[first_command:]
        result.end_time = datetime.now()

    return result


def describe_execution(plan: InstallPlan) -> ExecutionPlan:
    """Human-readable list of what executing a plan would do, without doing it."""
    layouts = build_disk_layouts(plan)
    style = PartitionStyle.for_boot_mode(plan.boot_mode)
    steps = [
        f"Wipe {disk} and write a {style.name} table with {len(specs)} partitions"
        for disk, specs in layouts.items()
    ]
    warnings = [f"All data on {disk} will be destroyed" for disk in layouts]

    strategy = plan.strategy
    if isinstance(strategy, SimpleStrategy):
        steps.append("Use the data partition directly as root")
    elif isinstance(strategy, SimpleLuksStrategy):
        steps.append(f"Create LUKS2 container {strategy.root_mapper} on the root partition")
        if plan.wants_home:
            steps.append(f"Create LUKS2 container {strategy.home_mapper} on the home partition")
    elif isinstance(strategy, RaidLvmStrategy) and len(plan.disks) < 2:
        warnings.append(f"Strategy {strategy.kind} needs at least 2 disks and will not run")
    elif isinstance(strategy, RaidLvmStrategy):
        level = data_raid_level(len(plan.disks))
        boot_array = boot_array_name(plan.boot_mode)
        steps.append(f"Assemble RAID1 array {boot_array} from the boot partitions")
        steps.append(f"Assemble RAID{level} array DATA from the data partitions")
        steps.append(f"Create volume group {strategy.volume_group} on the DATA array")
        steps.append(f"Create {strategy.root_lv} on {plan.sizing.root_free_percent}% of free space")
        if plan.wants_swap:
            steps.append(f"Create {strategy.swap_lv} of {plan.swap.size_mib} MiB")
        if plan.wants_home:
            steps.append(f"Create {strategy.home_lv} on the remaining space")
    elif isinstance(strategy, (RaidLuksStrategy, RaidLvmLuksStrategy)):
        warnings.append(f"Strategy {strategy.kind} is not implemented and will not run")
    else:
        assert_never(strategy)

    steps.append(f"Format root as {plan.root_filesystem.value}")
    if plan.wants_home and plan.home_filesystem is not None:
        steps.append(f"Format home as {plan.home_filesystem.value}")
    mount_order = ", ".join(planned_mount_points(plan))
    steps.append(f"Mount under {plan.target_root} in order: {mount_order}")
    if plan.wants_swap:
        steps.append("Enable swap")
    if plan.uses_raid:
        steps.append("Record RAID arrays in the target's mdadm.conf")
    steps.append("Capture device UUIDs for the boot configuration")

    return ExecutionPlan(
        description=f"Provision {plan.strategy.kind} ({plan.boot_mode.value} boot)",
        targets=list(layouts),
        steps=steps,
        warnings=warnings,
    )
