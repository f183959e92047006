"""
StorageForge Safety and Preflight.

Validates an install plan against the host before any command that could
destroy data is issued, and produces the confirmation string a user must
type to go ahead.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable

from storageforge.core.exceptions import PreconditionError
from storageforge.core.logging import get_logger
from storageforge.core.models import BootMode, FileSystem
from storageforge.core.plan import RaidLvmStrategy, SimpleLuksStrategy
from storageforge.platform.linux.tools import LinuxTools, mkfs_tool
from storageforge.provision.paths import normalize_disk

if TYPE_CHECKING:
    from storageforge.core.config import ExecutionConfig
    from storageforge.core.plan import InstallPlan
    from storageforge.platform.base import CommandRunner

logger = get_logger(__name__)

ROOT_FILESYSTEMS = (FileSystem.EXT4, FileSystem.XFS, FileSystem.BTRFS)
BOOT_FILESYSTEMS = (FileSystem.EXT4, FileSystem.XFS, FileSystem.FAT32)


@dataclass
class PreflightCheck:
    """Result of a single preflight check."""

    name: str
    passed: bool
    message: str
    severity: str = "info"  # info, warning, error, critical
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class PreflightReport:
    """Complete preflight check report."""

    checks: list[PreflightCheck] = field(default_factory=list)
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def all_passed(self) -> bool:
        return all(c.passed for c in self.checks)

    @property
    def has_errors(self) -> bool:
        return any(c.severity in ("error", "critical") and not c.passed for c in self.checks)

    @property
    def has_warnings(self) -> bool:
        return any(c.severity == "warning" and not c.passed for c in self.checks)

    @property
    def failures(self) -> list[PreflightCheck]:
        return [c for c in self.checks if not c.passed and c.severity in ("error", "critical")]

    def get_summary(self) -> str:
        """Get human-readable summary."""
        passed = sum(1 for c in self.checks if c.passed)
        lines = [
            f"Preflight Check Report ({self.timestamp.isoformat()})",
            "=" * 60,
            f"Results: {passed}/{len(self.checks)} checks passed",
            "",
        ]
        for check in self.checks:
            status = "✓" if check.passed else "✗"
            lines.append(f"[{status}] {check.name}: {check.message}")
            for key, value in check.details.items():
                lines.append(f"    {key}: {value}")
        return "\n".join(lines)

    def raise_for_errors(self) -> None:
        """Turn failed error-level checks into a PreconditionError."""
        if self.has_errors:
            raise PreconditionError(
                "; ".join(f"{c.name}: {c.message}" for c in self.failures),
                step="preflight",
            )


@dataclass
class PreflightContext:
    """Everything a check may look at."""

    plan: InstallPlan
    runner: CommandRunner
    settle: bool = True


CheckFunc = Callable[[PreflightContext], PreflightCheck]


@dataclass
class ExecutionPlan:
    """Human-readable description of what a provisioning run will do."""

    description: str
    targets: list[str]
    steps: list[str]
    warnings: list[str] = field(default_factory=list)
    preflight_report: PreflightReport | None = None
    confirmation_string: str | None = None

    def get_plan_text(self) -> str:
        lines = ["=" * 60, f"OPERATION: {self.description}"]
        lines.append(f"TARGETS: {', '.join(self.targets)}")
        lines.append("=" * 60)

        if self.warnings:
            lines.append("")
            lines.append("WARNINGS:")
            lines.extend(f"   • {warning}" for warning in self.warnings)

        lines.append("")
        lines.append("EXECUTION STEPS:")
        lines.extend(f"   {i}. {step}" for i, step in enumerate(self.steps, 1))

        if self.preflight_report:
            lines.append("")
            lines.append(self.preflight_report.get_summary())

        if self.confirmation_string:
            lines.append("")
            lines.append("To proceed, type the following confirmation string:")
            lines.append(f"  {self.confirmation_string}")

        return "\n".join(lines)


class SafetyManager:
    """Confirmation handling for destructive provisioning runs."""

    def __init__(self, config: ExecutionConfig) -> None:
        self.config = config

    def generate_confirmation_string(self, targets: list[str] | tuple[str, ...]) -> str:
        """Confirmation string naming every disk that will be wiped."""
        names = [re.sub(r"[^a-zA-Z0-9_-]", "", t.rsplit("/", 1)[-1]) for t in targets]
        return f"DESTROY-{'-'.join(names).upper()}"

    def verify_confirmation(self, targets: list[str] | tuple[str, ...], user_input: str) -> bool:
        if not self.config.require_confirmation:
            return True

        expected = self.generate_confirmation_string(targets)
        if user_input.strip() != expected:
            logger.warning("Confirmation verification failed", expected=expected)
            return False

        logger.info("Provisioning confirmed", targets=list(targets))
        return True


class PreflightChecker:
    """Performs preflight checks before provisioning."""

    def __init__(self) -> None:
        self._checks: list[tuple[str, CheckFunc]] = []

    def add_check(self, name: str, check_func: CheckFunc) -> None:
        self._checks.append((name, check_func))

    def run_checks(self, context: PreflightContext) -> PreflightReport:
        """Run all preflight checks and return report."""
        report = PreflightReport()

        for name, check_func in self._checks:
            try:
                report.checks.append(check_func(context))
            except Exception as e:
                report.checks.append(
                    PreflightCheck(
                        name=name,
                        passed=False,
                        message=f"Check failed with error: {e}",
                        severity="error",
                    )
                )

        logger.info(
            "Preflight finished",
            passed=report.all_passed,
            failures=[c.name for c in report.failures],
        )
        return report


def check_disk_count(context: PreflightContext) -> PreflightCheck:
    """RAID strategies need two or more disks, the others exactly one."""
    plan = context.plan
    count = len(plan.disks)
    if plan.uses_raid:
        passed = count >= 2
        expected = "at least 2"
    else:
        passed = count == 1
        expected = "exactly 1"

    return PreflightCheck(
        name="Disk Count",
        passed=passed,
        message=(
            f"{count} disk(s) for {plan.strategy.kind}"
            if passed
            else f"Strategy {plan.strategy.kind} needs {expected} disk(s), got {count}"
        ),
        severity="info" if passed else "error",
        details={"disks": list(plan.disks)},
    )


def check_unique_disks(context: PreflightContext) -> PreflightCheck:
    disks = [normalize_disk(d) for d in context.plan.disks]
    duplicates = sorted({d for d in disks if disks.count(d) > 1})
    return PreflightCheck(
        name="Distinct Disks",
        passed=not duplicates,
        message="All disks distinct" if not duplicates else f"Listed more than once: {duplicates}",
        severity="info" if not duplicates else "error",
    )


def check_disks_exist(context: PreflightContext) -> PreflightCheck:
    missing = [
        d for d in map(normalize_disk, context.plan.disks) if not context.runner.device_exists(d)
    ]
    return PreflightCheck(
        name="Disks Present",
        passed=not missing,
        message="All disks are block devices" if not missing else f"Not block devices: {missing}",
        severity="info" if not missing else "error",
    )


def check_filesystems(context: PreflightContext) -> PreflightCheck:
    plan = context.plan
    problems = []
    if plan.root_filesystem not in ROOT_FILESYSTEMS:
        problems.append(f"root cannot be {plan.root_filesystem.value}")
    if plan.wants_home:
        if plan.home_filesystem is None:
            problems.append("home requested without a home filesystem")
        elif plan.home_filesystem not in ROOT_FILESYSTEMS:
            problems.append(f"home cannot be {plan.home_filesystem.value}")
    if plan.boot_filesystem not in BOOT_FILESYSTEMS:
        problems.append(f"boot cannot be {plan.boot_filesystem.value}")

    return PreflightCheck(
        name="Filesystems",
        passed=not problems,
        message="Filesystem choices valid" if not problems else "; ".join(problems),
        severity="info" if not problems else "error",
    )


def check_swap_size(context: PreflightContext) -> PreflightCheck:
    swap = context.plan.swap
    passed = not swap.enabled or swap.size_mib > 0
    return PreflightCheck(
        name="Swap Size",
        passed=passed,
        message=f"Swap {swap.size_mib} MiB" if swap.enabled else "No swap requested",
        severity="info" if passed else "error",
    )


def required_tools(plan: InstallPlan, settle: bool = True) -> list[str]:
    """Every tool a run of this plan will call."""
    tools = [
        LinuxTools.WIPEFS,
        LinuxTools.SFDISK,
        LinuxTools.PARTPROBE,
        LinuxTools.BLKID,
        LinuxTools.MOUNT,
        mkfs_tool(plan.root_filesystem),
        mkfs_tool(plan.boot_filesystem),
    ]
    if settle:
        tools.append(LinuxTools.UDEVADM)
    if plan.boot_mode is BootMode.FIRMWARE:
        tools.append(mkfs_tool(FileSystem.FAT32))
    if plan.wants_home and plan.home_filesystem is not None:
        tools.append(mkfs_tool(plan.home_filesystem))
    if plan.wants_swap:
        tools.extend([LinuxTools.MKSWAP, LinuxTools.SWAPON])
    if FileSystem.BTRFS in (plan.root_filesystem, plan.home_filesystem):
        tools.extend([LinuxTools.BTRFS, LinuxTools.UMOUNT])
    if isinstance(plan.strategy, SimpleLuksStrategy):
        tools.append(LinuxTools.CRYPTSETUP)
    if isinstance(plan.strategy, RaidLvmStrategy):
        tools.extend(
            [LinuxTools.MDADM, LinuxTools.PVCREATE, LinuxTools.VGCREATE, LinuxTools.LVCREATE]
        )

    return list(dict.fromkeys(tools))


def check_required_tools(context: PreflightContext) -> PreflightCheck:
    tools = required_tools(context.plan, context.settle)
    missing = [t for t in tools if not context.runner.has_tool(t)]
    return PreflightCheck(
        name="Required Tools",
        passed=not missing,
        message="All tools available" if not missing else f"Missing tools: {', '.join(missing)}",
        severity="info" if not missing else "error",
        details={"tools": tools},
    )


def check_privileges(context: PreflightContext) -> PreflightCheck:
    admin = context.runner.is_admin()
    return PreflightCheck(
        name="Privileges",
        passed=admin,
        message="Running as root" if admin else "Provisioning needs root privileges",
        severity="info" if admin else "error",
    )


def check_power_status(context: PreflightContext) -> PreflightCheck:
    """Warn when a laptop is on battery; a power cut mid-run leaves broken disks."""
    try:
        import psutil

        battery = psutil.sensors_battery()
    except Exception as e:
        return PreflightCheck(
            name="Power Status",
            passed=True,
            message=f"Could not check power status: {e}",
        )

    if battery is None:
        return PreflightCheck(
            name="Power Status", passed=True, message="No battery detected (desktop/server)"
        )
    if battery.power_plugged:
        return PreflightCheck(
            name="Power Status",
            passed=True,
            message="System is on AC power",
            details={"battery_percent": battery.percent},
        )
    return PreflightCheck(
        name="Power Status",
        passed=False,
        message=f"System on battery ({battery.percent}%)",
        severity="warning",
        details={"battery_percent": battery.percent},
    )


def create_plan_checker(check_tools: bool = True) -> PreflightChecker:
    """Checks that only look at the plan and the devices it names."""
    checker = PreflightChecker()
    checker.add_check("Disk Count", check_disk_count)
    checker.add_check("Distinct Disks", check_unique_disks)
    checker.add_check("Filesystems", check_filesystems)
    checker.add_check("Swap Size", check_swap_size)
    checker.add_check("Disks Present", check_disks_exist)
    if check_tools:
        checker.add_check("Required Tools", check_required_tools)
    return checker


def create_standard_preflight_checker(check_tools: bool = True) -> PreflightChecker:
    """Plan checks plus host checks (privileges, power)."""
    checker = create_plan_checker(check_tools)
    checker.add_check("Privileges", check_privileges)
    checker.add_check("Power Status", check_power_status)
    return checker
