"""
Tests for storageforge.provision.strategy module.
"""

from collections.abc import Callable
from pathlib import Path

import pytest

from storageforge.core.config import ExecutionConfig
from storageforge.core.exceptions import StrategyNotImplementedError
from storageforge.core.plan import InstallPlan
from storageforge.platform.linux.tools import LinuxTools
from storageforge.provision.strategy import describe_execution, ensure_supported, execute_strategy


@pytest.fixture(autouse=True)
def no_battery(mocker) -> None:
    mocker.patch("psutil.sensors_battery", return_value=None)


@pytest.fixture
def config() -> ExecutionConfig:
    return ExecutionConfig()


class TestScenarios:
    """End-to-end runs against the recording runner."""

    def test_single_disk_encrypted_root(
        self, runner, make_plan: Callable[..., InstallPlan], config: ExecutionConfig
    ) -> None:
        plan = make_plan(strategy={"kind": "simple_luks", "passphrase": "hunter22"})

        result = execute_strategy(plan, runner, config)

        assert result.success, result.error
        assert [v.device_path for v in result.volumes] == [
            "/dev/mapper/cryptroot",
            "/dev/sda2",
            "/dev/sda1",
        ]
        assert [m.target.removeprefix(plan.target_root) or "/" for m in result.mounts] == [
            "/",
            "/boot",
            "/boot/efi",
        ]
        assert {r.role for r in result.records} == {"ROOT", "XBOOTLDR"}
        root = next(r for r in result.records if r.role == "ROOT")
        assert root.container_uuid == runner.fake_uuid("/dev/sda3")
        assert "crypttab" not in result.artifacts

    def test_two_disk_raid_lvm(
        self, runner, make_plan: Callable[..., InstallPlan], config: ExecutionConfig
    ) -> None:
        plan = make_plan(
            disks=["/dev/sda", "/dev/sdb"],
            strategy="raid+lvm",
            swap={"enabled": True, "size_mib": 4096},
            home={"enabled": True},
            home_filesystem="xfs",
        )

        result = execute_strategy(plan, runner, config)

        assert result.success, result.error
        creates = [a for a in runner.argvs() if a[:2] == ["mdadm", "--create"]]
        assert [c[2] for c in creates] == ["/dev/md/XBOOTLDR", "/dev/md/DATA"]
        assert all("--level=1" in c for c in creates)
        assert runner.tools().count(LinuxTools.LVCREATE) == 3

        sources = [m.source for m in result.mounts]
        assert sources == [
            "/dev/volgroup0/lv_root",
            "/dev/md/XBOOTLDR",
            "/dev/sda1",
            "/dev/volgroup0/lv_home",
        ]
        assert [a for a in runner.argvs() if a[0] == LinuxTools.SWAPON] == [
            ["swapon", "/dev/volgroup0/lv_swap"]
        ]
        assert [r.role for r in result.records] == ["ROOT", "XBOOTLDR", "HOME"]

        mdadm_conf = Path(result.artifacts["raid_config"])
        assert mdadm_conf.read_text().count("ARRAY ") == 2
        lines = mdadm_conf.read_text().splitlines()
        assert "metadata=1.0" in next(line for line in lines if "/dev/md/XBOOTLDR" in line)
        assert "metadata=1.2" in next(line for line in lines if "/dev/md/DATA" in line)

    def test_three_disk_legacy_raid(
        self, runner, make_plan: Callable[..., InstallPlan], config: ExecutionConfig
    ) -> None:
        plan = make_plan(
            disks=["/dev/sda", "/dev/sdb", "/dev/sdc"], boot_mode="legacy", strategy="raid_lvm"
        )

        result = execute_strategy(plan, runner, config)

        assert result.success, result.error
        creates = [a for a in runner.argvs() if a[:2] == ["mdadm", "--create"]]
        assert creates[0][2] == "/dev/md/BOOT"
        assert "--level=1" in creates[0]
        assert creates[1][2] == "/dev/md/DATA"
        assert "--level=5" in creates[1]
        assert [r.role for r in result.records] == ["ROOT", "BOOT"]
        # Legacy boot has no firmware partition
        assert LinuxTools.MKFS_VFAT not in runner.tools()

    @pytest.mark.parametrize("kind", ["raid_luks", "raid_lvm_luks"])
    def test_unimplemented_strategy_has_no_side_effects(
        self,
        runner,
        make_plan: Callable[..., InstallPlan],
        config: ExecutionConfig,
        kind: str,
    ) -> None:
        plan = make_plan(disks=["/dev/sda", "/dev/sdb"], strategy={"kind": kind})

        result = execute_strategy(plan, runner, config)

        assert result.success is False
        assert result.error_kind == "not_implemented"
        assert "not implemented" in result.error
        assert result.commands == []
        assert runner.history == []


class TestPreconditions:
    """Nothing destructive runs when a precondition fails."""

    def test_wrong_disk_count(
        self, runner, make_plan: Callable[..., InstallPlan], config: ExecutionConfig
    ) -> None:
        plan = make_plan(strategy="raid_lvm")

        result = execute_strategy(plan, runner, config)

        assert result.success is False
        assert result.error_kind == "precondition"
        assert result.failed_step == "preflight"
        assert result.destructive_command_count == 0

    def test_missing_disk(
        self, make_runner, raid_plan: InstallPlan, config: ExecutionConfig
    ) -> None:
        runner = make_runner(missing_devices={"/dev/sdb"})

        result = execute_strategy(raid_plan, runner, config)

        assert result.success is False
        assert "/dev/sdb" in result.error
        assert runner.destructive_commands == []

    def test_missing_tool(
        self, make_runner, luks_plan: InstallPlan, config: ExecutionConfig
    ) -> None:
        runner = make_runner(missing_tools={LinuxTools.CRYPTSETUP})

        result = execute_strategy(luks_plan, runner, config)

        assert result.success is False
        assert "cryptsetup" in result.error
        assert runner.history == []

    def test_not_root(self, make_runner, simple_plan: InstallPlan, config: ExecutionConfig) -> None:
        runner = make_runner(admin=False)
        assert execute_strategy(simple_plan, runner, config).success is False

        relaxed = ExecutionConfig(host_checks_enabled=False)
        assert execute_strategy(simple_plan, make_runner(admin=False), relaxed).success is True

    def test_ensure_supported(self, make_plan: Callable[..., InstallPlan]) -> None:
        ensure_supported(make_plan())
        with pytest.raises(StrategyNotImplementedError):
            ensure_supported(make_plan(disks=["sda", "sdb"], strategy="raid+luks"))


class TestFailures:
    """A failure mid-run names the step and device and stops the run."""

    def test_tool_failure(
        self, make_runner, raid_plan: InstallPlan, config: ExecutionConfig
    ) -> None:
        runner = make_runner(fail_on=lambda c: c.tool == LinuxTools.VGCREATE)

        result = execute_strategy(raid_plan, runner, config)

        assert result.success is False
        assert result.error_kind == "tool_invocation"
        assert result.failed_step == "volume group"
        assert result.failed_device == "/dev/md/DATA"
        assert "simulated failure" in result.error
        assert LinuxTools.LVCREATE not in runner.tools()
        assert result.commands[-1].command.tool == LinuxTools.VGCREATE
        assert result.records == []

    def test_missing_partition_node(
        self, make_runner, simple_plan: InstallPlan, config: ExecutionConfig
    ) -> None:
        runner = make_runner(missing_devices={"/dev/sda2"})

        result = execute_strategy(simple_plan, runner, config)

        assert result.success is False
        assert result.error_kind == "validation"
        assert result.failed_device == "/dev/sda2"
        assert result.destructive_command_count == 2
        assert LinuxTools.MKFS_EXT4 not in runner.tools()


class TestRecords:
    """Device identities produced by a successful run."""

    def test_one_record_per_tracked_volume(
        self, runner, make_plan: Callable[..., InstallPlan], config: ExecutionConfig
    ) -> None:
        plan = make_plan(
            boot_mode="legacy",
            swap={"enabled": True, "size_mib": "1G"},
            home={"enabled": True},
            home_filesystem="btrfs",
            root_filesystem="btrfs",
        )

        result = execute_strategy(plan, runner, config)

        assert result.success, result.error
        assert [r.role for r in result.records] == ["ROOT", "BOOT", "HOME"]
        paths = [r.device_path for r in result.records]
        assert len(set(paths)) == len(paths)
        assert [v.purpose.name for v in result.volumes] == ["ROOT", "BOOT", "HOME", "SWAP"]

    def test_dry_run_touches_nothing(
        self, make_runner, raid_plan: InstallPlan, config: ExecutionConfig
    ) -> None:
        runner = make_runner(dry_run=True)

        result = execute_strategy(raid_plan, runner, config)

        assert result.success, result.error
        assert not Path(raid_plan.target_root).exists()
        assert len(result.records) == 3


class TestDescribeExecution:
    """Tests for the human-readable plan."""

    def test_raid_steps(self, raid_plan: InstallPlan) -> None:
        execution = describe_execution(raid_plan)

        assert execution.targets == ["/dev/sda", "/dev/sdb"]
        assert any("RAID1 array XBOOTLDR" in s for s in execution.steps)
        assert any("lv_swap of 4096 MiB" in s for s in execution.steps)
        assert len(execution.warnings) == 2
        assert any(s.endswith("in order: /, /boot, /boot/efi, /home") for s in execution.steps)

    def test_unimplemented_warns(self, make_plan: Callable[..., InstallPlan]) -> None:
        execution = describe_execution(make_plan(disks=["sda", "sdb"], strategy="raid_luks"))
        assert any("not implemented" in w for w in execution.warnings)

    def test_single_disk_raid_warns(self, make_plan: Callable[..., InstallPlan]) -> None:
        execution = describe_execution(make_plan(strategy="raid_lvm"))

        assert any("needs at least 2 disks" in w for w in execution.warnings)
        assert not any(s.startswith("Assemble RAID") for s in execution.steps)
        assert not any("volume group" in s for s in execution.steps)

    def test_btrfs_subvolume_failure_leaves_nothing_outside_target(
        self, make_runner, make_plan: Callable[..., InstallPlan], config: ExecutionConfig
    ) -> None:
        plan = make_plan(
            strategy={"kind": "simple_luks", "passphrase": "hunter22"}, root_filesystem="btrfs"
        )
        runner = make_runner(fail_on=lambda c: c.tool == LinuxTools.BTRFS)

        result = execute_strategy(plan, runner, config)

        assert result.success is False
        assert result.failed_step == "subvolumes"
        mounted = [a[2] for a in runner.argvs() if a[0] == LinuxTools.MOUNT]
        unmounted = [a[1] for a in runner.argvs() if a[0] == LinuxTools.UMOUNT]
        assert mounted and mounted == unmounted
