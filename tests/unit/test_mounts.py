"""
Tests for storageforge.provision.mounts module.
"""

from collections.abc import Callable
from pathlib import Path

import pytest

from storageforge.core.exceptions import StorageForgeError
from storageforge.core.models import (
    BlockDeviceNode,
    DeviceKind,
    FileSystem,
    FormattedVolume,
    VolumePurpose,
)
from storageforge.core.plan import InstallPlan
from storageforge.platform.linux.tools import LinuxTools
from storageforge.provision.formatter import ROOT_SUBVOLUMES
from storageforge.provision.mounts import (
    activate_swap,
    mount_volumes,
    plan_mounts,
    planned_mount_points,
)


def volume(
    path: str,
    purpose: VolumePurpose,
    filesystem: FileSystem = FileSystem.EXT4,
    subvolumes: tuple[str, ...] = (),
) -> FormattedVolume:
    return FormattedVolume(
        node=BlockDeviceNode(kind=DeviceKind.RAW_PARTITION, path=path, purpose=purpose),
        filesystem=filesystem,
        purpose=purpose,
        subvolumes=subvolumes,
    )


class TestPlanMounts:
    """Tests for mount ordering."""

    def test_parents_before_children(self) -> None:
        # Deliberately shuffled input
        volumes = [
            volume("/dev/sda4", VolumePurpose.HOME),
            volume("/dev/sda1", VolumePurpose.ESP, FileSystem.FAT32),
            volume("/dev/sda3", VolumePurpose.ROOT),
            volume("/dev/sda2", VolumePurpose.BOOT),
        ]
        planned = plan_mounts(volumes)

        assert [(p[1].device_path, p[2]) for p in planned] == [
            ("/dev/sda3", "/"),
            ("/dev/sda2", "/boot"),
            ("/dev/sda1", "/boot/efi"),
            ("/dev/sda4", "/home"),
        ]

    def test_only_first_esp_is_mounted(self) -> None:
        volumes = [
            volume("/dev/sda2", VolumePurpose.ROOT),
            volume("/dev/sda1", VolumePurpose.ESP, FileSystem.FAT32),
            volume("/dev/sdb1", VolumePurpose.ESP, FileSystem.FAT32),
        ]
        esps = [p for p in plan_mounts(volumes) if p[2] == "/boot/efi"]
        assert [p[1].device_path for p in esps] == ["/dev/sda1"]
        assert esps[0][3] == ("umask=0077",)

    def test_btrfs_root_subvolumes(self) -> None:
        volumes = [volume("/dev/sda2", VolumePurpose.ROOT, FileSystem.BTRFS, ROOT_SUBVOLUMES)]
        planned = plan_mounts(volumes)

        assert [p[2] for p in planned] == ["/", "/var", "/tmp", "/home"]
        assert planned[0][3] == ("subvol=@", "compress=zstd", "noatime")
        assert planned[-1][3][0] == "subvol=@home"

    def test_home_volume_replaces_home_subvolume(self) -> None:
        volumes = [
            volume("/dev/sda2", VolumePurpose.ROOT, FileSystem.BTRFS, ROOT_SUBVOLUMES),
            volume("/dev/sda3", VolumePurpose.HOME),
        ]
        homes = [p for p in plan_mounts(volumes) if p[2] == "/home"]
        assert len(homes) == 1
        assert homes[0][1].device_path == "/dev/sda3"

    def test_swap_is_not_mounted(self) -> None:
        volumes = [
            volume("/dev/sda2", VolumePurpose.ROOT),
            volume("/dev/sda3", VolumePurpose.SWAP, FileSystem.SWAP),
        ]
        assert [p[1].device_path for p in plan_mounts(volumes)] == ["/dev/sda2"]

    def test_root_required(self) -> None:
        with pytest.raises(StorageForgeError):
            plan_mounts([volume("/dev/sda1", VolumePurpose.BOOT)])


class TestMountVolumes:
    """Tests for performing the mounts."""

    def test_mounts_under_target(self, runner, temp_dir: Path) -> None:
        target = str(temp_dir / "target")
        volumes = [
            volume("/dev/sda3", VolumePurpose.ROOT),
            volume("/dev/sda2", VolumePurpose.BOOT),
            volume("/dev/sda1", VolumePurpose.ESP, FileSystem.FAT32),
        ]
        entries = mount_volumes(volumes, target, runner)

        assert [e.target for e in entries] == [target, f"{target}/boot", f"{target}/boot/efi"]
        assert [e.sequence for e in entries] == [0, 1, 2]
        assert runner.argvs()[2] == [
            LinuxTools.MOUNT, "-o", "umask=0077", "/dev/sda1", f"{target}/boot/efi"
        ]
        assert (temp_dir / "target" / "boot" / "efi").is_dir()
        assert volumes[2].mount_point == "/boot/efi"

    def test_dry_run_creates_nothing(self, make_runner, temp_dir: Path) -> None:
        runner = make_runner(dry_run=True)
        mount_volumes([volume("/dev/sda3", VolumePurpose.ROOT)], str(temp_dir / "target"), runner)
        assert not (temp_dir / "target").exists()
        assert runner.tools() == [LinuxTools.MOUNT]

    def test_failed_mount_stops_sequence(self, make_runner, temp_dir: Path) -> None:
        runner = make_runner(fail_on=lambda c: "/dev/sda2" in c.args)
        volumes = [
            volume("/dev/sda3", VolumePurpose.ROOT),
            volume("/dev/sda2", VolumePurpose.BOOT),
            volume("/dev/sda1", VolumePurpose.ESP, FileSystem.FAT32),
        ]
        with pytest.raises(StorageForgeError) as exc_info:
            mount_volumes(volumes, str(temp_dir / "target"), runner)

        assert exc_info.value.device == "/dev/sda2"
        assert len(runner.history) == 2


class TestActivateSwap:
    """Tests for enabling swap."""

    def test_swapon(self, runner) -> None:
        volumes = [
            volume("/dev/sda2", VolumePurpose.ROOT),
            volume("/dev/volgroup0/lv_swap", VolumePurpose.SWAP, FileSystem.SWAP),
        ]
        assert activate_swap(volumes, runner) == ["/dev/volgroup0/lv_swap"]
        assert runner.argvs() == [[LinuxTools.SWAPON, "/dev/volgroup0/lv_swap"]]


class TestPlannedMountPoints:
    """Tests for the mount order shown before a run."""

    def test_firmware_with_home(self, raid_plan: InstallPlan) -> None:
        assert planned_mount_points(raid_plan) == ["/", "/boot", "/boot/efi", "/home"]

    def test_legacy_btrfs(self, make_plan: Callable[..., InstallPlan]) -> None:
        plan = make_plan(boot_mode="legacy", root_filesystem="btrfs")
        assert planned_mount_points(plan) == ["/", "/var", "/tmp", "/boot", "/home"]
