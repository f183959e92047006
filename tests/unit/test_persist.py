"""
Tests for storageforge.provision.persist module.
"""

from pathlib import Path

import pytest

from storageforge.core.exceptions import StorageForgeError
from storageforge.core.models import BlockDeviceNode, DeviceKind, DeviceStack, VolumePurpose
from storageforge.platform.base import Command
from storageforge.provision.persist import render_crypttab, write_crypttab, write_raid_config


def raid_stack(runner) -> DeviceStack:
    stack = DeviceStack()
    members = tuple(
        BlockDeviceNode(kind=DeviceKind.RAW_PARTITION, path=p) for p in ("/dev/sda3", "/dev/sdb3")
    )
    stack.add(BlockDeviceNode(kind=DeviceKind.RAID_ARRAY, path="/dev/md/DATA", parents=members))
    runner.run(Command("mdadm", ("--create", "/dev/md/DATA", "--run", "--level=1")))
    return stack


def luks_stack() -> DeviceStack:
    stack = DeviceStack()
    for purpose, part, name in (
        (VolumePurpose.ROOT, "/dev/sda2", "cryptroot"),
        (VolumePurpose.HOME, "/dev/sda3", "crypthome"),
    ):
        parent = stack.add(BlockDeviceNode(kind=DeviceKind.RAW_PARTITION, path=part))
        stack.add(
            BlockDeviceNode(
                kind=DeviceKind.ENCRYPTED_CONTAINER,
                path=f"/dev/mapper/{name}",
                purpose=purpose,
                parents=(parent,),
                name=name,
                container_uuid=f"uuid-of-{name}",
            )
        )
    return stack


class TestRaidConfig:
    """Tests for the target's mdadm.conf."""

    def test_writes_scan_output(self, runner, temp_dir: Path) -> None:
        stack = raid_stack(runner)
        path = write_raid_config(stack, str(temp_dir), "etc/mdadm.conf", runner)

        assert path == temp_dir / "etc" / "mdadm.conf"
        assert path.read_text().startswith("ARRAY /dev/md/DATA ")
        assert runner.argvs()[-1] == ["mdadm", "--detail", "--scan"]

    def test_missing_array_in_scan(self, runner, temp_dir: Path) -> None:
        stack = raid_stack(runner)
        runner.created_arrays.clear()

        with pytest.raises(StorageForgeError) as exc_info:
            write_raid_config(stack, str(temp_dir), "etc/mdadm.conf", runner)
        assert exc_info.value.device == "/dev/md/DATA"
        assert not (temp_dir / "etc" / "mdadm.conf").exists()

    def test_dry_run_writes_nothing(self, make_runner, temp_dir: Path) -> None:
        runner = make_runner(dry_run=True)
        stack = raid_stack(runner)
        write_raid_config(stack, str(temp_dir), "etc/mdadm.conf", runner)
        assert not (temp_dir / "etc").exists()


class TestCrypttab:
    """Tests for crypttab rendering."""

    def test_root_is_not_listed(self) -> None:
        assert render_crypttab(luks_stack()) == "crypthome UUID=uuid-of-crypthome none luks\n"

    def test_write(self, runner, temp_dir: Path) -> None:
        path = write_crypttab(luks_stack(), str(temp_dir), "etc/crypttab", runner)
        assert path is not None
        assert path.read_text() == "crypthome UUID=uuid-of-crypthome none luks\n"

    def test_nothing_to_write(self, runner, temp_dir: Path) -> None:
        assert write_crypttab(DeviceStack(), str(temp_dir), "etc/crypttab", runner) is None
