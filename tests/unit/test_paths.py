"""
Tests for storageforge.provision.paths module.
"""

import pytest

from storageforge.provision.paths import (
    logical_volume_path,
    mapper_path,
    normalize_disk,
    partition_path,
    raid_array_path,
)


class TestNormalizeDisk:
    """Tests for disk name normalization."""

    def test_bare_name(self) -> None:
        assert normalize_disk("sda") == "/dev/sda"

    def test_full_path_unchanged(self) -> None:
        assert normalize_disk("/dev/vdb") == "/dev/vdb"

    def test_trailing_slash(self) -> None:
        assert normalize_disk("/dev/sdc/") == "/dev/sdc"


class TestPartitionPath:
    """Tests for partition device paths."""

    @pytest.mark.parametrize(
        ("disk", "index", "expected"),
        [
            ("/dev/sda", 1, "/dev/sda1"),
            ("/dev/vdb", 3, "/dev/vdb3"),
            ("/dev/nvme0n1", 2, "/dev/nvme0n1p2"),
            ("/dev/mmcblk0", 1, "/dev/mmcblk0p1"),
            ("/dev/loop7", 4, "/dev/loop7p4"),
            ("/dev/disk/by-id/ata-DISK_123", 2, "/dev/disk/by-id/ata-DISK_123-part2"),
            ("sdb", 2, "/dev/sdb2"),
        ],
    )
    def test_partition_naming(self, disk: str, index: int, expected: str) -> None:
        assert partition_path(disk, index) == expected

    def test_index_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            partition_path("/dev/sda", 0)


class TestLayerPaths:
    """Tests for RAID, mapper and LVM node names."""

    def test_raid_array(self) -> None:
        assert raid_array_path("DATA") == "/dev/md/DATA"

    def test_mapper(self) -> None:
        assert mapper_path("cryptroot") == "/dev/mapper/cryptroot"

    def test_logical_volume(self) -> None:
        assert logical_volume_path("volgroup0", "lv_root") == "/dev/volgroup0/lv_root"
