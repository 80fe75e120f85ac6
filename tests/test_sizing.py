# tests/test_sizing.py
import pytest
from disks.sizing import (
    GiB, default_persistent_size, exceeds_mbr_limit, parse_partition_size,
    validate_data_disk_size, validate_disk_size,
)


def test_single_disk_needs_250g():
    ok, msg = validate_disk_size(249 * GiB, single_disk=True)
    assert not ok
    assert "250Gi" in msg
    assert validate_disk_size(250 * GiB, single_disk=True) == (True, "")


def test_separate_data_disk_lowers_os_minimum():
    assert validate_disk_size(180 * GiB, single_disk=False)[0]
    assert not validate_disk_size(179 * GiB, single_disk=False)[0]


def test_data_disk_hard_minimum():
    ok, msg = validate_data_disk_size(49 * GiB)
    assert not ok
    assert "50Gi" in msg
    assert validate_data_disk_size(50 * GiB)[0]


def test_partition_size_units():
    assert parse_partition_size(500 * GiB, "150Gi") == 150 * GiB
    assert parse_partition_size(500 * GiB, "153600Mi") == 150 * GiB


@pytest.mark.parametrize("spec", ["150", "150G", "150GB", "1.5Ti", "", "Gi"])
def test_partition_size_rejects_bad_format(spec):
    with pytest.raises(ValueError, match="Invalid partition size"):
        parse_partition_size(500 * GiB, spec)


def test_partition_size_too_small():
    with pytest.raises(ValueError, match="too small"):
        parse_partition_size(500 * GiB, "149Gi")


def test_partition_size_leaves_room_for_os_partitions():
    # 300Gi disk less 65Gi of system partitions
    assert parse_partition_size(300 * GiB, "235Gi") == 235 * GiB
    with pytest.raises(ValueError, match="Maximum 235Gi"):
        parse_partition_size(300 * GiB, "236Gi")


def test_default_persistent_size():
    assert default_persistent_size(1000 * GiB) == "300Gi"
    # Never below the minimum on small disks
    assert default_persistent_size(250 * GiB) == "150Gi"


def test_mbr_limit():
    assert not exceeds_mbr_limit((2 << 40) - 1)
    assert exceeds_mbr_limit(2 << 40)
