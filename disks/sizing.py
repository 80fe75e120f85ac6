# disks/sizing.py
from __future__ import annotations
import re
from typing import Tuple

from disks.topology import format_size

GiB = 1 << 30
MiB = 1 << 20

SINGLE_DISK_MIN_GIB = 250
MULTIPLE_DISK_MIN_GIB = 180
HARD_MIN_DATA_DISK_GIB = 50
PERSISTENT_SIZE_MIN_GIB = 150
DEFAULT_PERSISTENT_PERCENTAGE = 0.3
# Space taken by the OEM, state and recovery partitions on the OS disk
OS_PARTITIONS_GIB = 65
MBR_MAX_BYTES = 2 * (1 << 40)

_PARTITION_SIZE_RE = re.compile(r"^([0-9]+)(Mi|Gi)$")


def validate_disk_size(size_bytes: int, single_disk: bool) -> Tuple[bool, str]:
    """OS disk check: a disk that also holds the data partition needs more room."""
    minimum = SINGLE_DISK_MIN_GIB if single_disk else MULTIPLE_DISK_MIN_GIB
    if size_bytes < minimum * GiB:
        return False, (
            f"Installation disk size is too small ({format_size(size_bytes)}). "
            f"Minimum {minimum}Gi is required"
        )
    return True, ""


def validate_data_disk_size(size_bytes: int) -> Tuple[bool, str]:
    if size_bytes < HARD_MIN_DATA_DISK_GIB * GiB:
        return False, (
            f"Data disk size is too small ({format_size(size_bytes)}). "
            f"Minimum {HARD_MIN_DATA_DISK_GIB}Gi is required"
        )
    return True, ""


def parse_partition_size(disk_bytes: int, spec: str) -> int:
    """'150Gi' / '153600Mi' -> bytes, checked against the disk. Raises ValueError."""
    m = _PARTITION_SIZE_RE.match(spec.strip())
    if not m:
        raise ValueError(f"Invalid partition size '{spec}'. Use a number with a Mi or Gi suffix")
    amount, unit = int(m.group(1)), m.group(2)
    size = amount * (GiB if unit == "Gi" else MiB)
    if size < PERSISTENT_SIZE_MIN_GIB * GiB:
        raise ValueError(f"Partition size is too small. Minimum {PERSISTENT_SIZE_MIN_GIB}Gi is required")
    available = disk_bytes - OS_PARTITIONS_GIB * GiB
    if size > available:
        raise ValueError(
            f"Partition size is too large. Maximum {max(available, 0) // GiB}Gi is available"
        )
    return size


def default_persistent_size(disk_bytes: int) -> str:
    size_gib = int(disk_bytes * DEFAULT_PERSISTENT_PERCENTAGE) // GiB
    return f"{max(size_gib, PERSISTENT_SIZE_MIN_GIB)}Gi"


def exceeds_mbr_limit(disk_bytes: int) -> bool:
    return disk_bytes >= MBR_MAX_BYTES
