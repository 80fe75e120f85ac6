# disks/topology.py
"""
Collapse `lsblk -J` output into the list of disks an operator can install on.

Multipath exposes one physical disk under several kernel names (plus an
mpath aggregate child), so disks are folded by identity: WWN, then serial,
then the kernel name as a last resort.
"""
from __future__ import annotations
import json
import re
import subprocess
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Union

from errors import NoInstallableDiskError
from logger import log

LSBLK_COLUMNS = "NAME,SIZE,TYPE,WWN,SERIAL,LABEL"
INSTALL_PARTITION_LABELS = frozenset(
    {"COS_OEM", "COS_STATE", "COS_RECOVERY", "COS_PERSISTENT"}
)

_UNITS = {"": 1, "B": 1, "K": 1 << 10, "M": 1 << 20, "G": 1 << 30,
          "T": 1 << 40, "P": 1 << 50}
_SIZE_RE = re.compile(r"^\s*([0-9]+(?:\.[0-9]+)?)\s*([BKMGTP]?)\s*$", re.IGNORECASE)


@dataclass
class BlockDeviceNode:
    name: str
    size: int
    type: str
    serial: Optional[str] = None
    wwn: Optional[str] = None
    label: Optional[str] = None
    children: List["BlockDeviceNode"] = field(default_factory=list)

    @property
    def identity(self) -> str:
        """wwn, then serial, then kernel name; each kind keeps its own namespace."""
        if self.wwn:
            return f"wwn:{self.wwn}"
        if self.serial:
            return f"serial:{self.serial}"
        return f"name:{self.name}"

    def walk(self) -> Iterable["BlockDeviceNode"]:
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass(frozen=True)
class DiskOption:
    name: str
    size: int
    identity: str

    @property
    def path(self) -> str:
        return f"/dev/{self.name}"

    @property
    def label(self) -> str:
        return f"{self.path} {format_size(self.size)}"


def parse_size(value: Union[str, int, None]) -> int:
    """'768.1M' -> bytes. lsblk -b already reports integers."""
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    m = _SIZE_RE.match(str(value))
    if not m:
        raise ValueError(f"unrecognised size '{value}'")
    return int(float(m.group(1)) * _UNITS[m.group(2).upper()])


def format_size(size: int) -> str:
    for unit in ("P", "T", "G", "M", "K"):
        if size >= _UNITS[unit]:
            value = size / _UNITS[unit]
            return f"{value:.0f}{unit}" if value.is_integer() else f"{value:.1f}{unit}"
    return f"{size}B"


def _node(entry: dict) -> BlockDeviceNode:
    return BlockDeviceNode(
        name=entry["name"],
        size=parse_size(entry.get("size")),
        type=entry.get("type") or "",
        serial=entry.get("serial") or None,
        wwn=entry.get("wwn") or None,
        label=entry.get("label") or None,
        children=[_node(c) for c in entry.get("children") or []],
    )


def parse_block_devices(raw: Union[str, bytes]) -> List[BlockDeviceNode]:
    try:
        data = json.loads(raw)
        return [_node(e) for e in data.get("blockdevices", [])]
    except (ValueError, KeyError, AttributeError) as e:
        raise ValueError(f"malformed block device listing: {e}") from e


def identify_unique_disks(raw: Union[str, bytes]) -> List[DiskOption]:
    """Unique installable disks in first-seen order."""
    seen = set()
    disks: List[DiskOption] = []
    for dev in parse_block_devices(raw):
        if dev.type != "disk":
            continue
        if dev.identity in seen:
            log.debug("Folding %s into an earlier disk with identity %s", dev.name, dev.identity)
            continue
        seen.add(dev.identity)
        disks.append(DiskOption(name=dev.name, size=dev.size, identity=dev.identity))
    return disks


def find_stale_installs(raw: Union[str, bytes], exclude: Iterable[str] = ()) -> List[DiskOption]:
    """Disks carrying partitions from a previous install, other than `exclude` paths."""
    excluded = {e for e in exclude if e}
    stale: List[DiskOption] = []
    seen = set()
    for dev in parse_block_devices(raw):
        if dev.type != "disk" or dev.identity in seen:
            continue
        seen.add(dev.identity)
        option = DiskOption(name=dev.name, size=dev.size, identity=dev.identity)
        if option.path in excluded:
            continue
        if any(n.label in INSTALL_PARTITION_LABELS for n in dev.walk()):
            stale.append(option)
    return stale


def read_lsblk() -> str:
    try:
        result = subprocess.run(
            ["lsblk", "-J", "-b", "-o", LSBLK_COLUMNS],
            capture_output=True, text=True, timeout=10,
        )
    except (OSError, subprocess.SubprocessError) as e:
        raise NoInstallableDiskError(f"lsblk failed: {e}") from e
    if result.returncode != 0:
        raise NoInstallableDiskError(f"lsblk failed: {result.stderr.strip()}")
    return result.stdout


def list_installable_disks(raw: Optional[str] = None) -> List[DiskOption]:
    try:
        disks = identify_unique_disks(raw if raw is not None else read_lsblk())
    except ValueError as e:
        raise NoInstallableDiskError(str(e)) from e
    if not disks:
        raise NoInstallableDiskError("no installable disk found")
    log.info("Installable disks: %s", ", ".join(d.label for d in disks))
    return disks
