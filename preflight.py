# preflight.py
"""Hardware checks run before the wizard starts. They only ever warn."""
from __future__ import annotations
import os
from typing import Callable, List, Optional

from logger import log
from network import interfaces

MIN_CPU_CORES = 8
MIN_MEMORY_GIB = 32
MIN_NIC_SPEED_MBPS = 10000
PROC_MEMINFO = "/proc/meminfo"
KVM_DEVICE = "/dev/kvm"

# MemTotal excludes firmware and kernel reservations, so it reads a little
# below the installed amount.
_MEMORY_TOLERANCE = 0.95


def cpu_check(core_num: Optional[int] = None) -> str:
    core_num = core_num if core_num is not None else (os.cpu_count() or 0)
    if core_num < MIN_CPU_CORES:
        return f"Only {core_num} CPU cores detected. Minimum {MIN_CPU_CORES} required"
    return ""


def read_mem_total_kib(meminfo: str = PROC_MEMINFO) -> int:
    with open(meminfo) as f:
        for line in f:
            if line.startswith("MemTotal:"):
                return int(line.split()[1])
    raise ValueError(f"MemTotal not found in {meminfo}")


def memory_check(meminfo: str = PROC_MEMINFO) -> str:
    total_gib = read_mem_total_kib(meminfo) / (1 << 20)
    if total_gib < MIN_MEMORY_GIB * _MEMORY_TOLERANCE:
        return (f"Only {total_gib:.0f}GiB of memory detected. "
                f"Minimum {MIN_MEMORY_GIB}GiB required")
    return ""


def kvm_check(device: str = KVM_DEVICE) -> str:
    if not os.path.exists(device):
        return "Hardware virtualization is not available (/dev/kvm not found)"
    return ""


def network_speed_check(name: str) -> str:
    info = interfaces.get_interface_info(name)
    if info.link_speed_mbps is not None and info.link_speed_mbps < MIN_NIC_SPEED_MBPS:
        return (f"Link speed of {name} is only {info.speed_label}. "
                f"At least {MIN_NIC_SPEED_MBPS // 1000} Gbit is recommended")
    return ""


def _collect(checks: List[Callable[[], str]]) -> List[str]:
    warnings = []
    for check in checks:
        try:
            msg = check()
        except (OSError, ValueError) as e:
            # A check that cannot run is logged, never fatal
            log.error("Preflight check %s failed to run: %s",
                      getattr(check, "__name__", check), e)
            continue
        if msg:
            log.warning("Preflight: %s", msg)
            warnings.append(msg)
    return warnings


def run_preflight_checks() -> List[str]:
    return _collect([cpu_check, memory_check, kvm_check])


def network_speed_warnings(names: List[str]) -> List[str]:
    return _collect([lambda n=n: network_speed_check(n) for n in names])
