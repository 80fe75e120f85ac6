# network/interfaces.py
from __future__ import annotations
import os
import subprocess
import json
import time
from dataclasses import dataclass
from typing import Optional, List
from logger import log

SYS_NET = "/sys/class/net"
IFF_UP = 0x1

NIC_STATE_UP = "up"
NIC_STATE_DOWN = "down"
NIC_STATE_LOWER_DOWN = "lower-down"
NIC_STATE_NOT_FOUND = "not-found"

# Virtual links the wizard itself creates or that can't carry management traffic
_SKIP_PREFIXES = ("lo", "mgmt-", "vip-", "docker", "veth", "virbr")


@dataclass
class InterfaceInfo:
    name: str
    operstate: str          # "up" | "down" | "unknown"
    link_speed_mbps: Optional[int]  # None if not available
    mac: str
    ip_addresses: List[str]  # CIDR notation

    @property
    def speed_label(self) -> str:
        if self.link_speed_mbps is None:
            return "Unknown"
        gbps = self.link_speed_mbps / 1000
        if gbps >= 1:
            return f"{int(gbps)} Gbit"
        return f"{self.link_speed_mbps} Mbit"

    def display_str(self) -> str:
        state = self.operstate.upper()
        return f"{self.name:<12} {self.speed_label:<10} {state:<6}  {self.mac}"


def _read_sysfs(iface: str, attr: str, default: Optional[str] = None) -> Optional[str]:
    path = os.path.join(SYS_NET, iface, attr)
    try:
        with open(path) as f:
            return f.read().strip()
    except OSError:
        return default


def _get_ip_addresses(iface: str) -> List[str]:
    try:
        result = subprocess.run(
            ["ip", "-j", "addr", "show", iface],
            capture_output=True, text=True, timeout=2
        )
        data = json.loads(result.stdout)
        addrs = []
        for entry in data:
            for ai in entry.get("addr_info", []):
                if ai.get("family") == "inet":
                    addrs.append(f"{ai['local']}/{ai['prefixlen']}")
        return addrs
    except (OSError, ValueError, subprocess.SubprocessError) as e:
        log.debug("ip addr failed for %s: %s", iface, e)
        return []


def get_interface_info(iface: str) -> InterfaceInfo:
    operstate = _read_sysfs(iface, "operstate", "unknown")
    mac = _read_sysfs(iface, "address", "")
    speed_str = _read_sysfs(iface, "speed")
    speed = int(speed_str) if speed_str and speed_str.isdigit() else None
    return InterfaceInfo(
        name=iface,
        operstate=operstate or "unknown",
        link_speed_mbps=speed,
        mac=mac or "",
        ip_addresses=_get_ip_addresses(iface),
    )


def _is_physical(name: str) -> bool:
    return os.path.exists(os.path.join(SYS_NET, name, "device"))


def list_interfaces(exclude_lo: bool = True, physical_only: bool = False) -> List[InterfaceInfo]:
    """Return all interfaces from /sys/class/net, sorted by name."""
    try:
        ifaces = sorted(os.listdir(SYS_NET))
    except OSError:
        return []
    result = []
    for name in ifaces:
        if exclude_lo and name.startswith(_SKIP_PREFIXES):
            continue
        if physical_only and not _is_physical(name):
            continue
        result.append(get_interface_info(name))
    return result


def nic_state(name: str) -> str:
    flags = _read_sysfs(name, "flags")
    if flags is None:
        return NIC_STATE_NOT_FOUND
    try:
        if not int(flags, 16) & IFF_UP:
            return NIC_STATE_DOWN
    except ValueError:
        return NIC_STATE_DOWN
    if _read_sysfs(name, "carrier", "0") != "1":
        return NIC_STATE_LOWER_DOWN
    return NIC_STATE_UP


def hw_addr(name: str) -> str:
    addr = _read_sysfs(name, "address")
    if addr is None:
        raise OSError(f"NIC {name} not found")
    return addr


def wait_for_ipv4(iface: str, timeout: float = 60.0, interval: float = 1.0) -> str:
    """Poll until `iface` holds an IPv4 address; returns it in CIDR form or ''."""
    deadline = time.monotonic() + timeout
    while True:
        addrs = _get_ip_addresses(iface)
        if addrs:
            return addrs[0]
        if time.monotonic() >= deadline:
            return ""
        time.sleep(interval)
