# environment.py
"""OS-facing collaborators used by the navigator, bundled so tests can swap them."""
from __future__ import annotations
import os
import socket
import subprocess
from typing import List, Optional, Tuple

from config.model import InstallConfig, NetworkDefinition
from disks import topology
from logger import log
from network import checks, interfaces
from network.netplan import NetplanManager, management_link

EFI_DIR = "/sys/firmware/efi"
_PLACEHOLDER_HOSTNAMES = ("", "localhost", "rancher", "(none)")


class SystemEnvironment:
    def __init__(self, netplan: Optional[NetplanManager] = None) -> None:
        self.netplan = netplan or NetplanManager()
        self._lsblk: Optional[str] = None
        self._disks: Optional[List[topology.DiskOption]] = None

    # -- Disks -------------------------------------------------------------

    def block_devices(self) -> str:
        if self._lsblk is None:
            self._lsblk = topology.read_lsblk()
        return self._lsblk

    @property
    def disks(self) -> List[topology.DiskOption]:
        """Raises NoInstallableDiskError when nothing is installable."""
        if self._disks is None:
            self._disks = topology.list_installable_disks(self.block_devices())
        return self._disks

    def disk_size(self, path: str) -> int:
        for disk in self.disks:
            if disk.path == path:
                return disk.size
        raise ValueError(f"unknown disk {path}")

    def stale_installs(self, exclude: List[str]) -> List[topology.DiskOption]:
        return topology.find_stale_installs(self.block_devices(), exclude)

    @property
    def is_bios(self) -> bool:
        return not os.path.isdir(EFI_DIR)

    # -- Network -----------------------------------------------------------

    def interfaces(self) -> List[interfaces.InterfaceInfo]:
        return interfaces.list_interfaces(physical_only=True)

    def nic_state(self, name: str) -> str:
        return interfaces.nic_state(name)

    def hw_addr(self, name: str) -> str:
        return interfaces.hw_addr(name)

    def apply_network(self, network: NetworkDefinition, hostname: str) -> Tuple[str, str]:
        return self.netplan.apply(network, hostname)

    def wait_for_dhcp(self, network: NetworkDefinition) -> str:
        return interfaces.wait_for_ipv4(management_link(network), timeout=checks.DHCP_TIMEOUT)

    def has_default_route(self) -> bool:
        return checks.has_default_route()

    def apply_dns(self, servers: List[str]) -> None:
        self.netplan.apply_dns(servers)

    def apply_ntp(self, servers: List[str]) -> None:
        self.netplan.apply_ntp(servers)

    def probe_ntp(self, servers: List[str]) -> None:
        checks.probe_ntp_servers(servers)

    def request_vip(self, network: NetworkDefinition, hw_addr: str) -> Tuple[str, str]:
        return checks.request_vip_lease(management_link(network), hw_addr)

    def apply_proxy(self, proxy: str) -> None:
        for key in ("HTTP_PROXY", "HTTPS_PROXY", "http_proxy", "https_proxy"):
            if proxy:
                os.environ[key] = proxy
            else:
                os.environ.pop(key, None)
        log.info("Proxy %s", f"set to {proxy}" if proxy else "cleared")

    # -- Remote --------------------------------------------------------------

    def ping_server(self, server_url: str) -> None:
        checks.ping_server_url(server_url)

    def fetch_ssh_keys(self, url: str) -> List[str]:
        return checks.fetch_ssh_keys(url)

    def fetch_remote_config(self, url: str) -> InstallConfig:
        return checks.fetch_remote_config(url)

    # -- Host --------------------------------------------------------------

    def default_hostname(self) -> str:
        name = socket.gethostname()
        return "" if name in _PLACEHOLDER_HOSTNAMES else name

    def cpu_count(self) -> int:
        return os.cpu_count() or 1

    def reboot(self) -> None:
        log.warning("Rebooting")
        subprocess.run(["reboot", "-f"], check=False)
