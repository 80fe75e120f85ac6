# network/netplan.py
from __future__ import annotations
import os
import shutil
import subprocess
import yaml
from pathlib import Path
from typing import List, Tuple

from config.model import NETWORK_METHOD_DHCP, NetworkDefinition
from logger import log
from validators import parse_mask

WIZARD_FILENAME = "60-hci-mgmt.yaml"
NTP_CONF_DIR = Path("/etc/systemd/timesyncd.conf.d")
NTP_CONF_FILENAME = "hci-installer.conf"
DNS_CONF_DIR = Path("/etc/systemd/resolved.conf.d")
DNS_CONF_FILENAME = "hci-installer.conf"

BOND_NAME = "mgmt-bo"


def management_link(network: NetworkDefinition) -> str:
    """Name of the link that carries the management address."""
    if network.vlan_id:
        return f"{BOND_NAME}.{network.vlan_id}"
    return BOND_NAME


def render(network: NetworkDefinition) -> dict:
    """Netplan document for the management bond, optional VLAN and addressing."""
    ethernets = {name: {"dhcp4": False} for name in network.interface_names()}
    params = {}
    if network.bond_options.get("mode"):
        params["mode"] = network.bond_options["mode"]
    if network.bond_options.get("miimon"):
        params["mii-monitor-interval"] = int(network.bond_options["miimon"])
    bond: dict = {"interfaces": network.interface_names(), "dhcp4": False}
    if params:
        bond["parameters"] = params
    if network.mtu:
        bond["mtu"] = network.mtu

    doc: dict = {
        "version": 2,
        "renderer": "networkd",
        "ethernets": ethernets,
        "bonds": {BOND_NAME: bond},
    }

    if network.vlan_id:
        target: dict = {"id": network.vlan_id, "link": BOND_NAME}
        doc["vlans"] = {management_link(network): target}
    else:
        target = bond

    if network.method == NETWORK_METHOD_DHCP:
        target["dhcp4"] = True
    else:
        prefix = parse_mask(network.subnet_mask)
        target["dhcp4"] = False
        target["addresses"] = [f"{network.ip}/{prefix}"]
        if network.gateway:
            target["routes"] = [{"to": "default", "via": network.gateway}]
        if network.mtu and network.vlan_id:
            target["mtu"] = network.mtu
    return {"network": doc}


class NetplanManager:
    def __init__(self, netplan_dir: str = "/etc/netplan"):
        self.netplan_dir = Path(netplan_dir)

    # -- Backup / Restore --------------------------------------------------

    def backup(self) -> None:
        """Move existing .yaml files aside so only the wizard file is applied."""
        for f in self.netplan_dir.glob("*.yaml"):
            if f.name == WIZARD_FILENAME:
                continue
            bak = f.with_suffix(".yaml.bak")
            shutil.move(str(f), bak)
            log.info("Backed up %s -> %s", f, bak)

    def restore(self) -> None:
        """Remove wizard YAML, restore .bak files."""
        wizard = self.netplan_dir / WIZARD_FILENAME
        if wizard.exists():
            wizard.unlink()
            log.info("Removed wizard netplan config %s", wizard)
        for bak in self.netplan_dir.glob("*.bak"):
            original = bak.with_suffix("")   # strips .bak -> .yaml
            bak.rename(original)
            log.info("Restored %s -> %s", bak, original)

    def _rollback(self) -> None:
        try:
            self.restore()
        except OSError as e:
            log.error("Restoring netplan files in %s failed: %s", self.netplan_dir, e)

    # -- Write -------------------------------------------------------------

    def write(self, network: NetworkDefinition) -> Path:
        path = self.netplan_dir / WIZARD_FILENAME
        with open(path, "w") as f:
            yaml.safe_dump(render(network), f, default_flow_style=False)
        os.chmod(path, 0o600)
        log.info("Wrote netplan config to %s", path)
        return path

    # -- Apply -------------------------------------------------------------

    def apply(self, network: NetworkDefinition, hostname: str = "") -> Tuple[str, str]:
        """Apply `network` (and the hostname, if set). Returns (output, error)."""
        try:
            self.backup()
            self.write(network)
            result = subprocess.run(
                ["netplan", "apply"], capture_output=True, text=True, timeout=120
            )
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            log.error("Applying network failed: %s", e)
            self._rollback()
            return "", str(e)
        output = (result.stdout + result.stderr).strip()
        if result.returncode != 0:
            log.error("netplan apply exited %s: %s", result.returncode, output)
            self._rollback()
            return output, f"netplan apply exited with status {result.returncode}"

        if hostname:
            try:
                subprocess.run(["hostnamectl", "set-hostname", hostname],
                               check=True, capture_output=True, timeout=10)
            except (OSError, subprocess.SubprocessError) as e:
                log.warning("Setting hostname %s failed: %s", hostname, e)
        log.info("Network configuration applied on %s", management_link(network))
        return output, ""

    # -- NTP / DNS -----------------------------------------------------------

    def apply_ntp(self, ntp_servers: List[str]) -> None:
        """Write NTP servers to a systemd-timesyncd drop-in config file."""
        if not ntp_servers:
            return
        NTP_CONF_DIR.mkdir(parents=True, exist_ok=True)
        conf_path = NTP_CONF_DIR / NTP_CONF_FILENAME
        conf_path.write_text(f"[Time]\nNTP={' '.join(ntp_servers)}\n")
        os.chmod(conf_path, 0o644)
        log.info("Wrote NTP config to %s", conf_path)
        self._restart("systemd-timesyncd")

    def apply_dns(self, dns_servers: List[str]) -> None:
        """Write DNS servers to a systemd-resolved drop-in config file."""
        if not dns_servers:
            return
        DNS_CONF_DIR.mkdir(parents=True, exist_ok=True)
        conf_path = DNS_CONF_DIR / DNS_CONF_FILENAME
        conf_path.write_text(f"[Resolve]\nDNS={' '.join(dns_servers)}\n")
        os.chmod(conf_path, 0o644)
        log.info("Wrote DNS config to %s", conf_path)
        self._restart("systemd-resolved")

    def _restart(self, unit: str) -> None:
        try:
            subprocess.run(["systemctl", "restart", unit],
                           check=True, capture_output=True, timeout=30)
        except (OSError, subprocess.SubprocessError) as e:
            log.warning("Restarting %s failed: %s", unit, e)
