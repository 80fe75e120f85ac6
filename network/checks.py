# network/checks.py
"""
Slow, fallible checks. Each runs on a worker thread, returns a value and
raises AsyncCheckError with an operator-facing message on failure.
"""
from __future__ import annotations
import os
import re
import socket
import subprocess
import tempfile
import warnings
from typing import List, Tuple

import requests
from cryptography.hazmat.primitives import serialization
from cryptography.exceptions import UnsupportedAlgorithm
from urllib3.exceptions import InsecureRequestWarning

from config.merge import load_yaml
from config.model import InstallConfig
from errors import AsyncCheckError, MergeError
from logger import log

HTTP_TIMEOUT = 15.0
NTP_TIMEOUT = 3.0
NTP_PORT = 123
DHCP_TIMEOUT = 60
PROC_NET_ROUTE = "/proc/net/route"
VIP_PROBE_LINK = "vip-probe"
RTF_UP = 0x1
ERR_NO_DEFAULT_ROUTE = (
    "No default route found. Please check the router setting on the DHCP server."
)

_LEASE_ADDR_RE = re.compile(r"fixed-address\s+([0-9.]+);")


def _get(url: str, *, verify: bool = True, timeout: float = HTTP_TIMEOUT) -> requests.Response:
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", InsecureRequestWarning)
            resp = requests.get(url, verify=verify, timeout=timeout)
        resp.raise_for_status()
    except requests.RequestException as e:
        log.warning("GET %s failed: %s", url, e)
        raise AsyncCheckError(f"Failed to fetch {url}: {e}") from e
    return resp


# -- Management server ---------------------------------------------------

def ping_server_url(server_url: str, timeout: float = HTTP_TIMEOUT) -> None:
    """The cluster serves a self-signed certificate until it is joined."""
    url = f"{server_url}/ping"
    resp = _get(url, verify=False, timeout=timeout)
    log.info("Ping %s -> %s", url, resp.status_code)


# -- SSH keys --------------------------------------------------------------

def parse_ssh_keys(text: str) -> List[str]:
    keys = []
    for lineno, line in enumerate(text.splitlines(), 1):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        try:
            serialization.load_ssh_public_key(line.encode())
        except (ValueError, UnsupportedAlgorithm):
            raise AsyncCheckError(f"fail to parse on line {lineno}: {line}")
        keys.append(line)
    if not keys:
        raise AsyncCheckError("no key found")
    return keys


def fetch_ssh_keys(url: str, timeout: float = HTTP_TIMEOUT) -> List[str]:
    keys = parse_ssh_keys(_get(url, timeout=timeout).text)
    log.info("Fetched %d SSH key(s) from %s", len(keys), url)
    return keys


# -- Remote config ---------------------------------------------------------

def fetch_remote_config(url: str, timeout: float = HTTP_TIMEOUT) -> InstallConfig:
    """Raises MergeError for a body that is not a valid config document."""
    resp = _get(url, timeout=timeout)
    try:
        return load_yaml(resp.content)
    except MergeError as e:
        raise MergeError(f"Invalid config at {url}: {e}") from e


# -- NTP -------------------------------------------------------------------

def _split_host_port(server: str, default_port: int) -> Tuple[str, int]:
    host, sep, port = server.rpartition(":")
    if sep and port.isdigit() and ":" not in host:
        return host, int(port)
    return server, default_port


def probe_ntp_server(server: str, timeout: float = NTP_TIMEOUT) -> None:
    host, port = _split_host_port(server, NTP_PORT)
    # LI=0, VN=3, Mode=3 (client)
    request = b"\x1b" + 47 * b"\0"
    try:
        addr = socket.getaddrinfo(host, port, type=socket.SOCK_DGRAM)[0][4]
        with socket.socket(socket.AF_INET6 if ":" in addr[0] else socket.AF_INET,
                           socket.SOCK_DGRAM) as sock:
            sock.settimeout(timeout)
            sock.sendto(request, addr)
            data, _ = sock.recvfrom(1024)
    except OSError as e:
        raise AsyncCheckError(f"{server}: {e}") from e
    if len(data) < 48:
        raise AsyncCheckError(f"{server}: short NTP response ({len(data)} bytes)")


def probe_ntp_servers(servers: List[str], timeout: float = NTP_TIMEOUT) -> None:
    failures = []
    for server in servers:
        try:
            probe_ntp_server(server, timeout)
            log.info("NTP server %s reachable", server)
        except AsyncCheckError as e:
            log.warning("NTP server unreachable: %s", e)
            failures.append(str(e))
    if failures:
        raise AsyncCheckError("; ".join(failures))


# -- Routes / DHCP ---------------------------------------------------------

def has_default_route(route_file: str = PROC_NET_ROUTE) -> bool:
    try:
        with open(route_file) as f:
            lines = f.read().splitlines()[1:]
    except OSError as e:
        raise AsyncCheckError(f"Failed to check default route: {e}.") from e
    for line in lines:
        fields = line.split()
        if len(fields) < 8:
            continue
        destination, flags, mask = fields[1], fields[3], fields[7]
        if destination == "00000000" and mask == "00000000" and int(flags, 16) & RTF_UP:
            return True
    return False


def _ip(*args: str) -> None:
    subprocess.run(["ip", *args], check=True, capture_output=True, timeout=10)


def request_vip_lease(link: str, hw_addr: str = "", timeout: int = DHCP_TIMEOUT) -> Tuple[str, str]:
    """Lease an address for a macvlan on `link`. Returns (ip, hw_addr)."""
    lease_file = tempfile.NamedTemporaryFile(prefix="vip-", suffix=".lease", delete=False)
    lease_file.close()
    try:
        create = ["link", "add", VIP_PROBE_LINK, "link", link, "type", "macvlan", "mode", "bridge"]
        if hw_addr:
            create[3:3] = ["address", hw_addr]
        _ip(*create)
        _ip("link", "set", VIP_PROBE_LINK, "up")
        with open(f"/sys/class/net/{VIP_PROBE_LINK}/address") as f:
            mac = f.read().strip()
        result = subprocess.run(
            ["dhclient", "-1", "-sf", "/bin/true", "-lf", lease_file.name, VIP_PROBE_LINK],
            capture_output=True, text=True, timeout=timeout,
        )
        with open(lease_file.name) as f:
            m = _LEASE_ADDR_RE.search(f.read())
        if result.returncode != 0 or not m:
            raise AsyncCheckError(
                f"Requesting VIP through DHCP failed: {result.stderr.strip() or 'no lease offered'}"
            )
        log.info("VIP lease %s for %s", m.group(1), mac)
        return m.group(1), mac
    except (OSError, subprocess.SubprocessError) as e:
        raise AsyncCheckError(f"Requesting VIP through DHCP failed: {e}") from e
    finally:
        try:
            _ip("link", "del", VIP_PROBE_LINK)
        except (OSError, subprocess.SubprocessError):
            log.debug("VIP probe link already gone")
        os.unlink(lease_file.name)
