# validators.py
from __future__ import annotations
import ipaddress
import re
from typing import List, Tuple
from urllib.parse import urlsplit

from errors import InputValidationError

ERR_VLAN_RANGE = "VLAN ID should be a number 1 ~ 4094."
ERR_MTU_NUMBER = "MTU should be a number."
MTU_MIN = 576
MTU_MAX = 9000

_HOSTNAME_RE = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$")
_MAC_RE = re.compile(r"^([0-9A-Fa-f]{2}:){5}[0-9A-Fa-f]{2}$")


def validate_ip(address: str, prefix_len: int = None) -> Tuple[bool, str]:
    try:
        ip = ipaddress.IPv4Address(address)
    except ValueError:
        return False, f"'{address}' is not a valid IPv4 address."

    if prefix_len is not None:
        net = ipaddress.IPv4Network(f"{address}/{prefix_len}", strict=False)
        if ip == net.network_address:
            return False, f"{address} is the network address of {net}."
        if ip == net.broadcast_address:
            return False, f"{address} is the broadcast address of {net}."

    return True, ""


def validate_gateway_in_subnet(
    gateway: str, host_ip: str, prefix_len: int
) -> Tuple[bool, str]:
    try:
        gw = ipaddress.IPv4Address(gateway)
        net = ipaddress.IPv4Network(f"{host_ip}/{prefix_len}", strict=False)
    except ValueError as e:
        return False, str(e)

    if gw not in net:
        return False, f"Gateway {gateway} is not in subnet {net}."
    return True, ""


def split_list(raw: str) -> List[str]:
    return [s.strip() for s in raw.split(",") if s.strip()]


def validate_ip_list(raw: str) -> Tuple[bool, str]:
    for item in split_list(raw):
        try:
            ipaddress.ip_address(item)
        except ValueError:
            return False, f"'{item}' is not a valid IP address."
    return True, ""


def parse_mask(mask: str) -> int:
    """Dotted netmask -> prefix length. Raises ValueError."""
    parts = mask.split(".")
    if len(parts) != 4:
        raise ValueError("mask format must be x.x.x.x")
    value = 0
    for part in parts:
        if not part.isdigit() or int(part) > 255:
            raise ValueError(f"mask octet '{part}' is out of range 0-255")
        value = (value << 8) | int(part)
    prefix = bin(value).count("1")
    if value != ((0xFFFFFFFF << (32 - prefix)) & 0xFFFFFFFF):
        raise ValueError(f"mask {mask} is not continuous")
    return prefix


def prefix_to_mask(prefix_len: int) -> str:
    return str(ipaddress.IPv4Network(f"0.0.0.0/{prefix_len}").netmask)


def split_address(value: str) -> Tuple[str, str]:
    """'10.0.0.5/24' -> ('10.0.0.5', '255.255.255.0'); a plain IP keeps an empty mask."""
    if "/" in value:
        try:
            iface = ipaddress.IPv4Interface(value)
        except ValueError:
            raise InputValidationError(f"'{value}' is not a valid IPv4 CIDR address.")
        return str(iface.ip), str(iface.netmask)
    ok, msg = validate_ip(value)
    if not ok:
        raise InputValidationError(msg)
    return value, ""


def parse_vlan_id(value: str) -> int:
    value = value.strip()
    if value == "":
        return 0
    if not value.isdigit() or int(value) > 4094:
        raise InputValidationError(ERR_VLAN_RANGE)
    return int(value)


def parse_mtu(value: str) -> int:
    value = value.strip()
    if value == "":
        return 0
    if not value.isdigit():
        raise InputValidationError(ERR_MTU_NUMBER)
    mtu = int(value)
    if mtu != 0 and not (MTU_MIN <= mtu <= MTU_MAX):
        raise InputValidationError(f"MTU should be 0 (default) or between {MTU_MIN} and {MTU_MAX}.")
    return mtu


def validate_hostname(hostname: str) -> Tuple[bool, str]:
    if not hostname:
        return False, "Must specify hostname."
    if len(hostname) > 253 or not _HOSTNAME_RE.match(hostname):
        return False, (
            "Invalid hostname. A lowercase RFC 1123 subdomain must consist of lower case "
            "alphanumeric characters, '-' or '.', and must start and end with an "
            "alphanumeric character."
        )
    return True, ""


def validate_cidr(value: str, what: str) -> Tuple[bool, str]:
    try:
        ipaddress.ip_network(value, strict=False)
    except ValueError:
        return False, f"Invalid {what}: {value}"
    return True, ""


def validate_cluster_dns(dns: str, service_cidr: str) -> Tuple[bool, str]:
    try:
        ip = ipaddress.ip_address(dns)
    except ValueError:
        return False, f"Invalid cluster DNS IP: {dns}"
    try:
        net = ipaddress.ip_network(service_cidr, strict=False)
    except ValueError:
        return False, (
            "To override the cluster DNS IP, the service CIDR must be valid: "
            f"{service_cidr or '(empty)'}"
        )
    if ip not in net:
        return False, f"Cluster DNS IP {dns} is not in the service CIDR {service_cidr}"
    return True, ""


def validate_token(token: str) -> Tuple[bool, str]:
    if not token:
        return False, "Cluster token is required"
    if any(c.isspace() for c in token):
        return False, "Cluster token must not contain whitespace"
    return True, ""


def validate_mac(mac: str) -> Tuple[bool, str]:
    if not _MAC_RE.match(mac):
        return False, f"'{mac}' is not a valid hardware address."
    return True, ""


_LABEL_PART_RE = re.compile(r"^([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9]$")
LABEL_PART_MAX = 63


def validate_label_name(name: str) -> Tuple[bool, str]:
    """Kubernetes qualified name: an optional DNS subdomain prefix and '/', then
    at most 63 alphanumerics, '-', '_' or '.'."""
    prefix, sep, base = name.rpartition("/")
    if sep:
        if not prefix or len(prefix) > 253 or not _HOSTNAME_RE.match(prefix):
            return False, f"Invalid label name '{name}': prefix must be a DNS subdomain."
    if not base or len(base) > LABEL_PART_MAX or not _LABEL_PART_RE.match(base):
        return False, (
            f"Invalid label name '{name}': must be at most {LABEL_PART_MAX} alphanumeric "
            "characters, '-', '_' or '.', starting and ending with an alphanumeric character."
        )
    return True, ""


def validate_label_value(value: str) -> Tuple[bool, str]:
    if value and (len(value) > LABEL_PART_MAX or not _LABEL_PART_RE.match(value)):
        return False, (
            f"Invalid label value '{value}': must be empty or at most {LABEL_PART_MAX} "
            "alphanumeric characters, '-', '_' or '.', starting and ending with an "
            "alphanumeric character."
        )
    return True, ""


def format_server_url(url: str) -> str:
    """Normalise a management address to https://<host>:443."""
    url = url.strip()
    if "://" not in url:
        url = f"https://{url}"
    parts = urlsplit(url)
    try:
        port = parts.port
    except ValueError:
        raise InputValidationError(f"invalid port in management address: {url}")
    if port is not None and port != 443:
        raise InputValidationError("currently non-443 port are not allowed")
    if parts.path:
        raise InputValidationError(f"path is not allowed in management address: {parts.path}")
    if not parts.hostname:
        raise InputValidationError(f"invalid management address: {url}")
    host = parts.hostname
    if ":" in host:
        host = f"[{host}]"
    return f"https://{host}:443"
