# navigation/panels.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List

# Pages: groups of panels shown together; the unit of Back navigation
PAGE_PREFLIGHT = "preflight"
PAGE_MODE = "mode"
PAGE_ROLE = "role"
PAGE_DISK = "disk"
PAGE_NETWORK = "network"
PAGE_CLUSTER_NETWORK = "cluster-network"
PAGE_HOSTNAME = "hostname"
PAGE_DNS = "dns"
PAGE_VIP = "vip"
PAGE_SERVER_URL = "server-url"
PAGE_TOKEN = "token"
PAGE_PASSWORD = "password"
PAGE_NTP = "ntp"
PAGE_PROXY = "proxy"
PAGE_SSH_KEY = "ssh-key"
PAGE_CLOUD_INIT = "cloud-init"
PAGE_CONFIRM = "confirm"
PAGE_INSTALL = "install"

# Panels
PREFLIGHT_CHECK = "preflight_check"
ASK_CREATE = "ask_create"
ASK_ROLE = "ask_role"
DISK = "disk"
DATA_DISK = "data_disk"
PERSISTENT_SIZE = "persistent_size"
WIPE_DISKS = "wipe_disks"
FORCE_MBR = "force_mbr"
ASK_INTERFACE = "ask_interface"
ASK_VLAN_ID = "ask_vlan_id"
ASK_BOND_MODE = "ask_bond_mode"
ASK_NETWORK_METHOD = "ask_network_method"
ADDRESS = "address"
ADDR_MASK = "addr_mask"
GATEWAY = "gateway"
MTU = "mtu"
POD_CIDR = "pod_cidr"
SERVICE_CIDR = "service_cidr"
CLUSTER_DNS = "cluster_dns"
HOSTNAME = "hostname"
DNS_SERVERS = "dns_servers"
ASK_VIP_METHOD = "ask_vip_method"
VIP_HW_ADDR = "vip_hw_addr"
VIP = "vip"
SERVER_URL = "server_url"
TOKEN = "token"
PASSWORD = "password"
PASSWORD_CONFIRM = "password_confirm"
NTP_SERVERS = "ntp_servers"
PROXY = "proxy"
SSH_KEY = "ssh_key"
CLOUD_INIT = "cloud_init"
CONFIRM_INSTALL = "confirm_install"

# Renderer regions shared by every page
REGION_TITLE = "title"
REGION_NOTE = "note"
REGION_CONTENT = "content"
REGION_VALIDATOR = "validator"

KIND_INPUT = "input"
KIND_PASSWORD = "password"
KIND_CHOICE = "choice"
KIND_MULTI = "multi"


@dataclass(frozen=True)
class PanelSpec:
    name: str
    page: str
    kind: str
    label: str


_SPECS = [
    PanelSpec(PREFLIGHT_CHECK, PAGE_PREFLIGHT, KIND_CHOICE, "Continue anyway?"),
    PanelSpec(ASK_CREATE, PAGE_MODE, KIND_CHOICE, "Choose installation mode"),
    PanelSpec(ASK_ROLE, PAGE_ROLE, KIND_CHOICE, "Choose node role"),
    PanelSpec(DISK, PAGE_DISK, KIND_CHOICE, "Installation disk"),
    PanelSpec(DATA_DISK, PAGE_DISK, KIND_CHOICE, "Data disk"),
    PanelSpec(PERSISTENT_SIZE, PAGE_DISK, KIND_INPUT, "Persistent size"),
    PanelSpec(WIPE_DISKS, PAGE_DISK, KIND_MULTI, "Previous installations to wipe"),
    PanelSpec(FORCE_MBR, PAGE_DISK, KIND_CHOICE, "Use MBR partitioning scheme"),
    PanelSpec(ASK_INTERFACE, PAGE_NETWORK, KIND_MULTI, "Management NIC"),
    PanelSpec(ASK_VLAN_ID, PAGE_NETWORK, KIND_INPUT, "VLAN ID (optional)"),
    PanelSpec(ASK_BOND_MODE, PAGE_NETWORK, KIND_CHOICE, "Bond Mode"),
    PanelSpec(ASK_NETWORK_METHOD, PAGE_NETWORK, KIND_CHOICE, "IPv4 Method"),
    PanelSpec(ADDRESS, PAGE_NETWORK, KIND_INPUT, "IPv4 Address"),
    PanelSpec(ADDR_MASK, PAGE_NETWORK, KIND_INPUT, "Subnet Mask"),
    PanelSpec(GATEWAY, PAGE_NETWORK, KIND_INPUT, "Gateway"),
    PanelSpec(MTU, PAGE_NETWORK, KIND_INPUT, "MTU (optional)"),
    PanelSpec(POD_CIDR, PAGE_CLUSTER_NETWORK, KIND_INPUT, "Pod CIDR"),
    PanelSpec(SERVICE_CIDR, PAGE_CLUSTER_NETWORK, KIND_INPUT, "Service CIDR"),
    PanelSpec(CLUSTER_DNS, PAGE_CLUSTER_NETWORK, KIND_INPUT, "Cluster DNS IP"),
    PanelSpec(HOSTNAME, PAGE_HOSTNAME, KIND_INPUT, "HostName"),
    PanelSpec(DNS_SERVERS, PAGE_DNS, KIND_INPUT, "DNS Servers"),
    PanelSpec(ASK_VIP_METHOD, PAGE_VIP, KIND_CHOICE, "VIP Mode"),
    PanelSpec(VIP_HW_ADDR, PAGE_VIP, KIND_INPUT, "MAC Address (optional)"),
    PanelSpec(VIP, PAGE_VIP, KIND_INPUT, "VIP"),
    PanelSpec(SERVER_URL, PAGE_SERVER_URL, KIND_INPUT, "Management address"),
    PanelSpec(TOKEN, PAGE_TOKEN, KIND_INPUT, "Cluster token"),
    PanelSpec(PASSWORD, PAGE_PASSWORD, KIND_PASSWORD, "Password"),
    PanelSpec(PASSWORD_CONFIRM, PAGE_PASSWORD, KIND_PASSWORD, "Confirm password"),
    PanelSpec(NTP_SERVERS, PAGE_NTP, KIND_INPUT, "NTP Servers"),
    PanelSpec(PROXY, PAGE_PROXY, KIND_INPUT, "Proxy address"),
    PanelSpec(SSH_KEY, PAGE_SSH_KEY, KIND_INPUT, "HTTP URL"),
    PanelSpec(CLOUD_INIT, PAGE_CLOUD_INIT, KIND_INPUT, "HTTP URL"),
    PanelSpec(CONFIRM_INSTALL, PAGE_CONFIRM, KIND_CHOICE, "Confirm installation options"),
]

PANELS: Dict[str, PanelSpec] = {spec.name: spec for spec in _SPECS}

PAGE_FIELDS: Dict[str, List[str]] = {}
for _spec in _SPECS:
    PAGE_FIELDS.setdefault(_spec.page, []).append(_spec.name)

PAGE_TITLES = {
    PAGE_PREFLIGHT: "Preflight checks found potential problems",
    PAGE_MODE: "Choose installation mode",
    PAGE_ROLE: "Choose role for the node",
    PAGE_DISK: "Choose installation target and data disk. Device will be formatted",
    PAGE_NETWORK: "Configure management network",
    PAGE_CLUSTER_NETWORK: "Configure cluster network",
    PAGE_HOSTNAME: "Configure hostname for this instance",
    PAGE_DNS: "Configure DNS servers",
    PAGE_VIP: "Configure VIP",
    PAGE_SERVER_URL: "Configure management address",
    PAGE_TOKEN: "Configure cluster token",
    PAGE_PASSWORD: "Configure the password to access the node",
    PAGE_NTP: "Configure NTP servers",
    PAGE_PROXY: "Optional: configure proxy",
    PAGE_SSH_KEY: "Optional: import SSH keys",
    PAGE_CLOUD_INIT: "Optional: remote config",
    PAGE_CONFIRM: "Confirm installation options",
    PAGE_INSTALL: "Installing",
}

PAGE_NOTES = {
    PAGE_DISK: "Note: persistent size holds container images and system logs. Minimum 150Gi.",
    PAGE_NETWORK: "Note: select one or more NICs; they are bonded into the management link.",
    PAGE_CLUSTER_NETWORK: "Note: leave fields empty to use the defaults.",
    PAGE_DNS: "Note: use commas to separate servers.",
    PAGE_VIP: "Note: the VIP is the floating address of the management cluster.",
    PAGE_TOKEN: "Note: the token is shared by every node that joins the cluster.",
    PAGE_NTP: "Note: use commas to separate servers.",
    PAGE_PROXY: "Note: example http://proxy.example.com:3128",
    PAGE_SSH_KEY: "Note: keys are fetched from the URL, one per line.",
    PAGE_CLOUD_INIT: "Note: a YAML config merged with the answers given here.",
}
