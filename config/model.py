# config/model.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List

from errors import InstallError
from validators import validate_label_name, validate_label_value

SANITIZE_MASK = "***"
SCHEME_VERSION = 1
MAX_PODS = 200

# Wizard-level enumerations
MODE_CREATE = "create"
MODE_JOIN = "join"
MODE_INSTALL = "install"
MODES = (MODE_CREATE, MODE_JOIN, MODE_INSTALL)

ROLE_DEFAULT = "default"
ROLE_MANAGEMENT = "management"
ROLE_WITNESS = "witness"
ROLE_WORKER = "worker"
ROLES = (ROLE_DEFAULT, ROLE_MANAGEMENT, ROLE_WITNESS, ROLE_WORKER)

NETWORK_METHOD_DHCP = "dhcp"
NETWORK_METHOD_STATIC = "static"
NETWORK_METHODS = (NETWORK_METHOD_DHCP, NETWORK_METHOD_STATIC)

VIP_MODE_DHCP = "dhcp"
VIP_MODE_STATIC = "static"
VIP_MODES = (VIP_MODE_DHCP, VIP_MODE_STATIC)

BOND_MODE_BALANCE_RR = "balance-rr"
BOND_MODE_ACTIVE_BACKUP = "active-backup"
BOND_MODE_BALANCE_XOR = "balance-xor"
BOND_MODE_BROADCAST = "broadcast"
BOND_MODE_IEEE_802_3AD = "802.3ad"
BOND_MODE_BALANCE_TLB = "balance-tlb"
BOND_MODE_BALANCE_ALB = "balance-alb"
BOND_MODES = (
    BOND_MODE_BALANCE_RR, BOND_MODE_ACTIVE_BACKUP, BOND_MODE_BALANCE_XOR,
    BOND_MODE_BROADCAST, BOND_MODE_IEEE_802_3AD, BOND_MODE_BALANCE_TLB,
    BOND_MODE_BALANCE_ALB,
)
DEFAULT_BOND_OPTIONS = {"mode": BOND_MODE_ACTIVE_BACKUP, "miimon": "100"}

WEBHOOK_EVENT_STARTED = "STARTED"
WEBHOOK_EVENT_SUCCEEDED = "SUCCEEDED"
WEBHOOK_EVENT_FAILED = "FAILED"

DEFAULT_TTY = "tty1"
DEFAULT_NTP_SERVERS = "0.pool.ntp.org"
DEFAULT_MODULES = ["kvm", "vhost_net"]


@dataclass
class NetworkInterface:
    name: str = ""
    hw_addr: str = ""


@dataclass
class NetworkDefinition:
    interfaces: List[NetworkInterface] = field(default_factory=list)
    method: str = ""
    ip: str = ""
    subnet_mask: str = ""
    gateway: str = ""
    default_route: bool = False
    bond_options: Dict[str, str] = field(default_factory=dict)
    mtu: int = 0
    vlan_id: int = 0

    def clear_static(self) -> None:
        self.ip = ""
        self.subnet_mask = ""
        self.gateway = ""
        self.mtu = 0

    def interface_names(self) -> List[str]:
        return [i.name for i in self.interfaces]


@dataclass
class BasicAuth:
    user: str = ""
    password: str = ""


@dataclass
class Webhook:
    event: str = ""
    method: str = ""
    url: str = ""
    payload: str = ""
    headers: Dict[str, List[str]] = field(default_factory=dict)
    insecure: bool = False
    basic_auth: BasicAuth = field(default_factory=BasicAuth)


@dataclass
class Addon:
    enabled: bool = False
    values_content: str = ""


@dataclass
class Wifi:
    name: str = ""
    passphrase: str = ""


@dataclass
class OSConfig:
    ssh_authorized_keys: List[str] = field(default_factory=list)
    hostname: str = ""
    ntp_servers: List[str] = field(default_factory=list)
    dns_nameservers: List[str] = field(default_factory=list)
    password: str = ""
    wifi: List[Wifi] = field(default_factory=list)
    environment: Dict[str, str] = field(default_factory=dict)
    labels: Dict[str, str] = field(default_factory=dict)
    modules: List[str] = field(default_factory=list)
    sysctls: Dict[str, str] = field(default_factory=dict)
    after_install_chroot_commands: List[str] = field(default_factory=list)


@dataclass
class InstallSettings:
    automatic: bool = False
    skip_checks: bool = field(default=False, metadata={"key": "skipchecks"})
    mode: str = ""
    role: str = ""
    management_interface: NetworkDefinition = field(default_factory=NetworkDefinition)
    vip: str = ""
    vip_hw_addr: str = ""
    vip_mode: str = ""
    cluster_dns: str = ""
    cluster_pod_cidr: str = ""
    cluster_service_cidr: str = ""
    device: str = ""
    data_disk: str = ""
    persistent_partition_size: str = ""
    force_efi: bool = False
    force_gpt: bool = False
    force_mbr: bool = False
    wipe_all_disks: bool = False
    wipe_disks_list: List[str] = field(default_factory=list)
    config_url: str = ""
    iso_url: str = ""
    silent: bool = False
    power_off: bool = False
    no_format: bool = False
    debug: bool = False
    tty: str = ""
    webhooks: List[Webhook] = field(default_factory=list)
    addons: Dict[str, Addon] = field(default_factory=dict)


@dataclass
class InstallConfig:
    scheme_version: int = 0
    server_url: str = ""
    token: str = ""
    sans: List[str] = field(default_factory=list)
    os: OSConfig = field(default_factory=OSConfig)
    install: InstallSettings = field(default_factory=InstallSettings)

    @property
    def is_witness(self) -> bool:
        return self.install.role == ROLE_WITNESS

    def should_create_data_partition_on_os_disk(self) -> bool:
        if self.is_witness:
            return False
        return self.install.data_disk == "" and not self.install.force_mbr

    def should_mount_data_partition(self) -> bool:
        if self.is_witness:
            return False
        if self.install.force_mbr and self.install.data_disk == "":
            return False
        return True


def calculate_cpu_reserved_millicpu(core_num: int, max_pods: int = MAX_PODS) -> int:
    """Kubelet CPU reservation: 6% of the first core, 1% of the second,
    0.5% of the next two, 0.25% of every core above four."""
    if core_num <= 0 or max_pods <= 0:
        return 0
    reserved = 6 / 100
    if core_num > 1:
        reserved += 1 / 100
    if core_num > 2:
        reserved += 2 * 0.5 / 100
    if core_num > 4:
        reserved += (core_num - 4) * 0.25 / 100
    if max_pods > 110:
        reserved += 0.4
    return int(reserved * 1000)


def node_labels(config: InstallConfig) -> List[str]:
    labels = []
    for name, value in sorted(config.os.labels.items()):
        for ok, msg in (validate_label_name(name), validate_label_value(value)):
            if not ok:
                raise InstallError(msg)
        labels.append(f"{name}={value}")
    return labels


def kubelet_args(config: InstallConfig, core_num: int) -> List[str]:
    labels = node_labels(config)
    args = [f"max-pods={MAX_PODS}"]
    if labels:
        args.append(f"node-labels={','.join(labels)}")
    if config.is_witness:
        args.append("register-with-taints=node-role.kubernetes.io/etcd=true:NoExecute")

    reserved = calculate_cpu_reserved_millicpu(core_num)
    args.append(f"system-reserved=cpu={reserved * 2 * 2 // 5}m")
    args.append(f"kube-reserved=cpu={reserved * 2 * 3 // 5}m")
    return args
