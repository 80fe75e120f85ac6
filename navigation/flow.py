# navigation/flow.py
"""
Pure wizard logic: which page follows which, which fields a page shows,
what each field displays, and what confirming a value does.

Handlers take a FlowContext and the submitted value and return a Step.
They never mutate the config or the session; the navigator applies the
Step's deltas. Slow work is described as a Check and runs on the task
runner, its callbacks returning Steps of their own.
"""
from __future__ import annotations
import copy
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlsplit

from config.merge import to_yaml
from config.model import (
    BOND_MODE_ACTIVE_BACKUP, BOND_MODES, DEFAULT_BOND_OPTIONS, InstallConfig,
    MODE_CREATE, MODE_INSTALL, MODE_JOIN, NETWORK_METHOD_DHCP, NETWORK_METHOD_STATIC,
    NetworkInterface, ROLE_DEFAULT, ROLE_MANAGEMENT, ROLE_WITNESS, ROLE_WORKER,
    VIP_MODE_DHCP, VIP_MODE_STATIC,
)
from disks.sizing import (
    default_persistent_size, exceeds_mbr_limit, parse_partition_size,
    validate_data_disk_size, validate_disk_size,
)
from errors import AsyncCheckError, InputValidationError
from navigation.panels import (
    ADDR_MASK, ADDRESS, ASK_BOND_MODE, ASK_CREATE, ASK_INTERFACE, ASK_NETWORK_METHOD,
    ASK_ROLE, ASK_VIP_METHOD, ASK_VLAN_ID, CLOUD_INIT, CLUSTER_DNS, CONFIRM_INSTALL,
    DATA_DISK, DISK, DNS_SERVERS, FORCE_MBR, GATEWAY, HOSTNAME, MTU, NTP_SERVERS,
    PAGE_CLOUD_INIT, PAGE_CLUSTER_NETWORK, PAGE_CONFIRM, PAGE_DISK, PAGE_DNS,
    PAGE_FIELDS, PAGE_HOSTNAME, PAGE_INSTALL, PAGE_MODE, PAGE_NETWORK, PAGE_NTP,
    PAGE_PASSWORD, PAGE_PREFLIGHT, PAGE_PROXY, PAGE_ROLE, PAGE_SERVER_URL,
    PAGE_SSH_KEY, PAGE_TOKEN, PAGE_VIP, PASSWORD, PASSWORD_CONFIRM, PERSISTENT_SIZE,
    POD_CIDR, PREFLIGHT_CHECK, PROXY, SERVER_URL, SERVICE_CIDR, SSH_KEY, TOKEN, VIP,
    VIP_HW_ADDR, WIPE_DISKS,
)
from navigation.renderer import Option, PanelView
from network.checks import ERR_NO_DEFAULT_ROUTE
from network.interfaces import NIC_STATE_DOWN, NIC_STATE_LOWER_DOWN, NIC_STATE_NOT_FOUND
from state import WizardSession
from validators import (
    format_server_url, parse_mask, parse_mtu, parse_vlan_id, split_address,
    split_list, validate_cidr, validate_cluster_dns, validate_gateway_in_subnet,
    validate_hostname, validate_ip, validate_ip_list, validate_mac, validate_token,
)

HALT_MESSAGE = "Installation halted. Rebooting system in 5 seconds"
ERR_NO_STATIC_ROUTE = "No default route found. Please check the gateway setting."
MSG_FORBID_VIP_EDIT = "Forbid to modify the VIP obtained through DHCP"
MSG_VIP_SAME_AS_NIC = "VIP must not be the same as management NIC's IP"
MSG_NTP_SPACE = "There is space in input."
MSG_NTP_EMPTY = (
    "Empty NTP Server is not recommended. "
    "Press Enter again to use current configuration anyway."
)
MSG_NTP_FAILED = (
    "Failed to reach NTP servers: {error}. Press Enter again to use current "
    "configuration anyway, or change the value to revalidate."
)
MSG_SSH_FAILED = "{error}. Press Enter again to continue without importing keys."
MSG_DISK_CONFIRM = "Press Enter again to confirm the disk configuration."

YES = "yes"
NO = "no"


@dataclass
class Check:
    """Slow work a handler hands to the task runner."""
    kind: str
    description: str
    work: Callable[[], Any]
    on_success: Callable[["FlowContext", Any], "Step"]
    on_failure: Optional[Callable[["FlowContext", str], "Step"]] = None


@dataclass
class Step:
    """Outcome of confirming a field.

    `config` and `session` map dotted attribute paths to new values.
    Without any navigation flag the current field stays focused and
    `message` is shown in the validator region.
    """
    message: str = ""
    note: str = ""
    config: Dict[str, Any] = field(default_factory=dict)
    session: Dict[str, Any] = field(default_factory=dict)
    effects: List[Callable[[], None]] = field(default_factory=list)
    advance: bool = False
    focus: Optional[str] = None
    next_page: bool = False
    check: Optional[Check] = None
    halt: str = ""
    install: bool = False


def reject(message: str) -> Step:
    return Step(message=message)


@dataclass(frozen=True)
class FlowContext:
    config: InstallConfig
    session: WizardSession
    env: Any

    @property
    def install(self):
        return self.config.install

    @property
    def network(self):
        return self.session.network


# -- Page order ----------------------------------------------------------------

def initial_page(ctx: FlowContext) -> str:
    return PAGE_PREFLIGHT if ctx.session.preflight_warnings else PAGE_MODE


def _after_mode(ctx: FlowContext) -> str:
    return PAGE_NETWORK if ctx.session.already_installed else PAGE_DISK


_FIXED_NEXT = {
    PAGE_PREFLIGHT: PAGE_MODE,
    PAGE_CLUSTER_NETWORK: PAGE_HOSTNAME,
    PAGE_HOSTNAME: PAGE_DNS,
    PAGE_SERVER_URL: PAGE_TOKEN,
    PAGE_VIP: PAGE_TOKEN,
    PAGE_TOKEN: PAGE_PASSWORD,
    PAGE_NTP: PAGE_PROXY,
    PAGE_PROXY: PAGE_SSH_KEY,
    PAGE_SSH_KEY: PAGE_CLOUD_INIT,
    PAGE_CLOUD_INIT: PAGE_CONFIRM,
    PAGE_CONFIRM: PAGE_INSTALL,
}


def next_page(page: str, ctx: FlowContext) -> str:
    """Decision table over the current config and session flags."""
    mode = ctx.install.mode
    if page == PAGE_MODE:
        return PAGE_ROLE if mode == MODE_JOIN else _after_mode(ctx)
    if page == PAGE_ROLE:
        return _after_mode(ctx)
    if page == PAGE_DISK:
        return PAGE_PASSWORD if ctx.session.install_mode_only else PAGE_NETWORK
    if page == PAGE_NETWORK:
        return PAGE_CLUSTER_NETWORK if mode == MODE_CREATE else PAGE_HOSTNAME
    if page == PAGE_DNS:
        return PAGE_VIP if mode == MODE_CREATE else PAGE_SERVER_URL
    if page == PAGE_PASSWORD:
        return PAGE_CONFIRM if ctx.session.install_mode_only else PAGE_NTP
    return _FIXED_NEXT[page]


def selected_device(ctx: FlowContext) -> str:
    """The configured OS disk, or the first disk when it is unset or not present."""
    paths = [d.path for d in ctx.env.disks]
    return ctx.install.device if ctx.install.device in paths else paths[0]


def selected_data_disk(ctx: FlowContext) -> str:
    data_disk = ctx.install.data_disk
    return data_disk if any(d.path == data_disk for d in ctx.env.disks) else ""


def shares_os_disk(ctx: FlowContext, device: str, data_disk: str) -> bool:
    return len(ctx.env.disks) == 1 or not data_disk or data_disk == device


def disk_panels(ctx: FlowContext) -> List[str]:
    witness = ctx.config.is_witness
    device = selected_device(ctx)
    data_disk = selected_data_disk(ctx)
    panels = [DISK]
    if not witness and len(ctx.env.disks) > 1:
        panels.append(DATA_DISK)
    if not witness and shares_os_disk(ctx, device, data_disk):
        panels.append(PERSISTENT_SIZE)
    if ctx.env.stale_installs([device, data_disk]):
        panels.append(WIPE_DISKS)
    if ctx.env.is_bios:
        panels.append(FORCE_MBR)
    return panels


def network_panels(ctx: FlowContext) -> List[str]:
    panels = [ASK_INTERFACE, ASK_VLAN_ID, ASK_BOND_MODE, ASK_NETWORK_METHOD]
    if ctx.network.method == NETWORK_METHOD_STATIC:
        panels += [ADDRESS, ADDR_MASK, GATEWAY, MTU]
    return panels


def vip_method(ctx: FlowContext) -> str:
    return ctx.session.inputs.vip_method or ctx.install.vip_mode or VIP_MODE_DHCP


def vip_panels(ctx: FlowContext) -> List[str]:
    if vip_method(ctx) == VIP_MODE_DHCP:
        return [ASK_VIP_METHOD, VIP_HW_ADDR, VIP]
    return [ASK_VIP_METHOD, VIP]


_DYNAMIC_PANELS = {
    PAGE_DISK: disk_panels,
    PAGE_NETWORK: network_panels,
    PAGE_VIP: vip_panels,
}


def page_panels(page: str, ctx: FlowContext) -> List[str]:
    if page in _DYNAMIC_PANELS:
        return _DYNAMIC_PANELS[page](ctx)
    return list(PAGE_FIELDS.get(page, []))


# -- Page content ----------------------------------------------------------

def install_summary(ctx: FlowContext) -> str:
    inst = ctx.install
    net = inst.management_interface
    lines = [f"install mode: {inst.mode}"]
    if inst.mode == MODE_JOIN:
        lines.append(f"role: {inst.role or ROLE_DEFAULT}")
    lines.append(f"installation disk: {inst.device}")
    if inst.data_disk and inst.data_disk != inst.device:
        lines.append(f"data disk: {inst.data_disk}")
    if not ctx.config.should_mount_data_partition():
        lines.append("data partition: none")
    if not ctx.session.install_mode_only:
        lines.append(f"management NICs: {', '.join(net.interface_names())}")
        lines.append(f"network method: {net.method}")
        if net.method == NETWORK_METHOD_STATIC:
            lines.append(f"address: {net.ip}/{net.subnet_mask} via {net.gateway}")
        lines.append(f"hostname: {ctx.config.os.hostname}")
        if inst.mode == MODE_CREATE:
            lines.append(f"VIP: {inst.vip} ({inst.vip_mode})")
        else:
            lines.append(f"management address: {ctx.config.server_url}")
    if ctx.session.already_installed:
        question = "Configure the node with above settings?"
    elif ctx.session.install_mode_only:
        question = "Install the OS without creating or joining a cluster?"
    else:
        question = ("Your disk will be formatted and the OS will be installed "
                    "with the above configuration. Continue?")
    return "\n".join(lines) + "\n\n" + to_yaml(ctx.config) + "\n" + question


def page_content(page: str, ctx: FlowContext) -> str:
    if page == PAGE_PREFLIGHT:
        return "\n".join(f"* {w}" for w in ctx.session.preflight_warnings)
    if page == PAGE_CONFIRM:
        return install_summary(ctx)
    return ""


# -- Pre-show hooks --------------------------------------------------------

def _yes_no(no_text: str = "No") -> List[Option]:
    return [Option(YES, "Yes"), Option(NO, no_text)]


def mode_options(ctx: FlowContext) -> List[Option]:
    options = [
        Option(MODE_CREATE, "Create a new cluster"),
        Option(MODE_JOIN, "Join an existing cluster"),
    ]
    if not ctx.session.already_installed:
        options.append(Option(MODE_INSTALL, "Install the OS only"))
    return options


def _preshow_mode(ctx):
    return PanelView(ctx.install.mode or MODE_CREATE, mode_options(ctx))


def _preshow_role(ctx):
    options = [
        Option(ROLE_DEFAULT, "Default role (management or worker)"),
        Option(ROLE_MANAGEMENT, "Management role"),
        Option(ROLE_WITNESS, "Witness role"),
        Option(ROLE_WORKER, "Worker role"),
    ]
    return PanelView(ctx.install.role or ROLE_DEFAULT, options)


def _preshow_disk(ctx):
    return PanelView(selected_device(ctx), [Option(d.path, d.label) for d in ctx.env.disks])


def _preshow_data_disk(ctx):
    device = selected_device(ctx)
    options = []
    for d in ctx.env.disks:
        text = f"Use the installation disk ({d.label})" if d.path == device else d.label
        option = Option(d.path, text)
        if d.path == device:
            options.insert(0, option)
        else:
            options.append(option)
    return PanelView(selected_data_disk(ctx) or device, options)


def _preshow_persistent_size(ctx):
    value = ctx.install.persistent_partition_size
    if not value:
        value = default_persistent_size(ctx.env.disk_size(selected_device(ctx)))
    return PanelView(value)


def _preshow_wipe_disks(ctx):
    stale = ctx.env.stale_installs([selected_device(ctx), selected_data_disk(ctx)])
    paths = {d.path for d in stale}
    selected = [p for p in ctx.install.wipe_disks_list if p in paths]
    return PanelView(selected, [Option(d.path, d.label) for d in stale])


def _preshow_force_mbr(ctx):
    return PanelView(YES if ctx.install.force_mbr else NO, _yes_no())


def _preshow_interface(ctx):
    options = [Option(i.name, i.display_str()) for i in ctx.env.interfaces()]
    return PanelView(ctx.network.interface_names(), options)


def _preshow_vlan(ctx):
    return PanelView(str(ctx.network.vlan_id) if ctx.network.vlan_id else "")


def _preshow_bond_mode(ctx):
    current = ctx.network.bond_options.get("mode", BOND_MODE_ACTIVE_BACKUP)
    return PanelView(current, [Option(m, m) for m in BOND_MODES])


def _preshow_method(ctx):
    options = [
        Option(NETWORK_METHOD_DHCP, "Automatic (DHCP)"),
        Option(NETWORK_METHOD_STATIC, "Static"),
    ]
    return PanelView(ctx.network.method or NETWORK_METHOD_DHCP, options)


def _preshow_hostname(ctx):
    return PanelView(ctx.config.os.hostname or ctx.env.default_hostname())


def _preshow_dns(ctx):
    value = ctx.session.inputs.dns_servers or ",".join(ctx.config.os.dns_nameservers)
    return PanelView(value)


def _preshow_vip_method(ctx):
    options = [Option(VIP_MODE_DHCP, "DHCP"), Option(VIP_MODE_STATIC, "Static")]
    return PanelView(vip_method(ctx), options)


def _preshow_server_url(ctx):
    return PanelView(ctx.session.inputs.server_url or ctx.config.server_url)


PRESHOW: Dict[str, Callable[[FlowContext], PanelView]] = {
    PREFLIGHT_CHECK: lambda ctx: PanelView(YES, _yes_no()),
    ASK_CREATE: _preshow_mode,
    ASK_ROLE: _preshow_role,
    DISK: _preshow_disk,
    DATA_DISK: _preshow_data_disk,
    PERSISTENT_SIZE: _preshow_persistent_size,
    WIPE_DISKS: _preshow_wipe_disks,
    FORCE_MBR: _preshow_force_mbr,
    ASK_INTERFACE: _preshow_interface,
    ASK_VLAN_ID: _preshow_vlan,
    ASK_BOND_MODE: _preshow_bond_mode,
    ASK_NETWORK_METHOD: _preshow_method,
    ADDRESS: lambda ctx: PanelView(ctx.session.inputs.address or ctx.network.ip),
    ADDR_MASK: lambda ctx: PanelView(ctx.network.subnet_mask),
    GATEWAY: lambda ctx: PanelView(ctx.network.gateway),
    MTU: lambda ctx: PanelView(str(ctx.network.mtu) if ctx.network.mtu else ""),
    POD_CIDR: lambda ctx: PanelView(ctx.install.cluster_pod_cidr),
    SERVICE_CIDR: lambda ctx: PanelView(ctx.install.cluster_service_cidr),
    CLUSTER_DNS: lambda ctx: PanelView(ctx.install.cluster_dns),
    HOSTNAME: _preshow_hostname,
    DNS_SERVERS: _preshow_dns,
    ASK_VIP_METHOD: _preshow_vip_method,
    VIP_HW_ADDR: lambda ctx: PanelView(ctx.install.vip_hw_addr),
    VIP: lambda ctx: PanelView(ctx.install.vip),
    SERVER_URL: _preshow_server_url,
    TOKEN: lambda ctx: PanelView(ctx.config.token),
    PASSWORD: lambda ctx: PanelView(ctx.session.inputs.password),
    PASSWORD_CONFIRM: lambda ctx: PanelView(ctx.session.inputs.password_confirm),
    NTP_SERVERS: lambda ctx: PanelView(ctx.session.inputs.ntp_servers),
    PROXY: lambda ctx: PanelView(ctx.session.inputs.proxy),
    SSH_KEY: lambda ctx: PanelView(ctx.session.inputs.ssh_key_url),
    CLOUD_INIT: lambda ctx: PanelView(ctx.install.config_url),
    CONFIRM_INSTALL: lambda ctx: PanelView(YES, _yes_no("No (Reboot)")),
}


def preshow(panel: str, ctx: FlowContext) -> PanelView:
    return PRESHOW[panel](ctx)


# -- Mode / role ---------------------------------------------------------------

def confirm_preflight(ctx, value):
    if value == YES:
        return Step(next_page=True)
    return Step(halt=HALT_MESSAGE)


def confirm_mode(ctx, value):
    if value not in [o.value for o in mode_options(ctx)]:
        return reject(f"Unsupported installation mode: {value}")
    config = {"install.mode": value, "install.skip_checks": True}
    session = {"install_mode_only": value == MODE_INSTALL}
    if value == MODE_CREATE:
        config.update({"install.role": ROLE_DEFAULT, "server_url": ""})
        session["inputs.server_url"] = ""
    return Step(config=config, session=session, next_page=True)


def confirm_role(ctx, value):
    config = {"install.role": value}
    if value == ROLE_WITNESS:
        config.update({"install.data_disk": "", "install.persistent_partition_size": ""})
    return Step(config=config, next_page=True)


# -- Disk ------------------------------------------------------------------

def disk_size_problem(ctx: FlowContext, device: str, data_disk: str) -> str:
    """Size policy over the chosen OS and data disks; empty when acceptable."""
    single = shares_os_disk(ctx, device, data_disk) and not ctx.config.is_witness
    ok, msg = validate_disk_size(ctx.env.disk_size(device), single)
    if not ok:
        return msg
    if data_disk and data_disk != device and not ctx.config.is_witness:
        ok, msg = validate_data_disk_size(ctx.env.disk_size(data_disk))
        if not ok:
            return msg
    return ""


def _lookup(root: Any, path: str) -> Any:
    for name in path.split("."):
        root = getattr(root, name)
    return root


def _unconfirm(ctx: FlowContext, config: Dict[str, Any]) -> Dict[str, Any]:
    """Withdraw a pending disk confirmation when any of `config` changes a value."""
    if any(_lookup(ctx.config, path) != value for path, value in config.items()):
        return {"disk_confirmed": False}
    return {}


def confirm_disk(ctx, value):
    config = {"install.device": value}
    wipe = [p for p in ctx.install.wipe_disks_list if p != value]
    if wipe != ctx.install.wipe_disks_list:
        config["install.wipe_disks_list"] = wipe
    # A size warning does not block picking another field first
    warning = disk_size_problem(ctx, value, selected_data_disk(ctx))
    return Step(config=config, session=_unconfirm(ctx, config), message=warning, advance=True)


def confirm_data_disk(ctx, value):
    device = selected_device(ctx)
    if value != device:
        problem = disk_size_problem(ctx, device, value)
        if problem:
            return reject(problem)
    config = {"install.data_disk": value}
    if value != device:
        config["install.persistent_partition_size"] = ""
    return Step(config=config, session=_unconfirm(ctx, config), advance=True)


def confirm_persistent_size(ctx, value):
    value = value.strip()
    try:
        parse_partition_size(ctx.env.disk_size(selected_device(ctx)), value)
    except ValueError as e:
        return reject(str(e))
    config = {"install.persistent_partition_size": value}
    return Step(config=config, session=_unconfirm(ctx, config), advance=True)


def confirm_wipe_disks(ctx, values):
    config = {"install.wipe_disks_list": list(values)}
    return Step(config=config, session=_unconfirm(ctx, config), advance=True)


def confirm_force_mbr(ctx, value):
    force = value == YES
    if force and exceeds_mbr_limit(ctx.env.disk_size(selected_device(ctx))):
        return reject("Disk too large for MBR. Must be less than 2TiB")
    if force != ctx.install.force_mbr:
        # Changing the partition scheme takes a second Enter
        return Step(config={"install.force_mbr": force}, session={"disk_confirmed": False},
                    note=MSG_DISK_CONFIRM)
    return Step(advance=True)


def complete_disk(ctx):
    device = selected_device(ctx)
    data_disk = selected_data_disk(ctx)
    problem = disk_size_problem(ctx, device, data_disk)
    if problem:
        return reject(problem)
    config = {"install.device": device, "install.data_disk": data_disk}
    if not ctx.config.is_witness and shares_os_disk(ctx, device, data_disk):
        size = ctx.install.persistent_partition_size or default_persistent_size(
            ctx.env.disk_size(device))
        try:
            parse_partition_size(ctx.env.disk_size(device), size)
        except ValueError as e:
            return reject(str(e))
        config["install.persistent_partition_size"] = size
    if not ctx.session.disk_confirmed:
        return Step(config=config, session={"disk_confirmed": True}, note=MSG_DISK_CONFIRM)
    return Step(config=config, session={"disk_confirmed": False}, next_page=True)


# -- Network ---------------------------------------------------------------

def _nic_problem(ctx, name):
    state = ctx.env.nic_state(name)
    if state == NIC_STATE_NOT_FOUND:
        return f"NIC {name} not found"
    if state == NIC_STATE_DOWN:
        return f"NIC {name} is down"
    if state == NIC_STATE_LOWER_DOWN:
        return f"NIC {name} is down. Please check the cable connection"
    return ""


def confirm_interfaces(ctx, values):
    values = list(values)
    if not values:
        return reject("Must select at least one interface")
    selected = []
    for name in values:
        problem = _nic_problem(ctx, name)
        if problem:
            return reject(problem)
        try:
            selected.append(NetworkInterface(name=name, hw_addr=ctx.env.hw_addr(name)))
        except OSError:
            return reject(f"NIC {name} not found")
    return Step(session={"network.interfaces": selected}, advance=True)


def confirm_vlan(ctx, value):
    return Step(session={"network.vlan_id": parse_vlan_id(value)}, advance=True)


def confirm_bond_mode(ctx, value):
    if value not in BOND_MODES:
        return reject(f"Unsupported bond mode: {value}")
    options = dict(DEFAULT_BOND_OPTIONS)
    options.update(ctx.network.bond_options)
    options["mode"] = value
    return Step(session={"network.bond_options": options}, advance=True)


def confirm_method(ctx, value):
    session = {"network.method": value}
    if value == NETWORK_METHOD_DHCP:
        session.update({
            "network.ip": "", "network.subnet_mask": "", "network.gateway": "",
            "network.mtu": 0, "inputs.address": "",
        })
    return Step(session=session, advance=True)


def confirm_address(ctx, value):
    value = value.strip()
    if not value:
        return reject("IPv4 address is required")
    ip, mask = split_address(value)
    session = {"network.ip": ip, "inputs.address": value}
    if mask:
        session["network.subnet_mask"] = mask
    return Step(session=session, advance=True)


def confirm_mask(ctx, value):
    value = value.strip()
    if not value:
        return reject("Subnet mask is required")
    try:
        parse_mask(value)
    except ValueError as e:
        return reject(str(e))
    return Step(session={"network.subnet_mask": value}, advance=True)


def confirm_gateway(ctx, value):
    value = value.strip()
    if not value:
        return reject("Gateway is required")
    ok, msg = validate_ip(value)
    if not ok:
        return reject(msg)
    net = ctx.network
    if net.ip and net.subnet_mask:
        ok, msg = validate_gateway_in_subnet(value, net.ip, parse_mask(net.subnet_mask))
        if not ok:
            return reject(msg)
    return Step(session={"network.gateway": value}, advance=True)


def confirm_mtu(ctx, value):
    return Step(session={"network.mtu": parse_mtu(value)}, advance=True)


def complete_network(ctx):
    net = ctx.network
    if not net.interfaces:
        return Step(message="Must select at least one interface", focus=ASK_INTERFACE)
    if net.method == NETWORK_METHOD_STATIC:
        for attr, label, panel in (("ip", "IPv4 address", ADDRESS),
                                   ("subnet_mask", "Subnet mask", ADDR_MASK),
                                   ("gateway", "Gateway", GATEWAY)):
            if not getattr(net, attr):
                return Step(message=f"{label} is required", focus=panel)

    snapshot = copy.deepcopy(net)
    snapshot.method = snapshot.method or NETWORK_METHOD_DHCP
    if not snapshot.bond_options:
        snapshot.bond_options = dict(DEFAULT_BOND_OPTIONS)
    hostname = ctx.config.os.hostname
    env = ctx.env

    def work():
        output, error = env.apply_network(snapshot, hostname)
        if error:
            raise AsyncCheckError(f"Configure network failed: {output} {error}")
        if snapshot.method == NETWORK_METHOD_DHCP and not env.wait_for_dhcp(snapshot):
            raise AsyncCheckError("Requesting IP through DHCP failed: no lease obtained")
        if not env.has_default_route():
            if snapshot.method == NETWORK_METHOD_DHCP:
                raise AsyncCheckError(ERR_NO_DEFAULT_ROUTE)
            raise AsyncCheckError(ERR_NO_STATIC_ROUTE)
        return snapshot

    def on_success(ctx, applied):
        return Step(config={"install.management_interface": copy.deepcopy(applied)},
                    next_page=True)

    return Step(check=Check("network", "Applying network configuration...", work, on_success))


# -- Cluster network -------------------------------------------------------

def confirm_pod_cidr(ctx, value):
    value = value.strip()
    if value:
        ok, msg = validate_cidr(value, "pod CIDR")
        if not ok:
            return reject(msg)
    return Step(config={"install.cluster_pod_cidr": value}, advance=True)


def confirm_service_cidr(ctx, value):
    value = value.strip()
    if value:
        ok, msg = validate_cidr(value, "service CIDR")
        if not ok:
            return reject(msg)
    return Step(config={"install.cluster_service_cidr": value}, advance=True)


def confirm_cluster_dns(ctx, value):
    value = value.strip()
    if value:
        ok, msg = validate_cluster_dns(value, ctx.install.cluster_service_cidr)
        if not ok:
            return reject(msg)
    return Step(config={"install.cluster_dns": value}, advance=True)


# -- Hostname / DNS --------------------------------------------------------

def confirm_hostname(ctx, value):
    value = value.strip()
    ok, msg = validate_hostname(value)
    if not ok:
        return reject(msg)
    return Step(config={"os.hostname": value}, next_page=True)


def confirm_dns(ctx, value):
    value = value.strip()
    if not value and ctx.install.management_interface.method == NETWORK_METHOD_STATIC:
        return reject("DNS servers are required for static IP address")
    ok, msg = validate_ip_list(value)
    if not ok:
        return reject(msg)
    servers = split_list(value)
    session = {"inputs.dns_servers": value}
    if not servers:
        return Step(config={"os.dns_nameservers": []}, session=session, advance=True)

    env = ctx.env

    def on_success(ctx, _):
        return Step(config={"os.dns_nameservers": servers}, advance=True)

    return Step(session=session, check=Check(
        "dns", "Applying DNS servers...", lambda: env.apply_dns(servers), on_success))


# -- VIP -------------------------------------------------------------------

def confirm_vip_method(ctx, value):
    session = {"inputs.vip_method": value}
    if value == VIP_MODE_STATIC:
        config = {"install.vip_mode": VIP_MODE_STATIC, "install.vip_hw_addr": ""}
        if ctx.install.vip_mode == VIP_MODE_DHCP:
            config["install.vip"] = ""
        return Step(config=config, session=session, advance=True)
    return Step(session=session, advance=True)


def confirm_vip_hw_addr(ctx, value):
    value = value.strip()
    if value:
        ok, msg = validate_mac(value)
        if not ok:
            return reject(msg)
    network = copy.deepcopy(ctx.install.management_interface)
    env = ctx.env

    def on_success(ctx, lease):
        ip, mac = lease
        return Step(config={"install.vip": ip, "install.vip_hw_addr": mac,
                            "install.vip_mode": VIP_MODE_DHCP}, advance=True)

    return Step(check=Check("vip", "Requesting IP through DHCP...",
                            lambda: env.request_vip(network, value), on_success))


def confirm_vip(ctx, value):
    value = value.strip()
    if vip_method(ctx) == VIP_MODE_DHCP:
        if not ctx.install.vip:
            return Step(message="No VIP obtained through DHCP yet", focus=VIP_HW_ADDR)
        if value != ctx.install.vip:
            return reject(MSG_FORBID_VIP_EDIT)
        return Step(advance=True)
    ok, _ = validate_ip(value)
    if not ok:
        return reject(f"Invalid VIP: {value}")
    if value == ctx.install.management_interface.ip:
        return reject(MSG_VIP_SAME_AS_NIC)
    return Step(config={"install.vip": value, "install.vip_mode": VIP_MODE_STATIC,
                        "install.vip_hw_addr": ""}, advance=True)


# -- Server URL / token / password ---------------------------------------

def confirm_server_url(ctx, value):
    value = value.strip()
    if not value:
        return reject("Management address is required")
    formatted = format_server_url(value)
    env = ctx.env

    def on_success(ctx, _):
        return Step(config={"server_url": formatted}, advance=True)

    return Step(session={"inputs.server_url": value}, check=Check(
        "ping", f"Checking {formatted}...", lambda: env.ping_server(formatted), on_success))


def confirm_token(ctx, value):
    ok, msg = validate_token(value)
    if not ok:
        return reject(msg)
    return Step(config={"token": value}, next_page=True)


def confirm_password(ctx, value):
    if not value:
        return reject("Password is required")
    return Step(session={"inputs.password": value}, advance=True)


def confirm_password_again(ctx, value):
    if value != ctx.session.inputs.password:
        return reject("Password mismatching")
    return Step(config={"os.password": value}, session={"inputs.password_confirm": value},
                advance=True)


# -- NTP / proxy / SSH / cloud-init -------------------------------------

def confirm_ntp(ctx, value):
    s = ctx.session
    if value == s.inputs.ntp_servers and s.ntp_checked:
        return Step(config={"os.ntp_servers": split_list(value)},
                    session={"ntp_checked": False}, advance=True)
    if any(c.isspace() for c in value):
        return reject(MSG_NTP_SPACE)

    servers = split_list(value)
    config = {"os.ntp_servers": servers}
    # Override-and-proceed is offered only once a warning has been shown
    session = {"inputs.ntp_servers": value, "ntp_checked": False}
    if not servers:
        session["ntp_checked"] = True
        return Step(config=config, session=session, message=MSG_NTP_EMPTY)

    env = ctx.env

    def work():
        env.probe_ntp(servers)
        env.apply_ntp(servers)

    def on_success(ctx, _):
        return Step(session={"ntp_checked": False}, advance=True)

    def on_failure(ctx, error):
        return Step(session={"ntp_checked": True}, message=MSG_NTP_FAILED.format(error=error))

    return Step(config=config, session=session,
                check=Check("ntp", "Checking NTP servers...", work, on_success, on_failure))


def confirm_proxy(ctx, value):
    value = value.strip()
    if value:
        parts = urlsplit(value)
        if parts.scheme not in ("http", "https") or not parts.hostname:
            return reject(f"Invalid proxy address: {value}")
    environment = dict(ctx.config.os.environment)
    for key in ("HTTP_PROXY", "HTTPS_PROXY"):
        if value:
            environment[key] = value
        else:
            environment.pop(key, None)
    env = ctx.env
    return Step(config={"os.environment": environment}, session={"inputs.proxy": value},
                effects=[lambda: env.apply_proxy(value)], advance=True)


def confirm_ssh_key(ctx, value):
    value = value.strip()
    s = ctx.session
    if not value:
        return Step(config={"os.ssh_authorized_keys": []},
                    session={"inputs.ssh_key_url": "", "ssh_key_checked": False}, advance=True)
    if value == s.inputs.ssh_key_url and s.ssh_key_checked:
        return Step(session={"ssh_key_checked": False}, advance=True)

    env = ctx.env

    def on_success(ctx, keys):
        return Step(config={"os.ssh_authorized_keys": keys},
                    session={"ssh_key_checked": False}, advance=True)

    def on_failure(ctx, error):
        return Step(session={"ssh_key_checked": True}, message=MSG_SSH_FAILED.format(error=error))

    return Step(session={"inputs.ssh_key_url": value, "ssh_key_checked": False},
                check=Check("ssh-key", f"Fetching SSH keys from {value}...",
                            lambda: env.fetch_ssh_keys(value), on_success, on_failure))


def confirm_cloud_init(ctx, value):
    value = value.strip()
    if not value:
        return Step(config={"install.config_url": ""}, session={"remote_config": None},
                    advance=True)
    env = ctx.env

    def on_success(ctx, remote):
        return Step(config={"install.config_url": value}, session={"remote_config": remote},
                    advance=True)

    return Step(check=Check("cloud-init", f"Fetching remote config from {value}...",
                            lambda: env.fetch_remote_config(value), on_success))


def confirm_install(ctx, value):
    if value == YES:
        return Step(install=True)
    return Step(halt=HALT_MESSAGE)


CONFIRM: Dict[str, Callable[[FlowContext, Any], Step]] = {
    PREFLIGHT_CHECK: confirm_preflight,
    ASK_CREATE: confirm_mode,
    ASK_ROLE: confirm_role,
    DISK: confirm_disk,
    DATA_DISK: confirm_data_disk,
    PERSISTENT_SIZE: confirm_persistent_size,
    WIPE_DISKS: confirm_wipe_disks,
    FORCE_MBR: confirm_force_mbr,
    ASK_INTERFACE: confirm_interfaces,
    ASK_VLAN_ID: confirm_vlan,
    ASK_BOND_MODE: confirm_bond_mode,
    ASK_NETWORK_METHOD: confirm_method,
    ADDRESS: confirm_address,
    ADDR_MASK: confirm_mask,
    GATEWAY: confirm_gateway,
    MTU: confirm_mtu,
    POD_CIDR: confirm_pod_cidr,
    SERVICE_CIDR: confirm_service_cidr,
    CLUSTER_DNS: confirm_cluster_dns,
    HOSTNAME: confirm_hostname,
    DNS_SERVERS: confirm_dns,
    ASK_VIP_METHOD: confirm_vip_method,
    VIP_HW_ADDR: confirm_vip_hw_addr,
    VIP: confirm_vip,
    SERVER_URL: confirm_server_url,
    TOKEN: confirm_token,
    PASSWORD: confirm_password,
    PASSWORD_CONFIRM: confirm_password_again,
    NTP_SERVERS: confirm_ntp,
    PROXY: confirm_proxy,
    SSH_KEY: confirm_ssh_key,
    CLOUD_INIT: confirm_cloud_init,
    CONFIRM_INSTALL: confirm_install,
}

# Run when the last field of a page is confirmed; other pages just move on
COMPLETE: Dict[str, Callable[[FlowContext], Step]] = {
    PAGE_DISK: complete_disk,
    PAGE_NETWORK: complete_network,
}


def confirm(panel: str, ctx: FlowContext, value: Any) -> Step:
    try:
        return CONFIRM[panel](ctx, value)
    except InputValidationError as e:
        return reject(str(e))


def complete(page: str, ctx: FlowContext) -> Step:
    handler = COMPLETE.get(page)
    return handler(ctx) if handler else Step(next_page=True)
