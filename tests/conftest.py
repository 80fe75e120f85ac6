# tests/conftest.py
import sys, os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from config.model import InstallConfig
from disks.topology import DiskOption
from errors import AsyncCheckError
from navigation.machine import Navigator
from network.interfaces import InterfaceInfo, NIC_STATE_NOT_FOUND, NIC_STATE_UP
from state import WizardSession
from tasks import TaskRunner

GiB = 1 << 30

ED25519_KEY = (
    "ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAICLEKeoDByXFkn00QIBuW4AsqSKE8qOjyLELDW07vXd2 "
    "ops@example"
)

FAKE_IFACES = [
    InterfaceInfo(name="eno1", operstate="up", link_speed_mbps=10000,
                  mac="00:11:22:33:44:55", ip_addresses=["192.168.1.10/24"]),
    InterfaceInfo(name="eno2", operstate="down", link_speed_mbps=10000,
                  mac="00:11:22:33:44:66", ip_addresses=[]),
]


class FakeRenderer:
    """Records what the navigator asks the screen to draw."""

    def __init__(self):
        self.visible = set()
        self.views = {}
        self.focused = None
        self.regions = {}
        self.spinners = {}
        self.spinner_log = []

    def show_panel(self, panel, view):
        self.visible.add(panel)
        self.views[panel] = view

    def close_panel(self, panel):
        self.visible.discard(panel)

    def focus_panel(self, panel):
        self.focused = panel

    def set_content(self, region, text):
        self.regions[region] = text

    def start_spinner(self, region, message):
        self.spinners[region] = message
        self.spinner_log.append(("start", region, message))

    def stop_spinner(self, region, is_error, message):
        self.spinners.pop(region, None)
        self.spinner_log.append(("stop", region, is_error, message))


class FakeEnvironment:
    """In-memory stand-in for SystemEnvironment; nothing touches the host."""

    def __init__(self, disks=None, stale=None, is_bios=False, ifaces=None):
        self.disks = disks if disks is not None else [
            DiskOption(name="sda", size=500 * GiB, identity="wwn-a"),
            DiskOption(name="sdb", size=300 * GiB, identity="wwn-b"),
        ]
        self.stale = stale or []
        self.is_bios = is_bios
        self.ifaces = ifaces if ifaces is not None else list(FAKE_IFACES)
        self.nic_states = {}
        self.network_error = ""
        self.dhcp_address = "192.168.1.10/24"
        self.default_route = True
        self.vip_lease = ("192.168.1.100", "02:00:00:00:00:01")
        self.ntp_error = ""
        self.ping_error = ""
        self.ssh_error = ""
        self.ssh_keys = [ED25519_KEY]
        self.remote = None
        self.hostname = ""
        self.rebooted = False
        self.calls = []

    def disk_size(self, path):
        for disk in self.disks:
            if disk.path == path:
                return disk.size
        raise ValueError(f"unknown disk {path}")

    def stale_installs(self, exclude):
        return [d for d in self.stale if d.path not in exclude]

    def interfaces(self):
        return self.ifaces

    def nic_state(self, name):
        if name not in [i.name for i in self.ifaces]:
            return NIC_STATE_NOT_FOUND
        return self.nic_states.get(name, NIC_STATE_UP)

    def hw_addr(self, name):
        for iface in self.ifaces:
            if iface.name == name:
                return iface.mac
        raise OSError(f"NIC {name} not found")

    def apply_network(self, network, hostname):
        self.calls.append(("apply_network", network.method, hostname))
        return "", self.network_error

    def wait_for_dhcp(self, network):
        self.calls.append(("wait_for_dhcp",))
        return self.dhcp_address

    def has_default_route(self):
        return self.default_route

    def apply_dns(self, servers):
        self.calls.append(("apply_dns", list(servers)))

    def apply_ntp(self, servers):
        self.calls.append(("apply_ntp", list(servers)))

    def probe_ntp(self, servers):
        if self.ntp_error:
            raise AsyncCheckError(self.ntp_error)

    def request_vip(self, network, hw_addr):
        self.calls.append(("request_vip", hw_addr))
        return self.vip_lease

    def apply_proxy(self, proxy):
        self.calls.append(("apply_proxy", proxy))

    def ping_server(self, server_url):
        if self.ping_error:
            raise AsyncCheckError(self.ping_error)
        self.calls.append(("ping_server", server_url))

    def fetch_ssh_keys(self, url):
        if self.ssh_error:
            raise AsyncCheckError(self.ssh_error)
        return list(self.ssh_keys)

    def fetch_remote_config(self, url):
        self.calls.append(("fetch_remote_config", url))
        return self.remote if self.remote is not None else InstallConfig()

    def default_hostname(self):
        return self.hostname

    def cpu_count(self):
        return 16

    def reboot(self):
        self.rebooted = True


@pytest.fixture
def config():
    return InstallConfig()


@pytest.fixture
def session():
    return WizardSession()


@pytest.fixture
def env():
    return FakeEnvironment()


@pytest.fixture
def renderer():
    return FakeRenderer()


@pytest.fixture
def runner():
    return TaskRunner()


@pytest.fixture
def navigator(config, session, renderer, runner, env):
    return Navigator(config, session, renderer, runner, env)
