# tests/test_netplan.py
import stat

import pytest
import yaml
import network.netplan as netplan_mod
from config.model import (
    DEFAULT_BOND_OPTIONS, NETWORK_METHOD_DHCP, NETWORK_METHOD_STATIC,
    NetworkDefinition, NetworkInterface,
)
from network.netplan import BOND_NAME, WIZARD_FILENAME, NetplanManager, management_link, render
from unittest.mock import MagicMock


def _network(method=NETWORK_METHOD_DHCP, vlan_id=0, mtu=0, **static):
    return NetworkDefinition(
        interfaces=[NetworkInterface("eno1", "00:11:22:33:44:55"),
                    NetworkInterface("eno2", "00:11:22:33:44:66")],
        method=method,
        bond_options=dict(DEFAULT_BOND_OPTIONS),
        vlan_id=vlan_id,
        mtu=mtu,
        **static,
    )


def _static(**kw):
    return _network(NETWORK_METHOD_STATIC, ip="192.168.10.5",
                    subnet_mask="255.255.255.0", gateway="192.168.10.1", **kw)


@pytest.fixture
def tmp_netplan(tmp_path):
    """Return a NetplanManager pointed at a temp directory."""
    return NetplanManager(netplan_dir=str(tmp_path))


# -- render ----------------------------------------------------------------

def test_render_dhcp_bond():
    doc = render(_network())["network"]
    assert doc["ethernets"] == {"eno1": {"dhcp4": False}, "eno2": {"dhcp4": False}}
    bond = doc["bonds"][BOND_NAME]
    assert bond["interfaces"] == ["eno1", "eno2"]
    assert bond["dhcp4"] is True
    assert bond["parameters"] == {"mode": "active-backup", "mii-monitor-interval": 100}
    assert "vlans" not in doc


def test_render_static_bond():
    bond = render(_static(mtu=9000))["network"]["bonds"][BOND_NAME]
    assert bond["dhcp4"] is False
    assert bond["addresses"] == ["192.168.10.5/24"]
    assert bond["routes"] == [{"to": "default", "via": "192.168.10.1"}]
    assert bond["mtu"] == 9000


def test_render_static_vlan_carries_address():
    doc = render(_static(vlan_id=100, mtu=1500))["network"]
    bond = doc["bonds"][BOND_NAME]
    vlan = doc["vlans"][f"{BOND_NAME}.100"]
    assert vlan["id"] == 100
    assert vlan["link"] == BOND_NAME
    assert vlan["addresses"] == ["192.168.10.5/24"]
    assert vlan["mtu"] == 1500
    assert "addresses" not in bond
    assert bond["dhcp4"] is False


def test_render_dhcp_vlan():
    doc = render(_network(vlan_id=7))["network"]
    assert doc["vlans"][f"{BOND_NAME}.7"]["dhcp4"] is True
    assert doc["bonds"][BOND_NAME]["dhcp4"] is False


def test_render_rejects_bad_mask():
    with pytest.raises(ValueError):
        render(_network(NETWORK_METHOD_STATIC, ip="10.0.0.2", subnet_mask="255.0.255.0"))


def test_management_link():
    assert management_link(_network()) == BOND_NAME
    assert management_link(_network(vlan_id=42)) == f"{BOND_NAME}.42"


# -- backup / restore --------------------------------------------------------

def test_backup_moves_existing_files_aside(tmp_netplan, tmp_path):
    cfg = tmp_path / "50-cloud-init.yaml"
    cfg.write_text("network: {version: 2}\n")
    tmp_netplan.backup()
    assert not cfg.exists()
    backups = list(tmp_path.glob("*.bak"))
    assert [b.name for b in backups] == ["50-cloud-init.yaml.bak"]


def test_backup_skips_wizard_file(tmp_netplan, tmp_path):
    (tmp_path / WIZARD_FILENAME).write_text("network: {version: 2}\n")
    tmp_netplan.backup()
    assert list(tmp_path.glob("*.bak")) == []


def test_restore_removes_wizard_file(tmp_netplan, tmp_path):
    wizard_file = tmp_path / WIZARD_FILENAME
    wizard_file.write_text("dummy: true\n")
    (tmp_path / "50-cloud-init.yaml.bak").write_text("network: {version: 2}\n")
    tmp_netplan.restore()
    assert not wizard_file.exists()
    assert (tmp_path / "50-cloud-init.yaml").exists()
    assert not (tmp_path / "50-cloud-init.yaml.bak").exists()


def test_restore_without_wizard_file(tmp_netplan):
    tmp_netplan.restore()


# -- write / apply -----------------------------------------------------------

def test_written_yaml_has_correct_permissions(tmp_netplan):
    path = tmp_netplan.write(_static())
    assert path.name == WIZARD_FILENAME
    assert stat.S_IMODE(path.stat().st_mode) == 0o600
    data = yaml.safe_load(path.read_text())
    assert data["network"]["bonds"][BOND_NAME]["addresses"] == ["192.168.10.5/24"]


def test_apply_runs_netplan_and_sets_hostname(tmp_netplan, tmp_path, monkeypatch):
    calls = []

    def fake_run(cmd, **kw):
        calls.append(cmd)
        return MagicMock(returncode=0, stdout="", stderr="")

    monkeypatch.setattr(netplan_mod.subprocess, "run", fake_run)
    (tmp_path / "00-installer.yaml").write_text("network: {version: 2}\n")

    output, error = tmp_netplan.apply(_network(), hostname="node1")
    assert error == ""
    assert calls[0] == ["netplan", "apply"]
    assert calls[1] == ["hostnamectl", "set-hostname", "node1"]
    assert (tmp_path / WIZARD_FILENAME).exists()
    assert (tmp_path / "00-installer.yaml.bak").exists()


def test_apply_reports_netplan_failure(tmp_netplan, tmp_path, monkeypatch):
    monkeypatch.setattr(
        netplan_mod.subprocess, "run",
        lambda cmd, **kw: MagicMock(returncode=1, stdout="", stderr="bond: invalid mode"),
    )
    (tmp_path / "00-installer.yaml").write_text("network: {version: 2}\n")
    output, error = tmp_netplan.apply(_network())
    assert output == "bond: invalid mode"
    assert error == "netplan apply exited with status 1"
    # The previous configuration is put back
    assert (tmp_path / "00-installer.yaml").exists()
    assert not (tmp_path / WIZARD_FILENAME).exists()
    assert list(tmp_path.glob("*.bak")) == []


def test_apply_reports_invalid_static_config(tmp_netplan, tmp_path, monkeypatch):
    run = MagicMock()
    monkeypatch.setattr(netplan_mod.subprocess, "run", run)
    (tmp_path / "00-installer.yaml").write_text("network: {version: 2}\n")
    _, error = tmp_netplan.apply(_network(NETWORK_METHOD_STATIC, ip="10.0.0.2", subnet_mask="bad"))
    assert "mask" in error
    run.assert_not_called()
    assert (tmp_path / "00-installer.yaml").exists()


# -- NTP / DNS ----------------------------------------------------------------

@pytest.fixture
def no_systemctl(monkeypatch):
    calls = []
    monkeypatch.setattr(netplan_mod.subprocess, "run",
                        lambda cmd, **kw: calls.append(cmd) or MagicMock(returncode=0))
    return calls


def test_apply_ntp_writes_config(tmp_netplan, tmp_path, monkeypatch, no_systemctl):
    """apply_ntp() writes a systemd-timesyncd drop-in file."""
    ntp_dir = tmp_path / "timesyncd.conf.d"
    monkeypatch.setattr(netplan_mod, "NTP_CONF_DIR", ntp_dir)
    tmp_netplan.apply_ntp(["0.pool.ntp.org", "time.example.com"])
    content = (ntp_dir / netplan_mod.NTP_CONF_FILENAME).read_text()
    assert content == "[Time]\nNTP=0.pool.ntp.org time.example.com\n"
    assert no_systemctl == [["systemctl", "restart", "systemd-timesyncd"]]


def test_apply_ntp_skips_empty_list(tmp_netplan, tmp_path, monkeypatch, no_systemctl):
    ntp_dir = tmp_path / "timesyncd.conf.d"
    monkeypatch.setattr(netplan_mod, "NTP_CONF_DIR", ntp_dir)
    tmp_netplan.apply_ntp([])
    assert not ntp_dir.exists()
    assert no_systemctl == []


def test_apply_dns_writes_config(tmp_netplan, tmp_path, monkeypatch, no_systemctl):
    dns_dir = tmp_path / "resolved.conf.d"
    monkeypatch.setattr(netplan_mod, "DNS_CONF_DIR", dns_dir)
    tmp_netplan.apply_dns(["8.8.8.8", "1.1.1.1"])
    content = (dns_dir / netplan_mod.DNS_CONF_FILENAME).read_text()
    assert content == "[Resolve]\nDNS=8.8.8.8 1.1.1.1\n"
    assert no_systemctl == [["systemctl", "restart", "systemd-resolved"]]
