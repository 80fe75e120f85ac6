# tests/test_config.py
import pytest
import yaml

import config.loader as loader_mod
from config.loader import read_local_config
from config.merge import from_dict, load_yaml, merge, sanitized, to_dict, to_yaml
from config.model import (
    InstallConfig, NetworkDefinition, NetworkInterface, ROLE_WITNESS, SANITIZE_MASK,
    Webhook, Wifi, calculate_cpu_reserved_millicpu, kubelet_args,
)
from errors import InstallError, MergeError


def test_merge_fills_only_unset_scalars():
    base = InstallConfig(token="base-token")
    base.install.device = "/dev/sda"
    incoming = InstallConfig(token="remote-token", server_url="https://10.0.0.1:443")
    incoming.install.device = "/dev/sdb"
    incoming.install.data_disk = "/dev/sdc"

    merge(base, incoming)

    assert base.token == "base-token"
    assert base.server_url == "https://10.0.0.1:443"
    assert base.install.device == "/dev/sda"
    assert base.install.data_disk == "/dev/sdc"


def test_merge_concatenates_lists():
    base = InstallConfig()
    base.os.ssh_authorized_keys = ["key-a"]
    base.os.ntp_servers = ["ntp1"]
    incoming = InstallConfig()
    incoming.os.ssh_authorized_keys = ["key-b"]
    incoming.install.webhooks = [Webhook(event="STARTED", url="http://hook")]

    merge(base, incoming)

    assert base.os.ssh_authorized_keys == ["key-a", "key-b"]
    assert base.os.ntp_servers == ["ntp1"]
    assert base.install.webhooks[0].url == "http://hook"


def test_merge_adds_missing_dict_keys():
    base = InstallConfig()
    base.os.environment = {"HTTP_PROXY": "http://proxy:3128"}
    incoming = InstallConfig()
    incoming.os.environment = {"HTTP_PROXY": "http://other:3128", "NO_PROXY": "localhost"}

    merge(base, incoming)

    assert base.os.environment == {"HTTP_PROXY": "http://proxy:3128", "NO_PROXY": "localhost"}


def test_merge_recurses_into_network():
    base = InstallConfig()
    base.install.management_interface.method = "static"
    incoming = InstallConfig()
    incoming.install.management_interface = NetworkDefinition(
        interfaces=[NetworkInterface(name="eno1")], method="dhcp", mtu=9000)

    merge(base, incoming)

    net = base.install.management_interface
    assert net.method == "static"
    assert net.mtu == 9000
    assert net.interface_names() == ["eno1"]


def test_merge_does_not_alias_incoming():
    base = InstallConfig()
    incoming = InstallConfig()
    incoming.os.labels = {"zone": "a"}
    merge(base, incoming)
    incoming.os.labels["zone"] = "b"
    assert base.os.labels == {"zone": "a"}


def test_merge_rejects_mismatched_types():
    with pytest.raises(MergeError):
        merge(InstallConfig(), NetworkDefinition())


def test_sanitized_masks_secrets_without_touching_original():
    config = InstallConfig(token="secret")
    config.os.password = "p4ss"
    config.os.wifi = [Wifi(name="lab", passphrase="wifi-pass")]

    masked = sanitized(config)

    assert masked.token == SANITIZE_MASK
    assert masked.os.password == SANITIZE_MASK
    assert masked.os.wifi[0].passphrase == SANITIZE_MASK
    assert config.token == "secret"
    assert config.os.wifi[0].passphrase == "wifi-pass"


def test_to_yaml_uses_camel_case_and_omits_unset():
    config = InstallConfig(server_url="https://10.0.0.1:443")
    config.install.skip_checks = True
    config.install.data_disk = "/dev/sdb"
    config.install.management_interface.interfaces = [NetworkInterface(name="eno1")]

    data = yaml.safe_load(to_yaml(config))

    assert data["serverUrl"] == "https://10.0.0.1:443"
    assert data["install"]["skipchecks"] is True
    assert data["install"]["dataDisk"] == "/dev/sdb"
    assert data["install"]["managementInterface"]["interfaces"] == [{"name": "eno1"}]
    assert "token" not in data
    assert "os" not in data


def test_to_yaml_sanitizes_by_default():
    config = InstallConfig(token="secret")
    assert "secret" not in to_yaml(config)
    assert "secret" in to_yaml(config, sanitize=False)


def test_load_yaml_reads_nested_document():
    config = load_yaml("""
serverUrl: https://10.0.0.1:443
token: abc
os:
  hostname: node1
  sshAuthorizedKeys: [key-a]
  environment:
    HTTP_PROXY: http://proxy:3128
install:
  mode: join
  skipchecks: true
  managementInterface:
    method: static
    ip: 10.0.0.5
    vlanId: 100
    bondOptions:
      mode: active-backup
    interfaces:
      - name: eno1
        hwAddr: "00:11:22:33:44:55"
  webhooks:
    - event: STARTED
      url: http://hook
      headers:
        X-Test: [one, two]
  somethingNew: ignored
""")
    assert config.server_url == "https://10.0.0.1:443"
    assert config.os.hostname == "node1"
    assert config.os.ssh_authorized_keys == ["key-a"]
    assert config.install.skip_checks is True
    net = config.install.management_interface
    assert net.vlan_id == 100
    assert net.interfaces[0].hw_addr == "00:11:22:33:44:55"
    assert net.bond_options == {"mode": "active-backup"}
    assert config.install.webhooks[0].headers == {"X-Test": ["one", "two"]}


def test_load_yaml_empty_document_is_empty_config():
    assert load_yaml("") == InstallConfig()


@pytest.mark.parametrize("raw", [
    "install: [1, 2]",
    "install:\n  skipchecks: maybe",
    "install:\n  managementInterface:\n    mtu: big",
    "os:\n  sshAuthorizedKeys: key-a",
    "- just\n- a list",
    "key: [unclosed",
])
def test_load_yaml_rejects_bad_documents(raw):
    with pytest.raises(MergeError):
        load_yaml(raw)


def test_dict_round_trip_keeps_values():
    config = InstallConfig(token="t", sans=["a.example"])
    config.install.wipe_disks_list = ["/dev/sdc"]
    assert from_dict(InstallConfig, to_dict(config)) == config


def test_read_local_config_missing_file(tmp_path):
    assert read_local_config(tmp_path / "absent.yaml") == InstallConfig()


def test_read_local_config_env_override(tmp_path, monkeypatch):
    path = tmp_path / "seed.yaml"
    path.write_text("token: seeded\n")
    monkeypatch.setenv("HCI_INSTALLER_CONFIG", str(path))
    assert loader_mod.local_config_path() == path
    assert read_local_config().token == "seeded"


def test_read_local_config_reports_path_on_error(tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text("install: [oops]\n")
    with pytest.raises(MergeError, match="broken.yaml"):
        read_local_config(path)


def test_is_already_installed(tmp_path, monkeypatch):
    marker = tmp_path / "90_hci_install.yaml"
    monkeypatch.setattr(loader_mod, "INSTALLED_CONFIG_PATH", marker)
    assert not loader_mod.is_already_installed()
    marker.write_text("install:\n  mode: create\n")
    assert loader_mod.is_already_installed()
    assert loader_mod.read_installed_config().install.mode == "create"


# -- Model -------------------------------------------------------------------

def test_witness_has_no_data_partition():
    config = InstallConfig()
    assert config.should_create_data_partition_on_os_disk()
    assert config.should_mount_data_partition()
    config.install.role = ROLE_WITNESS
    assert not config.should_create_data_partition_on_os_disk()
    assert not config.should_mount_data_partition()


def test_mbr_without_data_disk_skips_data_partition():
    config = InstallConfig()
    config.install.force_mbr = True
    assert not config.should_create_data_partition_on_os_disk()
    assert not config.should_mount_data_partition()
    config.install.data_disk = "/dev/sdb"
    assert config.should_mount_data_partition()


@pytest.mark.parametrize("cores,expected", [
    (0, 0), (1, 460), (2, 470), (4, 480), (8, 490), (16, 510),
])
def test_cpu_reservation(cores, expected):
    assert calculate_cpu_reserved_millicpu(cores) == expected


def test_cpu_reservation_truncates():
    # 0.06 + 0.01 is just below 0.07
    assert calculate_cpu_reserved_millicpu(2, max_pods=110) == 69


def test_kubelet_args():
    config = InstallConfig()
    config.os.labels = {"zone": "a", "rack": "r1"}
    args = kubelet_args(config, 8)
    assert args[0] == "max-pods=200"
    assert "node-labels=rack=r1,zone=a" in args
    assert "system-reserved=cpu=392m" in args
    assert "kube-reserved=cpu=588m" in args
    assert not any("register-with-taints" in a for a in args)

    config.install.role = ROLE_WITNESS
    assert any(a.startswith("register-with-taints=") for a in kubelet_args(config, 8))


@pytest.mark.parametrize("labels", [
    {"bad label": "a"},
    {"zone": "not valid!"},
    {"example.com/": "a"},
])
def test_kubelet_args_rejects_invalid_labels(labels):
    config = InstallConfig()
    config.os.labels = labels
    with pytest.raises(InstallError):
        kubelet_args(config, 8)
