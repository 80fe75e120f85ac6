# tests/test_preflight.py
import pytest
from unittest.mock import patch

import preflight
from conftest import FAKE_IFACES
from network.interfaces import InterfaceInfo


def _meminfo(tmp_path, kib):
    path = tmp_path / "meminfo"
    path.write_text(f"MemTotal:       {kib} kB\nMemFree:        1024 kB\n")
    return str(path)


def test_cpu_check():
    assert preflight.cpu_check(16) == ""
    assert preflight.cpu_check(4) == "Only 4 CPU cores detected. Minimum 8 required"


def test_memory_check_enough(tmp_path):
    assert preflight.memory_check(_meminfo(tmp_path, 64 << 20)) == ""


def test_memory_check_tolerates_reserved_memory(tmp_path):
    # 32GiB installed, ~31.5GiB visible to the kernel
    assert preflight.memory_check(_meminfo(tmp_path, 33_000_000)) == ""


def test_memory_check_too_little(tmp_path):
    msg = preflight.memory_check(_meminfo(tmp_path, 16 << 20))
    assert msg == "Only 16GiB of memory detected. Minimum 32GiB required"


def test_read_mem_total_missing_field(tmp_path):
    path = tmp_path / "meminfo"
    path.write_text("MemFree: 1 kB\n")
    with pytest.raises(ValueError):
        preflight.read_mem_total_kib(str(path))


def test_kvm_check(tmp_path):
    kvm = tmp_path / "kvm"
    assert "not available" in preflight.kvm_check(str(kvm))
    kvm.write_text("")
    assert preflight.kvm_check(str(kvm)) == ""


def test_network_speed_check():
    slow = InterfaceInfo(name="eno3", operstate="up", link_speed_mbps=1000, mac="", ip_addresses=[])
    with patch("preflight.interfaces.get_interface_info", return_value=slow):
        assert preflight.network_speed_check("eno3") == (
            "Link speed of eno3 is only 1 Gbit. At least 10 Gbit is recommended")
    with patch("preflight.interfaces.get_interface_info", return_value=FAKE_IFACES[0]):
        assert preflight.network_speed_check("eno1") == ""


def test_network_speed_unknown_is_not_a_warning():
    unknown = InterfaceInfo(name="eno1", operstate="down", link_speed_mbps=None, mac="", ip_addresses=[])
    with patch("preflight.interfaces.get_interface_info", return_value=unknown):
        assert preflight.network_speed_warnings(["eno1"]) == []


def test_collect_skips_checks_that_cannot_run():
    def broken():
        raise OSError("/proc/meminfo: permission denied")

    warnings = preflight._collect([lambda: "first", broken, lambda: "", lambda: "last"])
    assert warnings == ["first", "last"]


def test_run_preflight_checks(monkeypatch):
    monkeypatch.setattr(preflight, "cpu_check", lambda: "cpu")
    monkeypatch.setattr(preflight, "memory_check", lambda: "")
    monkeypatch.setattr(preflight, "kvm_check", lambda: "kvm")
    assert preflight.run_preflight_checks() == ["cpu", "kvm"]
