# tests/test_checks.py
import socket
import threading

import pytest
import requests
from unittest.mock import patch, MagicMock

from conftest import ED25519_KEY
from errors import AsyncCheckError, MergeError
from network.checks import (
    fetch_remote_config, fetch_ssh_keys, has_default_route, parse_ssh_keys,
    ping_server_url, probe_ntp_server, probe_ntp_servers, request_vip_lease,
)

# Same key type, different public bytes
OTHER_KEY = ED25519_KEY.replace("vXd2 ops@example", "vXd3 admin@example")

ROUTE_HEADER = "Iface\tDestination\tGateway\tFlags\tRefCnt\tUse\tMetric\tMask\tMTU\tWindow\tIRTT\n"


class MockNTPServer:
    """UDP responder on 127.0.0.1 that answers every request with `reply`."""

    def __init__(self, reply=48 * b"\0"):
        self.reply = reply
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.sock.bind(("127.0.0.1", 0))
        self.sock.settimeout(0.2)
        self.address = "127.0.0.1:%d" % self.sock.getsockname()[1]
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._serve, daemon=True)

    def _serve(self):
        while not self._stop.is_set():
            try:
                _, addr = self.sock.recvfrom(48)
            except OSError:
                continue
            if self.reply is not None:
                self.sock.sendto(self.reply, addr)

    def __enter__(self):
        self._thread.start()
        return self

    def __exit__(self, *exc):
        self._stop.set()
        self._thread.join()
        self.sock.close()


def _response(text="", content=b"", status=200):
    resp = MagicMock()
    resp.text = text
    resp.content = content
    resp.status_code = status
    return resp


# -- NTP -------------------------------------------------------------------

def test_probe_ntp_servers_all_reachable():
    with MockNTPServer() as a, MockNTPServer() as b:
        probe_ntp_servers([a.address, b.address], timeout=2)


def test_probe_ntp_servers_empty_list_is_fine():
    probe_ntp_servers([])


def test_probe_ntp_server_timeout():
    with MockNTPServer(reply=None) as silent:
        with pytest.raises(AsyncCheckError, match=silent.address):
            probe_ntp_server(silent.address, timeout=0.2)


def test_probe_ntp_server_short_reply():
    with MockNTPServer(reply=b"\x1c" * 10) as short:
        with pytest.raises(AsyncCheckError, match="short NTP response"):
            probe_ntp_server(short.address, timeout=2)


def test_probe_ntp_servers_reports_every_failure():
    with MockNTPServer() as good, MockNTPServer(reply=None) as bad:
        with pytest.raises(AsyncCheckError) as exc:
            probe_ntp_servers([good.address, bad.address, "error"], timeout=0.2)
    message = str(exc.value)
    assert bad.address in message
    assert "error" in message
    assert good.address not in message


# -- SSH keys --------------------------------------------------------------

def test_parse_two_public_keys():
    keys = parse_ssh_keys(f"# team keys\n{ED25519_KEY}\n\n{OTHER_KEY}\n")
    assert keys == [ED25519_KEY, OTHER_KEY]


def test_parse_invalid_key_reports_line():
    with pytest.raises(AsyncCheckError) as exc:
        parse_ssh_keys("\nooxx\n")
    assert str(exc.value) == "fail to parse on line 2: ooxx"


def test_parse_no_key():
    with pytest.raises(AsyncCheckError, match="no key found"):
        parse_ssh_keys("\n")


def test_fetch_ssh_keys_uses_http_body():
    with patch("network.checks.requests.get", return_value=_response(text=ED25519_KEY + "\n")) as get:
        keys = fetch_ssh_keys("https://keys.example/ops")
    assert keys == [ED25519_KEY]
    assert get.call_args.kwargs["verify"] is True


def test_fetch_ssh_keys_http_error():
    resp = _response()
    resp.raise_for_status.side_effect = requests.HTTPError("404 Client Error")
    with patch("network.checks.requests.get", return_value=resp):
        with pytest.raises(AsyncCheckError, match="404"):
            fetch_ssh_keys("https://keys.example/missing")


# -- Management server / remote config -----------------------------------

def test_ping_skips_certificate_check():
    with patch("network.checks.requests.get", return_value=_response()) as get:
        ping_server_url("https://10.0.0.1:443")
    args, kwargs = get.call_args
    assert args[0] == "https://10.0.0.1:443/ping"
    assert kwargs["verify"] is False


def test_ping_connection_refused():
    with patch("network.checks.requests.get",
               side_effect=requests.ConnectionError("refused")):
        with pytest.raises(AsyncCheckError, match="Failed to fetch https://10.0.0.1:443/ping"):
            ping_server_url("https://10.0.0.1:443")


def test_fetch_remote_config():
    body = b"token: remote\nos:\n  hostname: node7\n"
    with patch("network.checks.requests.get", return_value=_response(content=body)):
        config = fetch_remote_config("http://cfg.example/node.yaml")
    assert config.token == "remote"
    assert config.os.hostname == "node7"


def test_fetch_remote_config_invalid_document():
    with patch("network.checks.requests.get",
               return_value=_response(content=b"install: [broken]\n")):
        with pytest.raises(MergeError, match="Invalid config at http://cfg.example"):
            fetch_remote_config("http://cfg.example/node.yaml")


# -- Routes / DHCP ---------------------------------------------------------

def test_default_route_present(tmp_path):
    route = tmp_path / "route"
    route.write_text(ROUTE_HEADER
                     + "eno1\t00000000\t0101A8C0\t0003\t0\t0\t100\t00000000\t0\t0\t0\n"
                     + "eno1\t0001A8C0\t00000000\t0001\t0\t0\t100\t00FFFFFF\t0\t0\t0\n")
    assert has_default_route(str(route))


def test_default_route_absent(tmp_path):
    route = tmp_path / "route"
    route.write_text(ROUTE_HEADER
                     + "eno1\t0001A8C0\t00000000\t0001\t0\t0\t100\t00FFFFFF\t0\t0\t0\n")
    assert not has_default_route(str(route))


def test_default_route_down_is_ignored(tmp_path):
    route = tmp_path / "route"
    route.write_text(ROUTE_HEADER
                     + "eno1\t00000000\t0101A8C0\t0002\t0\t0\t100\t00000000\t0\t0\t0\n")
    assert not has_default_route(str(route))


def test_default_route_unreadable(tmp_path):
    with pytest.raises(AsyncCheckError, match="Failed to check default route"):
        has_default_route(str(tmp_path / "missing"))


def test_vip_lease_failure_cleans_up():
    calls = []

    def fake_ip(*args):
        calls.append(args)
        raise OSError("ip: command not found")

    with patch("network.checks._ip", side_effect=fake_ip):
        with pytest.raises(AsyncCheckError, match="Requesting VIP through DHCP failed"):
            request_vip_lease("mgmt-bo")
    assert calls[-1] == ("link", "del", "vip-probe")
