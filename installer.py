# installer.py
"""
Final install step: turn the accumulated answers into the config the
installer binary consumes, run it, and report progress to webhooks.
"""
from __future__ import annotations
import asyncio
import os
import random
import string
from pathlib import Path
from typing import Callable, Dict, List, Optional

import requests

from config.merge import deep_copy, merge, to_yaml
from config.model import (
    DEFAULT_BOND_OPTIONS, DEFAULT_TTY, InstallConfig, MODE_CREATE, MODES,
    NETWORK_METHOD_DHCP, SCHEME_VERSION, VIP_MODE_DHCP, WEBHOOK_EVENT_FAILED,
    WEBHOOK_EVENT_STARTED, WEBHOOK_EVENT_SUCCEEDED, Webhook, kubelet_args,
    node_labels,
)
from errors import InputValidationError, InstallError, MergeError
from logger import log
from network.checks import ERR_NO_DEFAULT_ROUTE
from preflight import network_speed_warnings
from state import WizardSession
from validators import format_server_url

INSTALLER_BIN = "/usr/sbin/hci-install"
CONFIG_OUTPUT_PATH = Path("/tmp/hci-install.yaml")
WEBHOOK_TIMEOUT = 15.0
WEBHOOK_EVENTS = (WEBHOOK_EVENT_STARTED, WEBHOOK_EVENT_SUCCEEDED, WEBHOOK_EVENT_FAILED)
WEBHOOK_METHODS = ("GET", "POST", "PUT")


def generate_hostname() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=5))
    return f"hci-{suffix}"


def validate_install_config(config: InstallConfig, already_installed: bool = False) -> None:
    inst = config.install
    if inst.mode not in MODES:
        raise InstallError(f"unknown install mode '{inst.mode}'")
    if not already_installed and not inst.device:
        raise InstallError("no installation disk selected")
    if config.is_witness and (inst.data_disk or inst.persistent_partition_size):
        raise InstallError("witness node must not define a data disk or persistent size")
    if inst.mode == MODE_CREATE and not inst.vip:
        raise InstallError("VIP is required to create a cluster")
    node_labels(config)


def prepare_install(config: InstallConfig, session: WizardSession, env) -> InstallConfig:
    """Build the final config from the wizard answers. Runs on a worker thread.

    The wizard config is not touched; a finished copy is returned.
    """
    final = deep_copy(config)
    inst = final.install
    net = inst.management_interface

    remote = session.remote_config
    if remote is None and inst.config_url:
        log.info("Fetching remote config from %s", inst.config_url)
        remote = env.fetch_remote_config(inst.config_url)
    if remote is not None:
        try:
            merge(final, remote)
        except MergeError as e:
            raise InstallError(f"fail to merge config: {e}") from e
        log.info("Merged remote config:\n%s", to_yaml(final))

    net.method = net.method.lower()
    inst.vip_mode = inst.vip_mode.lower()
    if net.method == NETWORK_METHOD_DHCP:
        net.clear_static()
    # A merged config may carry data disk fields the witness role does not use
    if final.is_witness:
        inst.data_disk = ""
        inst.persistent_partition_size = ""
    if not net.bond_options:
        net.bond_options = dict(DEFAULT_BOND_OPTIONS)
    for iface in net.interfaces:
        if not iface.hw_addr:
            iface.hw_addr = env.hw_addr(iface.name)

    install_only = session.install_mode_only
    if inst.automatic and net.method == NETWORK_METHOD_DHCP and not install_only:
        output, error = env.apply_network(net, final.os.hostname)
        if error:
            raise InstallError(f"Can't apply networks: {error}\n{output}")
        env.wait_for_dhcp(net)

    if inst.mode == MODE_CREATE and inst.vip_mode == VIP_MODE_DHCP and not inst.vip:
        inst.vip, inst.vip_hw_addr = env.request_vip(net, inst.vip_hw_addr)

    if not final.os.hostname:
        final.os.hostname = env.default_hostname() or generate_hostname()
    if not inst.tty:
        inst.tty = DEFAULT_TTY
    if final.server_url:
        try:
            final.server_url = format_server_url(final.server_url)
        except InputValidationError as e:
            raise InstallError(f"server url invalid: {e}") from e

    if not session.already_installed:
        warnings = network_speed_warnings(net.interface_names())
        if warnings and not inst.skip_checks:
            raise InstallError("\n".join(warnings))

    if not install_only and net.method == NETWORK_METHOD_DHCP and not env.has_default_route():
        raise InstallError(ERR_NO_DEFAULT_ROUTE)

    # The installer only understands --force-gpt
    inst.force_gpt = not inst.force_mbr
    if inst.data_disk == inst.device:
        inst.data_disk = ""
    if not final.should_create_data_partition_on_os_disk():
        inst.persistent_partition_size = ""
    if session.already_installed:
        inst.no_format = True
    if not final.scheme_version:
        final.scheme_version = SCHEME_VERSION

    validate_install_config(final, session.already_installed)
    log.info("Final install config:\n%s", to_yaml(final))
    return final


def write_install_config(config: InstallConfig, path: Optional[Path] = None) -> Path:
    path = Path(path or CONFIG_OUTPUT_PATH)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(to_yaml(config, sanitize=False))
    path.chmod(0o600)
    log.info("Install config written to %s", path)
    return path


def installer_env(config: InstallConfig, core_num: int) -> Dict[str, str]:
    return {"HCI_KUBELET_ARGS": " ".join(kubelet_args(config, core_num))}


async def run_installer(
    config_path: Path,
    on_line: Callable[[str], None],
    extra_env: Optional[Dict[str, str]] = None,
) -> int:
    """Run the installer binary, streaming merged stdout/stderr line by line."""
    env = dict(os.environ)
    env.update(extra_env or {})
    log.info("Running %s --config %s", INSTALLER_BIN, config_path)
    try:
        proc = await asyncio.create_subprocess_exec(
            INSTALLER_BIN, "--config", str(config_path),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            env=env,
        )
    except OSError as e:
        raise InstallError(f"cannot start installer: {e}") from e
    async for raw in proc.stdout:
        line = raw.decode(errors="replace").rstrip()
        log.debug("installer: %s", line)
        on_line(line)
    rc = await proc.wait()
    log.info("Installer exited with %s", rc)
    return rc


# -- Webhooks --------------------------------------------------------------

def webhook_context(config: InstallConfig) -> Dict[str, str]:
    net = config.install.management_interface
    return {
        "hostname": config.os.hostname,
        "mac_address": net.interfaces[0].hw_addr if net.interfaces else "",
        "ip_address": net.ip,
        "mode": config.install.mode,
    }


def prepare_webhooks(webhooks: List[Webhook], context: Dict[str, str]) -> List[Webhook]:
    """Validate webhooks and render `${name}` placeholders in url and payload."""
    prepared = []
    for hook in webhooks:
        if hook.event not in WEBHOOK_EVENTS:
            raise InstallError(f"unknown webhook event '{hook.event}'")
        method = (hook.method or "GET").upper()
        if method not in WEBHOOK_METHODS:
            raise InstallError(f"unsupported webhook method '{hook.method}'")
        try:
            url = string.Template(hook.url).substitute(context)
            payload = string.Template(hook.payload).substitute(context)
        except (KeyError, ValueError) as e:
            raise InstallError(f"cannot render webhook {hook.url}: {e}") from e
        prepared.append(Webhook(
            event=hook.event, method=method, url=url, payload=payload,
            headers=dict(hook.headers), insecure=hook.insecure, basic_auth=hook.basic_auth,
        ))
    return prepared


def send_webhooks(webhooks: List[Webhook], event: str) -> None:
    """Best effort: failures are logged, never raised."""
    for hook in webhooks:
        if hook.event != event:
            continue
        headers = {k: ", ".join(v) for k, v in hook.headers.items()}
        auth = None
        if hook.basic_auth.user:
            auth = (hook.basic_auth.user, hook.basic_auth.password)
        try:
            resp = requests.request(
                hook.method, hook.url, data=hook.payload or None, headers=headers,
                auth=auth, verify=not hook.insecure, timeout=WEBHOOK_TIMEOUT,
            )
            log.info("Webhook %s %s -> %s", hook.method, hook.url, resp.status_code)
        except requests.RequestException as e:
            log.warning("Webhook %s %s failed: %s", hook.method, hook.url, e)
