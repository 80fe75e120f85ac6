# config/loader.py
from __future__ import annotations
import os
from pathlib import Path
from typing import Optional

from config.merge import load_yaml
from config.model import InstallConfig
from errors import MergeError
from logger import log

LOCAL_CONFIG_PATH = Path("/etc/hci-installer/config.yaml")
# Present only on a node that already went through a full install
INSTALLED_CONFIG_PATH = Path("/oem/90_hci_install.yaml")


def local_config_path() -> Path:
    override = os.environ.get("HCI_INSTALLER_CONFIG")
    return Path(override) if override else LOCAL_CONFIG_PATH


def read_local_config(path: Optional[Path] = None) -> InstallConfig:
    """Read the pre-seeded answers file; a missing file means an empty config."""
    path = path or local_config_path()
    if not path.exists():
        log.info("No pre-seeded config at %s", path)
        return InstallConfig()
    log.info("Loading pre-seeded config from %s", path)
    try:
        return load_yaml(path.read_bytes())
    except MergeError as e:
        raise MergeError(f"{path}: {e}") from e


def is_already_installed() -> bool:
    return INSTALLED_CONFIG_PATH.exists()


def read_installed_config() -> InstallConfig:
    log.info("Loading installed node config from %s", INSTALLED_CONFIG_PATH)
    return load_yaml(INSTALLED_CONFIG_PATH.read_bytes())
