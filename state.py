# state.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional

from config.model import DEFAULT_NTP_SERVERS, InstallConfig, NetworkDefinition


@dataclass
class UserInput:
    """Raw operator answers that are not stored verbatim in InstallConfig."""
    server_url: str = ""
    ssh_key_url: str = ""
    password: str = ""
    password_confirm: str = ""
    address: str = ""
    dns_servers: str = ""
    ntp_servers: str = DEFAULT_NTP_SERVERS
    proxy: str = ""
    vip_method: str = ""


@dataclass
class WizardSession:
    # Navigation
    page: str = ""
    panel: str = ""
    history: List[str] = field(default_factory=list)
    message: str = ""

    # Flags set once at start-up
    already_installed: bool = False
    preflight_warnings: List[str] = field(default_factory=list)

    # Flags toggled by panels
    install_mode_only: bool = False
    disk_confirmed: bool = False
    ntp_checked: bool = False
    ssh_key_checked: bool = False

    inputs: UserInput = field(default_factory=UserInput)
    # Interface settings being edited; committed to the config once applied
    network: NetworkDefinition = field(default_factory=NetworkDefinition)
    remote_config: Optional[InstallConfig] = None

    def push(self, page: str) -> None:
        if page and (not self.history or self.history[-1] != page):
            self.history.append(page)

    def pop(self) -> Optional[str]:
        return self.history.pop() if self.history else None

