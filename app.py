# app.py
from __future__ import annotations
import copy
from typing import List, Optional

from textual.app import App

from config.model import InstallConfig
from environment import SystemEnvironment
from logger import log
from state import WizardSession
from tasks import TaskRunner


class InstallerWizard(App):
    """Interactive installer for a hyper-converged node."""

    CSS = """
    Screen {
        background: $surface;
    }
    .title {
        text-style: bold;
        color: $accent;
        margin-bottom: 1;
    }
    .hidden {
        display: none;
    }
    .panel {
        height: auto;
        margin-bottom: 1;
    }
    .note {
        color: $text-muted;
        margin-top: 1;
    }
    #form {
        margin: 1 2;
    }
    #content {
        margin: 1 2;
    }
    #region_validator {
        margin-top: 1;
    }
    OptionList {
        height: auto;
        max-height: 10;
        border: solid $primary;
    }
    SelectionList {
        height: auto;
        max-height: 10;
        border: solid $primary;
    }
    Input {
        margin-bottom: 0;
    }
    Log {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(
        self,
        config: Optional[InstallConfig] = None,
        env=None,
        already_installed: bool = False,
        preflight_warnings: Optional[List[str]] = None,
    ) -> None:
        super().__init__()
        self.config = config or InstallConfig()
        self.env = env or SystemEnvironment()
        self.session = WizardSession(
            already_installed=already_installed,
            preflight_warnings=list(preflight_warnings or []),
        )
        # Pre-seeded answers become the starting values of the editable fields
        self.session.network = copy.deepcopy(self.config.install.management_interface)
        if self.config.os.ntp_servers:
            self.session.inputs.ntp_servers = ",".join(self.config.os.ntp_servers)
        self.runner = TaskRunner(on_fatal=self._fatal)
        log.info("InstallerWizard started (already installed: %s)", already_installed)

    def on_mount(self) -> None:
        if self.config.install.automatic:
            from screens.install import InstallScreen
            log.info("Automatic install requested, skipping the wizard")
            self.push_screen(InstallScreen())
        else:
            from screens.wizard import WizardScreen
            self.push_screen(WizardScreen())

    def _fatal(self, error: BaseException) -> None:
        log.error("Fatal error: %s", error)
        self.exit(return_code=1, message=str(error))

    def on_unmount(self) -> None:
        self.runner.shutdown()
