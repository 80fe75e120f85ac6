# screens/install.py
from __future__ import annotations
import asyncio
from typing import List, Optional

from rich.markup import escape
from textual.app import ComposeResult
from textual.containers import Vertical
from textual.screen import Screen
from textual.widgets import Footer, Log, Static

from config.model import (
    InstallConfig, Webhook, WEBHOOK_EVENT_FAILED, WEBHOOK_EVENT_STARTED,
    WEBHOOK_EVENT_SUCCEEDED,
)
from errors import WizardError
from installer import (
    installer_env, prepare_install, prepare_webhooks, run_installer, send_webhooks,
    webhook_context, write_install_config,
)
from logger import LOG_FILE, log
from widgets.installer_header import InstallerHeader


class InstallScreen(Screen):
    """Final page: prepare the config, run the installer and stream its output."""

    BINDINGS = [("enter", "reboot", "Reboot")]

    def __init__(self) -> None:
        super().__init__()
        self.finished = False
        self.succeeded = False
        self._task: Optional[asyncio.Task] = None
        self._webhooks: List[Webhook] = []

    def compose(self) -> ComposeResult:
        yield InstallerHeader("Installing", id="header")
        with Vertical(id="content"):
            yield Static("Installing", classes="title")
            yield Log(id="install_log", highlight=False)
            yield Static("", id="status_msg")
        yield Footer()

    def on_mount(self) -> None:
        self._task = asyncio.create_task(self._install())

    def _write(self, line: str) -> None:
        self.query_one("#install_log", Log).write_line(line)

    def _status(self, text: str, color: str = "") -> None:
        markup = f"[{color}]{escape(text)}[/{color}]" if color else escape(text)
        self.query_one("#status_msg", Static).update(markup)

    async def _notify(self, event: str) -> None:
        if self._webhooks:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, send_webhooks, self._webhooks, event)

    async def _install(self) -> None:
        app = self.app
        loop = asyncio.get_running_loop()
        self._write("Preparing installation...")
        try:
            final: InstallConfig = await loop.run_in_executor(
                None, prepare_install, app.config, app.session, app.env
            )
        except (WizardError, OSError) as e:
            log.error("Install preparation failed: %s", e)
            self._finish(False, f"Install failed: {e}")
            return

        try:
            self._webhooks = prepare_webhooks(final.install.webhooks, webhook_context(final))
        except WizardError as e:
            # A broken webhook must not stop the install
            log.error("Invalid webhook: %s", e)
            self._write(f"Invalid webhook: {e}")

        await self._notify(WEBHOOK_EVENT_STARTED)
        try:
            path = await loop.run_in_executor(None, write_install_config, final)
            rc = await run_installer(path, self._write, installer_env(final, app.env.cpu_count()))
        except (WizardError, OSError) as e:
            log.error("Installer failed to run: %s", e)
            await self._notify(WEBHOOK_EVENT_FAILED)
            self._finish(False, f"Install failed: {e}")
            return

        if rc == 0:
            await self._notify(WEBHOOK_EVENT_SUCCEEDED)
            self._finish(True, "Installation completed. Press Enter to reboot.")
        else:
            await self._notify(WEBHOOK_EVENT_FAILED)
            self._finish(False, f"Installer exited with code {rc}")

    def _finish(self, succeeded: bool, message: str) -> None:
        self.finished = True
        self.succeeded = succeeded
        self._write(message)
        self.query_one(InstallerHeader).set_status(
            "Installation completed" if succeeded else "Installation failed")
        if succeeded:
            self._status(message, "green")
        else:
            self._status(f"{message}. See {LOG_FILE}. Press Enter to reboot.",
                         "red")

    def action_reboot(self) -> None:
        if not self.finished:
            return
        self.app.env.reboot()
        self.app.exit(return_code=0 if self.succeeded else 1)
