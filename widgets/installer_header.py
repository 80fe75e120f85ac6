# widgets/installer_header.py
from __future__ import annotations
import pyfiglet
from rich.markup import escape
from textual.widgets import Static

BANNER = pyfiglet.figlet_format("HCI", font="small").rstrip("\n")


class InstallerHeader(Static):
    """Banner with a one-line status shown above every page."""

    DEFAULT_CSS = """
    InstallerHeader {
        color: $accent;
        text-style: bold;
        width: 100%;
        padding: 0 2;
    }
    """

    def __init__(self, status: str = "", **kwargs) -> None:
        super().__init__(self._render_text(status), **kwargs)
        self.status = status

    @staticmethod
    def _render_text(status: str) -> str:
        text = escape(BANNER)
        if status:
            text += f"\n[dim]{escape(status)}[/dim]"
        return text

    def set_status(self, status: str) -> None:
        if status != self.status:
            self.status = status
            self.update(self._render_text(status))
