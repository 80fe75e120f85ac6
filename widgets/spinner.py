# widgets/spinner.py
from __future__ import annotations
from typing import Optional

from rich.markup import escape
from textual.timer import Timer
from textual.widgets import Static

FRAMES = ["⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏"]
INTERVAL = 0.1


class SpinnerLine(Static):
    """One-line progress indicator for a background check."""

    DEFAULT_CSS = """
    SpinnerLine {
        height: auto;
        color: $accent;
    }
    """

    def __init__(self, **kwargs) -> None:
        super().__init__("", **kwargs)
        self.message = ""
        self.running = False
        self._frame = 0
        self._timer: Optional[Timer] = None

    def start(self, message: str) -> None:
        self.message = message
        self.running = True
        self._frame = 0
        if self._timer is None:
            self._timer = self.set_interval(INTERVAL, self._tick)
        self._tick()

    def _tick(self) -> None:
        self.update(f"{FRAMES[self._frame % len(FRAMES)]} {escape(self.message)}")
        self._frame += 1

    def stop(self, is_error: bool, message: str = "") -> None:
        self.running = False
        if message:
            self.message = message
        if self._timer is not None:
            self._timer.stop()
            self._timer = None
        if is_error:
            self.update(f"[red]✗ {escape(self.message)}[/red]")
        else:
            self.update("")
