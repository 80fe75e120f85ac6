# navigation/renderer.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, List, Protocol


@dataclass(frozen=True)
class Option:
    value: str
    text: str


@dataclass
class PanelView:
    """What a panel shows when it is (re)displayed."""
    value: Any = ""
    options: List[Option] = field(default_factory=list)


class Renderer(Protocol):
    """Terminal primitives the navigator drives. Failures raise ConstructionError."""

    def show_panel(self, panel: str, view: PanelView) -> None: ...

    def close_panel(self, panel: str) -> None: ...

    def focus_panel(self, panel: str) -> None: ...

    def set_content(self, region: str, text: str) -> None: ...

    def start_spinner(self, region: str, message: str) -> None: ...

    def stop_spinner(self, region: str, is_error: bool, message: str) -> None: ...
