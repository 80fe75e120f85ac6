# widgets/multi_select.py
from __future__ import annotations
from typing import List

from textual.binding import Binding
from textual.message import Message
from textual.widgets import SelectionList


class MultiSelect(SelectionList):
    """SelectionList where space toggles and Enter submits the selection."""

    BINDINGS = [Binding("enter", "submit", "Confirm", show=True)]

    class Submitted(Message):
        def __init__(self, multi_select: "MultiSelect", selected: List[str]) -> None:
            super().__init__()
            self.multi_select = multi_select
            self.selected = selected

        @property
        def control(self) -> "MultiSelect":
            return self.multi_select

    def action_submit(self) -> None:
        self.post_message(self.Submitted(self, list(self.selected)))
