# screens/wizard.py
from __future__ import annotations
from typing import Dict, Optional

from rich.markup import escape
from textual.app import ComposeResult
from textual.containers import Vertical, VerticalScroll
from textual.css.query import NoMatches
from textual.screen import Screen
from textual.widget import Widget
from textual.widgets import Footer, Input, Label, OptionList, Static
from textual.widgets.option_list import Option as ListOption
from textual.widgets.selection_list import Selection

from errors import ConstructionError
from logger import log
from navigation.machine import Navigator
from navigation.panels import (
    KIND_CHOICE, KIND_MULTI, KIND_PASSWORD, PANELS, REGION_CONTENT, REGION_NOTE,
    REGION_TITLE, REGION_VALIDATOR,
)
from navigation.renderer import PanelView
from widgets.installer_header import InstallerHeader
from widgets.multi_select import MultiSelect
from widgets.spinner import SpinnerLine

HALT_DELAY = 5.0


def _field_id(panel: str) -> str:
    return f"field_{panel}"


def _panel_from_id(widget_id: Optional[str]) -> str:
    return (widget_id or "").replace("field_", "", 1)


class WizardScreen(Screen):
    """Every wizard panel, composed once and shown or hidden by the navigator."""

    BINDINGS = [
        ("escape", "back", "Back"),
        ("up", "previous_field", "Previous"),
        ("shift+tab", "previous_field", "Previous"),
        ("down", "next_field", "Next"),
        ("tab", "next_field", "Next"),
    ]

    def __init__(self) -> None:
        super().__init__()
        self.navigator: Optional[Navigator] = None
        self._spinners: Dict[str, SpinnerLine] = {}

    def compose(self) -> ComposeResult:
        yield InstallerHeader(id="header")
        with VerticalScroll(id="form"):
            yield Static("", id=f"region_{REGION_TITLE}", classes="title")
            yield Static("", id=f"region_{REGION_CONTENT}")
            for spec in PANELS.values():
                with Vertical(id=f"panel_{spec.name}", classes="panel hidden"):
                    yield Label(spec.label)
                    if spec.kind == KIND_CHOICE:
                        yield OptionList(id=_field_id(spec.name))
                    elif spec.kind == KIND_MULTI:
                        yield MultiSelect(id=_field_id(spec.name))
                    else:
                        yield Input(id=_field_id(spec.name), password=spec.kind == KIND_PASSWORD)
                    yield SpinnerLine(id=f"spinner_{spec.name}")
            yield Static("", id=f"region_{REGION_VALIDATOR}")
            yield Static("", id=f"region_{REGION_NOTE}", classes="note")
        yield Footer()

    def on_mount(self) -> None:
        app = self.app
        if app.session.already_installed:
            self.query_one(InstallerHeader).set_status(
                "Existing installation found, the data disk will be kept")
        self.navigator = Navigator(
            app.config, app.session, self, app.runner, app.env,
            on_install=self._start_install, on_halt=self._halt,
        )
        self.navigator.start()

    # -- Renderer ------------------------------------------------------------

    def _query(self, selector: str, expect_type=Widget):
        try:
            return self.query_one(selector, expect_type)
        except NoMatches as e:
            raise ConstructionError(f"missing widget {selector}") from e

    def show_panel(self, panel: str, view: PanelView) -> None:
        container = self._query(f"#panel_{panel}")
        field = self._query(f"#{_field_id(panel)}")
        if isinstance(field, MultiSelect):
            field.clear_options()
            chosen = set(view.value or [])
            field.add_options([Selection(o.text, o.value, o.value in chosen) for o in view.options])
        elif isinstance(field, OptionList):
            field.clear_options()
            field.add_options([ListOption(escape(o.text), id=o.value) for o in view.options])
            values = [o.value for o in view.options]
            if view.value in values:
                field.highlighted = values.index(view.value)
        else:
            field.value = str(view.value or "")
        container.remove_class("hidden")

    def close_panel(self, panel: str) -> None:
        self._query(f"#panel_{panel}").add_class("hidden")

    def focus_panel(self, panel: str) -> None:
        field = self._query(f"#{_field_id(panel)}")
        field.focus()
        field.scroll_visible()

    def set_content(self, region: str, text: str) -> None:
        widget = self._query(f"#region_{region}", Static)
        if region == REGION_VALIDATOR and text:
            widget.update(f"[red]{escape(text)}[/red]")
        else:
            widget.update(escape(text))

    def start_spinner(self, region: str, message: str) -> None:
        self._query(f"#spinner_{region}", SpinnerLine).start(message)

    def stop_spinner(self, region: str, is_error: bool, message: str) -> None:
        self._query(f"#spinner_{region}", SpinnerLine).stop(is_error, message)

    # -- Keys ----------------------------------------------------------------

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self.navigator.confirm(_panel_from_id(event.input.id), event.value)

    def on_option_list_option_selected(self, event: OptionList.OptionSelected) -> None:
        if isinstance(event.option_list, MultiSelect):
            return
        self.navigator.confirm(_panel_from_id(event.option_list.id), event.option.id)

    def on_multi_select_submitted(self, event: MultiSelect.Submitted) -> None:
        self.navigator.confirm(_panel_from_id(event.multi_select.id), event.selected)

    def _focused_field(self) -> Optional[Widget]:
        focused = self.focused
        if focused is None or not (focused.id or "").startswith("field_"):
            return None
        return focused

    def action_next_field(self) -> None:
        field = self._focused_field()
        if isinstance(field, Input):
            self.navigator.confirm(_panel_from_id(field.id), field.value)
        elif isinstance(field, MultiSelect):
            field.action_submit()
        elif isinstance(field, OptionList) and field.highlighted is not None:
            option = field.get_option_at_index(field.highlighted)
            self.navigator.confirm(_panel_from_id(field.id), option.id)

    def action_previous_field(self) -> None:
        field = self._focused_field()
        if field is not None:
            self.navigator.up(_panel_from_id(field.id))

    def action_back(self) -> None:
        self.navigator.back()

    # -- Exits ---------------------------------------------------------------

    def _start_install(self) -> None:
        from screens.install import InstallScreen
        self.app.switch_screen(InstallScreen())

    def _halt(self, message: str) -> None:
        log.warning("Wizard halted: %s", message)
        self.set_timer(HALT_DELAY, self._reboot)

    def _reboot(self) -> None:
        self.app.env.reboot()
        self.app.exit(return_code=0, message="Installation halted")
