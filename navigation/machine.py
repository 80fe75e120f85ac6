# navigation/machine.py
from __future__ import annotations
from typing import Any, Callable, List, Optional

from config.model import InstallConfig
from logger import log
from navigation import flow
from navigation.panels import (
    PAGE_FIELDS, PAGE_INSTALL, PAGE_NOTES, PAGE_TITLES, REGION_CONTENT, REGION_NOTE,
    REGION_TITLE, REGION_VALIDATOR,
)
from navigation.renderer import Renderer
from state import WizardSession
from tasks import AsyncTask, TaskRunner


def _assign(root: Any, path: str, value: Any) -> None:
    *parents, attr = path.split(".")
    target = root
    for name in parents:
        target = getattr(target, name)
    if not hasattr(target, attr):
        raise AttributeError(f"unknown field '{path}'")
    setattr(target, attr, value)


class Navigator:
    """Drives the wizard: shows pages, applies confirmed values, walks history.

    All mutation of the config and the session happens here, on the UI loop,
    either in a key handler or in a task runner callback.
    """

    def __init__(
        self,
        config: InstallConfig,
        session: WizardSession,
        renderer: Renderer,
        runner: TaskRunner,
        env: Any,
        on_install: Optional[Callable[[], None]] = None,
        on_halt: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.config = config
        self.session = session
        self.renderer = renderer
        self.runner = runner
        self.env = env
        self.on_install = on_install
        self.on_halt = on_halt
        runner.renderer = renderer
        runner.is_active = self.is_active

    def context(self) -> flow.FlowContext:
        return flow.FlowContext(self.config, self.session, self.env)

    def is_active(self, panel: str) -> bool:
        return self.session.panel == panel

    def panels(self) -> List[str]:
        return flow.page_panels(self.session.page, self.context())

    # -- Display -----------------------------------------------------------

    def start(self, page: Optional[str] = None) -> None:
        self.show_page(page or flow.initial_page(self.context()), push=False)

    def show(self, *panels: str) -> None:
        ctx = self.context()
        for panel in panels:
            self.renderer.show_panel(panel, flow.preshow(panel, ctx))

    def close(self, *panels: str) -> None:
        for panel in panels:
            self.runner.invalidate(panel)
            self.renderer.close_panel(panel)

    def show_page(self, page: str, focus: Optional[str] = None, push: bool = True) -> None:
        previous = self.session.page
        if previous and previous != page:
            self.close(*PAGE_FIELDS.get(previous, []))
            if push:
                self.session.push(previous)
            log.info("Page %s -> %s", previous, page)
        self.session.page = page
        ctx = self.context()
        self.renderer.set_content(REGION_TITLE, PAGE_TITLES.get(page, ""))
        self.renderer.set_content(REGION_NOTE, PAGE_NOTES.get(page, ""))
        self.renderer.set_content(REGION_CONTENT, flow.page_content(page, ctx))
        self._set_message("")

        panels = flow.page_panels(page, ctx)
        hidden = [p for p in PAGE_FIELDS.get(page, []) if p not in panels]
        if hidden:
            self.close(*hidden)
        self.show(*panels)
        self._focus(focus if focus in panels else panels[0])

    def _focus(self, panel: str) -> None:
        previous = self.session.panel
        if previous and previous != panel:
            # A result must not land on a panel the operator has left, even briefly
            self.runner.invalidate(previous)
        self.session.panel = panel
        self.renderer.focus_panel(panel)

    def _set_message(self, message: str) -> None:
        self.session.message = message
        self.renderer.set_content(REGION_VALIDATOR, message)

    # -- Keys --------------------------------------------------------------

    def confirm(self, panel: str, value: Any) -> None:
        """Enter/Down on a field."""
        if panel != self.session.panel:
            log.debug("Ignoring confirm on inactive panel %s", panel)
            return
        self._set_message("")
        self.apply(panel, flow.confirm(panel, self.context(), value))

    def up(self, panel: str) -> None:
        """Previous field, or the previous page from the first field."""
        if panel != self.session.panel:
            return
        self.session.disk_confirmed = False
        panels = self.panels()
        index = panels.index(panel) if panel in panels else 0
        if index > 0:
            self.show_page(self.session.page, focus=panels[index - 1])
        else:
            self.back()

    def back(self) -> None:
        """Esc: return to the previous page with its confirmed values."""
        if self.session.page == PAGE_INSTALL:
            return
        previous = self.session.pop()
        if previous is None:
            log.debug("Back on the first page %s ignored", self.session.page)
            return
        self.session.disk_confirmed = False
        self.show_page(previous, push=False)

    # -- Steps ---------------------------------------------------------------

    def _commit(self, step: flow.Step) -> None:
        for path, value in step.config.items():
            _assign(self.config, path, value)
        for path, value in step.session.items():
            _assign(self.session, path, value)
        if self.config.is_witness:
            self.config.install.data_disk = ""
            self.config.install.persistent_partition_size = ""
        if step.config:
            log.debug("Config updated: %s", ", ".join(step.config))

    def apply(self, panel: str, step: flow.Step) -> None:
        self._commit(step)
        for effect in step.effects:
            effect()

        if step.halt:
            log.warning("Halted on %s: %s", panel, step.halt)
            self._set_message(step.halt)
            if self.on_halt:
                self.on_halt(step.halt)
            return
        if step.install:
            self.show_install()
            return
        if step.check:
            self._run_check(panel, step.check)
        elif step.next_page:
            self.show_page(flow.next_page(self.session.page, self.context()))
        elif step.advance:
            self._advance(panel)
        elif step.focus:
            self.show_page(self.session.page, focus=step.focus)
        elif step.config or step.session:
            self.show_page(self.session.page, focus=panel)
        else:
            self._focus(panel)

        if step.message:
            log.info("%s: %s", panel, step.message)
            self._set_message(step.message)
        if step.note:
            self.renderer.set_content(REGION_NOTE, step.note)

    def _advance(self, panel: str) -> None:
        panels = self.panels()
        index = panels.index(panel) if panel in panels else len(panels) - 1
        if index + 1 < len(panels):
            self.show_page(self.session.page, focus=panels[index + 1])
            return
        # Redraw first: the confirmed value may have hidden fields
        self.show_page(self.session.page, focus=panel)
        self.apply(panel, flow.complete(self.session.page, self.context()))

    def show_install(self) -> None:
        self.close(*PAGE_FIELDS.get(self.session.page, []))
        self.session.push(self.session.page)
        self.session.page = PAGE_INSTALL
        self.session.panel = ""
        log.info("Starting installation")
        if self.on_install:
            self.on_install()

    def _run_check(self, panel: str, check: flow.Check) -> AsyncTask:
        def on_done(task: AsyncTask) -> None:
            ctx = self.context()
            if task.succeeded:
                step = check.on_success(ctx, task.result)
            elif check.on_failure is not None:
                step = check.on_failure(ctx, task.error)
            else:
                step = flow.reject(task.error)
            self.apply(panel, step)

        return self.runner.start(check.kind, panel, check.description, check.work, on_done)
