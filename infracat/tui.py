"""Textual shell for the dashboard.

The app owns the single event queue: every key press and every worker result
is dispatched on the UI thread, one at a time, through the scene controller.
Workers report back with `call_from_thread`.
"""

import logging

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.css.query import NoMatches
from textual.screen import Screen
from textual.widgets import Static

from infracat.catalog import FieldCatalog
from infracat.config import Config
from infracat.controller import AppState, SceneController
from infracat.events import KeyPressed
from infracat.inventory import TemplateLookup
from infracat.presets import PresetStore
from infracat.runner import EffectRunner
from infracat.view import render

logger = logging.getLogger(__name__)


class DashboardScreen(Screen):
    def compose(self) -> ComposeResult:
        yield Static("", id="dashboard")

    def on_mount(self) -> None:
        self.app.redraw()

    def on_key(self, event) -> None:
        event.prevent_default()
        event.stop()
        self.app.submit_event(KeyPressed(key=event.key, character=event.character))


class InfracatApp(App):
    TITLE = "Infrastructure Catalog"
    ENABLE_COMMAND_PALETTE = False
    CSS = """
    #dashboard {
        padding: 0 1;
    }
    """
    BINDINGS = [
        Binding("ctrl+c", "forward_quit", "Quit", show=False, priority=True),
    ]

    def __init__(self, cfg: Config, catalog: FieldCatalog, presets: PresetStore):
        super().__init__()
        self.cfg = cfg
        self.catalog = catalog
        self.presets = presets
        self.controller = SceneController(catalog, presets, cfg)
        self.app_state = AppState()
        self.runner = EffectRunner(
            cfg,
            sink=self.post_from_worker,
            lookup=TemplateLookup(cfg),
            spawn=self._spawn,
            on_quit=self.exit,
        )

    def on_mount(self) -> None:
        self.push_screen(DashboardScreen())
        state, effects = self.controller.initial()
        self._commit(state, effects)

    # ─────────────────────────────────────────────────────────────────────────
    # EVENT QUEUE
    # ─────────────────────────────────────────────────────────────────────────

    def _spawn(self, fn):
        return self.run_worker(fn, thread=True, exit_on_error=False)

    def post_from_worker(self, event) -> None:
        """Sink for worker threads."""
        self.call_from_thread(self.submit_event, event)

    def submit_event(self, event) -> None:
        logger.debug("Event: %r", event)
        state, effects = self.controller.handle(self.app_state, event)
        self._commit(state, effects)

    def _commit(self, state: AppState, effects) -> None:
        self.app_state = state
        self.redraw()
        self.runner.run(effects)

    def redraw(self) -> None:
        if self.app_state.quitting:
            return
        try:
            widget = self.screen.query_one("#dashboard", Static)
        except NoMatches:
            return
        widget.update(render(self.app_state, self.catalog, self.presets))

    def action_forward_quit(self) -> None:
        self.submit_event(KeyPressed(key="ctrl+c"))
