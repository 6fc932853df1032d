"""
Scene controller

The whole UI is one immutable AppState. `SceneController.handle` maps
(state, event) to (new state, effects); it performs no I/O. Effects are
carried out by the runner, which feeds their results back in as events.

Scenes: Launcher (initial), CreateForm, EditTable, EditForm. While a
provisioning pipeline runs, the Busy overlay swallows every key except quit.
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType

from infracat.catalog import FieldCatalog
from infracat.config import Config
from infracat.environment import EnvironmentStatus
from infracat.errors import FormValidationError
from infracat.events import (
    ApplyDeployment, CreateDeployment, DeploymentsLoaded, FetchOptions, KeyPressed, LoadDeployments,
    LoadVariables, OperationFinished, OperationProgress, OptionsFetched, Quit, SaveFinished, SaveVariables,
    VariablesLoaded,
)
from infracat.form import FetchRequest, FormEngine
from infracat.presets import PresetStore
from infracat.registry import DeploymentSummary
from infracat.scaffold import identity_from_values
from infracat import tfvars

logger = logging.getLogger(__name__)

QUIT_KEYS = ("q", "escape", "ctrl+c")
NEXT_KEYS = ("tab", "down")
PREV_KEYS = ("shift+tab", "up")


class Scene(str, Enum):
    LAUNCHER = "launcher"
    CREATE_FORM = "create_form"
    EDIT_TABLE = "edit_table"
    EDIT_FORM = "edit_form"


@dataclass(frozen=True)
class AppState:
    scene: Scene = Scene.LAUNCHER
    form: FormEngine | None = None
    preset_index: int = 0
    deployments: tuple[DeploymentSummary, ...] = ()
    selected: int = 0
    status: str = ""
    busy: bool = False
    busy_message: str = ""
    edit_name: str = ""
    edit_path: str = ""
    # Latest request token per dependent field; results with other tokens are stale
    fetch_tokens: Mapping = field(default_factory=lambda: MappingProxyType({}))
    fetch_serial: int = 0
    # Field values of the save in flight, keyed like the form
    saving: Mapping = field(default_factory=lambda: MappingProxyType({}))
    environment: EnvironmentStatus | None = None
    quitting: bool = False

    @property
    def selected_deployment(self) -> DeploymentSummary | None:
        if 0 <= self.selected < len(self.deployments):
            return self.deployments[self.selected]
        return None

    @property
    def fetching(self) -> bool:
        return bool(self.fetch_tokens)


Result = tuple[AppState, list]


class SceneController:
    def __init__(self, catalog: FieldCatalog, presets: PresetStore, cfg: Config):
        self.catalog = catalog
        self.presets = presets
        self.cfg = cfg

    def initial(self) -> Result:
        return AppState(status="Loading deployments..."), [LoadDeployments()]

    def handle(self, state: AppState, event) -> Result:
        if isinstance(event, KeyPressed):
            if state.busy:
                return self._busy_key(state, event)
            handler = {
                Scene.LAUNCHER: self._launcher_key,
                Scene.CREATE_FORM: self._create_key,
                Scene.EDIT_TABLE: self._edit_table_key,
                Scene.EDIT_FORM: self._edit_form_key,
            }[state.scene]
            return handler(state, event)
        if isinstance(event, OptionsFetched):
            return self._options_fetched(state, event), []
        if isinstance(event, DeploymentsLoaded):
            return self._deployments_loaded(state, event), []
        if isinstance(event, VariablesLoaded):
            return self._variables_loaded(state, event), []
        if isinstance(event, OperationProgress):
            return replace(state, busy_message=event.message), []
        if isinstance(event, OperationFinished):
            return self._operation_finished(state, event)
        if isinstance(event, SaveFinished):
            return self._save_finished(state, event), []
        logger.debug("Ignoring unexpected event %r", event)
        return state, []

    # ─────────────────────────────────────────────────────────────────────────
    # BUSY OVERLAY
    # ─────────────────────────────────────────────────────────────────────────

    def _busy_key(self, state: AppState, event: KeyPressed) -> Result:
        if event.key in QUIT_KEYS:
            return replace(state, quitting=True), [Quit()]
        return state, []

    def _start_operation(self, state: AppState, message: str, effect) -> Result:
        return replace(state, busy=True, busy_message=message, status=""), [effect]

    def _operation_finished(self, state: AppState, event: OperationFinished) -> Result:
        state = replace(state, busy=False, busy_message="", status=event.message)
        if event.ok and state.scene == Scene.CREATE_FORM:
            state = self._close_form(state)
        # Lifecycle records changed whatever the outcome
        return state, [LoadDeployments()]

    # ─────────────────────────────────────────────────────────────────────────
    # LAUNCHER
    # ─────────────────────────────────────────────────────────────────────────

    def _launcher_key(self, state: AppState, event: KeyPressed) -> Result:
        key = event.key
        if key in ("up", "k"):
            return replace(state, selected=max(0, state.selected - 1)), []
        if key in ("down", "j"):
            return replace(state, selected=max(0, min(len(state.deployments) - 1, state.selected + 1))), []
        if key == "n":
            return self._open_create_form(state)
        if key in ("r", "R"):
            return replace(state, status="Refreshing deployments..."), [LoadDeployments(announce=True)]
        if key in QUIT_KEYS:
            return replace(state, quitting=True), [Quit()]

        dep = state.selected_deployment
        if dep is None:
            if key in ("enter", "v", "e", "a"):
                return replace(state, status="No deployment selected."), []
            return state, []
        if key in ("enter", "v"):
            return replace(state, scene=Scene.EDIT_TABLE, status=""), []
        if key == "e":
            return self._request_edit(state, dep)
        if key == "a":
            return self._start_operation(
                state, f"Applying '{dep.name}'...", ApplyDeployment(path=dep.path),
            )
        return state, []

    def _request_edit(self, state: AppState, dep: DeploymentSummary) -> Result:
        path = os.path.join(dep.path, tfvars.TFVARS_FILE)
        return replace(state, status=f"Loading {dep.name}..."), [LoadVariables(name=dep.name, path=path)]

    def _deployments_loaded(self, state: AppState, event: DeploymentsLoaded) -> AppState:
        if event.error:
            return replace(state, status=f"Could not list deployments: {event.error}")
        selected = max(0, min(state.selected, len(event.deployments) - 1))
        state = replace(
            state, deployments=tuple(event.deployments), selected=selected,
            environment=event.environment or state.environment,
        )
        if event.announce:
            state = replace(state, status="Deployments refreshed!")
        elif state.status == "Loading deployments...":
            state = replace(state, status="")
        return state

    # ─────────────────────────────────────────────────────────────────────────
    # EDIT TABLE
    # ─────────────────────────────────────────────────────────────────────────

    def _edit_table_key(self, state: AppState, event: KeyPressed) -> Result:
        key = event.key
        if key in ("escape", "q"):
            return replace(state, scene=Scene.LAUNCHER), []
        dep = state.selected_deployment
        if key in ("e", "enter") and dep is not None:
            return self._request_edit(state, dep)
        return state, []

    # ─────────────────────────────────────────────────────────────────────────
    # FORMS (shared)
    # ─────────────────────────────────────────────────────────────────────────

    def _close_form(self, state: AppState) -> AppState:
        # Dropping the tokens makes any in-flight lookup result stale
        return replace(
            state, scene=Scene.LAUNCHER, form=None, edit_name="", edit_path="",
            fetch_tokens=MappingProxyType({}), saving=MappingProxyType({}),
        )

    def _request_fetch(self, state: AppState, request: FetchRequest | None) -> Result:
        if request is None:
            return state, []
        token = state.fetch_serial + 1
        tokens = dict(state.fetch_tokens)
        tokens[request.key] = token
        state = replace(
            state, fetch_serial=token, fetch_tokens=MappingProxyType(tokens),
            status=f"Fetching {self.catalog.label(request.key)} choices for {request.trigger_value}...",
        )
        return state, [FetchOptions(key=request.key, trigger_value=request.trigger_value, token=token)]

    def _options_fetched(self, state: AppState, event: OptionsFetched) -> AppState:
        if state.form is None or state.fetch_tokens.get(event.key) != event.token:
            logger.debug("Dropping stale options for %s (token %d)", event.key, event.token)
            return state
        tokens = {k: v for k, v in state.fetch_tokens.items() if k != event.key}
        state = replace(state, fetch_tokens=MappingProxyType(tokens))
        label = self.catalog.label(event.key)
        if not event.ok:
            return replace(
                state, form=state.form.clear_options(event.key),
                status=f"Could not fetch {label} choices: {event.error}",
            )
        form = state.form.set_options(event.key, event.options)
        if not event.options:
            return replace(state, form=form, status=f"No {label} choices available.")
        return replace(state, form=form, status="")

    def _form_key(self, state: AppState, event: KeyPressed) -> Result | None:
        """Navigation, cycling and text entry common to both forms. None = not handled."""
        form = state.form
        key = event.key
        if key in ("escape", "ctrl+c"):
            return self._close_form(replace(state, status="")), []
        if key in NEXT_KEYS:
            return replace(state, form=form.focus_next()), []
        if key in PREV_KEYS:
            return replace(state, form=form.focus_prev()), []

        if form.focused.is_choice:
            direction = {"left": -1, "right": 1, "space": 1}.get(key)
            if direction is not None:
                form, request = form.cycle(form.focused.key, direction)
                return self._request_fetch(replace(state, form=form), request)
            return None

        if key == "backspace":
            return replace(state, form=form.backspace()), []
        if key == "ctrl+u":
            return replace(state, form=form.clear()), []
        if event.character and event.character.isprintable() and len(event.character) == 1:
            return replace(state, form=form.insert(event.character)), []
        return None

    # ─────────────────────────────────────────────────────────────────────────
    # CREATE FORM
    # ─────────────────────────────────────────────────────────────────────────

    def _open_create_form(self, state: AppState) -> Result:
        preset = self.presets[state.preset_index]
        form = FormEngine.for_create(self.catalog, self.cfg.form_fields, preset)
        state = replace(state, scene=Scene.CREATE_FORM, form=form, status="")
        return self._request_fetch(state, form.pending_fetch())

    def _switch_preset(self, state: AppState, direction: int) -> Result:
        index = self.presets.step(state.preset_index, direction)
        before = state.form
        form = before.apply_preset(self.presets[index], exclude=self.cfg.preset_preserve_fields)
        state = replace(state, form=form, preset_index=index, status=f"Preset: {self.presets[index].name}")
        dep = form.dependency
        if dep is not None and form.value(dep.trigger) != before.value(dep.trigger):
            return self._request_fetch(state, form.pending_fetch())
        return state, []

    def _create_key(self, state: AppState, event: KeyPressed) -> Result:
        handled = self._form_key(state, event)
        if handled is not None:
            return handled
        if event.key == "f2":
            return self._switch_preset(state, -1)
        if event.key == "f3":
            return self._switch_preset(state, +1)
        if event.key == "enter":
            return self._submit_create(state)
        return state, []

    def _submit_create(self, state: AppState) -> Result:
        try:
            identity = identity_from_values(self.cfg.provider, state.form.values())
            updates = state.form.submit()
        except FormValidationError as e:
            return replace(state, status=f"Cannot create deployment: {e}"), []
        if any(d.name == identity for d in state.deployments):
            return replace(state, status=f"Deployment '{identity}' already exists!"), []
        return self._start_operation(
            state, f"Creating deployment '{identity}'...",
            CreateDeployment(identity=identity, updates=updates),
        )

    # ─────────────────────────────────────────────────────────────────────────
    # EDIT FORM
    # ─────────────────────────────────────────────────────────────────────────

    def _variables_loaded(self, state: AppState, event: VariablesLoaded) -> AppState:
        if state.scene not in (Scene.LAUNCHER, Scene.EDIT_TABLE):
            return state
        if event.error:
            return replace(state, status=f"Could not load tfvars: {event.error}")
        variables = tfvars.VariableSet(event.variables)
        try:
            form = FormEngine.for_edit(self.catalog, self.cfg.form_fields, variables)
        except ValueError:
            return replace(state, status=f"'{event.name}' has no editable fields.")
        return replace(
            state, scene=Scene.EDIT_FORM, form=form, status="",
            edit_name=event.name, edit_path=os.path.dirname(event.path),
        )

    def _edit_form_key(self, state: AppState, event: KeyPressed) -> Result:
        handled = self._form_key(state, event)
        if handled is not None:
            return handled
        if event.key == "enter":
            try:
                updates = state.form.submit(changed_only=True)
            except FormValidationError as e:
                return replace(state, status=f"Save failed: {e}"), []
            if not updates:
                return replace(state, status="No changes to save."), []
            path = os.path.join(state.edit_path, tfvars.TFVARS_FILE)
            saving = MappingProxyType({key: state.form.value(key) for key in updates})
            return replace(state, saving=saving), [SaveVariables(path=path, updates=updates)]
        if event.key == "f5":
            return self._start_operation(
                state, f"Applying '{state.edit_name}'...", ApplyDeployment(path=state.edit_path),
            )
        return state, []

    def _save_finished(self, state: AppState, event: SaveFinished) -> AppState:
        saved = state.saving
        state = replace(state, status=event.message, saving=MappingProxyType({}))
        if event.ok and state.scene == Scene.EDIT_FORM and state.form is not None:
            return replace(state, form=state.form.mark_saved(saved))
        return state
