"""
Deployment pipeline

Create: existence check -> template copy -> variables -> backend config ->
READY -> init (INITIALIZED) -> apply (DEPLOYED).
Apply:  init (INITIALIZED) -> apply (DEPLOYED) on an existing deployment.

A failing step stops the sequence. Nothing already done is rolled back: the
deployment stays on disk with its lifecycle record at the last step that
succeeded, and the failure is written into the record so listings can flag
it as partial.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from infracat import scaffold, tfvars
from infracat.config import Config
from infracat.errors import DeploymentExistsError, InfracatError, ProvisionError, StateWriteError
from infracat.provisioner import Provisioner
from infracat.state import LifecycleState, StateStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Outcome:
    ok: bool
    message: str
    path: str = ""
    state: LifecycleState = LifecycleState.UNKNOWN


class StepFailed(Exception):
    """Internal: carries the user-facing message of the step that failed."""


class DeploymentPipeline:
    """Runs create / apply sequences. Meant to be called off the UI thread."""

    def __init__(self, cfg: Config, provisioner: Provisioner,
                 progress: Callable[[str], None] | None = None):
        self.cfg = cfg
        self.provisioner = provisioner
        self.progress = progress or (lambda message: None)

    # ─────────────────────────────────────────────────────────────────────────
    # CREATE
    # ─────────────────────────────────────────────────────────────────────────

    def create(self, identity: str, updates: dict[str, str]) -> Outcome:
        dest = Path(self.cfg.apps_path) / identity
        store = StateStore(dest)
        try:
            if dest.exists():
                raise DeploymentExistsError(f"Deployment '{identity}' already exists!")

            self._step("copy template", lambda: scaffold.copy_template(Path(self.cfg.template_path), dest))
            self._step("write tfvars", lambda: tfvars.save(dest / tfvars.TFVARS_FILE, updates))
            self._step("write backend config", lambda: scaffold.write_backend(self.cfg, dest, identity))
            self._advance(store, LifecycleState.READY, "save")

            self.progress(f"Deployment '{identity}' created. Running {self.provisioner.binary} init...")
            self._provision(dest, store)
        except DeploymentExistsError as e:
            return Outcome(ok=False, message=str(e), path=str(dest))
        except StepFailed as e:
            return self._failed(dest, store, str(e))

        return Outcome(
            ok=True, message=f"Deployment '{identity}' deployed and ready!",
            path=str(dest), state=LifecycleState.DEPLOYED,
        )

    # ─────────────────────────────────────────────────────────────────────────
    # APPLY
    # ─────────────────────────────────────────────────────────────────────────

    def apply(self, deployment_dir: Path) -> Outcome:
        deployment_dir = Path(deployment_dir)
        store = StateStore(deployment_dir)
        if not deployment_dir.is_dir():
            return Outcome(ok=False, message=f"Deployment '{deployment_dir.name}' not found")
        try:
            self.progress(f"Running {self.provisioner.binary} init for '{deployment_dir.name}'...")
            self._provision(deployment_dir, store)
        except StepFailed as e:
            return self._failed(deployment_dir, store, str(e))
        return Outcome(
            ok=True, message="Deployment applied and ready!",
            path=str(deployment_dir), state=LifecycleState.DEPLOYED,
        )

    # ─────────────────────────────────────────────────────────────────────────
    # STEPS
    # ─────────────────────────────────────────────────────────────────────────

    def _provision(self, workdir: Path, store: StateStore):
        binary = self.provisioner.binary
        self._run_tool(store, "init", lambda: self.provisioner.init(workdir))
        self._advance(store, LifecycleState.INITIALIZED, "init")

        self.progress(f"'{workdir.name}' initialized. Running {binary} apply...")
        self._run_tool(store, "apply", lambda: self.provisioner.apply(workdir))
        self._advance(store, LifecycleState.DEPLOYED, "apply")

    def _step(self, name: str, fn: Callable[[], object]):
        try:
            fn()
        except (OSError, ValueError, InfracatError) as e:
            raise StepFailed(f"Failed to {name}: {e}") from e

    def _run_tool(self, store: StateStore, action: str, fn):
        result = fn()
        if result.ok:
            return
        error = ProvisionError(action, result.output)
        try:
            store.mark_failed(action, f"{self.provisioner.binary} {action} failed")
        except StateWriteError as e:
            logger.error("Could not record %s failure: %s", action, e)
        raise StepFailed(f"{self.provisioner.binary} {error}:\n{result.tail()}")

    def _advance(self, store: StateStore, target: LifecycleState, action: str):
        try:
            store.advance(target, action)
        except StateWriteError as e:
            raise StepFailed(f"Failed to update {store.path.name} ({action}): {e}") from e

    def _failed(self, path: Path, store: StateStore, message: str) -> Outcome:
        state = store.load().state if path.exists() else LifecycleState.UNKNOWN
        logger.error("%s: %s", path.name, message)
        if path.exists():
            message += f"\nPartial deployment left at {path} (state {state.value}); nothing was rolled back."
        return Outcome(ok=False, message=message, path=str(path), state=state)
