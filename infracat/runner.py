"""
Effect runner

Carries out the effects the scene controller asks for. Everything that
touches disk, the network or a subprocess runs through `spawn`; every result
comes back through `sink` as an event.
"""

import logging
from collections.abc import Callable
from pathlib import Path

from infracat import environment, tfvars
from infracat.bridge import FetchBridge, Sink, Spawn, thread_pool_spawn
from infracat.config import Config
from infracat.events import (
    ApplyDeployment, CreateDeployment, DeploymentsLoaded, FetchOptions, LoadDeployments, LoadVariables,
    OperationFinished, OperationProgress, Quit, SaveFinished, SaveVariables, VariablesLoaded,
)
from infracat.pipeline import DeploymentPipeline
from infracat.provisioner import Provisioner
from infracat.registry import DeploymentRegistry

logger = logging.getLogger(__name__)


class EffectRunner:
    def __init__(self, cfg: Config, sink: Sink, lookup: Callable[[str], list[str]],
                 spawn: Spawn | None = None, provisioner: Provisioner | None = None,
                 on_quit: Callable[[], None] | None = None, probe_environment: bool = True):
        self.cfg = cfg
        self.sink = sink
        self.spawn = spawn or thread_pool_spawn()
        self.registry = DeploymentRegistry(Path(cfg.apps_path))
        self.provisioner = provisioner or Provisioner(cfg.terraform_binary)
        self.bridge = FetchBridge(lookup, sink, spawn=self.spawn)
        self.on_quit = on_quit or (lambda: None)
        self.probe_environment = probe_environment

    def run(self, effects) -> None:
        for effect in effects:
            self.execute(effect)

    def execute(self, effect) -> None:
        logger.debug("Effect: %r", effect)
        if isinstance(effect, FetchOptions):
            self.bridge.request(effect.key, effect.trigger_value, effect.token)
        elif isinstance(effect, LoadDeployments):
            self.spawn(lambda: self.sink(self.load_deployments(effect.announce)))
        elif isinstance(effect, LoadVariables):
            self.spawn(lambda: self.sink(self.load_variables(effect.name, effect.path)))
        elif isinstance(effect, SaveVariables):
            self.spawn(lambda: self.sink(self.save_variables(effect.path, effect.updates)))
        elif isinstance(effect, CreateDeployment):
            self.spawn(lambda: self.sink(self.create(effect.identity, effect.updates)))
        elif isinstance(effect, ApplyDeployment):
            self.spawn(lambda: self.sink(self.apply(effect.path)))
        elif isinstance(effect, Quit):
            self.on_quit()
        else:
            raise TypeError(f"Unknown effect: {effect!r}")

    # ─────────────────────────────────────────────────────────────────────────
    # HANDLERS
    # ─────────────────────────────────────────────────────────────────────────

    def load_deployments(self, announce: bool = False) -> DeploymentsLoaded:
        env = None
        if self.probe_environment:
            env = environment.probe(self.cfg.aws_profile, self.cfg.aws_region,
                                  self.cfg.terraform_path or self.cfg.repo)
        try:
            listing = self.registry.refresh()
        except OSError as e:
            logger.error("Could not list %s: %s", self.registry.apps_root, e)
            return DeploymentsLoaded(announce=announce, error=str(e), environment=env)
        return DeploymentsLoaded(
            deployments=listing.deployments, announce=announce,
            errors=listing.errors, environment=env,
        )

    def load_variables(self, name: str, path: str) -> VariablesLoaded:
        try:
            variables = tfvars.load(Path(path))
        except (OSError, UnicodeDecodeError) as e:
            return VariablesLoaded(name=name, path=path, error=str(e))
        return VariablesLoaded(name=name, path=path, variables=dict(variables))

    def save_variables(self, path: str, updates: dict[str, str]) -> SaveFinished:
        try:
            tfvars.save(Path(path), updates)
        except (OSError, ValueError) as e:
            logger.error("Saving %s failed: %s", path, e)
            return SaveFinished(ok=False, message=f"Save failed: {e}")
        return SaveFinished(ok=True, message="Changes saved!")

    def _pipeline(self) -> DeploymentPipeline:
        return DeploymentPipeline(
            self.cfg, self.provisioner,
            progress=lambda message: self.sink(OperationProgress(message)),
        )

    def create(self, identity: str, updates: dict[str, str]) -> OperationFinished:
        try:
            outcome = self._pipeline().create(identity, updates)
        except Exception as e:
            # Every run ends with exactly one OperationFinished
            logger.exception("Create of %s aborted", identity)
            return OperationFinished(ok=False, message=f"Create failed: {e.__class__.__name__}: {e}")
        return OperationFinished(ok=outcome.ok, message=outcome.message, path=outcome.path)

    def apply(self, path: str) -> OperationFinished:
        try:
            outcome = self._pipeline().apply(Path(path))
        except Exception as e:
            logger.exception("Apply of %s aborted", path)
            return OperationFinished(ok=False, message=f"Apply failed: {e.__class__.__name__}: {e}")
        return OperationFinished(ok=outcome.ok, message=outcome.message, path=outcome.path)
