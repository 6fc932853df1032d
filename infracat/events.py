"""
Messages exchanged with the scene controller.

Events flow into the controller through the single event queue; effects are
descriptions of work the controller wants done, executed by the runner,
which reports results back as further events.
"""

from dataclasses import dataclass, field

from infracat.environment import EnvironmentStatus


# ─────────────────────────────────────────────────────────────────────────────
# EVENTS
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class KeyPressed:
    key: str
    character: str | None = None


@dataclass(frozen=True)
class OptionsFetched:
    """Result of a dependent-field lookup. Exactly one per request."""
    key: str
    token: int
    options: tuple[str, ...] = ()
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class DeploymentsLoaded:
    deployments: tuple = ()
    announce: bool = False
    errors: tuple = ()
    error: str | None = None
    environment: EnvironmentStatus | None = None


@dataclass(frozen=True)
class VariablesLoaded:
    name: str
    path: str
    variables: dict = field(default_factory=dict)
    error: str | None = None


@dataclass(frozen=True)
class OperationProgress:
    message: str


@dataclass(frozen=True)
class OperationFinished:
    ok: bool
    message: str
    path: str = ""


@dataclass(frozen=True)
class SaveFinished:
    ok: bool
    message: str


# ─────────────────────────────────────────────────────────────────────────────
# EFFECTS
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class FetchOptions:
    key: str
    trigger_value: str
    token: int


@dataclass(frozen=True)
class LoadDeployments:
    announce: bool = False


@dataclass(frozen=True)
class LoadVariables:
    name: str
    path: str


@dataclass(frozen=True)
class CreateDeployment:
    identity: str
    updates: dict = field(default_factory=dict, hash=False)


@dataclass(frozen=True)
class SaveVariables:
    path: str
    updates: dict = field(default_factory=dict, hash=False)


@dataclass(frozen=True)
class ApplyDeployment:
    path: str


@dataclass(frozen=True)
class Quit:
    pass
