"""
Deployment registry

Every immediate subdirectory of the apps directory is a deployment. Rows are
derived on every listing from the deployment's variables file and its
lifecycle record; nothing here writes to disk.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

import yaml

from infracat import tfvars
from infracat.state import LifecycleState, StateStore

logger = logging.getLogger(__name__)

DESCRIPTION_KEY = "platform_description"


@dataclass(frozen=True)
class DeploymentSummary:
    name: str
    description: str = ""
    state: LifecycleState = LifecycleState.UNKNOWN
    last_action: str = ""
    last_modified: str = ""
    path: str = ""
    partial: bool = False
    error: str = ""
    variables: tfvars.VariableSet = field(default_factory=tfvars.VariableSet, compare=False)

    @property
    def state_label(self) -> str:
        if self.partial:
            return f"{self.state.value}*"
        return self.state.value


@dataclass(frozen=True)
class ListingResult:
    deployments: tuple = ()
    errors: tuple = ()


def summarize(deployment_dir: Path) -> tuple[DeploymentSummary, list[str]]:
    """Build one row. Problems are returned as messages, never raised."""
    errors = []
    name = deployment_dir.name

    variables = tfvars.VariableSet()
    try:
        variables = tfvars.load(deployment_dir / tfvars.TFVARS_FILE)
    except (OSError, UnicodeDecodeError) as e:
        logger.debug("%s: no variables file (%s)", name, e)

    store = StateStore(deployment_dir)
    try:
        record = store.read()
    except (OSError, ValueError, yaml.YAMLError) as e:
        errors.append(f"{name}: state unavailable ({e.__class__.__name__})")
        record = store.load()

    try:
        mtime = datetime.fromtimestamp(deployment_dir.stat().st_mtime).strftime("%Y-%m-%d %H:%M")
    except OSError:
        mtime = ""

    summary = DeploymentSummary(
        name=name,
        description=variables.string(DESCRIPTION_KEY),
        state=record.state,
        last_action=record.timestamp[:16],  # YYYY-MM-DDTHH:MM
        last_modified=mtime,
        path=str(deployment_dir),
        partial=record.partial,
        error=record.error,
        variables=variables,
    )
    return summary, errors


def list_deployments(apps_root: Path) -> ListingResult:
    """Summaries for every deployment directory, sorted by name.

    Raises OSError only when the apps directory itself cannot be read.
    """
    apps_root = Path(apps_root)
    rows, errors = [], []
    for entry in sorted(apps_root.iterdir(), key=lambda p: p.name):
        if not entry.is_dir():
            continue
        summary, row_errors = summarize(entry)
        rows.append(summary)
        errors.extend(row_errors)
    for message in errors:
        logger.info(message)
    return ListingResult(deployments=tuple(rows), errors=tuple(errors))


class DeploymentRegistry:
    def __init__(self, apps_root: Path):
        self.apps_root = Path(apps_root)

    def refresh(self) -> ListingResult:
        return list_deployments(self.apps_root)

    def path_for(self, name: str) -> Path:
        return self.apps_root / name
