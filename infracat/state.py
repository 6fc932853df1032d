"""
Deployment lifecycle state

Each deployment directory carries a small `launcher.state` YAML record:

    state: INITIALIZED
    timestamp: '2026-10-18T06:53:00Z'
    last_action: apply
    error: terraform apply failed

The lifecycle only moves forward: UNKNOWN -> READY -> INITIALIZED -> DEPLOYED.
A failed step leaves `state` at the last step that succeeded and records the
failure in `error`, which marks the deployment as partial.
"""

import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

import yaml

from infracat.errors import StateWriteError

logger = logging.getLogger(__name__)

STATE_FILE = "launcher.state"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


class LifecycleState(str, Enum):
    """Ordered lifecycle states."""
    UNKNOWN = "UNKNOWN"
    READY = "READY"
    INITIALIZED = "INITIALIZED"
    DEPLOYED = "DEPLOYED"

    @property
    def rank(self) -> int:
        return list(LifecycleState).index(self)


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).strftime(TIMESTAMP_FORMAT)


@dataclass
class StateRecord:
    """Persistent lifecycle record."""
    state: LifecycleState = LifecycleState.UNKNOWN
    timestamp: str = ""
    last_action: str = ""
    error: str = ""

    @property
    def partial(self) -> bool:
        return bool(self.error)

    def to_dict(self) -> dict:
        d = asdict(self)
        d['state'] = self.state.value
        if not self.error:
            del d['error']
        return d

    @classmethod
    def from_dict(cls, d: dict) -> 'StateRecord':
        d = dict(d)
        try:
            d['state'] = LifecycleState(str(d.get('state', 'UNKNOWN')).upper())
        except ValueError:
            d['state'] = LifecycleState.UNKNOWN
        for k in ('timestamp', 'last_action', 'error'):
            if d.get(k) is not None:
                d[k] = str(d[k])
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__ and v is not None})


class StateStore:
    """Reads and advances the lifecycle record of one deployment directory."""

    def __init__(self, deployment_dir: Path):
        self.path = Path(deployment_dir) / STATE_FILE

    def read(self) -> StateRecord:
        """Return the record; raises OSError if missing, ValueError if malformed."""
        data = yaml.safe_load(self.path.read_text())
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} is not a mapping")
        return StateRecord.from_dict(data)

    def load(self) -> StateRecord:
        """Like read(), but a missing or unreadable record counts as UNKNOWN."""
        try:
            return self.read()
        except (OSError, ValueError, yaml.YAMLError):
            return StateRecord()

    def _write(self, record: StateRecord):
        try:
            self.path.write_text(yaml.safe_dump(record.to_dict(), sort_keys=False))
        except OSError as e:
            raise StateWriteError(f"could not write {self.path}: {e}") from e

    def advance(self, target: LifecycleState, action: str) -> StateRecord:
        """Record a successful step. The state never moves backwards."""
        current = self.load()
        state = target if target.rank >= current.state.rank else current.state
        record = StateRecord(state=state, timestamp=utc_timestamp(), last_action=action)
        self._write(record)
        logger.info("%s: %s -> %s (%s)", self.path.parent.name, current.state.value, state.value, action)
        return record

    def mark_failed(self, action: str, error: str) -> StateRecord:
        """Record a failed step without touching the lifecycle state."""
        current = self.load()
        record = StateRecord(
            state=current.state, timestamp=utc_timestamp(), last_action=action, error=error,
        )
        self._write(record)
        logger.info("%s: %s failed, state stays %s", self.path.parent.name, action, current.state.value)
        return record

    def reset(self, state: LifecycleState = LifecycleState.READY) -> StateRecord:
        """Overwrite the record unconditionally (manual recovery only)."""
        record = StateRecord(state=state, timestamp=utc_timestamp(), last_action="reset")
        self._write(record)
        return record
