"""
Preset store

A preset is one YAML document mapping field keys to default values for a
new deployment. The file name without extension is the preset name.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType

import yaml

from infracat.errors import ConfigError
from infracat.values import Value

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Preset:
    name: str
    values: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_dict(cls, name: str, doc: dict) -> 'Preset':
        values = {str(k): Value.from_yaml(v) for k, v in (doc or {}).items()}
        return cls(name=name, values=MappingProxyType(values))


class PresetStore(Sequence):
    """Ordered presets; indices wrap around in both directions."""

    def __init__(self, presets: list[Preset]):
        if not presets:
            raise ConfigError("no presets available")
        self._presets = tuple(presets)

    def __getitem__(self, index):
        return self._presets[index]

    def __len__(self) -> int:
        return len(self._presets)

    def step(self, index: int, direction: int) -> int:
        return (index + direction) % len(self._presets)

    def names(self) -> list[str]:
        return [p.name for p in self._presets]


def load_preset(path: Path) -> Preset:
    doc = yaml.safe_load(Path(path).read_text())
    if doc is not None and not isinstance(doc, dict):
        raise ValueError("preset document must be a mapping")
    return Preset.from_dict(Path(path).stem, doc)


def load_presets(presets_dir: Path) -> PresetStore:
    """Load every *.yaml preset in name order. Unreadable presets are skipped."""
    presets_dir = Path(presets_dir)
    try:
        entries = sorted(p for p in presets_dir.iterdir() if p.is_file() and p.suffix == ".yaml")
    except OSError as e:
        raise ConfigError(f"could not read presets dir {presets_dir}: {e}") from e

    presets = []
    for path in entries:
        try:
            presets.append(load_preset(path))
        except (OSError, yaml.YAMLError, ValueError) as e:
            logger.warning("Skipping preset %s: %s", path.name, e)
    if not presets:
        raise ConfigError(f"no presets found in {presets_dir}")
    logger.debug("Loaded presets: %s", ", ".join(p.name for p in presets))
    return PresetStore(presets)
