"""
Field catalog

Describes every variable the launcher knows about: its label, help text,
whether it may be edited after creation, its value kind and how the user
enters it (free text or cycling through a fixed choice list).

fields.yaml layout:

    fields:
      zone:
        label: Zone
        help: Network zone for the VMs
        type: string
        choices: [standard, admin, dmz]
      vm_template:
        label: Template
        type: string
        choices: dynamic
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType

import yaml

from infracat.errors import ConfigError

logger = logging.getLogger(__name__)


class FieldKind(str, Enum):
    STRING = "string"
    INTEGER = "integer"
    STRING_LIST = "list"
    RAW = "raw"  # anything else: written back as bare text


# Spellings accepted in the "type" key of fields.yaml
_KIND_ALIASES = {
    "string": FieldKind.STRING,
    "str": FieldKind.STRING,
    "int": FieldKind.INTEGER,
    "integer": FieldKind.INTEGER,
    "number": FieldKind.INTEGER,
    "list": FieldKind.STRING_LIST,
    "list(string)": FieldKind.STRING_LIST,
    "stringlist": FieldKind.STRING_LIST,
}


@dataclass(frozen=True)
class FreeText:
    """Arbitrary character input."""


@dataclass(frozen=True)
class CyclicChoice:
    """Value must be one of `options`; dynamic lists are filled in at runtime."""
    options: tuple[str, ...] = ()
    dynamic: bool = False


@dataclass(frozen=True)
class FieldDescriptor:
    key: str
    label: str = ""
    help: str = ""
    read_only: bool = False
    kind: FieldKind = FieldKind.RAW
    input_mode: FreeText | CyclicChoice = field(default_factory=FreeText)

    @property
    def is_choice(self) -> bool:
        return isinstance(self.input_mode, CyclicChoice)

    @classmethod
    def fallback(cls, key: str) -> 'FieldDescriptor':
        """Descriptor for a key the catalog does not mention."""
        return cls(key=key, label=key)


def parse_kind(raw) -> FieldKind:
    if raw is None:
        return FieldKind.RAW
    return _KIND_ALIASES.get(str(raw).strip().lower(), FieldKind.RAW)


def _parse_input_mode(key: str, raw) -> FreeText | CyclicChoice:
    if raw is None:
        return FreeText()
    if raw == "dynamic":
        return CyclicChoice(dynamic=True)
    if isinstance(raw, list):
        return CyclicChoice(options=tuple(str(o) for o in raw))
    raise ConfigError(f"field '{key}': choices must be a list or 'dynamic'")


class FieldCatalog(Mapping):
    """Read-only mapping of field key -> FieldDescriptor."""

    def __init__(self, descriptors: dict[str, FieldDescriptor]):
        self._descriptors = MappingProxyType(dict(descriptors))

    def __getitem__(self, key: str) -> FieldDescriptor:
        return self._descriptors[key]

    def __iter__(self):
        return iter(self._descriptors)

    def __len__(self) -> int:
        return len(self._descriptors)

    def describe(self, key: str) -> FieldDescriptor:
        return self._descriptors.get(key) or FieldDescriptor.fallback(key)

    def label(self, key: str) -> str:
        return self.describe(key).label or key

    @classmethod
    def from_dict(cls, doc: dict) -> 'FieldCatalog':
        fields = (doc or {}).get("fields")
        if not isinstance(fields, dict):
            raise ConfigError("field catalog has no 'fields' mapping")

        descriptors = {}
        for key, meta in fields.items():
            meta = meta or {}
            if not isinstance(meta, dict):
                raise ConfigError(f"field '{key}' must be a mapping")
            descriptors[str(key)] = FieldDescriptor(
                key=str(key),
                label=str(meta.get("label") or key),
                help=str(meta.get("help") or ""),
                read_only=bool(meta.get("readOnly", False)),
                kind=parse_kind(meta.get("type")),
                input_mode=_parse_input_mode(key, meta.get("choices")),
            )
        return cls(descriptors)


def load_field_catalog(path: Path) -> FieldCatalog:
    """Load fields.yaml. Any read or parse failure is a ConfigError."""
    try:
        doc = yaml.safe_load(Path(path).read_text())
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"could not load field catalog {path}: {e}") from e
    catalog = FieldCatalog.from_dict(doc)
    logger.debug("Loaded %d field descriptors from %s", len(catalog), path)
    return catalog
