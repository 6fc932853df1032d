"""
Form engine

An ordered set of fields, each edited as text, with exactly one field in
focus. Choice fields only ever hold one of their options and ignore typing;
free-text fields take characters. Values are parsed and encoded only at the
boundaries (preset application, edit-form construction, submit).

The engine is immutable: every operation returns a new FormEngine, which
keeps the scene controller a pure function of its inputs.

One cross-field dependency exists: changing `cluster` invalidates the
`vm_template` choices, and the engine hands back a FetchRequest for them.
"""

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace

from infracat import tfvars
from infracat.catalog import CyclicChoice, FieldCatalog, FieldDescriptor, FieldKind
from infracat.errors import FormValidationError
from infracat.presets import Preset

_INTEGER = re.compile(r"^-?\d+$")


@dataclass(frozen=True)
class Dependency:
    trigger: str
    dependent: str


TEMPLATE_DEPENDENCY = Dependency(trigger="cluster", dependent="vm_template")


@dataclass(frozen=True)
class FetchRequest:
    """Options for `key` must be looked up for `trigger_value`."""
    key: str
    trigger_value: str


@dataclass(frozen=True)
class FormField:
    descriptor: FieldDescriptor
    value: str = ""
    options: tuple[str, ...] = ()
    initial: str = ""

    @property
    def key(self) -> str:
        return self.descriptor.key

    @property
    def is_choice(self) -> bool:
        return self.descriptor.is_choice

    @property
    def changed(self) -> bool:
        return self.value != self.initial


def cycle_option(current: str, options: tuple[str, ...], direction: int) -> str:
    """Step through `options`; a value not in the list counts as the first option."""
    try:
        index = options.index(current)
    except ValueError:
        index = 0
    return options[(index + direction) % len(options)]


@dataclass(frozen=True)
class FormEngine:
    fields: tuple[FormField, ...]
    focus: int = 0
    dependency: Dependency | None = TEMPLATE_DEPENDENCY

    def __post_init__(self):
        if not self.fields:
            raise ValueError("a form needs at least one field")
        if not 0 <= self.focus < len(self.fields):
            raise ValueError(f"focus {self.focus} out of range")

    # ─────────────────────────────────────────────────────────────────────────
    # CONSTRUCTION
    # ─────────────────────────────────────────────────────────────────────────

    @classmethod
    def build(cls, catalog: FieldCatalog, layout: Iterable[str], values: Mapping[str, str]) -> 'FormEngine':
        fields = []
        for key in layout:
            descriptor = catalog.describe(key)
            options = ()
            if isinstance(descriptor.input_mode, CyclicChoice):
                options = descriptor.input_mode.options
            value = values.get(key, "")
            fields.append(FormField(descriptor=descriptor, value=value, options=options, initial=value))
        return cls(fields=tuple(fields))

    @classmethod
    def for_create(cls, catalog: FieldCatalog, layout: Iterable[str], preset: Preset) -> 'FormEngine':
        values = {k: v.as_text() for k, v in preset.values.items()}
        return cls.build(catalog, layout, values)

    @classmethod
    def for_edit(cls, catalog: FieldCatalog, layout: Iterable[str], variables: tfvars.VariableSet) -> 'FormEngine':
        """Editable (non read-only) fields, pre-filled from a deployment's variables."""
        editable = [k for k in layout if not catalog.describe(k).read_only]
        values = {k: variables.text(k, catalog.describe(k).kind) for k in editable if k in variables}
        return cls.build(catalog, editable, values)

    # ─────────────────────────────────────────────────────────────────────────
    # QUERIES
    # ─────────────────────────────────────────────────────────────────────────

    def index_of(self, key: str) -> int | None:
        for i, f in enumerate(self.fields):
            if f.key == key:
                return i
        return None

    def field(self, key: str) -> FormField:
        index = self.index_of(key)
        if index is None:
            raise KeyError(key)
        return self.fields[index]

    def value(self, key: str, default: str = "") -> str:
        index = self.index_of(key)
        return default if index is None else self.fields[index].value

    @property
    def focused(self) -> FormField:
        return self.fields[self.focus]

    def values(self) -> dict[str, str]:
        return {f.key: f.value for f in self.fields}

    def pending_fetch(self) -> FetchRequest | None:
        """Lookup needed for the dependent field given the current trigger value."""
        dep = self.dependency
        if dep is None or self.index_of(dep.dependent) is None or self.index_of(dep.trigger) is None:
            return None
        trigger_value = self.value(dep.trigger)
        if not trigger_value:
            return None
        return FetchRequest(key=dep.dependent, trigger_value=trigger_value)

    # ─────────────────────────────────────────────────────────────────────────
    # FOCUS
    # ─────────────────────────────────────────────────────────────────────────

    def focus_next(self) -> 'FormEngine':
        return replace(self, focus=(self.focus + 1) % len(self.fields))

    def focus_prev(self) -> 'FormEngine':
        return replace(self, focus=(self.focus - 1) % len(self.fields))

    # ─────────────────────────────────────────────────────────────────────────
    # EDITING
    # ─────────────────────────────────────────────────────────────────────────

    def _with_field(self, index: int, **changes) -> 'FormEngine':
        fields = list(self.fields)
        fields[index] = replace(fields[index], **changes)
        return replace(self, fields=tuple(fields))

    def set_value(self, key: str, value: str) -> 'FormEngine':
        index = self.index_of(key)
        if index is None:
            return self
        return self._with_field(index, value=value)

    def mark_saved(self, values: Mapping[str, str]) -> 'FormEngine':
        """Take `values` as the new baseline for change tracking."""
        fields = tuple(
            replace(f, initial=values[f.key]) if f.key in values else f
            for f in self.fields
        )
        return replace(self, fields=fields)

    def cycle(self, key: str, direction: int) -> tuple['FormEngine', FetchRequest | None]:
        index = self.index_of(key)
        if index is None:
            return self, None
        f = self.fields[index]
        if not f.is_choice or not f.options:
            return self, None

        form = self._with_field(index, value=cycle_option(f.value, f.options, direction))
        dep = self.dependency
        if dep is not None and key == dep.trigger and form.index_of(dep.dependent) is not None:
            return form, FetchRequest(key=dep.dependent, trigger_value=form.value(key))
        return form, None

    @property
    def accepts_text(self) -> bool:
        return not self.focused.is_choice

    def insert(self, text: str) -> 'FormEngine':
        if not self.accepts_text or not text:
            return self
        return self._with_field(self.focus, value=self.focused.value + text)

    def backspace(self) -> 'FormEngine':
        if not self.accepts_text or not self.focused.value:
            return self
        return self._with_field(self.focus, value=self.focused.value[:-1])

    def clear(self) -> 'FormEngine':
        if not self.accepts_text:
            return self
        return self._with_field(self.focus, value="")

    def apply_preset(self, preset: Preset, exclude: Iterable[str] = frozenset()) -> 'FormEngine':
        """Overwrite every field the preset defines, except keys in `exclude`."""
        exclude = frozenset(exclude)
        form = self
        for key, value in preset.values.items():
            if key in exclude:
                continue
            form = form.set_value(key, value.as_text())
        return form

    def set_options(self, key: str, options: Iterable[str]) -> 'FormEngine':
        """Install fetched options; keep the current value only if still listed."""
        index = self.index_of(key)
        if index is None:
            return self
        options = tuple(options)
        current = self.fields[index].value
        if current in options:
            value = current
        else:
            value = options[0] if options else ""
        return self._with_field(index, options=options, value=value)

    def clear_options(self, key: str) -> 'FormEngine':
        index = self.index_of(key)
        if index is None:
            return self
        return self._with_field(index, options=(), value="")

    # ─────────────────────────────────────────────────────────────────────────
    # SUBMIT
    # ─────────────────────────────────────────────────────────────────────────

    def submit(self, changed_only: bool = False) -> dict[str, str]:
        """Encoded key -> raw value mapping ready for tfvars.patch."""
        updates = {}
        for f in self.fields:
            if changed_only and not f.changed:
                continue
            kind = f.descriptor.kind
            if kind == FieldKind.INTEGER and not _INTEGER.match(f.value.strip()):
                raise FormValidationError(f.key, f"'{f.value}' is not a whole number")
            updates[f.key] = tfvars.encode(kind, f.value)
        return updates
