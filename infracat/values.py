"""
Typed preset values.

Preset documents are untyped YAML. Every value is folded into one of three
kinds at load time so consumers never deal with arbitrary objects.
"""

from dataclasses import dataclass
from enum import Enum


class ValueKind(str, Enum):
    STRING = "string"
    INTEGER = "integer"
    LIST = "list"


@dataclass(frozen=True)
class Value:
    """A preset value tagged with its kind."""
    kind: ValueKind
    data: str | int | tuple[str, ...]

    @classmethod
    def string(cls, text: str) -> 'Value':
        return cls(ValueKind.STRING, text)

    @classmethod
    def integer(cls, number: int) -> 'Value':
        return cls(ValueKind.INTEGER, number)

    @classmethod
    def items(cls, elements) -> 'Value':
        return cls(ValueKind.LIST, tuple(_scalar_text(e) for e in elements))

    @classmethod
    def from_yaml(cls, obj) -> 'Value':
        """Classify a value produced by yaml.safe_load."""
        # bool is an int subclass, check it first
        if isinstance(obj, bool):
            return cls.string(_scalar_text(obj))
        if isinstance(obj, int):
            return cls.integer(obj)
        if isinstance(obj, (list, tuple)):
            return cls.items(obj)
        if obj is None:
            return cls.string("")
        return cls.string(_scalar_text(obj))

    def as_text(self) -> str:
        """Form representation: strings verbatim, integers in decimal, lists comma-joined."""
        if self.kind == ValueKind.STRING:
            return self.data
        if self.kind == ValueKind.INTEGER:
            return str(self.data)
        if self.kind == ValueKind.LIST:
            return ",".join(self.data)
        raise ValueError(f"unhandled value kind: {self.kind}")


def _scalar_text(obj) -> str:
    if isinstance(obj, bool):
        return "true" if obj else "false"
    if obj is None:
        return ""
    return str(obj)
