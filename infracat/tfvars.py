"""
Variables file codec

Reads and updates terraform.tfvars style files: one `key = value`
declaration per line, values being bare numbers, double-quoted strings or
bracketed lists of quoted strings.

Writes never re-serialize the whole file. `patch` rewrites matching
declaration lines in place so comments, blank lines, ordering and keys the
launcher does not know about survive untouched. Keys that are not already
declared in the file are not added.
"""

import logging
import os
import re
import shutil
import tempfile
from pathlib import Path

from infracat.catalog import FieldKind

logger = logging.getLogger(__name__)

TFVARS_FILE = "terraform.tfvars"

_DECLARATION = re.compile(r'^([A-Za-z_][A-Za-z0-9_-]*)(?:\s*=\s*(.*)|\s+(.*))$')
_LIST_ITEM = re.compile(r'\s*(?:"((?:[^"\\]|\\.)*)"|([^,\s][^,]*))')


class VariableSet(dict):
    """Ordered key -> raw value mapping decoded from a variables file."""

    def string(self, key: str, default: str = "") -> str:
        """Value with surrounding quotes removed."""
        if key not in self:
            return default
        return decode_string(self[key])

    def text(self, key: str, kind: FieldKind) -> str:
        """Value as it is shown in a form field."""
        return display(kind, self.get(key, ""))


# ─────────────────────────────────────────────────────────────────────────────
# READING
# ─────────────────────────────────────────────────────────────────────────────

def parse(text: str) -> VariableSet:
    """Parse declarations. Lines that are not `key = value` or `key value` are ignored."""
    variables = VariableSet()
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        match = _DECLARATION.match(stripped)
        if not match:
            continue
        value = match.group(2) if match.group(2) is not None else match.group(3)
        # Later declarations win; re-insert so the key keeps its last position
        variables.pop(match.group(1), None)
        variables[match.group(1)] = value.strip()
    return variables


def load(path: Path) -> VariableSet:
    """Read and parse a variables file. Raises OSError if it cannot be opened."""
    return parse(Path(path).read_text(encoding="utf-8"))


# ─────────────────────────────────────────────────────────────────────────────
# WRITING
# ─────────────────────────────────────────────────────────────────────────────

def _declares(stripped: str, key: str) -> bool:
    if not stripped.startswith(key) or len(stripped) == len(key):
        return False
    return stripped[len(key)] in "= \t"


def patch(text: str, updates: dict[str, str]) -> str:
    """Replace the declaration lines of `updates` keys; everything else passes through."""
    out = []
    for line in text.splitlines(keepends=True):
        body = line.rstrip("\r\n")
        ending = line[len(body):]
        stripped = body.strip()
        for key, value in updates.items():
            if _declares(stripped, key):
                body = f"{key} = {value}"
        out.append(body + ending)
    return "".join(out)


def _replace_file(path: Path, text: str) -> None:
    """Write `text` next to `path`, then swap it in so readers never see a partial file."""
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(text)
        shutil.copymode(path, tmp)
        os.replace(tmp, path)
    except OSError:
        Path(tmp).unlink(missing_ok=True)
        raise


def save(path: Path, updates: dict[str, str]) -> None:
    """Patch the file at `path`, replacing it atomically."""
    path = Path(path)
    original = path.read_text(encoding="utf-8")
    patched = patch(original, updates)
    missing = [k for k in updates if not any(_declares(l.strip(), k) for l in original.splitlines())]
    if missing:
        logger.warning("%s does not declare %s; values not written", path, ", ".join(missing))
    _replace_file(path, patched)


# ─────────────────────────────────────────────────────────────────────────────
# VALUE ENCODING
# ─────────────────────────────────────────────────────────────────────────────

def _escape(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')


def _unescape(text: str) -> str:
    return re.sub(r'\\(.)', r'\1', text)


def quote(text: str) -> str:
    return f'"{_escape(text)}"'


def encode_list(text: str) -> str:
    """`a, "b",c` -> `["a", "b", "c"]`; empty input gives `[]`."""
    items = []
    for part in text.split(","):
        item = part.strip().strip('"')
        if item:
            items.append(quote(item))
    return "[" + ", ".join(items) + "]"


def encode(kind: FieldKind, text: str) -> str:
    """Raw file representation of form text for a field of `kind`."""
    if kind == FieldKind.STRING:
        return quote(text)
    if kind == FieldKind.STRING_LIST:
        return encode_list(text)
    return text.strip()


def decode_string(raw: str) -> str:
    raw = raw.strip()
    if len(raw) >= 2 and raw.startswith('"') and raw.endswith('"'):
        return _unescape(raw[1:-1])
    return raw


def decode_list(raw: str) -> list[str]:
    raw = raw.strip()
    if raw.startswith("[") and raw.endswith("]"):
        raw = raw[1:-1]
    items = []
    for quoted, bare in _LIST_ITEM.findall(raw):
        if quoted:
            items.append(_unescape(quoted))
        elif bare.strip():
            items.append(bare.strip())
    return items


def display(kind: FieldKind, raw: str) -> str:
    """Inverse of `encode`: the text a form field shows for a raw value."""
    if kind == FieldKind.STRING:
        return decode_string(raw)
    if kind == FieldKind.STRING_LIST:
        return ",".join(decode_list(raw))
    return raw.strip()
