# -*- coding: utf-8 -*-
"""
Text fields of a cfg.bin, for translation round trips.

Two strategies share the TextCorrelator surface:
  SequentialTexts  (here)             index = position of the String param in tree order;
                                      applying rebuilds the whole file
  AddressTexts     (cfgbin_address)   key = byte offset in the original string table;
                                      applying overwrites bytes in place

Sequential interchange files:
  JSON   [{"index": 0, "entry": "TEXT_INFO", "variable_index": 1, "value": "..."}, ...]
  lines  line N = text field N, with \\ \r \n escaped
"""
from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Dict, Iterator, List, Optional, Tuple

from cfgbin_errors import InterchangeFormatError
from cfgbin_file import CfgBin
from cfgbin_records import Variable, VarType
from cfgbin_tree import Entry, walk

log = logging.getLogger(__name__)

TIMESTAMP_RE = re.compile(r"\d{4}/\d{2}/\d{2} \d{2}:\d{2}:\d{2}")
TIMESTAMP_SKIP = 3

UNESCAPES = {"n": "\n", "r": "\r", "t": "\t", "\\": "\\"}


class TextCorrelator(ABC):
    """Extract text fields from a file and write updated ones back as a new file image."""

    @abstractmethod
    def extract(self) -> list:
        ...

    @abstractmethod
    def apply(self, updates: list, dry_run: bool = False) -> Optional[bytes]:
        """New file image with `updates` written in; None when `dry_run` only validates them."""


@dataclass
class TextEntry:
    index: int
    entry: str
    variable_index: int
    value: str

    def to_dict(self) -> dict:
        return asdict(self)

    @staticmethod
    def from_dict(d: dict, pos: int = 0) -> "TextEntry":
        if not isinstance(d, dict):
            raise InterchangeFormatError(f"Item #{pos}: expected an object, got {type(d).__name__}")
        try:
            index, entry, var_idx, value = d["index"], d["entry"], d["variable_index"], d["value"]
        except KeyError as e:
            raise InterchangeFormatError(f"Item #{pos}: missing field {e.args[0]!r}") from None
        for key, val, want in (("index", index, int), ("variable_index", var_idx, int),
                               ("entry", entry, str), ("value", value, str)):
            if not isinstance(val, want) or isinstance(val, bool):
                raise InterchangeFormatError(f"Item #{pos}: field {key!r} must be {want.__name__}, got {val!r}")
        return TextEntry(index, entry, var_idx, value)


# -----------------------------
# Sequential strategy
# -----------------------------

class SequentialTexts(TextCorrelator):
    def __init__(self, cfg: CfgBin) -> None:
        self.cfg = cfg

    @staticmethod
    def from_bytes(buf: bytes) -> "SequentialTexts":
        return SequentialTexts(CfgBin.load(buf))

    def fields(self) -> Iterator[Tuple[Entry, int, Variable]]:
        for e in walk(self.cfg.entries):
            for i, var in enumerate(e.variables):
                if var.type == VarType.STRING:
                    yield e, i, var

    def extract(self) -> List[TextEntry]:
        return [TextEntry(n, e.name, i, var.value or "")
                for n, (e, i, var) in enumerate(self.fields())]

    def update(self, updates: List[TextEntry]) -> int:
        """Replace String values by global index; an empty value becomes absent. Returns fields changed."""
        by_index: Dict[int, TextEntry] = {}
        for t in updates:
            by_index.setdefault(t.index, t)

        applied = 0
        for n, (e, i, var) in enumerate(self.fields()):
            t = by_index.pop(n, None)
            if t is None:
                continue
            if t.entry != e.name or t.variable_index != i:
                log.warning("text #%d: update says %s[%d], file has %s[%d]; applying by index",
                            n, t.entry, t.variable_index, e.name, i)
            var.value = t.value if t.value else None
            applied += 1
        if by_index:
            log.warning("%d update(s) point past the last text field (max index %d)",
                        len(by_index), max(by_index))
        return applied

    def apply(self, updates: List[TextEntry], dry_run: bool = False) -> Optional[bytes]:
        applied = self.update(updates)
        if dry_run:
            log.info("dry run: %d text field(s) would change", applied)
            return None
        return self.cfg.save()


# -----------------------------
# JSON
# -----------------------------

def dump_json(texts: List[TextEntry]) -> str:
    return json.dumps([t.to_dict() for t in texts], ensure_ascii=False, indent=2)


def load_json(s: str) -> List[TextEntry]:
    try:
        data = json.loads(s)
    except json.JSONDecodeError as e:
        raise InterchangeFormatError(f"Invalid JSON: {e}") from None
    if not isinstance(data, list):
        raise InterchangeFormatError("Expected a JSON list of text entries")
    return [TextEntry.from_dict(d, pos) for pos, d in enumerate(data)]


# -----------------------------
# Line text
# -----------------------------

def escape_line(s: str) -> str:
    return s.replace("\\", "\\\\").replace("\r", "\\r").replace("\n", "\\n")


def unescape_line(s: str) -> str:
    out = []
    i = 0
    while i < len(s):
        if s[i] == "\\" and i + 1 < len(s) and s[i + 1] in UNESCAPES:
            out.append(UNESCAPES[s[i + 1]])
            i += 2
        else:
            out.append(s[i])
            i += 1
    return "".join(out)


def dump_lines(texts: List[TextEntry]) -> str:
    return "".join(escape_line(t.value) + "\n" for t in texts)


def parse_lines(text: str) -> List[str]:
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return [ln[:-1] if ln.endswith("\r") else ln for ln in lines]


def resolve_line_offset(expected: int, supplied: int, first_value: Optional[str]) -> int:
    """
    Index of the first text field the supplied lines apply to.

    Some files open with a build timestamp plus two related fields that
    translators drop; that is the only tolerated mismatch.
    """
    if supplied == expected:
        return 0
    if (expected == supplied + TIMESTAMP_SKIP and first_value is not None
            and TIMESTAMP_RE.fullmatch(first_value)):
        return TIMESTAMP_SKIP
    raise InterchangeFormatError(
        f"Line count mismatch: file has {expected} text fields but {supplied} lines were supplied")


def updates_from_lines(texts: List[TextEntry], lines: List[str]) -> List[TextEntry]:
    first = texts[0].value if texts else None
    offset = resolve_line_offset(len(texts), len(lines), first)
    if offset:
        log.info("first value %r looks like a timestamp; leaving the first %d fields untouched", first, offset)
    return [TextEntry(t.index, t.entry, t.variable_index, unescape_line(line))
            for t, line in zip(texts[offset:], lines)]
