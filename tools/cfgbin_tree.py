# -*- coding: utf-8 -*-
"""
Flat record stream <-> entry tree.

cfg.bin has no nesting field. The engine nests records by naming convention:

  FOO_BEG / FOO_BEGIN / FOO_START ... FOO_END     paired scope
  PTREE ... _PTREE                                 inline sub-tree
  FOO_LIST_BEG, FOO_BEG_*, ...                     list of typed sub-blocks

Records with the same name are told apart by an occurrence index, so the
n-th FOO_END closes the n-th FOO_BEG ("FOO_END_3" -> "FOO_BEG_3").
The grouping rules below are the engine's conventions as observed in shipped
files; they misgroup odd names, and changing them breaks real files.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from cfgbin_records import Record, Variable, VarType, encode_record, encode_terminator
from cfgbin_tables import StringTable, unique

log = logging.getLogger(__name__)

BEGIN_SUFFIXES = ("beg", "begin", "start", "ptree")
LIST_SUFFIXES = ("beg", "begin")
BEGIN_MARKERS = ("BEGIN", "BEG", "START", "PTREE")
END_CANDIDATES = (
    ("_END_", "_BEG_"),
    ("_END_", "_BEGIN_"),
    ("_END_", "_START_"),
    ("_PTREE", "PTREE"),
)


def strip_occurrence(decorated: str) -> str:
    """'FOO_BEG_3' -> 'FOO_BEG'. A name without '_' is returned unchanged."""
    parts = decorated.split("_")
    if len(parts) > 1:
        return "_".join(parts[:-1])
    return decorated


def terminator_name(name: str) -> str:
    if name.startswith("PTREE"):
        return "_PTREE"
    return name.replace("BEGIN", "END").replace("BEG", "END").replace("START", "END")


@dataclass
class Entry:
    name: str
    variables: List[Variable] = field(default_factory=list)
    children: List["Entry"] = field(default_factory=list)
    end_terminator: bool = False
    occurrence: int = 0
    # closing record as read from the file, and how many children preceded it
    end_name: Optional[str] = None
    end_at: Optional[int] = None

    @property
    def decorated(self) -> str:
        return f"{self.name}_{self.occurrence}"

    @property
    def terminator_name(self) -> str:
        return self.end_name or terminator_name(self.name)

    @property
    def writes_terminator(self) -> bool:
        if not self.end_terminator:
            return False
        if self.end_name is not None:
            return True
        # bare top-level records: a terminator named like the record would read back as another one
        return self.terminator_name != self.name


def walk(entries: List[Entry]) -> Iterator[Entry]:
    for e in entries:
        yield e
        yield from walk(e.children)


# -----------------------------
# flat -> tree
# -----------------------------

def decorate(records: List[Record], strings: StringTable) -> List[Entry]:
    """Turn records into flat entries, numbering repeated names 0, 1, 2..."""
    seen: Dict[str, int] = {}
    out = []
    for rec in records:
        n = seen.get(rec.name, 0)
        seen[rec.name] = n + 1
        out.append(Entry(rec.name, rec.variables(strings), occurrence=n))
    return out


class _Frames:
    """Open scopes as (decorated name, stack depth), in push order."""

    def __init__(self) -> None:
        self.items: List[Tuple[str, int]] = []

    def __len__(self) -> int:
        return len(self.items)

    def push(self, key: str, depth: int) -> None:
        self.items.append((key, depth))

    def get(self, key: str) -> Optional[int]:
        for k, d in self.items:
            if k == key:
                return d
        return None

    def remove(self, key: str) -> None:
        self.items = [(k, d) for k, d in self.items if k != key]

    def deepest(self) -> str:
        best_key, best = "", -1
        for k, d in self.items:
            if d >= best:
                best_key, best = k, d
        return best_key


def _base_name(decorated: str) -> str:
    parts = decorated.replace("_LIST_BEG_", "_BEG_").split("_")
    return "_".join(parts[:max(len(parts) - 2, 0)])


def _last_child(node: Entry) -> Entry:
    return node.children[-1] if node.children else node


def build_tree(flat: List[Entry]) -> List[Entry]:
    # stack holds the same Entry objects that sit in the tree, so anything added
    # to an open scope is already in place when the scope closes
    stack: List[Entry] = []
    frames = _Frames()
    output: List[Entry] = []

    for item in flat:
        name = item.decorated
        node_type = name.split("_")[-2].lower()
        is_begin = node_type.endswith(BEGIN_SUFFIXES) and "_PTREE" not in name
        is_end = node_type.endswith("end") or "_PTREE" in name

        if is_begin:
            if stack:
                base = _base_name(frames.deepest())
                if name.startswith(base) and node_type.endswith(LIST_SUFFIXES):
                    _last_child(stack[-1]).children.append(item)
                else:
                    stack[-1].children.append(item)
            else:
                output.append(item)
            stack.append(item)
            frames.push(name, len(stack))

        elif is_end:
            if stack:
                top = stack[-1]
                top.end_terminator = True
                top.end_name = item.name
                top.end_at = len(top.children)
            else:
                log.debug("end record %s with no open scope dropped", name)
            key = ""
            for old, new in END_CANDIDATES:
                cand = name.replace(old, new)
                if frames.get(cand) is not None:
                    key = cand
                    break

            if len(frames) > 1:
                if frames.get(key) is not None:
                    stack.pop()
                    frames.remove(key)
                else:
                    log.debug("unmatched end record %s", name)
            else:
                if stack:
                    stack.pop()
                frames.remove(key)

        elif not frames or not stack:
            item.end_terminator = True
            output.append(item)

        else:
            deepest = frames.deepest()
            if name.startswith(_base_name(deepest)):
                stack[-1].children.append(item)
            elif not any(m in deepest for m in BEGIN_MARKERS) and "_PTREE" not in name:
                # implicit close of a leaf scope
                stack.pop()
                frames.remove(deepest)
                if stack:
                    stack[-1].children.append(item)
                else:
                    item.end_terminator = True
                    output.append(item)
            elif not stack[-1].children:
                # nothing to nest under yet
                stack[-1].children.append(item)
            else:
                stack[-1].children[-1].children.append(item)
                stack.append(item)
                frames.push(name, len(stack))

    if stack:
        log.debug("%d scope(s) still open at end of stream", len(stack))
    return output


# -----------------------------
# tree -> flat
# -----------------------------

def iter_flat(entries: List[Entry]) -> Iterator[Tuple[str, Optional[Entry]]]:
    """Pre-order (record name, entry); terminators come back as (name, None)."""
    for e in entries:
        yield e.name, e
        end_at = len(e.children) if e.end_at is None else min(e.end_at, len(e.children))
        yield from iter_flat(e.children[:end_at])
        if e.writes_terminator:
            yield e.terminator_name, None
        yield from iter_flat(e.children[end_at:])


def key_names(entries: List[Entry]) -> List[str]:
    return unique(name for name, _ in iter_flat(entries))


def distinct_strings(entries: List[Entry]) -> List[str]:
    return unique(v.value for e in walk(entries) for v in e.variables
                  if v.type == VarType.STRING and v.value is not None)


def flatten(entries: List[Entry], string_offsets: Dict[str, int], encoding: str) -> Tuple[bytes, int]:
    """Encode the tree as a flat record stream. Returns (bytes, record count)."""
    buf = bytearray()
    count = 0
    for name, e in iter_flat(entries):
        if e is None:
            buf += encode_terminator(name, encoding)
        else:
            buf += encode_record(name, e.variables, string_offsets, encoding)
        count += 1
    return bytes(buf), count
