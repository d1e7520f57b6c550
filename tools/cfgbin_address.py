# -*- coding: utf-8 -*-
"""
Address-keyed text patching for cfg.bin.

Every String parameter points at a byte offset in the string table. This mode
keys text by that offset and overwrites the bytes in a copy of the original
file, so record layout, CRCs, key table and every other offset stay untouched.

Slot = [start, end) inside the string table, end is one past the 0x00.
A replacement must fit in budget - 1 bytes; the rest of the slot is NUL-padded.

Offsets may point into the middle of another string (suffix sharing). Such an
inner slot shares its tail with the outer one, so the two cannot both be
patched, and patching the outer one changes what the inner one reads.

CSV columns:
  start_offset_hex, start_offset_dec, byte_budget, ref_count, entry, text, translation
Rows with an empty translation are left alone.
"""
from __future__ import annotations

import bisect
import csv
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from cfgbin_errors import EncodingError, InterchangeFormatError, PatchError
from cfgbin_file import RawCfgBin
from cfgbin_texts import TextCorrelator

log = logging.getLogger(__name__)


@dataclass
class Slot:
    start: int       # offset inside the string table
    end: int         # exclusive, includes the 0x00 terminator
    budget: int      # end - start
    ref_count: int
    entry: str       # first record referencing it
    text: str


@dataclass
class AddressUpdate:
    offset: int
    value: str


def collect_slots(raw: RawCfgBin) -> Dict[int, Slot]:
    slots: Dict[int, Slot] = {}
    for rec in raw.records:
        for _, off in rec.string_offsets():
            slot = slots.get(off)
            if slot is not None:
                slot.ref_count += 1
                continue
            text = raw.strings.read(off)
            end = raw.strings.slot_end(off)
            slots[off] = Slot(start=off, end=end, budget=end - off, ref_count=1, entry=rec.name, text=text)
    return slots


class AddressTexts(TextCorrelator):
    def __init__(self, buf: bytes) -> None:
        self.raw = RawCfgBin.parse(buf)
        self.slots = collect_slots(self.raw)
        self._starts = sorted(self.slots)

    def extract(self) -> List[Slot]:
        return [self.slots[s] for s in self._starts]

    def _inner_refs(self, slot: Slot) -> List[int]:
        i = bisect.bisect_right(self._starts, slot.start)
        j = bisect.bisect_left(self._starts, slot.end)
        return self._starts[i:j]

    def _encode(self, slot: Slot, value: str) -> bytes:
        try:
            nb = value.encode(self.raw.encoding)
        except UnicodeEncodeError as e:
            raise EncodingError(
                f"[ENCODING] offset=0x{slot.start:X} {e.reason}: {value[e.start:e.end]!r} "
                f"cannot be written as {self.raw.encoding}") from None
        if len(nb) > slot.budget - 1:
            over = len(nb) - (slot.budget - 1)
            raise PatchError(
                f"[OVERFLOW] offset=0x{slot.start:X} budget={slot.budget - 1} new_len={len(nb)} over_by={over}\n"
                f"ORIG={slot.text}\n"
                f"NEW={value}")
        if self.raw.strings.blob[slot.end - 1] != 0:
            raise PatchError(f"[SLOT] offset=0x{slot.start:X} string is not NUL-terminated inside the string table")
        return nb

    def apply(self, updates: List[AddressUpdate], dry_run: bool = False) -> Optional[bytes]:
        """Validate every update, then overwrite the slots in a copy of the file. None on dry run."""
        wanted: Dict[int, str] = {}
        for u in updates:
            if not u.value:
                continue
            if u.offset not in self.slots:
                raise PatchError(f"[SLOT] offset=0x{u.offset:X} is not referenced by any record")
            if wanted.get(u.offset, u.value) != u.value:
                raise PatchError(f"[DUPLICATE] offset=0x{u.offset:X} has two different translations")
            wanted[u.offset] = u.value

        patches = []
        prev: Optional[Slot] = None
        for off in sorted(wanted):
            slot = self.slots[off]
            if prev is not None and slot.start < prev.end:
                raise PatchError(
                    f"[OVERLAP] offset=0x{slot.start:X} lies inside the slot at 0x{prev.start:X}; "
                    f"only one of them can be patched")
            for inner in self._inner_refs(slot):
                log.warning("offset 0x%X is a suffix of patched slot 0x%X and will read the new text's tail",
                            inner, slot.start)
            patches.append((slot, self._encode(slot, wanted[off])))
            prev = slot

        if dry_run:
            return None

        out = bytearray(self.raw.buf)
        base = self.raw.header.string_table_offset
        for slot, nb in patches:
            pos = base + slot.start
            out[pos:pos + len(nb)] = nb
            out[pos + len(nb):pos + slot.budget] = b"\x00" * (slot.budget - len(nb))
        log.info("patched %d slot(s) in place", len(patches))
        return bytes(out)


# -----------------------------
# CSV I/O
# -----------------------------

CSV_FIELDS = [
    "start_offset_hex",
    "start_offset_dec",
    "byte_budget",
    "ref_count",
    "entry",
    "text",
    "translation",
]


def write_slots_csv(out_path: Path, slots: List[Slot]) -> None:
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with out_path.open("w", encoding="utf-8-sig", newline="") as f:
        w = csv.DictWriter(f, fieldnames=CSV_FIELDS)
        w.writeheader()
        for s in slots:
            w.writerow({
                "start_offset_hex": f"0x{s.start:X}",
                "start_offset_dec": str(s.start),
                "byte_budget": str(s.budget),
                "ref_count": str(s.ref_count),
                "entry": s.entry,
                "text": s.text,
                "translation": "",
            })


def read_updates_csv(p: Path) -> List[AddressUpdate]:
    try:
        df = pd.read_csv(p, dtype=str, keep_default_na=False, encoding="utf-8-sig")
    except pd.errors.EmptyDataError:
        raise InterchangeFormatError(f"[CSV] {p} is empty") from None
    if "translation" not in df.columns:
        raise InterchangeFormatError("[CSV] missing column: translation")
    if "start_offset_dec" not in df.columns and "start_offset_hex" not in df.columns:
        raise InterchangeFormatError("[CSV] missing column: start_offset_dec (or start_offset_hex)")

    updates: List[AddressUpdate] = []
    for idx, row in enumerate(df.fillna("").to_dict(orient="records"), start=2):
        value = row["translation"]
        if not value:
            continue
        off_s = (row.get("start_offset_dec") or "").strip()
        try:
            off = int(off_s) if off_s else int((row.get("start_offset_hex") or "").strip(), 16)
        except ValueError:
            raise InterchangeFormatError(f"[CSV] invalid offset at row {idx}: {off_s or row.get('start_offset_hex')!r}") from None
        updates.append(AddressUpdate(off, value))
    return updates
