# -*- coding: utf-8 -*-
"""
Table-driven CRC-32 (IEEE / zlib variant).

cfg.bin files never store record names inline; each record carries
crc32(name_bytes) and the key table maps it back to the name.
"""
from __future__ import annotations

from typing import List, Optional

POLYNOMIAL = 0xEDB88320
SEED = 0xFFFFFFFF

_TABLE: Optional[List[int]] = None


def _build_table() -> List[int]:
    table = []
    for i in range(256):
        entry = i
        for _ in range(8):
            if entry & 1:
                entry = (entry >> 1) ^ POLYNOMIAL
            else:
                entry >>= 1
        table.append(entry)
    return table


def compute(data: bytes) -> int:
    global _TABLE
    if _TABLE is None:
        _TABLE = _build_table()
    table = _TABLE
    h = SEED
    for b in data:
        h = (h >> 8) ^ table[(b ^ h) & 0xFF]
    return ~h & 0xFFFFFFFF
