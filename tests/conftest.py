# -*- coding: utf-8 -*-
"""
Hand-assembled cfg.bin images.

Files are built here with struct + zlib.crc32 rather than with the codec under
test, so decode tests do not depend on the encoder.
"""
from __future__ import annotations

import struct
import zlib
from typing import List, Sequence, Tuple

import pytest

TAGS = {"s": 0, "i": 1, "f": 2, "u": 3}
FMT = {"s": "<i", "i": "<i", "f": "<f", "u": "<I"}

Param = Tuple[str, object]


def _pad(buf: bytearray, n: int = 16) -> None:
    while len(buf) % n:
        buf.append(0xFF)


def _record(name: str, params: Sequence[Param], encoding: str) -> bytes:
    out = bytearray(struct.pack("<I", zlib.crc32(name.encode(encoding))))
    out.append(len(params))
    types = bytearray()
    for i in range(0, len(params), 4):
        b = 0
        for j, (tag, _) in enumerate(params[i:i + 4]):
            b |= TAGS[tag] << (2 * j)
        types.append(b)
    while (len(types) + 1) % 4:
        types.append(0xFF)
    out += types
    for tag, value in params:
        out += struct.pack(FMT[tag], value)
    return bytes(out)


def _key_table(names: List[str], encoding: str) -> bytes:
    entries = bytearray(16)
    blob = bytearray()
    for name in names:
        raw = name.encode(encoding)
        entries += struct.pack("<Ii", zlib.crc32(raw), len(blob))
        blob += raw + b"\x00"
    _pad(entries)
    str_off = len(entries)
    entries += blob
    _pad(entries)
    struct.pack_into("<4i", entries, 0, len(entries), len(names), str_off, len(blob))
    return bytes(entries)


def build_cfgbin(records: Sequence[Tuple[str, Sequence[Param]]], strings: bytes = b"",
                 flag: int = 1, string_count: int = 0) -> bytes:
    """records: [(name, [("s", offset) | ("i", n) | ("f", x) | ("u", raw)])]"""
    encoding = "cp932" if flag == 0 else "utf-8"
    buf = bytearray(16)
    for name, params in records:
        buf += _record(name, params, encoding)
    _pad(buf)
    sto = len(buf)
    if strings:
        buf += strings
        _pad(buf)

    names: List[str] = []
    for name, _ in records:
        if name not in names:
            names.append(name)
    buf += _key_table(names, encoding)
    buf += struct.pack("<4sHHH", b"\x01\x74\x32\x62", 0x01FE, flag, 1)
    _pad(buf)
    struct.pack_into("<4i", buf, 0, len(records), sto, len(strings), string_count)
    return bytes(buf)


@pytest.fixture
def make_cfgbin():
    return build_cfgbin


@pytest.fixture
def text_file() -> bytes:
    """A small dialogue file: one TEXT_INFO scope holding two lines of text."""
    return build_cfgbin(
        [
            ("TEXT_INFO_BEGIN", [("i", 2)]),
            ("TEXT_INFO", [("i", 100), ("s", 0)]),
            ("TEXT_INFO", [("i", 101), ("s", 6)]),
            ("TEXT_INFO_END", []),
        ],
        strings=b"Hello\x00World\x00",
        string_count=2,
    )
