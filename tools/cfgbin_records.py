# -*- coding: utf-8 -*-
"""
cfg.bin entry records.

One record:
  crc32(name)       u32
  param_count       u8
  type bytes        ceil(param_count / 4) bytes, 2 bits per param, low bits first
                    (0=String 1=Int 2=Float 3=Unknown)
  padding           up to the next 4-byte boundary unless (type_bytes + 1) % 4 == 0
                    (0xFF when we write it)
  params            param_count * 4 bytes
                    String = i32 offset into the string table (negative = absent)
                    Int    = i32
                    Float  = f32
                    Unknown= raw u32, kept as-is
"""
from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, List, Optional, Tuple, Union

import cfgbin_crc32
from cfgbin_errors import MalformedHeaderError
from cfgbin_tables import KeyTable, StringTable, encode_text

U8 = struct.Struct("<B")
U32 = struct.Struct("<I")
I32 = struct.Struct("<i")
F32 = struct.Struct("<f")

TERMINATOR_PAYLOAD = b"\x00\xFF\xFF\xFF"


class VarType(IntEnum):
    STRING = 0
    INT = 1
    FLOAT = 2
    UNKNOWN = 3


Value = Union[None, str, int, float]


@dataclass
class Variable:
    type: VarType
    value: Value

    @staticmethod
    def string(text: Optional[str]) -> "Variable":
        return Variable(VarType.STRING, text)


@dataclass
class Record:
    """A decoded record before string resolution: String params hold their raw offset."""
    name: str
    types: List[VarType] = field(default_factory=list)
    raw: List[Union[int, float]] = field(default_factory=list)
    pos: int = 0

    def string_offsets(self) -> List[Tuple[int, int]]:
        """(param_index, offset) for every String param that is not absent."""
        return [(i, v) for i, (t, v) in enumerate(zip(self.types, self.raw))
                if t == VarType.STRING and v >= 0]

    def variables(self, strings: StringTable) -> List[Variable]:
        out = []
        for t, v in zip(self.types, self.raw):
            if t == VarType.STRING:
                out.append(Variable(t, strings.read(v)))
            else:
                out.append(Variable(t, v))
        return out


def _unpack(st: struct.Struct, data: bytes, pos: int):
    if pos + st.size > len(data):
        raise MalformedHeaderError(f"Record data truncated at 0x{pos:X} (need {st.size} bytes, have {len(data) - pos})")
    return st.unpack_from(data, pos)[0]


def type_byte_count(param_count: int) -> int:
    return (param_count + 3) // 4


def decode_record(data: bytes, pos: int, keys: KeyTable) -> Tuple[Record, int]:
    """Decode the record at `pos` in the entries region. Returns (record, next_pos)."""
    start = pos
    crc = _unpack(U32, data, pos)
    pos += 4
    name = keys.resolve(crc)

    count = _unpack(U8, data, pos)
    pos += 1

    types: List[VarType] = []
    nbytes = type_byte_count(count)
    for _ in range(nbytes):
        b = _unpack(U8, data, pos)
        pos += 1
        for k in range(4):
            if len(types) < count:
                types.append(VarType((b >> (2 * k)) & 3))

    if (nbytes + 1) % 4 != 0:
        pos += 4 - (pos % 4)

    raw: List[Union[int, float]] = []
    for t in types:
        if t == VarType.FLOAT:
            raw.append(_unpack(F32, data, pos))
        elif t == VarType.UNKNOWN:
            raw.append(_unpack(U32, data, pos))
        else:
            raw.append(_unpack(I32, data, pos))
        pos += 4
    return Record(name=name, types=types, raw=raw, pos=start), pos


def decode_records(data: bytes, count: int, keys: KeyTable) -> List[Record]:
    records = []
    pos = 0
    for _ in range(count):
        rec, pos = decode_record(data, pos, keys)
        records.append(rec)
    return records


def encode_types(types: List[VarType]) -> bytes:
    out = bytearray()
    for i in range(type_byte_count(len(types))):
        desc = 0
        for j in range(4 * i, min(4 * (i + 1), len(types))):
            desc |= int(types[j]) << ((j % 4) * 2)
        out.append(desc)
    while (len(out) + 1) % 4 != 0:
        out.append(0xFF)
    return bytes(out)


def encode_record(name: str, variables: List[Variable], string_offsets: Dict[str, int], encoding: str) -> bytes:
    buf = bytearray(U32.pack(cfgbin_crc32.compute(encode_text(name, encoding))))
    buf += U8.pack(len(variables))
    buf += encode_types([v.type for v in variables])
    for var in variables:
        if var.type == VarType.STRING:
            off = string_offsets.get(var.value, -1) if var.value is not None else -1
            buf += I32.pack(off)
        elif var.type == VarType.INT:
            buf += I32.pack(var.value)
        elif var.type == VarType.FLOAT:
            buf += F32.pack(var.value)
        else:
            buf += U32.pack(var.value & 0xFFFFFFFF)
    return bytes(buf)


def encode_terminator(name: str, encoding: str) -> bytes:
    return U32.pack(cfgbin_crc32.compute(encode_text(name, encoding))) + TERMINATOR_PAYLOAD
