# -*- coding: utf-8 -*-
"""
Level-5 cfg.bin container.

Layout (little-endian):
  0x00 entry_count          i32
  0x04 string_table_offset  i32
  0x08 string_table_length  i32
  0x0C string_table_count   i32   (informational)
  0x10 records ...          up to string_table_offset (0xFF padding to 16)
  string table              string_table_length bytes (0xFF padding to 16)
  key table                 at round_up(string_table_offset + string_table_length, 16)
  footer                    01 74 32 62 | u16 0x01FE | u16 encoding flag | u16 1 | 0xFF padding to 16

The encoding flag therefore sits at file_size - 10:
  0 -> Shift-JIS, anything else -> UTF-8 (0x0001, 0x0100, 0x0101 seen; written back unchanged)
"""
from __future__ import annotations

import logging
import struct
from dataclasses import dataclass, field
from typing import List

from cfgbin_errors import MalformedHeaderError
from cfgbin_records import Record, decode_records
from cfgbin_tables import (
    SHIFT_JIS,
    UTF8,
    KeyTable,
    StringTable,
    encoding_from_flag,
    round_up,
    write_alignment,
)
from cfgbin_tree import Entry, build_tree, decorate, distinct_strings, flatten, key_names

log = logging.getLogger(__name__)

HEADER = struct.Struct("<4i")
FOOTER = struct.Struct("<4sHHH")
FOOTER_MAGIC = b"\x01\x74\x32\x62"
FOOTER_TAG = 0x01FE
FOOTER_VERSION = 1
ENCODING_FLAG_POS = 10  # from end of file

FLAG_SHIFT_JIS = 0x0000
FLAG_UTF8 = 0x0001


@dataclass
class CfgBinHeader:
    entry_count: int
    string_table_offset: int
    string_table_length: int
    string_table_count: int

    @staticmethod
    def parse(buf: bytes) -> "CfgBinHeader":
        if len(buf) < HEADER.size:
            raise MalformedHeaderError(f"File too small for a cfg.bin header ({len(buf)} bytes)")
        h = CfgBinHeader(*HEADER.unpack_from(buf, 0))
        if h.entry_count < 0:
            raise MalformedHeaderError(f"Negative entry count: {h.entry_count}")
        if not HEADER.size <= h.string_table_offset <= len(buf):
            raise MalformedHeaderError(f"string_table_offset 0x{h.string_table_offset:X} outside file ({len(buf)} bytes)")
        if h.string_table_length < 0 or h.string_table_offset + h.string_table_length > len(buf):
            raise MalformedHeaderError(
                f"String table (0x{h.string_table_offset:X}, {h.string_table_length}) runs past end of file")
        return h

    @property
    def string_table_end(self) -> int:
        return self.string_table_offset + self.string_table_length

    @property
    def key_table_offset(self) -> int:
        return round_up(self.string_table_end, 16)


def read_encoding_flag(buf: bytes) -> int:
    if len(buf) < ENCODING_FLAG_POS:
        return FLAG_UTF8
    return struct.unpack_from("<H", buf, len(buf) - ENCODING_FLAG_POS)[0]


@dataclass
class RawCfgBin:
    """A parsed file before tree reconstruction; records still carry raw string offsets."""
    buf: bytes
    header: CfgBinHeader
    encoding_flag: int
    keys: KeyTable
    strings: StringTable
    records: List[Record]

    @property
    def encoding(self) -> str:
        return encoding_from_flag(self.encoding_flag)

    @staticmethod
    def parse(buf: bytes) -> "RawCfgBin":
        flag = read_encoding_flag(buf)
        encoding = encoding_from_flag(flag)
        header = CfgBinHeader.parse(buf)
        strings = StringTable(buf[header.string_table_offset:header.string_table_end], encoding)
        keys = KeyTable.parse(buf, header.key_table_offset, encoding)
        records = decode_records(buf[HEADER.size:header.string_table_offset], header.entry_count, keys)
        log.debug("parsed %d records, %d keys, encoding=%s (flag 0x%04X)",
                  len(records), len(keys), encoding, flag)
        return RawCfgBin(buf, header, flag, keys, strings, records)


@dataclass
class CfgBin:
    entries: List[Entry] = field(default_factory=list)
    encoding_flag: int = FLAG_UTF8

    @property
    def encoding(self) -> str:
        return encoding_from_flag(self.encoding_flag)

    @staticmethod
    def new(entries: List[Entry], encoding: str = UTF8) -> "CfgBin":
        return CfgBin(entries, FLAG_SHIFT_JIS if encoding == SHIFT_JIS else FLAG_UTF8)

    @staticmethod
    def load(buf: bytes) -> "CfgBin":
        raw = RawCfgBin.parse(buf)
        return CfgBin(build_tree(decorate(raw.records, raw.strings)), raw.encoding_flag)

    def save(self) -> bytes:
        enc = self.encoding
        string_blob, string_offsets = StringTable.build(distinct_strings(self.entries), enc)
        body, count = flatten(self.entries, string_offsets, enc)

        buf = bytearray(HEADER.size)
        buf += body
        write_alignment(buf)
        string_table_offset = len(buf)

        if string_blob:
            buf += string_blob
            write_alignment(buf)

        buf += KeyTable.build(key_names(self.entries), enc)
        buf += FOOTER.pack(FOOTER_MAGIC, FOOTER_TAG, self.encoding_flag, FOOTER_VERSION)
        write_alignment(buf)

        HEADER.pack_into(buf, 0, count, string_table_offset, len(string_blob), len(string_offsets))
        return bytes(buf)
