# -*- coding: utf-8 -*-
"""
cfg.bin key table + string table.

Key table (at round_up(string_table_end, 16)):
  0x00 key_length         u32   whole section incl. padding
  0x04 key_count          u32
  0x08 key_string_offset  u32   relative to section start
  0x0C key_string_length  u32
  0x10 key_count * (crc32 u32, name_offset u32)   name_offset relative to the name blob
  ...  0xFF padding to 16
  name blob: NUL-terminated names, 0xFF padding to 16

String table:
  NUL-terminated texts. Records point at byte offsets into the blob, and an
  offset may land in the middle of another string (suffix sharing), so reads
  are done per offset, never by walking the blob.
"""
from __future__ import annotations

import logging
import struct
from typing import Dict, Iterable, List, Optional, Tuple

import cfgbin_crc32
from cfgbin_errors import MalformedHeaderError, UnknownKeyError

log = logging.getLogger(__name__)

SHIFT_JIS = "cp932"
UTF8 = "utf-8"

KEY_HEADER = struct.Struct("<4i")
KEY_ENTRY = struct.Struct("<Ii")

PAD_BYTE = 0xFF


def encoding_from_flag(flag: int) -> str:
    return SHIFT_JIS if flag == 0 else UTF8


def decode_text(b: bytes, encoding: str) -> str:
    return b.decode(encoding, errors="replace")


def encode_text(s: str, encoding: str) -> bytes:
    # unmappable chars become &#NNNN; instead of failing the whole save
    return s.encode(encoding, errors="xmlcharrefreplace")


def round_up(n: int, exp: int) -> int:
    return ((n + exp - 1) // exp) * exp


def write_alignment(buf: bytearray, alignment: int = 16, pad_byte: int = PAD_BYTE) -> None:
    rem = len(buf) % alignment
    if rem:
        buf.extend(bytes([pad_byte]) * (alignment - rem))


def unique(items: Iterable[str]) -> List[str]:
    seen = set()
    out = []
    for x in items:
        if x not in seen:
            seen.add(x)
            out.append(x)
    return out


# -----------------------------
# Key table
# -----------------------------

class KeyTable:
    def __init__(self, names: Optional[Dict[int, str]] = None) -> None:
        self.names: Dict[int, str] = dict(names or {})

    def __len__(self) -> int:
        return len(self.names)

    def __contains__(self, crc: int) -> bool:
        return crc in self.names

    def resolve(self, crc: int) -> str:
        try:
            return self.names[crc]
        except KeyError:
            raise UnknownKeyError(crc) from None

    @staticmethod
    def parse(buf: bytes, offset: int, encoding: str) -> "KeyTable":
        if offset < 0 or offset + KEY_HEADER.size > len(buf):
            raise MalformedHeaderError(f"Key table header at 0x{offset:X} is outside the file ({len(buf)} bytes)")
        key_length, key_count, str_off, str_len = KEY_HEADER.unpack_from(buf, offset)
        if key_length < KEY_HEADER.size or offset + key_length > len(buf):
            raise MalformedHeaderError(f"Key table length {key_length} at 0x{offset:X} runs past end of file")
        data = buf[offset:offset + key_length]
        if key_count < 0 or KEY_HEADER.size + key_count * KEY_ENTRY.size > key_length:
            raise MalformedHeaderError(f"Key table count {key_count} does not fit in {key_length} bytes")
        if str_off < 0 or str_len < 0 or str_off + str_len > key_length:
            raise MalformedHeaderError(f"Key name blob ({str_off}, {str_len}) outside key table")
        blob = data[str_off:str_off + str_len]

        names: Dict[int, str] = {}
        for i in range(key_count):
            crc, name_off = KEY_ENTRY.unpack_from(data, KEY_HEADER.size + i * KEY_ENTRY.size)
            if name_off < 0 or name_off > len(blob):
                raise MalformedHeaderError(f"Key name offset {name_off} for 0x{crc:08X} outside name blob")
            end = blob.find(b"\x00", name_off)
            if end < 0:
                end = len(blob)
            names[crc] = decode_text(blob[name_off:end], encoding)
        log.debug("key table: %d names", len(names))
        return KeyTable(names)

    @staticmethod
    def build(names: List[str], encoding: str) -> bytes:
        """Serialize `names` (already distinct, in write order) as a padded key section."""
        buf = bytearray(KEY_HEADER.size)
        name_blob = bytearray()
        for name in names:
            raw = encode_text(name, encoding)
            buf += KEY_ENTRY.pack(cfgbin_crc32.compute(raw), len(name_blob))
            name_blob += raw + b"\x00"
        write_alignment(buf)
        str_off = len(buf)
        buf += name_blob
        write_alignment(buf)
        KEY_HEADER.pack_into(buf, 0, len(buf), len(names), str_off, len(name_blob))
        return bytes(buf)


# -----------------------------
# String table
# -----------------------------

def read_string_at(blob: bytes, offset: int, encoding: str) -> Optional[str]:
    """Text starting at `offset` up to the next NUL (or end of blob). Negative offset = absent."""
    if offset < 0:
        return None
    if offset >= len(blob):
        raise MalformedHeaderError(f"String offset {offset} outside string table ({len(blob)} bytes)")
    end = blob.find(b"\x00", offset)
    if end < 0:
        end = len(blob)
    return decode_text(blob[offset:end], encoding)


class StringTable:
    def __init__(self, blob: bytes, encoding: str) -> None:
        self.blob = blob
        self.encoding = encoding
        self._cache: Dict[int, Optional[str]] = {}

    def read(self, offset: int) -> Optional[str]:
        if offset not in self._cache:
            self._cache[offset] = read_string_at(self.blob, offset, self.encoding)
        return self._cache[offset]

    def slot_end(self, offset: int) -> int:
        """One past the NUL terminating the string at `offset` (len(blob) if unterminated)."""
        end = self.blob.find(b"\x00", offset)
        return len(self.blob) if end < 0 else end + 1

    @staticmethod
    def build(strings: List[str], encoding: str) -> Tuple[bytes, Dict[str, int]]:
        """
        Materialize every distinct string as its own NUL-terminated allocation.
        Returns (unpadded blob, {text: offset}).
        """
        blob = bytearray()
        offsets: Dict[str, int] = {}
        for s in strings:
            if s in offsets:
                continue
            offsets[s] = len(blob)
            blob += encode_text(s, encoding) + b"\x00"
        return bytes(blob), offsets
