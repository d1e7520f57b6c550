# -*- coding: utf-8 -*-
"""Exceptions raised by the cfg.bin codec and its text tools."""
from __future__ import annotations


class CfgBinError(Exception):
    pass


class MalformedHeaderError(CfgBinError):
    """Truncated file, or a header/table/record offset outside the buffer."""


class UnknownKeyError(CfgBinError):
    def __init__(self, crc: int) -> None:
        super().__init__(f"Unknown CRC32 key: 0x{crc:08X}")
        self.crc = crc


class EncodingError(CfgBinError):
    pass


class InterchangeFormatError(CfgBinError):
    """Bad JSON/CSV/text input, or a text-line count that does not match the file."""


class PatchError(CfgBinError):
    pass
