from __future__ import annotations

import zlib

import pytest

import cfgbin_crc32


def test_check_value():
    assert cfgbin_crc32.compute(b"123456789") == 0xCBF43926


def test_empty_input():
    assert cfgbin_crc32.compute(b"") == 0


@pytest.mark.parametrize("name", ["TEXT_INFO_BEGIN", "_PTREE", "CHARA_NAME", "テキスト"])
def test_matches_zlib(name):
    for enc in ("utf-8", "cp932"):
        raw = name.encode(enc)
        assert cfgbin_crc32.compute(raw) == zlib.crc32(raw)
