from __future__ import annotations

import struct

import pytest

from cfgbin_errors import MalformedHeaderError
from cfgbin_file import CfgBin, CfgBinHeader, RawCfgBin, read_encoding_flag
from cfgbin_records import Variable, VarType
from cfgbin_tables import round_up
from cfgbin_tree import Entry


def shape(entries):
    return [(e.name, [(v.type, v.value) for v in e.variables], e.end_terminator, shape(e.children))
            for e in entries]


@pytest.fixture
def mixed_file(make_cfgbin):
    return make_cfgbin(
        [
            ("FOO_BEG", [("i", 7)]),
            ("FOO_TEXT", [("s", 0), ("f", 1.5), ("u", 0xDEADBEEF), ("s", -1)]),
            ("FOO_TEXT", [("s", 2)]),
            ("FOO_END", []),
        ],
        strings=b"abcdef\x00",
        string_count=2,
    )


def test_load(mixed_file):
    cfg = CfgBin.load(mixed_file)
    assert shape(cfg.entries) == [
        ("FOO_BEG", [(VarType.INT, 7)], True, [
            ("FOO_TEXT", [(VarType.STRING, "abcdef"), (VarType.FLOAT, 1.5),
                     (VarType.UNKNOWN, 0xDEADBEEF), (VarType.STRING, None)], False, []),
            ("FOO_TEXT", [(VarType.STRING, "cdef")], False, []),
        ]),
    ]
    assert cfg.encoding == "utf-8"


def test_round_trip(mixed_file):
    cfg = CfgBin.load(mixed_file)
    again = CfgBin.load(cfg.save())
    assert shape(again.entries) == shape(cfg.entries)


def test_saved_layout(mixed_file):
    out = CfgBin.load(mixed_file).save()
    h = CfgBinHeader.parse(out)
    assert h.entry_count == 4
    assert h.string_table_offset % 16 == 0
    assert out[h.string_table_offset:h.string_table_end] == b"abcdef\x00cdef\x00"
    assert h.string_table_count == 2
    assert out[h.key_table_offset + 4:h.key_table_offset + 8] == struct.pack("<i", 3)
    assert out[-16:-12] == b"\x01\x74\x32\x62"
    assert len(out) % 16 == 0


def test_raw_parse_keeps_offsets(mixed_file):
    raw = RawCfgBin.parse(mixed_file)
    assert [r.name for r in raw.records] == ["FOO_BEG", "FOO_TEXT", "FOO_TEXT", "FOO_END"]
    assert [r.string_offsets() for r in raw.records] == [[], [(0, 0)], [(0, 2)], []]


def test_shift_jis_file(make_cfgbin):
    text = "テスト"
    buf = make_cfgbin([("NAME", [("s", 0)])], strings=text.encode("cp932") + b"\x00", flag=0)
    cfg = CfgBin.load(buf)
    assert cfg.encoding == "cp932"
    assert cfg.entries[0].variables[0].value == text

    out = cfg.save()
    assert read_encoding_flag(out) == 0
    assert CfgBin.load(out).entries[0].variables[0].value == text


def test_dialect_flag_preserved(make_cfgbin):
    buf = make_cfgbin([("NAME", [("s", 0)])], strings="ü\x00".encode("utf-8"), flag=0x0101)
    cfg = CfgBin.load(buf)
    assert cfg.encoding == "utf-8"
    assert read_encoding_flag(cfg.save()) == 0x0101


def test_new_tree_saves_and_loads():
    root = Entry("FOO_BEG", [Variable(VarType.INT, 1)], [Entry("FOO_TEXT", [Variable.string("hi")])],
                 end_terminator=True)
    out = CfgBin.new([root]).save()
    assert shape(CfgBin.load(out).entries) == shape([root])


def test_no_strings(make_cfgbin):
    buf = make_cfgbin([("FOO_BEG", [("i", 1)]), ("FOO_END", [])])
    out = CfgBin.load(buf).save()
    h = CfgBinHeader.parse(out)
    assert h.string_table_length == 0
    assert h.key_table_offset == round_up(h.string_table_offset, 16)


def test_too_small():
    with pytest.raises(MalformedHeaderError):
        CfgBin.load(b"\x00" * 8)


def test_string_table_past_end(mixed_file):
    bad = bytearray(mixed_file)
    struct.pack_into("<i", bad, 8, len(bad))
    with pytest.raises(MalformedHeaderError):
        CfgBin.load(bytes(bad))


def test_string_offset_outside_table(make_cfgbin):
    buf = make_cfgbin([("NAME", [("s", 40)])], strings=b"abc\x00")
    with pytest.raises(MalformedHeaderError):
        CfgBin.load(buf)


@pytest.mark.parametrize("records", [
    [("FOO_START", []), ("BAR", [("i", 1)]), ("FOO_END", []), ("BAZ", [("i", 2)])],
    [("FOO_BEG", []), ("A", []), ("B", [("i", 3)]), ("FOO_END", []), ("C", [])],
    [("PTREE", [("s", 0)]), ("PTVAL", [("i", 4)]), ("_PTREE", []), ("AFTER", [])],
    [("ITEM_LIST_BEG", [("i", 2)]), ("ITEM_COUNT", [("i", 2)]), ("ITEM_BEG", []), ("ITEM_NAME", [("s", 0)]),
     ("ITEM_END", []), ("ITEM_LIST_END", []), ("TAIL", [])],
    [("ITEM_LIST_BEG", []), ("ITEM_BEG", []), ("ITEM", [("i", 0)]), ("ITEM_END", []),
     ("ITEM_BEG", []), ("ITEM", [("i", 1)]), ("ITEM_END", []), ("ITEM_LIST_END", []), ("TAIL", [])],
], ids=["start", "nested-leaf-scope", "ptree", "list-beg", "list-of-blocks"])
def test_round_trip_layouts(make_cfgbin, records):
    buf = make_cfgbin(records, strings=b"name\x00")
    cfg = CfgBin.load(buf)
    again = CfgBin.load(cfg.save())
    assert shape(again.entries) == shape(cfg.entries)
    assert CfgBinHeader.parse(cfg.save()).entry_count == len(records)


def test_start_scope_keeps_end_record(make_cfgbin):
    buf = make_cfgbin([("FOO_START", []), ("BAR", []), ("FOO_END", []), ("BAZ", [])])
    out = CfgBin.load(buf).save()
    assert [r.name for r in RawCfgBin.parse(out).records] == ["FOO_START", "BAR", "FOO_END", "BAZ"]
