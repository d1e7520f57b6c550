#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
cfg_bin text tool: extract/update text fields of Level-5 cfg.bin files.

Sequential mode (rebuilds the file; strings may grow):
  python cfgbin_tool.py extract    chara_text.cfg.bin                 -> chara_text.cfg.bin.json
  python cfgbin_tool.py update     chara_text.cfg.bin chara_text.cfg.bin.json
                                                                      -> chara_text_updated.cfg.bin
  python cfgbin_tool.py export-txt chara_text.cfg.bin                 -> chara_text.cfg.bin.txt
  python cfgbin_tool.py import-txt chara_text.cfg.bin chara_text.cfg.bin.txt

Address mode (in place; offsets never move, each text must fit its slot):
  python cfgbin_tool.py export-addr chara_text.cfg.bin                -> chara_text.cfg.bin.csv
  python cfgbin_tool.py apply-addr  chara_text.cfg.bin chara_text.cfg.bin.csv [--dry-run]

Notes:
- In JSON / txt, an empty value means "no text" (null string offset).
- In the address CSV, an empty translation keeps the original text.
- update/import-txt/apply-addr never overwrite the input; default output is <name>_updated.cfg.bin.
"""
from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Optional

from cfgbin_address import AddressTexts, read_updates_csv, write_slots_csv
from cfgbin_errors import CfgBinError
from cfgbin_texts import SequentialTexts, dump_json, dump_lines, load_json, parse_lines, updates_from_lines


def updated_path(cfg_path: Path) -> Path:
    """a.cfg.bin -> a_updated.cfg.bin"""
    stem = cfg_path.stem
    if stem.endswith(".cfg"):
        return cfg_path.with_name(f"{stem[:-4]}_updated.cfg.bin")
    return cfg_path.with_name(f"{stem}_updated.cfg.bin")


def side_path(cfg_path: Path, ext: str) -> Path:
    return cfg_path.with_name(cfg_path.name + ext)


# -----------------------------
# Commands
# -----------------------------

def cmd_extract(args: argparse.Namespace) -> int:
    cfg_path = Path(args.cfg)
    out = Path(args.out) if args.out else side_path(cfg_path, ".json")
    texts = SequentialTexts.from_bytes(cfg_path.read_bytes()).extract()
    out.write_text(dump_json(texts), encoding="utf-8")
    print(f"[OK] Extracted {len(texts)} text entries -> {out}")
    return 0


def cmd_update(args: argparse.Namespace) -> int:
    cfg_path = Path(args.cfg)
    out = Path(args.out) if args.out else updated_path(cfg_path)
    seq = SequentialTexts.from_bytes(cfg_path.read_bytes())
    updates = load_json(Path(args.json).read_text(encoding="utf-8-sig"))
    out.write_bytes(seq.apply(updates))
    print(f"[OK] Written {out} ({len(updates)} text entries)")
    return 0


def cmd_export_txt(args: argparse.Namespace) -> int:
    cfg_path = Path(args.cfg)
    out = Path(args.out) if args.out else side_path(cfg_path, ".txt")
    texts = SequentialTexts.from_bytes(cfg_path.read_bytes()).extract()
    with out.open("w", encoding="utf-8", newline="") as f:
        f.write(dump_lines(texts))
    print(f"[OK] Exported {len(texts)} lines -> {out}")
    return 0


def cmd_import_txt(args: argparse.Namespace) -> int:
    cfg_path = Path(args.cfg)
    out = Path(args.out) if args.out else updated_path(cfg_path)
    seq = SequentialTexts.from_bytes(cfg_path.read_bytes())
    with Path(args.txt).open("r", encoding="utf-8-sig", newline="") as f:
        lines = parse_lines(f.read())
    updates = updates_from_lines(seq.extract(), lines)
    out.write_bytes(seq.apply(updates))
    print(f"[OK] Written {out} ({len(updates)} lines applied)")
    return 0


def cmd_export_addr(args: argparse.Namespace) -> int:
    cfg_path = Path(args.cfg)
    out = Path(args.out) if args.out else side_path(cfg_path, ".csv")
    slots = AddressTexts(cfg_path.read_bytes()).extract()
    write_slots_csv(out, slots)
    print(f"[OK] Exported {len(slots)} string slots -> {out}")
    return 0


def cmd_apply_addr(args: argparse.Namespace) -> int:
    cfg_path = Path(args.cfg)
    out = Path(args.out) if args.out else updated_path(cfg_path)
    addr = AddressTexts(cfg_path.read_bytes())
    updates = read_updates_csv(Path(args.csv))
    patched = addr.apply(updates, dry_run=args.dry_run)
    if patched is None:
        print(f"[OK] dry-run passed ({len(updates)} translations fit; no file written).")
        return 0
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(patched)
    print(f"[OK] wrote patched cfg.bin: {out}")
    return 0


# -----------------------------
# CLI
# -----------------------------

def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Extract and update text fields in Level-5 cfg.bin files.")
    p.add_argument("-v", "--verbose", action="count", default=0, help="-v for info, -vv for debug logging")
    sub = p.add_subparsers(dest="cmd", required=True)

    e = sub.add_parser("extract", help="Extract text fields to JSON.")
    e.add_argument("cfg", help="Path to .cfg.bin")
    e.add_argument("--out", default="", help="Output JSON (default: <cfg>.json)")
    e.set_defaults(func=cmd_extract)

    u = sub.add_parser("update", help="Write text fields from JSON into a rebuilt cfg.bin.")
    u.add_argument("cfg", help="Path to original .cfg.bin")
    u.add_argument("json", help="JSON produced by 'extract' with edited values")
    u.add_argument("--out", default="", help="Output path (default: <name>_updated.cfg.bin)")
    u.set_defaults(func=cmd_update)

    et = sub.add_parser("export-txt", help="Export text fields as one escaped line per field.")
    et.add_argument("cfg", help="Path to .cfg.bin")
    et.add_argument("--out", default="", help="Output text file (default: <cfg>.txt)")
    et.set_defaults(func=cmd_export_txt)

    it = sub.add_parser("import-txt", help="Write text fields from a line file into a rebuilt cfg.bin.")
    it.add_argument("cfg", help="Path to original .cfg.bin")
    it.add_argument("txt", help="Line file, one line per text field")
    it.add_argument("--out", default="", help="Output path (default: <name>_updated.cfg.bin)")
    it.set_defaults(func=cmd_import_txt)

    ea = sub.add_parser("export-addr", help="Export string-table slots to a translation CSV (address mode).")
    ea.add_argument("cfg", help="Path to .cfg.bin")
    ea.add_argument("--out", default="", help="Output CSV (default: <cfg>.csv)")
    ea.set_defaults(func=cmd_export_addr)

    aa = sub.add_parser("apply-addr", help="Patch translations from CSV in place (offsets never change).")
    aa.add_argument("cfg", help="Path to original .cfg.bin")
    aa.add_argument("csv", help="CSV produced by 'export-addr' with the 'translation' column filled")
    aa.add_argument("--out", default="", help="Output path (default: <name>_updated.cfg.bin)")
    aa.add_argument("--dry-run", action="store_true", help="Validate only; do not write output file.")
    aa.set_defaults(func=cmd_apply_addr)

    return p


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    level = logging.DEBUG if args.verbose > 1 else logging.INFO if args.verbose else logging.WARNING
    logging.basicConfig(level=level, format="[%(levelname)s] %(name)s: %(message)s")
    try:
        return int(args.func(args))
    except CfgBinError as e:
        print(f"[ERR] {e}")
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
