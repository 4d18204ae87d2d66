#!/usr/bin/env python3
"""
Parse 450/570 nm reader output into a per-well readings table.

Usage:
  python scripts/extract_readings.py --raw data/raw/260301-1.txt [--out_dir data/processed]
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = REPO_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from elisa_plate_pipeline.loader import parse_reader_text, read_text_flexible, readings_to_frame  # noqa: E402


def _resolve_from_repo_root(p: str | Path, repo_root: Path) -> Path:
    p = Path(p)
    return p if p.is_absolute() else (repo_root / p)


def main() -> None:
    parser = argparse.ArgumentParser(description="Parse ELISA reader output into readings.csv.")
    parser.add_argument("--raw", required=True, help="Reader export (plate blocks or 450/570 list).")
    parser.add_argument("--out_dir", default="data/processed", help="Output directory")
    parser.add_argument(
        "--out_prefix",
        default=None,
        help="Output prefix / run_id (default: raw file stem).",
    )
    args = parser.parse_args()

    raw_path = _resolve_from_repo_root(args.raw, REPO_ROOT)
    out_dir = _resolve_from_repo_root(args.out_dir, REPO_ROOT)
    if not raw_path.is_file():
        raise FileNotFoundError(f"--raw not found: {raw_path}")

    run_id = args.out_prefix if args.out_prefix else raw_path.stem
    parsed = parse_reader_text(read_text_flexible(raw_path))
    for w in parsed.warnings:
        print(f"WARNING: {w}")

    readings = readings_to_frame(parsed.wells)
    readings.insert(0, "run_id", run_id)

    extract_dir = out_dir / run_id / "extract"
    extract_dir.mkdir(parents=True, exist_ok=True)
    out_path = extract_dir / "readings.csv"
    readings.to_csv(out_path, index=False)

    print(f"Format: {parsed.format}, wells: {len(parsed.wells)}, temperature: {parsed.temperature_c}")
    print(f"Saved: {out_path}")


if __name__ == "__main__":
    main()
