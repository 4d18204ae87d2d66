#!/usr/bin/env python3
"""
Quantify one ELISA plate: fit the standard curve and back-calculate samples.

Inputs:
  - reader export (--raw)
  - plate layout TSV (--layout, default meta/layouts/{run_id}.tsv)
  - standard concentrations TSV (--standards, default meta/standards/{run_id}.tsv;
    falls back to the serial dilution in config.yml when missing)

Outputs (under {out_dir}/{run_id}/quant/):
  quant.tsv, animal_summary.csv, standard_levels.csv, wells.csv, autoqc.json,
  standard_curve.png

Usage:
  python scripts/quantify_plate.py --raw data/raw/260301-1.txt [--apply_autoqc] [--debug]
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = REPO_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from elisa_plate_pipeline.fitting.curve import describe_curve  # noqa: E402
from elisa_plate_pipeline.fitting.pipeline import (  # noqa: E402
    QuantOptions,
    fill_serial_dilution,
    quantify_plate,
    standard_levels,
    suggest_for_plate,
)
from elisa_plate_pipeline.fitting.plotting import plot_standard_curve  # noqa: E402
from elisa_plate_pipeline.loader import (  # noqa: E402
    load_yaml,
    parse_reader_text,
    read_layout_tsv,
    read_standards_tsv,
    read_text_flexible,
)
from elisa_plate_pipeline.meta_paths import (  # noqa: E402
    get_meta_paths,
    layout_path_for_run,
    standards_path_for_run,
)
from elisa_plate_pipeline.summary import (  # noqa: E402
    level_table,
    plate_counts,
    suggestion_to_dict,
    summarize_by_animal,
    write_json,
    write_quant_tsv,
)

META = get_meta_paths(REPO_ROOT)


def _resolve_from_repo_root(p: str | Path, repo_root: Path) -> Path:
    p = Path(p)
    return p if p.is_absolute() else (repo_root / p)


def main() -> None:
    p = argparse.ArgumentParser(description="Fit the standard curve and quantify ELISA samples.")
    p.add_argument("--raw", required=True, help="Reader export (plate blocks or 450/570 list).")
    p.add_argument("--run_id", default=None, help="Run id (default: raw file stem).")
    p.add_argument("--layout", default=None, help="Layout TSV (default: meta/layouts/{run_id}.tsv).")
    p.add_argument("--standards", default=None, help="Standards TSV (default: meta/standards/{run_id}.tsv).")
    p.add_argument("--config", type=Path, default=META.config, help="Path to config.yml.")
    p.add_argument("--out_dir", default="data/processed", help="Processed root directory.")
    p.add_argument(
        "--curve",
        choices=["4pl", "poly2", "poly3"],
        default=None,
        help="Override the curve model from config.yml.",
    )
    p.add_argument(
        "--apply_autoqc",
        action="store_true",
        help="Apply the Auto-QC suggestion before fitting (otherwise it is only reported).",
    )
    p.add_argument("--debug", action="store_true", help="Verbose logging.")
    args = p.parse_args()

    raw_path = _resolve_from_repo_root(args.raw, REPO_ROOT)
    if not raw_path.is_file():
        raise FileNotFoundError(f"--raw not found: {raw_path}")
    run_id = args.run_id or raw_path.stem

    layout_path = (
        _resolve_from_repo_root(args.layout, REPO_ROOT) if args.layout else layout_path_for_run(REPO_ROOT, run_id)
    )
    if not layout_path.is_file():
        raise FileNotFoundError(f"layout not found: {layout_path}")
    standards_path = (
        _resolve_from_repo_root(args.standards, REPO_ROOT)
        if args.standards
        else standards_path_for_run(REPO_ROOT, run_id)
    )
    config_path = _resolve_from_repo_root(args.config, REPO_ROOT)
    config = load_yaml(config_path) if config_path.is_file() else {}

    if args.curve:
        kind, degree = ("4pl", 2) if args.curve == "4pl" else ("poly", int(args.curve[-1]))
        config = {**config, "curve": {"kind": kind, "degree": degree}}
    options = QuantOptions.from_config(config)

    parsed = parse_reader_text(read_text_flexible(raw_path))
    for w in parsed.warnings:
        print(f"WARNING: {w}")
    layout = read_layout_tsv(layout_path)

    if standards_path.is_file():
        std_conc = read_standards_tsv(standards_path)
    else:
        std_cfg = config.get("standards", {}) or {}
        std_conc = fill_serial_dilution(
            standard_levels(layout),
            top=float(std_cfg.get("serial_top", 1000)),
            factor=float(std_cfg.get("serial_factor", 2)),
            order=str(std_cfg.get("serial_order", "high_to_low")),
        )

    if args.debug:
        print("run_id:", run_id)
        print("raw:", raw_path)
        print("reader format:", parsed.format, "wells:", len(parsed.wells))
        print("layout:", layout_path)
        print("standards:", standards_path if standards_path.is_file() else "serial dilution from config")
        print("standard concentrations:", std_conc)
        print("curve:", options.curve.label())

    suggestion = suggest_for_plate(parsed.wells, layout, std_conc, options)
    result = quantify_plate(
        parsed.wells,
        layout,
        std_conc,
        options,
        suggestion=suggestion if args.apply_autoqc else None,
    )
    for w in result.warnings:
        print(f"WARNING: {w}")

    out_dir = _resolve_from_repo_root(args.out_dir, REPO_ROOT) / run_id / "quant"
    out_dir.mkdir(parents=True, exist_ok=True)

    quant_path = write_quant_tsv(result.samples, out_dir / "quant.tsv")
    animal_path = out_dir / "animal_summary.csv"
    summarize_by_animal(result.samples).to_csv(animal_path, index=False)
    levels_path = out_dir / "standard_levels.csv"
    level_table(result.levels).to_csv(levels_path, index=False)
    wells_path = out_dir / "wells.csv"
    result.wells.to_csv(wells_path, index=False)

    autoqc_path = write_json(
        {
            "run_id": run_id,
            "curve": options.curve.label(),
            "applied": bool(args.apply_autoqc),
            "blank_median": result.blank_median,
            "blank_offset": result.blank_offset,
            "counts": plate_counts(result.wells),
            "suggestion": suggestion_to_dict(suggestion),
        },
        out_dir / "autoqc.json",
    )
    plot_path = plot_standard_curve(
        result.levels,
        result.fit,
        out_dir / "standard_curve.png",
        samples=result.samples,
        suggestion=suggestion,
        title=f"{run_id} ({options.curve.label()})",
    )

    if result.fit is not None:
        print(describe_curve(result.fit), f"R²={result.fit.r2:.4f}")
    for action in suggestion.actions:
        target = action.well_id or action.level
        print(f"Auto-QC suggests {action.type} {target}: {action.reason}")

    print(f"Saved: {quant_path}")
    print(f"Saved: {animal_path}")
    print(f"Saved: {levels_path}")
    print(f"Saved: {wells_path}")
    print(f"Saved: {autoqc_path}")
    if plot_path is not None:
        print(f"Saved: {plot_path}")


if __name__ == "__main__":
    main()
