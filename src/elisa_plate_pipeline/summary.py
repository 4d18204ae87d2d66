# src/elisa_plate_pipeline/summary.py
"""
Tables derived from a quantification result: per-level standards, per-animal
summary, plate counts, and the delimited sample export.

Input: QuantificationResult / SampleQuantification rows from fitting.pipeline.
Output: pandas DataFrames and the tab-separated quantification text.
"""
from __future__ import annotations

import json
import math
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd
from scipy import stats as scipy_stats

from .fitting.core import is_finite_number, sample_sd
from .fitting.pipeline import SampleQuantification
from .fitting.qc import AutoQcSuggestion, StandardLevelInput


QUANT_TSV_COLUMNS = ["Well", "AnimalId", "Group", "DilutionFactor", "Net(blank)", "Conc", "ConcAdjusted"]


def _fmt(value: Optional[float], digits: int) -> str:
    if value is None or not is_finite_number(value):
        return ""
    return f"{float(value):.{digits}f}"


def _fmt_plain(value: float) -> str:
    """2.0 -> '2', 2.5 -> '2.5'."""
    v = float(value)
    return str(int(v)) if v.is_integer() else repr(v)


def level_table(levels: Sequence[StandardLevelInput]) -> pd.DataFrame:
    """Per standard level: conc, n replicates, mean and sd of blank-corrected net."""
    rows = []
    for lvl in levels:
        ys = [r.y for r in lvl.replicates]
        rows.append(
            {
                "level": lvl.level,
                "conc": lvl.conc if is_finite_number(lvl.conc) else np.nan,
                "n": len(ys),
                "mean": float(np.mean(ys)) if ys else np.nan,
                "sd": sample_sd(ys),
            }
        )
    return pd.DataFrame(rows, columns=["level", "conc", "n", "mean", "sd"])


def summarize_by_animal(samples: Sequence[SampleQuantification]) -> pd.DataFrame:
    """
    Per (animal_id, group): n, mean, sd (n-1), sem and CV% of conc_adjusted.

    Wells without a finite conc_adjusted do not count. sd/sem/cv are None when
    n <= 1. Rows are sorted by animal_id.
    """
    groups: Dict[tuple, List[float]] = {}
    for s in samples:
        if s.conc_adjusted is None or not math.isfinite(s.conc_adjusted):
            continue
        groups.setdefault((s.animal_id, s.group), []).append(float(s.conc_adjusted))

    rows = []
    for (animal_id, group), values in groups.items():
        n = len(values)
        mean = float(np.mean(values))
        sd = sample_sd(values)
        sem = float(scipy_stats.sem(values, ddof=1)) if n > 1 else None
        cv = (100.0 * sd / mean) if (sd is not None and mean != 0) else None
        rows.append(
            {
                "animal_id": animal_id,
                "group": group,
                "n": n,
                "mean": mean,
                "sd": sd,
                "sem": sem,
                "cv_percent": cv,
            }
        )

    out = pd.DataFrame(rows, columns=["animal_id", "group", "n", "mean", "sd", "sem", "cv_percent"])
    if not out.empty:
        out = out.sort_values(["animal_id", "group"], kind="stable").reset_index(drop=True)
    return out


def plate_counts(wells: pd.DataFrame) -> Dict[str, int]:
    """Counts over the per-well table from flag_outliers."""
    if wells.empty:
        return {"assigned": 0, "samples": 0, "standards": 0, "blanks": 0, "outliers": 0, "kept": 0}
    t = wells["type"].astype(str)
    assigned = t.ne("Empty")
    keep = wells["keep"].astype(bool)
    return {
        "assigned": int(assigned.sum()),
        "samples": int(t.eq("Sample").sum()),
        "standards": int(t.eq("Standard").sum()),
        "blanks": int(t.eq("Blank").sum()),
        "outliers": int((wells["outlier"].astype(bool) & keep).sum()),
        "kept": int((keep & assigned).sum()),
    }


def format_quant_tsv(samples: Sequence[SampleQuantification]) -> str:
    """Tab-separated export: 4 decimals for absorbance, 6 for concentrations, blank for missing."""
    lines = ["\t".join(QUANT_TSV_COLUMNS)]
    for s in samples:
        lines.append(
            "\t".join(
                [
                    s.well_id,
                    s.animal_id,
                    s.group,
                    _fmt_plain(s.dilution_factor),
                    _fmt(s.net_blank, 4),
                    _fmt(s.conc, 6),
                    _fmt(s.conc_adjusted, 6),
                ]
            )
        )
    return "\n".join(lines) + "\n"


def write_quant_tsv(samples: Sequence[SampleQuantification], path: Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(format_quant_tsv(samples), encoding="utf-8")
    return path


def suggestion_to_dict(suggestion: Optional[AutoQcSuggestion]) -> Dict[str, Any]:
    if suggestion is None:
        return {}
    return asdict(suggestion)


def _json_default(o: Any) -> Any:
    if isinstance(o, (np.integer,)):
        return int(o)
    if isinstance(o, (np.floating,)):
        f = float(o)
        return f if math.isfinite(f) else None
    raise TypeError(f"Object of type {type(o).__name__} is not JSON serializable")


def _clean_nonfinite(obj: Any) -> Any:
    if isinstance(obj, float) and not math.isfinite(obj):
        return None
    if isinstance(obj, Mapping):
        return {k: _clean_nonfinite(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_clean_nonfinite(v) for v in obj]
    return obj


def write_json(obj: Dict[str, Any], path: Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(_clean_nonfinite(obj), f, indent=2, ensure_ascii=False, default=_json_default)
    return path
