# src/elisa_plate_pipeline/fitting/pipeline.py
"""
Quantification pipeline: blank correction -> standard levels -> curve fit ->
curve inversion per sample well -> dilution adjustment -> per-animal summary.

Everything is recomputed from the raw inputs on each call; nothing here keeps
state between calls.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

import pandas as pd

from ..plate96 import PLATE96_WELL_IDS
from .core import CurveFit, CurveKind, is_finite_number, median
from .curve import fit_curve, invert_curve
from .logistic4pl import FourPLOptions
from .qc import (
    AutoQcOptions,
    AutoQcSuggestion,
    Replicate,
    StandardLevelInput,
    apply_suggestion,
    flag_outliers,
    normalize_levels,
    level_points,
    suggest_standard_curve_exclusions,
)


NO_FIT_WARNING = "No standard curve fit available: not enough usable standard levels."


@dataclass(frozen=True)
class QuantOptions:
    blank_subtract: bool = True
    curve: CurveKind = field(default_factory=CurveKind)
    outlier_threshold: float = 0.15
    four_pl: FourPLOptions = field(default_factory=FourPLOptions)
    autoqc: AutoQcOptions = field(default_factory=AutoQcOptions)

    @classmethod
    def from_config(cls, cfg: Optional[dict]) -> "QuantOptions":
        """Build from the parsed meta/config.yml mapping; missing keys keep defaults."""
        cfg = cfg or {}
        quant = cfg.get("quantification", {}) or {}
        four_pl = FourPLOptions.from_config(cfg.get("four_pl"))
        d = cls()
        return cls(
            blank_subtract=bool(quant.get("blank_subtract", d.blank_subtract)),
            curve=CurveKind.from_config(cfg.get("curve")),
            outlier_threshold=float(quant.get("outlier_threshold", d.outlier_threshold)),
            four_pl=four_pl,
            autoqc=AutoQcOptions.from_config(cfg.get("autoqc"), four_pl=four_pl),
        )


@dataclass(frozen=True)
class SampleQuantification:
    well_id: str
    animal_id: str
    group: str
    dilution_factor: float
    net_blank: Optional[float]
    conc: Optional[float]
    conc_adjusted: Optional[float]


@dataclass
class QuantificationResult:
    blank_median: Optional[float]
    blank_offset: float
    levels: List[StandardLevelInput]
    fit: Optional[CurveFit]
    conc_range: Optional[tuple]
    samples: List[SampleQuantification]
    wells: pd.DataFrame
    warnings: List[str] = field(default_factory=list)
    suggestion: Optional[AutoQcSuggestion] = None


def _trailing_number(label: str) -> float:
    m = re.search(r"(\d+)(?!.*\d)", label)
    return float(m.group(1)) if m else math.nan


def _level_sort_key(label: str) -> tuple:
    n = _trailing_number(label)
    if math.isfinite(n):
        return (0, n, label)
    return (1, 0.0, label)


def standard_levels(layout: Mapping[str, object]) -> List[str]:
    """Distinct trimmed standard labels, ordered by trailing number (Std1, Std2, ..., Std10)."""
    labels = {
        str(a.standard_level or "").strip()
        for a in layout.values()
        if a.type == "Standard"
    }
    return sorted((lb for lb in labels if lb), key=_level_sort_key)


def fill_serial_dilution(
    levels: Sequence[str],
    top: float = 1000.0,
    factor: float = 2.0,
    order: str = "high_to_low",
) -> Dict[str, float]:
    """
    Assign top, top/factor, top/factor**2, ... to the levels.

    order="high_to_low" gives the first level the top concentration;
    "low_to_high" gives it to the last.
    """
    if order not in ("high_to_low", "low_to_high"):
        raise ValueError(f"Unknown serial dilution order: {order!r}")
    ordered = list(levels) if order == "high_to_low" else list(reversed(levels))
    out: Dict[str, float] = {}
    for idx, lvl in enumerate(ordered):
        try:
            v = float(top) / float(factor) ** idx
        except (OverflowError, ZeroDivisionError):
            continue
        if math.isfinite(v):
            out[lvl] = v
    return out


def compute_blank_offset(
    readings: Mapping[str, object],
    layout: Mapping[str, object],
    blank_subtract: bool = True,
) -> tuple:
    """Returns (blank_median, blank_offset); the offset is 0 when disabled or without blanks."""
    blanks = []
    for well_id in PLATE96_WELL_IDS:
        a = layout.get(well_id)
        if a is None or a.type != "Blank" or not a.keep:
            continue
        net = getattr(readings.get(well_id), "net", None)
        if is_finite_number(net):
            blanks.append(float(net))
    blank_median = median(blanks)
    offset = blank_median if (blank_subtract and blank_median is not None) else 0.0
    return blank_median, float(offset)


def build_standard_levels(
    readings: Mapping[str, object],
    layout: Mapping[str, object],
    std_conc: Mapping[str, float],
    blank_offset: float = 0.0,
) -> List[StandardLevelInput]:
    """
    One StandardLevelInput per distinct label of kept Standard wells.

    Replicate y values are blank-corrected net absorbances. A level without a
    concentration gets NaN and is dropped later as unusable.
    """
    reps: Dict[str, List[Replicate]] = {}
    for well_id in PLATE96_WELL_IDS:
        a = layout.get(well_id)
        if a is None or a.type != "Standard" or not a.keep:
            continue
        lvl = str(a.standard_level or "").strip()
        if not lvl:
            continue
        net = getattr(readings.get(well_id), "net", None)
        if not is_finite_number(net):
            continue
        reps.setdefault(lvl, []).append(Replicate(well_id=well_id, y=float(net) - blank_offset))

    out: List[StandardLevelInput] = []
    for lvl in standard_levels(layout):
        conc = std_conc.get(lvl)
        out.append(
            StandardLevelInput(
                level=lvl,
                conc=float(conc) if is_finite_number(conc) else math.nan,
                replicates=tuple(reps.get(lvl, [])),
            )
        )
    return out


def _effective_dilution(value: Optional[float]) -> float:
    if is_finite_number(value) and value > 0:
        return float(value)
    return 1.0


def quantify_samples(
    readings: Mapping[str, object],
    layout: Mapping[str, object],
    fit: Optional[CurveFit],
    min_conc: float,
    max_conc: float,
    blank_offset: float = 0.0,
) -> List[SampleQuantification]:
    """Back-calculate every kept Sample well with a finite net reading."""
    if fit is None:
        return []
    out: List[SampleQuantification] = []
    for well_id in PLATE96_WELL_IDS:
        a = layout.get(well_id)
        if a is None or a.type != "Sample" or not a.keep:
            continue
        net = getattr(readings.get(well_id), "net", None)
        if not is_finite_number(net):
            continue
        net_blank = float(net) - blank_offset
        conc = invert_curve(fit, net_blank, min_conc, max_conc)
        dilution = _effective_dilution(a.dilution_factor)
        out.append(
            SampleQuantification(
                well_id=well_id,
                animal_id=a.animal_id or "",
                group=a.group or "",
                dilution_factor=dilution,
                net_blank=net_blank,
                conc=conc,
                conc_adjusted=None if conc is None else conc * dilution,
            )
        )
    return out


def suggest_for_plate(
    readings: Mapping[str, object],
    layout: Mapping[str, object],
    std_conc: Mapping[str, float],
    options: Optional[QuantOptions] = None,
) -> AutoQcSuggestion:
    """Auto-QC over the plate's standards, using the same blank correction as quantify_plate."""
    opts = options or QuantOptions()
    _, offset = compute_blank_offset(readings, layout, opts.blank_subtract)
    levels = build_standard_levels(readings, layout, std_conc, offset)
    return suggest_standard_curve_exclusions(levels, opts.curve, opts.autoqc)


def quantify_plate(
    readings: Mapping[str, object],
    layout: Mapping[str, object],
    std_conc: Mapping[str, float],
    options: Optional[QuantOptions] = None,
    suggestion: Optional[AutoQcSuggestion] = None,
) -> QuantificationResult:
    """
    Full plate quantification.

    When ``suggestion`` is given, its excluded wells and dropped levels are
    removed before level means are computed. Missing fits and out-of-range
    inversions yield empty/None values, never exceptions.
    """
    opts = options or QuantOptions()
    warnings: List[str] = []

    blank_median, offset = compute_blank_offset(readings, layout, opts.blank_subtract)
    if opts.blank_subtract and blank_median is None:
        warnings.append("Blank subtraction requested but no kept blank wells have readings; using 0.")

    levels = build_standard_levels(readings, layout, std_conc, offset)
    fit_levels = normalize_levels(apply_suggestion(levels, suggestion))
    points = level_points(fit_levels)

    fit: Optional[CurveFit] = None
    conc_range = None
    if points:
        xs = [p[1] for p in points]
        ys = [p[2] for p in points]
        fit = fit_curve(xs, ys, opts.curve, opts.four_pl)
        conc_range = (min(xs), max(xs))
    if fit is None:
        warnings.append(NO_FIT_WARNING)

    samples: List[SampleQuantification] = []
    if fit is not None and conc_range is not None:
        samples = quantify_samples(readings, layout, fit, conc_range[0], conc_range[1], offset)
        n_missing = sum(1 for s in samples if s.conc is None)
        if n_missing:
            warnings.append(f"{n_missing} sample well(s) fall outside the standard curve range.")

    wells = flag_outliers(readings, layout, offset, opts.outlier_threshold)

    return QuantificationResult(
        blank_median=blank_median,
        blank_offset=offset,
        levels=levels,
        fit=fit,
        conc_range=conc_range,
        samples=samples,
        wells=wells,
        warnings=warnings,
        suggestion=suggestion,
    )
