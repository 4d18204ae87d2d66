# src/elisa_plate_pipeline/fitting/qc.py
"""
Standard-curve QC: greedy Auto-QC exclusion suggestions and per-well outlier flags.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ..plate96 import PLATE96_WELL_IDS
from .core import CurveKind, FitSummary, is_finite_number, median
from .curve import curve_sse, fit_curve
from .logistic4pl import FourPLOptions


@dataclass(frozen=True)
class Replicate:
    well_id: str
    y: float


@dataclass(frozen=True)
class StandardLevelInput:
    level: str
    conc: float
    replicates: Tuple[Replicate, ...]


@dataclass(frozen=True)
class AutoQcAction:
    type: str  # "exclude-replicate" | "drop-level"
    level: str
    reason: str
    well_id: Optional[str] = None


@dataclass(frozen=True)
class AutoQcSuggestion:
    excluded_well_ids: Tuple[str, ...] = ()
    dropped_levels: Tuple[str, ...] = ()
    actions: Tuple[AutoQcAction, ...] = ()
    baseline: Optional[FitSummary] = None
    suggested: Optional[FitSummary] = None


@dataclass(frozen=True)
class AutoQcOptions:
    max_actions: int = 3
    max_excluded_wells: int = 3
    max_dropped_levels: int = 1
    replicate_penalty: float = 0.005
    level_penalty: float = 0.01
    min_score_improve: float = 0.001
    four_pl: FourPLOptions = field(default_factory=FourPLOptions)

    @classmethod
    def from_config(cls, cfg: Optional[dict], four_pl: Optional[FourPLOptions] = None) -> "AutoQcOptions":
        cfg = cfg or {}
        d = cls()
        return cls(
            max_actions=int(cfg.get("max_actions", d.max_actions)),
            max_excluded_wells=int(cfg.get("max_excluded_wells", d.max_excluded_wells)),
            max_dropped_levels=int(cfg.get("max_dropped_levels", d.max_dropped_levels)),
            replicate_penalty=float(cfg.get("replicate_penalty", d.replicate_penalty)),
            level_penalty=float(cfg.get("level_penalty", d.level_penalty)),
            min_score_improve=float(cfg.get("min_score_improve", d.min_score_improve)),
            four_pl=four_pl or d.four_pl,
        )


# (level, conc, mean y, n replicates)
_Point = Tuple[str, float, float, int]


def normalize_levels(levels: Sequence[StandardLevelInput]) -> List[StandardLevelInput]:
    """Trim labels and drop levels that cannot contribute to a fit."""
    out: List[StandardLevelInput] = []
    for lvl in levels:
        label = str(lvl.level or "").strip()
        if not label:
            continue
        if not is_finite_number(lvl.conc) or lvl.conc <= 0:
            continue
        reps = tuple(
            r for r in (lvl.replicates or ())
            if r is not None and isinstance(r.well_id, str) and is_finite_number(r.y)
        )
        if not reps:
            continue
        out.append(StandardLevelInput(level=label, conc=float(lvl.conc), replicates=reps))
    return out


def level_points(
    levels: Sequence[StandardLevelInput],
    excluded: FrozenSet[str] = frozenset(),
    dropped: FrozenSet[str] = frozenset(),
) -> List[_Point]:
    """Mean replicate value per level after removing excluded wells and dropped levels."""
    pts: List[_Point] = []
    for lvl in levels:
        if lvl.level in dropped:
            continue
        ys = [r.y for r in lvl.replicates if r.well_id not in excluded]
        if not ys:
            continue
        pts.append((lvl.level, lvl.conc, float(np.mean(ys)), len(ys)))
    return pts


def _fit_summary(points: Sequence[_Point], curve: CurveKind, four_pl: FourPLOptions) -> Optional[FitSummary]:
    xs = [p[1] for p in points]
    ys = [p[2] for p in points]
    if curve.kind == "4pl":
        usable = [(x, y) for x, y in zip(xs, ys) if is_finite_number(x) and x > 0 and is_finite_number(y)]
        if len(usable) < 4:
            return None
    else:
        usable = [(x, y) for x, y in zip(xs, ys) if is_finite_number(x) and is_finite_number(y)]
        if len(usable) < curve.degree + 1:
            return None

    ux = [u[0] for u in usable]
    uy = [u[1] for u in usable]
    fit = fit_curve(ux, uy, curve, four_pl)
    if fit is None:
        return None
    return FitSummary(r2=float(fit.r2), sse=curve_sse(fit, ux, uy), n_levels=len(usable))


def _score(fit: FitSummary, n_excluded: int, n_dropped: int, opts: AutoQcOptions) -> float:
    r2 = fit.r2 if math.isfinite(fit.r2) else -math.inf
    return r2 - n_excluded * opts.replicate_penalty - n_dropped * opts.level_penalty


def _reason(candidate: FitSummary, current: FitSummary) -> str:
    return f"Improves fit (ΔR² {candidate.r2 - current.r2:.4f})."


def suggest_standard_curve_exclusions(
    levels: Sequence[StandardLevelInput],
    curve: CurveKind,
    options: Optional[AutoQcOptions] = None,
) -> AutoQcSuggestion:
    """
    Greedy search for replicate exclusions / level drops that improve the curve.

    Each step evaluates every single-replicate exclusion and every whole-level
    drop from the current (excluded, dropped) state, scores them as
        r2 - n_excluded * replicate_penalty - n_dropped * level_penalty
    and accepts the best one only if it beats the current score by more than
    min_score_improve. Interacting exclusions are not searched exhaustively.

    The result is a recommendation; callers filter their inputs to apply it.
    """
    opts = options or AutoQcOptions()
    lvls = normalize_levels(levels)

    excluded: Tuple[str, ...] = ()
    dropped: Tuple[str, ...] = ()

    baseline = _fit_summary(level_points(lvls), curve, opts.four_pl)
    if baseline is None:
        return AutoQcSuggestion()

    cur_score = _score(baseline, 0, 0, opts)
    actions: List[AutoQcAction] = []

    for _ in range(int(opts.max_actions)):
        ex_set, dr_set = frozenset(excluded), frozenset(dropped)
        current = _fit_summary(level_points(lvls, ex_set, dr_set), curve, opts.four_pl)
        if current is None:
            break

        # (score, next_excluded, next_dropped, action)
        best: Optional[tuple] = None

        # Exclude one replicate; the level must keep at least one.
        for lvl in lvls:
            if lvl.level in dr_set:
                continue
            included = [r for r in lvl.replicates if r.well_id not in ex_set]
            if len(included) <= 1:
                continue
            for rep in included:
                if len(ex_set) + 1 > opts.max_excluded_wells:
                    continue
                next_ex = ex_set | {rep.well_id}
                cand = _fit_summary(level_points(lvls, next_ex, dr_set), curve, opts.four_pl)
                if cand is None:
                    continue
                score = _score(cand, len(next_ex), len(dr_set), opts)
                if best is None or score > best[0]:
                    action = AutoQcAction(
                        type="exclude-replicate",
                        level=lvl.level,
                        well_id=rep.well_id,
                        reason=_reason(cand, current),
                    )
                    best = (score, excluded + (rep.well_id,), dropped, action)

        # Drop a whole level.
        for lvl in lvls:
            if lvl.level in dr_set:
                continue
            if len(dr_set) + 1 > opts.max_dropped_levels:
                continue
            next_dr = dr_set | {lvl.level}
            cand = _fit_summary(level_points(lvls, ex_set, next_dr), curve, opts.four_pl)
            if cand is None:
                continue
            score = _score(cand, len(ex_set), len(next_dr), opts)
            if best is None or score > best[0]:
                action = AutoQcAction(type="drop-level", level=lvl.level, reason=_reason(cand, current))
                best = (score, excluded, dropped + (lvl.level,), action)

        if best is None or not best[0] > cur_score + opts.min_score_improve:
            break

        cur_score, excluded, dropped, action = best
        actions.append(action)

    suggested = _fit_summary(
        level_points(lvls, frozenset(excluded), frozenset(dropped)), curve, opts.four_pl
    )
    return AutoQcSuggestion(
        excluded_well_ids=excluded,
        dropped_levels=dropped,
        actions=tuple(actions),
        baseline=baseline,
        suggested=suggested,
    )


def apply_suggestion(
    levels: Sequence[StandardLevelInput],
    suggestion: Optional[AutoQcSuggestion],
) -> List[StandardLevelInput]:
    """Return levels with the suggestion's excluded wells and dropped levels removed."""
    if suggestion is None:
        return list(levels)
    excluded = set(suggestion.excluded_well_ids)
    dropped = set(suggestion.dropped_levels)
    out: List[StandardLevelInput] = []
    for lvl in levels:
        if lvl.level.strip() in dropped:
            continue
        reps = tuple(r for r in lvl.replicates if r.well_id not in excluded)
        out.append(StandardLevelInput(level=lvl.level, conc=lvl.conc, replicates=reps))
    return out


def outlier_group_key(assignment) -> Optional[str]:
    if assignment.type == "Standard":
        return f"STD||{assignment.standard_level}"
    if assignment.type == "Sample":
        df = assignment.dilution_factor if assignment.dilution_factor is not None else 1
        return f"SAMPLE||{assignment.animal_id}||{df:g}"
    if assignment.type == "Blank":
        return "BLANK"
    return None


def flag_outliers(
    readings: Mapping[str, object],
    layout: Mapping[str, object],
    blank_offset: float = 0.0,
    threshold: float = 0.15,
) -> pd.DataFrame:
    """
    Flag replicate wells that sit far from their group's median.

    Groups: Standard by level, Sample by (animal_id, dilution factor), Blank as
    one group. Values are blank-corrected net absorbances of kept wells. A group
    needs at least two members; a well is an outlier when
    |value - group median| > threshold.

    Returns one row per well that has an assignment (A1..H12 order) with
    columns: well, type, group_key, net_blank, delta, outlier.
    """
    rows: List[Dict[str, object]] = []
    groups: Dict[str, List[int]] = {}

    for well_id in PLATE96_WELL_IDS:
        a = layout.get(well_id)
        if a is None:
            continue
        reading = readings.get(well_id)
        net = getattr(reading, "net", None) if reading is not None else None
        value = net - blank_offset if is_finite_number(net) else None
        key = outlier_group_key(a)
        rows.append(
            {
                "well": well_id,
                "type": a.type,
                "keep": bool(a.keep),
                "group_key": key or "",
                "net_blank": value,
                "delta": np.nan,
                "outlier": False,
            }
        )
        if a.keep and key is not None and value is not None and math.isfinite(value):
            groups.setdefault(key, []).append(len(rows) - 1)

    for idxs in groups.values():
        if len(idxs) < 2:
            continue
        m = median([rows[i]["net_blank"] for i in idxs])
        if m is None:
            continue
        for i in idxs:
            delta = abs(float(rows[i]["net_blank"]) - m)
            rows[i]["delta"] = delta
            rows[i]["outlier"] = bool(delta > threshold)

    columns = ["well", "type", "keep", "group_key", "net_blank", "delta", "outlier"]
    return pd.DataFrame(rows, columns=columns)
