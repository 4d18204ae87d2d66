# src/elisa_plate_pipeline/fitting/curve.py
"""
Dispatch helpers over the CurveFit tagged union (PolyFit | FourPLFit).
"""
from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from .core import CurveFit, CurveKind
from .logistic4pl import FourPLOptions, eval_4pl, fit_4pl, invert_4pl
from .polynomial import eval_poly, fit_polynomial, invert_poly_by_search


def fit_curve(
    x: Sequence[float],
    y: Sequence[float],
    curve: CurveKind,
    four_pl: Optional[FourPLOptions] = None,
) -> Optional[CurveFit]:
    if curve.kind == "4pl":
        return fit_4pl(x, y, four_pl)
    return fit_polynomial(x, y, curve.degree)


def eval_curve(fit: CurveFit, x):
    if fit.kind == "4pl":
        return eval_4pl(fit.params, x)
    return eval_poly(fit.coeff, x)


def invert_curve(fit: CurveFit, y: float, min_conc: float, max_conc: float) -> Optional[float]:
    if fit.kind == "4pl":
        return invert_4pl(fit.params, y, min_conc, max_conc)
    return invert_poly_by_search(fit.coeff, y, min_conc, max_conc)


def curve_sse(fit: CurveFit, x: Sequence[float], y: Sequence[float]) -> float:
    if fit.kind == "4pl":
        return float(fit.sse)
    xs = np.asarray(x, dtype=float)
    ys = np.asarray(y, dtype=float)
    r = ys - np.asarray(eval_poly(fit.coeff, xs), dtype=float)
    return float(np.sum(r * r))


def describe_curve(fit: CurveFit) -> str:
    """One-line human-readable equation, used in reports and plot legends."""
    if fit.kind == "4pl":
        p = fit.params
        return f"4PL: A={p.A:.4f}, D={p.D:.4f}, EC50={10 ** p.C:.4g}, B={p.B:.4f}"
    terms = " + ".join(f"{c:.4f}·x^{i}" for i, c in enumerate(fit.coeff))
    return f"y = {terms}"
