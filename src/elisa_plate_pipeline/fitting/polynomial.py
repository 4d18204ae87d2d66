# src/elisa_plate_pipeline/fitting/polynomial.py
"""
Least-squares polynomial standard curves (degree 2 or 3) and their inversion.
"""
from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from .core import PolyFit, is_finite_number, r2_score, solve_linear_system


SCAN_STEPS = 600
REFINE_ITERS = 28


def eval_poly(coeff: Sequence[float], x):
    """Horner evaluation with low-to-high coefficients. Accepts scalars or arrays."""
    y = 0.0
    for c in reversed(list(coeff)):
        y = y * x + c
    return y


def fit_polynomial(x: Sequence[float], y: Sequence[float], degree: int) -> Optional[PolyFit]:
    """
    Ordinary least squares over the monomial basis {1, x, ..., x^degree}.

    The normal equations are built from power moments sum(x^k), k = 0..2*degree,
    and solved with Gauss-Jordan. Returns None with fewer than degree+1 finite
    (x, y) pairs or when the system is near-singular (e.g. all x equal).
    """
    n_pts = min(len(x), len(y))
    xs = np.asarray(x[:n_pts], dtype=float)
    ys = np.asarray(y[:n_pts], dtype=float)
    mask = np.isfinite(xs) & np.isfinite(ys)
    xs, ys = xs[mask], ys[mask]
    if xs.size < degree + 1:
        return None

    n = degree + 1
    xpows = xs[:, None] ** np.arange(2 * degree + 1)
    moments = xpows.sum(axis=0)
    A = np.array([[moments[row + col] for col in range(n)] for row in range(n)])
    b = (xpows[:, :n] * ys[:, None]).sum(axis=0)

    coeff = solve_linear_system(A, b)
    if coeff is None:
        return None

    r2 = r2_score(ys, eval_poly(coeff, xs))
    return PolyFit(degree=int(degree), coeff=tuple(float(c) for c in coeff), r2=float(r2))


def invert_poly_by_search(
    coeff: Sequence[float],
    y: float,
    min_x: float,
    max_x: float,
) -> Optional[float]:
    """
    Find x in [min_x, max_x] whose predicted y is closest to the target.

    Degree-3 curves need not be monotonic, so this is a coarse uniform scan
    followed by a shrinking local search rather than a closed-form root. The
    result always lies inside the range.
    """
    if not all(is_finite_number(v) for v in (y, min_x, max_x)):
        return None
    if max_x <= min_x:
        return None

    def err(xv):
        return (eval_poly(coeff, xv) - y) ** 2

    grid = min_x + (np.arange(SCAN_STEPS + 1) / SCAN_STEPS) * (max_x - min_x)
    errs = err(grid)
    i_best = int(np.nanargmin(errs)) if np.isfinite(errs).any() else 0
    best_x = float(grid[i_best])
    best_err = float(errs[i_best])

    step = (max_x - min_x) / 20.0
    for _ in range(REFINE_ITERS):
        a = min(max_x, max(min_x, best_x - step))
        b = min(max_x, max(min_x, best_x + step))
        ea = float(err(a))
        eb = float(err(b))
        if ea < best_err:
            best_err, best_x = ea, a
        if eb < best_err:
            best_err, best_x = eb, b
        step *= 0.5

    return best_x
