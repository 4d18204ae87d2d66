# src/elisa_plate_pipeline/fitting/logistic4pl.py
"""
4-parameter logistic (4PL) standard curves.

Model (x is concentration, x > 0):
    y = A + (D - A) / (1 + 10**((C - log10(x)) * B))

A/D are the lower/upper asymptotes (A > D for a decreasing curve), C is
log10(EC50) and B is the Hill slope. Fitting runs Levenberg-Marquardt in the
internal vector [A, D, C, b] with B = exp(b), so the slope stays positive
without a constrained optimizer.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from .core import FourPLFit, FourPLParams, is_finite_number, r2_score, solve_linear_system


LN10 = math.log(10.0)
HILL_SEEDS = (0.6, 1.0, 1.8, 3.0)
LOG_SLOPE_BOUNDS = (-4.0, 4.0)
C_MARGIN = 2.0


@dataclass(frozen=True)
class FourPLOptions:
    max_iter: int = 90
    lambda0: float = 1e-2
    tol: float = 1e-10
    restarts: int = 3

    @classmethod
    def from_config(cls, cfg: Optional[dict]) -> "FourPLOptions":
        cfg = cfg or {}
        d = cls()
        return cls(
            max_iter=int(cfg.get("max_iter", d.max_iter)),
            lambda0=float(cfg.get("lambda0", d.lambda0)),
            tol=float(cfg.get("tol", d.tol)),
            restarts=int(cfg.get("restarts", d.restarts)),
        )


def _clamp(v: float, lo: float, hi: float) -> float:
    return min(hi, max(lo, v))


def eval_4pl_log_x(params: FourPLParams, x_log10):
    """Evaluate at log10 concentration; 10**t is computed as exp(t*ln10) with t clipped to [-60, 60]."""
    t = np.clip((params.C - np.asarray(x_log10, dtype=float)) * params.B, -60.0, 60.0)
    y = params.A + (params.D - params.A) / (1.0 + np.exp(t * LN10))
    return float(y) if np.ndim(y) == 0 else y


def eval_4pl(params: FourPLParams, x_conc):
    x = np.asarray(x_conc, dtype=float)
    x = np.where(x > 0, x, 1e-12)
    return eval_4pl_log_x(params, np.log10(x))


def invert_4pl(params: FourPLParams, y: float, min_conc: float, max_conc: float) -> Optional[float]:
    """
    Closed-form inverse within the standard range.

    None when y is at or beyond an asymptote, when the log ratio is undefined,
    or when the concentration falls outside [min_conc, max_conc].
    """
    if not is_finite_number(y):
        return None
    A, D, C, B = params.A, params.D, params.C, params.B
    if not all(is_finite_number(v) for v in (A, D, C, B)) or B <= 0:
        return None
    if not (is_finite_number(min_conc) and is_finite_number(max_conc)) or max_conc <= min_conc:
        return None

    lo, hi = min(A, D), max(A, D)
    if y <= lo or y >= hi:
        return None

    denom = y - A
    if abs(denom) < 1e-12:
        return None
    frac = (D - A) / denom - 1.0
    if not frac > 0:
        return None

    x_log10 = C - math.log10(frac) / B
    try:
        conc = 10.0 ** x_log10
    except OverflowError:
        return None
    if not math.isfinite(conc):
        return None
    if conc < min_conc or conc > max_conc:
        return None
    return float(conc)


def _params_from_vector(p: np.ndarray) -> FourPLParams:
    return FourPLParams(
        A=float(p[0]),
        D=float(p[1]),
        C=float(p[2]),
        B=float(math.exp(_clamp(float(p[3]), *LOG_SLOPE_BOUNDS))),
    )


def _initial_guess(xs: np.ndarray, ys: np.ndarray) -> tuple[float, float, float]:
    # Direction from the sign of the log-x / y covariance.
    x_mean = float(np.mean(xs))
    y_mean = float(np.mean(ys))
    cov = float(np.sum((xs - x_mean) * (ys - y_mean)))
    varx = float(np.sum((xs - x_mean) ** 2))
    slope_sign = float(np.sign(cov / varx)) if varx > 0 else 1.0

    y_min, y_max = float(np.min(ys)), float(np.max(ys))
    A0 = y_min if slope_sign >= 0 else y_max
    D0 = y_max if slope_sign >= 0 else y_min
    mid = (A0 + D0) / 2.0
    C0 = float(xs[int(np.argmin(np.abs(ys - mid)))])
    return A0, D0, C0


def _levenberg_marquardt(
    xs: np.ndarray,
    ys: np.ndarray,
    p0: np.ndarray,
    options: FourPLOptions,
    c_bounds: tuple[float, float],
) -> tuple[np.ndarray, float]:
    def predict(pp: np.ndarray) -> np.ndarray:
        return np.asarray(eval_4pl_log_x(_params_from_vector(pp), xs), dtype=float)

    def sse_for(pp: np.ndarray) -> float:
        r = ys - predict(pp)
        return float(np.sum(r * r))

    p = p0.astype(float).copy()
    lam = float(options.lambda0)
    cur_sse = sse_for(p)

    for _ in range(int(options.max_iter)):
        r = ys - predict(p)

        # Central differences with a step relative to each parameter's scale.
        J = np.zeros((xs.size, 4))
        for j in range(4):
            dp = 1e-4 * (abs(p[j]) + 1.0)
            p_plus = p.copy()
            p_minus = p.copy()
            p_plus[j] += dp
            p_minus[j] -= dp
            J[:, j] = (predict(p_plus) - predict(p_minus)) / (2.0 * dp)

        JTJ = J.T @ J + lam * np.eye(4)
        JTr = J.T @ r

        delta = solve_linear_system(JTJ, JTr)
        if delta is None:
            break

        p_cand = p + delta
        p_cand[2] = _clamp(float(p_cand[2]), *c_bounds)
        p_cand[3] = _clamp(float(p_cand[3]), *LOG_SLOPE_BOUNDS)

        sse_cand = sse_for(p_cand)
        if sse_cand + 1e-12 < cur_sse:
            p = p_cand
            cur_sse = sse_cand
            lam = max(1e-12, lam * 0.35)
            if float(np.linalg.norm(delta)) < options.tol:
                break
        else:
            lam = min(1e12, lam * 10.0)

    return p, cur_sse


def fit_4pl(
    x_conc: Sequence[float],
    y: Sequence[float],
    options: Optional[FourPLOptions] = None,
) -> Optional[FourPLFit]:
    """
    Fit a 4PL curve in log-concentration space.

    Needs at least 4 points with finite x > 0 and finite y. Each restart seeds
    a different Hill slope; the run with the lowest SSE wins.
    """
    options = options or FourPLOptions()

    n_pts = min(len(x_conc), len(y))
    xc = np.asarray(x_conc[:n_pts], dtype=float)
    yc = np.asarray(y[:n_pts], dtype=float)
    mask = np.isfinite(xc) & (xc > 0) & np.isfinite(yc)
    if int(mask.sum()) < 4:
        return None
    xs = np.log10(xc[mask])
    ys = yc[mask]

    A0, D0, C0 = _initial_guess(xs, ys)
    c_bounds = (float(np.min(xs)) - C_MARGIN, float(np.max(xs)) + C_MARGIN)

    best: Optional[FourPLFit] = None
    for b_start in HILL_SEEDS[: max(1, int(options.restarts))]:
        p0 = np.array([A0, D0, C0, math.log(max(1e-3, b_start))])
        p, sse = _levenberg_marquardt(xs, ys, p0, options, c_bounds)

        params = _params_from_vector(p)
        r2 = r2_score(ys, eval_4pl_log_x(params, xs))
        fit = FourPLFit(params=params, r2=float(r2), sse=float(sse), n=int(xs.size))

        if best is None or (math.isfinite(fit.sse) and fit.sse < best.sse):
            best = fit

    return best
