# src/elisa_plate_pipeline/fitting/core.py
"""
Core data structures and numeric primitives shared by the curve fitters.

Fits are plain frozen dataclasses tagged by ``kind`` ("poly" or "4pl");
callers dispatch on the tag rather than on a class hierarchy.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple, Union

import numpy as np


PIVOT_EPS = 1e-12


@dataclass(frozen=True)
class PolyFit:
    degree: int
    coeff: Tuple[float, ...]  # c0..cd so y = sum(c[i] * x**i)
    r2: float
    kind: str = "poly"


@dataclass(frozen=True)
class FourPLParams:
    # y = A + (D - A) / (1 + 10**((C - log10(x)) * B))
    A: float
    D: float
    C: float
    B: float


@dataclass(frozen=True)
class FourPLFit:
    params: FourPLParams
    r2: float
    sse: float
    n: int
    kind: str = "4pl"


CurveFit = Union[PolyFit, FourPLFit]


@dataclass(frozen=True)
class CurveKind:
    kind: str = "4pl"  # "4pl" | "poly"
    degree: int = 2

    def __post_init__(self) -> None:
        if self.kind not in ("4pl", "poly"):
            raise ValueError(f"Unknown curve kind: {self.kind!r}")
        if self.kind == "poly" and self.degree not in (2, 3):
            raise ValueError(f"Polynomial degree must be 2 or 3, got: {self.degree}")

    @classmethod
    def from_config(cls, cfg: Optional[dict]) -> "CurveKind":
        cfg = cfg or {}
        kind = str(cfg.get("kind", "4pl")).strip().lower()
        return cls(kind=kind, degree=int(cfg.get("degree", 2)))

    def label(self) -> str:
        return "4PL" if self.kind == "4pl" else f"poly{self.degree}"


@dataclass(frozen=True)
class FitSummary:
    r2: float
    sse: float
    n_levels: int


def is_finite_number(v: object) -> bool:
    if isinstance(v, bool) or not isinstance(v, (int, float, np.integer, np.floating)):
        return False
    return math.isfinite(float(v))


def median(values: Iterable[Optional[float]]) -> Optional[float]:
    """Median of the finite values; None when nothing finite is left."""
    clean = np.asarray([v for v in values if is_finite_number(v)], dtype=float)
    if clean.size == 0:
        return None
    return float(np.median(clean))


def sample_sd(values: Sequence[float]) -> Optional[float]:
    """Sample standard deviation (n-1). None for fewer than two values."""
    arr = np.asarray(values, dtype=float)
    if arr.size <= 1:
        return None
    return float(np.std(arr, ddof=1))


def solve_linear_system(A: Sequence[Sequence[float]], b: Sequence[float]) -> Optional[np.ndarray]:
    """
    Gauss-Jordan elimination with partial pivoting.

    Returns None when any pivot magnitude drops below 1e-12; callers treat that
    as "fit not possible" for the current inputs.
    """
    M = np.column_stack([np.array(A, dtype=float), np.array(b, dtype=float)])
    n = M.shape[0]

    for col in range(n):
        pivot_row = col + int(np.argmax(np.abs(M[col:, col])))
        if abs(M[pivot_row, col]) < PIVOT_EPS:
            return None
        if pivot_row != col:
            M[[col, pivot_row]] = M[[pivot_row, col]]

        M[col, col:] = M[col, col:] / M[col, col]

        for r in range(n):
            if r == col:
                continue
            factor = M[r, col]
            if abs(factor) < PIVOT_EPS:
                continue
            M[r, col:] -= factor * M[col, col:]

    return M[:, n].copy()


def r2_score(y: Sequence[float], y_hat: Sequence[float]) -> float:
    """1 - SSres/SStot, NaN when all observed values are identical."""
    y = np.asarray(y, dtype=float)
    y_hat = np.asarray(y_hat, dtype=float)
    ss_tot = float(np.sum((y - float(np.mean(y))) ** 2))
    ss_res = float(np.sum((y - y_hat) ** 2))
    if ss_tot == 0:
        return float("nan")
    return 1.0 - ss_res / ss_tot
