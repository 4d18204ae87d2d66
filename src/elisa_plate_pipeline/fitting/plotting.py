# src/elisa_plate_pipeline/fitting/plotting.py
"""
Standard-curve diagnostic plot.
"""
from __future__ import annotations

import warnings
from pathlib import Path
from typing import Optional, Sequence

import numpy as np
import matplotlib.pyplot as plt
from matplotlib import font_manager as fm

from .core import CurveFit, is_finite_number
from .curve import describe_curve, eval_curve
from .pipeline import SampleQuantification
from .qc import AutoQcSuggestion, StandardLevelInput


PAPER_FIGSIZE_SINGLE = (3.5, 2.6)  # ~1 column (90 mm)


def apply_paper_style() -> dict:
    """
    Return matplotlib rcParams for paper-grade figures.

    Usage:
        with plt.rc_context(apply_paper_style()):
            fig, ax = plt.subplots(figsize=PAPER_FIGSIZE_SINGLE)
    """
    available = {f.name for f in fm.fontManager.ttflist}
    font_priority = ["Arial", "Helvetica", "Liberation Sans", "DejaVu Sans"]
    chosen = next((f for f in font_priority if f in available), "DejaVu Sans")

    return {
        "font.family": "sans-serif",
        "font.sans-serif": [chosen] + [f for f in font_priority if f != chosen],
        "font.size": 7,
        "axes.titlesize": 8,
        "axes.labelsize": 7,
        "xtick.labelsize": 6,
        "ytick.labelsize": 6,
        "legend.fontsize": 6,
        "lines.linewidth": 0.7,
        "lines.markersize": 3,
        "axes.linewidth": 0.6,
        "axes.edgecolor": "0.3",
        "xtick.direction": "out",
        "ytick.direction": "out",
        "legend.frameon": True,
        "legend.framealpha": 0.9,
        "legend.edgecolor": "0.7",
        "figure.facecolor": "white",
        "savefig.dpi": 600,
        "savefig.bbox": "tight",
        "savefig.pad_inches": 0.02,
    }


def plot_standard_curve(
    levels: Sequence[StandardLevelInput],
    fit: Optional[CurveFit],
    out_png: Path,
    samples: Sequence[SampleQuantification] = (),
    suggestion: Optional[AutoQcSuggestion] = None,
    title: str = "Standard curve",
) -> Optional[Path]:
    """
    Scatter of standard replicates (excluded/dropped ones hollow), the fitted
    curve across the standard range, and back-calculated samples as crosses.

    The x axis is log-scaled for 4PL fits. Returns None (with a warning) when
    there is nothing to draw.
    """
    pts = [
        (lvl.level, float(lvl.conc), r.well_id, float(r.y))
        for lvl in levels
        if is_finite_number(lvl.conc) and lvl.conc > 0
        for r in lvl.replicates
    ]
    if not pts:
        warnings.warn(f"No usable standard points, skipping standard curve plot: {out_png}", UserWarning)
        return None

    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    excluded = set(suggestion.excluded_well_ids) if suggestion else set()
    dropped = set(suggestion.dropped_levels) if suggestion else set()
    is_out = np.array([(p[2] in excluded) or (p[0] in dropped) for p in pts], dtype=bool)
    xs = np.array([p[1] for p in pts])
    ys = np.array([p[3] for p in pts])

    with plt.rc_context(apply_paper_style()):
        fig, ax = plt.subplots(figsize=PAPER_FIGSIZE_SINGLE)
        ax.scatter(xs[~is_out], ys[~is_out], s=10, color="0.15", zorder=3, label="Standards")
        if is_out.any():
            ax.scatter(
                xs[is_out], ys[is_out], s=10, facecolors="none", edgecolors="tab:red",
                zorder=3, label="Excluded",
            )

        log_x = fit is not None and fit.kind == "4pl"
        if fit is not None:
            lo, hi = float(xs.min()), float(xs.max())
            grid = np.geomspace(lo, hi, 200) if log_x else np.linspace(lo, hi, 200)
            r2_txt = f"{fit.r2:.4f}" if np.isfinite(fit.r2) else "NA"
            ax.plot(grid, eval_curve(fit, grid), ":", color="tab:blue", label=f"Fit (R² = {r2_txt})")
            ax.text(
                0.02, 0.98, describe_curve(fit), transform=ax.transAxes,
                va="top", ha="left", fontsize=5, color="0.3",
            )

        quant = [(s.conc, s.net_blank) for s in samples if s.conc is not None and s.net_blank is not None]
        if quant:
            qx, qy = zip(*quant)
            ax.scatter(qx, qy, marker="x", s=12, color="tab:orange", zorder=4, label="Samples")

        if log_x:
            ax.set_xscale("log")
        ax.set_xlabel("Concentration")
        ax.set_ylabel("Net absorbance (450 − 570)")
        ax.set_title(title)
        ax.legend(loc="lower right")
        fig.tight_layout(pad=0.3)
        fig.savefig(out_png, dpi=600, bbox_inches="tight", pad_inches=0.02)
        plt.close(fig)

    return out_png
