# src/elisa_plate_pipeline/fitting/__init__.py
"""
Fitting subpackage - standard curves and plate quantification.

Modules:
  - core: curve fit types and numeric primitives (median, linear solver, R²)
  - polynomial: degree 2/3 least-squares curves and inversion by search
  - logistic4pl: 4PL Levenberg-Marquardt fit and closed-form inversion
  - curve: dispatch over the PolyFit | FourPLFit union
  - qc: Auto-QC exclusion suggestions and replicate outlier flags
  - pipeline: blank correction, level aggregation, sample back-calculation
  - plotting: standard-curve diagnostic plot
"""

# Core types and utilities
from .core import (
    CurveFit,
    CurveKind,
    FitSummary,
    FourPLFit,
    FourPLParams,
    PolyFit,
    median,
    r2_score,
    sample_sd,
    solve_linear_system,
)

# Curve models
from .polynomial import (
    eval_poly,
    fit_polynomial,
    invert_poly_by_search,
)
from .logistic4pl import (
    FourPLOptions,
    eval_4pl,
    eval_4pl_log_x,
    fit_4pl,
    invert_4pl,
)
from .curve import (
    curve_sse,
    describe_curve,
    eval_curve,
    fit_curve,
    invert_curve,
)

# QC
from .qc import (
    AutoQcAction,
    AutoQcOptions,
    AutoQcSuggestion,
    Replicate,
    StandardLevelInput,
    apply_suggestion,
    flag_outliers,
    suggest_standard_curve_exclusions,
)

# Pipeline
from .pipeline import (
    QuantificationResult,
    QuantOptions,
    SampleQuantification,
    build_standard_levels,
    compute_blank_offset,
    fill_serial_dilution,
    quantify_plate,
    quantify_samples,
    standard_levels,
    suggest_for_plate,
)

# Plotting
from .plotting import (
    apply_paper_style,
    plot_standard_curve,
)

__all__ = [
    # Core
    "CurveFit",
    "CurveKind",
    "FitSummary",
    "FourPLFit",
    "FourPLParams",
    "PolyFit",
    "median",
    "r2_score",
    "sample_sd",
    "solve_linear_system",
    # Curve models
    "eval_poly",
    "fit_polynomial",
    "invert_poly_by_search",
    "FourPLOptions",
    "eval_4pl",
    "eval_4pl_log_x",
    "fit_4pl",
    "invert_4pl",
    "curve_sse",
    "describe_curve",
    "eval_curve",
    "fit_curve",
    "invert_curve",
    # QC
    "AutoQcAction",
    "AutoQcOptions",
    "AutoQcSuggestion",
    "Replicate",
    "StandardLevelInput",
    "apply_suggestion",
    "flag_outliers",
    "suggest_standard_curve_exclusions",
    # Pipeline
    "QuantificationResult",
    "QuantOptions",
    "SampleQuantification",
    "build_standard_levels",
    "compute_blank_offset",
    "fill_serial_dilution",
    "quantify_plate",
    "quantify_samples",
    "standard_levels",
    "suggest_for_plate",
    # Plotting
    "apply_paper_style",
    "plot_standard_curve",
]
