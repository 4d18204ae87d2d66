# src/elisa_plate_pipeline/plate96.py
"""
96-well plate geometry: well ids, row/column order and index mapping.
"""
from __future__ import annotations

import re
from typing import List, Optional, Tuple


PLATE96_ROWS = tuple("ABCDEFGH")
PLATE96_COLS = tuple(range(1, 13))

PLATE96_WELL_IDS: Tuple[str, ...] = tuple(f"{r}{c}" for r in PLATE96_ROWS for c in PLATE96_COLS)
# Column-major order (A1..H1, A2..H2, ...): how samples are usually pipetted.
PLATE96_WELL_IDS_COLUMN_MAJOR: Tuple[str, ...] = tuple(
    f"{r}{c}" for c in PLATE96_COLS for r in PLATE96_ROWS
)

WELL_RE = re.compile(r"^([A-H])\s*0*([1-9]|1[0-2])$", re.IGNORECASE)


def normalize_well(well: str) -> str:
    w = str(well).strip().upper()
    m = re.match(r"^([A-H])\s*0*([0-9]+)$", w)
    if m:
        return f"{m.group(1)}{int(m.group(2))}"
    return w


def to_well_index(well: str) -> Optional[int]:
    m = WELL_RE.match(str(well).strip())
    if not m:
        return None
    row_idx = PLATE96_ROWS.index(m.group(1).upper())
    col_idx = int(m.group(2)) - 1
    return row_idx * 12 + col_idx


def index_to_well_id(index: float) -> Optional[str]:
    try:
        idx = int(index)
    except (TypeError, ValueError, OverflowError):
        return None
    if idx < 0 or idx >= 96:
        return None
    return PLATE96_WELL_IDS[idx]


def well_range(start: str, end: str) -> List[str]:
    """Inclusive row-major range between two wells, regardless of argument order."""
    a = to_well_index(start)
    b = to_well_index(end)
    if a is None or b is None:
        return []
    lo, hi = min(a, b), max(a, b)
    return list(PLATE96_WELL_IDS[lo : hi + 1])


def well_sort_key(well: str) -> tuple:
    idx = to_well_index(well)
    if idx is None:
        return (999, 999)
    return divmod(idx, 12)
