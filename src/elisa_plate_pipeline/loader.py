from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd
import yaml

from .plate96 import PLATE96_WELL_IDS, index_to_well_id, normalize_well, to_well_index


WELL_TYPES = ("Empty", "Sample", "Standard", "Blank")
NULL_TOKENS = {"NA", "NAN", "INF", "#DIV/0!", "UNDETERMINED"}
UNPARSEABLE_WARNING = (
    "Could not parse the reader output. Try pasting the 450/570 plate blocks as tab-separated text."
)
_SEPARATORS = {"tab": "\t", "comma": ",", "semicolon": ";", "pipe": "|"}
_LIST_WELL_RE = re.compile(r"^([A-H])\s*([1-9]|1[0-2])$", re.IGNORECASE)


@dataclass(frozen=True)
class WellReading:
    a450: Optional[float]
    a570: Optional[float]
    net: Optional[float]

    @classmethod
    def from_pair(cls, a450: Optional[float], a570: Optional[float]) -> "WellReading":
        net = a450 - a570 if (a450 is not None and a570 is not None) else None
        return cls(a450=a450, a570=a570, net=net)


@dataclass(frozen=True)
class ReaderParseResult:
    wells: Dict[str, WellReading]
    temperature_c: Optional[float]
    warnings: List[str] = field(default_factory=list)
    format: str = "plate_blocks"  # "plate_blocks" | "list"


@dataclass(frozen=True)
class WellAssignment:
    well_id: str
    type: str = "Empty"
    keep: bool = True
    # Sample-only
    animal_id: str = ""
    group: str = ""
    dilution_factor: Optional[float] = None
    # Standard-only
    standard_level: str = ""


def load_yaml(path: Path) -> Dict[str, Any]:
    with Path(path).open("r", encoding="utf-8") as f:
        obj = yaml.safe_load(f)
    if obj is None:
        return {}
    if not isinstance(obj, dict):
        raise ValueError(f"YAML root must be a mapping: {path}")
    return obj


def read_text_flexible(p: Path) -> str:
    """Reader exports come in assorted encodings; try the common ones in order."""
    data = Path(p).read_bytes()
    for enc in ("utf-8-sig", "utf-8", "cp932", "utf-16", "utf-16-le", "utf-16-be"):
        try:
            return data.decode(enc)
        except UnicodeDecodeError:
            continue
    return data.decode("latin-1", errors="ignore")


# ---------------------------------------------------------------------------
# Reader output
# ---------------------------------------------------------------------------


def to_number(value: str) -> Optional[float]:
    s = str(value).strip()
    if not s:
        return None
    if s.upper() in NULL_TOKENS:
        return None
    try:
        n = float(s)
    except ValueError:
        return None
    return n if math.isfinite(n) else None


def detect_separator(text: str) -> str:
    """Most frequent of tab/comma/semicolon/pipe in the first 5 lines, else 'whitespace'."""
    head = "\n".join(re.split(r"\r?\n", text)[:5])
    counts = {name: head.count(ch) for name, ch in _SEPARATORS.items()}
    best = max(counts, key=lambda k: counts[k])
    return best if counts[best] > 0 else "whitespace"


def split_row(line: str, sep: str) -> List[str]:
    if sep in _SEPARATORS:
        return [c.strip() for c in line.split(_SEPARATORS[sep])]
    return [c.strip() for c in line.strip().split()]


def parse_table_text(text: str, has_header: bool = True) -> Tuple[List[str], List[List[str]]]:
    """Split delimited text into (headers, rows); short rows are padded with blanks."""
    trimmed = text.replace("\r", "").strip()
    if not trimmed:
        return [], []
    sep = detect_separator(trimmed)
    lines = [ln.rstrip() for ln in trimmed.split("\n") if ln.strip()]
    raw_rows = [split_row(ln, sep) for ln in lines]
    width = max(len(r) for r in raw_rows)
    rows = [r + [""] * (width - len(r)) for r in raw_rows]
    if has_header:
        headers = [h.strip() if h.strip() else f"Column {i + 1}" for i, h in enumerate(rows[0])]
        return headers, rows[1:]
    return [f"Column {i + 1}" for i in range(width)], rows


def _try_parse_plate_blocks(text: str) -> Optional[ReaderParseResult]:
    trimmed = text.replace("\r", "").strip()
    if not trimmed:
        return None

    sep = detect_separator(trimmed)
    lines = [ln.rstrip() for ln in trimmed.split("\n") if ln.strip()]
    rows = [split_row(ln, sep) for ln in lines]

    header_i = next((i for i, r in enumerate(rows) if any(re.search("temperature", c, re.I) for c in r)), None)
    if header_i is None:
        header_i = next((i for i, r in enumerate(rows) if sum(c.strip() == "1" for c in r) >= 2), None)
    if header_i is None:
        return None

    one_idx = [i for i, c in enumerate(rows[header_i]) if c.strip() == "1"]
    if len(one_idx) < 2:
        return None
    start450, start570 = one_idx[0], one_idx[1]

    m450: List[List[Optional[float]]] = []
    m570: List[List[Optional[float]]] = []
    temperature_c: Optional[float] = None

    width = start570 + 12
    for row in rows[header_i + 1 :]:
        if len(row) >= width:
            padded = row
        elif sep == "whitespace":
            # blank leading cells collapse when splitting on whitespace
            padded = [""] * (width - len(row)) + row
        else:
            padded = row + [""] * (width - len(row))
        vals450 = [to_number(padded[start450 + i]) for i in range(12)]
        vals570 = [to_number(padded[start570 + i]) for i in range(12)]
        if all(v is None for v in vals450) and all(v is None for v in vals570):
            continue

        if temperature_c is None:
            # first cell of the first data row
            temperature_c = to_number(padded[0])

        m450.append(vals450)
        m570.append(vals570)
        if len(m450) >= 8:
            break

    if len(m450) < 8 or len(m570) < 8:
        return None

    wells: Dict[str, WellReading] = {}
    for r in range(8):
        for c in range(12):
            wells[PLATE96_WELL_IDS[r * 12 + c]] = WellReading.from_pair(m450[r][c], m570[r][c])

    return ReaderParseResult(wells=wells, temperature_c=temperature_c, warnings=[], format="plate_blocks")


def _try_parse_list(text: str) -> Optional[ReaderParseResult]:
    trimmed = text.replace("\r", "").strip()
    if not trimmed:
        return None

    headers, rows = parse_table_text(trimmed, has_header=True)
    if len(headers) < 2:
        return None

    h = [c.strip().lower() for c in headers]
    idx450 = next((i for i, c in enumerate(h) if "450" in c), -1)
    idx570 = next((i for i, c in enumerate(h) if "570" in c), -1)
    if idx450 < 0 or idx570 < 0:
        return None
    idx_well = next((i for i, c in enumerate(h) if "well" in c or "position" in c), -1)

    wells: Dict[str, WellReading] = {}
    warnings: List[str] = []

    for row_no, row in enumerate(rows, start=1):
        reading = WellReading.from_pair(to_number(row[idx450]), to_number(row[idx570]))

        well_id: Optional[str] = None
        if idx_well >= 0:
            m = _LIST_WELL_RE.match(row[idx_well].strip())
            if m:
                well_id = f"{m.group(1).upper()}{int(m.group(2))}"
        else:
            # Sequential index 1..96 in a leading non-reading column, else the row position.
            n = to_number(row[0]) if 0 not in (idx450, idx570) else None
            if n is not None and n == int(n) and 1 <= n <= 96:
                well_id = index_to_well_id(int(n) - 1)
            else:
                well_id = index_to_well_id(row_no - 1)

        if well_id is None:
            continue
        wells[well_id] = reading

    if not wells:
        warnings.append("No well readings could be mapped from the list format.")

    return ReaderParseResult(wells=wells, temperature_c=None, warnings=warnings, format="list")


def parse_reader_text(text: str) -> ReaderParseResult:
    """
    Parse pasted/exported 450/570 nm reader output into per-well readings.

    Two layouts are tried in order:
      - plate blocks: a header with two "1" column labels (450 block, then 570
        block), optionally led by a Temperature cell, followed by 8 rows A..H
      - list: a header with columns containing "450" and "570", plus a
        well/position column (or a sequential index)

    Never raises on bad text; returns empty wells and a warning instead.
    """
    text = "" if text is None else str(text)

    block = _try_parse_plate_blocks(text)
    if block is not None:
        return block

    listed = _try_parse_list(text)
    if listed is not None:
        return listed

    return ReaderParseResult(wells={}, temperature_c=None, warnings=[UNPARSEABLE_WARNING], format="plate_blocks")


def readings_to_frame(readings: Dict[str, WellReading]) -> pd.DataFrame:
    """Tidy table [well, row, col, a450, a570, net] in A1..H12 order."""
    rows = []
    for well_id in PLATE96_WELL_IDS:
        r = readings.get(well_id)
        if r is None:
            continue
        rows.append(
            {
                "well": well_id,
                "row": well_id[0],
                "col": int(well_id[1:]),
                "a450": r.a450,
                "a570": r.a570,
                "net": r.net,
            }
        )
    return pd.DataFrame(rows, columns=["well", "row", "col", "a450", "a570", "net"])


# ---------------------------------------------------------------------------
# Plate layout and standard concentrations
# ---------------------------------------------------------------------------


def empty_layout() -> Dict[str, WellAssignment]:
    return {w: WellAssignment(well_id=w) for w in PLATE96_WELL_IDS}


def parse_dilution_factor(raw: Any) -> Optional[float]:
    """Accept '10', '1:10' or '1/10'; None when unparseable or not positive."""
    s = "" if raw is None else str(raw).strip()
    if not s or s.lower() == "nan":
        return None
    direct = to_number(s)
    if direct is not None:
        return direct if direct > 0 else None
    m = re.match(r"^\s*1\s*[:/]\s*(\d+(?:\.\d+)?)\s*$", s)
    if m:
        v = float(m.group(1))
        return v if v > 0 else None
    return None


def _parse_keep(raw: str) -> bool:
    s = str(raw).strip().lower()
    if s in ("", "1", "true", "yes", "y", "keep"):
        return True
    if s in ("0", "false", "no", "n", "drop", "exclude"):
        return False
    raise ValueError(f"Invalid keep flag: {raw!r}")


def read_layout_tsv(path: Path) -> Dict[str, WellAssignment]:
    """
    TSV with columns:
      - required: well, type (Empty | Sample | Standard | Blank)
      - optional: keep, animal_id, group, dilution_factor, standard_level
    Wells not listed stay Empty.
    """
    df = pd.read_csv(path, sep="\t", dtype=str).fillna("")
    df.columns = [c.strip().lower() for c in df.columns]

    if "well" not in df.columns or "type" not in df.columns:
        raise ValueError(f"layout must include 'well' and 'type': {path}")

    layout = empty_layout()
    for _, rec in df.iterrows():
        raw_well = str(rec["well"]).strip()
        if not raw_well:
            continue
        well_id = normalize_well(raw_well)
        if to_well_index(well_id) is None:
            raise ValueError(f"Invalid well: {raw_well}")

        wtype = str(rec["type"]).strip().capitalize() or "Empty"
        if wtype not in WELL_TYPES:
            raise ValueError(f"Invalid well type for {well_id}: {rec['type']!r}")

        keep = _parse_keep(rec.get("keep", ""))
        if wtype == "Sample":
            layout[well_id] = WellAssignment(
                well_id=well_id,
                type=wtype,
                keep=keep,
                animal_id=str(rec.get("animal_id", "")).strip(),
                group=str(rec.get("group", "")).strip(),
                dilution_factor=parse_dilution_factor(rec.get("dilution_factor", "")),
            )
        elif wtype == "Standard":
            layout[well_id] = WellAssignment(
                well_id=well_id,
                type=wtype,
                keep=keep,
                standard_level=str(rec.get("standard_level", "")).strip(),
            )
        else:
            layout[well_id] = WellAssignment(well_id=well_id, type=wtype, keep=keep)

    return layout


def read_standards_tsv(path: Path) -> Dict[str, float]:
    """TSV with columns level, conc. Rows with a non-numeric conc are skipped."""
    df = pd.read_csv(path, sep="\t", dtype=str).fillna("")
    df.columns = [c.strip().lower() for c in df.columns]
    if "level" not in df.columns or "conc" not in df.columns:
        raise ValueError(f"standards table must include 'level' and 'conc': {path}")

    out: Dict[str, float] = {}
    for level, conc in zip(df["level"], df["conc"]):
        label = str(level).strip()
        value = to_number(conc)
        if label and value is not None:
            out[label] = value
    return out
