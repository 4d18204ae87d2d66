from __future__ import annotations

import json
import math
import sys
import tempfile
import unittest
from pathlib import Path

import numpy as np
import pandas as pd


REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = REPO_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from elisa_plate_pipeline.fitting.pipeline import SampleQuantification  # noqa: E402
from elisa_plate_pipeline.fitting.qc import (  # noqa: E402
    AutoQcAction,
    AutoQcSuggestion,
    Replicate,
    StandardLevelInput,
)
from elisa_plate_pipeline.summary import (  # noqa: E402
    QUANT_TSV_COLUMNS,
    format_quant_tsv,
    level_table,
    plate_counts,
    suggestion_to_dict,
    summarize_by_animal,
    write_json,
    write_quant_tsv,
)


def _sample(well, animal, group, adjusted, df=1.0, net=0.5, conc=None):
    return SampleQuantification(
        well_id=well,
        animal_id=animal,
        group=group,
        dilution_factor=df,
        net_blank=net,
        conc=adjusted / df if conc is None and adjusted is not None else conc,
        conc_adjusted=adjusted,
    )


class AnimalSummaryTests(unittest.TestCase):
    def test_mean_sd_sem(self) -> None:
        samples = [
            _sample("B1", "M2", "Trt", 7.0),
            _sample("A1", "M1", "Ctrl", 10.0),
            _sample("A2", "M1", "Ctrl", 12.0),
            _sample("A3", "M1", "Ctrl", None),
        ]
        out = summarize_by_animal(samples)
        self.assertEqual(list(out["animal_id"]), ["M1", "M2"])

        m1 = out.iloc[0]
        self.assertEqual(int(m1["n"]), 2)
        self.assertAlmostEqual(float(m1["mean"]), 11.0)
        self.assertAlmostEqual(float(m1["sd"]), math.sqrt(2.0))
        self.assertAlmostEqual(float(m1["sem"]), 1.0)
        self.assertAlmostEqual(float(m1["cv_percent"]), 100.0 * math.sqrt(2.0) / 11.0)

        m2 = out.iloc[1]
        self.assertEqual(int(m2["n"]), 1)
        self.assertTrue(pd.isna(m2["sd"]))
        self.assertTrue(pd.isna(m2["sem"]))

    def test_empty(self) -> None:
        out = summarize_by_animal([])
        self.assertTrue(out.empty)
        self.assertIn("cv_percent", out.columns)


class QuantTsvTests(unittest.TestCase):
    def test_row_formatting(self) -> None:
        samples = [
            SampleQuantification("A1", "M1", "G", 2.0, 0.51234, 5.0, 10.0),
            SampleQuantification("A2", "M1", "G", 2.5, 0.4, None, None),
        ]
        lines = format_quant_tsv(samples).splitlines()
        self.assertEqual(lines[0], "\t".join(QUANT_TSV_COLUMNS))
        self.assertEqual(lines[1], "A1\tM1\tG\t2\t0.5123\t5.000000\t10.000000")
        self.assertEqual(lines[2], "A2\tM1\tG\t2.5\t0.4000\t\t")

    def test_write(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = write_quant_tsv([], Path(td) / "out" / "quant.tsv")
            self.assertEqual(path.read_text(encoding="utf-8"), "\t".join(QUANT_TSV_COLUMNS) + "\n")


class LevelTableTests(unittest.TestCase):
    def test_per_level_stats(self) -> None:
        levels = [
            StandardLevelInput("Std1", 100.0, (Replicate("A1", 1.0), Replicate("B1", 1.2))),
            StandardLevelInput("Std2", float("nan"), ()),
        ]
        table = level_table(levels)
        self.assertEqual(list(table["level"]), ["Std1", "Std2"])
        self.assertAlmostEqual(float(table.loc[0, "mean"]), 1.1)
        self.assertEqual(int(table.loc[1, "n"]), 0)
        self.assertTrue(np.isnan(table.loc[1, "conc"]))
        self.assertTrue(pd.isna(table.loc[1, "mean"]))


class PlateCountsTests(unittest.TestCase):
    def test_counts(self) -> None:
        wells = pd.DataFrame(
            {
                "well": ["A1", "A2", "A3", "A4", "A5"],
                "type": ["Standard", "Standard", "Sample", "Blank", "Empty"],
                "keep": [True, False, True, True, True],
                "outlier": [True, True, False, False, False],
            }
        )
        self.assertEqual(
            plate_counts(wells),
            {"assigned": 4, "samples": 1, "standards": 2, "blanks": 1, "outliers": 1, "kept": 3},
        )

    def test_empty_table(self) -> None:
        self.assertEqual(plate_counts(pd.DataFrame())["assigned"], 0)


class JsonExportTests(unittest.TestCase):
    def test_suggestion_and_nonfinite_values(self) -> None:
        suggestion = AutoQcSuggestion(
            excluded_well_ids=("B4",),
            actions=(AutoQcAction(type="exclude-replicate", level="Std4", reason="Improves fit (ΔR² 0.0123).", well_id="B4"),),
        )
        with tempfile.TemporaryDirectory() as td:
            path = write_json(
                {"blank_median": float("nan"), "n": np.int64(3), "suggestion": suggestion_to_dict(suggestion)},
                Path(td) / "autoqc.json",
            )
            data = json.loads(path.read_text(encoding="utf-8"))
        self.assertIsNone(data["blank_median"])
        self.assertEqual(data["n"], 3)
        self.assertEqual(data["suggestion"]["excluded_well_ids"], ["B4"])
        self.assertEqual(data["suggestion"]["actions"][0]["well_id"], "B4")
        self.assertEqual(suggestion_to_dict(None), {})


if __name__ == "__main__":
    unittest.main()
