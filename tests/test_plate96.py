from __future__ import annotations

import sys
import unittest
from pathlib import Path


REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = REPO_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from elisa_plate_pipeline.plate96 import (  # noqa: E402
    PLATE96_WELL_IDS,
    PLATE96_WELL_IDS_COLUMN_MAJOR,
    index_to_well_id,
    normalize_well,
    to_well_index,
    well_range,
    well_sort_key,
)


class Plate96Tests(unittest.TestCase):
    def test_well_orders(self) -> None:
        self.assertEqual(len(PLATE96_WELL_IDS), 96)
        self.assertEqual(PLATE96_WELL_IDS[:3], ("A1", "A2", "A3"))
        self.assertEqual(PLATE96_WELL_IDS[-1], "H12")
        self.assertEqual(PLATE96_WELL_IDS_COLUMN_MAJOR[:3], ("A1", "B1", "C1"))
        self.assertEqual(set(PLATE96_WELL_IDS), set(PLATE96_WELL_IDS_COLUMN_MAJOR))

    def test_normalize_and_index(self) -> None:
        self.assertEqual(normalize_well(" b07 "), "B7")
        self.assertEqual(to_well_index("A1"), 0)
        self.assertEqual(to_well_index("h12"), 95)
        self.assertEqual(to_well_index("B01"), 12)
        self.assertIsNone(to_well_index("A13"))
        self.assertIsNone(to_well_index("I1"))
        self.assertEqual(index_to_well_id(13), "B2")
        self.assertIsNone(index_to_well_id(96))
        self.assertIsNone(index_to_well_id("x"))

    def test_range_and_sort(self) -> None:
        self.assertEqual(well_range("A11", "B2"), ["A11", "A12", "B1", "B2"])
        self.assertEqual(well_range("B2", "A11"), ["A11", "A12", "B1", "B2"])
        self.assertEqual(well_range("A1", "Z9"), [])
        self.assertEqual(sorted(["B1", "A10", "A2"], key=well_sort_key), ["A2", "A10", "B1"])


if __name__ == "__main__":
    unittest.main()
