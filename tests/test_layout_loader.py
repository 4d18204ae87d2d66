from __future__ import annotations

import sys
import tempfile
import unittest
from pathlib import Path


REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = REPO_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from elisa_plate_pipeline.loader import (  # noqa: E402
    load_yaml,
    parse_dilution_factor,
    read_layout_tsv,
    read_standards_tsv,
)
from elisa_plate_pipeline.meta_paths import (  # noqa: E402
    get_meta_paths,
    layout_path_for_run,
    standards_path_for_run,
)


def _write(td: str, name: str, text: str) -> Path:
    p = Path(td) / name
    p.write_text(text, encoding="utf-8")
    return p


class LayoutTsvTests(unittest.TestCase):
    def test_reads_assignments(self) -> None:
        text = (
            "well\ttype\tkeep\tanimal_id\tgroup\tdilution_factor\tstandard_level\n"
            "A01\tstandard\t\t\t\t\t Std1 \n"
            "c3\tSample\t0\tM01\tControl\t1:10\t\n"
            "D3\tSample\t\tM02\tTreated\t5\t\n"
            "H12\tBlank\tyes\t\t\t\t\n"
        )
        with tempfile.TemporaryDirectory() as td:
            layout = read_layout_tsv(_write(td, "layout.tsv", text))

        self.assertEqual(len(layout), 96)
        self.assertEqual(layout["A1"].type, "Standard")
        self.assertEqual(layout["A1"].standard_level, "Std1")
        self.assertEqual(layout["C3"].animal_id, "M01")
        self.assertEqual(layout["C3"].group, "Control")
        self.assertEqual(layout["C3"].dilution_factor, 10.0)
        self.assertFalse(layout["C3"].keep)
        self.assertTrue(layout["D3"].keep)
        self.assertEqual(layout["D3"].dilution_factor, 5.0)
        self.assertEqual(layout["H12"].type, "Blank")
        self.assertEqual(layout["B2"].type, "Empty")

    def test_repo_example_layout(self) -> None:
        layout = read_layout_tsv(get_meta_paths(REPO_ROOT).layouts_dir / "example.tsv")
        self.assertEqual(layout["A1"].standard_level, "Std1")
        self.assertEqual(layout["A3"].type, "Blank")
        self.assertEqual(layout["C3"].dilution_factor, 10.0)

    def test_invalid_rows(self) -> None:
        cases = [
            "well\ttype\nI1\tSample\n",
            "well\ttype\nA13\tSample\n",
            "well\ttype\nA1\tControl\n",
            "well\ttype\tkeep\nA1\tBlank\tmaybe\n",
            "well\tanimal_id\nA1\tM1\n",
        ]
        with tempfile.TemporaryDirectory() as td:
            for i, text in enumerate(cases):
                with self.subTest(text=text):
                    with self.assertRaises(ValueError):
                        read_layout_tsv(_write(td, f"bad{i}.tsv", text))


class StandardsTsvTests(unittest.TestCase):
    def test_reads_concentrations(self) -> None:
        text = "Level\tConc\nStd1\t1000\nStd2\t500.5\nStd3\tNA\n\t12\n"
        with tempfile.TemporaryDirectory() as td:
            std = read_standards_tsv(_write(td, "std.tsv", text))
        self.assertEqual(std, {"Std1": 1000.0, "Std2": 500.5})

    def test_missing_columns(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            with self.assertRaises(ValueError):
                read_standards_tsv(_write(td, "std.tsv", "level\tvalue\nStd1\t1\n"))

    def test_repo_example_standards(self) -> None:
        std = read_standards_tsv(standards_path_for_run(REPO_ROOT, "example"))
        self.assertEqual(len(std), 8)
        self.assertEqual(std["Std1"], 1000.0)
        self.assertAlmostEqual(std["Std8"], 7.8125)


class DilutionFactorTests(unittest.TestCase):
    def test_forms(self) -> None:
        self.assertEqual(parse_dilution_factor("10"), 10.0)
        self.assertEqual(parse_dilution_factor("1:10"), 10.0)
        self.assertEqual(parse_dilution_factor(" 1/2.5 "), 2.5)
        self.assertIsNone(parse_dilution_factor(""))
        self.assertIsNone(parse_dilution_factor(None))
        self.assertIsNone(parse_dilution_factor("0"))
        self.assertIsNone(parse_dilution_factor("-4"))
        self.assertIsNone(parse_dilution_factor("ten"))


class ConfigTests(unittest.TestCase):
    def test_non_mapping_yaml(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            with self.assertRaises(ValueError):
                load_yaml(_write(td, "cfg.yml", "- just\n- a list\n"))

    def test_meta_paths(self) -> None:
        meta = get_meta_paths(REPO_ROOT)
        self.assertEqual(meta.config, REPO_ROOT / "meta" / "config.yml")
        self.assertEqual(layout_path_for_run(REPO_ROOT, "r1"), REPO_ROOT / "meta" / "layouts" / "r1.tsv")


if __name__ == "__main__":
    unittest.main()
