from __future__ import annotations

import math
import sys
import unittest
from pathlib import Path

import numpy as np


REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = REPO_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from elisa_plate_pipeline.fitting.core import FourPLParams  # noqa: E402
from elisa_plate_pipeline.fitting.logistic4pl import (  # noqa: E402
    FourPLOptions,
    eval_4pl,
    eval_4pl_log_x,
    fit_4pl,
    invert_4pl,
)


TRUE_UP = FourPLParams(A=0.05, D=2.2, C=1.0, B=1.2)  # EC50 = 10
TRUE_DOWN = FourPLParams(A=2.2, D=0.05, C=1.0, B=1.2)
X_STD = [0.1, 0.3, 1.0, 3.0, 10.0, 30.0, 100.0]


class Eval4plTests(unittest.TestCase):
    def test_midpoint_at_ec50(self) -> None:
        self.assertAlmostEqual(eval_4pl(TRUE_UP, 10.0), (0.05 + 2.2) / 2, places=12)

    def test_log_x_matches_concentration_form(self) -> None:
        self.assertAlmostEqual(eval_4pl(TRUE_UP, 3.0), eval_4pl_log_x(TRUE_UP, math.log10(3.0)), places=12)

    def test_extreme_inputs_do_not_overflow(self) -> None:
        self.assertAlmostEqual(eval_4pl_log_x(TRUE_UP, -500.0), 0.05, places=9)
        self.assertAlmostEqual(eval_4pl_log_x(TRUE_UP, 500.0), 2.2, places=9)
        # non-positive concentrations are treated as a tiny positive value
        self.assertAlmostEqual(eval_4pl(TRUE_UP, 0.0), 0.05, places=9)

    def test_vectorized(self) -> None:
        y = eval_4pl(TRUE_UP, np.array(X_STD))
        self.assertEqual(y.shape, (len(X_STD),))
        self.assertTrue(np.all(np.diff(y) > 0))


class Fit4plTests(unittest.TestCase):
    def _assert_recovers(self, params: FourPLParams, max_iter: int) -> None:
        y = [eval_4pl(params, v) for v in X_STD]
        fit = fit_4pl(X_STD, y, FourPLOptions(restarts=3, max_iter=max_iter))
        self.assertIsNotNone(fit)
        self.assertEqual(fit.kind, "4pl")
        self.assertEqual(fit.n, len(X_STD))
        self.assertGreater(fit.params.B, 0)
        self.assertAlmostEqual(fit.r2, 1.0, places=6)
        for xv, yv in zip(X_STD, y):
            self.assertAlmostEqual(eval_4pl(fit.params, xv), yv, places=3)

    def test_noiseless_increasing_curve(self) -> None:
        self._assert_recovers(TRUE_UP, max_iter=140)

    def test_noiseless_decreasing_curve(self) -> None:
        self._assert_recovers(TRUE_DOWN, max_iter=160)

    def test_requires_four_positive_points(self) -> None:
        self.assertIsNone(fit_4pl([1.0, 2.0, 3.0], [0.1, 0.2, 0.3]))
        # zero / negative / non-finite concentrations do not count
        self.assertIsNone(fit_4pl([0.0, -1.0, 1.0, 2.0, 3.0], [0.1, 0.1, 0.2, 0.3, 0.4]))
        self.assertIsNone(fit_4pl([float("nan"), 1.0, 2.0, 3.0], [0.1, 0.2, 0.3, float("inf")]))

    def test_single_restart_still_fits(self) -> None:
        y = [eval_4pl(TRUE_UP, v) for v in X_STD]
        fit = fit_4pl(X_STD, y, FourPLOptions(restarts=1, max_iter=200))
        self.assertIsNotNone(fit)
        self.assertGreater(fit.r2, 0.99)


class Invert4plTests(unittest.TestCase):
    def test_round_trip_interior(self) -> None:
        for x_true in [0.5, 3.0, 10.0, 42.0]:
            y = eval_4pl(TRUE_UP, x_true)
            x = invert_4pl(TRUE_UP, y, 0.1, 100.0)
            self.assertIsNotNone(x)
            self.assertAlmostEqual(x, x_true, places=3)

    def test_round_trip_decreasing(self) -> None:
        y = eval_4pl(TRUE_DOWN, 7.0)
        self.assertAlmostEqual(invert_4pl(TRUE_DOWN, y, 0.1, 100.0), 7.0, places=3)

    def test_at_or_beyond_asymptotes(self) -> None:
        self.assertIsNone(invert_4pl(TRUE_UP, 0.05, 0.1, 100.0))
        self.assertIsNone(invert_4pl(TRUE_UP, 2.2, 0.1, 100.0))
        self.assertIsNone(invert_4pl(TRUE_UP, 3.0, 0.1, 100.0))
        self.assertIsNone(invert_4pl(TRUE_UP, -0.2, 0.1, 100.0))

    def test_outside_standard_range(self) -> None:
        y = eval_4pl(TRUE_UP, 500.0)
        self.assertIsNone(invert_4pl(TRUE_UP, y, 0.1, 100.0))

    def test_invalid_inputs(self) -> None:
        y = eval_4pl(TRUE_UP, 3.0)
        self.assertIsNone(invert_4pl(TRUE_UP, float("nan"), 0.1, 100.0))
        self.assertIsNone(invert_4pl(TRUE_UP, y, 100.0, 0.1))
        self.assertIsNone(invert_4pl(FourPLParams(A=0.05, D=2.2, C=1.0, B=0.0), y, 0.1, 100.0))


class OptionsTests(unittest.TestCase):
    def test_from_config_defaults(self) -> None:
        self.assertEqual(FourPLOptions.from_config(None), FourPLOptions())
        opts = FourPLOptions.from_config({"max_iter": 140, "tol": "1e-8"})
        self.assertEqual(opts.max_iter, 140)
        self.assertEqual(opts.tol, 1e-8)
        self.assertEqual(opts.restarts, 3)


if __name__ == "__main__":
    unittest.main()
