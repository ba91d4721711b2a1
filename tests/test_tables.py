import unittest

import numpy as np
import pandas as pd

from houlsby.core import ConfinedRecord, forecast_confined, linear_forecast, predict_unconfined, solve_lmad
from houlsby.tables import (
    build_dataframe,
    build_forecast_dataframe,
    coefficient_dataframe,
    compute_warnings,
)


class DataFrameTests(unittest.TestCase):
    def setUp(self) -> None:
        self.record = ConfinedRecord.from_arrays(
            beta=0.2, V0=1.0, d0=2.0, CT=[0.8, -0.1], CP=[0.42, 0.1], TSR=[4.0, 6.0]
        )

    def test_solved_table(self) -> None:
        with self.assertLogs("houlsby.core", level="WARNING"):
            df = build_dataframe(solve_lmad(self.record))
        self.assertEqual(len(df), 2)
        self.assertEqual(df.columns[-1], "Warnings")
        self.assertEqual(list(df["status"]), ["success", "undefined"])
        self.assertEqual(df.loc[0, "Warnings"], "")
        self.assertEqual(df.loc[1, "Warnings"], "undefined")
        self.assertTrue(np.isnan(df.loc[1, "u2"]))
        self.assertIn("thrust", df.loc[1, "note"])

    def test_complex_wake_velocity_is_reported(self) -> None:
        record = ConfinedRecord.from_arrays(beta=0.05, V0=1.0, d0=2.0, CT=2.0)
        df = build_dataframe(solve_lmad(record))
        self.assertTrue(df.loc[0, "complex u1"])
        self.assertTrue(np.isnan(df.loc[0, "u1"]))
        self.assertTrue(np.isnan(df.loc[0, "ut"]))
        self.assertIn("complex u1", df.loc[0, "Warnings"])
        self.assertNotIn("NaN fields", df.loc[0, "Warnings"])

    def test_warning_messages(self) -> None:
        df = pd.DataFrame(
            {
                "u1": [0.6, np.nan],
                "u2": [0.9, 1.2],
                "ut": [0.8, 0.8],
                "u2 residual": [1e-3, 1e-9],
                "status": ["failure", "success"],
                "u2>V0": [False, True],
                "u1<u2": [True, True],
                "u1<ut<u2": [True, True],
            }
        )
        warnings = compute_warnings(df, tolerance=1e-6)
        self.assertIn("u2 residual>tol", warnings[0])
        self.assertIn("solver failure", warnings[0])
        self.assertIn("u2<=V0", warnings[0])
        self.assertEqual(warnings[1], "NaN fields")

    def test_forecast_table(self) -> None:
        record = self.record.replace_fields(CT=[0.8, 0.6])
        forecast, _ = forecast_confined(record, 0.1)
        df = build_forecast_dataframe(forecast)
        self.assertIn("V0 residual", df.columns)
        self.assertIn("ill-conditioned depth", df.columns)
        self.assertEqual(df.columns[-1], "Warnings")
        np.testing.assert_allclose(df["beta"], 0.1)

    def test_coefficient_tables(self) -> None:
        record = self.record.replace_fields(CT=[0.8, 0.6])
        unconf, _ = predict_unconfined(record)
        df = coefficient_dataframe(unconf)
        self.assertEqual(list(df.columns), ["V0", "V0/V0_scaled", "CT", "CP", "TSR"])
        linear = coefficient_dataframe(linear_forecast(record, 0.1), index=pd.Index([5, 6]))
        self.assertEqual(list(linear.columns), ["beta", "CT", "CP", "TSR"])
        self.assertEqual(list(linear.index), [5, 6])


if __name__ == "__main__":
    unittest.main()
