"""
Tabular views of solved, corrected and forecast records.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Union

import numpy as np
import pandas as pd

from .config import SolverOptions
from .core import (
    DerivedState,
    ForecastedRecord,
    LinearForecast,
    RescaledRecord,
    SolvedRecord,
    UndefinedSample,
)


def compute_warnings(df: pd.DataFrame, tolerance: float = SolverOptions.tolerance) -> pd.Series:
    msgs: List[str] = []
    for _, row in df.iterrows():
        warnings: List[str] = []
        if row.get("status") == "undefined":
            warnings.append("undefined")
            msgs.append("; ".join(warnings))
            continue
        residual = row.get("u2 residual")
        if pd.notna(residual) and residual >= tolerance:
            warnings.append("u2 residual>tol")
        if row.get("status") not in (None, "success"):
            warnings.append(f"solver {row.get('status')}")
        if not row.get("u2>V0", True):
            warnings.append("u2<=V0")
        if not row.get("u1<u2", True):
            warnings.append("u1>=u2")
        if not row.get("u1<ut<u2", True):
            warnings.append("ut outside (u1, u2)")
        if row.get("complex u1", False):
            warnings.append("complex u1")
        elif any(pd.isna(row.get(col)) for col in ("u1", "u2", "ut")):
            warnings.append("NaN fields")
        msgs.append("; ".join(warnings))
    return pd.Series(msgs, index=df.index, name="Warnings")


def _real_values(x):
    """Real part where the imaginary part is zero, NaN elsewhere."""
    x = np.asarray(x)
    return np.where(np.imag(x) == 0.0, np.real(x), np.nan)[()]


def _sample_row(result: Union[DerivedState, UndefinedSample]) -> Dict[str, object]:
    rec: Dict[str, object] = {
        "beta": result.inputs.beta,
        "V0": result.inputs.V0,
        "d0": result.inputs.d0,
        "CT": result.inputs.CT,
        "Fr": result.Fr,
    }
    if isinstance(result, UndefinedSample):
        rec.update({"status": "undefined", "note": result.reason})
        return rec
    rec.update(
        {
            "u1": _real_values(result.u1),
            "u2": result.u2,
            "ut": _real_values(result.ut),
            "V0Prime": _real_values(result.V0Prime),
            "complex u1": isinstance(result.u1, complex),
            "dh/h": result.dhToh,
            "hFinal": result.hFinal,
            "u2 residual": result.u2_iter.residual,
            "status": result.u2_iter.status.value,
            "u2>V0": result.validity.bypass_exceeds_freestream,
            "u1<u2": result.validity.wake_slower_than_bypass,
            "u1<ut<u2": result.validity.turbine_between_wake_and_bypass,
        }
    )
    return rec


def build_dataframe(solved: SolvedRecord, tolerance: float = SolverOptions.tolerance) -> pd.DataFrame:
    """One row per sample with inputs, solved velocities, diagnostics and warnings."""
    df = pd.DataFrame.from_records([_sample_row(s) for s in solved.samples])
    if not df.empty:
        df.insert(len(df.columns), "Warnings", compute_warnings(df, tolerance))
    else:
        df["Warnings"] = pd.Series(dtype=str)
    return df


def build_forecast_dataframe(forecast: ForecastedRecord) -> pd.DataFrame:
    df = build_dataframe(forecast.solved)
    df.insert(len(df.columns) - 1, "V0 residual", forecast.v0_residual)
    df.insert(len(df.columns) - 1, "ill-conditioned depth", forecast.ill_conditioned_depth)
    return df


def coefficient_dataframe(
    values: Union[RescaledRecord, LinearForecast], index: Optional[pd.Index] = None
) -> pd.DataFrame:
    """Coefficients of a corrected or linearly forecast record; absent fields are omitted."""
    columns: Dict[str, np.ndarray] = {}
    if isinstance(values, RescaledRecord):
        columns["V0"] = _real_values(values.V0)
        columns["V0/V0_scaled"] = _real_values(values.vel_ratio)
    else:
        columns["beta"] = values.beta
    for name, data in (
        ("CT", values.CT),
        ("CP", values.CP),
        ("CQ", values.CQ),
        ("CL", values.CL),
        ("CF", values.CF),
        ("TSR", values.TSR),
    ):
        if data is not None:
            columns[name] = _real_values(data)
    return pd.DataFrame(columns, index=index)
