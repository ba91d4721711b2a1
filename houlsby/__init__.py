"""
Public API for the Houlsby open-channel LMAD blockage correction package.
"""

from .config import SolverOptions, load_options
from .convergence import DiagnosticBundle, SolverStatus, assess_forecast_convergence_region
from .core import (
    MODEL_NAME,
    ConfinedRecord,
    CorrectionType,
    DerivedState,
    ForecastedRecord,
    ForecastedSample,
    GuessMode,
    InvalidInputError,
    LinearForecast,
    PhysicalValidity,
    RescaledRecord,
    SampleInputs,
    ScalingVelocity,
    SolvedRecord,
    UndefinedSample,
    check_physical_validity,
    forecast_confined,
    forecast_sample,
    linear_forecast,
    predict_unconfined,
    rescale_by_velocity,
    solve_lmad,
    solve_sample,
)

__all__ = [
    "MODEL_NAME",
    "SolverOptions",
    "load_options",
    "SolverStatus",
    "DiagnosticBundle",
    "ConfinedRecord",
    "SampleInputs",
    "DerivedState",
    "UndefinedSample",
    "PhysicalValidity",
    "SolvedRecord",
    "RescaledRecord",
    "ForecastedSample",
    "ForecastedRecord",
    "LinearForecast",
    "GuessMode",
    "ScalingVelocity",
    "CorrectionType",
    "InvalidInputError",
    "solve_sample",
    "forecast_sample",
    "rescale_by_velocity",
    "check_physical_validity",
    "solve_lmad",
    "predict_unconfined",
    "forecast_confined",
    "linear_forecast",
    "assess_forecast_convergence_region",
]
