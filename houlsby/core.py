"""
Core data model and operations for open-channel LMAD blockage correction.

The sample-level operations (solve_sample, forecast_sample) run the
reconciliation engines for one measurement; the record-level functions
(solve_lmad, predict_unconfined, forecast_confined, linear_forecast) iterate
the samples of a ConfinedRecord and assemble the results. Samples are
independent: a sample that cannot be solved becomes an UndefinedSample and
its siblings proceed unaffected.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, fields, replace
from typing import Callable, Dict, Iterator, Optional, Tuple, Union

import numpy as np

from .config import SolverOptions
from .convergence import (
    DiagnosticBundle,
    SolverStatus,
    reconcile_bypass_velocity,
    reconcile_bypass_wake_ratio,
    reconcile_freestream_velocity,
    to_scalar,
)
from .equations import (
    bypass_depth,
    bypass_velocity_from_ratio,
    depth_from_blockage,
    depth_from_froude,
    disk_drop,
    downstream_disk_depth,
    froude_number,
    rescale_forcing_metric,
    total_surface_deformation,
    turbine_velocity,
    unconfined_freestream,
    upstream_disk_depth,
    wake_velocity_thrust,
)


LOGGER = logging.getLogger("houlsby.core")

MODEL_NAME = "Houlsby Open-Channel"
DEFAULT_GUESS = 1.04  # bypass/wake velocity ratio
CLOSED_CHANNEL_DEPTH = 1e6  # [m], approximates the Fr -> 0 limit
DEPTH_RATIO_LIMITS = (1e-3, 1e3)  # forecast depth / source depth outside this is flagged


class InvalidInputError(ValueError):
    """Raised for structurally malformed performance records."""


class GuessMode(enum.Enum):
    BYPASS_WAKE_RATIO = "u2u1"
    BYPASS_FREESTREAM_RATIO = "u2V0"
    BYPASS_VELOCITY = "u2"


class ScalingVelocity(enum.Enum):
    WAKE = "u1"
    BYPASS = "u2"
    TURBINE = "ut"
    UNCONFINED_FREESTREAM = "V0Prime"


class CorrectionType(enum.Enum):
    STANDARD = "standard"
    BLUFF_BODY = "bluff body"


@dataclass(frozen=True)
class SampleInputs:
    beta: float
    V0: float
    d0: float
    CT: float


def _field_array(name: str, value) -> np.ndarray:
    try:
        arr = np.atleast_1d(np.asarray(value, dtype=float))
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"Field '{name}' is not numeric") from exc
    if arr.ndim != 1:
        raise InvalidInputError(f"Field '{name}' must be one-dimensional, got shape {arr.shape}")
    return arr


@dataclass(frozen=True)
class ConfinedRecord:
    """
    Performance data measured at a single confinement.

    All populated fields hold one value per sample. Arrays are read-only;
    use `replace_fields` to derive a modified record.
    """

    beta: np.ndarray
    V0: np.ndarray
    d0: np.ndarray
    CT: np.ndarray
    CP: Optional[np.ndarray] = None
    CQ: Optional[np.ndarray] = None
    CL: Optional[np.ndarray] = None
    CF: Optional[np.ndarray] = None
    TSR: Optional[np.ndarray] = None

    @classmethod
    def from_arrays(
        cls, beta, V0, d0, CT, CP=None, CQ=None, CL=None, CF=None, TSR=None
    ) -> "ConfinedRecord":
        raw = {"beta": beta, "V0": V0, "d0": d0, "CT": CT, "CP": CP, "CQ": CQ, "CL": CL, "CF": CF, "TSR": TSR}
        arrays = {name: _field_array(name, value) for name, value in raw.items() if value is not None}
        n = max(arr.size for arr in arrays.values())
        if n == 0:
            raise InvalidInputError("Record holds no samples")
        for name, arr in arrays.items():
            if arr.size == 1 and n > 1:
                arrays[name] = np.full(n, arr[0])
            elif arr.size != n:
                raise InvalidInputError(f"Field '{name}' has {arr.size} samples, expected {n}")
        if np.any((arrays["beta"] < 0.0) | (arrays["beta"] >= 1.0)):
            raise InvalidInputError("Blockage ratio must lie in [0, 1)")
        if np.any(arrays["V0"] <= 0.0):
            raise InvalidInputError("Freestream velocity V0 must be positive")
        if np.any(arrays["d0"] <= 0.0):
            raise InvalidInputError("Depth d0 must be positive")
        for arr in arrays.values():
            arr.setflags(write=False)
        return cls(**arrays)

    def __len__(self) -> int:
        return int(self.CT.size)

    def as_dict(self) -> Dict[str, Optional[np.ndarray]]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def replace_fields(self, **changes) -> "ConfinedRecord":
        return ConfinedRecord.from_arrays(**{**self.as_dict(), **changes})

    def sample(self, k: int) -> SampleInputs:
        return SampleInputs(
            beta=float(self.beta[k]), V0=float(self.V0[k]), d0=float(self.d0[k]), CT=float(self.CT[k])
        )

    def samples(self) -> Iterator[SampleInputs]:
        for k in range(len(self)):
            yield self.sample(k)


@dataclass(frozen=True)
class PhysicalValidity:
    bypass_exceeds_freestream: bool
    wake_slower_than_bypass: bool
    turbine_between_wake_and_bypass: bool

    @property
    def all(self) -> bool:
        return (
            self.bypass_exceeds_freestream
            and self.wake_slower_than_bypass
            and self.turbine_between_wake_and_bypass
        )


@dataclass(frozen=True)
class DerivedState:
    inputs: SampleInputs
    Fr: float
    u1: float
    u2: float
    ut: float
    V0Prime: float
    dhToh: float
    hdUp: float
    hdDown: float
    hBypass: float
    dhDisk: float
    hFinal: float
    u2_iter: DiagnosticBundle
    validity: PhysicalValidity
    u2u1_iter: Optional[DiagnosticBundle] = None

    def converged(self, tolerance: float = SolverOptions.tolerance) -> bool:
        return self.u2_iter.within(tolerance)


@dataclass(frozen=True)
class UndefinedSample:
    inputs: SampleInputs
    Fr: float
    reason: str


SampleResult = Union[DerivedState, UndefinedSample]


@dataclass(frozen=True)
class RescaledRecord:
    """Performance coefficients re-referenced to a new freestream velocity."""

    V0: np.ndarray
    vel_ratio: np.ndarray
    CT: np.ndarray
    CP: Optional[np.ndarray] = None
    CQ: Optional[np.ndarray] = None
    CL: Optional[np.ndarray] = None
    CF: Optional[np.ndarray] = None
    TSR: Optional[np.ndarray] = None

    def to_confined(self, beta, d0) -> ConfinedRecord:
        return ConfinedRecord.from_arrays(
            beta=beta,
            V0=self.V0,
            d0=d0,
            CT=self.CT,
            CP=self.CP,
            CQ=self.CQ,
            CL=self.CL,
            CF=self.CF,
            TSR=self.TSR,
        )


@dataclass(frozen=True)
class LinearForecast:
    beta: np.ndarray
    CT: np.ndarray
    CP: Optional[np.ndarray] = None
    CQ: Optional[np.ndarray] = None
    CL: Optional[np.ndarray] = None
    CF: Optional[np.ndarray] = None
    TSR: Optional[np.ndarray] = None


def _collect(samples, getter: Callable[[DerivedState], object]) -> np.ndarray:
    values = [getter(s) if isinstance(s, DerivedState) else np.nan for s in samples]
    return np.real_if_close(np.array(values, dtype=complex))


@dataclass(frozen=True)
class SolvedRecord:
    record: ConfinedRecord
    samples: Tuple[SampleResult, ...]

    @property
    def defined(self) -> np.ndarray:
        return np.array([isinstance(s, DerivedState) for s in self.samples])

    @property
    def Fr(self) -> np.ndarray:
        return np.array([s.Fr for s in self.samples], dtype=float)

    @property
    def u1(self) -> np.ndarray:
        return _collect(self.samples, lambda s: s.u1)

    @property
    def u2(self) -> np.ndarray:
        return _collect(self.samples, lambda s: s.u2)

    @property
    def ut(self) -> np.ndarray:
        return _collect(self.samples, lambda s: s.ut)

    @property
    def V0Prime(self) -> np.ndarray:
        return _collect(self.samples, lambda s: s.V0Prime)

    @property
    def dhToh(self) -> np.ndarray:
        return _collect(self.samples, lambda s: s.dhToh)

    @property
    def hFinal(self) -> np.ndarray:
        return _collect(self.samples, lambda s: s.hFinal)

    @property
    def u2_residual(self) -> np.ndarray:
        return _collect(self.samples, lambda s: s.u2_iter.residual)

    @property
    def statuses(self) -> Tuple[SolverStatus, ...]:
        return tuple(
            s.u2_iter.status if isinstance(s, DerivedState) else SolverStatus.UNDEFINED
            for s in self.samples
        )

    def scaling_velocity(self, choice: ScalingVelocity) -> np.ndarray:
        if choice is ScalingVelocity.WAKE:
            return self.u1
        if choice is ScalingVelocity.BYPASS:
            return self.u2
        if choice is ScalingVelocity.TURBINE:
            return self.ut
        return self.V0Prime


@dataclass(frozen=True)
class ForecastedSample:
    inputs: SampleInputs
    Fr: float
    v0_iter: DiagnosticBundle
    state: SampleResult
    ill_conditioned_depth: bool = False


ForecastResult = Union[ForecastedSample, UndefinedSample]


@dataclass(frozen=True)
class ForecastedRecord:
    record: ConfinedRecord
    samples: Tuple[ForecastResult, ...]

    @property
    def solved(self) -> SolvedRecord:
        """LMAD state re-solved at the target blockage."""
        states = tuple(f.state if isinstance(f, ForecastedSample) else f for f in self.samples)
        return SolvedRecord(self.record, states)

    @property
    def v0_residual(self) -> np.ndarray:
        return np.array(
            [f.v0_iter.residual if isinstance(f, ForecastedSample) else np.nan for f in self.samples]
        )

    @property
    def ill_conditioned_depth(self) -> np.ndarray:
        return np.array(
            [isinstance(f, ForecastedSample) and f.ill_conditioned_depth for f in self.samples]
        )


def _real_or_nan(x) -> float:
    z = complex(x)
    return z.real if z.imag == 0.0 else float("nan")


def check_physical_validity(u1, u2, ut, V0) -> PhysicalValidity:
    # complex velocities compare as NaN, so every flag they touch is False
    u1, u2, ut = (_real_or_nan(v) for v in (u1, u2, ut))
    return PhysicalValidity(
        bypass_exceeds_freestream=bool(u2 > V0),
        wake_slower_than_bypass=bool(u1 < u2),
        turbine_between_wake_and_bypass=bool(u1 < ut < u2),
    )


def solve_sample(
    sample: SampleInputs,
    guess: float = DEFAULT_GUESS,
    guess_mode: GuessMode | str = GuessMode.BYPASS_WAKE_RATIO,
    fr_zero_limit: bool = False,
    options: SolverOptions | None = None,
) -> SampleResult:
    """
    Solve open-channel LMAD for one sample.

    `guess` is interpreted according to `guess_mode`: a u2/u1 ratio (seeded
    through the closed-channel ratio pass), a u2/V0 ratio, or u2 itself.
    With `fr_zero_limit` the depth is replaced by CLOSED_CHANNEL_DEPTH.
    """
    options = options or SolverOptions()
    guess_mode = GuessMode(guess_mode)
    if fr_zero_limit:
        sample = replace(sample, d0=CLOSED_CHANNEL_DEPTH)
    beta, V0, d0, CT = sample.beta, sample.V0, sample.d0, sample.CT
    Fr = float(froude_number(V0, d0))

    if not CT >= 0:
        LOGGER.warning("Negative or undefined CT value (%g): skipping LMAD for this point", CT)
        return UndefinedSample(sample, Fr, "negative or undefined thrust coefficient")

    u2u1_iter = None
    if guess_mode is GuessMode.BYPASS_WAKE_RATIO:
        u2u1_iter = reconcile_bypass_wake_ratio(guess, beta, CT, options)
        u2_guess = _real_or_nan(bypass_velocity_from_ratio(u2u1_iter.converged_value, CT, V0))
    elif guess_mode is GuessMode.BYPASS_FREESTREAM_RATIO:
        u2_guess = guess * V0
    else:
        u2_guess = guess

    u2_iter = reconcile_bypass_velocity(u2_guess, beta, CT, V0, Fr, options)
    if u2_iter.status is SolverStatus.UNDEFINED:
        return UndefinedSample(sample, Fr, "undefined bypass velocity guess")

    u2 = u2_iter.converged_value
    u1 = wake_velocity_thrust(u2, CT, V0)
    ut = turbine_velocity(u1, u2, d0, V0, beta)
    h_bypass = bypass_depth(d0, V0, u2)
    dhToh = float(total_surface_deformation(CT, beta, Fr))
    return DerivedState(
        inputs=sample,
        Fr=Fr,
        u1=to_scalar(u1),
        u2=u2,
        ut=to_scalar(ut),
        V0Prime=to_scalar(unconfined_freestream(V0, CT, ut)),
        dhToh=dhToh,
        hdUp=to_scalar(upstream_disk_depth(d0, V0, ut)),
        hdDown=to_scalar(downstream_disk_depth(h_bypass, ut, u1)),
        hBypass=float(h_bypass),
        dhDisk=float(disk_drop(V0, CT)),
        hFinal=d0 * (1.0 - dhToh),
        u2_iter=u2_iter,
        validity=check_physical_validity(u1, u2, ut, V0),
        u2u1_iter=u2u1_iter,
    )


def _ill_conditioned_depth(d0_2: float, d0_1: float) -> bool:
    if not np.isfinite(d0_2):
        return True
    low, high = DEPTH_RATIO_LIMITS
    return not (low <= d0_2 / d0_1 <= high)


def forecast_sample(
    source: SampleResult,
    target_blockage: float,
    constant_froude: bool = True,
    guess: float = DEFAULT_GUESS,
    guess_mode: GuessMode | str = GuessMode.BYPASS_WAKE_RATIO,
    options: SolverOptions | None = None,
) -> ForecastResult:
    """
    Forecast one solved sample to another blockage ratio.

    The bypass velocity (and with it the dimensional thrust) is held fixed
    across the change in blockage. With `constant_froude` the target depth
    follows the source Froude number and the converged velocity; otherwise
    the depth is scaled by the blockage ratio for constant channel width and
    the Froude number is free to change.
    """
    if not 0.0 < target_blockage < 1.0:
        raise InvalidInputError("Target blockage for a sample forecast must lie in (0, 1)")
    nan = float("nan")
    if isinstance(source, UndefinedSample):
        return UndefinedSample(SampleInputs(target_blockage, nan, nan, nan), nan, "source sample undefined")

    src = source.inputs
    d0_fixed = None if constant_froude else float(depth_from_blockage(src.d0, src.beta, target_blockage))
    v0_iter = reconcile_freestream_velocity(
        src.V0, target_blockage, source.u2, src.CT, src.V0, source.Fr, d0_fixed, options
    )
    if v0_iter.status is SolverStatus.UNDEFINED:
        return UndefinedSample(SampleInputs(target_blockage, nan, nan, nan), nan, "forecast not attempted")

    V0_2 = v0_iter.converged_value
    d0_2 = float(depth_from_froude(V0_2, source.Fr)) if constant_froude else d0_fixed
    target = SampleInputs(
        beta=target_blockage,
        V0=V0_2,
        d0=d0_2,
        CT=float(rescale_forcing_metric(src.CT, src.V0, V0_2)),
    )
    ill_conditioned = _ill_conditioned_depth(d0_2, src.d0)
    if ill_conditioned:
        LOGGER.warning(
            "Forecast depth %.6g m is ill-conditioned relative to source depth %.6g m", d0_2, src.d0
        )
    state = solve_sample(target, guess, guess_mode, options=options)
    return ForecastedSample(
        inputs=target,
        Fr=float(froude_number(V0_2, d0_2)),
        v0_iter=v0_iter,
        state=state,
        ill_conditioned_depth=ill_conditioned,
    )


def rescale_by_velocity(record: ConfinedRecord, scaling_velocity) -> RescaledRecord:
    """
    Re-reference the record's coefficients to `scaling_velocity`.

    With r = V0 / scaling_velocity: every coefficient scales by r**2 and
    TSR by r.
    """
    scaling = np.asarray(scaling_velocity)
    try:
        scaling = np.broadcast_to(scaling, record.V0.shape)
    except ValueError as exc:
        raise InvalidInputError(
            f"Scaling velocity of shape {scaling.shape} does not match record of {len(record)} samples"
        ) from exc
    with np.errstate(divide="ignore", invalid="ignore"):
        ratio = record.V0 / scaling

    def scaled(values, power):
        return None if values is None else values * ratio**power

    return RescaledRecord(
        V0=np.array(scaling),
        vel_ratio=ratio,
        CT=scaled(record.CT, 2),
        CP=scaled(record.CP, 2),
        CQ=scaled(record.CQ, 2),
        CL=scaled(record.CL, 2),
        CF=scaled(record.CF, 2),
        TSR=scaled(record.TSR, 1),
    )


def resolve_scaling_velocity(
    correction: CorrectionType | str = CorrectionType.STANDARD,
    override: ScalingVelocity | str | None = None,
) -> ScalingVelocity:
    if override:
        return ScalingVelocity(override)
    if CorrectionType(correction) is CorrectionType.BLUFF_BODY:
        return ScalingVelocity.BYPASS
    return ScalingVelocity.UNCONFINED_FREESTREAM


def solve_lmad(
    record: ConfinedRecord,
    guess: float = DEFAULT_GUESS,
    guess_mode: GuessMode | str = GuessMode.BYPASS_WAKE_RATIO,
    fr_zero_limit: bool = False,
    options: SolverOptions | None = None,
) -> SolvedRecord:
    """Solve open-channel LMAD for every sample of a record; no correction is applied."""
    if fr_zero_limit:
        LOGGER.info(
            "Setting depth to %g for open-channel limiting case of Fr -> 0 (closed-channel).",
            CLOSED_CHANNEL_DEPTH,
        )
        record = record.replace_fields(d0=CLOSED_CHANNEL_DEPTH)
    samples = tuple(solve_sample(s, guess, guess_mode, options=options) for s in record.samples())
    n_undefined = sum(isinstance(s, UndefinedSample) for s in samples)
    if n_undefined:
        LOGGER.info("%d of %d samples undefined", n_undefined, len(samples))
    return SolvedRecord(record, samples)


def predict_unconfined(
    record: ConfinedRecord,
    guess: float = DEFAULT_GUESS,
    guess_mode: GuessMode | str = GuessMode.BYPASS_WAKE_RATIO,
    fr_zero_limit: bool = False,
    correction: CorrectionType | str = CorrectionType.STANDARD,
    scaling_override: ScalingVelocity | str | None = None,
    options: SolverOptions | None = None,
) -> Tuple[RescaledRecord, SolvedRecord]:
    """
    Blockage-correct confined data to unconfined conditions.

    The standard correction scales by the unconfined freestream velocity
    V0Prime; the bluff-body correction scales by the bypass velocity u2.
    """
    solved = solve_lmad(record, guess, guess_mode, fr_zero_limit, options)
    choice = resolve_scaling_velocity(correction, scaling_override)
    LOGGER.debug("Scaling confined data by %s", choice.value)
    return rescale_by_velocity(solved.record, solved.scaling_velocity(choice)), solved


def forecast_confined(
    record: ConfinedRecord,
    beta_2: float,
    guess: float = DEFAULT_GUESS,
    guess_mode: GuessMode | str = GuessMode.BYPASS_WAKE_RATIO,
    fr_zero_limit: bool = False,
    constant_froude: bool = True,
    options: SolverOptions | None = None,
) -> Tuple[Union[ForecastedRecord, RescaledRecord], SolvedRecord]:
    """
    Forecast performance at blockage `beta_2` from data at the record's blockage.

    A target blockage of 0 is a bluff-body correction to unconfined conditions.
    """
    if not 0.0 <= beta_2 < 1.0:
        raise InvalidInputError("Target blockage must lie in [0, 1)")
    if beta_2 == 0.0:
        return predict_unconfined(
            record, guess, guess_mode, fr_zero_limit, correction=CorrectionType.BLUFF_BODY, options=options
        )

    solved = solve_lmad(record, guess, guess_mode, fr_zero_limit, options)
    forecasts = tuple(
        forecast_sample(s, beta_2, constant_froude, guess, guess_mode, options) for s in solved.samples
    )
    V0_2 = np.array([f.inputs.V0 for f in forecasts])
    d0_2 = np.array([f.inputs.d0 for f in forecasts])
    target = rescale_by_velocity(solved.record, V0_2).to_confined(beta=beta_2, d0=d0_2)
    return ForecastedRecord(target, forecasts), solved


def _linear_fit(confined, unconfined, beta_ratio):
    if confined is None or unconfined is None:
        return None
    return (confined - unconfined) * beta_ratio + unconfined


def linear_forecast(
    record: ConfinedRecord,
    beta_2: float,
    guess: float = DEFAULT_GUESS,
    guess_mode: GuessMode | str = GuessMode.BYPASS_WAKE_RATIO,
    fr_zero_limit: bool = False,
    correction: CorrectionType | str = CorrectionType.BLUFF_BODY,
    options: SolverOptions | None = None,
) -> LinearForecast:
    """
    Forecast by linear interpolation in blockage (Kinsey & Dumas, 2017).

    Coefficients at constant TSR are taken as linear in blockage between the
    confined data and its open-channel correction to zero blockage.
    """
    if not 0.0 <= beta_2 < 1.0:
        raise InvalidInputError("Target blockage must lie in [0, 1)")
    unconf, _ = predict_unconfined(record, guess, guess_mode, fr_zero_limit, correction, options=options)
    beta_ratio = beta_2 / record.beta
    return LinearForecast(
        beta=np.full(len(record), float(beta_2)),
        CT=_linear_fit(record.CT, unconf.CT, beta_ratio),
        CP=_linear_fit(record.CP, unconf.CP, beta_ratio),
        CQ=_linear_fit(record.CQ, unconf.CQ, beta_ratio),
        CL=_linear_fit(record.CL, unconf.CL, beta_ratio),
        CF=_linear_fit(record.CF, unconf.CF, beta_ratio),
        TSR=_linear_fit(record.TSR, unconf.TSR, beta_ratio),
    )
