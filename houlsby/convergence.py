"""
Reconciliation engines for the open-channel LMAD equation set.

Two independently derived expressions for the core wake velocity (Ross &
Polagye eqs. 43 and 44) must agree at the physical flow state. The engines
here find that state by derivative-free minimization of the absolute
difference between the two expressions:

- reconcile_bypass_wake_ratio: closed-channel pass on tau = u2/u1, used to
  seed the bypass velocity from a ratio guess.
- reconcile_bypass_velocity: iterates on u2 with beta, CT, V0, Fr known.
- reconcile_freestream_velocity: iterates on V0 at a new blockage with u2
  held fixed (blockage forecasting).

Trial points that violate the validity guard receive the constant PENALTY as
their residual. No bounds are imposed on the minimizer, so the penalty
plateau is the only thing keeping trials in the physical region.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Union

import numpy as np
from scipy.optimize import minimize

from .config import SolverOptions
from .equations import (
    G,
    freestream_wake_ratio_both,
    froude_number,
    depth_from_froude,
    rescale_forcing_metric,
    wake_velocity_both,
    wake_velocity_froude,
    wake_velocity_thrust,
)


LOGGER = logging.getLogger("houlsby.convergence")

PENALTY = 1e6  # residual assigned to non-physical trial points

Branch = Union[float, complex]


class SolverStatus(enum.Enum):
    SUCCESS = "success"
    FAILURE = "failure"  # iteration or evaluation limit reached
    DEGENERATE = "degenerate"  # non-finite result, or never left the penalty plateau
    UNDEFINED = "undefined"  # sample skipped, nothing was solved


@dataclass(frozen=True)
class DiagnosticBundle:
    converged_value: float
    branch_values: Tuple[Branch, Branch]
    residual: float
    status: SolverStatus

    @property
    def converged(self) -> bool:
        return self.status is SolverStatus.SUCCESS

    @property
    def real_branches(self) -> bool:
        return not any(isinstance(b, complex) for b in self.branch_values)

    def within(self, tolerance: float) -> bool:
        """
        True when the optimizer converged onto a real state.

        Both branches must be real and agree to `tolerance`. The residual only
        compares real parts, so a small residual alone does not rule out a
        complex wake velocity.
        """
        first, second = self.branch_values
        return (
            self.converged
            and self.real_branches
            and bool(self.residual < tolerance)
            and bool(abs(first - second) < tolerance)
        )


def to_scalar(x) -> Branch:
    """Real float when the value has no imaginary part, complex otherwise."""
    z = complex(x)
    return z.real if z.imag == 0.0 else z


def package_diagnostics(value, branches, residual, status: SolverStatus) -> DiagnosticBundle:
    first, second = branches
    return DiagnosticBundle(
        converged_value=float(np.real(value)),
        branch_values=(to_scalar(first), to_scalar(second)),
        residual=float(residual),
        status=status,
    )


def undefined_diagnostics() -> DiagnosticBundle:
    nan = float("nan")
    return DiagnosticBundle(nan, (nan, nan), nan, SolverStatus.UNDEFINED)


def violates_validity_guard(velocity, reference):
    """
    True where velocity / reference <= 1.

    Actuator-disk flow topology needs the bypass flow to run faster than the
    reference it is compared against (freestream, or core wake for ratios).
    """
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.asarray(velocity, dtype=float) / np.asarray(reference, dtype=float) <= 1.0


def _guarded(err, violated):
    return np.where(violated, PENALTY, err)[()]


def ratio_residual(u2u1, beta, CT):
    """Mismatch in V0/u1 between the closed-channel blockage and thrust relations."""
    blockage, thrust = freestream_wake_ratio_both(u2u1, beta, CT)
    with np.errstate(invalid="ignore"):
        err = np.abs(np.real(blockage - thrust))
    return _guarded(err, violates_validity_guard(u2u1, 1.0))


def bypass_residual(u2, beta, CT, V0, Fr):
    """Mismatch in u1 between eq. 43 and eq. 44 at a trial bypass velocity."""
    u1_froude, u1_thrust = wake_velocity_both(u2, beta, CT, V0, Fr)
    # Real parts only, so complex branches do not stall the minimizer.
    with np.errstate(invalid="ignore"):
        err = np.abs(np.real(u1_froude - u1_thrust))
    return _guarded(err, violates_validity_guard(u2, V0))


def _forecast_state(V0_2, CT_1, V0_1, Fr_1, d0_2):
    CT_2 = rescale_forcing_metric(CT_1, V0_1, V0_2)
    Fr_2 = Fr_1 if d0_2 is None else froude_number(V0_2, d0_2)
    return CT_2, Fr_2


def freestream_residual(V0_2, beta_2, u2, CT_1, V0_1, Fr_1, d0_2=None):
    """
    Mismatch in u1 between eq. 43 and eq. 44 at a trial freestream velocity.

    `d0_2=None` holds the Froude number at Fr_1 (constant-Froude mode);
    otherwise the depth is fixed at `d0_2` and the Froude number follows the
    trial velocity (constant-geometry mode). CT is re-referenced to the trial
    velocity on every evaluation.
    """
    V0_2 = np.asarray(V0_2, dtype=float)
    CT_2, Fr_2 = _forecast_state(V0_2, CT_1, V0_1, Fr_1, d0_2)
    u1_froude, u1_thrust = wake_velocity_both(u2, beta_2, CT_2, V0_2, Fr_2)
    with np.errstate(invalid="ignore"):
        err = np.abs(np.real(u1_froude - u1_thrust))
    return _guarded(err, violates_validity_guard(u2, V0_2))


def _status_from(result, residual: float) -> SolverStatus:
    if not np.isfinite(residual) or residual >= PENALTY:
        return SolverStatus.DEGENERATE
    if result.success:
        return SolverStatus.SUCCESS
    return SolverStatus.FAILURE


def _minimize_residual(
    objective: Callable[[float], float],
    guess: float,
    xatol: float,
    options: SolverOptions,
) -> Tuple[float, float, SolverStatus]:
    result = minimize(
        lambda x: float(objective(x[0])),
        x0=np.array([guess], dtype=float),
        method="Nelder-Mead",
        options={
            "xatol": xatol,
            "fatol": options.fatol,
            "maxiter": options.max_iter,
            "maxfev": options.max_fev,
        },
    )
    value = float(result.x[0])
    residual = float(result.fun)
    return value, residual, _status_from(result, residual)


def _seed_is_defined(guess, CT) -> bool:
    return bool(np.isfinite(guess)) and bool(CT >= 0)


def _log_outcome(label: str, value: float, residual: float, status: SolverStatus) -> None:
    if status is SolverStatus.SUCCESS:
        LOGGER.debug("%s converged to %.9g (residual %.3g)", label, value, residual)
    else:
        LOGGER.info("%s ended with status %s at %.9g (residual %.3g)", label, status.value, value, residual)


def reconcile_bypass_wake_ratio(
    guess: float, beta: float, CT: float, options: Optional[SolverOptions] = None
) -> DiagnosticBundle:
    """Closed-channel u2/u1 at which the blockage and thrust relations agree."""
    options = options or SolverOptions()
    if not _seed_is_defined(guess, CT):
        LOGGER.warning("Negative CT value or bad u2/u1 guess: skipping LMAD for this point")
        return undefined_diagnostics()
    value, residual, status = _minimize_residual(
        lambda tau: ratio_residual(tau, beta, CT), guess, options.xatol, options
    )
    _log_outcome("u2/u1", value, residual, status)
    return package_diagnostics(value, freestream_wake_ratio_both(value, beta, CT), residual, status)


def reconcile_bypass_velocity(
    u2_guess: float,
    beta: float,
    CT: float,
    V0: float,
    Fr: float,
    options: Optional[SolverOptions] = None,
) -> DiagnosticBundle:
    """Bypass velocity u2 at which eq. 43 and eq. 44 give the same wake velocity."""
    options = options or SolverOptions()
    if not _seed_is_defined(u2_guess, CT):
        LOGGER.warning("Negative CT value or bad u2 guess: skipping LMAD for this point")
        return undefined_diagnostics()
    value, residual, status = _minimize_residual(
        lambda u2: bypass_residual(u2, beta, CT, V0, Fr), u2_guess, options.xatol, options
    )
    _log_outcome("u2", value, residual, status)
    branches = wake_velocity_both(value, beta, CT, V0, Fr)
    return package_diagnostics(value, branches, residual, status)


def reconcile_freestream_velocity(
    V0_2_guess: float,
    beta_2: float,
    u2: float,
    CT_1: float,
    V0_1: float,
    Fr_1: float,
    d0_2: Optional[float] = None,
    options: Optional[SolverOptions] = None,
) -> DiagnosticBundle:
    """
    Freestream velocity at blockage beta_2 consistent with a fixed bypass velocity.

    A poor guess can settle in a non-physical local minimum with SUCCESS
    status; check the residual with `DiagnosticBundle.within` as well.
    """
    options = options or SolverOptions()
    if not (_seed_is_defined(V0_2_guess, CT_1) and np.isfinite(u2)):
        LOGGER.warning("Undefined source state or bad V0 guess: skipping forecast for this point")
        return undefined_diagnostics()
    value, residual, status = _minimize_residual(
        lambda V0_2: freestream_residual(V0_2, beta_2, u2, CT_1, V0_1, Fr_1, d0_2),
        V0_2_guess,
        options.forecast_xatol,
        options,
    )
    _log_outcome("V0_2", value, residual, status)
    CT_2, Fr_2 = _forecast_state(value, CT_1, V0_1, Fr_1, d0_2)
    branches = wake_velocity_both(u2, beta_2, CT_2, value, Fr_2)
    return package_diagnostics(value, branches, residual, status)


@dataclass(frozen=True)
class ConvergenceRegion:
    beta_2: float
    Fr_2: float
    u2V0: np.ndarray
    V0_2: np.ndarray
    Fr_bypass: np.ndarray
    CT_2: np.ndarray
    u1_froude: np.ndarray
    u1_froude_num: np.ndarray
    u1_froude_den: np.ndarray
    u1_thrust: np.ndarray
    ct_beta_term: np.ndarray


def assess_forecast_convergence_region(u2, CT, V0, Fr, u2V0_test, beta_2) -> ConvergenceRegion:
    """
    Decompose eqs. 43 and 44 over trial u2/V0_2 ratios at constant Froude number.

    Shows where the numerator or denominator of eq. 43 changes sign and where
    the thrust branch turns complex, which is where a forecast can fail.
    """
    ratios = np.atleast_1d(np.asarray(u2V0_test, dtype=float))
    V0_2 = u2 / ratios
    d0_2 = depth_from_froude(V0_2, Fr)
    Fr_bypass = u2 / np.sqrt(G * d0_2)
    CT_2 = rescale_forcing_metric(CT, V0, V0_2)
    u1_froude, num, den = wake_velocity_froude(u2, beta_2, CT_2, V0_2, Fr)
    u1_thrust = wake_velocity_thrust(u2, CT_2, V0_2)
    return ConvergenceRegion(
        beta_2=float(beta_2),
        Fr_2=float(Fr),
        u2V0=ratios,
        V0_2=np.asarray(V0_2),
        Fr_bypass=np.asarray(Fr_bypass),
        CT_2=np.asarray(CT_2),
        u1_froude=np.asarray(u1_froude),
        u1_froude_num=np.asarray(num),
        u1_froude_den=np.asarray(den),
        u1_thrust=np.asarray(u1_thrust),
        ct_beta_term=np.asarray(4.0 * CT_2 * beta_2 * V0_2**4),
    )
