"""
Open-channel linear momentum actuator-disk (LMAD) equation set.

Relations follow Houlsby et al. (2008) and the formulation used by Ross and
Polagye (2020), "An experimental assessment of analytical blockage
corrections". Every function accepts scalars or equal-length numpy arrays and
returns numeric results only: division by zero gives inf/NaN and square roots
of negative arguments are taken on the complex plane.

Symbols:
- V0: undisturbed upstream velocity [m/s]
- d0, h: undisturbed upstream depth [m]
- beta: blockage ratio (rotor area / channel area)
- CT: thrust coefficient
- Fr: depth-based Froude number (rectangular channel)
- u1: core wake velocity, u2: bypass velocity, ut: velocity at the rotor
"""

from __future__ import annotations

import logging

import numpy as np
from numpy.lib import scimath
from scipy.optimize import fsolve


LOGGER = logging.getLogger("houlsby.equations")

G = 9.81  # gravitational acceleration [m/s^2]


def _arr(x) -> np.ndarray:
    return np.asarray(x, dtype=float)


def _unwrap(x):
    """Return numpy scalars for 0-d results so scalar callers get scalars back."""
    x = np.asarray(x)
    return x[()] if x.ndim == 0 else x


def froude_number(V0, d0):
    return _arr(V0) / np.sqrt(_arr(d0) * G)


def depth_from_froude(V0, Fr):
    """Depth at which velocity V0 gives Froude number Fr."""
    return _arr(V0) ** 2 / _arr(Fr) ** 2 / G


def depth_from_blockage(d0_1, beta_1, beta_2):
    """Depth at blockage beta_2 for constant channel width and rotor area."""
    return _arr(beta_1) / _arr(beta_2) * _arr(d0_1)


def wake_velocity_froude(u2, beta, CT, V0, Fr):
    """
    Core wake velocity from the blockage-Froude balance (Ross & Polagye eq. 43).

    Returns (u1, num, den); the numerator and denominator are exposed for
    convergence diagnostics.
    """
    u2, beta, CT, V0, Fr = map(_arr, (u2, beta, CT, V0, Fr))
    Fr2 = Fr**2
    num = (
        Fr2 * u2**4
        - (4.0 + 2.0 * Fr2) * (V0**2 * u2**2)
        + 8.0 * V0**3 * u2
        - 4.0 * V0**4
        + 4.0 * beta * CT * V0**4
        + Fr2 * V0**4
    )
    den = -4.0 * Fr2 * u2**3 + (4.0 * Fr2 + 8.0) * (V0**2 * u2) - 8.0 * V0**3
    with np.errstate(divide="ignore", invalid="ignore"):
        u1 = num / den
    return _unwrap(u1), _unwrap(num), _unwrap(den)


def wake_velocity_thrust(u2, CT, V0):
    """Core wake velocity from the actuator-disk thrust balance (eq. 44)."""
    u2, CT, V0 = map(_arr, (u2, CT, V0))
    return _unwrap(scimath.sqrt(u2**2 - CT * V0**2))


def wake_velocity_both(u2, beta, CT, V0, Fr):
    """Wake velocity from eq. 43 and eq. 44, as (u1_froude, u1_thrust)."""
    u1_froude, _, _ = wake_velocity_froude(u2, beta, CT, V0, Fr)
    u1_thrust = wake_velocity_thrust(u2, CT, V0)
    return u1_froude, u1_thrust


def turbine_velocity(u1, u2, d0, V0, beta):
    """Velocity at the rotor plane in the confined channel (eq. 45)."""
    u1, u2, d0, V0, beta = map(np.asarray, (u1, u2, d0, V0, beta))
    num = u1 * (u2 - V0) * (2.0 * G * d0 - u2**2 - u2 * V0)
    den = 2.0 * beta * G * d0 * (u2 - u1)
    with np.errstate(divide="ignore", invalid="ignore"):
        return _unwrap(num / den)


def unconfined_freestream(V0, CT, ut):
    """
    Freestream velocity that loads the rotor identically in an unbounded flow.

    Holds dimensional thrust constant: CT V0^2 = 4 ut (V0' - ut).
    """
    V0, CT, ut = map(np.asarray, (V0, CT, ut))
    with np.errstate(divide="ignore", invalid="ignore"):
        return _unwrap(ut + CT * V0**2 / (4.0 * ut))


def rescale_forcing_metric(C_1, V0_1, V0_2):
    """Re-reference a force coefficient from velocity V0_1 to V0_2."""
    with np.errstate(divide="ignore", invalid="ignore"):
        return _unwrap(_arr(C_1) * (_arr(V0_1) / _arr(V0_2)) ** 2)


def freestream_wake_ratio_blockage(u2u1, beta):
    """V0/u1 from closed-channel continuity and momentum, given tau = u2/u1."""
    tau, beta = _arr(u2u1), _arr(beta)
    return _unwrap((tau + 1.0) - scimath.sqrt(1.0 + beta * (tau**2 - 1.0)))


def freestream_wake_ratio_thrust(u2u1, CT):
    """V0/u1 from the thrust balance CT = (u2^2 - u1^2) / V0^2."""
    tau, CT = _arr(u2u1), _arr(CT)
    with np.errstate(divide="ignore", invalid="ignore"):
        return _unwrap(scimath.sqrt((tau**2 - 1.0) / CT))


def freestream_wake_ratio_both(u2u1, beta, CT):
    return freestream_wake_ratio_blockage(u2u1, beta), freestream_wake_ratio_thrust(u2u1, CT)


def bypass_velocity_from_ratio(u2u1, CT, V0):
    tau, CT, V0 = _arr(u2u1), _arr(CT), _arr(V0)
    with np.errstate(divide="ignore", invalid="ignore"):
        return _unwrap(tau * V0 * scimath.sqrt(CT / (tau**2 - 1.0)))


def upstream_disk_depth(h, V0, ut):
    """Core-flow depth just upstream of the disk (Bernoulli)."""
    return _unwrap(np.asarray(h) + (np.asarray(V0) ** 2 - np.asarray(ut) ** 2) / (2.0 * G))


def downstream_disk_depth(h_bypass, ut, u1):
    """Core-flow depth just downstream of the disk, referenced to the bypass depth."""
    return _unwrap(
        np.asarray(h_bypass) + (np.asarray(u1) ** 2 - np.asarray(ut) ** 2) / (2.0 * G)
    )


def bypass_depth(h, V0, u2):
    """Depth of the bypass flow and core wake downstream of the disk."""
    return _unwrap(np.asarray(h) + (np.asarray(V0) ** 2 - np.asarray(u2) ** 2) / (2.0 * G))


def disk_drop(V0, CT):
    """Free-surface drop across the disk implied by the thrust."""
    return _unwrap(_arr(CT) * _arr(V0) ** 2 / (2.0 * G))


def _surface_deformation_residual(x, CT, beta, Fr):
    k = CT * beta * Fr**2 / 2.0
    return 0.5 * x**3 - 1.5 * x**2 + (1.0 - Fr**2 + k) * x - k


def total_surface_deformation(CT, beta, Fr):
    """
    Normalized free-surface drop dh/h across the rotor (Houlsby et al. eq. 4e).

    The cubic can carry several real roots; the root reached from a seed of 0
    is taken as the physical branch.
    """
    CT, beta, Fr = np.broadcast_arrays(_arr(CT), _arr(beta), _arr(Fr))
    out = np.full(CT.shape, np.nan)
    for idx in np.ndindex(CT.shape):
        args = (float(CT[idx]), float(beta[idx]), float(Fr[idx]))
        if not all(np.isfinite(args)):
            continue
        root, _info, ier, msg = fsolve(
            _surface_deformation_residual, 0.0, args=args, full_output=True
        )
        if ier != 1:
            LOGGER.debug("Surface deformation solve did not converge at %s: %s", idx, msg)
        out[idx] = root[0]
    return _unwrap(out)
