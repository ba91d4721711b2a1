"""
Matplotlib figures for convergence diagnostics and corrected performance curves.

Figures are built on `matplotlib.figure.Figure` directly so no pyplot state or
interactive backend is involved; callers save or embed them.
"""

from __future__ import annotations

from typing import Optional, Sequence, Tuple, Union

import numpy as np
from matplotlib.axes import Axes
from matplotlib.figure import Figure

from .convergence import PENALTY, ConvergenceRegion, bypass_residual
from .core import ConfinedRecord, LinearForecast, RescaledRecord


PLOT_SPECS: Tuple[Tuple[str, str, str], ...] = (
    ("CP vs TSR", "TSR", "CP"),
    ("CT vs TSR", "TSR", "CT"),
)

Curve = Union[ConfinedRecord, RescaledRecord, LinearForecast]


def _axes(ax: Optional[Axes]) -> Axes:
    if ax is None:
        fig = Figure(figsize=(4, 3), tight_layout=True)
        ax = fig.add_subplot(111)
    ax.grid(True, linestyle=":", linewidth=0.6)
    return ax


def plot_bypass_convergence_region(
    u2_test, beta: float, CT: float, V0: float, Fr: float, ax: Optional[Axes] = None
) -> Tuple[np.ndarray, Axes]:
    """
    Plot the u1 mismatch between eqs. 43 and 44 over trial bypass velocities.

    Useful for checking by eye whether a sample can converge at all. Penalized
    trials are left out of the curve but kept in the returned residuals.
    """
    u2_test = np.atleast_1d(np.asarray(u2_test, dtype=float))
    err = np.atleast_1d(np.asarray(bypass_residual(u2_test, beta, CT, V0, Fr), dtype=float))
    ax = _axes(ax)
    ax.plot(u2_test, np.zeros_like(u2_test), "-k")
    ax.plot(u2_test, np.where(err >= PENALTY, np.nan, err), "-", marker=".")
    ax.set_xlabel("$u_2$ [m/s]")
    ax.set_ylabel("$u_1$ error [m/s]")
    return err, ax


def plot_forecast_convergence_region(region: ConvergenceRegion, ax: Optional[Axes] = None) -> Axes:
    ax = _axes(ax)
    ax.plot(region.u2V0, np.real(region.u1_froude), "-", label="$u_1$ (Froude)")
    ax.plot(region.u2V0, np.real(region.u1_thrust), "--", label="$u_1$ (thrust)")
    ax.set_title(f"beta_2 = {region.beta_2:g}, Fr = {region.Fr_2:.3g}")
    ax.set_xlabel("$u_2 / V_{0,2}$")
    ax.set_ylabel("$u_1$ [m/s]")
    ax.legend()
    return ax


def plot_performance(
    curves: Sequence[Curve], labels: Sequence[str], figsize: Tuple[float, float] = (8, 3)
) -> Figure:
    """One panel per PLOT_SPECS entry; curves missing either column are skipped."""
    fig = Figure(figsize=figsize, tight_layout=True)
    for i, (title, x_name, y_name) in enumerate(PLOT_SPECS):
        ax = _axes(fig.add_subplot(1, len(PLOT_SPECS), i + 1))
        ax.set_title(title)
        ax.set_xlabel(x_name)
        ax.set_ylabel(y_name)
        for curve, label in zip(curves, labels):
            x = getattr(curve, x_name, None)
            y = getattr(curve, y_name, None)
            if x is None or y is None:
                continue
            ax.plot(np.real(x), np.real(y), marker="o", label=label)
        if ax.lines:
            ax.legend()
    return fig
