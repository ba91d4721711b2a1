import numpy as np
from matplotlib.axes import Axes
from matplotlib.figure import Figure

from houlsby.convergence import PENALTY, assess_forecast_convergence_region
from houlsby.core import ConfinedRecord, predict_unconfined
from houlsby.equations import froude_number
from houlsby.plots import (
    plot_bypass_convergence_region,
    plot_forecast_convergence_region,
    plot_performance,
)


def test_bypass_convergence_region() -> None:
    u2 = np.linspace(0.55, 1.95, 15)
    err, ax = plot_bypass_convergence_region(u2, 0.2, 0.8, 1.0, froude_number(1.0, 2.0))
    assert isinstance(ax, Axes)
    assert np.all(err[u2 <= 1.0] == PENALTY)
    assert np.all(err[u2 > 1.0] < PENALTY)
    assert len(ax.lines) == 2


def test_forecast_convergence_region() -> None:
    Fr = float(froude_number(1.0, 2.0))
    region = assess_forecast_convergence_region(1.12, 0.8, 1.0, Fr, np.linspace(1.05, 1.6, 12), 0.1)
    ax = plot_forecast_convergence_region(region)
    assert len(ax.lines) == 2
    assert "beta_2 = 0.1" in ax.get_title()


def test_performance_figure() -> None:
    record = ConfinedRecord.from_arrays(
        beta=0.2, V0=1.0, d0=2.0, CT=[0.6, 0.8], CP=[0.38, 0.42], TSR=[3.5, 4.0]
    )
    unconf, _ = predict_unconfined(record)
    fig = plot_performance([record, unconf], ["confined", "unconfined"])
    assert isinstance(fig, Figure)
    assert len(fig.axes) == 2
    for ax in fig.axes:
        assert len(ax.lines) == 2
