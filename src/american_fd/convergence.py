"""
Grid refinement studies for the finite difference pricers.

A study prices one option on a sequence of grids, tabulates the error of
each price against a reference, and reads the observed order of convergence
off consecutive refinements. Plotting needs the optional ``plot`` extra.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, Sequence

import numpy as np
import pandas as pd
from numpy.typing import ArrayLike, NDArray

from .conditions import ExerciseStyle
from .exceptions import InvalidArgument, NumericalFailure
from .fd_pricers import FdAmericanOption, FdEuropeanOption
from .option import OptionSpec
from .settings import PdeSettings

logger = logging.getLogger(__name__)

PricingFunction = Callable[[int, int], float]

STUDY_COLUMNS = (
    "grid_points",
    "time_steps",
    "price",
    "error",
    "relative_error",
    "convergence_rate",
)


def fd_pricing_function(
    spec: OptionSpec,
    exercise: ExerciseStyle = "american",
    settings: PdeSettings | None = None,
) -> PricingFunction:
    """
    Build a ``(grid_points, time_steps) -> value`` function for ``spec``.

    Even grid sizes are rounded up to the next odd number so that the spot
    sits on the central node.

    Parameters
    ----------
    spec : OptionSpec
        Option whose discretization is varied.
    exercise : {"american", "european"}, default="american"
        ``"american"`` uses the control-variate pricer, ``"european"`` the pure
        finite difference European pricer.
    settings : PdeSettings, optional
        Discretization constants.
    """
    if exercise == "american":
        pricer_cls = FdAmericanOption
    elif exercise == "european":
        pricer_cls = FdEuropeanOption
    else:
        raise InvalidArgument(f"exercise must be 'european' or 'american', got '{exercise}'")

    def price(grid_points: int, time_steps: int) -> float:
        n_grid = int(grid_points) | 1
        refined = replace(spec, grid_points=n_grid, time_steps=int(time_steps))
        return pricer_cls(refined, settings).price().value

    return price


def _observed_orders(
    errors: NDArray[np.float64], sizes: NDArray[np.float64]
) -> NDArray[np.float64]:
    # Order between refinement i-1 and i; NaN where either error vanishes.
    orders = np.full(errors.shape, np.nan)
    prev_err, next_err = errors[:-1], errors[1:]
    ratio = sizes[1:] / sizes[:-1]
    usable = (prev_err > 0) & (next_err > 0) & (ratio > 1)
    orders[1:][usable] = np.log(prev_err[usable] / next_err[usable]) / np.log(ratio[usable])
    return orders


def convergence_study(
    pricing_function: PricingFunction,
    grid_points_range: Sequence[int] | NDArray[np.int_],
    time_steps_multiplier: float = 1.0,
    reference_value: float | None = None,
) -> pd.DataFrame:
    """
    Price on successively finer grids and tabulate the errors.

    Parameters
    ----------
    pricing_function : callable
        ``(grid_points, time_steps) -> price``, e.g. from ``fd_pricing_function``.
    grid_points_range : sequence of int
        Increasing grid sizes.
    time_steps_multiplier : float, default=1.0
        Time steps per grid point; each run uses
        ``max(1, int(grid_points * time_steps_multiplier))`` steps.
    reference_value : float, optional
        Exact or trusted price. Defaults to the price on the finest grid.

    Returns
    -------
    pandas.DataFrame
        One row per successful refinement with the columns in
        ``STUDY_COLUMNS``. ``relative_error`` is in percent and
        ``convergence_rate`` is the order observed against the previous row.

    Raises
    ------
    InvalidArgument
        If fewer than two grid sizes are requested.
    NumericalFailure
        If fewer than two refinements could be priced. Refinements that
        fail with ``InvalidArgument`` or ``NumericalFailure`` are logged
        and skipped.

    Examples
    --------
    >>> spec = OptionSpec("call", 100.0, 100.0, 1.0, 0.05, 0.3)
    >>> price_fn = fd_pricing_function(spec, exercise="european")
    >>> results = convergence_study(price_fn, [51, 101, 201], reference_value=14.2313)
    >>> list(results.columns[:3])
    ['grid_points', 'time_steps', 'price']
    """
    sizes = [int(n) for n in np.atleast_1d(np.asarray(grid_points_range, dtype=int))]
    if len(sizes) < 2:
        raise InvalidArgument("grid_points_range must contain at least 2 values")

    rows = []
    for n_grid in sizes:
        n_time = max(1, int(n_grid * time_steps_multiplier))
        try:
            price = pricing_function(n_grid, n_time)
        except (InvalidArgument, NumericalFailure) as exc:
            logger.warning("Skipping grid_points=%d, time_steps=%d: %s", n_grid, n_time, exc)
            continue
        rows.append({"grid_points": n_grid, "time_steps": n_time, "price": float(price)})

    if len(rows) < 2:
        raise NumericalFailure(
            f"only {len(rows)} of {len(sizes)} refinements could be priced"
        )

    table = pd.DataFrame(rows)
    reference = table["price"].iloc[-1] if reference_value is None else reference_value

    table["error"] = (table["price"] - reference).abs()
    table["relative_error"] = 100.0 * table["error"] / abs(reference)
    table["convergence_rate"] = _observed_orders(
        table["error"].to_numpy(dtype=np.float64),
        table["grid_points"].to_numpy(dtype=np.float64),
    )
    logger.debug("Convergence study against reference %.10g:\n%s", reference, table)
    return table.loc[:, list(STUDY_COLUMNS)]


def plot_convergence(
    df: pd.DataFrame,
    log_scale: bool = True,
    title: str = "Finite Difference Convergence",
    reference_orders: Sequence[float] = (1.0, 2.0),
) -> tuple:
    """
    Plot price and error against grid size from a ``convergence_study`` table.

    Parameters
    ----------
    df : pandas.DataFrame
        Output of ``convergence_study``.
    log_scale : bool, default=True
        Draw the error panel on log-log axes with guide lines of slope
        ``-order`` for each entry of ``reference_orders``, anchored at the
        finest grid.
    title : str
        Figure title.
    reference_orders : sequence of float, default=(1.0, 2.0)
        Orders of the guide lines.

    Returns
    -------
    tuple
        ``(fig, (price_ax, error_ax))``.
    """
    try:
        import matplotlib.pyplot as plt
    except ImportError as exc:
        raise ImportError(
            "matplotlib is required for plotting. Install with: pip install american-fd-pricing[plot]"
        ) from exc

    n = df["grid_points"].to_numpy(dtype=np.float64)
    fig, (price_ax, error_ax) = plt.subplots(1, 2, figsize=(12, 5))
    fig.suptitle(title, fontsize=13)

    price_ax.plot(n, df["price"], "o-", linewidth=2, markersize=7)
    price_ax.axhline(df["price"].iloc[-1], color="grey", linestyle=":", linewidth=1)
    price_ax.set_xlabel("Grid points", fontsize=12)
    price_ax.set_ylabel("Option price", fontsize=12)
    price_ax.set_title("Price", fontsize=12)
    price_ax.grid(True, alpha=0.3)

    errors = df["error"].to_numpy(dtype=np.float64)
    if log_scale:
        shown = errors > 0
        error_ax.loglog(n[shown], errors[shown], "s-", linewidth=2, markersize=7, color="red")
        if shown.any():
            n_anchor, e_anchor = n[shown][-1], errors[shown][-1]
            for order in reference_orders:
                error_ax.loglog(
                    n, e_anchor * (n_anchor / n) ** order, "--", alpha=0.5,
                    label=f"order {order:g}",
                )
            error_ax.legend(fontsize=10)
    else:
        error_ax.plot(n, errors, "s-", linewidth=2, markersize=7, color="red")
    error_ax.set_xlabel("Grid points", fontsize=12)
    error_ax.set_ylabel("Absolute error", fontsize=12)
    error_ax.set_title("Error", fontsize=12)
    error_ax.grid(True, which="both", alpha=0.3)

    fig.tight_layout()
    return fig, (price_ax, error_ax)


def extrapolate_richardson(
    coarse_price: float,
    fine_price: float,
    convergence_order: float = 2.0,
    refinement_ratio: float = 2.0,
) -> float:
    """
    Richardson extrapolation of two prices with error ``C h^p``.

    ``P = P_fine + (P_fine - P_coarse) / (r^p - 1)`` where ``r`` is the ratio
    of the coarse to the fine spacing.

    Examples
    --------
    >>> round(extrapolate_richardson(coarse_price=8.1, fine_price=8.05), 6)
    8.033333
    """
    if refinement_ratio <= 1.0 or convergence_order <= 0.0:
        raise InvalidArgument(
            "need refinement_ratio > 1 and convergence_order > 0, got "
            f"{refinement_ratio} and {convergence_order}"
        )
    gain = refinement_ratio**convergence_order - 1.0
    return float(fine_price + (fine_price - coarse_price) / gain)


def estimate_convergence_order(errors: ArrayLike, grid_sizes: ArrayLike) -> float:
    """
    Least-squares slope of ``log(error)`` against ``log(h)``.

    Pairs with a non-positive error or size are ignored; at least two must
    remain.
    """
    e = np.asarray(errors, dtype=np.float64)
    h = np.asarray(grid_sizes, dtype=np.float64)
    if e.shape != h.shape or e.ndim != 1:
        raise InvalidArgument(
            f"errors and grid_sizes must be 1-d of equal length, got {e.shape} and {h.shape}"
        )
    keep = (e > 0) & (h > 0)
    if np.count_nonzero(keep) < 2:
        raise InvalidArgument("need at least 2 positive (error, grid size) pairs")

    slope, _ = np.polyfit(np.log(h[keep]), np.log(e[keep]), deg=1)
    return float(slope)
