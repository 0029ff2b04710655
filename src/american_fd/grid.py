"""
Log-uniform price grids, initial conditions and derivative extraction.

The grid is geometric around the spot price: ``prices[i] = spot * exp(dx * (i - c))``
with ``c = N // 2``, so the centre node carries the spot exactly and the
finite difference operator can be written with a constant log spacing.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Callable

import numpy as np
from numpy.typing import NDArray

from .exceptions import InvalidArgument
from .option import MIN_GRID_POINTS, is_count
from .settings import PdeSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class Grid:
    """
    Immutable, strictly increasing price grid.

    Attributes
    ----------
    prices : ndarray
        Grid coordinates in price space (read-only).
    log_spacing : float
        Constant spacing ``dx`` between consecutive log-prices.
    """

    prices: NDArray[np.float64]
    log_spacing: float
    log_prices: NDArray[np.float64] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        prices = np.array(self.prices, dtype=np.float64)
        if prices.ndim != 1 or prices.size < MIN_GRID_POINTS:
            raise InvalidArgument(
                f"grid needs at least {MIN_GRID_POINTS} points, got {prices.size}"
            )
        if np.any(prices <= 0) or np.any(np.diff(prices) <= 0):
            raise InvalidArgument("grid prices must be positive and strictly increasing")
        prices.setflags(write=False)
        log_prices = np.log(prices)
        log_prices.setflags(write=False)
        object.__setattr__(self, "prices", prices)
        object.__setattr__(self, "log_prices", log_prices)

    @property
    def size(self) -> int:
        return int(self.prices.size)

    @property
    def center(self) -> int:
        """Index of the node holding the spot price."""
        return self.size // 2

    def __len__(self) -> int:
        return self.size

    def __getitem__(self, index):
        return self.prices[index]


def grid_limits(
    spot: float,
    volatility: float,
    maturity: float,
    strike: float | None = None,
    settings: PdeSettings | None = None,
) -> tuple[float, float]:
    """
    Compute the lowest and highest grid prices.

    The range is ``spot / f`` to ``spot * f`` with
    ``f = exp(width * (1 + a / (sigma sqrt(T))) * sigma sqrt(T))``. If a strike is
    given and falls outside the range (with the safety factor), the range is
    widened to include it while keeping ``s_min * s_max == spot**2``.

    Parameters
    ----------
    spot : float
        Centre of the grid. Must be strictly positive.
    volatility : float
        Annualized volatility. Must be strictly positive.
    maturity : float
        Residual time in years. Must be strictly positive.
    strike : float, optional
        Strike that must lie inside the grid.
    settings : PdeSettings, optional
        Width and safety constants. Defaults to ``PdeSettings()``.

    Returns
    -------
    tuple of float
        ``(s_min, s_max)``.
    """
    settings = settings or PdeSettings()
    for name, value in (("spot", spot), ("volatility", volatility), ("maturity", maturity)):
        if not math.isfinite(value) or value <= 0:
            raise InvalidArgument(f"{name} must be positive, got {value}")

    vol_sqrt_time = volatility * math.sqrt(maturity)
    prefactor = 1.0 + settings.low_vol_adjustment / vol_sqrt_time
    min_max_factor = math.exp(settings.width_multiplier * prefactor * vol_sqrt_time)
    s_min = spot / min_max_factor
    s_max = spot * min_max_factor

    if strike is not None:
        if strike <= 0:
            raise InvalidArgument(f"strike must be positive, got {strike}")
        safety = settings.strike_safety_factor
        if s_min > strike / safety:
            s_min = strike / safety
            s_max = spot * spot / s_min
        if s_max < strike * safety:
            s_max = strike * safety
            s_min = spot * spot / s_max

    return s_min, s_max


def build_grid(
    spot: float,
    volatility: float,
    maturity: float,
    grid_points: int,
    strike: float | None = None,
    settings: PdeSettings | None = None,
) -> Grid:
    """
    Build a log-uniform grid of ``grid_points`` prices centred on ``spot``.

    Raises
    ------
    InvalidArgument
        If ``grid_points`` is even or smaller than 3, or if spot, volatility or
        maturity are not strictly positive.

    Examples
    --------
    >>> grid = build_grid(100.0, 0.2, 1.0, 5)
    >>> float(grid[grid.center])
    100.0
    """
    if not is_count(grid_points) or grid_points < MIN_GRID_POINTS or grid_points % 2 == 0:
        raise InvalidArgument(
            f"grid_points must be odd and at least {MIN_GRID_POINTS}, got {grid_points}"
        )

    s_min, s_max = grid_limits(spot, volatility, maturity, strike, settings)
    dx = math.log(s_max / s_min) / (grid_points - 1)
    offsets = np.arange(grid_points, dtype=np.float64) - grid_points // 2
    prices = spot * np.exp(dx * offsets)

    logger.debug(
        "Grid of %d points on [%.6g, %.6g], log spacing %.6g", grid_points, s_min, s_max, dx
    )
    return Grid(prices=prices, log_spacing=dx)


def initial_condition(
    grid: Grid, payoff: Callable[[NDArray[np.float64]], NDArray[np.float64]]
) -> NDArray[np.float64]:
    """Evaluate ``payoff`` on every grid node, returning a new writable array."""
    values = np.array(payoff(grid.prices), dtype=np.float64)
    if values.shape != grid.prices.shape:
        raise InvalidArgument(
            f"payoff returned {values.shape} values for a grid of {grid.size} points"
        )
    return values


def _check_sizes(values: NDArray[np.float64], grid: Grid | None = None) -> NDArray[np.float64]:
    array = np.asarray(values, dtype=np.float64)
    if array.ndim != 1 or array.size < MIN_GRID_POINTS:
        raise InvalidArgument(
            f"at least {MIN_GRID_POINTS} values are needed, got {array.size}"
        )
    if grid is not None and array.size != grid.size:
        raise InvalidArgument(f"{array.size} values do not match a grid of {grid.size} points")
    return array


def value_at_center(values: NDArray[np.float64]) -> float:
    """Value at the central node, or the mean of the two central values for even sizes."""
    a = _check_sizes(values)
    mid = a.size // 2
    if a.size % 2 == 1:
        return float(a[mid])
    return float(0.5 * (a[mid] + a[mid - 1]))


def first_derivative_at_center(values: NDArray[np.float64], grid: Grid) -> float:
    """Centred first difference of ``values`` with respect to the grid prices."""
    a = _check_sizes(values, grid)
    g = grid.prices
    mid = a.size // 2
    if a.size % 2 == 1:
        return float((a[mid + 1] - a[mid - 1]) / (g[mid + 1] - g[mid - 1]))
    return float((a[mid] - a[mid - 1]) / (g[mid] - g[mid - 1]))


def second_derivative_at_center(values: NDArray[np.float64], grid: Grid) -> float:
    """
    Centred second difference of ``values`` with respect to the grid prices.

    On an odd grid the two one-sided slopes around the centre are differenced
    over half the distance between the neighbours; even grids need four
    points and use the slopes on either side of the central pair.
    """
    a = _check_sizes(values, grid)
    g = grid.prices
    mid = a.size // 2
    if a.size % 2 == 1:
        delta_plus = (a[mid + 1] - a[mid]) / (g[mid + 1] - g[mid])
        delta_minus = (a[mid] - a[mid - 1]) / (g[mid] - g[mid - 1])
        ds = 0.5 * (g[mid + 1] - g[mid - 1])
        return float((delta_plus - delta_minus) / ds)
    if a.size < 4:
        raise InvalidArgument("even-sized arrays need at least 4 values for a second derivative")
    delta_plus = (a[mid + 1] - a[mid - 1]) / (g[mid + 1] - g[mid - 1])
    delta_minus = (a[mid] - a[mid - 2]) / (g[mid] - g[mid - 2])
    ds = 0.5 * ((g[mid + 1] + g[mid - 1]) - (g[mid] + g[mid - 2]))
    return float((delta_plus - delta_minus) / ds)
