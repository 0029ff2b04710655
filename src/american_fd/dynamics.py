"""
Black-Scholes-Merton dynamics and the finite difference operator they induce.

In log-price ``x = ln S`` the pricing PDE reads ``dV/dt + L V = 0`` with

    L = 0.5 sigma^2 d2/dx2 + (r - q - 0.5 sigma^2) d/dx - r

Rolling back from ``t`` to ``t - dt`` therefore advances ``V`` along ``+L``.
"""

from __future__ import annotations

import logging
from typing import Callable, Union

import numpy as np
from numpy.typing import NDArray

from .exceptions import InvalidArgument
from .grid import Grid
from .operators import TridiagonalOperator

logger = logging.getLogger(__name__)

VolatilityFunction = Callable[[float, NDArray[np.float64]], "float | NDArray[np.float64]"]
Volatility = Union[float, VolatilityFunction]


class BlackScholesDynamics:
    """
    Drift and diffusion coefficients of a Black-Scholes-Merton process.

    Parameters
    ----------
    rate : float
        Continuously compounded risk-free rate.
    dividend_yield : float
        Continuous dividend yield.
    volatility : float or callable
        Either a constant volatility or a function ``(t, x) -> sigma`` of
        calendar time and log-price, evaluated on the whole grid at once.
    """

    def __init__(self, rate: float, dividend_yield: float, volatility: Volatility) -> None:
        if not (np.isfinite(rate) and np.isfinite(dividend_yield)):
            raise InvalidArgument("rate and dividend_yield must be finite.")
        if not callable(volatility) and (not np.isfinite(volatility) or volatility <= 0):
            raise InvalidArgument(f"volatility must be positive, got {volatility}")
        self.rate = float(rate)
        self.dividend_yield = float(dividend_yield)
        self.volatility = volatility

    @property
    def is_time_dependent(self) -> bool:
        return callable(self.volatility)

    def sigma(self, time: float, log_prices: NDArray[np.float64]) -> NDArray[np.float64]:
        if callable(self.volatility):
            raw = self.volatility(time, log_prices)
        else:
            raw = self.volatility
        sigma = np.broadcast_to(np.asarray(raw, dtype=np.float64), log_prices.shape)
        if np.any(~np.isfinite(sigma)) or np.any(sigma <= 0):
            raise InvalidArgument(f"volatility must be positive on the whole grid at t={time}")
        return sigma

    def coefficients(
        self, time: float, log_prices: NDArray[np.float64]
    ) -> tuple[NDArray[np.float64], NDArray[np.float64], float]:
        """
        Return ``(diffusion, drift, discount)`` on the given log-prices.

        ``diffusion = 0.5 sigma^2``, ``drift = r - q - 0.5 sigma^2`` and
        ``discount = r``.
        """
        sigma2 = self.sigma(time, log_prices) ** 2
        diffusion = 0.5 * sigma2
        drift = self.rate - self.dividend_yield - 0.5 * sigma2
        return diffusion, drift, self.rate


class BSMOperator:
    """
    Time-indexed tridiagonal discretization of ``L`` on a log-uniform grid.

    Constant-coefficient dynamics are discretized once; time-dependent ones
    are rediscretized for every requested time.

    Parameters
    ----------
    dynamics : BlackScholesDynamics
        Source of the PDE coefficients.
    grid : Grid
        Log-uniform price grid.
    lower_bc, upper_bc : float, optional
        Neumann conditions carried by every operator produced.
    """

    def __init__(
        self,
        dynamics: BlackScholesDynamics,
        grid: Grid,
        lower_bc: float | None = None,
        upper_bc: float | None = None,
    ) -> None:
        self.dynamics = dynamics
        self.grid = grid
        self.lower_bc = lower_bc
        self.upper_bc = upper_bc
        self._constant: TridiagonalOperator | None = None
        if not dynamics.is_time_dependent:
            self._constant = self._discretize(0.0)

    @property
    def size(self) -> int:
        return self.grid.size

    @property
    def is_time_dependent(self) -> bool:
        return self.dynamics.is_time_dependent

    def at(self, time: float) -> TridiagonalOperator:
        """Operator ``L`` at calendar time ``time``."""
        if self._constant is not None:
            return self._constant
        return self._discretize(time)

    def _discretize(self, time: float) -> TridiagonalOperator:
        dx = self.grid.log_spacing
        diffusion, drift, discount = self.dynamics.coefficients(time, self.grid.log_prices)

        pd = diffusion / dx**2 - drift / (2.0 * dx)
        pu = diffusion / dx**2 + drift / (2.0 * dx)
        pm = -2.0 * diffusion / dx**2 - discount

        logger.debug("Discretized BSM operator at t=%.6g on %d nodes", time, self.size)
        return TridiagonalOperator(pd[1:], pm, pu[:-1], self.lower_bc, self.upper_bc)
