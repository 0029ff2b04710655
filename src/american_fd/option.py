"""
Option specification and result value objects.
"""

from __future__ import annotations

import math
import numbers
from dataclasses import dataclass
from typing import Literal

from .exceptions import InvalidArgument

OptionType = Literal["call", "put", "straddle"]

MIN_GRID_POINTS = 3


def is_count(value: object) -> bool:
    """True for integers, including numpy integers, but not for bools."""
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


@dataclass(frozen=True)
class OptionSpec:
    """
    Immutable description of a single option pricing request.

    Instances are hashable and compare by value, so they double as the key
    under which pricers memoize their results.

    Parameters
    ----------
    option_type : {"call", "put", "straddle"}
        Payoff of the option.
    spot : float
        Current underlying price. Must be strictly positive.
    strike : float
        Strike price. Must be strictly positive.
    maturity : float
        Residual time to maturity in years. Must be strictly positive.
    rate : float
        Continuously compounded risk-free rate.
    volatility : float
        Annualized volatility. Must be strictly positive.
    dividend_yield : float, default=0.0
        Continuous dividend yield.
    time_steps : int, default=100
        Number of rollback steps between maturity and the valuation date.
    grid_points : int, default=101
        Number of price grid points. Must be odd and at least 3.

    Examples
    --------
    >>> spec = OptionSpec("put", spot=100.0, strike=100.0, maturity=1.0,
    ...                   rate=0.05, volatility=0.2)
    >>> spec.grid_points
    101
    """

    option_type: OptionType
    spot: float
    strike: float
    maturity: float
    rate: float
    volatility: float
    dividend_yield: float = 0.0
    time_steps: int = 100
    grid_points: int = 101

    def __post_init__(self) -> None:
        """Validate inputs after initialization."""
        if self.option_type not in ("call", "put", "straddle"):
            raise InvalidArgument(
                f"option_type must be 'call', 'put' or 'straddle', got '{self.option_type}'"
            )

        for name in ("spot", "strike", "maturity", "volatility"):
            value = getattr(self, name)
            if not math.isfinite(value) or value <= 0:
                raise InvalidArgument(f"{name} must be positive, got {value}")

        for name in ("rate", "dividend_yield"):
            value = getattr(self, name)
            if not math.isfinite(value):
                raise InvalidArgument(f"{name} must be finite, got {value}")

        for name in ("time_steps", "grid_points"):
            value = getattr(self, name)
            if not is_count(value):
                raise InvalidArgument(f"{name} must be an integer, got {value!r}")

        if self.time_steps < 1:
            raise InvalidArgument(f"time_steps must be positive, got {self.time_steps}")

        if self.grid_points < MIN_GRID_POINTS or self.grid_points % 2 == 0:
            raise InvalidArgument(
                f"grid_points must be odd and at least {MIN_GRID_POINTS}, got {self.grid_points}"
            )


@dataclass(frozen=True)
class FdResult:
    """Value and Greeks of an option. Theta is the calendar derivative per year."""

    value: float
    delta: float
    gamma: float
    theta: float

    def __sub__(self, other: FdResult) -> FdResult:
        return FdResult(
            self.value - other.value,
            self.delta - other.delta,
            self.gamma - other.gamma,
            self.theta - other.theta,
        )

    def __add__(self, other: FdResult) -> FdResult:
        return FdResult(
            self.value + other.value,
            self.delta + other.delta,
            self.gamma + other.gamma,
            self.theta + other.theta,
        )


@dataclass(frozen=True)
class ControlVariateBreakdown:
    """
    Components of a control-variate valuation.

    ``result`` equals ``numerical_american - numerical_european + analytic_european``.
    """

    analytic_european: FdResult
    numerical_european: FdResult
    numerical_american: FdResult
    result: FdResult

    @property
    def early_exercise_premium(self) -> float:
        """Numerical American minus numerical European value on the shared grid."""
        return self.numerical_american.value - self.numerical_european.value
