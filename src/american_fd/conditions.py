"""
Step conditions applied to the value array after every rollback step.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Literal

import numpy as np
from numpy.typing import NDArray

from .exceptions import InvalidArgument
from .grid import Grid

ExerciseStyle = Literal["european", "american"]


def apply_early_exercise(
    values: NDArray[np.float64],
    grid: Grid,
    intrinsic: Callable[[NDArray[np.float64]], NDArray[np.float64]],
) -> NDArray[np.float64]:
    """
    Project ``values`` onto the early-exercise constraint in place.

    Every entry becomes ``max(values[i], intrinsic(grid[i]))``, so the
    continuation value never falls below immediate exercise value.

    Examples
    --------
    >>> from american_fd.grid import build_grid
    >>> from american_fd.payoff import PlainVanillaPayoff
    >>> grid = build_grid(100.0, 0.2, 1.0, 5, strike=100.0)
    >>> values = np.zeros(5)
    >>> bool(np.all(apply_early_exercise(values, grid, PlainVanillaPayoff("put", 100.0)) >= 0))
    True
    """
    if values.shape != (grid.size,):
        raise InvalidArgument(f"{values.size} values do not match a grid of {grid.size} points")
    np.maximum(values, intrinsic(grid.prices), out=values)
    return values


@dataclass(frozen=True, eq=False)
class AmericanCondition:
    """
    Early-exercise constraint bound to fixed intrinsic values on a grid.

    Applying the condition twice in a row gives the same array as applying it
    once, and it never lowers an entry.
    """

    intrinsic_values: NDArray[np.float64] = field(repr=False)

    def __post_init__(self) -> None:
        intrinsic = np.array(self.intrinsic_values, dtype=np.float64)
        intrinsic.setflags(write=False)
        object.__setattr__(self, "intrinsic_values", intrinsic)

    @classmethod
    def from_payoff(
        cls,
        payoff: Callable[[NDArray[np.float64]], NDArray[np.float64]],
        grid: Grid,
    ) -> AmericanCondition:
        return cls(payoff(grid.prices))

    @property
    def size(self) -> int:
        return int(self.intrinsic_values.size)

    def apply(self, values: NDArray[np.float64], time: float | None = None) -> NDArray[np.float64]:
        """Raise ``values`` to the intrinsic values in place. ``time`` is unused."""
        if values.shape != self.intrinsic_values.shape:
            raise InvalidArgument(
                f"{values.size} values do not match {self.size} intrinsic values"
            )
        np.maximum(values, self.intrinsic_values, out=values)
        return values


def step_condition_for(
    exercise: ExerciseStyle,
    payoff: Callable[[NDArray[np.float64]], NDArray[np.float64]],
    grid: Grid,
) -> AmericanCondition | None:
    """Return the step condition for an exercise style, ``None`` for European."""
    if exercise == "european":
        return None
    if exercise == "american":
        return AmericanCondition.from_payoff(payoff, grid)
    raise InvalidArgument(f"exercise must be 'european' or 'american', got '{exercise}'")
