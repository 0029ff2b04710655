"""
Theta-weighted time stepping schemes for the backward rollback.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from .dynamics import BSMOperator
from .exceptions import InvalidArgument, NumericalFailure
from .operators import TridiagonalOperator
from .settings import SchemeName


@dataclass(frozen=True)
class MixedScheme:
    """
    One backward step of the theta scheme.

    ``x_new = (I - theta dt L(to))^-1 (I + (1 - theta) dt L(from)) x_old``

    ``theta = 0.5`` is Crank-Nicolson (unconditionally stable, second order in
    time), ``theta = 1`` fully implicit and ``theta = 0`` explicit Euler.

    Below ``theta = 0.5`` the scheme is only conditionally stable; a step with
    ``(1 - theta) dt max|L_ii| > 1`` raises ``NumericalFailure``.
    """

    theta: float

    def __post_init__(self) -> None:
        if not 0.0 <= self.theta <= 1.0:
            raise InvalidArgument(f"theta must lie in [0, 1], got {self.theta}")

    def step(
        self,
        operator: BSMOperator,
        values: NDArray[np.float64],
        from_time: float,
        to_time: float,
    ) -> NDArray[np.float64]:
        """Return the values rolled back from ``from_time`` to ``to_time``."""
        dt = float(from_time - to_time)
        identity = TridiagonalOperator.identity(operator.size)

        rhs = values
        if self.theta < 1.0:
            generator = operator.at(from_time)
            if self.theta < 0.5:
                self._check_stability(generator, dt)
            explicit_part = identity + generator * ((1.0 - self.theta) * dt)
            rhs = explicit_part.apply(values)

        implicit_part = identity - operator.at(to_time) * (self.theta * dt)
        return implicit_part.solve_for(rhs)

    def _check_stability(self, generator: TridiagonalOperator, dt: float) -> None:
        ratio = (1.0 - self.theta) * dt * float(np.max(np.abs(generator.diagonal)))
        if ratio > 1.0:
            raise NumericalFailure(
                f"time step {dt:.6g} is unstable for theta={self.theta} "
                f"(dt * max|L_ii| = {ratio:.4g}); use more time steps or a scheme "
                "with theta >= 0.5"
            )


CRANK_NICOLSON = MixedScheme(0.5)
IMPLICIT_EULER = MixedScheme(1.0)
EXPLICIT_EULER = MixedScheme(0.0)

_SCHEMES: dict[str, MixedScheme] = {
    "crank-nicolson": CRANK_NICOLSON,
    "implicit": IMPLICIT_EULER,
    "explicit": EXPLICIT_EULER,
}


def scheme_for(name: SchemeName) -> MixedScheme:
    """Look up one of the supported schemes by name."""
    try:
        return _SCHEMES[name]
    except KeyError:
        raise InvalidArgument(
            f"scheme must be one of {sorted(_SCHEMES)}, got '{name}'"
        ) from None
