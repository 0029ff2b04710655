"""
Numerical settings shared by the finite difference pricers.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Literal

from .exceptions import InvalidArgument

SchemeName = Literal["crank-nicolson", "implicit", "explicit"]


@dataclass(frozen=True)
class PdeSettings:
    """
    Tunable constants of the PDE discretization.

    Parameters
    ----------
    scheme : {"crank-nicolson", "implicit", "explicit"}, default="crank-nicolson"
        Time stepping scheme used for every rollback.
    width_multiplier : float, default=4.0
        Half-width of the log-price grid in units of ``sigma * sqrt(T)``.
    low_vol_adjustment : float, default=0.02
        The half-width is scaled by ``1 + low_vol_adjustment / (sigma * sqrt(T))``
        so that grids stay wide enough at small total volatility.
    strike_safety_factor : float, default=1.1
        The grid always extends at least this factor beyond the strike.
    theta_step_fraction : float, default=0.01
        Size of the extra step used for theta, as a fraction of a regular
        time step. The default gives ``dt_small = T / (100 * time_steps)``.
    vega_bump : float, default=1e-4
        Relative volatility bump used by ``vega``.
    rho_bump : float, default=1e-4
        Absolute rate bump used by ``rho``.
    """

    scheme: SchemeName = "crank-nicolson"
    width_multiplier: float = 4.0
    low_vol_adjustment: float = 0.02
    strike_safety_factor: float = 1.1
    theta_step_fraction: float = 0.01
    vega_bump: float = 1e-4
    rho_bump: float = 1e-4

    def __post_init__(self) -> None:
        if self.scheme not in ("crank-nicolson", "implicit", "explicit"):
            raise InvalidArgument(
                f"scheme must be 'crank-nicolson', 'implicit' or 'explicit', got '{self.scheme}'"
            )
        for name in ("width_multiplier", "vega_bump", "rho_bump"):
            value = getattr(self, name)
            if not math.isfinite(value) or value <= 0:
                raise InvalidArgument(f"{name} must be positive, got {value}")
        if not math.isfinite(self.low_vol_adjustment) or self.low_vol_adjustment < 0:
            raise InvalidArgument(
                f"low_vol_adjustment cannot be negative, got {self.low_vol_adjustment}"
            )
        if not math.isfinite(self.strike_safety_factor) or self.strike_safety_factor < 1.0:
            raise InvalidArgument(
                f"strike_safety_factor must be at least 1, got {self.strike_safety_factor}"
            )
        if not 0.0 < self.theta_step_fraction < 1.0:
            raise InvalidArgument(
                f"theta_step_fraction must lie in (0, 1), got {self.theta_step_fraction}"
            )
