"""
Terminal payoffs evaluated on price grids.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import ArrayLike, NDArray

from .exceptions import InvalidArgument
from .option import OptionType


@dataclass(frozen=True)
class PlainVanillaPayoff:
    """
    Intrinsic value of a call, put or straddle struck at ``strike``.

    Examples
    --------
    >>> PlainVanillaPayoff("put", 100.0)([90.0, 110.0])
    array([10.,  0.])
    """

    option_type: OptionType
    strike: float

    def __post_init__(self) -> None:
        if self.option_type not in ("call", "put", "straddle"):
            raise InvalidArgument(
                f"option_type must be 'call', 'put' or 'straddle', got '{self.option_type}'"
            )
        if self.strike <= 0:
            raise InvalidArgument(f"strike must be positive, got {self.strike}")

    def __call__(self, prices: ArrayLike) -> NDArray[np.float64]:
        s = np.asarray(prices, dtype=np.float64)
        if self.option_type == "call":
            return np.maximum(s - self.strike, 0.0)
        if self.option_type == "put":
            return np.maximum(self.strike - s, 0.0)
        return np.abs(s - self.strike)
