"""
Backward rollback of a value array through repeated time steps.
"""

from __future__ import annotations

import logging

import numpy as np
from numpy.typing import NDArray

from .conditions import AmericanCondition
from .dynamics import BSMOperator
from .exceptions import InvalidArgument
from .option import is_count
from .schemes import MixedScheme, scheme_for
from .settings import SchemeName

logger = logging.getLogger(__name__)


class FiniteDifferenceModel:
    """
    Orchestrates a time stepping scheme and an optional step condition.

    Parameters
    ----------
    operator : BSMOperator
        Discretized PDE operator, queried at every step time.
    scheme : str or MixedScheme, default="crank-nicolson"
        Time stepping scheme.
    """

    def __init__(
        self,
        operator: BSMOperator,
        scheme: SchemeName | MixedScheme = "crank-nicolson",
    ) -> None:
        self.operator = operator
        self.scheme = scheme if isinstance(scheme, MixedScheme) else scheme_for(scheme)

    def rollback(
        self,
        values: NDArray[np.float64],
        from_time: float,
        to_time: float,
        steps: int,
        condition: AmericanCondition | None = None,
    ) -> NDArray[np.float64]:
        """
        Roll ``values`` back from ``from_time`` to ``to_time`` in place.

        The interval is split into ``steps`` equal sub-intervals traversed in
        decreasing time order. A condition, if given, is applied at
        ``from_time`` and after every step.

        Parameters
        ----------
        values : ndarray
            Value array owned by the caller; overwritten with the result.
        from_time : float
            Time at which ``values`` are known (e.g. maturity).
        to_time : float
            Target time, not later than ``from_time``.
        steps : int
            Number of sub-intervals. Zero leaves ``values`` untouched.
        condition : AmericanCondition, optional
            Constraint applied after each step.

        Returns
        -------
        ndarray
            ``values``, for chaining.

        Raises
        ------
        InvalidArgument
            If ``steps`` is not a non-negative integer, ``to_time > from_time``
            or the array size does not match the operator.
        """
        if not is_count(steps):
            raise InvalidArgument(f"steps must be an integer, got {steps!r}")
        if steps < 0:
            raise InvalidArgument(f"steps cannot be negative, got {steps}")
        if to_time > from_time:
            raise InvalidArgument(
                f"rollback runs backwards: to_time {to_time} is after from_time {from_time}"
            )
        if values.shape != (self.operator.size,):
            raise InvalidArgument(
                f"{values.size} values do not match an operator of size {self.operator.size}"
            )
        if steps == 0 or from_time == to_time:
            return values

        dt = (from_time - to_time) / steps
        logger.debug(
            "Rolling back %d nodes from t=%.6g to t=%.6g in %d steps%s",
            values.size,
            from_time,
            to_time,
            steps,
            " with step condition" if condition is not None else "",
        )

        if condition is not None:
            condition.apply(values, from_time)

        for i in range(steps):
            now = from_time - i * dt
            following = to_time if i == steps - 1 else now - dt
            values[:] = self.scheme.step(self.operator, values, now, following)
            if condition is not None:
                condition.apply(values, following)

        return values
