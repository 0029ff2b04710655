"""
Public API for the american_fd package.
"""

import logging

from .analytic import (
    black_scholes_greeks,
    black_scholes_price,
    european_reference,
    standard_normal_cdf,
    standard_normal_pdf,
)
from .conditions import AmericanCondition, apply_early_exercise, step_condition_for
from .convergence import (
    convergence_study,
    estimate_convergence_order,
    extrapolate_richardson,
    fd_pricing_function,
    plot_convergence,
)
from .dynamics import BlackScholesDynamics, BSMOperator
from .exceptions import InvalidArgument, NumericalFailure
from .fd_pricers import FdAmericanOption, FdEuropeanOption, price_american, price_european_fd
from .grid import (
    Grid,
    build_grid,
    first_derivative_at_center,
    grid_limits,
    initial_condition,
    second_derivative_at_center,
    value_at_center,
)
from .model import FiniteDifferenceModel
from .operators import TridiagonalOperator
from .option import ControlVariateBreakdown, FdResult, OptionSpec
from .payoff import PlainVanillaPayoff
from .schemes import CRANK_NICOLSON, EXPLICIT_EULER, IMPLICIT_EULER, MixedScheme, scheme_for
from .settings import PdeSettings

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    # Closed-form European reference
    "black_scholes_greeks",
    "black_scholes_price",
    "european_reference",
    "standard_normal_cdf",
    "standard_normal_pdf",
    # Specifications and results
    "ControlVariateBreakdown",
    "FdResult",
    "OptionSpec",
    "PdeSettings",
    "PlainVanillaPayoff",
    # Finite difference building blocks
    "AmericanCondition",
    "apply_early_exercise",
    "step_condition_for",
    "BlackScholesDynamics",
    "BSMOperator",
    "Grid",
    "build_grid",
    "grid_limits",
    "initial_condition",
    "value_at_center",
    "first_derivative_at_center",
    "second_derivative_at_center",
    "FiniteDifferenceModel",
    "TridiagonalOperator",
    "MixedScheme",
    "CRANK_NICOLSON",
    "IMPLICIT_EULER",
    "EXPLICIT_EULER",
    "scheme_for",
    # Pricers
    "FdAmericanOption",
    "FdEuropeanOption",
    "price_american",
    "price_european_fd",
    # Errors
    "InvalidArgument",
    "NumericalFailure",
    # Analysis tools
    "convergence_study",
    "estimate_convergence_order",
    "extrapolate_richardson",
    "fd_pricing_function",
    "plot_convergence",
]
