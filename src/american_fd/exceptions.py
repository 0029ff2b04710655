"""
Exception types raised by the finite difference pricing core.
"""

from __future__ import annotations


class InvalidArgument(ValueError):
    """
    Raised when an input violates its contract.

    Covers malformed option specifications (non-positive volatility or
    maturity, even or too-small grid sizes), negative step counts, inverted
    rollback intervals and mismatched array sizes between cooperating
    components. Subclasses ``ValueError`` so generic validation handlers
    still catch it.
    """


class NumericalFailure(ArithmeticError):
    """
    Raised when a tridiagonal system turns out to be singular, the solve
    produces non-finite values, or an explicit step exceeds its stability bound.

    With a diffusion-dominated operator this indicates a configuration
    defect rather than a recoverable condition.
    """
