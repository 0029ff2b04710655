"""
Tridiagonal linear operators acting on grid value arrays.

A finite difference discretization that only couples each node to its
immediate neighbours is represented by its three diagonals. Solving against
such an operator is a direct O(N) elimination; no iterative solver is needed.
"""

from __future__ import annotations

from numbers import Real

import numpy as np
from numpy.typing import ArrayLike, NDArray
from scipy.linalg import LinAlgError, solve_banded

from .exceptions import InvalidArgument, NumericalFailure


class TridiagonalOperator:
    """
    Linear operator with sub-, main and super-diagonal coefficients.

    Parameters
    ----------
    lower : array_like
        Sub-diagonal, ``lower[i]`` multiplies ``v[i]`` in row ``i + 1``. Length N-1.
    diagonal : array_like
        Main diagonal. Length N.
    upper : array_like
        Super-diagonal, ``upper[i]`` multiplies ``v[i + 1]`` in row ``i``. Length N-1.
    lower_bc : float, optional
        Neumann condition at the low end: ``v[1] - v[0] == lower_bc``.
    upper_bc : float, optional
        Neumann condition at the high end: ``v[N-1] - v[N-2] == upper_bc``.

    Notes
    -----
    Boundary conditions replace the first and last rows. ``apply`` rebuilds
    the boundary values of its result from the neighbouring interior value;
    ``solve_for`` swaps the boundary rows of the system for the Neumann
    equations.
    """

    def __init__(
        self,
        lower: ArrayLike,
        diagonal: ArrayLike,
        upper: ArrayLike,
        lower_bc: float | None = None,
        upper_bc: float | None = None,
    ) -> None:
        self.diagonal = np.array(diagonal, dtype=np.float64)
        self.lower = np.array(lower, dtype=np.float64)
        self.upper = np.array(upper, dtype=np.float64)
        n = self.diagonal.size
        if self.diagonal.ndim != 1 or n < 2:
            raise InvalidArgument(f"diagonal needs at least 2 entries, got {n}")
        if self.lower.shape != (n - 1,) or self.upper.shape != (n - 1,):
            raise InvalidArgument(
                f"off-diagonals must have {n - 1} entries, got {self.lower.size} and {self.upper.size}"
            )
        self.lower_bc = lower_bc
        self.upper_bc = upper_bc

    @classmethod
    def identity(cls, size: int) -> TridiagonalOperator:
        """Identity operator of dimension ``size``."""
        return cls(np.zeros(size - 1), np.ones(size), np.zeros(size - 1))

    @property
    def size(self) -> int:
        return int(self.diagonal.size)

    def with_boundary_conditions(
        self, lower_bc: float | None, upper_bc: float | None
    ) -> TridiagonalOperator:
        """Copy of this operator with the given Neumann conditions."""
        return TridiagonalOperator(self.lower, self.diagonal, self.upper, lower_bc, upper_bc)

    def to_dense(self) -> NDArray[np.float64]:
        """Dense matrix of the interior coefficients, ignoring boundary conditions."""
        return (
            np.diag(self.diagonal) + np.diag(self.lower, k=-1) + np.diag(self.upper, k=1)
        )

    # --- Arithmetic -------------------------------------------------------

    def _check_compatible(self, other: TridiagonalOperator) -> None:
        if other.size != self.size:
            raise InvalidArgument(
                f"cannot combine operators of sizes {self.size} and {other.size}"
            )

    def _combined_bcs(self, other: TridiagonalOperator) -> tuple[float | None, float | None]:
        lower_bc = self.lower_bc if self.lower_bc is not None else other.lower_bc
        upper_bc = self.upper_bc if self.upper_bc is not None else other.upper_bc
        return lower_bc, upper_bc

    def __add__(self, other: TridiagonalOperator) -> TridiagonalOperator:
        if not isinstance(other, TridiagonalOperator):
            return NotImplemented
        self._check_compatible(other)
        return TridiagonalOperator(
            self.lower + other.lower,
            self.diagonal + other.diagonal,
            self.upper + other.upper,
            *self._combined_bcs(other),
        )

    def __sub__(self, other: TridiagonalOperator) -> TridiagonalOperator:
        if not isinstance(other, TridiagonalOperator):
            return NotImplemented
        self._check_compatible(other)
        return TridiagonalOperator(
            self.lower - other.lower,
            self.diagonal - other.diagonal,
            self.upper - other.upper,
            *self._combined_bcs(other),
        )

    def __mul__(self, scalar: float) -> TridiagonalOperator:
        if not isinstance(scalar, Real):
            return NotImplemented
        return TridiagonalOperator(
            scalar * self.lower,
            scalar * self.diagonal,
            scalar * self.upper,
            self.lower_bc,
            self.upper_bc,
        )

    __rmul__ = __mul__

    def __neg__(self) -> TridiagonalOperator:
        return self * -1.0

    # --- Application ------------------------------------------------------

    def _as_vector(self, values: ArrayLike, name: str) -> NDArray[np.float64]:
        v = np.asarray(values, dtype=np.float64)
        if v.shape != (self.size,):
            raise InvalidArgument(
                f"{name} has shape {v.shape}, operator dimension is {self.size}"
            )
        return v

    def apply(self, values: ArrayLike) -> NDArray[np.float64]:
        """
        Return the operator applied to ``values`` as a new array.

        Raises
        ------
        InvalidArgument
            If ``values`` does not have the operator's dimension.
        """
        v = self._as_vector(values, "values")
        result = self.diagonal * v
        result[:-1] += self.upper * v[1:]
        result[1:] += self.lower * v[:-1]

        if self.lower_bc is not None:
            result[0] = result[1] - self.lower_bc
        if self.upper_bc is not None:
            result[-1] = result[-2] + self.upper_bc
        return result

    def solve_for(self, rhs: ArrayLike) -> NDArray[np.float64]:
        """
        Solve ``self @ x == rhs`` by tridiagonal elimination.

        Raises
        ------
        InvalidArgument
            If ``rhs`` does not have the operator's dimension.
        NumericalFailure
            If the system is singular or the solution is not finite.
        """
        b = np.array(self._as_vector(rhs, "rhs"), dtype=np.float64)

        # Banded storage for solve_banded: row 0 super, row 1 main, row 2 sub.
        banded = np.zeros((3, self.size), dtype=np.float64)
        banded[0, 1:] = self.upper
        banded[1, :] = self.diagonal
        banded[2, :-1] = self.lower

        if self.lower_bc is not None:
            banded[1, 0] = -1.0
            banded[0, 1] = 1.0
            b[0] = self.lower_bc
        if self.upper_bc is not None:
            banded[2, -2] = -1.0
            banded[1, -1] = 1.0
            b[-1] = self.upper_bc

        try:
            solution = solve_banded((1, 1), banded, b)
        except LinAlgError as exc:
            raise NumericalFailure(f"singular tridiagonal system: {exc}") from exc

        if not np.all(np.isfinite(solution)):
            raise NumericalFailure("tridiagonal solve produced non-finite values")
        return solution
