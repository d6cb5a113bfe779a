# src/op_jacobians/ode.py
"""Parameterized ODE contracts and callable-backed implementations.

Two shapes of right-hand side are supported:

- ParameterizedODE: y' = f(t, y; p) with mutable parameter slots.
- ParameterizedODEWithJacobians: additionally provides df/dy and df/dp.

Callers depend only on these protocols. ODEs that cannot provide Jacobians are
adapted by :class:`op_jacobians.finite_differences.FiniteDifferencesWrapper`.

Parameter slots are per-instance mutable state. An ODE object must not be used
by two integrations at the same time.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Final, Protocol, TypeAlias, runtime_checkable

import numpy as np
from numpy.typing import ArrayLike, NDArray

from .errors import check_dimension, check_matrix

FloatArray: TypeAlias = NDArray[np.float64]

ParameterizedRHS = Callable[[float, FloatArray, FloatArray], ArrayLike]
ParameterizedJacobians = Callable[
    [float, FloatArray, FloatArray],
    tuple[ArrayLike, ArrayLike],
]

_PARAMETER_INDEX_OOB_ERROR: Final[str] = "parameter index out of bounds: {idx}"
_DIMENSION_NEGATIVE_ERROR: Final[str] = "dimension must be non-negative, got {dim}"


@runtime_checkable
class ParameterizedODE(Protocol):
    """Minimal ODE interface: state derivative plus parameter slots."""

    @property
    def dimension(self) -> int:
        """Return the state dimension n."""
        ...

    @property
    def parameters_dimension(self) -> int:
        """Return the number of free parameters k."""
        ...

    def compute_derivatives(self, t: float, y: FloatArray) -> FloatArray:
        """Return y' = f(t, y) as a length-n array."""
        ...

    def set_parameter(self, i: int, value: float) -> None:
        """Set parameter slot i."""
        ...


@runtime_checkable
class ParameterizedODEWithJacobians(ParameterizedODE, Protocol):
    """ODE interface that also computes its own Jacobians."""

    def compute_jacobians(
        self,
        t: float,
        y: FloatArray,
        y_dot: FloatArray,
    ) -> tuple[FloatArray, FloatArray]:
        """Return (df/dy of shape (n, n), df/dp of shape (n, k))."""
        ...


class FunctionODE:
    """ParameterizedODE backed by a plain callable rhs(t, y, p)."""

    def __init__(
        self,
        rhs: ParameterizedRHS,
        dimension: int,
        parameters: Sequence[float] | ArrayLike = (),
    ) -> None:
        """
        Initialize FunctionODE.

        Args:
            rhs: Callable returning y' for (t, y, p).
            dimension: State dimension n.
            parameters: Initial parameter values (length k).

        Raises:
            ValueError: If dimension is negative.
        """
        if int(dimension) < 0:
            raise ValueError(_DIMENSION_NEGATIVE_ERROR.format(dim=dimension))
        self._rhs = rhs
        self._dimension = int(dimension)
        self._parameters: FloatArray = np.array(parameters, dtype=np.float64).ravel()

    @property
    def dimension(self) -> int:
        """State dimension n."""
        return self._dimension

    @property
    def parameters_dimension(self) -> int:
        """Number of free parameters k."""
        return int(self._parameters.size)

    @property
    def parameters(self) -> FloatArray:
        """Read-only view of the current parameter values."""
        view = self._parameters.view()
        view.flags.writeable = False
        return view

    def set_parameter(self, i: int, value: float) -> None:
        """
        Set parameter slot i.

        Args:
            i: Parameter index in [0, k).
            value: New value.

        Raises:
            IndexError: If i is out of bounds.
        """
        if not (0 <= i < self._parameters.size):
            raise IndexError(_PARAMETER_INDEX_OOB_ERROR.format(idx=i))
        self._parameters[i] = float(value)

    def compute_derivatives(self, t: float, y: FloatArray) -> FloatArray:
        """
        Evaluate the right-hand side.

        Args:
            t: Time.
            y: State, length n.

        Returns:
            y' as a float64 array of length n.
        """
        y_dot = np.asarray(self._rhs(float(t), y, self._parameters), dtype=np.float64)
        check_dimension("y_dot", self._dimension, y_dot)
        return y_dot


class FunctionODEWithJacobians(FunctionODE):
    """FunctionODE with analytic Jacobians from jacobians(t, y, p)."""

    def __init__(
        self,
        rhs: ParameterizedRHS,
        jacobians: ParameterizedJacobians,
        dimension: int,
        parameters: Sequence[float] | ArrayLike = (),
    ) -> None:
        """
        Initialize FunctionODEWithJacobians.

        Args:
            rhs: Callable returning y' for (t, y, p).
            jacobians: Callable returning (df/dy, df/dp) for (t, y, p).
            dimension: State dimension n.
            parameters: Initial parameter values (length k).
        """
        super().__init__(rhs, dimension, parameters)
        self._jacobians = jacobians

    def compute_jacobians(
        self,
        t: float,
        y: FloatArray,
        y_dot: FloatArray,  # noqa: ARG002
    ) -> tuple[FloatArray, FloatArray]:
        """
        Evaluate the analytic Jacobians.

        Args:
            t: Time.
            y: State, length n.
            y_dot: Current derivative (unused by analytic Jacobians).

        Returns:
            Tuple of (df/dy with shape (n, n), df/dp with shape (n, k)).
        """
        n = self.dimension
        k = self.parameters_dimension
        dfdy_raw, dfdp_raw = self._jacobians(float(t), y, self._parameters)
        dfdy = np.asarray(dfdy_raw, dtype=np.float64)
        dfdp = np.asarray(dfdp_raw, dtype=np.float64)
        if k == 0 and dfdp.size == 0:
            dfdp = np.zeros((n, 0), dtype=np.float64)
        check_matrix("dfdy", n, n, dfdy)
        check_matrix("dfdp", n, k, dfdp)
        return dfdy, dfdp
