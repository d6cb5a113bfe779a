# src/op_jacobians/finite_differences.py
"""Finite-difference Jacobians for ODEs that cannot compute their own.

:class:`FiniteDifferencesWrapper` adapts a plain ParameterizedODE into a
ParameterizedODEWithJacobians by perturbing each state component and each
parameter in turn and differencing the right-hand side.

Cost:
    Every Jacobian request costs n + k extra right-hand side evaluations with the
    forward scheme (2 * (n + k) with the central scheme). Since the variational
    equations request Jacobians at every stage of every step, this is the
    dominant cost of an integration with finite-difference Jacobians.

Accuracy:
    Forward differences have O(h) truncation error, central differences O(h^2).
    No step-size selection is performed for the differencing itself; the caller
    controls accuracy through the magnitude of h_y and h_p.

Parameter slots of the wrapped ODE are perturbed in-place and restored to p[j]
before returning, so the wrapped ODE must not be evaluated concurrently.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Final, Literal, TypeAlias

import numpy as np

from .errors import check_dimension

if TYPE_CHECKING:
    from numpy.typing import ArrayLike

    from .ode import FloatArray, ParameterizedODE

logger = logging.getLogger(__name__)

DifferenceScheme: TypeAlias = Literal["forward", "central"]

_UNKNOWN_SCHEME_ERROR_MSG: Final[str] = (
    "Unknown finite-difference scheme: {scheme} (expected 'forward' or 'central')"
)
_INVALID_STEP_ERROR_MSG: Final[str] = (
    "{name} must contain finite, non-zero step sizes; got {value} at index {idx}"
)


def _validated_steps(name: str, steps: FloatArray) -> FloatArray:
    """Return steps unchanged after rejecting zero or non-finite entries.

    Raises:
        ValueError: If any step is zero, NaN, or infinite.
    """
    for idx, value in enumerate(steps):
        if value == 0.0 or not np.isfinite(value):
            raise ValueError(
                _INVALID_STEP_ERROR_MSG.format(name=name, value=value, idx=idx)
            )
    return steps


class FiniteDifferencesWrapper:
    """ParameterizedODEWithJacobians computing Jacobians by differencing."""

    def __init__(
        self,
        ode: ParameterizedODE,
        p: ArrayLike | None,
        h_y: ArrayLike,
        h_p: ArrayLike | None,
        *,
        scheme: DifferenceScheme = "forward",
    ) -> None:
        """
        Initialize FiniteDifferencesWrapper.

        The arrays are copied; later mutation by the caller has no effect.

        Args:
            ode: ODE without Jacobian support.
            p: Reference parameter values, length k (None when k == 0).
            h_y: Step sizes for df/dy, length n.
            h_p: Step sizes for df/dp, length k (None when k == 0).
            scheme: "forward" (default) or "central" differences.

        Raises:
            DimensionMismatchError: If p, h_y or h_p have the wrong length.
            ValueError: If the scheme is unknown or a step size is zero.
        """
        n = int(ode.dimension)
        k = int(ode.parameters_dimension)
        check_dimension("h_y", n, h_y)
        check_dimension("p", k, p)
        check_dimension("h_p", k, h_p)
        if scheme not in ("forward", "central"):
            raise ValueError(_UNKNOWN_SCHEME_ERROR_MSG.format(scheme=scheme))

        self._ode = ode
        self._scheme: DifferenceScheme = scheme
        self._p: FloatArray = (
            np.array(p, dtype=np.float64).ravel() if k > 0 else np.zeros(0)
        )
        self._h_y = _validated_steps("h_y", np.array(h_y, dtype=np.float64).ravel())
        self._h_p = _validated_steps(
            "h_p",
            np.array(h_p, dtype=np.float64).ravel() if k > 0 else np.zeros(0),
        )

        # Scratch buffers reused across Jacobian requests.
        self._y_work: FloatArray = np.zeros(n, dtype=np.float64)
        self._dfdy: FloatArray = np.zeros((n, n), dtype=np.float64)
        self._dfdp: FloatArray = np.zeros((n, k), dtype=np.float64)

        logger.debug(
            "finite-difference Jacobians enabled: scheme=%s n=%d k=%d", scheme, n, k
        )

    @property
    def dimension(self) -> int:
        """State dimension n of the wrapped ODE."""
        return int(self._ode.dimension)

    @property
    def parameters_dimension(self) -> int:
        """Parameter count k of the wrapped ODE."""
        return int(self._ode.parameters_dimension)

    @property
    def scheme(self) -> DifferenceScheme:
        """Difference scheme in use."""
        return self._scheme

    @property
    def wrapped(self) -> ParameterizedODE:
        """The wrapped ODE."""
        return self._ode

    def set_parameter(self, i: int, value: float) -> None:
        """Delegate to the wrapped ODE."""
        self._ode.set_parameter(i, value)

    def compute_derivatives(self, t: float, y: FloatArray) -> FloatArray:
        """Delegate unchanged to the wrapped ODE."""
        return self._ode.compute_derivatives(t, y)

    def _evaluate(self, t: float, y: FloatArray) -> FloatArray:
        return np.asarray(self._ode.compute_derivatives(t, y), dtype=np.float64)

    def compute_jacobians(
        self,
        t: float,
        y: FloatArray,
        y_dot: FloatArray,
    ) -> tuple[FloatArray, FloatArray]:
        """
        Estimate df/dy and df/dp by finite differences.

        The returned arrays are scratch buffers owned by the wrapper and are
        overwritten by the next call.

        Args:
            t: Time.
            y: State, length n (not modified).
            y_dot: f(t, y), the unperturbed derivative.

        Returns:
            Tuple of (df/dy with shape (n, n), df/dp with shape (n, k)).
        """
        y_dot = np.asarray(y_dot, dtype=np.float64)
        np.copyto(self._y_work, y)
        central = self._scheme == "central"

        for j, h in enumerate(self._h_y):
            saved = self._y_work[j]
            self._y_work[j] = saved + h
            f_plus = self._evaluate(t, self._y_work)
            if central:
                self._y_work[j] = saved - h
                f_minus = self._evaluate(t, self._y_work)
                self._dfdy[:, j] = (f_plus - f_minus) / (2.0 * h)
            else:
                self._dfdy[:, j] = (f_plus - y_dot) / h
            self._y_work[j] = saved

        for j, h in enumerate(self._h_p):
            p_j = float(self._p[j])
            try:
                self._ode.set_parameter(j, p_j + h)
                f_plus = self._evaluate(t, self._y_work)
                if central:
                    self._ode.set_parameter(j, p_j - h)
                    f_minus = self._evaluate(t, self._y_work)
                    self._dfdp[:, j] = (f_plus - f_minus) / (2.0 * h)
                else:
                    self._dfdp[:, j] = (f_plus - y_dot) / h
            finally:
                self._ode.set_parameter(j, p_j)

        return self._dfdy, self._dfdp
