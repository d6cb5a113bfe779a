# src/op_jacobians/sampling.py
"""Step handler / interpolator contracts and the bundled dense output.

Any base integrator used with
:class:`op_jacobians.integrator.FirstOrderIntegratorWithJacobians` hands each
accepted step to its step handlers as a :class:`StepInterpolator`. The
interpolator is only valid until the next step unless it is copied.

:class:`HermiteStepInterpolator` is the dense output produced by
:class:`op_jacobians.core_solver.CoreSolver`: a cubic Hermite polynomial built
from the state and derivative at both ends of the step. It holds plain floats
and arrays only, so it pickles cleanly.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

import numpy as np

if TYPE_CHECKING:
    from .ode import FloatArray


@runtime_checkable
class StepInterpolator(Protocol):
    """Dense output over one accepted step of a base integrator."""

    @property
    def previous_time(self) -> float:
        """Start time of the step."""
        ...

    @property
    def current_time(self) -> float:
        """End time of the step."""
        ...

    @property
    def interpolated_time(self) -> float:
        """Time of the last set_interpolated_time call."""
        ...

    def is_forward(self) -> bool:
        """Return True if integration proceeds towards increasing time."""
        ...

    def set_interpolated_time(self, time: float) -> None:
        """Select the time at which the interpolated vectors are evaluated."""
        ...

    def get_interpolated_state(self) -> FloatArray:
        """Return the state at the interpolated time."""
        ...

    def get_interpolated_derivatives(self) -> FloatArray:
        """Return the state derivative at the interpolated time."""
        ...

    def copy(self) -> StepInterpolator:
        """Return an independent copy that outlives the current step."""
        ...


@runtime_checkable
class StepHandler(Protocol):
    """Callback invoked by a base integrator after each accepted step."""

    def handle_step(self, interpolator: StepInterpolator, is_last: bool) -> None:  # noqa: FBT001
        """Handle one accepted step."""
        ...

    def requires_dense_output(self) -> bool:
        """Return True if the handler evaluates the interpolator between bounds."""
        ...

    def reset(self) -> None:
        """Reset internal state before a new integration run."""
        ...


class HermiteStepInterpolator:
    """Cubic Hermite dense output between two accepted points."""

    def __init__(
        self,
        t_prev: float,
        y_prev: FloatArray,
        f_prev: FloatArray,
        t_curr: float,
        y_curr: FloatArray,
        f_curr: FloatArray,
    ) -> None:
        """
        Initialize HermiteStepInterpolator.

        The arrays are copied.

        Args:
            t_prev: Step start time.
            y_prev: State at t_prev.
            f_prev: Derivative at t_prev.
            t_curr: Step end time.
            y_curr: State at t_curr.
            f_curr: Derivative at t_curr.
        """
        self._t_prev = float(t_prev)
        self._t_end = float(t_curr)
        self._y_prev: FloatArray = np.array(y_prev, dtype=np.float64)
        self._f_prev: FloatArray = np.array(f_prev, dtype=np.float64)
        self._y_end: FloatArray = np.array(y_curr, dtype=np.float64)
        self._f_end: FloatArray = np.array(f_curr, dtype=np.float64)

        # Soft end of the step; events may move it back inside the step.
        self._t_curr = self._t_end

        self._t_interp = self._t_end
        self._state: FloatArray = np.array(self._y_end)
        self._derivatives: FloatArray = np.array(self._f_end)
        self._dirty = False

    # ------------------------------------------------------------------
    # Time accessors
    # ------------------------------------------------------------------

    @property
    def previous_time(self) -> float:
        """Start time of the step."""
        return self._t_prev

    @property
    def current_time(self) -> float:
        """End time of the (possibly shortened) step."""
        return self._t_curr

    @property
    def interpolated_time(self) -> float:
        """Time of the last set_interpolated_time call."""
        return self._t_interp

    def is_forward(self) -> bool:
        """Return True if the step goes towards increasing time."""
        return self._t_end >= self._t_prev

    def set_interpolated_time(self, time: float) -> None:
        """Select the interpolation time (evaluation is deferred)."""
        self._t_interp = float(time)
        self._dirty = True

    def shorten(self, time: float) -> None:
        """Move the soft end of the step to ``time`` and interpolate there."""
        self._t_curr = float(time)
        self.set_interpolated_time(time)

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def _refresh(self) -> None:
        if not self._dirty:
            return
        h = self._t_end - self._t_prev
        theta = (self._t_interp - self._t_prev) / h if h != 0.0 else 1.0
        theta2 = theta * theta
        theta3 = theta2 * theta

        h00 = 2.0 * theta3 - 3.0 * theta2 + 1.0
        h10 = theta3 - 2.0 * theta2 + theta
        h01 = 1.0 - h00
        h11 = theta3 - theta2

        self._state = (
            h00 * self._y_prev
            + h01 * self._y_end
            + (h * h10) * self._f_prev
            + (h * h11) * self._f_end
        )

        d_jump = (6.0 * theta2 - 6.0 * theta) / h if h != 0.0 else 0.0
        self._derivatives = (
            d_jump * (self._y_prev - self._y_end)
            + (3.0 * theta2 - 4.0 * theta + 1.0) * self._f_prev
            + (3.0 * theta2 - 2.0 * theta) * self._f_end
        )
        self._dirty = False

    def get_interpolated_state(self) -> FloatArray:
        """Return the state at the interpolated time."""
        self._refresh()
        return self._state

    def get_interpolated_derivatives(self) -> FloatArray:
        """Return the derivative at the interpolated time."""
        self._refresh()
        return self._derivatives

    def copy(self) -> HermiteStepInterpolator:
        """Return a deep copy with the same bounds and interpolation time."""
        copied = HermiteStepInterpolator(
            self._t_prev,
            self._y_prev,
            self._f_prev,
            self._t_end,
            self._y_end,
            self._f_end,
        )
        copied._t_curr = self._t_curr
        copied.set_interpolated_time(self._t_interp)
        return copied
