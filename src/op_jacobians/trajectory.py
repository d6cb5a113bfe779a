# src/op_jacobians/trajectory.py
"""Recording of state and Jacobian histories on an output time grid.

:class:`JacobianTrajectory` is a StepHandlerWithJacobians that samples the
dense output of every accepted step at the output times it covers. Output
times are validated like a model time grid: 1-D, at least one point, and
strictly monotone in the integration direction (increasing for forward runs,
decreasing for backward runs).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, cast

import numpy as np

if TYPE_CHECKING:
    from numpy.typing import ArrayLike

    from .jacobian_sampling import StepInterpolatorWithJacobians
    from .ode import FloatArray


# Error / message constants -------------------------------------------------

_TIMEGRID_1D_ERROR = "time_grid must be a 1D array"
_TIMEGRID_MIN_POINTS_ERROR = "time_grid must contain at least one time point"
_TIMEGRID_MONOTONE_ERROR = "time_grid must be strictly increasing or strictly decreasing"
_DIRECTION_ERROR = "time_grid runs {grid} but integration runs {run}"
_BEFORE_START_ERROR = "output time {t} precedes the integration start {t0}"
_NEGATIVE_DIM_ERROR = "dimensions must be non-negative, got n={n}, k={k}"
_NOT_RECORDED_ERROR = "output index {idx} not recorded (n_recorded={n_recorded})"

# Relative slack, in units of the step length, when matching output times.
_TIME_RTOL = 1e-10


class JacobianTrajectory:
    """Step handler storing y, dy/dy0 and dy/dp at fixed output times."""

    def __init__(self, time_grid: ArrayLike, n: int, k: int) -> None:
        """
        Initialize JacobianTrajectory.

        Args:
            time_grid: 1D array of output times, shape (T,).
            n: State dimension.
            k: Parameter count.

        Raises:
            ValueError: if time_grid is invalid or a dimension is negative.
        """
        self.time_grid: FloatArray = np.array(time_grid, dtype=np.float64)
        if self.time_grid.ndim != 1:
            raise ValueError(_TIMEGRID_1D_ERROR)

        self.n_times = int(self.time_grid.size)
        if self.n_times < 1:
            raise ValueError(_TIMEGRID_MIN_POINTS_ERROR)

        if n < 0 or k < 0:
            raise ValueError(_NEGATIVE_DIM_ERROR.format(n=n, k=k))

        self._increasing: bool | None = None
        if self.n_times > 1:
            dt_arr = np.diff(self.time_grid)
            if np.all(dt_arr > 0):
                self._increasing = True
            elif np.all(dt_arr < 0):
                self._increasing = False
            else:
                raise ValueError(_TIMEGRID_MONOTONE_ERROR)

        self.n = int(n)
        self.k = int(k)
        self.y: FloatArray = np.zeros((self.n_times, self.n), dtype=np.float64)
        self.dy_dy0: FloatArray = np.zeros(
            (self.n_times, self.n, self.n), dtype=np.float64
        )
        self.dy_dp: FloatArray = np.zeros(
            (self.n_times, self.n, self.k), dtype=np.float64
        )
        self.n_recorded = 0

    # ------------------------------------------------------------------
    # Step handler protocol
    # ------------------------------------------------------------------

    def requires_dense_output(self) -> bool:
        """Output times fall between step bounds, so dense output is needed."""
        return True

    def reset(self) -> None:
        """Rewind to the first output time."""
        self.n_recorded = 0

    def handle_step(
        self,
        interpolator: StepInterpolatorWithJacobians,
        is_last: bool,  # noqa: FBT001, ARG002
    ) -> None:
        """
        Record every output time covered by the step.

        Args:
            interpolator: Jacobian-aware dense output of the step.
            is_last: Whether this is the final step of the run.

        Raises:
            ValueError: if the grid direction disagrees with the integration
                direction, or an output time precedes the integration start.
        """
        forward = interpolator.is_forward()
        t_prev = interpolator.previous_time
        t_curr = interpolator.current_time
        tol = _TIME_RTOL * abs(t_curr - t_prev)
        sign = 1.0 if forward else -1.0

        if self.n_recorded == 0:
            if self._increasing is not None and self._increasing != forward:
                raise ValueError(
                    _DIRECTION_ERROR.format(
                        grid="increasing" if self._increasing else "decreasing",
                        run="forward" if forward else "backward",
                    )
                )
            t_first = float(self.time_grid[0])
            if sign * (t_first - t_prev) < -tol:
                raise ValueError(_BEFORE_START_ERROR.format(t=t_first, t0=t_prev))

        while self.n_recorded < self.n_times:
            t_out = float(self.time_grid[self.n_recorded])
            if sign * (t_out - t_curr) > tol:
                break
            interpolator.set_interpolated_time(t_out)
            idx = self.n_recorded
            np.copyto(self.y[idx], interpolator.get_interpolated_y())
            np.copyto(self.dy_dy0[idx], interpolator.get_interpolated_dy_dy0())
            np.copyto(self.dy_dp[idx], interpolator.get_interpolated_dy_dp())
            self.n_recorded += 1

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def complete(self) -> bool:
        """Whether every output time was reached."""
        return self.n_recorded == self.n_times

    def get_at(self, idx: int) -> tuple[FloatArray, FloatArray, FloatArray]:
        """
        Return (y, dy_dy0, dy_dp) recorded at an output index.

        Args:
            idx: Output index in [0, n_recorded).

        Raises:
            IndexError: if idx has not been recorded.

        Returns:
            Views into the history arrays.
        """
        if not (0 <= idx < self.n_recorded):
            raise IndexError(
                _NOT_RECORDED_ERROR.format(idx=idx, n_recorded=self.n_recorded)
            )
        return (
            cast("FloatArray", self.y[idx]),
            cast("FloatArray", self.dy_dy0[idx]),
            cast("FloatArray", self.dy_dp[idx]),
        )
