# tests/test_trajectory.py
"""Unit tests for JacobianTrajectory.

This module tests:
- Output grid validation (1D, non-empty, strictly monotone)
- Recording of y, dy/dy0 and dy/dp at output times through the facade
- Backward runs, event-truncated runs and reset between runs
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
import pytest

from op_jacobians.core_solver import AdaptiveConfig, CoreSolver, RunConfig
from op_jacobians.events import EventAction
from op_jacobians.integrator import FirstOrderIntegratorWithJacobians
from op_jacobians.trajectory import JacobianTrajectory

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from op_jacobians.ode import FunctionODEWithJacobians

    FloatArray = NDArray[np.floating]


def _integrator(ode: FunctionODEWithJacobians) -> FirstOrderIntegratorWithJacobians:
    solver = CoreSolver(
        RunConfig(
            method="rk4",
            adaptive=True,
            adaptive_cfg=AdaptiveConfig(rtol=1e-10, atol=1e-12),
        )
    )
    return FirstOrderIntegratorWithJacobians(solver, ode)


# -------------------------------------------------------------------
# Grid validation
# -------------------------------------------------------------------


def test_grid_must_be_1d() -> None:
    """2D grids are rejected."""
    with pytest.raises(ValueError, match="1D"):
        JacobianTrajectory(np.zeros((2, 2)), 1, 1)


def test_grid_must_be_non_empty() -> None:
    """Empty grids are rejected."""
    with pytest.raises(ValueError, match="at least one"):
        JacobianTrajectory([], 1, 1)


@pytest.mark.parametrize("grid", [[0.0, 1.0, 0.5], [0.0, 1.0, 1.0]])
def test_grid_must_be_strictly_monotone(grid: list[float]) -> None:
    """Non-monotone or repeated grids are rejected."""
    with pytest.raises(ValueError, match="strictly"):
        JacobianTrajectory(grid, 1, 1)


def test_histories_are_allocated() -> None:
    """History shapes are (T, n), (T, n, n), (T, n, k)."""
    traj = JacobianTrajectory(np.linspace(0.0, 1.0, 5), 2, 3)
    assert traj.y.shape == (5, 2)
    assert traj.dy_dy0.shape == (5, 2, 2)
    assert traj.dy_dp.shape == (5, 2, 3)
    assert traj.n_recorded == 0
    assert traj.requires_dense_output()


# -------------------------------------------------------------------
# Recording
# -------------------------------------------------------------------


def test_records_every_output_time(
    exp_ode_with_jacobians: FunctionODEWithJacobians,
) -> None:
    """For y' = p y (p = 1, y0 = 1): y = dy/dy0 = e**t and dy/dp = t e**t."""
    grid = np.linspace(0.0, 1.0, 11)
    traj = JacobianTrajectory(grid, 1, 1)
    integ = _integrator(exp_ode_with_jacobians)
    integ.add_step_handler(traj)
    integ.solve(0.0, [1.0], 1.0)

    assert traj.complete
    assert traj.n_recorded == grid.size
    np.testing.assert_allclose(traj.y[:, 0], np.exp(grid), rtol=1e-7)
    np.testing.assert_allclose(traj.dy_dy0[:, 0, 0], np.exp(grid), rtol=1e-7)
    np.testing.assert_allclose(traj.dy_dp[:, 0, 0], grid * np.exp(grid), atol=1e-7)

    y, dy_dy0, dy_dp = traj.get_at(10)
    assert y[0] == pytest.approx(np.e, rel=1e-8)
    assert dy_dy0.shape == (1, 1)
    assert dy_dp.shape == (1, 1)


def test_backward_run_needs_decreasing_grid(
    exp_ode_with_jacobians: FunctionODEWithJacobians,
) -> None:
    """Backward runs record a decreasing grid and reject an increasing one."""
    integ = _integrator(exp_ode_with_jacobians)
    traj = JacobianTrajectory([1.0, 0.5, 0.0], 1, 1)
    integ.add_step_handler(traj)
    integ.solve(1.0, [np.e], 0.0)
    np.testing.assert_allclose(traj.y[:, 0], np.exp([1.0, 0.5, 0.0]), rtol=1e-7)

    integ.clear_step_handlers()
    integ.add_step_handler(JacobianTrajectory([0.0, 0.5, 1.0], 1, 1))
    with pytest.raises(ValueError, match="increasing"):
        integ.solve(1.0, [np.e], 0.0)


def test_output_time_before_start_rejected(
    exp_ode_with_jacobians: FunctionODEWithJacobians,
) -> None:
    """Output times preceding t0 cannot be sampled."""
    integ = _integrator(exp_ode_with_jacobians)
    integ.add_step_handler(JacobianTrajectory([-1.0, 0.5], 1, 1))
    with pytest.raises(ValueError, match="precedes"):
        integ.solve(0.0, [1.0], 1.0)


def test_event_truncates_recording(
    exp_ode_with_jacobians: FunctionODEWithJacobians,
) -> None:
    """Only the output times before an event stop are recorded."""

    class _StopAtTwo:
        def g(
            self,
            _t: float,
            y: FloatArray,
            _dy_dy0: FloatArray,
            _dy_dp: FloatArray,
        ) -> float:
            return float(y[0]) - 2.0

        def event_occurred(
            self,
            _t: float,
            _y: FloatArray,
            _dy_dy0: FloatArray,
            _dy_dp: FloatArray,
            increasing: bool,  # noqa: FBT001, ARG002
        ) -> EventAction:
            return EventAction.STOP

    integ = _integrator(exp_ode_with_jacobians)
    traj = JacobianTrajectory(np.linspace(0.0, 1.0, 11), 1, 1)
    integ.add_step_handler(traj)
    integ.add_event_handler(_StopAtTwo())
    sol = integ.solve(0.0, [1.0], 1.0)

    # ln 2 ~ 0.693: grid points 0.0 .. 0.6 are reached.
    assert sol.t == pytest.approx(np.log(2.0), abs=1e-6)
    assert traj.n_recorded == 7
    assert not traj.complete
    with pytest.raises(IndexError, match="not recorded"):
        traj.get_at(7)


def test_reset_rewinds_between_runs(
    exp_ode_with_jacobians: FunctionODEWithJacobians,
) -> None:
    """A second run overwrites the histories from the first output time."""
    integ = _integrator(exp_ode_with_jacobians)
    traj = JacobianTrajectory([0.0, 1.0], 1, 1)
    integ.add_step_handler(traj)
    integ.solve(0.0, [1.0], 1.0)
    integ.solve(0.0, [2.0], 1.0)

    assert traj.n_recorded == 2
    np.testing.assert_allclose(traj.y[:, 0], [2.0, 2.0 * np.e], rtol=1e-7)
