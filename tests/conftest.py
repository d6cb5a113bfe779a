"""Global pytest configuration and shared fixtures for op_jacobians."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
import pytest

from op_jacobians.core_solver import AdaptiveConfig, CoreSolver, RunConfig
from op_jacobians.ode import FunctionODE, FunctionODEWithJacobians

if TYPE_CHECKING:
    from numpy.typing import NDArray

    FloatArray = NDArray[np.floating]


# -----------------------------------------------------------------------------
# Problems
# -----------------------------------------------------------------------------


def _exp_rhs(_t: float, y: FloatArray, p: FloatArray) -> FloatArray:
    return p[0] * y


def _exp_jacobians(
    _t: float, y: FloatArray, p: FloatArray
) -> tuple[FloatArray, FloatArray]:
    return np.array([[p[0]]]), np.array([[y[0]]])


def _oscillator_rhs(_t: float, y: FloatArray, p: FloatArray) -> FloatArray:
    # x'' + c x' + w^2 x = 0 with p = (w, c)
    w, c = p
    return np.array([y[1], -(w * w) * y[0] - c * y[1]])


def _oscillator_jacobians(
    _t: float, y: FloatArray, p: FloatArray
) -> tuple[FloatArray, FloatArray]:
    w, c = p
    dfdy = np.array([[0.0, 1.0], [-(w * w), -c]])
    dfdp = np.array([[0.0, 0.0], [-2.0 * w * y[0], -y[1]]])
    return dfdy, dfdp


@pytest.fixture
def exp_ode() -> FunctionODE:
    """y' = p y with p = 1, no Jacobians."""
    return FunctionODE(_exp_rhs, 1, [1.0])


@pytest.fixture
def exp_ode_with_jacobians() -> FunctionODEWithJacobians:
    """y' = p y with p = 1 and analytic Jacobians."""
    return FunctionODEWithJacobians(_exp_rhs, _exp_jacobians, 1, [1.0])


@pytest.fixture
def oscillator_ode() -> FunctionODE:
    """Damped oscillator with p = (w, c) = (2, 0.1), no Jacobians."""
    return FunctionODE(_oscillator_rhs, 2, [2.0, 0.1])


@pytest.fixture
def oscillator_ode_with_jacobians() -> FunctionODEWithJacobians:
    """Damped oscillator with p = (w, c) = (2, 0.1) and analytic Jacobians."""
    return FunctionODEWithJacobians(
        _oscillator_rhs, _oscillator_jacobians, 2, [2.0, 0.1]
    )


# -----------------------------------------------------------------------------
# Solvers
# -----------------------------------------------------------------------------


@pytest.fixture
def tight_solver() -> CoreSolver:
    """Adaptive RK4 with tight tolerances."""
    return CoreSolver(
        RunConfig(
            method="rk4",
            adaptive=True,
            adaptive_cfg=AdaptiveConfig(rtol=1e-10, atol=1e-12),
        )
    )
