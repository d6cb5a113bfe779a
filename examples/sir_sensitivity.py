# op_jacobians/examples/sir_sensitivity.py
"""Parameter sensitivities of a single-location SIR model.

This example demonstrates the facade API:

- FirstOrderIntegratorWithJacobians propagates dy/dy0 and dy/dp alongside y.
- JacobianTrajectory stores y, dy/dy0 and dy/dp at fixed output times.
- Jacobians come either from analytic derivatives or from finite differences;
  both runs are compared.

We model a normalized SIR system with state y = (S, I, R) and parameters
p = (beta, gamma). The plots show I(t) and its sensitivities dI/dbeta and
dI/dgamma.

This script saves plots to disk (no interactive windows).
"""

from __future__ import annotations

import logging
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np

from op_jacobians import (
    FirstOrderIntegratorWithJacobians,
    FunctionODE,
    FunctionODEWithJacobians,
    JacobianTrajectory,
    SolverConfig,
)

_OUTPUT_DIR = Path(__file__).resolve().parent / "output" / "sir"

logger = logging.getLogger(__name__)


def sir_rhs(
    t: float,  # noqa: ARG001 (no explicit time dependence here)
    y: np.ndarray,
    p: np.ndarray,
) -> np.ndarray:
    """RHS for a normalized SIR model.

    Args:
        t: Current time (unused; included for API compatibility).
        y: State vector (S, I, R).
        p: Parameters (beta, gamma).

    Returns:
        (dS/dt, dI/dt, dR/dt).
    """
    s, i, _ = y
    beta, gamma = p
    new_inf = beta * s * i
    recov = gamma * i
    return np.array([-new_inf, new_inf - recov, recov])


def sir_jacobians(
    t: float,  # noqa: ARG001
    y: np.ndarray,
    p: np.ndarray,
) -> tuple[np.ndarray, np.ndarray]:
    """Analytic df/dy and df/dp for the SIR model.

    Args:
        t: Current time (unused).
        y: State vector (S, I, R).
        p: Parameters (beta, gamma).

    Returns:
        Tuple (df/dy with shape (3, 3), df/dp with shape (3, 2)).
    """
    s, i, _ = y
    beta, gamma = p
    dfdy = np.array(
        [
            [-beta * i, -beta * s, 0.0],
            [beta * i, beta * s - gamma, 0.0],
            [0.0, gamma, 0.0],
        ]
    )
    dfdp = np.array(
        [
            [-s * i, 0.0],
            [s * i, -i],
            [0.0, i],
        ]
    )
    return dfdy, dfdp


def _record(
    integrator: FirstOrderIntegratorWithJacobians,
    time_grid: np.ndarray,
    y0: np.ndarray,
) -> JacobianTrajectory:
    """Run one integration and return the recorded trajectory.

    Args:
        integrator: Configured facade.
        time_grid: Output times.
        y0: Initial state.

    Returns:
        The filled JacobianTrajectory.
    """
    trajectory = JacobianTrajectory(time_grid, n=3, k=2)
    integrator.add_step_handler(trajectory)
    integrator.solve(float(time_grid[0]), y0, float(time_grid[-1]))
    integrator.clear_step_handlers()
    return trajectory


def save_sensitivity_plot(
    time: np.ndarray,
    analytic: JacobianTrajectory,
    numeric: JacobianTrajectory,
    *,
    out_path: Path,
) -> None:
    """Save I(t), dI/dbeta and dI/dgamma to an image file.

    Args:
        time: 1D array of output times.
        analytic: Trajectory computed with analytic Jacobians.
        numeric: Trajectory computed with finite-difference Jacobians.
        out_path: Output path for the saved figure.
    """
    fig, axes = plt.subplots(3, 1, figsize=(8, 9), sharex=True)

    axes[0].plot(time, analytic.y[:, 1], label="I")
    axes[0].set_ylabel("Proportion")

    labels = ("dI/dbeta", "dI/dgamma")
    for j, ax in enumerate(axes[1:]):
        ax.plot(time, analytic.dy_dp[:, 1, j], label=f"{labels[j]} (analytic)")
        ax.plot(
            time,
            numeric.dy_dp[:, 1, j],
            linestyle="--",
            label=f"{labels[j]} (finite differences)",
        )
        ax.set_ylabel(labels[j])

    for ax in axes:
        ax.grid(visible=True)
        ax.legend()
    axes[-1].set_xlabel("Time")
    fig.suptitle("SIR sensitivities via FirstOrderIntegratorWithJacobians")
    fig.tight_layout()

    out_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(out_path, dpi=150)
    plt.close(fig)


def main() -> None:
    """Compute SIR sensitivities with analytic and finite-difference Jacobians.

    Files are written to: examples/output/sir/
    """
    logging.basicConfig(level=logging.INFO)

    # ---------------------------------------------------------------------
    # Model parameters
    # ---------------------------------------------------------------------
    params = np.array([0.30, 1.0 / 7.0])
    initial_infected = 0.01
    y0 = np.array([1.0 - initial_infected, initial_infected, 0.0])
    time_grid = np.linspace(0.0, 160.0, 321)

    config = SolverConfig(method="rk4", rtol=1e-8, atol=1e-10)

    # ---------------------------------------------------------------------
    # (1) Analytic Jacobians
    # ---------------------------------------------------------------------
    analytic = _record(
        FirstOrderIntegratorWithJacobians(
            config.build_solver(),
            FunctionODEWithJacobians(sir_rhs, sir_jacobians, 3, params),
        ),
        time_grid,
        y0,
    )

    # ---------------------------------------------------------------------
    # (2) Central finite differences on the plain right-hand side
    # ---------------------------------------------------------------------
    numeric = _record(
        FirstOrderIntegratorWithJacobians(
            config.build_solver(),
            FunctionODE(sir_rhs, 3, params),
            p=params,
            h_y=np.full(3, 1e-6),
            h_p=np.full(2, 1e-6),
            scheme="central",
        ),
        time_grid,
        y0,
    )

    gap = float(np.max(np.abs(analytic.dy_dp - numeric.dy_dp)))
    logger.info("max |dy/dp analytic - finite differences| = %.3e", gap)

    save_sensitivity_plot(
        time_grid,
        analytic,
        numeric,
        out_path=_OUTPUT_DIR / "sir_sensitivities.png",
    )


if __name__ == "__main__":
    main()
