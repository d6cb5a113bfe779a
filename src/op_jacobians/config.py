# src/op_jacobians/config.py
"""Configuration models for op_jacobians.

This module defines pydantic-facing configuration objects (e.g. parsed from
YAML or JSON run files) and translates them into native objects: a
:class:`op_jacobians.core_solver.RunConfig` / CoreSolver, and a
:class:`op_jacobians.finite_differences.FiniteDifferencesWrapper`.

Notes:
    - Unknown fields are rejected (`extra="forbid"`) so typos in run files fail
      fast instead of silently falling back to defaults.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .core_solver import (
    AdaptiveConfig,
    CoreSolver,
    DtControllerConfig,
    MethodName,
    RunConfig,
)
from .finite_differences import FiniteDifferencesWrapper

if TYPE_CHECKING:
    from numpy.typing import ArrayLike

    from .ode import ParameterizedODE

_STEP_VALUE_ERROR_MSG = "finite-difference steps must be finite and non-zero, got {value}"


class SolverConfig(BaseModel):
    """Configuration schema for the bundled CoreSolver.

    Mirrors RunConfig, AdaptiveConfig and DtControllerConfig as one flat model.
    """

    model_config = ConfigDict(extra="forbid")

    method: MethodName = Field(
        default="rk4",
        description="Time integration method",
    )

    adaptive: bool = Field(
        default=True,
        description="Enable adaptive step-size control",
    )

    dt: float | None = Field(
        default=None,
        gt=0.0,
        description="Fixed step size when adaptive is False",
    )

    # Adaptive stepping controls
    rtol: float = Field(default=1e-6, ge=0.0)
    atol: float = Field(default=1e-9, ge=0.0)
    dt_init: float | None = Field(default=None, gt=0.0)
    max_reject: int = Field(default=25, gt=0)
    max_steps: int = Field(default=1_000_000, gt=0)

    # dt controller controls
    dt_min: float = Field(default=0.0, ge=0.0)
    dt_max: float = Field(default=float("inf"), gt=0.0)
    safety: float = Field(default=0.9, gt=0.0)
    fac_min: float = Field(default=0.2, gt=0.0)
    fac_max: float = Field(default=5.0, gt=0.0)

    def to_run_config(self) -> RunConfig:
        """Convert this config to a native RunConfig.

        Returns:
            Fully constructed RunConfig instance.
        """
        adaptive_cfg = AdaptiveConfig(
            rtol=self.rtol,
            atol=self.atol,
            dt_init=self.dt_init,
            max_reject=self.max_reject,
            max_steps=self.max_steps,
        )

        dt_controller = DtControllerConfig(
            dt_min=self.dt_min,
            dt_max=self.dt_max,
            safety=self.safety,
            fac_min=self.fac_min,
            fac_max=self.fac_max,
        )

        return RunConfig(
            method=self.method,
            adaptive=self.adaptive,
            dt=self.dt,
            adaptive_cfg=adaptive_cfg,
            dt_controller=dt_controller,
        )

    def build_solver(self) -> CoreSolver:
        """Return a CoreSolver configured from this model."""
        return CoreSolver(self.to_run_config())


class FiniteDifferenceConfig(BaseModel):
    """Step sizes and scheme for finite-difference Jacobians."""

    model_config = ConfigDict(extra="forbid")

    h_y: list[float] = Field(description="Steps for df/dy, one per state")
    h_p: list[float] = Field(
        default_factory=list,
        description="Steps for df/dp, one per parameter",
    )
    scheme: Literal["forward", "central"] = Field(
        default="forward",
        description="Difference scheme",
    )

    @field_validator("h_y", "h_p")
    @classmethod
    def check_steps(cls, value: list[float]) -> list[float]:
        """Reject zero and non-finite steps.

        Raises:
            ValueError: If any step is zero, NaN or infinite.
        """
        for h in value:
            if h == 0.0 or not math.isfinite(h):
                raise ValueError(_STEP_VALUE_ERROR_MSG.format(value=h))
        return value

    def build_wrapper(
        self,
        ode: ParameterizedODE,
        p: ArrayLike | None = None,
    ) -> FiniteDifferencesWrapper:
        """
        Wrap an ODE with finite-difference Jacobians.

        Args:
            ode: Problem to differentiate.
            p: Reference parameter values (None when it has no parameters).

        Returns:
            FiniteDifferencesWrapper using this model's steps and scheme.
        """
        return FiniteDifferencesWrapper(
            ode,
            p,
            self.h_y,
            self.h_p,
            scheme=self.scheme,
        )
