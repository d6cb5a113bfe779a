"""op_jacobians: ODE integration with Jacobians of the solution."""

from __future__ import annotations

from .config import FiniteDifferenceConfig, SolverConfig
from .core_solver import (
    AdaptiveConfig,
    CoreSolver,
    DtControllerConfig,
    RHSFunction,
    RunConfig,
)
from .errors import (
    DerivativeError,
    DimensionMismatchError,
    ErrorCode,
    IntegratorError,
    OpJacobiansError,
    SerializationError,
)
from .events import EventAction, EventHandler
from .finite_differences import FiniteDifferencesWrapper
from .integrator import (
    FirstOrderIntegrator,
    FirstOrderIntegratorWithJacobians,
    JacobianSolution,
)
from .jacobian_sampling import (
    EventHandlerWithJacobians,
    EventHandlerWrapper,
    StepHandlerWithJacobians,
    StepHandlerWrapper,
    StepInterpolatorWithJacobians,
)
from .layout import AugmentedLayout
from .ode import (
    FunctionODE,
    FunctionODEWithJacobians,
    ParameterizedODE,
    ParameterizedODEWithJacobians,
)
from .sampling import HermiteStepInterpolator, StepHandler, StepInterpolator
from .trajectory import JacobianTrajectory
from .variational import VariationalEquations

__all__ = [
    "AdaptiveConfig",
    "AugmentedLayout",
    "CoreSolver",
    "DerivativeError",
    "DimensionMismatchError",
    "DtControllerConfig",
    "ErrorCode",
    "EventAction",
    "EventHandler",
    "EventHandlerWithJacobians",
    "EventHandlerWrapper",
    "FiniteDifferenceConfig",
    "FiniteDifferencesWrapper",
    "FirstOrderIntegrator",
    "FirstOrderIntegratorWithJacobians",
    "FunctionODE",
    "FunctionODEWithJacobians",
    "HermiteStepInterpolator",
    "IntegratorError",
    "JacobianSolution",
    "JacobianTrajectory",
    "OpJacobiansError",
    "ParameterizedODE",
    "ParameterizedODEWithJacobians",
    "RHSFunction",
    "RunConfig",
    "SerializationError",
    "SolverConfig",
    "StepHandler",
    "StepHandlerWithJacobians",
    "StepHandlerWrapper",
    "StepInterpolator",
    "StepInterpolatorWithJacobians",
    "VariationalEquations",
]

__version__ = "0.1.0"
