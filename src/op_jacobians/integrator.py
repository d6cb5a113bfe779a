# src/op_jacobians/integrator.py
"""First-order integration with Jacobians of the solution.

:class:`FirstOrderIntegratorWithJacobians` extends a base integrator so that it
also computes the partial derivatives of the solution with respect to the
initial state (dy/dy0) and to the free parameters (dy/dp).

The ODE problem of dimension n with k parameters is extended with its
variational equations into a compound problem of dimension n * (1 + n + k)
(:mod:`op_jacobians.variational`), which the base integrator solves like any
other flat system. Step and event handlers registered through the facade see
Jacobian-aware views (:mod:`op_jacobians.jacobian_sampling`).

Jacobians of the raw ODE come either from the ODE itself
(ParameterizedODEWithJacobians) or from finite differences when step sizes are
supplied (:class:`op_jacobians.finite_differences.FiniteDifferencesWrapper`).

Not thread-safe: the compound derivative function owns scratch buffers and
finite differences mutate the ODE's parameter slots in-place.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final, Protocol, runtime_checkable

import numpy as np

from .errors import check_dimension, check_matrix
from .finite_differences import DifferenceScheme, FiniteDifferencesWrapper
from .jacobian_sampling import (
    EventHandlerWithJacobians,
    EventHandlerWrapper,
    StepHandlerWithJacobians,
    StepHandlerWrapper,
)
from .layout import AugmentedLayout
from .ode import ParameterizedODE, ParameterizedODEWithJacobians
from .variational import VariationalEquations

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from numpy.typing import ArrayLike

    from .events import EventHandler
    from .ode import FloatArray
    from .sampling import StepHandler

logger = logging.getLogger(__name__)

_NO_JACOBIANS_ERROR_MSG: Final[str] = (
    "{ode_type} does not implement compute_jacobians; supply finite-difference "
    "step sizes h_y (and p, h_p when it has parameters)."
)


@runtime_checkable
class FirstOrderIntegrator(Protocol):
    """Contract of the base integrator driven by the facade."""

    def integrate(
        self,
        equations: Callable[[float, FloatArray], ArrayLike],
        t0: float,
        y0: ArrayLike,
        t: float,
        y: FloatArray,
    ) -> float:
        """Integrate from t0 to t, writing the final state into y."""
        ...

    def add_step_handler(self, handler: StepHandler) -> None:
        """Register a raw step handler."""
        ...

    def get_step_handlers(self) -> Sequence[StepHandler]:
        """Return the raw step handlers in insertion order."""
        ...

    def clear_step_handlers(self) -> None:
        """Remove all raw step handlers."""
        ...


@dataclass(slots=True, frozen=True)
class JacobianSolution:
    """Result of :meth:`FirstOrderIntegratorWithJacobians.solve`.

    Attributes:
        t: Stop time (the target, or earlier if an event stopped integration).
        y: State at t, shape (n,).
        dy_dy0: Jacobian with respect to the initial state, shape (n, n).
        dy_dp: Jacobian with respect to the parameters, shape (n, k).
    """

    t: float
    y: FloatArray
    dy_dy0: FloatArray
    dy_dp: FloatArray


class FirstOrderIntegratorWithJacobians:
    """Base integrator enhanced with dy/dy0 and dy/dp propagation."""

    def __init__(
        self,
        integrator: FirstOrderIntegrator,
        ode: ParameterizedODE | ParameterizedODEWithJacobians,
        p: ArrayLike | None = None,
        h_y: ArrayLike | None = None,
        h_p: ArrayLike | None = None,
        *,
        scheme: DifferenceScheme = "forward",
    ) -> None:
        """
        Initialize FirstOrderIntegratorWithJacobians.

        When ``h_y`` is given the Jacobians are estimated by finite differences
        around the reference parameters ``p``; otherwise the ODE must compute
        them itself.

        Args:
            integrator: Base integrator solving the compound problem.
            ode: Original problem (f in y' = f(t, y)).
            p: Reference parameter values (None when k == 0).
            h_y: Finite-difference steps for df/dy, length n.
            h_p: Finite-difference steps for df/dp, length k.
            scheme: Finite-difference scheme ("forward" or "central").

        Raises:
            DimensionMismatchError: If p, h_y or h_p have the wrong length.
            TypeError: If no steps are given and the ODE has no Jacobians.
        """
        self.integrator = integrator
        self.ode: ParameterizedODEWithJacobians
        if h_y is not None:
            self.ode = FiniteDifferencesWrapper(ode, p, h_y, h_p, scheme=scheme)
        elif isinstance(ode, ParameterizedODEWithJacobians):
            self.ode = ode
        else:
            raise TypeError(
                _NO_JACOBIANS_ERROR_MSG.format(ode_type=type(ode).__name__)
            )
        self.layout = AugmentedLayout(
            int(self.ode.dimension),
            int(self.ode.parameters_dimension),
        )

    # ------------------------------------------------------------------
    # Step handlers
    # ------------------------------------------------------------------

    def add_step_handler(self, handler: StepHandlerWithJacobians) -> None:
        """Register a Jacobian-aware step handler with the base integrator."""
        self.integrator.add_step_handler(
            StepHandlerWrapper(handler, self.layout.n, self.layout.k)
        )

    def get_step_handlers(self) -> list[StepHandlerWithJacobians]:
        """Return the handlers added through this facade, in insertion order.

        Raw handlers registered directly on the base integrator are hidden.
        """
        return [
            handler.handler
            for handler in self.integrator.get_step_handlers()
            if isinstance(handler, StepHandlerWrapper)
        ]

    def clear_step_handlers(self) -> None:
        """Remove the handlers added through this facade.

        Raw handlers registered directly on the base integrator are kept, in
        their original order.
        """
        others = [
            handler
            for handler in self.integrator.get_step_handlers()
            if not isinstance(handler, StepHandlerWrapper)
        ]
        self.integrator.clear_step_handlers()
        for handler in others:
            self.integrator.add_step_handler(handler)

    # ------------------------------------------------------------------
    # Event handlers (base integrators exposing an event registry)
    # ------------------------------------------------------------------

    def add_event_handler(
        self,
        handler: EventHandlerWithJacobians,
        **kwargs: object,
    ) -> None:
        """
        Register a Jacobian-aware event handler with the base integrator.

        Args:
            handler: Client event handler.
            **kwargs: Forwarded to the base integrator's add_event_handler
                (e.g. convergence, max_iterations for CoreSolver).
        """
        self.integrator.add_event_handler(  # type: ignore[attr-defined]
            EventHandlerWrapper(handler, self.layout.n, self.layout.k),
            **kwargs,
        )

    def get_event_handlers(self) -> list[EventHandlerWithJacobians]:
        """Return the event handlers added through this facade."""
        raw: list[EventHandler] = self.integrator.get_event_handlers()  # type: ignore[attr-defined]
        return [
            handler.handler
            for handler in raw
            if isinstance(handler, EventHandlerWrapper)
        ]

    def clear_event_handlers(self) -> None:
        """Remove the event handlers added through this facade.

        Raw handlers registered directly on the base integrator stay in place
        with their check interval and root-search settings.
        """
        raw: list[EventHandler] = self.integrator.get_event_handlers()  # type: ignore[attr-defined]
        for handler in raw:
            if isinstance(handler, EventHandlerWrapper):
                self.integrator.remove_event_handler(handler)  # type: ignore[attr-defined]

    # ------------------------------------------------------------------
    # Integration
    # ------------------------------------------------------------------

    def _check_inputs(
        self,
        y0: ArrayLike,
        dy0_dp: ArrayLike | None,
        y: FloatArray,
        dy_dy0: FloatArray,
        dy_dp: FloatArray | None,
    ) -> None:
        n = self.layout.n
        k = self.layout.k
        check_dimension("y0", n, y0)
        check_dimension("y", n, y)
        check_matrix("dy_dy0", n, n, dy_dy0)
        if k != 0:
            check_matrix("dy0_dp", n, k, dy0_dp)
            check_matrix("dy_dp", n, k, dy_dp)

    def integrate(
        self,
        t0: float,
        y0: ArrayLike,
        dy0_dp: ArrayLike | None,
        t: float,
        y: FloatArray,
        dy_dy0: FloatArray,
        dy_dp: FloatArray | None,
    ) -> float:
        """Integrate the ODE and its variational equations up to t.

        Args:
            t0: Initial time.
            y0: Initial state, length n.
            dy0_dp: Initial dy/dp, shape (n, k); may be None when k == 0.
            t: Target time (may be smaller than t0 for backward integration).
            y: Output buffer for the final state, length n (may be y0 itself).
            dy_dy0: Output buffer for dy/dy0, shape (n, n).
            dy_dp: Output buffer for dy/dp, shape (n, k); may be None when k == 0.

        Raises:
            DimensionMismatchError: If any array has the wrong shape; raised
                before the right-hand side is evaluated.

        Returns:
            The stop time reported by the base integrator (t, or earlier if an
            event stopped integration).
        """
        self._check_inputs(y0, dy0_dp, y, dy_dy0, dy_dp)

        lay = self.layout
        z = lay.pack(y0, dy0_dp)
        equations = VariationalEquations(self.ode, lay)

        logger.debug(
            "integrating compound problem: n=%d k=%d q=%d t0=%g t=%g",
            lay.n,
            lay.k,
            lay.size,
            t0,
            t,
        )
        stop_time = self.integrator.integrate(equations, t0, z, t, z)

        lay.unpack(z, y, dy_dy0, dy_dp)
        return float(stop_time)

    def solve(
        self,
        t0: float,
        y0: ArrayLike,
        t: float,
        dy0_dp: ArrayLike | None = None,
    ) -> JacobianSolution:
        """
        Allocate outputs and integrate.

        Args:
            t0: Initial time.
            y0: Initial state, length n.
            t: Target time.
            dy0_dp: Initial dy/dp, shape (n, k); zeros if None.

        Returns:
            JacobianSolution holding the stop time and fresh output arrays.
        """
        n = self.layout.n
        k = self.layout.k
        if dy0_dp is None:
            dy0_dp = np.zeros((n, k), dtype=np.float64)
        y = np.zeros(n, dtype=np.float64)
        dy_dy0 = np.zeros((n, n), dtype=np.float64)
        dy_dp = np.zeros((n, k), dtype=np.float64)
        stop_time = self.integrate(t0, y0, dy0_dp, t, y, dy_dy0, dy_dp)
        return JacobianSolution(t=stop_time, y=y, dy_dy0=dy_dy0, dy_dp=dy_dp)
