# src/op_jacobians/events.py
"""Discrete events for the bundled base integrator.

An event handler exposes a switching function g(t, y). After every accepted
step the solver scans each handler for sign changes of g across the step and
locates the roots on the step's dense output with Brent's method
(``scipy.optimize.brentq``). The handler then decides whether integration
stops at the root or continues.

The sign of g is sampled at least every ``max_check_interval`` time units, so
two roots closer together than that interval may cancel out and be missed.

Only STOP and CONTINUE actions are supported; state resets are not.
"""

from __future__ import annotations

import math
from enum import StrEnum
from typing import TYPE_CHECKING, Final, Protocol, runtime_checkable

import numpy as np
from scipy.optimize import brentq

from .errors import IntegratorError

if TYPE_CHECKING:
    from .ode import FloatArray
    from .sampling import HermiteStepInterpolator

_ROOT_SEARCH_ERROR_MSG: Final[str] = (
    "event root search failed in [{t_a}, {t_b}]: {detail}"
)
_CONVERGENCE_ERROR_MSG: Final[str] = "event convergence must be positive, got {value}"
_MAX_ITER_ERROR_MSG: Final[str] = "event max_iterations must be positive, got {value}"
_MAX_CHECK_ERROR_MSG: Final[str] = (
    "event max_check_interval must be positive, got {value}"
)


class EventAction(StrEnum):
    """What the integrator does after an event triggers."""

    STOP = "stop"
    CONTINUE = "continue"


@runtime_checkable
class EventHandler(Protocol):
    """Switching function plus the action taken at its roots."""

    def g(self, t: float, y: FloatArray) -> float:
        """Evaluate the switching function."""
        ...

    def event_occurred(self, t: float, y: FloatArray, increasing: bool) -> EventAction:  # noqa: FBT001
        """React to a root of g at time t."""
        ...


class EventState:
    """Tracks one handler's switching function across accepted steps."""

    def __init__(
        self,
        handler: EventHandler,
        *,
        max_check_interval: float = math.inf,
        convergence: float = 1e-10,
        max_iterations: int = 100,
    ) -> None:
        """
        Initialize EventState.

        Args:
            handler: Event handler to monitor.
            max_check_interval: Maximal time between two sign checks of g.
            convergence: Absolute time tolerance of the root search.
            max_iterations: Iteration limit of the root search.

        Raises:
            ValueError: If a setting is not positive.
        """
        if not (max_check_interval > 0.0):
            raise ValueError(_MAX_CHECK_ERROR_MSG.format(value=max_check_interval))
        if not (convergence > 0.0):
            raise ValueError(_CONVERGENCE_ERROR_MSG.format(value=convergence))
        if max_iterations <= 0:
            raise ValueError(_MAX_ITER_ERROR_MSG.format(value=max_iterations))
        self.handler = handler
        self.max_check_interval = float(max_check_interval)
        self.convergence = float(convergence)
        self.max_iterations = int(max_iterations)
        self._t0 = 0.0
        self._g0 = 0.0

    def reinitialize(self, t: float, y: FloatArray) -> None:
        """Record g at the start of an integration run."""
        self._t0 = float(t)
        self._g0 = float(self.handler.g(float(t), y))

    def _g_at(self, interpolator: HermiteStepInterpolator, t: float) -> float:
        interpolator.set_interpolated_time(t)
        return float(self.handler.g(t, interpolator.get_interpolated_state()))

    def _solve(
        self,
        interpolator: HermiteStepInterpolator,
        t_a: float,
        t_b: float,
    ) -> float:
        lo, hi = (t_a, t_b) if t_a < t_b else (t_b, t_a)
        try:
            return float(
                brentq(
                    lambda t: self._g_at(interpolator, t),
                    lo,
                    hi,
                    xtol=self.convergence,
                    maxiter=self.max_iterations,
                )
            )
        except (RuntimeError, ValueError) as exc:
            raise IntegratorError(
                _ROOT_SEARCH_ERROR_MSG.format(t_a=t_a, t_b=t_b, detail=exc)
            ) from exc

    def find_roots(
        self,
        interpolator: HermiteStepInterpolator,
    ) -> list[tuple[float, bool]]:
        """
        Locate the sign changes of g inside the current step.

        The step is cut into sub-intervals no longer than max_check_interval
        and each sub-interval with a sign change contributes one root. The
        interpolator's interpolated time is left at the step end.

        Args:
            interpolator: Dense output of the accepted step.

        Raises:
            IntegratorError: If a root search does not converge.

        Returns:
            (root time, increasing) pairs in integration order.
        """
        t_end = interpolator.current_time
        span = t_end - self._t0
        n_checks = max(1, math.ceil(abs(span) / self.max_check_interval))

        roots: list[tuple[float, bool]] = []
        t_a = self._t0
        g_a = self._g0
        try:
            for i in range(1, n_checks + 1):
                t_b = t_end if i == n_checks else self._t0 + span * i / n_checks
                g_b = self._g_at(interpolator, t_b)
                if g_a != 0.0 and np.sign(g_b) != np.sign(g_a):
                    root = t_b if g_b == 0.0 else self._solve(interpolator, t_a, t_b)
                    roots.append((root, g_a < 0.0))
                t_a, g_a = t_b, g_b
        finally:
            interpolator.set_interpolated_time(t_end)
        return roots

    def trigger(self, t: float, y: FloatArray, increasing: bool) -> EventAction:  # noqa: FBT001
        """Notify the handler of a root at t and return its action."""
        return EventAction(self.handler.event_occurred(float(t), y, increasing))

    def step_accepted(self, t: float, y: FloatArray) -> None:
        """Move the reference point of the sign test to the end of a step."""
        self._t0 = float(t)
        self._g0 = float(self.handler.g(float(t), y))
