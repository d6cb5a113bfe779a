# src/op_jacobians/core_solver.py
"""Explicit base integrator with dense output, step handlers and events.

:class:`CoreSolver` integrates a flat first-order system y' = F(t, y) from t0
to t. It knows nothing about Jacobians: the sensitivity machinery in
:mod:`op_jacobians.integrator` hands it the compound variational system as an
ordinary right-hand side.

Supported methods (keyword `method=`):
    - "euler": Explicit Euler (order 1), adaptive via step-doubling.
    - "heun":  Explicit Heun / RK2 (order 2), embedded Euler estimator.
    - "rk4":   Classic Runge-Kutta (order 4), adaptive via step-doubling.

Stepping:
    - adaptive=False: fixed steps of size RunConfig.dt (the whole interval if
      dt is None); the last step is shortened to land exactly on t.
    - adaptive=True: steps are accepted when the RMS scaled error norm is <= 1
      and resized by the controller in DtControllerConfig.
    - Backward integration (t < t0) is supported; step sizes are signed.

Dense output:
    The derivative at the end of each accepted step is evaluated once, reused
    as the first stage of the next step, and combined with the step's end
    points into a cubic Hermite interpolator handed to the step handlers.

Performance hygiene:
    - Stage buffers are allocated once per integrate call.
    - Inner loops use in-place NumPy ops and np.copyto.
"""

from __future__ import annotations

import logging
import warnings
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final, Literal, TypeAlias

import numpy as np
from numpy.typing import NDArray

from .errors import IntegratorError, check_dimension, raise_dimension_mismatch
from .events import EventAction, EventHandler, EventState
from .sampling import HermiteStepInterpolator

if TYPE_CHECKING:
    from numpy.typing import ArrayLike

    from .sampling import StepHandler

logger = logging.getLogger(__name__)


# =============================================================================
# Errors / messages
# =============================================================================

_UNKNOWN_METHOD_ERROR_MSG: Final[str] = "Unknown method: {method}"
_TOO_MANY_REJECTS_ERROR_MSG: Final[str] = (
    "Too many rejected steps at t={t} (max_reject={max_reject})"
)
_DT_UNDERFLOW_ERROR_MSG: Final[str] = "dt fell below dt_min at t={t}"
_STEP_UNDERFLOW_ERROR_MSG: Final[str] = (
    "step size {dt} is too small to advance t={t} in floating point"
)
_MAX_STEPS_ERROR_MSG: Final[str] = "Exceeded max_steps={max_steps} before t={t}"
_INTERVAL_TOO_SMALL_ERROR_MSG: Final[str] = (
    "too small integration interval: length = {length}"
)
_FIXED_DT_ERROR_MSG: Final[str] = "RunConfig.dt must be positive and finite, got {dt}"
_SINGLE_STEP_WARNING_MSG: Final[str] = (
    "Fixed-step run without RunConfig.dt takes a single step over the whole "
    "interval; set dt or adaptive=True."
)
_UNKNOWN_EVENT_HANDLER_MSG: Final[str] = "event handler is not registered"


# =============================================================================
# Type aliases
# =============================================================================

FloatArray: TypeAlias = NDArray[np.float64]
RHSFunction = Callable[[float, FloatArray], "ArrayLike"]
MethodName = Literal["euler", "heun", "rk4"]

_ALLOWED_METHODS: Final[tuple[str, ...]] = ("euler", "heun", "rk4")
_LANDING_RTOL: Final[float] = 1e-10


# =============================================================================
# Configuration dataclasses
# =============================================================================


@dataclass(slots=True, frozen=True)
class DtControllerConfig:
    """Configuration for adaptive timestep control.

    Attributes:
        dt_min: Minimum allowed |dt|.
        dt_max: Maximum allowed |dt|.
        safety: Safety factor applied to dt updates.
        fac_min: Minimum multiplicative change factor.
        fac_max: Maximum multiplicative change factor.
    """

    dt_min: float = 0.0
    dt_max: float = float("inf")
    safety: float = 0.9
    fac_min: float = 0.2
    fac_max: float = 5.0


@dataclass(slots=True, frozen=True)
class AdaptiveConfig:
    """Configuration for adaptive stepping.

    Attributes:
        rtol: Relative tolerance.
        atol: Absolute tolerance (scalar or array-like).
        dt_init: Optional initial |dt| guess; if None, use 1% of the interval.
        max_reject: Maximum number of rejected attempts per accepted step.
        max_steps: Maximum number of accepted steps per integrate call.
    """

    rtol: float = 1e-6
    atol: float | NDArray[np.floating] = 1e-9
    dt_init: float | None = None
    max_reject: int = 25
    max_steps: int = 1_000_000


@dataclass(slots=True, frozen=True)
class RunConfig:
    """Configuration for CoreSolver.integrate.

    Attributes:
        method: Method name.
        adaptive: Whether to use adaptive step-size control.
        dt: Fixed |dt| when adaptive=False (None: one step over the interval).
        dt_controller: Parameters for dt controller when adaptive=True.
        adaptive_cfg: Parameters controlling error tolerances and limits.
    """

    method: str = "rk4"
    adaptive: bool = True
    dt: float | None = None
    dt_controller: DtControllerConfig = DtControllerConfig()
    adaptive_cfg: AdaptiveConfig = AdaptiveConfig()


@dataclass(slots=True)
class StepIO:
    """Bundle of per-step state for stepping kernels.

    Attributes:
        t: Current time.
        dt: Signed step size.
        y: Current state array (input).
        f: Derivative at (t, y) (input, first-same-as-last).
        out: Output state array (written in-place).
        err_out: Error estimate array (written in-place).
    """

    t: float
    dt: float
    y: FloatArray
    f: FloatArray
    out: FloatArray
    err_out: FloatArray


# =============================================================================
# CoreSolver
# =============================================================================


class CoreSolver:
    """Explicit single-state integrator satisfying the base integrator contract."""

    def __init__(self, config: RunConfig | None = None) -> None:
        """Initialize CoreSolver.

        Args:
            config: Run configuration. If None, defaults are used.

        Raises:
            ValueError: If the method is unknown or the fixed dt is invalid.
        """
        self.config = config or RunConfig()
        self.method: MethodName = self._normalize_method(self.config.method)
        if self.config.dt is not None and not (
            np.isfinite(self.config.dt) and self.config.dt > 0.0
        ):
            raise ValueError(_FIXED_DT_ERROR_MSG.format(dt=self.config.dt))

        self._step_handlers: list[StepHandler] = []
        self._event_states: list[EventState] = []
        self._n = -1

    # ------------------------------------------------------------------
    # Handler registries
    # ------------------------------------------------------------------

    def add_step_handler(self, handler: StepHandler) -> None:
        """Register a handler called after every accepted step."""
        self._step_handlers.append(handler)

    def get_step_handlers(self) -> list[StepHandler]:
        """Return the registered step handlers in insertion order."""
        return list(self._step_handlers)

    def clear_step_handlers(self) -> None:
        """Remove all step handlers."""
        self._step_handlers.clear()

    def add_event_handler(
        self,
        handler: EventHandler,
        *,
        max_check_interval: float = float("inf"),
        convergence: float = 1e-10,
        max_iterations: int = 100,
    ) -> None:
        """
        Register an event handler.

        Args:
            handler: Event handler to monitor.
            max_check_interval: Maximal time between two sign checks of g.
            convergence: Absolute time tolerance of the root search.
            max_iterations: Iteration limit of the root search.
        """
        self._event_states.append(
            EventState(
                handler,
                max_check_interval=max_check_interval,
                convergence=convergence,
                max_iterations=max_iterations,
            )
        )

    def get_event_handlers(self) -> list[EventHandler]:
        """Return the registered event handlers in insertion order."""
        return [state.handler for state in self._event_states]

    def clear_event_handlers(self) -> None:
        """Remove all event handlers."""
        self._event_states.clear()

    def remove_event_handler(self, handler: EventHandler) -> None:
        """
        Remove one event handler, leaving the others and their settings intact.

        Args:
            handler: Handler previously passed to add_event_handler.

        Raises:
            ValueError: If the handler is not registered.
        """
        for i, state in enumerate(self._event_states):
            if state.handler is handler:
                del self._event_states[i]
                return
        raise ValueError(_UNKNOWN_EVENT_HANDLER_MSG)

    # ------------------------------------------------------------------
    # Buffers / helpers
    # ------------------------------------------------------------------

    def _allocate(self, n: int) -> None:
        """Allocate stage buffers for an n-dimensional system (reused if same n)."""
        if n == self._n:
            return
        self._n = n
        shape = (n,)
        self._f_n: FloatArray = np.zeros(shape, dtype=np.float64)
        self._f_pred: FloatArray = np.zeros(shape, dtype=np.float64)
        self._state_pred: FloatArray = np.zeros(shape, dtype=np.float64)
        self._rhs_buffer: FloatArray = np.zeros(shape, dtype=np.float64)

        self._k2: FloatArray = np.zeros(shape, dtype=np.float64)
        self._k3: FloatArray = np.zeros(shape, dtype=np.float64)
        self._k4: FloatArray = np.zeros(shape, dtype=np.float64)
        self._stage: FloatArray = np.zeros(shape, dtype=np.float64)

        self._y_full: FloatArray = np.zeros(shape, dtype=np.float64)
        self._y_half: FloatArray = np.zeros(shape, dtype=np.float64)
        self._y_two_half: FloatArray = np.zeros(shape, dtype=np.float64)
        self._err: FloatArray = np.zeros(shape, dtype=np.float64)
        self._scale: FloatArray = np.zeros(shape, dtype=np.float64)
        self._ratio: FloatArray = np.zeros(shape, dtype=np.float64)

        self._y_curr: FloatArray = np.zeros(shape, dtype=np.float64)
        self._y_try: FloatArray = np.zeros(shape, dtype=np.float64)
        self._f_curr: FloatArray = np.zeros(shape, dtype=np.float64)
        self._f_next: FloatArray = np.zeros(shape, dtype=np.float64)

    def _rhs_into(
        self,
        out: FloatArray,
        rhs_func: RHSFunction,
        t: float,
        y: FloatArray,
    ) -> None:
        """Evaluate RHS into out with shape enforcement.

        Args:
            out: Output buffer to write into.
            rhs_func: RHS function F(t, y).
            t: Time.
            y: State.

        Raises:
            DimensionMismatchError: If RHS returns an array with an unexpected shape.
        """
        f = np.asarray(rhs_func(float(t), y), dtype=np.float64)
        if f.shape != out.shape:
            raise_dimension_mismatch(name="rhs", expected=out.shape, actual=f.shape)
        np.copyto(out, f)

    @staticmethod
    def _normalize_method(method: str) -> MethodName:
        """Normalize and validate method string.

        Args:
            method: User-provided method string.

        Raises:
            ValueError: If method is unknown.

        Returns:
            Normalized method literal.
        """
        method_norm = str(method).strip().lower()
        if method_norm not in _ALLOWED_METHODS:
            raise ValueError(_UNKNOWN_METHOD_ERROR_MSG.format(method=method))
        return method_norm  # type: ignore[return-value]

    # ------------------------------------------------------------------
    # Error norm + dt controller
    # ------------------------------------------------------------------

    def _error_norm(
        self,
        err: FloatArray,
        y_ref: FloatArray,
        y_prev: FloatArray,
        *,
        rtol: float,
        atol: float | NDArray[np.floating],
    ) -> float:
        """
        Compute RMS scaled error norm.

        Args:
            err: Error array.
            y_ref: Reference solution array.
            y_prev: Previous solution array.
            rtol: Relative tolerance.
            atol: Absolute tolerance.

        Returns:
            RMS scaled error norm (0 for an empty system).
        """
        if err.size == 0:
            return 0.0
        np.abs(y_ref, out=self._scale)
        np.abs(y_prev, out=self._ratio)
        np.maximum(self._scale, self._ratio, out=self._scale)

        self._scale *= float(rtol)
        if isinstance(atol, (float, int, np.floating)):
            self._scale += float(atol)
        else:
            self._scale += np.asarray(atol, dtype=np.float64)

        np.divide(err, self._scale, out=self._ratio)
        v = float(np.sqrt(np.mean(self._ratio * self._ratio)))
        if not np.isfinite(v):
            return float("inf")
        return v

    @staticmethod
    def _propose_dt(
        dt: float,
        err_norm: float,
        order: int,
        *,
        cfg: DtControllerConfig,
    ) -> float:
        """
        Propose a new |dt| based on error norm and method order.

        Args:
            dt: Current |dt|.
            err_norm: Current error norm.
            order: Method order.
            cfg: Dt controller configuration.

        Returns:
            Proposed new |dt|.
        """
        if err_norm <= 0.0:
            fac = cfg.fac_max
        else:
            exp = 1.0 / float(order + 1)
            fac = cfg.safety * (err_norm ** (-exp))
            fac = min(cfg.fac_max, max(cfg.fac_min, fac))

        dt_new = dt * fac
        if dt_new < cfg.dt_min:
            return cfg.dt_min
        if dt_new > cfg.dt_max:
            return cfg.dt_max
        return dt_new

    # ------------------------------------------------------------------
    # One-step kernels (write into provided out arrays)
    # ------------------------------------------------------------------

    def _step_euler_doubling(self, rhs_func: RHSFunction, step: StepIO) -> int:
        """Explicit Euler step with step-doubling error estimate.

        Args:
            rhs_func: RHS function.
            step: Step bundle.

        Returns:
            Method order (1).
        """
        np.multiply(step.f, step.dt, out=self._y_full)
        self._y_full += step.y

        np.multiply(step.f, 0.5 * step.dt, out=self._y_half)
        self._y_half += step.y

        self._rhs_into(self._f_pred, rhs_func, step.t + 0.5 * step.dt, self._y_half)
        np.multiply(self._f_pred, 0.5 * step.dt, out=self._y_two_half)
        self._y_two_half += self._y_half

        np.subtract(self._y_two_half, self._y_full, out=step.err_out)
        np.copyto(step.out, self._y_two_half)
        return 1

    def _step_heun(self, rhs_func: RHSFunction, step: StepIO) -> int:
        """Explicit Heun (RK2) step with embedded Euler estimator.

        Args:
            rhs_func: RHS function.
            step: Step bundle.

        Returns:
            Method order (2).
        """
        np.multiply(step.f, step.dt, out=self._state_pred)
        self._state_pred += step.y

        self._rhs_into(self._f_pred, rhs_func, step.t + step.dt, self._state_pred)

        np.add(step.f, self._f_pred, out=self._rhs_buffer)
        self._rhs_buffer *= 0.5 * step.dt
        self._rhs_buffer += step.y

        np.subtract(self._rhs_buffer, self._state_pred, out=step.err_out)
        np.copyto(step.out, self._rhs_buffer)
        return 2

    def _rk4_step_once(
        self,
        rhs_func: RHSFunction,
        *,
        t: float,
        dt: float,
        y: FloatArray,
        f: FloatArray,
        out: FloatArray,
    ) -> None:
        """One classic RK4 step with k1 = f supplied by the caller."""
        half = 0.5 * dt

        np.multiply(f, half, out=self._stage)
        self._stage += y
        self._rhs_into(self._k2, rhs_func, t + half, self._stage)

        np.multiply(self._k2, half, out=self._stage)
        self._stage += y
        self._rhs_into(self._k3, rhs_func, t + half, self._stage)

        np.multiply(self._k3, dt, out=self._stage)
        self._stage += y
        self._rhs_into(self._k4, rhs_func, t + dt, self._stage)

        np.add(self._k2, self._k3, out=self._rhs_buffer)
        self._rhs_buffer *= 2.0
        self._rhs_buffer += f
        self._rhs_buffer += self._k4
        self._rhs_buffer *= dt / 6.0
        np.add(y, self._rhs_buffer, out=out)

    def _step_rk4_doubling(self, rhs_func: RHSFunction, step: StepIO) -> int:
        """RK4 step with step-doubling (Richardson) error estimate.

        Args:
            rhs_func: RHS function.
            step: Step bundle.

        Returns:
            Method order (4).
        """
        self._rk4_step_once(
            rhs_func,
            t=step.t,
            dt=step.dt,
            y=step.y,
            f=step.f,
            out=self._y_full,
        )

        dt2 = 0.5 * step.dt
        self._rk4_step_once(
            rhs_func,
            t=step.t,
            dt=dt2,
            y=step.y,
            f=step.f,
            out=self._y_half,
        )
        self._rhs_into(self._f_pred, rhs_func, step.t + dt2, self._y_half)
        self._rk4_step_once(
            rhs_func,
            t=step.t + dt2,
            dt=dt2,
            y=self._y_half,
            f=self._f_pred,
            out=self._y_two_half,
        )

        np.subtract(self._y_two_half, self._y_full, out=step.err_out)
        step.err_out /= 15.0
        np.copyto(step.out, self._y_two_half)
        return 4

    def _attempt_step(self, rhs_func: RHSFunction, step: StepIO) -> int:
        """
        Dispatch a single attempted step and return the method order.

        Args:
            rhs_func: RHS function.
            step: Step bundle.

        Returns:
            Method order.
        """
        if self.method == "euler":
            return self._step_euler_doubling(rhs_func, step)
        if self.method == "heun":
            return self._step_heun(rhs_func, step)
        return self._step_rk4_doubling(rhs_func, step)

    # ------------------------------------------------------------------
    # Step size selection
    # ------------------------------------------------------------------

    @staticmethod
    def _clip_step(dt: float, remaining: float) -> float:
        """Return |dt| for the next attempt, absorbing a negligible remainder."""
        if dt >= remaining * (1.0 - _LANDING_RTOL):
            return remaining
        return dt

    def _initial_dt(self, length: float) -> float:
        """Return the first |dt| for an interval of the given length."""
        cfg = self.config
        if not cfg.adaptive:
            if cfg.dt is None:
                warnings.warn(_SINGLE_STEP_WARNING_MSG, RuntimeWarning, stacklevel=3)
                return length
            return float(cfg.dt)

        dt_init = cfg.adaptive_cfg.dt_init
        dt = (
            float(dt_init)
            if dt_init is not None and np.isfinite(dt_init) and dt_init > 0.0
            else 0.01 * length
        )
        dt = min(dt, float(cfg.dt_controller.dt_max))
        if dt <= 0.0:
            dt = length
        return dt

    def _accept_adaptive(
        self,
        rhs_func: RHSFunction,
        *,
        t: float,
        dt: float,
        direction: float,
        remaining: float,
    ) -> tuple[float, float]:
        """
        Retry one step until the error test passes.

        Args:
            rhs_func: RHS function.
            t: Current time.
            dt: Proposed |dt|.
            direction: +1.0 for forward, -1.0 for backward integration.
            remaining: Distance |t_target - t|.

        Raises:
            IntegratorError: If step rejection limits or dt bounds are violated.

        Returns:
            Tuple of (accepted |dt|, proposed |dt| for the next step).
        """
        cfg = self.config
        rejects = 0
        while True:
            if rejects >= cfg.adaptive_cfg.max_reject:
                raise IntegratorError(
                    _TOO_MANY_REJECTS_ERROR_MSG.format(
                        t=t, max_reject=cfg.adaptive_cfg.max_reject
                    )
                )
            h = self._clip_step(dt, remaining)
            step = StepIO(
                t=t,
                dt=direction * h,
                y=self._y_curr,
                f=self._f_curr,
                out=self._y_try,
                err_out=self._err,
            )
            order = self._attempt_step(rhs_func, step)
            err_norm = self._error_norm(
                self._err,
                self._y_try,
                self._y_curr,
                rtol=cfg.adaptive_cfg.rtol,
                atol=cfg.adaptive_cfg.atol,
            )
            if err_norm <= 1.0:
                return h, self._propose_dt(
                    h, err_norm, order, cfg=cfg.dt_controller
                )

            dt_new = self._propose_dt(h, err_norm, order, cfg=cfg.dt_controller)
            if dt_new <= cfg.dt_controller.dt_min and cfg.dt_controller.dt_min > 0.0:
                raise IntegratorError(_DT_UNDERFLOW_ERROR_MSG.format(t=t))
            dt = dt_new
            rejects += 1

    # ------------------------------------------------------------------
    # Public integrate loop
    # ------------------------------------------------------------------

    def integrate(
        self,
        equations: RHSFunction,
        t0: float,
        y0: ArrayLike,
        t: float,
        y: FloatArray,
    ) -> float:
        """Integrate y' = equations(t, y) from t0 to t.

        Args:
            equations: Right-hand side F(t, y).
            t0: Initial time.
            y0: Initial state.
            t: Target time (may be smaller than t0 for backward integration).
            y: Output buffer receiving the final state (may be y0 itself).

        Raises:
            DimensionMismatchError: If y has a different length than y0.
            IntegratorError: If the interval is too small or the solver cannot
                make progress.

        Returns:
            The stop time: t, or an earlier time if an event stopped the run.
        """
        y0_arr = np.array(y0, dtype=np.float64).ravel()
        n = int(y0_arr.size)
        check_dimension("y", n, y)

        t0 = float(t0)
        t_target = float(t)
        length = abs(t_target - t0)
        if length <= 1.0e-12 * max(abs(t0), abs(t_target)):
            raise IntegratorError(_INTERVAL_TOO_SMALL_ERROR_MSG.format(length=length))
        direction = 1.0 if t_target > t0 else -1.0

        self._allocate(n)
        logger.debug(
            "integrate start: method=%s adaptive=%s n=%d t0=%g t=%g",
            self.method,
            self.config.adaptive,
            n,
            t0,
            t_target,
        )

        for handler in self._step_handlers:
            handler.reset()
        for state in self._event_states:
            state.reinitialize(t0, y0_arr)

        np.copyto(self._y_curr, y0_arr)
        self._rhs_into(self._f_curr, equations, t0, self._y_curr)

        t_curr = t0
        dt = self._initial_dt(length)
        max_steps = self.config.adaptive_cfg.max_steps
        n_steps = 0
        stop_time: float | None = None

        while stop_time is None:
            if n_steps >= max_steps:
                raise IntegratorError(
                    _MAX_STEPS_ERROR_MSG.format(max_steps=max_steps, t=t_target)
                )
            remaining = abs(t_target - t_curr)

            if self.config.adaptive:
                h, dt = self._accept_adaptive(
                    equations,
                    t=t_curr,
                    dt=dt,
                    direction=direction,
                    remaining=remaining,
                )
            else:
                h = self._clip_step(dt, remaining)
                self._attempt_step(
                    equations,
                    StepIO(
                        t=t_curr,
                        dt=direction * h,
                        y=self._y_curr,
                        f=self._f_curr,
                        out=self._y_try,
                        err_out=self._err,
                    ),
                )

            is_last = h >= remaining
            t_next = t_target if is_last else t_curr + direction * h
            if t_next == t_curr:
                raise IntegratorError(_STEP_UNDERFLOW_ERROR_MSG.format(dt=h, t=t_curr))

            self._rhs_into(self._f_next, equations, t_next, self._y_try)
            interpolator = HermiteStepInterpolator(
                t_curr,
                self._y_curr,
                self._f_curr,
                t_next,
                self._y_try,
                self._f_next,
            )

            stop_time = self._handle_events(interpolator)
            if stop_time is not None:
                is_last = True
                t_next = stop_time
                np.copyto(self._y_try, interpolator.get_interpolated_state())
                np.copyto(self._f_next, interpolator.get_interpolated_derivatives())
            elif is_last:
                stop_time = t_target

            for handler in self._step_handlers:
                interpolator.set_interpolated_time(t_next)
                handler.handle_step(interpolator, is_last)

            t_curr = t_next
            self._y_curr, self._y_try = self._y_try, self._y_curr
            self._f_curr, self._f_next = self._f_next, self._f_curr
            n_steps += 1

        np.copyto(y, self._y_curr)
        logger.debug("integrate stop: t=%g after %d steps", stop_time, n_steps)
        return stop_time

    def _handle_events(self, interpolator: HermiteStepInterpolator) -> float | None:
        """
        Trigger the events found in the current step.

        Roots are processed in integration order; the first STOP truncates the
        step at its root.

        Args:
            interpolator: Dense output of the accepted step.

        Returns:
            The stop time if an event stopped integration, else None.
        """
        if not self._event_states:
            return None

        forward = interpolator.is_forward()
        found: list[tuple[float, bool, EventState]] = [
            (root, increasing, state)
            for state in self._event_states
            for root, increasing in state.find_roots(interpolator)
        ]
        found.sort(key=lambda item: item[0] if forward else -item[0])

        for root, increasing, state in found:
            interpolator.set_interpolated_time(root)
            y_root = np.array(interpolator.get_interpolated_state())
            action = state.trigger(root, y_root, increasing)
            logger.debug("event at t=%g: %s", root, action)
            if action is EventAction.STOP:
                interpolator.shorten(root)
                return root

        t_end = interpolator.current_time
        interpolator.set_interpolated_time(t_end)
        y_end = np.array(interpolator.get_interpolated_state())
        for state in self._event_states:
            state.step_accepted(t_end, y_end)
        return None
