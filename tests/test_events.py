# tests/test_events.py
"""Event detection tests for CoreSolver."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
import pytest

from op_jacobians.core_solver import CoreSolver, RunConfig
from op_jacobians.events import EventAction, EventHandler, EventState

if TYPE_CHECKING:
    from numpy.typing import NDArray

    FloatArray = NDArray[np.floating]


def _unit_speed(_t: float, y: FloatArray) -> FloatArray:
    return np.ones_like(y)


class _Threshold:
    """Stops when y[0] reaches a threshold."""

    def __init__(self, level: float) -> None:
        self.level = level
        self.calls: list[tuple[float, bool]] = []

    def g(self, _t: float, y: FloatArray) -> float:
        return float(y[0]) - self.level

    def event_occurred(self, t: float, _y: FloatArray, increasing: bool) -> EventAction:  # noqa: FBT001
        self.calls.append((t, increasing))
        return EventAction.STOP


class _Counter:
    """Counts zero crossings of sin(2 pi y) and never stops."""

    def __init__(self) -> None:
        self.calls: list[tuple[float, bool]] = []

    def g(self, _t: float, y: FloatArray) -> float:
        return float(np.sin(2.0 * np.pi * y[0]))

    def event_occurred(self, t: float, _y: FloatArray, increasing: bool) -> EventAction:  # noqa: FBT001
        self.calls.append((t, increasing))
        return EventAction.CONTINUE


def test_stop_event_truncates_integration() -> None:
    """A STOP event ends the run at the root with the interpolated state."""
    solver = CoreSolver()
    handler = _Threshold(0.5)
    assert isinstance(handler, EventHandler)
    solver.add_event_handler(handler)

    y = np.zeros(1)
    stop = solver.integrate(_unit_speed, 0.0, [0.0], 2.0, y)

    assert stop == pytest.approx(0.5, abs=1e-9)
    assert y[0] == pytest.approx(0.5, abs=1e-9)
    assert len(handler.calls) == 1
    assert handler.calls[0][1] is True


def test_continue_event_counts_crossings() -> None:
    """CONTINUE events fire at every root and integration reaches the target."""
    solver = CoreSolver()
    handler = _Counter()
    solver.add_event_handler(handler, max_check_interval=0.1)

    y = np.zeros(1)
    stop = solver.integrate(_unit_speed, 0.0, [0.0], 1.9, y)

    assert stop == 1.9
    times = [t for t, _ in handler.calls]
    np.testing.assert_allclose(times, [0.5, 1.0, 1.5], atol=1e-8)
    assert [inc for _, inc in handler.calls] == [False, True, False]


def test_backward_stop_event() -> None:
    """Events are located when integrating backward."""
    solver = CoreSolver()
    solver.add_event_handler(_Threshold(0.25))
    y = np.zeros(1)
    stop = solver.integrate(_unit_speed, 1.0, [1.0], -1.0, y)
    assert stop == pytest.approx(0.25, abs=1e-9)


def test_first_stop_in_step_wins() -> None:
    """With two roots in one step, the earliest in time stops the run."""
    solver = CoreSolver(RunConfig(adaptive=False, dt=1.0))
    late = _Threshold(0.75)
    early = _Threshold(0.25)
    solver.add_event_handler(late)
    solver.add_event_handler(early)

    y = np.zeros(1)
    stop = solver.integrate(_unit_speed, 0.0, [0.0], 1.0, y)
    assert stop == pytest.approx(0.25, abs=1e-9)
    assert late.calls == []


def test_event_registry() -> None:
    """Event handlers can be listed and cleared."""
    solver = CoreSolver()
    handler = _Threshold(1.0)
    solver.add_event_handler(handler, convergence=1e-8, max_iterations=50)
    assert solver.get_event_handlers() == [handler]
    solver.clear_event_handlers()
    assert solver.get_event_handlers() == []


def test_event_state_validates_settings() -> None:
    """Root-search settings must be positive."""
    with pytest.raises(ValueError, match="convergence"):
        EventState(_Threshold(1.0), convergence=0.0)
    with pytest.raises(ValueError, match="max_iterations"):
        EventState(_Threshold(1.0), max_iterations=0)
    with pytest.raises(ValueError, match="max_check_interval"):
        EventState(_Threshold(1.0), max_check_interval=-1.0)


def test_remove_event_handler_keeps_others() -> None:
    """Removing one handler leaves the remaining ones and their settings."""
    solver = CoreSolver()
    first = _Threshold(1.0)
    second = _Counter()
    solver.add_event_handler(first)
    solver.add_event_handler(second, max_check_interval=0.1)
    solver.remove_event_handler(first)
    assert solver.get_event_handlers() == [second]

    y = np.zeros(1)
    solver.integrate(_unit_speed, 0.0, [0.25], 2.0, y)
    times = [t for t, _ in second.calls]
    np.testing.assert_allclose(times, [0.25, 0.75, 1.25, 1.75], atol=1e-8)

    with pytest.raises(ValueError, match="not registered"):
        solver.remove_event_handler(first)
