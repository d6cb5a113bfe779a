# tests/test_sampling.py
"""Unit tests for the Hermite dense output."""

from __future__ import annotations

import pickle

import numpy as np

from op_jacobians.sampling import HermiteStepInterpolator, StepInterpolator


def _cubic_step() -> HermiteStepInterpolator:
    # y = t**3, y' = 3 t**2 on [0, 1]
    return HermiteStepInterpolator(
        0.0, np.array([0.0]), np.array([0.0]), 1.0, np.array([1.0]), np.array([3.0])
    )


def test_reproduces_cubics_exactly() -> None:
    """A cubic Hermite polynomial reproduces y = t**3 and y' = 3 t**2."""
    interp = _cubic_step()
    assert isinstance(interp, StepInterpolator)
    for t in (0.0, 0.25, 0.5, 0.8, 1.0):
        interp.set_interpolated_time(t)
        assert interp.interpolated_time == t
        np.testing.assert_allclose(interp.get_interpolated_state(), [t**3], atol=1e-14)
        np.testing.assert_allclose(
            interp.get_interpolated_derivatives(), [3.0 * t**2], atol=1e-14
        )


def test_defaults_to_step_end() -> None:
    """Before any set_interpolated_time call, values are those at the step end."""
    interp = _cubic_step()
    assert interp.interpolated_time == 1.0
    np.testing.assert_array_equal(interp.get_interpolated_state(), [1.0])


def test_backward_step() -> None:
    """Backward steps report is_forward() False and interpolate correctly."""
    interp = HermiteStepInterpolator(
        1.0, np.array([1.0]), np.array([3.0]), 0.0, np.array([0.0]), np.array([0.0])
    )
    assert not interp.is_forward()
    interp.set_interpolated_time(0.5)
    np.testing.assert_allclose(interp.get_interpolated_state(), [0.125], atol=1e-14)


def test_inputs_are_copied() -> None:
    """Mutating the arrays passed at construction has no effect."""
    y_end = np.array([1.0])
    interp = HermiteStepInterpolator(
        0.0, np.array([0.0]), np.array([0.0]), 1.0, y_end, np.array([3.0])
    )
    y_end[0] = 99.0
    interp.set_interpolated_time(1.0)
    np.testing.assert_allclose(interp.get_interpolated_state(), [1.0])


def test_shorten_moves_current_time() -> None:
    """shorten() moves the soft step end but keeps the polynomial."""
    interp = _cubic_step()
    interp.shorten(0.5)
    assert interp.current_time == 0.5
    assert interp.previous_time == 0.0
    np.testing.assert_allclose(interp.get_interpolated_state(), [0.125], atol=1e-14)


def test_copy_is_independent() -> None:
    """A copy keeps bounds and interpolation time and evolves separately."""
    interp = _cubic_step()
    interp.set_interpolated_time(0.5)
    copied = interp.copy()
    interp.set_interpolated_time(0.9)

    assert copied.interpolated_time == 0.5
    np.testing.assert_allclose(copied.get_interpolated_state(), [0.125], atol=1e-14)


def test_pickles() -> None:
    """The interpolator survives a pickle round trip."""
    interp = _cubic_step()
    interp.shorten(0.75)
    restored = pickle.loads(pickle.dumps(interp))  # noqa: S301
    assert restored.current_time == 0.75
    np.testing.assert_allclose(
        restored.get_interpolated_state(), [0.75**3], atol=1e-14
    )
