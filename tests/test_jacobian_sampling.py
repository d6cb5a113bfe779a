# tests/test_jacobian_sampling.py
"""Tests for the Jacobian-aware interpolator view and its snapshots."""

from __future__ import annotations

import io
import pickle
import struct

import numpy as np
import pytest

from op_jacobians.errors import SerializationError
from op_jacobians.events import EventAction
from op_jacobians.jacobian_sampling import (
    EventHandlerWrapper,
    StepHandlerWrapper,
    StepInterpolatorWithJacobians,
)
from op_jacobians.layout import AugmentedLayout
from op_jacobians.sampling import HermiteStepInterpolator

# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

N, K = 2, 1
LAYOUT = AugmentedLayout(N, K)


def _compound_step() -> HermiteStepInterpolator:
    """Linear-in-time compound state z(t) = z0 + t * v over [0, 1]."""
    z0 = np.arange(LAYOUT.size, dtype=float)
    v = np.linspace(1.0, 2.0, LAYOUT.size)
    return HermiteStepInterpolator(0.0, z0, v, 1.0, z0 + v, v)


def _view() -> StepInterpolatorWithJacobians:
    return StepInterpolatorWithJacobians(_compound_step(), N, K)


# -----------------------------------------------------------------------------
# Slicing
# -----------------------------------------------------------------------------


def test_getters_slice_compound_state() -> None:
    """Each getter returns its block of z (or z') at the interpolated time."""
    view = _view()
    view.set_interpolated_time(0.5)
    assert view.interpolated_time == 0.5

    z0 = np.arange(LAYOUT.size, dtype=float)
    v = np.linspace(1.0, 2.0, LAYOUT.size)
    z = z0 + 0.5 * v

    np.testing.assert_allclose(view.get_interpolated_y(), LAYOUT.state(z))
    np.testing.assert_allclose(view.get_interpolated_dy_dy0(), LAYOUT.dy_dy0(z))
    np.testing.assert_allclose(view.get_interpolated_dy_dp(), LAYOUT.dy_dp(z))
    np.testing.assert_allclose(view.get_interpolated_y_dot(), LAYOUT.state(v))
    np.testing.assert_allclose(view.get_interpolated_dy_dy0_dot(), LAYOUT.dy_dy0(v))
    np.testing.assert_allclose(view.get_interpolated_dy_dp_dot(), LAYOUT.dy_dp(v))


def test_derivative_getters_do_not_clobber_value_caches() -> None:
    """Fetching derivatives leaves previously fetched Jacobians intact."""
    view = _view()
    dy_dy0 = view.get_interpolated_dy_dy0()
    before = dy_dy0.copy()
    view.get_interpolated_dy_dy0_dot()
    np.testing.assert_array_equal(dy_dy0, before)


def test_pass_through_properties() -> None:
    """Times, direction and dimensions come from the raw interpolator."""
    view = _view()
    assert view.previous_time == 0.0
    assert view.current_time == 1.0
    assert view.is_forward()
    assert view.dimension == N
    assert view.parameters_dimension == K
    assert isinstance(view.raw_interpolator, HermiteStepInterpolator)


# -----------------------------------------------------------------------------
# Copy / serialization
# -----------------------------------------------------------------------------


def test_copy_is_independent() -> None:
    """A copy keeps its time and cached values when the original moves on."""
    view = _view()
    view.set_interpolated_time(0.25)
    y_before = view.get_interpolated_y().copy()

    copied = view.copy()
    view.set_interpolated_time(0.75)
    view.get_interpolated_y()

    assert copied.interpolated_time == 0.25
    np.testing.assert_allclose(copied.get_interpolated_y(), y_before)


def test_copy_carries_derivative_caches() -> None:
    """The Jacobian derivative caches are cloned, not shared or reset."""
    view = _view()
    view.set_interpolated_time(0.5)
    dy_dy0_dot = view.get_interpolated_dy_dy0_dot().copy()
    dy_dp_dot = view.get_interpolated_dy_dp_dot().copy()

    copied = view.copy()
    view.set_interpolated_time(0.0)
    view.get_interpolated_dy_dy0_dot().fill(-1.0)
    view.get_interpolated_dy_dp_dot().fill(-1.0)

    np.testing.assert_array_equal(copied._dy_dy0_dot, dy_dy0_dot)  # noqa: SLF001
    np.testing.assert_array_equal(copied._dy_dp_dot, dy_dp_dot)  # noqa: SLF001
    assert np.any(dy_dy0_dot != 0.0)


def test_snapshot_round_trip() -> None:
    """write_external / read_external restore dimensions, caches and the step."""
    view = _view()
    view.set_interpolated_time(0.5)
    y = view.get_interpolated_y().copy()
    y_dot = view.get_interpolated_y_dot().copy()
    dy_dy0 = view.get_interpolated_dy_dy0().copy()
    dy_dp = view.get_interpolated_dy_dp().copy()

    stream = io.BytesIO()
    view.write_external(stream)
    stream.seek(0)
    restored = StepInterpolatorWithJacobians.read_external(stream)

    assert restored.dimension == N
    assert restored.parameters_dimension == K
    np.testing.assert_array_equal(restored._y, y)  # noqa: SLF001
    np.testing.assert_array_equal(restored._y_dot, y_dot)  # noqa: SLF001
    np.testing.assert_array_equal(restored._dy_dy0, dy_dy0)  # noqa: SLF001
    np.testing.assert_array_equal(restored._dy_dp, dy_dp)  # noqa: SLF001

    restored.set_interpolated_time(0.5)
    np.testing.assert_allclose(restored.get_interpolated_y(), y)


def test_snapshot_layout_is_big_endian() -> None:
    """After the pickled interpolator come >i n, >i k and >f8 blocks."""
    view = _view()
    view.get_interpolated_y()
    data = view.to_bytes()
    tail_len = 4 + 4 + 8 * (N + N + N * N + N * K)
    tail = data[-tail_len:]
    assert tail[:4] == N.to_bytes(4, "big")
    assert tail[4:8] == K.to_bytes(4, "big")
    y = np.frombuffer(tail[8 : 8 + 8 * N], dtype=">f8")
    np.testing.assert_array_equal(y, view.get_interpolated_y())


def test_truncated_snapshot_rejected() -> None:
    """Cutting the stream short raises SerializationError."""
    data = _view().to_bytes()
    with pytest.raises(SerializationError, match="truncated"):
        StepInterpolatorWithJacobians.from_bytes(data[:-3])


_HUGE_DIMENSIONS = struct.pack(">ii", 2**31 - 1, 0)


@pytest.mark.parametrize(
    "data",
    [
        b"",
        b"not a pickle at all",
        # REDUCE applied to an int: pickle.load raises TypeError.
        b"\x80\x05K\x01K\x02\x85R.",
        pickle.dumps(42) + struct.pack(">ii", 0, 0),
        pickle.dumps(_compound_step()) + _HUGE_DIMENSIONS,
    ],
    ids=["empty", "text", "bad-reduce", "not-an-interpolator", "huge-dimensions"],
)
def test_garbage_snapshot_rejected(data: bytes) -> None:
    """Empty, malformed or oversized streams raise SerializationError."""
    with pytest.raises(SerializationError):
        StepInterpolatorWithJacobians.from_bytes(data)


# -----------------------------------------------------------------------------
# Wrappers
# -----------------------------------------------------------------------------


class _Recorder:
    def __init__(self) -> None:
        self.seen: list[StepInterpolatorWithJacobians] = []
        self.resets = 0

    def handle_step(
        self,
        interpolator: StepInterpolatorWithJacobians,
        is_last: bool,  # noqa: FBT001, ARG002
    ) -> None:
        self.seen.append(interpolator)

    def requires_dense_output(self) -> bool:
        return False

    def reset(self) -> None:
        self.resets += 1


def test_step_handler_wrapper_forwards_views() -> None:
    """The wrapper hands a Jacobian-aware view to the client handler."""
    client = _Recorder()
    wrapper = StepHandlerWrapper(client, N, K)
    wrapper.reset()
    wrapper.handle_step(_compound_step(), True)  # noqa: FBT003

    assert wrapper.handler is client
    assert client.resets == 1
    assert not wrapper.requires_dense_output()
    assert isinstance(client.seen[0], StepInterpolatorWithJacobians)
    assert client.seen[0].dimension == N


def test_event_handler_wrapper_slices_state() -> None:
    """g and event_occurred receive (y, dy/dy0, dy/dp) views of z."""
    received: list[tuple[np.ndarray, np.ndarray, np.ndarray]] = []

    class _Client:
        def g(
            self,
            _t: float,
            y: np.ndarray,
            dy_dy0: np.ndarray,
            dy_dp: np.ndarray,
        ) -> float:
            received.append((y.copy(), dy_dy0.copy(), dy_dp.copy()))
            return float(dy_dy0[0, 0]) - 1.0

        def event_occurred(
            self,
            _t: float,
            _y: np.ndarray,
            _dy_dy0: np.ndarray,
            _dy_dp: np.ndarray,
            increasing: bool,  # noqa: FBT001, ARG002
        ) -> EventAction:
            return EventAction.CONTINUE

    wrapper = EventHandlerWrapper(_Client(), N, K)
    z = LAYOUT.pack([3.0, 4.0], [[5.0], [6.0]])
    assert wrapper.g(0.0, z) == 0.0
    y, dy_dy0, dy_dp = received[0]
    np.testing.assert_array_equal(y, [3.0, 4.0])
    np.testing.assert_array_equal(dy_dy0, np.eye(2))
    np.testing.assert_array_equal(dy_dp, [[5.0], [6.0]])
    assert wrapper.event_occurred(0.0, z, True) is EventAction.CONTINUE  # noqa: FBT003
