# src/op_jacobians/jacobian_sampling.py
"""Jacobian-aware views over a base integrator's steps and events.

The base integrator only sees the flat compound state z. The wrappers in this
module sit between it and client code:

- :class:`StepHandlerWrapper` turns each raw interpolator into a
  :class:`StepInterpolatorWithJacobians` and forwards it to a
  :class:`StepHandlerWithJacobians`.
- :class:`EventHandlerWrapper` does the same for switching functions.

Both wrapper types are tags: the facade recognizes them with isinstance when it
filters the base integrator's handler registries.

Snapshot wire format (big-endian, fixed order)::

    [pickled raw interpolator][int32 n][int32 k]
    [n x float64 y][n x float64 y_dot]
    [n*n x float64 dy/dy0, row-major][n*k x float64 dy/dp, row-major]
"""

from __future__ import annotations

import io
import logging
import pickle
import struct
from typing import IO, TYPE_CHECKING, Final, Protocol, runtime_checkable

import numpy as np

from .errors import SerializationError
from .layout import AugmentedLayout
from .sampling import StepInterpolator

if TYPE_CHECKING:
    from .events import EventAction
    from .ode import FloatArray

logger = logging.getLogger(__name__)

_INT: Final[struct.Struct] = struct.Struct(">i")
_TRUNCATED_STREAM_MSG: Final[str] = (
    "truncated snapshot stream: expected {expected} bytes for {field}, got {actual}"
)
_BAD_RAW_INTERPOLATOR_MSG: Final[str] = "cannot read raw interpolator: {detail}"
_BAD_DIMENSIONS_MSG: Final[str] = "invalid snapshot dimensions n={n}, k={k}"
_NOT_AN_INTERPOLATOR_MSG: Final[str] = "{kind} is not a step interpolator"
_READ_CHUNK: Final[int] = 1 << 20


# =============================================================================
# Client-facing protocols
# =============================================================================


@runtime_checkable
class StepHandlerWithJacobians(Protocol):
    """Step handler receiving state and Jacobians at each accepted step."""

    def handle_step(
        self,
        interpolator: StepInterpolatorWithJacobians,
        is_last: bool,  # noqa: FBT001
    ) -> None:
        """Handle one accepted step."""
        ...

    def requires_dense_output(self) -> bool:
        """Return True if the handler evaluates the interpolator between bounds."""
        ...

    def reset(self) -> None:
        """Reset internal state before a new integration run."""
        ...


@runtime_checkable
class EventHandlerWithJacobians(Protocol):
    """Switching function that may depend on the Jacobians."""

    def g(
        self,
        t: float,
        y: FloatArray,
        dy_dy0: FloatArray,
        dy_dp: FloatArray,
    ) -> float:
        """Evaluate the switching function."""
        ...

    def event_occurred(
        self,
        t: float,
        y: FloatArray,
        dy_dy0: FloatArray,
        dy_dp: FloatArray,
        increasing: bool,  # noqa: FBT001
    ) -> EventAction:
        """React to a root of g at time t."""
        ...


# =============================================================================
# Interpolator adapter
# =============================================================================


class StepInterpolatorWithJacobians:
    """Slices a raw compound interpolator into (y, y', dy/dy0, dy/dp) views.

    The arrays returned by the getters are cached buffers that are refilled on
    every call; copy them to keep values across calls.
    """

    def __init__(self, interpolator: StepInterpolator, n: int, k: int) -> None:
        """
        Initialize StepInterpolatorWithJacobians.

        Args:
            interpolator: Raw interpolator over the compound state.
            n: State dimension.
            k: Parameter count.
        """
        self._interpolator = interpolator
        self._layout = AugmentedLayout(n, k)
        self._y: FloatArray = np.zeros(n, dtype=np.float64)
        self._y_dot: FloatArray = np.zeros(n, dtype=np.float64)
        self._dy_dy0: FloatArray = np.zeros((n, n), dtype=np.float64)
        self._dy_dp: FloatArray = np.zeros((n, k), dtype=np.float64)
        self._dy_dy0_dot: FloatArray = np.zeros((n, n), dtype=np.float64)
        self._dy_dp_dot: FloatArray = np.zeros((n, k), dtype=np.float64)

    @property
    def raw_interpolator(self) -> StepInterpolator:
        """Underlying compound-state interpolator."""
        return self._interpolator

    @property
    def dimension(self) -> int:
        """State dimension n."""
        return self._layout.n

    @property
    def parameters_dimension(self) -> int:
        """Parameter count k."""
        return self._layout.k

    # ------------------------------------------------------------------
    # Pass-through
    # ------------------------------------------------------------------

    def set_interpolated_time(self, time: float) -> None:
        """Select the interpolation time."""
        self._interpolator.set_interpolated_time(time)

    @property
    def interpolated_time(self) -> float:
        """Current interpolation time."""
        return self._interpolator.interpolated_time

    @property
    def previous_time(self) -> float:
        """Start time of the step."""
        return self._interpolator.previous_time

    @property
    def current_time(self) -> float:
        """End time of the step."""
        return self._interpolator.current_time

    def is_forward(self) -> bool:
        """Return True if integration proceeds towards increasing time."""
        return self._interpolator.is_forward()

    # ------------------------------------------------------------------
    # Slicing
    # ------------------------------------------------------------------

    def _state(self) -> FloatArray:
        return np.asarray(self._interpolator.get_interpolated_state(), dtype=np.float64)

    def _derivatives(self) -> FloatArray:
        return np.asarray(
            self._interpolator.get_interpolated_derivatives(), dtype=np.float64
        )

    def get_interpolated_y(self) -> FloatArray:
        """State y at the interpolated time, shape (n,)."""
        np.copyto(self._y, self._layout.state(self._state()))
        return self._y

    def get_interpolated_dy_dy0(self) -> FloatArray:
        """Jacobian dy/dy0 at the interpolated time, shape (n, n)."""
        np.copyto(self._dy_dy0, self._layout.dy_dy0(self._state()))
        return self._dy_dy0

    def get_interpolated_dy_dp(self) -> FloatArray:
        """Jacobian dy/dp at the interpolated time, shape (n, k)."""
        np.copyto(self._dy_dp, self._layout.dy_dp(self._state()))
        return self._dy_dp

    def get_interpolated_y_dot(self) -> FloatArray:
        """State derivative y' at the interpolated time, shape (n,)."""
        np.copyto(self._y_dot, self._layout.state(self._derivatives()))
        return self._y_dot

    def get_interpolated_dy_dy0_dot(self) -> FloatArray:
        """Time derivative of dy/dy0 at the interpolated time, shape (n, n)."""
        np.copyto(self._dy_dy0_dot, self._layout.dy_dy0(self._derivatives()))
        return self._dy_dy0_dot

    def get_interpolated_dy_dp_dot(self) -> FloatArray:
        """Time derivative of dy/dp at the interpolated time, shape (n, k)."""
        np.copyto(self._dy_dp_dot, self._layout.dy_dp(self._derivatives()))
        return self._dy_dp_dot

    # ------------------------------------------------------------------
    # Copy / serialization
    # ------------------------------------------------------------------

    def copy(self) -> StepInterpolatorWithJacobians:
        """Return an independent snapshot (raw interpolator copied too)."""
        copied = StepInterpolatorWithJacobians(
            self._interpolator.copy(),
            self._layout.n,
            self._layout.k,
        )
        np.copyto(copied._y, self._y)
        np.copyto(copied._y_dot, self._y_dot)
        np.copyto(copied._dy_dy0, self._dy_dy0)
        np.copyto(copied._dy_dp, self._dy_dp)
        np.copyto(copied._dy_dy0_dot, self._dy_dy0_dot)
        np.copyto(copied._dy_dp_dot, self._dy_dp_dot)
        return copied

    def write_external(self, stream: IO[bytes]) -> None:
        """
        Serialize the snapshot to a binary stream.

        The cached arrays are written as last filled by the getters.

        Args:
            stream: Writable binary stream.
        """
        pickle.dump(self._interpolator, stream, protocol=pickle.HIGHEST_PROTOCOL)
        n = self._layout.n
        k = self._layout.k
        stream.write(_INT.pack(n))
        stream.write(_INT.pack(k))
        for block in (self._y, self._y_dot, self._dy_dy0, self._dy_dp):
            stream.write(np.ascontiguousarray(block, dtype=">f8").tobytes())

    @classmethod
    def read_external(cls, stream: IO[bytes]) -> StepInterpolatorWithJacobians:
        """
        Deserialize a snapshot written by :meth:`write_external`.

        Only read streams from trusted sources: the raw interpolator is
        unpickled.

        Args:
            stream: Readable binary stream positioned at a snapshot.

        Raises:
            SerializationError: If the stream is truncated or malformed.

        Returns:
            A new, independent snapshot with arrays sized from the stream.
        """
        try:
            interpolator = pickle.load(stream)  # noqa: S301
        except Exception as exc:
            raise SerializationError(
                _BAD_RAW_INTERPOLATOR_MSG.format(detail=exc)
            ) from exc
        try:
            valid = isinstance(interpolator, StepInterpolator)
        except Exception as exc:
            raise SerializationError(
                _BAD_RAW_INTERPOLATOR_MSG.format(detail=exc)
            ) from exc
        if not valid:
            raise SerializationError(
                _BAD_RAW_INTERPOLATOR_MSG.format(
                    detail=_NOT_AN_INTERPOLATOR_MSG.format(
                        kind=type(interpolator).__name__
                    )
                )
            )

        (n,) = _INT.unpack(_read_exact(stream, _INT.size, "n"))
        (k,) = _INT.unpack(_read_exact(stream, _INT.size, "k"))
        if n < 0 or k < 0:
            raise SerializationError(_BAD_DIMENSIONS_MSG.format(n=n, k=k))

        # Read the whole payload before sizing any buffer from n and k.
        sizes = (n, n, n * n, n * k)
        payload = _read_exact(stream, 8 * sum(sizes), "arrays")
        values = np.frombuffer(payload, dtype=">f8").astype(np.float64)
        y, y_dot, dy_dy0, dy_dp = np.split(values, np.cumsum(sizes[:-1]))

        snapshot = cls(interpolator, n, k)
        snapshot._y = y
        snapshot._y_dot = y_dot
        snapshot._dy_dy0 = dy_dy0.reshape(n, n)
        snapshot._dy_dp = dy_dp.reshape(n, k)
        logger.debug("snapshot deserialized: n=%d k=%d", n, k)
        return snapshot

    def to_bytes(self) -> bytes:
        """Serialize the snapshot to bytes."""
        buffer = io.BytesIO()
        self.write_external(buffer)
        return buffer.getvalue()

    @classmethod
    def from_bytes(cls, data: bytes) -> StepInterpolatorWithJacobians:
        """Deserialize a snapshot from bytes."""
        return cls.read_external(io.BytesIO(data))


def _read_exact(stream: IO[bytes], size: int, field: str) -> bytes:
    # Chunked so a bogus size fails on the short read, not on allocation.
    chunks: list[bytes] = []
    remaining = size
    while remaining > 0:
        data = stream.read(min(remaining, _READ_CHUNK))
        if not data:
            break
        chunks.append(data)
        remaining -= len(data)
    if remaining > 0:
        raise SerializationError(
            _TRUNCATED_STREAM_MSG.format(
                expected=size,
                field=field,
                actual=size - remaining,
            )
        )
    return b"".join(chunks)


# =============================================================================
# Handler wrappers (tag types)
# =============================================================================


class StepHandlerWrapper:
    """Raw step handler forwarding Jacobian-aware views to a client handler."""

    def __init__(self, handler: StepHandlerWithJacobians, n: int, k: int) -> None:
        """
        Initialize StepHandlerWrapper.

        Args:
            handler: Client handler.
            n: State dimension.
            k: Parameter count.
        """
        self.handler = handler
        self._n = n
        self._k = k

    def handle_step(self, interpolator: StepInterpolator, is_last: bool) -> None:  # noqa: FBT001
        """Wrap the raw interpolator and forward it."""
        self.handler.handle_step(
            StepInterpolatorWithJacobians(interpolator, self._n, self._k),
            is_last,
        )

    def requires_dense_output(self) -> bool:
        """Delegate to the client handler."""
        return self.handler.requires_dense_output()

    def reset(self) -> None:
        """Delegate to the client handler."""
        self.handler.reset()


class EventHandlerWrapper:
    """Raw event handler evaluating a Jacobian-aware switching function."""

    def __init__(self, handler: EventHandlerWithJacobians, n: int, k: int) -> None:
        """
        Initialize EventHandlerWrapper.

        Args:
            handler: Client event handler.
            n: State dimension.
            k: Parameter count.
        """
        self.handler = handler
        self._layout = AugmentedLayout(n, k)

    def g(self, t: float, y: FloatArray) -> float:
        """Evaluate the client switching function on the sliced compound state."""
        z = np.asarray(y, dtype=np.float64)
        lay = self._layout
        return float(self.handler.g(t, lay.state(z), lay.dy_dy0(z), lay.dy_dp(z)))

    def event_occurred(self, t: float, y: FloatArray, increasing: bool) -> EventAction:  # noqa: FBT001
        """Forward the event with sliced views of the compound state."""
        z = np.asarray(y, dtype=np.float64)
        lay = self._layout
        return self.handler.event_occurred(
            t,
            lay.state(z),
            lay.dy_dy0(z),
            lay.dy_dp(z),
            increasing,
        )
