# src/op_jacobians/errors.py
"""Error types and small validation helpers for op_jacobians.

This module centralizes:
- explicit error classes with actionable messages,
- machine-readable error codes, and
- the dimension check shared by every public entry point.

Design intent:
- all input shape problems are detected eagerly, before any integration work
- failures raised by user right-hand sides propagate unchanged
- callers can catch library failures through a single base class
"""

from __future__ import annotations

from enum import StrEnum
from typing import Final

import numpy as np

_DIMENSION_MISMATCH_MSG: Final[str] = (
    "dimension mismatch for {name}: expected {expected}, got {actual}"
)


class ErrorCode(StrEnum):
    """Machine-readable classification for op_jacobians failures.

    Use these codes to support consistent logging and (optional) programmatic
    recovery without requiring many custom exception subclasses.
    """

    DIMENSION_MISMATCH = "dimension_mismatch"
    DERIVATIVE_FAILURE = "derivative_failure"
    INTEGRATION_FAILURE = "integration_failure"
    SERIALIZATION_FAILURE = "serialization_failure"
    INVALID_CONFIGURATION = "invalid_configuration"


class OpJacobiansError(Exception):
    """Base exception for op_jacobians errors.

    This exists so callers can catch library failures explicitly without
    depending on the full taxonomy of subclasses.
    """

    def __init__(self, message: str, *, code: ErrorCode | None = None) -> None:
        """
        Initialize an OpJacobiansError.

        Args:
            message: Human-readable error message.
            code: Optional machine-readable error code classifying the error.
        """
        super().__init__(message)
        self.code: ErrorCode | None = code


class DimensionMismatchError(OpJacobiansError, ValueError):
    """Raised when an array length disagrees with the ODE dimensions."""

    def __init__(
        self,
        *,
        name: str,
        expected: object,
        actual: object,
    ) -> None:
        """
        Initialize a DimensionMismatchError.

        Args:
            name: Name of the offending argument.
            expected: Expected length or shape.
            actual: Observed length or shape.
        """
        super().__init__(
            _DIMENSION_MISMATCH_MSG.format(name=name, expected=expected, actual=actual),
            code=ErrorCode.DIMENSION_MISMATCH,
        )
        self.name = name
        self.expected = expected
        self.actual = actual


class DerivativeError(OpJacobiansError, ArithmeticError):
    """Raised by user right-hand sides that cannot evaluate at (t, y).

    The library never catches it; it aborts the current integration and
    reaches the caller of ``integrate`` unchanged.
    """

    def __init__(self, message: str) -> None:
        """Initialize a DerivativeError."""
        super().__init__(message, code=ErrorCode.DERIVATIVE_FAILURE)


class IntegratorError(OpJacobiansError, RuntimeError):
    """Raised when the base integrator cannot reach the target time."""

    def __init__(self, message: str) -> None:
        """Initialize an IntegratorError."""
        super().__init__(message, code=ErrorCode.INTEGRATION_FAILURE)


class SerializationError(OpJacobiansError, OSError):
    """Raised when an interpolator snapshot stream is malformed or truncated."""

    def __init__(self, message: str) -> None:
        """Initialize a SerializationError."""
        super().__init__(message, code=ErrorCode.SERIALIZATION_FAILURE)


def raise_dimension_mismatch(*, name: str, expected: object, actual: object) -> None:
    """Raise a standardized DimensionMismatchError.

    Args:
        name: Name of the offending argument.
        expected: Expected length or shape.
        actual: Observed length or shape.

    Raises:
        DimensionMismatchError: Always.
    """
    raise DimensionMismatchError(name=name, expected=expected, actual=actual)


def array_shape(array: object) -> tuple[int, ...]:
    """Return the shape of an array-like, treating None as an empty vector."""
    if array is None:
        return (0,)
    return tuple(int(size) for size in np.shape(array))


def check_dimension(name: str, expected: int, array: object) -> None:
    """Check that an array-like is a vector of the expected length.

    Args:
        name: Name of the argument, used in the error message.
        expected: Expected length.
        array: Array-like to check (None counts as an empty vector).

    Raises:
        DimensionMismatchError: If the array is not 1-D or its length differs.
    """
    shape = array_shape(array)
    if shape == (expected,):
        return
    actual: object = shape[0] if len(shape) == 1 else shape
    raise_dimension_mismatch(name=name, expected=expected, actual=actual)


def check_matrix(name: str, rows: int, cols: int, array: object) -> None:
    """Check that an array-like is a rows x cols matrix.

    When ``rows`` is 0 any input with no rows (None, an empty list) is
    accepted.

    Args:
        name: Name of the argument, used in the error message.
        rows: Expected number of rows.
        cols: Expected number of columns.
        array: Array-like to check.

    Raises:
        DimensionMismatchError: If the shape differs.
    """
    shape = array_shape(array)
    if rows == 0 and len(shape) in (1, 2) and shape[0] == 0:
        return
    if shape != (rows, cols):
        raise_dimension_mismatch(name=name, expected=(rows, cols), actual=shape)
