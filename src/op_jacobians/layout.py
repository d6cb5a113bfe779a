# src/op_jacobians/layout.py
"""Index arithmetic for the augmented (compound) state vector.

The compound state z of an n-dimensional ODE with k parameters has length
q = n * (1 + n + k) and is laid out as three contiguous row-major blocks::

    z[i]                       = y[i]
    z[n + i * n + j]           = dy[i]/dy0[j]
    z[n * (n + 1) + i * k + j] = dy[i]/dp[j]

Every offset formula lives in :class:`AugmentedLayout`; callers slice through
its views instead of recomputing positions.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Final

import numpy as np

from .errors import check_dimension, check_matrix

if TYPE_CHECKING:
    from numpy.typing import ArrayLike

    from .ode import FloatArray

_NEGATIVE_DIMENSION_ERROR: Final[str] = (
    "layout dimensions must be non-negative, got n={n}, k={k}"
)


@dataclass(slots=True, frozen=True)
class AugmentedLayout:
    """Packing rules between (y, dy/dy0, dy/dp) and the flat compound state.

    Attributes:
        n: State dimension.
        k: Parameter count (may be 0).
    """

    n: int
    k: int

    def __post_init__(self) -> None:
        """Validate dimensions.

        Raises:
            ValueError: If n or k is negative.
        """
        if self.n < 0 or self.k < 0:
            raise ValueError(_NEGATIVE_DIMENSION_ERROR.format(n=self.n, k=self.k))

    # ------------------------------------------------------------------
    # Offsets
    # ------------------------------------------------------------------

    @property
    def size(self) -> int:
        """Compound dimension q = n * (1 + n + k)."""
        return self.n * (1 + self.n + self.k)

    @property
    def dy_dy0_offset(self) -> int:
        """Start of the dy/dy0 block."""
        return self.n

    @property
    def dy_dp_offset(self) -> int:
        """Start of the dy/dp block."""
        return self.n * (self.n + 1)

    def dy_dy0_index(self, i: int, j: int) -> int:
        """Flat position of dy[i]/dy0[j]."""
        return self.dy_dy0_offset + i * self.n + j

    def dy_dp_index(self, i: int, j: int) -> int:
        """Flat position of dy[i]/dp[j]."""
        return self.dy_dp_offset + i * self.k + j

    # ------------------------------------------------------------------
    # Views (no copies; writes go through to z)
    # ------------------------------------------------------------------

    def state(self, z: FloatArray) -> FloatArray:
        """View of block 0 (y), shape (n,)."""
        return z[: self.n]

    def dy_dy0(self, z: FloatArray) -> FloatArray:
        """View of block 1 (dy/dy0), shape (n, n)."""
        return z[self.dy_dy0_offset : self.dy_dp_offset].reshape(self.n, self.n)

    def dy_dp(self, z: FloatArray) -> FloatArray:
        """View of block 2 (dy/dp), shape (n, k)."""
        return z[self.dy_dp_offset : self.size].reshape(self.n, self.k)

    # ------------------------------------------------------------------
    # Pack / unpack
    # ------------------------------------------------------------------

    def pack(
        self,
        y0: ArrayLike,
        dy0_dp: ArrayLike | None,
        out: FloatArray | None = None,
    ) -> FloatArray:
        """
        Build the initial compound state.

        The dy/dy0 block is set to the identity since y(t0) = y0 exactly.

        Args:
            y0: Initial state, length n.
            dy0_dp: Initial sensitivity to parameters, shape (n, k); ignored
                (and may be None) when k == 0.
            out: Optional length-q buffer to fill in-place.

        Returns:
            The compound state z0 of length q.

        Raises:
            DimensionMismatchError: If any input has the wrong shape.
        """
        check_dimension("y0", self.n, y0)
        if out is None:
            out = np.zeros(self.size, dtype=np.float64)
        else:
            check_dimension("z", self.size, out)
            out.fill(0.0)

        np.copyto(self.state(out), np.asarray(y0, dtype=np.float64))
        np.fill_diagonal(self.dy_dy0(out), 1.0)
        if self.k > 0:
            check_matrix("dy0_dp", self.n, self.k, dy0_dp)
            np.copyto(self.dy_dp(out), np.asarray(dy0_dp, dtype=np.float64))
        return out

    def unpack(
        self,
        z: FloatArray,
        y: FloatArray,
        dy_dy0: FloatArray,
        dy_dp: FloatArray | None,
    ) -> None:
        """
        Dispatch a compound state into caller-provided buffers.

        Args:
            z: Compound state, length q.
            y: Output state buffer, length n.
            dy_dy0: Output buffer, shape (n, n).
            dy_dp: Output buffer, shape (n, k); skipped when k == 0.
        """
        np.copyto(y, self.state(z))
        np.copyto(dy_dy0, self.dy_dy0(z))
        if self.k > 0 and dy_dp is not None:
            np.copyto(dy_dp, self.dy_dp(z))
