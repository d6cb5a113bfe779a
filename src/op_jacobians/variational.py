# src/op_jacobians/variational.py
"""Augmented right-hand side: the ODE plus its variational equations.

For y' = f(t, y; p), differentiating with respect to the initial state y0 and
the parameters p gives

    d/dt (dy/dy0) = df/dy @ (dy/dy0)
    d/dt (dy/dp)  = df/dy @ (dy/dp) + df/dp

:class:`VariationalEquations` evaluates f and both Jacobians once per call and
returns the derivative of the whole compound state z (see
:mod:`op_jacobians.layout`). Any base integrator that can integrate a flat
state vector can therefore propagate the sensitivities without knowing about
them.

Instances own scratch buffers and are not safe for concurrent use.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from .errors import check_dimension, check_matrix, raise_dimension_mismatch
from .layout import AugmentedLayout

if TYPE_CHECKING:
    from .ode import FloatArray, ParameterizedODEWithJacobians


class VariationalEquations:
    """Compound derivative function F(t, z) for the variational system."""

    def __init__(
        self,
        ode: ParameterizedODEWithJacobians,
        layout: AugmentedLayout | None = None,
    ) -> None:
        """
        Initialize VariationalEquations.

        Args:
            ode: ODE providing derivatives and Jacobians.
            layout: Compound layout; built from the ODE dimensions if omitted.

        Raises:
            DimensionMismatchError: If layout disagrees with the ODE dimensions.
        """
        n = int(ode.dimension)
        k = int(ode.parameters_dimension)
        self.layout = layout or AugmentedLayout(n, k)
        if (self.layout.n, self.layout.k) != (n, k):
            raise_dimension_mismatch(
                name="layout", expected=(n, k), actual=(self.layout.n, self.layout.k)
            )
        self.ode = ode
        self._y: FloatArray = np.zeros(n, dtype=np.float64)

    @property
    def dimension(self) -> int:
        """Compound dimension q."""
        return self.layout.size

    def __call__(self, t: float, z: FloatArray) -> FloatArray:
        """
        Evaluate the compound derivative.

        Args:
            t: Time.
            z: Compound state, length q.

        Returns:
            A new length-q array holding dz/dt.

        Raises:
            DimensionMismatchError: If the ODE returns arrays of the wrong shape.
        """
        lay = self.layout
        z = np.asarray(z, dtype=np.float64)
        np.copyto(self._y, lay.state(z))

        y_dot = np.asarray(self.ode.compute_derivatives(t, self._y), dtype=np.float64)
        check_dimension("y_dot", lay.n, y_dot)
        dfdy, dfdp = self.ode.compute_jacobians(t, self._y, y_dot)
        check_matrix("dfdy", lay.n, lay.n, dfdy)

        z_dot = np.empty(lay.size, dtype=np.float64)
        np.copyto(lay.state(z_dot), y_dot)
        np.matmul(dfdy, lay.dy_dy0(z), out=lay.dy_dy0(z_dot))
        if lay.k > 0:
            check_matrix("dfdp", lay.n, lay.k, dfdp)
            out = lay.dy_dp(z_dot)
            np.matmul(dfdy, lay.dy_dp(z), out=out)
            out += dfdp
        return z_dot
