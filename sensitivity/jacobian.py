"""
Jacobian Module
===============

This module provides the sparse Jacobian of an AC equation system and the
linear solves built on it.

Mathematical Background
-----------------------
The equation system in compact form:

    f(x) - t = 0

where x is the state vector (bus voltages, tap ratios, phase shifts, shunt
susceptances, dummy flows, sequence voltages) and t the target vector. The
Jacobian entry (i, k) is the derivative of the active equation of row i
with respect to the variable of column k:

    J[i, k] = sum over the active terms T of equation i of dT/dx_k

A Newton step solves J dx = f(x) - t; a sensitivity of a function h(x)
linear in the state uses the transposed system J^T s = dh/dx.

The matrix is stored in scipy CSC format. Its structure follows the index
of the equation system and is rebuilt after a re-indexing; its values are
refreshed after each state update.

Author: Manuel Schwenke
Date: 2025-02-05
"""

import logging
from typing import List, Optional, Tuple

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla
from numpy.typing import NDArray

from core.exceptions import SingularityError, StructuralError
from equations.listeners import EquationSystemIndexListener, StateVectorListener

logger = logging.getLogger(__name__)


class JacobianMatrix(EquationSystemIndexListener, StateVectorListener):
    """
    Sparse Jacobian of the active equations of an equation system.

    Attributes
    ----------
    equation_system : EquationSystem
        System whose derivatives are assembled.

    Notes
    -----
    The instance registers itself on the index and on the state vector of
    the system; call ``cleanup`` to detach it.
    """

    def __init__(self, equation_system) -> None:
        self.equation_system = equation_system
        self._matrix: Optional[sp.csc_matrix] = None
        self._lu = None
        equation_system.index.add_listener(self)
        equation_system.state_vector.add_listener(self)

    def cleanup(self) -> None:
        self.equation_system.index.remove_listener(self)
        self.equation_system.state_vector.remove_listener(self)

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def on_equations_index_order_changed(self) -> None:
        self._invalidate()

    def on_variables_index_order_changed(self) -> None:
        self._invalidate()

    def on_state_update(self) -> None:
        self._invalidate()

    def _invalidate(self) -> None:
        self._matrix = None
        self._lu = None

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------

    def _entries(self) -> Tuple[List[int], List[int], List[float]]:
        rows: List[int] = []
        cols: List[int] = []
        values: List[float] = []
        for equation in self.equation_system.index.sorted_equations_to_solve():
            for term in equation.terms:
                if not term.active:
                    continue
                for variable in term.variables:
                    if variable.row < 0:
                        continue
                    rows.append(equation.row)
                    cols.append(variable.row)
                    values.append(term.der(variable))
        return rows, cols, values

    @property
    def matrix(self) -> sp.csc_matrix:
        """
        Jacobian at the current state.

        Duplicate (row, column) entries coming from several terms of the same
        equation are summed by the COO to CSC conversion.
        """
        if self._matrix is None:
            index = self.equation_system.index
            shape = (index.row_count, index.column_count)
            rows, cols, values = self._entries()
            self._matrix = sp.coo_matrix((values, (rows, cols)), shape=shape).tocsc()
            logger.debug("Jacobian assembled: shape %s, %d non-zeros", shape, self._matrix.nnz)
        return self._matrix

    def to_dense(self) -> NDArray[np.float64]:
        return self.matrix.toarray()

    # ------------------------------------------------------------------
    # Solves
    # ------------------------------------------------------------------

    def _factorize(self):
        """
        LU factors of the matrix, cached until the next state or index change.

        Raises
        ------
        StructuralError
            If the matrix is not square.
        SingularityError
            If the matrix is singular.
        """
        if self._lu is None:
            matrix = self.matrix
            if matrix.shape[0] != matrix.shape[1]:
                raise StructuralError(f"Jacobian is not square: shape {matrix.shape}")
            try:
                self._lu = spla.splu(matrix)
            except RuntimeError as e:
                raise SingularityError(f"Jacobian matrix is singular and cannot be factorized: {e}") from e
        return self._lu

    def solve(self, rhs: NDArray[np.float64]) -> NDArray[np.float64]:
        """Solve ``J x = rhs``; ``rhs`` may be a vector or a matrix of columns."""
        return self._factorize().solve(np.asarray(rhs, dtype=np.float64))

    def solve_transposed(self, rhs: NDArray[np.float64]) -> NDArray[np.float64]:
        """Solve ``J^T x = rhs``; ``rhs`` may be a vector or a matrix of columns."""
        return self._factorize().solve(np.asarray(rhs, dtype=np.float64), trans="T")

    # ------------------------------------------------------------------
    # Residual
    # ------------------------------------------------------------------

    def equation_vector(self) -> NDArray[np.float64]:
        """Values ``f(x)`` of the active equations, in row order."""
        equations = self.equation_system.index.sorted_equations_to_solve()
        f = np.zeros(len(equations), dtype=np.float64)
        for equation in equations:
            f[equation.row] = equation.eval()
        return f

    def residual_vector(self, target_vector) -> NDArray[np.float64]:
        """Mismatch ``f(x) - t`` for a TargetVector of the same system."""
        return self.equation_vector() - target_vector.array


def newton_step(jacobian: JacobianMatrix, target_vector) -> NDArray[np.float64]:
    """
    Apply one Newton-Raphson step to the state of the system.

    Returns
    -------
    NDArray[np.float64]
        The mismatch before the step.
    """
    mismatch = jacobian.residual_vector(target_vector)
    dx = jacobian.solve(mismatch)
    jacobian.equation_system.state_vector.minus(dx)
    return mismatch
