"""
Numerical Sensitivity Module
============================

This module provides numerical derivatives of an equation system using
finite differences. It is intended as a reference implementation to
validate the analytical term derivatives and as a debugging tool.

All derivatives are computed using the central perturbation method:
    df/dx ≈ (f(x + δx) - f(x - δx)) / (2 δx)

Author: Manuel Schwenke
Date: 2026-02-10

Notes
-----
- This requires two evaluations of every active equation per variable
- Accuracy depends on perturbation size (too small → round-off errors,
  too large → truncation errors)
- Recommended for validation and debugging only
- The state vector is restored after the computation
"""

import logging

import numpy as np
from numpy.typing import NDArray

logger = logging.getLogger(__name__)


def _equation_values(equations) -> NDArray[np.float64]:
    return np.array([equation.eval() for equation in equations], dtype=np.float64)


def finite_difference_jacobian(equation_system, step: float = 1e-6) -> NDArray[np.float64]:
    """
    Dense numerical Jacobian of the active equations at the current state.

    Parameters
    ----------
    equation_system : EquationSystem
        System with a state vector sized to its variable index.
    step : float, optional
        Perturbation applied to each variable (default: 1e-6).

    Returns
    -------
    NDArray[np.float64]
        Matrix of shape (row_count, column_count) in index order.

    Raises
    ------
    ValueError
        If the step is not positive or the state does not match the index.
    """
    if step <= 0:
        raise ValueError(f"step must be positive, got {step}")
    equations = equation_system.index.sorted_equations_to_solve()
    variables = equation_system.index.sorted_variables_to_find()
    state_vector = equation_system.state_vector
    x0 = np.array(state_vector.get(), dtype=np.float64)
    if len(x0) != len(variables):
        raise ValueError(f"State vector has {len(x0)} values for {len(variables)} variables")

    jacobian = np.zeros((len(equations), len(variables)), dtype=np.float64)
    try:
        for variable in variables:
            x = x0.copy()
            x[variable.row] += step
            state_vector.set(x)
            f_plus = _equation_values(equations)
            x[variable.row] -= 2.0 * step
            state_vector.set(x)
            f_minus = _equation_values(equations)
            jacobian[:, variable.row] = (f_plus - f_minus) / (2.0 * step)
    finally:
        state_vector.set(x0)
    logger.debug("Finite difference Jacobian computed: %d x %d", len(equations), len(variables))
    return jacobian


def finite_difference_term_derivative(term, variable, step: float = 1e-6) -> float:
    """Central difference of a single term with respect to one of its variables."""
    state_vector = term.root().state_vector
    x0 = np.array(state_vector.get(), dtype=np.float64)
    try:
        x = x0.copy()
        x[variable.row] += step
        state_vector.set(x)
        f_plus = term.eval()
        x[variable.row] -= 2.0 * step
        state_vector.set(x)
        f_minus = term.eval()
    finally:
        state_vector.set(x0)
    return (f_plus - f_minus) / (2.0 * step)
