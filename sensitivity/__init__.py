"""
Sensitivity Module
==================

This module provides the sparse Jacobian of an equation system and its
finite difference reference.

Classes
-------
JacobianMatrix
    scipy CSC Jacobian of the active equations with LU solves.

Functions
---------
finite_difference_jacobian
    Central difference Jacobian used to validate the analytical derivatives.
"""

from sensitivity.jacobian import JacobianMatrix, newton_step
from sensitivity.numerical import finite_difference_jacobian, finite_difference_term_derivative

__all__ = [
    "JacobianMatrix",
    "finite_difference_jacobian",
    "finite_difference_term_derivative",
    "newton_step",
]
