"""
Equations Module
================

This module provides the generic equation system: variables, equations,
terms, the state vector and the row index of the active unknowns.

Classes
-------
Variable, VariableSet
    Scalar unknowns and their interning factory.
Equation
    Sum of terms attached to one network element.
EquationTerm
    Abstract scalar term with analytical derivatives.
EquationSystem
    Container of the equations with its variable set, state and index.
StateVector
    Values of the variables, indexed by row.
"""

from equations.equation import AcEquationType, Equation
from equations.state_vector import StateVector
from equations.system import EquationSystem
from equations.term import EquationTerm, MultipliedEquationTerm, VariableEquationTerm
from equations.variable import AcVariableType, ElementType, Variable, VariableSet

__all__ = [
    "AcEquationType",
    "AcVariableType",
    "ElementType",
    "Equation",
    "EquationSystem",
    "EquationTerm",
    "MultipliedEquationTerm",
    "StateVector",
    "Variable",
    "VariableEquationTerm",
    "VariableSet",
]
