"""
AC Module
=========

This module provides the balanced AC equation system of an LfNetwork.

Classes
-------
AcEquationSystemCreator
    Builder of the equations, terms and control equations.
AcEquationSystemUpdater
    Network listener keeping the control equations consistent.
AcNetworkVector
    Vectorized cache of the branch, shunt and load flows.
TargetVector
    Right-hand side of the active equations.

Functions
---------
create_ac_equation_system
    Build the equation system of a network.
"""

from ac.creator import AcEquationSystemCreator, create_ac_equation_system
from ac.target import TargetVector
from ac.updater import AcEquationSystemUpdater
from ac.vectors import AcNetworkVector

__all__ = [
    "AcEquationSystemCreator",
    "AcEquationSystemUpdater",
    "AcNetworkVector",
    "TargetVector",
    "create_ac_equation_system",
]
