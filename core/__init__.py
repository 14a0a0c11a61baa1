"""
Core Module
============

This module provides the configuration, error taxonomy and logging setup
shared by the equation system packages.

Classes
-------
EquationSystemCreationParameters
    Options of the AC equation system creation.
AsymmetricalParameters
    Numerical thresholds of the sequence domain extension.
DerivativeStrategy
    Full or fast decoupled term derivatives.
EquationSystemError
    Root of the equation system exceptions.

Functions
---------
setup_logging
    Configure console logging for scripts.

The NetworkState snapshot lives in ``core.network_state``.
"""

from core.config import AsymmetricalParameters, DerivativeStrategy, EquationSystemCreationParameters
from core.exceptions import (
    EquationSystemError,
    SingularityError,
    StructuralError,
    UnknownVariableError,
    UnsupportedConfigurationError,
)
from core.logging_config import setup_logging

__all__ = [
    "AsymmetricalParameters",
    "DerivativeStrategy",
    "EquationSystemCreationParameters",
    "EquationSystemError",
    "SingularityError",
    "StructuralError",
    "UnknownVariableError",
    "UnsupportedConfigurationError",
    "setup_logging",
]
