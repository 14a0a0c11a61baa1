"""
Exceptions Module
=================

This module defines the error taxonomy of the equation system.

All errors derive from EquationSystemError so that an outer solver can treat
any failed build or control-mode update as a run-level failure with a single
``except`` clause. The secondary bases (KeyError, ArithmeticError,
NotImplementedError) keep the errors catchable by generic Python handlers.

Notes
-----
None of these errors is recoverable inside the equation system: construction
and control-mode updates surface them to the caller immediately.

Author: Manuel Schwenke
Date: 2025-02-05
"""


class EquationSystemError(RuntimeError):
    """Root of every error raised while building or updating an equation system."""


class StructuralError(EquationSystemError):
    """
    Structural invariant violation.

    Raised when the system is not square, when two independent angle
    references are found across a zero-impedance branch, or when a merged
    dependent voltage control is updated directly.
    """


class UnknownVariableError(EquationSystemError, KeyError):
    """A derivative was requested for a variable the term does not depend on."""

    def __init__(self, variable, term_name: str) -> None:
        self.variable = variable
        self.term_name = term_name
        super().__init__(f"Unknown variable {variable} for term {term_name}")

    def __str__(self) -> str:
        return self.args[0]


class SingularityError(EquationSystemError, ArithmeticError):
    """A sequence-domain inversion hit a (near) zero phase voltage."""


class UnsupportedConfigurationError(EquationSystemError, NotImplementedError):
    """The network configuration is recognised but not handled by the equation system."""
