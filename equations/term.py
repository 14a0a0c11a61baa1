"""
Equation Term Module
====================

Building blocks of equations.

An EquationTerm evaluates a scalar value and its partial derivatives with
respect to a fixed list of variables it declares. Terms are summed by an
Equation; a term contributes only when both the term and its equation are
active.

Classes
-------
EquationTerm
    Abstract base of all terms.
AbstractElementEquationTerm
    Base of terms attached to one network element (bus, branch, shunt).
VariableEquationTerm
    Identity term whose value is a single variable.
MultipliedEquationTerm
    Wrapper scaling another term by a constant or by a dynamic supplier.

Notes
-----
The multiplier of a MultipliedEquationTerm may be a callable; it is called on
every ``eval``/``der``/``rhs`` so that shares such as 1/n_controllers follow
topology changes without rewiring the equations.

Author: Manuel Schwenke
Date: 2025-02-05
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Union

import numpy as np
from numpy.typing import NDArray

from core.exceptions import StructuralError, UnknownVariableError
from equations.listeners import EquationTermEventType
from equations.variable import ElementType, Variable


class EquationTerm(ABC):
    """
    Abstract scalar term of an equation.

    Attributes
    ----------
    equation : Equation or None
        Owning equation, None for terms attached directly to the system.
    """

    def __init__(self, active: bool = True) -> None:
        self._active = active
        self.equation = None
        self.parent: Optional["EquationTerm"] = None
        self._equation_system = None
        self._state_vector = None

    # ═══════════════════════════════════════════════════════════════════════
    #   Identity
    # ═══════════════════════════════════════════════════════════════════════

    @property
    @abstractmethod
    def element_type(self) -> ElementType:
        ...

    @property
    @abstractmethod
    def element_num(self) -> int:
        ...

    @property
    @abstractmethod
    def variables(self) -> List[Variable]:
        """Variables this term depends on."""

    @property
    def name(self) -> str:
        return type(self).__name__

    @property
    def children(self) -> List["EquationTerm"]:
        """Wrapped terms, empty for leaf terms."""
        return []

    # ═══════════════════════════════════════════════════════════════════════
    #   Evaluation
    # ═══════════════════════════════════════════════════════════════════════

    @abstractmethod
    def eval(self) -> float:
        """Value of the term at the current state."""

    @abstractmethod
    def der(self, variable: Variable) -> float:
        """
        Partial derivative of the term with respect to a declared variable.

        Raises
        ------
        UnknownVariableError
            If the variable is not one of ``self.variables``.
        """

    def has_rhs(self) -> bool:
        return False

    def rhs(self) -> float:
        """Constant part moved to the right-hand side of the equation."""
        return 0.0

    def calculate_sensi(self, dx: NDArray[np.float64], column: Optional[int] = None) -> float:
        """
        Linear sensitivity of the term for a state perturbation.

        Parameters
        ----------
        dx : NDArray[np.float64]
            State perturbation indexed by variable row, either a vector or a
            matrix whose columns are independent perturbations.
        column : int, optional
            Column of ``dx`` to use when ``dx`` is a matrix.

        Returns
        -------
        float
            ``sum(der(v) * dx[v.row])`` over the active variables of the term.
        """
        sensi = 0.0
        for variable in self.variables:
            if variable.row < 0:
                continue
            value = dx[variable.row] if column is None else dx[variable.row, column]
            sensi += self.der(variable) * value
        return sensi

    def unknown_variable(self, variable: Variable) -> UnknownVariableError:
        return UnknownVariableError(variable, self.name)

    # ═══════════════════════════════════════════════════════════════════════
    #   Wiring
    # ═══════════════════════════════════════════════════════════════════════

    @property
    def active(self) -> bool:
        return self._active

    @active.setter
    def active(self, active: bool) -> None:
        if active == self._active:
            return
        self._active = active
        # wrappers share the activity of the wrapped term, listeners see the outermost one
        root = self.root()
        equation_system = root.equation_system
        if equation_system is not None:
            event_type = EquationTermEventType.EQUATION_TERM_ACTIVATED if active \
                else EquationTermEventType.EQUATION_TERM_DEACTIVATED
            equation_system.notify_equation_term_change(root, event_type)

    def root(self) -> "EquationTerm":
        term = self
        while term.parent is not None:
            term = term.parent
        return term

    @property
    def equation_system(self):
        if self.equation is not None:
            return self.equation.equation_system
        if self.parent is not None:
            return self.parent.equation_system
        return self._equation_system

    @property
    def state_vector(self):
        return self._state_vector

    def attach(self, state_vector, equation_system=None) -> None:
        """Bind the term (and its children) to the state vector it reads from."""
        self._state_vector = state_vector
        if equation_system is not None:
            self._equation_system = equation_system
        for child in self.children:
            child.attach(state_vector)

    def set_equation(self, equation) -> None:
        if self.equation is not None and equation is not None and self.equation is not equation:
            raise StructuralError(f"Term {self.name} is already part of equation {self.equation.name}")
        self.equation = equation

    def sv(self, variable: Variable) -> float:
        """Current value of a variable."""
        return self._state_vector[variable.row]

    # ═══════════════════════════════════════════════════════════════════════
    #   Algebra
    # ═══════════════════════════════════════════════════════════════════════

    def multiply(self, multiplier: Union[float, Callable[[], float]]) -> "MultipliedEquationTerm":
        return MultipliedEquationTerm(self, multiplier)

    def minus(self) -> "MultipliedEquationTerm":
        return MultipliedEquationTerm(self, -1.0)

    def write(self) -> str:
        variables = ", ".join(v.write() for v in self.variables)
        return f"{self.name}({variables})"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(element_num={self.element_num}, active={self._active})"


class AbstractElementEquationTerm(EquationTerm):
    """Term attached to a single network element."""

    def __init__(self, element, active: bool = True) -> None:
        super().__init__(active)
        self.element = element

    @property
    def element_type(self) -> ElementType:
        return self.element.element_type

    @property
    def element_num(self) -> int:
        return self.element.num


class VariableEquationTerm(EquationTerm):
    """Term whose value is a single variable, with unit derivative."""

    def __init__(self, variable: Variable) -> None:
        super().__init__()
        self.variable = variable

    @property
    def element_type(self) -> ElementType:
        return self.variable.element_type

    @property
    def element_num(self) -> int:
        return self.variable.element_num

    @property
    def variables(self) -> List[Variable]:
        return [self.variable]

    def eval(self) -> float:
        return self.sv(self.variable)

    def der(self, variable: Variable) -> float:
        if variable is not self.variable:
            raise self.unknown_variable(variable)
        return 1.0

    def write(self) -> str:
        return self.variable.write()


class MultipliedEquationTerm(EquationTerm):
    """
    Term scaled by a constant or a dynamically evaluated multiplier.

    Attributes
    ----------
    term : EquationTerm
        Wrapped term.
    multiplier : float or Callable[[], float]
        Scale factor; a callable is re-evaluated on every use.
    """

    def __init__(self, term: EquationTerm,
                 multiplier: Union[float, Callable[[], float]]) -> None:
        super().__init__()
        self.term = term
        self.multiplier = multiplier
        term.parent = self

    @property
    def active(self) -> bool:
        return self.term.active

    @active.setter
    def active(self, active: bool) -> None:
        self.term.active = active

    def get_multiplier(self) -> float:
        if callable(self.multiplier):
            return self.multiplier()
        return self.multiplier

    @property
    def element_type(self) -> ElementType:
        return self.term.element_type

    @property
    def element_num(self) -> int:
        return self.term.element_num

    @property
    def variables(self) -> List[Variable]:
        return self.term.variables

    @property
    def name(self) -> str:
        return f"multiplied({self.term.name})"

    @property
    def children(self) -> List[EquationTerm]:
        return [self.term]

    def eval(self) -> float:
        return self.get_multiplier() * self.term.eval()

    def der(self, variable: Variable) -> float:
        return self.get_multiplier() * self.term.der(variable)

    def has_rhs(self) -> bool:
        return self.term.has_rhs()

    def rhs(self) -> float:
        return self.get_multiplier() * self.term.rhs()

    def write(self) -> str:
        return f"{self.get_multiplier():g} * {self.term.write()}"
