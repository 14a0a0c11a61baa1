"""
Equation Module
===============

Equations of the AC equation system.

An Equation is identified by (element number, equation type) and sums a list
of EquationTerm objects. Its residual is ``eval() - target``, the target being
provided by the target vector of the solver.

Author: Manuel Schwenke
Date: 2025-02-05
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, List, Tuple

from core.exceptions import StructuralError
from equations.listeners import EquationEventType, EquationTermEventType
from equations.variable import ElementType, Variable


class AcEquationType(Enum):
    """
    Kinds of equations.

    The enum value is the ordinal used to order equations of the same element.
    """
    BUS_TARGET_P = 0
    BUS_TARGET_Q = 1
    BUS_TARGET_V = 2
    BUS_TARGET_PHI = 3
    BUS_DISTR_SLACK_P = 4
    SHUNT_TARGET_B = 5
    BRANCH_TARGET_P = 6
    BRANCH_TARGET_Q = 7
    BRANCH_TARGET_ALPHA1 = 8
    BRANCH_TARGET_RHO1 = 9
    DISTR_Q = 10
    ZERO_V = 11
    ZERO_PHI = 12
    DISTR_RHO = 13
    DISTR_SHUNT_B = 14
    DUMMY_TARGET_P = 15
    DUMMY_TARGET_Q = 16
    BUS_TARGET_IX_ZERO = 17
    BUS_TARGET_IY_ZERO = 18
    BUS_TARGET_IX_NEGATIVE = 19
    BUS_TARGET_IY_NEGATIVE = 20

    @property
    def element_type(self) -> ElementType:
        return _EQUATION_ELEMENT_TYPES.get(self, ElementType.BUS)

    def is_active_power_like(self) -> bool:
        """True for equations grouped with active power in a P-theta / Q-V split."""
        return self in _ACTIVE_POWER_LIKE_EQUATIONS


_EQUATION_ELEMENT_TYPES = {
    AcEquationType.SHUNT_TARGET_B: ElementType.SHUNT_COMPENSATOR,
    AcEquationType.BRANCH_TARGET_P: ElementType.BRANCH,
    AcEquationType.BRANCH_TARGET_Q: ElementType.BRANCH,
    AcEquationType.BRANCH_TARGET_ALPHA1: ElementType.BRANCH,
    AcEquationType.BRANCH_TARGET_RHO1: ElementType.BRANCH,
    AcEquationType.ZERO_V: ElementType.BRANCH,
    AcEquationType.ZERO_PHI: ElementType.BRANCH,
    AcEquationType.DISTR_RHO: ElementType.BRANCH,
    AcEquationType.DISTR_SHUNT_B: ElementType.SHUNT_COMPENSATOR,
    AcEquationType.DUMMY_TARGET_P: ElementType.BRANCH,
    AcEquationType.DUMMY_TARGET_Q: ElementType.BRANCH,
}

_ACTIVE_POWER_LIKE_EQUATIONS = frozenset({
    AcEquationType.BUS_TARGET_P,
    AcEquationType.BUS_TARGET_PHI,
    AcEquationType.BUS_DISTR_SLACK_P,
    AcEquationType.BRANCH_TARGET_P,
    AcEquationType.BRANCH_TARGET_ALPHA1,
    AcEquationType.ZERO_PHI,
    AcEquationType.DUMMY_TARGET_P,
    AcEquationType.BUS_TARGET_IX_ZERO,
    AcEquationType.BUS_TARGET_IX_NEGATIVE,
})


class Equation:
    """
    Named sum of equation terms attached to one (element, quantity) subject.

    Attributes
    ----------
    element_num : int
        Number of the subject element.
    type : AcEquationType
        Quantity the equation constrains.
    equation_system : EquationSystem
        Owning system, notified of every structural change.
    row : int
        Row in the residual vector, -1 while inactive.
    removed : bool
        True once the equation was removed from its system.
    """

    def __init__(self, element_num: int, equation_type: AcEquationType, equation_system=None) -> None:
        self.element_num = element_num
        self.type = equation_type
        self.equation_system = equation_system
        self.row = -1
        self.removed = False
        self._active = True
        self._terms: List = []

    @property
    def element_type(self) -> ElementType:
        return self.type.element_type

    @property
    def name(self) -> str:
        """Solver-facing label, e.g. ``BUS_TARGET_P(3)``."""
        return f"{self.type.name}({self.element_num})"

    def sort_key(self) -> Tuple[int, int]:
        return self.element_num, self.type.value

    def __lt__(self, other: "Equation") -> bool:
        return self.sort_key() < other.sort_key()

    # ═══════════════════════════════════════════════════════════════════════
    #   Activation
    # ═══════════════════════════════════════════════════════════════════════

    @property
    def active(self) -> bool:
        return self._active

    @active.setter
    def active(self, active: bool) -> None:
        if active == self._active:
            return
        self._active = active
        if self.equation_system is not None:
            event_type = EquationEventType.EQUATION_ACTIVATED if active \
                else EquationEventType.EQUATION_DEACTIVATED
            self.equation_system.notify_equation_change(self, event_type)

    # ═══════════════════════════════════════════════════════════════════════
    #   Terms
    # ═══════════════════════════════════════════════════════════════════════

    @property
    def terms(self) -> List:
        return list(self._terms)

    def add_term(self, term) -> "Equation":
        """
        Append a term to the equation.

        Raises
        ------
        StructuralError
            If the term already belongs to another equation.
        """
        if self.removed:
            raise StructuralError(f"Cannot add a term to removed equation {self.name}")
        term.set_equation(self)
        self._terms.append(term)
        if self.equation_system is not None:
            term.attach(self.equation_system.state_vector)
            self.equation_system.notify_equation_term_change(term, EquationTermEventType.EQUATION_TERM_ADDED)
        return self

    def add_terms(self, terms: Iterable) -> "Equation":
        for term in terms:
            self.add_term(term)
        return self

    def remove_term(self, term) -> "Equation":
        self._terms.remove(term)
        if self.equation_system is not None:
            self.equation_system.notify_equation_term_change(term, EquationTermEventType.EQUATION_TERM_REMOVED)
        term.set_equation(None)
        return self

    def leaf_terms(self) -> List:
        """Terms with every multiplier wrapper unfolded."""
        leaves = []
        stack = list(reversed(self._terms))
        while stack:
            term = stack.pop()
            if term.children:
                stack.extend(reversed(term.children))
            else:
                leaves.append(term)
        return leaves

    def find_variables(self) -> List[Variable]:
        """Distinct variables of the active terms, in term order."""
        seen = set()
        variables = []
        for term in self._terms:
            if not term.active:
                continue
            for variable in term.variables:
                if id(variable) not in seen:
                    seen.add(id(variable))
                    variables.append(variable)
        return variables

    # ═══════════════════════════════════════════════════════════════════════
    #   Evaluation
    # ═══════════════════════════════════════════════════════════════════════

    def eval(self) -> float:
        """Sum of the active terms."""
        value = 0.0
        for term in self._terms:
            if term.active:
                value += term.eval()
        return value

    def der(self, variable: Variable) -> float:
        """Sum of the derivatives of the active terms depending on ``variable``."""
        value = 0.0
        for term in self._terms:
            if term.active and any(v is variable for v in term.variables):
                value += term.der(variable)
        return value

    def rhs(self) -> float:
        value = 0.0
        for term in self._terms:
            if term.active and term.has_rhs():
                value += term.rhs()
        return value

    def write(self, write_inactive_terms: bool = False) -> str:
        terms = [t for t in self._terms if write_inactive_terms or t.active]
        body = " + ".join(t.write() for t in terms) if terms else "0"
        return f"{self.name} = {body}"

    def __repr__(self) -> str:
        return f"Equation({self.name}, active={self._active}, row={self.row})"
