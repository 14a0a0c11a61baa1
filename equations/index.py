"""
Equation System Index Module
============================

Bijective mapping between active equations/variables and dense row numbers.

The index listens to the structural channel of its equation system and keeps

- the set of active equations,
- a reference count per variable, counting the active terms of active
  equations that depend on it.

Rows are not reassigned on every event. The index is marked invalid and the
rows are recomputed lazily on the next query, in a deterministic order:
equations and variables are sorted by (element number, type ordinal). After
a rebuild, index listeners are notified so that cached row arrays can be
refreshed.

Author: Manuel Schwenke
Date: 2025-02-05
"""

import logging
from dataclasses import dataclass
from typing import Dict, List

from equations.equation import Equation
from equations.listeners import (
    EquationEventType,
    EquationSystemIndexListener,
    EquationSystemListener,
    EquationTermEventType,
)
from equations.variable import Variable

logger = logging.getLogger(__name__)


@dataclass
class IndexSeparation:
    """
    Split of the sorted equations and variables for a P-theta / Q-V decoupled solver.

    Attributes
    ----------
    angle_equations : List[Equation]
        Active power like equations, in index order.
    magnitude_equations : List[Equation]
        Reactive power like equations, in index order.
    angle_variables : List[Variable]
        Angle like variables, in index order.
    magnitude_variables : List[Variable]
        Magnitude like variables, in index order.
    """
    angle_equations: List[Equation]
    magnitude_equations: List[Equation]
    angle_variables: List[Variable]
    magnitude_variables: List[Variable]


class EquationSystemIndex(EquationSystemListener):
    """
    Lazily rebuilt row index of an equation system.

    Attributes
    ----------
    listeners : List[EquationSystemIndexListener]
        Objects notified after a row reassignment.
    """

    def __init__(self) -> None:
        self._equations_to_solve: Dict[int, Equation] = {}
        self._variables_ref_count: Dict[int, int] = {}
        self._variables_to_find: Dict[int, Variable] = {}
        self._sorted_equations: List[Equation] = []
        self._sorted_variables: List[Variable] = []
        self._equations_valid = False
        self._variables_valid = False
        self.listeners: List[EquationSystemIndexListener] = []

    def add_listener(self, listener: EquationSystemIndexListener) -> None:
        self.listeners.append(listener)

    def remove_listener(self, listener: EquationSystemIndexListener) -> None:
        self.listeners.remove(listener)

    # ═══════════════════════════════════════════════════════════════════════
    #   Bookkeeping
    # ═══════════════════════════════════════════════════════════════════════

    def _add_variable(self, variable: Variable) -> None:
        key = id(variable)
        count = self._variables_ref_count.get(key, 0)
        if count == 0:
            self._variables_to_find[key] = variable
            self._variables_valid = False
        self._variables_ref_count[key] = count + 1

    def _remove_variable(self, variable: Variable) -> None:
        key = id(variable)
        count = self._variables_ref_count.get(key, 0)
        if count <= 0:
            return
        if count == 1:
            del self._variables_ref_count[key]
            del self._variables_to_find[key]
            self._variables_valid = False
        else:
            self._variables_ref_count[key] = count - 1

    def _add_term(self, term) -> None:
        if term.active:
            for variable in term.variables:
                self._add_variable(variable)

    def _remove_term(self, term) -> None:
        if term.active:
            for variable in term.variables:
                self._remove_variable(variable)

    def _add_equation(self, equation: Equation) -> None:
        self._equations_to_solve[id(equation)] = equation
        self._equations_valid = False
        for term in equation.terms:
            self._add_term(term)

    def _remove_equation(self, equation: Equation) -> None:
        if self._equations_to_solve.pop(id(equation), None) is None:
            return
        self._equations_valid = False
        for term in equation.terms:
            self._remove_term(term)

    def on_equation_change(self, equation: Equation, event_type: EquationEventType) -> None:
        if event_type is EquationEventType.EQUATION_CREATED:
            if equation.active:
                self._add_equation(equation)
        elif event_type is EquationEventType.EQUATION_ACTIVATED:
            self._add_equation(equation)
        elif event_type is EquationEventType.EQUATION_DEACTIVATED:
            self._remove_equation(equation)
        elif event_type is EquationEventType.EQUATION_REMOVED:
            # the system deactivates an equation before removing it
            self._remove_equation(equation)

    def on_equation_term_change(self, term, event_type: EquationTermEventType) -> None:
        equation = term.equation
        if equation is None or not equation.active:
            return
        if event_type is EquationTermEventType.EQUATION_TERM_ADDED:
            self._add_term(term)
        elif event_type is EquationTermEventType.EQUATION_TERM_REMOVED:
            self._remove_term(term)
        elif event_type is EquationTermEventType.EQUATION_TERM_ACTIVATED:
            for variable in term.variables:
                self._add_variable(variable)
        elif event_type is EquationTermEventType.EQUATION_TERM_DEACTIVATED:
            for variable in term.variables:
                self._remove_variable(variable)

    # ═══════════════════════════════════════════════════════════════════════
    #   Rows
    # ═══════════════════════════════════════════════════════════════════════

    def update(self) -> None:
        """Reassign rows if a structural change happened since the last query."""
        if not self._equations_valid:
            for equation in self._sorted_equations:
                equation.row = -1
            self._sorted_equations = sorted(self._equations_to_solve.values())
            for row, equation in enumerate(self._sorted_equations):
                equation.row = row
            self._equations_valid = True
            logger.debug("Equations index rebuilt: %d equations", len(self._sorted_equations))
            for listener in self.listeners:
                listener.on_equations_index_order_changed()

        if not self._variables_valid:
            for variable in self._sorted_variables:
                variable.row = -1
            self._sorted_variables = sorted(self._variables_to_find.values())
            for row, variable in enumerate(self._sorted_variables):
                variable.row = row
            self._variables_valid = True
            logger.debug("Variables index rebuilt: %d variables", len(self._sorted_variables))
            for listener in self.listeners:
                listener.on_variables_index_order_changed()

    @property
    def valid(self) -> bool:
        return self._equations_valid and self._variables_valid

    def sorted_equations_to_solve(self) -> List[Equation]:
        self.update()
        return list(self._sorted_equations)

    def sorted_variables_to_find(self) -> List[Variable]:
        self.update()
        return list(self._sorted_variables)

    @property
    def row_count(self) -> int:
        self.update()
        return len(self._sorted_equations)

    @property
    def column_count(self) -> int:
        self.update()
        return len(self._sorted_variables)

    def update_with_separation(self) -> IndexSeparation:
        """
        Update the index and split it for a fast-decoupled solver.

        Rows are not changed: each list keeps the global index order.
        """
        self.update()
        return IndexSeparation(
            angle_equations=[eq for eq in self._sorted_equations if eq.type.is_active_power_like()],
            magnitude_equations=[eq for eq in self._sorted_equations if not eq.type.is_active_power_like()],
            angle_variables=[v for v in self._sorted_variables if v.type.is_angle_like()],
            magnitude_variables=[v for v in self._sorted_variables if not v.type.is_angle_like()],
        )
