"""
Equation System Module
======================

Owner of the equations, variables, state vector and index of one network.

The EquationSystem is the single mutation point of the equation structure:
equations are created (idempotently) and removed through it, and every
structural change is fanned out to its listeners, the first of which is the
row index.

Author: Manuel Schwenke
Date: 2025-02-05
"""

import logging
from typing import Dict, List, Optional, Tuple, Union

from core.exceptions import StructuralError
from equations.equation import AcEquationType, Equation
from equations.index import EquationSystemIndex
from equations.listeners import EquationEventType, EquationSystemListener, EquationTermEventType
from equations.state_vector import StateVector
from equations.variable import ElementType, VariableSet

logger = logging.getLogger(__name__)


class EquationSystem:
    """
    Equations, variables and state of an AC network.

    Attributes
    ----------
    variable_set : VariableSet
        Interning factory of the variables.
    state_vector : StateVector
        Current values of the variables, indexed by variable row.
    index : EquationSystemIndex
        Row assignment of the active equations and variables.
    listeners : List[EquationSystemListener]
        Receivers of structural changes (the index comes first).
    """

    def __init__(self) -> None:
        self.variable_set = VariableSet()
        self.state_vector = StateVector()
        self.index = EquationSystemIndex()
        self.listeners: List[EquationSystemListener] = [self.index]
        self._equations: Dict[Tuple[int, AcEquationType], Equation] = {}
        self._equations_by_element: Dict[Tuple[ElementType, int], List[Equation]] = {}
        self._terms_by_element: Dict[Tuple[ElementType, int], List] = {}

    # ═══════════════════════════════════════════════════════════════════════
    #   Listeners
    # ═══════════════════════════════════════════════════════════════════════

    def add_listener(self, listener: EquationSystemListener) -> None:
        self.listeners.append(listener)

    def remove_listener(self, listener: EquationSystemListener) -> None:
        self.listeners.remove(listener)

    def notify_equation_change(self, equation: Equation, event_type: EquationEventType) -> None:
        for listener in self.listeners:
            listener.on_equation_change(equation, event_type)

    def notify_equation_term_change(self, term, event_type: EquationTermEventType) -> None:
        if event_type is EquationTermEventType.EQUATION_TERM_ADDED:
            self._register_term(term)
        elif event_type is EquationTermEventType.EQUATION_TERM_REMOVED:
            self._unregister_term(term)
        for listener in self.listeners:
            listener.on_equation_term_change(term, event_type)

    def _register_term(self, term) -> None:
        self._terms_by_element.setdefault((term.element_type, term.element_num), []).append(term)

    def _unregister_term(self, term) -> None:
        terms = self._terms_by_element.get((term.element_type, term.element_num))
        if terms is not None and term in terms:
            terms.remove(term)

    # ═══════════════════════════════════════════════════════════════════════
    #   Equations
    # ═══════════════════════════════════════════════════════════════════════

    def create_equation(self, element: Union[int, object], equation_type: AcEquationType) -> Equation:
        """
        Return the equation of a subject, creating it on first request.

        Parameters
        ----------
        element : int or network element
            Subject element number, or an element exposing ``num`` and
            ``disabled``. A new equation on a disabled element starts inactive.
        equation_type : AcEquationType
            Quantity the equation constrains.

        Returns
        -------
        Equation
            The existing or newly created equation.
        """
        if isinstance(element, int):
            num, disabled = element, False
        else:
            num, disabled = element.num, element.disabled
        key = (num, equation_type)
        equation = self._equations.get(key)
        if equation is None:
            equation = Equation(num, equation_type, self)
            equation._active = not disabled
            self._equations[key] = equation
            self._equations_by_element.setdefault((equation_type.element_type, num), []).append(equation)
            self.notify_equation_change(equation, EquationEventType.EQUATION_CREATED)
        return equation

    def get_equation(self, num: int, equation_type: AcEquationType) -> Optional[Equation]:
        """Return the equation or None if it was never created (or was removed)."""
        return self._equations.get((num, equation_type))

    def has_equation(self, num: int, equation_type: AcEquationType) -> bool:
        return (num, equation_type) in self._equations

    def remove_equation(self, num: int, equation_type: AcEquationType) -> Optional[Equation]:
        """
        Detach an equation from the system.

        The equation is deactivated, flagged as removed and listeners receive
        an EQUATION_REMOVED event. The index is rebuilt lazily.

        Returns
        -------
        Equation or None
            The removed equation, None if it did not exist.
        """
        equation = self._equations.pop((num, equation_type), None)
        if equation is None:
            return None
        self._equations_by_element[(equation_type.element_type, num)].remove(equation)
        equation.active = False
        equation.removed = True
        for term in equation.terms:
            self._unregister_term(term)
        self.notify_equation_change(equation, EquationEventType.EQUATION_REMOVED)
        return equation

    @property
    def equations(self) -> List[Equation]:
        return list(self._equations.values())

    def get_equations(self, element_type: ElementType, num: int) -> List[Equation]:
        """Equations whose subject is the given element."""
        return list(self._equations_by_element.get((element_type, num), []))

    def get_equation_terms(self, element_type: ElementType, num: int) -> List:
        """Terms attached to the given element, in equations or attached directly."""
        return list(self._terms_by_element.get((element_type, num), []))

    def attach(self, term):
        """
        Bind a term that is not part of any equation (e.g. a branch current).

        The term reads from the system state vector and is reachable through
        get_equation_terms.
        """
        term.attach(self.state_vector, self)
        self._register_term(term)
        return term

    # ═══════════════════════════════════════════════════════════════════════
    #   Diagnostics
    # ═══════════════════════════════════════════════════════════════════════

    def check_squareness(self) -> None:
        """
        Raise if the number of active equations differs from the number of unknowns.

        Raises
        ------
        StructuralError
            If the system is not square.
        """
        row_count = self.index.row_count
        column_count = self.index.column_count
        if row_count != column_count:
            raise StructuralError(
                f"Equation system is not square: {row_count} equations, {column_count} variables"
            )

    def write_to_string(self, write_inactive_equations: bool = False) -> str:
        lines = []
        for equation in sorted(self._equations.values()):
            if write_inactive_equations or equation.active:
                prefix = "" if equation.active else "[inactive] "
                lines.append(prefix + equation.write())
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (f"EquationSystem(equations={len(self._equations)}, "
                f"variables={len(self.variable_set)})")
