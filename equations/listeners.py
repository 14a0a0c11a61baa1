"""
Listeners Module
================

Observer interfaces of the equation system.

Two independent notification channels exist:

- structural: equation creation/removal/activation and term
  addition/removal/activation (EquationSystemListener), followed by a lazy
  re-indexing (EquationSystemIndexListener);
- numerical: every write to the state vector (StateVectorListener).

Structural events are rare (one per control-mode switch), numerical events
happen once per Newton-Raphson iteration. Listener callbacks run
synchronously and must be idempotent.

Author: Manuel Schwenke
Date: 2025-02-05
"""

from enum import Enum


class EquationEventType(Enum):
    EQUATION_CREATED = 0
    EQUATION_REMOVED = 1
    EQUATION_ACTIVATED = 2
    EQUATION_DEACTIVATED = 3


class EquationTermEventType(Enum):
    EQUATION_TERM_ADDED = 0
    EQUATION_TERM_REMOVED = 1
    EQUATION_TERM_ACTIVATED = 2
    EQUATION_TERM_DEACTIVATED = 3


class EquationSystemListener:
    """Receives structural changes of an equation system."""

    def on_equation_change(self, equation, event_type: EquationEventType) -> None:
        pass

    def on_equation_term_change(self, term, event_type: EquationTermEventType) -> None:
        pass


class EquationSystemIndexListener:
    """Receives row re-assignments of the equation system index."""

    def on_equations_index_order_changed(self) -> None:
        pass

    def on_variables_index_order_changed(self) -> None:
        pass


class StateVectorListener:
    """Receives writes to the state vector."""

    def on_state_update(self) -> None:
        pass
