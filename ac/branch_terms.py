"""
AC Branch Equation Terms Module
===============================

Equation terms for the flows of a branch.

Closed branch terms depend on the voltages of both buses and, optionally, on
the tap ratio r1 and phase shift a1 of the branch. When r1 (or a1) is not
derived, or its variable is outside the unknown set, the pi-model value is
used in the same formula. Open branch terms (branch disconnected at one side)
depend on the voltage of the connected bus only.

Closed terms read their values from the shared AcBranchVector when a network
vector is given (vectorized mode) and evaluate the formulas of ``ac.flows``
directly otherwise.

Author: Manuel Schwenke
Date: 2025-02-05
"""

from __future__ import annotations

from typing import List, Optional

from ac import flows
from core.config import DerivativeStrategy
from core.exceptions import UnsupportedConfigurationError
from equations.term import AbstractElementEquationTerm
from equations.variable import AcVariableType, Variable


class AbstractBranchAcFlowEquationTerm(AbstractElementEquationTerm):
    """
    Base of branch terms.

    Attributes
    ----------
    derivative_strategy : DerivativeStrategy
        FULL keeps every partial derivative; FAST_DECOUPLED drops voltage
        derivatives of active power terms and angle derivatives of reactive
        power terms.
    """

    active_power_like: Optional[bool] = None

    def __init__(self, branch, derivative_strategy: DerivativeStrategy = DerivativeStrategy.FULL) -> None:
        super().__init__(branch)
        self.derivative_strategy = derivative_strategy
        self._variables: List[Variable] = []

    @property
    def branch(self):
        return self.element

    @property
    def variables(self) -> List[Variable]:
        return self._variables

    def value_of(self, variable: Optional[Variable], default: float) -> float:
        """State value of a variable, ``default`` if it is outside the unknown set."""
        if variable is None or variable.row < 0:
            return default
        return self.sv(variable)

    def is_decoupled_zero(self, partial: str) -> bool:
        if self.derivative_strategy is not DerivativeStrategy.FAST_DECOUPLED or self.active_power_like is None:
            return False
        if self.active_power_like:
            return partial in ("dv1", "dv2", "dr1")
        return partial in ("dph1", "dph2", "da1")


# =============================================================================
# Closed branch
# =============================================================================

class AbstractClosedBranchAcFlowEquationTerm(AbstractBranchAcFlowEquationTerm):
    """
    Base of the flow terms of a branch connected at both sides.

    Parameters
    ----------
    branch : LfBranch
        Branch of the flow.
    bus1, bus2 : LfBus
        Terminal buses.
    variable_set : VariableSet
        Factory of the variables.
    derive_a1, derive_r1 : bool
        Whether a1 and r1 are variables of the term.
    network_vector : AcNetworkVector, optional
        Shared cache used in vectorized mode.
    """

    quantity: str = None

    def __init__(self, branch, bus1, bus2, variable_set, derive_a1: bool = False, derive_r1: bool = False,
                 network_vector=None, derivative_strategy: DerivativeStrategy = DerivativeStrategy.FULL) -> None:
        super().__init__(branch, derivative_strategy)
        self.bus1 = bus1
        self.bus2 = bus2
        self.network_vector = network_vector
        self.v1_var = variable_set.get_or_create(bus1.num, AcVariableType.BUS_V)
        self.v2_var = variable_set.get_or_create(bus2.num, AcVariableType.BUS_V)
        self.ph1_var = variable_set.get_or_create(bus1.num, AcVariableType.BUS_PHI)
        self.ph2_var = variable_set.get_or_create(bus2.num, AcVariableType.BUS_PHI)
        self.a1_var = variable_set.get_or_create(branch.num, AcVariableType.BRANCH_ALPHA1) if derive_a1 else None
        self.r1_var = variable_set.get_or_create(branch.num, AcVariableType.BRANCH_RHO1) if derive_r1 else None
        self._variables = [self.v1_var, self.v2_var, self.ph1_var, self.ph2_var]
        if self.a1_var is not None:
            self._variables.append(self.a1_var)
        if self.r1_var is not None:
            self._variables.append(self.r1_var)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def v1(self) -> float:
        return self.value_of(self.v1_var, self.bus1.v)

    def v2(self) -> float:
        return self.value_of(self.v2_var, self.bus2.v)

    def ph1(self) -> float:
        return self.value_of(self.ph1_var, self.bus1.angle)

    def ph2(self) -> float:
        return self.value_of(self.ph2_var, self.bus2.angle)

    def r1(self) -> float:
        return self.value_of(self.r1_var, self.branch.pi_model.r1)

    def a1(self) -> float:
        return self.value_of(self.a1_var, self.branch.pi_model.a1)

    def flow(self) -> flows.BranchFlow:
        """Scalar evaluation of the formula at the current state."""
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def _partial_name(self, variable: Variable) -> str:
        if variable is self.v1_var:
            return "dv1"
        if variable is self.v2_var:
            return "dv2"
        if variable is self.ph1_var:
            return "dph1"
        if variable is self.ph2_var:
            return "dph2"
        if variable is self.a1_var and variable is not None:
            return "da1"
        if variable is self.r1_var and variable is not None:
            return "dr1"
        raise self.unknown_variable(variable)

    def eval(self) -> float:
        if self.network_vector is not None:
            self.network_vector.update_if_needed()
            return self.network_vector.branch_vector.get(self.quantity, self.branch.num)
        return float(self.flow().value)

    def der(self, variable: Variable) -> float:
        partial = self._partial_name(variable)
        if self.is_decoupled_zero(partial):
            return 0.0
        if self.network_vector is not None:
            self.network_vector.update_if_needed()
            return self.network_vector.branch_vector.get_partial(self.quantity, partial, self.branch.num)
        return float(getattr(self.flow(), partial))


class ClosedBranchSide1ActiveFlowEquationTerm(AbstractClosedBranchAcFlowEquationTerm):
    quantity = "p1"
    active_power_like = True

    def flow(self) -> flows.BranchFlow:
        pi = self.branch.pi_model
        return flows.closed_p1(pi.y, pi.ksi, pi.g1, self.v1(), self.ph1(), self.r1(), self.a1(),
                               self.v2(), self.ph2())


class ClosedBranchSide1ReactiveFlowEquationTerm(AbstractClosedBranchAcFlowEquationTerm):
    quantity = "q1"
    active_power_like = False

    def flow(self) -> flows.BranchFlow:
        pi = self.branch.pi_model
        return flows.closed_q1(pi.y, pi.ksi, pi.b1, self.v1(), self.ph1(), self.r1(), self.a1(),
                               self.v2(), self.ph2())


class ClosedBranchSide2ActiveFlowEquationTerm(AbstractClosedBranchAcFlowEquationTerm):
    quantity = "p2"
    active_power_like = True

    def flow(self) -> flows.BranchFlow:
        pi = self.branch.pi_model
        return flows.closed_p2(pi.y, pi.ksi, pi.g2, self.v1(), self.ph1(), self.r1(), self.a1(),
                               self.v2(), self.ph2())


class ClosedBranchSide2ReactiveFlowEquationTerm(AbstractClosedBranchAcFlowEquationTerm):
    quantity = "q2"
    active_power_like = False

    def flow(self) -> flows.BranchFlow:
        pi = self.branch.pi_model
        return flows.closed_q2(pi.y, pi.ksi, pi.b2, self.v1(), self.ph1(), self.r1(), self.a1(),
                               self.v2(), self.ph2())


class AbstractClosedBranchCurrentMagnitudeEquationTerm(AbstractClosedBranchAcFlowEquationTerm):
    """Current magnitude terms; the r1 derivative is not supported."""

    def der(self, variable: Variable) -> float:
        if variable is self.r1_var and variable is not None:
            raise UnsupportedConfigurationError(
                f"Derivative of current magnitude with respect to r1 is not supported (branch {self.branch.id})"
            )
        return super().der(variable)


class ClosedBranchSide1CurrentMagnitudeEquationTerm(AbstractClosedBranchCurrentMagnitudeEquationTerm):
    quantity = "i1"

    def flow(self) -> flows.BranchFlow:
        pi = self.branch.pi_model
        return flows.closed_i1(pi.y, pi.ksi, pi.g1, pi.b1, self.v1(), self.ph1(), self.r1(), self.a1(),
                               self.v2(), self.ph2())


class ClosedBranchSide2CurrentMagnitudeEquationTerm(AbstractClosedBranchCurrentMagnitudeEquationTerm):
    quantity = "i2"

    def flow(self) -> flows.BranchFlow:
        pi = self.branch.pi_model
        return flows.closed_i2(pi.y, pi.ksi, pi.g2, pi.b2, self.v1(), self.ph1(), self.r1(), self.a1(),
                               self.v2(), self.ph2())


# =============================================================================
# Branch open at one side
# =============================================================================

class AbstractOpenBranchAcFlowEquationTerm(AbstractBranchAcFlowEquationTerm):
    """Flow at the connected side of a branch open at the other side."""

    def __init__(self, branch, bus, variable_set,
                 derivative_strategy: DerivativeStrategy = DerivativeStrategy.FULL) -> None:
        super().__init__(branch, derivative_strategy)
        self.bus = bus
        self.v_var = variable_set.get_or_create(bus.num, AcVariableType.BUS_V)
        self._variables = [self.v_var]

    def v(self) -> float:
        return self.value_of(self.v_var, self.bus.v)

    def flow(self) -> flows.BranchFlow:
        raise NotImplementedError

    def _partial_name(self) -> str:
        raise NotImplementedError

    def eval(self) -> float:
        return float(self.flow().value)

    def der(self, variable: Variable) -> float:
        if variable is not self.v_var:
            raise self.unknown_variable(variable)
        partial = self._partial_name()
        if self.is_decoupled_zero(partial):
            return 0.0
        return float(getattr(self.flow(), partial))


class _OpenSide2Term(AbstractOpenBranchAcFlowEquationTerm):

    def _partial_name(self) -> str:
        return "dv1"


class _OpenSide1Term(AbstractOpenBranchAcFlowEquationTerm):

    def _partial_name(self) -> str:
        return "dv2"


class OpenBranchSide2ActiveFlowEquationTerm(_OpenSide2Term):
    """Active flow at side 1, side 2 open."""
    active_power_like = True

    def flow(self) -> flows.BranchFlow:
        pi = self.branch.pi_model
        return flows.open_side2_p1(pi.y, pi.ksi, pi.g1, pi.b1, pi.g2, pi.b2, self.v(), pi.r1)


class OpenBranchSide2ReactiveFlowEquationTerm(_OpenSide2Term):
    """Reactive flow at side 1, side 2 open."""
    active_power_like = False

    def flow(self) -> flows.BranchFlow:
        pi = self.branch.pi_model
        return flows.open_side2_q1(pi.y, pi.ksi, pi.g1, pi.b1, pi.g2, pi.b2, self.v(), pi.r1)


class OpenBranchSide2CurrentMagnitudeEquationTerm(_OpenSide2Term):
    """Current magnitude at side 1, side 2 open."""

    def flow(self) -> flows.BranchFlow:
        pi = self.branch.pi_model
        return flows.open_side2_i1(pi.y, pi.ksi, pi.g1, pi.b1, pi.g2, pi.b2, self.v(), pi.r1)


class OpenBranchSide1ActiveFlowEquationTerm(_OpenSide1Term):
    """Active flow at side 2, side 1 open."""
    active_power_like = True

    def flow(self) -> flows.BranchFlow:
        pi = self.branch.pi_model
        return flows.open_side1_p2(pi.y, pi.ksi, pi.g1, pi.b1, pi.g2, pi.b2, self.v())


class OpenBranchSide1ReactiveFlowEquationTerm(_OpenSide1Term):
    """Reactive flow at side 2, side 1 open."""
    active_power_like = False

    def flow(self) -> flows.BranchFlow:
        pi = self.branch.pi_model
        return flows.open_side1_q2(pi.y, pi.ksi, pi.g1, pi.b1, pi.g2, pi.b2, self.v())


class OpenBranchSide1CurrentMagnitudeEquationTerm(_OpenSide1Term):
    """Current magnitude at side 2, side 1 open."""

    def flow(self) -> flows.BranchFlow:
        pi = self.branch.pi_model
        return flows.open_side1_i2(pi.y, pi.ksi, pi.g1, pi.b1, pi.g2, pi.b2, self.v())
