"""
AC Bus Equation Terms Module
============================

Equation terms attached to a bus: shunt compensator flows and voltage
dependent load models.

Author: Manuel Schwenke
Date: 2025-02-05
"""

from __future__ import annotations

from typing import List

from ac import flows
from equations.term import AbstractElementEquationTerm, EquationTerm
from equations.variable import AcVariableType, ElementType, Variable


class AbstractShuntCompensatorEquationTerm(AbstractElementEquationTerm):
    """
    Base of the shunt compensator terms.

    The shunt consumes ``g v^2`` active and ``-b v^2`` reactive power.
    """

    def __init__(self, shunt, bus, variable_set, network_vector=None) -> None:
        super().__init__(shunt)
        self.bus = bus
        self.network_vector = network_vector
        self.v_var = variable_set.get_or_create(bus.num, AcVariableType.BUS_V)

    @property
    def shunt(self):
        return self.element

    def v(self) -> float:
        if self.v_var.row < 0:
            return self.bus.v
        return self.sv(self.v_var)


class ShuntCompensatorActiveFlowEquationTerm(AbstractShuntCompensatorEquationTerm):

    @property
    def variables(self) -> List[Variable]:
        return [self.v_var]

    def eval(self) -> float:
        if self.network_vector is not None:
            self.network_vector.update_if_needed()
            return float(self.network_vector.shunt_vector.p[self.shunt.num])
        return float(flows.shunt_p(self.shunt.g, self.v())[0])

    def der(self, variable: Variable) -> float:
        if variable is not self.v_var:
            raise self.unknown_variable(variable)
        if self.network_vector is not None:
            self.network_vector.update_if_needed()
            return float(self.network_vector.shunt_vector.dpdv[self.shunt.num])
        return float(flows.shunt_p(self.shunt.g, self.v())[1])


class ShuntCompensatorReactiveFlowEquationTerm(AbstractShuntCompensatorEquationTerm):
    """
    Reactive flow of a shunt, optionally with the susceptance as variable.

    Parameters
    ----------
    derive_b : bool
        Add the SHUNT_B variable of the shunt (voltage control by susceptance).
    """

    def __init__(self, shunt, bus, variable_set, derive_b: bool = False, network_vector=None) -> None:
        super().__init__(shunt, bus, variable_set, network_vector)
        self.b_var = variable_set.get_or_create(shunt.num, AcVariableType.SHUNT_B) if derive_b else None
        self._variables = [self.v_var] if self.b_var is None else [self.v_var, self.b_var]

    @property
    def variables(self) -> List[Variable]:
        return self._variables

    def b(self) -> float:
        if self.b_var is None or self.b_var.row < 0:
            return self.shunt.b
        return self.sv(self.b_var)

    def eval(self) -> float:
        if self.network_vector is not None:
            self.network_vector.update_if_needed()
            vector = self.network_vector.shunt_vector
            q = vector.q if self.b_var is not None else vector.q_fixed
            return float(q[self.shunt.num])
        return float(flows.shunt_q(self.b(), self.v())[0])

    def der(self, variable: Variable) -> float:
        if variable is self.v_var:
            index = 1
        elif variable is self.b_var and variable is not None:
            index = 2
        else:
            raise self.unknown_variable(variable)
        if self.network_vector is not None:
            self.network_vector.update_if_needed()
            vector = self.network_vector.shunt_vector
            if index == 2:
                return float(vector.dqdb[self.shunt.num])
            dqdv = vector.dqdv if self.b_var is not None else vector.dqdv_fixed
            return float(dqdv[self.shunt.num])
        return float(flows.shunt_q(self.b(), self.v())[index])


class AbstractLoadModelEquationTerm(EquationTerm):
    """Power consumed by the voltage dependent load model of a bus."""

    def __init__(self, bus, load_model, variable_set, network_vector=None) -> None:
        super().__init__()
        self.bus = bus
        self.load_model = load_model
        self.network_vector = network_vector
        self.v_var = variable_set.get_or_create(bus.num, AcVariableType.BUS_V)

    @property
    def element_type(self) -> ElementType:
        return ElementType.BUS

    @property
    def element_num(self) -> int:
        return self.bus.num

    @property
    def variables(self) -> List[Variable]:
        return [self.v_var]

    def v(self) -> float:
        if self.v_var.row < 0:
            return self.bus.v
        return self.sv(self.v_var)

    def power(self):
        raise NotImplementedError

    def vector_arrays(self):
        raise NotImplementedError

    def eval(self) -> float:
        if self.network_vector is not None:
            self.network_vector.update_if_needed()
            return float(self.vector_arrays()[0][self.bus.num])
        return float(self.power()[0])

    def der(self, variable: Variable) -> float:
        if variable is not self.v_var:
            raise self.unknown_variable(variable)
        if self.network_vector is not None:
            self.network_vector.update_if_needed()
            return float(self.vector_arrays()[1][self.bus.num])
        return float(self.power()[1])


class LoadModelActiveFlowEquationTerm(AbstractLoadModelEquationTerm):

    def power(self):
        return flows.load_model_power(self.load_model.target_p, self.load_model.exp_terms_p, self.v())

    def vector_arrays(self):
        vector = self.network_vector.load_vector
        return vector.p, vector.dpdv


class LoadModelReactiveFlowEquationTerm(AbstractLoadModelEquationTerm):

    def power(self):
        return flows.load_model_power(self.load_model.target_q, self.load_model.exp_terms_q, self.v())

    def vector_arrays(self):
        vector = self.network_vector.load_vector
        return vector.q, vector.dqdv
