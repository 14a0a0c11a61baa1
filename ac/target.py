"""
AC Target Vector Module
=======================

Right-hand side of the AC equation system.

The target of an equation is the physical value its terms must sum to
(injection target, voltage setpoint, tap position, ...) minus the constant
part of its terms. Together with the evaluated terms it gives the Newton
mismatch ``f(x) - target``.

Author: Manuel Schwenke
Date: 2025-02-05
"""

from __future__ import annotations

import logging
from typing import List

import numpy as np
from numpy.typing import NDArray

from core.exceptions import StructuralError
from equations.equation import AcEquationType, Equation
from equations.listeners import EquationSystemIndexListener
from network.model import LfNetworkListener

logger = logging.getLogger(__name__)


# =============================================================================
# Per-equation targets
# =============================================================================

def bus_target_v(bus) -> float:
    """
    Voltage setpoint of a controlled bus.

    The setpoint of the highest priority control wins. A generator with a
    droop regulates ``v + slope * q`` instead of ``v``, so the reactive
    balance of the bus moves to the target.
    """
    controls = sorted(bus.get_voltage_controls(), key=lambda vc: vc.type.value)
    if not controls:
        raise StructuralError(f"No voltage control found for bus {bus.id!r}")
    target_v = controls[0].get_main_voltage_control().target_value
    if bus.has_generators_with_slope():
        target_v -= bus.slope * (bus.load_target_q - bus.generation_target_q)
    return target_v


def reactive_power_distribution_target(bus) -> float:
    """Target of the DISTR_Q equation of a controller bus."""
    if bus.generator_voltage_control is not None and bus.is_generator_voltage_controller():
        controller_buses = bus.generator_voltage_control.get_main_voltage_control().get_merged_controller_elements()
    elif bus.generator_reactive_power_control is not None:
        controller_buses = bus.generator_reactive_power_control.controller_buses
    else:
        raise StructuralError(f"Controller bus {bus.id!r} has no voltage or reactive power remote control")
    percent = bus.remote_control_reactive_percent
    target = (percent - 1) * bus.target_q
    for other in controller_buses:
        if other is not bus:
            target += percent * other.target_q
    return target


def is_positive_sequence_as_current(bus) -> bool:
    return bus.asym is not None and bus.asym.positive_sequence_as_current


def equation_target(equation: Equation, network) -> float:
    """
    Target of one equation, constant term parts already subtracted.

    Raises
    ------
    StructuralError
        If a control equation has no control object behind it.
    """
    eq_type = equation.type
    num = equation.element_num

    if eq_type in (AcEquationType.BUS_TARGET_P, AcEquationType.BUS_TARGET_Q) \
            and is_positive_sequence_as_current(network.get_bus(num)):
        # the balance holds on current components, injections come from sequence terms
        target = 0.0
    elif eq_type is AcEquationType.BUS_TARGET_P:
        target = network.get_bus(num).target_p
    elif eq_type is AcEquationType.BUS_DISTR_SLACK_P:
        target = network.get_bus(num).target_p - network.slack_buses[0].target_p
    elif eq_type is AcEquationType.BUS_TARGET_Q:
        target = network.get_bus(num).target_q
    elif eq_type is AcEquationType.BUS_TARGET_V:
        target = bus_target_v(network.get_bus(num))
    elif eq_type is AcEquationType.SHUNT_TARGET_B:
        target = network.get_shunt(num).b
    elif eq_type is AcEquationType.BRANCH_TARGET_P:
        phase_control = network.get_branch(num).phase_control
        if phase_control is None:
            raise StructuralError(f"Branch {network.get_branch(num).id!r} has no phase control")
        target = phase_control.target_value
    elif eq_type is AcEquationType.BRANCH_TARGET_Q:
        rpc = network.get_branch(num).generator_reactive_power_control
        if rpc is None:
            raise StructuralError(f"Branch {network.get_branch(num).id!r} has no reactive power control")
        target = rpc.target_value
    elif eq_type is AcEquationType.BRANCH_TARGET_ALPHA1:
        target = network.get_branch(num).pi_model.a1
    elif eq_type is AcEquationType.BRANCH_TARGET_RHO1:
        target = network.get_branch(num).pi_model.r1
    elif eq_type is AcEquationType.DISTR_Q:
        target = reactive_power_distribution_target(network.get_bus(num))
    elif eq_type is AcEquationType.ZERO_PHI:
        # A2 - a1
        target = -network.get_branch(num).pi_model.a1
    else:
        # phase reference, ZERO_V, the other distribution, dummy and sequence current equations
        target = 0.0
    return target - equation.rhs()


# =============================================================================
# Vector
# =============================================================================

class TargetVector(EquationSystemIndexListener, LfNetworkListener):
    """
    Targets of the active equations, in equation row order.

    The array is recomputed lazily after a re-indexing of the equation
    system or any network change once ``start_listening`` was called.

    Attributes
    ----------
    network : LfNetwork
        Network the targets are read from.
    equation_system : EquationSystem
        System whose active equations define the rows.
    """

    def __init__(self, network, equation_system) -> None:
        self.network = network
        self.equation_system = equation_system
        self._array: NDArray[np.float64] = np.zeros(0)
        self._valid = False

    def start_listening(self) -> "TargetVector":
        self.equation_system.index.add_listener(self)
        self.network.add_listener(self)
        return self

    def stop_listening(self) -> None:
        self.equation_system.index.remove_listener(self)
        self.network.remove_listener(self)

    def invalidate(self) -> None:
        self._valid = False

    @property
    def array(self) -> NDArray[np.float64]:
        equations = self.equation_system.index.sorted_equations_to_solve()
        if not self._valid or len(self._array) != len(equations):
            self._array = self.compute(equations)
            self._valid = True
        return self._array

    def compute(self, equations: List[Equation]) -> NDArray[np.float64]:
        targets = np.zeros(len(equations))
        for equation in equations:
            targets[equation.row] = equation_target(equation, self.network)
        logger.debug("Target vector computed for %d equations", len(equations))
        return targets

    def get(self, equation: Equation) -> float:
        return float(self.array[equation.row])

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def on_equations_index_order_changed(self) -> None:
        self._valid = False

    def on_generator_voltage_control_change(self, controller_bus, enabled: bool) -> None:
        self._valid = False

    def on_generator_reactive_power_control_change(self, controller_bus, enabled: bool) -> None:
        self._valid = False

    def on_transformer_voltage_control_change(self, controller_branch, enabled: bool) -> None:
        self._valid = False

    def on_shunt_voltage_control_change(self, controller_shunt, enabled: bool) -> None:
        self._valid = False

    def on_transformer_phase_control_change(self, controller_branch, enabled: bool) -> None:
        self._valid = False

    def on_disable_change(self, element, disabled: bool) -> None:
        self._valid = False

    def on_tap_position_change(self, branch) -> None:
        self._valid = False

    def on_shunt_susceptance_change(self, shunt) -> None:
        self._valid = False
