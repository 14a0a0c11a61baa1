"""
AC Equation System Creator Module
=================================

This module builds the AC equation system of an LfNetwork.

Construction order:

1. bus equations (P, Q, reference PHI, inactive V, shunt and load terms),
2. distributed slack equations between multiple slack buses,
3. branch equations (flow terms, zero impedance couplings, branch controls),
4. voltage control equations (generator, transformer, shunt).

The module level ``update_*`` functions implement the control-mode state
machine: each one flips the activity of a small set of paired equations so
that the system stays square. They are shared by the creator (initial
state) and by AcEquationSystemUpdater (network events).

Author: Manuel Schwenke
Date: 2025-02-05
"""

from __future__ import annotations

import logging
from typing import List, Optional

from ac.branch_terms import (
    ClosedBranchSide1ActiveFlowEquationTerm,
    ClosedBranchSide1CurrentMagnitudeEquationTerm,
    ClosedBranchSide1ReactiveFlowEquationTerm,
    ClosedBranchSide2ActiveFlowEquationTerm,
    ClosedBranchSide2CurrentMagnitudeEquationTerm,
    ClosedBranchSide2ReactiveFlowEquationTerm,
    OpenBranchSide1ActiveFlowEquationTerm,
    OpenBranchSide1CurrentMagnitudeEquationTerm,
    OpenBranchSide1ReactiveFlowEquationTerm,
    OpenBranchSide2ActiveFlowEquationTerm,
    OpenBranchSide2CurrentMagnitudeEquationTerm,
    OpenBranchSide2ReactiveFlowEquationTerm,
)
from ac.bus_terms import (
    LoadModelActiveFlowEquationTerm,
    LoadModelReactiveFlowEquationTerm,
    ShuntCompensatorActiveFlowEquationTerm,
    ShuntCompensatorReactiveFlowEquationTerm,
)
from ac.vectors import AcNetworkVector
from core.config import EquationSystemCreationParameters
from core.exceptions import StructuralError, UnsupportedConfigurationError
from equations.equation import AcEquationType
from equations.system import EquationSystem
from equations.variable import AcVariableType
from network.controls import MergeStatus
from network.model import NAN, ZERO

logger = logging.getLogger(__name__)


# =============================================================================
# Derived variables
# =============================================================================

def is_derive_a1(branch, parameters: EquationSystemCreationParameters) -> bool:
    """True if the phase shift of the branch is an unknown."""
    return (branch.is_phase_controller()
            or (parameters.force_a1_var and branch.phase_control_capability
                and branch.is_connected_at_both_sides()))


def is_derive_r1(branch) -> bool:
    """True if the tap ratio of the branch is an unknown."""
    return branch.is_voltage_controller() or branch.transformer_reactive_power_controller


# =============================================================================
# Branch term activation
# =============================================================================

def _set_active(term, active: bool) -> None:
    if term is not None:
        term.active = active


def update_branch_equations(branch) -> None:
    """Activate the closed or open flow terms of a branch according to its connection status."""
    if branch.disabled or branch.is_zero_impedance():
        return
    connected1 = branch.connected_side1
    connected2 = branch.connected_side2
    closed = connected1 and connected2
    open_side2 = connected1 and not connected2
    open_side1 = connected2 and not connected1

    for term in (branch.closed_p1, branch.closed_q1, branch.closed_p2, branch.closed_q2):
        _set_active(term, closed)
    for term in branch.additional_closed_p1 + branch.additional_closed_q1 \
            + branch.additional_closed_p2 + branch.additional_closed_q2:
        term.active = closed

    # open_x1 terms carry the flow at side 1 when side 2 is open
    for term in (branch.open_p1, branch.open_q1):
        _set_active(term, open_side2)
    for term in branch.additional_open_p1 + branch.additional_open_q1:
        term.active = open_side2
    for term in (branch.open_p2, branch.open_q2):
        _set_active(term, open_side1)
    for term in branch.additional_open_p2 + branch.additional_open_q2:
        term.active = open_side1


def update_branch_evaluables(branch) -> None:
    """Point the p/q/i evaluables of a branch to its closed or open terms."""
    connected1 = branch.connected_side1 and branch.bus1 is not None
    connected2 = branch.connected_side2 and branch.bus2 is not None
    if connected1 and connected2:
        side1 = (branch.closed_p1, branch.closed_q1, branch.closed_i1)
        side2 = (branch.closed_p2, branch.closed_q2, branch.closed_i2)
    elif connected1:
        side1 = (branch.open_p1, branch.open_q1, branch.open_i1)
        side2 = (ZERO, ZERO, ZERO)
    elif connected2:
        side1 = (ZERO, ZERO, ZERO)
        side2 = (branch.open_p2, branch.open_q2, branch.open_i2)
    else:
        side1 = side2 = (NAN, NAN, NAN)
    branch.p1, branch.q1, branch.i1 = (NAN if e is None else e for e in side1)
    branch.p2, branch.q2, branch.i2 = (NAN if e is None else e for e in side2)


# =============================================================================
# Control-mode state machine
# =============================================================================

def _check_not_dependent(voltage_control) -> None:
    voltage_control.check_not_dependent()


def update_remote_voltage_control_equations(voltage_control, equation_system: EquationSystem,
                                            distr_type: AcEquationType, ctrl_type: AcEquationType) -> None:
    """
    Set the activity of the equations of a (possibly merged) voltage control.

    The controlled bus V equation replaces the control equation (Q, RHO1 or
    B) of the first enabled controller; every other enabled controller
    swaps its control equation for a distribution equation. A hidden control
    (one of higher priority regulates the same zone) keeps all its controller
    equations and drops its V equation.

    Raises
    ------
    StructuralError
        If the control is a merged dependent control.
    """
    _check_not_dependent(voltage_control)

    controlled_bus = voltage_control.controlled_bus
    controllers = [e for e in voltage_control.get_merged_controller_elements() if not e.disabled]

    v_eq = equation_system.get_equation(controlled_bus.num, AcEquationType.BUS_TARGET_V)
    v_eqs_merged = [equation_system.get_equation(vc.controlled_bus.num, AcEquationType.BUS_TARGET_V)
                    for vc in voltage_control.merged_dependent_voltage_controls]

    if voltage_control.is_hidden():
        visible_bus = voltage_control.find_main_visible_controlled_bus()
        if visible_bus is not controlled_bus:
            v_eq.active = False
        for element in controllers:
            distr_eq = equation_system.get_equation(element.num, distr_type)
            if distr_eq is not None:
                distr_eq.active = False
            equation_system.get_equation(element.num, ctrl_type).active = True
        return

    enabled = [e for e in controllers if voltage_control.is_controller_enabled(e)]
    disabled = [e for e in controllers if not voltage_control.is_controller_enabled(e)]
    if not enabled and controllers:
        logger.warning("Voltage control of bus %s has no enabled controller", controlled_bus.id)

    v_eq.active = len(enabled) > 0
    for v_eq_merged in v_eqs_merged:
        v_eq_merged.active = False

    for element in disabled:
        distr_eq = equation_system.get_equation(element.num, distr_type)
        if distr_eq is not None:
            distr_eq.active = False
        equation_system.get_equation(element.num, ctrl_type).active = True

    for i, element in enumerate(enabled):
        distr_eq = equation_system.get_equation(element.num, distr_type)
        if distr_eq is not None:
            distr_eq.active = i != 0
        equation_system.get_equation(element.num, ctrl_type).active = False


def update_generator_voltage_control(voltage_control, equation_system: EquationSystem) -> None:
    _check_not_dependent(voltage_control)
    voltage_control.update_reactive_keys()
    update_remote_voltage_control_equations(voltage_control, equation_system,
                                            AcEquationType.DISTR_Q, AcEquationType.BUS_TARGET_Q)


def update_transformer_voltage_control_equations(voltage_control, equation_system: EquationSystem) -> None:
    update_remote_voltage_control_equations(voltage_control, equation_system,
                                            AcEquationType.DISTR_RHO, AcEquationType.BRANCH_TARGET_RHO1)


def update_shunt_voltage_control_equations(voltage_control, equation_system: EquationSystem) -> None:
    update_remote_voltage_control_equations(voltage_control, equation_system,
                                            AcEquationType.DISTR_SHUNT_B, AcEquationType.SHUNT_TARGET_B)


def update_generator_reactive_power_control_branch_equations(reactive_power_control,
                                                             equation_system: EquationSystem) -> None:
    """Toggle the branch Q target against the Q equations of its controller buses."""
    controlled_branch = reactive_power_control.controlled_branch
    controllers = [bus for bus in reactive_power_control.controller_buses if not bus.disabled]
    q_eq = equation_system.get_equation(controlled_branch.num, AcEquationType.BRANCH_TARGET_Q)
    if q_eq is None:
        return

    if controlled_branch.disabled:
        q_eq.active = False
        for bus in controllers:
            distr_eq = equation_system.get_equation(bus.num, AcEquationType.DISTR_Q)
            if distr_eq is not None:
                distr_eq.active = False
            equation_system.get_equation(bus.num, AcEquationType.BUS_TARGET_Q).active = True
        return

    enabled = [bus for bus in controllers if bus.generator_reactive_power_control_enabled]
    disabled = [bus for bus in controllers if not bus.generator_reactive_power_control_enabled]
    reactive_power_control.update_reactive_keys()

    q_eq.active = len(enabled) > 0
    for bus in disabled:
        distr_eq = equation_system.get_equation(bus.num, AcEquationType.DISTR_Q)
        if distr_eq is not None:
            distr_eq.active = False
        equation_system.get_equation(bus.num, AcEquationType.BUS_TARGET_Q).active = True
    for i, bus in enumerate(enabled):
        distr_eq = equation_system.get_equation(bus.num, AcEquationType.DISTR_Q)
        if distr_eq is not None:
            distr_eq.active = i != 0
        equation_system.get_equation(bus.num, AcEquationType.BUS_TARGET_Q).active = False


def update_transformer_phase_control_equations(phase_control, equation_system: EquationSystem,
                                               parameters: EquationSystemCreationParameters) -> None:
    """Toggle BRANCH_TARGET_P of the controlled branch against BRANCH_TARGET_ALPHA1 of the controller."""
    controller = phase_control.controller_branch
    controlled = phase_control.controlled_branch
    a1_eq = equation_system.get_equation(controller.num, AcEquationType.BRANCH_TARGET_ALPHA1)

    if phase_control.effective_mode(parameters) == "CONTROLLER":
        enabled = not controller.disabled and not controlled.disabled and controller.phase_control_enabled
        p_eq = equation_system.get_equation(controlled.num, AcEquationType.BRANCH_TARGET_P)
        if p_eq is not None:
            p_eq.active = enabled
        if a1_eq is not None:
            a1_eq.active = not enabled and not controller.disabled
    elif a1_eq is not None:
        a1_eq.active = not controller.disabled


def update_non_impedant_branch_equations(branch, equation_system: EquationSystem, enable: bool) -> None:
    """Couple the voltages of a zero impedance branch, or pin its dummy flows to zero."""
    for coupling, dummy in ((AcEquationType.ZERO_PHI, AcEquationType.DUMMY_TARGET_P),
                            (AcEquationType.ZERO_V, AcEquationType.DUMMY_TARGET_Q)):
        coupling_eq = equation_system.get_equation(branch.num, coupling)
        if coupling_eq is not None:
            coupling_eq.active = enable
        dummy_eq = equation_system.get_equation(branch.num, dummy)
        if dummy_eq is not None:
            dummy_eq.active = not enable


# =============================================================================
# Creator
# =============================================================================

class AcEquationSystemCreator:
    """
    Builder of the balanced AC equation system of a network.

    Attributes
    ----------
    network : LfNetwork
        Network to model.
    parameters : EquationSystemCreationParameters
        Creation options.
    equation_system : EquationSystem or None
        System under construction, set by ``create``.
    network_vector : AcNetworkVector or None
        Shared cache of the flows, only in vectorized mode.
    updater : AcEquationSystemUpdater or None
        Network listener registered by ``create``.
    """

    def __init__(self, network, parameters: Optional[EquationSystemCreationParameters] = None) -> None:
        self.network = network
        self.parameters = parameters if parameters is not None else EquationSystemCreationParameters()
        self.equation_system: Optional[EquationSystem] = None
        self.network_vector: Optional[AcNetworkVector] = None
        self.updater = None

    @property
    def variable_set(self):
        return self.equation_system.variable_set

    @property
    def derivative_strategy(self):
        return self.parameters.derivative_strategy

    def variable(self, num: int, variable_type: AcVariableType):
        return self.equation_system.variable_set.get_or_create(num, variable_type)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def create(self) -> EquationSystem:
        """
        Build the equation system and subscribe its updater to the network.

        Returns
        -------
        EquationSystem
            The equation system in the control state described by the network.
        """
        self.network.ensure_zero_impedance_networks()
        self.equation_system = EquationSystem()
        if self.parameters.vectorized:
            self.network_vector = AcNetworkVector(self.network, self.equation_system)

        self.create_buses_equations()
        self.create_multiple_slack_buses_equations()
        self.create_branches_equations()
        self.create_voltage_control_equations()

        self.updater = self.create_updater()
        self.network.add_listener(self.updater)
        if self.network_vector is not None:
            self.network_vector.start_listening()

        logger.info("AC equation system created for network %s: %d equations, %d variables",
                    self.network.id, len(self.equation_system.equations), len(self.variable_set))
        return self.equation_system

    def create_updater(self):
        from ac.updater import AcEquationSystemUpdater

        return AcEquationSystemUpdater(self.network, self.equation_system, self)

    # ------------------------------------------------------------------
    # Buses
    # ------------------------------------------------------------------

    def create_buses_equations(self) -> None:
        for bus in self.network.buses:
            self.create_bus_equation(bus)

    def create_bus_equation(self, bus) -> None:
        es = self.equation_system
        p = es.create_equation(bus, AcEquationType.BUS_TARGET_P)
        es.create_equation(bus, AcEquationType.BUS_TARGET_Q)

        if bus.reference:
            es.create_equation(bus, AcEquationType.BUS_TARGET_PHI) \
                .add_term(self.variable(bus.num, AcVariableType.BUS_PHI).create_term())
        if bus.slack:
            p.active = False

        # inactive until a voltage control claims it
        es.create_equation(bus, AcEquationType.BUS_TARGET_V) \
            .add_term(self.variable(bus.num, AcVariableType.BUS_V).create_term()) \
            .active = False

        self.create_shunt_equations(bus)
        self.create_load_equations(bus)

    def create_shunt_equations(self, bus) -> None:
        if bus.shunt is not None:
            self._create_shunt_equation(bus.shunt, bus, derive_b=False)
        if bus.controller_shunt is not None:
            self._create_shunt_equation(bus.controller_shunt, bus,
                                        derive_b=bus.controller_shunt.voltage_control_capability)

    def _create_shunt_equation(self, shunt, bus, derive_b: bool) -> None:
        es = self.equation_system
        es.create_equation(bus, AcEquationType.BUS_TARGET_Q).add_term(
            ShuntCompensatorReactiveFlowEquationTerm(shunt, bus, self.variable_set, derive_b, self.network_vector))
        es.create_equation(bus, AcEquationType.BUS_TARGET_P).add_term(
            ShuntCompensatorActiveFlowEquationTerm(shunt, bus, self.variable_set, self.network_vector))

    def create_load_equations(self, bus) -> None:
        if bus.load_model is None:
            return
        es = self.equation_system
        es.create_equation(bus, AcEquationType.BUS_TARGET_P).add_term(
            LoadModelActiveFlowEquationTerm(bus, bus.load_model, self.variable_set, self.network_vector))
        es.create_equation(bus, AcEquationType.BUS_TARGET_Q).add_term(
            LoadModelReactiveFlowEquationTerm(bus, bus.load_model, self.variable_set, self.network_vector))

    # ------------------------------------------------------------------
    # Injection terms shared by distribution equations
    # ------------------------------------------------------------------

    def _closed_term(self, side: int, active_power: bool, branch, bus1, bus2):
        if side == 1:
            cls = ClosedBranchSide1ActiveFlowEquationTerm if active_power else ClosedBranchSide1ReactiveFlowEquationTerm
        else:
            cls = ClosedBranchSide2ActiveFlowEquationTerm if active_power else ClosedBranchSide2ReactiveFlowEquationTerm
        return cls(branch, bus1, bus2, self.variable_set,
                   is_derive_a1(branch, self.parameters), is_derive_r1(branch),
                   self.network_vector, self.derivative_strategy)

    def _open_term(self, open_side: int, active_power: bool, branch, bus):
        if open_side == 2:
            cls = OpenBranchSide2ActiveFlowEquationTerm if active_power else OpenBranchSide2ReactiveFlowEquationTerm
        else:
            cls = OpenBranchSide1ActiveFlowEquationTerm if active_power else OpenBranchSide1ReactiveFlowEquationTerm
        return cls(branch, bus, self.variable_set, self.derivative_strategy)

    def _create_injection_terms(self, bus, active_power: bool) -> List:
        """
        Flow terms leaving ``bus`` through its branches.

        The created branch terms are registered as additional closed/open
        terms of their branch so that connection changes toggle them.
        """
        dummy_type = AcVariableType.DUMMY_P if active_power else AcVariableType.DUMMY_Q
        suffix = "p" if active_power else "q"
        terms = []
        for branch in bus.branches:
            if branch.is_zero_impedance():
                if branch.spanning_tree_edge:
                    term = self.variable(branch.num, dummy_type).create_term()
                    terms.append(term.minus() if branch.bus2 is bus else term)
                continue
            if branch.bus1 is bus:
                other_bus = branch.bus2
                if other_bus is not None:
                    term = self._closed_term(1, active_power, branch, bus, other_bus)
                    getattr(branch, f"additional_closed_{suffix}1").append(term)
                    terms.append(term)
                    if branch.disconnection_allowed_side2:
                        open_term = self._open_term(2, active_power, branch, bus)
                        getattr(branch, f"additional_open_{suffix}1").append(open_term)
                        terms.append(open_term)
                else:
                    open_term = self._open_term(2, active_power, branch, bus)
                    getattr(branch, f"additional_open_{suffix}1").append(open_term)
                    terms.append(open_term)
            else:
                other_bus = branch.bus1
                if other_bus is not None:
                    term = self._closed_term(2, active_power, branch, other_bus, bus)
                    getattr(branch, f"additional_closed_{suffix}2").append(term)
                    terms.append(term)
                    if branch.disconnection_allowed_side1:
                        open_term = self._open_term(1, active_power, branch, bus)
                        getattr(branch, f"additional_open_{suffix}2").append(open_term)
                        terms.append(open_term)
                else:
                    open_term = self._open_term(1, active_power, branch, bus)
                    getattr(branch, f"additional_open_{suffix}2").append(open_term)
                    terms.append(open_term)
        return terms

    def create_active_injection_terms(self, bus) -> List:
        return self._create_injection_terms(bus, active_power=True)

    def create_reactive_terms(self, bus) -> List:
        """Reactive flows leaving a controller bus, including its shunts with fixed susceptance."""
        terms = self._create_injection_terms(bus, active_power=False)
        for shunt in (bus.shunt, bus.controller_shunt):
            if shunt is not None:
                terms.append(ShuntCompensatorReactiveFlowEquationTerm(shunt, bus, self.variable_set, False,
                                                                      self.network_vector))
        return terms

    # ------------------------------------------------------------------
    # Multiple slack buses
    # ------------------------------------------------------------------

    def create_multiple_slack_buses_equations(self) -> None:
        slack_buses = self.network.slack_buses
        if len(slack_buses) <= 1:
            return
        first = slack_buses[0]
        for slack_bus in slack_buses[1:]:
            # slack_p_i - slack_p_first = target_p_i - target_p_first
            self.equation_system.create_equation(slack_bus, AcEquationType.BUS_DISTR_SLACK_P) \
                .add_terms([t.minus() for t in self.create_active_injection_terms(first)]) \
                .add_terms(self.create_active_injection_terms(slack_bus))
            for branch in slack_bus.branches:
                update_branch_equations(branch)
        logger.debug("%d distributed slack equations created", len(slack_buses) - 1)

    # ------------------------------------------------------------------
    # Branches
    # ------------------------------------------------------------------

    def create_branches_equations(self) -> None:
        for branch in self.network.branches:
            self.create_branch_equations(branch)

    def create_branch_equations(self, branch) -> None:
        branch.clear_additional_terms()
        if branch.is_zero_impedance():
            self.create_non_impedant_branch(branch, branch.bus1, branch.bus2)
        else:
            self.create_impedant_branch(branch, branch.bus1, branch.bus2)

    def create_non_impedant_branch(self, branch, bus1, bus2) -> None:
        """
        Equal voltage coupling of a zero impedance branch.

        ``v1 - v2 / r1 = 0`` and ``ph1 - ph2 = -a1`` hold on spanning tree
        edges; a dummy flow pair keeps the system square and is pinned to zero
        when the coupling is off.

        Raises
        ------
        StructuralError
            If both buses carry an angle reference equation.
        """
        if bus1 is None or bus2 is None:
            return
        es = self.equation_system
        v1_eq = es.get_equation(bus1.num, AcEquationType.BUS_TARGET_V)
        v2_eq = es.get_equation(bus2.num, AcEquationType.BUS_TARGET_V)
        has_v1 = v1_eq is not None and v1_eq.active
        has_v2 = v2_eq is not None and v2_eq.active
        enabled = not branch.disabled and branch.spanning_tree_edge

        if not (has_v1 and has_v2):
            pi_model = branch.pi_model
            es.create_equation(branch, AcEquationType.ZERO_V) \
                .add_term(self.variable(bus1.num, AcVariableType.BUS_V).create_term()) \
                .add_term(self.variable(bus2.num, AcVariableType.BUS_V).create_term()
                          .multiply(lambda: -pi_model.R2 / pi_model.r1)) \
                .active = enabled
            dummy_q = self.variable(branch.num, AcVariableType.DUMMY_Q)
            es.create_equation(bus1, AcEquationType.BUS_TARGET_Q).add_term(dummy_q.create_term())
            es.create_equation(bus2, AcEquationType.BUS_TARGET_Q).add_term(dummy_q.create_term().minus())
            es.create_equation(branch, AcEquationType.DUMMY_TARGET_Q) \
                .add_term(dummy_q.create_term()) \
                .active = not enabled

        if es.has_equation(bus1.num, AcEquationType.BUS_TARGET_PHI) \
                and es.has_equation(bus2.num, AcEquationType.BUS_TARGET_PHI):
            raise StructuralError(
                f"Zero impedance branch {branch.id!r} connects two buses with an angle reference")
        es.create_equation(branch, AcEquationType.ZERO_PHI) \
            .add_term(self.variable(bus1.num, AcVariableType.BUS_PHI).create_term()) \
            .add_term(self.variable(bus2.num, AcVariableType.BUS_PHI).create_term().minus()) \
            .active = enabled
        dummy_p = self.variable(branch.num, AcVariableType.DUMMY_P)
        es.create_equation(bus1, AcEquationType.BUS_TARGET_P).add_term(dummy_p.create_term())
        es.create_equation(bus2, AcEquationType.BUS_TARGET_P).add_term(dummy_p.create_term().minus())
        es.create_equation(branch, AcEquationType.DUMMY_TARGET_P) \
            .add_term(dummy_p.create_term()) \
            .active = not enabled

    def create_impedant_branch(self, branch, bus1, bus2) -> None:
        es = self.equation_system
        vs = self.variable_set
        strategy = self.derivative_strategy
        derive_a1 = is_derive_a1(branch, self.parameters)
        derive_r1 = is_derive_r1(branch)

        if bus1 is not None and bus2 is not None:
            args = (branch, bus1, bus2, vs, derive_a1, derive_r1, self.network_vector, strategy)
            branch.closed_p1 = ClosedBranchSide1ActiveFlowEquationTerm(*args)
            branch.closed_q1 = ClosedBranchSide1ReactiveFlowEquationTerm(*args)
            branch.closed_p2 = ClosedBranchSide2ActiveFlowEquationTerm(*args)
            branch.closed_q2 = ClosedBranchSide2ReactiveFlowEquationTerm(*args)
            branch.closed_i1 = ClosedBranchSide1CurrentMagnitudeEquationTerm(*args)
            branch.closed_i2 = ClosedBranchSide2CurrentMagnitudeEquationTerm(*args)
            if branch.disconnection_allowed_side1:
                self._create_open_side1_terms(branch, bus2)
            if branch.disconnection_allowed_side2:
                self._create_open_side2_terms(branch, bus1)
        elif bus1 is not None:
            self._create_open_side2_terms(branch, bus1)
        elif bus2 is not None:
            self._create_open_side1_terms(branch, bus2)

        for bus, p, q in ((bus1, branch.closed_p1, branch.closed_q1), (bus1, branch.open_p1, branch.open_q1),
                          (bus2, branch.closed_p2, branch.closed_q2), (bus2, branch.open_p2, branch.open_q2)):
            if p is not None:
                es.create_equation(bus, AcEquationType.BUS_TARGET_P).add_term(p)
                es.create_equation(bus, AcEquationType.BUS_TARGET_Q).add_term(q)
        for term in (branch.closed_i1, branch.open_i1, branch.closed_i2, branch.open_i2):
            if term is not None:
                es.attach(term)
        update_branch_evaluables(branch)

        self.create_generator_reactive_power_control_branch_equation(branch, bus1, bus2, derive_a1, derive_r1)
        self.create_transformer_phase_control_equations(branch, bus1, bus2, derive_a1, derive_r1)
        update_branch_equations(branch)
        self.create_transformer_reactive_power_control_equations(branch)

    def _create_open_side1_terms(self, branch, bus2) -> None:
        vs, strategy = self.variable_set, self.derivative_strategy
        branch.open_p2 = OpenBranchSide1ActiveFlowEquationTerm(branch, bus2, vs, strategy)
        branch.open_q2 = OpenBranchSide1ReactiveFlowEquationTerm(branch, bus2, vs, strategy)
        branch.open_i2 = OpenBranchSide1CurrentMagnitudeEquationTerm(branch, bus2, vs, strategy)

    def _create_open_side2_terms(self, branch, bus1) -> None:
        vs, strategy = self.variable_set, self.derivative_strategy
        branch.open_p1 = OpenBranchSide2ActiveFlowEquationTerm(branch, bus1, vs, strategy)
        branch.open_q1 = OpenBranchSide2ReactiveFlowEquationTerm(branch, bus1, vs, strategy)
        branch.open_i1 = OpenBranchSide2CurrentMagnitudeEquationTerm(branch, bus1, vs, strategy)

    # ------------------------------------------------------------------
    # Branch controls
    # ------------------------------------------------------------------

    def create_generator_reactive_power_control_branch_equation(self, branch, bus1, bus2,
                                                                derive_a1: bool, derive_r1: bool) -> None:
        rpc = branch.generator_reactive_power_control
        if rpc is None or bus1 is None or bus2 is None:
            return
        args = (branch, bus1, bus2, self.variable_set, derive_a1, derive_r1,
                self.network_vector, self.derivative_strategy)
        q = ClosedBranchSide1ReactiveFlowEquationTerm(*args) if rpc.controlled_side == 1 \
            else ClosedBranchSide2ReactiveFlowEquationTerm(*args)
        self.equation_system.create_equation(branch, AcEquationType.BRANCH_TARGET_Q).add_term(q)
        self.create_generator_reactive_power_distribution_equations(rpc.controller_buses)
        update_generator_reactive_power_control_branch_equations(rpc, self.equation_system)

    def create_transformer_phase_control_equations(self, branch, bus1, bus2,
                                                   derive_a1: bool, derive_r1: bool) -> None:
        """
        Phase shift equations of a branch.

        Raises
        ------
        UnsupportedConfigurationError
            For a current (A) phase control in CONTROLLER mode.
        """
        es = self.equation_system
        if derive_a1:
            es.create_equation(branch, AcEquationType.BRANCH_TARGET_ALPHA1) \
                .add_term(self.variable(branch.num, AcVariableType.BRANCH_ALPHA1).create_term())

        if branch.is_phase_controlled() and bus1 is not None and bus2 is not None:
            phase_control = branch.phase_control
            if phase_control.effective_mode(self.parameters) == "CONTROLLER":
                if phase_control.unit == "A":
                    raise UnsupportedConfigurationError(
                        f"Phase control in A is not supported (branch {branch.id!r})")
                args = (branch, bus1, bus2, self.variable_set, derive_a1, derive_r1,
                        self.network_vector, self.derivative_strategy)
                p = ClosedBranchSide1ActiveFlowEquationTerm(*args) if phase_control.controlled_side == 1 \
                    else ClosedBranchSide2ActiveFlowEquationTerm(*args)
                es.create_equation(branch, AcEquationType.BRANCH_TARGET_P).add_term(p).active = False

        # controller and controlled branches may be created in any order
        if branch.phase_control is not None:
            update_transformer_phase_control_equations(branch.phase_control, es, self.parameters)

    def create_transformer_reactive_power_control_equations(self, branch) -> None:
        if branch.transformer_reactive_power_controller:
            # r1 is held constant, an outer loop moves the target
            self.equation_system.create_equation(branch, AcEquationType.BRANCH_TARGET_RHO1) \
                .add_term(self.variable(branch.num, AcVariableType.BRANCH_RHO1).create_term())

    # ------------------------------------------------------------------
    # Voltage controls
    # ------------------------------------------------------------------

    def create_voltage_control_equations(self) -> None:
        for bus in self.network.buses:
            self.create_generator_voltage_control_equations(bus)
            self.create_transformer_voltage_control_equations(bus)
            self.create_shunt_voltage_control_equations(bus)

    def create_generator_voltage_control_equations(self, bus) -> None:
        vc = bus.generator_voltage_control
        if vc is None or vc.merge_status is not MergeStatus.MAIN or not bus.is_generator_voltage_controlled():
            return
        if vc.is_local_control():
            self.create_generator_local_voltage_control_equation(bus)
        else:
            self.create_generator_reactive_power_distribution_equations(vc.get_merged_controller_elements())
        update_generator_voltage_control(vc, self.equation_system)

    def create_generator_local_voltage_control_equation(self, bus) -> None:
        if not bus.has_generators_with_slope():
            return
        # V + slope * sum(q_branch) = target_v - slope * (q_load - q_gen)
        slope = bus.slope
        self.equation_system.get_equation(bus.num, AcEquationType.BUS_TARGET_V) \
            .add_terms([t.multiply(slope) for t in self.create_reactive_terms(bus)])
        for branch in bus.branches:
            update_branch_equations(branch)

    def create_generator_reactive_power_distribution_equations(self, controller_buses: List) -> None:
        """
        ``DISTR_Q`` equation of every controller bus.

        Controller i holds the share pct_i of the total reactive power:
        ``0 = (pct_i - 1) q_i + pct_i * sum(q_j, j != i)``. The shares are
        read through callables so that reactive key updates need no rewiring.
        """
        es = self.equation_system
        for bus in controller_buses:
            equation = es.create_equation(bus, AcEquationType.DISTR_Q)
            equation.add_terms([t.multiply(lambda b=bus: b.remote_control_reactive_percent - 1)
                                for t in self.create_reactive_terms(bus)])
            for other in controller_buses:
                if other is not bus:
                    equation.add_terms([t.multiply(lambda b=bus: b.remote_control_reactive_percent)
                                        for t in self.create_reactive_terms(other)])
        for bus in controller_buses:
            for branch in bus.branches:
                update_branch_equations(branch)

    def create_transformer_voltage_control_equations(self, bus) -> None:
        vc = bus.transformer_voltage_control
        if vc is None or vc.merge_status is not MergeStatus.MAIN:
            return
        self.create_r1_distribution_equations(vc)
        for branch in vc.get_merged_controller_elements():
            self.equation_system.create_equation(branch, AcEquationType.BRANCH_TARGET_RHO1) \
                .add_term(self.variable(branch.num, AcVariableType.BRANCH_RHO1).create_term())
        update_transformer_voltage_control_equations(vc, self.equation_system)

    def _create_average_distribution_equations(self, elements: List, variable_type: AcVariableType,
                                               equation_type: AcEquationType) -> None:
        # 0 = (1/n - 1) x_i + sum(x_j, j != i) / n over the enabled elements
        def share() -> float:
            count = sum(1 for e in elements if not e.disabled)
            return 1.0 / count if count else 0.0

        for element in elements:
            equation = self.equation_system.create_equation(element, equation_type)
            equation.add_term(self.variable(element.num, variable_type).create_term()
                              .multiply(lambda: share() - 1))
            for other in elements:
                if other is not element:
                    equation.add_term(self.variable(other.num, variable_type).create_term().multiply(share))

    def create_r1_distribution_equations(self, voltage_control) -> None:
        self._create_average_distribution_equations(voltage_control.get_merged_controller_elements(),
                                                    AcVariableType.BRANCH_RHO1, AcEquationType.DISTR_RHO)

    def create_shunt_voltage_control_equations(self, bus) -> None:
        vc = bus.shunt_voltage_control
        if vc is None or vc.merge_status is not MergeStatus.MAIN:
            return
        self.create_shunt_susceptance_distribution_equations(vc)
        for shunt in vc.get_merged_controller_elements():
            self.equation_system.create_equation(shunt, AcEquationType.SHUNT_TARGET_B) \
                .add_term(self.variable(shunt.num, AcVariableType.SHUNT_B).create_term())
        update_shunt_voltage_control_equations(vc, self.equation_system)

    def create_shunt_susceptance_distribution_equations(self, voltage_control) -> None:
        self._create_average_distribution_equations(voltage_control.get_merged_controller_elements(),
                                                    AcVariableType.SHUNT_B, AcEquationType.DISTR_SHUNT_B)

    # ------------------------------------------------------------------
    # Recreation after zero impedance merge or split
    # ------------------------------------------------------------------

    def _remove_equations(self, elements: List, equation_type: AcEquationType) -> None:
        removed_terms = []
        for element in elements:
            equation = self.equation_system.remove_equation(element.num, equation_type)
            if equation is not None:
                removed_terms.extend(equation.leaf_terms())
        # branch flows of removed equations no longer follow connection changes
        if removed_terms:
            for branch in self.network.branches:
                branch.remove_additional_terms(removed_terms)

    def recreate_reactive_power_distribution_equations(self, voltage_control) -> None:
        controllers = voltage_control.get_merged_controller_elements()
        self._remove_equations(controllers, AcEquationType.DISTR_Q)
        if not voltage_control.is_local_control():
            self.create_generator_reactive_power_distribution_equations(controllers)
        update_generator_voltage_control(voltage_control, self.equation_system)

    def recreate_r1_distribution_equations(self, voltage_control) -> None:
        self._remove_equations(voltage_control.get_merged_controller_elements(), AcEquationType.DISTR_RHO)
        self.create_r1_distribution_equations(voltage_control)
        update_transformer_voltage_control_equations(voltage_control, self.equation_system)

    def recreate_shunt_susceptance_distribution_equations(self, voltage_control) -> None:
        self._remove_equations(voltage_control.get_merged_controller_elements(), AcEquationType.DISTR_SHUNT_B)
        self.create_shunt_susceptance_distribution_equations(voltage_control)
        update_shunt_voltage_control_equations(voltage_control, self.equation_system)


def create_ac_equation_system(network,
                              parameters: Optional[EquationSystemCreationParameters] = None) -> EquationSystem:
    """Build the AC equation system of a network with default creation options."""
    return AcEquationSystemCreator(network, parameters).create()
