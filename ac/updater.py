"""
AC Equation System Updater Module
=================================

Network listener keeping the activity of the AC equations consistent with
the network state after control mode switches, element disabling, branch
connection changes and zero impedance topology changes.

Author: Manuel Schwenke
Date: 2025-02-05
"""

from __future__ import annotations

import logging

from ac.creator import (
    update_branch_equations,
    update_branch_evaluables,
    update_generator_reactive_power_control_branch_equations,
    update_generator_voltage_control,
    update_non_impedant_branch_equations,
    update_shunt_voltage_control_equations,
    update_transformer_phase_control_equations,
    update_transformer_voltage_control_equations,
)
from core.exceptions import UnsupportedConfigurationError
from equations.equation import AcEquationType
from equations.variable import ElementType
from network.controls import MergeStatus
from network.model import LfNetworkListener

logger = logging.getLogger(__name__)


class AcEquationSystemUpdater(LfNetworkListener):
    """
    Translates network events into equation activations.

    Parameters
    ----------
    network : LfNetwork
        Observed network.
    equation_system : EquationSystem
        System built for the network.
    creator : AcEquationSystemCreator
        Creator of the system, used to rebuild distribution equations when
        zero impedance sub-networks merge or split.
    """

    def __init__(self, network, equation_system, creator) -> None:
        self.network = network
        self.equation_system = equation_system
        self.creator = creator

    @property
    def parameters(self):
        return self.creator.parameters

    # ------------------------------------------------------------------
    # Voltage controls
    # ------------------------------------------------------------------

    def update_voltage_controls(self, bus) -> None:
        """Refresh every main voltage control of the zero impedance zone of a bus."""
        zn = bus.zero_impedance_network
        buses = zn.buses if zn is not None else [bus]
        for zone_bus in buses:
            vc = zone_bus.generator_voltage_control
            if vc is not None and vc.controlled_bus is zone_bus:
                update_generator_voltage_control(vc.get_main_voltage_control(), self.equation_system)
            vc = zone_bus.transformer_voltage_control
            if vc is not None:
                update_transformer_voltage_control_equations(vc.get_main_voltage_control(), self.equation_system)
            vc = zone_bus.shunt_voltage_control
            if vc is not None:
                update_shunt_voltage_control_equations(vc.get_main_voltage_control(), self.equation_system)

    def on_generator_voltage_control_change(self, controller_bus, enabled: bool) -> None:
        logger.debug("Generator voltage control of bus %s %s", controller_bus.id,
                     "enabled" if enabled else "disabled")
        self.update_voltage_controls(controller_bus.generator_voltage_control.controlled_bus)

    def on_transformer_voltage_control_change(self, controller_branch, enabled: bool) -> None:
        self.update_voltage_controls(controller_branch.voltage_control.controlled_bus)

    def on_shunt_voltage_control_change(self, controller_shunt, enabled: bool) -> None:
        self.update_voltage_controls(controller_shunt.voltage_control.controlled_bus)

    # ------------------------------------------------------------------
    # Branch controls
    # ------------------------------------------------------------------

    def on_transformer_phase_control_change(self, controller_branch, enabled: bool) -> None:
        update_transformer_phase_control_equations(controller_branch.phase_control, self.equation_system,
                                                   self.parameters)

    def on_generator_reactive_power_control_change(self, controller_bus, enabled: bool) -> None:
        update_generator_reactive_power_control_branch_equations(
            controller_bus.generator_reactive_power_control, self.equation_system)

    # ------------------------------------------------------------------
    # Disabling
    # ------------------------------------------------------------------

    def update_element_equations(self, element, enable: bool) -> None:
        """Set every equation and term of an element to ``enable``."""
        if element.element_type is ElementType.BRANCH and element.is_zero_impedance():
            update_non_impedant_branch_equations(element, self.equation_system,
                                                 enable and element.spanning_tree_edge)
            return
        for equation in self.equation_system.get_equations(element.element_type, element.num):
            equation.active = enable
        for term in self.equation_system.get_equation_terms(element.element_type, element.num):
            term.active = enable

    def on_disable_change(self, element, disabled: bool) -> None:
        """
        Raises
        ------
        UnsupportedConfigurationError
            When a slack bus is disabled.
        """
        if element.element_type is ElementType.BUS and element.slack and disabled:
            raise UnsupportedConfigurationError(f"Slack bus {element.id!r} cannot be disabled")

        self.update_element_equations(element, not disabled)
        es = self.equation_system

        if element.element_type is ElementType.BUS:
            bus = element
            phi_eq = es.get_equation(bus.num, AcEquationType.BUS_TARGET_PHI)
            if phi_eq is not None:
                phi_eq.active = not disabled and bus.reference
            es.get_equation(bus.num, AcEquationType.BUS_TARGET_P).active = not disabled and not bus.slack
            # reactivated by its voltage control if any
            es.get_equation(bus.num, AcEquationType.BUS_TARGET_V).active = False
            for vc in (bus.generator_voltage_control, bus.transformer_voltage_control,
                       bus.shunt_voltage_control):
                if vc is not None:
                    self.update_voltage_controls(vc.controlled_bus)
            if bus.generator_reactive_power_control is not None:
                update_generator_reactive_power_control_branch_equations(
                    bus.generator_reactive_power_control, es)

        elif element.element_type is ElementType.BRANCH:
            branch = element
            update_branch_equations(branch)
            if branch.voltage_control is not None:
                self.update_voltage_controls(branch.voltage_control.controlled_bus)
            if branch.phase_control is not None:
                update_transformer_phase_control_equations(branch.phase_control, es, self.parameters)
            if branch.generator_reactive_power_control is not None:
                update_generator_reactive_power_control_branch_equations(
                    branch.generator_reactive_power_control, es)

        elif element.element_type is ElementType.SHUNT_COMPENSATOR:
            shunt = element
            if shunt.voltage_control is not None:
                self.update_voltage_controls(shunt.voltage_control.controlled_bus)

    # ------------------------------------------------------------------
    # Topology
    # ------------------------------------------------------------------

    def on_branch_connection_status_change(self, branch, side: int, connected: bool) -> None:
        update_branch_equations(branch)
        update_branch_evaluables(branch)

    def on_zero_impedance_network_spanning_tree_change(self, branch, spanning_tree: bool) -> None:
        update_non_impedant_branch_equations(branch, self.equation_system,
                                             not branch.disabled and spanning_tree)

    def _recreate_distribution_equations(self, zero_impedance_network) -> None:
        for bus in zero_impedance_network.buses:
            vc = bus.generator_voltage_control
            if vc is not None and vc.controlled_bus is bus and vc.merge_status is MergeStatus.MAIN:
                self.creator.recreate_reactive_power_distribution_equations(vc)
            vc = bus.transformer_voltage_control
            if vc is not None and vc.merge_status is MergeStatus.MAIN:
                self.creator.recreate_r1_distribution_equations(vc)
            vc = bus.shunt_voltage_control
            if vc is not None and vc.merge_status is MergeStatus.MAIN:
                self.creator.recreate_shunt_susceptance_distribution_equations(vc)

    def on_zero_impedance_network_split(self, initial_network, split_networks) -> None:
        logger.debug("Recreating distribution equations of %d split zero impedance networks",
                     len(split_networks))
        for zn in split_networks:
            self._recreate_distribution_equations(zn)

    def on_zero_impedance_network_merge(self, network1, network2, merged_network) -> None:
        self._recreate_distribution_equations(merged_network)
