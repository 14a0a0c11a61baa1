"""
Network Controls Module
=======================

Control objects linking controller elements to controlled subjects.

A voltage control binds one controlled bus to one or more controller
elements (generator buses, transformer branches or shunts). Voltage controls
of the same type whose controlled buses lie in one zero impedance
sub-network are merged: one is MAIN and carries the equations, the others are
DEPENDENT and only contribute their controllers.

Classes
-------
VoltageControl
    Common base with merge status, disabled and hidden logic.
GeneratorVoltageControl, TransformerVoltageControl, ShuntVoltageControl
    The three voltage control types, in priority order.
GeneratorReactivePowerControl
    Generators regulating the reactive flow of a branch side.
TransformerPhaseControl
    Phase shifter regulating the active power of a branch side.

Author: Manuel Schwenke
Date: 2025-02-05
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional

logger = logging.getLogger(__name__)


class VoltageControlType(Enum):
    """Voltage control types; the value is the priority (lower wins)."""
    GENERATOR = 0
    TRANSFORMER = 1
    SHUNT = 2


class MergeStatus(Enum):
    MAIN = "MAIN"
    DEPENDENT = "DEPENDENT"


# =============================================================================
# Voltage controls
# =============================================================================

class VoltageControl(ABC):
    """
    Control of the voltage magnitude of one bus by a set of controllers.

    Attributes
    ----------
    controlled_bus : LfBus
        Bus whose voltage is regulated.
    target_value : float
        Voltage setpoint [p.u.].
    controller_elements : List
        Controllers owned by this control (not including merged ones).
    merge_status : MergeStatus
        MAIN or DEPENDENT within the zero impedance sub-network.
    main_merged_voltage_control : VoltageControl or None
        For a DEPENDENT control, the control carrying its equations.
    merged_dependent_voltage_controls : List[VoltageControl]
        For a MAIN control, the controls merged into it.
    """

    type: VoltageControlType = None

    def __init__(self, controlled_bus, target_value: float) -> None:
        self.controlled_bus = controlled_bus
        self.target_value = target_value
        self.controller_elements: List = []
        self.merge_status = MergeStatus.MAIN
        self.main_merged_voltage_control: Optional[VoltageControl] = None
        self.merged_dependent_voltage_controls: List[VoltageControl] = []

    # ------------------------------------------------------------------
    # Controllers
    # ------------------------------------------------------------------

    def add_controller_element(self, element) -> None:
        self.controller_elements.append(element)

    @abstractmethod
    def is_controller_enabled(self, element) -> bool:
        """Whether ``element`` currently takes part in the control."""

    def get_merged_controller_elements(self) -> List:
        """Controllers of this control followed by those of the merged dependent controls."""
        elements = list(self.controller_elements)
        for vc in self.merged_dependent_voltage_controls:
            elements.extend(vc.controller_elements)
        return elements

    def get_merged_controlled_buses(self) -> List:
        buses = [self.controlled_bus]
        buses.extend(vc.controlled_bus for vc in self.merged_dependent_voltage_controls)
        return buses

    def get_main_voltage_control(self) -> "VoltageControl":
        if self.merge_status is MergeStatus.MAIN:
            return self
        return self.main_merged_voltage_control

    def reset_merge(self) -> None:
        self.merge_status = MergeStatus.MAIN
        self.main_merged_voltage_control = None
        self.merged_dependent_voltage_controls = []

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def is_disabled(self) -> bool:
        """True if the controlled bus or every merged controller is disabled."""
        if self.controlled_bus.disabled:
            return True
        return all(element.disabled for element in self.get_merged_controller_elements())

    def _controlled_buses_in_zone(self) -> List:
        zn = self.controlled_bus.zero_impedance_network
        if zn is None:
            return [self.controlled_bus]
        return zn.buses

    def find_main_voltage_controls_sorted_by_priority(self) -> List["VoltageControl"]:
        """Enabled MAIN voltage controls of the zone of the controlled bus, by type priority."""
        controls = []
        for bus in self._controlled_buses_in_zone():
            for vc in bus.get_voltage_controls():
                if vc.merge_status is MergeStatus.MAIN and not vc.is_disabled():
                    controls.append(vc)
        controls.sort(key=lambda vc: vc.type.value)
        return controls

    def is_hidden(self) -> bool:
        """
        True if a control of higher priority regulates the same zone.

        A hidden control keeps its controllers at their fixed values and does
        not enforce its voltage target.
        """
        controls = self.find_main_voltage_controls_sorted_by_priority()
        return not controls or controls[0] is not self

    def find_main_visible_controlled_bus(self):
        controls = self.find_main_voltage_controls_sorted_by_priority()
        return controls[0].controlled_bus if controls else None

    def check_not_dependent(self) -> None:
        from core.exceptions import StructuralError
        if self.merge_status is MergeStatus.DEPENDENT:
            raise StructuralError("Cannot update a merged dependent voltage control")

    def __repr__(self) -> str:
        return (f"{type(self).__name__}(controlled_bus={self.controlled_bus.id!r}, "
                f"target={self.target_value}, status={self.merge_status.value})")


class GeneratorVoltageControl(VoltageControl):
    """Voltage control by the reactive power of generators at controller buses."""

    type = VoltageControlType.GENERATOR

    def add_controller_element(self, bus) -> None:
        super().add_controller_element(bus)
        bus.generator_voltage_control = self
        bus._generator_voltage_control_enabled = True

    def attach(self) -> "GeneratorVoltageControl":
        self.controlled_bus.generator_voltage_control = self
        return self

    def is_controller_enabled(self, bus) -> bool:
        return bus.generator_voltage_control_enabled

    def is_local_control(self) -> bool:
        controllers = self.get_merged_controller_elements()
        return len(controllers) == 1 and controllers[0] is self.controlled_bus

    def update_reactive_keys(self) -> None:
        update_reactive_keys(self.get_merged_controller_elements(), self.is_controller_enabled)


class TransformerVoltageControl(VoltageControl):
    """Voltage control by the tap ratio r1 of transformers."""

    type = VoltageControlType.TRANSFORMER

    def add_controller_element(self, branch) -> None:
        super().add_controller_element(branch)
        branch.voltage_control = self
        branch._voltage_control_enabled = True

    def attach(self) -> "TransformerVoltageControl":
        self.controlled_bus.transformer_voltage_control = self
        return self

    def is_controller_enabled(self, branch) -> bool:
        return branch.voltage_control_enabled


class ShuntVoltageControl(VoltageControl):
    """Voltage control by the susceptance of shunt compensators."""

    type = VoltageControlType.SHUNT

    def add_controller_element(self, shunt) -> None:
        super().add_controller_element(shunt)
        shunt.voltage_control = self
        shunt._voltage_control_enabled = True

    def attach(self) -> "ShuntVoltageControl":
        self.controlled_bus.shunt_voltage_control = self
        return self

    def is_controller_enabled(self, shunt) -> bool:
        return shunt.voltage_control_enabled


def update_reactive_keys(controller_buses: List, is_enabled) -> None:
    """
    Set the reactive share of every controller bus.

    Shares follow the reactive keys of the generators of each bus, are 0 for
    disabled or non-regulating buses and sum to 1 over the others (0 if no
    bus regulates).
    """
    keys = []
    for bus in controller_buses:
        if bus.disabled or not is_enabled(bus):
            keys.append(0.0)
        else:
            keys.append(sum(g.reactive_key for g in bus.generators))
    total = sum(keys)
    for bus, key in zip(controller_buses, keys):
        bus.remote_control_reactive_percent = 0.0 if total == 0 else key / total


def create_generator_voltage_control(controlled_bus, controller_buses: List,
                                     target_value: float) -> GeneratorVoltageControl:
    """Build and attach a generator voltage control."""
    vc = GeneratorVoltageControl(controlled_bus, target_value).attach()
    for bus in controller_buses:
        vc.add_controller_element(bus)
    return vc


def create_transformer_voltage_control(controlled_bus, controller_branches: List,
                                       target_value: float) -> TransformerVoltageControl:
    """Build and attach a transformer voltage control."""
    vc = TransformerVoltageControl(controlled_bus, target_value).attach()
    for branch in controller_branches:
        vc.add_controller_element(branch)
    return vc


def create_shunt_voltage_control(controlled_bus, controller_shunts: List,
                                 target_value: float) -> ShuntVoltageControl:
    """Build and attach a shunt voltage control."""
    vc = ShuntVoltageControl(controlled_bus, target_value).attach()
    for shunt in controller_shunts:
        if not shunt.voltage_control_capability:
            raise ValueError(f"Shunt {shunt.id!r} has no voltage control capability")
        vc.add_controller_element(shunt)
    return vc


# =============================================================================
# Branch controls
# =============================================================================

class GeneratorReactivePowerControl:
    """
    Reactive power flow control of one branch side by generators.

    Attributes
    ----------
    controlled_branch : LfBranch
        Branch whose reactive flow is regulated.
    controlled_side : int
        1 or 2.
    target_value : float
        Reactive power target [p.u.].
    controller_buses : List[LfBus]
        Buses whose generators regulate the flow.
    """

    def __init__(self, controlled_branch, controlled_side: int, target_value: float) -> None:
        if controlled_side not in (1, 2):
            raise ValueError(f"controlled_side must be 1 or 2, got {controlled_side}")
        self.controlled_branch = controlled_branch
        self.controlled_side = controlled_side
        self.target_value = target_value
        self.controller_buses: List = []
        controlled_branch.generator_reactive_power_control = self

    def add_controller_bus(self, bus) -> None:
        self.controller_buses.append(bus)
        bus.generator_reactive_power_control = self
        bus._generator_reactive_power_control_enabled = True

    def update_reactive_keys(self) -> None:
        update_reactive_keys(self.controller_buses,
                             lambda bus: bus.generator_reactive_power_control_enabled)


class TransformerPhaseControl:
    """
    Phase shifting transformer control.

    Attributes
    ----------
    controller_branch : LfBranch
        Phase shifter whose a1 moves.
    controlled_branch : LfBranch
        Branch whose active power is regulated (often the same branch).
    controlled_side : int
        1 or 2.
    mode : str or None
        "CONTROLLER" or "LIMITER"; None defers to the creation parameters.
    unit : str
        "MW" (active power) or "A" (current).
    target_value : float
        Active power target [p.u.].
    """

    UNITS = ("MW", "A")

    def __init__(self, controller_branch, controlled_branch, controlled_side: int,
                 target_value: float, unit: str = "MW", mode: Optional[str] = None) -> None:
        if unit not in self.UNITS:
            raise ValueError(f"unit must be one of {self.UNITS}, got {unit!r}")
        if controlled_side not in (1, 2):
            raise ValueError(f"controlled_side must be 1 or 2, got {controlled_side}")
        self.controller_branch = controller_branch
        self.controlled_branch = controlled_branch
        self.controlled_side = controlled_side
        self.target_value = target_value
        self.unit = unit
        self.mode = mode
        controller_branch.phase_control = self
        controller_branch._phase_control_enabled = True
        controlled_branch.phase_control = self

    def effective_mode(self, parameters) -> str:
        return self.mode if self.mode is not None else parameters.phase_control_mode
