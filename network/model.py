"""
Network Model Module
====================

Light per-unit network model consumed by the equation system.

The model carries what the equations need and nothing more: element
numbering, topology, pi-model parameters, targets, control objects and a
change-notification interface (LfNetworkListener) to which the equation
system updater subscribes.

Classes
-------
LfNetworkListener
    Receiver of network events (control mode switches, disabling, taps).
PiModel
    Pi-equivalent of a branch, including tap ratio r1 and phase shift a1.
LfBus, LfBranch, LfShunt, LfGenerator, LfLoadModel
    Network elements.
LfNetwork
    Container owning the elements and the listeners.

Notes
-----
All quantities are per-unit on the network base; angles are in radians.
Element numbers are dense, starting at 0, per element type.

Author: Manuel Schwenke
Date: 2025-02-05
"""

from __future__ import annotations

import logging
import math
from typing import Dict, List, Optional, Tuple

from equations.variable import ElementType

logger = logging.getLogger(__name__)


# =============================================================================
# Listener interface
# =============================================================================

class LfNetworkListener:
    """Receiver of network change events. Default implementations do nothing."""

    def on_generator_voltage_control_change(self, controller_bus: "LfBus", enabled: bool) -> None:
        pass

    def on_generator_reactive_power_control_change(self, controller_bus: "LfBus", enabled: bool) -> None:
        pass

    def on_transformer_voltage_control_change(self, controller_branch: "LfBranch", enabled: bool) -> None:
        pass

    def on_shunt_voltage_control_change(self, controller_shunt: "LfShunt", enabled: bool) -> None:
        pass

    def on_transformer_phase_control_change(self, controller_branch: "LfBranch", enabled: bool) -> None:
        pass

    def on_disable_change(self, element: "LfElement", disabled: bool) -> None:
        pass

    def on_branch_connection_status_change(self, branch: "LfBranch", side: int, connected: bool) -> None:
        pass

    def on_tap_position_change(self, branch: "LfBranch") -> None:
        pass

    def on_shunt_susceptance_change(self, shunt: "LfShunt") -> None:
        pass

    def on_zero_impedance_network_split(self, initial_network, split_networks: List) -> None:
        pass

    def on_zero_impedance_network_merge(self, network1, network2, merged_network) -> None:
        pass

    def on_zero_impedance_network_spanning_tree_change(self, branch: "LfBranch", spanning_tree: bool) -> None:
        pass


class EvaluableConstant:
    """Constant standing in for a flow term (open or missing side)."""

    def __init__(self, value: float) -> None:
        self.value = value

    def eval(self) -> float:
        return self.value

    def __repr__(self) -> str:
        return f"EvaluableConstant({self.value})"


ZERO = EvaluableConstant(0.0)
NAN = EvaluableConstant(math.nan)


# =============================================================================
# Elements
# =============================================================================

class LfElement:
    """
    Base of all numbered network elements.

    Attributes
    ----------
    id : str
        Unique identifier within its element type.
    num : int
        Dense number assigned by the owning network, -1 until added.
    network : LfNetwork or None
        Owning network.
    """

    element_type: ElementType = None

    def __init__(self, element_id: str) -> None:
        self.id = element_id
        self.num = -1
        self.network: Optional[LfNetwork] = None
        self._disabled = False

    @property
    def disabled(self) -> bool:
        return self._disabled

    @disabled.setter
    def disabled(self, disabled: bool) -> None:
        if disabled == self._disabled:
            return
        self._disabled = disabled
        self._on_disable_change(disabled)
        if self.network is not None:
            for listener in self.network.listeners:
                listener.on_disable_change(self, disabled)

    def _on_disable_change(self, disabled: bool) -> None:
        """Hook run before listeners are notified."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, num={self.num})"


class PiModel:
    """
    Pi-equivalent branch model.

    The series impedance r + jx sits between two shunt admittances
    g1 + jb1 (side 1) and g2 + jb2 (side 2). An ideal transformer of ratio
    r1 and phase shift a1 sits on side 1; side 2 has ratio 1 and no shift.

    Attributes
    ----------
    r, x : float
        Series resistance and reactance.
    g1, b1, g2, b2 : float
        Shunt conductances and susceptances at both sides.
    r1 : float
        Tap ratio at side 1.
    a1 : float
        Phase shift at side 1 [rad].
    """

    R2 = 1.0
    A2 = 0.0

    def __init__(self, r: float = 0.0, x: float = 0.0, g1: float = 0.0, b1: float = 0.0,
                 g2: float = 0.0, b2: float = 0.0, r1: float = 1.0, a1: float = 0.0) -> None:
        self.r = r
        self.x = x
        self.g1 = g1
        self.b1 = b1
        self.g2 = g2
        self.b2 = b2
        self.r1 = r1
        self.a1 = a1

    @property
    def z(self) -> float:
        return math.hypot(self.r, self.x)

    @property
    def y(self) -> float:
        """Series admittance magnitude 1/|z|."""
        return 1.0 / self.z

    @property
    def ksi(self) -> float:
        """Series admittance angle complement, atan2(r, x)."""
        return math.atan2(self.r, self.x)

    def series_admittance(self) -> complex:
        return 1.0 / complex(self.r, self.x)

    def copy(self) -> "PiModel":
        return PiModel(self.r, self.x, self.g1, self.b1, self.g2, self.b2, self.r1, self.a1)

    def __repr__(self) -> str:
        return (f"PiModel(r={self.r}, x={self.x}, g1={self.g1}, b1={self.b1}, "
                f"g2={self.g2}, b2={self.b2}, r1={self.r1}, a1={self.a1})")


class LfGenerator:
    """
    Generating unit attached to a bus.

    Attributes
    ----------
    target_p, target_q : float
        Active and reactive power targets.
    target_v : float
        Voltage target used when the generator regulates voltage.
    slope : float
        Voltage-reactive power droop; non-zero only for static var
        compensators controlling voltage with a slope.
    reactive_key : float
        Weight of the unit in the sharing of a remote voltage control.
    asym : LfAsymGenerator or None
        Sequence-domain equivalent admittances.
    """

    def __init__(self, generator_id: str, target_p: float = 0.0, target_q: float = 0.0,
                 target_v: float = math.nan, slope: float = 0.0, reactive_key: float = 1.0,
                 asym=None) -> None:
        self.id = generator_id
        self.target_p = target_p
        self.target_q = target_q
        self.target_v = target_v
        self.slope = slope
        self.reactive_key = reactive_key
        self.asym = asym
        self.bus: Optional[LfBus] = None

    def __repr__(self) -> str:
        return f"LfGenerator(id={self.id!r})"


class LfLoadModel:
    """
    Voltage dependent (exponential) load model.

    The consumed powers are ``target_p * sum(c * v**n)`` and
    ``target_q * sum(c * v**n)`` over the respective exponential terms.

    Attributes
    ----------
    target_p, target_q : float
        Nominal consumed powers.
    exp_terms_p, exp_terms_q : List[Tuple[float, float]]
        (coefficient c, exponent n) pairs.
    """

    def __init__(self, target_p: float, target_q: float,
                 exp_terms_p: List[Tuple[float, float]],
                 exp_terms_q: List[Tuple[float, float]]) -> None:
        if not exp_terms_p or not exp_terms_q:
            raise ValueError("Load model requires at least one exponential term per power")
        self.target_p = target_p
        self.target_q = target_q
        self.exp_terms_p = list(exp_terms_p)
        self.exp_terms_q = list(exp_terms_q)

    @classmethod
    def zip(cls, target_p: float, target_q: float, z: float, i: float, p: float) -> "LfLoadModel":
        """Classical ZIP model with shares of constant impedance, current and power."""
        terms = [(z, 2.0), (i, 1.0), (p, 0.0)]
        return cls(target_p, target_q, terms, terms)


class LfBus(LfElement):
    """
    Network node.

    Attributes
    ----------
    v, angle : float
        Last known voltage magnitude and angle, used to initialise the state
        and as fallback for variables outside the unknown set.
    nominal_v : float
        Nominal voltage [kV], informative.
    slack : bool
        Bus absorbing active power imbalance.
    reference : bool
        Bus fixing the angle origin.
    load_target_p, load_target_q : float
        Constant part of the consumed powers.
    load_model : LfLoadModel or None
        Voltage dependent part of the consumed powers.
    shunt : LfShunt or None
        Fixed shunt compensator.
    controller_shunt : LfShunt or None
        Shunt compensator with voltage control capability.
    remote_control_reactive_percent : float
        Share of this controller bus in a remote voltage (or reactive power)
        control, maintained by the control objects.
    """

    element_type = ElementType.BUS

    def __init__(self, bus_id: str, nominal_v: float = 1.0, v: float = 1.0, angle: float = 0.0,
                 slack: bool = False, reference: bool = False,
                 load_target_p: float = 0.0, load_target_q: float = 0.0) -> None:
        super().__init__(bus_id)
        self.nominal_v = nominal_v
        self.v = v
        self.angle = angle
        self.slack = slack
        self.reference = reference
        self.load_target_p = load_target_p
        self.load_target_q = load_target_q
        self.load_model: Optional[LfLoadModel] = None
        self.generators: List[LfGenerator] = []
        self.branches: List[LfBranch] = []
        self.shunt: Optional[LfShunt] = None
        self.controller_shunt: Optional[LfShunt] = None
        self.generator_voltage_control = None
        self.transformer_voltage_control = None
        self.shunt_voltage_control = None
        self.generator_reactive_power_control = None
        self._generator_voltage_control_enabled = False
        self._generator_reactive_power_control_enabled = False
        self.remote_control_reactive_percent = 0.0
        self.zero_impedance_network = None
        self.asym = None

    # ------------------------------------------------------------------
    # Targets
    # ------------------------------------------------------------------

    @property
    def generation_target_p(self) -> float:
        return sum(g.target_p for g in self.generators)

    @property
    def generation_target_q(self) -> float:
        return sum(g.target_q for g in self.generators)

    @property
    def target_p(self) -> float:
        """Net active injection target (generation minus constant load)."""
        return self.generation_target_p - self.load_target_p

    @property
    def target_q(self) -> float:
        """Net reactive injection target (generation minus constant load)."""
        return self.generation_target_q - self.load_target_q

    def add_generator(self, generator: LfGenerator) -> LfGenerator:
        generator.bus = self
        self.generators.append(generator)
        return generator

    @property
    def slope(self) -> float:
        """Slope of the first generator controlling voltage with a droop, 0 if none."""
        for generator in self.generators:
            if generator.slope != 0.0:
                return generator.slope
        return 0.0

    def has_generators_with_slope(self) -> bool:
        return self.slope != 0.0

    # ------------------------------------------------------------------
    # Voltage and reactive power controls
    # ------------------------------------------------------------------

    def is_generator_voltage_controlled(self) -> bool:
        vc = self.generator_voltage_control
        return vc is not None and vc.controlled_bus is self

    def is_generator_voltage_controller(self) -> bool:
        vc = self.generator_voltage_control
        return vc is not None and self in vc.controller_elements

    def is_transformer_voltage_controlled(self) -> bool:
        return self.transformer_voltage_control is not None

    def is_shunt_voltage_controlled(self) -> bool:
        return self.shunt_voltage_control is not None

    @property
    def generator_voltage_control_enabled(self) -> bool:
        return self._generator_voltage_control_enabled

    @generator_voltage_control_enabled.setter
    def generator_voltage_control_enabled(self, enabled: bool) -> None:
        if enabled == self._generator_voltage_control_enabled:
            return
        self._generator_voltage_control_enabled = enabled
        if self.network is not None:
            for listener in self.network.listeners:
                listener.on_generator_voltage_control_change(self, enabled)

    @property
    def generator_reactive_power_control_enabled(self) -> bool:
        return self._generator_reactive_power_control_enabled

    @generator_reactive_power_control_enabled.setter
    def generator_reactive_power_control_enabled(self, enabled: bool) -> None:
        if enabled == self._generator_reactive_power_control_enabled:
            return
        self._generator_reactive_power_control_enabled = enabled
        if self.network is not None:
            for listener in self.network.listeners:
                listener.on_generator_reactive_power_control_change(self, enabled)

    def get_voltage_controls(self) -> List:
        """Voltage controls whose controlled bus is this bus, generator first."""
        controls = []
        for vc in (self.generator_voltage_control, self.transformer_voltage_control,
                   self.shunt_voltage_control):
            if vc is not None and vc.controlled_bus is self:
                controls.append(vc)
        return controls


class LfBranch(LfElement):
    """
    Two-terminal element (line or transformer) between two buses.

    A missing bus (None) models a branch open at that side since the
    network was loaded.

    Attributes
    ----------
    bus1, bus2 : LfBus or None
        Terminal buses.
    pi_model : PiModel
        Electrical parameters.
    branch_type : str
        "LINE", "TRANSFORMER" or "SWITCH".
    connected_side1, connected_side2 : bool
        Breaker status at both sides.
    disconnection_allowed_side1, disconnection_allowed_side2 : bool
        Whether open-side terms must be created for a later disconnection.
    phase_control_capability : bool
        True for phase shifting transformers.
    transformer_reactive_power_controller : bool
        True if the tap of this transformer is moved by a reactive power
        control outer loop (r1 becomes a variable held constant).
    spanning_tree_edge : bool
        For zero impedance branches, whether the branch belongs to the
        spanning tree of its zero impedance sub-network.
    asym_line : LfAsymLine or None
        Sequence-domain model.
    """

    element_type = ElementType.BRANCH

    def __init__(self, branch_id: str, bus1: Optional[LfBus], bus2: Optional[LfBus], pi_model: PiModel,
                 branch_type: str = "LINE",
                 disconnection_allowed_side1: bool = False, disconnection_allowed_side2: bool = False,
                 phase_control_capability: bool = False) -> None:
        super().__init__(branch_id)
        self.bus1 = bus1
        self.bus2 = bus2
        self.pi_model = pi_model
        self.branch_type = branch_type
        self._connected_side1 = bus1 is not None
        self._connected_side2 = bus2 is not None
        self.disconnection_allowed_side1 = disconnection_allowed_side1
        self.disconnection_allowed_side2 = disconnection_allowed_side2
        self.phase_control_capability = phase_control_capability
        self.transformer_reactive_power_controller = False
        self.spanning_tree_edge = False
        self.phase_control = None
        self.voltage_control = None
        self.generator_reactive_power_control = None
        self._phase_control_enabled = False
        self._voltage_control_enabled = False
        self.asym_line = None
        self._clear_terms()

    def _clear_terms(self) -> None:
        self.closed_p1 = self.closed_q1 = self.closed_i1 = None
        self.closed_p2 = self.closed_q2 = self.closed_i2 = None
        self.open_p1 = self.open_q1 = self.open_i1 = None
        self.open_p2 = self.open_q2 = self.open_i2 = None
        self.p1 = self.q1 = self.i1 = NAN
        self.p2 = self.q2 = self.i2 = NAN
        self.additional_closed_p1: List = []
        self.additional_closed_q1: List = []
        self.additional_closed_p2: List = []
        self.additional_closed_q2: List = []
        self.additional_open_p1: List = []
        self.additional_open_q1: List = []
        self.additional_open_p2: List = []
        self.additional_open_q2: List = []

    def clear_additional_terms(self) -> None:
        for terms in (self.additional_closed_p1, self.additional_closed_q1,
                      self.additional_closed_p2, self.additional_closed_q2,
                      self.additional_open_p1, self.additional_open_q1,
                      self.additional_open_p2, self.additional_open_q2):
            terms.clear()

    def remove_additional_terms(self, removed) -> None:
        """Forget the additional flow terms listed in ``removed``."""
        removed_ids = {id(term) for term in removed}
        for terms in (self.additional_closed_p1, self.additional_closed_q1,
                      self.additional_closed_p2, self.additional_closed_q2,
                      self.additional_open_p1, self.additional_open_q1,
                      self.additional_open_p2, self.additional_open_q2):
            terms[:] = [term for term in terms if id(term) not in removed_ids]

    # ------------------------------------------------------------------
    # Topology
    # ------------------------------------------------------------------

    def is_zero_impedance(self) -> bool:
        threshold = self.network.low_impedance_threshold if self.network is not None else 1e-8
        return self.pi_model.z < threshold

    @property
    def connected_side1(self) -> bool:
        return self._connected_side1

    @connected_side1.setter
    def connected_side1(self, connected: bool) -> None:
        self._set_connected(1, connected)

    @property
    def connected_side2(self) -> bool:
        return self._connected_side2

    @connected_side2.setter
    def connected_side2(self, connected: bool) -> None:
        self._set_connected(2, connected)

    def _set_connected(self, side: int, connected: bool) -> None:
        current = self._connected_side1 if side == 1 else self._connected_side2
        if connected == current:
            return
        if side == 1:
            self._connected_side1 = connected
        else:
            self._connected_side2 = connected
        if self.network is not None:
            for listener in self.network.listeners:
                listener.on_branch_connection_status_change(self, side, connected)

    def is_connected_at_both_sides(self) -> bool:
        return (self.bus1 is not None and self.bus2 is not None
                and self._connected_side1 and self._connected_side2)

    def _on_disable_change(self, disabled: bool) -> None:
        if self.network is not None and self.is_zero_impedance() \
                and self.bus1 is not None and self.bus2 is not None:
            self.network.update_zero_impedance_networks_on_branch_change(self, disabled)

    # ------------------------------------------------------------------
    # Taps
    # ------------------------------------------------------------------

    def set_r1(self, r1: float) -> None:
        self.pi_model.r1 = r1
        if self.network is not None:
            for listener in self.network.listeners:
                listener.on_tap_position_change(self)

    def set_a1(self, a1: float) -> None:
        self.pi_model.a1 = a1
        if self.network is not None:
            for listener in self.network.listeners:
                listener.on_tap_position_change(self)

    # ------------------------------------------------------------------
    # Controls
    # ------------------------------------------------------------------

    def is_phase_controller(self) -> bool:
        return self.phase_control is not None and self.phase_control.controller_branch is self

    def is_phase_controlled(self) -> bool:
        return self.phase_control is not None and self.phase_control.controlled_branch is self

    def is_voltage_controller(self) -> bool:
        return self.voltage_control is not None

    @property
    def phase_control_enabled(self) -> bool:
        return self._phase_control_enabled

    @phase_control_enabled.setter
    def phase_control_enabled(self, enabled: bool) -> None:
        if enabled == self._phase_control_enabled:
            return
        self._phase_control_enabled = enabled
        if self.network is not None:
            for listener in self.network.listeners:
                listener.on_transformer_phase_control_change(self, enabled)

    @property
    def voltage_control_enabled(self) -> bool:
        return self._voltage_control_enabled

    @voltage_control_enabled.setter
    def voltage_control_enabled(self, enabled: bool) -> None:
        if enabled == self._voltage_control_enabled:
            return
        self._voltage_control_enabled = enabled
        if self.network is not None:
            for listener in self.network.listeners:
                listener.on_transformer_voltage_control_change(self, enabled)


class LfShunt(LfElement):
    """
    Shunt compensator.

    Attributes
    ----------
    bus : LfBus
        Connection bus.
    g, b : float
        Conductance and susceptance.
    voltage_control_capability : bool
        True if the susceptance may be adjusted to control a bus voltage.
    voltage_control : ShuntVoltageControl or None
        Control in which the shunt acts as controller.
    """

    element_type = ElementType.SHUNT_COMPENSATOR

    def __init__(self, shunt_id: str, bus: LfBus, g: float = 0.0, b: float = 0.0,
                 voltage_control_capability: bool = False) -> None:
        super().__init__(shunt_id)
        self.bus = bus
        self.g = g
        self.b = b
        self.voltage_control_capability = voltage_control_capability
        self.voltage_control = None
        self._voltage_control_enabled = False

    def set_b(self, b: float) -> None:
        self.b = b
        if self.network is not None:
            for listener in self.network.listeners:
                listener.on_shunt_susceptance_change(self)

    @property
    def voltage_control_enabled(self) -> bool:
        return self._voltage_control_enabled

    @voltage_control_enabled.setter
    def voltage_control_enabled(self, enabled: bool) -> None:
        if enabled == self._voltage_control_enabled:
            return
        self._voltage_control_enabled = enabled
        if self.network is not None:
            for listener in self.network.listeners:
                listener.on_shunt_voltage_control_change(self, enabled)


# =============================================================================
# Network
# =============================================================================

class LfNetwork:
    """
    Container of the network elements.

    Attributes
    ----------
    buses : List[LfBus]
        Buses indexed by number.
    branches : List[LfBranch]
        Branches indexed by number.
    shunts : List[LfShunt]
        Shunt compensators indexed by number.
    listeners : List[LfNetworkListener]
        Receivers of network events.
    low_impedance_threshold : float
        Series impedance magnitude below which a branch is zero impedance.
    """

    def __init__(self, network_id: str = "network", low_impedance_threshold: float = 1e-8) -> None:
        if low_impedance_threshold <= 0:
            raise ValueError(f"low_impedance_threshold must be positive, got {low_impedance_threshold}")
        self.id = network_id
        self.low_impedance_threshold = low_impedance_threshold
        self.buses: List[LfBus] = []
        self.branches: List[LfBranch] = []
        self.shunts: List[LfShunt] = []
        self.listeners: List[LfNetworkListener] = []
        self._buses_by_id: Dict[str, LfBus] = {}
        self._branches_by_id: Dict[str, LfBranch] = {}
        self.zero_impedance_networks = None

    # ------------------------------------------------------------------
    # Elements
    # ------------------------------------------------------------------

    def add_bus(self, bus: LfBus) -> LfBus:
        if bus.id in self._buses_by_id:
            raise ValueError(f"Bus {bus.id!r} already exists")
        bus.num = len(self.buses)
        bus.network = self
        self.buses.append(bus)
        self._buses_by_id[bus.id] = bus
        return bus

    def add_branch(self, branch: LfBranch) -> LfBranch:
        if branch.id in self._branches_by_id:
            raise ValueError(f"Branch {branch.id!r} already exists")
        branch.num = len(self.branches)
        branch.network = self
        self.branches.append(branch)
        self._branches_by_id[branch.id] = branch
        for bus in (branch.bus1, branch.bus2):
            if bus is not None:
                bus.branches.append(branch)
        return branch

    def add_shunt(self, shunt: LfShunt) -> LfShunt:
        shunt.num = len(self.shunts)
        shunt.network = self
        self.shunts.append(shunt)
        if shunt.voltage_control_capability:
            if shunt.bus.controller_shunt is not None:
                raise ValueError(f"Bus {shunt.bus.id!r} already has a controller shunt")
            shunt.bus.controller_shunt = shunt
        else:
            if shunt.bus.shunt is not None:
                raise ValueError(f"Bus {shunt.bus.id!r} already has a fixed shunt")
            shunt.bus.shunt = shunt
        return shunt

    def get_bus(self, num: int) -> LfBus:
        return self.buses[num]

    def get_branch(self, num: int) -> LfBranch:
        return self.branches[num]

    def get_shunt(self, num: int) -> LfShunt:
        return self.shunts[num]

    def get_bus_by_id(self, bus_id: str) -> Optional[LfBus]:
        return self._buses_by_id.get(bus_id)

    def get_branch_by_id(self, branch_id: str) -> Optional[LfBranch]:
        return self._branches_by_id.get(branch_id)

    def get_element(self, element_type: ElementType, num: int) -> LfElement:
        if element_type is ElementType.BUS:
            return self.buses[num]
        if element_type is ElementType.BRANCH:
            return self.branches[num]
        if element_type is ElementType.SHUNT_COMPENSATOR:
            return self.shunts[num]
        raise ValueError(f"Unknown element type: {element_type}")

    @property
    def slack_buses(self) -> List[LfBus]:
        return [bus for bus in self.buses if bus.slack]

    @property
    def reference_bus(self) -> Optional[LfBus]:
        for bus in self.buses:
            if bus.reference:
                return bus
        return None

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, listener: LfNetworkListener) -> None:
        self.listeners.append(listener)

    def remove_listener(self, listener: LfNetworkListener) -> None:
        self.listeners.remove(listener)

    # ------------------------------------------------------------------
    # Zero impedance sub-networks
    # ------------------------------------------------------------------

    def update_zero_impedance_networks(self) -> None:
        """(Re)build the zero impedance sub-networks and voltage control merge status."""
        from network.zero_impedance import LfZeroImpedanceNetwork
        self.zero_impedance_networks = LfZeroImpedanceNetwork.create(self)
        logger.debug("%d zero impedance sub-networks in network %s",
                     len(self.zero_impedance_networks), self.id)

    def ensure_zero_impedance_networks(self) -> None:
        if self.zero_impedance_networks is None:
            self.update_zero_impedance_networks()

    def update_zero_impedance_networks_on_branch_change(self, branch: LfBranch, disabled: bool) -> None:
        from network.zero_impedance import LfZeroImpedanceNetwork
        if self.zero_impedance_networks is None:
            return
        zn1 = branch.bus1.zero_impedance_network
        zn2 = branch.bus2.zero_impedance_network
        if disabled:
            zn1.remove_branch_and_try_to_split(branch)
        elif zn1 is not zn2:
            LfZeroImpedanceNetwork.add_branch_and_merge(zn1, zn2, branch)
        else:
            zn1.add_branch(branch)

    def __repr__(self) -> str:
        return (f"LfNetwork(id={self.id!r}, buses={len(self.buses)}, "
                f"branches={len(self.branches)}, shunts={len(self.shunts)})")
