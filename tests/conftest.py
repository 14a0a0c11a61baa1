"""
Shared fixtures of the test-suite: small per-unit networks.

Every builder returns a fresh LfNetwork so that tests may mutate it freely.
Builders are also exposed through factory fixtures for tests that need two
identical networks (vectorized against scalar evaluation, for instance).

Author: Manuel Schwenke
Date: 2025-02-05
"""

import numpy as np
import pytest

from core.network_state import initialize_state_vector
from equations.variable import AcVariableType
from network.asym import LfAsymBus, LfAsymGenerator, LfAsymLine, LfAsymLoad
from network.controls import (
    GeneratorReactivePowerControl,
    TransformerPhaseControl,
    create_generator_voltage_control,
    create_shunt_voltage_control,
    create_transformer_voltage_control,
)
from network.model import LfBranch, LfBus, LfGenerator, LfLoadModel, LfNetwork, LfShunt, PiModel


# =============================================================================
# Helpers
# =============================================================================

def line(r: float = 0.01, x: float = 0.1, b: float = 0.02) -> PiModel:
    """Symmetric line pi-model with half of the charging at each side."""
    return PiModel(r=r, x=x, b1=b / 2.0, b2=b / 2.0)


def add_slack_bus(network: LfNetwork, bus_id: str = "b0", target_v: float = 1.02,
                  voltage_control: bool = True) -> LfBus:
    bus = network.add_bus(LfBus(bus_id, slack=True, reference=True))
    bus.add_generator(LfGenerator(f"g_{bus_id}", target_v=target_v))
    if voltage_control:
        create_generator_voltage_control(bus, [bus], target_v)
    return bus


def initialize_state(equation_system, network, seed: int = 0, perturbation: float = 0.0) -> np.ndarray:
    """
    Initialise the state from the network, optionally with a random offset.

    Zero and negative sequence voltages get a small non-zero magnitude and
    distinct angles so that their derivatives do not vanish.
    """
    x = initialize_state_vector(equation_system, network)
    rng = np.random.default_rng(seed)
    for variable in equation_system.index.sorted_variables_to_find():
        if variable.type in (AcVariableType.BUS_V_ZERO, AcVariableType.BUS_V_NEGATIVE):
            x[variable.row] = 0.03 + 0.01 * variable.element_num
        elif variable.type in (AcVariableType.BUS_PHI_ZERO, AcVariableType.BUS_PHI_NEGATIVE):
            x[variable.row] = 0.4 * (variable.element_num + 1)
        elif perturbation > 0 and variable.type in (AcVariableType.BUS_V, AcVariableType.BUS_PHI):
            x[variable.row] += rng.uniform(-perturbation, perturbation)
    equation_system.state_vector.set(x)
    return x


# =============================================================================
# Balanced networks
# =============================================================================

def create_two_bus_network(voltage_control: bool = False) -> LfNetwork:
    """
    Slack bus feeding a load through one line::

        b0 (slack, reference) --- l01 --- b1 (load 0.5 + j0.2)
    """
    network = LfNetwork("two_bus")
    add_slack_bus(network, voltage_control=voltage_control)
    b1 = network.add_bus(LfBus("b1", load_target_p=0.5, load_target_q=0.2))
    network.add_branch(LfBranch("l01", network.get_bus(0), b1, line()))
    return network


def create_three_bus_network() -> LfNetwork:
    """
    Meshed network with a voltage controlled generator::

        b0 (slack, V=1.02) --- l01 --- b1 (P=0.3, V=1.01)
              \\                          |
               l02                       l12
                 \\                       |
                  +------------------ b2 (load 0.6 + j0.2)
    """
    network = LfNetwork("three_bus")
    b0 = add_slack_bus(network)
    b1 = network.add_bus(LfBus("b1"))
    b2 = network.add_bus(LfBus("b2", load_target_p=0.6, load_target_q=0.2))
    b1.add_generator(LfGenerator("g1", target_p=0.3, target_v=1.01))
    create_generator_voltage_control(b1, [b1], 1.01)
    network.add_branch(LfBranch("l01", b0, b1, line()))
    network.add_branch(LfBranch("l12", b1, b2, line(0.02, 0.15, 0.03), disconnection_allowed_side2=True))
    network.add_branch(LfBranch("l02", b0, b2, line(0.015, 0.12, 0.02)))
    return network


def create_transformer_voltage_control_network() -> LfNetwork:
    """
    Tap changer regulating its low voltage bus::

        b0 (slack) --- l01 --- b1 === t12 (r1) === b2 (load, V target 0.98)
    """
    network = LfNetwork("transformer_voltage_control")
    b0 = add_slack_bus(network)
    b1 = network.add_bus(LfBus("b1"))
    b2 = network.add_bus(LfBus("b2", load_target_p=0.4, load_target_q=0.15))
    network.add_branch(LfBranch("l01", b0, b1, line()))
    t12 = network.add_branch(LfBranch("t12", b1, b2, PiModel(r=0.005, x=0.08, r1=1.0),
                                      branch_type="TRANSFORMER"))
    create_transformer_voltage_control(b2, [t12], 0.98)
    return network


def create_shunt_voltage_control_network() -> LfNetwork:
    """Two-bus network whose load bus is held at 1.0 by a switchable shunt."""
    network = create_two_bus_network(voltage_control=True)
    b1 = network.get_bus(1)
    shunt = network.add_shunt(LfShunt("sh1", b1, b=0.1, voltage_control_capability=True))
    create_shunt_voltage_control(b1, [shunt], 1.0)
    return network


def create_phase_control_network(mode=None) -> LfNetwork:
    """
    Phase shifter in parallel with a line, regulating its own active flow::

        b0 (slack) --- l01 --- b1 --- l12 --- b2 (load)
                                 \\           /
                                  === pst ===
    """
    network = LfNetwork("phase_control")
    b0 = add_slack_bus(network)
    b1 = network.add_bus(LfBus("b1"))
    b2 = network.add_bus(LfBus("b2", load_target_p=0.5, load_target_q=0.1))
    network.add_branch(LfBranch("l01", b0, b1, line()))
    network.add_branch(LfBranch("l12", b1, b2, line(0.01, 0.1, 0.0)))
    pst = network.add_branch(LfBranch("pst", b1, b2, PiModel(r=0.002, x=0.05, a1=0.05),
                                      branch_type="TRANSFORMER", phase_control_capability=True))
    TransformerPhaseControl(pst, pst, 1, 0.2, mode=mode)
    return network


def create_remote_voltage_control_network() -> LfNetwork:
    """
    Three generator buses sharing the voltage control of a remote bus::

        b1 ---+
        b2 ---+--- b4 (V target 1.0) --- b0 (slack)
        b3 ---+
    """
    network = LfNetwork("remote_voltage_control")
    b0 = add_slack_bus(network)
    controllers = []
    for i in (1, 2, 3):
        bus = network.add_bus(LfBus(f"b{i}"))
        bus.add_generator(LfGenerator(f"g{i}", target_p=0.1, target_q=0.05 * i))
        controllers.append(bus)
    b4 = network.add_bus(LfBus("b4", load_target_p=0.6, load_target_q=0.3))
    for bus in controllers:
        network.add_branch(LfBranch(f"l{bus.num}4", bus, b4, line(0.01, 0.05 + 0.01 * bus.num, 0.0)))
    network.add_branch(LfBranch("l04", b0, b4, line()))
    create_generator_voltage_control(b4, controllers, 1.0)
    return network


def create_reactive_power_control_network() -> LfNetwork:
    """Generator at b1 regulating the reactive flow entering line l12 at side 1."""
    network = LfNetwork("reactive_power_control")
    b0 = add_slack_bus(network)
    b1 = network.add_bus(LfBus("b1"))
    b2 = network.add_bus(LfBus("b2", load_target_p=0.4, load_target_q=0.2))
    b1.add_generator(LfGenerator("g1", target_p=0.2))
    network.add_branch(LfBranch("l01", b0, b1, line()))
    l12 = network.add_branch(LfBranch("l12", b1, b2, line()))
    network.add_branch(LfBranch("l02", b0, b2, line()))
    rpc = GeneratorReactivePowerControl(l12, 1, 0.1)
    rpc.add_controller_bus(b1)
    return network


def create_zero_impedance_network(merged_controls: bool = False) -> LfNetwork:
    """
    Bus coupler between two buses::

        b0 (slack) --- l01 --- b1 --- s12 (zero impedance) --- b2 (load)

    With ``merged_controls`` both coupled buses regulate their voltage with
    a local generator (targets 1.01 and 1.0), which merges the two controls.
    """
    network = LfNetwork("zero_impedance")
    add_slack_bus(network, voltage_control=not merged_controls)
    b1 = network.add_bus(LfBus("b1"))
    b2 = network.add_bus(LfBus("b2", load_target_p=0.3, load_target_q=0.1))
    network.add_branch(LfBranch("l01", network.get_bus(0), b1, line()))
    network.add_branch(LfBranch("s12", b1, b2, PiModel(), branch_type="SWITCH"))
    if merged_controls:
        for bus, target_v in ((b1, 1.01), (b2, 1.0)):
            bus.add_generator(LfGenerator(f"g_{bus.id}", target_p=0.1, target_v=target_v))
            create_generator_voltage_control(bus, [bus], target_v)
    return network


def create_load_model_network() -> LfNetwork:
    """Three-bus network whose load bus also carries a ZIP load and a fixed shunt."""
    network = create_three_bus_network()
    b2 = network.get_bus(2)
    b2.load_model = LfLoadModel.zip(0.2, 0.05, 0.3, 0.3, 0.4)
    network.add_shunt(LfShunt("sh2", b2, g=0.01, b=0.05))
    return network


# =============================================================================
# Sequence domain networks
# =============================================================================

ZERO_SEQUENCE_LINE = PiModel(r=0.03, x=0.3, b1=0.006, b2=0.006)
NEGATIVE_SEQUENCE_LINE = PiModel(r=0.01, x=0.1, b1=0.01, b2=0.01)


def sequence_line(pi_model: PiModel) -> LfAsymLine:
    """Decoupled line whose positive sequence is the branch pi-model."""
    return LfAsymLine.from_pi_models(ZERO_SEQUENCE_LINE.copy(), pi_model.copy(), NEGATIVE_SEQUENCE_LINE.copy())


def create_asymmetrical_network(coupled: bool = False, positive_sequence_as_current: bool = False) -> LfNetwork:
    """
    Three wye buses with an unbalanced constant power load::

        b0 (slack, generator) --- l01 --- b1 --- l12 --- b2 (unbalanced load)

    With ``coupled`` phase c of l12 is open, which couples its sequences.
    """
    network = LfNetwork("asymmetrical")
    b0 = add_slack_bus(network)
    b0.generators[0].asym = LfAsymGenerator(gz=0.0, bz=-20.0, gn=0.0, bn=-10.0)
    b1 = network.add_bus(LfBus("b1"))
    b2 = network.add_bus(LfBus("b2"))
    b0.asym = LfAsymBus()
    b1.asym = LfAsymBus()
    b2.asym = LfAsymBus(load=LfAsymLoad(0.2, 0.05, 0.3, 0.1, 0.25, 0.08),
                        positive_sequence_as_current=positive_sequence_as_current)
    for branch_id, bus1, bus2 in (("l01", b0, b1), ("l12", b1, b2)):
        pi_model = line()
        branch = network.add_branch(LfBranch(branch_id, bus1, bus2, pi_model))
        branch.asym_line = sequence_line(pi_model)
    if coupled:
        network.get_branch(1).asym_line.open_phases(phase_open_c=True)
    return network


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def two_bus_network() -> LfNetwork:
    return create_two_bus_network()


@pytest.fixture
def three_bus_network() -> LfNetwork:
    return create_three_bus_network()


@pytest.fixture
def transformer_voltage_control_network() -> LfNetwork:
    return create_transformer_voltage_control_network()


@pytest.fixture
def shunt_voltage_control_network() -> LfNetwork:
    return create_shunt_voltage_control_network()


@pytest.fixture
def phase_control_network() -> LfNetwork:
    return create_phase_control_network()


@pytest.fixture
def remote_voltage_control_network() -> LfNetwork:
    return create_remote_voltage_control_network()


@pytest.fixture
def reactive_power_control_network() -> LfNetwork:
    return create_reactive_power_control_network()


@pytest.fixture
def zero_impedance_network() -> LfNetwork:
    return create_zero_impedance_network()


@pytest.fixture
def load_model_network() -> LfNetwork:
    return create_load_model_network()


@pytest.fixture
def asymmetrical_network() -> LfNetwork:
    return create_asymmetrical_network()


@pytest.fixture
def network_builders():
    """Builders by name, for tests that need several identical networks."""
    return {
        "three_bus": create_three_bus_network,
        "transformer_voltage_control": create_transformer_voltage_control_network,
        "shunt_voltage_control": create_shunt_voltage_control_network,
        "phase_control": create_phase_control_network,
        "remote_voltage_control": create_remote_voltage_control_network,
        "reactive_power_control": create_reactive_power_control_network,
        "zero_impedance": create_zero_impedance_network,
        "load_model": create_load_model_network,
    }
