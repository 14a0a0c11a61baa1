"""
Tests for NetworkState class.

Author: Manuel Schwenke
Date: 2025-02-05
"""

import numpy as np
import pytest

from ac.creator import create_ac_equation_system
from asym.creator import create_asymmetrical_ac_equation_system
from core.network_state import NetworkState, initialize_state_vector
from equations.variable import AcVariableType


def create_state(n_buses: int = 3, n_branches: int = 2) -> NetworkState:
    return NetworkState(
        voltage_magnitudes_pu=np.linspace(0.98, 1.02, n_buses),
        voltage_angles_rad=np.linspace(0.0, -0.05, n_buses),
        tap_ratios=np.ones(n_branches),
        phase_shifts_rad=np.zeros(n_branches),
        shunt_susceptances_pu=np.array([], dtype=np.float64),
        source_case="test_network",
        timestamp="2025-02-05T10:30:00",
    )


class TestNetworkState:
    """Test cases for NetworkState class."""

    def test_create_network_state(self):
        """Test basic NetworkState creation."""
        state = create_state()
        assert state.n_buses == 3
        assert state.n_branches == 2
        assert state.source_case == "test_network"

    def test_voltage_length_mismatch(self):
        with pytest.raises(ValueError):
            NetworkState(np.ones(3), np.zeros(2), np.ones(1), np.zeros(1), np.zeros(0))

    def test_branch_length_mismatch(self):
        with pytest.raises(ValueError):
            NetworkState(np.ones(3), np.zeros(3), np.ones(2), np.zeros(1), np.zeros(0))

    def test_from_network(self, transformer_voltage_control_network):
        """Test that the snapshot reads buses, branches and their pi-models."""
        network = transformer_voltage_control_network
        network.get_bus(2).v = 0.97
        network.get_branch(1).pi_model.r1 = 1.03
        state = NetworkState.from_network(network)
        assert state.n_buses == len(network.buses)
        assert state.n_branches == len(network.branches)
        assert state.voltage_magnitudes_pu[2] == pytest.approx(0.97)
        assert state.tap_ratios[1] == pytest.approx(1.03)
        assert state.source_case == network.id
        assert state.timestamp

    def test_restore(self, shunt_voltage_control_network):
        """Test that restoring undoes changes made after the snapshot."""
        network = shunt_voltage_control_network
        state = NetworkState.from_network(network)
        network.get_bus(1).v = 0.9
        network.get_branch(0).pi_model.a1 = 0.2
        network.get_shunt(0).b = 0.5
        state.restore(network)
        assert network.get_bus(1).v == pytest.approx(state.voltage_magnitudes_pu[1])
        assert network.get_branch(0).pi_model.a1 == pytest.approx(0.0)
        assert network.get_shunt(0).b == pytest.approx(0.1)

    def test_restore_mismatch(self, three_bus_network, two_bus_network):
        state = NetworkState.from_network(three_bus_network)
        with pytest.raises(ValueError):
            state.restore(two_bus_network)


class TestInitialState:
    """Test cases for the initial value of each variable."""

    def test_state_array_follows_variable_rows(self, phase_control_network):
        es = create_ac_equation_system(phase_control_network)
        x = initialize_state_vector(es, phase_control_network)
        assert len(x) == es.index.column_count
        np.testing.assert_allclose(es.state_vector.get(), x)
        a1 = es.variable_set.get_variable(2, AcVariableType.BRANCH_ALPHA1)
        assert x[a1.row] == pytest.approx(0.05)
        for variable in es.index.sorted_variables_to_find():
            if variable.type is AcVariableType.BUS_V:
                assert x[variable.row] == phase_control_network.get_bus(variable.element_num).v

    def test_shunt_susceptance(self, shunt_voltage_control_network):
        es = create_ac_equation_system(shunt_voltage_control_network)
        x = initialize_state_vector(es, shunt_voltage_control_network)
        b = es.variable_set.get_variable(0, AcVariableType.SHUNT_B)
        assert x[b.row] == pytest.approx(0.1)

    def test_dummy_flows_start_at_zero(self, zero_impedance_network):
        es = create_ac_equation_system(zero_impedance_network)
        x = initialize_state_vector(es, zero_impedance_network)
        assert x[es.variable_set.get_variable(1, AcVariableType.DUMMY_P).row] == 0.0

    def test_sequence_voltages_start_at_zero(self, asymmetrical_network):
        """Test that the zero and negative sequences start from the balanced solution."""
        es = create_asymmetrical_ac_equation_system(asymmetrical_network)
        x = initialize_state_vector(es, asymmetrical_network)
        for variable in es.index.sorted_variables_to_find():
            if variable.type in (AcVariableType.BUS_V_ZERO, AcVariableType.BUS_PHI_ZERO,
                                 AcVariableType.BUS_V_NEGATIVE, AcVariableType.BUS_PHI_NEGATIVE):
                assert x[variable.row] == 0.0

    def test_unknown_variable_type_defaults_to_zero(self):
        state = create_state()

        class Stub:
            element_num = 0
            type = AcVariableType.DUMMY_Q

        assert state.value_of(Stub()) == 0.0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
