"""
Tests for the target vector of the AC equation system.

Author: Manuel Schwenke
Date: 2025-02-05
"""

import pytest

from ac.creator import create_ac_equation_system
from ac.target import TargetVector, bus_target_v
from conftest import create_two_bus_network, create_zero_impedance_network
from core.exceptions import StructuralError
from equations.equation import AcEquationType
from network.controls import create_generator_voltage_control
from network.model import LfGenerator


def create_targets(network):
    es = create_ac_equation_system(network)
    return es, TargetVector(network, es).start_listening()


def target_of(es, targets, num, equation_type) -> float:
    return targets.get(es.get_equation(num, equation_type))


# =============================================================================
# Bus targets
# =============================================================================

class TestBusTargets:
    """Tests for the targets of the bus balance and voltage equations."""

    def test_injection_targets(self, three_bus_network):
        """P and Q targets are generation minus load."""
        es, targets = create_targets(three_bus_network)
        assert target_of(es, targets, 1, AcEquationType.BUS_TARGET_P) == pytest.approx(0.3)
        assert target_of(es, targets, 2, AcEquationType.BUS_TARGET_P) == pytest.approx(-0.6)
        assert target_of(es, targets, 2, AcEquationType.BUS_TARGET_Q) == pytest.approx(-0.2)

    def test_voltage_targets(self, three_bus_network):
        es, targets = create_targets(three_bus_network)
        assert target_of(es, targets, 0, AcEquationType.BUS_TARGET_V) == pytest.approx(1.02)
        assert target_of(es, targets, 1, AcEquationType.BUS_TARGET_V) == pytest.approx(1.01)
        assert target_of(es, targets, 0, AcEquationType.BUS_TARGET_PHI) == 0.0

    def test_array_follows_rows(self, three_bus_network):
        es, targets = create_targets(three_bus_network)
        assert len(targets.array) == es.index.row_count
        for equation in es.index.sorted_equations_to_solve():
            assert targets.array[equation.row] == targets.get(equation)

    def test_voltage_target_with_slope(self):
        """A droop moves the voltage target by the slope times the reactive balance."""
        network = create_two_bus_network(voltage_control=True)
        b1 = network.get_bus(1)
        b1.add_generator(LfGenerator("svc", target_q=0.05, target_v=1.0, slope=0.02))
        create_generator_voltage_control(b1, [b1], 1.0)
        es, targets = create_targets(network)
        assert target_of(es, targets, 1, AcEquationType.BUS_TARGET_V) == pytest.approx(1.0 - 0.02 * (0.2 - 0.05))
        assert len(es.get_equation(1, AcEquationType.BUS_TARGET_V).terms) > 1

    def test_bus_without_voltage_control(self, three_bus_network):
        with pytest.raises(StructuralError):
            bus_target_v(three_bus_network.get_bus(2))

    def test_distributed_slack_target(self, three_bus_network):
        """The slack imbalance is shared relative to the first slack bus."""
        three_bus_network.get_bus(1).slack = True
        es, targets = create_targets(three_bus_network)
        assert target_of(es, targets, 1, AcEquationType.BUS_DISTR_SLACK_P) == pytest.approx(0.3 - 0.0)

    def test_reactive_power_distribution_target(self, remote_voltage_control_network):
        """A controller holds its share of the summed reactive targets."""
        es, targets = create_targets(remote_voltage_control_network)
        expected = (1.0 / 3.0 - 1.0) * 0.15 + (1.0 / 3.0) * (0.05 + 0.10)
        assert target_of(es, targets, 3, AcEquationType.DISTR_Q) == pytest.approx(expected)

    def test_merged_control_uses_main_target(self):
        network = create_zero_impedance_network(merged_controls=True)
        es, targets = create_targets(network)
        assert target_of(es, targets, 1, AcEquationType.BUS_TARGET_V) == pytest.approx(1.01)
        assert bus_target_v(network.get_bus(2)) == pytest.approx(1.01)


# =============================================================================
# Branch and shunt targets
# =============================================================================

class TestBranchTargets:
    """Tests for the targets of the branch and shunt equations."""

    def test_phase_control_target(self, phase_control_network):
        es, targets = create_targets(phase_control_network)
        assert target_of(es, targets, 2, AcEquationType.BRANCH_TARGET_P) == pytest.approx(0.2)

    def test_pinned_phase_shift_follows_tap_changes(self, phase_control_network):
        """Once the control is off the phase shift target tracks the branch value."""
        es, targets = create_targets(phase_control_network)
        pst = phase_control_network.get_branch(2)
        pst.phase_control_enabled = False
        assert target_of(es, targets, 2, AcEquationType.BRANCH_TARGET_ALPHA1) == pytest.approx(0.05)
        pst.set_a1(0.08)
        assert target_of(es, targets, 2, AcEquationType.BRANCH_TARGET_ALPHA1) == pytest.approx(0.08)

    def test_pinned_tap_ratio(self, transformer_voltage_control_network):
        es, targets = create_targets(transformer_voltage_control_network)
        t12 = transformer_voltage_control_network.get_branch(1)
        t12.voltage_control_enabled = False
        assert target_of(es, targets, 1, AcEquationType.BRANCH_TARGET_RHO1) == pytest.approx(1.0)
        t12.set_r1(1.05)
        assert target_of(es, targets, 1, AcEquationType.BRANCH_TARGET_RHO1) == pytest.approx(1.05)

    def test_pinned_susceptance(self, shunt_voltage_control_network):
        es, targets = create_targets(shunt_voltage_control_network)
        shunt = shunt_voltage_control_network.get_shunt(0)
        shunt.voltage_control_enabled = False
        assert target_of(es, targets, 0, AcEquationType.SHUNT_TARGET_B) == pytest.approx(0.1)
        shunt.set_b(0.12)
        assert target_of(es, targets, 0, AcEquationType.SHUNT_TARGET_B) == pytest.approx(0.12)

    def test_reactive_power_control_target(self, reactive_power_control_network):
        es, targets = create_targets(reactive_power_control_network)
        assert target_of(es, targets, 1, AcEquationType.BRANCH_TARGET_Q) == pytest.approx(0.1)

    def test_zero_impedance_targets(self):
        """The angle coupling compensates the phase shift, the voltage coupling targets 0."""
        network = create_zero_impedance_network()
        network.get_branch(1).pi_model.a1 = 0.1
        es, targets = create_targets(network)
        assert target_of(es, targets, 1, AcEquationType.ZERO_PHI) == pytest.approx(-0.1)
        assert target_of(es, targets, 1, AcEquationType.ZERO_V) == 0.0

    def test_dummy_targets_after_disabling(self, zero_impedance_network):
        es, targets = create_targets(zero_impedance_network)
        zero_impedance_network.get_branch(1).disabled = True
        assert target_of(es, targets, 1, AcEquationType.DUMMY_TARGET_P) == 0.0
        assert target_of(es, targets, 1, AcEquationType.DUMMY_TARGET_Q) == 0.0
        assert len(targets.array) == es.index.row_count


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
