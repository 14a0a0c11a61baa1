"""
Tests for the sequence domain (Fortescue) extension.

Test Strategy
-------------
1. Check the symmetrical component transforms and the line admittance model.
2. Check which sequences are balanced at each kind of bus.
3. Compare coupled terms with decoupled terms on a decoupled line.
4. Verify every sequence term derivative against finite differences.
5. Test the unsupported configurations.

Author: Manuel Schwenke
Date: 2025-02-05
"""

import cmath

import numpy as np
import pytest
from numpy.testing import assert_allclose

from ac.target import TargetVector
from asym.branch_terms import (
    AsymmetricalClosedBranchCoupledCurrentEquationTerm,
    AsymmetricalClosedBranchCoupledPowerEquationTerm,
    ClosedBranchSequenceCurrentEquationTerm,
    coupled_sequences,
)
from asym.creator import bus_sequences, create_asymmetrical_ac_equation_system
from asym.fortescue import (
    ComplexPart,
    SequenceType,
    complex_part,
    fortescue_matrix,
    inverse_fortescue_matrix,
    phase_to_sequence_admittance,
    sequence_default,
    sequence_to_phase_admittance,
)
from asym.load_terms import AsymmetricalShuntCurrentEquationTerm, LoadFortescuePowerEquationTerm
from conftest import (
    NEGATIVE_SEQUENCE_LINE,
    ZERO_SEQUENCE_LINE,
    create_asymmetrical_network,
    create_three_bus_network,
    initialize_state,
    line,
)
from core.config import AsymmetricalParameters
from core.exceptions import SingularityError, StructuralError, UnsupportedConfigurationError
from equations.equation import AcEquationType
from equations.variable import AcVariableType
from network.asym import AsymBusVariableType, AsymLoadConnection, AsymLoadType, LfAsymBus, LfAsymLine, LfAsymLoad
from network.controls import create_transformer_voltage_control
from network.model import LfBranch, LfBus, PiModel
from sensitivity.jacobian import JacobianMatrix
from sensitivity.numerical import finite_difference_jacobian

POSITIVE, NEGATIVE, ZERO = SequenceType.POSITIVE, SequenceType.NEGATIVE, SequenceType.ZERO


def create_system(network, asym_parameters=None):
    es = create_asymmetrical_ac_equation_system(network, asym_parameters=asym_parameters)
    initialize_state(es, network, seed=11, perturbation=0.02)
    return es


def assert_jacobian_matches_finite_differences(es) -> None:
    jacobian = JacobianMatrix(es)
    try:
        assert_allclose(jacobian.to_dense(), finite_difference_jacobian(es), atol=1e-5, rtol=1e-5)
    finally:
        jacobian.cleanup()


def find_term(equation, term_class):
    return next(term for term in equation.terms if isinstance(term, term_class))


# =============================================================================
# Symmetrical components
# =============================================================================

class TestFortescue:
    """Tests for the symmetrical component transforms."""

    def test_inverse(self):
        assert_allclose(fortescue_matrix() @ inverse_fortescue_matrix(), np.eye(3), atol=1e-12)

    def test_balanced_voltages_are_positive_sequence(self):
        """A balanced direct phase system has only a positive sequence."""
        a = cmath.exp(2j * cmath.pi / 3)
        vabc = np.array([1.0, a ** 2, a]) * cmath.rect(1.02, 0.1)
        v012 = inverse_fortescue_matrix() @ vabc
        assert_allclose(v012, [0.0, cmath.rect(1.02, 0.1), 0.0], atol=1e-12)

    def test_admittance_transforms_are_inverse(self):
        rng = np.random.default_rng(0)
        y = rng.normal(size=(6, 6)) + 1j * rng.normal(size=(6, 6))
        assert_allclose(sequence_to_phase_admittance(phase_to_sequence_admittance(y)), y, atol=1e-12)

    def test_complex_part_and_defaults(self):
        assert complex_part(1.0 + 2.0j, ComplexPart.REAL) == 1.0
        assert complex_part(1.0 + 2.0j, ComplexPart.IMAGINARY) == 2.0
        bus = LfBus("b", v=1.03, angle=0.2)
        assert sequence_default(bus, POSITIVE) == (1.03, 0.2)
        assert sequence_default(bus, ZERO) == (0.0, 0.0)
        assert sequence_default(bus, NEGATIVE) == (0.0, 0.0)


class TestAsymLine:
    """Tests for the sequence admittance matrix of a line."""

    def test_decoupled_line(self):
        asym_line = LfAsymLine.from_pi_models(ZERO_SEQUENCE_LINE, line(), NEGATIVE_SEQUENCE_LINE)
        assert not asym_line.is_coupled()
        zero = asym_line.sequence_pi_model(0)
        assert zero.r == pytest.approx(0.03)
        assert zero.x == pytest.approx(0.3)
        assert zero.b1 == pytest.approx(0.006)
        assert asym_line.sequence_pi_model(1).b2 == pytest.approx(0.01)

    def test_identical_sequences_have_no_mutual_phase_coupling(self):
        """Equal sequence models give a phase matrix without coupling between phases."""
        asym_line = LfAsymLine.from_pi_models(line(), line(), line())
        yabc = sequence_to_phase_admittance(asym_line.y)
        for i in range(6):
            for j in range(6):
                if i % 3 != j % 3:
                    assert abs(yabc[i, j]) < 1e-12

    def test_open_phase_couples_sequences(self):
        asym_line = LfAsymLine.from_pi_models(ZERO_SEQUENCE_LINE, line(), NEGATIVE_SEQUENCE_LINE)
        asym_line.open_phases(phase_open_c=True)
        assert asym_line.phase_open_c
        assert asym_line.is_coupled()
        yabc = sequence_to_phase_admittance(asym_line.y)
        assert_allclose(yabc[2, :], 0.0, atol=1e-12)
        assert_allclose(yabc[:, 5], 0.0, atol=1e-12)

    def test_from_phase_admittance(self):
        asym_line = LfAsymLine.from_pi_models(ZERO_SEQUENCE_LINE, line(), NEGATIVE_SEQUENCE_LINE)
        rebuilt = LfAsymLine.from_phase_admittance(sequence_to_phase_admittance(asym_line.y))
        assert_allclose(rebuilt.y, asym_line.y, atol=1e-12)

    def test_invalid_shape(self):
        with pytest.raises(ValueError):
            LfAsymLine(np.zeros((3, 3)))

    def test_missing_series_admittance(self):
        with pytest.raises(ValueError):
            LfAsymLine(np.zeros((6, 6))).sequence_pi_model(0)


# =============================================================================
# Sequences per bus
# =============================================================================

class TestBusSequences:
    """Tests for the sequences balanced at a bus."""

    @pytest.mark.parametrize("asym, expected", [
        (LfAsymBus(), [POSITIVE, NEGATIVE, ZERO]),
        (LfAsymBus(has_phase_c=False), [POSITIVE, ZERO]),
        (LfAsymBus(has_phase_b=False, has_phase_c=False), [POSITIVE]),
        (LfAsymBus(variable_type=AsymBusVariableType.DELTA), [POSITIVE, NEGATIVE]),
    ])
    def test_bus_sequences(self, asym, expected):
        bus = LfBus("b")
        bus.asym = asym
        assert bus_sequences(bus) == expected

    def test_delta_bus_with_missing_phase(self):
        bus = LfBus("b")
        bus.asym = LfAsymBus(variable_type=AsymBusVariableType.DELTA, has_phase_a=False)
        with pytest.raises(UnsupportedConfigurationError):
            bus_sequences(bus)

    def test_bus_without_sequence_data(self):
        with pytest.raises(UnsupportedConfigurationError):
            bus_sequences(LfBus("b"))

    @pytest.mark.parametrize("asym, expected", [
        (LfAsymBus(), [POSITIVE, NEGATIVE, ZERO]),
        (LfAsymBus(has_phase_c=False), [POSITIVE, ZERO]),
        (LfAsymBus(has_phase_b=False, has_phase_c=False), [POSITIVE]),
        (LfAsymBus(variable_type=AsymBusVariableType.DELTA), [POSITIVE, NEGATIVE]),
    ])
    def test_coupled_sequences(self, asym, expected):
        bus = LfBus("b")
        bus.asym = asym
        assert coupled_sequences(bus) == expected


# =============================================================================
# Equation system
# =============================================================================

class TestAsymmetricalSystem:
    """Tests for the structure of the sequence domain system."""

    def test_decoupled_system_is_square(self, asymmetrical_network):
        es = create_system(asymmetrical_network)
        es.check_squareness()
        assert es.index.row_count == 18
        for num in range(3):
            for equation_type in (AcEquationType.BUS_TARGET_IX_ZERO, AcEquationType.BUS_TARGET_IY_ZERO,
                                  AcEquationType.BUS_TARGET_IX_NEGATIVE, AcEquationType.BUS_TARGET_IY_NEGATIVE):
                assert es.get_equation(num, equation_type).active

    def test_coupled_system_is_square(self):
        network = create_asymmetrical_network(coupled=True)
        es = create_system(network)
        es.check_squareness()
        assert es.index.row_count == 18
        l12 = network.get_branch(1)
        assert l12.closed_p1 is None
        assert np.isnan(l12.p1.eval())

    def test_generator_equivalent_shunts(self, asymmetrical_network):
        es = create_system(asymmetrical_network)
        ix_zero = es.get_equation(0, AcEquationType.BUS_TARGET_IX_ZERO)
        shunt = find_term(ix_zero, AsymmetricalShuntCurrentEquationTerm)
        assert shunt.b == -20.0
        iy_negative = es.get_equation(0, AcEquationType.BUS_TARGET_IY_NEGATIVE)
        assert find_term(iy_negative, AsymmetricalShuntCurrentEquationTerm).b == -10.0

    def test_small_equivalent_shunts_are_skipped(self, asymmetrical_network):
        es = create_system(asymmetrical_network, AsymmetricalParameters(equivalent_shunt_epsilon=100.0))
        ix_zero = es.get_equation(0, AcEquationType.BUS_TARGET_IX_ZERO)
        assert not any(isinstance(t, AsymmetricalShuntCurrentEquationTerm) for t in ix_zero.terms)

    def test_missing_phase_bus(self):
        """A wye bus missing phase c only balances the positive and zero sequences."""
        network = create_asymmetrical_network()
        b2 = network.get_bus(2)
        b2.asym = LfAsymBus(has_phase_c=False, load=LfAsymLoad(0.2, 0.05, 0.3, 0.1, 0.0, 0.0))
        es = create_system(network)
        es.check_squareness()
        assert not es.has_equation(2, AcEquationType.BUS_TARGET_IX_NEGATIVE)
        assert es.variable_set.get_variable(2, AcVariableType.BUS_V_NEGATIVE) is None
        assert_jacobian_matches_finite_differences(es)

    def test_positive_sequence_as_current(self):
        """The positive balance of the bus holds on current components with a zero target."""
        network = create_asymmetrical_network(positive_sequence_as_current=True)
        es = create_system(network)
        es.check_squareness()
        p_eq = es.get_equation(2, AcEquationType.BUS_TARGET_P)
        current = find_term(p_eq, ClosedBranchSequenceCurrentEquationTerm)
        assert current.sequence is POSITIVE
        targets = TargetVector(network, es).start_listening()
        assert targets.get(p_eq) == 0.0
        assert targets.get(es.get_equation(2, AcEquationType.BUS_TARGET_Q)) == 0.0
        assert_jacobian_matches_finite_differences(es)

    def test_balanced_control_still_toggles(self, asymmetrical_network):
        """Control changes go through the balanced updater."""
        es = create_system(asymmetrical_network)
        b0 = asymmetrical_network.get_bus(0)
        b0.generator_voltage_control_enabled = False
        assert es.get_equation(0, AcEquationType.BUS_TARGET_Q).active
        assert not es.get_equation(0, AcEquationType.BUS_TARGET_V).active
        es.check_squareness()


# =============================================================================
# Terms
# =============================================================================

class TestSequenceTerms:
    """Tests for the values of the sequence terms."""

    def test_balanced_load(self, asymmetrical_network):
        """A balanced load draws its per-phase power on the positive sequence only."""
        b2 = asymmetrical_network.get_bus(2)
        b2.asym.load = LfAsymLoad(0.2, 0.05, 0.2, 0.05, 0.2, 0.05)
        es = create_asymmetrical_ac_equation_system(asymmetrical_network)
        initialize_state(es, asymmetrical_network)
        x = es.state_vector.get().copy()
        for variable_type in (AcVariableType.BUS_V_ZERO, AcVariableType.BUS_V_NEGATIVE):
            x[es.variable_set.get_variable(2, variable_type).row] = 0.0
        es.state_vector.set(x)

        p = find_term(es.get_equation(2, AcEquationType.BUS_TARGET_P), LoadFortescuePowerEquationTerm)
        q = find_term(es.get_equation(2, AcEquationType.BUS_TARGET_Q), LoadFortescuePowerEquationTerm)
        assert p.eval() == pytest.approx(0.2)
        assert q.eval() == pytest.approx(0.05)
        for equation_type in (AcEquationType.BUS_TARGET_IX_ZERO, AcEquationType.BUS_TARGET_IY_ZERO,
                              AcEquationType.BUS_TARGET_IX_NEGATIVE, AcEquationType.BUS_TARGET_IY_NEGATIVE):
            term = find_term(es.get_equation(2, equation_type), LoadFortescuePowerEquationTerm)
            assert term.eval() == pytest.approx(0.0, abs=1e-12)

    def test_vanishing_phase_voltage(self, asymmetrical_network):
        es = create_system(asymmetrical_network)
        x = es.state_vector.get().copy()
        for variable_type in (AcVariableType.BUS_V, AcVariableType.BUS_V_ZERO, AcVariableType.BUS_V_NEGATIVE):
            x[es.variable_set.get_variable(2, variable_type).row] = 0.0
        es.state_vector.set(x)
        term = find_term(es.get_equation(2, AcEquationType.BUS_TARGET_P), LoadFortescuePowerEquationTerm)
        with pytest.raises(SingularityError):
            term.eval()

    @pytest.mark.parametrize("side", [1, 2])
    def test_coupled_power_matches_closed_flow(self, asymmetrical_network, side):
        """On a decoupled line the coupled positive power equals the balanced flow."""
        es = create_system(asymmetrical_network)
        l01 = asymmetrical_network.get_branch(0)
        b0, b1 = asymmetrical_network.get_bus(0), asymmetrical_network.get_bus(1)
        p = es.attach(AsymmetricalClosedBranchCoupledPowerEquationTerm(
            l01, b0, b1, es.variable_set, ComplexPart.REAL, side, POSITIVE))
        q = es.attach(AsymmetricalClosedBranchCoupledPowerEquationTerm(
            l01, b0, b1, es.variable_set, ComplexPart.IMAGINARY, side, POSITIVE))
        expected_p, expected_q = (l01.closed_p1, l01.closed_q1) if side == 1 else (l01.closed_p2, l01.closed_q2)
        assert p.eval() == pytest.approx(expected_p.eval(), rel=1e-10)
        assert q.eval() == pytest.approx(expected_q.eval(), rel=1e-10)

    @pytest.mark.parametrize("sequence", [ZERO, POSITIVE, NEGATIVE])
    @pytest.mark.parametrize("side", [1, 2])
    def test_coupled_current_matches_sequence_current(self, asymmetrical_network, sequence, side):
        es = create_system(asymmetrical_network)
        l01 = asymmetrical_network.get_branch(0)
        b0, b1 = asymmetrical_network.get_bus(0), asymmetrical_network.get_bus(1)
        for part in (ComplexPart.REAL, ComplexPart.IMAGINARY):
            coupled = es.attach(AsymmetricalClosedBranchCoupledCurrentEquationTerm(
                l01, b0, b1, es.variable_set, part, side, sequence))
            decoupled = es.attach(ClosedBranchSequenceCurrentEquationTerm(
                l01, b0, b1, es.variable_set, part, side, sequence))
            assert coupled.eval() == pytest.approx(decoupled.eval(), rel=1e-9, abs=1e-12)
            for variable in decoupled.variables:
                assert coupled.der(variable) == pytest.approx(decoupled.der(variable), rel=1e-9, abs=1e-12)

    @pytest.mark.parametrize("sequence", [ZERO, POSITIVE, NEGATIVE])
    @pytest.mark.parametrize("side", [1, 2])
    def test_fixed_tap_scales_coupled_current(self, asymmetrical_network, sequence, side):
        """A fixed tap ratio and phase shift enter the coupled and decoupled currents alike."""
        l01 = asymmetrical_network.get_branch(0)
        l01.pi_model.r1 = 1.05
        l01.pi_model.a1 = 0.03
        es = create_system(asymmetrical_network)
        b0, b1 = asymmetrical_network.get_bus(0), asymmetrical_network.get_bus(1)
        for part in (ComplexPart.REAL, ComplexPart.IMAGINARY):
            coupled = es.attach(AsymmetricalClosedBranchCoupledCurrentEquationTerm(
                l01, b0, b1, es.variable_set, part, side, sequence))
            decoupled = es.attach(ClosedBranchSequenceCurrentEquationTerm(
                l01, b0, b1, es.variable_set, part, side, sequence))
            assert coupled.eval() == pytest.approx(decoupled.eval(), rel=1e-9, abs=1e-12)
            for variable in decoupled.variables:
                assert coupled.der(variable) == pytest.approx(decoupled.der(variable), rel=1e-9, abs=1e-12)

    @pytest.mark.parametrize("side", [1, 2])
    def test_fixed_tap_coupled_power_matches_closed_flow(self, asymmetrical_network, side):
        l01 = asymmetrical_network.get_branch(0)
        l01.pi_model.r1 = 0.97
        l01.pi_model.a1 = -0.04
        es = create_system(asymmetrical_network)
        b0, b1 = asymmetrical_network.get_bus(0), asymmetrical_network.get_bus(1)
        p = es.attach(AsymmetricalClosedBranchCoupledPowerEquationTerm(
            l01, b0, b1, es.variable_set, ComplexPart.REAL, side, POSITIVE))
        q = es.attach(AsymmetricalClosedBranchCoupledPowerEquationTerm(
            l01, b0, b1, es.variable_set, ComplexPart.IMAGINARY, side, POSITIVE))
        expected_p, expected_q = (l01.closed_p1, l01.closed_q1) if side == 1 else (l01.closed_p2, l01.closed_q2)
        assert p.eval() == pytest.approx(expected_p.eval(), rel=1e-10)
        assert q.eval() == pytest.approx(expected_q.eval(), rel=1e-10)

    def test_invalid_side(self, asymmetrical_network):
        es = create_system(asymmetrical_network)
        l01 = asymmetrical_network.get_branch(0)
        with pytest.raises(ValueError):
            ClosedBranchSequenceCurrentEquationTerm(l01, l01.bus1, l01.bus2, es.variable_set,
                                                    ComplexPart.REAL, 3, ZERO)


# =============================================================================
# Derivatives
# =============================================================================

class TestAsymmetricalDerivatives:
    """Tests for analytical against numerical derivatives of the sequence system."""

    @pytest.mark.parametrize("coupled", [False, True])
    def test_jacobian_matches_finite_differences(self, coupled):
        network = create_asymmetrical_network(coupled=coupled)
        es = create_system(network)
        assert_jacobian_matches_finite_differences(es)

    def test_coupled_branch_with_fixed_tap(self):
        network = create_asymmetrical_network(coupled=True)
        l12 = network.get_branch(1)
        l12.pi_model.r1 = 1.04
        l12.pi_model.a1 = 0.05
        es = create_system(network)
        assert_jacobian_matches_finite_differences(es)


# =============================================================================
# Unsupported configurations
# =============================================================================

class TestUnsupported:
    """Tests for the configurations rejected by the sequence domain creator."""

    def test_bus_without_sequence_data(self):
        with pytest.raises(UnsupportedConfigurationError):
            create_asymmetrical_ac_equation_system(create_three_bus_network())

    @pytest.mark.parametrize("connection, load_type", [
        (AsymLoadConnection.DELTA, AsymLoadType.CONSTANT_POWER),
        (AsymLoadConnection.WYE, AsymLoadType.CONSTANT_IMPEDANCE),
        (AsymLoadConnection.WYE, AsymLoadType.CONSTANT_CURRENT),
    ])
    def test_load_kinds(self, asymmetrical_network, connection, load_type):
        load = asymmetrical_network.get_bus(2).asym.load
        load.connection = connection
        load.load_type = load_type
        with pytest.raises(UnsupportedConfigurationError):
            create_asymmetrical_ac_equation_system(asymmetrical_network)

    def test_zero_impedance_branch(self, asymmetrical_network):
        b2 = asymmetrical_network.get_bus(2)
        b3 = asymmetrical_network.add_bus(LfBus("b3"))
        b3.asym = LfAsymBus()
        asymmetrical_network.add_branch(LfBranch("s23", b2, b3, PiModel(), branch_type="SWITCH"))
        with pytest.raises(UnsupportedConfigurationError):
            create_asymmetrical_ac_equation_system(asymmetrical_network)

    def test_coupled_branch_with_tap_unknown(self):
        network = create_asymmetrical_network(coupled=True)
        create_transformer_voltage_control(network.get_bus(2), [network.get_branch(1)], 1.0)
        with pytest.raises(UnsupportedConfigurationError):
            create_asymmetrical_ac_equation_system(network)

    def test_branch_open_at_creation(self, asymmetrical_network):
        asymmetrical_network.get_branch(1).connected_side2 = False
        with pytest.raises(UnsupportedConfigurationError):
            create_asymmetrical_ac_equation_system(asymmetrical_network)

    def test_connection_change_after_creation(self, asymmetrical_network):
        create_asymmetrical_ac_equation_system(asymmetrical_network)
        with pytest.raises(UnsupportedConfigurationError):
            asymmetrical_network.get_branch(1).connected_side2 = False

    def test_branch_without_matrix_at_missing_phase_bus(self, asymmetrical_network):
        b2 = asymmetrical_network.get_bus(2)
        b2.asym = LfAsymBus(has_phase_c=False)
        asymmetrical_network.get_branch(1).asym_line = None
        with pytest.raises(UnsupportedConfigurationError):
            create_asymmetrical_ac_equation_system(asymmetrical_network)

    def test_coupled_term_without_matrix(self, asymmetrical_network):
        es = create_system(asymmetrical_network)
        l01 = asymmetrical_network.get_branch(0)
        l01.asym_line = None
        with pytest.raises(UnsupportedConfigurationError):
            AsymmetricalClosedBranchCoupledCurrentEquationTerm(l01, l01.bus1, l01.bus2, es.variable_set,
                                                               ComplexPart.REAL, 1, ZERO)

    def test_extra_equation_still_detected(self, asymmetrical_network):
        """Squareness checks of the balanced system keep applying."""
        es = create_system(asymmetrical_network)
        es.get_equation(1, AcEquationType.BUS_TARGET_V).active = True
        with pytest.raises(StructuralError):
            es.check_squareness()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
