"""
Tests for the equation system framework: variables, terms, equations,
index and state vector.

Author: Manuel Schwenke
Date: 2025-02-05
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from core.exceptions import StructuralError, UnknownVariableError
from equations.equation import AcEquationType
from equations.listeners import EquationSystemIndexListener, StateVectorListener
from equations.system import EquationSystem
from equations.term import MultipliedEquationTerm
from equations.variable import AcVariableType, ElementType, Variable, VariableSet


class RecordingIndexListener(EquationSystemIndexListener):
    def __init__(self):
        self.equation_changes = 0
        self.variable_changes = 0

    def on_equations_index_order_changed(self):
        self.equation_changes += 1

    def on_variables_index_order_changed(self):
        self.variable_changes += 1


class RecordingStateListener(StateVectorListener):
    def __init__(self):
        self.updates = 0

    def on_state_update(self):
        self.updates += 1


@pytest.fixture
def system():
    """
    Two bus system with P equations only::

        P(0) = v0 + 2 * ph1
        P(1) = v1
    """
    es = EquationSystem()
    v0 = es.variable_set.get_or_create(0, AcVariableType.BUS_V)
    v1 = es.variable_set.get_or_create(1, AcVariableType.BUS_V)
    ph1 = es.variable_set.get_or_create(1, AcVariableType.BUS_PHI)
    es.create_equation(0, AcEquationType.BUS_TARGET_P) \
        .add_term(v0.create_term()) \
        .add_term(ph1.create_term().multiply(2.0))
    es.create_equation(1, AcEquationType.BUS_TARGET_P).add_term(v1.create_term())
    return es


# =============================================================================
# Variables
# =============================================================================

class TestVariableSet:
    """Tests for variable interning."""

    def test_get_or_create_interns_variables(self):
        """The same identity returns the same instance."""
        variable_set = VariableSet()
        v = variable_set.get_or_create(3, AcVariableType.BUS_V)
        assert variable_set.get_or_create(3, AcVariableType.BUS_V) is v
        assert variable_set.get_or_create(3, AcVariableType.BUS_PHI) is not v
        assert len(variable_set) == 2

    def test_new_variable_has_no_row(self):
        """A variable is not an unknown until indexed."""
        v = VariableSet().get_or_create(0, AcVariableType.DUMMY_P)
        assert v.row == -1
        assert not v.active
        assert v.element_type is ElementType.BRANCH

    def test_get_variable_does_not_create(self):
        """Lookup without creation."""
        variable_set = VariableSet()
        assert variable_set.get_variable(0, AcVariableType.BUS_V) is None
        assert not variable_set.has_variable(0, AcVariableType.BUS_V)

    def test_negative_element_num_rejected(self):
        """Element numbers are dense and non-negative."""
        with pytest.raises(ValueError):
            Variable(-1, AcVariableType.BUS_V)

    def test_variables_sort_by_element_then_type(self):
        """Ordering key is (element number, type ordinal)."""
        variable_set = VariableSet()
        a = variable_set.get_or_create(1, AcVariableType.BUS_V)
        b = variable_set.get_or_create(0, AcVariableType.BUS_PHI)
        c = variable_set.get_or_create(0, AcVariableType.BUS_V)
        assert sorted([a, b, c]) == [c, b, a]

    def test_angle_like_grouping(self):
        """Angles, phase shifts and dummy active flows are angle-like."""
        assert AcVariableType.BUS_PHI.is_angle_like()
        assert AcVariableType.BRANCH_ALPHA1.is_angle_like()
        assert AcVariableType.DUMMY_P.is_angle_like()
        assert not AcVariableType.BUS_V.is_angle_like()
        assert not AcVariableType.BRANCH_RHO1.is_angle_like()


# =============================================================================
# Terms
# =============================================================================

class TestTerms:
    """Tests for variable and multiplied terms."""

    def test_variable_term_value_and_derivative(self, system):
        """A variable term evaluates to the state value with unit derivative."""
        system.index.update()
        system.state_vector.set(np.array([1.1, 0.9, 0.2]))
        term = system.get_equation(1, AcEquationType.BUS_TARGET_P).terms[0]
        v1 = system.variable_set.get_variable(1, AcVariableType.BUS_V)
        assert term.eval() == pytest.approx(0.9)
        assert term.der(v1) == 1.0

    def test_unknown_variable_raises(self, system):
        """Derivative with respect to a foreign variable is an error."""
        term = system.get_equation(1, AcEquationType.BUS_TARGET_P).terms[0]
        v0 = system.variable_set.get_variable(0, AcVariableType.BUS_V)
        with pytest.raises(UnknownVariableError):
            term.der(v0)

    def test_multiplied_term_scales_value_and_derivative(self, system):
        """Constant multipliers scale both value and derivative."""
        system.index.update()
        system.state_vector.set(np.array([1.0, 1.0, 0.25]))
        term = system.get_equation(0, AcEquationType.BUS_TARGET_P).terms[1]
        ph1 = system.variable_set.get_variable(1, AcVariableType.BUS_PHI)
        assert isinstance(term, MultipliedEquationTerm)
        assert term.eval() == pytest.approx(0.5)
        assert term.der(ph1) == pytest.approx(2.0)

    def test_dynamic_multiplier_is_reevaluated(self):
        """A callable multiplier is read at each evaluation."""
        es = EquationSystem()
        v = es.variable_set.get_or_create(0, AcVariableType.BUS_V)
        factor = {"value": 2.0}
        term = v.create_term().multiply(lambda: factor["value"])
        es.create_equation(0, AcEquationType.BUS_TARGET_V).add_term(term)
        es.index.update()
        es.state_vector.set(np.array([3.0]))
        assert term.eval() == pytest.approx(6.0)
        factor["value"] = -1.0
        assert term.eval() == pytest.approx(-3.0)
        assert term.get_multiplier() == -1.0

    def test_wrapper_shares_activity(self):
        """Deactivating a wrapper deactivates the wrapped term."""
        v = VariableSet().get_or_create(0, AcVariableType.BUS_V)
        inner = v.create_term()
        outer = inner.minus()
        outer.active = False
        assert not inner.active
        assert not outer.active
        assert inner.root() is outer

    def test_term_cannot_join_two_equations(self):
        """A term belongs to at most one equation."""
        es = EquationSystem()
        term = es.variable_set.get_or_create(0, AcVariableType.BUS_V).create_term()
        es.create_equation(0, AcEquationType.BUS_TARGET_V).add_term(term)
        with pytest.raises(StructuralError):
            es.create_equation(0, AcEquationType.BUS_TARGET_Q).add_term(term)

    def test_calculate_sensi(self, system):
        """Linear sensitivity sums derivative times perturbation."""
        system.index.update()
        system.state_vector.set(np.array([1.0, 1.0, 0.0]))
        term = system.get_equation(0, AcEquationType.BUS_TARGET_P).terms[1]
        ph1 = system.variable_set.get_variable(1, AcVariableType.BUS_PHI)
        dx = np.zeros(3)
        dx[ph1.row] = 0.5
        assert term.calculate_sensi(dx) == pytest.approx(1.0)
        dx_matrix = np.zeros((3, 2))
        dx_matrix[ph1.row, 1] = -1.0
        assert term.calculate_sensi(dx_matrix, column=1) == pytest.approx(-2.0)


# =============================================================================
# Equations and system
# =============================================================================

class TestEquationSystem:
    """Tests for equation creation, activation and removal."""

    def test_create_equation_is_idempotent(self, system):
        """Requesting an existing subject returns the same equation."""
        eq = system.create_equation(0, AcEquationType.BUS_TARGET_P)
        assert system.create_equation(0, AcEquationType.BUS_TARGET_P) is eq
        assert eq.name == "BUS_TARGET_P(0)"

    def test_equation_eval_and_der(self, system):
        """Equation value and derivatives sum the active terms."""
        system.index.update()
        system.state_vector.set(np.array([1.0, 1.0, 0.1]))
        eq = system.get_equation(0, AcEquationType.BUS_TARGET_P)
        ph1 = system.variable_set.get_variable(1, AcVariableType.BUS_PHI)
        v1 = system.variable_set.get_variable(1, AcVariableType.BUS_V)
        assert eq.eval() == pytest.approx(1.2)
        assert eq.der(ph1) == pytest.approx(2.0)
        assert eq.der(v1) == 0.0

    def test_inactive_terms_are_skipped(self, system):
        """Inactive terms contribute neither value nor variables."""
        eq = system.get_equation(0, AcEquationType.BUS_TARGET_P)
        eq.terms[1].active = False
        system.index.update()
        system.state_vector.set(np.array([1.0, 1.0]))
        assert eq.eval() == pytest.approx(1.0)
        assert [v.type for v in eq.find_variables()] == [AcVariableType.BUS_V]

    def test_removed_equation_rejects_terms(self, system):
        """A removed equation is frozen."""
        eq = system.remove_equation(1, AcEquationType.BUS_TARGET_P)
        assert eq.removed
        assert not eq.active
        assert system.get_equation(1, AcEquationType.BUS_TARGET_P) is None
        v = system.variable_set.get_or_create(1, AcVariableType.BUS_V)
        with pytest.raises(StructuralError):
            eq.add_term(v.create_term())

    def test_remove_missing_equation_returns_none(self, system):
        assert system.remove_equation(5, AcEquationType.BUS_TARGET_Q) is None

    def test_equation_on_disabled_element_starts_inactive(self):
        """Equations created for a disabled element start inactive."""
        class Element:
            num = 4
            disabled = True

        es = EquationSystem()
        assert not es.create_equation(Element(), AcEquationType.BUS_TARGET_P).active

    def test_get_equations_by_element(self, system):
        """Equations are reachable through their subject element."""
        equations = system.get_equations(ElementType.BUS, 0)
        assert [eq.type for eq in equations] == [AcEquationType.BUS_TARGET_P]
        assert system.get_equations(ElementType.BRANCH, 0) == []

    def test_leaf_terms_unfold_wrappers(self, system):
        eq = system.get_equation(0, AcEquationType.BUS_TARGET_P)
        leaves = eq.leaf_terms()
        assert len(leaves) == 2
        assert not any(isinstance(t, MultipliedEquationTerm) for t in leaves)

    def test_write_to_string(self, system):
        """Dumps list active equations with their terms."""
        text = system.write_to_string()
        assert "BUS_TARGET_P(0) = v0 + 2 * φ1" in text
        system.get_equation(1, AcEquationType.BUS_TARGET_P).active = False
        assert "BUS_TARGET_P(1)" not in system.write_to_string()
        assert "[inactive] BUS_TARGET_P(1)" in system.write_to_string(write_inactive_equations=True)


# =============================================================================
# Index
# =============================================================================

class TestEquationSystemIndex:
    """Tests for row assignment."""

    def test_rows_are_sorted_and_dense(self, system):
        """Equations and variables get rows 0..n-1 in sorted order."""
        equations = system.index.sorted_equations_to_solve()
        variables = system.index.sorted_variables_to_find()
        assert [eq.row for eq in equations] == [0, 1]
        assert [(v.element_num, v.type) for v in variables] == [
            (0, AcVariableType.BUS_V), (1, AcVariableType.BUS_V), (1, AcVariableType.BUS_PHI)]
        assert [v.row for v in variables] == [0, 1, 2]

    def test_deactivation_releases_rows(self, system):
        """Deactivated equations and unreferenced variables lose their rows."""
        system.index.update()
        eq = system.get_equation(1, AcEquationType.BUS_TARGET_P)
        v1 = system.variable_set.get_variable(1, AcVariableType.BUS_V)
        eq.active = False
        assert system.index.row_count == 1
        assert system.index.column_count == 2
        assert eq.row == -1
        assert v1.row == -1

    def test_variable_reference_counting(self, system):
        """A variable stays indexed while one active term references it."""
        es = system
        ph1 = es.variable_set.get_variable(1, AcVariableType.BUS_PHI)
        es.create_equation(1, AcEquationType.BUS_TARGET_Q).add_term(ph1.create_term())
        es.get_equation(0, AcEquationType.BUS_TARGET_P).active = False
        assert es.index.column_count == 2
        assert ph1.row >= 0
        es.get_equation(1, AcEquationType.BUS_TARGET_Q).active = False
        es.index.update()
        assert ph1.row == -1

    def test_term_deactivation_updates_index(self, system):
        """Toggling a term changes the unknown set."""
        eq = system.get_equation(0, AcEquationType.BUS_TARGET_P)
        assert system.index.column_count == 3
        eq.terms[1].active = False
        assert system.index.column_count == 2
        eq.terms[1].active = True
        assert system.index.column_count == 3

    def test_listeners_notified_only_on_change(self, system):
        """Index listeners are notified after a rebuild, not on every query."""
        listener = RecordingIndexListener()
        system.index.add_listener(listener)
        system.index.update()
        system.index.update()
        assert listener.equation_changes == 1
        assert listener.variable_changes == 1
        system.get_equation(1, AcEquationType.BUS_TARGET_P).active = False
        assert not system.index.valid
        system.index.update()
        assert listener.equation_changes == 2

    def test_check_squareness(self, system):
        """Two equations for three variables is not square."""
        with pytest.raises(StructuralError):
            system.check_squareness()
        system.create_equation(1, AcEquationType.BUS_TARGET_PHI) \
            .add_term(system.variable_set.get_variable(1, AcVariableType.BUS_PHI).create_term())
        system.check_squareness()

    def test_separation(self, system):
        """P-theta / Q-V split keeps the global order."""
        separation = system.index.update_with_separation()
        assert len(separation.angle_equations) == 2
        assert separation.magnitude_equations == []
        assert [v.type for v in separation.angle_variables] == [AcVariableType.BUS_PHI]
        assert len(separation.magnitude_variables) == 2


# =============================================================================
# State vector
# =============================================================================

class TestStateVector:
    """Tests for state writes and notifications."""

    def test_set_copies_and_notifies(self, system):
        listener = RecordingStateListener()
        system.state_vector.add_listener(listener)
        values = np.array([1.0, 2.0, 3.0])
        system.state_vector.set(values)
        values[0] = 10.0
        assert system.state_vector[0] == 1.0
        assert listener.updates == 1

    def test_minus_applies_newton_step(self, system):
        system.state_vector.set(np.array([1.0, 2.0, 3.0]))
        system.state_vector.minus(np.array([0.5, 0.5, 0.5]))
        assert_allclose(system.state_vector.get(), [0.5, 1.5, 2.5])

    def test_set_value(self, system):
        listener = RecordingStateListener()
        system.state_vector.set(np.zeros(3))
        system.state_vector.add_listener(listener)
        system.state_vector.set_value(2, 4.0)
        assert system.state_vector[2] == 4.0
        assert len(system.state_vector) == 3
        assert listener.updates == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
