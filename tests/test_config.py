"""
Tests for the creation parameters.

Author: Manuel Schwenke
Date: 2025-02-05
"""

import dataclasses
import logging

import pytest

from core.config import AsymmetricalParameters, DerivativeStrategy, EquationSystemCreationParameters
from core.logging_config import setup_logging


class TestEquationSystemCreationParameters:
    """Test cases for EquationSystemCreationParameters."""

    def test_defaults(self):
        parameters = EquationSystemCreationParameters()
        assert parameters.derivative_strategy is DerivativeStrategy.FULL
        assert parameters.vectorized
        assert not parameters.force_a1_var
        assert parameters.phase_control_mode == "CONTROLLER"

    def test_frozen(self):
        parameters = EquationSystemCreationParameters()
        with pytest.raises(dataclasses.FrozenInstanceError):
            parameters.vectorized = False

    def test_invalid_strategy(self):
        with pytest.raises(ValueError):
            EquationSystemCreationParameters(derivative_strategy="full")

    def test_invalid_phase_control_mode(self):
        with pytest.raises(ValueError):
            EquationSystemCreationParameters(phase_control_mode="CONTROLER")

    def test_replace(self):
        parameters = dataclasses.replace(EquationSystemCreationParameters(), phase_control_mode="LIMITER")
        assert parameters.phase_control_mode == "LIMITER"


class TestAsymmetricalParameters:
    """Test cases for AsymmetricalParameters."""

    def test_defaults(self):
        parameters = AsymmetricalParameters()
        assert parameters.singularity_epsilon > 0
        assert parameters.equivalent_shunt_epsilon > 0
        assert parameters.coupling_epsilon > 0

    @pytest.mark.parametrize("field", ["singularity_epsilon", "equivalent_shunt_epsilon", "coupling_epsilon"])
    @pytest.mark.parametrize("value", [0.0, -1e-6])
    def test_non_positive_values(self, field, value):
        with pytest.raises(ValueError):
            AsymmetricalParameters(**{field: value})


class TestSetupLogging:
    """Test cases for the console logging helper."""

    def test_single_handler(self):
        root = logging.getLogger()
        saved_handlers, saved_level = list(root.handlers), root.level
        try:
            setup_logging(logging.DEBUG)
            setup_logging(logging.DEBUG)
            assert len(root.handlers) == 1
            assert root.level == logging.DEBUG
            assert logging.getLogger("pandapower").level == logging.WARNING
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
