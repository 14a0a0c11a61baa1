"""
Configuration Module
====================

Parameter dataclasses that drive the construction of an equation system.

Classes
-------
DerivativeStrategy
    Selects full or fast-decoupled partial derivatives for flow terms.
EquationSystemCreationParameters
    Options of the balanced AC equation-system creator.
AsymmetricalParameters
    Numerical thresholds of the sequence-domain (Fortescue) extension.

Author: Manuel Schwenke
Date: 2025-02-05
"""

from dataclasses import dataclass
from enum import Enum


class DerivativeStrategy(Enum):
    """
    Derivative formula family used by the flow terms of one equation system.

    FULL keeps every partial derivative. FAST_DECOUPLED drops the voltage
    magnitude derivatives of active power terms and the angle derivatives of
    reactive power terms (the classical P-theta / Q-V decoupling).
    """
    FULL = "full"
    FAST_DECOUPLED = "fast_decoupled"


PHASE_CONTROL_MODES = ("CONTROLLER", "LIMITER")


@dataclass(frozen=True)
class EquationSystemCreationParameters:
    """
    Options of the AC equation-system creator.

    Attributes
    ----------
    force_a1_var : bool
        If True, the phase shift a1 becomes an unknown on every branch able to
        act as a phase controller and connected on both sides, even when no
        phase control is enabled.
    derivative_strategy : DerivativeStrategy
        Partial derivative family of the flow terms.
    vectorized : bool
        If True, closed-branch terms read their values and derivatives from
        the shared branch vector cache instead of recomputing scalars.
    phase_control_mode : str
        "CONTROLLER" (a branch active power target replaces the fixed phase
        shift) or "LIMITER" (the phase shift stays pinned, an outer loop moves
        it).
    """
    force_a1_var: bool = False
    derivative_strategy: DerivativeStrategy = DerivativeStrategy.FULL
    vectorized: bool = True
    phase_control_mode: str = "CONTROLLER"

    def __post_init__(self) -> None:
        """Validate parameters after initialisation."""
        if not isinstance(self.derivative_strategy, DerivativeStrategy):
            raise ValueError(
                f"derivative_strategy must be a DerivativeStrategy, got {self.derivative_strategy!r}"
            )
        if self.phase_control_mode not in PHASE_CONTROL_MODES:
            raise ValueError(
                f"phase_control_mode must be one of {PHASE_CONTROL_MODES}, "
                f"got {self.phase_control_mode!r}"
            )


@dataclass(frozen=True)
class AsymmetricalParameters:
    """
    Numerical thresholds of the sequence-domain extension.

    Attributes
    ----------
    singularity_epsilon : float
        Squared phase voltage magnitude below which a constant power load can
        no longer be represented in the Fortescue domain.
    equivalent_shunt_epsilon : float
        Generator equivalent admittances below this value are not modelled.
    coupling_epsilon : float
        Admittance tensor entries below this value are treated as zero when
        deciding whether a branch couples its sequences.
    """
    singularity_epsilon: float = 1e-8
    equivalent_shunt_epsilon: float = 1e-5
    coupling_epsilon: float = 1e-8

    def __post_init__(self) -> None:
        """Validate parameters after initialisation."""
        if self.singularity_epsilon <= 0:
            raise ValueError(f"singularity_epsilon must be positive, got {self.singularity_epsilon}")
        if self.equivalent_shunt_epsilon <= 0:
            raise ValueError(
                f"equivalent_shunt_epsilon must be positive, got {self.equivalent_shunt_epsilon}"
            )
        if self.coupling_epsilon <= 0:
            raise ValueError(f"coupling_epsilon must be positive, got {self.coupling_epsilon}")
