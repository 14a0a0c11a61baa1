"""
Fortescue Module
================

Symmetrical component helpers.

Sequence order is (ZERO, POSITIVE, NEGATIVE); phase order is (A, B, C).
With ``a = exp(j*2*pi/3)``::

    V_abc = F @ V_012,        F = [[1, 1, 1], [1, a^2, a], [1, a, a^2]]
    V_012 = F^-1 @ V_abc,     F^-1 = 1/3 [[1, 1, 1], [1, a, a^2], [1, a^2, a]]

Author: Manuel Schwenke
Date: 2025-02-05
"""

from enum import Enum
from typing import Tuple

import numpy as np
from numpy.typing import NDArray

from equations.variable import AcVariableType, Variable


class SequenceType(Enum):
    ZERO = 0
    POSITIVE = 1
    NEGATIVE = 2


class ComplexPart(Enum):
    REAL = 0
    IMAGINARY = 1


A = np.exp(2j * np.pi / 3.0)


def fortescue_matrix() -> NDArray[np.complex128]:
    """Sequence to phase transform F."""
    return np.array([
        [1.0, 1.0, 1.0],
        [1.0, A ** 2, A],
        [1.0, A, A ** 2],
    ], dtype=np.complex128)


def inverse_fortescue_matrix() -> NDArray[np.complex128]:
    """Phase to sequence transform F^-1."""
    return np.array([
        [1.0, 1.0, 1.0],
        [1.0, A, A ** 2],
        [1.0, A ** 2, A],
    ], dtype=np.complex128) / 3.0


def block_diag2(matrix: NDArray[np.complex128]) -> NDArray[np.complex128]:
    """6x6 block diagonal repeating a 3x3 transform for both branch sides."""
    out = np.zeros((6, 6), dtype=np.complex128)
    out[:3, :3] = matrix
    out[3:, 3:] = matrix
    return out


def sequence_to_phase_admittance(y012: NDArray[np.complex128]) -> NDArray[np.complex128]:
    """Convert a 6x6 sequence admittance matrix to phase quantities."""
    f = block_diag2(fortescue_matrix())
    f_inv = block_diag2(inverse_fortescue_matrix())
    return f @ y012 @ f_inv


def phase_to_sequence_admittance(yabc: NDArray[np.complex128]) -> NDArray[np.complex128]:
    """Convert a 6x6 phase admittance matrix to sequence quantities."""
    f = block_diag2(fortescue_matrix())
    f_inv = block_diag2(inverse_fortescue_matrix())
    return f_inv @ yabc @ f


def polar(magnitudes, angles) -> NDArray[np.complex128]:
    return np.asarray(magnitudes) * np.exp(1j * np.asarray(angles))


# =============================================================================
# Sequence voltages
# =============================================================================

SEQUENCE_VARIABLE_TYPES = {
    SequenceType.ZERO: (AcVariableType.BUS_V_ZERO, AcVariableType.BUS_PHI_ZERO),
    SequenceType.POSITIVE: (AcVariableType.BUS_V, AcVariableType.BUS_PHI),
    SequenceType.NEGATIVE: (AcVariableType.BUS_V_NEGATIVE, AcVariableType.BUS_PHI_NEGATIVE),
}


def sequence_variables(variable_set, bus, sequence: SequenceType) -> Tuple[Variable, Variable]:
    """Magnitude and angle variables of one sequence voltage of a bus."""
    v_type, ph_type = SEQUENCE_VARIABLE_TYPES[sequence]
    return variable_set.get_or_create(bus.num, v_type), variable_set.get_or_create(bus.num, ph_type)


def sequence_default(bus, sequence: SequenceType) -> Tuple[float, float]:
    """
    Value of a sequence voltage outside the unknown set.

    The positive sequence falls back to the bus voltage, the zero and
    negative sequences to 0 (balanced network).
    """
    if sequence is SequenceType.POSITIVE:
        return bus.v, bus.angle
    return 0.0, 0.0


def complex_part(value: complex, part: ComplexPart) -> float:
    return float(value.real) if part is ComplexPart.REAL else float(value.imag)
