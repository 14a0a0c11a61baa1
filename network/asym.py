"""
Asymmetric Network Extensions Module
====================================

Sequence-domain data attached to buses, generators, loads and lines.

The central object is the 6x6 sequence admittance matrix of a line,
``y[3 * side + seq, 3 * side' + seq']`` with side in {0, 1} and seq in
{ZERO=0, POSITIVE=1, NEGATIVE=2}. A line whose off-diagonal sequence blocks
vanish is decoupled: each sequence is then an independent pi-model.

Author: Manuel Schwenke
Date: 2025-02-05
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

import numpy as np
from numpy.typing import NDArray

from asym.fortescue import phase_to_sequence_admittance, sequence_to_phase_admittance
from network.model import PiModel

logger = logging.getLogger(__name__)


class AsymBusVariableType(Enum):
    """Connection of the bus voltages: phase-to-neutral (WYE) or phase-to-phase (DELTA)."""
    WYE = "WYE"
    DELTA = "DELTA"


class AsymLoadConnection(Enum):
    WYE = "WYE"
    DELTA = "DELTA"


class AsymLoadType(Enum):
    CONSTANT_POWER = "CONSTANT_POWER"
    CONSTANT_IMPEDANCE = "CONSTANT_IMPEDANCE"
    CONSTANT_CURRENT = "CONSTANT_CURRENT"


class LfAsymGenerator:
    """Zero (z) and negative (n) sequence equivalent admittances of a generator."""

    def __init__(self, gz: float = 0.0, bz: float = 0.0, gn: float = 0.0, bn: float = 0.0) -> None:
        self.gz = gz
        self.bz = bz
        self.gn = gn
        self.bn = bn


class LfAsymLoad:
    """
    Per-phase load powers.

    Attributes
    ----------
    pa, qa, pb, qb, pc, qc : float
        Consumed active and reactive power per phase [p.u.].
    connection : AsymLoadConnection
        Phase connection of the load.
    load_type : AsymLoadType
        Voltage dependency.
    """

    def __init__(self, pa: float, qa: float, pb: float, qb: float, pc: float, qc: float,
                 connection: AsymLoadConnection = AsymLoadConnection.WYE,
                 load_type: AsymLoadType = AsymLoadType.CONSTANT_POWER) -> None:
        self.pa = pa
        self.qa = qa
        self.pb = pb
        self.qb = qb
        self.pc = pc
        self.qc = qc
        self.connection = connection
        self.load_type = load_type

    def s_abc(self) -> NDArray[np.complex128]:
        return np.array([complex(self.pa, self.qa), complex(self.pb, self.qb),
                         complex(self.pc, self.qc)], dtype=np.complex128)


class LfAsymBus:
    """
    Sequence-domain description of a bus.

    Attributes
    ----------
    variable_type : AsymBusVariableType
        WYE or DELTA.
    has_phase_a, has_phase_b, has_phase_c : bool
        Phases physically present at the bus.
    load : LfAsymLoad or None
        Unbalanced load.
    positive_sequence_as_current : bool
        Express the positive sequence balance as current components instead
        of powers.
    """

    def __init__(self, variable_type: AsymBusVariableType = AsymBusVariableType.WYE,
                 has_phase_a: bool = True, has_phase_b: bool = True, has_phase_c: bool = True,
                 load: Optional[LfAsymLoad] = None, positive_sequence_as_current: bool = False) -> None:
        self.variable_type = variable_type
        self.has_phase_a = has_phase_a
        self.has_phase_b = has_phase_b
        self.has_phase_c = has_phase_c
        self.load = load
        self.positive_sequence_as_current = positive_sequence_as_current

    @property
    def phase_count(self) -> int:
        return int(self.has_phase_a) + int(self.has_phase_b) + int(self.has_phase_c)

    @property
    def missing_phase_count(self) -> int:
        return 3 - self.phase_count

    def is_wye(self) -> bool:
        return self.variable_type is AsymBusVariableType.WYE


class LfAsymLine:
    """
    Sequence admittance matrix of a line.

    Attributes
    ----------
    y : NDArray[np.complex128]
        6x6 sequence admittance matrix.
    phase_open_a, phase_open_b, phase_open_c : bool
        Phases opened at both ends, already folded into ``y``.
    """

    def __init__(self, y: NDArray[np.complex128]) -> None:
        y = np.asarray(y, dtype=np.complex128)
        if y.shape != (6, 6):
            raise ValueError(f"Sequence admittance matrix must be 6x6, got {y.shape}")
        self.y = y
        self.phase_open_a = False
        self.phase_open_b = False
        self.phase_open_c = False

    @staticmethod
    def _pi_block(y: NDArray[np.complex128], seq: int, pi_model: PiModel) -> None:
        y12 = pi_model.series_admittance()
        y[seq, seq] = y12 + complex(pi_model.g1, pi_model.b1)
        y[seq, 3 + seq] = -y12
        y[3 + seq, seq] = -y12
        y[3 + seq, 3 + seq] = y12 + complex(pi_model.g2, pi_model.b2)

    @classmethod
    def from_pi_models(cls, pi_zero: PiModel, pi_positive: PiModel, pi_negative: PiModel) -> "LfAsymLine":
        """Decoupled line built from one pi-model per sequence."""
        y = np.zeros((6, 6), dtype=np.complex128)
        for seq, pi_model in enumerate((pi_zero, pi_positive, pi_negative)):
            cls._pi_block(y, seq, pi_model)
        return cls(y)

    @classmethod
    def from_phase_admittance(cls, yabc: NDArray[np.complex128]) -> "LfAsymLine":
        """Line built from a 6x6 phase admittance matrix (rows a1, b1, c1, a2, b2, c2)."""
        return cls(phase_to_sequence_admittance(np.asarray(yabc, dtype=np.complex128)))

    def is_coupled(self, epsilon: float = 1e-8) -> bool:
        """True if any entry links two different sequences."""
        for i in range(6):
            for j in range(6):
                if i % 3 != j % 3 and abs(self.y[i, j]) > epsilon:
                    return True
        return False

    def sequence_pi_model(self, seq: int) -> PiModel:
        """
        Pi-model of one sequence read from the diagonal blocks.

        Parameters
        ----------
        seq : int
            0 (zero), 1 (positive) or 2 (negative).
        """
        y12 = -self.y[seq, 3 + seq]
        if abs(y12) == 0.0:
            raise ValueError(f"Sequence {seq} has no series admittance")
        z = 1.0 / y12
        y1 = self.y[seq, seq] - y12
        y2 = self.y[3 + seq, 3 + seq] - y12
        return PiModel(r=z.real, x=z.imag, g1=y1.real, b1=y1.imag, g2=y2.real, b2=y2.imag)

    def open_phases(self, phase_open_a: bool = False, phase_open_b: bool = False,
                    phase_open_c: bool = False) -> None:
        """
        Fold open phases into the sequence admittance matrix.

        The matrix is transformed to phase quantities, rows and columns of the
        open phases are zeroed at both sides, and the result is transformed
        back, which couples the sequences.
        """
        yabc = sequence_to_phase_admittance(self.y)
        for phase, is_open in enumerate((phase_open_a, phase_open_b, phase_open_c)):
            if is_open:
                for index in (phase, 3 + phase):
                    yabc[index, :] = 0.0
                    yabc[:, index] = 0.0
        self.y = phase_to_sequence_admittance(yabc)
        self.phase_open_a = self.phase_open_a or phase_open_a
        self.phase_open_b = self.phase_open_b or phase_open_b
        self.phase_open_c = self.phase_open_c or phase_open_c
        logger.debug("Open phases folded into line admittance: a=%s b=%s c=%s",
                     phase_open_a, phase_open_b, phase_open_c)
