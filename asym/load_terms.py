"""
Asymmetrical Bus Equation Terms Module
======================================

Sequence domain terms attached to a bus: the unbalanced constant power load
expressed through the Fortescue transform, and the equivalent sequence
shunt of the generators of a bus.

Load sign convention: a consumed power is a flow leaving the bus, so the
terms are added as is to the bus balance equations.

Author: Manuel Schwenke
Date: 2025-02-05
"""

from __future__ import annotations

import cmath
import logging
from typing import Dict, List, Optional, Tuple

import numpy as np
from numpy.typing import NDArray

from asym.fortescue import (
    ComplexPart,
    SequenceType,
    complex_part,
    fortescue_matrix,
    sequence_default,
    sequence_variables,
)
from core.exceptions import SingularityError
from equations.term import AbstractElementEquationTerm
from equations.variable import Variable

logger = logging.getLogger(__name__)


class AbstractAsymmetricalBusEquationTerm(AbstractElementEquationTerm):
    """Bus term depending on sequence voltages of its bus."""

    def __init__(self, bus, complex_part: ComplexPart, sequence: SequenceType) -> None:
        super().__init__(bus)
        self.complex_part = complex_part
        self.sequence = sequence
        self._variables: List[Variable] = []

    @property
    def bus(self):
        return self.element

    @property
    def variables(self) -> List[Variable]:
        return self._variables

    @property
    def name(self) -> str:
        return f"{type(self).__name__}({self.sequence.name.lower()}, {self.complex_part.name.lower()})"

    def value_of(self, variable: Optional[Variable], default: float) -> float:
        if variable is None or variable.row < 0:
            return default
        return self.sv(variable)


# =============================================================================
# Generator equivalent shunt
# =============================================================================

class AsymmetricalShuntCurrentEquationTerm(AbstractAsymmetricalBusEquationTerm):
    """
    Current drawn by a constant sequence admittance ``g + jb``::

        Ix = g vx - b vy
        Iy = g vy + b vx
    """

    def __init__(self, bus, variable_set, complex_part: ComplexPart, sequence: SequenceType,
                 g: float, b: float) -> None:
        super().__init__(bus, complex_part, sequence)
        self.g = g
        self.b = b
        self.v_var, self.ph_var = sequence_variables(variable_set, bus, sequence)
        self._variables = [self.v_var, self.ph_var]

    def _polar(self) -> Tuple[float, float]:
        v_default, ph_default = sequence_default(self.bus, self.sequence)
        return self.value_of(self.v_var, v_default), self.value_of(self.ph_var, ph_default)

    def eval(self) -> float:
        v, ph = self._polar()
        return complex_part(complex(self.g, self.b) * cmath.rect(v, ph), self.complex_part)

    def der(self, variable: Variable) -> float:
        v, ph = self._polar()
        if variable is self.v_var:
            dv = cmath.exp(1j * ph)
        elif variable is self.ph_var:
            dv = 1j * cmath.rect(v, ph)
        else:
            raise self.unknown_variable(variable)
        return complex_part(complex(self.g, self.b) * dv, self.complex_part)


# =============================================================================
# Fortescue load
# =============================================================================

class LoadFortescuePowerEquationTerm(AbstractAsymmetricalBusEquationTerm):
    """
    Sequence contribution of an unbalanced wye constant power load.

    With ``Vabc = F V012`` and the per-phase powers ``Sabc``, the phase
    currents are ``conj(Sabc / Vabc)`` and::

        conj(I012) = F (Sabc / Vabc) / 3

    The positive sequence is expressed as power ``S1 = V1 conj(I1)`` (as
    current when the bus balances its positive sequence in current), the zero
    and negative sequences as current components ``(Re I, Im I)``.

    Parameters
    ----------
    bus : LfBus
        Bus of the load.
    variable_set : VariableSet
        Factory of the variables.
    complex_part : ComplexPart
        Part returned by ``eval``.
    sequence : SequenceType
        Sequence the term contributes to.
    sequences : list of SequenceType
        Sequences with a voltage unknown at the bus; the others are 0.
    singularity_epsilon : float
        Smallest squared phase voltage magnitude accepted.

    Raises
    ------
    SingularityError
        On evaluation, if a phase voltage vanishes.
    """

    def __init__(self, bus, variable_set, complex_part: ComplexPart, sequence: SequenceType,
                 sequences: List[SequenceType], singularity_epsilon: float = 1e-8) -> None:
        super().__init__(bus, complex_part, sequence)
        self.singularity_epsilon = singularity_epsilon
        self._voltage_variables: Dict[SequenceType, Tuple[Variable, Variable]] = {}
        for seq in sequences:
            v_var, ph_var = sequence_variables(variable_set, bus, seq)
            self._voltage_variables[seq] = (v_var, ph_var)
            self._variables.extend([v_var, ph_var])
        self.fortescue = fortescue_matrix()

    @property
    def load(self):
        return self.bus.asym.load

    def sequence_voltages(self) -> NDArray[np.complex128]:
        v012 = np.zeros(3, dtype=np.complex128)
        for seq, (v_var, ph_var) in self._voltage_variables.items():
            v_default, ph_default = sequence_default(self.bus, seq)
            v012[seq.value] = cmath.rect(self.value_of(v_var, v_default), self.value_of(ph_var, ph_default))
        return v012

    def phase_voltages(self, v012: NDArray[np.complex128]) -> NDArray[np.complex128]:
        vabc = self.fortescue @ v012
        if np.any(np.abs(vabc) ** 2 < self.singularity_epsilon):
            raise SingularityError(f"Vanishing phase voltage at bus {self.bus.id!r}: {vabc}")
        return vabc

    def _output(self, s: complex, i_conj: complex) -> float:
        if self.sequence is SequenceType.POSITIVE and not self.bus.asym.positive_sequence_as_current:
            return complex_part(s, self.complex_part)
        return complex_part(i_conj.conjugate(), self.complex_part)

    def eval(self) -> float:
        v012 = self.sequence_voltages()
        vabc = self.phase_voltages(v012)
        i_conj = self.fortescue @ (self.load.s_abc() / 3.0 / vabc)
        index = self.sequence.value
        return self._output(v012[index] * i_conj[index], i_conj[index])

    def der(self, variable: Variable) -> float:
        seq = None
        is_angle = False
        for candidate, (v_var, ph_var) in self._voltage_variables.items():
            if variable is v_var or variable is ph_var:
                seq = candidate
                is_angle = variable is ph_var
                break
        if seq is None:
            raise self.unknown_variable(variable)

        v012 = self.sequence_voltages()
        vabc = self.phase_voltages(v012)
        s_abc = self.load.s_abc()
        i_conj = self.fortescue @ (s_abc / 3.0 / vabc)

        dv012 = np.zeros(3, dtype=np.complex128)
        if is_angle:
            dv012[seq.value] = 1j * v012[seq.value]
        else:
            ph = self.value_of(self._voltage_variables[seq][1], sequence_default(self.bus, seq)[1])
            dv012[seq.value] = cmath.exp(1j * ph)
        dvabc = self.fortescue @ dv012
        di_conj = self.fortescue @ (-s_abc / 3.0 * dvabc / vabc ** 2)

        index = self.sequence.value
        ds = dv012[index] * i_conj[index] + v012[index] * di_conj[index]
        return self._output(ds, di_conj[index])
