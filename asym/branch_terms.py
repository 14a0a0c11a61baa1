"""
Asymmetrical Branch Equation Terms Module
=========================================

Sequence domain flow terms of a branch connected at both sides.

Two families are provided:

- decoupled sequence current terms, one pi-model per sequence, used when the
  sequence admittance matrix of the line has no cross-sequence entry;
- coupled power and current terms, evaluated from the full 6x6 sequence
  admittance matrix, used when open phases or an unbalanced line couple the
  sequences.

Voltages are handled as complex phasors ``V = v * exp(j * ph)``. A term
value is the real or imaginary part of a complex current or power, and its
partial derivatives follow from ``dV/dv = exp(j * ph)`` and
``dV/dph = j * V``.

Author: Manuel Schwenke
Date: 2025-02-05
"""

from __future__ import annotations

import cmath
from typing import Dict, List, Optional, Tuple

import numpy as np

from asym.fortescue import ComplexPart, SequenceType, complex_part, sequence_default, sequence_variables
from core.exceptions import UnsupportedConfigurationError
from equations.term import AbstractElementEquationTerm
from equations.variable import Variable
from network.asym import AsymBusVariableType


class AbstractAsymmetricalBranchEquationTerm(AbstractElementEquationTerm):
    """
    Base of sequence domain branch terms.

    Attributes
    ----------
    complex_part : ComplexPart
        Part of the complex quantity returned by ``eval``.
    side : int
        Side (1 or 2) the quantity is measured at.
    sequence : SequenceType
        Sequence the quantity belongs to.
    """

    def __init__(self, branch, bus1, bus2, complex_part: ComplexPart, side: int,
                 sequence: SequenceType) -> None:
        super().__init__(branch)
        if side not in (1, 2):
            raise ValueError(f"Side must be 1 or 2, got {side}")
        self.bus1 = bus1
        self.bus2 = bus2
        self.complex_part = complex_part
        self.side = side
        self.sequence = sequence
        self._variables: List[Variable] = []

    @property
    def branch(self):
        return self.element

    @property
    def variables(self) -> List[Variable]:
        return self._variables

    @property
    def name(self) -> str:
        return f"{type(self).__name__}({self.sequence.name.lower()}, {self.complex_part.name.lower()}, {self.side})"

    def value_of(self, variable: Optional[Variable], default: float) -> float:
        if variable is None or variable.row < 0:
            return default
        return self.sv(variable)

    def phasor(self, v_var: Optional[Variable], ph_var: Optional[Variable], bus,
               sequence: SequenceType) -> complex:
        v_default, ph_default = sequence_default(bus, sequence)
        return cmath.rect(self.value_of(v_var, v_default), self.value_of(ph_var, ph_default))


# =============================================================================
# Decoupled sequences
# =============================================================================

class ClosedBranchSequenceCurrentEquationTerm(AbstractAsymmetricalBranchEquationTerm):
    """
    Current of one sequence through a decoupled branch.

    With ``k = r1 * exp(j * a1)``, ``y12`` the series admittance and
    ``y1``, ``y2`` the shunt admittances of the sequence pi-model::

        I1 = r1^2 (y1 + y12) V1 - conj(k) y12 V2
        I2 = (y2 + y12) V2 - k y12 V1

    The positive sequence uses the pi-model of the branch, the other
    sequences the sequence pi-model of the line when the branch carries one.
    Every sequence sees the tap r1 and shift a1 of the branch pi-model, which
    are not derived.
    """

    def __init__(self, branch, bus1, bus2, variable_set, complex_part: ComplexPart, side: int,
                 sequence: SequenceType) -> None:
        super().__init__(branch, bus1, bus2, complex_part, side, sequence)
        self.v1_var, self.ph1_var = sequence_variables(variable_set, bus1, sequence)
        self.v2_var, self.ph2_var = sequence_variables(variable_set, bus2, sequence)
        self._variables = [self.v1_var, self.ph1_var, self.v2_var, self.ph2_var]

    def pi_model(self):
        if self.sequence is not SequenceType.POSITIVE and self.branch.asym_line is not None:
            return self.branch.asym_line.sequence_pi_model(self.sequence.value)
        return self.branch.pi_model

    def coefficients(self) -> Tuple[complex, complex]:
        """Admittances multiplying V1 and V2 in the current of the measured side."""
        pi = self.pi_model()
        r1 = self.branch.pi_model.r1
        y12 = pi.series_admittance()
        k = cmath.rect(r1, self.branch.pi_model.a1)
        if self.side == 1:
            return r1 * r1 * (complex(pi.g1, pi.b1) + y12), -k.conjugate() * y12
        return -k * y12, complex(pi.g2, pi.b2) + y12

    def voltages(self) -> Tuple[complex, complex]:
        return (self.phasor(self.v1_var, self.ph1_var, self.bus1, self.sequence),
                self.phasor(self.v2_var, self.ph2_var, self.bus2, self.sequence))

    def current(self) -> complex:
        c1, c2 = self.coefficients()
        v1, v2 = self.voltages()
        return c1 * v1 + c2 * v2

    def eval(self) -> float:
        return complex_part(self.current(), self.complex_part)

    def der(self, variable: Variable) -> float:
        c1, c2 = self.coefficients()
        v1, v2 = self.voltages()
        if variable is self.v1_var:
            di = c1 * cmath.exp(1j * self._angle(1))
        elif variable is self.ph1_var:
            di = c1 * 1j * v1
        elif variable is self.v2_var:
            di = c2 * cmath.exp(1j * self._angle(2))
        elif variable is self.ph2_var:
            di = c2 * 1j * v2
        else:
            raise self.unknown_variable(variable)
        return complex_part(di, self.complex_part)

    def _angle(self, side: int) -> float:
        if side == 1:
            return self.value_of(self.ph1_var, sequence_default(self.bus1, self.sequence)[1])
        return self.value_of(self.ph2_var, sequence_default(self.bus2, self.sequence)[1])


# =============================================================================
# Coupled sequences
# =============================================================================

def coupled_sequences(bus) -> List[SequenceType]:
    """
    Sequences carrying a voltage unknown at a bus of a coupled branch.

    The positive sequence is always present. A delta bus adds the negative
    sequence, a wye bus adds the negative sequence when all three phases
    exist and the zero sequence when more than one phase exists.
    """
    sequences = [SequenceType.POSITIVE]
    asym = bus.asym
    if asym.variable_type is AsymBusVariableType.DELTA:
        sequences.append(SequenceType.NEGATIVE)
    else:
        if asym.phase_count == 3:
            sequences.append(SequenceType.NEGATIVE)
        if asym.phase_count > 1:
            sequences.append(SequenceType.ZERO)
    return sequences


class AbstractAsymmetricalClosedBranchCoupledEquationTerm(AbstractAsymmetricalBranchEquationTerm):
    """
    Base of terms evaluated from the full sequence admittance matrix.

    Rows and columns of the matrix are ordered ``3 * side_index + sequence``
    with sequences ordered zero, positive, negative. A sequence without
    variable at a bus has a zero voltage.

    The tap of the branch scales the block between sides i and j by
    ``r_i r_j exp(j (a_j - a_i))`` with ``r = (r1, 1)`` and ``a = (a1, 0)``,
    read from the branch pi-model.

    Raises
    ------
    UnsupportedConfigurationError
        If the branch has no sequence admittance matrix, or a delta bus
        misses a phase.
    """

    def __init__(self, branch, bus1, bus2, variable_set, complex_part: ComplexPart, side: int,
                 sequence: SequenceType) -> None:
        super().__init__(branch, bus1, bus2, complex_part, side, sequence)
        if branch.asym_line is None:
            raise UnsupportedConfigurationError(f"Branch {branch.id!r} has no sequence admittance matrix")
        for bus in (bus1, bus2):
            if bus.asym is not None and bus.asym.variable_type is AsymBusVariableType.DELTA \
                    and bus.asym.missing_phase_count > 0:
                raise UnsupportedConfigurationError(
                    f"Delta bus {bus.id!r} with missing phases is not supported")
        # index in the 6-vector of sequence voltages -> (v, ph) variables
        self._voltage_variables: Dict[int, Tuple[Variable, Variable]] = {}
        self._variable_index: Dict[int, Tuple[int, bool]] = {}
        for side_index, bus in enumerate((bus1, bus2)):
            for seq in coupled_sequences(bus):
                index = 3 * side_index + seq.value
                v_var, ph_var = sequence_variables(variable_set, bus, seq)
                self._voltage_variables[index] = (v_var, ph_var)
                self._variable_index[id(v_var)] = (index, False)
                self._variable_index[id(ph_var)] = (index, True)
                self._variables.extend([v_var, ph_var])
        self.row = 3 * (side - 1) + sequence.value

    @property
    def y(self) -> np.ndarray:
        return self.branch.asym_line.y

    def admittance_row(self) -> np.ndarray:
        """Row of the measured current in the tap scaled admittance matrix."""
        pi = self.branch.pi_model
        rho = np.array([pi.r1] * 3 + [1.0] * 3)
        alpha = np.array([pi.a1] * 3 + [0.0] * 3)
        scale = rho[self.row] * rho * np.exp(1j * (alpha - alpha[self.row]))
        return self.y[self.row, :] * scale

    def _bus_of(self, index: int):
        return self.bus1 if index < 3 else self.bus2

    def voltages(self) -> np.ndarray:
        voltages = np.zeros(6, dtype=np.complex128)
        for index, (v_var, ph_var) in self._voltage_variables.items():
            voltages[index] = self.phasor(v_var, ph_var, self._bus_of(index), SequenceType(index % 3))
        return voltages

    def current(self, voltages: np.ndarray) -> complex:
        return complex(self.admittance_row() @ voltages)

    def voltage_derivative(self, variable: Variable, voltages: np.ndarray) -> Tuple[int, complex]:
        """Index of the voltage moved by ``variable`` and its derivative."""
        entry = self._variable_index.get(id(variable))
        if entry is None:
            raise self.unknown_variable(variable)
        index, is_angle = entry
        v_var, ph_var = self._voltage_variables[index]
        bus = self._bus_of(index)
        _, ph_default = sequence_default(bus, SequenceType(index % 3))
        if is_angle:
            return index, 1j * voltages[index]
        return index, cmath.exp(1j * self.value_of(ph_var, ph_default))


class AsymmetricalClosedBranchCoupledCurrentEquationTerm(AbstractAsymmetricalClosedBranchCoupledEquationTerm):
    """Real or imaginary part of ``I = sum_k y[row, k] * V_k`` with the tap scaled admittances."""

    def eval(self) -> float:
        return complex_part(self.current(self.voltages()), self.complex_part)

    def der(self, variable: Variable) -> float:
        voltages = self.voltages()
        index, dv = self.voltage_derivative(variable, voltages)
        return complex_part(self.admittance_row()[index] * dv, self.complex_part)


class AsymmetricalClosedBranchCoupledPowerEquationTerm(AbstractAsymmetricalClosedBranchCoupledEquationTerm):
    """Active or reactive part of ``S = V_row * conj(I_row)``."""

    def eval(self) -> float:
        voltages = self.voltages()
        s = voltages[self.row] * self.current(voltages).conjugate()
        return complex_part(s, self.complex_part)

    def der(self, variable: Variable) -> float:
        voltages = self.voltages()
        index, dv = self.voltage_derivative(variable, voltages)
        ds = voltages[self.row] * (self.admittance_row()[index] * dv).conjugate()
        if index == self.row:
            ds += dv * self.current(voltages).conjugate()
        return complex_part(ds, self.complex_part)
