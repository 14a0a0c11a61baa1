"""
Asymmetrical AC Equation System Creator Module
==============================================

Builder of the sequence domain (Fortescue) AC equation system.

The positive sequence keeps the balanced active and reactive power balance
of each bus, together with every control equation of the balanced system.
Zero and negative sequences add current balance equations ``Ix = 0`` and
``Iy = 0`` at the buses where the sequence exists:

- a wye bus with all phases has both negative and zero sequences,
- a wye bus missing one phase has the zero sequence only,
- a delta bus has the negative sequence only and must have all phases.

Branches are decoupled (one pi-model per sequence) unless their sequence
admittance matrix links two sequences or a terminal bus misses a phase; in
that case they are modelled from the full 6x6 matrix.

Author: Manuel Schwenke
Date: 2025-02-05
"""

from __future__ import annotations

import logging
from typing import List, Optional

from ac.branch_terms import (
    ClosedBranchSide1ActiveFlowEquationTerm,
    ClosedBranchSide1CurrentMagnitudeEquationTerm,
    ClosedBranchSide1ReactiveFlowEquationTerm,
    ClosedBranchSide2ActiveFlowEquationTerm,
    ClosedBranchSide2CurrentMagnitudeEquationTerm,
    ClosedBranchSide2ReactiveFlowEquationTerm,
)
from ac.creator import AcEquationSystemCreator, is_derive_a1, is_derive_r1, update_branch_evaluables
from ac.updater import AcEquationSystemUpdater
from asym.branch_terms import (
    AsymmetricalClosedBranchCoupledCurrentEquationTerm,
    AsymmetricalClosedBranchCoupledPowerEquationTerm,
    ClosedBranchSequenceCurrentEquationTerm,
    coupled_sequences,
)
from asym.fortescue import ComplexPart, SequenceType
from asym.load_terms import AsymmetricalShuntCurrentEquationTerm, LoadFortescuePowerEquationTerm
from core.config import AsymmetricalParameters, EquationSystemCreationParameters
from core.exceptions import UnsupportedConfigurationError
from equations.equation import AcEquationType
from equations.system import EquationSystem
from network.asym import AsymBusVariableType, AsymLoadConnection, AsymLoadType

logger = logging.getLogger(__name__)

SEQUENCE_EQUATION_TYPES = {
    SequenceType.POSITIVE: (AcEquationType.BUS_TARGET_P, AcEquationType.BUS_TARGET_Q),
    SequenceType.ZERO: (AcEquationType.BUS_TARGET_IX_ZERO, AcEquationType.BUS_TARGET_IY_ZERO),
    SequenceType.NEGATIVE: (AcEquationType.BUS_TARGET_IX_NEGATIVE, AcEquationType.BUS_TARGET_IY_NEGATIVE),
}


def bus_sequences(bus) -> List[SequenceType]:
    """
    Sequences balanced at a bus, positive first.

    Raises
    ------
    UnsupportedConfigurationError
        If the bus has no sequence data or is a delta bus with missing phases.
    """
    asym = bus.asym
    if asym is None:
        raise UnsupportedConfigurationError(f"Bus {bus.id!r} has no asymmetrical data")
    sequences = [SequenceType.POSITIVE]
    if asym.variable_type is AsymBusVariableType.DELTA:
        if asym.missing_phase_count > 0:
            raise UnsupportedConfigurationError(f"Delta bus {bus.id!r} with missing phases is not supported")
        sequences.append(SequenceType.NEGATIVE)
        return sequences
    if asym.missing_phase_count == 0:
        sequences.append(SequenceType.NEGATIVE)
    if asym.missing_phase_count <= 1:
        sequences.append(SequenceType.ZERO)
    return sequences


class AsymmetricalAcEquationSystemUpdater(AcEquationSystemUpdater):
    """Updater of the sequence domain system; branch side opening is not modelled."""

    def on_branch_connection_status_change(self, branch, side: int, connected: bool) -> None:
        raise UnsupportedConfigurationError(
            f"Connection change of branch {branch.id!r} is not supported in the asymmetrical system")


class AsymmetricalAcEquationSystemCreator(AcEquationSystemCreator):
    """
    Builder of the sequence domain AC equation system.

    Parameters
    ----------
    network : LfNetwork
        Network to model; every bus carries an LfAsymBus.
    parameters : EquationSystemCreationParameters, optional
        Creation options shared with the balanced system.
    asym_parameters : AsymmetricalParameters, optional
        Numerical thresholds of the sequence terms.
    """

    def __init__(self, network, parameters: Optional[EquationSystemCreationParameters] = None,
                 asym_parameters: Optional[AsymmetricalParameters] = None) -> None:
        super().__init__(network, parameters)
        self.asym_parameters = asym_parameters if asym_parameters is not None else AsymmetricalParameters()

    def create_updater(self):
        return AsymmetricalAcEquationSystemUpdater(self.network, self.equation_system, self)

    # ------------------------------------------------------------------
    # Buses
    # ------------------------------------------------------------------

    def create_bus_equation(self, bus) -> None:
        super().create_bus_equation(bus)
        es = self.equation_system
        sequences = bus_sequences(bus)
        for seq in sequences[1:]:
            ix_type, iy_type = SEQUENCE_EQUATION_TYPES[seq]
            es.create_equation(bus, ix_type)
            es.create_equation(bus, iy_type)
        self.create_generator_equivalent_shunt_equations(bus, sequences)
        self.create_asymmetrical_load_equations(bus, sequences)

    def create_generator_equivalent_shunt_equations(self, bus, sequences: List[SequenceType]) -> None:
        """Zero and negative sequence admittances of the generators controlling voltage."""
        if not bus.is_generator_voltage_controller():
            return
        gz = bz = gn = bn = 0.0
        for generator in bus.generators:
            if generator.asym is not None:
                gz += generator.asym.gz
                bz += generator.asym.bz
                gn += generator.asym.gn
                bn += generator.asym.bn
        epsilon = self.asym_parameters.equivalent_shunt_epsilon
        es = self.equation_system
        for seq, g, b in ((SequenceType.ZERO, gz, bz), (SequenceType.NEGATIVE, gn, bn)):
            if seq not in sequences or abs(g) + abs(b) <= epsilon:
                continue
            if seq is SequenceType.ZERO and not bus.asym.is_wye():
                continue
            ix_type, iy_type = SEQUENCE_EQUATION_TYPES[seq]
            es.create_equation(bus, ix_type).add_term(
                AsymmetricalShuntCurrentEquationTerm(bus, self.variable_set, ComplexPart.REAL, seq, g, b))
            es.create_equation(bus, iy_type).add_term(
                AsymmetricalShuntCurrentEquationTerm(bus, self.variable_set, ComplexPart.IMAGINARY, seq, g, b))

    def create_asymmetrical_load_equations(self, bus, sequences: List[SequenceType]) -> None:
        """
        Raises
        ------
        UnsupportedConfigurationError
            For a load that is not a wye connected constant power load.
        """
        load = bus.asym.load
        if load is None:
            return
        if load.load_type is not AsymLoadType.CONSTANT_POWER or load.connection is not AsymLoadConnection.WYE:
            raise UnsupportedConfigurationError(
                f"Asymmetrical load of bus {bus.id!r} must be a wye connected constant power load, "
                f"got {load.connection.name} {load.load_type.name}")
        es = self.equation_system
        epsilon = self.asym_parameters.singularity_epsilon
        for seq in sequences:
            x_type, y_type = SEQUENCE_EQUATION_TYPES[seq]
            es.create_equation(bus, x_type).add_term(
                LoadFortescuePowerEquationTerm(bus, self.variable_set, ComplexPart.REAL, seq, sequences, epsilon))
            es.create_equation(bus, y_type).add_term(
                LoadFortescuePowerEquationTerm(bus, self.variable_set, ComplexPart.IMAGINARY, seq, sequences,
                                               epsilon))

    # ------------------------------------------------------------------
    # Branches
    # ------------------------------------------------------------------

    def create_non_impedant_branch(self, branch, bus1, bus2) -> None:
        raise UnsupportedConfigurationError(
            f"Zero impedance branch {branch.id!r} is not supported in the asymmetrical system")

    def is_decoupled(self, branch, bus1, bus2) -> bool:
        """
        Raises
        ------
        UnsupportedConfigurationError
            If a branch without sequence admittance matrix ends at a bus with
            missing phases.
        """
        all_phases = bus1.asym.phase_count == 3 and bus2.asym.phase_count == 3
        asym_line = branch.asym_line
        if asym_line is None:
            if not all_phases:
                raise UnsupportedConfigurationError(
                    f"Branch {branch.id!r} has no sequence admittance matrix and ends at a bus with missing phases")
            return True
        return all_phases and not asym_line.is_coupled(self.asym_parameters.coupling_epsilon)

    def create_impedant_branch(self, branch, bus1, bus2) -> None:
        """
        Raises
        ------
        UnsupportedConfigurationError
            If the branch is open at one side, or is a coupled branch with
            a tap or phase shift unknown.
        """
        if bus1 is None or bus2 is None or not branch.is_connected_at_both_sides():
            raise UnsupportedConfigurationError(
                f"Branch {branch.id!r} open at one side is not supported in the asymmetrical system")
        derive_a1 = is_derive_a1(branch, self.parameters)
        derive_r1 = is_derive_r1(branch)

        if self.is_decoupled(branch, bus1, bus2):
            self.create_decoupled_branch(branch, bus1, bus2, derive_a1, derive_r1)
        else:
            if derive_a1 or derive_r1:
                raise UnsupportedConfigurationError(
                    f"Coupled branch {branch.id!r} cannot control voltage, phase or reactive power")
            self.create_coupled_branch(branch, bus1, bus2)
        update_branch_evaluables(branch)

        self.create_generator_reactive_power_control_branch_equation(branch, bus1, bus2, derive_a1, derive_r1)
        self.create_transformer_phase_control_equations(branch, bus1, bus2, derive_a1, derive_r1)
        self.create_transformer_reactive_power_control_equations(branch)

    def _add_sequence_terms(self, bus, seq: SequenceType, x_term, y_term) -> None:
        x_type, y_type = SEQUENCE_EQUATION_TYPES[seq]
        self.equation_system.create_equation(bus, x_type).add_term(x_term)
        self.equation_system.create_equation(bus, y_type).add_term(y_term)

    def create_decoupled_branch(self, branch, bus1, bus2, derive_a1: bool, derive_r1: bool) -> None:
        es = self.equation_system
        vs = self.variable_set
        args = (branch, bus1, bus2, vs, derive_a1, derive_r1, self.network_vector, self.derivative_strategy)
        branch.closed_p1 = ClosedBranchSide1ActiveFlowEquationTerm(*args)
        branch.closed_q1 = ClosedBranchSide1ReactiveFlowEquationTerm(*args)
        branch.closed_p2 = ClosedBranchSide2ActiveFlowEquationTerm(*args)
        branch.closed_q2 = ClosedBranchSide2ReactiveFlowEquationTerm(*args)
        branch.closed_i1 = ClosedBranchSide1CurrentMagnitudeEquationTerm(*args)
        branch.closed_i2 = ClosedBranchSide2CurrentMagnitudeEquationTerm(*args)
        es.attach(branch.closed_i1)
        es.attach(branch.closed_i2)

        for side, bus in ((1, bus1), (2, bus2)):
            sequences = bus_sequences(bus)
            for seq in sequences:
                if seq is SequenceType.POSITIVE and not bus.asym.positive_sequence_as_current:
                    p, q = (branch.closed_p1, branch.closed_q1) if side == 1 else (branch.closed_p2, branch.closed_q2)
                    self._add_sequence_terms(bus, seq, p, q)
                    continue
                self._add_sequence_terms(
                    bus, seq,
                    ClosedBranchSequenceCurrentEquationTerm(branch, bus1, bus2, vs, ComplexPart.REAL, side, seq),
                    ClosedBranchSequenceCurrentEquationTerm(branch, bus1, bus2, vs, ComplexPart.IMAGINARY, side,
                                                            seq))
            if SequenceType.POSITIVE in sequences and bus.asym.positive_sequence_as_current:
                # balanced flows stay evaluable but are not part of the balance
                p, q = (branch.closed_p1, branch.closed_q1) if side == 1 else (branch.closed_p2, branch.closed_q2)
                es.attach(p)
                es.attach(q)

    def create_coupled_branch(self, branch, bus1, bus2) -> None:
        vs = self.variable_set
        for side, bus in ((1, bus1), (2, bus2)):
            for seq in coupled_sequences(bus):
                if seq is SequenceType.POSITIVE and not bus.asym.positive_sequence_as_current:
                    cls = AsymmetricalClosedBranchCoupledPowerEquationTerm
                else:
                    cls = AsymmetricalClosedBranchCoupledCurrentEquationTerm
                self._add_sequence_terms(bus, seq,
                                         cls(branch, bus1, bus2, vs, ComplexPart.REAL, side, seq),
                                         cls(branch, bus1, bus2, vs, ComplexPart.IMAGINARY, side, seq))
        logger.debug("Branch %s modelled with coupled sequences", branch.id)


def create_asymmetrical_ac_equation_system(network,
                                           parameters: Optional[EquationSystemCreationParameters] = None,
                                           asym_parameters: Optional[AsymmetricalParameters] = None
                                           ) -> EquationSystem:
    """Build the sequence domain AC equation system of a network."""
    return AsymmetricalAcEquationSystemCreator(network, parameters, asym_parameters).create()
