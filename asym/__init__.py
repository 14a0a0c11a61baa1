"""
Asymmetrical Module
===================

This module provides the sequence domain (Fortescue) extension of the AC
equation system.

Classes
-------
SequenceType
    Zero, positive and negative sequence.
ComplexPart
    Real or imaginary part of a complex quantity.

Functions
---------
fortescue_matrix
    Sequence to phase transform.
inverse_fortescue_matrix
    Phase to sequence transform.
sequence_to_phase_admittance
    6x6 sequence admittance matrix to phase quantities.
phase_to_sequence_admittance
    6x6 phase admittance matrix to sequence quantities.

The creator lives in ``asym.creator`` and is imported from there, since it
depends on the network model which itself uses the transforms above.
"""

from asym.fortescue import (
    ComplexPart,
    SequenceType,
    fortescue_matrix,
    inverse_fortescue_matrix,
    phase_to_sequence_admittance,
    sequence_to_phase_admittance,
)

__all__ = [
    "ComplexPart",
    "SequenceType",
    "fortescue_matrix",
    "inverse_fortescue_matrix",
    "phase_to_sequence_admittance",
    "sequence_to_phase_admittance",
]
