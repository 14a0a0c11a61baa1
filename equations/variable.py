"""
Variable Module
===============

Canonical identities of the scalar unknowns of an AC equation system.

A Variable is identified by (element number, variable type); its element type
is implied by the variable type. Variables are interned by a VariableSet: two
requests for the same identity return the same instance, so terms can share
and compare variables by identity.

Each Variable carries a mutable ``row``: its position in the state vector,
assigned by the equation-system index, or -1 while the variable is not part
of the unknown set.

Author: Manuel Schwenke
Date: 2025-02-05
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional, Tuple


class ElementType(Enum):
    """Kind of network element an equation or variable is attached to."""
    BUS = 0
    BRANCH = 1
    SHUNT_COMPENSATOR = 2


class AcVariableType(Enum):
    """
    Kinds of scalar unknowns.

    The enum value is the ordinal used to order variables of the same element.
    """
    BUS_V = 0
    BUS_PHI = 1
    BUS_V_ZERO = 2
    BUS_PHI_ZERO = 3
    BUS_V_NEGATIVE = 4
    BUS_PHI_NEGATIVE = 5
    SHUNT_B = 6
    BRANCH_ALPHA1 = 7
    BRANCH_RHO1 = 8
    DUMMY_P = 9
    DUMMY_Q = 10

    @property
    def element_type(self) -> ElementType:
        """Element type the variable belongs to."""
        return _VARIABLE_ELEMENT_TYPES[self]

    @property
    def symbol(self) -> str:
        """Short symbol used in equation dumps."""
        return _VARIABLE_SYMBOLS[self]

    def is_angle_like(self) -> bool:
        """True for variables grouped with the voltage angles in a P-theta / Q-V split."""
        return self in _ANGLE_LIKE_VARIABLES


_VARIABLE_ELEMENT_TYPES = {
    AcVariableType.BUS_V: ElementType.BUS,
    AcVariableType.BUS_PHI: ElementType.BUS,
    AcVariableType.BUS_V_ZERO: ElementType.BUS,
    AcVariableType.BUS_PHI_ZERO: ElementType.BUS,
    AcVariableType.BUS_V_NEGATIVE: ElementType.BUS,
    AcVariableType.BUS_PHI_NEGATIVE: ElementType.BUS,
    AcVariableType.SHUNT_B: ElementType.SHUNT_COMPENSATOR,
    AcVariableType.BRANCH_ALPHA1: ElementType.BRANCH,
    AcVariableType.BRANCH_RHO1: ElementType.BRANCH,
    AcVariableType.DUMMY_P: ElementType.BRANCH,
    AcVariableType.DUMMY_Q: ElementType.BRANCH,
}

_VARIABLE_SYMBOLS = {
    AcVariableType.BUS_V: "v",
    AcVariableType.BUS_PHI: "φ",
    AcVariableType.BUS_V_ZERO: "v_0",
    AcVariableType.BUS_PHI_ZERO: "φ_0",
    AcVariableType.BUS_V_NEGATIVE: "v_2",
    AcVariableType.BUS_PHI_NEGATIVE: "φ_2",
    AcVariableType.SHUNT_B: "b",
    AcVariableType.BRANCH_ALPHA1: "α",
    AcVariableType.BRANCH_RHO1: "ρ",
    AcVariableType.DUMMY_P: "dummy_p",
    AcVariableType.DUMMY_Q: "dummy_q",
}

_ANGLE_LIKE_VARIABLES = frozenset({
    AcVariableType.BUS_PHI,
    AcVariableType.BUS_PHI_ZERO,
    AcVariableType.BUS_PHI_NEGATIVE,
    AcVariableType.BRANCH_ALPHA1,
    AcVariableType.DUMMY_P,
})


class Variable:
    """
    Scalar unknown of the equation system.

    Attributes
    ----------
    element_num : int
        Number of the element (bus, branch or shunt) the variable belongs to.
    type : AcVariableType
        Kind of the variable.
    row : int
        Row in the state vector, or -1 if the variable is not an unknown of
        the current system.

    Notes
    -----
    Instances must only be created through VariableSet.get_or_create so that
    identity comparison is meaningful.
    """

    __slots__ = ("element_num", "type", "row")

    def __init__(self, element_num: int, variable_type: AcVariableType) -> None:
        if element_num < 0:
            raise ValueError(f"element_num must be non-negative, got {element_num}")
        self.element_num = element_num
        self.type = variable_type
        self.row = -1

    @property
    def element_type(self) -> ElementType:
        return self.type.element_type

    @property
    def active(self) -> bool:
        """True if the variable currently has a row in the state vector."""
        return self.row >= 0

    def sort_key(self) -> Tuple[int, int]:
        return self.element_num, self.type.value

    def __lt__(self, other: "Variable") -> bool:
        return self.sort_key() < other.sort_key()

    def create_term(self):
        """Return an equation term whose value is this variable."""
        from equations.term import VariableEquationTerm
        return VariableEquationTerm(self)

    def write(self) -> str:
        return f"{self.type.symbol}{self.element_num}"

    def __repr__(self) -> str:
        return f"Variable(element_num={self.element_num}, type={self.type.name}, row={self.row})"


class VariableSet:
    """
    Exclusive factory and owner of the variables of one equation system.

    Variables are interned by (element_num, variable type). Creation order is
    kept, but callers must not rely on it to infer when a variable was first
    requested: duplicated requests are silently coalesced.
    """

    def __init__(self) -> None:
        self._variables: Dict[Tuple[int, AcVariableType], Variable] = {}

    def get_or_create(self, element_num: int, variable_type: AcVariableType) -> Variable:
        """
        Return the variable with the given identity, creating it on first request.

        Parameters
        ----------
        element_num : int
            Number of the owning element.
        variable_type : AcVariableType
            Kind of the variable.

        Returns
        -------
        Variable
            The unique instance for this identity.
        """
        key = (element_num, variable_type)
        variable = self._variables.get(key)
        if variable is None:
            variable = Variable(element_num, variable_type)
            self._variables[key] = variable
        return variable

    def get_variable(self, element_num: int, variable_type: AcVariableType) -> Optional[Variable]:
        """Return the variable if it was ever created, None otherwise."""
        return self._variables.get((element_num, variable_type))

    def has_variable(self, element_num: int, variable_type: AcVariableType) -> bool:
        return (element_num, variable_type) in self._variables

    @property
    def variables(self) -> List[Variable]:
        """All variables in creation order."""
        return list(self._variables.values())

    def __len__(self) -> int:
        return len(self._variables)

    def __iter__(self):
        return iter(self._variables.values())
