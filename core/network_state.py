"""
Network State Module
====================

This module defines the NetworkState class, a cached snapshot of the
operating point of an LfNetwork.

The snapshot serves two purposes:

- initialising the state vector of an equation system from the element
  values (bus voltages, tap ratios, phase shifts, shunt susceptances),
- restoring the element values after an experiment (control mode switch,
  finite difference perturbation) has moved them.

Variables without a physical counterpart (dummy zero impedance flows) and
the zero and negative sequence voltages start at 0, which is the balanced
network solution.

Author: Manuel Schwenke
Date: 2025-02-05
"""

from datetime import datetime, timezone

import numpy as np
from numpy.typing import NDArray

from equations.variable import AcVariableType


class NetworkState:
    """
    Snapshot of the element values of a network.

    Attributes
    ----------
    voltage_magnitudes_pu : NDArray[np.float64]
        Bus voltage magnitudes in per-unit, indexed by bus number.
    voltage_angles_rad : NDArray[np.float64]
        Bus voltage angles in radians, indexed by bus number.
    tap_ratios : NDArray[np.float64]
        Tap ratio r1 of every branch, indexed by branch number.
    phase_shifts_rad : NDArray[np.float64]
        Phase shift a1 of every branch, indexed by branch number.
    shunt_susceptances_pu : NDArray[np.float64]
        Susceptance of every shunt, indexed by shunt number.
    source_case : str
        Identifier string for the source network or case name.
    timestamp : str
        ISO 8601 formatted timestamp of when this state was captured.
    """

    def __init__(
        self,
        voltage_magnitudes_pu: NDArray[np.float64],
        voltage_angles_rad: NDArray[np.float64],
        tap_ratios: NDArray[np.float64],
        phase_shifts_rad: NDArray[np.float64],
        shunt_susceptances_pu: NDArray[np.float64],
        source_case: str = "",
        timestamp: str = "",
    ) -> None:
        if len(voltage_magnitudes_pu) != len(voltage_angles_rad):
            raise ValueError(
                f"Voltage magnitudes ({len(voltage_magnitudes_pu)}) and angles "
                f"({len(voltage_angles_rad)}) must have the same length"
            )
        if len(tap_ratios) != len(phase_shifts_rad):
            raise ValueError(
                f"Tap ratios ({len(tap_ratios)}) and phase shifts ({len(phase_shifts_rad)}) "
                f"must have the same length"
            )
        self.voltage_magnitudes_pu = voltage_magnitudes_pu
        self.voltage_angles_rad = voltage_angles_rad
        self.tap_ratios = tap_ratios
        self.phase_shifts_rad = phase_shifts_rad
        self.shunt_susceptances_pu = shunt_susceptances_pu
        self.source_case = source_case
        self.timestamp = timestamp

    @classmethod
    def from_network(cls, network) -> "NetworkState":
        """Capture the current element values of ``network``."""
        return cls(
            voltage_magnitudes_pu=np.array([bus.v for bus in network.buses], dtype=np.float64),
            voltage_angles_rad=np.array([bus.angle for bus in network.buses], dtype=np.float64),
            tap_ratios=np.array([b.pi_model.r1 for b in network.branches], dtype=np.float64),
            phase_shifts_rad=np.array([b.pi_model.a1 for b in network.branches], dtype=np.float64),
            shunt_susceptances_pu=np.array([s.b for s in network.shunts], dtype=np.float64),
            source_case=network.id,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    @property
    def n_buses(self) -> int:
        """Return the number of buses in this network state."""
        return len(self.voltage_magnitudes_pu)

    @property
    def n_branches(self) -> int:
        return len(self.tap_ratios)

    def restore(self, network) -> None:
        """
        Write the snapshot back into the elements of ``network``.

        Raises
        ------
        ValueError
            If the network does not have the element counts of the snapshot.
        """
        if len(network.buses) != self.n_buses or len(network.branches) != self.n_branches \
                or len(network.shunts) != len(self.shunt_susceptances_pu):
            raise ValueError(f"Network {network.id!r} does not match the snapshot of {self.source_case!r}")
        for bus, v, angle in zip(network.buses, self.voltage_magnitudes_pu, self.voltage_angles_rad):
            bus.v = float(v)
            bus.angle = float(angle)
        for branch, r1, a1 in zip(network.branches, self.tap_ratios, self.phase_shifts_rad):
            branch.pi_model.r1 = float(r1)
            branch.pi_model.a1 = float(a1)
        for shunt, b in zip(network.shunts, self.shunt_susceptances_pu):
            shunt.b = float(b)

    def value_of(self, variable) -> float:
        """Initial value of a variable of the equation system."""
        num = variable.element_num
        variable_type = variable.type
        if variable_type is AcVariableType.BUS_V:
            return float(self.voltage_magnitudes_pu[num])
        if variable_type is AcVariableType.BUS_PHI:
            return float(self.voltage_angles_rad[num])
        if variable_type is AcVariableType.BRANCH_RHO1:
            return float(self.tap_ratios[num])
        if variable_type is AcVariableType.BRANCH_ALPHA1:
            return float(self.phase_shifts_rad[num])
        if variable_type is AcVariableType.SHUNT_B:
            return float(self.shunt_susceptances_pu[num])
        # dummy flows and zero/negative sequence voltages
        return 0.0

    def to_state_array(self, equation_system) -> NDArray[np.float64]:
        """State values in the variable row order of ``equation_system``."""
        variables = equation_system.index.sorted_variables_to_find()
        x = np.zeros(len(variables), dtype=np.float64)
        for variable in variables:
            x[variable.row] = self.value_of(variable)
        return x


def initialize_state_vector(equation_system, network) -> NDArray[np.float64]:
    """
    Set the state vector of ``equation_system`` from the element values.

    Returns
    -------
    NDArray[np.float64]
        The values written, one per variable row.
    """
    x = NetworkState.from_network(network).to_state_array(equation_system)
    equation_system.state_vector.set(x)
    return x
