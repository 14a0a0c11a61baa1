"""
AC Network Vectors Module
=========================

Flat numpy views of the network used on the Newton-Raphson hot path.

For every element type the vectors hold

- structural arrays: physical constants and the state-vector rows of the
  element variables (-1 when the variable is not part of the unknown set),
  rebuilt after each re-indexing of the equation system;
- value arrays: flows and partial derivatives, recomputed with vectorized
  numpy arithmetic after each write to the state vector.

Variables outside the unknown set take the element value (bus voltage and
angle, pi-model r1 and a1, shunt susceptance), the same substitution the
scalar equation terms apply.

Author: Manuel Schwenke
Date: 2025-02-05
"""

from __future__ import annotations

import logging
import time

import numpy as np
from numpy.typing import NDArray

from ac import flows
from equations.listeners import EquationSystemIndexListener, StateVectorListener
from equations.variable import AcVariableType, ElementType
from network.model import LfNetworkListener

logger = logging.getLogger(__name__)


def take(x: NDArray[np.float64], rows: NDArray[np.int64], default: NDArray[np.float64]) -> NDArray[np.float64]:
    """State values at ``rows``, ``default`` where the row is -1."""
    out = np.array(default, dtype=np.float64, copy=True)
    mask = rows >= 0
    out[mask] = x[rows[mask]]
    return out


def variable_rows(variable_set, nums, variable_type: AcVariableType) -> NDArray[np.int64]:
    rows = np.full(len(nums), -1, dtype=np.int64)
    for i, num in enumerate(nums):
        if num < 0:
            continue
        variable = variable_set.get_variable(num, variable_type)
        if variable is not None:
            rows[i] = variable.row
    return rows


# =============================================================================
# Buses
# =============================================================================

class AcBusVector:
    """
    Bus voltages.

    Attributes
    ----------
    v, ph : NDArray[np.float64]
        Voltage magnitude and angle at the current state.
    v_row, ph_row : NDArray[np.int64]
        State rows of the BUS_V and BUS_PHI variables.
    disabled : NDArray[np.bool_]
        Disabled flags.
    """

    def __init__(self, network) -> None:
        self.network = network
        n = len(network.buses)
        self.v_row = np.full(n, -1, dtype=np.int64)
        self.ph_row = np.full(n, -1, dtype=np.int64)
        self.disabled = np.array([bus.disabled for bus in network.buses], dtype=bool)
        self.v = np.array([bus.v for bus in network.buses], dtype=np.float64)
        self.ph = np.array([bus.angle for bus in network.buses], dtype=np.float64)

    def update_rows(self, variable_set) -> None:
        nums = range(len(self.network.buses))
        self.v_row = variable_rows(variable_set, nums, AcVariableType.BUS_V)
        self.ph_row = variable_rows(variable_set, nums, AcVariableType.BUS_PHI)

    def update_values(self, x: NDArray[np.float64]) -> None:
        buses = self.network.buses
        self.v = take(x, self.v_row, np.array([bus.v for bus in buses], dtype=np.float64))
        self.ph = take(x, self.ph_row, np.array([bus.angle for bus in buses], dtype=np.float64))


# =============================================================================
# Branches
# =============================================================================

_CLOSED_QUANTITIES = ("p1", "q1", "p2", "q2", "i1", "i2")
_PARTIALS = ("dv1", "dv2", "dph1", "dph2", "da1", "dr1")


class AcBranchVector:
    """
    Branch parameters, rows and closed branch flows.

    Attributes
    ----------
    bus1_num, bus2_num : NDArray[np.int64]
        Terminal bus numbers, -1 for a missing bus.
    y, ksi, sin_ksi, cos_ksi, g12, b12 : NDArray[np.float64]
        Series admittance magnitude and angle, and its real and imaginary
        parts. Zero for zero impedance branches.
    g1, b1, g2, b2 : NDArray[np.float64]
        Shunt admittances.
    r1, a1 : NDArray[np.float64]
        Tap ratio and phase shift at the current state.
    p1, q1, p2, q2, i1, i2 : NDArray[np.float64]
        Closed branch flows at the current state, with partial derivatives
        stored as ``dp1_dv1``, ``dp1_dph2``, ``dq2_dr1`` and so on.
    """

    def __init__(self, network) -> None:
        self.network = network
        branches = network.branches
        n = len(branches)
        self.bus1_num = np.array([b.bus1.num if b.bus1 is not None else -1 for b in branches], dtype=np.int64)
        self.bus2_num = np.array([b.bus2.num if b.bus2 is not None else -1 for b in branches], dtype=np.int64)
        self.connected1 = np.array([b.connected_side1 for b in branches], dtype=bool)
        self.connected2 = np.array([b.connected_side2 for b in branches], dtype=bool)
        self.disabled = np.array([b.disabled for b in branches], dtype=bool)
        self.y = np.zeros(n)
        self.ksi = np.zeros(n)
        self.g1 = np.array([b.pi_model.g1 for b in branches], dtype=np.float64)
        self.b1 = np.array([b.pi_model.b1 for b in branches], dtype=np.float64)
        self.g2 = np.array([b.pi_model.g2 for b in branches], dtype=np.float64)
        self.b2 = np.array([b.pi_model.b2 for b in branches], dtype=np.float64)
        for i, branch in enumerate(branches):
            if not branch.is_zero_impedance():
                self.y[i] = branch.pi_model.y
                self.ksi[i] = branch.pi_model.ksi
        self.sin_ksi = np.sin(self.ksi)
        self.cos_ksi = np.cos(self.ksi)
        self.g12 = self.y * self.sin_ksi
        self.b12 = -self.y * self.cos_ksi
        self.r1_fixed = np.array([b.pi_model.r1 for b in branches], dtype=np.float64)
        self.a1_fixed = np.array([b.pi_model.a1 for b in branches], dtype=np.float64)
        self.r1 = self.r1_fixed.copy()
        self.a1 = self.a1_fixed.copy()
        for name in ("v1_row", "v2_row", "ph1_row", "ph2_row", "a1_row", "r1_row",
                     "dummy_p_row", "dummy_q_row"):
            setattr(self, name, np.full(n, -1, dtype=np.int64))
        for quantity in _CLOSED_QUANTITIES:
            setattr(self, quantity, np.zeros(n))
            for partial in _PARTIALS:
                setattr(self, f"d{quantity}_{partial}", np.zeros(n))

    @property
    def derive_a1(self) -> NDArray[np.bool_]:
        return self.a1_row >= 0

    @property
    def derive_r1(self) -> NDArray[np.bool_]:
        return self.r1_row >= 0

    def update_pi_model(self, branch) -> None:
        self.r1_fixed[branch.num] = branch.pi_model.r1
        self.a1_fixed[branch.num] = branch.pi_model.a1

    def update_rows(self, variable_set) -> None:
        nums = range(len(self.network.branches))
        self.v1_row = variable_rows(variable_set, self.bus1_num, AcVariableType.BUS_V)
        self.v2_row = variable_rows(variable_set, self.bus2_num, AcVariableType.BUS_V)
        self.ph1_row = variable_rows(variable_set, self.bus1_num, AcVariableType.BUS_PHI)
        self.ph2_row = variable_rows(variable_set, self.bus2_num, AcVariableType.BUS_PHI)
        self.a1_row = variable_rows(variable_set, nums, AcVariableType.BRANCH_ALPHA1)
        self.r1_row = variable_rows(variable_set, nums, AcVariableType.BRANCH_RHO1)
        self.dummy_p_row = variable_rows(variable_set, nums, AcVariableType.DUMMY_P)
        self.dummy_q_row = variable_rows(variable_set, nums, AcVariableType.DUMMY_Q)

    def update_values(self, x: NDArray[np.float64], bus_vector: AcBusVector) -> None:
        bus_v = np.append(bus_vector.v, 1.0)
        bus_ph = np.append(bus_vector.ph, 0.0)
        # missing buses map to the appended neutral entry
        v1 = bus_v[self.bus1_num]
        v2 = bus_v[self.bus2_num]
        ph1 = bus_ph[self.bus1_num]
        ph2 = bus_ph[self.bus2_num]
        self.r1 = take(x, self.r1_row, self.r1_fixed)
        self.a1 = take(x, self.a1_row, self.a1_fixed)
        r1, a1 = self.r1, self.a1

        results = {
            "p1": flows.closed_p1(self.y, self.ksi, self.g1, v1, ph1, r1, a1, v2, ph2),
            "q1": flows.closed_q1(self.y, self.ksi, self.b1, v1, ph1, r1, a1, v2, ph2),
            "p2": flows.closed_p2(self.y, self.ksi, self.g2, v1, ph1, r1, a1, v2, ph2),
            "q2": flows.closed_q2(self.y, self.ksi, self.b2, v1, ph1, r1, a1, v2, ph2),
            "i1": flows.closed_i1(self.y, self.ksi, self.g1, self.b1, v1, ph1, r1, a1, v2, ph2),
            "i2": flows.closed_i2(self.y, self.ksi, self.g2, self.b2, v1, ph1, r1, a1, v2, ph2),
        }
        for quantity, flow in results.items():
            setattr(self, quantity, flow.value)
            for partial in _PARTIALS:
                setattr(self, f"d{quantity}_{partial}", getattr(flow, partial))

    def get(self, quantity: str, num: int) -> float:
        return float(getattr(self, quantity)[num])

    def get_partial(self, quantity: str, partial: str, num: int) -> float:
        return float(getattr(self, f"d{quantity}_{partial}")[num])


# =============================================================================
# Shunts and loads
# =============================================================================

class AcShuntVector:
    """
    Shunt compensator flows.

    Attributes
    ----------
    g, b : NDArray[np.float64]
        Conductance and susceptance at the current state.
    b_row : NDArray[np.int64]
        State row of the SHUNT_B variable.
    p, q, dpdv, dqdv, dqdb : NDArray[np.float64]
        Consumed powers and derivatives.
    q_fixed, dqdv_fixed : NDArray[np.float64]
        Reactive power and its v derivative at the susceptance of the shunt,
        read by terms that do not derive b.
    """

    def __init__(self, network) -> None:
        self.network = network
        shunts = network.shunts
        n = len(shunts)
        self.bus_num = np.array([s.bus.num for s in shunts], dtype=np.int64)
        self.g = np.array([s.g for s in shunts], dtype=np.float64)
        self.b_fixed = np.array([s.b for s in shunts], dtype=np.float64)
        self.b = self.b_fixed.copy()
        self.b_row = np.full(n, -1, dtype=np.int64)
        self.p = np.zeros(n)
        self.q = np.zeros(n)
        self.dpdv = np.zeros(n)
        self.dqdv = np.zeros(n)
        self.dqdb = np.zeros(n)
        self.q_fixed = np.zeros(n)
        self.dqdv_fixed = np.zeros(n)

    @property
    def derive_b(self) -> NDArray[np.bool_]:
        return self.b_row >= 0

    def update_susceptance(self, shunt) -> None:
        self.b_fixed[shunt.num] = shunt.b

    def update_rows(self, variable_set) -> None:
        self.b_row = variable_rows(variable_set, range(len(self.network.shunts)), AcVariableType.SHUNT_B)

    def update_values(self, x: NDArray[np.float64], bus_vector: AcBusVector) -> None:
        v = bus_vector.v[self.bus_num] if len(self.bus_num) else np.zeros(0)
        self.b = take(x, self.b_row, self.b_fixed)
        self.p, self.dpdv = flows.shunt_p(self.g, v)
        self.q, self.dqdv, self.dqdb = flows.shunt_q(self.b, v)
        self.q_fixed, self.dqdv_fixed, _ = flows.shunt_q(self.b_fixed, v)


class AcLoadVector:
    """
    Exponential load model powers per bus (zero where a bus has no model).

    Every exponential term of every model is one entry of flat coefficient
    and exponent arrays; the terms are summed per model with ``np.bincount``.
    """

    def __init__(self, network) -> None:
        self.network = network
        n = len(network.buses)
        self.models = [bus.load_model for bus in network.buses if bus.load_model is not None]
        self.model_bus_num = np.array([bus.num for bus in network.buses if bus.load_model is not None],
                                      dtype=np.int64)
        self.p_terms = self._term_arrays("exp_terms_p")
        self.q_terms = self._term_arrays("exp_terms_q")
        self.p = np.zeros(n)
        self.q = np.zeros(n)
        self.dpdv = np.zeros(n)
        self.dqdv = np.zeros(n)

    def _term_arrays(self, attribute: str):
        """Model index, coefficient and exponent of every exponential term."""
        pairs = [(i, c, exponent) for i, model in enumerate(self.models)
                 for c, exponent in getattr(model, attribute)]
        return (np.array([p[0] for p in pairs], dtype=np.int64),
                np.array([p[1] for p in pairs], dtype=np.float64),
                np.array([p[2] for p in pairs], dtype=np.float64))

    def _power(self, terms, targets: NDArray[np.float64], v: NDArray[np.float64]):
        index, c, exponent = terms
        v_term = v[self.model_bus_num[index]]
        value = c * v_term ** exponent
        dv = np.zeros_like(value)
        mask = exponent != 0
        dv[mask] = c[mask] * exponent[mask] * v_term[mask] ** (exponent[mask] - 1)
        n_models = len(self.models)
        power = np.zeros(len(v))
        dpower = np.zeros(len(v))
        power[self.model_bus_num] = targets * np.bincount(index, weights=value, minlength=n_models)
        dpower[self.model_bus_num] = targets * np.bincount(index, weights=dv, minlength=n_models)
        return power, dpower

    def update_values(self, bus_vector: AcBusVector) -> None:
        target_p = np.array([model.target_p for model in self.models], dtype=np.float64)
        target_q = np.array([model.target_q for model in self.models], dtype=np.float64)
        self.p, self.dpdv = self._power(self.p_terms, target_p, bus_vector.v)
        self.q, self.dqdv = self._power(self.q_terms, target_q, bus_vector.v)


# =============================================================================
# Network vector
# =============================================================================

class AcNetworkVector(EquationSystemIndexListener, StateVectorListener, LfNetworkListener):
    """
    Two-tier cache of the network vectors.

    Rows are refreshed after a re-indexing of the equation system (structural
    tier); values are refreshed after each write to the state vector
    (numerical tier). Terms call ``update_if_needed`` before reading, so the
    cache is also correct when a structural change happened after the last
    state write.
    """

    def __init__(self, network, equation_system) -> None:
        self.network = network
        self.equation_system = equation_system
        self.bus_vector = AcBusVector(network)
        self.branch_vector = AcBranchVector(network)
        self.shunt_vector = AcShuntVector(network)
        self.load_vector = AcLoadVector(network)
        self._rows_valid = False
        self._values_valid = False

    def start_listening(self) -> None:
        self.equation_system.index.add_listener(self)
        self.equation_system.state_vector.add_listener(self)
        self.network.add_listener(self)

    def stop_listening(self) -> None:
        self.equation_system.index.remove_listener(self)
        self.equation_system.state_vector.remove_listener(self)
        self.network.remove_listener(self)

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def _update_rows(self) -> None:
        variable_set = self.equation_system.variable_set
        self.bus_vector.update_rows(variable_set)
        self.branch_vector.update_rows(variable_set)
        self.shunt_vector.update_rows(variable_set)
        self._rows_valid = True

    def _update_values(self) -> None:
        start = time.perf_counter()
        x = self.equation_system.state_vector.get()
        self.bus_vector.update_values(x)
        self.branch_vector.update_values(x, self.bus_vector)
        self.shunt_vector.update_values(x, self.bus_vector)
        self.load_vector.update_values(self.bus_vector)
        self._values_valid = True
        logger.debug("Network vectors refreshed in %.3f ms", (time.perf_counter() - start) * 1e3)

    def update_if_needed(self) -> None:
        self.equation_system.index.update()
        if not self._rows_valid:
            self._update_rows()
        if not self._values_valid:
            self._update_values()

    # ------------------------------------------------------------------
    # Index and state listeners
    # ------------------------------------------------------------------

    def on_equations_index_order_changed(self) -> None:
        pass

    def on_variables_index_order_changed(self) -> None:
        self._rows_valid = False
        self._values_valid = False

    def on_state_update(self) -> None:
        self._values_valid = False
        self.update_if_needed()

    # ------------------------------------------------------------------
    # Network listener
    # ------------------------------------------------------------------

    def on_tap_position_change(self, branch) -> None:
        self.branch_vector.update_pi_model(branch)
        self._values_valid = False

    def on_shunt_susceptance_change(self, shunt) -> None:
        self.shunt_vector.update_susceptance(shunt)
        self._values_valid = False

    def on_disable_change(self, element, disabled: bool) -> None:
        if element.element_type is ElementType.BUS:
            self.bus_vector.disabled[element.num] = disabled
        elif element.element_type is ElementType.BRANCH:
            self.branch_vector.disabled[element.num] = disabled

    def on_branch_connection_status_change(self, branch, side: int, connected: bool) -> None:
        if side == 1:
            self.branch_vector.connected1[branch.num] = connected
        else:
            self.branch_vector.connected2[branch.num] = connected
