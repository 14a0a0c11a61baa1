"""
Pandapower Import Module
========================

Converts a pandapower network into an LfNetwork.

Conversion rules
----------------
* Quantities are expressed in per-unit of ``net.sn_mva`` and of the nominal
  voltage of each bus.
* Out-of-service elements are skipped.
* ``ext_grid`` buses become slack buses (the first one is the angle
  reference) regulating their voltage with a local generator voltage control.
* ``gen`` units regulate the voltage of their bus, ``sgen`` units inject
  fixed powers, ``load`` units add to the constant load of their bus.
* Fixed shunts of a bus are merged into one LfShunt.
* Two-winding transformers become a branch with the tap ratio and phase
  shift of an ideal transformer at the high voltage side; three-winding
  transformers become a star of three branches around an auxiliary bus.
* Closed bus-bus switches become zero impedance branches.

Public API
----------
``from_pandapower(net)``
    → ``(LfNetwork, PandapowerMapping)``

Author: Manuel Schwenke
Date: 2025-02-05
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Tuple

import pandapower as pp
import pandas as pd

from network.controls import create_generator_voltage_control
from network.model import LfBranch, LfBus, LfGenerator, LfNetwork, LfShunt, PiModel

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
#  MAPPING
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class PandapowerMapping:
    """Pandapower element index to LfNetwork element number.

    Attributes
    ----------
    buses : dict[int, int]
        ``net.bus`` index → bus number.
    lines : dict[int, int]
        ``net.line`` index → branch number.
    trafos : dict[int, int]
        ``net.trafo`` index → branch number.
    trafo3ws : dict[int, tuple[int, int, int]]
        ``net.trafo3w`` index → (hv, mv, lv) star branch numbers.
    trafo3w_star_buses : dict[int, int]
        ``net.trafo3w`` index → star bus number.
    switches : dict[int, int]
        ``net.switch`` index → zero impedance branch number.
    """

    buses: Dict[int, int] = field(default_factory=dict)
    lines: Dict[int, int] = field(default_factory=dict)
    trafos: Dict[int, int] = field(default_factory=dict)
    trafo3ws: Dict[int, Tuple[int, int, int]] = field(default_factory=dict)
    trafo3w_star_buses: Dict[int, int] = field(default_factory=dict)
    switches: Dict[int, int] = field(default_factory=dict)


# ═══════════════════════════════════════════════════════════════════════════════
#  HELPERS
# ═══════════════════════════════════════════════════════════════════════════════

def _value(df: pd.DataFrame, idx: int, column: str, default: float = 0.0) -> float:
    """Float value of a cell, ``default`` when the column is missing or NaN."""
    if column not in df.columns:
        return default
    value = df.at[idx, column]
    if value is None or pd.isna(value):
        return default
    return float(value)


def _tap_factor(trafo: pd.DataFrame, idx: int, side: str) -> float:
    """Voltage factor of the tap changer of a transformer winding."""
    if "tap_side" not in trafo.columns or trafo.at[idx, "tap_side"] != side:
        return 1.0
    tap_pos = _value(trafo, idx, "tap_pos", math.nan)
    if math.isnan(tap_pos):
        return 1.0
    steps = tap_pos - _value(trafo, idx, "tap_neutral")
    return 1.0 + steps * _value(trafo, idx, "tap_step_percent") / 100.0


def _series_impedance(vk_percent: float, vkr_percent: float, sn_rated: float, sn_base: float
                      ) -> Tuple[float, float]:
    """Short circuit impedance of a winding pair on the system base."""
    z = vk_percent / 100.0 * sn_base / sn_rated
    r = vkr_percent / 100.0 * sn_base / sn_rated
    x = math.sqrt(max(z * z - r * r, 0.0))
    return r, x


def _magnetizing_admittance(pfe_kw: float, i0_percent: float, sn_rated: float, sn_base: float
                            ) -> Tuple[float, float]:
    y = i0_percent / 100.0 * sn_rated / sn_base
    g = pfe_kw / 1000.0 / sn_base
    b = -math.sqrt(max(y * y - g * g, 0.0))
    return g, b


# ═══════════════════════════════════════════════════════════════════════════════
#  IMPORT
# ═══════════════════════════════════════════════════════════════════════════════

def from_pandapower(net: pp.pandapowerNet, network_id: str = "pandapower") -> Tuple[LfNetwork, PandapowerMapping]:
    """
    Build an LfNetwork from a pandapower network.

    Parameters
    ----------
    net : pp.pandapowerNet
        Source network; ``res_bus`` is used as initial voltage when present.
    network_id : str, optional
        Identifier of the created network.

    Returns
    -------
    network : LfNetwork
        Converted network.
    mapping : PandapowerMapping
        Index mapping between both models.

    Raises
    ------
    ValueError
        If the network has no in-service external grid or an element refers
        to an unknown bus.
    """
    sn = float(net.sn_mva)
    network = LfNetwork(network_id)
    mapping = PandapowerMapping()

    _import_buses(net, network, mapping)
    _import_injections(net, network, mapping, sn)
    _import_shunts(net, network, mapping, sn)
    _import_lines(net, network, mapping, sn)
    _import_trafos(net, network, mapping, sn)
    _import_trafo3ws(net, network, mapping, sn)
    _import_switches(net, network, mapping)

    if not network.slack_buses:
        raise ValueError("Pandapower network has no in-service external grid")
    logger.info("Imported pandapower network: %d buses, %d branches, %d shunts",
                len(network.buses), len(network.branches), len(network.shunts))
    return network, mapping


def _bus(network: LfNetwork, mapping: PandapowerMapping, pp_bus: int) -> LfBus:
    num = mapping.buses.get(int(pp_bus))
    if num is None:
        raise ValueError(f"Element refers to unknown or out-of-service bus {pp_bus}")
    return network.get_bus(num)


def _import_buses(net: pp.pandapowerNet, network: LfNetwork, mapping: PandapowerMapping) -> None:
    has_results = "res_bus" in net and not net.res_bus.empty
    for idx in net.bus.index:
        if not bool(net.bus.at[idx, "in_service"]):
            continue
        v, angle = 1.0, 0.0
        if has_results and idx in net.res_bus.index and not pd.isna(net.res_bus.at[idx, "vm_pu"]):
            v = float(net.res_bus.at[idx, "vm_pu"])
            angle = math.radians(float(net.res_bus.at[idx, "va_degree"]))
        bus = network.add_bus(LfBus(f"bus_{idx}", nominal_v=float(net.bus.at[idx, "vn_kv"]), v=v, angle=angle))
        mapping.buses[int(idx)] = bus.num


def _add_voltage_controlling_generator(bus: LfBus, generator: LfGenerator) -> None:
    bus.add_generator(generator)
    if bus.generator_voltage_control is None:
        create_generator_voltage_control(bus, [bus], generator.target_v)


def _import_injections(net: pp.pandapowerNet, network: LfNetwork, mapping: PandapowerMapping,
                       sn: float) -> None:
    reference_set = False
    for idx in net.ext_grid.index:
        if not bool(net.ext_grid.at[idx, "in_service"]):
            continue
        bus = _bus(network, mapping, net.ext_grid.at[idx, "bus"])
        bus.slack = True
        if not reference_set:
            bus.reference = True
            reference_set = True
        generator = LfGenerator(f"ext_grid_{idx}", target_v=_value(net.ext_grid, idx, "vm_pu", 1.0))
        _add_voltage_controlling_generator(bus, generator)

    for idx in net.gen.index:
        if not bool(net.gen.at[idx, "in_service"]):
            continue
        bus = _bus(network, mapping, net.gen.at[idx, "bus"])
        generator = LfGenerator(f"gen_{idx}",
                                target_p=_value(net.gen, idx, "p_mw") * _value(net.gen, idx, "scaling", 1.0) / sn,
                                target_v=_value(net.gen, idx, "vm_pu", 1.0))
        _add_voltage_controlling_generator(bus, generator)
        if "slack" in net.gen.columns and bool(net.gen.at[idx, "slack"]):
            bus.slack = True

    for idx in net.sgen.index:
        if not bool(net.sgen.at[idx, "in_service"]):
            continue
        bus = _bus(network, mapping, net.sgen.at[idx, "bus"])
        scaling = _value(net.sgen, idx, "scaling", 1.0)
        bus.add_generator(LfGenerator(f"sgen_{idx}",
                                      target_p=_value(net.sgen, idx, "p_mw") * scaling / sn,
                                      target_q=_value(net.sgen, idx, "q_mvar") * scaling / sn))

    for idx in net.load.index:
        if not bool(net.load.at[idx, "in_service"]):
            continue
        bus = _bus(network, mapping, net.load.at[idx, "bus"])
        scaling = _value(net.load, idx, "scaling", 1.0)
        bus.load_target_p += _value(net.load, idx, "p_mw") * scaling / sn
        bus.load_target_q += _value(net.load, idx, "q_mvar") * scaling / sn


def _import_shunts(net: pp.pandapowerNet, network: LfNetwork, mapping: PandapowerMapping, sn: float) -> None:
    admittances: Dict[int, Tuple[float, float]] = {}
    for idx in net.shunt.index:
        if not bool(net.shunt.at[idx, "in_service"]):
            continue
        bus = _bus(network, mapping, net.shunt.at[idx, "bus"])
        step = _value(net.shunt, idx, "step", 1.0)
        # powers are given at vn_kv, consumption positive
        scale = (bus.nominal_v / _value(net.shunt, idx, "vn_kv", bus.nominal_v)) ** 2
        g, b = admittances.get(bus.num, (0.0, 0.0))
        admittances[bus.num] = (g + _value(net.shunt, idx, "p_mw") * step * scale / sn,
                                b - _value(net.shunt, idx, "q_mvar") * step * scale / sn)
    for num, (g, b) in admittances.items():
        bus = network.get_bus(num)
        network.add_shunt(LfShunt(f"shunt_{bus.id}", bus, g=g, b=b))


def _import_lines(net: pp.pandapowerNet, network: LfNetwork, mapping: PandapowerMapping, sn: float) -> None:
    f_hz = float(net.f_hz) if "f_hz" in net else 50.0
    for idx in net.line.index:
        if not bool(net.line.at[idx, "in_service"]):
            continue
        bus1 = _bus(network, mapping, net.line.at[idx, "from_bus"])
        bus2 = _bus(network, mapping, net.line.at[idx, "to_bus"])
        length = _value(net.line, idx, "length_km", 1.0)
        parallel = _value(net.line, idx, "parallel", 1.0)
        z_base = bus1.nominal_v ** 2 / sn
        r = _value(net.line, idx, "r_ohm_per_km") * length / parallel / z_base
        x = _value(net.line, idx, "x_ohm_per_km") * length / parallel / z_base
        b = 2.0 * math.pi * f_hz * _value(net.line, idx, "c_nf_per_km") * 1e-9 * length * parallel * z_base
        g = _value(net.line, idx, "g_us_per_km") * 1e-6 * length * parallel * z_base
        pi_model = PiModel(r=r, x=x, g1=g / 2.0, b1=b / 2.0, g2=g / 2.0, b2=b / 2.0)
        branch = network.add_branch(LfBranch(f"line_{idx}", bus1, bus2, pi_model, branch_type="LINE"))
        mapping.lines[int(idx)] = branch.num


def _import_trafos(net: pp.pandapowerNet, network: LfNetwork, mapping: PandapowerMapping, sn: float) -> None:
    trafo = net.trafo
    for idx in trafo.index:
        if not bool(trafo.at[idx, "in_service"]):
            continue
        hv_bus = _bus(network, mapping, trafo.at[idx, "hv_bus"])
        lv_bus = _bus(network, mapping, trafo.at[idx, "lv_bus"])
        sn_rated = _value(trafo, idx, "sn_mva") * _value(trafo, idx, "parallel", 1.0)
        vn_hv = _value(trafo, idx, "vn_hv_kv")
        vn_lv = _value(trafo, idx, "vn_lv_kv")

        # impedances on the low voltage side, scaled to the bus nominal voltage
        z_scale = (vn_lv / lv_bus.nominal_v) ** 2
        r, x = _series_impedance(_value(trafo, idx, "vk_percent"), _value(trafo, idx, "vkr_percent"), sn_rated, sn)
        g, b = _magnetizing_admittance(_value(trafo, idx, "pfe_kw"), _value(trafo, idx, "i0_percent"),
                                       sn_rated, sn)
        ratio = (vn_hv * _tap_factor(trafo, idx, "hv")) / (vn_lv * _tap_factor(trafo, idx, "lv"))
        r1 = (hv_bus.nominal_v / lv_bus.nominal_v) / ratio
        a1 = -math.radians(_value(trafo, idx, "shift_degree"))
        pi_model = PiModel(r=r * z_scale, x=x * z_scale, g1=g / 2.0 / z_scale, b1=b / 2.0 / z_scale,
                           g2=g / 2.0 / z_scale, b2=b / 2.0 / z_scale, r1=r1, a1=a1)
        phase_shifter = "tap_phase_shifter" in trafo.columns and bool(trafo.at[idx, "tap_phase_shifter"])
        branch = network.add_branch(LfBranch(f"trafo_{idx}", hv_bus, lv_bus, pi_model, branch_type="TRANSFORMER",
                                             phase_control_capability=phase_shifter))
        mapping.trafos[int(idx)] = branch.num


def _import_trafo3ws(net: pp.pandapowerNet, network: LfNetwork, mapping: PandapowerMapping, sn: float) -> None:
    trafo = net.trafo3w
    for idx in trafo.index:
        if not bool(trafo.at[idx, "in_service"]):
            continue
        sn_hv = _value(trafo, idx, "sn_hv_mva")
        sn_mv = _value(trafo, idx, "sn_mv_mva")
        sn_lv = _value(trafo, idx, "sn_lv_mva")
        vn_hv = _value(trafo, idx, "vn_hv_kv")

        # pairwise short circuit impedances, each on the smaller rating of its pair
        r_hm, x_hm = _series_impedance(_value(trafo, idx, "vk_hv_percent"), _value(trafo, idx, "vkr_hv_percent"),
                                       min(sn_hv, sn_mv), sn)
        r_ml, x_ml = _series_impedance(_value(trafo, idx, "vk_mv_percent"), _value(trafo, idx, "vkr_mv_percent"),
                                       min(sn_mv, sn_lv), sn)
        r_lh, x_lh = _series_impedance(_value(trafo, idx, "vk_lv_percent"), _value(trafo, idx, "vkr_lv_percent"),
                                       min(sn_lv, sn_hv), sn)
        star = {
            "hv": ((r_hm + r_lh - r_ml) / 2.0, (x_hm + x_lh - x_ml) / 2.0),
            "mv": ((r_hm + r_ml - r_lh) / 2.0, (x_hm + x_ml - x_lh) / 2.0),
            "lv": ((r_ml + r_lh - r_hm) / 2.0, (x_ml + x_lh - x_hm) / 2.0),
        }
        g_m, b_m = _magnetizing_admittance(_value(trafo, idx, "pfe_kw"), _value(trafo, idx, "i0_percent"),
                                           sn_hv, sn)

        star_bus = network.add_bus(LfBus(f"trafo3w_{idx}_star", nominal_v=vn_hv))
        mapping.trafo3w_star_buses[int(idx)] = star_bus.num
        nums = []
        for winding in ("hv", "mv", "lv"):
            bus = _bus(network, mapping, trafo.at[idx, f"{winding}_bus"])
            vn_winding = _value(trafo, idx, f"vn_{winding}_kv")
            r, x = star[winding]
            # winding voltage in per-unit of the star bus, side 1 is the winding bus
            r1 = bus.nominal_v / (vn_winding * _tap_factor(trafo, idx, winding))
            a1 = 0.0 if winding == "hv" else math.radians(_value(trafo, idx, f"shift_{winding}_degree"))
            g2, b2 = (g_m, b_m) if winding == "hv" else (0.0, 0.0)
            pi_model = PiModel(r=r, x=x, g2=g2, b2=b2, r1=r1, a1=a1)
            branch = network.add_branch(LfBranch(f"trafo3w_{idx}_{winding}", bus, star_bus, pi_model,
                                                 branch_type="TRANSFORMER"))
            nums.append(branch.num)
        mapping.trafo3ws[int(idx)] = tuple(nums)


def _import_switches(net: pp.pandapowerNet, network: LfNetwork, mapping: PandapowerMapping) -> None:
    for idx in net.switch.index:
        if net.switch.at[idx, "et"] != "b" or not bool(net.switch.at[idx, "closed"]):
            continue
        bus1 = _bus(network, mapping, net.switch.at[idx, "bus"])
        bus2 = _bus(network, mapping, net.switch.at[idx, "element"])
        branch = network.add_branch(LfBranch(f"switch_{idx}", bus1, bus2, PiModel(), branch_type="SWITCH"))
        mapping.switches[int(idx)] = branch.num
