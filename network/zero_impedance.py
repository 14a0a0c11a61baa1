"""
Zero Impedance Network Module
=============================

Sub-networks of buses connected by zero impedance branches.

Buses connected through non-disabled zero impedance branches share one
voltage. The equation system keeps a ZERO_V/ZERO_PHI coupling for the
branches of a spanning tree of each sub-network; the remaining branches (the
ones closing loops) carry dummy flows pinned to zero. The spanning tree is
computed with networkx (Kruskal on a MultiGraph so that parallel branches are
distinct edges).

Voltage controls whose controlled buses fall in one sub-network are merged
per control type.

Author: Manuel Schwenke
Date: 2025-02-05
"""

from __future__ import annotations

import logging
from typing import List, Set

import networkx as nx

from network.controls import MergeStatus

logger = logging.getLogger(__name__)


class LfZeroImpedanceNetwork:
    """
    Connected set of buses linked by zero impedance branches.

    Attributes
    ----------
    network : LfNetwork
        Owning network.
    graph : nx.MultiGraph
        Buses as nodes, non-disabled zero impedance branches as keyed edges.
    """

    def __init__(self, network, graph: nx.MultiGraph) -> None:
        self.network = network
        self.graph = graph
        for bus in self.buses:
            bus.zero_impedance_network = self
        self.update_spanning_tree()
        self.update_voltage_control_merge_status()

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @staticmethod
    def _create_graph(network) -> nx.MultiGraph:
        graph = nx.MultiGraph()
        for branch in network.branches:
            if branch.bus1 is None or branch.bus2 is None or not branch.is_zero_impedance():
                continue
            graph.add_node(branch.bus1)
            graph.add_node(branch.bus2)
            if not branch.disabled:
                graph.add_edge(branch.bus1, branch.bus2, key=branch)
        return graph

    @classmethod
    def create(cls, network) -> Set["LfZeroImpedanceNetwork"]:
        """Build one sub-network per connected component of zero impedance branches."""
        for bus in network.buses:
            bus.zero_impedance_network = None
        graph = cls._create_graph(network)
        zns = set()
        for component in nx.connected_components(graph):
            zns.add(cls(network, graph.subgraph(component).copy()))
        return zns

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    @property
    def buses(self) -> List:
        return sorted(self.graph.nodes, key=lambda bus: bus.num)

    @property
    def branches(self) -> List:
        return sorted((key for _, _, key in self.graph.edges(keys=True)), key=lambda branch: branch.num)

    def update_spanning_tree(self) -> None:
        tree = {key for _, _, key in nx.minimum_spanning_edges(self.graph, algorithm="kruskal", keys=True, data=False)}
        for branch in self.branches:
            spanning_tree = branch in tree
            if spanning_tree != branch.spanning_tree_edge:
                branch.spanning_tree_edge = spanning_tree
                for listener in self.network.listeners:
                    listener.on_zero_impedance_network_spanning_tree_change(branch, spanning_tree)

    def update_voltage_control_merge_status(self) -> None:
        """Merge the voltage controls of each type whose controlled bus is in this sub-network."""
        for attribute in ("generator_voltage_control", "transformer_voltage_control",
                          "shunt_voltage_control"):
            controls = []
            for bus in self.buses:
                vc = getattr(bus, attribute)
                if vc is not None and vc.controlled_bus is bus:
                    vc.reset_merge()
                    controls.append(vc)
            if len(controls) <= 1:
                continue
            controls.sort(key=lambda vc: (-vc.target_value, vc.controlled_bus.id))
            main = controls[0]
            for dependent in controls[1:]:
                dependent.merge_status = MergeStatus.DEPENDENT
                dependent.main_merged_voltage_control = main
                main.merged_dependent_voltage_controls.append(dependent)
            logger.debug("Merged %d %s controls of zero impedance network into %s",
                         len(controls), attribute, main.controlled_bus.id)

    # ------------------------------------------------------------------
    # Topology changes
    # ------------------------------------------------------------------

    def _replace_with(self, graphs: List[nx.MultiGraph]) -> List["LfZeroImpedanceNetwork"]:
        zns = self.network.zero_impedance_networks
        zns.discard(self)
        created = [LfZeroImpedanceNetwork(self.network, graph) for graph in graphs]
        zns.update(created)
        return created

    def remove_branch_and_try_to_split(self, branch) -> None:
        self.graph.remove_edge(branch.bus1, branch.bus2, key=branch)
        was_spanning = branch.spanning_tree_edge
        branch.spanning_tree_edge = False
        components = list(nx.connected_components(self.graph))
        if len(components) > 1:
            split = self._replace_with([self.graph.subgraph(c).copy() for c in components])
            logger.debug("Zero impedance network split into %d", len(split))
            for listener in self.network.listeners:
                listener.on_zero_impedance_network_split(self, split)
        elif was_spanning:
            self.update_spanning_tree()

    def add_branch(self, branch) -> None:
        self.graph.add_edge(branch.bus1, branch.bus2, key=branch)
        self.update_spanning_tree()

    @staticmethod
    def add_branch_and_merge(zn1: "LfZeroImpedanceNetwork", zn2: "LfZeroImpedanceNetwork", branch) -> None:
        graph = nx.compose(zn1.graph, zn2.graph)
        graph.add_edge(branch.bus1, branch.bus2, key=branch)
        zns = zn1.network.zero_impedance_networks
        zns.discard(zn2)
        merged = zn1._replace_with([graph])[0]
        logger.debug("Zero impedance networks merged: %d buses", len(merged.buses))
        for listener in zn1.network.listeners:
            listener.on_zero_impedance_network_merge(zn1, zn2, merged)

    def __repr__(self) -> str:
        return f"LfZeroImpedanceNetwork(buses={[bus.id for bus in self.buses]})"
