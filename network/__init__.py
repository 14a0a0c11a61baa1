"""
Network Module
==============

Provides the light network model the equation system is built for.

Classes
-------
LfNetwork
    Container of buses, branches and shunts with event listeners.
LfBus, LfBranch, LfShunt, LfGenerator
    Network elements.
PiModel
    Pi-equivalent branch model with tap ratio and phase shift.
GeneratorVoltageControl, TransformerVoltageControl, ShuntVoltageControl
    Voltage controls by generators, transformer taps and shunts.
GeneratorReactivePowerControl
    Remote reactive power control of a branch by generators.
TransformerPhaseControl
    Active power control of a branch by a phase shifter.

The sequence domain data (``network.asym``) and the pandapower importer
(``network.pandapower_import``) are imported from their own modules.
"""

from network.controls import (
    GeneratorReactivePowerControl,
    GeneratorVoltageControl,
    ShuntVoltageControl,
    TransformerPhaseControl,
    TransformerVoltageControl,
    create_generator_voltage_control,
    create_shunt_voltage_control,
    create_transformer_voltage_control,
)
from network.model import LfBranch, LfBus, LfGenerator, LfLoadModel, LfNetwork, LfShunt, PiModel

__all__ = [
    "GeneratorReactivePowerControl",
    "GeneratorVoltageControl",
    "LfBranch",
    "LfBus",
    "LfGenerator",
    "LfLoadModel",
    "LfNetwork",
    "LfShunt",
    "PiModel",
    "ShuntVoltageControl",
    "TransformerPhaseControl",
    "TransformerVoltageControl",
    "create_generator_voltage_control",
    "create_shunt_voltage_control",
    "create_transformer_voltage_control",
]
