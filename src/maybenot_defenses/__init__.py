"""Probabilistic state machines approximating website fingerprinting defenses.

The generators in this package describe the FRONT, RegulaTor and Surakav
defenses as machines for the maybenot traffic-shaping engine. Padding
schedules are derived analytically from each defense's parameters; nothing
is sampled at generation time, so identical inputs always yield identical
machines.

Main Components:
    - Machine, State, Dist, Event: The machine data model
    - rayleigh_partition, decay_partition: Interval searches over the defense curves
    - assemble_machine, MachineLayout: State indexing and machine composition
    - generate_front_machine, generate_pipelined_front_machine: FRONT
    - generate_regulator_machines: RegulaTor relay and client machines
    - generate_surakav_machines: Surakav relay and client machines
    - serialize_machine: Encoding handed to the engine

Quick Start:
    >>> from maybenot_defenses import generate_front_machine, serialize_machine
    >>>
    >>> machine = generate_front_machine(padding_window=14, padding_budget=1300, num_states=6)
    >>> print(len(machine.states))
    7
    >>> text = serialize_machine(machine)
"""

from .assembler import MachineLayout, MachineLimits, assemble_machine
from .config import SynthesisConfig
from .fitting import decay_partition, rayleigh_partition
from .front import generate_front_machine, generate_pipelined_front_machine
from .machine import Dist, DistType, Event, Machine, State
from .regulator import generate_client_machine, generate_regulator_machines, generate_relay_machine
from .serialize import deserialize_machine, serialize_machine
from .surakav import generate_surakav_machines, generate_surakav_machines_from_file
from .trace_io import ReferenceTrace, load_reference_trace

__all__ = [
    "SynthesisConfig",
    "Dist",
    "DistType",
    "Event",
    "Machine",
    "State",
    "MachineLayout",
    "MachineLimits",
    "assemble_machine",
    "rayleigh_partition",
    "decay_partition",
    "generate_front_machine",
    "generate_pipelined_front_machine",
    "generate_relay_machine",
    "generate_client_machine",
    "generate_regulator_machines",
    "generate_surakav_machines",
    "generate_surakav_machines_from_file",
    "ReferenceTrace",
    "load_reference_trace",
    "serialize_machine",
    "deserialize_machine",
]
