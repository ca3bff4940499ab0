"""Surakav relay and client machines.

Surakav replays the burst sequence of a reference trace at a constant rate.
Both machines walk the same chain of burst states in lockstep: for every
burst the sending side pads the burst's cells while the receiving side
blocks until it has received them.
"""

from __future__ import annotations

from pathlib import Path

from tqdm import tqdm

from .assembler import BLOCK_INDEX, PADDING_AND_BLOCKING, MachineLayout, assemble_machine
from .config import SynthesisConfig, get_verbosity
from .machine import Machine, State
from .states import build_block_state, build_burst_states, build_start_state
from .trace_io import ReferenceTrace, load_reference_trace


def generate_surakav_machines(
    trace: ReferenceTrace,
    config: SynthesisConfig | None = None,
) -> tuple[Machine, Machine]:
    """Build the ``(relay, client)`` Surakav machine pair for ``trace``.

    Layout of both machines: START, BLOCK, then one state per burst. The
    state at a burst's index is a transmit state on the sending side and a
    receive state on the other.
    """
    config = config or SynthesisConfig()
    if trace.num_bursts == 0:
        raise ValueError("Reference trace has no bursts to replay.")

    layout = MachineLayout(body_states=trace.num_bursts, has_block=True)
    relay_body: list[State] = []
    client_body: list[State] = []

    for position, burst in enumerate(
        tqdm(trace.bursts, desc="Building Surakav burst states", disable=get_verbosity() == 0, leave=False)
    ):
        send_state, recv_state = build_burst_states(
            float(burst.cells),
            layout.body_index(position),
            layout.next_body_index(position),
            config,
        )
        if burst.relay_sending:
            relay_body.append(send_state)
            client_body.append(recv_state)
        else:
            relay_body.append(recv_state)
            client_body.append(send_state)

    relay = assemble_machine(
        layout,
        build_start_state([BLOCK_INDEX]),
        relay_body,
        PADDING_AND_BLOCKING,
        block=build_block_state(layout.body_offset),
    )
    client = assemble_machine(
        layout,
        build_start_state([BLOCK_INDEX]),
        client_body,
        PADDING_AND_BLOCKING,
        block=build_block_state(layout.body_offset),
    )
    return relay, client


def generate_surakav_machines_from_file(
    path: Path | str,
    config: SynthesisConfig | None = None,
) -> tuple[Machine, Machine]:
    """Read a reference trace and build the ``(relay, client)`` pair."""
    config = config or SynthesisConfig()
    trace = load_reference_trace(path, config)
    return generate_surakav_machines(trace, config)
