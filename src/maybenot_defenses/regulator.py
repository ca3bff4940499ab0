"""RegulaTor relay and client machines.

The relay sends at a rate that surges to R packets/s and decays as R * D**t.
The machine approximates the curve with SEND states of ``packets_per_state``
cells each at the rate of the interval's middle. A real packet restarts the
surge with probability 2 / (T * rate). Nine BOOT states pad slowly while the
connection bootstraps.

The client sends one padding cell for every U packets it receives; COUNTER
states count received packets while blocking, and a SEND state emits the
cell.
"""

from __future__ import annotations

import math

from tqdm import tqdm

from .assembler import (
    BLOCK_INDEX,
    PADDING_AND_BLOCKING,
    START_INDEX,
    MachineLayout,
    assemble_machine,
)
from .config import SynthesisConfig, get_verbosity
from .fitting import decay_partition
from .machine import Machine, State
from .states import (
    build_block_state,
    build_client_counter_state,
    build_client_send_state,
    build_relay_boot_state,
    build_relay_send_state,
    build_start_state,
)


def _require_positive(name: str, value: float) -> None:
    if not (math.isfinite(value) and value > 0):
        raise ValueError(f"{name} must be a positive finite number, got {value}.")


def generate_relay_machine(
    packets_per_state: float,
    initial_rate: float,
    decay: float,
    threshold: float,
    config: SynthesisConfig | None = None,
) -> Machine:
    """Build the relay-side RegulaTor machine.

    Layout: START, BLOCK, BOOT_0..BOOT_8, SEND_0..SEND_k. The decay curve is
    partitioned first so that the total state count, and with it the End
    index, is known before any SEND state is wired.

    Args:
        packets_per_state: Cells sent by each SEND state.
        initial_rate: RegulaTor's R [packets/s].
        decay: RegulaTor's D, in (0, 1).
        threshold: RegulaTor's T, the surge threshold.
        config: Domain constants; defaults to ``SynthesisConfig()``.
    """
    config = config or SynthesisConfig()
    _require_positive("packets_per_state", packets_per_state)
    _require_positive("initial_rate", initial_rate)
    _require_positive("threshold", threshold)

    intervals = decay_partition(packets_per_state, initial_rate, decay, config)
    num_boot = config.relay_boot_states
    layout = MachineLayout(body_states=num_boot + len(intervals), has_block=True)
    first_send_index = layout.body_index(num_boot)

    body: list[State] = []
    for position in range(num_boot):
        body.append(
            build_relay_boot_state(
                layout.body_index(position),
                layout.next_body_index(position),
                config,
            )
        )

    for offset, interval in enumerate(
        tqdm(intervals, desc="Building RegulaTor SEND states", disable=get_verbosity() == 0, leave=False)
    ):
        position = num_boot + offset
        rate = interval.rate
        next_index = layout.next_body_index(position)
        if interval.last:
            rate = config.relay_min_rate
            next_index = layout.end_index

        body.append(
            build_relay_send_state(
                layout.body_index(position),
                next_index,
                first_send_index,
                packets_per_state,
                rate,
                threshold,
                config,
            )
        )

    start = build_start_state([BLOCK_INDEX], on_receive=False)
    block = build_block_state(layout.body_offset)
    return assemble_machine(layout, start, body, PADDING_AND_BLOCKING, block=block)


def client_counter_probabilities(upload_ratio: float) -> list[float]:
    """Forward probability of each COUNTER state for ``upload_ratio``.

    There are ``ceil(upload_ratio)`` counters. All but the last always
    advance; the last advances with probability ``1 - frac(upload_ratio)``
    and loops otherwise.
    """
    _require_positive("upload_ratio", upload_ratio)
    num_counters = math.ceil(upload_ratio)
    fraction, _ = math.modf(upload_ratio)
    probabilities = [1.0] * num_counters
    probabilities[-1] = 1.0 - fraction
    return probabilities


def generate_client_machine(upload_ratio: float, config: SynthesisConfig | None = None) -> Machine:
    """Build the client-side RegulaTor machine.

    COUNTER_0 doubles as the START state, so the client starts counting as
    soon as the machine is loaded. The SEND state follows the last counter.
    """
    config = config or SynthesisConfig()
    probabilities = client_counter_probabilities(upload_ratio)
    layout = MachineLayout(body_states=len(probabilities))

    counters = [
        build_client_counter_state(index, index + 1, prob_trans, config)
        for index, prob_trans in enumerate(probabilities)
    ]
    send = build_client_send_state(START_INDEX, config)
    return assemble_machine(layout, counters[0], counters[1:] + [send], PADDING_AND_BLOCKING)


def generate_regulator_machines(
    initial_rate: float,
    decay: float,
    threshold: float,
    upload_ratio: float,
    packets_per_state: float,
    config: SynthesisConfig | None = None,
) -> tuple[Machine, Machine]:
    """Return the ``(relay, client)`` RegulaTor machine pair."""
    relay = generate_relay_machine(packets_per_state, initial_rate, decay, threshold, config)
    client = generate_client_machine(upload_ratio, config)
    return relay, client
