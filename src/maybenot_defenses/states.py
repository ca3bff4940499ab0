"""Builders for the individual states of each defense profile.

Every builder takes already-derived parameters and the indices it has to
wire; none of them searches or samples anything.
"""

from __future__ import annotations

import math
from typing import Sequence

from .config import SynthesisConfig
from .machine import Dist, Event, State

INFINITE_BLOCK = Dist.fixed(math.inf)
IMMEDIATE = Dist.fixed(0.0)


def build_start_state(first_indices: Sequence[int], on_receive: bool = True) -> State:
    """START state: leave on the first non-padding packet.

    The transition probability fans out uniformly over ``first_indices``
    (one entry per pipeline). Relay-side machines only react to sent
    packets, so ``on_receive`` is switched off for them.
    """
    if not first_indices:
        raise ValueError("START state needs at least one target index.")
    probability = 1.0 / len(first_indices)
    fan_out = {index: probability for index in first_indices}

    transitions = {Event.NON_PADDING_SENT: dict(fan_out)}
    if on_receive:
        transitions[Event.NON_PADDING_RECV] = dict(fan_out)
    return State(transitions=transitions)


def build_block_state(next_index: int) -> State:
    """BLOCK state: block outgoing traffic indefinitely, move on once blocking begins."""
    return State(
        transitions={Event.BLOCKING_BEGIN: {next_index: 1.0}},
        timeout=IMMEDIATE,
        action=INFINITE_BLOCK,
        bypass=True,
        replace=True,
        action_is_block=True,
    )


def build_front_padding_state(
    index: int,
    next_index: int,
    padding_count: float,
    timeout: float,
    stdev: float,
    config: SynthesisConfig | None = None,
) -> State:
    """FRONT PADDING state.

    Sends up to ``padding_count`` cells spaced by a normally distributed
    timeout, then moves to ``next_index`` (the next PADDING state or End).
    """
    config = config or SynthesisConfig()
    return State(
        transitions={
            Event.PADDING_SENT: {index: 1.0},
            Event.LIMIT_REACHED: {next_index: 1.0},
        },
        timeout=Dist.normal(timeout, stdev, cap=timeout * 2.0),
        action=Dist.fixed(config.cell_size),
        limit=Dist.uniform(1.0, padding_count),
    )


def build_relay_boot_state(
    index: int,
    next_index: int,
    config: SynthesisConfig | None = None,
) -> State:
    """RegulaTor BOOT state: pad at a slow constant rate until the next real packet."""
    config = config or SynthesisConfig()
    return State(
        transitions={
            Event.PADDING_SENT: {index: 1.0},
            Event.NON_PADDING_SENT: {next_index: 1.0},
        },
        timeout=Dist.fixed(config.relay_boot_timeout),
        action=Dist.fixed(config.cell_size),
        bypass=True,
        replace=True,
    )


def surge_reset_probability(threshold: float, rate: float, config: SynthesisConfig | None = None) -> float:
    """Probability that a real packet sent at ``rate`` restarts the surge."""
    config = config or SynthesisConfig()
    return min(1.0, config.surge_reset_numerator / (threshold * rate))


def build_relay_send_state(
    index: int,
    next_index: int,
    first_send_index: int,
    packets_per_state: float,
    rate: float,
    threshold: float,
    config: SynthesisConfig | None = None,
) -> State:
    """RegulaTor SEND state: constant-rate padding at ``rate`` packets per second.

    After ``packets_per_state`` cells it moves to ``next_index``. Past the
    first SEND state, a real packet restarts the surge at SEND_0 with
    probability ``2 / (threshold * rate)``.
    """
    config = config or SynthesisConfig()
    transitions = {
        Event.PADDING_SENT: {index: 1.0},
        Event.LIMIT_REACHED: {next_index: 1.0},
    }
    if index > first_send_index:
        transitions[Event.NON_PADDING_SENT] = {
            first_send_index: surge_reset_probability(threshold, rate, config)
        }

    return State(
        transitions=transitions,
        timeout=Dist.fixed(config.microseconds_per_second / rate),
        action=Dist.fixed(config.cell_size),
        limit=Dist.fixed(packets_per_state),
        bypass=True,
        replace=True,
    )


def build_client_counter_state(
    index: int,
    next_index: int,
    prob_trans: float,
    config: SynthesisConfig | None = None,
) -> State:
    """RegulaTor client COUNTER state.

    Counts received packets while blocking. Each received packet advances to
    ``next_index`` with probability ``prob_trans`` and stays otherwise.
    """
    config = config or SynthesisConfig()
    if not (0.0 < prob_trans <= 1.0):
        raise ValueError(f"prob_trans must lie in (0, 1], got {prob_trans}.")

    on_receive = {next_index: prob_trans}
    if prob_trans < 1.0:
        on_receive[index] = 1.0 - prob_trans

    transitions = {
        Event.PADDING_RECV: dict(on_receive),
        Event.NON_PADDING_RECV: dict(on_receive),
    }
    if prob_trans < 1.0:
        transitions[Event.LIMIT_REACHED] = {next_index: 1.0}

    return State(
        transitions=transitions,
        timeout=IMMEDIATE,
        action=INFINITE_BLOCK,
        limit=Dist.fixed(config.client_counter_limit),
        bypass=True,
        replace=True,
        action_is_block=True,
    )


def build_client_send_state(first_counter_index: int, config: SynthesisConfig | None = None) -> State:
    """RegulaTor client SEND state: send one cell right away, then count again."""
    config = config or SynthesisConfig()
    return State(
        transitions={Event.PADDING_SENT: {first_counter_index: 1.0}},
        timeout=IMMEDIATE,
        action=Dist.fixed(config.cell_size),
        bypass=True,
        replace=True,
    )


def build_burst_states(
    num_cells: float,
    index: int,
    next_index: int,
    config: SynthesisConfig | None = None,
) -> tuple[State, State]:
    """Surakav burst pair ``(send_state, recv_state)`` sharing one cell limit.

    The sending side pads ``num_cells`` cells back to back; the receiving side
    blocks until it has seen the same number of cells.
    """
    config = config or SynthesisConfig()
    if num_cells <= 0:
        raise ValueError(f"A burst needs a positive cell count, got {num_cells}.")
    limit = Dist.fixed(num_cells)

    send_state = State(
        transitions={
            Event.LIMIT_REACHED: {next_index: 1.0},
            Event.PADDING_SENT: {index: 1.0},
        },
        timeout=Dist.fixed(config.surakav_send_timeout),
        action=Dist.fixed(config.cell_size),
        limit=limit,
        bypass=True,
        replace=True,
    )
    recv_state = State(
        transitions={
            Event.LIMIT_REACHED: {next_index: 1.0},
            Event.NON_PADDING_RECV: {index: 1.0},
            Event.PADDING_RECV: {index: 1.0},
        },
        timeout=IMMEDIATE,
        action=INFINITE_BLOCK,
        limit=limit,
        bypass=True,
        replace=True,
        action_is_block=True,
    )
    return send_state, recv_state
