"""FRONT and Pipelined FRONT machines.

FRONT pads with a total of N cells whose send times follow a Rayleigh
distribution with scale W (the padding window). The machine approximates
the curve by a chain of PADDING states: each state covers an equal share of
the distribution's mass and sends its share of the budget with a normally
distributed timeout.

Pipelined FRONT repeats the chain several times with increasing budgets;
START picks one pipeline uniformly at random.
"""

from __future__ import annotations

import math

from tqdm import tqdm

from .assembler import PADDING_ONLY, MachineLayout, assemble_machine
from .config import SynthesisConfig, get_verbosity
from .fitting import Interval, rayleigh_partition
from .machine import Machine, State
from .states import build_front_padding_state, build_start_state


def padding_timing(interval: Interval, padding_count: float, window: float) -> tuple[float, float]:
    """Return ``(mean, stdev)`` of the timeout between padding cells in ``interval``.

    The standard deviation is the empirical approximation from the FRONT
    paper and is kept as published.
    """
    timeout = interval.width / padding_count
    stdev = window**2 / (padding_count * interval.middle * math.sqrt(math.pi))
    return timeout, stdev


def _validate_front_args(padding_window: float, padding_budget: float, num_states: int) -> None:
    if not (math.isfinite(padding_window) and padding_window > 0):
        raise ValueError(
            f"padding_window must be a positive number of seconds, got {padding_window}.\n"
            f"It is the scale of the Rayleigh curve padding times are drawn from."
        )
    if not (math.isfinite(padding_budget) and padding_budget > 0):
        raise ValueError(f"padding_budget must be a positive number of cells, got {padding_budget}.")
    if num_states < 1:
        raise ValueError(f"num_states must be at least 1, got {num_states}.")


def generate_front_machine(
    padding_window: float,
    padding_budget: float,
    num_states: int,
    config: SynthesisConfig | None = None,
) -> Machine:
    """Build a FRONT machine with ``num_states`` PADDING states.

    Args:
        padding_window: FRONT's W_max [s].
        padding_budget: FRONT's N [cells].
        num_states: Number of PADDING states approximating the curve.
        config: Domain constants; defaults to ``SynthesisConfig()``.

    Returns:
        Machine with START at index 0 followed by the PADDING chain.
    """
    config = config or SynthesisConfig()
    _validate_front_args(padding_window, padding_budget, num_states)

    window = padding_window * config.microseconds_per_second
    intervals = rayleigh_partition(num_states, window, config)
    area = 1.0 / num_states
    layout = MachineLayout(body_states=num_states)

    body: list[State] = []
    total_padding_frac = 0.0
    for position, interval in enumerate(
        tqdm(intervals, desc="Building FRONT states", disable=get_verbosity() == 0, leave=False)
    ):
        if position < num_states - 1:
            padding_count = area * padding_budget
            total_padding_frac += area
        else:
            # Last state takes whatever is left of the budget.
            padding_count = (1.0 - total_padding_frac) * padding_budget

        timeout, stdev = padding_timing(interval, padding_count, window)
        body.append(
            build_front_padding_state(
                layout.body_index(position),
                layout.next_body_index(position),
                padding_count,
                timeout,
                stdev,
                config,
            )
        )

    start = build_start_state([layout.body_index(0)])
    return assemble_machine(layout, start, body, PADDING_ONLY)


def generate_pipelined_front_machine(
    padding_window: float,
    padding_budget: float,
    num_pipelines: int,
    num_states: int,
    config: SynthesisConfig | None = None,
) -> Machine:
    """Build a Pipelined FRONT machine.

    Pipeline ``k`` (0-based) is a chain of ``num_states`` PADDING states in
    which every state sends ``(k + 1) * N / (num_states * num_pipelines)``
    cells, so the pipelines cover budgets from N/P up to N on average.
    """
    config = config or SynthesisConfig()
    _validate_front_args(padding_window, padding_budget, num_states)
    if num_pipelines < 1:
        raise ValueError(f"num_pipelines must be at least 1, got {num_pipelines}.")

    window = padding_window * config.microseconds_per_second
    intervals = rayleigh_partition(num_states, window, config)
    area = 1.0 / num_states
    layout = MachineLayout(body_states=num_pipelines * num_states)

    step = area * padding_budget / num_pipelines
    padding_count = step
    body: list[State] = []
    for pipeline in tqdm(
        range(num_pipelines),
        desc="Building FRONT pipelines",
        disable=get_verbosity() == 0,
        leave=False,
    ):
        first = pipeline * num_states
        for position, interval in enumerate(intervals):
            index = layout.body_index(first + position)
            next_index = index + 1 if position < num_states - 1 else layout.end_index
            timeout, stdev = padding_timing(interval, padding_count, window)
            body.append(
                build_front_padding_state(index, next_index, padding_count, timeout, stdev, config)
            )
        padding_count += step

    start = build_start_state([layout.body_index(p * num_states) for p in range(num_pipelines)])
    return assemble_machine(layout, start, body, PADDING_ONLY)
