"""Machine assembly: index conventions, budgets, and final composition."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from .config import U64_MAX
from .machine import Machine, State

START_INDEX = 0
BLOCK_INDEX = 1


@dataclass(frozen=True)
class MachineLimits:
    """Machine-level enforcement budgets handed to the engine."""

    allowed_padding_bytes: int = U64_MAX
    max_padding_frac: float = 0.0
    allowed_blocked_microsec: int = 0
    max_blocking_frac: float = 0.0
    include_small_packets: bool = False


PADDING_ONLY = MachineLimits()
PADDING_AND_BLOCKING = MachineLimits(allowed_blocked_microsec=U64_MAX)


@dataclass(frozen=True)
class MachineLayout:
    """Positions of every state in a machine, fixed before any state is built.

    Layout: START at 0, BLOCK at 1 when present, then the profile body, then
    the virtual End index.
    """

    body_states: int
    has_block: bool = False

    def __post_init__(self) -> None:
        if self.body_states < 1:
            raise ValueError(
                f"A machine body needs at least one state, got {self.body_states}.\n"
                f"START alone never pads or blocks."
            )

    @property
    def body_offset(self) -> int:
        return BLOCK_INDEX + 1 if self.has_block else BLOCK_INDEX

    @property
    def num_states(self) -> int:
        return self.body_offset + self.body_states

    @property
    def end_index(self) -> int:
        return self.num_states

    def body_index(self, position: int) -> int:
        """Machine index of the ``position``-th body state."""
        if not (0 <= position < self.body_states):
            raise IndexError(f"Body position {position} outside 0..{self.body_states - 1}.")
        return self.body_offset + position

    def next_body_index(self, position: int) -> int:
        """Index following body state ``position``: the next body state or End."""
        if position + 1 >= self.body_states:
            return self.end_index
        return self.body_index(position + 1)


def assemble_machine(
    layout: MachineLayout,
    start: State,
    body: Sequence[State],
    limits: MachineLimits = PADDING_ONLY,
    block: State | None = None,
) -> Machine:
    """Order START, BLOCK and the body states and wrap them into a ``Machine``."""
    if layout.has_block and block is None:
        raise ValueError("Layout reserves a BLOCK state but none was given.")
    if block is not None and not layout.has_block:
        raise ValueError("A BLOCK state was given but the layout has no slot for it.")
    if len(body) != layout.body_states:
        raise ValueError(
            f"Layout expects {layout.body_states} body states, got {len(body)}.\n"
            f"Transition targets were computed for the layout's size."
        )

    states: list[State] = [start]
    if block is not None:
        states.append(block)
    states.extend(body)

    return Machine(
        states=tuple(states),
        allowed_padding_bytes=limits.allowed_padding_bytes,
        max_padding_frac=limits.max_padding_frac,
        allowed_blocked_microsec=limits.allowed_blocked_microsec,
        max_blocking_frac=limits.max_blocking_frac,
        include_small_packets=limits.include_small_packets,
    )
