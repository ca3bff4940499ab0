"""State machine data model shared by every defense profile.

A machine is an ordered list of states. States reference each other by
position, so the order of ``Machine.states`` is load-bearing: index 0 is the
START state and the index equal to ``len(states)`` is the virtual End state,
which is never materialized.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping

import numpy as np

from .config import U64_MAX

PROBABILITY_TOLERANCE = 1.0e-9


class Event(Enum):
    """Observable network events the traffic-shaping engine reacts to."""

    NON_PADDING_SENT = "NonPaddingSent"
    NON_PADDING_RECV = "NonPaddingRecv"
    PADDING_SENT = "PaddingSent"
    PADDING_RECV = "PaddingRecv"
    BLOCKING_BEGIN = "BlockingBegin"
    BLOCKING_END = "BlockingEnd"
    LIMIT_REACHED = "LimitReached"


class DistType(Enum):
    """Sampling families understood by the engine."""

    NONE = 0
    UNIFORM = 1
    NORMAL = 2


@dataclass(frozen=True)
class Dist:
    """Parameters of a distribution the engine samples at runtime.

    For ``UNIFORM`` the parameters are the low and high bounds; for
    ``NORMAL`` they are the mean and standard deviation. ``start`` is added
    to every sample and a non-zero ``max`` caps it.
    """

    kind: DistType = DistType.NONE
    param1: float = 0.0
    param2: float = 0.0
    start: float = 0.0
    max: float = 0.0

    def __post_init__(self) -> None:
        if not isinstance(self.kind, DistType):
            raise TypeError(f"kind must be a DistType, got {type(self.kind)}.")
        for name in ("param1", "param2", "start", "max"):
            value = getattr(self, name)
            if math.isnan(value):
                raise ValueError(f"Dist.{name} is NaN.\nDistribution parameters must be numbers.")
            object.__setattr__(self, name, float(value))
        if self.kind is DistType.NORMAL and self.param2 < 0:
            raise ValueError(
                f"Normal distribution needs a non-negative standard deviation, got {self.param2}."
            )

    @classmethod
    def uniform(cls, low: float, high: float) -> "Dist":
        return cls(DistType.UNIFORM, low, high)

    @classmethod
    def fixed(cls, value: float) -> "Dist":
        """Degenerate uniform distribution that always yields ``value``."""
        return cls(DistType.UNIFORM, value, value)

    @classmethod
    def normal(cls, mean: float, stdev: float, cap: float = 0.0) -> "Dist":
        return cls(DistType.NORMAL, mean, stdev, 0.0, cap)

    @property
    def is_set(self) -> bool:
        return self.kind is not DistType.NONE


Transitions = Mapping[Event, Mapping[int, float]]


@dataclass(frozen=True)
class State:
    """One state of a machine.

    Attributes:
        transitions: Event -> {target index -> probability}. An event missing
            from the mapping cannot fire a transition from this state; the
            probabilities of one event sum to at most 1.0 and the remainder
            means "stay without re-entering".
        timeout: Delay before the action is scheduled [µs].
        action: Padding size [bytes] or, when ``action_is_block`` is set, the
            blocking duration [µs].
        limit: Number of actions before LimitReached fires.
        bypass: Action is exempt from padding/blocking budget accounting.
        replace: Action replaces pending traffic instead of queueing.
        action_is_block: Action blocks outgoing traffic instead of padding.
    """

    transitions: Transitions = field(default_factory=dict)
    timeout: Dist = field(default_factory=Dist)
    action: Dist = field(default_factory=Dist)
    limit: Dist = field(default_factory=Dist)
    bypass: bool = False
    replace: bool = False
    action_is_block: bool = False

    def __post_init__(self) -> None:
        frozen: dict[Event, dict[int, float]] = {}
        for event, targets in self.transitions.items():
            if not isinstance(event, Event):
                raise TypeError(f"Transition keys must be Event members, got {event!r}.")
            row: dict[int, float] = {}
            for target, probability in targets.items():
                if isinstance(target, bool) or not isinstance(target, (int, np.integer)) or target < 0:
                    raise ValueError(
                        f"Transition target for {event.value} must be a non-negative index, got {target!r}."
                    )
                if not (0.0 <= probability <= 1.0):
                    raise ValueError(
                        f"Transition probability for {event.value} -> {target} must lie in [0, 1], "
                        f"got {probability}."
                    )
                row[int(target)] = float(probability)
            total = sum(row.values())
            if total > 1.0 + PROBABILITY_TOLERANCE:
                raise ValueError(
                    f"Transition probabilities for {event.value} sum to {total:.12f}.\n"
                    f"The probabilities of one event must not exceed 1.0."
                )
            frozen[event] = row
        object.__setattr__(self, "transitions", frozen)

    @property
    def max_target(self) -> int:
        """Largest target index referenced by any transition, -1 if none."""
        return max((target for row in self.transitions.values() for target in row), default=-1)

    def targets(self, event: Event) -> dict[int, float]:
        return dict(self.transitions.get(event, {}))


@dataclass(frozen=True)
class Machine:
    """Immutable, index-addressed sequence of states plus enforcement budgets.

    The End state is virtual: every transition target lies in
    ``[0, len(states)]`` and ``len(states)`` itself means End.
    """

    states: tuple[State, ...]
    allowed_padding_bytes: int = U64_MAX
    max_padding_frac: float = 0.0
    allowed_blocked_microsec: int = 0
    max_blocking_frac: float = 0.0
    include_small_packets: bool = False

    def __post_init__(self) -> None:
        states = tuple(self.states)
        object.__setattr__(self, "states", states)

        if not states:
            raise ValueError(
                "A machine needs at least one state.\n"
                "Index 0 is always the START state."
            )
        for idx, state in enumerate(states):
            if not isinstance(state, State):
                raise TypeError(f"states[{idx}] must be a State, got {type(state)}.")
            if state.max_target > len(states):
                raise ValueError(
                    f"State {idx} references index {state.max_target}, "
                    f"but the machine has {len(states)} states.\n"
                    f"Valid targets are 0..{len(states)} (the last one being End)."
                )

        for name in ("allowed_padding_bytes", "allowed_blocked_microsec"):
            value = getattr(self, name)
            if not (0 <= value <= U64_MAX):
                raise ValueError(f"{name} must fit an unsigned 64-bit integer, got {value}.")
        for name in ("max_padding_frac", "max_blocking_frac"):
            value = getattr(self, name)
            if not (0.0 <= value <= 1.0):
                raise ValueError(f"{name} must lie in [0, 1], got {value}.")

    def __len__(self) -> int:
        return len(self.states)

    @property
    def num_states(self) -> int:
        return len(self.states)

    @property
    def end_index(self) -> int:
        """Virtual index of the End state."""
        return len(self.states)

    def transition_matrix(self, event: Event) -> np.ndarray:
        """Dense ``num_states x (num_states + 1)`` probability matrix for ``event``.

        Row ``i`` holds the outgoing probabilities of state ``i``; the last
        column is the End state.
        """
        matrix = np.zeros((self.num_states, self.num_states + 1), dtype=np.float64)
        for idx, state in enumerate(self.states):
            for target, probability in state.transitions.get(event, {}).items():
                matrix[idx, target] = probability
        return matrix
