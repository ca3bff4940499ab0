"""Configuration primitives for the maybenot defense machine generators."""

from __future__ import annotations

import os
from dataclasses import dataclass

U64_MAX = 2**64 - 1


def get_verbosity() -> int:
    """Get verbosity level from environment: 0=quiet, 1=normal, 2=verbose."""
    return int(os.environ.get("MAYBENOT_VERBOSITY", "1"))


@dataclass(frozen=True)
class SynthesisConfig:
    """Holds the fixed domain constants shared by every defense profile.

    The defaults reproduce the machines published with the "Maybe Not"
    paper; tests and experiments may override individual values.

    **Traffic Units:**
    - cell_size: Bytes in one padding cell (Tor cell size).
    - microseconds_per_second: Engine timeouts are expressed in microseconds.

    **FRONT (Rayleigh curve):**
    - rayleigh_max_cdf: Cumulative probability at which the curve is cut off,
      a bit more than six standard deviations.
    - bisection_max_iter: Hard stop for the bounded interval search.

    **RegulaTor (decay curve):**
    - decay_tolerance: Packet-count tolerance of the unbounded search.
    - decay_initial_step: First step of the doubling/halving search [s].
    - decay_max_iter: Hard stop for the unbounded interval search.
    - relay_boot_states, relay_boot_timeout: Bootstrap states before SEND_0.
    - relay_min_rate: Rate [packets/s] below which the relay stops padding.
    - surge_reset_numerator: Numerator of the surge-reset probability.
    - client_counter_limit: LimitReached budget of a client COUNTER state.

    **Surakav (reference traces):**
    - trace_cutoff: Maximum number of non-zero bursts read from a trace.
    - surakav_send_timeout: Per-cell timeout of a transmit state [µs].
    """

    cell_size: float = 512.0
    microseconds_per_second: float = 1.0e6

    rayleigh_max_cdf: float = 0.9996645373720975
    bisection_max_iter: int = 256

    decay_tolerance: float = 1.0e-5
    decay_initial_step: float = 0.5
    decay_max_iter: int = 100_000
    relay_boot_states: int = 9
    relay_boot_timeout: float = 100_000.0
    relay_min_rate: float = 1.0
    surge_reset_numerator: float = 2.0
    client_counter_limit: float = 2.0

    trace_cutoff: int = 8000
    surakav_send_timeout: float = 5.0

    def __post_init__(self) -> None:
        if not (0.0 < self.rayleigh_max_cdf < 1.0):
            raise ValueError(
                f"rayleigh_max_cdf must lie in (0, 1), got {self.rayleigh_max_cdf}.\n"
                f"It is the cumulative probability where the FRONT curve is cut off."
            )
        if self.cell_size <= 0:
            raise ValueError(f"cell_size must be positive, got {self.cell_size}.")
        if self.trace_cutoff < 1:
            raise ValueError(f"trace_cutoff must be at least 1, got {self.trace_cutoff}.")
        if self.relay_boot_states < 0:
            raise ValueError(f"relay_boot_states must be non-negative, got {self.relay_boot_states}.")

    @property
    def relay_send_offset(self) -> int:
        """Index of SEND_0 in a relay machine: START, BLOCK, then the BOOT states."""
        return 2 + self.relay_boot_states
