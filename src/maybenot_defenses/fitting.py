"""Interval searches over the curves that shape padding schedules.

Two curves are partitioned into discrete intervals, one state each:

- FRONT samples padding times from a Rayleigh distribution. The curve is
  bounded, so a bisection between the interval start and ``max_t`` finds
  the boundary enclosing a requested probability mass.
- RegulaTor sends at a rate ``R * D**t`` that decays forever. There is no
  fixed upper bound to bisect against, so the search doubles its step until
  it overshoots the requested packet count and halves it afterwards.

Each interval starts where the previous one ended, so partitions are built
strictly in order.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from .config import SynthesisConfig

EPSILON = float(np.finfo(np.float64).eps)
AREA_TOLERANCE = 1.0e-9


class IntervalSearchError(RuntimeError):
    """Raised when an interval search fails to meet its target."""


@dataclass(frozen=True)
class Interval:
    start: float
    width: float

    @property
    def end(self) -> float:
        return self.start + self.width

    @property
    def middle(self) -> float:
        return self.start + (self.width / 2.0)


@dataclass(frozen=True)
class DecayInterval(Interval):
    """Interval of the decay curve together with the rate at its middle."""

    rate: float = 0.0
    last: bool = False


def rayleigh_cdf(t: np.ndarray | float, scale: float) -> np.ndarray | float:
    """Cumulative distribution function of the Rayleigh distribution."""
    return 1.0 - np.exp(-np.square(t) / (2.0 * scale**2))


def rayleigh_max_t(scale: float, max_cdf: float = SynthesisConfig.rayleigh_max_cdf) -> float:
    """Return the t at which the Rayleigh CDF reaches ``max_cdf``.

    With the default cut-off this is a bit more than six standard deviations.
    """
    if scale <= 0:
        raise ValueError(f"Rayleigh scale must be positive, got {scale}.")
    return math.sqrt(-2.0 * scale**2 * math.log(1.0 - max_cdf))


def rayleigh_interval_width(
    a: float,
    max_t: float,
    area: float,
    scale: float,
    max_iter: int = SynthesisConfig.bisection_max_iter,
) -> float:
    """Find the width of the interval starting at ``a`` enclosing ``area``.

    Computing the boundary in closed form loses too much precision once the
    CDF approaches 1, so the boundary is bisected instead.

    Args:
        a: Start of the interval.
        max_t: Initial candidate for the end of the interval.
        area: Probability mass the interval must enclose, in (0, 1).
        scale: Rayleigh scale parameter.
        max_iter: Iteration cap; reached only once the step has shrunk below
            the floating point resolution of the boundary.

    Returns:
        Width ``w`` with ``CDF(a + w) - CDF(a) == area`` to within float64 eps
        whenever the boundary resolution allows it.
    """
    if not (0.0 < area < 1.0):
        raise ValueError(f"area must lie in (0, 1), got {area}.")
    if scale <= 0:
        raise ValueError(f"Rayleigh scale must be positive, got {scale}.")
    if a < 0 or a >= max_t:
        raise ValueError(
            f"Interval start must lie in [0, max_t), got a={a}, max_t={max_t}.\n"
            f"The curve has no mass left to partition past max_t."
        )

    start_cdf = float(rayleigh_cdf(a, scale))
    b = max_t
    increment = (b - a) / 2.0
    diff = area - (float(rayleigh_cdf(b, scale)) - start_cdf)

    iterations = 0
    while abs(diff) > EPSILON and iterations < max_iter:
        previous = b
        if diff < 0.0:
            b -= increment
        else:
            b += increment
        if b == previous:
            break
        increment /= 2.0
        diff = area - (float(rayleigh_cdf(b, scale)) - start_cdf)
        iterations += 1

    if abs(diff) > AREA_TOLERANCE:
        raise IntervalSearchError(
            f"Could not enclose area {area} starting at t={a} (residual {diff:.3e}).\n"
            f"The remaining mass of the curve is {1.0 - start_cdf:.3e}."
        )
    return b - a


def rayleigh_partition(
    num_states: int,
    scale: float,
    config: SynthesisConfig | None = None,
) -> list[Interval]:
    """Split the Rayleigh curve into ``num_states`` consecutive intervals.

    All but the last interval enclose ``1 / num_states`` of the mass; the last
    one runs up to ``max_t``.
    """
    config = config or SynthesisConfig()
    if num_states < 1:
        raise ValueError(f"num_states must be at least 1, got {num_states}.")
    if (num_states - 1) / num_states >= config.rayleigh_max_cdf:
        raise ValueError(
            f"{num_states} states leave no room for the last interval before the cut-off.\n"
            f"Each state must cover more than 1 - {config.rayleigh_max_cdf} of the curve."
        )

    area = 1.0 / num_states
    max_t = rayleigh_max_t(scale, config.rayleigh_max_cdf)

    intervals: list[Interval] = []
    t1 = 0.0
    for _ in range(num_states - 1):
        width = rayleigh_interval_width(t1, max_t, area, scale, max_iter=config.bisection_max_iter)
        intervals.append(Interval(start=t1, width=width))
        t1 = t1 + width

    last_width = max_t - t1
    if last_width <= 0:
        raise ValueError(f"{num_states} states leave no room for the last interval before max_t={max_t:.6g}.")
    intervals.append(Interval(start=t1, width=last_width))
    return intervals


def decay_rate(t: np.ndarray | float, initial_rate: float, decay: float) -> np.ndarray | float:
    """Rate R * D**t of the RegulaTor decay curve."""
    return initial_rate * np.power(decay, t)


def decay_interval_width(
    a: float,
    count: float,
    initial_rate: float,
    decay: float,
    tolerance: float = SynthesisConfig.decay_tolerance,
    initial_step: float = SynthesisConfig.decay_initial_step,
    max_iter: int = SynthesisConfig.decay_max_iter,
) -> float:
    """Find the width of the interval from ``a`` that carries ``count`` packets.

    The packet count of an interval is approximated by a rectangle whose
    height is the rate at the interval's middle. The middle starts at ``a``;
    the step doubles while the count is undershot and halves once the search
    has reversed direction.

    Returns:
        The interval width, or ``math.inf`` when the curve cannot carry
        ``count`` packets from ``a`` onwards.
    """
    if count <= 0:
        raise ValueError(f"Packet count must be positive, got {count}.")

    mid = a
    step = initial_step
    decreasing = False
    diff = count

    iterations = 0
    while abs(diff) > tolerance:
        if iterations >= max_iter:
            raise IntervalSearchError(
                f"Decay interval search from t={a} did not converge after {max_iter} iterations "
                f"(residual {diff:.3e} packets)."
            )
        if diff < 0.0:
            mid -= step
            decreasing = True
        else:
            mid += step

        if decreasing:
            step /= 2.0
        else:
            step *= 2.0

        if not math.isfinite(mid):
            return math.inf

        diff = count - float(decay_rate(mid, initial_rate, decay)) * (mid - a) * 2.0
        iterations += 1

    return (mid - a) * 2.0


def decay_partition(
    count: float,
    initial_rate: float,
    decay: float,
    config: SynthesisConfig | None = None,
) -> list[DecayInterval]:
    """Split the decay curve into intervals of ``count`` packets each.

    The partition ends with the first interval whose middle rate drops below
    ``config.relay_min_rate`` or whose width is unbounded; that interval is
    flagged ``last``.
    """
    config = config or SynthesisConfig()
    if initial_rate <= 0:
        raise ValueError(f"initial_rate must be positive, got {initial_rate}.")
    if not (0.0 < decay < 1.0):
        raise ValueError(
            f"decay must lie in (0, 1), got {decay}.\n"
            f"A rate that never decays below {config.relay_min_rate}/s would need infinitely many states."
        )

    intervals: list[DecayInterval] = []
    t1 = 0.0
    while True:
        width = decay_interval_width(
            t1,
            count,
            initial_rate,
            decay,
            tolerance=config.decay_tolerance,
            initial_step=config.decay_initial_step,
            max_iter=config.decay_max_iter,
        )
        middle = t1 + (width / 2.0)
        rate = float(decay_rate(middle, initial_rate, decay))
        last = math.isinf(width) or rate < config.relay_min_rate
        intervals.append(DecayInterval(start=t1, width=width, rate=rate, last=last))
        if last:
            return intervals
        t1 = t1 + width
