"""Reference trace ingestion for the Surakav generator."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from .config import SynthesisConfig

U32_MAX = 2**32 - 1


class TraceFormatError(ValueError):
    """Raised when a reference trace line is not a non-negative integer."""


@dataclass(frozen=True)
class Burst:
    """One run of same-direction cells in a reference trace.

    Attributes:
        cells: Number of cells in the burst.
        position: Index of the burst among the values read from the trace.
        relay_sending: True when the relay sends this burst, False for the client.
    """

    cells: int
    position: int
    relay_sending: bool


@dataclass(frozen=True)
class ReferenceTrace:
    """Bursts of a reference trace with their sending side resolved.

    The client sends the first burst and every burst hands the sending role
    to the other side. A ``0`` value flips the role once more; it is kept in
    ``values`` but never becomes a burst.

    Attributes:
        values: Values read from the trace, up to the burst cutoff.
        bursts: Non-zero values in order.
        direction_switches: Positions of ``0`` values followed by another burst.
    """

    values: tuple[int, ...]
    bursts: tuple[Burst, ...]
    direction_switches: tuple[int, ...]

    @property
    def num_bursts(self) -> int:
        return len(self.bursts)

    @property
    def role_alternations(self) -> int:
        """Hand-overs of the sending role from one burst to the next."""
        return max(len(self.bursts) - 1, 0)

    @classmethod
    def from_values(cls, values: Iterable[int]) -> "ReferenceTrace":
        values = tuple(values)
        bursts: list[Burst] = []
        switches: list[int] = []
        pending: list[int] = []
        relay_sending = False

        for position, value in enumerate(values):
            if value < 0:
                raise ValueError(f"Trace values must be non-negative, got {value} at position {position}.")
            if value == 0:
                relay_sending = not relay_sending
                pending.append(position)
                continue
            switches.extend(pending)
            pending.clear()
            bursts.append(Burst(cells=value, position=position, relay_sending=relay_sending))
            relay_sending = not relay_sending

        return cls(values=values, bursts=tuple(bursts), direction_switches=tuple(switches))


def _is_ascii_digits(text: str) -> bool:
    return text.isascii() and text.isdigit()


def parse_trace_lines(lines: Iterable[str], cutoff: int = SynthesisConfig.trace_cutoff) -> ReferenceTrace:
    """Parse trace lines, stopping after ``cutoff`` non-zero bursts.

    Blank lines are ignored; anything else must be a non-negative integer.
    """
    values: list[int] = []
    num_bursts = 0
    for line_no, raw in enumerate(lines, start=1):
        if num_bursts >= cutoff:
            break
        text = raw.strip()
        if not text:
            continue
        if text.startswith("-") and _is_ascii_digits(text[1:]):
            raise TraceFormatError(
                f"Line {line_no} holds a negative cell count: {text}.\n"
                f"Each line must hold one non-negative cell count (0 switches direction)."
            )
        # Plain ASCII digits only, fitting an unsigned 32-bit count.
        if not _is_ascii_digits(text) or int(text) > U32_MAX:
            raise TraceFormatError(
                f"Line {line_no} is not formatted properly: {text!r}.\n"
                f"Each line must hold one non-negative cell count (0 switches direction), "
                f"at most {U32_MAX}."
            )
        value = int(text)
        values.append(value)
        if value != 0:
            num_bursts += 1

    trace = ReferenceTrace.from_values(values)
    if trace.num_bursts == 0:
        raise TraceFormatError(
            "Reference trace contains no non-zero bursts.\n"
            "An empty or all-zero trace cannot describe any traffic."
        )
    return trace


def load_reference_trace(path: Path | str, config: SynthesisConfig | None = None) -> ReferenceTrace:
    """Read a reference trace file once, fully, before synthesis starts."""
    config = config or SynthesisConfig()
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(
            f"Reference trace not found at: {path}\n"
            f"Expected a text file with one burst size per line."
        )
    if not path.is_file():
        raise ValueError(f"Reference trace path is not a file: {path}")

    with path.open("r", encoding="utf-8") as handle:
        lines = handle.readlines()

    return parse_trace_lines(lines, cutoff=config.trace_cutoff)
