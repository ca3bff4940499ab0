"""Wire encoding of finished machines for the traffic-shaping engine.

Layout (little endian), zlib-compressed and base64 encoded:

    header   u8 version, u64 allowed_padding_bytes, f64 max_padding_frac,
             u64 allowed_blocked_microsec, f64 max_blocking_frac,
             u8 include_small_packets, u32 number of states
    state    action, limit, timeout dists (u8 kind + 4 x f64 each),
             u8 action_is_block, u8 bypass, u8 replace,
             f64 matrix [event][target], events in ``Event`` order and
             targets 0..num_states (the last column is End)

The dense matrices grow quadratically with the number of states, so both
directions work one state block at a time and never hold the whole
uncompressed machine.
"""

from __future__ import annotations

import base64
import binascii
import struct
import zlib
from collections.abc import Iterator

import numpy as np

from .machine import Dist, DistType, Event, Machine, State

VERSION = 1
COMPRESSION_LEVEL = 9

_HEADER = struct.Struct("<BQdQd?I")
_DIST = struct.Struct("<Bdddd")
_FLAGS = struct.Struct("<???")
_EVENTS = tuple(Event)


class MachineFormatError(ValueError):
    """Raised when a serialized machine cannot be decoded."""


def _pack_dist(dist: Dist) -> bytes:
    return _DIST.pack(dist.kind.value, dist.param1, dist.param2, dist.start, dist.max)


def _state_block(state: State, num_targets: int) -> bytes:
    block = [_pack_dist(state.action), _pack_dist(state.limit), _pack_dist(state.timeout)]
    block.append(_FLAGS.pack(state.action_is_block, state.bypass, state.replace))
    matrix = np.zeros((len(_EVENTS), num_targets), dtype="<f8")
    for row, event in enumerate(_EVENTS):
        for target, probability in state.transitions.get(event, {}).items():
            matrix[row, target] = probability
    block.append(matrix.tobytes())
    return b"".join(block)


def iter_machine_bytes(machine: Machine) -> Iterator[bytes]:
    """Yield the uncompressed encoding: the header, then one block per state."""
    yield _HEADER.pack(
        VERSION,
        machine.allowed_padding_bytes,
        machine.max_padding_frac,
        machine.allowed_blocked_microsec,
        machine.max_blocking_frac,
        machine.include_small_packets,
        machine.num_states,
    )
    for state in machine.states:
        yield _state_block(state, machine.num_states + 1)


def machine_to_bytes(machine: Machine) -> bytes:
    """Uncompressed binary encoding of ``machine``, in one buffer."""
    return b"".join(iter_machine_bytes(machine))


def serialize_machine(machine: Machine) -> str:
    """Encode ``machine`` into the engine's text format."""
    compressor = zlib.compressobj(COMPRESSION_LEVEL)
    compressed = [compressor.compress(chunk) for chunk in iter_machine_bytes(machine)]
    compressed.append(compressor.flush())
    return base64.b64encode(b"".join(compressed)).decode("ascii")


class _InflatingReader:
    """Reads exact byte counts from a zlib stream, inflating only what is asked for."""

    def __init__(self, compressed: bytes):
        self._inflater = zlib.decompressobj()
        self._pending = compressed
        self._buffer = b""

    def read(self, size: int) -> bytes:
        chunks = [self._buffer]
        available = len(self._buffer)
        while available < size and self._pending:
            try:
                chunk = self._inflater.decompress(self._pending, size - available)
            except zlib.error as e:
                raise MachineFormatError(f"Serialized machine is not valid base64/zlib data: {e}") from e
            self._pending = self._inflater.unconsumed_tail
            chunks.append(chunk)
            available += len(chunk)
        data = b"".join(chunks)
        self._buffer = data[size:]
        return data[:size]

    def exhausted(self) -> bool:
        """True once the zlib stream ended cleanly with no data left over."""
        return (
            not self._buffer
            and not self._pending
            and self._inflater.eof
            and not self._inflater.unused_data
        )


def _unpack_dist(raw: bytes, offset: int) -> tuple[Dist, int]:
    kind, param1, param2, start, cap = _DIST.unpack_from(raw, offset)
    return Dist(DistType(kind), param1, param2, start, cap), offset + _DIST.size


def _decode_state(block: bytes, num_targets: int) -> State:
    action, offset = _unpack_dist(block, 0)
    limit, offset = _unpack_dist(block, offset)
    timeout, offset = _unpack_dist(block, offset)
    action_is_block, bypass, replace = _FLAGS.unpack_from(block, offset)
    offset += _FLAGS.size
    matrix = np.frombuffer(block, dtype="<f8", offset=offset).reshape(len(_EVENTS), num_targets)

    transitions = {}
    for event, row in zip(_EVENTS, matrix):
        targets = {int(target): float(row[target]) for target in np.flatnonzero(row)}
        if targets:
            transitions[event] = targets
    return State(
        transitions=transitions,
        timeout=timeout,
        action=action,
        limit=limit,
        bypass=bypass,
        replace=replace,
        action_is_block=action_is_block,
    )


def deserialize_machine(text: str) -> Machine:
    """Decode a string produced by ``serialize_machine``."""
    try:
        compressed = base64.b64decode(text.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as e:
        raise MachineFormatError(f"Serialized machine is not valid base64/zlib data: {e}") from e

    reader = _InflatingReader(compressed)
    header = reader.read(_HEADER.size)
    if len(header) < _HEADER.size:
        raise MachineFormatError(f"Serialized machine is truncated ({len(header)} bytes).")
    (
        version,
        allowed_padding_bytes,
        max_padding_frac,
        allowed_blocked_microsec,
        max_blocking_frac,
        include_small_packets,
        num_states,
    ) = _HEADER.unpack(header)
    if version != VERSION:
        raise MachineFormatError(f"Unsupported machine format version {version}, expected {VERSION}.")

    num_targets = num_states + 1
    block_size = 3 * _DIST.size + _FLAGS.size + len(_EVENTS) * num_targets * 8
    expected = _HEADER.size + num_states * block_size

    states: list[State] = []
    for idx in range(num_states):
        block = reader.read(block_size)
        if len(block) < block_size:
            received = _HEADER.size + idx * block_size + len(block)
            raise MachineFormatError(
                f"Serialized machine is truncated: {received} bytes, "
                f"expected {expected} for {num_states} states."
            )
        states.append(_decode_state(block, num_targets))

    if reader.read(1) or not reader.exhausted():
        raise MachineFormatError(
            f"Serialized machine does not end after {num_states} states ({expected} bytes)."
        )

    return Machine(
        states=tuple(states),
        allowed_padding_bytes=allowed_padding_bytes,
        max_padding_frac=max_padding_frac,
        allowed_blocked_microsec=allowed_blocked_microsec,
        max_blocking_frac=max_blocking_frac,
        include_small_packets=include_small_packets,
    )


def format_artifact(label: str, machine: Machine) -> str:
    """Render one machine the way the command-line programs print it."""
    serialized = serialize_machine(machine)
    return f"{label}: {serialized} ({len(serialized)})"
