"""Reporting utilities for generated machines."""

from __future__ import annotations

from tabulate import tabulate

from .machine import Dist, DistType, Event, Machine, State


def describe_dist(dist: Dist) -> str:
    if dist.kind is DistType.NONE:
        return "-"
    if dist.kind is DistType.NORMAL:
        text = f"N({dist.param1:.6g}, {dist.param2:.6g})"
    elif dist.param1 == dist.param2:
        text = f"{dist.param1:.6g}"
    else:
        text = f"U({dist.param1:.6g}, {dist.param2:.6g})"
    if dist.start:
        text += f" +{dist.start:.6g}"
    if dist.max:
        text += f" <= {dist.max:.6g}"
    return text


def describe_transitions(state: State, end_index: int) -> str:
    parts: list[str] = []
    for event in Event:
        targets = state.transitions.get(event)
        if not targets:
            continue
        rendered = ", ".join(
            f"{'End' if target == end_index else target}:{probability:.4g}"
            for target, probability in sorted(targets.items())
        )
        parts.append(f"{event.value} -> {rendered}")
    return "; ".join(parts)


def _flags(state: State) -> str:
    flags = []
    if state.action_is_block:
        flags.append("block")
    if state.bypass:
        flags.append("bypass")
    if state.replace:
        flags.append("replace")
    return ",".join(flags)


def summarize_machine(machine: Machine, title: str | None = None) -> str:
    rows: list[tuple] = []
    for idx, state in enumerate(machine.states):
        rows.append(
            (
                idx,
                describe_dist(state.timeout),
                describe_dist(state.action),
                describe_dist(state.limit),
                _flags(state),
                describe_transitions(state, machine.end_index),
            )
        )
    table = tabulate(
        rows,
        headers=["State", "Timeout [us]", "Action", "Limit", "Flags", "Transitions"],
        tablefmt="github",
    )
    overall = f"{machine.num_states} states, End = {machine.end_index}"
    if title:
        return f"{title}\n{table}\n{overall}"
    return table + "\n" + overall
