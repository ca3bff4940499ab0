"""Command-line entry points for the defense machine generators.

Four programs are installed (``maybenot-front``, ``pipelined-front``,
``maybenot-regulator``, ``maybenot-surakav``); ``python -m maybenot_defenses
<profile> ...`` reaches the same programs.
"""

from __future__ import annotations

import argparse
import math
import os
import sys
from pathlib import Path
from typing import Callable, Sequence

from .config import get_verbosity
from .fitting import IntervalSearchError
from .front import generate_front_machine, generate_pipelined_front_machine
from .machine import Machine
from .regulator import generate_regulator_machines
from .reporting import summarize_machine
from .serialize import format_artifact
from .surakav import generate_surakav_machines_from_file

Labelled = list[tuple[str, Machine]]


def _positive_float(text: str) -> float:
    try:
        value = float(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number: {text!r}") from None
    if not (math.isfinite(value) and value > 0):
        raise argparse.ArgumentTypeError(f"must be a positive finite number, got {text!r}")
    return value


def _positive_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {text!r}") from None
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {text!r}")
    return value


def _decay_float(text: str) -> float:
    value = _positive_float(text)
    if value >= 1.0:
        raise argparse.ArgumentTypeError(f"must lie in (0, 1), got {text!r}")
    return value


def _new_parser(prog: str, description: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=prog, description=description)
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Print a table of every generated state to stderr.",
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress progress output; only the machines are printed.",
    )
    return parser


def build_front_parser(prog: str = "maybenot-front") -> argparse.ArgumentParser:
    parser = _new_parser(prog, "Generate a FRONT padding machine.")
    parser.add_argument("padding_window", type=_positive_float, help="FRONT W_max [seconds].")
    parser.add_argument("padding_budget", type=_positive_int, help="FRONT N [cells].")
    parser.add_argument("num_states", type=_positive_int, help="Number of PADDING states.")
    return parser


def build_pipelined_front_parser(prog: str = "pipelined-front") -> argparse.ArgumentParser:
    parser = _new_parser(prog, "Generate a Pipelined FRONT padding machine.")
    parser.add_argument("padding_window", type=_positive_float, help="FRONT W_max [seconds].")
    parser.add_argument("padding_budget", type=_positive_int, help="FRONT N [cells].")
    parser.add_argument("num_pipelines", type=_positive_int, help="Number of pipelines.")
    parser.add_argument("num_states", type=_positive_int, help="PADDING states per pipeline.")
    return parser


def build_regulator_parser(prog: str = "maybenot-regulator") -> argparse.ArgumentParser:
    parser = _new_parser(prog, "Generate RegulaTor relay and client machines.")
    parser.add_argument("initial_rate", type=_positive_float, help="RegulaTor R, surge rate [packets/s].")
    parser.add_argument("decay_rate", type=_decay_float, help="RegulaTor D, decay rate in (0, 1).")
    parser.add_argument("threshold", type=_positive_float, help="RegulaTor T, surge threshold.")
    parser.add_argument("upload_ratio", type=_positive_float, help="RegulaTor U, upload ratio.")
    parser.add_argument("packets_per_state", type=_positive_float, help="Cells sent by each SEND state.")
    return parser


def build_surakav_parser(prog: str = "maybenot-surakav") -> argparse.ArgumentParser:
    parser = _new_parser(prog, "Generate Surakav relay and client machines from a reference trace.")
    parser.add_argument("trace_path", type=Path, help="Reference trace, one burst size per line.")
    return parser


def _front(args: argparse.Namespace) -> Labelled:
    machine = generate_front_machine(args.padding_window, args.padding_budget, args.num_states)
    return [("Machine", machine)]


def _pipelined_front(args: argparse.Namespace) -> Labelled:
    machine = generate_pipelined_front_machine(
        args.padding_window, args.padding_budget, args.num_pipelines, args.num_states
    )
    return [("Machine", machine)]


def _regulator(args: argparse.Namespace) -> Labelled:
    relay, client = generate_regulator_machines(
        args.initial_rate,
        args.decay_rate,
        args.threshold,
        args.upload_ratio,
        args.packets_per_state,
    )
    return [("Relay machine", relay), ("Client machine", client)]


def _surakav(args: argparse.Namespace) -> Labelled:
    relay, client = generate_surakav_machines_from_file(args.trace_path)
    return [("Relay machine", relay), ("Client machine", client)]


def _set_verbosity(args: argparse.Namespace) -> None:
    # Read back by the generator modules through get_verbosity().
    if args.quiet:
        os.environ["MAYBENOT_VERBOSITY"] = "0"
    elif args.verbose:
        os.environ["MAYBENOT_VERBOSITY"] = "2"
    else:
        os.environ["MAYBENOT_VERBOSITY"] = "1"


def _run(
    parser: argparse.ArgumentParser,
    generate: Callable[[argparse.Namespace], Labelled],
    argv: Sequence[str] | None,
) -> None:
    args = parser.parse_args(argv)
    _set_verbosity(args)

    try:
        machines = generate(args)
        artifacts = [format_artifact(label, machine) for label, machine in machines]
    except FileNotFoundError as e:
        print(
            f"Error: File not found: {e}\n"
            f"Please check the reference trace path.",
            file=sys.stderr,
        )
        sys.exit(1)
    except ValueError as e:
        print(f"Error: Invalid input: {e}", file=sys.stderr)
        sys.exit(1)
    except IntervalSearchError as e:
        print(f"Error: Interval search failed: {e}", file=sys.stderr)
        sys.exit(1)
    except MemoryError:
        print(
            "Error: Out of memory while building or encoding the machines.\n"
            "Try fewer states or a shorter reference trace.",
            file=sys.stderr,
        )
        sys.exit(1)

    if get_verbosity() >= 2:
        for label, machine in machines:
            print(summarize_machine(machine, title=label), file=sys.stderr)

    for artifact in artifacts:
        print(artifact)
        print()


def front_main(argv: Sequence[str] | None = None) -> None:
    _run(build_front_parser(), _front, argv)


def pipelined_front_main(argv: Sequence[str] | None = None) -> None:
    _run(build_pipelined_front_parser(), _pipelined_front, argv)


def regulator_main(argv: Sequence[str] | None = None) -> None:
    _run(build_regulator_parser(), _regulator, argv)


def surakav_main(argv: Sequence[str] | None = None) -> None:
    _run(build_surakav_parser(), _surakav, argv)


PROGRAMS: dict[str, Callable[[Sequence[str] | None], None]] = {
    "front": front_main,
    "pipelined-front": pipelined_front_main,
    "regulator": regulator_main,
    "surakav": surakav_main,
}


def main(argv: Sequence[str] | None = None) -> None:
    argv = list(sys.argv[1:] if argv is None else argv)
    parser = argparse.ArgumentParser(
        prog="python -m maybenot_defenses",
        description="Generate maybenot machines approximating website fingerprinting defenses.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s front 14 1300 6
  %(prog)s pipelined-front 14 1300 4 6
  %(prog)s regulator 277 0.94 3.55 3.95 10
  %(prog)s surakav reference.txt
        """,
    )
    parser.add_argument("profile", choices=sorted(PROGRAMS), help="Defense to generate.")
    args = parser.parse_args(argv[:1])
    PROGRAMS[args.profile](argv[1:])


if __name__ == "__main__":
    main()
