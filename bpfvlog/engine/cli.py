"""Command-line loader for verifier logs."""
from __future__ import annotations

import argparse
import json
import sys

from ..constants import DEFAULT_CHUNK_SIZE
from .export import build_log_document, hash_log_document, line_to_dict, write_log_document
from .machine import Effect, ordered_slot_ids
from .session import LogSession

EFFECT_MARKS = {
    Effect.NONE: " ",
    Effect.READ: "r",
    Effect.WRITE: "w",
    Effect.UPDATE: "u",
}


def load_session(path, chunk_size=DEFAULT_CHUNK_SIZE):
    """Stream a log file (``-`` for stdin) into a new session."""

    if chunk_size <= 0:
        raise ValueError(f"Chunk size must be positive, got {chunk_size}")
    session = LogSession()
    if path == "-":
        stream = sys.stdin
        close = False
    else:
        stream = open(path, "r", encoding="utf-8", errors="replace")
        close = True
    try:
        while True:
            chunk = stream.read(chunk_size)
            if not chunk:
                break
            session.feed(chunk)
    finally:
        if close:
            stream.close()
    session.finish()
    return session


def _line_number(session, number):
    """Convert a 1-based line number from the command line to an index."""

    index = number - 1
    if not 0 <= index < len(session):
        raise ValueError(f"Line {number} is out of range (1-{len(session)})")
    return index


def print_summary(session, source):
    summary = session.summary()
    print("Log:", source)
    print(
        f"  lines: {summary.total_lines} "
        f"(instructions {summary.instruction_lines}, unrecognized {summary.unrecognized_lines})"
    )
    print(f"  max frame depth: {summary.max_depth}, final depth: {summary.final_depth}")
    print("\nDiagnostics:")
    if summary.ok:
        print("  ✓ Every recognized line parsed cleanly")
    else:
        for diag in summary.diagnostics:
            print("  ✗", diag)


def print_state(session, number):
    index = _line_number(session, number)
    state = session.state_at(index)
    pc = "-" if state.pc is None else state.pc
    print(f"\nState at line {number} (pc {pc}, frame {state.depth}):")
    for slot in ordered_slot_ids(state):
        mark = EFFECT_MARKS[state.effect_of(slot)]
        value = session.display_value(index, slot)
        print(f"  {mark} {slot:<7} {value}")


def print_dependencies(session, number, slot):
    index = _line_number(session, number)
    chain = session.select(index, slot)
    print(f"\nDependencies of {chain.slot_id} at line {number}:")
    if not chain.lines:
        print("  (no known writer)")
        return
    for dep in chain.lines:
        line = session.line_at(dep)
        print(f"  • line {dep + 1} (pc {line.pc}): {line.raw.strip()}")


def _positive_int(text):
    value = int(text)
    if value <= 0:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {text}")
    return value


def parse_args(args):
    argp = argparse.ArgumentParser(description="BPF verifier log state replay")

    argp.add_argument("log", help="Verifier log file, or - for stdin")
    argp.add_argument(
        "--json", action="store_true", help="Dump every parsed line as JSON and exit"
    )
    argp.add_argument(
        "--state", type=int, metavar="LINE", help="Show the machine state at a line"
    )
    argp.add_argument(
        "--deps",
        nargs=2,
        metavar=("LINE", "SLOT"),
        help="Show where SLOT (e.g. r1, fp-24) came from as seen from LINE",
    )
    argp.add_argument("--hash", action="store_true", help="Print the log document hash")
    argp.add_argument(
        "--export", metavar="OUTPUT", help="Write the parsed log document as JSON"
    )
    argp.add_argument(
        "--chunk-size",
        type=_positive_int,
        default=DEFAULT_CHUNK_SIZE,
        help="Bytes read per chunk while streaming the log",
    )

    return argp.parse_args(args)


def main(args=None):
    params = parse_args(args)
    session = load_session(params.log, params.chunk_size)

    if params.json:
        print(json.dumps([line_to_dict(line) for line in session.lines], indent=2))
        return 0

    print_summary(session, params.log)

    try:
        if params.state is not None:
            print_state(session, params.state)
        if params.deps:
            print_dependencies(session, int(params.deps[0]), params.deps[1])
    except ValueError as exc:
        print(f"  ✗ {exc}")
        return 1

    if params.hash or params.export:
        doc = build_log_document(session)
        if params.hash:
            print(f"\nSHA256({params.log}) = {hash_log_document(doc)}")
        if params.export:
            write_log_document(doc, params.export)
    return 0


__all__ = [
    "load_session",
    "main",
    "parse_args",
    "print_dependencies",
    "print_state",
    "print_summary",
]


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main(sys.argv[1:]))
