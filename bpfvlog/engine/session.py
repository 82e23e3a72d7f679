"""Incremental loading of verifier logs.

A :class:`LogSession` threads the parsed lines, the per-line states and the
pending partial line through explicit instance state, so a log can be fed in
arbitrary chunks and independent sessions never share anything.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from ..constants import MAX_DEPENDENCY_DEPTH
from .deps import DependencyChain, dependency_chain, most_recent_state, resolve_dependencies
from .lines import LineProblem, ParsedLine, normalize_slot_id, parse_line
from .machine import MachineState, advance_state, initial_state, slot_display_value


class DiagnosticKind(Enum):
    BAD_INSTRUCTION = "BAD_INSTRUCTION"
    MALFORMED_STATE_TOKEN = "MALFORMED_STATE_TOKEN"
    UNBALANCED_EXIT = "UNBALANCED_EXIT"


@dataclass(frozen=True)
class Diagnostic:
    index: int
    kind: DiagnosticKind
    message: str

    def __str__(self) -> str:
        return f"line {self.index + 1}: {self.message}"


@dataclass(frozen=True)
class LogSummary:
    """Counts describing a loaded log."""

    total_lines: int
    instruction_lines: int
    unrecognized_lines: int
    max_depth: int
    final_depth: int
    diagnostics: tuple[Diagnostic, ...]

    @property
    def ok(self) -> bool:
        """``True`` when no line needed recovery."""

        return not self.diagnostics


class LogSession:
    """Parse and replay a verifier log as it arrives."""

    def __init__(self, max_depth=MAX_DEPENDENCY_DEPTH):
        self.max_depth = max_depth
        self._lines: list[ParsedLine] = []
        self._states: list[Optional[MachineState]] = []
        self._current = initial_state()
        self._remainder = ""
        self._diagnostics: list[Diagnostic] = []
        self._max_frame_depth = 0
        self._lines_view: Optional[tuple[ParsedLine, ...]] = None
        self._states_view: Optional[tuple[Optional[MachineState], ...]] = None

    # -- input ------------------------------------------------------------

    def feed(self, chunk: str) -> list[ParsedLine]:
        """Consume a chunk of text; the trailing partial line is buffered."""

        pieces = (self._remainder + chunk).split("\n")
        self._remainder = pieces.pop()
        return [self.feed_line(raw) for raw in pieces]

    def finish(self) -> list[ParsedLine]:
        """Flush a buffered final line that had no newline."""

        if not self._remainder:
            return []
        raw, self._remainder = self._remainder, ""
        return [self.feed_line(raw)]

    def feed_lines(self, raw_lines: Iterable[str]) -> list[ParsedLine]:
        return [self.feed_line(raw.rstrip("\n")) for raw in raw_lines]

    def feed_line(self, raw: str) -> ParsedLine:
        """Parse one complete line and advance the simulated state."""

        if raw.endswith("\r"):
            raw = raw[:-1]
        index = len(self._lines)
        line = parse_line(raw, index)
        self._lines.append(line)
        self._lines_view = self._states_view = None

        if not line.is_instruction:
            self._states.append(None)
            if line.problem is LineProblem.BAD_INSTRUCTION:
                self._report(index, DiagnosticKind.BAD_INSTRUCTION, "unparsed instruction body")
            return line

        if line.instruction.is_exit and not self._current.frames:
            self._report(
                index,
                DiagnosticKind.UNBALANCED_EXIT,
                "exit without a pending call, starting a fresh frame",
            )
        for token in line.skipped_tokens:
            self._report(
                index,
                DiagnosticKind.MALFORMED_STATE_TOKEN,
                f"skipped state token {token!r}",
            )

        self._current = advance_state(self._current, line, index)
        self._states.append(self._current)
        self._max_frame_depth = max(self._max_frame_depth, self._current.depth)
        return line

    def _report(self, index, kind, message):
        self._diagnostics.append(Diagnostic(index, kind, message))

    # -- queries ----------------------------------------------------------

    @property
    def lines(self) -> tuple[ParsedLine, ...]:
        """Snapshot of the parsed lines, rebuilt only after new input."""

        if self._lines_view is None:
            self._lines_view = tuple(self._lines)
        return self._lines_view

    @property
    def states(self) -> tuple[Optional[MachineState], ...]:
        if self._states_view is None:
            self._states_view = tuple(self._states)
        return self._states_view

    def line_at(self, index: int) -> ParsedLine:
        self._check_index(index)
        return self._lines[index]

    @property
    def current_state(self) -> MachineState:
        return self._current

    @property
    def diagnostics(self) -> list[Diagnostic]:
        return list(self._diagnostics)

    def __len__(self) -> int:
        return len(self._lines)

    def _check_index(self, index):
        if not 0 <= index < len(self._lines):
            raise IndexError(f"Line index {index} is out of range")

    def state_at(self, index: int) -> MachineState:
        """State as of line ``index`` (nearest instruction at or before it)."""

        self._check_index(index)
        return most_recent_state(self._states, index)

    def resolve_dependencies(self, index: int, slot_id: str) -> list[int]:
        return resolve_dependencies(
            self._lines, self._states, index, slot_id, self.max_depth
        )

    def select(self, index: int, slot_id: str) -> DependencyChain:
        """Dependency chain for a slot picked on a line."""

        return dependency_chain(self._lines, self._states, index, slot_id, self.max_depth)

    def display_value(self, index: int, slot_id: str) -> str:
        current = self.state_at(index)
        if current.index <= 0:
            previous = initial_state()
        else:
            previous = most_recent_state(self._states, current.index - 1)
        instruction = self._lines[index].instruction
        return slot_display_value(previous, current, normalize_slot_id(slot_id), instruction)

    def summary(self) -> LogSummary:
        instructions = sum(1 for line in self._lines if line.is_instruction)
        return LogSummary(
            total_lines=len(self._lines),
            instruction_lines=instructions,
            unrecognized_lines=len(self._lines) - instructions,
            max_depth=self._max_frame_depth,
            final_depth=self._current.depth,
            diagnostics=tuple(self._diagnostics),
        )


def parse_log(source, max_depth=MAX_DEPENDENCY_DEPTH) -> LogSession:
    """Load a whole log from a string or an iterable of lines."""

    session = LogSession(max_depth=max_depth)
    if isinstance(source, str):
        session.feed(source)
        session.finish()
    else:
        session.feed_lines(source)
    return session


__all__ = [
    "Diagnostic",
    "DiagnosticKind",
    "LogSession",
    "LogSummary",
    "parse_log",
]
