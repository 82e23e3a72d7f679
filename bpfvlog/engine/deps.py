"""Backward use-def queries over replayed machine states."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from ..constants import MAX_DEPENDENCY_DEPTH, MEMORY_SLOT
from .grammar import Instruction
from .lines import ParsedLine, normalize_slot_id
from .machine import MachineState, initial_state


@dataclass(frozen=True)
class DependencyChain:
    """Lines that produced ``slot_id`` as seen from ``line_index``, nearest first."""

    line_index: int
    slot_id: str
    lines: tuple[int, ...]

    def __contains__(self, index) -> bool:
        return index in self.lines

    def __len__(self) -> int:
        return len(self.lines)


def most_recent_state(
    states: Sequence[Optional[MachineState]], index: int
) -> MachineState:
    """State as of line ``index``: the nearest produced state at or before it."""

    if not states:
        return initial_state()
    index = max(0, min(index, len(states) - 1))
    for position in range(index, -1, -1):
        state = states[position]
        if state is not None:
            return state
    return initial_state()


def _state_before(states, index) -> Optional[MachineState]:
    if index <= 0:
        return None
    return most_recent_state(states, index - 1)


def resolve_dependencies(
    lines: Sequence[ParsedLine],
    states: Sequence[Optional[MachineState]],
    line_index: int,
    slot_id: str,
    max_depth: int = MAX_DEPENDENCY_DEPTH,
) -> list[int]:
    """Walk back from ``line_index`` through the writers of ``slot_id``.

    The walk follows an instruction only while it reads exactly one slot;
    multi-source instructions end the chain.
    """

    if not 0 <= line_index < len(lines):
        raise IndexError(f"Line index {line_index} is out of range")

    slot = normalize_slot_id(slot_id)
    if slot == MEMORY_SLOT:
        return []

    target = line_index
    state = most_recent_state(states, target)
    deps: list[int] = []
    while len(deps) < max_depth:
        dep = state.last_write(slot)
        if dep == target:
            # The target updates the slot itself; look at the write before it.
            before = _state_before(states, target)
            dep = before.last_write(slot) if before else None
        if dep is None or dep >= target:
            break
        deps.append(dep)
        target = dep

        dep_ins = lines[dep].instruction
        if dep_ins is None or len(dep_ins.reads) != 1:
            break
        slot = dep_ins.reads[0]
        if slot == MEMORY_SLOT:
            break
        state = most_recent_state(states, dep)
    return deps


def select_dependency_slot(instruction: Optional[Instruction], slot_id: str) -> str:
    """Slot to trace when ``slot_id`` is picked on a line.

    A slot the line only writes is retargeted to the line's first read, so the
    chain explains where the new value came from.
    """

    slot = normalize_slot_id(slot_id)
    if instruction is None:
        return slot
    if slot not in instruction.reads and slot in instruction.writes and instruction.reads:
        return instruction.reads[0]
    return slot


def dependency_chain(
    lines: Sequence[ParsedLine],
    states: Sequence[Optional[MachineState]],
    line_index: int,
    slot_id: str,
    max_depth: int = MAX_DEPENDENCY_DEPTH,
) -> DependencyChain:
    """Resolve the chain for a slot picked on a line."""

    if not 0 <= line_index < len(lines):
        raise IndexError(f"Line index {line_index} is out of range")
    instruction = lines[line_index].instruction
    if instruction is None:
        return DependencyChain(line_index, normalize_slot_id(slot_id), ())
    slot = select_dependency_slot(instruction, slot_id)
    found = resolve_dependencies(lines, states, line_index, slot, max_depth)
    return DependencyChain(line_index, slot, tuple(found))


__all__ = [
    "DependencyChain",
    "dependency_chain",
    "most_recent_state",
    "resolve_dependencies",
    "select_dependency_slot",
]
