"""Abstract machine replaying the verifier's register, stack and frame state."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import re
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping, Optional

from ..constants import (
    FRAME_POINTER,
    IMMEDIATE_SLOT,
    INITIAL_VALUES,
    MAX_STACK_OFFSET,
    MEMORY_SLOT,
    REGISTERS,
    RETURN_REGISTER,
    SCRATCH_REGS,
)
from .grammar import Instruction
from .lines import ParsedLine


class Effect(Enum):
    NONE = "NONE"
    READ = "READ"
    WRITE = "WRITE"
    UPDATE = "UPDATE"  # read then written, e.g. r0 += 1


@dataclass(frozen=True)
class SlotValue:
    value: str
    effect: Effect = Effect.NONE


@dataclass(frozen=True)
class MachineState:
    """Snapshot of the simulated machine after one log line.

    ``frames`` holds the saved caller states, innermost last. Snapshots are
    never mutated once built.
    """

    values: Mapping[str, SlotValue]
    last_writes: Mapping[str, int]
    pc: Optional[int] = None
    index: int = -1
    frames: tuple["MachineState", ...] = ()

    @property
    def depth(self) -> int:
        return len(self.frames)

    def value_of(self, slot: str) -> str:
        slot_value = self.values.get(slot)
        return slot_value.value if slot_value else ""

    def effect_of(self, slot: str) -> Effect:
        slot_value = self.values.get(slot)
        return slot_value.effect if slot_value else Effect.NONE

    def last_write(self, slot: str) -> Optional[int]:
        return self.last_writes.get(slot)


def _freeze(values, last_writes, pc, index, frames) -> MachineState:
    return MachineState(
        values=MappingProxyType(dict(values)),
        last_writes=MappingProxyType(dict(last_writes)),
        pc=pc,
        index=index,
        frames=tuple(frames),
    )


def initial_state() -> MachineState:
    values = {slot: SlotValue(value) for slot, value in INITIAL_VALUES.items()}
    return _freeze(values, {}, None, -1, ())


def _carry_values(state: MachineState) -> dict[str, SlotValue]:
    """Copy known values forward; effects are never carried."""

    return {
        slot: SlotValue(slot_value.value)
        for slot, slot_value in state.values.items()
        if slot_value.value
    }


def instruction_effects(ins: Instruction) -> dict[str, Effect]:
    effects = {slot: Effect.READ for slot in ins.reads}
    for slot in ins.writes:
        effects[slot] = Effect.UPDATE if slot in effects else Effect.WRITE
    return effects


def _enter_frame(previous: MachineState):
    """Callee frame: only the argument registers survive the call."""

    values = {
        slot: SlotValue(previous.value_of(slot))
        for slot in SCRATCH_REGS
        if previous.value_of(slot)
    }
    values[FRAME_POINTER] = SlotValue(INITIAL_VALUES[FRAME_POINTER])
    last_writes = {
        slot: previous.last_writes[slot]
        for slot in SCRATCH_REGS
        if slot in previous.last_writes
    }
    return values, last_writes, previous.frames + (previous,)


def _leave_frame(previous: MachineState):
    """Caller frame restored on exit; unbalanced exits start from scratch."""

    parent = previous.frames[-1] if previous.frames else initial_state()
    values = _carry_values(parent)
    last_writes = dict(parent.last_writes)
    for slot in SCRATCH_REGS:
        values.pop(slot, None)
        last_writes.pop(slot, None)
    return values, last_writes, parent.frames


def advance_state(
    previous: MachineState, line: ParsedLine, index: Optional[int] = None
) -> MachineState:
    """Fold one parsed line into the machine state.

    Lines that are not instructions leave the state untouched.
    """

    if not line.is_instruction:
        return previous
    index = line.index if index is None else index
    if index is None:
        raise ValueError("advance_state needs the line index of the instruction")

    ins = line.instruction
    effects = instruction_effects(ins)

    if ins.is_subprogram_call:
        values, last_writes, frames = _enter_frame(previous)
    elif ins.is_exit:
        values, last_writes, frames = _leave_frame(previous)
    else:
        values = _carry_values(previous)
        last_writes = dict(previous.last_writes)
        frames = previous.frames

    for slot in ins.reads:
        current = values.get(slot)
        values[slot] = SlotValue(current.value if current else "", Effect.READ)
    for slot in ins.writes:
        values[slot] = SlotValue("", effects[slot])
        last_writes[slot] = index
    if ins.is_exit:
        values[RETURN_REGISTER] = SlotValue(
            previous.value_of(RETURN_REGISTER), effects[RETURN_REGISTER]
        )

    # Values reported by the verifier win over the inferred placeholders.
    for expr in line.state_exprs:
        values[expr.id] = SlotValue(expr.value, effects.get(expr.id, Effect.NONE))

    return _freeze(values, last_writes, ins.pc, index, frames)


def replay(
    lines: Iterable[ParsedLine], state: Optional[MachineState] = None
) -> Iterator[Optional[MachineState]]:
    """Yield the state produced by each line, ``None`` for non-instructions."""

    state = state or initial_state()
    for position, line in enumerate(lines):
        if not line.is_instruction:
            yield None
            continue
        index = position if line.index is None else line.index
        state = advance_state(state, line, index)
        yield state


def display_value(value: str) -> str:
    return "fp-0" if value == "fp0" else value


def slot_display_value(
    previous: MachineState,
    current: MachineState,
    slot: str,
    instruction: Optional[Instruction] = None,
) -> str:
    """Human-readable value of ``slot``, showing the transition on writes."""

    effect = current.effect_of(slot)
    if effect not in (Effect.WRITE, Effect.UPDATE):
        return display_value(current.value_of(slot))

    if slot == MEMORY_SLOT:
        if instruction is None or instruction.alu is None:
            return ""
        src = instruction.alu.src
        stored = src.literal if src.is_immediate else current.value_of(src.id)
        return f"-> {display_value(stored)}"

    new = display_value(current.value_of(slot))
    old = display_value(previous.value_of(slot))
    if new == old:
        return new
    if not new:
        return f"{old} -> scratched".lstrip()
    if not old:
        return f"-> {new}"
    return f"{old} -> {new}"


RE_STACK_SLOT = re.compile(r"fp-([0-9]+)")


def ordered_slot_ids(state: MachineState) -> list[str]:
    """Registers first, then stack slots by offset, then the rest sorted.

    The ``IMM`` pseudo slot never holds a value and is left out.
    """

    stack = []
    rest = []
    for slot in state.values:
        if slot in REGISTERS or slot == IMMEDIATE_SLOT:
            continue
        match = RE_STACK_SLOT.fullmatch(slot)
        if match and int(match.group(1)) <= MAX_STACK_OFFSET:
            stack.append((int(match.group(1)), slot))
        else:
            rest.append(slot)
    return list(REGISTERS) + [slot for _, slot in sorted(stack)] + sorted(rest)


def state_to_dict(state: MachineState) -> dict:
    """JSON-safe representation of a snapshot."""

    return {
        "index": state.index,
        "pc": state.pc,
        "depth": state.depth,
        "values": {
            slot: {"value": slot_value.value, "effect": slot_value.effect.value}
            for slot, slot_value in sorted(state.values.items())
        },
        "last_writes": dict(sorted(state.last_writes.items())),
        "frames": [state_to_dict(frame) for frame in state.frames],
    }


__all__ = [
    "Effect",
    "MachineState",
    "SlotValue",
    "advance_state",
    "display_value",
    "initial_state",
    "instruction_effects",
    "ordered_slot_ids",
    "replay",
    "slot_display_value",
    "state_to_dict",
]
