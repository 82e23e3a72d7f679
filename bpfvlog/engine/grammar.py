"""Instruction grammar for ALU, memory, jump and call instructions."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import re
from typing import Optional

from ..constants import (
    ALU_OPERATORS,
    CALLEE_SAVED_REGS,
    CONDITION_OPERATORS,
    RETURN_REGISTER,
    SCRATCH_REGS,
)
from .opcode import (
    ALU_CLASSES,
    JMP_CLASSES,
    NO_MATCH,
    Consumed,
    JmpCode,
    Opcode,
    Operand,
    OperandKind,
    Span,
    consume_literal,
    consume_longest,
    parse_condition_operand,
    parse_destination,
    parse_source,
    skip_spaces,
)


class JumpKind(Enum):
    UNCONDITIONAL_GOTO = "UNCONDITIONAL_GOTO"
    CONDITIONAL_GOTO = "CONDITIONAL_GOTO"
    HELPER_CALL = "HELPER_CALL"
    BPF2BPF_CALL = "BPF2BPF_CALL"
    EXIT = "EXIT"


CONDITIONAL_CODES = frozenset(
    {
        JmpCode.JEQ,
        JmpCode.JGT,
        JmpCode.JGE,
        JmpCode.JSET,
        JmpCode.JNE,
        JmpCode.JSGT,
        JmpCode.JSGE,
        JmpCode.JLT,
        JmpCode.JLE,
        JmpCode.JSLT,
        JmpCode.JSLE,
    }
)

RE_CALL_TARGET = re.compile(r"call ([0-9A-Za-z_#+-]+)")
RE_JMP_TARGET = re.compile(r"goto (pc[+-][0-9]+)")
RE_EXIT = re.compile(r"exit\b")


@dataclass(frozen=True)
class Condition:
    left: Operand
    op: str
    right: Operand


@dataclass(frozen=True)
class AluPayload:
    operator: str
    dst: Operand
    src: Operand


@dataclass(frozen=True)
class JumpPayload:
    target: str
    kind: JumpKind
    condition: Optional[Condition] = None
    target_span: Optional[Span] = None


@dataclass(frozen=True)
class Instruction:
    """One decoded instruction with its semantic reads and writes."""

    pc: Optional[int]
    opcode: Opcode
    reads: tuple[str, ...]
    writes: tuple[str, ...]
    alu: Optional[AluPayload] = None
    jump: Optional[JumpPayload] = None
    span: Optional[Span] = None

    @property
    def kind(self) -> Optional[JumpKind]:
        return self.jump.kind if self.jump else None

    @property
    def is_call(self) -> bool:
        return self.kind in (JumpKind.HELPER_CALL, JumpKind.BPF2BPF_CALL)

    @property
    def is_subprogram_call(self) -> bool:
        return self.kind is JumpKind.BPF2BPF_CALL

    @property
    def is_exit(self) -> bool:
        return self.kind is JumpKind.EXIT

    def operands(self) -> list[Operand]:
        """Operands in textual order."""

        if self.alu:
            return [self.alu.dst, self.alu.src]
        if self.jump and self.jump.condition:
            return [self.jump.condition.left, self.jump.condition.right]
        return []


def _unique(ids) -> tuple[str, ...]:
    return tuple(dict.fromkeys(ids))


def collect_alu_reads(operator: str, dst: Operand, src: Operand) -> tuple[str, ...]:
    """Slots read by ``dst <operator> src``.

    Compound assignment reads its destination, non-stack memory operands
    read their address register, and the source is read unless it is an
    immediate. Stack slots are exact ids, so ``r10`` is not a read.
    """

    reads = []
    if operator != "=":
        reads.append(dst.id)
    if src.kind is OperandKind.MEMORY:
        reads.append(src.memref.base)
    if dst.kind is OperandKind.MEMORY:
        reads.append(dst.memref.base)
    if not src.is_immediate:
        reads.append(src.id)
    return _unique(reads)


def parse_alu(text: str, pos: int, opcode: Opcode, pc=None):
    start = pos
    dst = parse_destination(text, pos)
    if not dst:
        return NO_MATCH
    pos = skip_spaces(text, dst.pos)

    operator = consume_longest(ALU_OPERATORS, text, pos)
    if not operator:
        return NO_MATCH
    pos = skip_spaces(text, operator.pos)

    src = parse_source(text, pos)
    if not src:
        return NO_MATCH

    ins = Instruction(
        pc=pc,
        opcode=opcode,
        reads=collect_alu_reads(operator.value, dst.value, src.value),
        writes=(dst.value.id,),
        alu=AluPayload(operator.value, dst.value, src.value),
        span=Span(start, src.pos - start),
    )
    return Consumed(ins, src.pos)


def is_subprogram_target(target: str) -> bool:
    """Calls printed as ``pc+N``/``pc-N`` target a subprogram."""

    return target.startswith("pc+") or target.startswith("pc-")


def helper_name(target: str) -> str:
    """``bpf_map_lookup_elem#1`` -> ``bpf_map_lookup_elem``."""

    return target.split("#", 1)[0]


def helper_id(target: str) -> Optional[int]:
    _, sep, ident = target.partition("#")
    if not sep or not ident.isdigit():
        return None
    return int(ident)


def parse_call(text: str, pos: int, opcode: Opcode, pc=None):
    match = RE_CALL_TARGET.match(text, pos)
    if not match:
        return NO_MATCH
    target = match.group(1)
    target_span = Span(match.start(1), match.end(1) - match.start(1))

    if is_subprogram_target(target):
        kind = JumpKind.BPF2BPF_CALL
        writes = [RETURN_REGISTER, *CALLEE_SAVED_REGS]
    else:
        kind = JumpKind.HELPER_CALL
        writes = [RETURN_REGISTER, *SCRATCH_REGS]

    ins = Instruction(
        pc=pc,
        opcode=opcode,
        reads=tuple(SCRATCH_REGS),
        writes=tuple(writes),
        jump=JumpPayload(target, kind, target_span=target_span),
        span=Span(match.start(), match.end() - match.start()),
    )
    return Consumed(ins, match.end())


def parse_conditional_jump(text: str, pos: int, opcode: Opcode, pc=None):
    start = pos
    keyword = consume_literal("if ", text, pos)
    if not keyword:
        return NO_MATCH
    pos = skip_spaces(text, keyword.pos)

    left = parse_condition_operand(text, pos)
    if not left:
        return NO_MATCH
    pos = skip_spaces(text, left.pos)

    comparator = consume_longest(CONDITION_OPERATORS, text, pos)
    if not comparator:
        return NO_MATCH
    pos = skip_spaces(text, comparator.pos)

    right = parse_condition_operand(text, pos)
    if not right:
        return NO_MATCH
    pos = skip_spaces(text, right.pos)

    target = RE_JMP_TARGET.match(text, pos)
    if not target:
        return NO_MATCH

    condition = Condition(left.value, comparator.value, right.value)
    ins = Instruction(
        pc=pc,
        opcode=opcode,
        reads=_unique((left.value.id, right.value.id)),
        writes=(),
        jump=JumpPayload(
            target.group(1),
            JumpKind.CONDITIONAL_GOTO,
            condition=condition,
            target_span=Span(target.start(1), target.end(1) - target.start(1)),
        ),
        span=Span(start, target.end() - start),
    )
    return Consumed(ins, target.end())


def parse_goto(text: str, pos: int, opcode: Opcode, pc=None):
    target = RE_JMP_TARGET.match(text, pos)
    if not target:
        return NO_MATCH
    ins = Instruction(
        pc=pc,
        opcode=opcode,
        reads=(),
        writes=(),
        jump=JumpPayload(
            target.group(1),
            JumpKind.UNCONDITIONAL_GOTO,
            target_span=Span(target.start(1), target.end(1) - target.start(1)),
        ),
        span=Span(target.start(), target.end() - target.start()),
    )
    return Consumed(ins, target.end())


def parse_exit(text: str, pos: int, opcode: Opcode, pc=None):
    match = RE_EXIT.match(text, pos)
    if not match:
        return NO_MATCH
    # The returned r0 is handed to the caller frame by the simulator.
    ins = Instruction(
        pc=pc,
        opcode=opcode,
        reads=(RETURN_REGISTER,),
        writes=(RETURN_REGISTER,),
        jump=JumpPayload("", JumpKind.EXIT),
        span=Span(match.start(), match.end() - match.start()),
    )
    return Consumed(ins, match.end())


def parse_jump(text: str, pos: int, opcode: Opcode, pc=None):
    if opcode.code == JmpCode.CALL:
        return parse_call(text, pos, opcode, pc)
    if opcode.code in CONDITIONAL_CODES:
        return parse_conditional_jump(text, pos, opcode, pc)
    if opcode.code == JmpCode.JA:
        return parse_goto(text, pos, opcode, pc)
    if opcode.code == JmpCode.EXIT:
        return parse_exit(text, pos, opcode, pc)
    return NO_MATCH


def parse_instruction(text: str, pos: int, opcode: Opcode, pc=None):
    """Parse the instruction body at ``pos`` according to ``opcode``."""

    if opcode.iclass in ALU_CLASSES:
        return parse_alu(text, pos, opcode, pc)
    if opcode.iclass in JMP_CLASSES:
        return parse_jump(text, pos, opcode, pc)
    return NO_MATCH


__all__ = [
    "AluPayload",
    "CONDITIONAL_CODES",
    "Condition",
    "Instruction",
    "JumpKind",
    "JumpPayload",
    "collect_alu_reads",
    "helper_id",
    "helper_name",
    "is_subprogram_target",
    "parse_alu",
    "parse_call",
    "parse_conditional_jump",
    "parse_exit",
    "parse_goto",
    "parse_instruction",
    "parse_jump",
]
