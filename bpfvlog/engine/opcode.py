"""Opcode and operand decoding for verifier log instructions.

Every ``parse_*`` helper in this module takes the raw text and a cursor
position and returns either :class:`Consumed` (value plus the cursor after the
token) or :data:`NO_MATCH`. A failed match never raises and never moves the
caller's cursor, so alternatives compose as plain ``if`` chains.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
import re
from typing import Any, Optional

from ..constants import (
    CAST_SIZES,
    FRAME_POINTER,
    IMMEDIATE_SIZE,
    IMMEDIATE_SLOT,
    MEMORY_SLOT,
    REGISTER_SIZE,
    SUBREGISTER_SIZE,
)


class InstructionClass(IntEnum):
    LD = 0x0
    LDX = 0x1
    ST = 0x2
    STX = 0x3
    ALU = 0x4
    JMP = 0x5
    JMP32 = 0x6
    ALU64 = 0x7


class AluCode(IntEnum):
    ADD = 0x0
    SUB = 0x1
    MUL = 0x2
    DIV = 0x3
    OR = 0x4
    AND = 0x5
    LSH = 0x6
    RSH = 0x7
    NEG = 0x8
    MOD = 0x9
    XOR = 0xA
    MOV = 0xB
    ARSH = 0xC
    END = 0xD


class JmpCode(IntEnum):
    JA = 0x0
    JEQ = 0x1
    JGT = 0x2
    JGE = 0x3
    JSET = 0x4
    JNE = 0x5
    JSGT = 0x6
    JSGE = 0x7
    CALL = 0x8
    EXIT = 0x9
    JLT = 0xA
    JLE = 0xB
    JSLT = 0xC
    JSLE = 0xD


class OperandSource(Enum):
    IMMEDIATE = "K"
    REGISTER = "X"


class OperandKind(Enum):
    REGISTER = "REGISTER"
    FRAME_POINTER_SLOT = "FRAME_POINTER_SLOT"
    MEMORY = "MEMORY"
    IMMEDIATE = "IMMEDIATE"


ALU_CLASSES = frozenset(
    {
        InstructionClass.LD,
        InstructionClass.LDX,
        InstructionClass.ST,
        InstructionClass.STX,
        InstructionClass.ALU,
        InstructionClass.ALU64,
    }
)
JMP_CLASSES = frozenset({InstructionClass.JMP, InstructionClass.JMP32})


@dataclass(frozen=True)
class Opcode:
    """Decoded one-byte opcode: ``code`` is the high nibble."""

    iclass: InstructionClass
    code: int
    source: OperandSource

    @property
    def is_jump(self) -> bool:
        return self.iclass in JMP_CLASSES

    @property
    def is_alu_like(self) -> bool:
        return self.iclass in ALU_CLASSES

    def __str__(self) -> str:  # pragma: no cover - representation helper
        return f"{self.iclass.name}:{self.code:#x}:{self.source.value}"


@dataclass(frozen=True)
class Span:
    """Location of a token inside the raw log line."""

    offset: int
    length: int

    @property
    def end(self) -> int:
        return self.offset + self.length

    def slice(self, raw: str) -> str:
        return raw[self.offset : self.end]


@dataclass(frozen=True)
class MemoryRef:
    base: str
    offset: int


@dataclass(frozen=True)
class Operand:
    kind: OperandKind
    id: str
    size: int
    span: Optional[Span] = None
    memref: Optional[MemoryRef] = None
    literal: Optional[str] = None

    @property
    def is_immediate(self) -> bool:
        return self.kind is OperandKind.IMMEDIATE

    @property
    def is_memory(self) -> bool:
        return self.kind in (OperandKind.MEMORY, OperandKind.FRAME_POINTER_SLOT)

    @property
    def value(self) -> Optional[int]:
        """Integer value of an immediate operand."""

        if self.literal is None:
            return None
        if self.literal.lower().startswith("0x"):
            return int(self.literal, 16)
        return int(self.literal)


@dataclass(frozen=True)
class Consumed:
    """A successful parse: ``value`` and the cursor position after it."""

    value: Any
    pos: int

    ok = True


class _NoMatch:
    ok = False
    value = None

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:  # pragma: no cover - representation helper
        return "NO_MATCH"


NO_MATCH = _NoMatch()


RE_WHITESPACE = re.compile(r"\s*")
RE_OPCODE_HEX = re.compile(r"[0-9a-fA-F]{2}")
RE_REGISTER = re.compile(r"(r10|r[0-9]|w[0-9])\b")
RE_MEMORY_REF = re.compile(
    r"\*\((u8|u16|u32|u64) ?\*\)\((r10|r[0-9]) ?([+-][0-9]+)\)"
)
RE_IMMEDIATE = re.compile(r"(0x[0-9a-fA-F]+|[+-]?[0-9]+)")


def skip_spaces(text: str, pos: int) -> int:
    return RE_WHITESPACE.match(text, pos).end()


def consume_literal(token: str, text: str, pos: int):
    """Match an exact string at ``pos``."""

    if text.startswith(token, pos):
        return Consumed(token, pos + len(token))
    return NO_MATCH


def consume_longest(candidates, text: str, pos: int):
    """Match the first of ``candidates`` present at ``pos``.

    Callers pass candidates ordered longest-first.
    """

    for token in candidates:
        if text.startswith(token, pos):
            return Consumed(token, pos + len(token))
    return NO_MATCH


def decode_opcode(hex_byte: str) -> Opcode:
    """Decode a two-digit hex opcode such as ``"b7"``."""

    if not isinstance(hex_byte, str) or not RE_OPCODE_HEX.fullmatch(hex_byte):
        raise ValueError(f"Opcode must be two hex digits, got {hex_byte!r}")
    code = int(hex_byte[0], 16)
    sclass = int(hex_byte[1], 16)
    iclass = InstructionClass(sclass & 0x7)
    source = OperandSource.REGISTER if sclass & 0x8 else OperandSource.IMMEDIATE
    return Opcode(iclass=iclass, code=code, source=source)


def normalize_register(token: str) -> tuple[str, int]:
    """Return the canonical register id and operand size for ``token``."""

    token = token.lower()
    if token.startswith("w"):
        return "r" + token[1:], SUBREGISTER_SIZE
    return token, REGISTER_SIZE


def parse_register(text: str, pos: int):
    match = RE_REGISTER.match(text, pos)
    if not match:
        return NO_MATCH
    reg_id, size = normalize_register(match.group(1))
    operand = Operand(
        OperandKind.REGISTER,
        reg_id,
        size,
        span=Span(match.start(), match.end() - match.start()),
    )
    return Consumed(operand, match.end())


def parse_memory_ref(text: str, pos: int):
    match = RE_MEMORY_REF.match(text, pos)
    if not match:
        return NO_MATCH
    size = CAST_SIZES[match.group(1)]
    base = match.group(2)
    offset = int(match.group(3), 10)
    if base == FRAME_POINTER:
        kind = OperandKind.FRAME_POINTER_SLOT
        slot_id = f"fp{offset}"
    else:
        # Non-stack memory cannot be proven equal across lines.
        kind = OperandKind.MEMORY
        slot_id = MEMORY_SLOT
    operand = Operand(
        kind,
        slot_id,
        size,
        span=Span(match.start(), match.end() - match.start()),
        memref=MemoryRef(base, offset),
    )
    return Consumed(operand, match.end())


def parse_immediate(text: str, pos: int):
    match = RE_IMMEDIATE.match(text, pos)
    if not match:
        return NO_MATCH
    operand = Operand(
        OperandKind.IMMEDIATE,
        IMMEDIATE_SLOT,
        IMMEDIATE_SIZE,
        span=Span(match.start(), match.end() - match.start()),
        literal=match.group(1),
    )
    return Consumed(operand, match.end())


def _first_match(parsers, text, pos):
    for parser in parsers:
        result = parser(text, pos)
        if result:
            return result
    return NO_MATCH


def parse_destination(text: str, pos: int):
    return _first_match((parse_register, parse_memory_ref), text, pos)


def parse_source(text: str, pos: int):
    return _first_match((parse_register, parse_memory_ref, parse_immediate), text, pos)


def parse_condition_operand(text: str, pos: int):
    return _first_match((parse_register, parse_immediate), text, pos)


__all__ = [
    "ALU_CLASSES",
    "AluCode",
    "Consumed",
    "InstructionClass",
    "JMP_CLASSES",
    "JmpCode",
    "MemoryRef",
    "NO_MATCH",
    "Opcode",
    "Operand",
    "OperandKind",
    "OperandSource",
    "Span",
    "consume_literal",
    "consume_longest",
    "decode_opcode",
    "normalize_register",
    "parse_condition_operand",
    "parse_destination",
    "parse_immediate",
    "parse_memory_ref",
    "parse_register",
    "parse_source",
    "skip_spaces",
]
