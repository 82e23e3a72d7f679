"""Line-level parsing: program counter, opcode, body and state comment."""
from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
import re
from typing import Optional

from ..constants import IMMEDIATE_SLOT, MEMORY_SLOT
from .grammar import Instruction, parse_instruction
from .opcode import consume_literal, decode_opcode, skip_spaces


class LineKind(Enum):
    INSTRUCTION = "INSTRUCTION"
    UNRECOGNIZED = "UNRECOGNIZED"


class LineProblem(Enum):
    NO_PROGRAM_COUNTER = "NO_PROGRAM_COUNTER"
    NO_OPCODE = "NO_OPCODE"
    BAD_INSTRUCTION = "BAD_INSTRUCTION"


RE_PROGRAM_COUNTER = re.compile(r"([0-9]+):")
RE_OPCODE = re.compile(r"\(([0-9a-fA-F]{2})\)")
RE_FRAME_ID = re.compile(r"frame([0-9]+): ")
RE_SUBREGISTER = re.compile(r"w([0-9])")


@dataclass(frozen=True)
class StateExpression:
    """One ``key=value`` fact reported by the verifier."""

    id: str
    value: str
    raw_key: str
    written: bool = False
    frame: int = 0


@dataclass(frozen=True)
class ParsedLine:
    kind: LineKind
    raw: str
    instruction: Optional[Instruction] = None
    state_exprs: tuple[StateExpression, ...] = ()
    index: Optional[int] = None
    problem: Optional[LineProblem] = None
    skipped_tokens: tuple[str, ...] = ()

    @property
    def is_instruction(self) -> bool:
        return self.kind is LineKind.INSTRUCTION

    @property
    def pc(self) -> Optional[int]:
        return self.instruction.pc if self.instruction else None

    def with_index(self, index: int) -> "ParsedLine":
        return replace(self, index=index)


def normalize_slot_id(token: str) -> str:
    """Canonical slot id: lowercase, no ``_w`` suffix, ``wN`` aliased to ``rN``.

    The pseudo slots ``MEM`` and ``IMM`` keep their upper-case spelling.
    """

    slot = token.strip()
    if slot.upper() in (MEMORY_SLOT, IMMEDIATE_SLOT):
        return slot.upper()
    slot = slot.lower()
    if slot.endswith("_w"):
        slot = slot[:-2]
    if RE_SUBREGISTER.fullmatch(slot):
        slot = "r" + slot[1:]
    return slot


def _scan_value(text: str, pos: int) -> int:
    """Return the end of a value starting at ``pos``.

    Spaces nested inside parentheses belong to the value.
    """

    depth = 0
    while pos < len(text):
        char = text[pos]
        if char == "(":
            depth += 1
        elif char == ")" and depth > 0:
            depth -= 1
        elif char == " " and depth == 0:
            break
        pos += 1
    return pos


def _parse_state_token(text: str, pos: int, frame: int):
    key_end = pos
    while key_end < len(text) and text[key_end] not in "= ":
        key_end += 1

    if key_end >= len(text) or text[key_end] != "=" or key_end == pos:
        # No "=" before the next space: skip the token.
        token_end = text.find(" ", pos)
        return None, len(text) if token_end == -1 else token_end

    raw_key = text[pos:key_end]
    value_end = _scan_value(text, key_end + 1)
    expr = StateExpression(
        id=normalize_slot_id(raw_key),
        value=text[key_end + 1 : value_end],
        raw_key=raw_key,
        written=raw_key.lower().endswith("_w"),
        frame=frame,
    )
    return expr, value_end


def parse_state_comment(text: str, pos: int = 0):
    """Parse ``; [frameN: ]key=value ...`` starting at ``pos``.

    Returns ``(expressions, skipped_tokens)``; both are empty when there is no
    comment at ``pos``.
    """

    lead = consume_literal("; ", text, pos)
    if not lead:
        return [], []
    pos = lead.pos

    frame = 0
    frame_match = RE_FRAME_ID.match(text, pos)
    if frame_match:
        frame = int(frame_match.group(1), 10)
        pos = frame_match.end()

    exprs = []
    skipped = []
    pos = skip_spaces(text, pos)
    while pos < len(text):
        expr, end = _parse_state_token(text, pos, frame)
        if expr is None:
            skipped.append(text[pos:end])
        else:
            exprs.append(expr)
        pos = skip_spaces(text, end)
    return exprs, skipped


def parse_line(raw: str, index: Optional[int] = None) -> ParsedLine:
    """Parse one raw log line. Malformed input yields an UNRECOGNIZED line."""

    def unrecognized(problem):
        return ParsedLine(LineKind.UNRECOGNIZED, raw, index=index, problem=problem)

    pos = skip_spaces(raw, 0)
    pc_match = RE_PROGRAM_COUNTER.match(raw, pos)
    if not pc_match:
        return unrecognized(LineProblem.NO_PROGRAM_COUNTER)
    pc = int(pc_match.group(1), 10)

    pos = skip_spaces(raw, pc_match.end())
    opcode_match = RE_OPCODE.match(raw, pos)
    if not opcode_match:
        return unrecognized(LineProblem.NO_OPCODE)
    opcode = decode_opcode(opcode_match.group(1))

    pos = skip_spaces(raw, opcode_match.end())
    parsed = parse_instruction(raw, pos, opcode, pc)
    if not parsed:
        return unrecognized(LineProblem.BAD_INSTRUCTION)

    exprs, skipped = parse_state_comment(raw, skip_spaces(raw, parsed.pos))
    return ParsedLine(
        LineKind.INSTRUCTION,
        raw,
        instruction=parsed.value,
        state_exprs=tuple(exprs),
        index=index,
        skipped_tokens=tuple(skipped),
    )


__all__ = [
    "LineKind",
    "LineProblem",
    "ParsedLine",
    "StateExpression",
    "normalize_slot_id",
    "parse_line",
    "parse_state_comment",
]
