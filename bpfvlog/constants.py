"""Shared constant values for the bpfvlog engine."""

FRAME_POINTER = "r10"
CONTEXT_REGISTER = "r1"
RETURN_REGISTER = "r0"

REGISTERS = [f"r{i}" for i in range(11)]
SCRATCH_REGS = ["r1", "r2", "r3", "r4", "r5"]
CALLEE_SAVED_REGS = ["r6", "r7", "r8", "r9"]

MEMORY_SLOT = "MEM"
IMMEDIATE_SLOT = "IMM"

CAST_SIZES = {
    "u8": 1,
    "u16": 2,
    "u32": 4,
    "u64": 8,
}

REGISTER_SIZE = 8
SUBREGISTER_SIZE = 4
IMMEDIATE_SIZE = 8

# Longest candidates first so "<" never shadows "<<=".
ALU_OPERATORS = tuple(
    sorted(
        ["=", "+=", "-=", "*=", "/=", "%=", "&=", "|=", "^=", "<<=", ">>=", "s>>=", "s<<="],
        key=len,
        reverse=True,
    )
)

CONDITION_OPERATORS = tuple(
    sorted(
        ["==", "!=", "<", "<=", ">", ">=", "s<", "s<=", "s>", "s>=", "&"],
        key=len,
        reverse=True,
    )
)

INITIAL_VALUES = {
    "r1": "ctx()",
    "r10": "fp0",
}

# Deepest stack slot listed when ordering a state for display.
MAX_STACK_OFFSET = 512

MAX_DEPENDENCY_DEPTH = 256

DEFAULT_CHUNK_SIZE = 64 * 1024

LOG_DOCUMENT_VERSION = "0.1"

__all__ = [
    "ALU_OPERATORS",
    "CALLEE_SAVED_REGS",
    "CAST_SIZES",
    "CONDITION_OPERATORS",
    "CONTEXT_REGISTER",
    "DEFAULT_CHUNK_SIZE",
    "FRAME_POINTER",
    "IMMEDIATE_SIZE",
    "IMMEDIATE_SLOT",
    "INITIAL_VALUES",
    "LOG_DOCUMENT_VERSION",
    "MAX_DEPENDENCY_DEPTH",
    "MAX_STACK_OFFSET",
    "MEMORY_SLOT",
    "REGISTERS",
    "REGISTER_SIZE",
    "RETURN_REGISTER",
    "SCRATCH_REGS",
    "SUBREGISTER_SIZE",
]
