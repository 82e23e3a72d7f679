"""Shared verifier log samples for the test-suite."""

import pytest

from bpfvlog.engine.session import parse_log

# A subprogram call with its state comments, as printed at log_level=1.
SAMPLE_LOG = """func#0 @0
0: R1=ctx() R10=fp0
; int handler(void *ctx) @ prog.c:10
0: (b7) r2 = 1                        ; R2_w=1
1: (7b) *(u64 *)(r10 -24) = r2        ; R2_w=1 R10=fp0 fp-24_w=1
2: (bf) r1 = r10                      ; R1_w=fp0 R10=fp0
3: (07) r1 += -24                     ; R1_w=fp-24
4: (85) call pc+3
caller:
 R10=fp0 fp-24_w=1
callee:
 frame1: R1=fp-24 R10=fp0
8: frame1: R1=fp-24 R10=fp0
8: (79) r0 = *(u64 *)(r1 +0)          ; frame1: R0_w=scalar() R1=fp-24
9: (95) exit
returning from callee:
5: (bf) r6 = r0                       ; R0=scalar() R6_w=scalar()
6: (95) exit
processed 9 insns (limit 1000000) max_states_per_insn 0 total_states 1 peak_states 1 mark_read 1
"""


@pytest.fixture
def sample_log():
    return SAMPLE_LOG


@pytest.fixture
def sample_session():
    return parse_log(SAMPLE_LOG)
