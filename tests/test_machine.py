"""Tests for the machine-state simulator."""

import pytest

from bpfvlog.engine.lines import parse_line
from bpfvlog.engine.machine import (
    Effect,
    SlotValue,
    advance_state,
    display_value,
    initial_state,
    ordered_slot_ids,
    replay,
    slot_display_value,
    state_to_dict,
)


def run(raw_lines):
    parsed = [parse_line(raw, i) for i, raw in enumerate(raw_lines)]
    return parsed, list(replay(parsed))


def test_initial_state_has_context_and_frame_pointer():
    state = initial_state()
    assert state.value_of("r1") == "ctx()"
    assert state.value_of("r10") == "fp0"
    assert state.depth == 0
    assert dict(state.last_writes) == {}
    assert state.index == -1


def test_reported_write_is_recorded():
    _, states = run(["0: (b7) r2 = 1                        ; R2_w=1"])
    state = states[0]
    assert state.values["r2"] == SlotValue("1", Effect.WRITE)
    assert state.last_write("r2") == 0
    assert state.values["r1"] == SlotValue("ctx()", Effect.NONE)
    assert state.pc == 0


def test_write_without_report_leaves_placeholder():
    _, states = run(["0: (bf) r6 = r1"])
    assert states[0].values["r6"] == SlotValue("", Effect.WRITE)
    assert states[0].values["r1"] == SlotValue("ctx()", Effect.READ)


def test_compound_assignment_is_an_update():
    _, states = run(["0: (b7) r2 = 1 ; R2_w=1", "1: (07) r2 += 4"])
    assert states[1].effect_of("r2") is Effect.UPDATE
    assert states[1].last_write("r2") == 1


def test_effects_are_not_carried_forward():
    _, states = run(["0: (b7) r2 = 1 ; R2_w=1", "1: (b7) r3 = 2 ; R3_w=2"])
    assert states[1].values["r2"] == SlotValue("1", Effect.NONE)
    assert states[1].last_write("r2") == 0


def test_unknown_values_are_dropped():
    _, states = run(["0: (bf) r6 = r1", "1: (b7) r3 = 2 ; R3_w=2"])
    assert "r6" not in states[1].values
    assert states[1].last_write("r6") == 0


def test_reported_values_win_and_untouched_slots_have_no_effect():
    _, states = run(["0: (bf) r6 = r1 ; R1=ctx() R6_w=ctx() R10=fp0"])
    state = states[0]
    assert state.values["r6"] == SlotValue("ctx()", Effect.WRITE)
    assert state.values["r1"] == SlotValue("ctx()", Effect.READ)
    assert state.effect_of("r10") is Effect.NONE


def test_non_instruction_lines_return_previous_state():
    state = initial_state()
    assert advance_state(state, parse_line("func#0 @0", 3)) is state


def test_advance_needs_an_index():
    with pytest.raises(ValueError):
        advance_state(initial_state(), parse_line("0: (b7) r2 = 1"))


def test_snapshots_are_immutable():
    _, states = run(["0: (b7) r2 = 1 ; R2_w=1", "1: (b7) r2 = 5 ; R2_w=5"])
    assert states[0].value_of("r2") == "1"
    with pytest.raises(TypeError):
        states[0].values["r2"] = SlotValue("9")


def test_helper_call_scratches_arguments():
    _, states = run(
        [
            "0: (bf) r1 = r10 ; R1_w=fp0",
            "1: (85) call bpf_map_lookup_elem#1 ; R0_w=map_value_or_null(id=1)",
        ]
    )
    state = states[1]
    assert state.values["r0"] == SlotValue("map_value_or_null(id=1)", Effect.WRITE)
    for slot in ("r1", "r2", "r3", "r4", "r5"):
        assert state.effect_of(slot) is Effect.UPDATE
        assert state.last_write(slot) == 1
    assert state.depth == 0


def test_subprogram_call_and_exit_manage_frames():
    _, states = run(
        [
            "0: (b7) r1 = 5 ; R1_w=5",
            "1: (b7) r6 = 7 ; R6_w=7",
            "2: (85) call pc+3",
            "6: (bf) r0 = r1 ; R0_w=5",
            "7: (95) exit",
            "3: (bf) r2 = r0",
        ]
    )
    call = states[2]
    assert call.depth == 1
    assert call.frames[0] is states[1]
    assert call.values["r1"] == SlotValue("5", Effect.READ)
    assert call.values["r6"] == SlotValue("", Effect.WRITE)
    assert call.value_of("r10") == "fp0"
    assert call.last_write("r1") == 0
    assert call.last_write("r6") == 2

    assert states[3].value_of("r0") == "5"
    assert states[3].depth == 1

    back = states[4]
    assert back.depth == 0
    assert back.values["r0"] == SlotValue("5", Effect.UPDATE)
    assert back.value_of("r1") == ""
    assert back.value_of("r6") == "7"
    assert back.last_write("r0") == 4
    assert back.last_write("r1") is None

    after = states[5]
    assert after.values["r0"] == SlotValue("5", Effect.READ)
    assert after.effect_of("r2") is Effect.WRITE


def test_nested_calls_unwind():
    _, states = run(
        [
            "0: (85) call pc+2",
            "3: (85) call pc+5",
            "9: (95) exit",
            "4: (95) exit",
        ]
    )
    assert [state.depth for state in states] == [1, 2, 1, 0]


def test_unbalanced_exit_starts_fresh_frame():
    _, states = run(["0: (b7) r0 = 3 ; R0_w=3", "1: (95) exit"])
    state = states[1]
    assert state.depth == 0
    assert state.value_of("r0") == "3"
    assert state.value_of("r10") == "fp0"


def test_stack_slots_are_saved_across_calls():
    _, states = run(
        [
            "0: (7b) *(u64 *)(r10 -24) = r2 ; R2_w=1 R10=fp0 fp-24_w=1",
            "1: (85) call pc+2",
            "4: (95) exit",
        ]
    )
    assert states[0].values["fp-24"] == SlotValue("1", Effect.WRITE)
    assert states[0].values["r10"] == SlotValue("fp0", Effect.NONE)
    assert states[0].values["r2"] == SlotValue("1", Effect.READ)
    assert "fp-24" not in states[1].values
    assert states[2].value_of("fp-24") == "1"
    assert states[2].last_write("fp-24") == 0


def test_replay_is_deterministic():
    raw = [
        "0: (b7) r2 = 1 ; R2_w=1",
        "junk",
        "1: (85) call pc+1",
        "3: (95) exit",
    ]
    _, first = run(raw)
    _, second = run(raw)
    assert first[1] is None
    assert [state_to_dict(s) for s in first if s] == [state_to_dict(s) for s in second if s]


def test_ordered_slot_ids():
    _, states = run(
        [
            "0: (7b) *(u64 *)(r10 -8) = r2 ; fp-8_w=0 fp-24=1 refs=2",
        ]
    )
    ordered = ordered_slot_ids(states[0])
    assert ordered[:11] == [f"r{i}" for i in range(11)]
    assert ordered[11:] == ["fp-8", "fp-24", "refs"]


def test_display_values():
    assert display_value("fp0") == "fp-0"
    _, states = run(
        [
            "0: (b7) r2 = 1 ; R2_w=1",
            "1: (b7) r2 = 2 ; R2_w=2",
            "2: (bf) r3 = r10 ; R3_w=fp0",
            "3: (85) call bpf_get_prandom_u32#7",
            "4: (7b) *(u64 *)(r1 +0) = r6 ; R6=9",
        ]
    )
    assert slot_display_value(states[0], states[1], "r2") == "1 -> 2"
    assert slot_display_value(states[1], states[2], "r3") == "-> fp-0"
    assert slot_display_value(states[1], states[2], "r10") == "fp-0"
    assert slot_display_value(states[2], states[3], "r2") == "2 -> scratched"
    store = parse_line("4: (7b) *(u64 *)(r1 +0) = r6 ; R6=9").instruction
    assert slot_display_value(states[3], states[4], "MEM", store) == "-> 9"


def test_immediate_pseudo_slot_is_not_listed():
    _, states = run(["0: (15) if r0 == 0x0 goto pc+2"])
    assert states[0].effect_of("IMM") is Effect.READ
    assert "IMM" not in ordered_slot_ids(states[0])
