"""Tests for the ``bpfvlog`` command-line entry point."""

import io
import json
import sys

import pytest

from bpfvlog.constants import DEFAULT_CHUNK_SIZE
from bpfvlog.engine import cli
from bpfvlog.engine.export import load_log_document
from bpfvlog.engine.session import parse_log


@pytest.fixture
def log_file(tmp_path, sample_log):
    path = tmp_path / "verifier.log"
    path.write_text(sample_log)
    return path


def test_parse_args_defaults():
    params = cli.parse_args(["verifier.log"])
    assert params.log == "verifier.log"
    assert params.state is None
    assert params.deps is None
    assert params.chunk_size == DEFAULT_CHUNK_SIZE
    assert not params.json and not params.hash


def test_load_session_in_small_chunks(log_file, sample_log):
    session = cli.load_session(str(log_file), chunk_size=5)
    assert session.lines == parse_log(sample_log).lines


def test_load_session_from_stdin(monkeypatch, sample_log):
    monkeypatch.setattr(sys, "stdin", io.StringIO(sample_log))
    session = cli.load_session("-")
    assert len(session) == 19


def test_main_prints_summary_and_state(log_file, capsys):
    assert cli.main([str(log_file), "--state", "7"]) == 0
    out = capsys.readouterr().out
    assert "instructions 9, unrecognized 10" in out
    assert "✗ line 18:" in out
    assert "State at line 7 (pc 3, frame 0):" in out
    assert "fp-0 -> fp-24" in out


def test_main_prints_dependencies(log_file, capsys):
    assert cli.main([str(log_file), "--deps", "17", "r6"]) == 0
    out = capsys.readouterr().out
    assert "Dependencies of r0 at line 17:" in out
    assert "line 15 (pc 9)" in out
    assert "line 14 (pc 8)" in out


def test_main_reports_missing_writer(log_file, capsys):
    assert cli.main([str(log_file), "--deps", "4", "r9"]) == 0
    assert "(no known writer)" in capsys.readouterr().out


def test_main_rejects_out_of_range_line(log_file, capsys):
    assert cli.main([str(log_file), "--state", "0"]) == 1
    assert "out of range" in capsys.readouterr().out


def test_main_json_dump(log_file, capsys):
    assert cli.main([str(log_file), "--json"]) == 0
    lines = json.loads(capsys.readouterr().out)
    assert len(lines) == 19
    assert lines[3]["instruction"]["writes"] == ["r2"]


def test_main_hash_and_export(log_file, tmp_path, capsys):
    output = tmp_path / "doc.json"
    assert cli.main([str(log_file), "--hash", "--export", str(output)]) == 0
    out = capsys.readouterr().out
    assert f"SHA256({log_file}) = " in out
    assert "Log document exported" in out
    assert load_log_document(output)["summary"]["total_lines"] == 19


@pytest.mark.parametrize("size", ["0", "-4"])
def test_parse_args_rejects_non_positive_chunk_size(size, capsys):
    with pytest.raises(SystemExit):
        cli.parse_args(["verifier.log", "--chunk-size", size])
    assert "positive" in capsys.readouterr().err


def test_load_session_rejects_non_positive_chunk_size(log_file):
    with pytest.raises(ValueError):
        cli.load_session(str(log_file), chunk_size=0)
