"""JSON documents, canonical hashes and use-def graphs for parsed logs."""
from __future__ import annotations

from datetime import datetime, timezone
import hashlib
import json

try:
    import networkx as nx
except ModuleNotFoundError:  # pragma: no cover
    nx = None

from ..constants import LOG_DOCUMENT_VERSION
from .deps import most_recent_state
from .machine import initial_state, state_to_dict


def span_to_dict(span):
    if span is None:
        return None
    return {"offset": span.offset, "length": span.length}


def operand_to_dict(operand):
    entry = {
        "kind": operand.kind.value,
        "id": operand.id,
        "size": operand.size,
        "span": span_to_dict(operand.span),
    }
    if operand.memref is not None:
        entry["memref"] = {"base": operand.memref.base, "offset": operand.memref.offset}
    if operand.literal is not None:
        entry["literal"] = operand.literal
    return entry


def instruction_to_dict(ins):
    entry = {
        "pc": ins.pc,
        "opcode": {
            "iclass": ins.opcode.iclass.name,
            "code": ins.opcode.code,
            "source": ins.opcode.source.name,
        },
        "reads": list(ins.reads),
        "writes": list(ins.writes),
        "span": span_to_dict(ins.span),
    }
    if ins.alu:
        entry["alu"] = {
            "operator": ins.alu.operator,
            "dst": operand_to_dict(ins.alu.dst),
            "src": operand_to_dict(ins.alu.src),
        }
    if ins.jump:
        jump = {
            "target": ins.jump.target,
            "kind": ins.jump.kind.value,
            "target_span": span_to_dict(ins.jump.target_span),
        }
        if ins.jump.condition:
            cond = ins.jump.condition
            jump["condition"] = {
                "left": operand_to_dict(cond.left),
                "op": cond.op,
                "right": operand_to_dict(cond.right),
            }
        entry["jump"] = jump
    return entry


def line_to_dict(line):
    entry = {
        "index": line.index,
        "kind": line.kind.value,
        "raw": line.raw,
    }
    if line.problem is not None:
        entry["problem"] = line.problem.value
    if line.instruction is not None:
        entry["instruction"] = instruction_to_dict(line.instruction)
        entry["state_exprs"] = [
            {
                "id": expr.id,
                "value": expr.value,
                "raw_key": expr.raw_key,
                "written": expr.written,
                "frame": expr.frame,
            }
            for expr in line.state_exprs
        ]
    if line.skipped_tokens:
        entry["skipped_tokens"] = list(line.skipped_tokens)
    return entry


def build_log_document(session):
    """Create an in-memory document describing every line and state."""

    summary = session.summary()
    return {
        "bpfvlog_version": LOG_DOCUMENT_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "summary": {
            "total_lines": summary.total_lines,
            "instruction_lines": summary.instruction_lines,
            "unrecognized_lines": summary.unrecognized_lines,
            "max_depth": summary.max_depth,
            "diagnostics": [str(diag) for diag in summary.diagnostics],
        },
        "lines": [line_to_dict(line) for line in session.lines],
        "states": [
            state_to_dict(state) if state is not None else None
            for state in session.states
        ],
    }


def write_log_document(doc, filename):
    """Persist a log document to disk."""

    with open(filename, "w", encoding="utf-8") as f:
        json.dump(doc, f, indent=2)
    print(f"  ✓ Log document exported → {filename}")
    return doc


def load_log_document(filename):
    with open(filename, "r", encoding="utf-8") as f:
        doc = json.load(f)
    if "lines" not in doc or "states" not in doc:
        raise ValueError(f"{filename} is not a bpfvlog document")
    return doc


def canonicalize_document(doc):
    """Sort keys recursively and drop the load timestamp.

    Documents for the same log then serialise to identical JSON.
    """

    def sort_dict(d):
        if isinstance(d, dict):
            return {k: sort_dict(v) for k, v in sorted(d.items()) if k != "timestamp"}
        elif isinstance(d, list):
            return [sort_dict(x) for x in d]
        else:
            return d

    return sort_dict(doc)


def _digest(payload):
    data = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def hash_log_document(doc):
    """SHA-256 of the canonical form of a log document."""

    return _digest(canonicalize_document(doc))


def state_digest(state):
    """SHA-256 of one machine state snapshot."""

    return _digest(state_to_dict(state))


def build_use_def_graph(session):
    """Directed graph with an edge ``writer -> reader`` for each resolved read."""

    if nx is None:
        raise RuntimeError("Use-def graphs require networkx to be installed")

    graph = nx.DiGraph()
    states = session.states
    for line in session.lines:
        if not line.is_instruction:
            continue
        graph.add_node(line.index, pc=line.pc, text=line.raw.strip())
        before = most_recent_state(states, line.index - 1) if line.index > 0 else initial_state()
        for slot in line.instruction.reads:
            writer = before.last_write(slot)
            if writer is None:
                continue
            if graph.has_edge(writer, line.index):
                graph.edges[writer, line.index]["slots"].append(slot)
            else:
                graph.add_edge(writer, line.index, slots=[slot])
    return graph


def transitive_dependencies(session, index):
    """Every line the instruction at ``index`` transitively depends on."""

    graph = build_use_def_graph(session)
    if index not in graph:
        return []
    return sorted(nx.ancestors(graph, index))


__all__ = [
    "build_log_document",
    "build_use_def_graph",
    "canonicalize_document",
    "hash_log_document",
    "instruction_to_dict",
    "line_to_dict",
    "load_log_document",
    "operand_to_dict",
    "span_to_dict",
    "state_digest",
    "transitive_dependencies",
    "write_log_document",
]
