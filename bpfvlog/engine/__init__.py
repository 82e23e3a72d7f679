"""
bpfvlog — state replay for BPF verifier logs.

  log line → [pc:] (opcode) instruction ; verifier state comment
           → ParsedLine → MachineState (per line, immutable)
           → use-def chains ("where did this value come from?")

| Layer                           | Purpose                                   |
<-------------------------------- + ----------------------------------------->
| **Opcode/operand decoder**      | opcode byte, registers, memory, immediates |
| **Instruction grammar**         | ALU, jumps, helper and subprogram calls    |
| **Line / state-comment parser** | pc, opcode, `key=value` verifier facts     |
| **Machine-state simulator**     | registers, stack slots, call frames        |
| **Dependency resolver**         | single-source use-def chains               |
| **Session**                     | chunked, resumable loading                 |
| **Export**                      | JSON document, hashes, use-def graph       |
"""

from . import opcode as _opcode
from . import grammar as _grammar
from . import lines as _lines
from . import machine as _machine
from . import deps as _deps
from . import session as _session
from . import export as _export
from .cli import main, parse_args

from .opcode import *
from .grammar import *
from .lines import *
from .machine import *
from .deps import *
from .session import *
from .export import *

__all__ = []
for module in (_opcode, _grammar, _lines, _machine, _deps, _session, _export):
    __all__.extend(getattr(module, '__all__', []))
__all__ += ['main', 'parse_args']
__all__ = list(dict.fromkeys(__all__))
