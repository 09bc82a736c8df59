# RISC-V Formal Interface retirement record, trimmed to what a single-cycle
# RV32I machine-mode core can report. One record retires every running cycle.

from amaranth import *
from amaranth.lib.wiring import *
from amaranth.lib.enum import *

class Mode(Enum, shape = unsigned(2)):
    U = 0
    S = 1
    M = 3

class Ixl(Enum, shape = unsigned(2)):
    _32 = 1

class Rvfi(Signature):
    """Trace record for one retired instruction.

    There are no interrupts and no halting instructions, so rvfi_intr and
    rvfi_halt are left out. 'trap' marks words the decoder rejected; those
    still retire, as no-ops.

    Memory fields describe the word the access touched: mem_addr is word
    aligned and the masks say which byte lanes were involved.
    """
    def __init__(self):
        instruction = {
            'order': Out(64),
            'insn': Out(32),
            'trap': Out(1),
            'mode': Out(Mode, init = Mode.M),
            'ixl': Out(Ixl, init = Ixl._32),
        }
        registers = {
            'rs1_addr': Out(5),
            'rs2_addr': Out(5),
            'rs1_rdata': Out(32),
            'rs2_rdata': Out(32),
            # rd_addr/rd_wdata are zero when nothing is written
            'rd_addr': Out(5),
            'rd_wdata': Out(32),
        }
        pc = {
            'pc_rdata': Out(32),
            'pc_wdata': Out(32),
        }
        memory = {
            'mem_addr': Out(32),
            'mem_rmask': Out(4),
            'mem_wmask': Out(4),
            'mem_rdata': Out(32),
            'mem_wdata': Out(32),
        }
        super().__init__({**instruction, **registers, **pc, **memory})
