# A single-cycle RV32I processor: one instruction fetched, decoded, executed
# and written back per clock.

from amaranth import *
from amaranth.lib.wiring import *

from monocycle import AlwaysReady, mux, oneof
from monocycle.decoder import (ControlUnit, ImmediateDecoder, PcSelect,
                               OperandA, OperandB, Writeback)
from monocycle.alu import Alu, BranchComparator
from monocycle.regfile import RegFile, RegWrite
from monocycle.lsu import LoadStoreUnit
from monocycle.bus import BusPort
from monocycle.rvfi import Rvfi, Mode, Ixl

# Instruction fetch port. The instruction must come back combinationally.
FetchPort = Signature({
    # Word address of the instruction (PC bits 31:2).
    'addr': Out(30),
    'inst': In(32),
})

# Debug access to the architectural state. Directions are as seen by the probe
# driving it; the CPU takes it flipped.
DebugPort = Signature({
    # Register number to inspect. The value appears on reg_value in the same
    # cycle. Reading works whether or not the CPU is halted.
    'reg_read': Out(5),
    'reg_value': In(32),
    # Register write command. Only honored while the CPU is halted; takes
    # effect at the next clock edge.
    'reg_write': Out(AlwaysReady(RegWrite())),
    # Address of the instruction being executed this cycle.
    'pc': In(32),
    # PC override. Only honored while the CPU is halted. The bottom two bits
    # are ignored.
    'pc_write': Out(AlwaysReady(32)),
})

class Cpu(Component):
    """A single-cycle RV32I core.

    The PC and register file are the only state. Everything between them is
    combinational: the fetched word goes through the ControlUnit, the operand
    muxes, the ALU and the load/store unit, and the results are latched at the
    next clock edge. Instructions the decoder rejects retire as no-ops with
    rvfi.trap set.

    Parameters
    ----------
    reset_vector (int): address of the first instruction after reset.
    ram_words (int): data RAM size in words, see LoadStoreUnit.
    ram_init (list of int): initial data RAM contents.

    Attributes
    ----------
    fetch (port): instruction fetch.
    io (port): I/O bus for addresses with bit 31 set.
    debug (port): debug port for testing or development.
    halt_request (in): when asserted (1), the instruction at PC is not
        executed: the PC holds, and nothing is written to registers, memory or
        I/O except through the debug port. Release (0) to resume.
    halted (out): raised while the CPU is halted. There's no instruction
        boundary to wait for, so this simply follows halt_request.
    rvfi (out): RISC-V Formal Interface trace port, valid for every retired
        instruction.
    """
    fetch: Out(FetchPort)
    debug: In(DebugPort)
    halt_request: In(1)
    halted: Out(1)
    rvfi: Out(AlwaysReady(Rvfi()))

    def __init__(self, *,
                 reset_vector = 0,
                 ram_words = 1024,
                 ram_init = ()):
        assert reset_vector & 0b11 == 0, \
                f"reset vector 0x{reset_vector:x} isn't word aligned"
        assert reset_vector.bit_length() <= 32, \
                f"reset vector 0x{reset_vector:x} won't fit in PC"
        super().__init__()

        self.io = BusPort(addr = 29, data = 32).create()

        self.pc = Signal(32, init = reset_vector)

        self.rf = RegFile(read_ports = 3)
        self.lsu = LoadStoreUnit(
            ram_words = ram_words,
            ram_init = ram_init,
        )

    def elaborate(self, platform):
        m = Module()

        m.submodules.control = ctl = ControlUnit()
        m.submodules.imm = imm = ImmediateDecoder()
        m.submodules.regfile = rf = self.rf
        m.submodules.alu = alu = Alu()
        m.submodules.compare = compare = BranchComparator()
        m.submodules.lsu = lsu = self.lsu

        m.d.comb += self.halted.eq(self.halt_request)
        running = ~self.halted

        # Fields of the instruction
        inst = self.fetch.inst
        inst_rd = Signal(5)
        inst_rs1 = Signal(5)
        inst_rs2 = Signal(5)
        inst_funct3 = Signal(3)
        m.d.comb += [
            inst_rd.eq(inst[7:12]),
            inst_funct3.eq(inst[12:15]),
            inst_rs1.eq(inst[15:20]),
            inst_rs2.eq(inst[20:25]),
        ]

        m.d.comb += [
            self.fetch.addr.eq(self.pc[2:]),
            ctl.inst.eq(inst),
            imm.inst.eq(inst),

            rf.read[0].addr.eq(inst_rs1),
            rf.read[1].addr.eq(inst_rs2),
            rf.read[2].addr.eq(self.debug.reg_read),
            self.debug.reg_value.eq(rf.read[2].data),
            self.debug.pc.eq(self.pc),
        ]
        rs1 = rf.read[0].data
        rs2 = rf.read[1].data

        # The comparator runs in whatever mode the decoder asks for, and hands
        # its verdict back to the decoder to pick the next PC.
        m.d.comb += [
            compare.a.eq(rs1),
            compare.b.eq(rs2),
            compare.unsigned.eq(ctl.out.branch_unsigned),
            ctl.branch_less.eq(compare.less),
            ctl.branch_equal.eq(compare.equal),
        ]

        # Operand selection
        m.d.comb += [
            alu.op.eq(ctl.out.alu_op),
            alu.a.eq(mux(ctl.out.operand_a == OperandA.PC, self.pc, rs1)),
            alu.b.eq(mux(ctl.out.operand_b == OperandB.IMM, imm.imm, rs2)),
        ]

        # Memory. The ALU result is the effective address for both loads and
        # stores.
        is_load = Signal(1)
        m.d.comb += [
            is_load.eq(ctl.out.writeback == Writeback.LOAD),
            lsu.addr.eq(alu.result),
            lsu.store_data.eq(rs2),
            lsu.funct3.eq(inst_funct3),
            lsu.write.eq(ctl.out.mem_write & running),
            lsu.read.eq(is_load & running),
        ]
        connect(m, lsu.io, flipped(self.io))

        # Next PC. JALR targets get bit 0 cleared here rather than in the ALU.
        pc_plus_4 = Signal(32)
        target = Signal(32)
        next_pc = Signal(32)
        m.d.comb += [
            pc_plus_4.eq(self.pc + 4),
            target.eq(mux(ctl.is_jalr, alu.result & 0xFFFF_FFFE, alu.result)),
            next_pc.eq(mux(ctl.out.pc_select == PcSelect.TARGET,
                           target, pc_plus_4)),
        ]
        with m.If(running):
            m.d.sync += self.pc.eq(next_pc)
        with m.Elif(self.debug.pc_write.valid):
            m.d.sync += self.pc.eq(self.debug.pc_write.payload & 0xFFFF_FFFC)

        # Writeback. The register file drops writes to x0 on its own.
        rd_value = Signal(32)
        m.d.comb += rd_value.eq(oneof([
            (ctl.out.writeback == Writeback.ALU, alu.result),
            (is_load, lsu.load_data),
            (ctl.out.writeback == Writeback.PC4, pc_plus_4),
        ]))

        # Combine the register file write port from execution (primary) and
        # the debug interface (while halted). We use an actual mux here instead
        # of OR-ing to keep the debug port from disrupting execution.
        m.d.comb += [
            rf.write_cmd.valid.eq(
                mux(
                    self.halted,
                    self.debug.reg_write.valid,
                    ctl.out.reg_write,
                ),
            ),
            rf.write_cmd.payload.reg.eq(
                mux(
                    self.halted,
                    self.debug.reg_write.payload.reg,
                    inst_rd,
                ),
            ),
            rf.write_cmd.payload.value.eq(
                mux(
                    self.halted,
                    self.debug.reg_write.payload.value,
                    rd_value,
                ),
            ),
        ]

        # Trace port
        order = Signal(64)
        with m.If(running):
            m.d.sync += order.eq(order + 1)

        writes_rd = ctl.out.reg_write & (inst_rd != 0)
        trace = self.rvfi.payload
        m.d.comb += [
            self.rvfi.valid.eq(running),
            trace.order.eq(order),
            trace.insn.eq(inst),
            trace.trap.eq(~ctl.valid),
            trace.mode.eq(Mode.M),
            trace.ixl.eq(Ixl._32),

            trace.rs1_addr.eq(inst_rs1),
            trace.rs2_addr.eq(inst_rs2),
            trace.rs1_rdata.eq(rs1),
            trace.rs2_rdata.eq(rs2),

            trace.rd_addr.eq(mux(writes_rd, inst_rd, 0)),
            trace.rd_wdata.eq(mux(writes_rd, rd_value, 0)),

            trace.pc_rdata.eq(self.pc),
            trace.pc_wdata.eq(next_pc),

            # Present addresses word-aligned
            trace.mem_addr.eq(
                mux(lsu.read | lsu.write, Cat(0, 0, lsu.word_addr), 0)),
            trace.mem_wmask.eq(lsu.lanes),
            trace.mem_rmask.eq(lsu.read_lanes),
            trace.mem_wdata.eq(mux(lsu.write, lsu.wdata, 0)),
            trace.mem_rdata.eq(mux(lsu.read, lsu.rdata, 0)),
        ]

        return m
