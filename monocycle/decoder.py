# Combinational decode and control logic.

from amaranth import *
from amaranth.lib.wiring import *
from amaranth.lib.enum import *

from monocycle import mux

class Opcode(Enum, shape = unsigned(7)):
    LOAD = 0b00000_11
    OP_IMM = 0b00100_11
    AUIPC = 0b00101_11
    STORE = 0b01000_11
    OP = 0b01100_11
    LUI = 0b01101_11
    BRANCH = 0b11000_11
    JALR = 0b11001_11
    JAL = 0b11011_11

class PcSelect(Enum, shape = unsigned(1)):
    SEQUENTIAL = 0
    TARGET = 1

class OperandA(Enum, shape = unsigned(1)):
    REG = 0
    PC = 1

class OperandB(Enum, shape = unsigned(1)):
    REG = 0
    IMM = 1

class AluOp(Enum, shape = unsigned(4)):
    ADD = 0
    SUB = 1
    SLL = 2
    SLT = 3
    SLTU = 4
    XOR = 5
    SRL = 6
    SRA = 7
    OR = 8
    AND = 9
    # Operand B shifted into the top 20 bits, operand A ignored.
    LUI = 10
    # Operand A plus operand B shifted into the top 20 bits.
    AUIPC = 11

class Writeback(Enum, shape = unsigned(2)):
    ALU = 0
    LOAD = 1
    PC4 = 2

# The control vector that steers the datapath. Every field's safe (no-op)
# value is its all-zeroes encoding.
#
# This is a Signature rather than a Struct so that each field is its own
# signal: branch_unsigned feeds the branch comparator, whose outputs feed back
# into pc_select, and keeping them in separate signals keeps that path from
# looking like a loop.
ControlVector = Signature({
    # Where the next PC comes from.
    'pc_select': Out(PcSelect),
    # Write the writeback value into rd.
    'reg_write': Out(1),
    # Branch comparator mode: 0 for signed, 1 for unsigned. Inverted from a
    # "signed" flag: the signed default is 0 here, not 1.
    'branch_unsigned': Out(1),
    'operand_a': Out(OperandA),
    'operand_b': Out(OperandB),
    'alu_op': Out(AluOp),
    'mem_write': Out(1),
    'writeback': Out(Writeback),
})

class Classifier(Component):
    """Classifies an instruction word and produces the raw control vector.

    Every field starts at its no-op value and the opcode/funct3/funct7 match
    below only overrides the fields the recognized instruction cares about.
    Unrecognized encodings fall through with valid at 0. Nothing here is gated
    by validity; see Mask for that.

    Attributes
    ----------
    inst (input): instruction word.
    branch_less (input): comparator "rs1 < rs2" result.
    branch_equal (input): comparator "rs1 == rs2" result.
    raw (output): unmasked control vector.
    valid (output): 1 if the instruction is a supported RV32I encoding.
    taken (output): branch condition for BRANCH opcodes, 0 otherwise.
    is_jalr (output): instruction is JALR, so the jump target needs its LSB
        cleared.
    """
    inst: In(32)
    branch_less: In(1)
    branch_equal: In(1)

    raw: Out(ControlVector)
    valid: Out(1)
    taken: Out(1)
    is_jalr: Out(1)

    def elaborate(self, platform):
        m = Module()

        opcode = Signal(7)
        funct3 = Signal(3)
        funct7 = Signal(7)
        m.d.comb += [
            opcode.eq(self.inst[0:7]),
            funct3.eq(self.inst[12:15]),
            funct7.eq(self.inst[25:32]),
        ]

        raw = self.raw

        # Defaults. These must come before the switch below so that any path
        # that doesn't override a field leaves it at its no-op value.
        m.d.comb += [
            self.valid.eq(0),
            self.taken.eq(0),
            self.is_jalr.eq(0),
            raw.pc_select.eq(PcSelect.SEQUENTIAL),
            raw.reg_write.eq(0),
            raw.mem_write.eq(0),
            raw.writeback.eq(Writeback.ALU),
            raw.alu_op.eq(AluOp.ADD),
            raw.operand_a.eq(OperandA.REG),
            raw.operand_b.eq(OperandB.REG),
            raw.branch_unsigned.eq(0),
        ]

        with m.Switch(opcode):
            with m.Case(Opcode.OP):
                # funct7 is a don't-care except for bit 5 on ADD/SUB and
                # SRL/SRA; all eight funct3 values are legal.
                m.d.comb += [
                    self.valid.eq(1),
                    raw.reg_write.eq(1),
                ]
                with m.Switch(funct3):
                    with m.Case(0b000):
                        with m.If(funct7[5]):
                            m.d.comb += raw.alu_op.eq(AluOp.SUB)
                        with m.Else():
                            m.d.comb += raw.alu_op.eq(AluOp.ADD)
                    with m.Case(0b001):
                        m.d.comb += raw.alu_op.eq(AluOp.SLL)
                    with m.Case(0b010):
                        m.d.comb += raw.alu_op.eq(AluOp.SLT)
                    with m.Case(0b011):
                        m.d.comb += raw.alu_op.eq(AluOp.SLTU)
                    with m.Case(0b100):
                        m.d.comb += raw.alu_op.eq(AluOp.XOR)
                    with m.Case(0b101):
                        with m.If(funct7[5]):
                            m.d.comb += raw.alu_op.eq(AluOp.SRA)
                        with m.Else():
                            m.d.comb += raw.alu_op.eq(AluOp.SRL)
                    with m.Case(0b110):
                        m.d.comb += raw.alu_op.eq(AluOp.OR)
                    with m.Case(0b111):
                        m.d.comb += raw.alu_op.eq(AluOp.AND)

            with m.Case(Opcode.OP_IMM):
                m.d.comb += [
                    raw.operand_b.eq(OperandB.IMM),
                    raw.reg_write.eq(1),
                ]
                with m.Switch(funct3):
                    with m.Case(0b000):
                        m.d.comb += [
                            self.valid.eq(1),
                            raw.alu_op.eq(AluOp.ADD),
                        ]
                    with m.Case(0b001):
                        # The shift amount lives in the low bits of the
                        # immediate; the rest of funct7 must be clear.
                        m.d.comb += [
                            self.valid.eq(funct7 == 0b0000000),
                            raw.alu_op.eq(AluOp.SLL),
                        ]
                    with m.Case(0b010):
                        m.d.comb += [
                            self.valid.eq(1),
                            raw.alu_op.eq(AluOp.SLT),
                        ]
                    with m.Case(0b011):
                        m.d.comb += [
                            self.valid.eq(1),
                            raw.alu_op.eq(AluOp.SLTU),
                        ]
                    with m.Case(0b100):
                        m.d.comb += [
                            self.valid.eq(1),
                            raw.alu_op.eq(AluOp.XOR),
                        ]
                    with m.Case(0b101):
                        with m.Switch(funct7):
                            with m.Case(0b0000000):
                                m.d.comb += [
                                    self.valid.eq(1),
                                    raw.alu_op.eq(AluOp.SRL),
                                ]
                            with m.Case(0b0100000):
                                m.d.comb += [
                                    self.valid.eq(1),
                                    raw.alu_op.eq(AluOp.SRA),
                                ]
                            with m.Default():
                                # Neither shift encoding; leave it invalid.
                                pass
                    with m.Case(0b110):
                        m.d.comb += [
                            self.valid.eq(1),
                            raw.alu_op.eq(AluOp.OR),
                        ]
                    with m.Case(0b111):
                        m.d.comb += [
                            self.valid.eq(1),
                            raw.alu_op.eq(AluOp.AND),
                        ]

            with m.Case(Opcode.LOAD):
                # Address is base + offset. Access width is the load/store
                # unit's business.
                m.d.comb += [
                    self.valid.eq(1),
                    raw.operand_b.eq(OperandB.IMM),
                    raw.alu_op.eq(AluOp.ADD),
                    raw.reg_write.eq(1),
                    raw.writeback.eq(Writeback.LOAD),
                ]

            with m.Case(Opcode.STORE):
                m.d.comb += [
                    # SB, SH, SW
                    self.valid.eq(~funct3[2] & (funct3[:2] != 0b11)),
                    raw.operand_b.eq(OperandB.IMM),
                    raw.alu_op.eq(AluOp.ADD),
                    raw.mem_write.eq(1),
                ]

            with m.Case(Opcode.BRANCH):
                # The ALU computes the target; the comparator decides whether
                # we go there.
                m.d.comb += [
                    raw.operand_a.eq(OperandA.PC),
                    raw.operand_b.eq(OperandB.IMM),
                    raw.alu_op.eq(AluOp.ADD),
                ]
                with m.Switch(funct3):
                    with m.Case(0b000): # BEQ
                        m.d.comb += self.taken.eq(self.branch_equal)
                    with m.Case(0b001): # BNE
                        m.d.comb += self.taken.eq(~self.branch_equal)
                    with m.Case(0b100): # BLT
                        m.d.comb += self.taken.eq(self.branch_less)
                    with m.Case(0b101): # BGE
                        m.d.comb += self.taken.eq(~self.branch_less)
                    with m.Case(0b110): # BLTU
                        m.d.comb += [
                            self.taken.eq(self.branch_less),
                            raw.branch_unsigned.eq(1),
                        ]
                    with m.Case(0b111): # BGEU
                        m.d.comb += [
                            self.taken.eq(~self.branch_less),
                            raw.branch_unsigned.eq(1),
                        ]
                with m.Switch(funct3):
                    with m.Case(0b010, 0b011):
                        # undefined comparisons
                        pass
                    with m.Default():
                        m.d.comb += self.valid.eq(1)
                with m.If(self.taken):
                    m.d.comb += raw.pc_select.eq(PcSelect.TARGET)

            with m.Case(Opcode.LUI):
                # Operand A is don't-care for LUI; leave it on the register.
                m.d.comb += [
                    self.valid.eq(1),
                    raw.operand_b.eq(OperandB.IMM),
                    raw.alu_op.eq(AluOp.LUI),
                    raw.reg_write.eq(1),
                ]

            with m.Case(Opcode.AUIPC):
                m.d.comb += [
                    self.valid.eq(1),
                    raw.operand_a.eq(OperandA.PC),
                    raw.operand_b.eq(OperandB.IMM),
                    raw.alu_op.eq(AluOp.AUIPC),
                    raw.reg_write.eq(1),
                ]

            with m.Case(Opcode.JAL):
                m.d.comb += [
                    self.valid.eq(1),
                    raw.operand_a.eq(OperandA.PC),
                    raw.operand_b.eq(OperandB.IMM),
                    raw.alu_op.eq(AluOp.ADD),
                    raw.reg_write.eq(1),
                    raw.pc_select.eq(PcSelect.TARGET),
                    raw.writeback.eq(Writeback.PC4),
                ]

            with m.Case(Opcode.JALR):
                # The ALU only computes rs1 + imm. Clearing bit 0 of the
                # target is done by the PC update logic, steered by is_jalr.
                m.d.comb += [
                    self.valid.eq(funct3 == 0b000),
                    self.is_jalr.eq(1),
                    raw.operand_b.eq(OperandB.IMM),
                    raw.alu_op.eq(AluOp.ADD),
                    raw.reg_write.eq(1),
                    raw.pc_select.eq(PcSelect.TARGET),
                    raw.writeback.eq(Writeback.PC4),
                ]

            with m.Default():
                # Catch undefined instructions: everything stays at its
                # default, including valid.
                pass

        return m

class Mask(Component):
    """Gates a raw control vector by instruction validity.

    Write enables, the jump select and the JALR alignment flag are ANDed with
    valid. The remaining fields are forced back to their defaults when valid is
    low, so an invalid instruction always presents the same no-op vector.

    Attributes
    ----------
    raw (input): control vector from the Classifier.
    valid (input): validity flag from the Classifier.
    raw_is_jalr (input): JALR flag from the Classifier.
    out (output): masked control vector.
    is_jalr (output): masked JALR flag.
    """
    raw: In(ControlVector)
    valid: In(1)
    raw_is_jalr: In(1)

    out: Out(ControlVector)
    is_jalr: Out(1)

    def elaborate(self, platform):
        m = Module()

        raw = self.raw
        out = self.out

        m.d.comb += [
            out.reg_write.eq(raw.reg_write & self.valid),
            out.mem_write.eq(raw.mem_write & self.valid),
            out.pc_select.eq(
                mux(self.valid, raw.pc_select, PcSelect.SEQUENTIAL)),
            self.is_jalr.eq(self.raw_is_jalr & self.valid),

            out.branch_unsigned.eq(raw.branch_unsigned & self.valid),
            out.operand_a.eq(mux(self.valid, raw.operand_a, OperandA.REG)),
            out.operand_b.eq(mux(self.valid, raw.operand_b, OperandB.REG)),
            out.alu_op.eq(mux(self.valid, raw.alu_op, AluOp.ADD)),
            out.writeback.eq(mux(self.valid, raw.writeback, Writeback.ALU)),
        ]

        return m

class ControlUnit(Component):
    """The ControlUnit turns an instruction word and the branch comparator's
    outputs into the control vector for the datapath. It is purely
    combinational: classify, then mask.

    Attributes
    ----------
    inst (input): instruction word.
    branch_less (input): comparator "rs1 < rs2" under out.branch_unsigned.
    branch_equal (input): comparator "rs1 == rs2".
    out (output): masked control vector, see ControlVector.
    valid (output): instruction_valid.
    taken (output): raw branch condition (not masked; observation only).
    is_jalr (output): masked; clear bit 0 of the jump target.
    """
    inst: In(32)
    branch_less: In(1)
    branch_equal: In(1)

    out: Out(ControlVector)
    valid: Out(1)
    taken: Out(1)
    is_jalr: Out(1)

    def elaborate(self, platform):
        m = Module()

        m.submodules.classify = classify = Classifier()
        m.submodules.mask = mask = Mask()

        m.d.comb += [
            classify.inst.eq(self.inst),
            classify.branch_less.eq(self.branch_less),
            classify.branch_equal.eq(self.branch_equal),

            mask.valid.eq(classify.valid),
            mask.raw_is_jalr.eq(classify.is_jalr),

            self.valid.eq(classify.valid),
            self.taken.eq(classify.taken),
            self.is_jalr.eq(mask.is_jalr),
        ]
        connect(m, classify.raw, mask.raw)
        connect(m, mask.out, flipped(self.out))

        return m

class ImmediateDecoder(Component):
    """The ImmediateDecoder decodes an instruction word into its various
    immediate formats, and picks the one that the opcode uses.

    Attributes
    ----------
    inst (input): instruction word.
    i (output): I-format immediate.
    s (output): S-format immediate.
    b (output): B-format immediate.
    u (output): U-format immediate, NOT shifted: this is inst[31:12] in the
        bottom 20 bits. The ALU's LUI and AUIPC operations do the shift.
    j (output): J-format immediate.
    imm (output): the immediate for this instruction's format, or zero for
        formats without one.
    """
    inst: In(32)

    i: Out(32)
    s: Out(32)
    b: Out(32)
    u: Out(32)
    j: Out(32)
    imm: Out(32)

    def elaborate(self, platform):
        m = Module()

        m.d.comb += [
            self.i.eq(Cat(self.inst[20:31], self.inst[31].replicate(21))),
            self.s.eq(Cat(self.inst[7:12], self.inst[25:31],
                     self.inst[31].replicate(21))),
            self.b.eq(Cat(0, self.inst[8:12], self.inst[25:31], self.inst[7],
                 self.inst[31].replicate(20))),
            self.u.eq(self.inst[12:32]),
            self.j.eq(Cat(0, self.inst[21:31], self.inst[20],
                         self.inst[12:20], self.inst[31].replicate(12))),
        ]

        with m.Switch(self.inst[0:7]):
            with m.Case(Opcode.LOAD, Opcode.OP_IMM, Opcode.JALR):
                m.d.comb += self.imm.eq(self.i)
            with m.Case(Opcode.STORE):
                m.d.comb += self.imm.eq(self.s)
            with m.Case(Opcode.BRANCH):
                m.d.comb += self.imm.eq(self.b)
            with m.Case(Opcode.LUI, Opcode.AUIPC):
                m.d.comb += self.imm.eq(self.u)
            with m.Case(Opcode.JAL):
                m.d.comb += self.imm.eq(self.j)

        return m
