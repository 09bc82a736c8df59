# The ALU and branch comparator.
#
# Comparisons come from the borrow out of a 33-bit subtraction, with a fixup on
# the sign bits for signed compares, rather than a native less-than.

from amaranth import *
from amaranth.lib.wiring import *

from monocycle import mux, oneof
from monocycle.decoder import AluOp

def subtract(m, a, b, name):
    """Builds a - b as a 33-bit result whose top bit is the borrow, i.e. set
    exactly when a < b unsigned."""
    difference = Signal(33, name = name)
    m.d.comb += difference.eq(a + Cat(~b, 1) + 1)
    return difference

def less_than(a, b, difference, unsigned):
    """Derives a < b from the borrow of a subtraction. When the sign bits of a
    and b differ, the signed answer is simply "a is the negative one"."""
    signed_lt = mux(a[31] ^ b[31], a[31], difference[32])
    return mux(unsigned, difference[32], signed_lt)

class Alu(Component):
    """The twelve-function ALU.

    Attributes
    ----------
    op (input): function select.
    a (input): operand A, register or PC.
    b (input): operand B, register or immediate. For shifts, only the bottom
        five bits are used; for LUI/AUIPC, the bottom twenty.
    result (output): function result.
    """
    op: In(AluOp)
    a: In(32)
    b: In(32)
    result: Out(32)

    def elaborate(self, platform):
        m = Module()

        a = self.a
        b = self.b

        difference = subtract(m, a, b, "difference")
        signed_less_than = Signal(1)
        unsigned_less_than = Signal(1)
        m.d.comb += [
            unsigned_less_than.eq(less_than(a, b, difference, 1)),
            signed_less_than.eq(less_than(a, b, difference, 0)),
        ]

        shamt = b[:5]
        upper = Cat(Const(0, 12), b[:20])

        m.d.comb += self.result.eq(oneof([
            (self.op == AluOp.ADD, (a + b)[:32]),
            (self.op == AluOp.SUB, difference[:32]),
            (self.op == AluOp.SLL, (a << shamt)[:32]),
            (self.op == AluOp.SLT, signed_less_than),
            (self.op == AluOp.SLTU, unsigned_less_than),
            (self.op == AluOp.XOR, a ^ b),
            (self.op == AluOp.SRL, a >> shamt),
            (self.op == AluOp.SRA, (a.as_signed() >> shamt).as_unsigned()),
            (self.op == AluOp.OR, a | b),
            (self.op == AluOp.AND, a & b),
            (self.op == AluOp.LUI, upper),
            (self.op == AluOp.AUIPC, (a + upper)[:32]),
        ]))

        return m

class BranchComparator(Component):
    """Compares the two source registers for the branch decision.

    Attributes
    ----------
    a (input): rs1 value.
    b (input): rs2 value.
    unsigned (input): 1 to compare as unsigned, 0 for two's complement.
    less (output): a < b under the selected signedness.
    equal (output): a == b.
    """
    a: In(32)
    b: In(32)
    unsigned: In(1)

    less: Out(1)
    equal: Out(1)

    def elaborate(self, platform):
        m = Module()

        difference = subtract(m, self.a, self.b, "compare_difference")

        m.d.comb += [
            self.less.eq(less_than(self.a, self.b, difference, self.unsigned)),
            self.equal.eq(~(self.a ^ self.b).any()),
        ]

        return m
