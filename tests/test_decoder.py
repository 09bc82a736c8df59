import random

import pytest

from amaranth.sim import Simulator

from monocycle.decoder import (Classifier, Mask, ImmediateDecoder, Opcode,
                               PcSelect, OperandA, OperandB, AluOp,
                               Writeback)
from tests.harness import (decode, decode_all, r_type, i_type, s_type, b_type,
                           u_type, j_type, addi, jalr, store, branch)

KNOWN_OPCODES = set(op.value for op in Opcode)

NO_OP = {
    "pc_select": PcSelect.SEQUENTIAL,
    "reg_write": 0,
    "branch_unsigned": 0,
    "operand_a": OperandA.REG,
    "operand_b": OperandB.REG,
    "alu_op": AluOp.ADD,
    "mem_write": 0,
    "writeback": Writeback.ALU,
    "valid": 0,
    "is_jalr": 0,
}

def assert_no_op(result, what):
    for field, expected in NO_OP.items():
        assert result[field] == expected, \
            f"{what}: {field} should be {expected} but is {result[field]}"

def test_unknown_opcodes_are_no_ops():
    rng = random.Random(1)
    vectors = []
    for opcode in range(128):
        if opcode in KNOWN_OPCODES:
            continue
        for _ in range(4):
            upper = rng.getrandbits(25) << 7
            # Comparator outputs shouldn't matter; push them both ways.
            vectors.append((upper | opcode, rng.getrandbits(1),
                            rng.getrandbits(1)))
        vectors.append((0xFFFFFF80 | opcode, 1, 1))
    results = decode_all(vectors)
    for (inst, _, _), result in zip(vectors, results):
        assert_no_op(result, f"0x{inst:08x}")

def test_all_ones_word_is_invalid():
    result = decode(0xFFFF_FFFF, 1, 1)
    assert_no_op(result, "0xffffffff")

def test_all_zero_word_is_invalid():
    # opcode 0000000 has the wrong low bits for a 32-bit instruction
    assert_no_op(decode(0), "0x00000000")

R_OPS = {
    0b001: AluOp.SLL,
    0b010: AluOp.SLT,
    0b011: AluOp.SLTU,
    0b100: AluOp.XOR,
    0b110: AluOp.OR,
    0b111: AluOp.AND,
}

def test_register_ops_ignore_funct7_except_bit5():
    vectors = []
    for funct3 in range(8):
        for funct7 in range(128):
            vectors.append((r_type(funct7, 3, 2, funct3, 1), 0, 0))
    results = decode_all(vectors)

    for (inst, _, _), result in zip(vectors, results):
        funct3 = (inst >> 12) & 0b111
        bit5 = (inst >> 30) & 1
        what = f"0x{inst:08x}"
        assert result["valid"] == 1, what
        assert result["reg_write"] == 1, what
        assert result["mem_write"] == 0, what
        assert result["operand_a"] == OperandA.REG, what
        assert result["operand_b"] == OperandB.REG, what
        assert result["writeback"] == Writeback.ALU, what
        assert result["pc_select"] == PcSelect.SEQUENTIAL, what
        if funct3 == 0b000:
            assert result["alu_op"] == (AluOp.SUB if bit5 else AluOp.ADD), what
        elif funct3 == 0b101:
            assert result["alu_op"] == (AluOp.SRA if bit5 else AluOp.SRL), what
        else:
            assert result["alu_op"] == R_OPS[funct3], what

I_OPS = {
    0b000: AluOp.ADD,
    0b010: AluOp.SLT,
    0b011: AluOp.SLTU,
    0b100: AluOp.XOR,
    0b110: AluOp.OR,
    0b111: AluOp.AND,
}

def test_immediate_ops_are_always_valid():
    rng = random.Random(2)
    vectors = []
    for funct3 in I_OPS:
        for _ in range(16):
            vectors.append((i_type(rng.getrandbits(12), 2, funct3, 1), 0, 0))
    results = decode_all(vectors)
    for (inst, _, _), result in zip(vectors, results):
        funct3 = (inst >> 12) & 0b111
        what = f"0x{inst:08x}"
        assert result["valid"] == 1, what
        assert result["alu_op"] == I_OPS[funct3], what
        assert result["operand_b"] == OperandB.IMM, what
        assert result["reg_write"] == 1, what

def test_immediate_left_shift_requires_zero_funct7():
    vectors = [(r_type(funct7, 5, 2, 0b001, 1, opcode = 0b0010011), 0, 0)
               for funct7 in range(128)]
    results = decode_all(vectors)
    for funct7, result in enumerate(results):
        if funct7 == 0:
            assert result["valid"] == 1
            assert result["alu_op"] == AluOp.SLL
            assert result["reg_write"] == 1
        else:
            assert_no_op(result, f"SLLI with funct7={funct7:07b}")

def test_immediate_right_shifts():
    vectors = [(r_type(funct7, 5, 2, 0b101, 1, opcode = 0b0010011), 0, 0)
               for funct7 in range(128)]
    results = decode_all(vectors)
    for funct7, result in enumerate(results):
        if funct7 == 0b0000000:
            assert result["valid"] == 1
            assert result["alu_op"] == AluOp.SRL
        elif funct7 == 0b0100000:
            assert result["valid"] == 1
            assert result["alu_op"] == AluOp.SRA
        else:
            assert_no_op(result, f"SRxI with funct7={funct7:07b}")

def test_loads_are_always_valid():
    vectors = [(i_type(-4, 2, funct3, 1, opcode = 0b0000011), 0, 0)
               for funct3 in range(8)]
    for result in decode_all(vectors):
        assert result["valid"] == 1
        assert result["operand_a"] == OperandA.REG
        assert result["operand_b"] == OperandB.IMM
        assert result["alu_op"] == AluOp.ADD
        assert result["reg_write"] == 1
        assert result["mem_write"] == 0
        assert result["writeback"] == Writeback.LOAD
        assert result["pc_select"] == PcSelect.SEQUENTIAL

def test_store_widths():
    vectors = [(s_type(8, 2, 1, funct3), 0, 0) for funct3 in range(8)]
    results = decode_all(vectors)
    for funct3, result in enumerate(results):
        if funct3 in (0b000, 0b001, 0b010):
            assert result["valid"] == 1
            assert result["mem_write"] == 1
            assert result["reg_write"] == 0
            assert result["operand_b"] == OperandB.IMM
            assert result["alu_op"] == AluOp.ADD
        else:
            # The store would have been requested, but mask must kill it.
            assert_no_op(result, f"store funct3={funct3:03b}")

# (funct3, less, equal) -> taken
def expected_taken(funct3, less, equal):
    return {
        0b000: equal,
        0b001: not equal,
        0b100: less,
        0b101: not less,
        0b110: less,
        0b111: not less,
    }[funct3]

def test_branch_taken_table():
    vectors = []
    for funct3 in (0b000, 0b001, 0b100, 0b101, 0b110, 0b111):
        for less in (0, 1):
            for equal in (0, 1):
                vectors.append((b_type(0x400, 2, 1, funct3), less, equal))
    results = decode_all(vectors)
    for (inst, less, equal), result in zip(vectors, results):
        funct3 = (inst >> 12) & 0b111
        taken = expected_taken(funct3, less, equal)
        what = f"funct3={funct3:03b} less={less} equal={equal}"
        assert result["valid"] == 1, what
        assert result["taken"] == int(taken), what
        assert result["pc_select"] == \
            (PcSelect.TARGET if taken else PcSelect.SEQUENTIAL), what
        assert result["branch_unsigned"] == int(funct3 in (0b110, 0b111)), what
        assert result["operand_a"] == OperandA.PC, what
        assert result["operand_b"] == OperandB.IMM, what
        assert result["alu_op"] == AluOp.ADD, what
        assert result["reg_write"] == 0, what
        assert result["mem_write"] == 0, what

@pytest.mark.parametrize("funct3", [0b010, 0b011])
def test_undefined_branches_never_jump(funct3):
    vectors = [(b_type(0x400, 2, 1, funct3), less, equal)
               for less in (0, 1) for equal in (0, 1)]
    for result in decode_all(vectors):
        assert_no_op(result, f"branch funct3={funct3:03b}")

def test_lui():
    result = decode(u_type(0xAAAAA000, 1, 0b0110111))
    assert result["valid"] == 1
    assert result["alu_op"] == AluOp.LUI
    assert result["operand_b"] == OperandB.IMM
    assert result["reg_write"] == 1
    assert result["writeback"] == Writeback.ALU

def test_auipc():
    result = decode(u_type(0xAAAAA000, 1, 0b0010111))
    assert result["valid"] == 1
    assert result["alu_op"] == AluOp.AUIPC
    assert result["operand_a"] == OperandA.PC
    assert result["operand_b"] == OperandB.IMM
    assert result["reg_write"] == 1

def test_jal():
    result = decode(j_type(-4, 9))
    assert result["valid"] == 1
    assert result["operand_a"] == OperandA.PC
    assert result["operand_b"] == OperandB.IMM
    assert result["alu_op"] == AluOp.ADD
    assert result["reg_write"] == 1
    assert result["pc_select"] == PcSelect.TARGET
    assert result["writeback"] == Writeback.PC4
    assert result["is_jalr"] == 0

def test_jalr_requires_zero_funct3():
    vectors = [(i_type(4, 1, funct3, 1, opcode = 0b1100111), 0, 0)
               for funct3 in range(8)]
    results = decode_all(vectors)
    for funct3, result in enumerate(results):
        if funct3 == 0:
            assert result["valid"] == 1
            assert result["is_jalr"] == 1
            assert result["pc_select"] == PcSelect.TARGET
        else:
            assert_no_op(result, f"JALR funct3={funct3:03b}")

def test_decode_is_deterministic():
    rng = random.Random(3)
    vectors = [(rng.getrandbits(32), rng.getrandbits(1), rng.getrandbits(1))
               for _ in range(200)]
    # Run the same vectors twice, in a different order the second time, to
    # show there's nothing carried between evaluations.
    first = decode_all(vectors)
    order = list(range(len(vectors)))
    rng.shuffle(order)
    second = decode_all([vectors[i] for i in order])
    for position, i in enumerate(order):
        assert second[position] == first[i], f"0x{vectors[i][0]:08x}"

def test_invalid_always_masks_writes():
    rng = random.Random(4)
    vectors = [(rng.getrandbits(32), rng.getrandbits(1), rng.getrandbits(1))
               for _ in range(500)]
    for (inst, _, _), result in zip(vectors, decode_all(vectors)):
        if not result["valid"]:
            assert_no_op(result, f"0x{inst:08x}")

# End-to-end scenarios

def test_addi_x1_x0_5():
    result = decode(addi(1, 0, 5))
    assert result["valid"] == 1
    assert result["reg_write"] == 1
    assert result["operand_b"] == OperandB.IMM
    assert result["alu_op"] == AluOp.ADD
    assert result["writeback"] == Writeback.ALU

def test_beq_taken():
    result = decode(branch(0b000, 0, 0, 16), branch_equal = 1)
    assert result["valid"] == 1
    assert result["taken"] == 1
    assert result["pc_select"] == PcSelect.TARGET
    assert result["reg_write"] == 0

def test_sw_x2_0_x1():
    result = decode(store(0b010, 2, 1, 0))
    assert result["valid"] == 1
    assert result["mem_write"] == 1
    assert result["alu_op"] == AluOp.ADD
    assert result["operand_b"] == OperandB.IMM

def test_jalr_x1_4_x1():
    result = decode(jalr(1, 1, 4))
    assert result["valid"] == 1
    assert result["writeback"] == Writeback.PC4
    assert result["is_jalr"] == 1

def test_srxi_with_bad_funct7():
    result = decode(r_type(0b0000001, 3, 2, 0b101, 1, opcode = 0b0010011))
    assert result["valid"] == 0
    assert_no_op(result, "SRxI funct7=0000001")

# The two decode stages on their own

def test_classifier_requests_store_even_when_invalid():
    dut = Classifier()
    results = []

    async def bench(ctx):
        for funct3 in range(8):
            ctx.set(dut.inst, s_type(0, 2, 1, funct3))
            results.append((ctx.get(dut.raw.mem_write), ctx.get(dut.valid)))

    sim = Simulator(dut)
    sim.add_testbench(bench)
    sim.run()

    for funct3, (mem_write, valid) in enumerate(results):
        assert mem_write == 1, f"store funct3={funct3:03b}"
        assert valid == int(funct3 < 0b011), f"store funct3={funct3:03b}"

# Every field at its non-default extreme.
BUSY_VECTOR = {
    "pc_select": PcSelect.TARGET,
    "reg_write": 1,
    "branch_unsigned": 1,
    "operand_a": OperandA.PC,
    "operand_b": OperandB.IMM,
    "alu_op": AluOp.AUIPC,
    "mem_write": 1,
    "writeback": Writeback.PC4,
}

@pytest.mark.parametrize("valid", [0, 1])
def test_mask(valid):
    dut = Mask()
    result = {}

    async def bench(ctx):
        for field, value in BUSY_VECTOR.items():
            ctx.set(getattr(dut.raw, field), value)
        ctx.set(dut.raw_is_jalr, 1)
        ctx.set(dut.valid, valid)
        for field in BUSY_VECTOR:
            result[field] = ctx.get(getattr(dut.out, field))
        result["is_jalr"] = ctx.get(dut.is_jalr)

    sim = Simulator(dut)
    sim.add_testbench(bench)
    sim.run()

    if valid:
        assert result == {**BUSY_VECTOR, "is_jalr": 1}
    else:
        expected = {field: NO_OP[field] for field in result}
        assert result == expected

IMMEDIATES = [
    # inst, field, value
    (i_type(2047, 1, 0b000, 1), "i", 0x0000_07FF),
    (i_type(-1, 1, 0b000, 1), "i", 0xFFFF_FFFF),
    (i_type(-2048, 1, 0b000, 1), "i", 0xFFFF_F800),
    (s_type(2047, 2, 1, 0b010), "s", 0x0000_07FF),
    (s_type(-4, 2, 1, 0b010), "s", 0xFFFF_FFFC),
    (s_type(-2048, 2, 1, 0b010), "s", 0xFFFF_F800),
    (b_type(4094, 2, 1, 0b000), "b", 0x0000_0FFE),
    (b_type(-2, 2, 1, 0b000), "b", 0xFFFF_FFFE),
    (b_type(-4096, 2, 1, 0b000), "b", 0xFFFF_F000),
    (j_type((1 << 20) - 2, 1), "j", 0x000F_FFFE),
    (j_type(-2, 1), "j", 0xFFFF_FFFE),
    (j_type(-(1 << 20), 1), "j", 0xFFF0_0000),
    (u_type(0xFFFF_F000, 1, 0b0110111), "u", 0x000F_FFFF),
]

def test_immediate_formats():
    dut = ImmediateDecoder()
    results = []

    async def bench(ctx):
        for inst, field, _ in IMMEDIATES:
            ctx.set(dut.inst, inst)
            results.append((ctx.get(getattr(dut, field)), ctx.get(dut.imm)))

    sim = Simulator(dut)
    sim.add_testbench(bench)
    sim.run()

    for (inst, field, expected), (actual, imm) in zip(IMMEDIATES, results):
        what = f"{field} of 0x{inst:08x}"
        assert actual == expected, \
            f"{what} should be 0x{expected:x} but is 0x{actual:x}"
        # Each of these opcodes uses the format being checked.
        assert imm == expected, f"{what}: imm is 0x{imm:x}"

def test_no_immediate_for_register_ops():
    dut = ImmediateDecoder()

    async def bench(ctx):
        ctx.set(dut.inst, r_type(0b1111111, 31, 31, 0b111, 31))
        assert ctx.get(dut.imm) == 0

    sim = Simulator(dut)
    sim.add_testbench(bench)
    sim.run()
