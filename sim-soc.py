# Runs a program image on the single-cycle SoC in simulation and dumps the
# architectural state at the end.

import argparse

from amaranth import *
from amaranth.sim import Simulator

from monocycle.soc import Soc
from monocycle.image import read_image

parser = argparse.ArgumentParser(
    prog = "sim-soc",
    description = "Simulate the single-cycle RV32I SoC running a program",
)
parser.add_argument('image', help = 'program image (.bin, or hex text)')
parser.add_argument('--data', help = 'initial data RAM image', required = False)
parser.add_argument('--ram-words', help = 'data RAM size in words',
                    type = int, default = 1024)
parser.add_argument('--cycles', help = 'number of instructions to run',
                    type = int, default = 100)
parser.add_argument('--vcd', help = 'write a waveform to this file',
                    required = False)
parser.add_argument('--trace', help = 'print each retired instruction',
                    action = 'store_true')
args = parser.parse_args()

program = read_image(args.image)
ram_init = read_image(args.data) if args.data else ()

soc = Soc(program, ram_words = args.ram_words, ram_init = ram_init)
cpu = soc.cpu

sim = Simulator(soc)
sim.add_clock(1e-6)

async def process(ctx):
    traps = 0
    for i in range(args.cycles):
        rvfi = cpu.rvfi.payload
        if ctx.get(rvfi.trap):
            traps += 1
        if args.trace:
            line = f"{i:6} pc={ctx.get(rvfi.pc_rdata):08x} insn={ctx.get(rvfi.insn):08x}"
            if ctx.get(rvfi.trap):
                line += " (invalid, skipped)"
            elif ctx.get(rvfi.rd_addr) != 0:
                line += f" x{ctx.get(rvfi.rd_addr)}={ctx.get(rvfi.rd_wdata):08x}"
            print(line)
        await ctx.tick()

    print(f"ran {args.cycles} cycles, {traps} invalid instructions")
    print(f"pc   = {ctx.get(cpu.debug.pc):08x}")
    print(f"pins = {ctx.get(soc.pins):08x}")
    for r in range(0, 32, 4):
        values = []
        for n in range(r, r + 4):
            ctx.set(cpu.debug.reg_read, n)
            values.append(f"x{n:<2} = {ctx.get(cpu.debug.reg_value):08x}")
        print("   ".join(values))

sim.add_testbench(process)

if args.vcd:
    with sim.write_vcd(vcd_file = args.vcd):
        sim.run()
else:
    sim.run()
