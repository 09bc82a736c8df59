# Emits Verilog for the single-cycle SoC, with a program image baked into its
# ROM.

import argparse

from amaranth import *
from amaranth.back import verilog

from monocycle.soc import Soc
from monocycle.image import read_image

parser = argparse.ArgumentParser(
    prog = "gen-verilog",
    description = "Generate Verilog for the single-cycle RV32I SoC",
)
parser.add_argument('image', nargs = '?',
                    help = 'program image (.bin, or hex text); if omitted, '
                           'the ROM holds a single JAL x0, .')
parser.add_argument('--data', help = 'initial data RAM image', required = False)
parser.add_argument('--ram-words', help = 'data RAM size in words',
                    type = int, default = 1024)
parser.add_argument('-o', '--output', help = 'output file', default = 'soc.v')
args = parser.parse_args()

if args.image:
    program = read_image(args.image)
else:
    program = [
        0b0000000000000000000_00000_1101111, # JAL x0, .
    ]
ram_init = read_image(args.data) if args.data else ()

soc = Soc(program, ram_words = args.ram_words, ram_init = ram_init)

with open(args.output, "w") as v:
    v.write(verilog.convert(soc, name = "monocycle_soc"))
print(f"wrote {args.output}")
