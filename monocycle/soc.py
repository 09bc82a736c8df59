# A minimal system around the single-cycle core: program ROM, data RAM (inside
# the CPU's load/store unit), and one output port on the I/O bus.

from amaranth import *
from amaranth.lib.wiring import *
from amaranth.lib.memory import Memory

from monocycle.cpu import Cpu, FetchPort
from monocycle.bus import alias_device
from monocycle.gpio import OutputPort

class InstructionRom(Component):
    """Read-only program storage with a combinational read, which is what the
    single-cycle fetch needs.

    The ROM only decodes as many address bits as its size requires, so the
    program repeats through the address space. Sizes are rounded up to a power
    of two and padded with zeroes, which decode as invalid instructions.

    Parameters
    ----------
    contents (list of integer): instruction words, starting at address 0.

    Attributes
    ----------
    fetch (port): connection to the CPU's fetch port.
    """
    fetch: In(FetchPort)

    def __init__(self, contents):
        assert len(contents) > 0, "can't build a ROM with no program in it"
        super().__init__()

        self.addr_bits = (len(contents) - 1).bit_length()
        self.m = Memory(
            shape = unsigned(32),
            depth = 1 << self.addr_bits,
            init = contents,
        )

    def elaborate(self, platform):
        m = Module()

        m.submodules.m = self.m

        rp = self.m.read_port(domain = "comb")
        m.d.comb += [
            rp.addr.eq(self.fetch.addr[:self.addr_bits]),
            self.fetch.inst.eq(rp.data),
        ]

        return m

class Soc(Component):
    """The CPU plus a program ROM and an OutputPort at 0x8000_0000.

    Parameters
    ----------
    program (list of integer): instruction words, loaded at address 0.
    ram_words (int): data RAM size in words.
    ram_init (list of integer): initial data RAM contents.
    reset_vector (int): address of the first instruction.

    Attributes
    ----------
    pins (output): state of the output port.
    """
    pins: Out(32)

    def __init__(self, program, *,
                 ram_words = 1024,
                 ram_init = (),
                 reset_vector = 0):
        super().__init__()

        self.cpu = Cpu(
            reset_vector = reset_vector,
            ram_words = ram_words,
            ram_init = ram_init,
        )
        self.rom = InstructionRom(program)
        self.outport = OutputPort(32)

        print(f"soc configured with {len(program)} program words, "
              f"{ram_words} RAM words")

    def elaborate(self, platform):
        m = Module()

        m.submodules.cpu = cpu = self.cpu
        m.submodules.rom = rom = self.rom
        m.submodules.outport = outport = self.outport

        connect(m, cpu.fetch, rom.fetch)
        connect(m, cpu.io, alias_device(m, outport.bus, 29))

        m.d.comb += self.pins.eq(outport.pins)

        return m
