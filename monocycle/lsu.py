# The load/store unit: data RAM, I/O window, and access sizing.

from amaranth import *
from amaranth.lib.wiring import *
from amaranth.lib.memory import Memory

from monocycle import mux
from monocycle.bus import BusPort

class LoadStoreUnit(Component):
    """Handles data memory traffic for loads and stores.

    Addresses with bit 31 clear go to an internal data RAM, which only decodes
    as many address bits as it needs and so repeats through the lower half of
    the address space. Addresses with bit 31 set go out the I/O bus port.

    Access width comes from funct3[1:0] (byte, half, word) and loads are sign
    extended unless funct3[2] is set. Stores write the lanes starting at
    addr[1:0]; any lanes that would fall off the end of the word are dropped.
    There is no alignment trap. funct3[1:0] = 0b11 is treated as a word.

    Parameters
    ----------
    ram_words (int): size of the data RAM in 32-bit words; a power of two.
    ram_init (list of int): initial RAM contents, zero-filled to ram_words.

    Attributes
    ----------
    addr (input): byte address, from the ALU.
    store_data (input): rs2 value.
    funct3 (input): access width and signedness.
    write (input): perform a store this cycle.
    read (input): perform a load this cycle. This only matters to the I/O
        bus; RAM reads have no side effects.
    load_data (output): sized and extended load result.
    io (port): I/O bus. Word addressed, 29 address bits.
    lanes (output): byte lanes written this cycle, zero unless storing.
    read_lanes (output): byte lanes a load reads, zero unless loading. Like
        store lanes, these stop at the end of the word.
    word_addr, wdata, rdata (outputs): the access as seen on the memory
        side, for tracing.
    """
    addr: In(32)
    store_data: In(32)
    funct3: In(3)
    write: In(1)
    read: In(1)

    load_data: Out(32)
    word_addr: Out(30)
    lanes: Out(4)
    read_lanes: Out(4)
    wdata: Out(32)
    rdata: Out(32)

    def __init__(self, *,
                 ram_words = 1024,
                 ram_init = ()):
        assert ram_words > 0 and ram_words & (ram_words - 1) == 0, \
                f"RAM size must be a power of two, not {ram_words}"
        assert len(ram_init) <= ram_words, \
                f"{len(ram_init)} words of RAM contents won't fit in {ram_words}"
        super().__init__()

        self.ram_addr_bits = (ram_words - 1).bit_length()
        self.ram = Memory(shape = unsigned(32), depth = ram_words,
                          init = ram_init)

        self.io = BusPort(addr = 29, data = 32).create()

    def elaborate(self, platform):
        m = Module()

        m.submodules.ram = ram = self.ram
        # The single-cycle datapath needs the load result in the same cycle.
        rp = ram.read_port(domain = "comb")
        wp = ram.write_port(granularity = 8)

        is_io = self.addr[31]
        offset = self.addr[:2]
        size = self.funct3[:2]
        zext = self.funct3[2]

        # Store data, and the lanes an access of this size covers, before
        # shifting into position.
        store_val = Signal(32)
        size_mask = Signal(4)
        with m.Switch(size):
            with m.Case(0b00): # SB
                m.d.comb += [
                    store_val.eq(self.store_data[:8]),
                    size_mask.eq(0b0001),
                ]
            with m.Case(0b01): # SH
                m.d.comb += [
                    store_val.eq(self.store_data[:16]),
                    size_mask.eq(0b0011),
                ]
            with m.Default(): # SW
                m.d.comb += [
                    store_val.eq(self.store_data),
                    size_mask.eq(0b1111),
                ]

        lanes = Signal(4)
        m.d.comb += [
            # Truncation here is what drops lanes past the end of the word.
            self.wdata.eq(store_val << Cat(0, 0, 0, offset)),
            lanes.eq((size_mask << offset) & self.write.replicate(4)),
            self.lanes.eq(lanes),
            self.read_lanes.eq((size_mask << offset) & self.read.replicate(4)),
            self.word_addr.eq(self.addr[2:]),
        ]

        m.d.comb += [
            rp.addr.eq(self.addr[2:2 + self.ram_addr_bits]),

            wp.addr.eq(self.addr[2:2 + self.ram_addr_bits]),
            wp.data.eq(self.wdata),
            wp.en.eq(lanes & (~is_io).replicate(4)),

            self.io.cmd.valid.eq(is_io & (self.write | self.read)),
            self.io.cmd.payload.addr.eq(self.addr[2:31]),
            self.io.cmd.payload.data.eq(self.wdata),
            self.io.cmd.payload.lanes.eq(lanes),

            self.rdata.eq(mux(is_io, self.io.resp, rp.data)),
        ]

        shifted = Signal(32)
        m.d.comb += shifted.eq(self.rdata >> Cat(0, 0, 0, offset))
        with m.Switch(size):
            with m.Case(0b00): # byte
                m.d.comb += self.load_data.eq(Cat(
                    shifted[:8],
                    (~zext & shifted[7]).replicate(24),
                ))
            with m.Case(0b01): # half
                m.d.comb += self.load_data.eq(Cat(
                    shifted[:16],
                    (~zext & shifted[15]).replicate(16),
                ))
            with m.Default(): # word
                m.d.comb += self.load_data.eq(shifted)

        return m
