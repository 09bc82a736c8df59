from amaranth import *
from amaranth.lib.wiring import *

from monocycle import mux, oneof
from monocycle.bus import BusPort

class OutputPort(Component):
    """A block of general-purpose outputs that can be changed simultaneously.

    Memory Map
    ----------
    +0  sets pins when written
    +4  ORs value with current pin state
    +8  ANDs the complement of the value written with the current pin state.
    +12 XORs value with the current pin state

    All registers support byte and halfword writes to affect only some of the
    pins. Reading any register returns the current pin state.

    Parameters
    ----------
    pins (integer): number of pins to implement (1-32)

    Attributes
    ----------
    bus (port): connection to the CPU's I/O bus
    pins (signal array): the output pins
    """
    bus: In(BusPort(addr = 2, data = 32))

    def __init__(self, pins = 32):
        assert 1 <= pins <= 32, f"OutputPort supports 1-32 pins, not {pins}"
        super().__init__()
        self.pins = Signal(pins)

    def elaborate(self, platform):
        m = Module()

        a = self.bus.cmd.payload.addr
        d = self.bus.cmd.payload.data
        n = self.pins.shape().width

        for lane in range(4):
            lo = lane * 8
            if lo >= n:
                break
            hi = min(lo + 8, n)
            current = self.pins[lo:hi]
            written = d[lo:hi]
            m.d.sync += current.eq(mux(
                self.bus.cmd.valid & self.bus.cmd.payload.lanes[lane],
                oneof([
                    (a == 1, current | written),
                    (a == 2, current & ~written),
                    (a == 3, current ^ written),
                ], default = written),
                current,
            ))

        # Reads are serviced by permanently connecting the pins to the bus.
        m.d.comb += self.bus.resp.eq(self.pins)

        return m
