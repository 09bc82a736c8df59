# 32-bit x 32 register file for the single-cycle core.

from amaranth import *
from amaranth.lib.wiring import *

from monocycle import AlwaysReady

def RegWrite(addrbits = 5):
    return Signature({
        'reg': Out(addrbits),
        'value': Out(32),
    })

# A combinational read port, from the perspective of the reader.
ReadPort = Signature({
    'addr': Out(5),
    'data': In(32),
})

class RegFile(Component):
    """Register file with combinational reads and a clocked write.

    This is built from flops rather than a Memory so that the sync domain's
    reset clears every register, and so that reads can be combinational, which
    the single-cycle datapath needs.

    Parameters
    ----------
    read_ports (int): number of independent read ports. The CPU uses two for
        rs1/rs2 and one for the debug port.

    Attributes
    ----------
    read (list of ports): read ports; put an index on addr, get the value on
        data in the same cycle. x0 always reads as zero.
    write_cmd (input): write command. Writes to x0 are dropped.
    """
    write_cmd: In(AlwaysReady(RegWrite()))

    def __init__(self, *, read_ports = 2):
        super().__init__()

        self.read = [ReadPort.flip().create(path = ("read", str(i)))
                     for i in range(read_ports)]

    def elaborate(self, platform):
        m = Module()

        self.regs = regs = Array(Signal(32, name = f"x{n}") for n in range(32))

        for port in self.read:
            m.d.comb += port.data.eq(regs[port.addr])

        # Block writes to x0.
        with m.If(self.write_cmd.valid & (self.write_cmd.payload.reg != 0)):
            m.d.sync += regs[self.write_cmd.payload.reg].eq(
                self.write_cmd.payload.value)

        return m
