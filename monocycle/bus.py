# The I/O bus between the load/store unit and memory-mapped devices.
#
# The single-cycle core can't wait, so there is no ready/stall signal and the
# device's response is combinational: 'resp' has to be valid in the same cycle
# the command is presented.

from amaranth import *
from amaranth.lib.wiring import *

from monocycle import AlwaysReady

class BusCmd(Signature):
    """One bus transaction. 'addr' counts words; 'lanes' has a bit per byte of
    'data' to write. A valid command with no lanes set is a read."""
    def __init__(self, *, addr, data):
        super().__init__({
            'addr': Out(addr),
            'lanes': Out((data + 7) // 8),
            'data': Out(data)
        })

class BusPort(Signature):
    def __init__(self, *, addr, data):
        super().__init__({
            'cmd': Out(AlwaysReady(BusCmd(addr = addr, data = data))),
            'resp': In(data),
        })

def alias_device(m, device_bus, addr_bits):
    """Returns a bus port with 'addr_bits' word address bits that drives
    'device_bus'. Address bits the device doesn't have are dropped, so its
    registers repeat through the whole window."""
    cmd = device_bus.cmd.payload
    narrow = cmd.addr.shape().width
    assert addr_bits >= narrow, \
            f"device has {narrow} address bits, can't fit it in {addr_bits}"
    wide = BusPort(
        addr = addr_bits,
        data = cmd.data.shape().width,
    ).flip().create()
    m.d.comb += [
        device_bus.cmd.valid.eq(wide.cmd.valid),
        cmd.addr.eq(wide.cmd.payload.addr[:narrow]),
        cmd.lanes.eq(wide.cmd.payload.lanes),
        cmd.data.eq(wide.cmd.payload.data),

        wide.resp.eq(device_bus.resp),
    ]
    return wide
