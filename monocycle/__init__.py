from amaranth import *
from amaranth.hdl import ValueCastable
from amaranth.lib import wiring
from amaranth.lib.enum import Enum
from amaranth.lib.wiring import Out

from functools import reduce

class AlwaysReady(wiring.Signature):
    """A payload with a valid strobe and no backpressure."""
    def __init__(self, payload_shape):
        super().__init__({
            'payload': Out(payload_shape),
            'valid': Out(1),
        })

def _as_value(x):
    # Lets enum members, plain ints and enum views stand in for Values.
    if isinstance(x, Enum):
        x = Const.cast(x)
    if isinstance(x, int):
        x = Const(x)
    if isinstance(x, ValueCastable):
        x = x.as_value()
    return x

def _spread(bit, value):
    return bit.replicate(value.shape().width) & value

# Two-way select written as AND/OR. 'select' is reduced to one bit with any(),
# so a multi-bit select picks 'one' when any of its bits are set.
def mux(select, one, zero):
    one = _as_value(one)
    zero = _as_value(zero)
    select = _as_value(select).any()
    n = max(one.shape().width, zero.shape().width)
    return (select.replicate(n) & one) | (~select.replicate(n) & zero)

# Selects among (condition, value) pairs by ORing together every value whose
# condition is nonzero. Conditions must be mutually exclusive or the values get
# merged bitwise.
#
# With no default the result is zero when nothing matches.
def oneof(options, default = None):
    assert len(options) > 0, "oneof needs at least one option"
    hits = []
    terms = []
    for (condition, result) in options:
        hit = _as_value(condition).any()
        hits.append(hit)
        terms.append(_spread(hit, _as_value(result)))

    if default is not None:
        miss = ~reduce(lambda a, b: a | b, hits)
        terms.append(_spread(miss, _as_value(default)))

    return reduce(lambda a, b: a | b, terms)
