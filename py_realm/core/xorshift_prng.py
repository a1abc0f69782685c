"""
Python implementation of the game's xorshift PRNG.

A single 32-bit signed state drives every generation and placement decision,
so a whole session can be replayed from one seed plus the raw state that is
stored in save files.
"""

import math
import time


def _int32(n):
    """Wrap to a signed 32-bit integer."""
    n = int(n) & 0xFFFFFFFF
    return n - 0x100000000 if n & 0x80000000 else n


def _uint32(n):
    """Convert to unsigned 32-bit integer."""
    return int(n) & 0xFFFFFFFF


class XorShiftPRNG:
    """
    32-bit xorshift generator (shifts 13/17/5).

    The state is never zero: a zero seed or a zero restored state is
    coerced to 1.
    """

    MODULUS = 2147483647

    def __init__(self, seed=None):
        """Initialize with an integer seed, or wall-clock milliseconds."""
        self.call_count = 0

        if seed is None:
            seed = int(time.time() * 1000)
        self.state = _int32(seed) or 1

    def get_state(self):
        """Get the raw state (for save/load)."""
        return self.state

    def set_state(self, state):
        """Restore a raw state (for save/load)."""
        self.state = _int32(state) or 1

    def next(self):
        """Generate next random number in [0, 1)."""
        self.call_count += 1
        s = self.state
        s = _int32(s ^ (s << 13))
        s = _int32(s ^ (s >> 17))
        s = _int32(s ^ (s << 5))
        self.state = s
        return (_uint32(s) % self.MODULUS) / self.MODULUS

    def random(self):
        """Alias for next(), matching the other PRNGs in this package."""
        return self.next()

    def random_float(self):
        """Returns a float in [0, 1). Alias for next()."""
        return self.next()

    def random_int(self, min_val, max_val):
        """Returns an integer in [min_val, max_val] inclusive."""
        lo = math.ceil(min_val)
        hi = math.floor(max_val)
        return math.floor(self.next() * (hi - lo + 1)) + lo

    def random_chance(self, chance):
        """Returns True with the given probability [0..1]."""
        return self.next() < chance

    def choice(self, seq):
        """Choose a random element from a non-empty sequence."""
        if not seq:
            raise IndexError("Cannot choose from an empty sequence")
        return seq[self.random_int(0, len(seq) - 1)]
