"""
Random number generation utilities.

Every component receives its XorShiftPRNG explicitly; there is no module
level generator. These helpers only normalise the seeds callers hand in.
"""

import zlib
from typing import Optional, Union

from ..core.xorshift_prng import XorShiftPRNG

SeedValue = Union[int, str, None]


def seed_from_value(seed: SeedValue) -> Optional[int]:
    """
    Turn a user supplied seed into an integer seed.

    Integers (and numeric strings) are used as-is. Other strings are hashed
    with CRC32 so the same text always yields the same world. None means
    "seed from the clock" and is passed through.

    Args:
        seed: Seed value from a request or config

    Returns:
        Integer seed, or None
    """
    if seed is None:
        return None
    if isinstance(seed, int):
        return seed
    text = seed.strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        return zlib.crc32(text.encode("utf-8"))


def create_prng(seed: SeedValue = None) -> XorShiftPRNG:
    """
    Create a PRNG for a new session.

    Args:
        seed: Integer or string seed; None seeds from the clock

    Returns:
        XorShiftPRNG instance
    """
    return XorShiftPRNG(seed_from_value(seed))
