"""Small numeric helpers shared by the generator and the placement engine."""

import math
import sys


def clamp(value, min_val, max_val=sys.maxsize):
    """Clamp a value between min_val and max_val (inclusive)."""
    return max(min_val, min(max_val, value))


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (not banker's rounding)."""
    return int(math.floor(value + 0.5))


def distance_sq(x1: float, y1: float, x2: float, y2: float) -> float:
    dx = x1 - x2
    dy = y1 - y2
    return dx * dx + dy * dy
