"""
Player border expansion.

The player zone grows by one ring: every in-bounds, non-ocean 8-neighbour of
a zone cell that is not yet in the zone is reassigned to it.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np
import structlog

from .terrain import TerrainType
from .world_generator import WorldGenerator
from .world_map import WorldMap

logger = structlog.get_logger()

Cell = Tuple[int, int]

REASON_NO_ZONE = "No player zone to expand."
REASON_EDGE_AND_OCEAN = "Cannot expand: all sides are blocked by map edge or ocean."
REASON_EDGE = "Cannot expand: all available sides hit map edge."
REASON_OCEAN = "Cannot expand: all available sides are ocean."
REASON_NOTHING = "No tiles available to expand."


@dataclass
class ExpansionStatus:
    """Whether the player zone can grow, and into which cells."""

    available: bool
    reason: Optional[str] = None
    candidates: List[Cell] = field(default_factory=list)


def get_expand_border_status(world: WorldMap) -> ExpansionStatus:
    """
    Work out which cells the player zone would absorb.

    Args:
        world: Grid to inspect (not modified)

    Returns:
        ExpansionStatus with row-major candidates, or the reason nothing can grow
    """
    if world.player_zone_id is None:
        return ExpansionStatus(available=False, reason=REASON_NO_ZONE)

    zone = world.player_zone_mask()
    if not zone.any():
        return ExpansionStatus(available=False, reason=REASON_NO_ZONE)

    # Pad by one so neighbours that fall off the map land in the border ring
    padded = np.pad(zone, 1, constant_values=False)
    grown = np.zeros_like(padded)
    for dy in (-1, 0, 1):
        for dx in (-1, 0, 1):
            if dx == 0 and dy == 0:
                continue
            grown |= np.roll(np.roll(padded, dy, axis=0), dx, axis=1)

    blocked_by_edge = bool(
        grown[0, :].any() or grown[-1, :].any() or grown[:, 0].any() or grown[:, -1].any()
    )
    reachable = grown[1:-1, 1:-1]
    ocean = world.tiles == TerrainType.OCEAN
    blocked_by_ocean = bool((reachable & ocean).any())

    candidate_mask = reachable & ~ocean & ~zone
    candidates = [(int(x), int(y)) for y, x in np.argwhere(candidate_mask)]
    if candidates:
        return ExpansionStatus(available=True, candidates=candidates)

    if blocked_by_edge and blocked_by_ocean:
        reason = REASON_EDGE_AND_OCEAN
    elif blocked_by_edge:
        reason = REASON_EDGE
    elif blocked_by_ocean:
        reason = REASON_OCEAN
    else:
        reason = REASON_NOTHING
    return ExpansionStatus(available=False, reason=reason)


def expand_player_borders(generator: WorldGenerator) -> ExpansionStatus:
    """Grow the player zone by one ring through the generator's zone writer."""
    world = generator.get_map_ref()
    status = get_expand_border_status(world)
    if not status.available:
        logger.info("Border expansion blocked", reason=status.reason)
        return status

    for x, y in status.candidates:
        generator.set_zone(x, y, world.player_zone_id)

    logger.info("Borders expanded", zone_id=world.player_zone_id, added=len(status.candidates))
    return status
