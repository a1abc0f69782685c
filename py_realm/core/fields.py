"""Farm fields: 2x2 blocks of field tiles sown around a farm."""

from typing import List, Optional, Tuple

import numpy as np
import structlog

from .placement import PlacementEngine, StructureInstance
from .structures import StructureType
from .terrain import TerrainType

logger = structlog.get_logger()

FIELD_SIZE = 2
# Distance from a farm footprint within which a field tile belongs to it
FARM_FIELD_RANGE = 2

Cell = Tuple[int, int]


def _get_farm(engine: PlacementEngine, farm_instance_id: str) -> Optional[StructureInstance]:
    instance = engine.get_instance(farm_instance_id)
    if instance is None or instance.structure_type != StructureType.FARM:
        return None
    return instance


def get_available_field_placements(
    engine: PlacementEngine, farm_instance_id: str, field_range: int = FARM_FIELD_RANGE
) -> List[Cell]:
    """
    Top-left corners where a 2x2 field can be sown near a farm.

    The whole block must lie within ``field_range`` tiles of the farm
    footprint, be free of structures, sit in the player zone (when there is
    one) and be all plains.

    Args:
        engine: Placement engine holding the farm
        farm_instance_id: Farm instance id
        field_range: Tiles beyond the footprint edges

    Returns:
        Row-major list of (x, y); empty for an unknown farm
    """
    farm = _get_farm(engine, farm_instance_id)
    if farm is None:
        return []

    world = engine.world
    occupied = engine.occupied_cells()
    plains = world.tiles == TerrainType.PLAINS

    min_x = max(0, farm.x - field_range)
    max_x = min(world.width - FIELD_SIZE, farm.x + farm.width + field_range - FIELD_SIZE)
    min_y = max(0, farm.y - field_range)
    max_y = min(world.height - FIELD_SIZE, farm.y + farm.height + field_range - FIELD_SIZE)

    placements = []
    for y in range(min_y, max_y + 1):
        for x in range(min_x, max_x + 1):
            block = [(x + dx, y + dy) for dy in range(FIELD_SIZE) for dx in range(FIELD_SIZE)]
            if any(cell in occupied for cell in block):
                continue
            if world.player_zone_id is not None and not all(
                world.is_in_player_zone(cx, cy) for cx, cy in block
            ):
                continue
            if all(plains[cy, cx] for cx, cy in block):
                placements.append((x, y))
    return placements


def sow_field(engine: PlacementEngine, x: int, y: int, farm_instance_id: str) -> bool:
    """
    Turn the 2x2 block at (x, y) into field tiles.

    Returns:
        True if the block was sown, False if it is not a legal field spot
    """
    with engine.lock:
        if (x, y) not in get_available_field_placements(engine, farm_instance_id):
            logger.info("Field placement unavailable", farm=farm_instance_id, x=x, y=y)
            return False

        for dy in range(FIELD_SIZE):
            for dx in range(FIELD_SIZE):
                engine.generator.set_tile(x + dx, y + dy, TerrainType.FIELD)
        engine.notify_map_changed()

    logger.info("Field sown", farm=farm_instance_id, x=x, y=y)
    return True


def get_farm_field_count(
    engine: PlacementEngine, farm_instance_id: str, field_range: int = FARM_FIELD_RANGE
) -> int:
    """Number of complete fields (four field tiles each) around a farm."""
    farm = _get_farm(engine, farm_instance_id)
    if farm is None:
        return 0

    world = engine.world
    min_x = max(0, farm.x - field_range)
    max_x = min(world.width - 1, farm.x + farm.width - 1 + field_range)
    min_y = max(0, farm.y - field_range)
    max_y = min(world.height - 1, farm.y + farm.height - 1 + field_range)

    window = world.tiles[min_y:max_y + 1, min_x:max_x + 1]
    return int(np.count_nonzero(window == TerrainType.FIELD)) // 4


def get_farm_for_field_tile(engine: PlacementEngine, x: int, y: int) -> Optional[StructureInstance]:
    """The nearest farm whose field range covers the tile."""
    best = None
    best_dist = float("inf")
    for instance in engine.instances:
        if instance.structure_type != StructureType.FARM:
            continue
        if not (
            instance.x - FARM_FIELD_RANGE <= x <= instance.x + instance.width - 1 + FARM_FIELD_RANGE
            and instance.y - FARM_FIELD_RANGE <= y <= instance.y + instance.height - 1 + FARM_FIELD_RANGE
        ):
            continue

        dx = x + 0.5 - (instance.x + instance.width / 2)
        dy = y + 0.5 - (instance.y + instance.height / 2)
        dist = dx * dx + dy * dy
        if dist < best_dist:
            best_dist = dist
            best = instance
    return best
