"""Terrain tags stored in the world grid."""

from enum import IntEnum
from typing import Iterable, Tuple, Union


class TerrainType(IntEnum):
    """Terrain codes used in the uint8 tile array."""

    PLAINS = 0
    FOREST = 1
    ROCKS = 2
    SAND = 3
    RIVER = 4
    OCEAN = 5
    FIELD = 6
    FIELD_EMPTY = 7


# Tag names as they appear in snapshots and API payloads
TERRAIN_NAMES = {
    TerrainType.PLAINS: "plains",
    TerrainType.FOREST: "forest",
    TerrainType.ROCKS: "rocks",
    TerrainType.SAND: "sand",
    TerrainType.RIVER: "river",
    TerrainType.OCEAN: "ocean",
    TerrainType.FIELD: "field",
    TerrainType.FIELD_EMPTY: "field-empty",
}

_TERRAIN_BY_NAME = {name: terrain for terrain, name in TERRAIN_NAMES.items()}

# Neighbour offsets as (dx, dy)
CARDINAL_DIRECTIONS: Tuple[Tuple[int, int], ...] = (
    (0, -1),
    (1, 0),
    (0, 1),
    (-1, 0),
)


def terrain_from_name(name: Union[str, int, TerrainType]) -> TerrainType:
    """Resolve a tag name (or code) to a TerrainType.

    Raises:
        ValueError: if the name is not a known terrain tag
    """
    if isinstance(name, TerrainType):
        return name
    if not isinstance(name, str):
        return TerrainType(int(name))
    try:
        return _TERRAIN_BY_NAME[name]
    except KeyError:
        raise ValueError(f"Unknown terrain tag: {name!r}") from None


def terrain_name(terrain: Union[int, TerrainType]) -> str:
    """Get the tag name for a terrain code."""
    return TERRAIN_NAMES[TerrainType(int(terrain))]


def terrain_codes(terrains: Iterable[TerrainType]) -> Tuple[int, ...]:
    """Integer codes for a set of terrains, for use with np.isin."""
    return tuple(int(t) for t in terrains)
