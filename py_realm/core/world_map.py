"""World grid data structure and player-state summary."""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np
import structlog

from ..config import settings
from .snapshot import MapSnapshot
from .terrain import TerrainType, terrain_from_name, terrain_name

logger = structlog.get_logger()

# Zone id stored for cells that belong to no zone (ocean, or an empty map)
UNASSIGNED_ZONE = -1
# Zones are stored as int16
MAX_ZONE_ID = int(np.iinfo(np.int16).max)


@dataclass
class PlayerStateSummary:
    """Resource base of the player zone.

    Sand, field and fallow field tiles count as plains for the state economy.
    """

    forest: int = 0
    stone: int = 0
    plains: int = 0
    river: int = 0
    size: int = 0
    ocean: int = 0  # distinct ocean tiles 4-adjacent to the zone

    def to_dict(self) -> Dict:
        return {
            "tiles": {
                "forest": self.forest,
                "stone": self.stone,
                "plains": self.plains,
                "river": self.river,
            },
            "size": self.size,
            "ocean": self.ocean,
        }


@dataclass
class WorldMap:
    """Rectangular tile grid with a territory partition.

    Arrays are indexed [y, x]. ``tiles`` holds TerrainType codes and
    ``zones`` holds zone ids, UNASSIGNED_ZONE where no zone applies.
    """

    width: int
    height: int
    tiles: np.ndarray
    zones: np.ndarray
    zone_count: int = 0
    player_zone_id: Optional[int] = None

    @classmethod
    def filled(cls, width: int, height: int, terrain: TerrainType = TerrainType.PLAINS) -> "WorldMap":
        """Create a map with every cell set to one terrain and no zones."""
        return cls(
            width=width,
            height=height,
            tiles=np.full((height, width), int(terrain), dtype=np.uint8),
            zones=np.full((height, width), UNASSIGNED_ZONE, dtype=np.int16),
        )

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def tile_at(self, x: int, y: int) -> Optional[TerrainType]:
        if not self.in_bounds(x, y):
            return None
        return TerrainType(int(self.tiles[y, x]))

    def zone_at(self, x: int, y: int) -> Optional[int]:
        if not self.in_bounds(x, y):
            return None
        zone = int(self.zones[y, x])
        return None if zone == UNASSIGNED_ZONE else zone

    def is_in_player_zone(self, x: int, y: int) -> bool:
        if self.player_zone_id is None:
            return False
        return self.zone_at(x, y) == self.player_zone_id

    def set_tile(self, x: int, y: int, terrain: TerrainType) -> bool:
        """Write one cell's terrain. Out-of-range writes are ignored."""
        if not self.in_bounds(x, y):
            return False
        self.tiles[y, x] = int(terrain_from_name(terrain))
        return True

    def set_zone(self, x: int, y: int, zone_id: Optional[int]) -> bool:
        """Write one cell's zone id. Out-of-range cells and ids are ignored."""
        if not self.in_bounds(x, y):
            return False
        if zone_id is None:
            self.zones[y, x] = UNASSIGNED_ZONE
            return True
        if not 0 <= zone_id <= MAX_ZONE_ID:
            return False
        self.zones[y, x] = int(zone_id)
        return True

    def player_zone_mask(self) -> np.ndarray:
        """Boolean mask of cells inside the player zone."""
        if self.player_zone_id is None:
            return np.zeros((self.height, self.width), dtype=bool)
        return self.zones == self.player_zone_id

    def zone_center(self, zone_id: int) -> Tuple[float, float]:
        """Mean cell position of a zone, or the map center if it is empty."""
        ys, xs = np.nonzero(self.zones == zone_id)
        if len(xs) == 0:
            return self.width / 2, self.height / 2
        return float(xs.mean()), float(ys.mean())

    def copy(self) -> "WorldMap":
        return WorldMap(
            width=self.width,
            height=self.height,
            tiles=self.tiles.copy(),
            zones=self.zones.copy(),
            zone_count=self.zone_count,
            player_zone_id=self.player_zone_id,
        )

    def summarize_player_state(self) -> PlayerStateSummary:
        """Count player-zone tiles by category plus bordering ocean tiles."""
        summary = PlayerStateSummary()
        if self.player_zone_id is None:
            return summary

        mask = self.player_zone_mask()
        zone_tiles = self.tiles[mask]
        summary.size = int(mask.sum())
        summary.forest = int(np.count_nonzero(zone_tiles == TerrainType.FOREST))
        summary.stone = int(np.count_nonzero(zone_tiles == TerrainType.ROCKS))
        summary.river = int(np.count_nonzero(zone_tiles == TerrainType.RIVER))
        summary.plains = summary.size - summary.forest - summary.stone - summary.river

        # Cells with at least one 4-neighbour inside the zone
        touches_zone = np.zeros_like(mask)
        touches_zone[1:, :] |= mask[:-1, :]
        touches_zone[:-1, :] |= mask[1:, :]
        touches_zone[:, 1:] |= mask[:, :-1]
        touches_zone[:, :-1] |= mask[:, 1:]
        summary.ocean = int(np.count_nonzero(touches_zone & (self.tiles == TerrainType.OCEAN)))

        return summary

    def to_snapshot(self) -> MapSnapshot:
        """Deep copy of the grid as plain lists."""
        tiles = [[terrain_name(code) for code in row] for row in self.tiles.tolist()]
        zones = [
            [None if zone == UNASSIGNED_ZONE else zone for zone in row]
            for row in self.zones.tolist()
        ]
        return MapSnapshot(
            width=self.width,
            height=self.height,
            tiles=tiles,
            zones=zones,
            zone_count=self.zone_count,
            player_zone_id=self.player_zone_id,
        )

    @classmethod
    def from_snapshot(cls, snapshot: MapSnapshot) -> "WorldMap":
        """Rebuild a grid verbatim from a snapshot.

        Dimensions are clamped to [1, settings.max_map_size] and the zone
        count floored to 0. Rows that are too short keep plains/unassigned.
        Unknown terrain tags degrade to plains and zone ids outside
        [0, MAX_ZONE_ID] to unassigned instead of failing the load.
        """
        width = max(1, min(settings.max_map_size, int(snapshot.width)))
        height = max(1, min(settings.max_map_size, int(snapshot.height)))
        if (width, height) != (snapshot.width, snapshot.height):
            logger.warning(
                "Snapshot dimensions clamped",
                width=snapshot.width,
                height=snapshot.height,
                clamped_width=width,
                clamped_height=height,
            )
        world = cls.filled(width, height)
        unknown = 0
        bad_zones = 0

        for y, row in enumerate(snapshot.tiles[:height]):
            for x, name in enumerate(row[:width]):
                try:
                    world.tiles[y, x] = int(terrain_from_name(name))
                except ValueError:
                    unknown += 1

        for y, row in enumerate(snapshot.zones[:height]):
            for x, zone in enumerate(row[:width]):
                if zone is None:
                    continue
                if not 0 <= zone <= MAX_ZONE_ID:
                    bad_zones += 1
                    continue
                world.zones[y, x] = int(zone)

        if unknown:
            logger.warning("Unknown terrain tags replaced with plains", count=unknown)
        if bad_zones:
            logger.warning("Out-of-range zone ids dropped", count=bad_zones)

        world.zone_count = max(0, min(MAX_ZONE_ID + 1, int(snapshot.zone_count)))
        player_zone_id = snapshot.player_zone_id
        if player_zone_id is not None and not 0 <= player_zone_id <= MAX_ZONE_ID:
            logger.warning("Out-of-range player zone dropped", player_zone_id=player_zone_id)
            player_zone_id = None
        world.player_zone_id = None if player_zone_id is None else int(player_zone_id)
        return world
