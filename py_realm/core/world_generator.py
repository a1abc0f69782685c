"""
Procedural world generation.

This module builds the playable grid in a fixed pipeline, every stage
drawing from the same XorShiftPRNG:

1. Base fill with plains
2. Ocean layout (edge, corner, center lake or none) plus majority smoothing
3. Clustered rocks and forest ranked from smoothed noise fields
4. Zero to two rivers carved between coast, rock clumps and older rivers
5. Sand near water
6. Voronoi zoning with Lloyd relaxation and a random player zone

Changing the order of draws changes every world generated from a seed, so
stages must not be reordered.
"""

from collections import deque
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np
import structlog
from scipy import ndimage

from ..utils.numeric import clamp, distance_sq, round_half_up
from .snapshot import MapSnapshot
from .terrain import TerrainType
from .world_map import UNASSIGNED_ZONE, PlayerStateSummary, WorldMap
from .xorshift_prng import XorShiftPRNG

logger = structlog.get_logger()

PLAINS = int(TerrainType.PLAINS)
FOREST = int(TerrainType.FOREST)
ROCKS = int(TerrainType.ROCKS)
RIVER = int(TerrainType.RIVER)
OCEAN = int(TerrainType.OCEAN)

OCEAN_LAYOUTS = (
    "west",
    "east",
    "north",
    "south",
    "north-west",
    "north-east",
    "south-west",
    "south-east",
    "center",
    "none",
)

# 8-neighbourhood count kernel
_NEIGHBOUR_KERNEL = np.array([[1, 1, 1], [1, 0, 1], [1, 1, 1]])
# Weighted blur: the center counts twice
_BLUR_KERNEL = np.array([[1.0, 1.0, 1.0], [1.0, 2.0, 1.0], [1.0, 1.0, 1.0]])
# N, E, S, W
_CARDINAL_DIRECTIONS = ((0, -1), (1, 0), (0, 1), (-1, 0))

Cell = Tuple[int, int]


@dataclass
class WorldGenOptions:
    """World generation tunables."""

    default_width: int = 30
    default_height: int = 20
    min_size: int = 8  # Smallest width/height a generated map may have

    # Ocean
    corner_depth_scale: float = 0.72  # Two carves combine in corner layouts
    edge_smoothing_passes: int = 1
    center_smoothing_passes: int = 2
    smoothing_threshold: int = 5  # Ocean neighbours (of 8) that flood a cell

    # Clustered biomes
    noise_smoothing_passes: int = 3
    rock_fraction: float = 0.11
    forest_fraction: float = 0.28
    rank_jitter: float = 0.02

    # Rivers
    max_rivers: int = 2
    min_river_width: int = 2
    max_river_width: int = 3

    # Sand chances
    sand_ocean_chance: float = 0.78
    sand_river_chance: float = 0.5
    sand_near_water_chance: float = 0.14
    sand_water_radius: int = 2

    # Zoning
    tiles_per_zone: int = 70
    min_zones: int = 2
    max_zones: int = 12
    min_tiles_per_zone: int = 25
    lloyd_iterations: int = 3


class WorldGenerator:
    """Generates and owns the world grid.

    The grid is read-only to callers; the only writes are ``set_tile`` and
    ``set_zone`` (and wholesale regeneration or restore).
    """

    def __init__(
        self,
        prng: XorShiftPRNG,
        width: Optional[int] = None,
        height: Optional[int] = None,
        initial_map: Optional[MapSnapshot] = None,
        options: Optional[WorldGenOptions] = None,
    ):
        """
        Initialize the generator and build (or restore) a grid.

        Args:
            prng: Session PRNG, shared with the placement engine
            width: Grid width, defaults to options.default_width
            height: Grid height, defaults to options.default_height
            initial_map: Snapshot to restore instead of generating
            options: Generation tunables
        """
        self.prng = prng
        self.options = options or WorldGenOptions()
        self.ocean_layout: Optional[str] = None

        if initial_map is not None:
            self.world = WorldMap.from_snapshot(initial_map)
            return

        self.world = self.generate(
            self._clamp_size(width, self.options.default_width),
            self._clamp_size(height, self.options.default_height),
        )

    def get_map_ref(self) -> WorldMap:
        """The live grid. Callers must not mutate it directly."""
        return self.world

    def get_player_state_summary(self) -> PlayerStateSummary:
        return self.world.summarize_player_state()

    def regenerate(
        self,
        width: Optional[int] = None,
        height: Optional[int] = None,
        initial_map: Optional[MapSnapshot] = None,
    ) -> WorldMap:
        """Replace the grid wholesale, from a snapshot or a fresh generation."""
        if initial_map is not None:
            self.world = WorldMap.from_snapshot(initial_map)
            return self.world

        self.world = self.generate(
            self._clamp_size(width, self.world.width),
            self._clamp_size(height, self.world.height),
        )
        return self.world

    def set_tile(self, x: int, y: int, terrain: TerrainType) -> bool:
        """Single-cell terrain write used by placement and field logic."""
        return self.world.set_tile(x, y, terrain)

    def set_zone(self, x: int, y: int, zone_id: Optional[int]) -> bool:
        """Single-cell zone write used by border expansion."""
        return self.world.set_zone(x, y, zone_id)

    def _clamp_size(self, value: Optional[float], default: int) -> int:
        if value is None:
            value = default
        return max(self.options.min_size, int(np.floor(value)))

    def generate(self, width: int, height: int) -> WorldMap:
        """Run the full pipeline and return a new grid."""
        tiles = np.full((height, width), PLAINS, dtype=np.uint8)

        self.ocean_layout = self._apply_ocean(tiles)
        self._apply_clustered_biomes(tiles)
        river_count = self._apply_rivers(tiles)
        self._apply_sand(tiles)
        zones, zone_count, player_zone_id = self._generate_zones(tiles)

        world = WorldMap(
            width=width,
            height=height,
            tiles=tiles,
            zones=zones,
            zone_count=zone_count,
            player_zone_id=player_zone_id,
        )
        logger.info(
            "World generated",
            width=width,
            height=height,
            ocean_layout=self.ocean_layout,
            rivers=river_count,
            zones=zone_count,
            player_zone_id=player_zone_id,
        )
        return world

    # Ocean

    def _apply_ocean(self, tiles: np.ndarray) -> str:
        layout = OCEAN_LAYOUTS[self.prng.random_int(0, len(OCEAN_LAYOUTS) - 1)]
        if layout == "none":
            return layout

        if layout == "center":
            self._apply_center_ocean(tiles)
            self._smooth_ocean(tiles, self.options.center_smoothing_passes)
            return layout

        sides = layout.split("-")
        depth_scale = self.options.corner_depth_scale if len(sides) > 1 else 1.0
        for side in sides:
            self._apply_ocean_from_side(tiles, side, depth_scale)

        self._smooth_ocean(tiles, self.options.edge_smoothing_passes)
        return layout

    def _apply_ocean_from_side(self, tiles: np.ndarray, side: str, depth_scale: float) -> None:
        """Carve ocean inward from one edge with a drifting coastline."""
        height, width = tiles.shape
        horizontal = side in ("west", "east")
        span = width if horizontal else height
        length = height if horizontal else width

        min_depth_base = max(2, int(min(width, height) * 0.12))
        min_depth = max(min_depth_base, int(span * 0.12 * depth_scale))
        max_depth = max(min_depth + 1, int(span * 0.34 * depth_scale))
        depth_cap = max(min_depth + 1, int(span * 0.46 * depth_scale))
        base_depth = self.prng.random_int(min_depth, max_depth)
        drift_limit = max(2, int(span * 0.08))
        drift = 0

        for i in range(length):
            drift = clamp(drift + self.prng.random_int(-1, 1), -drift_limit, drift_limit)
            depth = clamp(base_depth + drift + self.prng.random_int(-1, 1), min_depth, depth_cap)

            if side == "west":
                tiles[i, :depth] = OCEAN
            elif side == "east":
                tiles[i, max(0, width - depth):] = OCEAN
            elif side == "north":
                tiles[:depth, i] = OCEAN
            else:
                tiles[max(0, height - depth):, i] = OCEAN

    def _apply_center_ocean(self, tiles: np.ndarray) -> None:
        """Fill a jittered ellipse around the map center."""
        height, width = tiles.shape
        center_x = width / 2 + self.prng.random_int(-2, 2)
        center_y = height / 2 + self.prng.random_int(-2, 2)
        radius_x = max(3, int(width * (0.16 + self.prng.random_float() * 0.1)))
        radius_y = max(3, int(height * (0.16 + self.prng.random_float() * 0.1)))

        for y in range(height):
            for x in range(width):
                nx = (x - center_x) / max(1, radius_x)
                ny = (y - center_y) / max(1, radius_y)
                dist = nx * nx + ny * ny
                jitter = (self.prng.random_float() - 0.5) * 0.22
                if dist + jitter < 1:
                    tiles[y, x] = OCEAN

    def _smooth_ocean(self, tiles: np.ndarray, passes: int) -> None:
        """Flood interior cells that are mostly surrounded by ocean."""
        height, width = tiles.shape
        for _ in range(passes):
            ocean_neighbours = self._count_neighbours(tiles, OCEAN)
            flood = ocean_neighbours >= self.options.smoothing_threshold
            # Border cells are never smoothed
            flood[0, :] = False
            flood[height - 1, :] = False
            flood[:, 0] = False
            flood[:, width - 1] = False
            tiles[flood] = OCEAN

    # Clustered biomes

    def _apply_clustered_biomes(self, tiles: np.ndarray) -> None:
        """Turn the highest-ranked plains into rocks, then forest."""
        eligible = [(int(x), int(y)) for y, x in np.argwhere(tiles == PLAINS)]
        if not eligible:
            return

        height, width = tiles.shape
        rock_field = self._build_smoothed_noise_field(width, height, self.options.noise_smoothing_passes)
        forest_field = self._build_smoothed_noise_field(width, height, self.options.noise_smoothing_passes)

        rock_count = max(1, int(len(eligible) * self.options.rock_fraction))
        forest_count = max(1, int(len(eligible) * self.options.forest_fraction))

        chosen_rock = set(self._rank_cells(eligible, rock_field)[:rock_count])
        for x, y in chosen_rock:
            tiles[y, x] = ROCKS

        remaining = [cell for cell in eligible if cell not in chosen_rock]
        for x, y in self._rank_cells(remaining, forest_field)[:forest_count]:
            if tiles[y, x] == PLAINS:
                tiles[y, x] = FOREST

    def _rank_cells(self, cells: List[Cell], field: np.ndarray) -> List[Cell]:
        """Sort cells by field value, highest first, with a little jitter."""
        keys = [field[y, x] + self.prng.random_float() * self.options.rank_jitter for x, y in cells]
        order = sorted(range(len(cells)), key=lambda i: -keys[i])
        return [cells[i] for i in order]

    def _build_smoothed_noise_field(self, width: int, height: int, passes: int) -> np.ndarray:
        field = np.array(
            [[self.prng.random_float() for _ in range(width)] for _ in range(height)],
            dtype=np.float64,
        )
        # Edge cells average over their in-bounds neighbours only
        weights = ndimage.convolve(np.ones_like(field), _BLUR_KERNEL, mode="constant", cval=0.0)
        for _ in range(passes):
            field = ndimage.convolve(field, _BLUR_KERNEL, mode="constant", cval=0.0) / weights
        return field

    # Rivers

    def _apply_rivers(self, tiles: np.ndarray) -> int:
        river_count = self.prng.random_int(0, self.options.max_rivers)
        carved = 0
        for i in range(river_count):
            start = self._pick_river_start(tiles, allow_river_start=i > 0)
            if start is None:
                continue

            target = self._pick_river_target(tiles, start)
            river_width = self.prng.random_int(self.options.min_river_width, self.options.max_river_width)
            self._carve_river_path(tiles, start, target, river_width)
            carved += 1
        return carved

    def _pick_river_start(self, tiles: np.ndarray, allow_river_start: bool) -> Optional[Tuple[int, int, str]]:
        coast_cells = self._collect_coastline_land_cells(tiles)
        river_cells = self._collect_cells(tiles == RIVER) if allow_river_start else []
        rock_anchor = self._find_large_rock_clump_anchor(tiles)

        available = []
        if coast_cells:
            available.append("ocean")
        if rock_anchor is not None:
            available.append("rocks")
        if river_cells:
            available.append("river")

        if not available:
            return None

        start_type = available[self.prng.random_int(0, len(available) - 1)]
        if start_type == "ocean":
            x, y = coast_cells[self.prng.random_int(0, len(coast_cells) - 1)]
        elif start_type == "river":
            x, y = river_cells[self.prng.random_int(0, len(river_cells) - 1)]
        else:
            x, y = rock_anchor
        return x, y, start_type

    def _pick_river_target(self, tiles: np.ndarray, start: Tuple[int, int, str]) -> Optional[Cell]:
        """Pick a destination of a different category than the start."""
        sx, sy, start_type = start
        origin = (sx, sy)
        coastline = [c for c in self._collect_coastline_land_cells(tiles) if c != origin]
        inland = [c for c in self._collect_cells(tiles != OCEAN) if c != origin]
        river_cells = [c for c in self._collect_cells(tiles == RIVER) if c != origin]
        rock_anchor = self._find_large_rock_clump_anchor(tiles)

        if start_type == "ocean":
            if rock_anchor is not None:
                return rock_anchor
            return self._select_farthest_cell(origin, inland)

        if start_type == "rocks":
            if coastline:
                return self._select_farthest_cell(origin, coastline)
            if river_cells:
                return self._select_farthest_cell(origin, river_cells)
            return self._select_farthest_cell(origin, inland)

        if coastline:
            return self._select_farthest_cell(origin, coastline)
        if rock_anchor is not None:
            return rock_anchor
        return self._select_farthest_cell(origin, inland)

    def _carve_river_path(
        self,
        tiles: np.ndarray,
        start: Tuple[int, int, str],
        target: Optional[Cell],
        river_width: int,
    ) -> None:
        height, width = tiles.shape
        x, y, _ = start
        prev_dx = 0
        prev_dy = 0
        max_steps = width + height + max(width, height) * 2

        for _ in range(max_steps):
            if not (0 <= x < width and 0 <= y < height):
                break
            if tiles[y, x] == OCEAN:
                break

            self._paint_river_cross_section(tiles, x, y, prev_dx, prev_dy, river_width)

            if target is not None and distance_sq(x, y, target[0], target[1]) <= 2:
                break

            step = self._choose_next_river_step(tiles, x, y, target, prev_dx, prev_dy)
            if step is None:
                break

            prev_dx = step[0] - x
            prev_dy = step[1] - y
            x, y = step

    def _paint_river_cross_section(
        self, tiles: np.ndarray, x: int, y: int, dx: int, dy: int, river_width: int
    ) -> None:
        self._set_river_cell(tiles, x, y)

        lateral = self._lateral_directions(dx, dy)
        if river_width <= 1 or not lateral:
            return

        if river_width == 2:
            side_x, side_y = lateral[self.prng.random_int(0, len(lateral) - 1)]
            self._set_river_cell(tiles, x + side_x, y + side_y)
            return

        if len(lateral) == 2:
            for side_x, side_y in lateral:
                self._set_river_cell(tiles, x + side_x, y + side_y)
            return

        # Start point or diagonal travel: pick one axis for both banks
        if self.prng.random_chance(0.5):
            pair = ((0, -1), (0, 1))
        else:
            pair = ((-1, 0), (1, 0))
        for side_x, side_y in pair:
            self._set_river_cell(tiles, x + side_x, y + side_y)

    @staticmethod
    def _lateral_directions(dx: int, dy: int) -> List[Cell]:
        if abs(dx) > abs(dy):
            return [(0, -1), (0, 1)]
        if abs(dy) > abs(dx):
            return [(-1, 0), (1, 0)]
        return [(0, -1), (1, 0), (0, 1), (-1, 0)]

    @staticmethod
    def _set_river_cell(tiles: np.ndarray, x: int, y: int) -> None:
        height, width = tiles.shape
        if not (0 <= x < width and 0 <= y < height):
            return
        if tiles[y, x] == OCEAN:
            return
        tiles[y, x] = RIVER

    def _choose_next_river_step(
        self,
        tiles: np.ndarray,
        x: int,
        y: int,
        target: Optional[Cell],
        prev_dx: int,
        prev_dy: int,
    ) -> Optional[Cell]:
        """Score the 8 neighbours and return the best one."""
        height, width = tiles.shape
        best = None
        best_score = float("-inf")
        current_dist = distance_sq(x, y, target[0], target[1]) if target is not None else 0

        for dy in (-1, 0, 1):
            for dx in (-1, 0, 1):
                if dx == 0 and dy == 0:
                    continue

                nx = x + dx
                ny = y + dy
                if not (0 <= nx < width and 0 <= ny < height):
                    continue

                tile = tiles[ny, nx]
                score = self.prng.random_float() * 0.65

                if target is not None:
                    next_dist = distance_sq(nx, ny, target[0], target[1])
                    score += (current_dist - next_dist) * 0.28

                if tile == OCEAN:
                    score -= 3.6
                elif tile == RIVER:
                    score -= 1.1

                if tile == ROCKS:
                    score += 0.12
                if dx != 0 and dy != 0:
                    score -= 0.15
                if prev_dx == -dx and prev_dy == -dy:
                    score -= 0.85

                if score > best_score:
                    best_score = score
                    best = (nx, ny)

        return best

    @staticmethod
    def _collect_cells(mask: np.ndarray) -> List[Cell]:
        """Row-major (x, y) list of the cells set in a mask."""
        return [(int(x), int(y)) for y, x in np.argwhere(mask)]

    def _collect_coastline_land_cells(self, tiles: np.ndarray) -> List[Cell]:
        """Land cells with an ocean cell directly N, E, S or W."""
        ocean = tiles == OCEAN
        near_ocean = np.zeros_like(ocean)
        near_ocean[1:, :] |= ocean[:-1, :]
        near_ocean[:-1, :] |= ocean[1:, :]
        near_ocean[:, 1:] |= ocean[:, :-1]
        near_ocean[:, :-1] |= ocean[:, 1:]
        return self._collect_cells(near_ocean & ~ocean)

    def _find_large_rock_clump_anchor(self, tiles: np.ndarray) -> Optional[Cell]:
        """Cell nearest the centroid of the largest rock cluster, if big enough."""
        labels, cluster_count = ndimage.label(tiles == ROCKS)
        if cluster_count == 0:
            return None

        sizes = np.bincount(labels.ravel())[1:]
        largest_label = int(np.argmax(sizes)) + 1
        height, width = tiles.shape
        min_clump_size = max(6, int(min(width, height) * 0.35))
        if sizes[largest_label - 1] < min_clump_size:
            return None

        cluster = labels == largest_label
        first_y, first_x = np.argwhere(cluster)[0]
        # Ties go to the cell discovered first by the flood fill
        cells = self._flood_order(cluster, (int(first_x), int(first_y)))
        avg_x = sum(x for x, _ in cells) / len(cells)
        avg_y = sum(y for _, y in cells) / len(cells)

        best = cells[0]
        best_dist = float("inf")
        for cell in cells:
            dist = distance_sq(cell[0], cell[1], avg_x, avg_y)
            if dist < best_dist:
                best_dist = dist
                best = cell
        return best

    @staticmethod
    def _flood_order(mask: np.ndarray, start: Cell) -> List[Cell]:
        """Cells of a 4-connected mask region in breadth-first discovery order."""
        height, width = mask.shape
        visited = np.zeros_like(mask, dtype=bool)
        visited[start[1], start[0]] = True
        queue = deque([start])
        order = []

        while queue:
            x, y = queue.popleft()
            order.append((x, y))
            for dx, dy in _CARDINAL_DIRECTIONS:
                nx = x + dx
                ny = y + dy
                if not (0 <= nx < width and 0 <= ny < height):
                    continue
                if visited[ny, nx] or not mask[ny, nx]:
                    continue
                visited[ny, nx] = True
                queue.append((nx, ny))
        return order

    @staticmethod
    def _select_farthest_cell(origin: Cell, candidates: List[Cell]) -> Optional[Cell]:
        if not candidates:
            return None

        best = candidates[0]
        best_dist = distance_sq(origin[0], origin[1], best[0], best[1])
        for candidate in candidates[1:]:
            dist = distance_sq(origin[0], origin[1], candidate[0], candidate[1])
            if dist > best_dist:
                best_dist = dist
                best = candidate
        return best

    # Sand

    def _apply_sand(self, tiles: np.ndarray) -> None:
        """Scatter sand on plains next to water, judged on the pre-sand grid."""
        ocean_adjacent = self._count_neighbours(tiles, OCEAN) > 0
        river_adjacent = self._count_neighbours(tiles, RIVER) > 0

        radius = self.options.sand_water_radius
        water = ((tiles == OCEAN) | (tiles == RIVER)).astype(np.int32)
        window = np.ones((radius * 2 + 1, radius * 2 + 1), dtype=np.int32)
        near_water = ndimage.convolve(water, window, mode="constant", cval=0) > 0

        height, width = tiles.shape
        plains = tiles == PLAINS
        for y in range(height):
            for x in range(width):
                if not plains[y, x]:
                    continue

                chance = 0.0
                if ocean_adjacent[y, x]:
                    chance = self.options.sand_ocean_chance
                elif river_adjacent[y, x]:
                    chance = self.options.sand_river_chance
                elif near_water[y, x]:
                    chance = self.options.sand_near_water_chance

                if self.prng.random_chance(chance):
                    tiles[y, x] = int(TerrainType.SAND)

    @staticmethod
    def _count_neighbours(tiles: np.ndarray, terrain: int) -> np.ndarray:
        """Per-cell count of in-bounds 8-neighbours with the given terrain."""
        matches = (tiles == terrain).astype(np.int32)
        return ndimage.convolve(matches, _NEIGHBOUR_KERNEL, mode="constant", cval=0)

    # Zoning

    def estimate_zone_count(self, land_tile_count: int) -> int:
        rough_count = round_half_up(land_tile_count / self.options.tiles_per_zone)
        max_zones = max(
            self.options.min_zones,
            min(self.options.max_zones, land_tile_count // self.options.min_tiles_per_zone),
        )
        return clamp(rough_count, self.options.min_zones, max_zones)

    def _generate_zones(self, tiles: np.ndarray) -> Tuple[np.ndarray, int, Optional[int]]:
        """Partition land into Voronoi zones and pick the player's zone.

        Returns:
            Tuple of (zone grid, non-empty zone count, player zone id)
        """
        zones = np.full(tiles.shape, UNASSIGNED_ZONE, dtype=np.int16)
        land_yx = np.argwhere(tiles != OCEAN)
        if len(land_yx) == 0:
            logger.info("No land left for zoning")
            return zones, 0, None

        # (x, y) coordinates, row-major
        land = land_yx[:, ::-1].astype(np.float64)
        zone_count = self.estimate_zone_count(len(land))
        centroids = self._pick_initial_centroids(land, zone_count)

        for _ in range(self.options.lloyd_iterations):
            assignment = self._assign_to_centroids(land, centroids)
            centroids = self._recenter(land, assignment, centroids)

        assignment = self._assign_to_centroids(land, centroids)
        zones[land_yx[:, 0], land_yx[:, 1]] = assignment

        group_sizes = np.bincount(assignment, minlength=len(centroids))
        non_empty = [int(zone_id) for zone_id in np.nonzero(group_sizes)[0]]
        player_zone_id = non_empty[self.prng.random_int(0, len(non_empty) - 1)] if non_empty else None

        return zones, len(non_empty), player_zone_id

    def _pick_initial_centroids(self, land: np.ndarray, zone_count: int) -> np.ndarray:
        """Farthest-point sampling, starting from a random land cell."""
        first = land[self.prng.random_int(0, len(land) - 1)]
        centroids = [first]
        target_count = min(zone_count, len(land))

        nearest = ((land - first) ** 2).sum(axis=1)
        while len(centroids) < target_count:
            best = land[int(np.argmax(nearest))]
            centroids.append(best)
            nearest = np.minimum(nearest, ((land - best) ** 2).sum(axis=1))

        return np.array(centroids, dtype=np.float64)

    @staticmethod
    def _assign_to_centroids(land: np.ndarray, centroids: np.ndarray) -> np.ndarray:
        """Index of the nearest centroid per cell (lowest index on ties)."""
        diff = land[:, None, :] - centroids[None, :, :]
        dist = (diff ** 2).sum(axis=2)
        return np.argmin(dist, axis=1)

    @staticmethod
    def _recenter(land: np.ndarray, assignment: np.ndarray, previous: np.ndarray) -> np.ndarray:
        """Move each centroid to its group mean; empty groups stay put."""
        centroids = previous.copy()
        for i in range(len(previous)):
            members = land[assignment == i]
            if len(members) > 0:
                centroids[i] = members.mean(axis=0)
        return centroids
