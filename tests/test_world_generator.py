"""
Tests for procedural world generation.

Tests cover:
- Determinism for identical seeds
- Grid coverage and zone assignment
- Size clamping and regeneration
- Zone count estimation
- Zoning on maps without land
- Individual pipeline stages on hand-made arrays
"""

import numpy as np
import pytest

from py_realm.core.terrain import TerrainType
from py_realm.core.world_generator import OCEAN_LAYOUTS, WorldGenerator, WorldGenOptions
from py_realm.core.world_map import UNASSIGNED_ZONE
from py_realm.core.xorshift_prng import XorShiftPRNG


class TestWorldGenOptions:
    """Test generation options."""

    def test_default_options(self):
        options = WorldGenOptions()
        assert options.default_width == 30
        assert options.default_height == 20
        assert options.min_size == 8
        assert options.max_rivers == 2
        assert options.tiles_per_zone == 70


class TestDeterminism:
    """Identically seeded runs must agree cell for cell."""

    def test_seed_42(self):
        first = WorldGenerator(XorShiftPRNG(42), 30, 20)
        second = WorldGenerator(XorShiftPRNG(42), 30, 20)

        np.testing.assert_array_equal(first.world.tiles, second.world.tiles)
        np.testing.assert_array_equal(first.world.zones, second.world.zones)
        assert first.ocean_layout == second.ocean_layout
        assert first.ocean_layout in OCEAN_LAYOUTS
        assert first.world.player_zone_id == second.world.player_zone_id
        assert first.prng.get_state() == second.prng.get_state()

    @pytest.mark.parametrize("seed", [1, 7, 2024, 987654321])
    def test_other_seeds(self, seed):
        first = WorldGenerator(XorShiftPRNG(seed), 24, 16)
        second = WorldGenerator(XorShiftPRNG(seed), 24, 16)
        np.testing.assert_array_equal(first.world.tiles, second.world.tiles)
        np.testing.assert_array_equal(first.world.zones, second.world.zones)

    def test_different_seeds_differ(self):
        worlds = [WorldGenerator(XorShiftPRNG(seed), 30, 20).world for seed in (1, 2, 3)]
        assert not all(np.array_equal(worlds[0].tiles, w.tiles) for w in worlds[1:])


class TestCoverage:
    """Test the structural invariants of generated grids."""

    @pytest.fixture(params=[3, 42, 1234, 55555, 8675309])
    def generator(self, request):
        return WorldGenerator(XorShiftPRNG(request.param), 30, 20)

    def test_shape(self, generator):
        world = generator.world
        assert world.tiles.shape == (20, 30)
        assert world.zones.shape == (20, 30)

    def test_terrain_codes_valid(self, generator):
        codes = set(np.unique(generator.world.tiles).tolist())
        generated = {
            TerrainType.PLAINS,
            TerrainType.FOREST,
            TerrainType.ROCKS,
            TerrainType.SAND,
            TerrainType.RIVER,
            TerrainType.OCEAN,
        }
        assert codes <= {int(t) for t in generated}

    def test_ocean_never_zoned(self, generator):
        world = generator.world
        ocean = world.tiles == TerrainType.OCEAN
        assert np.all(world.zones[ocean] == UNASSIGNED_ZONE)

    def test_land_always_zoned(self, generator):
        world = generator.world
        land = world.tiles != TerrainType.OCEAN
        assert np.all(world.zones[land] >= 0)

    def test_player_zone(self, generator):
        world = generator.world
        if not np.any(world.tiles != TerrainType.OCEAN):
            assert world.player_zone_id is None
            return
        assert world.player_zone_id is not None
        assert np.any(world.zones == world.player_zone_id)

    def test_zone_count_matches_grid(self, generator):
        world = generator.world
        distinct = set(np.unique(world.zones).tolist()) - {UNASSIGNED_ZONE}
        assert world.zone_count == len(distinct)

    def test_summary_consistent(self, generator):
        world = generator.world
        summary = generator.get_player_state_summary()
        assert summary.size == int(np.count_nonzero(world.player_zone_mask()))
        assert summary.forest + summary.stone + summary.river + summary.plains == summary.size


class TestSizes:
    """Test size handling."""

    def test_defaults(self):
        generator = WorldGenerator(XorShiftPRNG(5))
        assert (generator.world.width, generator.world.height) == (30, 20)

    def test_minimum_size(self):
        generator = WorldGenerator(XorShiftPRNG(5), 3, 2)
        assert (generator.world.width, generator.world.height) == (8, 8)

    def test_fractional_size_floored(self):
        generator = WorldGenerator(XorShiftPRNG(5), 12.9, 10.2)
        assert (generator.world.width, generator.world.height) == (12, 10)

    def test_regenerate_keeps_dimensions(self):
        generator = WorldGenerator(XorShiftPRNG(5), 16, 12)
        generator.regenerate()
        assert (generator.world.width, generator.world.height) == (16, 12)

    def test_regenerate_from_snapshot(self):
        source = WorldGenerator(XorShiftPRNG(5), 16, 12)
        snapshot = source.world.to_snapshot()

        target = WorldGenerator(XorShiftPRNG(99), 10, 10)
        target.regenerate(initial_map=snapshot)
        np.testing.assert_array_equal(target.world.tiles, source.world.tiles)
        np.testing.assert_array_equal(target.world.zones, source.world.zones)

    def test_restore_does_not_draw(self):
        prng = XorShiftPRNG(5)
        source = WorldGenerator(XorShiftPRNG(5), 16, 12)
        WorldGenerator(prng, initial_map=source.world.to_snapshot())
        assert prng.call_count == 0


class TestWrites:
    """Test the single-cell writers."""

    def test_set_tile(self):
        generator = WorldGenerator(XorShiftPRNG(5), 10, 10)
        assert generator.set_tile(0, 0, TerrainType.FIELD)
        assert generator.world.tile_at(0, 0) == TerrainType.FIELD
        assert not generator.set_tile(10, 0, TerrainType.FIELD)

    def test_set_zone(self):
        generator = WorldGenerator(XorShiftPRNG(5), 10, 10)
        assert generator.set_zone(1, 1, 3)
        assert generator.world.zone_at(1, 1) == 3


class TestZoning:
    """Test zone count estimation and Voronoi zoning."""

    def test_estimate_zone_count(self):
        generator = WorldGenerator(XorShiftPRNG(5), 8, 8)
        assert generator.estimate_zone_count(600) == 9
        assert generator.estimate_zone_count(30) == 2
        assert generator.estimate_zone_count(5000) == 12

    def test_all_ocean(self):
        generator = WorldGenerator(XorShiftPRNG(5), 8, 8)
        tiles = np.full((8, 8), TerrainType.OCEAN, dtype=np.uint8)
        zones, zone_count, player_zone_id = generator._generate_zones(tiles)
        assert np.all(zones == UNASSIGNED_ZONE)
        assert zone_count == 0
        assert player_zone_id is None

    def test_all_land(self):
        generator = WorldGenerator(XorShiftPRNG(5), 8, 8)
        tiles = np.full((20, 20), TerrainType.PLAINS, dtype=np.uint8)
        zones, zone_count, player_zone_id = generator._generate_zones(tiles)
        assert np.all(zones >= 0)
        # 400 land tiles -> round(400 / 70) = 6 requested zones
        assert 2 <= zone_count <= 6
        assert player_zone_id in set(np.unique(zones).tolist())


PLAINS = int(TerrainType.PLAINS)
OCEAN = int(TerrainType.OCEAN)
FOREST = int(TerrainType.FOREST)
ROCKS = int(TerrainType.ROCKS)
RIVER = int(TerrainType.RIVER)
SAND = int(TerrainType.SAND)


@pytest.fixture
def generator():
    """Small generator whose stages are run on hand-made arrays."""
    return WorldGenerator(XorShiftPRNG(3), 8, 8)


def plains(width, height):
    return np.full((height, width), PLAINS, dtype=np.uint8)


class TestOceanStage:
    """Test ocean carving and smoothing."""

    def test_five_ocean_neighbours_flood(self, generator):
        tiles = plains(5, 5)
        for x, y in [(1, 1), (2, 1), (3, 1), (1, 2), (3, 2)]:
            tiles[y, x] = OCEAN

        generator._smooth_ocean(tiles, 1)
        assert tiles[2, 2] == OCEAN
        assert np.count_nonzero(tiles == OCEAN) == 6

    def test_four_ocean_neighbours_do_not_flood(self, generator):
        tiles = plains(5, 5)
        for x, y in [(1, 1), (2, 1), (3, 1), (1, 2)]:
            tiles[y, x] = OCEAN

        generator._smooth_ocean(tiles, 1)
        assert tiles[2, 2] == PLAINS
        assert np.count_nonzero(tiles == OCEAN) == 4

    def test_border_cells_never_flood(self, generator):
        tiles = np.full((5, 5), OCEAN, dtype=np.uint8)
        tiles[0, 2] = PLAINS
        tiles[2, 0] = PLAINS
        tiles[2, 2] = PLAINS

        generator._smooth_ocean(tiles, 2)
        assert tiles[0, 2] == PLAINS
        assert tiles[2, 0] == PLAINS
        assert tiles[2, 2] == OCEAN

    @pytest.mark.parametrize(
        "layout,expected",
        [
            ("east", [("east", 1.0)]),
            ("north-west", [("north", 0.72), ("west", 0.72)]),
            ("south-east", [("south", 0.72), ("east", 0.72)]),
        ],
    )
    def test_corner_layouts_scale_depth(self, generator, monkeypatch, layout, expected):
        calls = []
        monkeypatch.setattr(generator.prng, "random_int", lambda lo, hi: OCEAN_LAYOUTS.index(layout))
        monkeypatch.setattr(
            generator,
            "_apply_ocean_from_side",
            lambda tiles, side, scale: calls.append((side, scale)),
        )

        assert generator._apply_ocean(plains(8, 8)) == layout
        assert calls == expected

    @pytest.mark.parametrize("scale,min_depth,depth_cap", [(1.0, 7, 27), (0.72, 5, 19)])
    def test_edge_depth_bounds(self, generator, scale, min_depth, depth_cap):
        tiles = plains(60, 10)
        generator._apply_ocean_from_side(tiles, "west", scale)

        for row in tiles:
            depth = int(np.count_nonzero(row == OCEAN))
            assert min_depth <= depth <= depth_cap
            assert np.all(row[:depth] == OCEAN)


class TestClusteredBiomes:
    """Test rock and forest counts."""

    def test_counts_on_open_plains(self, generator):
        tiles = plains(10, 10)
        generator._apply_clustered_biomes(tiles)

        assert np.count_nonzero(tiles == ROCKS) == 11
        assert np.count_nonzero(tiles == FOREST) == 28
        assert np.count_nonzero(tiles == PLAINS) == 61

    def test_counts_use_eligible_plains_only(self, generator):
        tiles = plains(10, 10)
        tiles[:, :3] = OCEAN
        generator._apply_clustered_biomes(tiles)

        assert np.count_nonzero(tiles == OCEAN) == 30
        assert np.count_nonzero(tiles == ROCKS) == 7
        assert np.count_nonzero(tiles == FOREST) == 19

    def test_single_plains_cell_becomes_rock(self, generator):
        tiles = np.full((3, 3), OCEAN, dtype=np.uint8)
        tiles[1, 1] = PLAINS
        generator._apply_clustered_biomes(tiles)

        assert tiles[1, 1] == ROCKS
        assert np.count_nonzero(tiles == FOREST) == 0

    def test_no_plains_draws_nothing(self, generator):
        tiles = np.full((4, 4), OCEAN, dtype=np.uint8)
        calls = generator.prng.call_count
        generator._apply_clustered_biomes(tiles)
        assert generator.prng.call_count == calls


class TestRivers:
    """Test river painting."""

    def test_set_river_cell(self):
        tiles = plains(3, 3)
        tiles[0, 0] = OCEAN

        WorldGenerator._set_river_cell(tiles, 1, 1)
        WorldGenerator._set_river_cell(tiles, 0, 0)
        WorldGenerator._set_river_cell(tiles, 5, -1)

        assert tiles[1, 1] == RIVER
        assert tiles[0, 0] == OCEAN
        assert np.count_nonzero(tiles == RIVER) == 1

    def test_single_width_cross_section(self, generator):
        tiles = plains(5, 5)
        generator._paint_river_cross_section(tiles, 2, 2, 1, 0, 1)
        assert np.count_nonzero(tiles == RIVER) == 1

    def test_double_width_cross_section(self, generator):
        tiles = plains(5, 5)
        generator._paint_river_cross_section(tiles, 2, 2, 1, 0, 2)

        assert np.count_nonzero(tiles == RIVER) == 2
        assert tiles[2, 2] == RIVER
        assert tiles[1, 2] == RIVER or tiles[3, 2] == RIVER

    def test_triple_width_cross_section(self, generator):
        tiles = plains(5, 5)
        generator._paint_river_cross_section(tiles, 2, 2, 0, 1, 3)

        assert np.count_nonzero(tiles == RIVER) == 3
        assert np.all(tiles[2, 1:4] == RIVER)

    def test_triple_width_diagonal_picks_one_axis(self, generator):
        tiles = plains(5, 5)
        generator._paint_river_cross_section(tiles, 2, 2, 1, 1, 3)

        assert np.count_nonzero(tiles == RIVER) == 3
        assert np.all(tiles[2, 1:4] == RIVER) or np.all(tiles[1:4, 2] == RIVER)

    def test_cross_section_spares_ocean(self, generator):
        tiles = plains(5, 5)
        tiles[1, 2] = OCEAN
        tiles[3, 2] = OCEAN
        generator._paint_river_cross_section(tiles, 2, 2, 1, 0, 3)

        assert tiles[2, 2] == RIVER
        assert tiles[1, 2] == OCEAN
        assert tiles[3, 2] == OCEAN

    def test_carve_never_overwrites_ocean(self, generator):
        tiles = plains(10, 10)
        tiles[:, 9] = OCEAN
        generator._carve_river_path(tiles, (2, 5, "rocks"), (8, 5), 3)

        assert tiles[5, 2] == RIVER
        assert np.all(tiles[:, 9] == OCEAN)
        assert np.count_nonzero(tiles == RIVER) >= 3

    def test_carve_from_ocean_paints_nothing(self, generator):
        tiles = plains(6, 6)
        tiles[:, 0] = OCEAN
        generator._carve_river_path(tiles, (0, 3, "ocean"), (5, 3), 2)
        assert np.count_nonzero(tiles == RIVER) == 0

    def test_rock_anchor_tie_goes_to_first_discovered(self, generator):
        # Plus-shaped clump: the centroid sits on the middle cell
        tiles = plains(9, 9)
        tiles[4, 2:7] = ROCKS
        tiles[2:7, 4] = ROCKS
        assert generator._find_large_rock_clump_anchor(tiles) == (4, 4)

        # Centroid (2.375, 1.625): (2, 1) and (3, 2) tie. (2, 1) comes first in
        # raster order but the flood fill from (3, 0) reaches (3, 2) first.
        clump = [
            (3, 0), (4, 0), (5, 0), (0, 1), (1, 1), (2, 1), (4, 1), (0, 2),
            (1, 2), (3, 2), (4, 2), (5, 2), (0, 3), (1, 3), (2, 3), (3, 3),
        ]
        tiles = plains(9, 9)
        for x, y in clump:
            tiles[y, x] = ROCKS
        assert generator._find_large_rock_clump_anchor(tiles) == (3, 2)

    def test_flood_order(self):
        mask = np.zeros((3, 3), dtype=bool)
        mask[0, :] = True
        mask[:, 2] = True
        mask[2, :] = True
        order = WorldGenerator._flood_order(mask, (0, 0))
        assert order == [(0, 0), (1, 0), (2, 0), (2, 1), (2, 2), (1, 2), (0, 2)]

    def test_small_rock_clump_has_no_anchor(self, generator):
        tiles = plains(9, 9)
        tiles[0, 0:3] = ROCKS
        assert generator._find_large_rock_clump_anchor(tiles) is None


class TestSandStage:
    """Test sand placement near water."""

    def test_no_sand_away_from_water(self, generator):
        tiles = plains(8, 8)
        generator._apply_sand(tiles)
        assert np.all(tiles == PLAINS)

    def test_only_plains_near_water_convert(self):
        options = WorldGenOptions(
            sand_ocean_chance=1.0, sand_river_chance=1.0, sand_near_water_chance=1.0
        )
        generator = WorldGenerator(XorShiftPRNG(3), 8, 8, options=options)
        tiles = plains(8, 8)
        tiles[:, 0] = OCEAN
        tiles[:, 1] = FOREST

        generator._apply_sand(tiles)
        assert np.all(tiles[:, 0] == OCEAN)
        assert np.all(tiles[:, 1] == FOREST)
        assert np.all(tiles[:, 2] == SAND)
        assert np.all(tiles[:, 3:] == PLAINS)


class TestZoningSteps:
    """Test the centroid helpers used for zoning."""

    def test_recenter_keeps_empty_group(self):
        land = np.array([[0.0, 0.0], [2.0, 0.0], [1.0, 3.0]])
        assignment = np.array([0, 0, 0])
        previous = np.array([[0.0, 0.0], [5.0, 5.0]])

        centroids = WorldGenerator._recenter(land, assignment, previous)
        np.testing.assert_allclose(centroids[0], [1.0, 1.0])
        np.testing.assert_allclose(centroids[1], [5.0, 5.0])

    def test_first_farthest_cell_wins(self, generator, monkeypatch):
        monkeypatch.setattr(generator.prng, "random_int", lambda lo, hi: lo)
        # (2, 0) and (0, 2) are equally far from the first pick
        land = np.array([[0.0, 0.0], [2.0, 0.0], [0.0, 2.0]])

        centroids = generator._pick_initial_centroids(land, 2)
        np.testing.assert_array_equal(centroids, [[0.0, 0.0], [2.0, 0.0]])

    def test_centroid_count_capped_by_land(self, generator):
        land = np.array([[0.0, 0.0], [3.0, 1.0]])
        centroids = generator._pick_initial_centroids(land, 5)
        assert len(centroids) == 2
