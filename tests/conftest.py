"""Shared fixtures for building small hand-made worlds."""

import os

# Must be set before py_realm.config is imported
os.environ["REALM_DATABASE_URL"] = "sqlite://"

import numpy as np
import pytest

from py_realm.core.placement import PlacementEngine
from py_realm.core.terrain import TerrainType
from py_realm.core.world_generator import WorldGenerator
from py_realm.core.world_map import WorldMap
from py_realm.core.xorshift_prng import XorShiftPRNG


def build_world(width, height, terrain=TerrainType.PLAINS, zone_mask=None, player_zone_id=0):
    """Uniform world whose player zone covers zone_mask (everything by default)."""
    world = WorldMap.filled(width, height, terrain)
    if zone_mask is None:
        zone_mask = np.ones((height, width), dtype=bool)
    world.zones[zone_mask] = 0
    world.zone_count = 1
    world.player_zone_id = player_zone_id
    return world


def generator_for(world):
    """WorldGenerator owning a copy of a hand-made world."""
    return WorldGenerator(XorShiftPRNG(1), initial_map=world.to_snapshot())


@pytest.fixture
def make_world():
    return build_world


@pytest.fixture
def make_generator():
    return generator_for


@pytest.fixture
def make_engine():
    """Factory: PlacementEngine over a hand-made world."""

    def _make(world, initial=None):
        return PlacementEngine(generator_for(world), initial)

    return _make


@pytest.fixture
def plains_engine(make_engine):
    """10x10 plains, all in the player zone."""
    return make_engine(build_world(10, 10))
