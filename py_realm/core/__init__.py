"""
Core world generation and structure placement.
"""

from .xorshift_prng import XorShiftPRNG
from .terrain import TerrainType, terrain_from_name, terrain_name
from .world_map import UNASSIGNED_ZONE, PlayerStateSummary, WorldMap
from .world_generator import WorldGenerator, WorldGenOptions
from .structures import STRUCTURE_DEFINITIONS, StructureDefinition, StructureType
from .placement import PlacementEngine, PlacementStatus, StructureInstance
from .borders import ExpansionStatus, expand_player_borders, get_expand_border_status

__all__ = ['XorShiftPRNG', 'TerrainType', 'terrain_from_name', 'terrain_name',
           'UNASSIGNED_ZONE', 'PlayerStateSummary', 'WorldMap',
           'WorldGenerator', 'WorldGenOptions',
           'STRUCTURE_DEFINITIONS', 'StructureDefinition', 'StructureType',
           'PlacementEngine', 'PlacementStatus', 'StructureInstance',
           'ExpansionStatus', 'expand_player_borders', 'get_expand_border_status']
