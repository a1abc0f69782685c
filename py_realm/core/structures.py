"""
Structure catalog.

Each structure type has one definition record holding its footprint and
terrain rule. The table is keyed by the closed StructureType enumeration and
validated with pydantic when the module is imported, so a bad rule fails at
load time rather than during a placement search.
"""

from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .terrain import TerrainType


class StructureType(str, Enum):
    """Structure types known to the placement engine."""

    CASTLE = "castle"
    HOUSE = "house"
    LUMBERMILL = "lumbermill"
    MINE = "mine"
    FARM = "farm"


class PlacementRule(BaseModel):
    """Footprint and terrain requirements of a structure."""

    model_config = ConfigDict(frozen=True)

    width: int = Field(ge=1, description="Footprint width in tiles")
    height: int = Field(ge=1, description="Footprint height in tiles")
    allowed_terrain: List[TerrainType] = Field(
        min_length=1, description="Terrain the footprint may cover as-is"
    )
    fallback_terrain: Optional[TerrainType] = Field(
        default=None,
        description="Terrain written over disallowed cells when replacement is enabled",
    )

    @field_validator("fallback_terrain")
    @classmethod
    def fallback_must_be_land(cls, value):
        if value == TerrainType.OCEAN:
            raise ValueError("fallback terrain cannot be ocean")
        return value


class StructureDefinition(BaseModel):
    """Static data for one structure type."""

    model_config = ConfigDict(frozen=True)

    id: StructureType
    name: str
    short_name: str = Field(max_length=3, description="Label drawn on the map")
    description: str = ""
    unique: bool = Field(default=False, description="At most one instance game-wide")
    capital: bool = Field(
        default=False, description="Anchors the placement of every other structure"
    )
    placement_rule: PlacementRule
    placement_description: str = ""

    @model_validator(mode="after")
    def capital_is_unique(self):
        if self.capital and not self.unique:
            raise ValueError(f"capital structure {self.id.value} must be unique")
        return self


STRUCTURE_DEFINITIONS: Dict[StructureType, StructureDefinition] = {
    StructureType.CASTLE: StructureDefinition(
        id=StructureType.CASTLE,
        name="Castle",
        short_name="Csl",
        description="Capital fortification that anchors settlement growth. Only one Castle can exist.",
        unique=True,
        capital=True,
        placement_rule=PlacementRule(
            width=3,
            height=3,
            allowed_terrain=[TerrainType.PLAINS, TerrainType.SAND],
            fallback_terrain=TerrainType.PLAINS,
        ),
        placement_description="Requires 3x3 free Plains/Sand area.",
    ),
    StructureType.HOUSE: StructureDefinition(
        id=StructureType.HOUSE,
        name="House",
        short_name="Hse",
        description="Residential dwelling that shelters settlers and grows your workforce.",
        placement_rule=PlacementRule(
            width=2,
            height=2,
            allowed_terrain=[TerrainType.PLAINS, TerrainType.SAND],
        ),
        placement_description="Requires 2x2 free Plains/Sand area.",
    ),
    StructureType.LUMBERMILL: StructureDefinition(
        id=StructureType.LUMBERMILL,
        name="Lumbermill",
        short_name="Lmb",
        description="Processes nearby forests into construction-grade materials.",
        placement_rule=PlacementRule(
            width=2,
            height=2,
            allowed_terrain=[TerrainType.FOREST],
        ),
        placement_description="Requires 2x2 free Forest area.",
    ),
    StructureType.MINE: StructureDefinition(
        id=StructureType.MINE,
        name="Mine",
        short_name="Min",
        description="Extracts ore and stone from rocky terrain.",
        placement_rule=PlacementRule(
            width=2,
            height=2,
            allowed_terrain=[TerrainType.ROCKS],
        ),
        placement_description="Requires 2x2 free Rocks area.",
    ),
    StructureType.FARM: StructureDefinition(
        id=StructureType.FARM,
        name="Farm",
        short_name="Frm",
        description="Stores and preserves food gathered from fertile plains.",
        placement_rule=PlacementRule(
            width=2,
            height=2,
            allowed_terrain=[TerrainType.PLAINS],
        ),
        placement_description="Requires 2x2 free Plains area.",
    ),
}


def parse_structure_type(value: Union[str, StructureType]) -> Optional[StructureType]:
    """Resolve a type id, or None if it is not in the catalog."""
    if isinstance(value, StructureType):
        return value
    try:
        return StructureType(value)
    except ValueError:
        return None


def get_structure_definition(value: Union[str, StructureType]) -> Optional[StructureDefinition]:
    structure_type = parse_structure_type(value)
    if structure_type is None:
        return None
    return STRUCTURE_DEFINITIONS.get(structure_type)


def get_capital_type() -> Optional[StructureType]:
    for structure_type, definition in STRUCTURE_DEFINITIONS.items():
        if definition.capital:
            return structure_type
    return None
