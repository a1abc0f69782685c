"""
Snapshot models handed to the save layer.

The field set mirrors what a save file carries: the raw PRNG state, the grid
(terrain and zone arrays, dimensions, zone count, player zone) and the
structure registry (instances, highest serial, per-type counts). Restoring a
snapshot rebuilds the session verbatim; nothing is re-derived from the seed.
"""

from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field


class MapSnapshot(BaseModel):
    """Grid data: terrain tags and zone ids, indexed [y][x]."""

    width: int = Field(description="Grid width in tiles")
    height: int = Field(description="Grid height in tiles")
    tiles: List[List[str]] = Field(description="Terrain tag per cell")
    zones: List[List[Optional[int]]] = Field(
        description="Zone id per cell, null when unassigned"
    )
    zone_count: int = Field(default=0, description="Number of non-empty zones")
    player_zone_id: Optional[int] = Field(
        default=None, description="Zone owned by the player"
    )


class StructureInstanceSnapshot(BaseModel):
    """One placed structure."""

    instance_id: str = Field(description="Unique id, '<type>-<serial>'")
    structure_type: str = Field(description="Structure type id")
    x: int = Field(description="Top-left x")
    y: int = Field(description="Top-left y")
    width: int = Field(description="Footprint width")
    height: int = Field(description="Footprint height")


class RegistrySnapshot(BaseModel):
    """Structure registry state."""

    counts: Dict[str, int] = Field(
        default_factory=dict, description="Instances per structure type"
    )
    instances: List[StructureInstanceSnapshot] = Field(default_factory=list)
    instance_serial: int = Field(default=0, description="Highest serial issued")
    built: Dict[str, Union[bool, int]] = Field(
        default_factory=dict,
        description="Legacy per-type build flags, used only without instances",
    )


class SessionSnapshot(BaseModel):
    """Everything needed to resume a session exactly."""

    version: int = Field(default=1, description="Snapshot format version")
    rng_state: int = Field(description="Raw PRNG state")
    map: MapSnapshot
    structures: RegistrySnapshot = Field(default_factory=RegistrySnapshot)
