"""
Structure placement engine.

Finds legal rectangular footprints for structures on the live world grid and
keeps the registry of placed structures.

A request either fully succeeds (terrain replacements written, instance
registered, version bumped) or fails with a status and a readable reason and
leaves both the grid and the registry untouched. Legality failures are
expected outcomes and are never raised as exceptions.

Candidate selection:
1. fewest replacement cells
2. smallest squared distance from footprint center to the anchor
3. row-major position (top, then left)
"""

import threading
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Tuple, Union

import numpy as np
import structlog

from ..utils.numeric import clamp, distance_sq
from .snapshot import RegistrySnapshot, StructureInstanceSnapshot
from .structures import (
    STRUCTURE_DEFINITIONS,
    StructureDefinition,
    StructureType,
    get_capital_type,
    get_structure_definition,
    parse_structure_type,
)
from .terrain import TerrainType, terrain_codes
from .world_generator import WorldGenerator
from .world_map import WorldMap

logger = structlog.get_logger()

Cell = Tuple[int, int]
StructureKey = Union[str, StructureType]

REASON_UNKNOWN_STRUCTURE = "Unknown structure."
REASON_UNIQUE_EXISTS = "Unique structure already exists."
REASON_NO_PLAYER_ZONE = "No player zone to build in."
REASON_OUTSIDE_ZONE = "Selected area is outside your territory."
REASON_OCCUPIED = "Selected area overlaps an existing structure."


@dataclass
class StructureInstance:
    """A placed structure."""

    instance_id: str
    structure_type: StructureType
    x: int
    y: int
    width: int
    height: int

    def cells(self) -> List[Cell]:
        return [
            (self.x + dx, self.y + dy)
            for dy in range(self.height)
            for dx in range(self.width)
        ]

    def center(self) -> Tuple[float, float]:
        return self.x + (self.width - 1) / 2, self.y + (self.height - 1) / 2

    def contains(self, x: int, y: int) -> bool:
        return self.x <= x < self.x + self.width and self.y <= y < self.y + self.height

    @property
    def serial(self) -> Optional[int]:
        """Serial number parsed from the id suffix, if any."""
        _, dash, suffix = self.instance_id.rpartition("-")
        if not dash:
            return None
        try:
            return int(suffix)
        except ValueError:
            return None

    def to_snapshot(self) -> StructureInstanceSnapshot:
        return StructureInstanceSnapshot(
            instance_id=self.instance_id,
            structure_type=self.structure_type.value,
            x=self.x,
            y=self.y,
            width=self.width,
            height=self.height,
        )


@dataclass
class PlacementCandidate:
    """A scored placement proposal, alive only during one search."""

    x: int
    y: int
    width: int
    height: int
    replacement_cells: List[Cell] = field(default_factory=list)
    distance_sq: float = 0.0

    def sort_key(self) -> Tuple[int, float, int, int]:
        return len(self.replacement_cells), self.distance_sq, self.y, self.x


@dataclass
class PlacementStatus:
    """Outcome of a placement check or request."""

    available: bool
    reason: Optional[str] = None
    candidate: Optional[PlacementCandidate] = None
    instance: Optional[StructureInstance] = None


@dataclass
class StructureOverlay:
    """Instance plus display metadata for map views."""

    instance_id: str
    structure_type: StructureType
    x: int
    y: int
    width: int
    height: int
    name: str
    short_name: str


class PlacementEngine:
    """Searches placements and owns the structure registry."""

    def __init__(self, generator: WorldGenerator, initial: Optional[RegistrySnapshot] = None):
        """
        Initialize the engine.

        Args:
            generator: Owner of the world grid; all tile writes go through it
            initial: Registry snapshot to restore
        """
        self.generator = generator
        self.instances: List[StructureInstance] = []
        self.counts: Dict[StructureType, int] = {}
        self.instance_serial = 0
        self.structures_version = 0
        # Held from legality check through registration; reentrant for ensure_capital
        self.lock = threading.RLock()

        self._occupied_version = -1
        self._occupied: FrozenSet[Cell] = frozenset()
        self._occupied_mask: Optional[np.ndarray] = None

        self._apply_progress(initial)

    @property
    def world(self) -> WorldMap:
        return self.generator.get_map_ref()

    def reset(self, initial: Optional[RegistrySnapshot] = None) -> None:
        """Drop the registry and load another one (or an empty one)."""
        self.structures_version = 0
        self._occupied_version = -1
        self._apply_progress(initial)

    # Registry queries

    def get_definition(self, structure: StructureKey) -> Optional[StructureDefinition]:
        return get_structure_definition(structure)

    def get_count(self, structure: StructureKey) -> int:
        structure_type = parse_structure_type(structure)
        if structure_type is None:
            return 0
        return self.counts.get(structure_type, 0)

    def get_counts(self) -> Dict[StructureType, int]:
        return dict(self.counts)

    def is_built(self, structure: StructureKey) -> bool:
        return self.get_count(structure) > 0

    def get_instances(self) -> List[StructureInstance]:
        """Copies of every placed instance, in placement order."""
        return [StructureInstance(**vars(instance)) for instance in self.instances]

    def get_instance(self, instance_id: str) -> Optional[StructureInstance]:
        for instance in self.instances:
            if instance.instance_id == instance_id:
                return instance
        return None

    def get_latest_instance(self, structure: Optional[StructureKey] = None) -> Optional[StructureInstance]:
        structure_type = parse_structure_type(structure) if structure is not None else None
        for instance in reversed(self.instances):
            if structure is None or instance.structure_type == structure_type:
                return instance
        return None

    def get_overlays(self) -> List[StructureOverlay]:
        overlays = []
        for instance in self.instances:
            definition = STRUCTURE_DEFINITIONS[instance.structure_type]
            overlays.append(
                StructureOverlay(
                    name=definition.name,
                    short_name=definition.short_name,
                    **vars(instance),
                )
            )
        return overlays

    def notify_map_changed(self) -> None:
        """Tiles changed outside the engine; views should re-render."""
        self.structures_version += 1

    def occupied_cells(self) -> FrozenSet[Cell]:
        """All cells covered by any instance, rebuilt when the registry changes."""
        self._refresh_occupancy()
        return self._occupied

    # Placement checks

    def can_place(self, structure: StructureKey, allow_terrain_replacement: bool = False) -> PlacementStatus:
        """Check whether the best-placement search would find a spot."""
        definition, failure = self._check_request(structure)
        if failure is not None:
            return failure

        candidate = self.find_best_placement(definition.id, allow_terrain_replacement)
        if candidate is None:
            rule = definition.placement_rule
            return PlacementStatus(
                available=False,
                reason=f"No valid {rule.width}x{rule.height} placement near {self._capital_name()}.",
            )
        return PlacementStatus(available=True, candidate=candidate)

    def can_place_at(
        self,
        structure: StructureKey,
        x: int,
        y: int,
        allow_terrain_replacement: bool = False,
    ) -> PlacementStatus:
        """Check one caller-chosen top-left coordinate."""
        definition, failure = self._check_request(structure)
        if failure is not None:
            return failure

        candidate, problem = self._evaluate_at(definition, x, y, allow_terrain_replacement)
        if candidate is None:
            rule = definition.placement_rule
            if problem == "zone":
                reason = REASON_OUTSIDE_ZONE
            elif problem == "occupied":
                reason = REASON_OCCUPIED
            else:
                reason = f"Selected tile cannot fit {rule.width}x{rule.height} {definition.name}."
            return PlacementStatus(available=False, reason=reason)
        return PlacementStatus(available=True, candidate=candidate)

    def find_best_placement(
        self, structure: StructureKey, allow_terrain_replacement: bool = False
    ) -> Optional[PlacementCandidate]:
        """Search every top-left coordinate and return the best candidate."""
        definition = self.get_definition(structure)
        world = self.world
        if definition is None or world.player_zone_id is None:
            return None

        rule = definition.placement_rule
        anchor = self._anchor_for(definition)
        best: Optional[PlacementCandidate] = None

        for y in range(world.height - rule.height + 1):
            for x in range(world.width - rule.width + 1):
                candidate, _ = self._evaluate_candidate(definition, x, y, allow_terrain_replacement, anchor)
                if candidate is None:
                    continue
                if best is None or candidate.sort_key() < best.sort_key():
                    best = candidate

        return best

    def find_placement_at(
        self,
        structure: StructureKey,
        x: int,
        y: int,
        allow_terrain_replacement: bool = False,
    ) -> Optional[PlacementCandidate]:
        definition = self.get_definition(structure)
        if definition is None or self.world.player_zone_id is None:
            return None
        candidate, _ = self._evaluate_at(definition, x, y, allow_terrain_replacement)
        return candidate

    def get_available_placements(self, structure: StructureKey) -> List[Cell]:
        """Every legal top-left for a structure, without terrain replacement."""
        definition, failure = self._check_request(structure)
        if failure is not None:
            return []

        world = self.world
        rule = definition.placement_rule
        anchor = self._anchor_for(definition)
        placements = []
        for y in range(world.height - rule.height + 1):
            for x in range(world.width - rule.width + 1):
                candidate, _ = self._evaluate_candidate(definition, x, y, False, anchor)
                if candidate is not None:
                    placements.append((x, y))
        return placements

    # Placement requests

    def place(self, structure: StructureKey, allow_terrain_replacement: bool = False) -> PlacementStatus:
        """Auto-place a structure at the best candidate."""
        with self.lock:
            status = self.can_place(structure, allow_terrain_replacement)
            if not status.available:
                logger.info("Placement unavailable", structure=str(structure), reason=status.reason)
                return status

            status.instance = self._register(parse_structure_type(structure), status.candidate)
            return status

    def place_at(
        self,
        structure: StructureKey,
        x: int,
        y: int,
        allow_terrain_replacement: bool = False,
    ) -> PlacementStatus:
        """Place a structure with its top-left at a chosen coordinate."""
        with self.lock:
            status = self.can_place_at(structure, x, y, allow_terrain_replacement)
            if not status.available:
                logger.info("Placement unavailable", structure=str(structure), x=x, y=y, reason=status.reason)
                return status

            status.instance = self._register(parse_structure_type(structure), status.candidate)
            return status

    def ensure_capital(self) -> Optional[StructureInstance]:
        """Place the capital, replacing terrain if needed, when none exists."""
        capital_type = get_capital_type()
        if capital_type is None:
            return None
        with self.lock:
            existing = self.get_latest_instance(capital_type)
            if existing is not None:
                return existing
            status = self.place(capital_type, allow_terrain_replacement=True)

        if not status.available:
            logger.warning("Could not place capital", reason=status.reason)
            return None
        return status.instance

    # Snapshots

    def to_snapshot(self) -> RegistrySnapshot:
        return RegistrySnapshot(
            counts={structure_type.value: count for structure_type, count in self.counts.items()},
            instances=[instance.to_snapshot() for instance in self.instances],
            instance_serial=self.instance_serial,
        )

    # Internals

    def _check_request(
        self, structure: StructureKey
    ) -> Tuple[Optional[StructureDefinition], Optional[PlacementStatus]]:
        definition = self.get_definition(structure)
        if definition is None:
            return None, PlacementStatus(available=False, reason=REASON_UNKNOWN_STRUCTURE)
        if definition.unique and self.get_count(definition.id) > 0:
            return None, PlacementStatus(available=False, reason=REASON_UNIQUE_EXISTS)
        if self.world.player_zone_id is None:
            return None, PlacementStatus(available=False, reason=REASON_NO_PLAYER_ZONE)
        return definition, None

    def _evaluate_at(
        self, definition: StructureDefinition, x: int, y: int, allow_terrain_replacement: bool
    ) -> Tuple[Optional[PlacementCandidate], Optional[str]]:
        world = self.world
        rule = definition.placement_rule
        if x < 0 or y < 0 or x > world.width - rule.width or y > world.height - rule.height:
            return None, "bounds"
        return self._evaluate_candidate(
            definition, x, y, allow_terrain_replacement, self._anchor_for(definition)
        )

    def _evaluate_candidate(
        self,
        definition: StructureDefinition,
        start_x: int,
        start_y: int,
        allow_terrain_replacement: bool,
        anchor: Tuple[float, float],
    ) -> Tuple[Optional[PlacementCandidate], Optional[str]]:
        """Check one in-bounds footprint.

        Returns:
            Tuple of (candidate or None, failure kind: "zone", "occupied" or "terrain")
        """
        world = self.world
        rule = definition.placement_rule
        rows = slice(start_y, start_y + rule.height)
        cols = slice(start_x, start_x + rule.width)

        if not np.all(world.zones[rows, cols] == world.player_zone_id):
            return None, "zone"

        self._refresh_occupancy()
        if self._occupied_mask[rows, cols].any():
            return None, "occupied"

        block = world.tiles[rows, cols]
        disallowed = ~np.isin(block, terrain_codes(rule.allowed_terrain))
        replacement_cells: List[Cell] = []
        if disallowed.any():
            if (
                not allow_terrain_replacement
                or rule.fallback_terrain is None
                or np.any(block[disallowed] == TerrainType.OCEAN)
            ):
                return None, "terrain"
            replacement_cells = [(start_x + int(dx), start_y + int(dy)) for dy, dx in np.argwhere(disallowed)]

        center_x = start_x + (rule.width - 1) / 2
        center_y = start_y + (rule.height - 1) / 2
        return (
            PlacementCandidate(
                x=start_x,
                y=start_y,
                width=rule.width,
                height=rule.height,
                replacement_cells=replacement_cells,
                distance_sq=distance_sq(center_x, center_y, anchor[0], anchor[1]),
            ),
            None,
        )

    def _anchor_for(self, definition: StructureDefinition) -> Tuple[float, float]:
        """Zone centroid for the capital, else the capital's center if built."""
        world = self.world
        if not definition.capital:
            capital_type = get_capital_type()
            capital = self.get_latest_instance(capital_type) if capital_type else None
            if capital is not None:
                return capital.center()
        return world.zone_center(world.player_zone_id)

    def _capital_name(self) -> str:
        capital_type = get_capital_type()
        if capital_type is None:
            return "the capital"
        return STRUCTURE_DEFINITIONS[capital_type].name

    def _register(self, structure_type: StructureType, candidate: PlacementCandidate) -> StructureInstance:
        definition = STRUCTURE_DEFINITIONS[structure_type]
        fallback = definition.placement_rule.fallback_terrain
        for x, y in candidate.replacement_cells:
            self.generator.set_tile(x, y, fallback)

        self.instance_serial += 1
        instance = StructureInstance(
            instance_id=f"{structure_type.value}-{self.instance_serial}",
            structure_type=structure_type,
            x=candidate.x,
            y=candidate.y,
            width=candidate.width,
            height=candidate.height,
        )
        self.instances.append(instance)
        self.counts[structure_type] = self.counts.get(structure_type, 0) + 1
        self.structures_version += 1

        logger.info(
            "Structure placed",
            instance_id=instance.instance_id,
            x=instance.x,
            y=instance.y,
            replaced=len(candidate.replacement_cells),
        )
        return instance

    def _refresh_occupancy(self) -> None:
        world = self.world
        stale = (
            self._occupied_version != self.structures_version
            or self._occupied_mask is None
            or self._occupied_mask.shape != (world.height, world.width)
        )
        if not stale:
            return

        mask = np.zeros((world.height, world.width), dtype=bool)
        occupied = set()
        for instance in self.instances:
            for x, y in instance.cells():
                occupied.add((x, y))
                if world.in_bounds(x, y):
                    mask[y, x] = True

        self._occupied = frozenset(occupied)
        self._occupied_mask = mask
        self._occupied_version = self.structures_version

    def _apply_progress(self, initial: Optional[RegistrySnapshot]) -> None:
        """Load a registry snapshot, clamping anything out of range."""
        self.instances = []
        self.counts = {structure_type: 0 for structure_type in StructureType}
        self.instance_serial = 0

        if initial is None:
            return

        if initial.instances:
            for raw in initial.instances:
                structure_type = parse_structure_type(raw.structure_type)
                if structure_type is None:
                    logger.warning("Dropping unknown structure", instance_id=raw.instance_id)
                    continue

                self.instances.append(
                    StructureInstance(
                        instance_id=raw.instance_id,
                        structure_type=structure_type,
                        x=clamp(int(raw.x), 0),
                        y=clamp(int(raw.y), 0),
                        width=clamp(int(raw.width), 1),
                        height=clamp(int(raw.height), 1),
                    )
                )
                self.counts[structure_type] += 1

            highest = max((instance.serial or 0 for instance in self.instances), default=0)
            self.instance_serial = max(clamp(int(initial.instance_serial), 0), highest)
            return

        for key, raw in initial.built.items():
            structure_type = parse_structure_type(key)
            if structure_type is None:
                continue
            if raw is True:
                self.counts[structure_type] = 1
            elif raw is not False:
                self.counts[structure_type] = clamp(int(raw), 0)
