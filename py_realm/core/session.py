"""
Game session: one PRNG, one world, one structure registry.

The session wires the components together in the order the random stream
expects (generation first, then the capital placement) and converts the
whole state to and from a SessionSnapshot.
"""

from typing import Optional

import structlog

from ..config import settings
from ..utils.random import SeedValue, create_prng
from .borders import ExpansionStatus, expand_player_borders, get_expand_border_status
from .placement import PlacementEngine
from .snapshot import SessionSnapshot
from .world_generator import WorldGenerator, WorldGenOptions
from .world_map import PlayerStateSummary, WorldMap
from .xorshift_prng import XorShiftPRNG

logger = structlog.get_logger()


def default_world_options() -> WorldGenOptions:
    """Generation options with map size defaults taken from settings."""
    return WorldGenOptions(
        default_width=settings.default_map_width,
        default_height=settings.default_map_height,
        min_size=settings.min_map_size,
    )


class GameSession:
    """A playable world and the structures built on it."""

    def __init__(self, prng: XorShiftPRNG, generator: WorldGenerator, engine: PlacementEngine):
        self.prng = prng
        self.generator = generator
        self.engine = engine

    @classmethod
    def new(
        cls,
        seed: SeedValue = None,
        width: Optional[int] = None,
        height: Optional[int] = None,
        options: Optional[WorldGenOptions] = None,
    ) -> "GameSession":
        """
        Generate a fresh world and place the capital.

        Args:
            seed: Integer or string seed; None seeds from the clock
            width: Map width, capped at settings.max_map_size
            height: Map height, capped at settings.max_map_size
            options: Generation tunables

        Returns:
            New GameSession
        """
        if width is not None:
            width = min(width, settings.max_map_size)
        if height is not None:
            height = min(height, settings.max_map_size)

        prng = create_prng(seed)
        generator = WorldGenerator(prng, width, height, options=options or default_world_options())
        engine = PlacementEngine(generator)
        engine.ensure_capital()

        logger.info("Session created", seed=seed, rng_state=prng.get_state())
        return cls(prng, generator, engine)

    @classmethod
    def restore(cls, snapshot: SessionSnapshot, options: Optional[WorldGenOptions] = None) -> "GameSession":
        """Rebuild a session verbatim from a snapshot."""
        prng = XorShiftPRNG()
        prng.set_state(snapshot.rng_state)
        generator = WorldGenerator(
            prng, initial_map=snapshot.map, options=options or default_world_options()
        )
        engine = PlacementEngine(generator, snapshot.structures)

        logger.info(
            "Session restored",
            width=generator.world.width,
            height=generator.world.height,
            structures=len(engine.instances),
        )
        return cls(prng, generator, engine)

    @property
    def world(self) -> WorldMap:
        return self.generator.get_map_ref()

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            rng_state=self.prng.get_state(),
            map=self.world.to_snapshot(),
            structures=self.engine.to_snapshot(),
        )

    def summary(self) -> PlayerStateSummary:
        return self.generator.get_player_state_summary()

    def can_expand_borders(self) -> ExpansionStatus:
        return get_expand_border_status(self.world)

    def expand_borders(self) -> ExpansionStatus:
        with self.engine.lock:
            status = expand_player_borders(self.generator)
            if status.available:
                self.engine.notify_map_changed()
        return status
