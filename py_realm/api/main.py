"""FastAPI main application."""

import logging
import uuid
from datetime import datetime
from typing import Dict, List, Optional

import structlog
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from .. import __version__
from ..config import settings
from ..core.fields import get_available_field_placements, get_farm_field_count, sow_field
from ..core.placement import PlacementStatus, StructureInstance
from ..core.session import GameSession
from ..core.snapshot import MapSnapshot, SessionSnapshot
from ..core.structures import STRUCTURE_DEFINITIONS, parse_structure_type
from ..core.terrain import terrain_name
from ..db.connection import db
from ..db.saves import SLOT_IDS, SaveSlotStore

# Configure logging
logging.basicConfig(format="%(message)s", level=settings.log_level.upper())

structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer()
        if settings.log_format == "plain"
        else structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

# Initialize FastAPI app
app = FastAPI(
    title="Realm API",
    description="Seeded tile worlds with territory zoning and structure placement",
    version=__version__,
    debug=settings.debug,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Live sessions, keyed by session id
sessions: Dict[str, GameSession] = {}

saves = SaveSlotStore(db)


# Request/Response models
class SessionCreateRequest(BaseModel):
    """Request to start a new session."""

    seed: Optional[str] = Field(None, description="Integer or text seed; random when omitted")
    width: Optional[int] = Field(None, ge=1, description="Map width in tiles")
    height: Optional[int] = Field(None, ge=1, description="Map height in tiles")


class TileCounts(BaseModel):
    forest: int
    stone: int
    plains: int
    river: int


class SummaryResponse(BaseModel):
    """Resource base of the player zone."""

    tiles: TileCounts
    size: int
    ocean: int


class StructureInstanceResponse(BaseModel):
    instance_id: str
    structure_type: str
    name: str
    short_name: str
    x: int
    y: int
    width: int
    height: int


class SessionResponse(BaseModel):
    session_id: str
    width: int
    height: int
    zone_count: int
    player_zone_id: Optional[int]
    summary: SummaryResponse
    structures: List[StructureInstanceResponse]


class MapResponse(BaseModel):
    map: MapSnapshot
    structures: List[StructureInstanceResponse]
    structures_version: int


class StructureDefinitionResponse(BaseModel):
    id: str
    name: str
    short_name: str
    description: str
    unique: bool
    capital: bool
    width: int
    height: int
    allowed_terrain: List[str]
    placement_description: str


class PlacementRequest(BaseModel):
    allow_terrain_replacement: bool = Field(False, description="Overwrite disallowed land with the fallback terrain")


class PlacementAtRequest(PlacementRequest):
    x: int = Field(..., description="Top-left x")
    y: int = Field(..., description="Top-left y")


class PlacementResponse(BaseModel):
    available: bool
    reason: Optional[str] = None
    instance: Optional[StructureInstanceResponse] = None
    replaced_tiles: int = 0


class Position(BaseModel):
    x: int
    y: int


class ExpansionResponse(BaseModel):
    available: bool
    reason: Optional[str] = None
    tiles: List[Position] = Field(default_factory=list)


class FieldRequest(BaseModel):
    x: int
    y: int


class FieldsResponse(BaseModel):
    farm_instance_id: str
    field_count: int
    placements: List[Position]


class SaveRequest(BaseModel):
    session_id: str
    turn_number: int = Field(1, ge=1)
    ruler_name: Optional[str] = None
    state_name: Optional[str] = None


class SaveSlotResponse(BaseModel):
    slot: int
    used: bool
    saved_at: Optional[datetime] = None
    turn_number: Optional[int] = None
    ruler_name: Optional[str] = None
    state_name: Optional[str] = None


# Helpers
def _get_session(session_id: str) -> GameSession:
    game = sessions.get(session_id)
    if game is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return game


def _register_session(game: GameSession) -> str:
    session_id = str(uuid.uuid4())
    sessions[session_id] = game
    return session_id


def _instance_response(instance: StructureInstance) -> StructureInstanceResponse:
    definition = STRUCTURE_DEFINITIONS[instance.structure_type]
    return StructureInstanceResponse(
        instance_id=instance.instance_id,
        structure_type=instance.structure_type.value,
        name=definition.name,
        short_name=definition.short_name,
        x=instance.x,
        y=instance.y,
        width=instance.width,
        height=instance.height,
    )


def _session_response(session_id: str, game: GameSession) -> SessionResponse:
    world = game.world
    return SessionResponse(
        session_id=session_id,
        width=world.width,
        height=world.height,
        zone_count=world.zone_count,
        player_zone_id=world.player_zone_id,
        summary=SummaryResponse(**game.summary().to_dict()),
        structures=[_instance_response(i) for i in game.engine.instances],
    )


def _placement_response(status: PlacementStatus) -> PlacementResponse:
    return PlacementResponse(
        available=status.available,
        reason=status.reason,
        instance=_instance_response(status.instance) if status.instance else None,
        replaced_tiles=len(status.candidate.replacement_cells) if status.candidate else 0,
    )


def _check_structure(structure_type: str) -> None:
    if parse_structure_type(structure_type) is None:
        raise HTTPException(status_code=404, detail="Unknown structure type")


def _check_slot(slot: int) -> None:
    if slot not in SLOT_IDS:
        raise HTTPException(status_code=404, detail="Save slot not found")


# Event handlers
@app.on_event("startup")
async def startup_event():
    """Initialize database on startup."""
    logger.info("Starting Realm API")
    db.initialize()
    logger.info("API startup complete")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down Realm API", live_sessions=len(sessions))


# API endpoints
@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Realm API",
        "version": __version__,
        "status": "running",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    try:
        saves.has_any_used_slots()
        return {"status": "healthy", "database": "connected"}
    except Exception as e:
        logger.error("Health check failed", error=str(e))
        raise HTTPException(status_code=503, detail="Service unhealthy")


@app.get("/structures", response_model=List[StructureDefinitionResponse])
async def list_structure_definitions():
    """Structure catalog."""
    return [
        StructureDefinitionResponse(
            id=definition.id.value,
            name=definition.name,
            short_name=definition.short_name,
            description=definition.description,
            unique=definition.unique,
            capital=definition.capital,
            width=definition.placement_rule.width,
            height=definition.placement_rule.height,
            allowed_terrain=[terrain_name(t) for t in definition.placement_rule.allowed_terrain],
            placement_description=definition.placement_description,
        )
        for definition in STRUCTURE_DEFINITIONS.values()
    ]


@app.post("/sessions", response_model=SessionResponse)
async def create_session(request: SessionCreateRequest):
    """Generate a new world and place the capital."""
    logger.info("Session requested", request=request.model_dump())
    game = GameSession.new(seed=request.seed, width=request.width, height=request.height)
    session_id = _register_session(game)
    return _session_response(session_id, game)


@app.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str):
    return _session_response(session_id, _get_session(session_id))


@app.delete("/sessions/{session_id}")
async def delete_session(session_id: str):
    _get_session(session_id)
    del sessions[session_id]
    return {"deleted": session_id}


@app.get("/sessions/{session_id}/map", response_model=MapResponse)
async def get_map(session_id: str):
    """Terrain, zones and structure overlays."""
    game = _get_session(session_id)
    return MapResponse(
        map=game.world.to_snapshot(),
        structures=[_instance_response(i) for i in game.engine.instances],
        structures_version=game.engine.structures_version,
    )


@app.get("/sessions/{session_id}/summary", response_model=SummaryResponse)
async def get_summary(session_id: str):
    game = _get_session(session_id)
    return SummaryResponse(**game.summary().to_dict())


@app.get("/sessions/{session_id}/structures", response_model=List[StructureInstanceResponse])
async def list_structures(session_id: str):
    game = _get_session(session_id)
    return [_instance_response(i) for i in game.engine.instances]


@app.get("/sessions/{session_id}/structures/{structure_type}/placements", response_model=List[Position])
async def get_placements(session_id: str, structure_type: str):
    """Every legal top-left for a structure, without terrain replacement."""
    game = _get_session(session_id)
    _check_structure(structure_type)
    return [Position(x=x, y=y) for x, y in game.engine.get_available_placements(structure_type)]


@app.post("/sessions/{session_id}/structures/{structure_type}", response_model=PlacementResponse)
async def build_structure(session_id: str, structure_type: str, request: PlacementRequest):
    """Auto-place a structure at the best spot."""
    game = _get_session(session_id)
    _check_structure(structure_type)
    status = game.engine.place(structure_type, request.allow_terrain_replacement)
    return _placement_response(status)


@app.post("/sessions/{session_id}/structures/{structure_type}/at", response_model=PlacementResponse)
async def build_structure_at(session_id: str, structure_type: str, request: PlacementAtRequest):
    """Place a structure with its top-left at the given tile."""
    game = _get_session(session_id)
    _check_structure(structure_type)
    status = game.engine.place_at(structure_type, request.x, request.y, request.allow_terrain_replacement)
    return _placement_response(status)


@app.get("/sessions/{session_id}/farms/{instance_id}/fields", response_model=FieldsResponse)
async def get_fields(session_id: str, instance_id: str):
    game = _get_session(session_id)
    farm = game.engine.get_instance(instance_id)
    if farm is None or farm.structure_type.value != "farm":
        raise HTTPException(status_code=404, detail="Farm not found")
    return FieldsResponse(
        farm_instance_id=instance_id,
        field_count=get_farm_field_count(game.engine, instance_id),
        placements=[
            Position(x=x, y=y) for x, y in get_available_field_placements(game.engine, instance_id)
        ],
    )


@app.post("/sessions/{session_id}/farms/{instance_id}/fields", response_model=FieldsResponse)
async def create_field(session_id: str, instance_id: str, request: FieldRequest):
    """Sow a 2x2 field next to a farm."""
    game = _get_session(session_id)
    farm = game.engine.get_instance(instance_id)
    if farm is None or farm.structure_type.value != "farm":
        raise HTTPException(status_code=404, detail="Farm not found")
    if not sow_field(game.engine, request.x, request.y, instance_id):
        raise HTTPException(status_code=409, detail="Field cannot be sown there")
    return get_fields(session_id, instance_id)


@app.get("/sessions/{session_id}/borders", response_model=ExpansionResponse)
async def get_border_status(session_id: str):
    status = _get_session(session_id).can_expand_borders()
    return ExpansionResponse(
        available=status.available,
        reason=status.reason,
        tiles=[Position(x=x, y=y) for x, y in status.candidates],
    )


@app.post("/sessions/{session_id}/borders/expand", response_model=ExpansionResponse)
async def expand_borders(session_id: str):
    status = _get_session(session_id).expand_borders()
    return ExpansionResponse(
        available=status.available,
        reason=status.reason,
        tiles=[Position(x=x, y=y) for x, y in status.candidates],
    )


@app.get("/sessions/{session_id}/snapshot", response_model=SessionSnapshot)
async def get_snapshot(session_id: str):
    return _get_session(session_id).snapshot()


@app.post("/sessions/restore", response_model=SessionResponse)
async def restore_session(snapshot: SessionSnapshot):
    """Start a session from a snapshot."""
    game = GameSession.restore(snapshot)
    session_id = _register_session(game)
    return _session_response(session_id, game)


@app.get("/saves", response_model=List[SaveSlotResponse])
async def list_saves():
    return [SaveSlotResponse(**vars(summary)) for summary in saves.summaries()]


@app.get("/saves/latest", response_model=SaveSlotResponse)
async def get_latest_save():
    slot = saves.latest_used_slot()
    if slot is None:
        raise HTTPException(status_code=404, detail="No saved games")
    return next(SaveSlotResponse(**vars(s)) for s in saves.summaries() if s.slot == slot)


@app.put("/saves/{slot}", response_model=SaveSlotResponse)
async def save_session(slot: int, request: SaveRequest):
    _check_slot(slot)
    game = _get_session(request.session_id)
    summary = saves.save(
        slot,
        game.snapshot(),
        turn_number=request.turn_number,
        ruler_name=request.ruler_name,
        state_name=request.state_name,
    )
    return SaveSlotResponse(**vars(summary))


@app.post("/saves/{slot}/load", response_model=SessionResponse)
async def load_session(slot: int):
    """Restore the session held in a slot as a new live session."""
    _check_slot(slot)
    snapshot = saves.load(slot)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="Save slot is empty")
    game = GameSession.restore(snapshot)
    session_id = _register_session(game)
    return _session_response(session_id, game)


@app.delete("/saves/{slot}")
async def delete_save(slot: int):
    _check_slot(slot)
    if not saves.delete(slot):
        raise HTTPException(status_code=404, detail="Save slot is empty")
    return {"deleted": slot}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
