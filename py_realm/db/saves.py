"""
Save slot storage.

Sessions are stored as SessionSnapshot JSON in a fixed set of numbered
slots. Loading hands back the snapshot only; rebuilding the session is up to
the caller (see GameSession.restore).
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

import structlog
from pydantic import ValidationError

from ..core.snapshot import SessionSnapshot
from .connection import Database
from .models import SaveSlot, utc_now

logger = structlog.get_logger()

SLOT_IDS = (1, 2, 3)


@dataclass
class SaveSlotSummary:
    """What a slot picker shows for one slot."""

    slot: int
    used: bool
    saved_at: Optional[datetime] = None
    turn_number: Optional[int] = None
    ruler_name: Optional[str] = None
    state_name: Optional[str] = None


def _check_slot(slot: int) -> int:
    if slot not in SLOT_IDS:
        raise ValueError(f"Invalid save slot {slot}; expected one of {SLOT_IDS}")
    return slot


class SaveSlotStore:
    """Reads and writes session snapshots in numbered slots."""

    def __init__(self, database: Database):
        self.database = database

    def save(
        self,
        slot: int,
        snapshot: SessionSnapshot,
        turn_number: int = 1,
        ruler_name: Optional[str] = None,
        state_name: Optional[str] = None,
        saved_at: Optional[datetime] = None,
    ) -> SaveSlotSummary:
        """Write a snapshot to a slot, overwriting whatever it held."""
        _check_slot(slot)
        saved_at = saved_at or utc_now()
        payload = snapshot.model_dump_json()

        with self.database.get_session() as session:
            record = session.get(SaveSlot, slot)
            if record is None:
                record = SaveSlot(slot=slot)
                session.add(record)
            record.saved_at = saved_at
            record.turn_number = turn_number
            record.ruler_name = ruler_name
            record.state_name = state_name
            record.snapshot_json = payload

        logger.info("Session saved", slot=slot, size=len(payload))
        return SaveSlotSummary(
            slot=slot,
            used=True,
            saved_at=saved_at,
            turn_number=turn_number,
            ruler_name=ruler_name,
            state_name=state_name,
        )

    def load(self, slot: int) -> Optional[SessionSnapshot]:
        """Read a slot's snapshot; None if empty or unreadable."""
        _check_slot(slot)
        with self.database.get_session() as session:
            record = session.get(SaveSlot, slot)
            if record is None:
                return None
            payload = record.snapshot_json

        try:
            return SessionSnapshot.model_validate_json(payload)
        except ValidationError as e:
            logger.warning("Unreadable save slot", slot=slot, error=str(e))
            return None

    def delete(self, slot: int) -> bool:
        """Clear a slot. Returns False if it was already empty."""
        _check_slot(slot)
        with self.database.get_session() as session:
            record = session.get(SaveSlot, slot)
            if record is None:
                return False
            session.delete(record)

        logger.info("Save slot deleted", slot=slot)
        return True

    def has_any_used_slots(self) -> bool:
        return any(summary.used for summary in self.summaries())

    def latest_used_slot(self) -> Optional[int]:
        """The slot saved most recently, if any."""
        with self.database.get_session() as session:
            record = (
                session.query(SaveSlot)
                .filter(SaveSlot.slot.in_(SLOT_IDS))
                .order_by(SaveSlot.saved_at.desc(), SaveSlot.slot.asc())
                .first()
            )
            return record.slot if record is not None else None

    def summaries(self) -> List[SaveSlotSummary]:
        with self.database.get_session() as session:
            records = {
                record.slot: record
                for record in session.query(SaveSlot).filter(SaveSlot.slot.in_(SLOT_IDS))
            }
            result = []
            for slot in SLOT_IDS:
                record = records.get(slot)
                if record is None:
                    result.append(SaveSlotSummary(slot=slot, used=False))
                    continue
                result.append(
                    SaveSlotSummary(
                        slot=slot,
                        used=True,
                        saved_at=record.saved_at,
                        turn_number=record.turn_number,
                        ruler_name=record.ruler_name,
                        state_name=record.state_name,
                    )
                )
            return result
