"""Database models for saved sessions."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SaveSlot(Base):
    """One of the fixed save slots, holding a full session snapshot."""

    __tablename__ = "save_slots"

    slot = Column(Integer, primary_key=True)
    saved_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    # Display metadata for slot pickers
    turn_number = Column(Integer, nullable=False, default=1)
    ruler_name = Column(String(100))
    state_name = Column(String(100))

    snapshot_json = Column(Text, nullable=False)  # SessionSnapshot as JSON

    def __repr__(self):
        return f"<SaveSlot(slot={self.slot}, saved_at={self.saved_at})>"
