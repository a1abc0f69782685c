"""
Database utilities and models.

This package provides:
- SQLAlchemy model for save slots
- Database connection management
- Save slot storage for session snapshots
"""

from .connection import Database, db
from .models import Base, SaveSlot
from .saves import SLOT_IDS, SaveSlotStore, SaveSlotSummary

__all__ = [
    # Connection management
    'Database', 'db',

    # Models
    'Base', 'SaveSlot',

    # Save slots
    'SLOT_IDS', 'SaveSlotStore', 'SaveSlotSummary',
]
