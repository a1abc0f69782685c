"""Tests for save slot storage."""

from datetime import datetime, timezone

import pytest

from py_realm.core.session import GameSession
from py_realm.db.connection import Database
from py_realm.db.models import SaveSlot
from py_realm.db.saves import SaveSlotStore


@pytest.fixture
def database():
    database = Database("sqlite://")
    database.initialize()
    return database


@pytest.fixture
def store(database):
    return SaveSlotStore(database)


@pytest.fixture(scope="module")
def snapshot():
    return GameSession.new(seed=42).snapshot()


class TestSaveSlotStore:
    """Test slot persistence."""

    def test_empty(self, store):
        assert store.load(1) is None
        assert store.latest_used_slot() is None
        assert not store.has_any_used_slots()
        assert [s.used for s in store.summaries()] == [False, False, False]

    def test_save_and_load(self, store, snapshot):
        summary = store.save(2, snapshot, turn_number=5, ruler_name="Aldric", state_name="Ostmark")
        assert summary.used
        assert summary.turn_number == 5

        loaded = store.load(2)
        assert loaded == snapshot

    def test_overwrite(self, store, snapshot):
        store.save(1, snapshot, turn_number=1)
        store.save(1, snapshot, turn_number=9)
        summaries = store.summaries()
        assert summaries[0].turn_number == 9
        assert sum(s.used for s in summaries) == 1

    def test_summaries(self, store, snapshot):
        store.save(3, snapshot, turn_number=4, ruler_name="Mira", state_name="Valen")
        summaries = store.summaries()
        assert [s.slot for s in summaries] == [1, 2, 3]
        assert not summaries[0].used
        assert summaries[2].used
        assert summaries[2].ruler_name == "Mira"
        assert summaries[2].state_name == "Valen"

    def test_latest_used_slot(self, store, snapshot):
        store.save(1, snapshot, saved_at=datetime(2026, 1, 1, 12, 0))
        store.save(3, snapshot, saved_at=datetime(2026, 1, 2, 12, 0))
        store.save(2, snapshot, saved_at=datetime(2025, 12, 31, 12, 0))
        assert store.latest_used_slot() == 3

    def test_delete(self, store, snapshot):
        store.save(1, snapshot)
        assert store.delete(1)
        assert store.load(1) is None
        assert not store.delete(1)

    def test_invalid_slot(self, store, snapshot):
        with pytest.raises(ValueError):
            store.save(4, snapshot)
        with pytest.raises(ValueError):
            store.load(0)

    def test_unreadable_slot(self, store, database):
        with database.get_session() as session:
            session.add(SaveSlot(slot=1, snapshot_json="{not json"))
        assert store.load(1) is None

    def test_loaded_snapshot_restores(self, store, snapshot):
        store.save(1, snapshot)
        game = GameSession.restore(store.load(1))
        assert game.snapshot() == snapshot


class TestDatabase:
    """Test the connection manager."""

    def test_session_before_initialize(self):
        with pytest.raises(RuntimeError):
            with Database("sqlite://").get_session():
                pass

    def test_rollback_on_error(self, database):
        with pytest.raises(ValueError):
            with database.get_session() as session:
                session.add(SaveSlot(slot=2, snapshot_json="{}"))
                session.flush()
                raise ValueError("boom")

        with database.get_session() as session:
            assert session.get(SaveSlot, 2) is None

    def test_default_timestamp_is_current(self, store, snapshot):
        before = datetime.now(timezone.utc)
        summary = store.save(1, snapshot)
        assert summary.saved_at.tzinfo is not None
        assert summary.saved_at >= before
