"""Tests for the daily quota tracker, result cache and key/value stores."""

import json
from datetime import datetime

import pytest

from clubsessions_mcp.cache import QuotaTracker, ResultCache
from clubsessions_mcp.config import LAST_API_ERROR_KEY, SESSION_DATA_KEY, SESSION_TIME_KEY
from clubsessions_mcp.errors import StorageError
from clubsessions_mcp.models import Provenance
from clubsessions_mcp.store import MemoryStore, SqliteStore, open_store


class BrokenStore:
    """Store whose every operation fails."""

    def get(self, key):
        raise StorageError("disk on fire")

    def set(self, key, value):
        raise StorageError("disk on fire")

    def delete(self, key):
        raise StorageError("disk on fire")


# --- QuotaTracker tests ---

class TestQuotaTracker:
    def test_starts_at_zero(self, store, clock):
        quota = QuotaTracker(store, daily_limit=5, clock=clock)
        assert quota.current_count() == 0
        assert quota.remaining() == 5
        assert quota.can_proceed()

    def test_increment_and_get(self, store, clock):
        quota = QuotaTracker(store, daily_limit=5, clock=clock)
        assert quota.increment_and_get() == 1
        assert quota.increment_and_get() == 2
        assert quota.current_count() == 2
        assert quota.remaining() == 3

    def test_persists_under_dated_key(self, store, clock):
        quota = QuotaTracker(store, daily_limit=5, clock=clock)
        quota.increment_and_get()
        assert store.get("api_calls_today_2025-03-10") == "1"

    def test_can_proceed_iff_below_ceiling(self, store, clock):
        quota = QuotaTracker(store, daily_limit=2, clock=clock)
        quota.increment_and_get()
        assert quota.can_proceed()
        quota.increment_and_get()
        assert not quota.can_proceed()
        assert quota.remaining() == 0

    def test_remaining_never_negative(self, store, clock):
        store.set("api_calls_today_2025-03-10", "9")
        quota = QuotaTracker(store, daily_limit=2, clock=clock)
        assert quota.remaining() == 0
        assert not quota.can_proceed()

    def test_resets_on_new_day(self, store, clock):
        """Counter is keyed by date, so a new day reads a fresh entry."""
        quota = QuotaTracker(store, daily_limit=5, clock=clock)
        for _ in range(3):
            quota.increment_and_get()
        clock.set(datetime(2025, 3, 11, 0, 0, 1))
        assert quota.current_count() == 0
        assert quota.date_key == "2025-03-11"
        assert quota.increment_and_get() == 1

    def test_resets_at_midnight_not_after_24h(self, store, clock):
        clock.set(datetime(2025, 3, 10, 23, 59, 0))
        quota = QuotaTracker(store, daily_limit=5, clock=clock)
        quota.increment_and_get()
        clock.advance(120)  # 00:01 next day, only two minutes later
        assert quota.current_count() == 0

    def test_shared_store_shares_count(self, store, clock):
        """Two trackers on one store (e.g. after a restart) see the same count."""
        QuotaTracker(store, daily_limit=5, clock=clock).increment_and_get()
        assert QuotaTracker(store, daily_limit=5, clock=clock).current_count() == 1

    def test_corrupt_entry_counts_as_zero(self, store, clock):
        store.set("api_calls_today_2025-03-10", "lots")
        quota = QuotaTracker(store, daily_limit=5, clock=clock)
        assert quota.current_count() == 0

    def test_storage_failure_fails_open(self, clock):
        quota = QuotaTracker(BrokenStore(), daily_limit=5, clock=clock)
        assert quota.current_count() == 0
        assert quota.can_proceed()
        # Write failure is swallowed; the caller still gets the charged count
        assert quota.increment_and_get() == 1

    def test_snapshot(self, store, clock):
        quota = QuotaTracker(store, "YouTube", daily_limit=50, clock=clock)
        quota.increment_and_get()
        assert quota.snapshot() == {
            "provider": "YouTube",
            "date": "2025-03-10",
            "used": 1,
            "remaining": 49,
            "limit": 50,
        }


# --- ResultCache tests ---

class TestResultCache:
    def test_read_empty(self, store, clock):
        assert ResultCache(store, ttl=1800, clock=clock).read() is None

    def test_write_then_read(self, store, clock, session):
        cache = ResultCache(store, ttl=1800, clock=clock)
        cache.write(session)
        clock.advance(10)
        entry = cache.read()
        assert entry is not None
        assert entry.payload == session
        assert entry.provenance == Provenance.CACHED
        assert entry.fetched_at == clock.now - 10

    def test_expired_read_returns_none_but_keeps_record(self, store, clock, session):
        cache = ResultCache(store, ttl=1800, clock=clock)
        cache.write(session)
        clock.advance(1800)
        assert cache.read() is None
        # Logical expiry only: the record is still there
        assert store.get(SESSION_DATA_KEY) is not None
        stale = cache.read_stale()
        assert stale is not None
        assert stale.payload == session

    def test_write_overwrites(self, store, clock, session, other_session):
        cache = ResultCache(store, ttl=1800, clock=clock)
        cache.write(session)
        clock.advance(5000)
        cache.write(other_session)
        entry = cache.read()
        assert entry.payload == other_session
        assert entry.fetched_at == clock.now

    def test_clear(self, store, clock, session):
        cache = ResultCache(store, ttl=1800, clock=clock)
        cache.write(session)
        cache.clear()
        assert cache.read() is None
        assert cache.read_stale() is None
        assert store.get(SESSION_TIME_KEY) is None

    def test_uses_storage_keys(self, store, clock, session):
        ResultCache(store, ttl=1800, clock=clock).write(session)
        assert json.loads(store.get(SESSION_DATA_KEY))["id"] == session.id
        assert float(store.get(SESSION_TIME_KEY)) == clock.now

    def test_corrupt_entry_is_a_miss(self, store, clock):
        store.set(SESSION_DATA_KEY, "{not json")
        store.set(SESSION_TIME_KEY, str(clock.now))
        cache = ResultCache(store, ttl=1800, clock=clock)
        assert cache.read() is None
        assert cache.read_stale() is None

    def test_entry_missing_fields_is_a_miss(self, store, clock):
        store.set(SESSION_DATA_KEY, json.dumps({"title": "no id"}))
        store.set(SESSION_TIME_KEY, str(clock.now))
        assert ResultCache(store, ttl=1800, clock=clock).read() is None

    def test_storage_failures_are_swallowed(self, clock, session):
        cache = ResultCache(BrokenStore(), ttl=1800, clock=clock)
        cache.write(session)
        assert cache.read() is None
        cache.clear()
        cache.record_error()
        assert cache.last_error_time() is None

    def test_record_error(self, store, clock):
        cache = ResultCache(store, ttl=1800, clock=clock)
        assert cache.last_error_time() is None
        cache.record_error()
        assert cache.last_error_time() == clock.now
        assert store.get(LAST_API_ERROR_KEY) is not None


# --- Store tests ---

class TestStores:
    def test_memory_store(self):
        store = MemoryStore()
        assert store.get("k") is None
        store.set("k", "v")
        assert store.get("k") == "v"
        store.delete("k")
        store.delete("k")  # Deleting a missing key is fine
        assert store.get("k") is None
        assert len(store) == 0

    def test_sqlite_store_round_trip(self, tmp_path):
        store = SqliteStore(tmp_path / "kv.db")
        store.set("k", "v1")
        store.set("k", "v2")
        assert store.get("k") == "v2"
        store.delete("k")
        assert store.get("k") is None
        store.close()

    def test_sqlite_store_survives_reopen(self, tmp_path, clock, session):
        path = tmp_path / "nested" / "sessions.db"
        first = SqliteStore(path)
        ResultCache(first, ttl=1800, clock=clock).write(session)
        QuotaTracker(first, daily_limit=5, clock=clock).increment_and_get()
        first.close()

        second = SqliteStore(path)
        assert ResultCache(second, ttl=1800, clock=clock).read().payload == session
        assert QuotaTracker(second, daily_limit=5, clock=clock).current_count() == 1
        second.close()

    def test_sqlite_store_unopenable_path(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        store = SqliteStore(blocker / "sessions.db")
        with pytest.raises(StorageError):
            store.get("k")

    def test_open_store(self, tmp_path):
        assert isinstance(open_store(""), MemoryStore)
        assert isinstance(open_store(None), MemoryStore)
        assert isinstance(open_store(str(tmp_path / "s.db")), SqliteStore)
