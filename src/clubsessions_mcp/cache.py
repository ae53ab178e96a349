"""Daily call quota and last-result cache, both persisted in a key/value store."""

import datetime
import json
import logging
import time
from typing import Callable

from .config import (
    API_CALLS_KEY_PREFIX,
    LAST_API_ERROR_KEY,
    SESSION_CACHE_TTL,
    SESSION_DATA_KEY,
    SESSION_DAILY_LIMIT,
    SESSION_TIME_KEY,
)
from .errors import StorageError
from .models import CachedResult, Provenance, SessionInfo
from .store import KeyValueStore

logger = logging.getLogger(__name__)


class QuotaTracker:
    """Daily API call counter that resets at local midnight.

    The count is stored under a key containing today's date, so a new day
    simply reads a fresh key. That means the budget resets at the date
    boundary, not 24h after first use.

    Synchronous - safe for single-threaded asyncio (no await between read and write).
    """

    def __init__(
        self,
        store: KeyValueStore,
        name: str = "YouTube",
        daily_limit: int = SESSION_DAILY_LIMIT,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self._name = name
        self._limit = daily_limit
        self._clock = clock

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def date_key(self) -> str:
        return datetime.date.fromtimestamp(self._clock()).isoformat()

    def _key(self) -> str:
        return f"{API_CALLS_KEY_PREFIX}{self.date_key}"

    def current_count(self) -> int:
        """Today's call count. Missing or unreadable entries count as 0."""
        key = self._key()
        try:
            raw = self._store.get(key)
        except StorageError as e:
            logger.warning(f"{self._name} quota read failed, assuming 0: {e}")
            return 0
        if raw is None:
            return 0
        try:
            return max(0, int(raw))
        except ValueError:
            logger.warning(f"{self._name} quota entry {key} is corrupt: {raw!r}")
            return 0

    def increment_and_get(self) -> int:
        """Charge one call against today's budget and return the new count.

        Called immediately before the outbound request, never after.
        """
        count = self.current_count() + 1
        try:
            self._store.set(self._key(), str(count))
        except StorageError as e:
            logger.warning(f"{self._name} quota write failed: {e}")
        logger.debug(f"{self._name} API calls today: {count}/{self._limit}")
        return count

    def can_proceed(self) -> bool:
        return self.current_count() < self._limit

    def remaining(self) -> int:
        return max(0, self._limit - self.current_count())

    def snapshot(self) -> dict:
        used = self.current_count()
        return {
            "provider": self._name,
            "date": self.date_key,
            "used": used,
            "remaining": max(0, self._limit - used),
            "limit": self._limit,
        }


class ResultCache:
    """Last successful session fetch with a freshness window.

    Expiry is lazy: read() ignores entries older than the TTL but leaves them
    in the store, where read_stale() can still serve them when the provider is
    unavailable. The next write() overwrites them.
    """

    def __init__(
        self,
        store: KeyValueStore,
        ttl: float = SESSION_CACHE_TTL,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self._ttl = ttl
        self._clock = clock

    @property
    def ttl(self) -> float:
        return self._ttl

    def _load(self) -> CachedResult | None:
        try:
            data = self._store.get(SESSION_DATA_KEY)
            fetched_at = self._store.get(SESSION_TIME_KEY)
        except StorageError as e:
            logger.warning(f"Session cache read failed: {e}")
            return None
        if data is None or fetched_at is None:
            return None
        try:
            payload = SessionInfo.from_dict(json.loads(data))
            ts = float(fetched_at)
        except (json.JSONDecodeError, KeyError, ValueError, TypeError) as e:
            logger.warning(f"Ignoring unreadable session cache entry: {type(e).__name__}: {e}")
            return None
        return CachedResult(payload=payload, fetched_at=ts, provenance=Provenance.CACHED)

    def read(self) -> CachedResult | None:
        """Get the cached result, or None if missing/expired."""
        entry = self._load()
        if entry is not None and self._clock() - entry.fetched_at < self._ttl:
            return entry
        return None

    def read_stale(self) -> CachedResult | None:
        """Get the cached result regardless of age."""
        return self._load()

    def write(self, payload: SessionInfo) -> None:
        """Persist payload with the current time, overwriting any previous entry.

        Best effort: failures are logged and swallowed.
        """
        try:
            self._store.set(SESSION_DATA_KEY, json.dumps(payload.to_dict()))
            self._store.set(SESSION_TIME_KEY, repr(self._clock()))
        except (StorageError, TypeError, ValueError) as e:
            logger.warning(f"Session cache write failed: {type(e).__name__}: {e}")

    def clear(self) -> None:
        try:
            self._store.delete(SESSION_DATA_KEY)
            self._store.delete(SESSION_TIME_KEY)
        except StorageError as e:
            logger.warning(f"Session cache clear failed: {e}")

    def record_error(self) -> None:
        """Remember when the provider last failed (diagnostic only)."""
        try:
            self._store.set(LAST_API_ERROR_KEY, repr(self._clock()))
        except StorageError as e:
            logger.warning(f"Could not record provider error time: {e}")

    def last_error_time(self) -> float | None:
        try:
            raw = self._store.get(LAST_API_ERROR_KEY)
            return float(raw) if raw is not None else None
        except (StorageError, ValueError):
            return None
