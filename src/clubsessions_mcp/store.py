"""Persistent string key/value stores backing the quota counter and result cache.

The store plays the role a browser's localStorage plays for the website: flat
string keys, string values, last write wins.
"""

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Protocol

from .errors import StorageError

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStore:
    """Dict-backed store. Lost on restart."""

    def __init__(self):
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __len__(self) -> int:
        return len(self._data)


class SqliteStore:
    """SQLite-backed store that survives process restarts.

    Thread safety: check_same_thread=False, writes serialized by SQLite.
    The _conn_lock protects lazy initialization of the connection.
    """

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None
        self._conn_lock = threading.Lock()

    def _connect(self) -> sqlite3.Connection:
        if self._conn is not None:
            return self._conn

        with self._conn_lock:
            # Double-check after acquiring lock
            if self._conn is not None:
                return self._conn
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(self.db_path, check_same_thread=False)
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute(
                    "CREATE TABLE IF NOT EXISTS kv (key TEXT PRIMARY KEY, value TEXT NOT NULL)"
                )
                conn.commit()
            except (sqlite3.Error, OSError) as e:
                raise StorageError(f"Cannot open store at {self.db_path}: {e}") from e
            logger.info(f"Session store ready at {self.db_path}")
            self._conn = conn
            return conn

    def get(self, key: str) -> str | None:
        try:
            row = self._connect().execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Read failed for {key!r}: {e}") from e
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        conn = self._connect()
        try:
            conn.execute(
                "INSERT INTO kv (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )
            conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Write failed for {key!r}: {e}") from e

    def delete(self, key: str) -> None:
        conn = self._connect()
        try:
            conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Delete failed for {key!r}: {e}") from e

    def close(self) -> None:
        with self._conn_lock:
            if self._conn:
                self._conn.close()
                self._conn = None


def open_store(path: str | None) -> KeyValueStore:
    """SQLite store at path, or an in-memory store when path is empty."""
    if not path:
        return MemoryStore()
    return SqliteStore(path)
