"""SQLite-backed sorted key-value engine used to persist user records."""

from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path
from typing import List, Optional, Protocol, Sequence, Tuple, Union

logger = logging.getLogger("userdb.engine")

Item = Tuple[str, bytes]
BatchOperation = Union[Tuple[str, str, bytes], Tuple[str, str]]

_UPSERT_SQL = (
    "INSERT INTO kv (key, value) VALUES (?, ?) "
    "ON CONFLICT(key) DO UPDATE SET value = excluded.value"
)


class KeyValueEngine(Protocol):
    """Durable map from string keys to byte values, iterable in key order."""

    def get(self, key: str) -> Optional[bytes]: ...

    def put(self, key: str, value: bytes) -> None: ...

    def delete(self, key: str) -> None: ...

    def batch(self, operations: Sequence[BatchOperation]) -> None: ...

    def iterate(self, start_after: Optional[str] = None, limit: int = 100) -> List[Item]: ...

    def close(self) -> None: ...


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


class SQLiteEngine:
    """Single-connection SQLite store exposing point and range operations.

    Keys use SQLite's default BINARY collation, so range scans come back in
    the byte order of their UTF-8 encoding. Every write commits before the
    call returns.
    """

    def __init__(self, path: Path) -> None:
        _ensure_directory(path)
        self._path = path
        self._lock = threading.Lock()
        self._conn: Optional[sqlite3.Connection] = sqlite3.connect(path, check_same_thread=False)
        with self._conn:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value BLOB NOT NULL
                ) WITHOUT ROWID
                """
            )
        logger.debug("Opened key-value engine at %s", path)

    @property
    def path(self) -> Path:
        return self._path

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Key-value engine is closed")
        return self._conn

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            row = self._connection().execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        return bytes(row[0])

    def put(self, key: str, value: bytes) -> None:
        with self._lock:
            conn = self._connection()
            with conn:
                conn.execute(_UPSERT_SQL, (key, sqlite3.Binary(value)))

    def delete(self, key: str) -> None:
        with self._lock:
            conn = self._connection()
            with conn:
                conn.execute("DELETE FROM kv WHERE key = ?", (key,))

    def batch(self, operations: Sequence[BatchOperation]) -> None:
        """Apply ``("put", key, value)`` and ``("del", key)`` operations atomically."""

        with self._lock:
            conn = self._connection()
            with conn:
                for operation in operations:
                    kind = operation[0]
                    if kind == "put":
                        _, key, value = operation  # type: ignore[misc]
                        conn.execute(_UPSERT_SQL, (key, sqlite3.Binary(value)))
                    elif kind == "del":
                        conn.execute("DELETE FROM kv WHERE key = ?", (operation[1],))
                    else:
                        raise ValueError(f"Unknown batch operation '{kind}'")

    def iterate(self, start_after: Optional[str] = None, limit: int = 100) -> List[Item]:
        """Return up to ``limit`` items with keys strictly after ``start_after``."""

        if limit < 1:
            raise ValueError("limit must be a positive integer")
        with self._lock:
            conn = self._connection()
            if start_after is None:
                rows = conn.execute(
                    "SELECT key, value FROM kv ORDER BY key LIMIT ?",
                    (limit,),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT key, value FROM kv WHERE key > ? ORDER BY key LIMIT ?",
                    (start_after, limit),
                ).fetchall()
        return [(str(key), bytes(value)) for key, value in rows]

    def count(self) -> int:
        with self._lock:
            row = self._connection().execute("SELECT COUNT(*) FROM kv").fetchone()
        return int(row[0])

    def close(self) -> None:
        with self._lock:
            if self._conn is None:
                return
            self._conn.close()
            self._conn = None
        logger.debug("Closed key-value engine at %s", self._path)


__all__ = ["BatchOperation", "Item", "KeyValueEngine", "SQLiteEngine"]
