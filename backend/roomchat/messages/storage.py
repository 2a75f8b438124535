"""Durable key/value storage for room logs.

Each room log is stored as one record: a key derived from the room id and a
JSON array of message records. ``MessageStore`` is the only writer.

Usage:
    storage = DuckDBRecordStorage("data/messages.duckdb")
    storage.put("chat-messages-abc", "[...]")
    raw = storage.get("chat-messages-abc")
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Optional

import duckdb

from roomchat.config import MEMORY_DB
from roomchat.errors import PersistenceReadError, PersistenceWriteError

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS room_records (
    key        VARCHAR PRIMARY KEY,
    value      VARCHAR NOT NULL,
    updated_at TIMESTAMP NOT NULL
)
"""


class RecordStorage(ABC):
    """Abstract interface for room record persistence.

    Implementations must make ``put`` durable before returning and raise
    ``PersistenceWriteError`` when they cannot.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value for key, or None if absent.

        Raises:
            PersistenceReadError: If the backend cannot read the record.
        """
        pass

    @abstractmethod
    def put(self, key: str, value: str) -> None:
        """Store value under key, replacing any previous value."""
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove key. Returns True if a record was removed."""
        pass

    def close(self) -> None:
        """Release any held resources."""
        pass


class DuckDBRecordStorage(RecordStorage):
    """Room records in a single DuckDB table.

    DuckDB is embedded and every write is committed before ``put`` returns,
    so an appended message is durable as soon as the store reports it.

    Thread Safety:
        The DuckDB connection is NOT thread-safe. Use from one event loop.
    """

    def __init__(self, db_path: str = MEMORY_DB) -> None:
        """Open (or create) the database and its schema.

        Args:
            db_path: Path to the DuckDB file, or ":memory:".
        """
        self._db_path = db_path
        if db_path != MEMORY_DB:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._connection: Optional[duckdb.DuckDBPyConnection] = duckdb.connect(db_path)
        self._connection.execute(_CREATE_TABLE)
        logger.info("[Storage] Initialized with db=%s", db_path)

    def _conn(self) -> duckdb.DuckDBPyConnection:
        if self._connection is None:
            raise RuntimeError("storage is closed")
        return self._connection

    def get(self, key: str) -> Optional[str]:
        try:
            row = self._conn().execute(
                "SELECT value FROM room_records WHERE key = ?", [key]
            ).fetchone()
        except duckdb.Error as exc:
            raise PersistenceReadError(key, str(exc)) from exc
        return row[0] if row else None

    def put(self, key: str, value: str) -> None:
        try:
            self._conn().execute(
                "INSERT OR REPLACE INTO room_records (key, value, updated_at) VALUES (?, ?, ?)",
                [key, value, datetime.utcnow()],
            )
        except duckdb.Error as exc:
            raise PersistenceWriteError(key, str(exc)) from exc

    def delete(self, key: str) -> bool:
        result = self._conn().execute(
            "DELETE FROM room_records WHERE key = ? RETURNING key", [key]
        ).fetchone()
        return result is not None

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None
