"""RoomDirectory: DuckDB-backed list of chat rooms."""
import logging
import uuid
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

import duckdb

from roomchat.config import MEMORY_DB

from .schemas import Room, RoomSort

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS rooms (
    id         VARCHAR PRIMARY KEY,
    name       VARCHAR NOT NULL,
    created_at TIMESTAMP NOT NULL
)
"""

def _escape_like(term: str) -> str:
    """Escape LIKE wildcards so the term matches literally."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


_ORDER_BY = {
    "newest": "created_at DESC, id",
    "oldest": "created_at ASC, id",
    "name": "lower(name) ASC, created_at ASC",
}


class RoomDirectory:
    """Room metadata store answering ``exists`` for the chat core.

    All writes are synchronous (DuckDB is embedded and very fast for this
    volume of data).
    """

    def __init__(self, db_path: str = MEMORY_DB) -> None:
        if db_path != MEMORY_DB:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db_path = db_path
        self._conn = duckdb.connect(db_path)
        self._conn.execute(_CREATE_TABLE)
        logger.info("[RoomDirectory] Initialized with db=%s", db_path)

    # -----------------------------------------------------------------------
    # CRUD
    # -----------------------------------------------------------------------

    def create(self, name: str) -> Room:
        room = Room(id=str(uuid.uuid4()), name=name, createdAt=datetime.utcnow())
        self._conn.execute(
            "INSERT INTO rooms (id, name, created_at) VALUES (?, ?, ?)",
            [room.id, room.name, room.createdAt],
        )
        return room

    def get(self, room_id: str) -> Optional[Room]:
        row = self._conn.execute(
            "SELECT id, name, created_at FROM rooms WHERE id = ?", [room_id]
        ).fetchone()
        return self._row_to_room(row) if row else None

    def exists(self, room_id: str) -> bool:
        row = self._conn.execute(
            "SELECT 1 FROM rooms WHERE id = ?", [room_id]
        ).fetchone()
        return row is not None

    def list(
        self,
        query: Optional[str] = None,
        sort: RoomSort = "newest",
        offset: int = 0,
        limit: int = 50,
    ) -> Tuple[List[Room], int]:
        """List rooms matching ``query`` (case-insensitive substring).

        Returns:
            Tuple of (rooms on this page, total number of matches).
        """
        where = ""
        params: list = []
        if query:
            where = "WHERE lower(name) LIKE ? ESCAPE '\\'"
            params.append(f"%{_escape_like(query.lower())}%")

        total = self._conn.execute(
            f"SELECT count(*) FROM rooms {where}", params
        ).fetchone()[0]
        rows = self._conn.execute(
            f"SELECT id, name, created_at FROM rooms {where} "
            f"ORDER BY {_ORDER_BY[sort]} LIMIT ? OFFSET ?",
            params + [limit, offset],
        ).fetchall()
        return [self._row_to_room(r) for r in rows], total

    def delete(self, room_id: str) -> bool:
        result = self._conn.execute(
            "DELETE FROM rooms WHERE id = ? RETURNING id", [room_id]
        ).fetchone()
        return result is not None

    def close(self) -> None:
        self._conn.close()

    # -----------------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------------

    def _row_to_room(self, row) -> Room:
        return Room(id=row[0], name=row[1], createdAt=row[2])
