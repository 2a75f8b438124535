"""Room session registry and WebSocket connection bookkeeping.

The SessionManager maps room ids to open RoomSessions. A session is created
when the first client connects to a room that exists in the room directory
and torn down when its last client leaves, which discards any pending reply
or in-flight extension for that room.

The manager is an explicit instance created at application startup and
reached through ``app.state``; nothing here is a module-level singleton.
"""
import asyncio
import logging
import random
from typing import Awaitable, Callable, Dict, Optional

from fastapi import WebSocket

from roomchat.config import AppSettings
from roomchat.errors import PersistenceWriteError, RoomNotFoundError
from roomchat.messages import MessageStore, now_ms
from roomchat.rooms.service import RoomDirectory

from .session import RoomSession

logger = logging.getLogger(__name__)


class SessionManager:
    """Owns the open RoomSession of every room being viewed.

    Attributes:
        store: The shared MessageStore.
        directory: Room directory used to reject unknown rooms.
        sessions: room_id -> open RoomSession.
    """

    def __init__(
        self,
        store: MessageStore,
        directory: RoomDirectory,
        settings: AppSettings,
        *,
        clock: Callable[[], int] = now_ms,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.store = store
        self.directory = directory
        self.settings = settings
        self._clock = clock
        self._sleep = sleep
        self._rng = rng

        self.sessions: Dict[str, RoomSession] = {}

        store.add_write_failure_listener(self.on_write_failure)

    def open(self, room_id: str) -> RoomSession:
        """Return the room's open session, creating it on first use.

        Raises:
            RoomNotFoundError: If the room is not in the directory. No log is
                loaded and no session is created in that case.
        """
        session = self.sessions.get(room_id)
        if session is not None:
            return session

        if not self.directory.exists(room_id):
            logger.info(f"[Manager] Room {room_id} not found")
            raise RoomNotFoundError(room_id)

        session = RoomSession(
            room_id,
            self.store,
            self.settings,
            clock=self._clock,
            sleep=self._sleep,
            rng=self._rng,
        )
        self.sessions[room_id] = session
        return session

    async def connect(self, websocket: WebSocket, room_id: str) -> RoomSession:
        """Accept a WebSocket connection and give it a fresh view of the room.

        The new view starts at one page regardless of other viewers.

        Raises:
            RoomNotFoundError: If the room does not exist. The socket is left
                unaccepted.
        """
        session = self.open(room_id)
        await websocket.accept()
        session.attach(websocket)
        logger.info(
            f"[Manager] Connection joined room {room_id} "
            f"({len(session.views)} connections)"
        )
        return session

    def disconnect(self, websocket: WebSocket, room_id: str) -> None:
        """Detach a connection; tear the session down when it was the last."""
        session = self.sessions.get(room_id)
        if session is None:
            return
        session.detach(websocket)
        if not session.views:
            self.close_room(room_id)

    def close_room(self, room_id: str) -> None:
        """Tear down a room's session if one is open."""
        session = self.sessions.pop(room_id, None)
        if session is not None:
            session.close()

    def close_all(self) -> None:
        for room_id in list(self.sessions):
            self.close_room(room_id)

    def get_room_size(self, room_id: str) -> int:
        """Get the number of active connections in a room."""
        session = self.sessions.get(room_id)
        return len(session.views) if session else 0

    def on_write_failure(self, room_id: str, error: PersistenceWriteError) -> None:
        """Store listener: forward a failed write to the room's clients."""
        session = self.sessions.get(room_id)
        if session is not None:
            session.record_write_failure(error)
