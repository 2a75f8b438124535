"""One open chat room and the connections viewing it.

A RoomSession ties the shared parts of a room together:

    Composer payload -> MessageStore.append -> RoomView.append (every view)
        -> broadcast -> ReplyScheduler.on_user_message

Each connection gets its own RoomView (window, viewport model, scroll
anchor), so backward extension and scroll reports of one client never move
another client's window. The room log and the reply cycle are shared.

The session owns every timer it starts (the pending reply, and through its
views any in-flight backward extension) and cancels them in ``close``, so a
torn-down room never receives a late append.

Thread Safety:
    Designed for a single event loop. NOT thread-safe.
"""
import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Dict, List, Optional

from fastapi import WebSocket

from roomchat.agent import MockResponder
from roomchat.config import AppSettings
from roomchat.errors import PersistenceWriteError
from roomchat.messages import Message, MessageInput, MessageStore, now_ms

from .replies import ReplyScheduler
from .view import RoomView

logger = logging.getLogger(__name__)


class RoomSession:
    """Shared reply scheduler and per-connection views of one room.

    Attributes:
        room_id: The room being viewed.
        views: One RoomView per active connection.
        scheduler: The room's ReplyScheduler.
    """

    def __init__(
        self,
        room_id: str,
        store: MessageStore,
        settings: AppSettings,
        *,
        clock: Callable[[], int] = now_ms,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.room_id = room_id
        self.store = store
        self.settings = settings
        self.views: List[RoomView] = []
        self._clock = clock
        self._sleep = sleep

        replies = settings.replies
        self.scheduler = ReplyScheduler(
            room_id,
            self._deliver_reply,
            responder=MockResponder(text=replies.text, clock=clock),
            on_composing=self._notify_composing,
            throttle_ms=replies.throttle_ms,
            base_delay_ms=replies.base_delay_ms,
            jitter_ms=replies.jitter_ms,
            queue_replies=replies.queue_replies,
            clock=clock,
            sleep=sleep,
            rng=rng,
        )

        self.closed = False
        self._pending_warnings: List[Dict[str, Any]] = []

    @property
    def connections(self) -> List[WebSocket]:
        return [view.websocket for view in self.views]

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def attach(self, websocket: WebSocket) -> RoomView:
        """Open a fresh view for a new connection."""
        view = RoomView(
            websocket,
            self.store,
            self.room_id,
            self.settings.window,
            sleep=self._sleep,
        )
        window = view.open()
        self.views.append(view)
        logger.info(
            f"[Session] Room {self.room_id}: view opened with {len(window)} messages "
            f"({len(self.views)} views)"
        )
        return view

    def detach(self, websocket: WebSocket) -> Optional[RoomView]:
        """Close and forget the view of a connection."""
        view = self.view_for(websocket)
        if view is not None:
            self._remove(view)
        return view

    def view_for(self, websocket: WebSocket) -> Optional[RoomView]:
        # Identity, not equality: starlette WebSockets compare by scope.
        for view in self.views:
            if view.websocket is websocket:
                return view
        return None

    def close(self) -> None:
        """Tear down: cancel pending timers and forget connections."""
        if self.closed:
            return
        self.closed = True
        self.scheduler.close()
        for view in self.views:
            view.close()
        self.views.clear()
        logger.info(f"[Session] Room {self.room_id} closed")

    def snapshot(self, view: RoomView) -> Dict[str, Any]:
        """The ``window`` frame for a newly connected view."""
        return view.snapshot(composing=self.scheduler.composing)

    # =========================================================================
    # Composer
    # =========================================================================

    async def send(self, payload: MessageInput) -> Message:
        """Append a user message, broadcast it and trigger a reply cycle.

        Args:
            payload: Validated composer payload.

        Returns:
            The stored message.
        """
        if self.closed:
            raise RuntimeError(f"session for room {self.room_id} is closed")
        message = self._append(payload.to_message(timestamp=self._clock()))
        await self.broadcast({"type": "message", **message.to_record()})
        await self._flush_warnings()
        await self.scheduler.on_user_message(message)
        return message

    async def _deliver_reply(self, reply: Message) -> None:
        if self.closed:
            return
        message = self._append(reply)
        await self.broadcast({"type": "message", **message.to_record()})
        await self._flush_warnings()

    async def _notify_composing(self, is_composing: bool) -> None:
        await self.broadcast({
            "type": "typing",
            "sender": "synthetic",
            "isTyping": is_composing,
        })

    def _append(self, message: Message) -> Message:
        stored = self.store.append(self.room_id, message)
        for view in self.views:
            view.append(stored)
        return stored

    # =========================================================================
    # Notifications
    # =========================================================================

    def record_write_failure(self, error: PersistenceWriteError) -> None:
        """Queue a non-fatal warning for the room's clients."""
        self._pending_warnings.append({
            "type": "warning",
            "code": "persistence_write_failed",
            "message": "Messages could not be saved; they are kept for this session only.",
        })

    async def _flush_warnings(self) -> None:
        while self._pending_warnings:
            await self.broadcast(self._pending_warnings.pop(0))

    async def broadcast(self, message: dict) -> None:
        """Send a message to all views of the room concurrently.

        Views whose connection fails to receive are dropped from the session.
        """
        views = self.views.copy()
        if not views:
            return

        results = await asyncio.gather(
            *[view.send(message) for view in views],
            return_exceptions=True
        )

        for view, success in zip(views, results):
            if success is not True and view in self.views:
                self._remove(view)
                logger.debug(f"Removed dead connection from room {self.room_id}")

    def _remove(self, view: RoomView) -> None:
        self.views.remove(view)
        view.close()
