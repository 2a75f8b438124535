"""One connection's view of a room.

Every connected client sees the room through its own bounded window: a
fresh view starts at one page, scrolled to the bottom, no matter how far
other viewers of the same room have scrolled back. The view owns the
client's WindowManager, its VirtualViewport model and the scroll anchor.
The room log and the reply scheduler are shared through the RoomSession.

Backward extension is gated twice: by the window's single in-flight guard,
and by the viewport being at (or within ``top_threshold`` of) the top, so a
stray ``load_older`` from a client scrolled down the list does nothing.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from roomchat.config import WindowSettings
from roomchat.messages import Message, MessageStore

from .anchor import ScrollAnchorController, VirtualViewport
from .window import ExtensionResult, WindowManager

logger = logging.getLogger(__name__)


class RoomView:
    """Window, viewport model and anchor of a single connection.

    Attributes:
        websocket: The connection this view renders for.
        window: The view's WindowManager.
        viewport: Server-side model of the client's scrollable list.
        top_threshold: Offset at or below which the viewport counts as
            being at the top.
    """

    def __init__(
        self,
        websocket: Any,
        store: MessageStore,
        room_id: str,
        settings: WindowSettings,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.websocket = websocket
        self.room_id = room_id
        self.window = WindowManager(
            store,
            room_id,
            page_size=settings.page_size,
            extend_delay_ms=settings.extend_delay_ms,
            sleep=sleep,
        )
        self.viewport = VirtualViewport()
        self.anchor = ScrollAnchorController(self.viewport)
        self.top_threshold = settings.top_threshold_px

        self.closed = False
        self._older_task: Optional[asyncio.Task] = None

    def open(self) -> List[Message]:
        """Show the most recent page, scrolled to the bottom."""
        window = self.window.initialize()
        self.viewport.render(window)
        self.viewport.layout()
        self.viewport.scroll_to_bottom()
        return window

    def close(self) -> None:
        self.closed = True
        if self._older_task is not None and not self._older_task.done():
            self._older_task.cancel()
        self._older_task = None

    def snapshot(self, composing: bool = False) -> Dict[str, Any]:
        """The ``window`` frame sent when the connection opens."""
        return {
            "type": "window",
            "messages": [m.to_record() for m in self.window.window],
            "pageCount": self.window.page_count,
            "pageSize": self.window.page_size,
            "total": self.window.total,
            "hasMore": self.window.has_more(),
            "composing": composing,
        }

    def append(self, message: Message) -> None:
        """Add a freshly stored message to the tail of this view."""
        self.window.append_to_tail(message)
        # New tail content scrolls to bottom instead of anchoring.
        self.viewport.render(self.window.window)
        self.viewport.layout()
        self.viewport.scroll_to_bottom()

    # =========================================================================
    # Older messages
    # =========================================================================

    def request_older(self) -> bool:
        """Start a backward extension if this view may take one now.

        Returns:
            True if an extension was started; False when the view is closed,
            an extension is already in flight, nothing older is left, or the
            viewport is not at the top.
        """
        if self.closed or self.window.loading_older:
            return False
        if self._older_task is not None and not self._older_task.done():
            return False
        if not self.window.can_extend():
            return False
        if not self.viewport.near_top(self.top_threshold):
            logger.debug(
                f"[View] Room {self.room_id}: load_older ignored at offset "
                f"{self.viewport.scroll_offset:.0f}"
            )
            return False
        self._older_task = asyncio.create_task(self.load_older())
        return True

    async def load_older(self) -> ExtensionResult:
        """Extend the window backward and send the prepended messages."""
        result = await self.window.extend_backward(anchor=self.anchor)
        if result.added_count and not self.closed:
            await self.send({
                "type": "older",
                "messages": [m.to_record() for m in result.prepended],
                "addedCount": result.added_count,
                "pageCount": result.page_count,
                "hasMore": self.window.has_more(),
                "scrollOffset": self.viewport.scroll_offset,
            })
        return result

    async def wait_older(self) -> None:
        """Wait for an in-flight backward extension to finish."""
        if self._older_task is not None:
            await self._older_task

    async def send(self, message: dict) -> bool:
        """Send a frame to this view's connection; False if it failed."""
        try:
            await self.websocket.send_json(message)
            return True
        except Exception as e:
            logger.debug(f"Failed to send to connection: {e}")
            return False
