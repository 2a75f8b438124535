"""Bounded window over a room log for rendering.

The window is always a contiguous suffix of the room log of length
``min(total, page_count * page_size)``. It starts at one page and grows one
page at a time towards older messages (reverse infinite scrolling). New
messages enter at the tail without changing ``page_count``.

The manager never holds its own mutable copy of the log: it reads through
``MessageStore.load`` whenever it needs the log.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Sequence

from roomchat.messages import Message, MessageStore

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20

# Simulated latency of fetching an older page, in milliseconds
DEFAULT_EXTEND_DELAY_MS = 800


def suffix_window(log: Sequence[Message], page_count: int, page_size: int) -> List[Message]:
    """The last ``min(len(log), page_count * page_size)`` messages of ``log``."""
    size = min(len(log), page_count * page_size)
    return list(log[len(log) - size:])


@dataclass
class ExtensionResult:
    """Outcome of one backward extension.

    Attributes:
        window: The window after the extension.
        added_count: How many older messages were prepended (0 for a no-op).
        page_count: Page count after the extension.
    """
    window: List[Message]
    added_count: int
    page_count: int
    prepended: List[Message] = field(default_factory=list)


class WindowManager:
    """Derives and extends the rendered window of one room.

    Attributes:
        page_size: Messages per page.
        page_count: Pages currently in the window (>= 1).
        window: The rendered suffix of the log.
        total: Length of the log as last observed.
        loading_older: True while a backward extension is in flight.
    """

    def __init__(
        self,
        store: MessageStore,
        room_id: str,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
        extend_delay_ms: int = DEFAULT_EXTEND_DELAY_MS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        self.store = store
        self.room_id = room_id
        self.page_size = page_size
        self.extend_delay_ms = extend_delay_ms
        self._sleep = sleep

        self.page_count = 1
        self.window: List[Message] = []
        self.total = 0
        self.loading_older = False

    def initialize(self) -> List[Message]:
        """Reset to one page showing the most recent messages."""
        log = self.store.load(self.room_id)
        self.page_count = 1
        self.total = len(log)
        self.window = suffix_window(log, self.page_count, self.page_size)
        logger.debug(
            f"[Window] Room {self.room_id} initialized: {len(self.window)}/{self.total} messages"
        )
        return self.window

    def can_extend(self) -> bool:
        """True iff older messages exist beyond the current window."""
        return self.page_count * self.page_size < self.store.length(self.room_id)

    async def extend_backward(self, anchor=None) -> ExtensionResult:
        """Grow the window by one page of older messages.

        Only one extension may be in flight per window; a call made while
        another is outstanding, or when nothing older remains, is a no-op
        returning ``added_count == 0``.

        Args:
            anchor: Optional ``ScrollAnchorController``. When given, the window
                mutation runs inside ``anchor.preserve`` so the viewport keeps
                its visual position across the prepend.

        Returns:
            ExtensionResult describing the new window.
        """
        if self.loading_older:
            logger.debug(f"[Window] Duplicate extension ignored for room {self.room_id}")
            return self._noop()
        if not self.can_extend():
            return self._noop()

        self.loading_older = True
        try:
            if self.extend_delay_ms:
                await self._sleep(self.extend_delay_ms / 1000)
            if anchor is not None:
                return await anchor.preserve(self._grow)
            return self._grow()
        finally:
            self.loading_older = False

    def append_to_tail(self, message: Message) -> List[Message]:
        """Add a just-appended message at the end of the window.

        ``page_count`` is unchanged; when the window is already a full
        ``page_count * page_size`` long its oldest entry drops off, so the
        window stays the suffix of the log.
        """
        self.window.append(message)
        self.total += 1
        limit = self.page_count * self.page_size
        if len(self.window) > limit:
            del self.window[:len(self.window) - limit]
        return self.window

    def has_more(self) -> bool:
        return self.page_count * self.page_size < self.total

    # =========================================================================
    # Internal
    # =========================================================================

    def _grow(self) -> ExtensionResult:
        log = self.store.load(self.room_id)
        old_length = len(self.window)
        self.page_count += 1
        self.total = len(log)
        self.window = suffix_window(log, self.page_count, self.page_size)
        added = len(self.window) - old_length
        logger.info(
            f"[Window] Room {self.room_id} extended to page {self.page_count}: "
            f"+{added} ({len(self.window)}/{self.total})"
        )
        return ExtensionResult(
            window=self.window,
            added_count=added,
            page_count=self.page_count,
            prepended=self.window[:added],
        )

    def _noop(self) -> ExtensionResult:
        return ExtensionResult(window=self.window, added_count=0, page_count=self.page_count)
