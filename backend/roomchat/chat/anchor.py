"""Scroll position preservation across backward window extensions.

Prepending older messages grows the scrollable content above whatever the
user is reading. To keep that content visually fixed the controller runs a
two-phase hook around the window mutation:

    1. measure the viewport's scroll extent
    2. apply the mutation and hand the new window to the viewport
    3. wait for the viewport's layout pass
    4. scroll by exactly (new extent - old extent)

Any rendering layer can participate by implementing ``Viewport``.
``VirtualViewport`` is the server-side model of a client's message list.
"""
import asyncio
import logging
import math
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Sequence

from roomchat.messages import Message

from .window import ExtensionResult

logger = logging.getLogger(__name__)


class Viewport(ABC):
    """A scrollable message list as seen by the scroll anchor controller."""

    @abstractmethod
    def scroll_extent(self) -> float:
        """Total scrollable height after the most recent layout pass."""
        pass

    @abstractmethod
    def scroll_by(self, delta: float) -> None:
        """Move the scroll offset by ``delta`` (positive is downwards)."""
        pass

    @abstractmethod
    def render(self, messages: Sequence[Message]) -> None:
        """Accept new content. Layout happens later, in ``after_layout``."""
        pass

    @abstractmethod
    async def after_layout(self) -> None:
        """Resolve once the content handed to ``render`` has been laid out."""
        pass


class VirtualViewport(Viewport):
    """Estimated layout of a vertical message list.

    Each message is one bubble: its text wrapped at ``chars_per_line``
    characters at ``line_height`` each, an image block of ``image_height``
    when present, and ``bubble_padding`` around it. A top sentinel and a
    bottom spacer of ``edge_height`` bound the list.

    Clients report their real scroll offset and viewport height via
    ``update``; the model answers with the offset they should restore after
    a prepend.
    """

    def __init__(
        self,
        *,
        height: float = 600.0,
        line_height: float = 20.0,
        chars_per_line: int = 48,
        image_height: float = 256.0,
        bubble_padding: float = 40.0,
        edge_height: float = 4.0,
    ) -> None:
        self.height = height
        self.line_height = line_height
        self.chars_per_line = chars_per_line
        self.image_height = image_height
        self.bubble_padding = bubble_padding
        self.edge_height = edge_height

        self.scroll_offset = 0.0
        self._messages: List[Message] = []
        self._extent = 2 * edge_height
        self._dirty = False

    def message_height(self, message: Message) -> float:
        height = self.bubble_padding
        if message.text:
            lines = max(1, math.ceil(len(message.text) / self.chars_per_line))
            height += lines * self.line_height
        if message.imageUrl:
            height += self.image_height
        return height

    def scroll_extent(self) -> float:
        return self._extent

    def max_offset(self) -> float:
        return max(0.0, self._extent - self.height)

    def scroll_by(self, delta: float) -> None:
        self.scroll_offset = min(self.max_offset(), max(0.0, self.scroll_offset + delta))

    def scroll_to_bottom(self) -> None:
        self.scroll_offset = self.max_offset()

    def near_top(self, threshold: float = 0.0) -> bool:
        """True when the top sentinel is within ``threshold`` of view."""
        return self.scroll_offset <= threshold

    def update(self, offset: Optional[float] = None, height: Optional[float] = None) -> None:
        """Record the client's reported viewport state."""
        if height is not None and height > 0:
            self.height = float(height)
        if offset is not None:
            self.scroll_offset = min(self.max_offset(), max(0.0, float(offset)))

    def render(self, messages: Sequence[Message]) -> None:
        self._messages = list(messages)
        self._dirty = True

    def layout(self) -> float:
        """Recompute the extent from the rendered messages."""
        self._extent = 2 * self.edge_height + sum(self.message_height(m) for m in self._messages)
        self._dirty = False
        return self._extent

    async def after_layout(self) -> None:
        # Layout runs on the next loop turn, after the mutating handler yields.
        await asyncio.sleep(0)
        if self._dirty:
            self.layout()


class ScrollAnchorController:
    """Keeps the viewport visually fixed while older messages are prepended."""

    def __init__(self, viewport: Viewport) -> None:
        self.viewport = viewport

    async def preserve(self, mutation: Callable[[], ExtensionResult]) -> ExtensionResult:
        """Run a window mutation with capture -> mutate -> layout -> adjust.

        Args:
            mutation: Applies the window extension and returns its result.

        Returns:
            The mutation's result.
        """
        prior_extent = self.viewport.scroll_extent()
        result = mutation()
        self.viewport.render(result.window)
        await self.viewport.after_layout()
        delta = self.viewport.scroll_extent() - prior_extent
        self.viewport.scroll_by(delta)
        logger.debug(f"[Anchor] Extent {prior_extent:.0f} -> {prior_extent + delta:.0f}, scrolled by {delta:.0f}")
        return result
