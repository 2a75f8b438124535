"""Throttled scheduling of synthetic replies for one room.

State machine:
    IDLE --(user message)--> PENDING --(delay elapses, reply appended)--> IDLE

Only one PENDING cycle exists at a time. By default a user message that
arrives while PENDING does not start a second countdown; with
``queue_replies`` enabled it is owed its own reply, scheduled after the
current one completes.

Delay on trigger:
    min_delay   = max(0, throttle_ms - (now - last_reply_at))
    total_delay = min_delay + base_delay_ms + randint(0, jitter_ms)

This guarantees consecutive reply completions in a room are at least
``throttle_ms`` apart no matter how often the user sends messages.

The pending timer is an asyncio task owned by the scheduler. ``close``
cancels it; nothing is appended after teardown.
"""
import asyncio
import logging
import random
from enum import Enum
from typing import Awaitable, Callable, Optional

from roomchat.agent import MockResponder
from roomchat.messages import Message, now_ms

logger = logging.getLogger(__name__)

THROTTLE_MS = 2000
BASE_DELAY_MS = 1000
JITTER_MS = 600


class ReplyState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"


class ReplyScheduler:
    """Owes and delivers synthetic replies for a single room.

    Attributes:
        state: IDLE or PENDING.
        last_reply_at: Completion time (ms) of the most recent reply, or None.
        owed: Extra replies queued while PENDING (``queue_replies`` only).
    """

    def __init__(
        self,
        room_id: str,
        deliver: Callable[[Message], Awaitable[None]],
        *,
        responder: Optional[MockResponder] = None,
        on_composing: Optional[Callable[[bool], Awaitable[None]]] = None,
        throttle_ms: int = THROTTLE_MS,
        base_delay_ms: int = BASE_DELAY_MS,
        jitter_ms: int = JITTER_MS,
        queue_replies: bool = False,
        clock: Callable[[], int] = now_ms,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.room_id = room_id
        self._deliver = deliver
        self._on_composing = on_composing
        self.responder = responder or MockResponder(clock=clock)
        self.throttle_ms = throttle_ms
        self.base_delay_ms = base_delay_ms
        self.jitter_ms = jitter_ms
        self.queue_replies = queue_replies
        self._clock = clock
        self._sleep = sleep
        self._rng = rng or random.Random()

        self.state = ReplyState.IDLE
        self.last_reply_at: Optional[int] = None
        self.owed = 0
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def composing(self) -> bool:
        return self.state == ReplyState.PENDING

    def compute_delay(self, now: int) -> int:
        """Total delay (ms) before a reply triggered at ``now`` completes."""
        if self.last_reply_at is None:
            min_delay = 0
        else:
            min_delay = max(0, self.throttle_ms - (now - self.last_reply_at))
        return min_delay + self.base_delay_ms + self._rng.randint(0, self.jitter_ms)

    async def on_user_message(self, message: Message) -> bool:
        """React to a just-appended user message.

        Args:
            message: The user message that was appended.

        Returns:
            True if a new reply cycle started, False if one was already
            pending (or the scheduler is closed).
        """
        if self._closed:
            return False
        if self.state == ReplyState.PENDING:
            if self.queue_replies:
                self.owed += 1
                logger.debug(f"[Replies] Room {self.room_id}: reply queued ({self.owed} owed)")
            return False

        now = self._clock()
        deadline = now + self.compute_delay(now)
        self.state = ReplyState.PENDING
        logger.info(f"[Replies] Room {self.room_id}: reply due in {deadline - now}ms")
        if self._on_composing is not None:
            await self._on_composing(True)
        self._task = asyncio.create_task(self._run(deadline, message))
        return True

    async def wait_idle(self) -> None:
        """Wait until no reply is pending (including queued ones)."""
        while self._task is not None and not self._task.done():
            await asyncio.shield(self._task)

    def close(self) -> None:
        """Cancel any pending reply. Nothing is delivered afterwards."""
        self._closed = True
        self.owed = 0
        if self._task is not None and not self._task.done():
            self._task.cancel()
            logger.info(f"[Replies] Room {self.room_id}: pending reply cancelled")
        self._task = None
        self.state = ReplyState.IDLE

    # =========================================================================
    # Internal
    # =========================================================================

    async def _run(self, deadline: int, trigger: Message) -> None:
        try:
            while True:
                remaining = deadline - self._clock()
                if remaining > 0:
                    await self._sleep(remaining / 1000)
                if self._closed:
                    return

                reply = self.responder.reply_to(trigger)
                await self._deliver(reply)
                self.last_reply_at = self._clock()
                logger.info(f"[Replies] Room {self.room_id}: reply delivered at {self.last_reply_at}")

                if not (self.queue_replies and self.owed > 0):
                    break
                self.owed -= 1
                now = self._clock()
                deadline = now + self.compute_delay(now)

            self.state = ReplyState.IDLE
            if self._on_composing is not None:
                await self._on_composing(False)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"[Replies] Room {self.room_id}: reply delivery failed")
            self.state = ReplyState.IDLE
            self.owed = 0
            if self._on_composing is not None:
                await self._on_composing(False)
