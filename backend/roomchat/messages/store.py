"""Per-room message logs with synchronous persistence.

The store owns every room log. Logs are loaded lazily on first access (or
seeded when nothing usable is persisted), only ever grow by ``append``, and
are written through to ``RecordStorage`` inside the same call, so no reader
can observe a message that was not handed to storage first.

Failure policy:
    - A failed write is logged and reported to write-failure listeners; the
      in-memory log stays authoritative for the rest of the session.
    - A missing, empty, unreadable or undecodable record is replaced by a
      fresh seed history, which is persisted as the room's initial state.

Thread Safety:
    Designed for a single event loop. NOT thread-safe.
"""
import json
import logging
from typing import Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from roomchat.errors import CorruptRecordError, PersistenceReadError, PersistenceWriteError

from .schemas import Message, now_ms
from .seed import DEFAULT_SEED_COUNT, DEFAULT_SEED_INTERVAL_MS, generate_seed_history
from .storage import RecordStorage

logger = logging.getLogger(__name__)

WriteFailureListener = Callable[[str, PersistenceWriteError], None]


def record_key(room_id: str) -> str:
    """Storage key for a room's log."""
    return f"chat-messages-{room_id}"


def encode_log(messages: List[Message]) -> str:
    return json.dumps([m.to_record() for m in messages], ensure_ascii=False)


def decode_log(key: str, raw: str) -> List[Message]:
    """Parse a stored record into messages, preserving order.

    Raises:
        CorruptRecordError: If the value is not a JSON array of valid records.
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise CorruptRecordError(key, str(exc)) from exc
    if not isinstance(data, list):
        raise CorruptRecordError(key, f"expected a list, got {type(data).__name__}")
    try:
        return [Message.model_validate(item) for item in data]
    except ValidationError as exc:
        raise CorruptRecordError(key, str(exc)) from exc


class MessageStore:
    """Durable, ordered message log for every room.

    Attributes:
        storage: Backend holding one record per room.
        clock: Millisecond clock the seed history is anchored to. Appended
            messages keep the timestamp they were built with, clamped so the
            log never goes backwards.
    """

    def __init__(
        self,
        storage: RecordStorage,
        *,
        clock: Callable[[], int] = now_ms,
        seed_count: int = DEFAULT_SEED_COUNT,
        seed_interval_ms: int = DEFAULT_SEED_INTERVAL_MS,
    ) -> None:
        self.storage = storage
        self.clock = clock
        self.seed_count = seed_count
        self.seed_interval_ms = seed_interval_ms

        # room_id -> list of messages (append-only)
        self._logs: Dict[str, List[Message]] = {}

        self._write_failure_listeners: List[WriteFailureListener] = []

    def add_write_failure_listener(self, listener: WriteFailureListener) -> None:
        """Register a callback invoked with (room_id, error) on failed writes."""
        self._write_failure_listeners.append(listener)

    def remove_write_failure_listener(self, listener: WriteFailureListener) -> None:
        if listener in self._write_failure_listeners:
            self._write_failure_listeners.remove(listener)

    def is_loaded(self, room_id: str) -> bool:
        return room_id in self._logs

    def load(self, room_id: str) -> Tuple[Message, ...]:
        """Return the room's log, oldest first.

        On first access the persisted record is read; when there is none, it
        is empty, or it cannot be decoded, a seed history is generated and
        persisted instead.

        Args:
            room_id: The room to load.

        Returns:
            An immutable snapshot of the log.
        """
        if room_id not in self._logs:
            self._logs[room_id] = self._read_or_seed(room_id)
        return tuple(self._logs[room_id])

    def length(self, room_id: str) -> int:
        """Number of messages in the room's log (loads it if needed)."""
        if room_id not in self._logs:
            self.load(room_id)
        return len(self._logs[room_id])

    def append(self, room_id: str, message: Message) -> Message:
        """Append a message to the end of the room's log and persist the log.

        The message is stamped so timestamps never decrease along the log.

        Args:
            room_id: Room to append to.
            message: The message to store.

        Returns:
            The stored message (a stamped copy if its timestamp was behind
            the log tail).
        """
        log = self._logs.get(room_id)
        if log is None:
            self.load(room_id)
            log = self._logs[room_id]

        if log and message.timestamp < log[-1].timestamp:
            message = message.model_copy(update={"timestamp": log[-1].timestamp})

        log.append(message)
        self._persist(room_id, log)
        return message

    def drop(self, room_id: str) -> bool:
        """Forget a room's log in memory and in storage.

        Used when the room itself is deleted from the directory.

        Returns:
            True if a persisted record was removed.
        """
        self._logs.pop(room_id, None)
        removed = self.storage.delete(record_key(room_id))
        logger.info(f"[Store] Dropped log for room {room_id} (persisted={removed})")
        return removed

    # =========================================================================
    # Internal
    # =========================================================================

    def _read_or_seed(self, room_id: str) -> List[Message]:
        key = record_key(room_id)
        try:
            raw = self.storage.get(key)
        except PersistenceReadError as exc:
            logger.warning(f"[Store] {exc.message}; reseeding room {room_id}")
            raw = None
        if raw:
            try:
                messages = decode_log(key, raw)
            except CorruptRecordError as exc:
                logger.warning(f"[Store] {exc.message}; reseeding room {room_id}")
            else:
                if messages:
                    logger.info(f"[Store] Loaded {len(messages)} messages for room {room_id}")
                    return messages

        seed = generate_seed_history(
            self.seed_count,
            start_from=self.clock() - self.seed_interval_ms,
            interval_ms=self.seed_interval_ms,
        )
        logger.info(f"[Store] Seeded {len(seed)} messages for room {room_id}")
        self._persist(room_id, seed)
        return seed

    def _persist(self, room_id: str, log: List[Message]) -> None:
        try:
            self.storage.put(record_key(room_id), encode_log(log))
        except PersistenceWriteError as exc:
            logger.warning(f"[Store] {exc.message}; keeping in-memory log for room {room_id}")
            for listener in list(self._write_failure_listeners):
                listener(room_id, exc)
