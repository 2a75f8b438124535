"""Message records, their durable storage, and the per-room message store."""
from .schemas import Message, MessageInput, Sender, now_ms
from .seed import generate_seed_history
from .storage import DuckDBRecordStorage, RecordStorage
from .store import MessageStore, record_key

__all__ = [
    "DuckDBRecordStorage",
    "Message",
    "MessageInput",
    "MessageStore",
    "RecordStorage",
    "Sender",
    "generate_seed_history",
    "now_ms",
    "record_key",
]
