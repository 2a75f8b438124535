"""Exceptions shared by the message store, room sessions and routers."""
from fastapi import HTTPException


class ChatError(Exception):
    """Base exception for roomchat errors."""
    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class RoomNotFoundError(ChatError):
    """Raised when a room id has no entry in the room directory."""
    def __init__(self, room_id: str):
        self.room_id = room_id
        super().__init__(f"Room not found: {room_id}", status_code=404)


class PersistenceWriteError(ChatError):
    """Raised by a storage backend when a durable write fails."""
    def __init__(self, key: str, reason: str):
        self.key = key
        super().__init__(f"Failed to persist {key}: {reason}", status_code=500)


class PersistenceReadError(ChatError):
    """Raised by a storage backend when a stored record cannot be read."""
    def __init__(self, key: str, reason: str):
        self.key = key
        super().__init__(f"Failed to read {key}: {reason}", status_code=500)


class CorruptRecordError(ChatError):
    """Raised when a stored record cannot be decoded."""
    def __init__(self, key: str, reason: str):
        self.key = key
        super().__init__(f"Corrupt record {key}: {reason}", status_code=500)


def handle_chat_error(error: ChatError) -> HTTPException:
    """Convert a ChatError to an HTTPException.

    Args:
        error: The ChatError to convert.

    Returns:
        HTTPException with appropriate status code and detail.
    """
    return HTTPException(
        status_code=error.status_code,
        detail=error.message,
    )
