"""Message records stored per room.

A message carries text, an image reference, or both. Records are persisted
as ``{id, sender, text?, imageUrl?, timestamp}`` with absent bodies omitted.
"""
import time
import uuid
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


def now_ms() -> int:
    """Wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


class Sender(str, Enum):
    """Who produced a message.

    Attributes:
        USER: The person using the room.
        SYNTHETIC: The simulated conversational partner.
    """
    USER = "user"
    SYNTHETIC = "synthetic"


class Message(BaseModel):
    """A single entry of a room log.

    Attributes:
        id: Unique message identifier (auto-generated UUID, never reused).
        sender: Who sent the message.
        text: Message text, non-empty when present.
        imageUrl: Opaque reference to image content.
        timestamp: Logical append time in milliseconds since epoch.
    """
    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        description="Unique message ID"
    )
    sender: Sender = Field(..., description="user or synthetic")
    text: Optional[str] = Field(default=None, min_length=1, description="Message text")
    imageUrl: Optional[str] = Field(default=None, min_length=1, description="Image reference")
    timestamp: int = Field(
        default_factory=now_ms,
        description="Append time in milliseconds since epoch"
    )

    @model_validator(mode="after")
    def _has_body(self) -> "Message":
        if self.text is None and self.imageUrl is None:
            raise ValueError("message requires text or imageUrl")
        return self

    def to_record(self) -> Dict[str, Any]:
        """Serialize to the persisted record shape (absent bodies omitted)."""
        return self.model_dump(mode="json", exclude_none=True)


class MessageInput(BaseModel):
    """Composer payload sent by a client.

    Clients send only the body. The server adds id, sender and timestamp.
    Blank text is treated as absent.
    """
    text: Optional[str] = Field(default=None, description="Message text")
    imageUrl: Optional[str] = Field(default=None, description="Image reference")

    @field_validator("text", "imageUrl")
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None

    @model_validator(mode="after")
    def _has_body(self) -> "MessageInput":
        if self.text is None and self.imageUrl is None:
            raise ValueError("message requires text or imageUrl")
        return self

    def to_message(self, timestamp: Optional[int] = None) -> Message:
        """Build a user message from this payload, stamped at ``timestamp``."""
        return Message(
            sender=Sender.USER,
            text=self.text,
            imageUrl=self.imageUrl,
            timestamp=now_ms() if timestamp is None else timestamp,
        )
