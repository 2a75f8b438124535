"""Pydantic schemas for the room directory."""
import uuid
from datetime import datetime
from typing import List, Literal

from pydantic import BaseModel, Field, field_validator


RoomSort = Literal["newest", "oldest", "name"]

ROOM_NAME_MIN = 3
ROOM_NAME_MAX = 80


class RoomCreate(BaseModel):
    """Request body for creating a room."""
    name: str = Field(..., max_length=ROOM_NAME_MAX)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if len(value) < ROOM_NAME_MIN:
            raise ValueError(f"Chatroom name must be at least {ROOM_NAME_MIN} characters")
        return value


class Room(BaseModel):
    """Full room record returned by the API."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    createdAt: datetime = Field(default_factory=datetime.utcnow)


class RoomList(BaseModel):
    """A page of rooms plus the total number of matches."""
    rooms: List[Room]
    total: int
