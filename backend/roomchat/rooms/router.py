"""Room directory router with CRUD endpoints for chat rooms."""
import logging
from typing import Optional

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse, Response

from roomchat.errors import RoomNotFoundError, handle_chat_error

from .schemas import RoomCreate, RoomList, RoomSort
from .service import RoomDirectory

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rooms", tags=["rooms"])


def _directory(request: Request) -> RoomDirectory:
    return request.app.state.directory


@router.get("", response_model=RoomList)
async def list_rooms(
    request: Request,
    q: Optional[str] = Query(None, description="Case-insensitive name filter"),
    sort: RoomSort = Query("newest", description="newest, oldest or name"),
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
) -> RoomList:
    """List rooms, optionally filtered by name.

    Returns:
        RoomList with the requested page and the total number of matches.
    """
    rooms, total = _directory(request).list(query=q, sort=sort, offset=offset, limit=limit)
    return RoomList(rooms=rooms, total=total)


@router.post("", status_code=201)
async def create_room(request: Request, body: RoomCreate) -> JSONResponse:
    """Create a new room.

    Args:
        body: Room creation payload.

    Returns:
        The created room (201 Created).
    """
    room = _directory(request).create(body.name)
    logger.info("[rooms] Created %s: %s", room.id, room.name)
    return JSONResponse(room.model_dump(mode="json"), status_code=201)


@router.get("/{room_id}")
async def get_room(request: Request, room_id: str) -> JSONResponse:
    """Get a single room, or 404 if it does not exist."""
    room = _directory(request).get(room_id)
    if room is None:
        raise handle_chat_error(RoomNotFoundError(room_id))
    return JSONResponse(room.model_dump(mode="json"))


@router.delete("/{room_id}", status_code=204)
async def delete_room(request: Request, room_id: str) -> Response:
    """Delete a room together with its message log.

    Any open session for the room is torn down first, so no pending reply
    can write into the dropped log.

    Returns:
        204 No Content on success, 404 if not found.
    """
    if not _directory(request).delete(room_id):
        raise handle_chat_error(RoomNotFoundError(room_id))
    request.app.state.sessions.close_room(room_id)
    request.app.state.store.drop(room_id)
    logger.info("[rooms] Deleted %s", room_id)
    return Response(status_code=204)
