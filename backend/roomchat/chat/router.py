"""Chat router providing WebSocket and HTTP endpoints.

This module provides:
    - GET /chat/{room_id}/history: Paginated message history
    - WebSocket /ws/chat/{room_id}: Windowed real-time chat

Protocol Message Types (client -> server):
    - message: Composer payload {text?, imageUrl?} (the default type)
    - load_older: The viewport reached the top of the window {offset?}
    - scroll: Viewport state report {offset?, height?}

Protocol Message Types (server -> client):
    - window: Initial window on connect
    - message: A stored message (user or synthetic)
    - typing: Composing indicator of the synthetic partner
    - older: Older messages prepended to the requesting client's window,
      with the scroll offset that keeps its viewport anchored
    - warning: Non-fatal notice (e.g. messages could not be persisted)
    - room_not_found: Terminal; the socket is closed afterwards
    - error: The last client frame was rejected
"""
import logging
from typing import Optional

from fastapi import APIRouter, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from roomchat.errors import RoomNotFoundError, handle_chat_error
from roomchat.messages import MessageInput

from .manager import SessionManager

logger = logging.getLogger(__name__)

router = APIRouter()

DEFAULT_HISTORY_LIMIT = 20
MAX_HISTORY_LIMIT = 100

# Close code sent after a room_not_found frame
ROOM_NOT_FOUND_CLOSE_CODE = 4404


class ScrollReport(BaseModel):
    """Client viewport state carried by a ``scroll`` frame."""
    offset: Optional[float] = None
    height: Optional[float] = None


@router.get("/chat/{room_id}/history")
async def get_message_history(
    request: Request,
    room_id: str,
    before: Optional[int] = Query(None, ge=0, description="Log index cursor (exclusive)"),
    limit: int = Query(DEFAULT_HISTORY_LIMIT, ge=1, le=MAX_HISTORY_LIMIT, description="Number of messages to return")
) -> JSONResponse:
    """Get a page of a room's message log.

    Clients without a socket can walk the log backwards by passing the
    index of the oldest message they hold as ``before``.

    Args:
        room_id: The room ID.
        before: Index into the log; messages strictly before it are returned.
                If not provided, returns the most recent messages.
        limit: Maximum number of messages to return (1-100, default 20).

    Returns:
        JSON with messages (oldest first), hasMore, start and total.

    Example:
        GET /chat/abc123/history?limit=20
        GET /chat/abc123/history?before=40&limit=20
    """
    if not request.app.state.directory.exists(room_id):
        raise handle_chat_error(RoomNotFoundError(room_id))

    log = request.app.state.store.load(room_id)
    end = len(log) if before is None else min(before, len(log))
    start = max(0, end - limit)

    return JSONResponse({
        "messages": [m.to_record() for m in log[start:end]],
        "hasMore": start > 0,
        "start": start,
        "total": len(log),
    })


@router.websocket("/ws/chat/{room_id}")
async def websocket_chat_endpoint(websocket: WebSocket, room_id: str) -> None:
    """WebSocket endpoint for one client viewing a room.

    Protocol Flow:
        1. Client connects
           → Server sends: {type: "window", messages: [...], pageCount, ...}
           (or {type: "room_not_found"} and closes for unknown rooms)
        2. Client sends: {text?, imageUrl?}
           → Server broadcasts: {type: "message", ...record}
           → Server broadcasts: {type: "typing", isTyping: true}, later the
             synthetic {type: "message"} and {type: "typing", isTyping: false}
        3. Client sends: {type: "load_older", offset?} while at the top
           → Server replies to that client only: {type: "older", messages, addedCount, ...}
        4. On last disconnect the room session is torn down.

    Args:
        websocket: The WebSocket connection.
        room_id: The room ID to view.
    """
    manager: SessionManager = websocket.app.state.sessions
    logger.info(f"[WS] New connection to room: {room_id}")

    try:
        session = await manager.connect(websocket, room_id)
    except RoomNotFoundError:
        await websocket.accept()
        await websocket.send_json({"type": "room_not_found", "roomId": room_id})
        await websocket.close(code=ROOM_NOT_FOUND_CLOSE_CODE)
        return

    try:
        view = session.view_for(websocket)
        await websocket.send_json(session.snapshot(view))

        # Main message loop
        while True:
            data = await websocket.receive_json()

            # Room deleted while this client was viewing it
            if session.closed:
                await websocket.send_json({"type": "room_not_found", "roomId": room_id})
                await websocket.close(code=ROOM_NOT_FOUND_CLOSE_CODE)
                return

            if not isinstance(data, dict):
                await websocket.send_json({
                    "type": "error",
                    "error": "Invalid frame: expected a JSON object"
                })
                continue
            message_type = data.get("type", "message")
            logger.debug("[WS] Room %s received: type=%s", room_id, message_type)

            # --- Handle LOAD_OLDER (viewport approaching top) ---
            # May carry the offset at which the client hit the top. Ignored
            # unless this view is at the top, or while an extension is in
            # flight, or when nothing is left.
            if message_type == "load_older":
                try:
                    report = ScrollReport.model_validate(data)
                except ValidationError:
                    report = ScrollReport()
                view.viewport.update(offset=report.offset, height=report.height)
                started = view.request_older()
                logger.debug(f"[WS] load_older in room {room_id}: started={started}")
                continue

            # --- Handle SCROLL report ---
            if message_type == "scroll":
                try:
                    report = ScrollReport.model_validate(data)
                except ValidationError:
                    await websocket.send_json({
                        "type": "error",
                        "error": "Invalid scroll report"
                    })
                    continue
                view.viewport.update(offset=report.offset, height=report.height)
                continue

            if message_type != "message":
                await websocket.send_json({
                    "type": "error",
                    "error": f"Unknown message type: {message_type}"
                })
                continue

            # --- Handle regular CHAT message ---
            try:
                payload = MessageInput.model_validate(data)
            except ValidationError:
                await websocket.send_json({
                    "type": "error",
                    "error": "Invalid message format: text or imageUrl is required"
                })
                continue

            message = await session.send(payload)
            logger.info(f"[WS] Message {message.id} stored in room {room_id}")

    except WebSocketDisconnect:
        logger.info(f"[WS] Client disconnected from room {room_id}")
    finally:
        manager.disconnect(websocket, room_id)
        logger.info(
            f"[WS] Connection left room {room_id} "
            f"({manager.get_room_size(room_id)} remaining)"
        )
