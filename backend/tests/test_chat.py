"""Tests for the chat WebSocket protocol and history endpoint.

Protocol summary:
1. On connect the server sends {type: "window", messages, pageCount, ...}
2. A composer frame {text?, imageUrl?} is stored and broadcast, followed by
   the synthetic partner's typing indicator and reply
3. {type: "load_older", offset} at the top prepends one page to that
   client's window via an {type: "older"} frame
4. Unknown rooms get {type: "room_not_found"} and a 4404 close
"""
import pytest
from starlette.websockets import WebSocketDisconnect

from roomchat.chat.router import ROOM_NOT_FOUND_CLOSE_CODE


def create_room(client, name="General chat"):
    response = client.post("/rooms", json={"name": name})
    assert response.status_code == 201
    return response.json()["id"]


def receive_window(ws):
    """Helper to receive and validate the initial window frame."""
    window = ws.receive_json()
    assert window["type"] == "window"
    return window


def receive_reply_cycle(ws):
    """Receive the frames of one user message and its synthetic reply."""
    frames = [ws.receive_json() for _ in range(4)]
    assert [f["type"] for f in frames] == ["message", "typing", "message", "typing"]
    return frames


def test_websocket_initial_window(api_client):
    """A fresh room is seeded and its most recent page is sent on connect."""
    room_id = create_room(api_client)

    with api_client.websocket_connect(f"/ws/chat/{room_id}") as ws:
        window = receive_window(ws)

    assert len(window["messages"]) == 20
    assert window["pageCount"] == 1
    assert window["pageSize"] == 20
    assert window["total"] == 60
    assert window["hasMore"] is True
    assert window["composing"] is False
    assert window["messages"][-1]["text"] == "Past reply 60"


def test_websocket_message_and_reply(api_client):
    """A user message is echoed, then the synthetic partner types and replies."""
    room_id = create_room(api_client)

    with api_client.websocket_connect(f"/ws/chat/{room_id}") as ws:
        receive_window(ws)
        ws.send_json({"text": "  hello  "})
        user, typing_on, reply, typing_off = receive_reply_cycle(ws)

    assert user["sender"] == "user"
    assert user["text"] == "hello"
    assert "imageUrl" not in user
    assert typing_on == {"type": "typing", "sender": "synthetic", "isTyping": True}
    assert reply["sender"] == "synthetic"
    assert reply["text"] == "Gemini response (simulated)"
    assert reply["timestamp"] >= user["timestamp"]
    assert typing_off["isTyping"] is False


def test_websocket_image_message(api_client):
    room_id = create_room(api_client)

    with api_client.websocket_connect(f"/ws/chat/{room_id}") as ws:
        receive_window(ws)
        ws.send_json({"type": "message", "imageUrl": "blob:photo"})
        user = receive_reply_cycle(ws)[0]

    assert user["imageUrl"] == "blob:photo"
    assert "text" not in user


def test_websocket_two_clients_same_room(api_client):
    """Both viewers of a room receive the broadcast frames."""
    room_id = create_room(api_client)

    with api_client.websocket_connect(f"/ws/chat/{room_id}") as ws1, \
         api_client.websocket_connect(f"/ws/chat/{room_id}") as ws2:
        receive_window(ws1)
        receive_window(ws2)

        ws1.send_json({"text": "from one"})
        frames1 = receive_reply_cycle(ws1)
        frames2 = receive_reply_cycle(ws2)

    assert frames1 == frames2


def test_websocket_messages_survive_reconnect(api_client):
    """The room log outlives the session and reloads in order."""
    room_id = create_room(api_client)

    with api_client.websocket_connect(f"/ws/chat/{room_id}") as ws:
        receive_window(ws)
        ws.send_json({"text": "remember me"})
        user, _, reply, _ = receive_reply_cycle(ws)

    with api_client.websocket_connect(f"/ws/chat/{room_id}") as ws:
        window = receive_window(ws)

    assert window["total"] == 62
    assert [m["id"] for m in window["messages"][-2:]] == [user["id"], reply["id"]]


def test_websocket_load_older(api_client):
    """load_older prepends exactly one page and reports the anchored offset."""
    room_id = create_room(api_client)

    with api_client.websocket_connect(f"/ws/chat/{room_id}") as ws:
        window = receive_window(ws)
        ws.send_json({"type": "load_older", "offset": 0})
        older = ws.receive_json()

        assert older["type"] == "older"
        assert older["addedCount"] == 20
        assert older["pageCount"] == 2
        assert older["hasMore"] is True
        assert older["scrollOffset"] > 0
        assert older["messages"][0]["text"] == "Past message 21"
        assert window["messages"][0]["text"] == "Past message 41"

        ws.send_json({"type": "load_older", "offset": 0})
        last = ws.receive_json()
        assert last["pageCount"] == 3
        assert last["hasMore"] is False


def test_websocket_load_older_ignored_away_from_top(api_client):
    """A client scrolled to the bottom does not get an older page."""
    room_id = create_room(api_client)

    with api_client.websocket_connect(f"/ws/chat/{room_id}") as ws:
        receive_window(ws)
        ws.send_json({"type": "load_older"})
        ws.send_json({"text": "still here"})
        receive_reply_cycle(ws)


def test_websocket_clients_have_their_own_window(api_client):
    """A client joining later starts at one page; older pages are not broadcast."""
    room_id = create_room(api_client)

    with api_client.websocket_connect(f"/ws/chat/{room_id}") as ws1:
        receive_window(ws1)
        ws1.send_json({"type": "load_older", "offset": 0})
        assert ws1.receive_json()["pageCount"] == 2

        with api_client.websocket_connect(f"/ws/chat/{room_id}") as ws2:
            window = receive_window(ws2)
            assert window["pageCount"] == 1
            assert len(window["messages"]) == 20

            ws2.send_json({"type": "load_older", "offset": 0})
            assert ws2.receive_json()["pageCount"] == 2

            # ws1 sees only the shared chat traffic, not ws2's older page
            ws1.send_json({"text": "hi"})
            receive_reply_cycle(ws1)
            receive_reply_cycle(ws2)


def test_websocket_scroll_report(api_client):
    room_id = create_room(api_client)

    with api_client.websocket_connect(f"/ws/chat/{room_id}") as ws:
        receive_window(ws)
        ws.send_json({"type": "scroll", "offset": 0, "height": 400})
        ws.send_json({"type": "scroll", "offset": "far"})
        error = ws.receive_json()

    assert error["type"] == "error"


def test_websocket_invalid_message(api_client):
    """A frame without text or image is rejected without closing the socket."""
    room_id = create_room(api_client)

    with api_client.websocket_connect(f"/ws/chat/{room_id}") as ws:
        receive_window(ws)

        ws.send_json({"text": "   "})
        error = ws.receive_json()
        assert error["type"] == "error"

        ws.send_json({"type": "dance"})
        error = ws.receive_json()
        assert error["type"] == "error"
        assert "dance" in error["error"]

        ws.send_json(["not", "an", "object"])
        assert ws.receive_json()["type"] == "error"

        # Still usable afterwards
        ws.send_json({"text": "ok"})
        receive_reply_cycle(ws)


def test_websocket_unknown_room(api_client):
    """An unknown room id is answered with room_not_found and a 4404 close."""
    with api_client.websocket_connect("/ws/chat/no-such-room") as ws:
        frame = ws.receive_json()
        assert frame == {"type": "room_not_found", "roomId": "no-such-room"}
        with pytest.raises(WebSocketDisconnect) as exc_info:
            ws.receive_json()

    assert exc_info.value.code == ROOM_NOT_FOUND_CLOSE_CODE
    assert "no-such-room" not in api_client.app.state.sessions.sessions
    assert not api_client.app.state.store.is_loaded("no-such-room")


def test_websocket_room_deleted_while_open(api_client):
    room_id = create_room(api_client)

    with api_client.websocket_connect(f"/ws/chat/{room_id}") as ws:
        receive_window(ws)
        assert api_client.delete(f"/rooms/{room_id}").status_code == 204

        ws.send_json({"text": "anyone there?"})
        assert ws.receive_json()["type"] == "room_not_found"
        with pytest.raises(WebSocketDisconnect):
            ws.receive_json()


def test_session_torn_down_on_last_disconnect(api_client):
    room_id = create_room(api_client)
    sessions = api_client.app.state.sessions

    with api_client.websocket_connect(f"/ws/chat/{room_id}") as ws:
        receive_window(ws)
        assert sessions.get_room_size(room_id) == 1

    with api_client.websocket_connect(f"/ws/chat/{room_id}") as ws:
        receive_window(ws)

    assert room_id not in sessions.sessions
    assert sessions.get_room_size(room_id) == 0


# ---------------------------------------------------------------------------
# History endpoint
# ---------------------------------------------------------------------------


def test_history_latest_page(api_client):
    room_id = create_room(api_client)

    response = api_client.get(f"/chat/{room_id}/history")

    assert response.status_code == 200
    data = response.json()
    assert len(data["messages"]) == 20
    assert data["start"] == 40
    assert data["total"] == 60
    assert data["hasMore"] is True


def test_history_cursor_walks_backwards(api_client):
    room_id = create_room(api_client)

    first = api_client.get(f"/chat/{room_id}/history", params={"limit": 25}).json()
    second = api_client.get(
        f"/chat/{room_id}/history", params={"before": first["start"], "limit": 50}
    ).json()

    assert first["start"] == 35
    assert second["start"] == 0
    assert second["hasMore"] is False
    assert len(second["messages"]) == 35
    assert second["messages"][-1]["text"] == "Past message 35"


def test_history_unknown_room(api_client):
    response = api_client.get("/chat/missing/history")
    assert response.status_code == 404
    assert "missing" in response.json()["detail"]


def test_history_limit_validation(api_client):
    room_id = create_room(api_client)
    assert api_client.get(f"/chat/{room_id}/history", params={"limit": 0}).status_code == 422
    assert api_client.get(f"/chat/{room_id}/history", params={"limit": 101}).status_code == 422


def test_health(api_client):
    assert api_client.get("/health").json() == {"status": "ok"}
