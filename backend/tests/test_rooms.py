"""Tests for the room directory service and its REST router."""
import pytest
from pydantic import ValidationError

from roomchat.rooms.schemas import RoomCreate
from roomchat.rooms.service import RoomDirectory


@pytest.fixture
def directory():
    """In-memory RoomDirectory."""
    d = RoomDirectory(":memory:")
    yield d
    d.close()


class TestRoomDirectory:
    def test_create_and_get(self, directory):
        room = directory.create("Design review")
        fetched = directory.get(room.id)
        assert fetched is not None
        assert fetched.name == "Design review"
        assert directory.exists(room.id)

    def test_unknown_room(self, directory):
        assert directory.get("nope") is None
        assert directory.exists("nope") is False

    def test_delete(self, directory):
        room = directory.create("Temporary")
        assert directory.delete(room.id) is True
        assert directory.exists(room.id) is False
        assert directory.delete(room.id) is False

    def test_list_filters_case_insensitively(self, directory):
        directory.create("Alpha team")
        directory.create("beta testers")
        directory.create("Gamma")
        rooms, total = directory.list(query="TEAM")
        assert total == 1
        assert rooms[0].name == "Alpha team"

    @pytest.mark.parametrize("query, expected", [
        ("50%", ["50% off"]),
        ("a_b", ["a_b"]),
        ("\\", ["back\\slash"]),
    ])
    def test_list_matches_wildcards_literally(self, directory, query, expected):
        for name in ("50% off", "500 club", "a_b", "axb", "back\\slash"):
            directory.create(name)
        rooms, total = directory.list(query=query)
        assert total == len(expected)
        assert [r.name for r in rooms] == expected

    def test_list_sorted_by_name(self, directory):
        for name in ("charlie", "Alpha", "bravo"):
            directory.create(name)
        rooms, total = directory.list(sort="name")
        assert total == 3
        assert [r.name for r in rooms] == ["Alpha", "bravo", "charlie"]

    def test_list_pagination(self, directory):
        for i in range(5):
            directory.create(f"room {i}")
        rooms, total = directory.list(sort="name", offset=2, limit=2)
        assert total == 5
        assert [r.name for r in rooms] == ["room 2", "room 3"]

    def test_persists_to_file(self, tmp_path):
        db_path = str(tmp_path / "nested" / "rooms.duckdb")
        first = RoomDirectory(db_path)
        room = first.create("Durable")
        first.close()

        second = RoomDirectory(db_path)
        assert second.exists(room.id)
        second.close()


class TestRoomCreate:
    def test_name_is_stripped(self):
        assert RoomCreate(name="  Lobby  ").name == "Lobby"

    @pytest.mark.parametrize("name", ["", "ab", "   ab   "])
    def test_short_names_rejected(self, name):
        with pytest.raises(ValidationError, match="at least 3 characters"):
            RoomCreate(name=name)

    def test_long_name_rejected(self):
        with pytest.raises(ValidationError):
            RoomCreate(name="x" * 81)


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------


def test_create_room_endpoint(api_client):
    response = api_client.post("/rooms", json={"name": "Random"})
    assert response.status_code == 201
    data = response.json()
    assert data["name"] == "Random"
    assert data["id"]
    assert data["createdAt"]


def test_create_room_rejects_short_name(api_client):
    response = api_client.post("/rooms", json={"name": "x"})
    assert response.status_code == 422


def test_get_room_endpoint(api_client):
    room_id = api_client.post("/rooms", json={"name": "Lookup"}).json()["id"]
    assert api_client.get(f"/rooms/{room_id}").json()["name"] == "Lookup"
    assert api_client.get("/rooms/missing").status_code == 404


def test_list_rooms_endpoint(api_client):
    for name in ("Kitchen", "Garden", "Garage"):
        api_client.post("/rooms", json={"name": name})

    data = api_client.get("/rooms", params={"q": "gar", "sort": "name"}).json()

    assert data["total"] == 2
    assert [r["name"] for r in data["rooms"]] == ["Garage", "Garden"]


def test_list_rooms_rejects_unknown_sort(api_client):
    assert api_client.get("/rooms", params={"sort": "size"}).status_code == 422


def test_delete_room_drops_its_log(api_client):
    room_id = api_client.post("/rooms", json={"name": "Short lived"}).json()["id"]
    store = api_client.app.state.store
    assert api_client.get(f"/chat/{room_id}/history").status_code == 200
    assert store.is_loaded(room_id)

    assert api_client.delete(f"/rooms/{room_id}").status_code == 204

    assert not store.is_loaded(room_id)
    assert api_client.get(f"/chat/{room_id}/history").status_code == 404
    assert api_client.delete(f"/rooms/{room_id}").status_code == 404
