import pytest
from fastapi.testclient import TestClient

from app import app


@pytest.fixture
def client():
    with TestClient(app) as client:
        yield client


def receive_until(ws, event_type):
    """Read events until one of ``event_type`` arrives; return it."""
    for _ in range(20):
        event = ws.receive_json()
        if event["type"] == event_type:
            return event
    raise AssertionError(f"no {event_type} event received")


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_rest_create_list_and_details(client):
    response = client.post("/rooms/", json={"name": "Late Night Chill", "capacity": 99, "password": "pw"})
    assert response.status_code == 201
    body = response.json()
    assert body["ws_url"].endswith("/ws")
    room_id = body["room_id"]

    rooms = client.get("/rooms/").json()
    assert rooms == [{
        "id": room_id, "name": "Late Night Chill", "count": 0, "capacity": 10, "has_password": True,
    }]

    details = client.get(f"/rooms/{room_id}").json()
    assert details["is_full"] is False
    assert details["participants"] == []
    assert "password" not in details


def test_rest_errors(client):
    assert client.get("/rooms/missing").status_code == 404
    assert client.post("/rooms/", json={"name": "  "}).status_code == 400
    assert client.post("/rooms/", json={"name": 5}).status_code == 422


def test_websocket_room_flow(client):
    with client.websocket_connect("/ws") as alice, client.websocket_connect("/ws") as bob:
        assert alice.receive_json() == {"type": "room_list", "rooms": []}
        assert bob.receive_json() == {"type": "room_list", "rooms": []}

        alice.send_json({"type": "create_room", "name": "duo", "capacity": 2})
        room_id = receive_until(alice, "room_created")["room_id"]
        assert receive_until(bob, "room_list")["rooms"][0]["id"] == room_id

        alice.send_json({"type": "join_room", "room_id": room_id, "peer_id": "peer-a", "display_name": "Alice"})
        assert receive_until(alice, "existing_participants")["participants"] == []

        bob.send_json({"type": "join_room", "room_id": room_id, "peer_id": "peer-b", "display_name": "Bob"})
        existing = receive_until(bob, "existing_participants")
        assert existing["participants"] == [{"peer_id": "peer-a", "display_name": "Alice"}]
        joined = receive_until(alice, "participant_joined")
        assert joined == {"type": "participant_joined", "peer_id": "peer-b", "display_name": "Bob"}

        bob.send_json({"type": "send_chat", "text": "hi all"})
        assert receive_until(alice, "chat_message")["sender_name"] == "Bob"
        assert receive_until(bob, "chat_message")["text"] == "hi all"

        with client.websocket_connect("/ws") as carol:
            receive_until(carol, "room_list")
            carol.send_json({"type": "join_room", "room_id": room_id, "peer_id": "peer-c"})
            assert receive_until(carol, "error")["reason"] == "RoomFull"

        bob.send_json({"type": "leave_room", "room_id": room_id})
        assert receive_until(alice, "participant_left") == {"type": "participant_left", "peer_id": "peer-b"}


def test_websocket_disconnect_cleans_up(client):
    with client.websocket_connect("/ws") as bob:
        receive_until(bob, "room_list")
        with client.websocket_connect("/ws") as alice:
            receive_until(alice, "room_list")
            alice.send_json({"type": "create_room", "name": "duo", "capacity": 2})
            room_id = receive_until(alice, "room_created")["room_id"]
            alice.send_json({"type": "join_room", "room_id": room_id, "peer_id": "peer-a"})
            receive_until(alice, "existing_participants")
            bob.send_json({"type": "join_room", "room_id": room_id, "peer_id": "peer-b"})
            receive_until(bob, "existing_participants")

        assert receive_until(bob, "participant_left") == {"type": "participant_left", "peer_id": "peer-a"}
        assert receive_until(bob, "room_list")["rooms"][0]["count"] == 1

    assert client.get("/rooms/").json() == []


def test_websocket_rejects_malformed_messages(client):
    with client.websocket_connect("/ws") as ws:
        receive_until(ws, "room_list")
        ws.send_text("garbage")
        assert receive_until(ws, "error")["reason"] == "InvalidInput"
        ws.send_json({"type": "join_room", "room_id": "nope", "peer_id": "p"})
        assert receive_until(ws, "error")["reason"] == "RoomNotFound"
        ws.send_json({"type": "send_chat", "text": "nobody here"})
        assert receive_until(ws, "error")["reason"] == "InvalidInput"
        # the connection is still usable
        ws.send_json({"type": "list_rooms"})
        assert ws.receive_json() == {"type": "room_list", "rooms": []}


def test_websocket_password_and_kick(client):
    with client.websocket_connect("/ws") as owner, client.websocket_connect("/ws") as guest:
        receive_until(owner, "room_list")
        receive_until(guest, "room_list")
        owner.send_json({"type": "create_room", "name": "private", "password": "pw"})
        room_id = receive_until(owner, "room_created")["room_id"]
        owner.send_json({"type": "join_room", "room_id": room_id, "peer_id": "peer-o", "password": "pw"})
        receive_until(owner, "existing_participants")

        guest.send_json({"type": "join_room", "room_id": room_id, "peer_id": "peer-g", "password": "nope"})
        assert receive_until(guest, "error")["reason"] == "WrongPassword"
        guest.send_json({"type": "join_room", "room_id": room_id, "peer_id": "peer-g", "password": "pw"})
        receive_until(guest, "existing_participants")
        receive_until(owner, "participant_joined")

        owner.send_json({"type": "kick_participant", "target_peer_id": "peer-g"})
        assert receive_until(guest, "kicked") == {"type": "kicked", "room_id": room_id}
        assert receive_until(owner, "participant_left")["peer_id"] == "peer-g"

    details = client.get("/rooms/").json()
    assert details == []
