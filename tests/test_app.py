"""
tests.test_app
~~~~~~~~~~~~~~

HTTP endpoints and the WebSocket relay through FastAPI's TestClient.
"""
import pytest
from fastapi.testclient import TestClient

from app import app


@pytest.fixture()
def client():
    with TestClient(app) as test_client:
        yield test_client


def create_room(client) -> str:
    response = client.post("/api/rooms")
    assert response.status_code == 201
    return response.json()["token"]


def join(ws, token, nickname=None):
    data = {"token": token}
    if nickname is not None:
        data["nickname"] = nickname
    ws.send_json({"event": "join", "data": data})


class TestHttp:

    def test_health(self, client) -> None:
        response = client.get("/")
        assert response.status_code == 200
        assert response.text == "OK"

    def test_create_room_returns_link(self, client) -> None:
        response = client.post("/api/rooms")

        assert response.status_code == 201
        body = response.json()
        assert set(body) == {"token", "link", "expiresInMinutes"}
        assert body["link"] == f"http://relay.test/r/{body['token']}"
        assert body["expiresInMinutes"] == app.state.registry.ttl_minutes
        assert app.state.registry.is_active(body["token"])

    def test_room_details(self, client) -> None:
        token = create_room(client)

        body = client.get(f"/api/rooms/{token}").json()

        assert body["token"] == token
        assert body["active"] is True
        assert body["count"] == 0
        assert body["expiresAt"] > body["createdAt"]

    def test_room_details_unknown(self, client) -> None:
        response = client.get("/api/rooms/nonexistent")
        assert response.status_code == 404
        assert response.json() == {"detail": "Room not found"}

    def test_room_page_serves_client(self, client) -> None:
        token = create_room(client)
        response = client.get(f"/r/{token}")
        assert response.status_code == 200
        assert "text/html" in response.headers["content-type"]
        assert "WebSocket" in response.text


class TestWebSocket:

    def test_invalid_token_gets_error(self, client) -> None:
        with client.websocket_connect("/ws") as ws:
            join(ws, "nonexistent", "mallory")
            assert ws.receive_json() == {"event": "error_message", "data": "Invalid or expired link."}

    def test_end_to_end(self, client) -> None:
        token = create_room(client)

        with client.websocket_connect("/ws") as alice:
            join(alice, token, "alice")
            assert alice.receive_json() == {"event": "room_info", "data": {"count": 1}}

            with client.websocket_connect("/ws") as bob:
                join(bob, token, "bob")
                assert bob.receive_json() == {"event": "room_info", "data": {"count": 2}}
                assert alice.receive_json() == {"event": "room_info", "data": {"count": 2}}
                assert client.get(f"/api/rooms/{token}").json()["count"] == 2

                alice.send_json({"event": "loc_update", "data": {"lat": 1, "lng": 2, "accuracy": 10, "ts": 5}})
                frame = bob.receive_json()
                assert frame["event"] == "peer_loc"
                alice_id = frame["data"].pop("id")
                assert frame["data"] == {"nickname": "alice", "lat": 1, "lng": 2, "accuracy": 10, "ts": 5}

                bob.send_json({"event": "loc_update", "data": {"lat": 3, "lng": 4}})
                frame = alice.receive_json()
                bob_id = frame["data"]["id"]
                assert bob_id != alice_id
                assert frame["data"]["nickname"] == "bob"

            assert alice.receive_json() == {"event": "peer_left", "data": {"id": bob_id}}
            assert alice.receive_json() == {"event": "room_info", "data": {"count": 1}}
