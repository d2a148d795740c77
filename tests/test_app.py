"""End-to-end tests through the FastAPI WebSocket endpoint."""

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from app import create_app


@pytest.fixture
def client():
    app = create_app(max_participants=2, auth_mode="none")
    with TestClient(app) as test_client:
        yield test_client


def join(ws, room_id="ABC123"):
    ws.send_json({"type": "join", "roomId": room_id})
    return ws.receive_json()


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["rooms"] == 0


def test_unknown_room_details_is_404(client):
    assert client.get("/rooms/NOPE").status_code == 404


def test_call_scenario(client):
    with client.websocket_connect("/ws") as ws_a:
        joined_a = join(ws_a)
        assert joined_a["type"] == "joined"
        assert joined_a["participants"] == []
        a_id = joined_a["clientId"]

        with client.websocket_connect("/ws") as ws_b:
            joined_b = join(ws_b)
            b_id = joined_b["clientId"]
            assert joined_b["participants"] == [a_id]
            assert ws_a.receive_json() == {"type": "peer-joined", "clientId": b_id}

            details = client.get("/rooms/ABC123").json()
            assert details == {"room_id": "ABC123", "participants_count": 2, "max_participants": 2, "is_full": True}

            ws_b.send_json({"type": "offer", "targetId": a_id, "senderId": "spoofed", "sdp": "v=0"})
            assert ws_a.receive_json() == {"type": "offer", "targetId": a_id, "senderId": b_id, "sdp": "v=0"}

            ws_a.close()
            assert ws_b.receive_json() == {"type": "peer-left", "clientId": a_id}
            assert client.get("/rooms/ABC123").json()["participants_count"] == 1

            ws_b.send_json({"type": "leave", "roomId": "ABC123"})
            # the joined reply guarantees the leave was processed
            assert join(ws_b, "XYZ789")["type"] == "joined"
            assert client.get("/rooms/ABC123").status_code == 404


def test_dropped_socket_sends_single_peer_left(client):
    with client.websocket_connect("/ws") as ws_b:
        with client.websocket_connect("/ws") as ws_a:
            a_id = join(ws_a)["clientId"]
            join(ws_b)
            ws_a.close()

        assert ws_b.receive_json() == {"type": "peer-left", "clientId": a_id}
        # nothing else was queued ahead of the reply to the next request
        assert join(ws_b, "XYZ789")["type"] == "joined"
        assert client.get("/health").json()["connections"] == 1
        assert client.get("/rooms/ABC123").status_code == 404


def test_room_full_over_websocket(client):
    with client.websocket_connect("/ws") as ws_a, client.websocket_connect("/ws") as ws_b:
        join(ws_a)
        join(ws_b)
        with client.websocket_connect("/ws") as ws_c:
            reply = join(ws_c)
            assert reply["type"] == "error"
            assert reply["code"] == "room-full"


def test_malformed_frames_keep_connection_open(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_text("not json")
        ws.send_json({"type": "nope"})
        ws.send_bytes(b"\x00\x01")
        assert join(ws)["type"] == "joined"


def test_query_token_authenticates():
    app = create_app(auth_mode="static", auth_tokens=["secret"])
    with TestClient(app) as client:
        with client.websocket_connect("/ws?token=secret") as ws:
            assert ws.receive_json()["type"] == "authenticated"
            assert join(ws)["type"] == "joined"


def test_bad_token_is_rejected():
    app = create_app(auth_mode="static", auth_tokens=["secret"])
    with TestClient(app) as client:
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "auth", "token": "wrong"})
            assert ws.receive_json()["code"] == "unauthorized"
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_json()
            assert exc_info.value.code == 1008
