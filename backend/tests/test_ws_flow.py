"""
WebSocket integration tests for full buzzer flows.
Tests: host/player scenario, locked buzzers, non-host reset,
disconnect and room teardown, error isolation.
Uses FastAPI TestClient against the /ws endpoint.
"""
import sys
import os

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient
from main import app
from socket_manager import socket_manager


@pytest.fixture(autouse=True)
def clear_state():
    socket_manager.clear()
    saved_origins = socket_manager.allowed_origins
    socket_manager.allowed_origins = []  # disable origin check for tests
    yield
    socket_manager.clear()
    socket_manager.allowed_origins = saved_origins


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def recv_until(ws, msg_type, max_messages=50):
    """Receive messages until we get the expected type. Returns that message."""
    for _ in range(max_messages):
        data = ws.receive_json()
        if data.get("type") == msg_type:
            return data
    raise TimeoutError(f"Never received {msg_type} after {max_messages} messages")


def join(ws, name, role="PLAYER", room="ABC"):
    ws.send_json({"type": "join_room", "room": room, "name": name, "role": role})
    return recv_until(ws, "room_update")


# ===========================================================================
# Scenarios
# ===========================================================================

class TestHostPlayerScenario:
    """Host starts a round, two players buzz in order, host resets."""

    def test_full_round(self, client):
        with client.websocket_connect("/ws") as host:
            snap = join(host, "Host", role="HOST")
            assert snap["room_code"] == "ABC"
            assert snap["locked"] is True
            assert snap["has_host"] is True

            host.send_json({"type": "start_round", "room": "ABC"})
            assert recv_until(host, "room_update")["locked"] is False

            with client.websocket_connect("/ws") as p1:
                join(p1, "P1")
                recv_until(host, "room_update")

                p1.send_json({"type": "buzz", "room": "ABC"})
                buzzed = host.receive_json()
                assert buzzed["type"] == "buzzed"
                assert (buzzed["name"], buzzed["rank"]) == ("P1", 1)
                snap = host.receive_json()
                assert snap["type"] == "room_update"
                assert [b["name"] for b in snap["buzzes"]] == ["P1"]

                with client.websocket_connect("/ws") as p2:
                    join(p2, "P2")
                    assert recv_until(host, "room_update")["players"] == ["P1", "P2"]

                    p2.send_json({"type": "buzz", "room": "ABC"})
                    assert recv_until(host, "buzzed")["rank"] == 2
                    snap = recv_until(host, "room_update")
                    assert [(b["rank"], b["name"]) for b in snap["buzzes"]] == [(1, "P1"), (2, "P2")]

                    host.send_json({"type": "reset", "room": "ABC"})
                    assert host.receive_json() == {"type": "reset_buzzer"}
                    snap = host.receive_json()
                    assert snap["type"] == "room_update"
                    assert snap["buzzes"] == []
                    assert snap["locked"] is True

                    # Players see the same sequence
                    assert recv_until(p2, "reset_buzzer") == {"type": "reset_buzzer"}
                    assert recv_until(p2, "room_update")["buzzes"] == []

    def test_lowercase_room_code_joins_same_room(self, client):
        with client.websocket_connect("/ws") as host:
            join(host, "Host", role="HOST", room="abc")
            with client.websocket_connect("/ws") as p1:
                snap = join(p1, "P1", room="AbC")
                assert snap["room_code"] == "ABC"
                assert snap["has_host"] is True


class TestLockedBuzzer:
    def test_buzz_in_initial_locked_state(self, client):
        with client.websocket_connect("/ws") as host:
            join(host, "Host", role="HOST")
            with client.websocket_connect("/ws") as p1:
                join(p1, "P1")
                recv_until(host, "room_update")

                p1.send_json({"type": "buzz", "room": "ABC"})
                err = p1.receive_json()
                assert err["type"] == "error"
                assert err["code"] == "locked"

                # Host only sees the next accepted action, not the error
                host.send_json({"type": "start_round", "room": "ABC"})
                snap = host.receive_json()
                assert snap["type"] == "room_update"
                assert snap["buzzes"] == []


class TestNonHostReset:
    def test_player_reset_forbidden(self, client):
        with client.websocket_connect("/ws") as host:
            join(host, "Host", role="HOST")
            host.send_json({"type": "start_round", "room": "ABC"})
            recv_until(host, "room_update")
            with client.websocket_connect("/ws") as x:
                join(x, "X")
                recv_until(host, "room_update")
                x.send_json({"type": "buzz", "room": "ABC"})
                recv_until(x, "room_update")
                recv_until(host, "room_update")

                x.send_json({"type": "reset", "room": "ABC"})
                err = recv_until(x, "error")
                assert err["code"] == "forbidden"
                assert err["message"] == "Only the host can do that."

    def test_player_reset_leaves_ledger(self, client):
        with client.websocket_connect("/ws") as host:
            join(host, "Host", role="HOST")
            host.send_json({"type": "start_round", "room": "ABC"})
            recv_until(host, "room_update")
            with client.websocket_connect("/ws") as x:
                join(x, "X")
                x.send_json({"type": "buzz", "room": "ABC"})
                recv_until(x, "buzzed")
                x.send_json({"type": "reset", "room": "ABC"})
                recv_until(x, "error")

                res = client.get("/room/ABC")
                assert res.status_code == 200
                assert [b["name"] for b in res.json()["buzzes"]] == ["X"]
                assert res.json()["locked"] is False


class TestDisconnect:
    def test_player_leave_updates_host(self, client):
        with client.websocket_connect("/ws") as host:
            join(host, "Host", role="HOST")
            with client.websocket_connect("/ws") as p1:
                join(p1, "P1")
                assert recv_until(host, "room_update")["players"] == ["P1"]
            assert recv_until(host, "room_update")["players"] == []

    def test_host_leave_updates_players(self, client):
        with client.websocket_connect("/ws") as p1:
            join(p1, "P1")
            with client.websocket_connect("/ws") as host:
                join(host, "Host", role="HOST")
                assert recv_until(p1, "room_update")["has_host"] is True
            assert recv_until(p1, "room_update")["has_host"] is False

    def test_room_deleted_when_everyone_leaves(self, client):
        with client.websocket_connect("/ws") as host:
            join(host, "Host", role="HOST")
            assert client.get("/room/ABC").status_code == 200
        assert client.get("/room/ABC").status_code == 404

    def test_host_refresh_starts_fresh_room(self, client):
        with client.websocket_connect("/ws") as host:
            join(host, "Host", role="HOST")
            host.send_json({"type": "start_round", "room": "ABC"})
            assert recv_until(host, "room_update")["locked"] is False
        with client.websocket_connect("/ws") as host:
            snap = join(host, "Host", role="HOST")
            assert snap["locked"] is True


class TestErrors:
    def test_invalid_join(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "join_room", "room": "ABC"})
            err = ws.receive_json()
            assert err["type"] == "error"
            assert err["code"] == "invalid_request"
        assert socket_manager.rooms == {}

    def test_malformed_json(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_text("not json at all")
            err = ws.receive_json()
            assert err["message"] == "Invalid message format"

    def test_message_too_large(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_text("x" * 5000)
            err = ws.receive_json()
            assert "too large" in err["message"].lower()

    def test_connection_survives_errors(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "buzz", "room": "NOPE"})
            assert ws.receive_json()["code"] == "room_not_found"
            snap = join(ws, "Alice")
            assert snap["players"] == ["Alice"]


class TestOriginCheck:
    def test_rejects_unlisted_origin(self, client):
        socket_manager.allowed_origins = ["http://allowed.example"]
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/ws", headers={"origin": "http://evil.example"}) as ws:
                ws.receive_json()
