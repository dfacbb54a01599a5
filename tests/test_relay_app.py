"""Tests for the FastAPI relay application."""

import pytest

from listsync.config import Config, NodeConfig
from listsync.protocol import Message, MessageKind
from listsync.relay import Relay

# Only run tests if fastapi is installed
pytest.importorskip("fastapi")


from fastapi.testclient import TestClient
from listsync.relay import create_app


@pytest.fixture
def config():
    """Create a test configuration."""
    return Config(node=NodeConfig(name="test-relay-node"))


@pytest.fixture
def relay():
    return Relay()


@pytest.fixture
def client(config, relay):
    """Create a test client sharing one event loop across sockets."""
    with TestClient(create_app(config, relay=relay)) as client:
        yield client


def _announce(ws, client_id: str) -> Message:
    ws.send_text(Message.announce(client_id).encode())
    return Message.decode(ws.receive_text())


class TestRelaySocket:
    """Tests for the WebSocket endpoint."""

    def test_announce_reply(self, client):
        """Test an announcing client gets the relay's full state."""
        with client.websocket_connect("/ws") as ws:
            reply = _announce(ws, "user-a")

        assert reply.kind == MessageKind.FULL_STATE
        assert reply.entries == []

    def test_add_reaches_peer(self, client, relay):
        """Test an add from one socket is relayed to another."""
        with client.websocket_connect("/ws") as ws_a, client.websocket_connect("/ws") as ws_b:
            _announce(ws_a, "user-a")
            _announce(ws_b, "user-b")

            ws_a.send_text(Message.add("user-a", "milk").encode())
            received = Message.decode(ws_b.receive_text())

        assert received == Message.add("user-a", "milk")
        assert relay.entries == ["milk"]

    def test_late_joiner_gets_state(self, client):
        """Test a client connecting later receives the current membership."""
        with client.websocket_connect("/ws") as ws_a:
            _announce(ws_a, "user-a")
            ws_a.send_text(Message.full_sync("user-a", ["milk", "eggs"]).encode())
            # Frames on one socket are applied in order
            assert _announce(ws_a, "user-a").entries == ["eggs", "milk"]

            with client.websocket_connect("/ws") as ws_b:
                reply = _announce(ws_b, "user-b")

        assert reply.entries == ["eggs", "milk"]

    def test_malformed_frame_keeps_socket_open(self, client):
        """Test garbage is dropped and the channel keeps working."""
        with client.websocket_connect("/ws") as ws:
            ws.send_text("this is not a message")
            ws.send_bytes(b"\xff\x00")
            reply = _announce(ws, "user-a")

        assert reply.kind == MessageKind.FULL_STATE

    def test_custom_path(self, relay):
        """Test the socket is mounted at the configured path."""
        config = Config()
        config.relay.path = "/sync"

        with TestClient(create_app(config, relay=relay)) as client:
            with client.websocket_connect("/sync") as ws:
                reply = _announce(ws, "user-a")

        assert reply.kind == MessageKind.FULL_STATE


class TestRelayAPI:
    """Tests for JSON API routes."""

    def test_api_entries(self, client):
        with client.websocket_connect("/ws") as ws_a, client.websocket_connect("/ws") as ws_b:
            _announce(ws_a, "user-a")
            _announce(ws_b, "user-b")
            ws_a.send_text(Message.full_sync("user-a", ["b", "a"]).encode())
            ws_b.receive_text()

        response = client.get("/api/entries")

        assert response.status_code == 200
        assert response.json() == {"count": 2, "entries": ["a", "b"]}

    def test_api_stats(self, client):
        response = client.get("/api/stats")

        assert response.status_code == 200
        data = response.json()
        assert data["node_name"] == "test-relay-node"
        assert data["clients_connected"] == 0
        assert "entry_count" in data
        assert "timestamp" in data

    def test_api_health(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["node_name"] == "test-relay-node"
