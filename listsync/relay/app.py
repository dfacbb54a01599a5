"""FastAPI application exposing the relay over WebSocket."""

import logging
from datetime import datetime
from typing import Any

from fastapi import FastAPI, WebSocket
from fastapi.websockets import WebSocketState

from ..config import Config
from .core import Channel, Relay

logger = logging.getLogger(__name__)


class WebSocketChannel(Channel):
    """Relay channel backed by a FastAPI WebSocket."""

    def __init__(self, websocket: WebSocket):
        self._websocket = websocket
        self._closed = False

    @property
    def is_open(self) -> bool:
        return (
            not self._closed
            and self._websocket.client_state == WebSocketState.CONNECTED
            and self._websocket.application_state == WebSocketState.CONNECTED
        )

    def mark_closed(self) -> None:
        self._closed = True

    async def send(self, frame: str) -> None:
        await self._websocket.send_text(frame)


def create_app(config: Config, relay: Relay | None = None) -> FastAPI:
    """Create the FastAPI relay application.

    Args:
        config: Application configuration.
        relay: Optional Relay instance; a fresh one is created if omitted.

    Returns:
        Configured FastAPI application.
    """
    relay = relay or Relay(send_timeout=config.relay.send_timeout_seconds)

    app = FastAPI(
        title="listsync relay",
        description="Real-time list synchronization relay",
        version="0.1.0",
    )

    # Store references for route handlers
    app.state.config = config
    app.state.relay = relay

    # ==================== WebSocket ====================

    @app.websocket(config.relay.path)
    async def relay_socket(websocket: WebSocket):
        """One client channel: register, apply frames until close, deregister."""
        await websocket.accept()
        channel = WebSocketChannel(websocket)
        await relay.connect(channel)

        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break

                frame = message.get("text")
                if frame is None:
                    frame = message.get("bytes")
                if frame is None:
                    continue

                await relay.handle_frame(channel, frame)
        finally:
            channel.mark_closed()
            await relay.disconnect(channel)

    # ==================== API Routes (JSON) ====================

    @app.get("/api/entries")
    async def api_entries() -> dict[str, Any]:
        """Get the relay's current membership."""
        entries = relay.entries
        return {"count": len(entries), "entries": entries}

    @app.get("/api/stats")
    async def api_stats() -> dict[str, Any]:
        """Get relay statistics."""
        stats = {"node_name": config.node.name}
        stats.update(relay.get_stats())
        return stats

    @app.get("/api/health")
    async def api_health() -> dict[str, Any]:
        """Health check endpoint. Always returns 200 OK."""
        return {
            "status": "ok",
            "timestamp": datetime.now().isoformat(),
            "node_name": config.node.name,
            "clients_connected": relay.client_count,
        }

    return app
