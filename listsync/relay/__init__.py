"""Relay server for listsync.

Holds the authoritative entry set and fans every change out to the other
connected clients. The core is transport-agnostic; create_app exposes it
over WebSocket with FastAPI.
"""

from .app import WebSocketChannel, create_app
from .core import Channel, Relay

__all__ = ["Channel", "Relay", "WebSocketChannel", "create_app"]
