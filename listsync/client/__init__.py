"""Client-side synchronization for listsync.

Maintains a local ordered replica of the shared entry list, persists it to
a durable store and exchanges changes with the relay over WebSocket.
"""

from .synchronizer import ChangeEvent, ConnectionState, Synchronizer, generate_client_id
from .transport import Connection, open_websocket

__all__ = [
    "ChangeEvent",
    "Connection",
    "ConnectionState",
    "Synchronizer",
    "generate_client_id",
    "open_websocket",
]
