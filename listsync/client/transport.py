"""WebSocket transport used by the synchronizer to reach the relay."""

import logging
from typing import AsyncIterator, Awaitable, Callable, Protocol

from websockets.asyncio.client import connect

logger = logging.getLogger(__name__)


class Connection(Protocol):
    """What the synchronizer needs from an open channel to the relay.

    Iterating yields incoming text frames until the channel closes.
    """

    async def send(self, frame: str) -> None: ...

    def __aiter__(self) -> AsyncIterator[str | bytes]: ...

    async def close(self) -> None: ...


Connector = Callable[[str], Awaitable[Connection]]


async def open_websocket(url: str, open_timeout: float = 10.0) -> Connection:
    """Open a WebSocket connection to the relay.

    Args:
        url: Relay WebSocket URL (e.g., "ws://localhost:8080/ws").
        open_timeout: Seconds to wait for the opening handshake.

    Returns:
        The open connection.
    """
    websocket = await connect(url, open_timeout=open_timeout)
    logger.debug(f"WebSocket opened to {url}")
    return websocket
