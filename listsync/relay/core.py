"""Relay state and fan-out, independent of the transport.

The relay owns the authoritative entry set and the registry of open
channels. All access goes through one asyncio.Lock so that each message is
applied and fanned out before the next one is looked at; every client
therefore sees messages in the order the relay applied them.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from ..protocol import Message, MessageKind, ProtocolError

logger = logging.getLogger(__name__)


class Channel(ABC):
    """One open connection from the relay to a client."""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Whether the channel can currently accept frames."""
        pass

    @abstractmethod
    async def send(self, frame: str) -> None:
        """Send one text frame."""
        pass


class Relay:
    """Authoritative shared entry set plus broadcast to connected clients."""

    def __init__(self, send_timeout: float = 5.0) -> None:
        self.send_timeout = send_timeout
        self._entries: set[str] = set()
        self._channels: set[Channel] = set()
        self._client_ids: dict[Channel, str] = {}
        self._lock = asyncio.Lock()
        self._relayed = 0
        self._dropped = 0
        self._failed_sends = 0

    @property
    def entries(self) -> list[str]:
        """Current membership, sorted (the relay keeps no order)."""
        return sorted(self._entries)

    @property
    def client_count(self) -> int:
        return len(self._channels)

    async def connect(self, channel: Channel) -> None:
        """Register a newly opened channel."""
        async with self._lock:
            self._channels.add(channel)
        logger.info(f"Client connected ({self.client_count} connected)")

    async def disconnect(self, channel: Channel) -> None:
        """Deregister a channel. The entry set is left untouched."""
        async with self._lock:
            self._channels.discard(channel)
            client_id = self._client_ids.pop(channel, None)
        logger.info(
            f"Client {client_id or '<unannounced>'} disconnected "
            f"({self.client_count} connected)"
        )

    async def handle_frame(self, channel: Channel, frame: str | bytes) -> None:
        """Decode and apply one incoming frame; invalid frames are dropped."""
        try:
            message = Message.decode(frame)
        except ProtocolError as e:
            self._dropped += 1
            logger.debug(f"Dropping malformed message: {e}")
            return

        await self.handle_message(channel, message)

    async def handle_message(self, channel: Channel, message: Message) -> None:
        """Apply a message to the shared set and fan it out.

        A connect-announce changes nothing and is answered with a full-state
        reply sent as the relay itself, even when the set is empty, so the
        client can tell an empty relay from a missing reply.
        """
        async with self._lock:
            if message.kind == MessageKind.CONNECT_ANNOUNCE:
                self._client_ids[channel] = message.sender_id
                logger.info(f"Client announced as {message.sender_id}")
                await self._deliver(channel, Message.full_state(self.entries).encode())
                return

            if message.kind == MessageKind.FULL_SYNC:
                self._entries = set(message.entries or [])
            elif message.kind == MessageKind.ADD:
                self._entries.add(message.entry)
            elif message.kind == MessageKind.REMOVE:
                self._entries.discard(message.entry)
            elif message.kind == MessageKind.REORDER:
                # Membership only; order lives on the clients
                self._entries = set(message.entries or [])
            else:
                self._dropped += 1
                logger.debug(f"Ignoring {message.kind.value} from {message.sender_id}")
                return

            logger.debug(
                f"Applied {message.kind.value} from {message.sender_id} "
                f"({len(self._entries)} entries)"
            )
            await self._fan_out(channel, message)

    async def _fan_out(self, sender: Channel, message: Message) -> None:
        """Send a message to every open channel except the sender."""
        frame = message.encode()
        for channel in list(self._channels):
            if channel is sender:
                continue
            await self._deliver(channel, frame)
        self._relayed += 1

    async def _deliver(self, channel: Channel, frame: str) -> None:
        """Send one frame, skipping closed channels without retrying.

        Each send is bounded by ``send_timeout`` so a peer that stops reading
        cannot hold the lock; a timed-out send counts as failed.
        """
        if not channel.is_open:
            logger.debug("Skipping send to closed channel")
            return

        name = self._client_ids.get(channel, "client")
        try:
            await asyncio.wait_for(channel.send(frame), timeout=self.send_timeout)
        except asyncio.TimeoutError:
            self._failed_sends += 1
            logger.warning(f"Send to {name} timed out after {self.send_timeout}s")
        except Exception as e:
            self._failed_sends += 1
            logger.warning(f"Send to {name} failed: {e}")

    def get_stats(self) -> dict[str, Any]:
        """Get relay statistics.

        Returns:
            Dictionary with connection and message counters.
        """
        return {
            "clients_connected": self.client_count,
            "clients_announced": len(self._client_ids),
            "entry_count": len(self._entries),
            "messages_relayed": self._relayed,
            "messages_dropped": self._dropped,
            "sends_failed": self._failed_sends,
            "timestamp": datetime.now().isoformat(),
        }
