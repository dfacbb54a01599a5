"""Client-side synchronizer for a shared entry list.

Keeps a local ordered replica mirrored into a durable store, sends local
changes to the relay and applies changes made by other clients. A
supervised background task owns the connection and reconnects after a
fixed delay whenever the channel closes.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from ..protocol import Message, MessageKind, ProtocolError, unique_entries
from ..store import EntryStore
from .transport import Connection, Connector, open_websocket

logger = logging.getLogger(__name__)

RESYNC_MERGE = "merge"
RESYNC_PUSH = "push"


class ConnectionState(Enum):
    """Connection status of a synchronizer."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass
class ChangeEvent:
    """A change applied to the local replica, for transient UI feedback."""

    kind: str  # "added", "removed", "reordered", "replaced"
    entries: list[str] = field(default_factory=list)
    remote: bool = True


ChangeCallback = Callable[[ChangeEvent], None]


def generate_client_id() -> str:
    """Generate an ephemeral client identity."""
    return f"user-{uuid.uuid4().hex[:12]}"


class Synchronizer:
    """Local replica of the entry list, kept in sync through the relay.

    Local actions (add, remove, reorder) update the replica, persist it and
    notify the relay as one step; remote messages are applied the same way.
    Both paths are serialized by a single lock.

    Example:
        >>> sync = Synchronizer(store, "ws://localhost:8080/ws")
        >>> await sync.start()
        >>> await sync.add("milk")
        >>> await sync.stop()
    """

    def __init__(
        self,
        store: EntryStore,
        relay_url: str,
        connector: Connector | None = None,
        reconnect_delay: float = 5.0,
        resync_mode: str = RESYNC_MERGE,
        client_id: str | None = None,
        on_change: ChangeCallback | None = None,
    ):
        """Initialize the synchronizer.

        Args:
            store: Durable store mirroring the local replica.
            relay_url: WebSocket URL of the relay.
            connector: Coroutine function opening a connection to a URL.
            reconnect_delay: Fixed seconds to wait before each reconnect.
            resync_mode: "merge" or "push", how to reconcile on (re)connect.
            client_id: Identity to use instead of a random one.
            on_change: Callback invoked for every change to the replica.
        """
        if resync_mode not in (RESYNC_MERGE, RESYNC_PUSH):
            raise ValueError(f"Unknown resync mode: {resync_mode}")

        self.store = store
        self.relay_url = relay_url
        self.reconnect_delay = reconnect_delay
        self.resync_mode = resync_mode
        self.client_id = client_id or generate_client_id()
        self.on_change = on_change

        self._connector = connector or open_websocket
        self._entries: list[str] = []
        self._state = ConnectionState.DISCONNECTED
        self._connection: Connection | None = None
        self._lock = asyncio.Lock()
        self._synced = asyncio.Event()
        self._pushed_on_connect = False
        self._running = False
        self._task: asyncio.Task | None = None

    # ==================== Properties ====================

    @property
    def entries(self) -> list[str]:
        """Snapshot of the local replica, in order."""
        return list(self._entries)

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def is_synced(self) -> bool:
        """Whether the handshake on the current connection has completed."""
        return self._synced.is_set()

    # ==================== Lifecycle ====================

    def load(self) -> list[str]:
        """Load the persisted entries into the replica."""
        self._entries = unique_entries(self.store.load())
        logger.info(f"Loaded {len(self._entries)} entries from local store")
        return self.entries

    async def start(self) -> None:
        """Load persisted entries and start the connection task."""
        if self._running:
            return

        self.load()
        self._running = True
        self._task = asyncio.create_task(self._connection_loop())
        logger.info(f"Synchronizer {self.client_id} started: {self.relay_url}")

    async def stop(self) -> None:
        """Stop the connection task and close the channel."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        self._set_state(ConnectionState.DISCONNECTED)
        logger.info(f"Synchronizer {self.client_id} stopped")

    async def wait_synced(self, timeout: float | None = None) -> bool:
        """Wait until the handshake with the relay has completed.

        Args:
            timeout: Optional timeout in seconds.

        Returns:
            True if synced, False on timeout.
        """
        try:
            await asyncio.wait_for(self._synced.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    def _set_state(self, state: ConnectionState) -> None:
        if state != self._state:
            logger.debug(f"Connection state: {self._state.value} -> {state.value}")
            self._state = state

    async def _connection_loop(self) -> None:
        """Main connection loop with fixed-delay reconnect."""
        while self._running:
            self._set_state(ConnectionState.CONNECTING)
            try:
                connection = await self._connector(self.relay_url)
            except Exception as e:
                logger.warning(f"Connection to {self.relay_url} failed: {e}")
            else:
                try:
                    await self._run_connection(connection)
                except Exception as e:
                    logger.warning(f"Connection lost: {e}")
                finally:
                    self._connection = None
                    self._synced.clear()
                    await self._close_quietly(connection)

            self._set_state(ConnectionState.DISCONNECTED)
            if not self._running:
                break

            logger.info(f"Reconnecting in {self.reconnect_delay}s...")
            await asyncio.sleep(self.reconnect_delay)

    async def _run_connection(self, connection: Connection) -> None:
        """Handshake, then apply incoming frames until the channel closes."""
        self._connection = connection
        self._set_state(ConnectionState.CONNECTED)
        logger.info(f"Connected to relay at {self.relay_url}")

        await self._handshake()

        async for frame in connection:
            await self.handle_frame(frame)

        logger.info("Connection closed by relay")

    async def _close_quietly(self, connection: Connection) -> None:
        try:
            await connection.close()
        except Exception as e:
            logger.debug(f"Error closing connection: {e}")

    async def _handshake(self) -> None:
        """Announce this client and, in push mode, push the local replica.

        Push mode sends full-sync only when the replica is non-empty; an empty
        client waits for the relay's full-state instead of wiping the relay.
        Merge mode only announces and reconciles in ``_apply_full_state``.
        """
        async with self._lock:
            await self._send(Message.announce(self.client_id))

            self._pushed_on_connect = False
            if self.resync_mode == RESYNC_PUSH and self._entries:
                await self._send(Message.full_sync(self.client_id, self._entries))
                self._pushed_on_connect = True

    # ==================== Local actions ====================

    async def add(self, entry: str) -> bool:
        """Append an entry and notify the relay.

        The add message is sent even when the entry already exists locally.

        Returns:
            True if the entry was new to the local replica.
        """
        _check_entry(entry)
        async with self._lock:
            added = entry not in self._entries
            if added:
                self._entries.append(entry)
                self._persist()
                self._emit(ChangeEvent("added", [entry], remote=False))

            await self._send(Message.add(self.client_id, entry))
        return added

    async def remove(self, entry: str) -> bool:
        """Remove an entry and notify the relay.

        Returns:
            True if the entry was present locally.
        """
        _check_entry(entry)
        async with self._lock:
            removed = entry in self._entries
            if removed:
                self._entries = [e for e in self._entries if e != entry]
                self._persist()
                self._emit(ChangeEvent("removed", [entry], remote=False))

            await self._send(Message.remove(self.client_id, entry))
        return removed

    async def reorder(self, entries: list[str]) -> None:
        """Adopt a new local order and send it to the relay.

        Args:
            entries: The full list in its new order; must contain exactly the
                current entries.

        Raises:
            ValueError: If entries is not a permutation of the replica.
        """
        new_order = list(entries)
        async with self._lock:
            if len(new_order) != len(self._entries) or set(new_order) != set(
                self._entries
            ):
                raise ValueError("Reorder must contain exactly the current entries")

            self._entries = new_order
            self._persist()
            self._emit(ChangeEvent("reordered", self.entries, remote=False))

            await self._send(Message.reorder(self.client_id, self._entries))

    # ==================== Remote messages ====================

    async def handle_frame(self, frame: str | bytes) -> None:
        """Decode and apply one frame from the relay; invalid frames are dropped."""
        try:
            message = Message.decode(frame)
        except ProtocolError as e:
            logger.debug(f"Dropping malformed message: {e}")
            return

        await self.handle_message(message)

    async def handle_message(self, message: Message) -> None:
        """Apply a message from another client or from the relay."""
        if message.sender_id == self.client_id:
            logger.debug(f"Ignoring echo of own {message.kind.value}")
            return

        async with self._lock:
            if message.kind == MessageKind.FULL_STATE:
                await self._apply_full_state(message.entries or [])
            elif message.kind == MessageKind.FULL_SYNC:
                self._replace(message.entries or [], "replaced")
            elif message.kind == MessageKind.REORDER:
                self._replace(message.entries or [], "reordered")
            elif message.kind == MessageKind.ADD:
                if message.entry not in self._entries:
                    self._entries.append(message.entry)
                    self._persist()
                    self._emit(ChangeEvent("added", [message.entry]))
            elif message.kind == MessageKind.REMOVE:
                if message.entry in self._entries:
                    self._entries = [e for e in self._entries if e != message.entry]
                    self._persist()
                    self._emit(ChangeEvent("removed", [message.entry]))
            else:
                logger.debug(f"Ignoring {message.kind.value} from {message.sender_id}")

    async def _apply_full_state(self, relay_entries: list[str]) -> None:
        """Reconcile the replica with the relay's reply to our announce."""
        if self.resync_mode == RESYNC_PUSH:
            # Our own full-sync supersedes whatever the relay held before it
            if not self._pushed_on_connect:
                self._replace(relay_entries, "replaced")
        else:
            merged = self._entries + [e for e in relay_entries if e not in self._entries]
            if merged != self._entries:
                self._replace(merged, "replaced")
            if set(merged) != set(relay_entries):
                logger.info(
                    f"Relay is missing local changes, sending full-sync "
                    f"({len(merged)} entries)"
                )
                await self._send(Message.full_sync(self.client_id, merged))

        self._synced.set()
        logger.info(f"Synced with relay ({len(self._entries)} entries)")

    # ==================== Helpers ====================

    def _replace(self, entries: list[str], kind: str) -> None:
        self._entries = unique_entries(entries)
        self._persist()
        self._emit(ChangeEvent(kind, self.entries))

    def _persist(self) -> None:
        self.store.save(self._entries)

    def _emit(self, event: ChangeEvent) -> None:
        if self.on_change is None:
            return
        try:
            self.on_change(event)
        except Exception as e:
            logger.error(f"Change callback failed: {e}", exc_info=True)

    async def _send(self, message: Message) -> None:
        """Send a message if connected; otherwise keep the change local."""
        connection = self._connection
        if connection is None or self._state != ConnectionState.CONNECTED:
            logger.debug(f"Not connected, {message.kind.value} kept local")
            return

        try:
            await connection.send(message.encode())
        except Exception as e:
            logger.warning(f"Failed to send {message.kind.value}: {e}")


def _check_entry(entry: str) -> None:
    if not isinstance(entry, str) or not entry:
        raise ValueError("Entry must be a non-empty string")
