"""Shared fixtures: in-memory stores and a socket-free loopback to a Relay."""

import asyncio

import pytest
import pytest_asyncio

from listsync.client import Synchronizer
from listsync.relay import Channel, Relay
from listsync.store import LocalStore


class LoopbackChannel(Channel):
    """Relay end of an in-process connection."""

    def __init__(self, connection: "LoopbackConnection"):
        self._connection = connection

    @property
    def is_open(self) -> bool:
        return not self._connection.closed

    async def send(self, frame: str) -> None:
        self._connection.received.append(frame)
        self._connection._inbox.put_nowait(frame)


class LoopbackConnection:
    """Client end of an in-process connection to a Relay."""

    def __init__(self, relay: Relay):
        self.relay = relay
        self.channel = LoopbackChannel(self)
        self.closed = False
        self.sent: list[str] = []
        self.received: list[str] = []
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send(self, frame: str) -> None:
        if self.closed:
            raise ConnectionError("loopback closed")
        self.sent.append(frame)
        await self.relay.handle_frame(self.channel, frame)

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        frame = await self._inbox.get()
        if frame is None:
            raise StopAsyncIteration
        return frame

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._inbox.put_nowait(None)
        await self.relay.disconnect(self.channel)


class LoopbackNetwork:
    """Connector handing out loopback connections to one relay."""

    def __init__(self, relay: Relay):
        self.relay = relay
        self.connections: list[LoopbackConnection] = []
        self.reachable = True
        self.attempts = 0

    async def connect(self, url: str) -> LoopbackConnection:
        self.attempts += 1
        if not self.reachable:
            raise OSError("relay unreachable")

        connection = LoopbackConnection(self.relay)
        await self.relay.connect(connection.channel)
        self.connections.append(connection)
        return connection


@pytest.fixture
def relay():
    """Create an empty relay."""
    return Relay()


@pytest.fixture
def network(relay):
    """Create a loopback network in front of the relay."""
    return LoopbackNetwork(relay)


@pytest.fixture
def make_store():
    """Factory for in-memory stores, optionally pre-populated."""
    stores = []

    def factory(entries: list[str] | None = None) -> LocalStore:
        store = LocalStore(":memory:")
        store.connect()
        if entries:
            store.save(entries)
        stores.append(store)
        return store

    yield factory

    for store in stores:
        store.close()


@pytest_asyncio.fixture
async def make_sync(network):
    """Factory for synchronizers wired to the loopback network."""
    created = []

    def factory(store: LocalStore, **kwargs) -> Synchronizer:
        kwargs.setdefault("reconnect_delay", 0.01)
        sync = Synchronizer(
            store,
            "ws://relay.test/ws",
            connector=network.connect,
            **kwargs,
        )
        created.append(sync)
        return sync

    yield factory

    for sync in created:
        await sync.stop()


@pytest.fixture
def wait_until():
    """Poll a condition until it holds or the timeout expires."""

    async def _wait(predicate, timeout: float = 2.0) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                return False
            await asyncio.sleep(0.005)
        return True

    return _wait
