"""Tests for the in-memory coordination service."""

import asyncio

import pytest

from succession.coordination.client import (
    CreateMode,
    EventType,
    SessionEvent,
    SessionState,
    WatchEvent,
)
from succession.coordination.errors import (
    BadVersionError,
    ConnectionLossError,
    NodeExistsError,
    NoNodeError,
    NotEmptyError,
    SessionExpiredError,
)
from succession.coordination.memory import InMemoryCoordinationService


async def _flush() -> None:
    """Let call_soon notifications run."""
    for _ in range(3):
        await asyncio.sleep(0)


class TestNodes:
    """Tests for node creation and data operations."""

    @pytest.mark.asyncio
    async def test_create_persistent(self, service: InMemoryCoordinationService) -> None:
        """Persistent node is created with version 0."""
        client = service.client()
        await client.connect()

        path = await client.create("/config", b"value")

        assert path == "/config"
        data, stat = await client.get_data("/config")
        assert data == b"value"
        assert stat.version == 0
        assert stat.ephemeral_owner == 0

    @pytest.mark.asyncio
    async def test_create_requires_parent(self, service: InMemoryCoordinationService) -> None:
        """Missing parent fails unless makepath is set."""
        client = service.client()
        await client.connect()

        with pytest.raises(NoNodeError):
            await client.create("/a/b/c")

        await client.create("/a/b/c", makepath=True)
        assert service.node_exists("/a")
        assert service.node_exists("/a/b")
        assert service.node_exists("/a/b/c")

    @pytest.mark.asyncio
    async def test_create_existing(self, service: InMemoryCoordinationService) -> None:
        """Creating an existing path raises NodeExistsError."""
        client = service.client()
        await client.connect()
        await client.create("/election")

        with pytest.raises(NodeExistsError):
            await client.create("/election")

    @pytest.mark.asyncio
    async def test_sequential_suffix_zero_padded(self, service: InMemoryCoordinationService) -> None:
        """Sequential nodes get increasing zero-padded suffixes."""
        client = service.client()
        await client.connect()
        await client.create("/election")

        first = await client.create("/election/candidate_", mode=CreateMode.EPHEMERAL_SEQUENTIAL)
        second = await client.create("/election/candidate_", mode=CreateMode.EPHEMERAL_SEQUENTIAL)

        assert first == "/election/candidate_0000000000"
        assert second == "/election/candidate_0000000001"

    @pytest.mark.asyncio
    async def test_sequential_suffix_unpadded(self) -> None:
        """Width 1 produces unpadded suffixes across digit widths."""
        service = InMemoryCoordinationService(sequence_width=1)
        client = service.client()
        await client.connect()
        await client.create("/election")
        service.set_sequence("/election", 9)

        names = [
            await client.create("/election/candidate_", mode=CreateMode.EPHEMERAL_SEQUENTIAL)
            for _ in range(2)
        ]

        assert names == ["/election/candidate_9", "/election/candidate_10"]

    @pytest.mark.asyncio
    async def test_conditional_set_data(self, service: InMemoryCoordinationService) -> None:
        """set_data checks the expected version."""
        client = service.client()
        await client.connect()
        await client.create("/heartbeat", b"t0")

        stat = await client.set_data("/heartbeat", b"t1", version=0)
        assert stat.version == 1

        with pytest.raises(BadVersionError):
            await client.set_data("/heartbeat", b"t2", version=0)

        stat = await client.set_data("/heartbeat", b"t3")
        assert stat.version == 2

    @pytest.mark.asyncio
    async def test_delete_rules(self, service: InMemoryCoordinationService) -> None:
        """Delete honors version and refuses nodes with children."""
        client = service.client()
        await client.connect()
        await client.create("/election/candidate", makepath=True)

        with pytest.raises(NotEmptyError):
            await client.delete("/election")
        with pytest.raises(BadVersionError):
            await client.delete("/election/candidate", version=5)

        await client.delete("/election/candidate")
        assert not service.node_exists("/election/candidate")

    @pytest.mark.asyncio
    async def test_not_connected(self, service: InMemoryCoordinationService) -> None:
        """Calls before connect raise ConnectionLossError."""
        client = service.client()

        with pytest.raises(ConnectionLossError):
            await client.exists("/")


class TestWatches:
    """Tests for one-shot watches."""

    @pytest.mark.asyncio
    async def test_exists_watch_fires_once_on_delete(
        self, service: InMemoryCoordinationService
    ) -> None:
        """An exists watch fires NODE_DELETED exactly once."""
        owner = service.client()
        watcher = service.client()
        await owner.connect()
        await watcher.connect()
        await owner.create("/election", makepath=True)
        path = await owner.create("/election/candidate_", mode=CreateMode.EPHEMERAL_SEQUENTIAL)

        events: list[WatchEvent] = []
        stat = await watcher.exists(path, watch=events.append)
        assert stat is not None

        await owner.delete(path)
        await _flush()
        await owner.create("/election/other")
        await _flush()

        assert events == [WatchEvent(EventType.NODE_DELETED, path)]

    @pytest.mark.asyncio
    async def test_exists_watch_on_missing_node_fires_on_create(
        self, service: InMemoryCoordinationService
    ) -> None:
        """exists on a missing node returns None but arms the watch."""
        client = service.client()
        await client.connect()

        events: list[WatchEvent] = []
        assert await client.exists("/later", watch=events.append) is None

        await client.create("/later")
        await _flush()

        assert events == [WatchEvent(EventType.NODE_CREATED, "/later")]

    @pytest.mark.asyncio
    async def test_children_watch(self, service: InMemoryCoordinationService) -> None:
        """A child watch fires NODE_CHILDREN_CHANGED on the parent."""
        client = service.client()
        await client.connect()
        await client.create("/election")

        events: list[WatchEvent] = []
        assert await client.get_children("/election", watch=events.append) == []

        await client.create("/election/a")
        await _flush()

        assert events == [WatchEvent(EventType.NODE_CHILDREN_CHANGED, "/election")]

    @pytest.mark.asyncio
    async def test_data_watch(self, service: InMemoryCoordinationService) -> None:
        """An exists watch fires NODE_DATA_CHANGED on set_data."""
        client = service.client()
        await client.connect()
        await client.create("/heartbeat")

        events: list[WatchEvent] = []
        await client.exists("/heartbeat", watch=events.append)
        await client.set_data("/heartbeat", b"now")
        await _flush()

        assert [e.type for e in events] == [EventType.NODE_DATA_CHANGED]


class TestSessions:
    """Tests for session lifecycle."""

    @pytest.mark.asyncio
    async def test_close_removes_ephemeral_nodes(
        self, service: InMemoryCoordinationService
    ) -> None:
        """Closing a session removes its ephemeral nodes only."""
        client = service.client()
        await client.connect()
        await client.create("/election")
        path = await client.create("/election/candidate_", mode=CreateMode.EPHEMERAL_SEQUENTIAL)

        await client.close()

        assert service.node_exists("/election")
        assert not service.node_exists(path)

    @pytest.mark.asyncio
    async def test_expire_notifies_and_reconnects(
        self, service: InMemoryCoordinationService
    ) -> None:
        """Expiry sends EXPIRED then CONNECTED with a new session id."""
        client = service.client(auto_reconnect=True)
        events: list[SessionEvent] = []
        client.add_session_listener(events.append)
        await client.connect()
        await client.create("/election")
        path = await client.create("/election/candidate_", mode=CreateMode.EPHEMERAL_SEQUENTIAL)
        old_session = client.session_id
        assert old_session is not None

        service.expire_session(old_session)
        await _flush()

        assert [e.state for e in events] == [
            SessionState.CONNECTED,
            SessionState.EXPIRED,
            SessionState.CONNECTED,
        ]
        assert client.session_id != old_session
        assert events[-1].session_id == client.session_id
        assert not service.node_exists(path)

    @pytest.mark.asyncio
    async def test_expire_without_reconnect(self, service: InMemoryCoordinationService) -> None:
        """Without auto_reconnect, calls after expiry raise SessionExpiredError."""
        client = service.client(auto_reconnect=False)
        await client.connect()
        assert client.session_id is not None

        service.expire_session(client.session_id)

        with pytest.raises(SessionExpiredError):
            await client.get_children("/")

    @pytest.mark.asyncio
    async def test_expire_drops_watches(self, service: InMemoryCoordinationService) -> None:
        """Watches of an expired session never fire."""
        owner = service.client()
        watcher = service.client()
        await owner.connect()
        await watcher.connect()
        await owner.create("/node")

        events: list[WatchEvent] = []
        await watcher.exists("/node", watch=events.append)
        assert watcher.session_id is not None
        service.expire_session(watcher.session_id)

        await owner.delete("/node")
        await _flush()

        assert events == []

    @pytest.mark.asyncio
    async def test_disconnect_keeps_session(self, service: InMemoryCoordinationService) -> None:
        """A transient disconnect keeps the session and its nodes."""
        client = service.client()
        events: list[SessionEvent] = []
        client.add_session_listener(events.append)
        await client.connect()
        await client.create("/e", mode=CreateMode.EPHEMERAL)
        session_id = client.session_id
        assert session_id is not None

        service.disconnect_session(session_id)
        with pytest.raises(ConnectionLossError):
            await client.exists("/e")
        service.reconnect_session(session_id)
        await _flush()

        assert await client.exists("/e") is not None
        assert [e.state for e in events] == [
            SessionState.CONNECTED,
            SessionState.DISCONNECTED,
            SessionState.CONNECTED,
        ]
        assert events[-1].session_id == session_id

    @pytest.mark.asyncio
    async def test_fail_next(self, service: InMemoryCoordinationService) -> None:
        """Injected failures are raised once without touching the tree."""
        client = service.client()
        await client.connect()
        client.fail_next("create", ConnectionLossError("injected"))

        with pytest.raises(ConnectionLossError):
            await client.create("/x")
        assert not service.node_exists("/x")

        await client.create("/x")
        assert service.node_exists("/x")
