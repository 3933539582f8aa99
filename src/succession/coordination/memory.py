"""In-process coordination service.

Implements the CoordinationClient contract against a shared in-memory tree:
sessions, ephemeral and sequential nodes, one-shot data and child watches,
and session expiry that removes every ephemeral node the session owned.

Suitable for tests and for `succession simulate`. Notifications are
scheduled on the running event loop with call_soon, so they arrive after the
operation that caused them returns, in the order the service produced them.

Example:
    service = InMemoryCoordinationService()
    client = service.client()
    await client.connect()
    path = await client.create("/election/candidate_", mode=CreateMode.EPHEMERAL_SEQUENTIAL)
    service.expire_session(client.session_id)
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from succession.coordination.client import (
    CoordinationClient,
    CreateMode,
    EventType,
    NodeStat,
    SessionEvent,
    SessionListener,
    SessionState,
    WatchCallback,
    WatchEvent,
    basename,
)
from succession.coordination.errors import (
    BadVersionError,
    ConnectionLossError,
    NodeExistsError,
    NoNodeError,
    NotEmptyError,
    SessionExpiredError,
)

logger = logging.getLogger(__name__)

# ZooKeeper formats sequence suffixes as %010d
DEFAULT_SEQUENCE_WIDTH = 10


@dataclass
class _Node:
    data: bytes
    ephemeral_owner: int = 0
    version: int = 0
    sequence: int = 0
    children: set[str] = field(default_factory=set)
    created: float = field(default_factory=time.time)
    modified: float = field(default_factory=time.time)

    def stat(self) -> NodeStat:
        return NodeStat(
            version=self.version,
            ephemeral_owner=self.ephemeral_owner,
            num_children=len(self.children),
            created=self.created,
            modified=self.modified,
        )


def _parent(path: str) -> str:
    parent = path.rstrip("/").rsplit("/", 1)[0]
    return parent or "/"


def _validate(path: str) -> None:
    if not path.startswith("/") or (path != "/" and path.endswith("/")):
        raise ValueError(f"Invalid node path: {path!r}")


class InMemoryCoordinationService:
    """Shared namespace that any number of in-memory clients connect to.

    Args:
        sequence_width: Zero-padding width of sequential suffixes. A width
            of 1 produces unpadded suffixes (candidate_9, candidate_10).
    """

    def __init__(self, sequence_width: int = DEFAULT_SEQUENCE_WIDTH) -> None:
        self.sequence_width = sequence_width
        self._nodes: dict[str, _Node] = {"/": _Node(b"")}
        self._sessions: dict[int, InMemoryCoordinationClient] = {}
        self._session_ids = itertools.count(0x1000)
        self._data_watches: dict[str, list[tuple[int, WatchCallback]]] = defaultdict(list)
        self._child_watches: dict[str, list[tuple[int, WatchCallback]]] = defaultdict(list)

        # (session_id, event) for every watch notification delivered
        self.deliveries: list[tuple[int, WatchEvent]] = []

    def client(self, auto_reconnect: bool = True) -> InMemoryCoordinationClient:
        """Create a new (unconnected) client bound to this service."""
        return InMemoryCoordinationClient(self, auto_reconnect=auto_reconnect)

    # -------------------------------------------------------------------------
    # Inspection and fault injection
    # -------------------------------------------------------------------------

    def node_exists(self, path: str) -> bool:
        return path in self._nodes

    def children(self, path: str) -> list[str]:
        """Child names of a node, in creation order of their sequence."""
        return sorted(self._nodes[path].children)

    def data(self, path: str) -> bytes:
        return self._nodes[path].data

    def set_sequence(self, parent: str, value: int) -> None:
        """Set the next sequence number handed out under parent."""
        self._nodes[parent].sequence = value

    def session_ids(self) -> list[int]:
        return list(self._sessions)

    def expire_session(self, session_id: int) -> None:
        """Expire a session as the server would after a missed timeout.

        Ephemeral nodes are removed (firing other sessions' watches), the
        owner's watches are dropped, and the owner receives EXPIRED. Clients
        created with auto_reconnect then get a fresh session and CONNECTED.
        """
        client = self._sessions.get(session_id)
        if client is None:
            raise KeyError(f"Unknown session: {session_id:#x}")

        self._end_session(session_id)
        client._on_expired()
        logger.debug(f"Expired session {session_id:#x}")

        if client.auto_reconnect:
            client._on_connected(self._open_session(client))

    def disconnect_session(self, session_id: int) -> None:
        """Drop the connection but keep the session alive."""
        self._sessions[session_id]._on_disconnected()

    def reconnect_session(self, session_id: int) -> None:
        """Restore a connection dropped by disconnect_session."""
        self._sessions[session_id]._on_connected(session_id)

    # -------------------------------------------------------------------------
    # Session bookkeeping
    # -------------------------------------------------------------------------

    def _open_session(self, client: InMemoryCoordinationClient) -> int:
        session_id = next(self._session_ids)
        self._sessions[session_id] = client
        return session_id

    def _end_session(self, session_id: int) -> None:
        self._sessions.pop(session_id, None)

        for watches in (self._data_watches, self._child_watches):
            for path in list(watches):
                watches[path] = [w for w in watches[path] if w[0] != session_id]
                if not watches[path]:
                    del watches[path]

        owned = [p for p, n in self._nodes.items() if n.ephemeral_owner == session_id]
        for path in sorted(owned, key=len, reverse=True):
            if path in self._nodes:
                self._remove(path)

    # -------------------------------------------------------------------------
    # Tree operations
    # -------------------------------------------------------------------------

    def _create(
        self,
        session_id: int,
        path: str,
        data: bytes,
        mode: CreateMode,
        makepath: bool,
    ) -> str:
        _validate(path)
        parent = _parent(path)

        if parent not in self._nodes:
            if not makepath:
                raise NoNodeError("Parent node does not exist", parent)
            self._make_parents(parent)

        parent_node = self._nodes[parent]
        if parent_node.ephemeral_owner:
            raise NoNodeError("Ephemeral nodes cannot have children", parent)

        if mode.sequential:
            suffix = f"{parent_node.sequence:0{self.sequence_width}d}"
            path = f"{path}{suffix}"
        parent_node.sequence += 1

        if path in self._nodes:
            raise NodeExistsError("Node already exists", path)

        owner = session_id if mode.ephemeral else 0
        self._nodes[path] = _Node(data=data, ephemeral_owner=owner)
        parent_node.children.add(basename(path))

        self._fire(self._data_watches, path, EventType.NODE_CREATED)
        self._fire(self._child_watches, parent, EventType.NODE_CHILDREN_CHANGED, parent)
        return path

    def _make_parents(self, path: str) -> None:
        missing: list[str] = []
        while path not in self._nodes:
            missing.append(path)
            path = _parent(path)
        for node_path in reversed(missing):
            parent = _parent(node_path)
            self._nodes[node_path] = _Node(b"")
            self._nodes[parent].children.add(basename(node_path))
            self._nodes[parent].sequence += 1
            self._fire(self._data_watches, node_path, EventType.NODE_CREATED)
            self._fire(self._child_watches, parent, EventType.NODE_CHILDREN_CHANGED, parent)

    def _remove(self, path: str) -> None:
        del self._nodes[path]
        parent = _parent(path)
        self._nodes[parent].children.discard(basename(path))

        self._fire(self._data_watches, path, EventType.NODE_DELETED)
        self._fire(self._child_watches, path, EventType.NODE_DELETED)
        self._fire(self._child_watches, parent, EventType.NODE_CHILDREN_CHANGED, parent)

    def _delete(self, path: str, version: int) -> None:
        node = self._get(path)
        if version != -1 and node.version != version:
            raise BadVersionError("Version mismatch", path)
        if node.children:
            raise NotEmptyError("Node has children", path)
        self._remove(path)

    def _set_data(self, path: str, data: bytes, version: int) -> NodeStat:
        node = self._get(path)
        if version != -1 and node.version != version:
            raise BadVersionError("Version mismatch", path)
        node.data = data
        node.version += 1
        node.modified = time.time()
        self._fire(self._data_watches, path, EventType.NODE_DATA_CHANGED)
        return node.stat()

    def _get(self, path: str) -> _Node:
        _validate(path)
        node = self._nodes.get(path)
        if node is None:
            raise NoNodeError("Node does not exist", path)
        return node

    def _watch(
        self,
        table: dict[str, list[tuple[int, WatchCallback]]],
        session_id: int,
        path: str,
        callback: WatchCallback,
    ) -> None:
        table[path].append((session_id, callback))

    def _fire(
        self,
        table: dict[str, list[tuple[int, WatchCallback]]],
        key: str,
        event_type: EventType,
        event_path: str | None = None,
    ) -> None:
        watchers = table.pop(key, [])
        if not watchers:
            return

        event = WatchEvent(type=event_type, path=event_path or key)
        loop = asyncio.get_running_loop()
        for session_id, callback in watchers:
            self.deliveries.append((session_id, event))
            loop.call_soon(callback, event)


class InMemoryCoordinationClient(CoordinationClient):
    """Client of an InMemoryCoordinationService.

    Args:
        service: Shared namespace
        auto_reconnect: Open a new session right after expiry, as kazoo does
    """

    def __init__(self, service: InMemoryCoordinationService, auto_reconnect: bool = True) -> None:
        self.service = service
        self.auto_reconnect = auto_reconnect
        self._session_id: int | None = None
        self._connected = False
        self._expired = False
        self._listeners: list[SessionListener] = []
        self._failures: dict[str, list[Exception]] = defaultdict(list)

        # Every operation issued, as (name, path), for assertions in tests
        self.calls: list[tuple[str, str]] = []

    @property
    def session_id(self) -> int | None:
        return self._session_id

    @property
    def connected(self) -> bool:
        return self._connected

    def add_session_listener(self, listener: SessionListener) -> None:
        self._listeners.append(listener)

    def fail_next(self, operation: str, error: Exception) -> None:
        """Make the next call of `operation` raise `error` without touching the tree."""
        self._failures[operation].append(error)

    async def connect(self) -> None:
        if self._connected:
            return
        self._on_connected(self.service._open_session(self))

    async def close(self) -> None:
        if self._session_id is not None:
            self.service._end_session(self._session_id)
        self._session_id = None
        self._connected = False

    async def create(
        self,
        path: str,
        data: bytes = b"",
        mode: CreateMode = CreateMode.PERSISTENT,
        acl: Sequence[Any] | None = None,
        makepath: bool = False,
    ) -> str:
        session_id = self._check("create", path)
        return self.service._create(session_id, path, data, mode, makepath)

    async def exists(self, path: str, watch: WatchCallback | None = None) -> NodeStat | None:
        session_id = self._check("exists", path)
        if watch is not None:
            self.service._watch(self.service._data_watches, session_id, path, watch)
        node = self.service._nodes.get(path)
        return node.stat() if node else None

    async def get_children(self, path: str, watch: WatchCallback | None = None) -> list[str]:
        session_id = self._check("get_children", path)
        node = self.service._get(path)
        if watch is not None:
            self.service._watch(self.service._child_watches, session_id, path, watch)
        return list(node.children)

    async def get_data(self, path: str) -> tuple[bytes, NodeStat]:
        self._check("get_data", path)
        node = self.service._get(path)
        return node.data, node.stat()

    async def set_data(self, path: str, data: bytes, version: int = -1) -> NodeStat:
        self._check("set_data", path)
        return self.service._set_data(path, data, version)

    async def delete(self, path: str, version: int = -1) -> None:
        self._check("delete", path)
        self.service._delete(path, version)

    def _check(self, operation: str, path: str) -> int:
        self.calls.append((operation, path))
        if self._failures[operation]:
            raise self._failures[operation].pop(0)
        if self._expired:
            raise SessionExpiredError("Session expired", path)
        if not self._connected or self._session_id is None:
            raise ConnectionLossError("Not connected", path)
        return self._session_id

    # -------------------------------------------------------------------------
    # Session state driven by the service
    # -------------------------------------------------------------------------

    def _on_connected(self, session_id: int) -> None:
        self._session_id = session_id
        self._connected = True
        self._expired = False
        self._notify(SessionEvent(SessionState.CONNECTED, session_id))

    def _on_disconnected(self) -> None:
        self._connected = False
        self._notify(SessionEvent(SessionState.DISCONNECTED, self._session_id))

    def _on_expired(self) -> None:
        session_id = self._session_id
        self._session_id = None
        self._connected = False
        self._expired = True
        self._notify(SessionEvent(SessionState.EXPIRED, session_id))

    def _notify(self, event: SessionEvent) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        for listener in self._listeners:
            if loop is None:
                listener(event)
            else:
                loop.call_soon(listener, event)
