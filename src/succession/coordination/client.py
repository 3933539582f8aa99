"""Coordination client contract.

The election code only talks to a hierarchical namespace through this
interface. Two implementations ship with the package:

- KazooCoordinationClient: ZooKeeper via kazoo
- InMemoryCoordinationClient: in-process service for tests and simulation

All calls are coroutines and must be bounded by the client's operation
timeout. Watches are one-shot: a callback fires at most once and must be
re-armed by the caller. Callbacks are always invoked on the event loop
thread, in the order the service produced them.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any


class CreateMode(str, Enum):
    """Node creation modes."""

    PERSISTENT = "persistent"
    EPHEMERAL = "ephemeral"
    PERSISTENT_SEQUENTIAL = "persistent_sequential"
    EPHEMERAL_SEQUENTIAL = "ephemeral_sequential"

    @property
    def ephemeral(self) -> bool:
        return self in (CreateMode.EPHEMERAL, CreateMode.EPHEMERAL_SEQUENTIAL)

    @property
    def sequential(self) -> bool:
        return self in (CreateMode.PERSISTENT_SEQUENTIAL, CreateMode.EPHEMERAL_SEQUENTIAL)


class EventType(str, Enum):
    """Watch notification kinds."""

    NODE_CREATED = "node_created"
    NODE_DELETED = "node_deleted"
    NODE_DATA_CHANGED = "node_data_changed"
    NODE_CHILDREN_CHANGED = "node_children_changed"


class SessionState(str, Enum):
    """Session connectivity states."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    EXPIRED = "expired"


@dataclass(frozen=True)
class NodeStat:
    """Subset of node metadata the election needs."""

    version: int
    ephemeral_owner: int = 0
    num_children: int = 0
    created: float = 0.0
    modified: float = 0.0


@dataclass(frozen=True)
class WatchEvent:
    """A fired one-shot watch."""

    type: EventType
    path: str


@dataclass(frozen=True)
class SessionEvent:
    """A session connectivity change."""

    state: SessionState
    session_id: int | None = None


WatchCallback = Callable[[WatchEvent], None]
SessionListener = Callable[[SessionEvent], None]


def join_path(parent: str, name: str) -> str:
    """Join a parent path and a child name."""
    if parent == "/":
        return f"/{name}"
    return f"{parent.rstrip('/')}/{name}"


def basename(path: str) -> str:
    """Last component of a node path."""
    return path.rstrip("/").rsplit("/", 1)[-1]


class CoordinationClient(ABC):
    """Session-oriented client to a hierarchical coordination namespace."""

    @property
    @abstractmethod
    def session_id(self) -> int | None:
        """Identifier of the current session, None when not connected."""
        pass

    @abstractmethod
    def add_session_listener(self, listener: SessionListener) -> None:
        """Register a callback for CONNECTED/DISCONNECTED/EXPIRED events."""
        pass

    @abstractmethod
    async def connect(self) -> None:
        """Open a session."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the session, releasing every ephemeral node it owns."""
        pass

    @abstractmethod
    async def create(
        self,
        path: str,
        data: bytes = b"",
        mode: CreateMode = CreateMode.PERSISTENT,
        acl: Sequence[Any] | None = None,
        makepath: bool = False,
    ) -> str:
        """Create a node and return its actual path (with sequence suffix)."""
        pass

    @abstractmethod
    async def exists(self, path: str, watch: WatchCallback | None = None) -> NodeStat | None:
        """Return the node stat or None, optionally arming a one-shot watch."""
        pass

    @abstractmethod
    async def get_children(self, path: str, watch: WatchCallback | None = None) -> list[str]:
        """Return child names, optionally arming a one-shot child watch."""
        pass

    @abstractmethod
    async def get_data(self, path: str) -> tuple[bytes, NodeStat]:
        """Return node payload and stat."""
        pass

    @abstractmethod
    async def set_data(self, path: str, data: bytes, version: int = -1) -> NodeStat:
        """Overwrite node payload; version -1 means unconditional."""
        pass

    @abstractmethod
    async def delete(self, path: str, version: int = -1) -> None:
        """Delete a node; version -1 means unconditional."""
        pass
