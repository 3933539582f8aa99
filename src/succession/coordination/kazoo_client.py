"""ZooKeeper coordination client backed by kazoo.

kazoo is thread based: calls block and watch/state callbacks fire on its
connection thread. This adapter runs each call in the default executor,
bounds it with the operation timeout, and hands every notification back to
the event loop with call_soon_threadsafe so the election code only ever
sees them on the loop thread.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from typing import Any, TypeVar

from kazoo import exceptions as kazoo_errors
from kazoo.client import KazooClient, KazooState
from kazoo.handlers.threading import KazooTimeoutError
from kazoo.protocol.states import EventType as KazooEventType
from kazoo.protocol.states import WatchedEvent, ZnodeStat

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
)
from succession.coordination.errors import (
    BadVersionError,
    ConnectionLossError,
    CoordinationError,
    NodeExistsError,
    NoNodeError,
    NotEmptyError,
    OperationTimeoutError,
    SessionExpiredError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_EVENT_TYPES = {
    KazooEventType.CREATED: EventType.NODE_CREATED,
    KazooEventType.DELETED: EventType.NODE_DELETED,
    KazooEventType.CHANGED: EventType.NODE_DATA_CHANGED,
    KazooEventType.CHILD: EventType.NODE_CHILDREN_CHANGED,
}

_SESSION_STATES = {
    KazooState.CONNECTED: SessionState.CONNECTED,
    KazooState.SUSPENDED: SessionState.DISCONNECTED,
    KazooState.LOST: SessionState.EXPIRED,
}


@contextmanager
def translate_errors(path: str | None = None) -> Iterator[None]:
    """Map kazoo exceptions onto the coordination error hierarchy."""
    try:
        yield
    except kazoo_errors.NodeExistsError as e:
        raise NodeExistsError("Node already exists", path) from e
    except kazoo_errors.NoNodeError as e:
        raise NoNodeError("Node does not exist", path) from e
    except kazoo_errors.BadVersionError as e:
        raise BadVersionError("Version mismatch", path) from e
    except kazoo_errors.NotEmptyError as e:
        raise NotEmptyError("Node has children", path) from e
    # ConnectionClosedError subclasses SessionExpiredError and must come first
    except (kazoo_errors.ConnectionLoss, kazoo_errors.ConnectionClosedError) as e:
        raise ConnectionLossError("Connection lost", path) from e
    except kazoo_errors.SessionExpiredError as e:
        raise SessionExpiredError("Session expired", path) from e
    except (kazoo_errors.OperationTimeoutError, KazooTimeoutError) as e:
        raise OperationTimeoutError("Operation timed out", path) from e
    except kazoo_errors.KazooException as e:
        raise CoordinationError(f"ZooKeeper error {type(e).__name__}", path) from e


def _stat(stat: ZnodeStat) -> NodeStat:
    return NodeStat(
        version=stat.version,
        ephemeral_owner=stat.ephemeralOwner,
        num_children=stat.numChildren,
        created=stat.created,
        modified=stat.last_modified,
    )


class KazooCoordinationClient(CoordinationClient):
    """CoordinationClient over a kazoo KazooClient.

    Args:
        hosts: Comma separated host:port list
        session_timeout: ZooKeeper session timeout in seconds
        operation_timeout: Upper bound for every call in seconds
        client: Pre-built KazooClient (tests, custom handlers)
    """

    def __init__(
        self,
        hosts: str,
        session_timeout: float = 10.0,
        operation_timeout: float = 5.0,
        client: KazooClient | None = None,
    ) -> None:
        self.hosts = hosts
        self.operation_timeout = operation_timeout
        self._zk = client or KazooClient(hosts=hosts, timeout=session_timeout)
        self._listeners: list[SessionListener] = []
        self._loop: asyncio.AbstractEventLoop | None = None
        self._closing = False
        self._zk.add_listener(self._on_state)

    @property
    def session_id(self) -> int | None:
        client_id = self._zk.client_id
        return client_id[0] if client_id else None

    def add_session_listener(self, listener: SessionListener) -> None:
        self._listeners.append(listener)

    async def connect(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._closing = False
        logger.info(f"Connecting to ZooKeeper at {self.hosts}")
        await self._call(functools.partial(self._zk.start, timeout=self.operation_timeout))

    async def close(self) -> None:
        self._closing = True
        try:
            await self._call(self._zk.stop)
        finally:
            self._zk.close()
        logger.info("Closed ZooKeeper session")

    async def create(
        self,
        path: str,
        data: bytes = b"",
        mode: CreateMode = CreateMode.PERSISTENT,
        acl: Sequence[Any] | None = None,
        makepath: bool = False,
    ) -> str:
        return await self._call(
            functools.partial(
                self._zk.create,
                path,
                value=data,
                acl=acl,
                ephemeral=mode.ephemeral,
                sequence=mode.sequential,
                makepath=makepath,
            ),
            path,
        )

    async def exists(self, path: str, watch: WatchCallback | None = None) -> NodeStat | None:
        stat = await self._call(
            functools.partial(self._zk.exists, path, watch=self._bridge(watch)), path
        )
        return _stat(stat) if stat is not None else None

    async def get_children(self, path: str, watch: WatchCallback | None = None) -> list[str]:
        return await self._call(
            functools.partial(self._zk.get_children, path, watch=self._bridge(watch)), path
        )

    async def get_data(self, path: str) -> tuple[bytes, NodeStat]:
        data, stat = await self._call(functools.partial(self._zk.get, path), path)
        return data or b"", _stat(stat)

    async def set_data(self, path: str, data: bytes, version: int = -1) -> NodeStat:
        stat = await self._call(
            functools.partial(self._zk.set, path, data, version=version), path
        )
        return _stat(stat)

    async def delete(self, path: str, version: int = -1) -> None:
        await self._call(functools.partial(self._zk.delete, path, version=version), path)

    async def _call(self, fn: Callable[[], T], path: str | None = None) -> T:
        loop = asyncio.get_running_loop()
        with translate_errors(path):
            try:
                return await asyncio.wait_for(
                    loop.run_in_executor(None, fn), timeout=self.operation_timeout
                )
            except asyncio.TimeoutError as e:
                raise OperationTimeoutError("Operation timed out", path) from e

    def _bridge(self, watch: WatchCallback | None) -> Callable[[WatchedEvent], None] | None:
        """Wrap a loop-side callback so kazoo can fire it from its own thread."""
        if watch is None:
            return None

        def fire(event: WatchedEvent) -> None:
            event_type = _EVENT_TYPES.get(event.type)
            if event_type is None or self._loop is None:
                return
            self._loop.call_soon_threadsafe(watch, WatchEvent(type=event_type, path=event.path))

        return fire

    def _on_state(self, state: str) -> None:
        """kazoo state listener; runs on the connection thread and must not block."""
        if self._closing or self._loop is None:
            return

        session_state = _SESSION_STATES.get(state)
        if session_state is None:
            return

        session_id = self.session_id if session_state == SessionState.CONNECTED else None
        event = SessionEvent(state=session_state, session_id=session_id)
        for listener in self._listeners:
            self._loop.call_soon_threadsafe(listener, event)
