"""Coordination service clients.

Provides the client contract consumed by the election and its backends:
- KazooCoordinationClient: ZooKeeper through kazoo
- InMemoryCoordinationService: in-process namespace for tests and simulation
"""

from succession.coordination.client import (
    CoordinationClient,
    CreateMode,
    EventType,
    NodeStat,
    SessionEvent,
    SessionState,
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
    TransientCoordinationError,
)
from succession.coordination.memory import (
    InMemoryCoordinationClient,
    InMemoryCoordinationService,
)

__all__ = [
    # Contract
    "CoordinationClient",
    "CreateMode",
    "EventType",
    "NodeStat",
    "SessionEvent",
    "SessionState",
    "WatchEvent",
    # Errors
    "CoordinationError",
    "TransientCoordinationError",
    "ConnectionLossError",
    "OperationTimeoutError",
    "SessionExpiredError",
    "NodeExistsError",
    "NoNodeError",
    "BadVersionError",
    "NotEmptyError",
    # Backends
    "InMemoryCoordinationService",
    "InMemoryCoordinationClient",
]
