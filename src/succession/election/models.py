"""Election data model and candidate ordering."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import orjson

from succession.coordination.client import basename, join_path
from succession.election.errors import DuplicateSequenceError, MalformedSequenceError


class Role(str, Enum):
    """Role of this process in the election."""

    UNINITIALIZED = "uninitialized"
    CANDIDATE = "candidate"
    LEADER = "leader"
    FOLLOWER = "follower"


class ElectionState(str, Enum):
    """Election engine state machine."""

    INIT = "init"
    ELECTING = "electing"
    LEADER = "leader"
    FOLLOWER = "follower"
    REJOINING = "rejoining"
    STOPPED = "stopped"

    @property
    def role(self) -> Role:
        return _STATE_ROLES.get(self, Role.UNINITIALIZED)


_STATE_ROLES = {
    ElectionState.ELECTING: Role.CANDIDATE,
    ElectionState.LEADER: Role.LEADER,
    ElectionState.FOLLOWER: Role.FOLLOWER,
}


class WatchKind(str, Enum):
    EXISTS = "exists"
    CHILDREN = "children"


@dataclass(frozen=True)
class CandidateNode:
    """An ephemeral-sequential node registered by one process."""

    path: str
    sequence: int
    identity: str = ""

    @property
    def name(self) -> str:
        return basename(self.path)

    @classmethod
    def from_path(cls, path: str, prefix: str, identity: str = "") -> CandidateNode:
        return cls(path=path, sequence=parse_sequence(basename(path), prefix), identity=identity)


@dataclass(frozen=True)
class WatchRegistration:
    """The single watch an engine holds at a time."""

    watched_path: str
    kind: WatchKind
    token: int


@dataclass(frozen=True)
class HeartbeatRecord:
    """Liveness record written by the current leader."""

    path: str
    timestamp: datetime
    identity: str
    candidate: str
    version: int = -1

    def to_bytes(self) -> bytes:
        return orjson.dumps(
            {
                "timestamp": self.timestamp.isoformat(),
                "identity": self.identity,
                "candidate": self.candidate,
            }
        )

    @classmethod
    def from_bytes(cls, path: str, data: bytes, version: int = -1) -> HeartbeatRecord:
        """Decode a stored record.

        Plain ISO timestamps (no JSON document) are accepted as well.
        """
        try:
            payload: Any = orjson.loads(data)
        except orjson.JSONDecodeError:
            payload = data.decode("utf-8", errors="replace").strip()

        if isinstance(payload, dict):
            return cls(
                path=path,
                timestamp=datetime.fromisoformat(payload["timestamp"]),
                identity=payload.get("identity", ""),
                candidate=payload.get("candidate", ""),
                version=version,
            )
        return cls(
            path=path,
            timestamp=datetime.fromisoformat(str(payload)),
            identity="",
            candidate="",
            version=version,
        )

    @classmethod
    def now(cls, path: str, identity: str, candidate: str) -> HeartbeatRecord:
        return cls(path=path, timestamp=datetime.now(UTC), identity=identity, candidate=candidate)


def parse_sequence(name: str, prefix: str) -> int:
    """Parse the numeric sequence suffix of a candidate node name.

    Raises:
        MalformedSequenceError: If the suffix is empty or not all digits
    """
    suffix = name[len(prefix):] if name.startswith(prefix) else ""
    if not suffix or not suffix.isascii() or not suffix.isdigit():
        raise MalformedSequenceError(name)
    return int(suffix)


def order_candidates(namespace: str, children: list[str], prefix: str) -> list[CandidateNode]:
    """Return the candidate children sorted by numeric sequence.

    Children without the candidate prefix are not candidates and are
    skipped. Sequence suffixes are compared as integers, never as strings,
    so candidate_10 sorts after candidate_9 regardless of padding.

    Raises:
        MalformedSequenceError: A prefixed child has a non-numeric suffix
        DuplicateSequenceError: Two children share a sequence number
    """
    candidates = [
        CandidateNode(path=join_path(namespace, name), sequence=parse_sequence(name, prefix))
        for name in children
        if name.startswith(prefix)
    ]
    candidates.sort(key=lambda c: c.sequence)

    for previous, current in zip(candidates, candidates[1:]):
        if previous.sequence == current.sequence:
            raise DuplicateSequenceError(current.sequence, [previous.name, current.name])

    return candidates


def find_predecessor(candidates: list[CandidateNode], own_path: str) -> CandidateNode | None:
    """Return the candidate immediately before own_path, None if own is first.

    Raises:
        ValueError: If own_path is not among the candidates
    """
    paths = [c.path for c in candidates]
    index = paths.index(own_path)
    return candidates[index - 1] if index > 0 else None
