"""Election-level errors.

Structural errors keep the engine in ELECTING with backoff; they never let
it assume a role from ambiguous membership data.
"""

from __future__ import annotations


class ElectionError(Exception):
    """Base exception for election errors."""

    pass


class MalformedSequenceError(ElectionError):
    """A candidate node name does not end in a numeric sequence suffix."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Malformed candidate sequence suffix: {name}")


class DuplicateSequenceError(ElectionError):
    """Two candidate nodes carry the same sequence number."""

    def __init__(self, sequence: int, names: list[str]) -> None:
        self.sequence = sequence
        self.names = names
        super().__init__(f"Duplicate candidate sequence {sequence}: {', '.join(names)}")


class NamespaceUnavailableError(ElectionError):
    """The election namespace is missing and could not be created."""

    def __init__(self, path: str, reason: str = "") -> None:
        self.path = path
        message = f"Election namespace unavailable: {path}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class CandidateMissingError(ElectionError):
    """Own candidate node is absent from the namespace listing."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Candidate node missing from listing: {path}")
