"""Exception hierarchy for coordination service calls.

Adapters translate their library's exceptions into these so the election
code can tell retryable failures from session loss and data conflicts.
"""

from __future__ import annotations


class CoordinationError(Exception):
    """Base exception for coordination service errors."""

    def __init__(self, message: str = "", path: str | None = None) -> None:
        self.path = path
        if path and message:
            message = f"{message}: {path}"
        elif path:
            message = path
        super().__init__(message)


class TransientCoordinationError(CoordinationError):
    """Failure that may succeed when retried on the same session."""

    pass


class ConnectionLossError(TransientCoordinationError):
    """Connection dropped before the call completed; the session may survive."""

    pass


class OperationTimeoutError(TransientCoordinationError):
    """Call did not complete within the operation timeout."""

    pass


class SessionExpiredError(CoordinationError):
    """Session is gone; every ephemeral node it owned has been removed."""

    pass


class NodeExistsError(CoordinationError):
    """Node already exists at the path."""

    pass


class NoNodeError(CoordinationError):
    """Node (or its parent) does not exist."""

    pass


class BadVersionError(CoordinationError):
    """Conditional write failed because the node version changed."""

    pass


class NotEmptyError(CoordinationError):
    """Node still has children and cannot be deleted."""

    pass
