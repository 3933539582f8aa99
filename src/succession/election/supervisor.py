"""Session supervision.

Turns session connectivity events into election actions:
- EXPIRED: the candidate node is gone server side, force a rejoin
- DISCONNECTED: transient, keep state and wait for the connection
- CONNECTED: same session, nothing to do; a different session than the
  one held before means the old one expired unseen, so rejoin
"""

from __future__ import annotations

import logging

from succession.coordination.client import SessionEvent, SessionState
from succession.election.engine import ElectionEngine

logger = logging.getLogger(__name__)


class SessionSupervisor:
    """Drives full rejoin of the election engine on session loss."""

    def __init__(self, engine: ElectionEngine) -> None:
        self.engine = engine
        self.session_id: int | None = None
        self.connected = False
        self.expirations = 0
        self._awaiting_session = False

    def handle(self, event: SessionEvent) -> None:
        """Session listener; runs on the event loop thread."""
        if event.state == SessionState.EXPIRED:
            self._on_expired()
        elif event.state == SessionState.DISCONNECTED:
            self._on_disconnected()
        elif event.state == SessionState.CONNECTED:
            self._on_connected(event.session_id)

    def _on_expired(self) -> None:
        logger.warning("Coordination session expired, candidate node is gone")
        self.connected = False
        self.session_id = None
        self.expirations += 1
        self._awaiting_session = True
        self.engine.request_rejoin("session expired")

    def _on_disconnected(self) -> None:
        logger.warning("Coordination connection suspended, waiting for reconnect")
        self.connected = False

    def _on_connected(self, session_id: int | None) -> None:
        self.connected = True
        previous = self.session_id
        self.session_id = session_id

        if self._awaiting_session:
            self._awaiting_session = False
            logger.info(f"Connected with new session {session_id:#x}" if session_id else "Connected")
            self.engine.wake()
            return

        if previous is None or session_id is None or previous == session_id:
            logger.info("Coordination session connected")
            return

        logger.warning(f"Session changed from {previous:#x} to {session_id:#x}, rejoining")
        self.engine.request_rejoin("session replaced")
